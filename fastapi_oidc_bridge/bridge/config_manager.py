import asyncio
import logging

from starlette.concurrency import run_in_threadpool

from fastapi_oidc_bridge.auth.auth_interface import AuthMethod
from fastapi_oidc_bridge.auth.auth_interface import AuthMethodRegistry
from fastapi_oidc_bridge.auth.auth_oidc import IssuerMetadata
from fastapi_oidc_bridge.auth.auth_oidc import OIDCClient
from fastapi_oidc_bridge.auth.auth_oidc import OIDCConfig
from fastapi_oidc_bridge.auth.crypto import CryptoBox
from fastapi_oidc_bridge.auth.exceptions import ConfigError
from fastapi_oidc_bridge.bridge.auth_initiator import AuthInitiator
from fastapi_oidc_bridge.bridge.context import BridgeContext
from fastapi_oidc_bridge.models import BridgeSettings
from fastapi_oidc_bridge.models import TransportCookieConfig

logger = logging.getLogger(__name__)

AUTH_NAME = "openid-connect"
AUTH_DISPLAY_NAME = "OpenID Connect"


class ConfigManager:
    def __init__(
        self,
        registry: AuthMethodRegistry,
        crypto_box: CryptoBox,
        redirect_uri: str,
        cookie_config: TransportCookieConfig,
    ) -> None:
        """
        Keeps the auth method registered with the host in line with the
        administrator settings.

        PARAMETERS
        ----------
        registry: AuthMethodRegistry
            Host capability to (un)register the external auth method.
        crypto_box: CryptoBox
            Protects the code verifier cookie of every auth request.
        redirect_uri: str
            The callback URL registered with the identity provider.
        cookie_config: TransportCookieConfig
            Attributes of the code verifier cookie.
        """
        self.registry = registry
        self.crypto_box = crypto_box
        self.redirect_uri = redirect_uri
        self.cookie_config = cookie_config
        self._context = BridgeContext()
        self._lock = asyncio.Lock()

    @property
    def context(self) -> BridgeContext:
        return self._context

    def get_context(self) -> BridgeContext:
        return self._context

    async def reconfigure(self, settings: BridgeSettings) -> None:
        async with self._lock:
            self._unregister_current()
            self._context = BridgeContext(settings=settings)

            if not settings.discover_url:
                logger.info(
                    "Do not register external openid auth because discover "
                    "URL is not set."
                )
                return
            if not settings.client_id:
                logger.info(
                    "Do not register external openid auth because client ID "
                    "is not set."
                )
                return

            try:
                metadata = await run_in_threadpool(
                    IssuerMetadata.discover, settings.discover_url
                )
            except ConfigError as e:
                logger.error(f"Cannot discover openid issuer: {e}")
                return
            logger.debug(f"Discovered issuer {metadata.issuer}.")

            client = OIDCClient(
                OIDCConfig(
                    client_id=settings.client_id,
                    client_secret=settings.client_secret,
                    redirect_uri=self.redirect_uri,
                ),
                metadata,
            )
            initiator = AuthInitiator(
                client, self.crypto_box, self.cookie_config
            )
            acceptor = self.registry.register(
                AuthMethod(
                    auth_name=AUTH_NAME,
                    display_name=AUTH_DISPLAY_NAME,
                    on_auth_request=initiator.on_auth_request,
                )
            )
            self._context = BridgeContext(
                settings=settings,
                client=client,
                acceptor=acceptor,
                auth_name=AUTH_NAME,
            )
            logger.info(
                f"Registered external openid auth for client "
                f"{settings.client_id} "
                f"({client.config.token_endpoint_auth_method})."
            )

    async def shutdown(self) -> None:
        async with self._lock:
            self._unregister_current()
            self._context = BridgeContext(settings=self._context.settings)

    def _unregister_current(self) -> None:
        if self._context.is_registered:
            self.registry.unregister(self._context.auth_name)
