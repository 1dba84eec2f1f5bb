import asyncio
import logging
from typing import Optional

from fastapi import APIRouter
from fastapi import FastAPI

from fastapi_oidc_bridge.auth.auth_interface import AuthMethodRegistry
from fastapi_oidc_bridge.auth.auth_interface import SettingsStore
from fastapi_oidc_bridge.auth.crypto import CryptoBox
from fastapi_oidc_bridge.auth.crypto import RandomSource
from fastapi_oidc_bridge.bridge.callback_handler import CallbackHandler
from fastapi_oidc_bridge.bridge.config_manager import ConfigManager
from fastapi_oidc_bridge.models import BRIDGE_SETTINGS
from fastapi_oidc_bridge.models import BridgeSettings
from fastapi_oidc_bridge.models import TransportCookieConfig

logger = logging.getLogger(__name__)

ROUTER_PREFIX = "/plugins/auth-openid-connect/router"
CALLBACK_PATH = "/id-token-cb"


class OIDCBridge:
    """Entry point wiring the OIDC bridge into a host application.

    The secret key is generated when the bridge is built, before any route
    can be served.
    """

    def __init__(
        self,
        webserver_url: str,
        registry: AuthMethodRegistry,
        settings_store: SettingsStore,
        random_source: Optional[RandomSource] = None,
        router_prefix: str = ROUTER_PREFIX,
    ) -> None:
        self.settings_store = settings_store
        self.crypto_box = CryptoBox.generate(random_source)
        self.redirect_uri = (
            webserver_url.rstrip("/") + router_prefix + CALLBACK_PATH
        )
        self.cookie_config = TransportCookieConfig(
            cookie_secure=webserver_url.startswith("https://")
        )
        self.config_manager = ConfigManager(
            registry, self.crypto_box, self.redirect_uri, self.cookie_config
        )
        self.callback_handler = CallbackHandler(
            self.config_manager.get_context,
            self.crypto_box,
            self.cookie_config,
        )
        self.router = APIRouter(prefix=router_prefix)
        self.router.add_api_route(
            CALLBACK_PATH,
            self.callback_handler.handle_callback,
            methods=["GET", "POST"],
            include_in_schema=False,
        )
        self._pending = set()

    async def register(self, app: Optional[FastAPI] = None) -> None:
        for definition in BRIDGE_SETTINGS:
            self.settings_store.register_setting(definition)
        if app is not None:
            app.include_router(self.router)

        await self.load_settings_and_reconfigure()
        self.settings_store.on_settings_change(self.on_settings_change)

    async def unregister(self) -> None:
        await self.config_manager.shutdown()

    async def load_settings_and_reconfigure(self) -> None:
        raw_settings = await self.settings_store.get_settings()
        settings = BridgeSettings.model_validate(dict(raw_settings))
        await self.config_manager.reconfigure(settings)

    def on_settings_change(self) -> "asyncio.Task":
        task = asyncio.ensure_future(self.load_settings_and_reconfigure())
        self._pending.add(task)
        task.add_done_callback(self._on_reconfigure_done)
        return task

    def _on_reconfigure_done(self, task: "asyncio.Task") -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        if task.exception() is not None:
            logger.error(
                "Cannot load settings and create client after settings "
                "changes.",
                exc_info=task.exception(),
            )
