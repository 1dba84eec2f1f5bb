import logging
from typing import Optional

from starlette.requests import Request
from starlette.responses import RedirectResponse
from starlette.responses import Response

from fastapi_oidc_bridge.auth.auth_oidc import OIDCClient
from fastapi_oidc_bridge.auth.auth_oidc import generate_pkce_pair
from fastapi_oidc_bridge.auth.crypto import CryptoBox
from fastapi_oidc_bridge.auth.crypto import RandomSource
from fastapi_oidc_bridge.auth.exceptions import AuthRequestError
from fastapi_oidc_bridge.models import TransportCookieConfig

logger = logging.getLogger(__name__)

EXTERNAL_AUTH_ERROR_URL = "/login?externalAuthError=true"


def get_error_response() -> RedirectResponse:
    return RedirectResponse(url=EXTERNAL_AUTH_ERROR_URL, status_code=303)


class AuthInitiator:
    """Sends the user agent to the identity provider.

    An initiator is bound to the client it was created with, so a request
    never mixes two configurations.
    """

    def __init__(
        self,
        client: OIDCClient,
        crypto_box: CryptoBox,
        cookie_config: TransportCookieConfig,
        random_source: Optional[RandomSource] = None,
    ) -> None:
        self.client = client
        self.crypto_box = crypto_box
        self.cookie_config = cookie_config
        self.random_source = random_source or crypto_box.random_source

    async def on_auth_request(self, request: Request) -> Response:
        try:
            return self.build_redirect()
        except AuthRequestError as e:
            logger.error(f"Cannot handle auth request: {e}")
            return get_error_response()

    def build_redirect(self) -> RedirectResponse:
        try:
            code_verifier, code_challenge = generate_pkce_pair(
                self.random_source
            )
            redirect_url = self.client.authorization_url(code_challenge)
            encrypted_code_verifier = self.crypto_box.encrypt(code_verifier)

            response = RedirectResponse(url=redirect_url, status_code=303)
            response.set_cookie(
                key=self.cookie_config.cookie_name,
                value=encrypted_code_verifier,
                max_age=self.cookie_config.max_age,
                path=self.cookie_config.cookie_path,
                secure=self.cookie_config.cookie_secure,
                httponly=self.cookie_config.cookie_httponly,
                samesite=self.cookie_config.cookie_samesite,
            )
            return response
        except Exception as e:
            logger.exception("Cannot build authorization redirect.")
            raise AuthRequestError(
                "Cannot build authorization redirect."
            ) from e
