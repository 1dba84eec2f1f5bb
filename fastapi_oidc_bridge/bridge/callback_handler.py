import asyncio
import logging
import re
from typing import Any
from typing import Callable
from typing import Dict
from typing import Union

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import Response

from fastapi_oidc_bridge.auth.crypto import CryptoBox
from fastapi_oidc_bridge.auth.exceptions import AuthenticationException
from fastapi_oidc_bridge.auth.exceptions import CallbackValidationError
from fastapi_oidc_bridge.auth.exceptions import CryptoError
from fastapi_oidc_bridge.bridge.auth_initiator import get_error_response
from fastapi_oidc_bridge.bridge.context import BridgeContext
from fastapi_oidc_bridge.models import BridgeSettings
from fastapi_oidc_bridge.models import NormalizedIdentity
from fastapi_oidc_bridge.models import TransportCookieConfig

logger = logging.getLogger(__name__)

CODE_VERIFIER_PATTERN = re.compile(r"^[A-Za-z0-9\-._~]{43,128}$")
USERNAME_FORBIDDEN_CHARS = re.compile(r"[^a-z0-9._]")
LEADING_INTEGER = re.compile(r"^\s*([+-]?[0-9]+)")


def sanitize_username(username: str) -> str:
    """Replace every character outside [a-z0-9._] with an underscore."""
    return USERNAME_FORBIDDEN_CHARS.sub("_", username)


def parse_role(value: Any) -> Union[int, float]:
    """Read the leading base 10 integer of the claim, NaN if there is none."""
    if isinstance(value, bool) or value is None:
        return float("nan")
    match = LEADING_INTEGER.match(str(value))
    if not match:
        return float("nan")
    return int(match.group(1))


def map_identity(
    user_info: Dict[str, Any], settings: BridgeSettings
) -> NormalizedIdentity:
    role = None
    if settings.role_property:
        role = parse_role(user_info.get(settings.role_property))

    display_name = None
    if settings.display_name_property:
        display_name = user_info.get(settings.display_name_property)

    username = user_info.get(settings.username_property) or ""
    return NormalizedIdentity(
        username=sanitize_username(str(username)),
        email=user_info.get(settings.mail_property),
        display_name=display_name,
        role=role,
    )


class CallbackHandler:
    def __init__(
        self,
        get_context: Callable[[], BridgeContext],
        crypto_box: CryptoBox,
        cookie_config: TransportCookieConfig,
    ) -> None:
        self.get_context = get_context
        self.crypto_box = crypto_box
        self.cookie_config = cookie_config

    async def handle_callback(self, request: Request) -> Response:
        # one snapshot for the whole callback
        context = self.get_context()
        try:
            response = await self.authenticate(request, context)
        except AuthenticationException as e:
            logger.error(f"Error in handle callback: {e}")
            response = get_error_response()
        except Exception:
            logger.exception("Unexpected error in handle callback.")
            response = get_error_response()

        response.delete_cookie(
            key=self.cookie_config.cookie_name,
            path=self.cookie_config.cookie_path,
            secure=self.cookie_config.cookie_secure,
            httponly=self.cookie_config.cookie_httponly,
            samesite=self.cookie_config.cookie_samesite,
        )
        return response

    async def authenticate(
        self, request: Request, context: BridgeContext
    ) -> Response:
        if context.acceptor is None or context.client is None:
            raise CallbackValidationError(
                "Received callback but no identity acceptor is registered."
            )

        encrypted_code_verifier = request.cookies.get(
            self.cookie_config.cookie_name
        )
        if not encrypted_code_verifier:
            raise CallbackValidationError(
                "Received callback but code verifier cookie is missing."
            )

        code_verifier = self.decrypt_code_verifier(encrypted_code_verifier)

        client = context.client
        params = await client.callback_params(request)
        token_set = await run_in_threadpool(
            client.callback, params, code_verifier
        )
        user_info = await run_in_threadpool(
            client.userinfo,
            token_set["access_token"],
            token_set.get("id_token_claims"),
        )
        logger.debug(
            f"Got userinfo claims {sorted(user_info)} from openid auth."
        )

        identity = map_identity(user_info, context.settings)
        response = context.acceptor(request=request, identity=identity)
        if asyncio.iscoroutine(response):
            response = await response
        if not isinstance(response, Response):
            raise CallbackValidationError(
                "Identity acceptor did not return a response."
            )
        return response

    def decrypt_code_verifier(self, encrypted_code_verifier: str) -> str:
        code_verifier = self.crypto_box.decrypt(encrypted_code_verifier)
        if not CODE_VERIFIER_PATTERN.match(code_verifier):
            raise CryptoError("Decrypted code verifier is malformed.")
        return code_verifier

