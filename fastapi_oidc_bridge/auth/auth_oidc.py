import json
import logging
from dataclasses import dataclass
from dataclasses import field
from json.decoder import JSONDecodeError
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple
from typing import Type
from urllib.parse import urlencode

import jwt
import requests
from authlib.common.encoding import to_unicode
from authlib.common.encoding import urlsafe_b64encode
from authlib.oauth2.rfc7636 import create_s256_code_challenge
from jwt.exceptions import DecodeError
from jwt.exceptions import InvalidTokenError
from starlette.requests import Request

from fastapi_oidc_bridge.auth.crypto import RandomSource
from fastapi_oidc_bridge.auth.exceptions import ConfigError
from fastapi_oidc_bridge.auth.exceptions import OIDCException
from fastapi_oidc_bridge.auth.exceptions import TokenExchangeError
from fastapi_oidc_bridge.auth.exceptions import UserInfoError

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = "/.well-known/openid-configuration"
PKCE_CODE_VERIFIER_BYTES = 32
REQUEST_TIMEOUT = 5


def generate_pkce_pair(
    random_source: Optional[RandomSource] = None,
) -> Tuple[str, str]:
    """Generate a new PKCE code_verifier and code_challenge pair."""
    random_source = random_source or RandomSource()
    code_verifier = to_unicode(
        urlsafe_b64encode(
            random_source.get_random_bytes(PKCE_CODE_VERIFIER_BYTES)
        )
    )
    code_challenge = create_s256_code_challenge(code_verifier)
    return code_verifier, code_challenge


def to_dict_or_raise(
    response: requests.Response,
    error_cls: Type[OIDCException] = OIDCException,
) -> Dict:
    if response.status_code != 200:
        logger.error(f"Returned with status {response.status_code}.")
        raise error_cls(
            f"Status code {response.status_code} for {response.url}."
        )
    try:
        data = response.json()
    except JSONDecodeError:
        logger.error("Unable to decode json.")
        raise error_cls("Was not able to retrieve data from the response.")
    if not isinstance(data, dict):
        logger.error("Response body is not a json object.")
        raise error_cls("Response body is not a json object.")
    return data


@dataclass(frozen=True)
class IssuerMetadata:
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: Optional[str] = None
    jwks_uri: Optional[str] = None

    @staticmethod
    def well_known_url(discover_url: str) -> str:
        if "/.well-known" in discover_url:
            return discover_url
        return discover_url.rstrip("/") + WELL_KNOWN_PATH

    @classmethod
    def discover(
        cls, discover_url: str, timeout: int = REQUEST_TIMEOUT
    ) -> "IssuerMetadata":
        try:
            response = requests.get(
                cls.well_known_url(discover_url), timeout=timeout
            )
        except requests.RequestException as e:
            logger.error(f"Issuer discovery against {discover_url} failed.")
            raise ConfigError(f"Cannot reach {discover_url}.") from e
        endpoints = to_dict_or_raise(response, ConfigError)

        missing = [
            key
            for key in ("issuer", "authorization_endpoint", "token_endpoint")
            if not endpoints.get(key)
        ]
        if missing:
            raise ConfigError(
                f"Discovery document lacks {', '.join(missing)}."
            )
        return cls(
            issuer=endpoints["issuer"],
            authorization_endpoint=endpoints["authorization_endpoint"],
            token_endpoint=endpoints["token_endpoint"],
            userinfo_endpoint=endpoints.get("userinfo_endpoint"),
            jwks_uri=endpoints.get("jwks_uri"),
        )


@dataclass
class OIDCConfig:
    """
    Configuration of the OIDC client bound to one identity provider.

        PARAMETERS
        ----------
        client_id: str
            The OIDC client id, passed with the redirect to the OIDC provider
        redirect_uri: str
            The callback URL registered with the OIDC provider
        client_secret: str, default=None
            Sent in the token request body for confidential clients. Without
            it the client is public and relies on PKCE alone.
        scope: str, default="openid email profile"
            Space separated list of scopes to request from the OIDC provider
        response_mode: str, default="form_post"
            How the provider delivers the authorization response
        code_challenge_method: str, default="S256"
            Hashing method for the PKCE transformation
        response_type: str, default="code"
            Authorization code response type
        grant_type: str, default="authorization_code"
            Grant type for the OIDC flow
        timeout: int, default=5
            Timeout in seconds of every request to the provider
    """

    client_id: str
    redirect_uri: str
    client_secret: Optional[str] = field(default=None, repr=False)
    scope: str = field(default="openid email profile")
    response_mode: str = field(default="form_post")
    code_challenge_method: str = field(default="S256")
    response_type: str = field(default="code")
    grant_type: str = field(default="authorization_code")
    timeout: int = field(default=REQUEST_TIMEOUT)

    @property
    def token_endpoint_auth_method(self) -> str:
        return "client_secret_post" if self.client_secret else "none"


class OIDCClient:
    def __init__(self, config: OIDCConfig, metadata: IssuerMetadata) -> None:
        self.config = config
        self.metadata = metadata

    def authorization_url(self, code_challenge: str) -> str:
        params = {
            "client_id": self.config.client_id,
            "response_type": self.config.response_type,
            "redirect_uri": self.config.redirect_uri,
            "scope": self.config.scope,
            "response_mode": self.config.response_mode,
            "code_challenge": code_challenge,
            "code_challenge_method": self.config.code_challenge_method,
        }
        separator = "&" if "?" in self.metadata.authorization_endpoint else "?"
        return (
            f"{self.metadata.authorization_endpoint}{separator}"
            f"{urlencode(params)}"
        )

    @staticmethod
    async def callback_params(request: Request) -> Dict[str, str]:
        if request.method == "POST":
            form = await request.form()
            return {key: value for key, value in form.items()}
        return dict(request.query_params)

    def callback(self, params: Dict[str, str], code_verifier: str) -> Dict:
        """
        Exchange the authorization code of a callback for a token set.

        Args:
            params: Parameters of the authorization response
            code_verifier: The PKCE code_verifier of this auth flow

        Returns the token response with the validated ID token claims under
        `id_token_claims`.
        """
        if params.get("error"):
            description = params.get("error_description", "")
            raise TokenExchangeError(
                f"Provider returned {params['error']} {description}".strip()
            )
        if params.get("iss") and params["iss"] != self.metadata.issuer:
            raise TokenExchangeError("Issuer mismatch in callback.")
        code = params.get("code")
        if not code:
            raise TokenExchangeError("Authorization code missing.")

        token_set = self.get_auth_token(code, code_verifier)
        if not token_set.get("access_token"):
            raise TokenExchangeError("access_token not present in token set.")
        id_token = token_set.get("id_token")
        if not id_token:
            raise TokenExchangeError("id_token not present in token set.")

        try:
            alg = jwt.get_unverified_header(id_token).get("alg")
        except DecodeError:
            logger.warning("Error getting unverified header in jwt.")
            raise TokenExchangeError("Malformed id_token.")
        token_set["id_token_claims"] = self.obtain_validated_token(
            alg, id_token
        )
        return token_set

    def get_auth_token(self, code: str, code_verifier: str) -> Dict:
        data = {
            "grant_type": self.config.grant_type,
            "code": code,
            "redirect_uri": self.config.redirect_uri,
            "code_verifier": code_verifier,
            "client_id": self.config.client_id,
        }
        if self.config.token_endpoint_auth_method == "client_secret_post":
            data["client_secret"] = self.config.client_secret

        try:
            response = requests.post(
                self.metadata.token_endpoint,
                data=data,
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            raise TokenExchangeError("Token endpoint unreachable.") from e
        return to_dict_or_raise(response, TokenExchangeError)

    def obtain_validated_token(self, alg: str, id_token: str) -> Dict:
        if alg == "HS256":
            if not self.config.client_secret:
                raise TokenExchangeError(
                    "HS256 id_token received by a public client."
                )
            key = self.config.client_secret
        elif alg == "RS256":
            if not self.metadata.jwks_uri:
                logger.error("JWKS endpoint not provided but RS256 used.")
                raise TokenExchangeError(
                    "JWKS endpoint not provided but RS256 used."
                )
            try:
                response = requests.get(
                    self.metadata.jwks_uri, timeout=self.config.timeout
                )
            except requests.RequestException as e:
                raise TokenExchangeError("JWKS endpoint unreachable.") from e
            web_key_sets = to_dict_or_raise(response, TokenExchangeError)
            keys = web_key_sets.get("keys", [])
            key = self.extract_token_key(keys, id_token)
            if key is None:
                raise TokenExchangeError("No matching key for id_token.")
        else:
            raise TokenExchangeError("Unsupported jwt algorithm found.")

        try:
            return jwt.decode(
                id_token,
                key=key,
                algorithms=[alg],
                audience=self.config.client_id,
                issuer=self.metadata.issuer,
            )
        except InvalidTokenError:
            logger.error("An error occurred while decoding the id_token")
            raise TokenExchangeError(
                "An error occurred while decoding the id_token"
            )

    @staticmethod
    def extract_token_key(jwks: List[Dict], id_token: str):
        public_keys = {}
        for jwk in jwks:
            kid = jwk.get("kid")
            if not kid:
                continue
            public_keys[kid] = jwt.algorithms.RSAAlgorithm.from_jwk(
                json.dumps(jwk)
            )
        try:
            kid = jwt.get_unverified_header(id_token).get("kid")
        except DecodeError:
            logger.warning("kid could not be extracted.")
            raise TokenExchangeError("kid could not be extracted.")
        return public_keys.get(kid)

    def userinfo(
        self, access_token: str, id_token_claims: Optional[Dict] = None
    ) -> Dict:
        if not self.metadata.userinfo_endpoint:
            raise UserInfoError("Userinfo endpoint not provided")
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            response = requests.get(
                self.metadata.userinfo_endpoint,
                headers=headers,
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            raise UserInfoError("Userinfo endpoint unreachable.") from e
        user_info = to_dict_or_raise(response, UserInfoError)
        if id_token_claims is not None:
            self.validate_sub_matching(id_token_claims, user_info)
        return user_info

    @staticmethod
    def validate_sub_matching(token: Dict, user_info: Dict) -> None:
        token_sub = ""  # nosec
        if token:
            token_sub = token.get("sub")
        if token_sub != user_info.get("sub") or not token_sub:
            logger.warning("Subject mismatch error.")
            raise UserInfoError("Subject mismatch error.")
