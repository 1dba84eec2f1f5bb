from fastapi_oidc_bridge.auth.auth_interface import AuthMethod  # noqa
from fastapi_oidc_bridge.auth.auth_interface import AuthMethodRegistry  # noqa
from fastapi_oidc_bridge.auth.auth_interface import SettingsStore  # noqa
from fastapi_oidc_bridge.auth.auth_oidc import OIDCClient  # noqa
from fastapi_oidc_bridge.auth.auth_oidc import OIDCConfig  # noqa
from fastapi_oidc_bridge.auth.crypto import CryptoBox  # noqa
