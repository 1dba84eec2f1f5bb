from fastapi_oidc_bridge.bridge.bridge_plugin import OIDCBridge  # noqa
from fastapi_oidc_bridge.models import BridgeSettings  # noqa
from fastapi_oidc_bridge.models import NormalizedIdentity  # noqa
