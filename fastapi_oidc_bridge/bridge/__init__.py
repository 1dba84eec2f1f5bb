from fastapi_oidc_bridge.bridge.bridge_plugin import OIDCBridge  # noqa
from fastapi_oidc_bridge.bridge.config_manager import ConfigManager  # noqa
