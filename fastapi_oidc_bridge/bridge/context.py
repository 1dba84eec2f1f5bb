from dataclasses import dataclass
from dataclasses import field
from typing import Optional

from fastapi_oidc_bridge.auth.auth_interface import IdentityAcceptor
from fastapi_oidc_bridge.auth.auth_oidc import OIDCClient
from fastapi_oidc_bridge.models import BridgeSettings


@dataclass(frozen=True)
class BridgeContext:
    """Immutable snapshot of one configuration.

    Readers fetch the current snapshot once and use it for the whole
    request; reconfiguration replaces it as a whole.
    """

    settings: BridgeSettings = field(default_factory=BridgeSettings)
    client: Optional[OIDCClient] = None
    acceptor: Optional[IdentityAcceptor] = None
    auth_name: Optional[str] = None

    @property
    def is_registered(self) -> bool:
        return self.auth_name is not None
