from abc import ABC
from abc import abstractmethod
from dataclasses import dataclass
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import Mapping
from typing import Union

from starlette.requests import Request
from starlette.responses import Response

from fastapi_oidc_bridge.models import SettingDefinition

# Called by the bridge as acceptor(request=..., identity=...) once the IdP
# callback is validated. The host returns the response to send back.
IdentityAcceptor = Callable[..., Union[Response, Awaitable[Response]]]


@dataclass(frozen=True)
class AuthMethod:
    auth_name: str
    display_name: str
    on_auth_request: Callable[[Request], Awaitable[Response]]


class AuthMethodRegistry(ABC):
    """The host side of the external auth contract. The bridge registers one
    auth method at a time and receives the function used to hand over an
    authenticated identity.
    """

    @abstractmethod
    def register(self, auth_method: AuthMethod) -> IdentityAcceptor:
        pass

    @abstractmethod
    def unregister(self, auth_name: str) -> None:
        pass


class SettingsStore(ABC):
    """Persistence of the administrator settings, owned by the host."""

    @abstractmethod
    def register_setting(self, definition: SettingDefinition) -> None:
        pass

    @abstractmethod
    async def get_settings(self) -> Mapping[str, Any]:
        """Return the raw values keyed by setting name, e.g. `discover-url`."""
        pass

    @abstractmethod
    def on_settings_change(self, callback: Callable[[], None]) -> None:
        pass
