from typing import Any
from typing import List
from typing import Optional
from typing import Union

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationInfo
from pydantic import field_validator

CODE_VERIFIER_COOKIE_NAME = "plugin-auth-openid-code-verifier"


class SettingDefinition(BaseModel):
    """Describes one administrator setting to the host settings store"""

    model_config = ConfigDict(frozen=True)

    name: str
    label: str
    type: str = "input"
    private: bool = True
    default: Optional[str] = None


BRIDGE_SETTINGS: List[SettingDefinition] = [
    SettingDefinition(name="discover-url", label="Discover URL"),
    SettingDefinition(name="client-id", label="Client ID"),
    SettingDefinition(name="client-secret", label="Client secret"),
    SettingDefinition(
        name="username-property",
        label="Username property",
        default="preferred_username",
    ),
    SettingDefinition(
        name="mail-property", label="Email property", default="email"
    ),
    SettingDefinition(
        name="display-name-property", label="Display name property"
    ),
    SettingDefinition(name="role-property", label="Role property"),
]


class BridgeSettings(BaseModel):
    """Administrator settings, read from the raw settings store values"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    discover_url: Optional[str] = Field(default=None, alias="discover-url")
    client_id: Optional[str] = Field(default=None, alias="client-id")
    client_secret: Optional[str] = Field(
        default=None, alias="client-secret", repr=False
    )
    username_property: str = Field(
        default="preferred_username", alias="username-property"
    )
    mail_property: str = Field(default="email", alias="mail-property")
    display_name_property: Optional[str] = Field(
        default=None, alias="display-name-property"
    )
    role_property: Optional[str] = Field(default=None, alias="role-property")

    @field_validator(
        "discover_url",
        "client_id",
        "client_secret",
        "display_name_property",
        "role_property",
        mode="before",
    )
    @classmethod
    def empty_as_unset(cls, value: Any) -> Any:
        return value or None

    @field_validator("username_property", "mail_property", mode="before")
    @classmethod
    def blank_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        if not value:
            return cls.model_fields[info.field_name].default
        return value


class TransportCookieConfig(BaseModel):
    """Configuration of the cookie carrying the encrypted code verifier"""

    model_config = ConfigDict(frozen=True)

    cookie_name: str = CODE_VERIFIER_COOKIE_NAME
    cookie_path: str = "/"
    cookie_secure: bool = True
    cookie_httponly: bool = True
    # the IdP answers with a cross-site form POST
    cookie_samesite: str = "none"
    max_age: int = 60 * 10


class NormalizedIdentity(BaseModel):
    """User attributes handed over to the host after a successful callback.

    `role` is NaN when a role property is configured but the claim is missing
    or not numeric.
    `email` and `display_name` carry the claim values as the provider sent
    them.
    """

    model_config = ConfigDict(frozen=True)

    username: str
    email: Optional[Any] = Field(default=None)
    display_name: Optional[Any] = Field(default=None)
    role: Optional[Union[int, float]] = Field(default=None)
