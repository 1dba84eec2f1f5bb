class AuthenticationException(Exception):
    """This is being raised for exceptions within the auth flow."""

    pass


class OIDCException(AuthenticationException):
    """OIDC authentication flow exception."""

    pass


class ConfigError(OIDCException):
    """Settings incomplete or issuer discovery failed."""

    pass


class AuthRequestError(OIDCException):
    """Building the authorization redirect failed."""

    pass


class CallbackValidationError(OIDCException):
    """Callback arrived without an acceptor or transport cookie."""

    pass


class CryptoError(OIDCException):
    """The transport cookie could not be decrypted."""

    pass


class TokenExchangeError(OIDCException):
    """Authorization code could not be exchanged for valid tokens."""

    pass


class UserInfoError(OIDCException):
    """Userinfo endpoint failed or returned unusable data."""

    pass
