"""Error types raised by the revoke-sessions action.

Every error carries an optional HTTP status code so the job framework can
record it. Messages never include credential values.
"""


class ActionError(Exception):
    """Base exception for all action errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def statusCode(self) -> int | None:  # noqa: N802 - framework field name
        return self.status_code

    def to_dict(self) -> dict:
        """Serialise for the job framework's error record."""
        return {
            'error': type(self).__name__,
            'message': self.message,
            'statusCode': self.status_code,
        }


class ConfigurationError(ActionError):
    """Missing or invalid configuration or credentials. Never retried."""


class ValidationError(ActionError):
    """Malformed job parameters. Never retried."""


class TokenExchangeError(ActionError):
    """OAuth2 client-credentials token request failed."""

    def __init__(self, message: str, status_code: int | None = None, body: str = '') -> None:
        self.body = body
        super().__init__(message, status_code=status_code)


class HttpError(ActionError):
    """The revocation call returned a non-2xx response."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message, status_code=status_code)


class RecoveryError(ActionError):
    """Terminal failure after the recovery policy gave up."""

    def __init__(self, message: str, status_code: int | None = None, user_id: str = '') -> None:
        self.user_id = user_id
        super().__init__(message, status_code=status_code)
