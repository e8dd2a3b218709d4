"""Error taxonomy shared by the control API and the monitoring engine."""


class CitewatchError(Exception):
    """Base error carrying the HTTP status and machine-readable code."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(CitewatchError):
    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class AuthenticationError(CitewatchError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class PermissionDeniedError(CitewatchError):
    status_code = 403
    code = "PERMISSION_DENIED"


class NotFoundError(CitewatchError):
    status_code = 404
    code = "NOT_FOUND"


class RateLimitError(CitewatchError):
    """Local admission-control rejection."""

    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, message: str = "Rate limit exceeded") -> None:
        super().__init__(message)


class ConfigurationError(CitewatchError):
    """Missing or insecure external credentials."""

    status_code = 500
    code = "CONFIGURATION_ERROR"


class ProviderError(CitewatchError):
    """The answer-engine provider failed or returned a non-2xx response."""

    status_code = 502
    code = "PROVIDER_ERROR"

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RetryDeadlineExceeded(ProviderError):
    """The cumulative retry budget ran out before an attempt succeeded."""


class PersistenceError(CitewatchError):
    status_code = 500
    code = "PERSISTENCE_ERROR"
