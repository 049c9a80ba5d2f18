"""
Application errors for clean API error handling.

Every error carries the HTTP status and the user-facing message the API layer
returns as {"message": ...}. Upstream 5xx bodies never reach these messages.
"""


class SiteplaneError(Exception):
    """Base error with a user-facing message and HTTP status."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ConfigurationMissingError(SiteplaneError):
    """Raised when a required endpoint or credential is not configured (feature disabled)."""

    def __init__(self, message: str = "Control plane not configured") -> None:
        super().__init__(message, 500)


class NotFoundError(SiteplaneError):
    """Raised when a referenced site or job does not exist."""

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message, 404)


class InvalidInputError(SiteplaneError):
    """Raised for bad caller input, before any network call."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 400)


class UpstreamClientError(SiteplaneError):
    """A 4xx from the control plane, passed through with the upstream's message."""


class UpstreamUnavailableError(SiteplaneError):
    """Network failure, timeout or 5xx upstream. Carries only a generic message."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 502)


class TenantAccessDeniedError(SiteplaneError):
    """Raised when the tenant is missing, inactive or requires billing."""

    def __init__(self, message: str, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(message, 403)
