"""
Application errors for clean API error handling.

Every stage raises one of these; the orchestrator turns them into an error-kind
chat response and the API layer maps ``status_code`` to the HTTP status.
"""


class AppError(Exception):
    """Base error with a user-facing message and the stage that raised it."""

    status_code: int = 500
    kind: str = "internal_error"

    def __init__(self, message: str, stage: str | None = None) -> None:
        self.message = message
        self.stage = stage
        super().__init__(message)


class ValidationError(AppError):
    """Raised when the inbound message is unusable (e.g. empty)."""

    status_code = 400
    kind = "validation_error"


class ThrottleError(AppError):
    """Raised when admission control denies a request. Flow control, not a failure."""

    status_code = 429
    kind = "throttled"


class UpstreamTimeout(AppError):
    """Raised when an agent or query call exceeds its deadline."""

    status_code = 504
    kind = "upstream_timeout"


class UpstreamError(AppError):
    """Raised on transport or stream failure from the agent or query service."""

    status_code = 502
    kind = "upstream_error"


class NotFound(AppError):
    """Raised for unknown sessions, bundles, or chart files."""

    status_code = 404
    kind = "not_found"


class PathSecurityViolation(AppError):
    """Raised when a chart filename would resolve outside the chart directory."""

    status_code = 403
    kind = "forbidden"


class InternalError(AppError):
    """Anything else."""
