from typing import Any


class LifecycleError(Exception):
    """Base class for caller-visible outcomes of an application action."""

    status_code = 400
    kind = "lifecycle_error"

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "error": self.kind, **self.extra}


class NotFound(LifecycleError):
    status_code = 404
    kind = "not_found"


class Forbidden(LifecycleError):
    status_code = 403
    kind = "forbidden"


class InvalidState(LifecycleError):
    status_code = 409
    kind = "invalid_state"


class Conflict(LifecycleError):
    status_code = 409
    kind = "conflict"


class GigUnavailable(LifecycleError):
    """The gig can no longer take part in a transition (inactive or expired)."""

    status_code = 400
    kind = "gig_unavailable"

    def __init__(self, message: str, *, reason: str, **extra: Any) -> None:
        super().__init__(message, reason=reason, **extra)
        self.reason = reason


class StoreUnavailable(LifecycleError):
    """Transient storage failure. Safe for the caller to retry."""

    status_code = 503
    kind = "store_unavailable"
