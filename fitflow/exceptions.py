"""Error taxonomy shared by services and mapped to HTTP responses in app.py."""


class FitFlowError(Exception):
    """Base class for errors the API reports to callers with a specific message."""

    status_code = 500
    code = "error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationFailedError(FitFlowError):
    """Bad input shape or range. Never retried."""

    status_code = 400
    code = "validation_failed"

    def __init__(self, message: str, *, errors: list[str] | None = None, code: str | None = None) -> None:
        super().__init__(message, code=code)
        self.errors = errors or []


class NotFoundError(FitFlowError):
    status_code = 404
    code = "not_found"


class StateConflictError(FitFlowError):
    """Action not valid in the record's current lifecycle state."""

    status_code = 409
    code = "state_conflict"


class RateLimitedError(FitFlowError):
    status_code = 429
    code = "rate_limited"


# --- Subscriptions ---


class SubscriptionNotFoundError(NotFoundError):
    code = "subscription_not_found"


class SubscriptionStateError(StateConflictError):
    code = "invalid_subscription_state"


# --- Delivery cycles ---


class CycleNotFoundError(NotFoundError):
    code = "cycle_not_found"


class CycleStateError(StateConflictError):
    code = "invalid_cycle_state"


# --- Preorders ---


class PreorderNotFoundError(NotFoundError):
    code = "invalid_link"


class PreorderAlreadyConvertedError(StateConflictError):
    code = "already_converted"


class PreorderExpiredError(StateConflictError):
    code = "link_expired"
