from typing import Any, Dict, Optional


class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class IneligibleDateError(AppException):
    def __init__(
        self,
        date_key: str,
        too_early: bool = False,
        too_late: bool = False,
        window_start: Optional[str] = None,
        window_end: Optional[str] = None
    ):
        if too_early:
            message = f"{date_key} is too soon to request. The earliest requestable date is {window_start}."
        elif too_late:
            message = f"{date_key} is too far out to request. The latest requestable date is {window_end}."
        else:
            message = f"{date_key} cannot be requested."
        super().__init__(
            message=message,
            status_code=400,
            error_code="INELIGIBLE_DATE",
            details={
                "date": date_key,
                "too_early": too_early,
                "too_late": too_late,
                "window_start": window_start,
                "window_end": window_end,
            }
        )


class DuplicateRequestError(AppException):
    def __init__(self, date_key: str):
        super().__init__(
            message=f"You already have an active request for {date_key}.",
            status_code=409,
            error_code="DUPLICATE_REQUEST",
            details={"date": date_key}
        )


class NoEntitlementError(AppException):
    def __init__(self, leave_type: str):
        super().__init__(
            message=f"You have no {leave_type} days remaining.",
            status_code=400,
            error_code="NO_ENTITLEMENT",
            details={"leave_type": leave_type}
        )


class SlotFullError(AppException):
    def __init__(self, date_key: str):
        super().__init__(
            message=f"All slots for {date_key} are already taken.",
            status_code=409,
            error_code="SLOT_FULL",
            details={"date": date_key}
        )


class UnauthorizedError(AppException):
    def __init__(self, message: str = "You can only act on your own requests."):
        super().__init__(
            message=message,
            status_code=403,
            error_code="UNAUTHORIZED"
        )


class NotCancellableError(AppException):
    def __init__(self, status: str):
        super().__init__(
            message=f"A request with status '{status}' cannot be cancelled.",
            status_code=409,
            error_code="NOT_CANCELLABLE",
            details={"status": status}
        )


class NotFoundError(AppException):
    def __init__(self, entity: str = "Request", entity_id: Any = None):
        message = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND"
        )


class BackingStoreUnavailableError(AppException):
    def __init__(self, message: str = "The scheduling database is temporarily unavailable. Please try again."):
        super().__init__(
            message=message,
            status_code=503,
            error_code="BACKING_STORE_UNAVAILABLE"
        )


class InvalidTransitionError(AppException):
    def __init__(self, action: str, status: str):
        super().__init__(
            message=f"Cannot {action} a request with status '{status}'.",
            status_code=409,
            error_code="INVALID_TRANSITION",
            details={"action": action, "status": status}
        )


class ValidationFailedError(AppException):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details={"field": field} if field else None
        )


class ActionInProgressError(AppException):
    def __init__(self, request_id: Any):
        super().__init__(
            message=f"Another action on request {request_id} is still in progress.",
            status_code=409,
            error_code="ACTION_IN_PROGRESS"
        )


class AuthenticationError(AppException):
    def __init__(self, message: str = "Could not identify the current member"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_FAILED"
        )


class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED"
        )
