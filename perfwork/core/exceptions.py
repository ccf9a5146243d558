from typing import Any, Dict, Optional

class AppException(Exception):
    retryable: bool = False

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

class NotFoundError(AppException):
    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            message=f"{entity} {entity_id} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details={"entity": entity, "id": entity_id}
        )

class AuthenticationError(AppException):
    def __init__(self, message: str = "Could not resolve the calling principal"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_FAILED"
        )

class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED",
            details=details
        )

class InvalidTransitionError(AppException):
    """Action is not legal from the record's current status."""
    def __init__(self, current_status: str, action: str, role: Optional[str] = None):
        self.current_status = current_status
        self.action = action
        message = f"Action '{action}' is not allowed while status is '{current_status}'"
        if role:
            message += f" (role: {role})"
        super().__init__(
            message=message,
            status_code=409,
            error_code="INVALID_TRANSITION",
            details={"current_status": current_status, "action": action, "role": role}
        )

class WriteConflictError(AppException):
    """Another writer updated the record first. Re-fetch and re-apply."""
    retryable = True

    def __init__(self, entity: str, entity_id: Any, expected_version: int):
        super().__init__(
            message=f"{entity} {entity_id} was modified concurrently",
            status_code=409,
            error_code="WRITE_CONFLICT",
            details={"entity": entity, "id": entity_id, "expected_version": expected_version}
        )

class DuplicateRecordError(AppException):
    """The employee already has a record in the workflow for this period."""
    def __init__(self, entity: str, existing_id: Any, period: Optional[str], status: str):
        super().__init__(
            message=f"{entity} for period {period} already exists and is {status}",
            status_code=409,
            error_code="DUPLICATE_RECORD",
            details={"existing_id": existing_id, "period": period, "status": status}
        )

class ValidationError(AppException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=details
        )

class MalformedRecordError(AppException):
    """Stored JSON payload (comment thread, ratings) failed typed parsing."""
    def __init__(self, entity: str, entity_id: Any, field: str, reason: str):
        super().__init__(
            message=f"{entity} {entity_id} has a malformed '{field}' field",
            status_code=500,
            error_code="MALFORMED_RECORD",
            details={"entity": entity, "id": entity_id, "field": field, "reason": reason}
        )
