class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class RequestValidationFailed(AppError):
    """Raised when a request is rejected before any scheduling work starts."""
    def __init__(self, field: str, message: str, details: dict = None):
        payload = {"field": field}
        payload.update(details or {})
        super().__init__(f"{field}: {message}", status_code=422, details=payload)
        self.field = field


class SchedulerError(AppError):
    """Raised when the scheduler encounters a logical error or invalid state."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)


class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str, message: str | None = None):
        super().__init__(
            message or f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class ScheduleStateError(AppError):
    """Raised when an operation is not allowed in the schedule's current state."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)


class PersistenceError(AppError):
    """Raised after a failed transaction has been rolled back."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=500, details=details)
