class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class SchedulerError(AppError):
    """Raised when a scheduling run cannot proceed (no batches, courses, rooms or tasks)."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class SchedulingValidationError(AppError):
    """Raised when scheduling prerequisites are not met. Nothing has been placed yet."""
    def __init__(
        self,
        message: str,
        errors: list = None,
        field_errors: dict = None,
        unassigned_courses: list = None,
    ):
        self.errors = list(errors or [])
        self.field_errors = dict(field_errors or {})
        self.unassigned_courses = list(unassigned_courses or [])
        super().__init__(
            message,
            status_code=422,
            details={
                "errors": self.errors,
                "field_errors": self.field_errors,
                "unassigned_courses": self.unassigned_courses,
            },
        )

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class ConflictError(AppError):
    """Raised when an operation clashes with the current state of a resource."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)
