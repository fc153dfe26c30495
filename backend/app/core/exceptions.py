class AppError(Exception):
    """Base class for all application exceptions."""

    kind = "AppError"

    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def as_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "details": self.details}


class AssignmentRuleError(AppError):
    """A candidate assignment violates one of the engine rules."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)


class DuplicateAssignmentError(AssignmentRuleError):
    kind = "DuplicateAssignment"


class CapacityExceededError(AssignmentRuleError):
    kind = "CapacityExceeded"


class CourseNotAssignableError(AssignmentRuleError):
    kind = "CourseNotAssignable"


class InvalidStatusTransitionError(AppError):
    kind = "InvalidStatusTransition"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)


class PreferenceConflictError(AppError):
    kind = "PreferenceConflict"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)


class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""

    kind = "NotFound"

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class TransientConflictError(AppError):
    """Concurrent writers kept winning the race; the caller may retry."""

    kind = "TransientConflict"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=503, details=details)


class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""

    kind = "ConfigurationError"

    def __init__(self, message: str):
        super().__init__(message, status_code=500)
