from __future__ import annotations


class ValidationError(ValueError):
    """Input rejected before any request is made or any row is written."""


class VariableRuleError(ValidationError):
    pass


class StyleValidationError(ValidationError):
    pass


class CategoryValidationError(ValidationError):
    pass


class UserValidationError(ValidationError):
    pass


class ChartValidationError(ValidationError):
    pass


class NotFoundError(LookupError):
    pass


class ConflictError(RuntimeError):
    """Write would violate a uniqueness or in-use constraint."""


class ApiError(RuntimeError):
    """Base for failures talking to the admin REST API."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class TransportError(ApiError):
    """The request never produced a usable JSON response."""


class ApplicationError(ApiError):
    """The server answered with ``success: false``."""


class ProjectValidationError(ValidationError):
    pass


class UnknownStatsKeysError(ProjectValidationError):
    def __init__(self, keys: list[str]) -> None:
        super().__init__(f"Unknown stats keys: {', '.join(keys)}")
        self.keys = keys
