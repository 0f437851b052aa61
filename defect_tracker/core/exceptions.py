"""
Application-wide exception hierarchy.

Services raise these; the error handlers registered in
``defect_tracker.utils.errors.register_error_handlers`` translate them to
JSON responses once, so status codes stay consistent everywhere.

    AuthenticationError  → 401   missing / invalid / expired identity
    AuthorizationError   → 403   valid identity, insufficient privilege
    NotFoundError        → 404   absent or soft-deleted record
    ValidationError      → 400   malformed input
    ConflictError        → 409   duplicate active grant / allocation / unique value

Anything else is an internal error (500). In particular a database failure
during a privilege check surfaces as 500, never as a 403.

Usage:
    from defect_tracker.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("Title is required", details={"title": "required"})
"""


class AuthenticationError(Exception):
    """Raised when the caller's identity cannot be established."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class AuthorizationError(Exception):
    """Raised when an authenticated caller is not allowed to do something.

    Args:
        message: Human-readable explanation.
        code: Machine-readable error code; privilege denials and
              project-membership denials use different codes.
    """

    def __init__(self, message: str = "Access denied", code: str | None = None) -> None:
        self.code = code
        super().__init__(message)


class NotFoundError(Exception):
    """Raised when a requested resource does not exist or was soft-deleted.

    Args:
        resource: Human-readable model/entity name (e.g. "Project", "Defect").
        resource_id: The PK that was looked up. Included in the message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is malformed or violates a field rule.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate something that must be unique.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The field (or field tuple description) that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value=None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)
