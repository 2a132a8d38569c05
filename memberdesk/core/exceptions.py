"""
Application-wide exception hierarchy.

Services raise these types and never return HTTP tuples; blueprints
register one handler per type and get consistent status codes everywhere.

Usage:
    from memberdesk.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Formation", resource_id=42)
    raise ValidationError("Chaque étape doit avoir un titre.", code="step_title_required")
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist.

    Args:
        resource: Human-readable model name (e.g. "Formation", "Contact").
        resource_id: The PK that was looked up. Logged, not returned to clients.
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
    """Raised when input fails a business rule in the service layer.

    The message is user-facing (French, as shown by the dashboard).

    Args:
        message: Human-readable explanation of what failed.
        code: Optional machine-readable reason (e.g. "step_locked").
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, code: str | None = None, details: dict | None = None) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a once-only record.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | int | None = None,
                 message: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        self.message = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(self.message)


class PermissionDeniedError(Exception):
    """Raised when the acting member may not perform the operation. Maps to 403."""

    def __init__(self, message: str = "Accès refusé.") -> None:
        self.message = message
        super().__init__(message)


class GenerationError(Exception):
    """Raised when a Completion Service call cannot produce a result.

    ``message`` is the text surfaced to the member: the upstream error
    message when the API returned one, otherwise a generic fallback.
    """

    def __init__(self, message: str, upstream_status: int | None = None) -> None:
        self.message = message
        self.upstream_status = upstream_status
        super().__init__(message)
