"""
Application-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from totracker.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Story", resource_id=story_id)
    raise ValidationError("title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the caller's scope.

    Security note: used for BOTH genuinely missing records AND stories owned
    by somebody else. A 403 would confirm the story exists; a 404 does not.

    Args:
        resource: Human-readable entity name (e.g. "Story", "User").
        resource_id: The id that was looked up. Included in logs, not in HTTP response.
        owner_id: Optional, the owner scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        owner_id: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.owner_id = owner_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if owner_id is not None:
            msg += f" (owner={owner_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when a payload fails schema or business-rule validation.

    Maps to HTTP 400. Nothing is written when this is raised.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
                 Keys are wire field names; values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness rule.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value (logged, not echoed in the HTTP response).
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class AuthenticationError(Exception):
    """Raised when credentials or a bearer token cannot be accepted. Maps to HTTP 401."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)
