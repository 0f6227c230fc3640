"""
Portal-wide exception hierarchy.

Services raise these types and never return HTTP-shaped tuples. Blueprints
register handlers against them once, so the three failure families a caller
must tell apart stay distinct everywhere:

  - "your input was invalid"        → ValidationError   (fix and resend)
  - "this action is no longer valid" → InvalidStateError (refresh and retry)
  - "you are not allowed"           → AuthorizationError (access denied)

Usage:
    from loan_portal.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Application", resource_id=42)
    raise ValidationError("reason is required", details={"reason": "required"})
"""


class NotFoundError(Exception):
    """Raised when a referenced entity does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Branch", "Application").
        resource_id: The key that was looked up.
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
    """Raised when input is missing or malformed.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown, keyed by field name.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value, or remove a
    row that other rows still reference (field="references").

    Maps to HTTP 409.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} already exists")


class AuthorizationError(Exception):
    """Raised when the actor lacks the role, ownership or routing for an action.

    Maps to HTTP 403. Terminal for the request.

    Args:
        message: Explanation shown to the caller.
        action: Optional name of the refused action (e.g. "approve").
    """

    def __init__(self, message: str, action: str | None = None) -> None:
        self.action = action
        super().__init__(message)


class InvalidStateError(Exception):
    """Raised when a transition is not legal from the entity's current status.

    Maps to HTTP 409. The caller must reload the entity before retrying.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None,
        current_status: str | None,
        action: str,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot '{action}' {resource} id={resource_id} (status={current_status})"
        )


class StorageError(Exception):
    """Raised when the persistence layer fails or an append-only row is touched.

    Reads may be retried. Writes to the Application/history pair must be
    re-checked against the current status before a retry.
    """
