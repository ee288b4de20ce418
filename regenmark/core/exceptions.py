"""
Engine-wide exception hierarchy.

All services raise these types; blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

Usage:
    from regenmark.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Evaluation", resource_id=42)
    raise ValidationError("feedback is required", details={"feedback": "empty"})
"""


class NotFoundError(Exception):
    """Raised when a referenced owner, evaluation or certification does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Owner", "Evaluation").
        resource_id: The PK that was looked up.
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
    """Raised when input is well-formed but violates a business rule.

    Covers missing required fields, unknown certification types and threshold
    violations such as a review score below the approval threshold or a
    rejection without feedback.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidStateError(Exception):
    """Raised when a transition is attempted from a terminal or incompatible state.

    Maps to HTTP 409.

    Args:
        message: Human-readable explanation.
        current_status: Status of the entity when the action was attempted.
        action: The lifecycle action that was refused.
    """

    def __init__(
        self,
        message: str,
        current_status: str | None = None,
        action: str | None = None,
    ) -> None:
        self.current_status = current_status
        self.action = action
        super().__init__(message)


class DuplicateEvaluationError(InvalidStateError, ValidationError):
    """Raised when an owner already has an in-flight evaluation of the same type.

    It is both a state conflict (another evaluation is in flight) and a
    request validation failure, so callers may catch either base.
    """

    def __init__(self, owner_id: int, cert_type: str) -> None:
        self.owner_id = owner_id
        self.cert_type = cert_type
        self.details = {"owner_id": owner_id, "type": cert_type}
        self.current_status = "in_flight"
        self.action = "request"
        Exception.__init__(
            self,
            f"Owner {owner_id} already has an evaluation in progress for {cert_type}",
        )


class InternalError(Exception):
    """Raised when an atomic write set fails and has been rolled back.

    The system state is unchanged when this is raised. Maps to HTTP 500.
    """

    def __init__(self, message: str = "Internal error", operation: str | None = None) -> None:
        self.operation = operation
        super().__init__(message)
