"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from partnerhub.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="EscalationRule", resource_id=42)
    raise ValidationError("name is required", details={"name": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for both genuinely missing records and records that belong to a
    different organization, so a 404 never confirms that an id exists.

    Args:
        resource: Human-readable model/entity name (e.g. "Task").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        organization_id: Optional scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        organization_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.organization_id = organization_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if organization_id is not None:
            msg += f" (organization={organization_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a unique constraint.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field (or field tuple) that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)
