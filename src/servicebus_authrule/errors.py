"""Error types raised by the authorization rule handlers."""

from __future__ import annotations


class ProviderError(Exception):
    """Base class for all errors surfaced to the provisioning engine."""

    def __init__(self, message: str, *, resource_id: str | None = None) -> None:
        super().__init__(message)
        self.resource_id = resource_id


class InvalidResourceIdError(ProviderError, ValueError):
    """Raised when a resource identifier string cannot be parsed."""


class ResourceNotFoundError(ProviderError):
    """Raised when the management API reports that a resource does not exist."""


class ResourceAlreadyExistsError(ProviderError):
    """Raised when creating a rule that already exists and must be imported."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        super().__init__(
            f"A resource with the ID {resource_id!r} already exists - to be "
            f"managed this {resource_type} needs to be imported into the state",
            resource_id=resource_id,
        )
        self.resource_type = resource_type


class RequiresReplacementError(ProviderError):
    """Raised when an in-place update would change an immutable field."""

    def __init__(self, resource_id: str, fields: list[str]) -> None:
        joined = ", ".join(fields)
        super().__init__(
            f"cannot update {resource_id} in place: {joined} changed, "
            f"the resource must be replaced",
            resource_id=resource_id,
        )
        self.fields = fields


class ApiError(ProviderError):
    """Raised when a management API call fails."""


class OperationTimeoutError(ProviderError):
    """Raised when a lifecycle operation exceeds its deadline."""


class ReplicationError(ProviderError):
    """Raised when paired namespace replication fails or cannot be observed."""


class ReplicationTimeoutError(ReplicationError):
    """Raised when paired namespace replication does not finish in time."""
