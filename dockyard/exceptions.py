"""Exceptions raised by the dockyard harness and client façades."""


class DockyardError(Exception):
    """Base class for all dockyard errors."""

    pass


class ProvisionError(DockyardError):
    """Raised when a backing-service container cannot be created or started."""

    pass


class ReadinessTimeoutError(DockyardError):
    """Raised when a started service does not become ready within its budget."""

    pass


class ResolutionError(DockyardError):
    """Raised when an endpoint cannot be derived from a service handle."""

    pass


class NotFoundError(DockyardError):
    """Raised when a key, item, table or row does not exist.

    Expired cache keys are reported with this error as well; the backing
    store does not distinguish them from keys that were never set.
    """

    pass


class TableExistsError(DockyardError):
    """Raised when creating a document-store table that already exists."""

    pass


class UniqueConstraintError(DockyardError):
    """Raised when a write violates a uniqueness constraint."""

    pass


class ConditionalCheckError(DockyardError):
    """Raised when a conditional document-store write is rejected."""

    pass


class ValidationError(DockyardError):
    """Raised when the backing store rejects a malformed expression or query."""

    pass
