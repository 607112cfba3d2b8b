"""Disposable backing services for integration tests."""

from dockyard.clients import CacheClient, DocumentClient, RelationalClient, User
from dockyard.exceptions import (
    ConditionalCheckError,
    DockyardError,
    NotFoundError,
    ProvisionError,
    ReadinessTimeoutError,
    ResolutionError,
    TableExistsError,
    UniqueConstraintError,
    ValidationError,
)
from dockyard.harness import Endpoint, ServiceHandle, ServiceHarness, ServiceSpec

__version__ = "0.1.0"

__all__ = [
    "CacheClient",
    "ConditionalCheckError",
    "DocumentClient",
    "DockyardError",
    "Endpoint",
    "NotFoundError",
    "ProvisionError",
    "ReadinessTimeoutError",
    "RelationalClient",
    "ResolutionError",
    "ServiceHandle",
    "ServiceHarness",
    "ServiceSpec",
    "TableExistsError",
    "UniqueConstraintError",
    "User",
    "ValidationError",
]
