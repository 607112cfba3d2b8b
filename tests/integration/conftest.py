"""Service and client fixtures for Docker-backed integration tests.

Redis and LocalStack are shared by the whole session, so tests use unique
keys and table names. PostgreSQL is started fresh for every test.
"""

from collections.abc import Generator
import uuid

import pytest

from dockyard.clients import CacheClient, DocumentClient, RelationalClient
from dockyard.config import load_settings
from dockyard.harness.spec import Endpoint
from dockyard.testing import service_fixture

redis_endpoint = service_fixture("redis", isolation="shared")
localstack_endpoint = service_fixture("localstack", isolation="shared")
postgres_endpoint = service_fixture("postgres", isolation="per_test")


@pytest.fixture(scope="session")
def operation_timeout() -> float:
    """Per-call deadline for the client façades, from ``dockyard.yaml``."""
    return float(load_settings()["operation_timeout"])


@pytest.fixture
def unique() -> str:
    """Short random suffix for keys and table names on shared services."""
    return uuid.uuid4().hex[:8]


@pytest.fixture
def cache(
    redis_endpoint: Endpoint, operation_timeout: float
) -> Generator[CacheClient, None, None]:
    client = CacheClient.from_endpoint(redis_endpoint, timeout=operation_timeout)
    yield client
    client.close()


@pytest.fixture
def documents(
    localstack_endpoint: Endpoint, operation_timeout: float
) -> Generator[DocumentClient, None, None]:
    client = DocumentClient.from_endpoint(localstack_endpoint, timeout=operation_timeout)
    yield client
    client.close()


@pytest.fixture
def db(
    postgres_endpoint: Endpoint, operation_timeout: float
) -> Generator[RelationalClient, None, None]:
    client = RelationalClient.from_endpoint(postgres_endpoint, timeout=operation_timeout)
    yield client
    client.close()
