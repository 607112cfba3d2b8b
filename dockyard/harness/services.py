"""Specifications of the backing services dockyard knows how to start."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import redis

from dockyard.constants import (
    LOCALSTACK_HEALTH_PATH,
    LOCALSTACK_IMAGE,
    LOCALSTACK_PORT,
    POSTGRES_IMAGE,
    POSTGRES_PORT,
    POSTGRES_READY_MESSAGE,
    POSTGRES_READY_OCCURRENCES,
    PROBE_SOCKET_TIMEOUT_SECONDS,
    REDIS_IMAGE,
    REDIS_PORT,
    REDIS_READY_MESSAGE,
)
from dockyard.harness.readiness import (
    AllOf,
    HttpHealthCondition,
    LogMessageCondition,
    PortProbeCondition,
    ProbeCondition,
)
from dockyard.harness.spec import ServiceSpec


def redis_ping(host: str, port: int) -> bool:
    """Return True once the server answers PING."""
    client = redis.Redis(
        host=host,
        port=port,
        socket_timeout=PROBE_SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=PROBE_SOCKET_TIMEOUT_SECONDS,
    )
    try:
        return bool(client.ping())
    finally:
        client.close()


def redis_service(
    image: str = REDIS_IMAGE,
    snapshot_seconds: int | None = 10,
    snapshot_changes: int = 1,
    log_level: str = "verbose",
    startup_timeout: float = 60.0,
) -> ServiceSpec:
    """Redis cache.

    ``snapshot_seconds``/``snapshot_changes`` become ``--save`` (``None``
    disables persistence) and ``log_level`` becomes ``--loglevel``.
    """
    save = f"{snapshot_seconds} {snapshot_changes}" if snapshot_seconds else ""
    return ServiceSpec(
        name="redis",
        image=image,
        ports=(REDIS_PORT,),
        command=("redis-server", "--save", save, "--loglevel", log_level),
        readiness=AllOf(
            LogMessageCondition(REDIS_READY_MESSAGE),
            ProbeCondition(redis_ping, REDIS_PORT, description="Redis PING"),
        ),
        parameters={"database": 0},
        url_template="redis://{host}:{port}/{database}",
        startup_timeout=startup_timeout,
    )


def postgres_service(
    image: str = POSTGRES_IMAGE,
    database: str = "testdb",
    username: str = "testuser",
    password: str = "testpass",
    startup_timeout: float = 60.0,
) -> ServiceSpec:
    """PostgreSQL database.

    The official image restarts the server once after running its init
    scripts, so the ready banner must be seen twice.
    """
    return ServiceSpec(
        name="postgres",
        image=image,
        ports=(POSTGRES_PORT,),
        environment={
            "POSTGRES_DB": database,
            "POSTGRES_USER": username,
            "POSTGRES_PASSWORD": password,
        },
        readiness=AllOf(
            LogMessageCondition(POSTGRES_READY_MESSAGE, occurrences=POSTGRES_READY_OCCURRENCES),
            PortProbeCondition(POSTGRES_PORT),
        ),
        parameters={"database": database, "username": username, "password": password},
        url_template="postgresql://{username}:{password}@{host}:{port}/{database}?sslmode=disable",
        startup_timeout=startup_timeout,
    )


def localstack_service(
    image: str = LOCALSTACK_IMAGE,
    region: str = "us-east-1",
    access_key: str = "test",
    secret_key: str = "test",
    startup_timeout: float = 120.0,
) -> ServiceSpec:
    """LocalStack serving the DynamoDB API only."""
    return ServiceSpec(
        name="localstack",
        image=image,
        ports=(LOCALSTACK_PORT,),
        environment={"SERVICES": "dynamodb", "AWS_DEFAULT_REGION": region},
        readiness=HttpHealthCondition(LOCALSTACK_PORT, LOCALSTACK_HEALTH_PATH, service="dynamodb"),
        parameters={"region": region, "access_key": access_key, "secret_key": secret_key},
        url_template="http://{host}:{port}",
        startup_timeout=startup_timeout,
    )


SERVICE_BUILDERS: dict[str, Callable[..., ServiceSpec]] = {
    "redis": redis_service,
    "postgres": postgres_service,
    "localstack": localstack_service,
}


def list_services() -> list[str]:
    return list(SERVICE_BUILDERS)


def build_service(name: str, options: Mapping[str, Any] | None = None) -> ServiceSpec:
    """Build the spec of a known service from configuration options.

    Parameters
    ----------
    name : str
        Service name, one of :func:`list_services`.
    options : Mapping[str, Any] | None
        Keyword arguments for the service builder (image, credentials, ...).

    Returns
    -------
    ServiceSpec
        Ready-to-start specification.

    Raises
    ------
    ValueError
        If the service is unknown or an option is not accepted by it.
    """
    if name not in SERVICE_BUILDERS:
        raise ValueError(f"Unknown service: {name}. Available services: {list_services()}")

    try:
        return SERVICE_BUILDERS[name](**dict(options or {}))
    except TypeError as e:
        raise ValueError(f"Invalid options for service '{name}': {e}") from e
