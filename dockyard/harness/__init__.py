"""Ephemeral backing-service harness."""

from dockyard.harness.endpoints import compose_url, docker_host, resolve
from dockyard.harness.handle import ServiceHandle
from dockyard.harness.lifecycle import CleanupSummary, ResourceRegistry, ServiceHarness
from dockyard.harness.provisioner import DockerProvisioner
from dockyard.harness.readiness import (
    AllOf,
    HttpHealthCondition,
    LogMessageCondition,
    PortProbeCondition,
    ProbeCondition,
    ReadinessCondition,
    wait_ready,
)
from dockyard.harness.services import (
    build_service,
    list_services,
    localstack_service,
    postgres_service,
    redis_service,
)
from dockyard.harness.spec import Endpoint, ServiceSpec
from dockyard.harness.timeouts import StartupBudget

__all__ = [
    "AllOf",
    "CleanupSummary",
    "DockerProvisioner",
    "Endpoint",
    "HttpHealthCondition",
    "LogMessageCondition",
    "PortProbeCondition",
    "ProbeCondition",
    "ReadinessCondition",
    "ResourceRegistry",
    "ServiceHandle",
    "ServiceHarness",
    "ServiceSpec",
    "StartupBudget",
    "build_service",
    "compose_url",
    "docker_host",
    "list_services",
    "localstack_service",
    "postgres_service",
    "redis_service",
    "resolve",
    "wait_ready",
]
