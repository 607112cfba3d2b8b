"""pytest integration: service fixtures with an explicit isolation policy.

Typical ``conftest.py``::

    from dockyard.testing import service_fixture

    redis_endpoint = service_fixture("redis")
    postgres_endpoint = service_fixture("postgres", isolation="per_test")

``shared`` services are started once per test session, ``per_test`` services
once per test function. Either way the fixture yields a resolved
:class:`~dockyard.harness.spec.Endpoint` and removes the container during
teardown, whether the test passed or not.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import Any

import pytest

from dockyard.config import load_settings
from dockyard.constants import Isolation
from dockyard.harness.provisioner import DockerProvisioner
from dockyard.harness.spec import Endpoint
from dockyard.session import running_service

logger = logging.getLogger(__name__)

SCOPES = {
    Isolation.SHARED.value: "session",
    Isolation.PER_TEST.value: "function",
}


def docker_available() -> bool:
    """Return ``True`` if a Docker daemon is reachable from this process."""
    return DockerProvisioner().ping()


def isolation_scope(isolation: str) -> str:
    """Map an isolation policy to a pytest fixture scope.

    Raises
    ------
    ValueError
        If ``isolation`` is not a known policy.
    """
    if isolation not in SCOPES:
        raise ValueError(f"isolation must be one of {list(SCOPES)}, got: {isolation!r}")
    return SCOPES[isolation]


def service_fixture(
    service: str,
    isolation: str | None = None,
    name: str | None = None,
) -> Callable[..., Any]:
    """Build a pytest fixture that provides a running service.

    Parameters
    ----------
    service : str
        Service name.
    isolation : str | None
        ``shared`` or ``per_test``. Defaults to the configured ``isolation``.
    name : str | None
        Fixture name; defaults to ``"<service>_endpoint"``.

    Returns
    -------
    Callable
        Fixture function to assign to a module-level name in ``conftest.py``.

    Notes
    -----
    Only an unreachable Docker daemon skips the requesting test. Provisioning
    and readiness failures propagate and error the test.
    """
    registered_name = name or f"{service}_endpoint"
    if isolation is not None:
        isolation_scope(isolation)

    def scope(fixture_name: str, config: pytest.Config) -> str:
        return isolation_scope(isolation or load_settings()["isolation"])

    @pytest.fixture(scope=scope, name=registered_name)
    def _service() -> Iterator[Endpoint]:
        if not docker_available():
            pytest.skip(f"Docker daemon not reachable; cannot start {service}")

        with running_service(service) as endpoint:
            logger.info("%s available at %s", service, endpoint.address, extra={"service": service})
            yield endpoint

    return _service
