"""Start configured services as scoped blocks."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from dockyard.config import ConfigLoader, load_settings
from dockyard.harness.lifecycle import ServiceHarness
from dockyard.harness.services import build_service
from dockyard.harness.spec import Endpoint


def harness_from_settings(settings: dict[str, Any]) -> ServiceHarness:
    return ServiceHarness(
        startup_budget=settings["startup_budget"],
        host=settings.get("host_override"),
    )


@contextmanager
def running_service(
    service: str, settings: dict[str, Any] | None = None
) -> Iterator[Endpoint]:
    """Start a configured service and yield its endpoint.

    The container is removed when the block exits, including when the
    service never becomes ready.

    Parameters
    ----------
    service : str
        Service name (``redis``, ``postgres`` or ``localstack``).
    settings : dict[str, Any] | None
        Validated configuration; loaded from the environment when omitted.

    Yields
    ------
    Endpoint
        Endpoint of the service's primary port.
    """
    settings = settings or load_settings()
    options = ConfigLoader().get_service_config(settings, service)
    spec = build_service(service, options)

    with harness_from_settings(settings) as harness:
        handle = harness.start(spec)
        yield harness.endpoint(handle)
