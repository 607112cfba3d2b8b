"""Value types describing a backing service and how to reach it."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from dockyard.exceptions import ResolutionError

if TYPE_CHECKING:
    from dockyard.harness.handle import ServiceHandle
    from dockyard.harness.readiness import ReadinessCondition


@dataclass(frozen=True)
class ServiceSpec:
    """Declarative description of one disposable backing service.

    Attributes
    ----------
    name : str
        Short service name used for labels and log prefixes (e.g. ``"redis"``).
    image : str
        Docker image reference to run.
    ports : tuple[int, ...]
        Internal TCP ports to publish. The first one is the primary port.
    readiness : ReadinessCondition
        Condition that must hold before the service accepts traffic.
    environment : Mapping[str, str]
        Environment variables passed to the container.
    command : tuple[str, ...] | None
        Command override, or ``None`` for the image default.
    parameters : Mapping[str, Any]
        Startup parameters (credentials, database name, region, ...). They are
        made available to ``url_template`` and copied onto every endpoint.
    url_template : str | None
        ``str.format`` template for the connection string. Receives ``host``,
        ``port`` and every key of ``parameters``.
    startup_timeout : float
        Seconds allowed for the service to satisfy ``readiness``.
    """

    name: str
    image: str
    ports: tuple[int, ...]
    readiness: ReadinessCondition
    environment: Mapping[str, str] = field(default_factory=dict)
    command: tuple[str, ...] | None = None
    parameters: Mapping[str, Any] = field(default_factory=dict)
    url_template: str | None = None
    startup_timeout: float = 60.0

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Service name cannot be empty")
        if not self.image:
            raise ValueError(f"Service '{self.name}' has no image")
        if not self.ports:
            raise ValueError(f"Service '{self.name}' exposes no ports")
        if self.startup_timeout <= 0:
            raise ValueError(
                f"startup_timeout must be > 0, got: {self.startup_timeout}"
            )

    @property
    def primary_port(self) -> int:
        """Return the first exposed internal port."""
        return self.ports[0]


@dataclass(frozen=True)
class Endpoint:
    """Reachable address of a ready service.

    Attributes
    ----------
    host : str
        Host name or IP the service is published on.
    port : int
        Host-side port mapped to the requested internal port.
    url : str
        Connection string (``host:port`` when the service has no template).
    parameters : Mapping[str, Any]
        Startup parameters of the service, e.g. credentials or region.
    handle : ServiceHandle | None
        Handle the endpoint was derived from.
    """

    host: str
    port: int
    url: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    handle: ServiceHandle | None = field(default=None, compare=False, repr=False)

    @property
    def address(self) -> str:
        """Return ``host:port``."""
        return f"{self.host}:{self.port}"

    def ensure_valid(self) -> None:
        """Raise if the owning handle has been released.

        Raises
        ------
        ResolutionError
            If the service behind this endpoint is gone.
        """
        if self.handle is not None and self.handle.released:
            raise ResolutionError(
                f"Endpoint {self.address} is no longer valid: "
                f"service '{self.handle.name}' was released"
            )
