"""Owned reference to one running service container."""

from __future__ import annotations

import logging
import threading
from typing import Any

import docker

from dockyard.constants import CONTAINER_STOP_TIMEOUT_SECONDS, HandleState
from dockyard.exceptions import ProvisionError
from dockyard.harness.spec import ServiceSpec

logger = logging.getLogger(__name__)


class ServiceHandle:
    """Running container started from a :class:`ServiceSpec`.

    The handle is the only owner of the container. ``release`` stops and
    removes it; only the first call has an effect.

    Parameters
    ----------
    spec : ServiceSpec
        Specification the container was started from.
    container : docker.models.containers.Container
        Docker container object.
    host : str
        Host the container's published ports are reachable on.
    session_id : str
        Provisioner session that created the container.
    stop_timeout : int
        Grace period in seconds given to the container on stop.
    """

    def __init__(
        self,
        spec: ServiceSpec,
        container: Any,
        host: str,
        session_id: str,
        stop_timeout: int = CONTAINER_STOP_TIMEOUT_SECONDS,
    ) -> None:
        self.spec = spec
        self.container = container
        self.host = host
        self.session_id = session_id
        self.stop_timeout = stop_timeout
        self.state = HandleState.STARTED
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return (
            f"ServiceHandle(name={self.name!r}, container={self.short_id!r}, "
            f"state={self.state.value!r})"
        )

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def short_id(self) -> str:
        return getattr(self.container, "short_id", "") or str(
            getattr(self.container, "id", "")
        )[:12]

    @property
    def ready(self) -> bool:
        return self.state is HandleState.READY

    @property
    def released(self) -> bool:
        return self.state is HandleState.RELEASED

    def mark_ready(self) -> None:
        """Record that the readiness condition has been met.

        Raises
        ------
        ProvisionError
            If the handle was already released.
        """
        with self._lock:
            if self.state is HandleState.RELEASED:
                raise ProvisionError(
                    f"Service '{self.name}' was released before it became ready"
                )
            self.state = HandleState.READY

    def status(self) -> str:
        """Return the current Docker status of the container (``running``, ``exited``...)."""
        self.container.reload()
        return self.container.status

    def logs(self, tail: int | None = None) -> str:
        """Return the combined stdout/stderr log of the container."""
        raw = self.container.logs(stdout=True, stderr=True, tail=tail if tail else "all")
        return raw.decode("utf-8", errors="replace")

    def host_port(self, internal_port: int) -> int | None:
        """Return the host port published for ``internal_port``.

        Parameters
        ----------
        internal_port : int
            Container-side TCP port.

        Returns
        -------
        int | None
            Mapped host port, or ``None`` when Docker has not published it.
        """
        self.container.reload()
        bindings = (self.container.ports or {}).get(f"{internal_port}/tcp")
        if not bindings:
            return None
        return int(bindings[0]["HostPort"])

    def release(self) -> bool:
        """Stop and remove the container.

        Returns
        -------
        bool
            ``True`` if this call released the container, ``False`` if it had
            already been released.
        """
        with self._lock:
            if self.state is HandleState.RELEASED:
                logger.debug("Service %s already released", self.name)
                return False
            self.state = HandleState.RELEASED

        logger.info(
            "Releasing %s container %s",
            self.name,
            self.short_id,
            extra={"service": self.name},
        )
        try:
            self.container.stop(timeout=self.stop_timeout)
        except docker.errors.NotFound:
            logger.debug("Container %s already gone before stop", self.short_id)
            return True
        except docker.errors.APIError as e:
            logger.warning("Failed to stop container %s, forcing removal: %s", self.short_id, e)

        try:
            self.container.remove(force=True, v=True)
        except docker.errors.NotFound:
            logger.debug("Container %s already removed", self.short_id)
        return True
