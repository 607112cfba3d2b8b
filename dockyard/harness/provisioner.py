"""Docker-backed provisioning of disposable service containers."""

from __future__ import annotations

import logging
import uuid
from typing import Any

import docker

from dockyard.constants import (
    CONTAINER_STOP_TIMEOUT_SECONDS,
    LABEL_MANAGED,
    LABEL_SESSION,
    LABEL_SERVICE,
)
from dockyard.exceptions import ProvisionError
from dockyard.harness.endpoints import docker_host
from dockyard.harness.handle import ServiceHandle
from dockyard.harness.spec import ServiceSpec

logger = logging.getLogger(__name__)


class DockerProvisioner:
    """Start one fresh container per :class:`ServiceSpec`.

    Every container gets its own dynamically mapped host ports and is labelled
    with the provisioner's session so orphans can be found later.

    Parameters
    ----------
    client : docker.DockerClient | None
        Docker client. Created from the environment on first use when omitted.
    host : str | None
        Host published ports are reachable on. Detected from the environment
        when omitted.
    session_id : str | None
        Session label value. A random one is generated when omitted.
    stop_timeout : int
        Grace period in seconds for stopping containers.
    """

    def __init__(
        self,
        client: Any | None = None,
        host: str | None = None,
        session_id: str | None = None,
        stop_timeout: int = CONTAINER_STOP_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self.host = host or docker_host()
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.stop_timeout = stop_timeout

    @property
    def client(self) -> Any:
        """Return the Docker client, connecting on first access.

        Raises
        ------
        ProvisionError
            If the Docker daemon cannot be reached.
        """
        if self._client is None:
            try:
                self._client = docker.from_env()
            except docker.errors.DockerException as e:
                raise ProvisionError(f"Cannot connect to Docker daemon: {e}") from e
        return self._client

    def ping(self) -> bool:
        """Return ``True`` if the Docker daemon answers."""
        try:
            return bool(self.client.ping())
        except (ProvisionError, docker.errors.DockerException) as e:
            logger.debug("Docker daemon not reachable: %s", e)
            return False

    def labels(self, spec: ServiceSpec) -> dict[str, str]:
        return {
            LABEL_MANAGED: "true",
            LABEL_SESSION: self.session_id,
            LABEL_SERVICE: spec.name,
        }

    def start(self, spec: ServiceSpec) -> ServiceHandle:
        """Start a new container for ``spec``.

        Parameters
        ----------
        spec : ServiceSpec
            Service to start.

        Returns
        -------
        ServiceHandle
            Handle owning the new container, not yet ready.

        Raises
        ------
        ProvisionError
            If the image cannot be pulled or the container cannot be created
            or started.
        """
        ports = {f"{port}/tcp": None for port in spec.ports}
        logger.info(
            "Starting %s container from %s",
            spec.name,
            spec.image,
            extra={"service": spec.name},
        )

        try:
            container = self.client.containers.run(
                spec.image,
                command=list(spec.command) if spec.command else None,
                detach=True,
                environment=dict(spec.environment),
                ports=ports,
                labels=self.labels(spec),
            )
        except docker.errors.ImageNotFound as e:
            raise ProvisionError(f"Image '{spec.image}' for {spec.name} not found") from e
        except docker.errors.APIError as e:
            explanation = getattr(e, "explanation", None) or str(e)
            raise ProvisionError(
                f"Docker refused to start {spec.name} ({spec.image}): {explanation}"
            ) from e
        except docker.errors.DockerException as e:
            raise ProvisionError(f"Failed to start {spec.name} ({spec.image}): {e}") from e

        handle = ServiceHandle(
            spec=spec,
            container=container,
            host=self.host,
            session_id=self.session_id,
            stop_timeout=self.stop_timeout,
        )
        logger.debug(
            "Started %s as container %s", spec.name, handle.short_id, extra={"service": spec.name}
        )
        return handle

    def prune(self, session_id: str | None = None) -> int:
        """Remove dockyard containers left behind by crashed runs.

        Parameters
        ----------
        session_id : str | None
            Only remove containers of this session; all sessions when omitted.

        Returns
        -------
        int
            Number of containers removed.
        """
        label_filter = [f"{LABEL_MANAGED}=true"]
        if session_id:
            label_filter.append(f"{LABEL_SESSION}={session_id}")

        removed = 0
        for container in self.client.containers.list(all=True, filters={"label": label_filter}):
            try:
                logger.info("Removing orphaned container: %s", container.name)
                container.remove(force=True, v=True)
                removed += 1
            except docker.errors.NotFound:
                logger.debug("Container %s disappeared during prune", container.name)
            except docker.errors.APIError as e:
                logger.warning("Failed to remove container %s: %s", container.name, e)
        return removed
