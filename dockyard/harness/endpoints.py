"""Derive reachable endpoints from ready service handles."""

from __future__ import annotations

import logging
import os
from urllib.parse import quote, urlparse

from dockyard.exceptions import ResolutionError
from dockyard.harness.handle import ServiceHandle
from dockyard.harness.spec import Endpoint, ServiceSpec

logger = logging.getLogger(__name__)

HOST_OVERRIDE_ENV = "DOCKYARD_HOST_OVERRIDE"


def docker_host() -> str:
    """Return the host on which published container ports are reachable.

    ``DOCKYARD_HOST_OVERRIDE`` wins; otherwise a remote ``DOCKER_HOST``
    (``tcp://``, ``http://`` or ``https://``) supplies the host name; a local
    socket means ``localhost``.

    Returns
    -------
    str
        Host name or IP address.
    """
    override = os.environ.get(HOST_OVERRIDE_ENV, "").strip()
    if override:
        return override

    daemon = os.environ.get("DOCKER_HOST", "").strip()
    if daemon.startswith(("tcp://", "http://", "https://")):
        hostname = urlparse(daemon).hostname
        if hostname:
            return hostname

    return "localhost"


def compose_url(spec: ServiceSpec, host: str, port: int) -> str:
    """Format the connection string of ``spec`` for the given address.

    Parameters are percent-encoded so credentials with reserved characters
    survive inside a URL.
    """
    if spec.url_template is None:
        return f"{host}:{port}"

    encoded = {key: quote(str(value), safe="") for key, value in spec.parameters.items()}
    try:
        return spec.url_template.format(host=host, port=port, **encoded)
    except KeyError as e:
        raise ResolutionError(
            f"URL template of service '{spec.name}' references unknown parameter {e}"
        ) from e


def resolve(handle: ServiceHandle, internal_port: int | None = None) -> Endpoint:
    """Resolve the endpoint of a ready service.

    Parameters
    ----------
    handle : ServiceHandle
        Handle that has passed its readiness check.
    internal_port : int | None
        Container port to resolve; defaults to the spec's primary port.

    Returns
    -------
    Endpoint
        Host, mapped port and connection string.

    Raises
    ------
    ResolutionError
        If the handle is not ready, was released, or the port was never
        exposed or has no host mapping.
    """
    if handle.released:
        raise ResolutionError(f"Service '{handle.name}' was already released")
    if not handle.ready:
        raise ResolutionError(f"Service '{handle.name}' is not ready yet")

    spec = handle.spec
    port = spec.primary_port if internal_port is None else internal_port
    if port not in spec.ports:
        raise ResolutionError(
            f"Port {port} was never exposed by service '{spec.name}' "
            f"(exposed: {list(spec.ports)})"
        )

    mapped = handle.host_port(port)
    if mapped is None:
        raise ResolutionError(
            f"Port {port}/tcp of service '{spec.name}' has no host mapping"
        )

    endpoint = Endpoint(
        host=handle.host,
        port=mapped,
        url=compose_url(spec, handle.host, mapped),
        parameters=dict(spec.parameters),
        handle=handle,
    )
    logger.debug(
        "Resolved %s port %s to %s",
        spec.name,
        port,
        endpoint.address,
        extra={"service": spec.name},
    )
    return endpoint
