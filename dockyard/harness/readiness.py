"""Readiness conditions and the polling waiter.

Backing services announce readiness differently: PostgreSQL prints its
"ready to accept connections" banner twice, Redis prints it once, LocalStack
exposes a health endpoint. Each style is a condition object; a service spec
picks the one (or the combination) that fits.
"""

from __future__ import annotations

import logging
import re
import socket
import time
from collections.abc import Callable
from typing import Protocol

import docker
import requests

from dockyard.constants import (
    LOG_TAIL_LINES,
    PROBE_SOCKET_TIMEOUT_SECONDS,
    READINESS_MAX_POLL_INTERVAL_SECONDS,
    READINESS_POLL_INTERVAL_SECONDS,
)
from dockyard.exceptions import ProvisionError, ReadinessTimeoutError
from dockyard.harness.handle import ServiceHandle

logger = logging.getLogger(__name__)

TERMINAL_CONTAINER_STATES = frozenset({"exited", "dead"})
HEALTHY_SERVICE_STATES = frozenset({"available", "running"})


class ReadinessCondition(Protocol):
    """Predicate deciding whether a started service accepts traffic."""

    def is_satisfied(self, handle: ServiceHandle) -> bool:
        ...

    def describe(self) -> str:
        ...


class LogMessageCondition:
    """Satisfied once ``pattern`` appears in the container log often enough.

    Parameters
    ----------
    pattern : str
        Regular expression searched in the combined stdout/stderr log.
    occurrences : int
        Minimum number of matches required.
    """

    def __init__(self, pattern: str, occurrences: int = 1) -> None:
        if occurrences < 1:
            raise ValueError(f"occurrences must be >= 1, got: {occurrences}")
        self.pattern = re.compile(pattern)
        self.occurrences = occurrences

    def is_satisfied(self, handle: ServiceHandle) -> bool:
        count = sum(1 for _ in self.pattern.finditer(handle.logs()))
        return count >= self.occurrences

    def describe(self) -> str:
        return f"log message {self.pattern.pattern!r} x{self.occurrences}"


class PortProbeCondition:
    """Satisfied once a TCP connection to the mapped port succeeds."""

    def __init__(self, port: int, timeout: float = PROBE_SOCKET_TIMEOUT_SECONDS) -> None:
        self.port = port
        self.timeout = timeout

    def is_satisfied(self, handle: ServiceHandle) -> bool:
        mapped = handle.host_port(self.port)
        if mapped is None:
            return False
        try:
            with socket.create_connection((handle.host, mapped), timeout=self.timeout):
                return True
        except OSError as e:
            logger.debug("TCP probe %s:%s failed: %s", handle.host, mapped, e)
            return False

    def describe(self) -> str:
        return f"TCP port {self.port}"


class HttpHealthCondition:
    """Satisfied once an HTTP health endpoint answers 200.

    Parameters
    ----------
    port : int
        Internal port serving the endpoint.
    path : str
        Request path, e.g. ``/_localstack/health``.
    service : str | None
        When set, the JSON body must report ``services[service]`` as
        ``available`` or ``running``.
    timeout : float
        Per-request timeout in seconds.
    """

    def __init__(
        self,
        port: int,
        path: str,
        service: str | None = None,
        timeout: float = PROBE_SOCKET_TIMEOUT_SECONDS,
    ) -> None:
        self.port = port
        self.path = path if path.startswith("/") else f"/{path}"
        self.service = service
        self.timeout = timeout

    def is_satisfied(self, handle: ServiceHandle) -> bool:
        mapped = handle.host_port(self.port)
        if mapped is None:
            return False

        url = f"http://{handle.host}:{mapped}{self.path}"
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.debug("Health check %s failed: %s", url, e)
            return False

        if response.status_code != 200:
            return False
        if self.service is None:
            return True

        try:
            services = response.json().get("services", {})
        except ValueError:
            return False
        return services.get(self.service) in HEALTHY_SERVICE_STATES

    def describe(self) -> str:
        target = f" ({self.service})" if self.service else ""
        return f"HTTP 200 from {self.path}{target}"


class ProbeCondition:
    """Satisfied once ``probe(host, port)`` returns truthy without raising.

    Used for protocol handshakes such as a Redis ``PING``.
    """

    def __init__(
        self,
        probe: Callable[[str, int], object],
        port: int,
        description: str = "protocol probe",
    ) -> None:
        self.probe = probe
        self.port = port
        self.description = description

    def is_satisfied(self, handle: ServiceHandle) -> bool:
        mapped = handle.host_port(self.port)
        if mapped is None:
            return False
        try:
            return bool(self.probe(handle.host, mapped))
        except Exception as e:  # pylint: disable=broad-except
            logger.debug("%s against %s:%s failed: %s", self.description, handle.host, mapped, e)
            return False

    def describe(self) -> str:
        return self.description


class AllOf:
    """Satisfied when every wrapped condition is satisfied."""

    def __init__(self, *conditions: ReadinessCondition) -> None:
        if not conditions:
            raise ValueError("AllOf requires at least one condition")
        self.conditions = conditions

    def is_satisfied(self, handle: ServiceHandle) -> bool:
        return all(condition.is_satisfied(handle) for condition in self.conditions)

    def describe(self) -> str:
        return " and ".join(condition.describe() for condition in self.conditions)


def wait_ready(
    handle: ServiceHandle,
    condition: ReadinessCondition | None = None,
    timeout: float | None = None,
    poll_interval: float = READINESS_POLL_INTERVAL_SECONDS,
    max_interval: float = READINESS_MAX_POLL_INTERVAL_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> ServiceHandle:
    """Block until ``condition`` holds for ``handle``.

    Polls with exponential backoff capped at ``max_interval``. The handle is
    never released here: on failure the caller's lifecycle guard still owns
    the container.

    Parameters
    ----------
    handle : ServiceHandle
        Freshly started service.
    condition : ReadinessCondition | None
        Condition to wait for; defaults to ``handle.spec.readiness``.
    timeout : float | None
        Seconds to wait; defaults to ``handle.spec.startup_timeout``.
    poll_interval : float
        Initial delay between checks.
    max_interval : float
        Upper bound for the delay between checks.
    sleep : Callable[[float], None]
        Sleep function (injectable for tests).
    clock : Callable[[], float]
        Monotonic clock (injectable for tests).

    Returns
    -------
    ServiceHandle
        The same handle, now in the READY state.

    Raises
    ------
    ReadinessTimeoutError
        If the condition does not hold before the timeout.
    ProvisionError
        If the container stops or disappears while waiting, Docker fails, or
        the handle was released.
    """
    if handle.released:
        raise ProvisionError(f"Cannot wait for '{handle.name}': handle already released")

    condition = condition or handle.spec.readiness
    timeout = handle.spec.startup_timeout if timeout is None else timeout
    start = clock()
    deadline = start + timeout
    interval = poll_interval
    attempts = 0

    logger.info(
        "Waiting up to %.1fs for %s: %s",
        timeout,
        handle.name,
        condition.describe(),
        extra={"service": handle.name},
    )

    while True:
        attempts += 1
        try:
            status = handle.status()
            if status in TERMINAL_CONTAINER_STATES:
                raise ProvisionError(
                    f"{handle.name} container {handle.short_id} {status} before becoming "
                    f"ready. Last log lines:\n{handle.logs(tail=LOG_TAIL_LINES)}"
                )
            satisfied = condition.is_satisfied(handle)
        except docker.errors.NotFound as e:
            raise ProvisionError(
                f"{handle.name} container {handle.short_id} disappeared before becoming ready"
            ) from e
        except docker.errors.APIError as e:
            raise ProvisionError(
                f"Docker error while waiting for {handle.name} "
                f"container {handle.short_id}: {e}"
            ) from e

        if satisfied:
            handle.mark_ready()
            logger.info(
                "%s ready after %.1fs (%d checks)",
                handle.name,
                clock() - start,
                attempts,
                extra={"service": handle.name},
            )
            return handle

        remaining = deadline - clock()
        if remaining <= 0:
            raise ReadinessTimeoutError(
                f"{handle.name} not ready after {timeout:.1f}s "
                f"({attempts} checks) waiting for {condition.describe()}"
            )

        sleep(min(interval, remaining))
        interval = min(interval * 2, max_interval)
