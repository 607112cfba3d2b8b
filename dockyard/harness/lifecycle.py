"""Guaranteed teardown of provisioned services and the clients built on them."""

from __future__ import annotations

import atexit
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, TypeVar

from dockyard.constants import DEFAULT_STARTUP_BUDGET_SECONDS
from dockyard.exceptions import ProvisionError
from dockyard.harness.endpoints import resolve
from dockyard.harness.handle import ServiceHandle
from dockyard.harness.provisioner import DockerProvisioner
from dockyard.harness.readiness import wait_ready
from dockyard.harness.spec import Endpoint, ServiceSpec
from dockyard.harness.timeouts import StartupBudget

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CleanupSummary:
    """Aggregated cleanup results and captured errors.

    Attributes
    ----------
    errors : list[str]
        Error messages produced during cleanup.
    step_results : list[dict[str, Any]]
        Per-resource teardown diagnostics including status and duration.
    """

    errors: list[str] = field(default_factory=list)
    step_results: list[dict[str, Any]] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def add_step_result(self, result: dict[str, Any]) -> None:
        self.step_results.append(result)

    def success(self) -> bool:
        """Determine whether cleanup completed without errors."""
        return not self.errors


class ResourceRegistry:
    """Manages resource lifecycle with deterministic cleanup ordering.

    Disposes resources in reverse registration order, each exactly once.
    A failing disposal is logged and recorded; the remaining resources are
    still disposed.

    Attributes
    ----------
    resources : list[dict]
        Registered resources in creation order that have not been disposed yet
    """

    def __init__(self) -> None:
        self.resources: list[dict[str, Any]] = []

    def register(
        self,
        kind: str,
        handle: Any,
        dispose_fn: Callable[[Any], Any],
        label: str = "",
    ) -> None:
        """Register a resource for lifecycle management.

        Parameters
        ----------
        kind : str
            Type of resource (e.g., "container", "client")
        handle : Any
            Resource handle to pass to dispose_fn
        dispose_fn : Callable
            Function to call during cleanup: dispose_fn(handle)
        label : str, optional
            Descriptive label for diagnostics
        """
        self.resources.append(
            {
                "kind": kind,
                "handle": handle,
                "dispose_fn": dispose_fn,
                "label": label,
            }
        )
        logger.debug("Registered %s: %s", kind, label)

    def cleanup_all(self) -> CleanupSummary:
        """Dispose every registered resource, newest first.

        Returns
        -------
        CleanupSummary
            Outcome of every disposal. Never raises for a failed disposal.
        """
        summary = CleanupSummary()
        while self.resources:
            entry = self.resources.pop()
            start = time.perf_counter()
            status = "success"
            try:
                entry["dispose_fn"](entry["handle"])
                logger.debug("Cleaned up %s: %s", entry["kind"], entry["label"])
            except Exception as e:  # pylint: disable=broad-except
                status = "error"
                summary.add_error(f"{entry['kind']} '{entry['label']}': {e}")
                logger.warning(
                    "Cleanup failed for %s '%s': %s",
                    entry["kind"],
                    entry["label"],
                    e,
                    exc_info=True,
                )
            summary.add_step_result(
                {
                    "kind": entry["kind"],
                    "label": entry["label"],
                    "status": status,
                    "duration_sec": time.perf_counter() - start,
                }
            )
        return summary


class ServiceHarness:
    """Scope that owns provisioned services and tears them down on exit.

    A container is registered for release before its readiness wait starts,
    so a service that never becomes ready is still removed. Clients attached
    with :meth:`attach` are closed before the containers they talk to.
    Exiting the ``with`` block never suppresses the exception that ended it.

    Parameters
    ----------
    provisioner : DockerProvisioner | None
        Provisioner used to start containers.
    startup_budget : float
        Total seconds all :meth:`start` calls may spend waiting for readiness.
    host : str | None
        Host override forwarded to the default provisioner.
    register_atexit : bool
        Close the harness at interpreter exit if the owner never does.
    """

    def __init__(
        self,
        provisioner: DockerProvisioner | None = None,
        startup_budget: float = DEFAULT_STARTUP_BUDGET_SECONDS,
        host: str | None = None,
        register_atexit: bool = True,
    ) -> None:
        self.provisioner = provisioner or DockerProvisioner(host=host)
        self.registry = ResourceRegistry()
        self.budget = StartupBudget(startup_budget)
        self.handles: list[ServiceHandle] = []
        self.closed = False
        self._register_atexit = register_atexit
        self._atexit_registered = False

    def __enter__(self) -> ServiceHarness:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        summary = self.close()
        if exc_type is not None and not summary.success():
            logger.warning(
                "Teardown after %s reported %d error(s)", exc_type.__name__, len(summary.errors)
            )

    def start(self, spec: ServiceSpec, timeout: float | None = None) -> ServiceHandle:
        """Provision ``spec`` and block until it is ready.

        Parameters
        ----------
        spec : ServiceSpec
            Service to start.
        timeout : float | None
            Readiness timeout; defaults to ``spec.startup_timeout``. Always
            capped by what remains of the harness startup budget.

        Returns
        -------
        ServiceHandle
            Ready handle, released when the harness closes.

        Raises
        ------
        ProvisionError
            If the container cannot be started or dies while starting.
        ReadinessTimeoutError
            If the service is not ready in time.
        """
        if self.closed:
            raise ProvisionError(f"Cannot start '{spec.name}': harness already closed")

        self._ensure_atexit()
        requested = spec.startup_timeout if timeout is None else timeout

        with self.budget.spend(spec.name, requested) as allowance:
            handle = self.provisioner.start(spec)
            self.registry.register(
                kind="container",
                handle=handle,
                dispose_fn=lambda h: h.release(),
                label=f"{spec.name}:{handle.short_id}",
            )
            self.handles.append(handle)
            wait_ready(handle, timeout=allowance)

        return handle

    def endpoint(self, handle: ServiceHandle, port: int | None = None) -> Endpoint:
        """Resolve the endpoint of a ready handle owned by this harness."""
        return resolve(handle, port)

    def attach(self, resource: T, label: str = "", kind: str = "client") -> T:
        """Register a closeable resource to be closed before the containers.

        Parameters
        ----------
        resource : T
            Object with a ``close()`` method, typically a client façade.
        label : str
            Descriptive label for diagnostics.
        kind : str
            Resource kind for diagnostics.

        Returns
        -------
        T
            ``resource`` unchanged, for chaining.
        """
        self.registry.register(
            kind=kind,
            handle=resource,
            dispose_fn=lambda r: r.close(),
            label=label or type(resource).__name__,
        )
        return resource

    def close(self) -> CleanupSummary:
        """Close attached clients and release every container.

        Safe to call more than once; only the first call does work.

        Returns
        -------
        CleanupSummary
            Teardown outcome. Failures are logged, never raised.
        """
        if self.closed:
            return CleanupSummary()
        self.closed = True

        if self._atexit_registered:
            atexit.unregister(self.close)
            self._atexit_registered = False

        summary = self.registry.cleanup_all()
        if summary.success():
            logger.debug("Harness cleanup complete (%d resources)", len(summary.step_results))
        else:
            logger.warning(
                "Harness cleanup finished with %d error(s): %s",
                len(summary.errors),
                "; ".join(summary.errors),
            )
        return summary

    def _ensure_atexit(self) -> None:
        if self._register_atexit and not self._atexit_registered:
            atexit.register(self.close)
            self._atexit_registered = True
