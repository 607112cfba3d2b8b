"""CLI entry point for dockyard."""

from __future__ import annotations

import logging
import os
import signal
import sys
import threading
import types
from typing import Any

import fire

from dockyard.config import load_settings
from dockyard.exceptions import DockyardError, ProvisionError, ReadinessTimeoutError
from dockyard.harness.provisioner import DockerProvisioner
from dockyard.harness.services import list_services
from dockyard.logging import configure_logging
from dockyard.session import running_service

logger = logging.getLogger(__name__)


def _raise_keyboard_interrupt(signum: int, frame: types.FrameType | None) -> None:
    raise KeyboardInterrupt


class DockyardCLI:
    """Manage disposable backing services from the command line.

    Parameters
    ----------
    config_path : str | None
        Configuration file; defaults to DOCKYARD_CONFIG or dockyard.yaml
    provisioner_factory : type | None
        Factory for the Docker provisioner (for testing)
    """

    def __init__(
        self,
        config_path: str | None = None,
        provisioner_factory: type | None = None,
    ) -> None:
        self._config_path = config_path
        self._provisioner_factory = provisioner_factory or DockerProvisioner

    def doctor(self) -> dict[str, Any]:
        """Check Docker reachability and the configuration.

        Returns
        -------
        dict[str, Any]
            Docker status, isolation policy and configured images
        """
        settings = load_settings(self._config_path)
        provisioner = self._provisioner_factory(host=settings.get("host_override"))
        docker_ok = provisioner.ping()

        if docker_ok:
            logger.info("Docker daemon reachable; services publish on %s", provisioner.host)
        else:
            logger.warning("Docker daemon not reachable: integration tests will be skipped")

        return {
            "docker": "ok" if docker_ok else "unreachable",
            "host": provisioner.host,
            "isolation": settings["isolation"],
            "images": {name: cfg["image"] for name, cfg in settings["services"].items()},
        }

    def up(self, service: str) -> None:
        """Start a service, print its connection URL and wait for Ctrl+C.

        Parameters
        ----------
        service : str
            One of redis, postgres, localstack
        """
        if service not in list_services():
            raise ValueError(f"Unknown service: {service}. Available services: {list_services()}")

        settings = load_settings(self._config_path)
        stop = threading.Event()
        previous = signal.signal(signal.SIGTERM, _raise_keyboard_interrupt)

        try:
            with running_service(service, settings) as endpoint:
                print(endpoint.url)
                sys.stdout.flush()
                logger.info("Press Ctrl+C to stop", extra={"service": service})
                try:
                    while not stop.wait(1):
                        pass
                except KeyboardInterrupt:
                    logger.info("Stopping", extra={"service": service})
        finally:
            signal.signal(signal.SIGTERM, previous)

    def prune(self, session: str | None = None) -> int:
        """Remove containers left behind by crashed test runs.

        Parameters
        ----------
        session : str | None
            Restrict removal to one harness session

        Returns
        -------
        int
            Number of removed containers
        """
        settings = load_settings(self._config_path)
        provisioner = self._provisioner_factory(host=settings.get("host_override"))
        removed = provisioner.prune(session_id=session)
        logger.info("Removed %d container(s)", removed)
        return removed


def handle_value_error(error: ValueError, debug_mode: bool) -> None:
    """Handle configuration and argument errors.

    Raises
    ------
    ValueError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(f"Configuration error: {error}", file=sys.stderr)
    sys.exit(2)


def handle_provision_error(error: DockyardError, debug_mode: bool) -> None:
    """Handle a service that failed to start.

    Raises
    ------
    DockyardError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(f"Service failed to start: {error}\n", file=sys.stderr)
    print("This usually means:", file=sys.stderr)
    print("  - Docker is not running or not reachable", file=sys.stderr)
    print("  - The image cannot be pulled", file=sys.stderr)
    print("  - The startup timeout is too short for this machine\n", file=sys.stderr)
    print("Debugging steps:", file=sys.stderr)
    print("  1. python -m dockyard doctor", file=sys.stderr)
    print("  2. DOCKYARD_DEBUG=1 python -m dockyard up <service>", file=sys.stderr)
    sys.exit(1)


def main() -> None:
    """Entry point for the Fire CLI with graceful error handling."""
    debug_mode = os.environ.get("DOCKYARD_DEBUG") == "1"
    configure_logging(debug=debug_mode)

    try:
        fire.Fire(DockyardCLI)
    except ValueError as e:
        handle_value_error(e, debug_mode)
    except (ProvisionError, ReadinessTimeoutError) as e:
        handle_provision_error(e, debug_mode)
    except KeyboardInterrupt:
        sys.exit(130)
