"""Startup budget shared by all services of one harness."""

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from dockyard.exceptions import ReadinessTimeoutError

logger = logging.getLogger(__name__)


class StartupBudget:
    """Seconds a harness may spend starting services, summed over all starts.

    Only time spent inside :meth:`spend` counts, so a session-scoped harness
    that sits idle between tests keeps its budget for the next service.

    Parameters
    ----------
    total_seconds : float
        Budget for every start of the harness together.
    clock : Callable[[], float]
        Monotonic clock (injectable for tests).
    """

    def __init__(
        self, total_seconds: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        if total_seconds <= 0:
            raise ValueError(f"total_seconds must be positive, got: {total_seconds}")
        self.total_seconds = total_seconds
        self.spent_by_service: dict[str, float] = {}
        self._clock = clock

    @property
    def spent_seconds(self) -> float:
        return sum(self.spent_by_service.values())

    def remaining_seconds(self) -> float:
        return max(0.0, self.total_seconds - self.spent_seconds)

    @contextmanager
    def spend(self, service: str, requested: float) -> Iterator[float]:
        """Charge the time spent starting ``service`` to the budget.

        Parameters
        ----------
        service : str
            Service being started; time is accounted per service.
        requested : float
            Startup timeout the service asks for.

        Yields
        ------
        float
            Seconds the service may use: ``requested`` capped by what remains.

        Raises
        ------
        ReadinessTimeoutError
            If nothing is left of the budget.
        """
        remaining = self.remaining_seconds()
        if remaining <= 0:
            raise ReadinessTimeoutError(
                f"Startup budget of {self.total_seconds:.0f}s exhausted before '{service}' "
                f"(spent: {self.describe()})"
            )

        allowance = min(remaining, requested)
        if allowance < requested:
            logger.info(
                "%s gets %.1fs of its %.1fs startup timeout; harness budget is running out",
                service,
                allowance,
                requested,
                extra={"service": service},
            )

        started = self._clock()
        try:
            yield allowance
        finally:
            elapsed = self._clock() - started
            self.spent_by_service[service] = self.spent_by_service.get(service, 0.0) + elapsed
            logger.debug(
                "%s startup took %.2fs, %.2fs of budget left",
                service,
                elapsed,
                self.remaining_seconds(),
                extra={"service": service},
            )

    def describe(self) -> str:
        """Return the per-service spend, e.g. ``"redis=1.2s, postgres=4.0s"``."""
        if not self.spent_by_service:
            return "nothing"
        return ", ".join(f"{name}={seconds:.1f}s" for name, seconds in self.spent_by_service.items())
