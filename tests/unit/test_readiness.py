"""Unit tests for readiness conditions and the polling waiter."""

import socket
from unittest.mock import MagicMock, patch

import docker
import pytest
import requests

from dockyard.exceptions import ProvisionError, ReadinessTimeoutError
from dockyard.harness.readiness import (
    AllOf,
    HttpHealthCondition,
    LogMessageCondition,
    PortProbeCondition,
    ProbeCondition,
    wait_ready,
)

PG_BANNER = "LOG:  database system is ready to accept connections\n"


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedCondition:
    """Condition that becomes true after a fixed number of checks."""

    def __init__(self, satisfied_after: int) -> None:
        self.satisfied_after = satisfied_after
        self.checks = 0

    def is_satisfied(self, handle) -> bool:
        self.checks += 1
        return self.checks >= self.satisfied_after

    def describe(self) -> str:
        return "scripted"


class TestLogMessageCondition:
    """Test log-based readiness."""

    def test_single_occurrence(self, make_handle) -> None:
        handle = make_handle(log="starting\nReady to accept connections tcp\n")
        assert LogMessageCondition("Ready to accept connections").is_satisfied(handle)

    def test_banner_must_appear_twice(self, make_handle) -> None:
        """Test that the init-time banner alone does not count as ready."""
        condition = LogMessageCondition("database system is ready", occurrences=2)

        assert not condition.is_satisfied(make_handle(log=PG_BANNER))
        assert condition.is_satisfied(make_handle(log=PG_BANNER + "restarting\n" + PG_BANNER))

    def test_absent_message(self, make_handle) -> None:
        assert not LogMessageCondition("ready").is_satisfied(make_handle(log="booting\n"))

    def test_occurrences_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="occurrences must be >= 1"):
            LogMessageCondition("ready", occurrences=0)


class TestPortProbeCondition:
    """Test TCP connectivity readiness."""

    def test_unmapped_port_not_ready(self, make_handle) -> None:
        assert not PortProbeCondition(6379).is_satisfied(make_handle(ports={}))

    def test_listening_port_ready(self, make_handle) -> None:
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        try:
            port = server.getsockname()[1]
            handle = make_handle(ports={6379: port})
            handle.host = "127.0.0.1"
            assert PortProbeCondition(6379).is_satisfied(handle)
        finally:
            server.close()

    def test_refused_connection_not_ready(self, make_handle) -> None:
        handle = make_handle(ports={6379: 1})
        with patch("socket.create_connection", side_effect=ConnectionRefusedError()):
            assert not PortProbeCondition(6379).is_satisfied(handle)


class TestHttpHealthCondition:
    """Test health-endpoint readiness."""

    def _response(self, status: int, body: dict | None = None) -> MagicMock:
        response = MagicMock()
        response.status_code = status
        response.json.return_value = body or {}
        return response

    def test_service_available(self, make_handle) -> None:
        handle = make_handle(ports={4566: 49000})
        body = {"services": {"dynamodb": "available", "s3": "disabled"}}

        with patch("requests.get", return_value=self._response(200, body)) as mock_get:
            assert HttpHealthCondition(4566, "/_localstack/health", service="dynamodb").is_satisfied(
                handle
            )

        assert mock_get.call_args[0][0] == "http://localhost:49000/_localstack/health"

    def test_service_still_initializing(self, make_handle) -> None:
        handle = make_handle(ports={4566: 49000})
        body = {"services": {"dynamodb": "initializing"}}

        with patch("requests.get", return_value=self._response(200, body)):
            assert not HttpHealthCondition(4566, "/health", service="dynamodb").is_satisfied(handle)

    def test_non_200_not_ready(self, make_handle) -> None:
        handle = make_handle(ports={4566: 49000})
        with patch("requests.get", return_value=self._response(503)):
            assert not HttpHealthCondition(4566, "health").is_satisfied(handle)

    def test_connection_error_not_ready(self, make_handle) -> None:
        handle = make_handle(ports={4566: 49000})
        with patch("requests.get", side_effect=requests.ConnectionError("refused")):
            assert not HttpHealthCondition(4566, "/health").is_satisfied(handle)


class TestProbeCondition:
    """Test protocol handshake readiness."""

    def test_probe_receives_mapped_address(self, make_handle) -> None:
        probe = MagicMock(return_value=True)
        handle = make_handle(ports={6379: 55001})

        assert ProbeCondition(probe, 6379).is_satisfied(handle)
        probe.assert_called_once_with("localhost", 55001)

    def test_probe_exception_means_not_ready(self, make_handle) -> None:
        probe = MagicMock(side_effect=ConnectionError("LOADING"))
        assert not ProbeCondition(probe, 6379).is_satisfied(make_handle(ports={6379: 55001}))


class TestAllOf:
    """Test condition composition."""

    def test_all_must_hold(self, make_handle) -> None:
        handle = make_handle(log="ready\n")
        assert AllOf(LogMessageCondition("ready"), ScriptedCondition(1)).is_satisfied(handle)
        assert not AllOf(LogMessageCondition("ready"), ScriptedCondition(2)).is_satisfied(handle)

    def test_describe_joins_conditions(self) -> None:
        description = AllOf(LogMessageCondition("ready"), PortProbeCondition(5432)).describe()
        assert "ready" in description
        assert "TCP port 5432" in description

    def test_requires_a_condition(self) -> None:
        with pytest.raises(ValueError):
            AllOf()


class TestWaitReady:
    """Test the polling waiter."""

    def test_marks_handle_ready(self, make_handle) -> None:
        clock = FakeClock()
        handle = make_handle(log="ready\n")

        result = wait_ready(handle, timeout=5, sleep=clock.sleep, clock=clock)

        assert result is handle
        assert handle.ready
        assert clock.sleeps == []

    def test_backoff_is_bounded(self, make_handle) -> None:
        """Test that the delay doubles up to the cap."""
        clock = FakeClock()
        condition = ScriptedCondition(satisfied_after=6)

        wait_ready(
            make_handle(),
            condition=condition,
            timeout=60,
            poll_interval=0.5,
            max_interval=2.0,
            sleep=clock.sleep,
            clock=clock,
        )

        assert clock.sleeps == [0.5, 1.0, 2.0, 2.0, 2.0]
        assert condition.checks == 6

    def test_timeout_raises_and_leaves_handle_to_caller(self, make_handle) -> None:
        """Test that a timed-out wait neither marks ready nor releases."""
        clock = FakeClock()
        handle = make_handle(log="still booting\n")

        with pytest.raises(ReadinessTimeoutError, match="not ready after 3.0s"):
            wait_ready(handle, timeout=3, sleep=clock.sleep, clock=clock)

        assert not handle.ready
        assert not handle.released
        assert handle.container.stop_calls == []
        assert sum(clock.sleeps) == pytest.approx(3.0)

    def test_exited_container_fails_fast(self, make_handle) -> None:
        clock = FakeClock()
        handle = make_handle(log="FATAL: bad config\n", statuses=["exited"])

        with pytest.raises(ProvisionError, match="FATAL: bad config"):
            wait_ready(handle, timeout=30, sleep=clock.sleep, clock=clock)

        assert clock.sleeps == []

    def test_vanished_container_raises_provision_error(self, make_handle) -> None:
        """Test that a container removed mid-wait is reported as a provisioning failure."""
        clock = FakeClock()
        handle = make_handle(log="booting\n")
        handle.container.reload = MagicMock(
            side_effect=docker.errors.NotFound("No such container")
        )

        with pytest.raises(ProvisionError, match="disappeared") as exc_info:
            wait_ready(handle, timeout=1, sleep=clock.sleep, clock=clock)

        assert isinstance(exc_info.value.__cause__, docker.errors.NotFound)
        assert not handle.ready

    def test_docker_error_during_condition_check(self, make_handle) -> None:
        clock = FakeClock()
        handle = make_handle(log="booting\n")
        handle.container.logs = MagicMock(side_effect=docker.errors.APIError("daemon hiccup"))

        with pytest.raises(ProvisionError, match="Docker error") as exc_info:
            wait_ready(
                handle,
                condition=LogMessageCondition("ready"),
                timeout=1,
                sleep=clock.sleep,
                clock=clock,
            )

        assert isinstance(exc_info.value.__cause__, docker.errors.APIError)

    def test_released_handle_rejected(self, make_handle) -> None:
        handle = make_handle(log="ready\n")
        handle.release()

        with pytest.raises(ProvisionError, match="already released"):
            wait_ready(handle, timeout=1)

    def test_defaults_come_from_spec(self, make_handle, make_spec) -> None:
        clock = FakeClock()
        handle = make_handle(spec=make_spec(pattern="go", startup_timeout=2.0), log="wait\n")

        with pytest.raises(ReadinessTimeoutError, match="not ready after 2.0s"):
            wait_ready(handle, sleep=clock.sleep, clock=clock)
