"""Pytest configuration and fixtures for dockyard unit tests."""

import os
from collections.abc import Generator
from pathlib import Path

import pytest

from dockyard.harness.handle import ServiceHandle
from dockyard.harness.readiness import LogMessageCondition
from dockyard.harness.spec import ServiceSpec
from tests.fakes.fake_container import FakeContainer


@pytest.fixture(autouse=True)
def clean_dockyard_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host and config overrides from the developer shell out of unit tests."""
    for name in ("DOCKYARD_CONFIG", "DOCKYARD_HOST_OVERRIDE", "DOCKER_HOST", "DOCKYARD_DEBUG"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def aws_credentials() -> Generator[None, None, None]:
    """Fixture to set AWS credentials for testing with proper cleanup.

    Yields
    ------
    None
        Control back to test after setting credentials
    """
    keys = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_DEFAULT_REGION")
    original = {key: os.environ.get(key) for key in keys}

    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"

    yield

    for key, value in original.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point DOCKYARD_CONFIG at a not-yet-written file in a temp directory."""
    path = tmp_path / "dockyard.yaml"
    monkeypatch.setenv("DOCKYARD_CONFIG", str(path))
    return path


@pytest.fixture
def make_spec():
    """Factory for small service specs with a log-based readiness condition."""

    def _make(
        name: str = "svc",
        ports: tuple[int, ...] = (6379,),
        pattern: str = "ready",
        occurrences: int = 1,
        **kwargs,
    ) -> ServiceSpec:
        return ServiceSpec(
            name=name,
            image=f"{name}:latest",
            ports=ports,
            readiness=LogMessageCondition(pattern, occurrences=occurrences),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_handle(make_spec):
    """Factory for handles backed by a :class:`FakeContainer`."""

    def _make(spec: ServiceSpec | None = None, **container_kwargs) -> ServiceHandle:
        return ServiceHandle(
            spec=spec or make_spec(),
            container=FakeContainer(**container_kwargs),
            host="localhost",
            session_id="session-1",
            stop_timeout=3,
        )

    return _make
