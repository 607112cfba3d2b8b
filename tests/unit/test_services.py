"""Unit tests for the service catalog."""

import pytest

from dockyard.harness.readiness import AllOf, HttpHealthCondition, LogMessageCondition
from dockyard.harness.services import build_service, list_services


class TestServiceCatalog:
    """Test building known services."""

    def test_known_services(self) -> None:
        assert list_services() == ["redis", "postgres", "localstack"]

    def test_redis_persistence_and_verbosity(self) -> None:
        spec = build_service("redis", {"snapshot_seconds": 10, "snapshot_changes": 1})

        assert spec.image == "redis:7.2"
        assert spec.ports == (6379,)
        assert spec.command == ("redis-server", "--save", "10 1", "--loglevel", "verbose")
        assert isinstance(spec.readiness, AllOf)

    def test_redis_persistence_disabled(self) -> None:
        spec = build_service("redis", {"snapshot_seconds": None, "log_level": "warning"})
        assert spec.command == ("redis-server", "--save", "", "--loglevel", "warning")

    def test_postgres_waits_for_second_banner(self) -> None:
        spec = build_service("postgres", {"database": "app", "username": "u", "password": "p"})

        log_conditions = [c for c in spec.readiness.conditions if isinstance(c, LogMessageCondition)]
        assert log_conditions[0].occurrences == 2
        assert spec.environment == {
            "POSTGRES_DB": "app",
            "POSTGRES_USER": "u",
            "POSTGRES_PASSWORD": "p",
        }
        assert spec.url_template.startswith("postgresql://{username}:{password}@{host}:{port}")

    def test_localstack_health_check(self) -> None:
        spec = build_service("localstack")

        assert spec.image == "localstack/localstack:3.0"
        assert spec.environment["SERVICES"] == "dynamodb"
        assert isinstance(spec.readiness, HttpHealthCondition)
        assert spec.readiness.service == "dynamodb"
        assert spec.parameters == {"region": "us-east-1", "access_key": "test", "secret_key": "test"}

    def test_unknown_service(self) -> None:
        with pytest.raises(ValueError, match="Unknown service: mysql"):
            build_service("mysql")

    def test_unknown_option(self) -> None:
        with pytest.raises(ValueError, match="Invalid options for service 'redis'"):
            build_service("redis", {"password": "x"})
