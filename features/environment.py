"""Behave environment: provisions the backing services for cross-store scenarios.

Services are shared by all scenarios of a feature. Scenarios tagged
``@per_test`` get their own freshly started services instead.
"""

import logging

from behave.model import Feature, Scenario
from behave.runner import Context

from dockyard.clients import CacheClient, DocumentClient, RelationalClient
from dockyard.config import ConfigLoader, load_settings
from dockyard.harness.services import build_service
from dockyard.session import harness_from_settings
from dockyard.testing import docker_available

logger = logging.getLogger(__name__)

SERVICES = ("postgres", "redis", "localstack")


class LogCapture(logging.Handler):
    """Custom logging handler for capturing log records in tests."""

    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


def start_stack(context: Context):
    """Start every service on a new harness and attach one client per service."""
    loader = ConfigLoader()
    harness = harness_from_settings(context.settings)
    timeout = context.settings["operation_timeout"]

    try:
        endpoints = {}
        for name in SERVICES:
            spec = build_service(name, loader.get_service_config(context.settings, name))
            endpoints[name] = harness.endpoint(harness.start(spec))

        context.db = harness.attach(
            RelationalClient.from_endpoint(endpoints["postgres"], timeout=timeout), label="db"
        )
        context.cache = harness.attach(
            CacheClient.from_endpoint(endpoints["redis"], timeout=timeout), label="cache"
        )
        context.documents = harness.attach(
            DocumentClient.from_endpoint(endpoints["localstack"], timeout=max(timeout, 10.0)),
            label="documents",
        )
    except BaseException:
        harness.close()
        raise

    return harness


def before_all(context: Context) -> None:
    """Setup executed before all tests."""
    context.settings = load_settings()
    context.docker_available = docker_available()
    context.log_capture = LogCapture()
    logging.getLogger("dockyard").addHandler(context.log_capture)

    if not context.docker_available:
        logger.warning("Docker daemon not reachable - cross-store scenarios will be skipped")


def before_feature(context: Context, feature: Feature) -> None:
    context.feature_harness = None
    if not context.docker_available:
        feature.skip("Docker daemon not reachable")
        return

    needs_shared = any(
        "per_test" not in scenario.effective_tags for scenario in feature.walk_scenarios()
    )
    if needs_shared:
        context.feature_harness = start_stack(context)


def before_scenario(context: Context, scenario: Scenario) -> None:
    context.scenario_harness = None
    if "per_test" in scenario.effective_tags:
        context.scenario_harness = start_stack(context)
    context.user_id = None
    context.values = {}


def after_scenario(context: Context, scenario: Scenario) -> None:
    harness = getattr(context, "scenario_harness", None)
    if harness is not None:
        summary = harness.close()
        if not summary.success():
            logger.warning("Scenario teardown errors: %s", summary.errors)


def after_feature(context: Context, feature: Feature) -> None:
    harness = getattr(context, "feature_harness", None)
    if harness is not None:
        summary = harness.close()
        if not summary.success():
            logger.warning("Feature teardown errors: %s", summary.errors)


def after_all(context: Context) -> None:
    logging.getLogger("dockyard").removeHandler(context.log_capture)
