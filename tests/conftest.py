"""Shared pytest configuration for dockyard tests."""

import logging

import pytest


def pytest_configure(config: pytest.Config) -> None:
    """Surface harness debug records in captured test logs."""
    logging.getLogger("dockyard").setLevel(logging.DEBUG)
