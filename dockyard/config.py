"""Harness configuration loaded from YAML with built-in defaults."""

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from omegaconf import OmegaConf
from omegaconf.errors import InterpolationResolutionError

from dockyard.constants import (
    DEFAULT_OPERATION_TIMEOUT_SECONDS,
    DEFAULT_STARTUP_BUDGET_SECONDS,
    LOCALSTACK_IMAGE,
    POSTGRES_IMAGE,
    REDIS_IMAGE,
    Isolation,
)
from dockyard.harness.services import list_services

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DOCKYARD_CONFIG"
DEFAULT_CONFIG_FILE = "dockyard.yaml"


class ConfigLoader:
    """Load and merge YAML configuration with defaults.

    Layering, lowest first: ``BUILT_IN_DEFAULTS``, then the YAML file. The
    file may declare a ``vars`` section used for ``${...}`` interpolation.
    """

    def __init__(self) -> None:
        self.BUILT_IN_DEFAULTS: dict[str, Any] = {
            "isolation": Isolation.SHARED.value,
            "startup_budget": DEFAULT_STARTUP_BUDGET_SECONDS,
            "operation_timeout": DEFAULT_OPERATION_TIMEOUT_SECONDS,
            "host_override": None,
            "services": {
                "redis": {
                    "image": REDIS_IMAGE,
                    "startup_timeout": 60,
                    "snapshot_seconds": 10,
                    "snapshot_changes": 1,
                    "log_level": "verbose",
                },
                "postgres": {
                    "image": POSTGRES_IMAGE,
                    "startup_timeout": 60,
                    "database": "testdb",
                    "username": "testuser",
                    "password": "testpass",
                },
                "localstack": {
                    "image": LOCALSTACK_IMAGE,
                    "startup_timeout": 120,
                    "region": "us-east-1",
                    "access_key": "test",
                    "secret_key": "test",
                },
            },
        }

    def load_config(self, config_path: str | None = None) -> dict[str, Any]:
        """Load configuration from a YAML file.

        Parameters
        ----------
        config_path : str | None
            Path to YAML config file. If None, checks the DOCKYARD_CONFIG env
            var, then falls back to dockyard.yaml

        Returns
        -------
        dict[str, Any]
            Parsed configuration with all variable interpolations resolved;
            empty when the file does not exist

        Raises
        ------
        ValueError
            If the YAML is malformed or a variable cannot be resolved
        """
        if config_path is None:
            config_path = os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE)

        config_file = Path(config_path)

        if not config_file.exists():
            logger.debug("No config file at %s, using defaults", config_file)
            return {}

        try:
            cfg = OmegaConf.load(config_file)
        except yaml.YAMLError as e:
            logger.error("Failed to parse YAML config file %s: %s", config_file, e)
            raise ValueError(f"Invalid YAML in {config_file}: {e}") from e
        except OSError as e:
            logger.error("Failed to read config file %s: %s", config_file, e)
            raise RuntimeError(f"Failed to read config file {config_file}: {e}") from e

        if cfg is None:
            return {}

        if "vars" in cfg:
            vars_dict = OmegaConf.to_container(cfg.vars, resolve=False)
            for key, value in vars_dict.items():
                if key not in cfg:
                    cfg[key] = value

        try:
            config = OmegaConf.to_container(cfg, resolve=True, throw_on_missing=True)
        except InterpolationResolutionError as e:
            logger.error("Failed to resolve configuration variables: %s", e)
            raise ValueError(f"Configuration variable resolution error: {e}") from e

        config.pop("vars", None)
        return config

    def get_harness_config(self, config: dict[str, Any]) -> dict[str, Any]:
        """Merge a loaded file over the built-in defaults.

        Service sections are merged key by key so a file may override a single
        parameter (e.g. only the Postgres image).

        Parameters
        ----------
        config : dict[str, Any]
            Configuration from :meth:`load_config`

        Returns
        -------
        dict[str, Any]
            Complete configuration
        """
        merged = copy.deepcopy(self.BUILT_IN_DEFAULTS)

        for key, value in config.items():
            if key == "services":
                continue
            merged[key] = value

        for service, overrides in (config.get("services") or {}).items():
            section = merged["services"].setdefault(service, {})
            section.update(overrides or {})

        return merged

    def get_service_config(self, config: dict[str, Any], service: str) -> dict[str, Any]:
        """Return the builder options of one service.

        Raises
        ------
        ValueError
            If ``service`` is not configured
        """
        services = config.get("services", {})
        if service not in services:
            raise ValueError(
                f"Service '{service}' not found in configuration. "
                f"Available services: {list(services)}"
            )
        return dict(services[service])

    def validate_config(self, config: dict[str, Any]) -> None:
        """Validate a merged configuration.

        Raises
        ------
        ValueError
            If isolation is unknown, a timeout is not positive, or an unknown
            service is configured
        """
        isolation = config.get("isolation")
        valid_isolation = [mode.value for mode in Isolation]
        if isolation not in valid_isolation:
            raise ValueError(
                f"isolation must be one of {valid_isolation}, got: {isolation!r}"
            )

        for key in ("startup_budget", "operation_timeout"):
            self._validate_positive(key, config.get(key))

        host_override = config.get("host_override")
        if host_override is not None and not isinstance(host_override, str):
            raise ValueError("host_override must be a string")

        known = list_services()
        for service, options in (config.get("services") or {}).items():
            if service not in known:
                raise ValueError(f"Unknown service: {service}. Available services: {known}")
            if not isinstance(options, dict):
                raise ValueError(f"services.{service} must be a mapping")
            if "startup_timeout" in options:
                self._validate_positive(
                    f"services.{service}.startup_timeout", options["startup_timeout"]
                )

    @staticmethod
    def _validate_positive(key: str, value: Any) -> None:
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise ValueError(f"{key} must be a number")
        if value <= 0:
            raise ValueError(f"{key} must be positive, got: {value}")


def load_settings(config_path: str | None = None) -> dict[str, Any]:
    """Load, merge and validate the harness configuration.

    Parameters
    ----------
    config_path : str | None
        Explicit config file; see :meth:`ConfigLoader.load_config`.

    Returns
    -------
    dict[str, Any]
        Validated configuration
    """
    loader = ConfigLoader()
    config = loader.get_harness_config(loader.load_config(config_path))
    loader.validate_config(config)
    return config
