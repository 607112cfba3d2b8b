"""Global constants for dockyard.

Defaults used when no configuration file overrides them. Every value here can
be replaced through ``dockyard.yaml`` (see :mod:`dockyard.config`).
"""

from enum import Enum

DEFAULT_STARTUP_BUDGET_SECONDS = 300
"""Total time a harness may spend provisioning all of its services.

Five minutes covers a cold image pull of LocalStack on a slow connection.
"""

DEFAULT_OPERATION_TIMEOUT_SECONDS = 5.0
"""Per-call deadline applied by the client façades.

Maps to the Redis socket timeout, the PostgreSQL connect/statement timeout and
the botocore connect/read timeouts.
"""

READINESS_POLL_INTERVAL_SECONDS = 0.25
"""Initial delay between readiness checks. Doubles after every miss."""

READINESS_MAX_POLL_INTERVAL_SECONDS = 2.0
"""Upper bound for the readiness backoff interval."""

PROBE_SOCKET_TIMEOUT_SECONDS = 1.0
"""Timeout for a single TCP or HTTP readiness probe."""

CONTAINER_STOP_TIMEOUT_SECONDS = 10
"""Grace period given to a container on stop before it is killed."""

LOG_TAIL_LINES = 20
"""Number of container log lines attached to provisioning errors."""

LABEL_MANAGED = "dockyard.managed"
LABEL_SESSION = "dockyard.session"
LABEL_SERVICE = "dockyard.service"

REDIS_PORT = 6379
POSTGRES_PORT = 5432
LOCALSTACK_PORT = 4566

REDIS_IMAGE = "redis:7.2"
POSTGRES_IMAGE = "postgres:16-alpine"
LOCALSTACK_IMAGE = "localstack/localstack:3.0"

POSTGRES_READY_MESSAGE = "database system is ready to accept connections"
"""PostgreSQL prints this once for the init-time server and once for the final one."""

POSTGRES_READY_OCCURRENCES = 2

REDIS_READY_MESSAGE = "Ready to accept connections"

LOCALSTACK_HEALTH_PATH = "/_localstack/health"


class Isolation(str, Enum):
    """How long a provisioned service lives relative to the tests using it."""

    SHARED = "shared"
    PER_TEST = "per_test"


class HandleState(str, Enum):
    """Lifecycle states of a service handle."""

    STARTED = "started"
    READY = "ready"
    RELEASED = "released"
