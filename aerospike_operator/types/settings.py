import os
from typing import Any

_TRUE, _FALSE = {"True", "true", "yes", "1"}, {"False", "false", "no", "0"}


def _getenv(name: str, *default: Any) -> Any:
    try:
        v = os.environ[name]
        if v in _TRUE:
            return True
        elif v in _FALSE:
            return False
        else:
            return v
    except KeyError:
        pass
    if default:
        return default[0]
    raise KeyError(name)


# ------------------------------------------------
# ---- Defaults and environment variables ----
# ------------------------------------------------

#: Run in debug mode. Disables pod anti-affinity so that a whole cluster fits on one node.
DEBUG = bool(_getenv("DEBUG", False))

#: Number of workers concurrently reconciling AerospikeCluster resources
WORKER_COUNT = int(_getenv("WORKER_COUNT", 2))

#: Port where prometheus metrics are exposed
METRICS_PORT = int(_getenv("METRICS_PORT", 8000))

#: Seconds to wait for a new pod to become running and ready
POD_CREATE_TIMEOUT_SECONDS = float(_getenv("POD_CREATE_TIMEOUT_SECONDS", 3 * 60 * 60))

#: Seconds to wait for a deleted pod to disappear
POD_DELETE_TIMEOUT_SECONDS = float(_getenv("POD_DELETE_TIMEOUT_SECONDS", 3 * 60))

#: Termination grace period given to aerospike pods
TERMINATION_GRACE_PERIOD_SECONDS = int(
    _getenv("TERMINATION_GRACE_PERIOD_SECONDS", 2 * 60)
)

#: Seconds to wait for data migrations to finish before deleting a pod
MIGRATIONS_TIMEOUT_SECONDS = float(_getenv("MIGRATIONS_TIMEOUT_SECONDS", 60 * 60))

#: Seconds between two checks for pending data migrations
MIGRATIONS_POLL_INTERVAL_SECONDS = float(
    _getenv("MIGRATIONS_POLL_INTERVAL_SECONDS", 5)
)

#: Seconds between two progress events while waiting on a long operation
FEEDBACK_PERIOD_SECONDS = float(_getenv("FEEDBACK_PERIOD_SECONDS", 2 * 60))

#: Timeout in seconds for info requests sent to aerospike nodes
CLIENT_TIMEOUT_SECONDS = float(_getenv("CLIENT_TIMEOUT_SECONDS", 10))

#: Seconds to wait for in-flight reconciliations on shutdown
SHUTDOWN_TIMEOUT_SECONDS = float(_getenv("SHUTDOWN_TIMEOUT_SECONDS", 60))

#: Seconds between two periodic resyncs of every AerospikeCluster
RESYNC_INTERVAL_SECONDS = float(_getenv("RESYNC_INTERVAL_SECONDS", 5 * 60))

#: Image holding the operator tools (init container, asprom)
TOOLS_IMAGE = str(
    _getenv("TOOLS_IMAGE", "quay.io/travelaudience/aerospike-operator-tools:latest")
)


class Settings:
    """Operator settings"""

    debug: bool = DEBUG
    worker_count: int = WORKER_COUNT
    metrics_port: int = METRICS_PORT
    pod_create_timeout_seconds: float = POD_CREATE_TIMEOUT_SECONDS
    pod_delete_timeout_seconds: float = POD_DELETE_TIMEOUT_SECONDS
    termination_grace_period_seconds: int = TERMINATION_GRACE_PERIOD_SECONDS
    migrations_timeout_seconds: float = MIGRATIONS_TIMEOUT_SECONDS
    migrations_poll_interval_seconds: float = MIGRATIONS_POLL_INTERVAL_SECONDS
    feedback_period_seconds: float = FEEDBACK_PERIOD_SECONDS
    client_timeout_seconds: float = CLIENT_TIMEOUT_SECONDS
    shutdown_timeout_seconds: float = SHUTDOWN_TIMEOUT_SECONDS
    tools_image: str = TOOLS_IMAGE
    resync_interval_seconds: float = RESYNC_INTERVAL_SECONDS

    def __init__(
        self,
        *args,
        debug: bool = None,
        worker_count: int = None,
        metrics_port: int = None,
        pod_create_timeout_seconds: float = None,
        pod_delete_timeout_seconds: float = None,
        termination_grace_period_seconds: int = None,
        migrations_timeout_seconds: float = None,
        migrations_poll_interval_seconds: float = None,
        feedback_period_seconds: float = None,
        client_timeout_seconds: float = None,
        shutdown_timeout_seconds: float = None,
        tools_image: str = None,
        resync_interval_seconds: float = None,
        **kwargs,
    ):
        if debug is not None:
            self.debug = debug

        if worker_count is not None:
            self.worker_count = worker_count

        if metrics_port is not None:
            self.metrics_port = metrics_port

        if pod_create_timeout_seconds is not None:
            self.pod_create_timeout_seconds = pod_create_timeout_seconds

        if pod_delete_timeout_seconds is not None:
            self.pod_delete_timeout_seconds = pod_delete_timeout_seconds

        if termination_grace_period_seconds is not None:
            self.termination_grace_period_seconds = termination_grace_period_seconds

        if migrations_timeout_seconds is not None:
            self.migrations_timeout_seconds = migrations_timeout_seconds

        if migrations_poll_interval_seconds is not None:
            self.migrations_poll_interval_seconds = migrations_poll_interval_seconds

        if feedback_period_seconds is not None:
            self.feedback_period_seconds = feedback_period_seconds

        if client_timeout_seconds is not None:
            self.client_timeout_seconds = client_timeout_seconds

        if shutdown_timeout_seconds is not None:
            self.shutdown_timeout_seconds = shutdown_timeout_seconds

        if tools_image is not None:
            self.tools_image = tools_image

        if resync_interval_seconds is not None:
            self.resync_interval_seconds = resync_interval_seconds
