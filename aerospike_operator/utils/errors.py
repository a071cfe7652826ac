import json
import kubernetes_asyncio

_ALREADY_EXISTS = "alreadyexists"
_NOT_FOUND = "notfound"


class OperatorError(Exception):
    """Base class for errors raised while reconciling a cluster."""


class WaitTimeoutError(OperatorError):
    """A pod did not reach the expected state in time."""


class MigrationsTimeoutError(OperatorError):
    """Data migrations did not finish in time."""


class PodFailedError(OperatorError):
    """A pod reached a state from which it is not expected to recover."""


class PodUpgradeFailedError(OperatorError):
    """A pod reports a different server version after being upgraded."""


class ClusterBackupFailed(OperatorError):
    """A pre-upgrade namespace backup failed."""


def _reason(ex: kubernetes_asyncio.client.ApiException) -> str:
    try:
        err = json.loads(ex.body)
    except (TypeError, ValueError):
        return ""
    return err.get("reason", "") if isinstance(err, dict) else ""


def already_exists_error(ex: kubernetes_asyncio.client.ApiException) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 409 and _reason(ex).lower() == _ALREADY_EXISTS


def not_found_error(ex: kubernetes_asyncio.client.ApiException) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 404 or _reason(ex).lower() == _NOT_FOUND
