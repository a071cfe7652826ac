import kopf
from logging import Logger

from aerospike_operator.controller.owners import cluster_key, enqueue_owner
from aerospike_operator.resources.aerospikecluster import AerospikeCluster
from aerospike_operator.resources.backup import BACKUP_KIND
from aerospike_operator.common.models.labels import Labels
from aerospike_operator.types.settings import RESYNC_INTERVAL_SECONDS

CLUSTER_KIND = AerospikeCluster.KIND


def request_reconciliation(memo: kopf.Memo, name: str, namespace: str, logger: Logger):
    """Queue a reconcile pass. Repeated requests collapse into one."""
    key = cluster_key(namespace, name)
    memo.queue.add(key)
    logger.debug(f"Reconciliation of {key} requested")


@kopf.on.resume(kind=CLUSTER_KIND)
@kopf.on.create(kind=CLUSTER_KIND)
async def on_create(name, namespace, memo: kopf.Memo, logger: Logger, **kwargs):
    request_reconciliation(memo, name, namespace, logger)


@kopf.on.update(kind=CLUSTER_KIND)
async def on_update(name, namespace, memo: kopf.Memo, logger: Logger, **kwargs):
    request_reconciliation(memo, name, namespace, logger)


@kopf.on.delete(kind=CLUSTER_KIND, optional=True)
async def on_delete(name, namespace, memo: kopf.Memo, logger: Logger, **kwargs):
    """Drop the backoff history of a deleted cluster. Owned objects are garbage collected."""
    memo.queue.forget(cluster_key(namespace, name))
    logger.info(f"{CLUSTER_KIND} {namespace}/{name} deleted")


@kopf.timer(CLUSTER_KIND, initial_delay=RESYNC_INTERVAL_SECONDS, interval=RESYNC_INTERVAL_SECONDS)
async def periodic_reconciliation(name, namespace, memo: kopf.Memo, logger: Logger, **kwargs):
    """Resync every cluster periodically."""
    request_reconciliation(memo, name, namespace, logger)


@kopf.on.event("v1", "pods", labels={Labels.APP_LABEL: Labels.APPLICATION_NAME})
async def on_pod_event(body, memo: kopf.Memo, logger: Logger, **kwargs):
    key = enqueue_owner(memo.queue, body)
    if key:
        logger.debug(f"Pod event routed to {key}")


@kopf.on.event(kind=BACKUP_KIND)
async def on_backup_event(body, memo: kopf.Memo, logger: Logger, **kwargs):
    key = enqueue_owner(memo.queue, body)
    if key:
        logger.debug(f"{BACKUP_KIND} event routed to {key}")
