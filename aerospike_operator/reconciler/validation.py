"""Checks that cannot be expressed in the CRD schema and need cluster state."""

import logging
from kubernetes_asyncio.client import ApiException

from aerospike_operator.resources.aerospikecluster import AerospikeCluster
from aerospike_operator.utils import events

logger = logging.getLogger(__name__)


def validate_replication_factor(cluster: AerospikeCluster) -> bool:
    for ns in cluster.spec.namespaces:
        if ns.replication_factor is not None and ns.replication_factor > cluster.spec.node_count:
            events.record_warning(
                cluster.body,
                events.REASON_VALIDATION_ERROR,
                f"replication factor of {ns.replication_factor} requested for namespace "
                f"{ns.name} but the cluster has only {cluster.spec.node_count} nodes",
            )
            return False
    return True


async def validate_storage_classes(cluster: AerospikeCluster) -> bool:
    for ns in cluster.spec.namespaces:
        name = ns.storage.storage_class_name
        if not name:
            continue
        try:
            storage_class = await cluster.fetch_storage_class(cluster.storage_v1_api, name)
        except ApiException as ex:
            events.record_warning(
                cluster.body,
                events.REASON_VALIDATION_ERROR,
                f'failed to get storage class "{name}": {ex.reason}',
            )
            return False
        if storage_class is None:
            events.record_warning(
                cluster.body,
                events.REASON_VALIDATION_ERROR,
                f'storage class "{name}" does not exist',
            )
            return False
    return True


async def validate(cluster: AerospikeCluster) -> bool:
    """Whether the cluster can be reconciled.

    Every problem found is reported as a warning event on the cluster. An
    invalid cluster is not retried until its spec changes.
    """
    if not validate_replication_factor(cluster):
        return False
    if not await validate_storage_classes(cluster):
        return False
    logger.debug(f"{cluster.key} is valid")
    return True
