import asyncio
import copy
from unittest.mock import AsyncMock, Mock
from kubernetes_asyncio.client import ApiException, V1ObjectMeta, V1StorageClass
from aerospike_operator.reconciler.validation import (
    validate,
    validate_replication_factor,
    validate_storage_classes,
)
from aerospike_operator.resources.aerospikecluster import AerospikeCluster
from aerospike_operator.utils import events
from conftest import CLUSTER_BODY, make_cluster_body


def _namespace(storage_class=None, replication_factor=2):
    storage = {"type": "file", "size": "1G"}
    if storage_class:
        storage["storageClassName"] = storage_class
    return {
        "name": "as-namespace-0",
        "replicationFactor": replication_factor,
        "memorySize": "1G",
        "storage": storage,
    }


def _cluster(node_count=3, **kwargs):
    return AerospikeCluster.from_body(
        make_cluster_body(node_count=node_count, namespaces=[_namespace(**kwargs)])
    )


def _storage_api(read):
    api = Mock()
    api.read_storage_class = read
    return api


class TestValidation:
    def test_replication_factor_exceeds_node_count(self, kopf_events):
        cluster = _cluster(node_count=1, replication_factor=2)
        assert validate_replication_factor(cluster) is False
        kopf_events.warn.assert_called_once()
        kwargs = kopf_events.warn.call_args.kwargs
        assert kwargs["reason"] == events.REASON_VALIDATION_ERROR
        assert kwargs["message"] == (
            "replication factor of 2 requested for namespace as-namespace-0 "
            "but the cluster has only 1 nodes"
        )

    def test_replication_factor_within_node_count(self, kopf_events):
        assert validate_replication_factor(_cluster(node_count=2)) is True
        kopf_events.warn.assert_not_called()

    def test_missing_storage_class(self, kopf_events):
        cluster = _cluster(storage_class="ssd")
        cluster.storage_v1_api = _storage_api(AsyncMock(side_effect=ApiException(status=404)))
        assert asyncio.run(validate_storage_classes(cluster)) is False
        assert kopf_events.warn.call_args.kwargs["message"] == 'storage class "ssd" does not exist'

    def test_storage_class_lookup_error(self, kopf_events):
        cluster = _cluster(storage_class="ssd")
        cluster.storage_v1_api = _storage_api(
            AsyncMock(side_effect=ApiException(status=500, reason="Internal Server Error"))
        )
        assert asyncio.run(validate_storage_classes(cluster)) is False
        assert kopf_events.warn.call_args.kwargs["message"] == (
            'failed to get storage class "ssd": Internal Server Error'
        )

    def test_existing_storage_class(self, kopf_events):
        cluster = _cluster(storage_class="ssd")
        read = AsyncMock(return_value=V1StorageClass(metadata=V1ObjectMeta(name="ssd"), provisioner="x"))
        cluster.storage_v1_api = _storage_api(read)
        assert asyncio.run(validate(cluster)) is True
        read.assert_awaited_once_with(name="ssd")
        kopf_events.warn.assert_not_called()

    def test_no_storage_class_skips_lookup(self):
        cluster = AerospikeCluster.from_body(copy.deepcopy(CLUSTER_BODY))
        cluster.storage_v1_api = _storage_api(AsyncMock())
        assert asyncio.run(validate(cluster)) is True
        cluster.storage_v1_api.read_storage_class.assert_not_called()

    def test_replication_factor_checked_first(self):
        cluster = _cluster(node_count=1, storage_class="ssd")
        cluster.storage_v1_api = _storage_api(AsyncMock())
        assert asyncio.run(validate(cluster)) is False
        cluster.storage_v1_api.read_storage_class.assert_not_called()
