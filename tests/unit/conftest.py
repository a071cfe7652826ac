import copy
import pytest
from unittest.mock import AsyncMock, Mock, patch
from kubernetes_asyncio.client import (
    V1ObjectMeta,
    V1Pod,
    V1PodCondition,
    V1PodSpec,
    V1PodStatus,
    V1PersistentVolumeClaimVolumeSource,
    V1Volume,
)
from aerospike_operator.resources.aerospikecluster import AerospikeCluster
from aerospike_operator.types.models import UPGRADE_STATUS_ANNOTATION
from aerospike_operator.types.settings import Settings

CLUSTER_BODY = {
    "apiVersion": "aerospike.travelaudience.com/v1alpha2",
    "kind": "AerospikeCluster",
    "metadata": {
        "name": "as-cluster",
        "namespace": "aerospike",
        "uid": "6f1a2c7e-8a55-4cf3-a2a1-94b7f0f6f6c1",
        "resourceVersion": "1000",
        "annotations": {},
    },
    "spec": {
        "nodeCount": 3,
        "version": "4.0.0.4",
        "namespaces": [
            {
                "name": "as-namespace-0",
                "replicationFactor": 2,
                "memorySize": "1G",
                "defaultTTL": "0s",
                "storage": {"type": "file", "size": "1G"},
            }
        ],
        "backupSpec": {
            "ttl": "7d",
            "storage": {"type": "gcs", "bucket": "aerospike-backups", "secret": "gcs-secret"},
        },
    },
    "status": {},
}


def make_cluster_body(
    version: str = "4.0.0.4",
    status_version: str = None,
    node_count: int = 3,
    upgrade_status: str = None,
    namespaces=None,
):
    body = copy.deepcopy(CLUSTER_BODY)
    body["spec"]["version"] = version
    body["spec"]["nodeCount"] = node_count
    if namespaces is not None:
        body["spec"]["namespaces"] = namespaces
    if status_version is not None:
        body["status"] = {
            "version": status_version,
            "nodeCount": node_count,
            "namespaces": copy.deepcopy(body["spec"]["namespaces"]),
            "backupSpec": copy.deepcopy(body["spec"]["backupSpec"]),
        }
    if upgrade_status is not None:
        body["metadata"]["annotations"][UPGRADE_STATUS_ANNOTATION] = upgrade_status
    return body


def make_pod(name: str, cluster: str = "as-cluster", ready: bool = True, claims=()):
    return V1Pod(
        metadata=V1ObjectMeta(
            name=name,
            namespace="aerospike",
            labels={"app": "aerospike", "aerospike.travelaudience.com/cluster-name": cluster},
            annotations={},
            resource_version="1",
        ),
        spec=V1PodSpec(
            containers=[],
            volumes=[
                V1Volume(
                    name=f"data-ns-{idx}",
                    persistent_volume_claim=V1PersistentVolumeClaimVolumeSource(
                        claim_name=claim
                    ),
                )
                for idx, claim in enumerate(claims)
            ],
        ),
        status=V1PodStatus(
            phase="Running" if ready else "Pending",
            pod_ip="10.0.0.1",
            conditions=[V1PodCondition(type="Ready", status="True" if ready else "False")],
        ),
    )


@pytest.fixture(autouse=True)
def kopf_events():
    """Events are posted through kopf, which needs a running operator."""
    with patch("aerospike_operator.utils.events.kopf") as kopf_mock:
        yield kopf_mock


@pytest.fixture
def conf():
    return Settings(
        debug=True,
        migrations_poll_interval_seconds=0,
        feedback_period_seconds=60,
        termination_grace_period_seconds=30,
    )


@pytest.fixture
def cluster():
    return AerospikeCluster.from_body(make_cluster_body())


@pytest.fixture
def inspector():
    node_inspector = Mock()
    node_inspector.server_version = AsyncMock(return_value="4.0.0.4")
    node_inspector.has_migrations_in_progress = AsyncMock(return_value=False)
    node_inspector.cluster_size = AsyncMock(return_value=3)
    return node_inspector


class FakeClusterApi:
    """Stands in for CustomObjectsApi, applying merge patches to a cluster body."""

    def __init__(self, body):
        self.body = copy.deepcopy(body)
        self.object_patches = []
        self.status_patches = []

    def _bump(self):
        metadata = self.body["metadata"]
        metadata["resourceVersion"] = str(int(metadata["resourceVersion"]) + 1)

    async def patch_namespaced_custom_object(self, **kwargs):
        patch = kwargs["body"]
        assert patch["metadata"]["resourceVersion"] == self.body["metadata"]["resourceVersion"]
        self.object_patches.append(copy.deepcopy(patch))
        annotations = self.body["metadata"].setdefault("annotations", {})
        for key, value in patch["metadata"]["annotations"].items():
            if value is None:
                annotations.pop(key, None)
            else:
                annotations[key] = value
        self._bump()
        return copy.deepcopy(self.body)

    async def patch_namespaced_custom_object_status(self, **kwargs):
        patch = kwargs["body"]
        assert patch["metadata"]["resourceVersion"] == self.body["metadata"]["resourceVersion"]
        self.status_patches.append(copy.deepcopy(patch))
        self.body["status"] = copy.deepcopy(patch["status"])
        self._bump()
        return copy.deepcopy(self.body)


def attach_fake_api(cluster: AerospikeCluster) -> FakeClusterApi:
    api = FakeClusterApi(cluster.body)
    cluster.custom_objects_api = api
    return api
