"""Routing of events on child objects to the owning AerospikeCluster."""

from typing import Any, Mapping, Optional

from aerospike_operator.controller.workqueue import WorkQueue

CLUSTER_KIND = "AerospikeCluster"
CLUSTER_GROUP = "aerospike.travelaudience.com"


def cluster_key(namespace: str, name: str) -> str:
    return f"{namespace}/{name}"


def split_key(key: str):
    namespace, _, name = key.partition("/")
    return namespace, name


def resolve_owner_key(body: Mapping[str, Any]) -> Optional[str]:
    """Key of the AerospikeCluster controlling the given object, if any."""
    metadata = body.get("metadata") or {}
    for ref in metadata.get("ownerReferences") or []:
        if not ref.get("controller"):
            continue
        if ref.get("kind") != CLUSTER_KIND:
            continue
        api_version = ref.get("apiVersion", "")
        if api_version.split("/")[0] != CLUSTER_GROUP:
            continue
        return cluster_key(metadata.get("namespace", ""), ref["name"])
    return None


def enqueue_owner(queue: WorkQueue, body: Mapping[str, Any]) -> Optional[str]:
    """Enqueue the owning cluster of a child object. Returns the key enqueued."""
    key = resolve_owner_key(body)
    if key is not None:
        queue.add(key)
    return key
