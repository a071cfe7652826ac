"""Rendering of the aerospike server configuration file.

The rendered text is a pure function of the cluster name, the kubernetes
namespace and the cluster spec. Its sha256 digest is used to detect pods
running with an outdated configuration.
"""

import hashlib
from typing import List, Optional
from aerospike_operator.types.models import AerospikeClusterSpec, NamespaceSpec
from aerospike_operator.types.models import AerospikeClusterResources
from aerospike_operator.types.schemas.storage import (
    STORAGE_TYPE_FILE,
    STORAGE_TYPE_DEVICE,
)

SERVICE_PORT = 3000
FABRIC_PORT = 3001
HEARTBEAT_PORT = 3002
INFO_PORT = 3003

CONFIG_FILE_NAME = "aerospike.conf"

#: Replaced with the node id of each pod by the init container
NODE_ID_PLACEHOLDER = "__SERVICE__NODE_ID__"

DEFAULT_FILE_PATH = "/opt/aerospike/data/"
DEFAULT_DEVICE_PATH_PREFIX = "/dev/xvd"

_SERVICE_BLOCK = """service {{
    user root
    group root
    paxos-single-replica-limit 1
    pidfile /var/run/aerospike/asd.pid
    service-threads 4
    transaction-queues 4
    transaction-threads-per-queue 4
    proto-fd-max 15000
    node-id {node_id}
}}
"""

_LOGGING_BLOCK = """logging {
    file /var/log/aerospike/aerospike.log {
        context any info
    }

    console {
        context any info
    }
}
"""

_NETWORK_BLOCK = """network {{
    service {{
        address any
        port {service_port}
    }}

    heartbeat {{
        mode mesh
        port {heartbeat_port}

        mesh-seed-address-port {mesh_address} {heartbeat_port}

        interval 100
        timeout 10
    }}

    fabric {{
        port {fabric_port}
    }}

    info {{
        port {info_port}
    }}
}}
"""


def device_path(index: int) -> str:
    """Block device path of the namespace at the given position."""
    return f"{DEFAULT_DEVICE_PATH_PREFIX}{chr(ord('a') + index)}"


def file_mount_path(namespace_name: str) -> str:
    return f"{DEFAULT_FILE_PATH}{namespace_name}"


def replication_factor(ns: NamespaceSpec, node_count: int) -> Optional[int]:
    """Effective replication factor, clamped to the number of nodes."""
    rf = ns.replication_factor or 0
    if rf <= 0:
        return None
    return min(rf, node_count)


def default_ttl_seconds(ns: NamespaceSpec) -> Optional[int]:
    if not ns.default_ttl:
        return None
    value = ns.default_ttl
    if value.endswith("s"):
        value = value[:-1]
    try:
        return int(value)
    except ValueError:
        return None


def render_namespace(ns: NamespaceSpec, index: int, node_count: int) -> str:
    lines: List[str] = [f"namespace {ns.name} {{"]

    rf = replication_factor(ns, node_count)
    if rf:
        lines.append(f"    replication-factor {rf}")
    if ns.memory_size:
        lines.append(f"    memory-size {ns.memory_size}")
    ttl = default_ttl_seconds(ns)
    if ttl:
        lines.append(f"    default-ttl {ttl}")

    lines.append("    storage-engine device {")
    if ns.storage.type == STORAGE_TYPE_FILE:
        lines.append(f"        file {DEFAULT_FILE_PATH}{ns.name}/{ns.name}.dat")
        lines.append(f"        filesize {ns.storage.size}")
    elif ns.storage.type == STORAGE_TYPE_DEVICE:
        lines.append(f"        device {device_path(index)}")
    lines.append("    }")
    lines.append("}")
    return "\n".join(lines) + "\n"


def render_config(cluster_name: str, k8s_namespace: str, spec: AerospikeClusterSpec) -> str:
    """Render the aerospike.conf shared by every pod of the cluster."""
    mesh_address = AerospikeClusterResources.qualified_discovery_service_name(
        cluster_name, k8s_namespace
    )
    blocks = [
        _SERVICE_BLOCK.format(node_id=NODE_ID_PLACEHOLDER),
        _LOGGING_BLOCK,
        _NETWORK_BLOCK.format(
            service_port=SERVICE_PORT,
            heartbeat_port=HEARTBEAT_PORT,
            fabric_port=FABRIC_PORT,
            info_port=INFO_PORT,
            mesh_address=mesh_address,
        ),
    ]
    for idx, ns in enumerate(spec.namespaces):
        blocks.append(render_namespace(ns, idx, spec.node_count))
    return "\n".join(blocks)


def fingerprint(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
