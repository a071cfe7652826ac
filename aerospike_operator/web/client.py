"""Read-only info queries against aerospike nodes."""

import logging
from typing import Dict
from kubernetes_asyncio.client import V1Pod

from .session import InfoSession, TIMEOUT
from .error import InfoError, MissingValueError, NodeNotFoundError

logger = logging.getLogger(__name__)

SERVICE_PORT = 3000
NODE_ID_ANNOTATION = "aerospike.travelaudience.com/node-id"

BUILD = "build"
NODE = "node"
STATISTICS = "statistics"

_MIGRATIONS_REMAINING = "migrate_partitions_remaining"
_MIGRATIONS_TX_REMAINING = "migrate_tx_partitions_remaining"
_MIGRATIONS_RX_REMAINING = "migrate_rx_partitions_remaining"
_MIGRATIONS_PROGRESS_SEND = "migrate_progress_send"
_MIGRATIONS_PROGRESS_RECV = "migrate_progress_recv"


def parse_info_pairs(value: str) -> Dict[str, str]:
    """Parse a string in the form ``a=b;c=d;`` trimming whitespace."""
    result = {}
    for pair in value.split(";"):
        parts = pair.split("=")
        if len(parts) == 2:
            result[parts[0].strip()] = parts[1].strip()
    return result


def _int_value(stats: Dict[str, str], key: str) -> int:
    try:
        return int(stats[key])
    except ValueError:
        raise MissingValueError(f"{key} is not an integer: {stats[key]!r}") from None


def _counter(stats: Dict[str, str], key: str) -> int:
    if key not in stats:
        return 0
    return _int_value(stats, key)


class AerospikeInfoClient:
    """Client for the info endpoint of a single aerospike node."""

    def __init__(self, host: str, port: int = SERVICE_PORT, timeout: float = TIMEOUT) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout

    async def request(self, command: str) -> str:
        async with InfoSession(self.host, self.port, self.timeout) as session:
            result = await session.request(command)
        if command not in result:
            raise MissingValueError(f"{command} is not present in the response from {self.host}")
        return result[command]

    async def build(self) -> str:
        """Version of the aerospike server."""
        return (await self.request(BUILD)).strip()

    async def node(self) -> str:
        """Id of the node."""
        return (await self.request(NODE)).strip()

    async def statistics(self) -> Dict[str, str]:
        return parse_info_pairs(await self.request(STATISTICS))

    async def cluster_size(self) -> int:
        stats = await self.statistics()
        if "cluster_size" not in stats:
            raise MissingValueError("cluster_size is not present")
        return _int_value(stats, "cluster_size")

    async def migrations_in_progress(self) -> bool:
        stats = await self.statistics()
        if _MIGRATIONS_REMAINING in stats:
            return _int_value(stats, _MIGRATIONS_REMAINING) > 0
        if _MIGRATIONS_TX_REMAINING in stats or _MIGRATIONS_RX_REMAINING in stats:
            return (
                _counter(stats, _MIGRATIONS_TX_REMAINING) > 0
                or _counter(stats, _MIGRATIONS_RX_REMAINING) > 0
            )
        if _MIGRATIONS_PROGRESS_SEND in stats or _MIGRATIONS_PROGRESS_RECV in stats:
            return (
                _counter(stats, _MIGRATIONS_PROGRESS_SEND) > 0
                or _counter(stats, _MIGRATIONS_PROGRESS_RECV) > 0
            )
        raise MissingValueError("migration statistics are not present")


class NodeInspector:
    """Runs info queries against the aerospike node hosted by a pod."""

    def __init__(self, port: int = SERVICE_PORT, timeout: float = TIMEOUT) -> None:
        self.port = port
        self.timeout = timeout

    def client_for(self, pod: V1Pod) -> AerospikeInfoClient:
        """Client for the node hosted by the pod.

        Raises:
            InfoError: If the pod has not been assigned an ip address yet.
        """
        pod_ip = pod.status.pod_ip if pod.status is not None else None
        if not pod_ip:
            raise InfoError(f"pod {pod.metadata.name} has no ip address")
        return AerospikeInfoClient(pod_ip, self.port, self.timeout)

    async def server_version(self, pod: V1Pod) -> str:
        return await self.client_for(pod).build()

    async def node_id(self, pod: V1Pod) -> str:
        return await self.client_for(pod).node()

    async def cluster_size(self, pod: V1Pod) -> int:
        return await self.client_for(pod).cluster_size()

    async def has_migrations_in_progress(self, pod: V1Pod) -> bool:
        """Whether the node backing the pod is still migrating partitions.

        Raises:
            NodeNotFoundError: If the pod hosts a node other than the one it was assigned.
        """
        client = self.client_for(pod)
        expected = (pod.metadata.annotations or {}).get(NODE_ID_ANNOTATION, "")
        actual = await client.node()
        if actual.lower() != expected.lower():
            raise NodeNotFoundError(f"failed to find node {expected} in the cluster")
        return await client.migrations_in_progress()
