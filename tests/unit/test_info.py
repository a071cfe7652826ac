"""Unit tests for the aerospike info protocol client."""

import asyncio
import pytest
from unittest.mock import AsyncMock, patch
from kubernetes_asyncio.client import V1ObjectMeta, V1Pod, V1PodStatus
from aerospike_operator.web import (
    AerospikeInfoClient,
    InfoError,
    MissingValueError,
    NodeInspector,
    NodeNotFoundError,
    ProtocolError,
    parse_info_pairs,
)
from aerospike_operator.web.client import NODE_ID_ANNOTATION
from aerospike_operator.web.session import (
    HEADER_SIZE,
    InfoSession,
    decode_header,
    decode_response,
    encode_header,
    encode_request,
)


class TestCodec:
    def test_header(self):
        header = encode_header(300)
        assert header == bytes([2, 1, 0, 0, 0, 0, 1, 44])
        assert decode_header(header) == 300

    def test_request(self):
        request = encode_request(["build", "node"])
        assert request[HEADER_SIZE:] == b"build\nnode\n"
        assert decode_header(request[:HEADER_SIZE]) == len(b"build\nnode\n")

    @pytest.mark.parametrize(
        "header",
        [bytes([3, 1, 0, 0, 0, 0, 0, 1]), bytes([2, 3, 0, 0, 0, 0, 0, 1]), bytes([2, 1, 0])],
    )
    def test_invalid_header(self, header):
        with pytest.raises(ProtocolError):
            decode_header(header)

    def test_response(self):
        body = b"build\t4.2.0.3\nnode\tBB9020011AC4202\n"
        assert decode_response(body) == {"build": "4.2.0.3", "node": "BB9020011AC4202"}

    def test_parse_info_pairs(self):
        assert parse_info_pairs(" cluster_size = 3;migrate_partitions_remaining=0;garbage;") == {
            "cluster_size": "3",
            "migrate_partitions_remaining": "0",
        }


def _serve(responses):
    """Start a fake aerospike node answering info requests from ``responses``."""

    async def handle(reader, writer):
        header = await reader.readexactly(HEADER_SIZE)
        body = await reader.readexactly(decode_header(header))
        commands = [c for c in body.decode().split("\n") if c]
        reply = "".join(f"{c}\t{responses[c]}\n" for c in commands if c in responses).encode()
        writer.write(encode_header(len(reply)) + reply)
        await writer.drain()
        writer.close()

    return asyncio.start_server(handle, "127.0.0.1", 0)


class TestInfoSession:
    def test_request_roundtrip(self):
        async def run():
            server = await _serve({"build": "4.2.0.3"})
            port = server.sockets[0].getsockname()[1]
            async with server:
                async with InfoSession("127.0.0.1", port, timeout=2) as session:
                    return await session.request("build")

        assert asyncio.run(run()) == {"build": "4.2.0.3"}

    def test_client_commands(self):
        async def run():
            server = await _serve(
                {
                    "build": "4.2.0.3\n",
                    "node": "BB9020011AC4202",
                    "statistics": "cluster_size=3;migrate_partitions_remaining=12",
                }
            )
            port = server.sockets[0].getsockname()[1]
            async with server:
                client = AerospikeInfoClient("127.0.0.1", port, timeout=2)
                return (
                    await client.build(),
                    await client.node(),
                    await client.cluster_size(),
                    await client.migrations_in_progress(),
                )

        assert asyncio.run(run()) == ("4.2.0.3", "BB9020011AC4202", 3, True)

    def test_missing_value(self):
        async def run():
            server = await _serve({})
            port = server.sockets[0].getsockname()[1]
            async with server:
                await AerospikeInfoClient("127.0.0.1", port, timeout=2).build()

        with pytest.raises(MissingValueError):
            asyncio.run(run())


class TestMigrations:
    @pytest.mark.parametrize(
        "stats,expected",
        [
            ({"migrate_partitions_remaining": "0"}, False),
            ({"migrate_partitions_remaining": "5"}, True),
            ({"migrate_tx_partitions_remaining": "0", "migrate_rx_partitions_remaining": "2"}, True),
            ({"migrate_progress_send": "0", "migrate_progress_recv": "0"}, False),
        ],
    )
    def test_migrations_in_progress(self, stats, expected):
        client = AerospikeInfoClient("127.0.0.1")
        with patch.object(client, "statistics", AsyncMock(return_value=stats)):
            assert asyncio.run(client.migrations_in_progress()) is expected

    def test_missing_statistics(self):
        client = AerospikeInfoClient("127.0.0.1")
        with patch.object(client, "statistics", AsyncMock(return_value={})):
            with pytest.raises(MissingValueError):
                asyncio.run(client.migrations_in_progress())

    @pytest.mark.parametrize(
        "stats",
        [
            {"migrate_tx_partitions_remaining": "n/a", "migrate_rx_partitions_remaining": "0"},
            {"migrate_progress_send": "0", "migrate_progress_recv": ""},
        ],
    )
    def test_non_numeric_counters(self, stats):
        client = AerospikeInfoClient("127.0.0.1")
        with patch.object(client, "statistics", AsyncMock(return_value=stats)):
            with pytest.raises(MissingValueError):
                asyncio.run(client.migrations_in_progress())

    def test_single_counter_present(self):
        client = AerospikeInfoClient("127.0.0.1")
        with patch.object(
            client, "statistics", AsyncMock(return_value={"migrate_rx_partitions_remaining": "3"})
        ):
            assert asyncio.run(client.migrations_in_progress()) is True


class TestNodeInspector:
    def _pod(self, node_id="bb9020011ac4202"):
        return V1Pod(
            metadata=V1ObjectMeta(name="as-cluster-0", annotations={NODE_ID_ANNOTATION: node_id}),
            status=V1PodStatus(pod_ip="10.0.0.1"),
        )

    def test_node_mismatch(self):
        inspector = NodeInspector()
        with patch.object(AerospikeInfoClient, "node", AsyncMock(return_value="AAAA")):
            with pytest.raises(NodeNotFoundError):
                asyncio.run(inspector.has_migrations_in_progress(self._pod()))

    def test_node_match_is_case_insensitive(self):
        inspector = NodeInspector()
        with patch.object(
            AerospikeInfoClient, "node", AsyncMock(return_value="BB9020011AC4202")
        ), patch.object(
            AerospikeInfoClient, "migrations_in_progress", AsyncMock(return_value=False)
        ):
            assert asyncio.run(inspector.has_migrations_in_progress(self._pod())) is False

    def test_pending_pod_has_no_client(self):
        pod = self._pod()
        pod.status.pod_ip = None
        with pytest.raises(InfoError, match="as-cluster-0"):
            NodeInspector().client_for(pod)

    def test_pod_without_status_has_no_client(self):
        pod = self._pod()
        pod.status = None
        with pytest.raises(InfoError):
            NodeInspector().client_for(pod)

    def test_client_targets_pod_ip(self):
        client = NodeInspector(port=3100, timeout=4).client_for(self._pod())
        assert (client.host, client.port, client.timeout) == ("10.0.0.1", 3100, 4)
