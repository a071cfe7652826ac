"""Unit tests for the aerospike.conf renderer."""

import pytest
from aerospike_operator.types.schemas import AerospikeClusterSpecSchema
from aerospike_operator.utils import aerospike_config
from conftest import make_cluster_body


@pytest.fixture
def spec():
    return AerospikeClusterSpecSchema().load(make_cluster_body()["spec"])


class TestRenderConfig:
    def test_deterministic(self, spec):
        first = aerospike_config.render_config("as-cluster", "aerospike", spec)
        second = aerospike_config.render_config("as-cluster", "aerospike", spec)
        assert first == second
        assert aerospike_config.fingerprint(first) == aerospike_config.fingerprint(second)

    def test_mesh_seed_is_discovery_service(self, spec):
        config = aerospike_config.render_config("as-cluster", "aerospike", spec)
        assert "mesh-seed-address-port as-cluster-discovery.aerospike 3002" in config

    def test_node_id_placeholder(self, spec):
        config = aerospike_config.render_config("as-cluster", "aerospike", spec)
        assert f"node-id {aerospike_config.NODE_ID_PLACEHOLDER}" in config

    def test_file_namespace(self, spec):
        config = aerospike_config.render_config("as-cluster", "aerospike", spec)
        assert "namespace as-namespace-0 {" in config
        assert "replication-factor 2" in config
        assert "memory-size 1G" in config
        assert "file /opt/aerospike/data/as-namespace-0/as-namespace-0.dat" in config
        assert "filesize 1G" in config

    def test_device_namespaces(self):
        body = make_cluster_body(
            namespaces=[
                {"name": "ns-a", "storage": {"type": "device", "size": "10G"}},
                {"name": "ns-b", "storage": {"type": "device", "size": "10G"}},
            ]
        )
        spec = AerospikeClusterSpecSchema().load(body["spec"])
        config = aerospike_config.render_config("as-cluster", "aerospike", spec)
        assert "device /dev/xvda" in config
        assert "device /dev/xvdb" in config

    def test_replication_factor_clamped_to_node_count(self):
        body = make_cluster_body(node_count=1)
        spec = AerospikeClusterSpecSchema().load(body["spec"])
        config = aerospike_config.render_config("as-cluster", "aerospike", spec)
        assert "replication-factor 1" in config

    def test_fingerprint_changes_with_spec(self, spec):
        other = AerospikeClusterSpecSchema().load(make_cluster_body(node_count=1)["spec"])
        assert aerospike_config.fingerprint(
            aerospike_config.render_config("as-cluster", "aerospike", spec)
        ) != aerospike_config.fingerprint(
            aerospike_config.render_config("as-cluster", "aerospike", other)
        )
