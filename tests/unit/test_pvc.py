"""Unit tests for persistent volume claim reuse."""

import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock
from kubernetes_asyncio.client import (
    V1ObjectMeta,
    V1PersistentVolumeClaim,
    V1PersistentVolumeClaimList,
)
from aerospike_operator.common.models.labels import Labels
from aerospike_operator.resources.pvc import (
    LAST_UNMOUNTED_ON_ANNOTATION,
    POD_ANNOTATION,
    PVC_TTL_ANNOTATION,
    VolumeClaimManager,
    is_reusable,
)

NOW = datetime(2024, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


def _pvc(
    name="as-cluster-0-as-namespace-0-abcde",
    pod="as-cluster-0",
    namespace="as-namespace-0",
    unmounted_on="2024-03-10T00:00:00Z",
    ttl="1d",
    created=None,
    deleted=None,
):
    annotations = {POD_ANNOTATION: pod}
    if unmounted_on is not None:
        annotations[LAST_UNMOUNTED_ON_ANNOTATION] = unmounted_on
    if ttl is not None:
        annotations[PVC_TTL_ANNOTATION] = ttl
    return V1PersistentVolumeClaim(
        metadata=V1ObjectMeta(
            name=name,
            annotations=annotations,
            labels={Labels.AEROSPIKE_NAMESPACE_LABEL: namespace},
            creation_timestamp=created,
            deletion_timestamp=deleted,
        )
    )


class TestIsReusable:
    def test_within_ttl(self):
        assert is_reusable(_pvc(), "as-cluster-0", "as-namespace-0", at=NOW)

    def test_expired(self):
        assert not is_reusable(_pvc(ttl="6h"), "as-cluster-0", "as-namespace-0", at=NOW)

    def test_zero_ttl_never_expires(self):
        pvc = _pvc(unmounted_on="2020-01-01T00:00:00Z", ttl="0d")
        assert is_reusable(pvc, "as-cluster-0", "as-namespace-0", at=NOW)

    def test_still_mounted(self):
        assert not is_reusable(_pvc(unmounted_on=None), "as-cluster-0", "as-namespace-0", at=NOW)

    def test_other_pod(self):
        assert not is_reusable(_pvc(), "as-cluster-1", "as-namespace-0", at=NOW)

    def test_other_namespace(self):
        assert not is_reusable(_pvc(), "as-cluster-0", "as-namespace-1", at=NOW)

    def test_missing_ttl(self):
        assert not is_reusable(_pvc(ttl=None), "as-cluster-0", "as-namespace-0", at=NOW)

    def test_claim_being_deleted(self):
        pvc = _pvc(unmounted_on="2099-01-01T00:00:00Z", deleted=NOW)
        assert not is_reusable(pvc, "as-cluster-0", "as-namespace-0", at=NOW)


class TestVolumeClaimManager:
    @pytest.fixture
    def manager(self, cluster):
        return VolumeClaimManager(cluster)

    def test_prepare_claim(self, manager, cluster):
        ns = cluster.spec.namespaces[0]
        pvc = manager.prepare_claim("as-cluster-0", ns)
        assert pvc.metadata.generate_name == "as-cluster-0-as-namespace-0-"
        assert pvc.metadata.annotations == {
            POD_ANNOTATION: "as-cluster-0",
            PVC_TTL_ANNOTATION: "0d",
        }
        assert pvc.metadata.labels[Labels.AEROSPIKE_NAMESPACE_LABEL] == "as-namespace-0"
        assert pvc.spec.volume_mode == "Filesystem"
        assert pvc.spec.resources == {"requests": {"storage": "1G"}}
        assert pvc.spec.storage_class_name is None
        assert pvc.metadata.owner_references[0].name == "as-cluster"

    def test_find_reusable_prefers_newest(self, manager, cluster):
        older = _pvc(name="older", unmounted_on="2099-01-01T00:00:00Z", created=NOW - timedelta(days=2))
        newer = _pvc(name="newer", unmounted_on="2099-01-01T00:00:00Z", created=NOW)
        manager.list_persistent_volume_claims = AsyncMock(
            return_value=V1PersistentVolumeClaimList(items=[older, newer])
        )
        manager.core_v1_api = AsyncMock()

        found = asyncio.run(manager.find_reusable("as-cluster-0", cluster.spec.namespaces[0]))

        assert found.metadata.name == "newer"

    def test_claim_for_creates_when_nothing_reusable(self, manager, cluster):
        manager.list_persistent_volume_claims = AsyncMock(
            return_value=V1PersistentVolumeClaimList(items=[])
        )
        manager.create_persistent_volume_claim = AsyncMock(
            side_effect=lambda api, namespace, pvc: pvc
        )
        manager.core_v1_api = AsyncMock()

        pvc = asyncio.run(manager.claim_for("as-cluster-0", cluster.spec.namespaces[0]))

        manager.create_persistent_volume_claim.assert_awaited_once()
        assert pvc.metadata.generate_name == "as-cluster-0-as-namespace-0-"

    def test_claim_for_skips_claim_being_deleted(self, manager, cluster):
        terminating = _pvc(name="old", unmounted_on="2099-01-01T00:00:00Z", deleted=NOW)
        manager.list_persistent_volume_claims = AsyncMock(
            return_value=V1PersistentVolumeClaimList(items=[terminating])
        )
        manager.create_persistent_volume_claim = AsyncMock(
            side_effect=lambda api, namespace, pvc: pvc
        )
        manager.core_v1_api = AsyncMock()

        pvc = asyncio.run(manager.claim_for("as-cluster-0", cluster.spec.namespaces[0]))

        manager.create_persistent_volume_claim.assert_awaited_once()
        assert pvc.metadata.name is None
        assert pvc.metadata.generate_name == "as-cluster-0-as-namespace-0-"

    def test_claim_for_without_reuse_always_creates(self, manager, cluster):
        reusable = _pvc(name="reusable", unmounted_on="2099-01-01T00:00:00Z")
        manager.list_persistent_volume_claims = AsyncMock(
            return_value=V1PersistentVolumeClaimList(items=[reusable])
        )
        manager.create_persistent_volume_claim = AsyncMock(
            side_effect=lambda api, namespace, pvc: pvc
        )
        manager.core_v1_api = AsyncMock()

        pvc = asyncio.run(
            manager.claim_for("as-cluster-0", cluster.spec.namespaces[0], reuse=False)
        )

        manager.list_persistent_volume_claims.assert_not_awaited()
        assert pvc.metadata.generate_name == "as-cluster-0-as-namespace-0-"
