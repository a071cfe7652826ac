"""Unit tests for namespace backup requests."""

import asyncio
import pytest
from unittest.mock import AsyncMock
from aerospike_operator.common.models.labels import Labels
from aerospike_operator.resources.aerospikecluster import AerospikeCluster
from aerospike_operator.resources.backup import (
    BACKUP_KIND,
    RESTORE_KIND,
    NamespaceBackup,
    NamespaceRestore,
    UpgradeBackups,
    action,
    failed_condition,
    finished_condition,
    from_body,
    has_failed,
    is_finished,
    job_name,
    storage_metadata,
    storage_objects,
)
from aerospike_operator.utils import events
from aerospike_operator.utils.errors import ClusterBackupFailed
from conftest import make_cluster_body

TWO_NAMESPACES = [
    {"name": "ns-a", "storage": {"type": "file", "size": "1G"}},
    {"name": "ns-b", "storage": {"type": "file", "size": "1G"}},
]


def _operation_body(kind, name="ns-a-4004-4100-upgrade", conditions=None):
    return {
        "apiVersion": "aerospike.travelaudience.com/v1alpha2",
        "kind": kind,
        "metadata": {"name": name, "namespace": "aerospike"},
        "spec": {
            "target": {"cluster": "as-cluster", "namespace": "ns-a"},
            "storage": {"type": "gcs", "bucket": "aerospike-backups", "secret": "gcs-secret"},
            "ttl": "7d",
        },
        "status": {"conditions": conditions or []},
    }


def _condition(type, status="True"):
    return {"type": type, "status": status}


class TestNamespaceOperation:
    def test_backup_accessors(self):
        backup = from_body(_operation_body(BACKUP_KIND))
        assert isinstance(backup, NamespaceBackup)
        assert action(backup) == "backup"
        assert job_name(backup) == "ns-a-4004-4100-upgrade-backup"
        assert finished_condition(backup) == events.CONDITION_BACKUP_FINISHED
        assert failed_condition(backup) == events.CONDITION_BACKUP_FAILED
        assert backup.target_cluster == "as-cluster"
        assert backup.target_namespace == "ns-a"
        assert backup.ttl == "7d"

    def test_restore_accessors(self):
        restore = from_body(_operation_body(RESTORE_KIND, name="restore-ns-a"))
        assert isinstance(restore, NamespaceRestore)
        assert action(restore) == "restore"
        assert job_name(restore) == "restore-ns-a-restore"
        assert finished_condition(restore) == events.CONDITION_RESTORE_FINISHED
        assert failed_condition(restore) == events.CONDITION_RESTORE_FAILED

    def test_storage_objects(self):
        backup = from_body(_operation_body(BACKUP_KIND))
        assert storage_objects(backup) == (
            "ns-a-4004-4100-upgrade.json",
            "ns-a-4004-4100-upgrade.asb.gz",
        )
        assert storage_metadata(backup) == {"namespace": "ns-a"}

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            from_body(_operation_body("AerospikeCluster"))

    def test_completion(self):
        pending = from_body(_operation_body(BACKUP_KIND, conditions=[_condition("BackupStarted")]))
        finished = from_body(
            _operation_body(
                BACKUP_KIND,
                conditions=[_condition("BackupStarted"), _condition("BackupFinished")],
            )
        )
        failed = from_body(_operation_body(BACKUP_KIND, conditions=[_condition("BackupFailed")]))
        not_failed = from_body(
            _operation_body(BACKUP_KIND, conditions=[_condition("BackupFailed", "False")])
        )
        assert not is_finished(pending) and not has_failed(pending)
        assert is_finished(finished)
        assert has_failed(failed)
        assert not has_failed(not_failed)

    def test_restore_ignores_backup_conditions(self):
        restore = from_body(_operation_body(RESTORE_KIND, conditions=[_condition("BackupFinished")]))
        assert not is_finished(restore)


class TestUpgradeBackups:
    @pytest.fixture
    def cluster(self):
        body = make_cluster_body(version="4.1.0.0", status_version="4.0.0.4", namespaces=TWO_NAMESPACES)
        return AerospikeCluster.from_body(body)

    @pytest.fixture
    def backups(self, cluster):
        upgrade_backups = UpgradeBackups(cluster)
        upgrade_backups.custom_objects_api = AsyncMock()
        return upgrade_backups

    def test_prepare_namespace_backup(self, backups, cluster):
        body = backups.prepare_namespace_backup("ns-a")
        assert body["kind"] == BACKUP_KIND
        assert body["metadata"]["name"] == "ns-a-4004-4100-upgrade"
        assert body["metadata"]["labels"][Labels.AEROSPIKE_NAMESPACE_LABEL] == "ns-a"
        assert body["metadata"]["labels"][Labels.AEROSPIKE_CLUSTER_LABEL] == "as-cluster"
        assert body["metadata"]["ownerReferences"][0]["uid"] == cluster.uid
        assert body["spec"] == {
            "target": {"cluster": "as-cluster", "namespace": "ns-a"},
            "storage": {"type": "gcs", "bucket": "aerospike-backups", "secret": "gcs-secret"},
            "ttl": "7d",
        }

    def test_create_backups_for_every_namespace(self, backups):
        backups.create_custom_object = AsyncMock(side_effect=[{}, None])

        asyncio.run(backups.create_backups())

        names = [c.kwargs["body"]["metadata"]["name"] for c in backups.create_custom_object.await_args_list]
        assert names == ["ns-a-4004-4100-upgrade", "ns-b-4004-4100-upgrade"]

    def test_backups_finished(self, backups):
        backups.get_custom_object = AsyncMock(
            side_effect=[
                _operation_body(BACKUP_KIND, conditions=[_condition("BackupFinished")]),
                _operation_body(BACKUP_KIND, conditions=[_condition("BackupFinished")]),
            ]
        )
        assert asyncio.run(backups.backups_finished())

    def test_backups_pending(self, backups):
        backups.get_custom_object = AsyncMock(
            side_effect=[
                _operation_body(BACKUP_KIND, conditions=[_condition("BackupFinished")]),
                _operation_body(BACKUP_KIND, conditions=[_condition("BackupStarted")]),
            ]
        )
        assert not asyncio.run(backups.backups_finished())

    def test_backup_failed(self, backups):
        backups.get_custom_object = AsyncMock(
            side_effect=[
                _operation_body(BACKUP_KIND, conditions=[_condition("BackupStarted")]),
                _operation_body(BACKUP_KIND, conditions=[_condition("BackupFailed")]),
            ]
        )
        with pytest.raises(ClusterBackupFailed):
            asyncio.run(backups.backups_finished())

    def test_missing_backup_is_requested_again(self, backups):
        backups.get_custom_object = AsyncMock(return_value=None)
        backups.create_backups = AsyncMock()

        assert not asyncio.run(backups.backups_finished())
        backups.create_backups.assert_awaited_once()
