"""Namespace backup and restore requests.

Backups and restores are requested by creating AerospikeNamespaceBackup and
AerospikeNamespaceRestore objects, which are carried out by a separate job
handler. The operator creates backups of every namespace before upgrading a
cluster and waits for them to finish.
"""

import logging
from logging import Logger
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Tuple, Union

from aerospike_operator.common.models.labels import Labels
from aerospike_operator.resources.aerospikecluster import AerospikeCluster
from aerospike_operator.resources.base import BaseResource
from aerospike_operator.types.models import AerospikeClusterResources
from aerospike_operator.utils import events
from aerospike_operator.utils.errors import ClusterBackupFailed
from aerospike_operator.utils.helpers import has_true_condition
from aerospike_operator.utils.storage import backup_metadata, storage_object_names

GROUP_NAME = "aerospike.travelaudience.com"
GROUP_VERSION = "v1alpha2"
BACKUP_KIND = "AerospikeNamespaceBackup"
BACKUP_PLURAL = "aerospikenamespacebackups"
RESTORE_KIND = "AerospikeNamespaceRestore"
RESTORE_PLURAL = "aerospikenamespacerestores"


class NamespaceBackup(NamedTuple):
    name: str
    namespace: str
    target_cluster: str
    target_namespace: str
    storage: Dict[str, Any]
    ttl: Optional[str] = None
    conditions: List[Dict] = []


class NamespaceRestore(NamedTuple):
    name: str
    namespace: str
    target_cluster: str
    target_namespace: str
    storage: Dict[str, Any]
    ttl: Optional[str] = None
    conditions: List[Dict] = []


NamespaceOperation = Union[NamespaceBackup, NamespaceRestore]


def from_body(body: Mapping[str, Any]) -> NamespaceOperation:
    """Build a backup or restore from a custom object."""
    metadata = body.get("metadata") or {}
    spec = body.get("spec") or {}
    target = spec.get("target") or {}
    fields = dict(
        name=metadata.get("name"),
        namespace=metadata.get("namespace"),
        target_cluster=target.get("cluster"),
        target_namespace=target.get("namespace"),
        storage=dict(spec.get("storage") or {}),
        ttl=spec.get("ttl"),
        conditions=list((body.get("status") or {}).get("conditions") or []),
    )
    kind = body.get("kind")
    if kind == BACKUP_KIND:
        return NamespaceBackup(**fields)
    if kind == RESTORE_KIND:
        return NamespaceRestore(**fields)
    raise ValueError(f"unexpected kind {kind!r}")


def action(op: NamespaceOperation) -> str:
    match op:
        case NamespaceBackup():
            return "backup"
        case NamespaceRestore():
            return "restore"
    raise TypeError(f"unexpected operation {op!r}")


def job_name(op: NamespaceOperation) -> str:
    """Name of the job carrying out the operation."""
    return f"{op.name}-{action(op)}"


def finished_condition(op: NamespaceOperation) -> str:
    match op:
        case NamespaceBackup():
            return events.CONDITION_BACKUP_FINISHED
        case NamespaceRestore():
            return events.CONDITION_RESTORE_FINISHED
    raise TypeError(f"unexpected operation {op!r}")


def failed_condition(op: NamespaceOperation) -> str:
    match op:
        case NamespaceBackup():
            return events.CONDITION_BACKUP_FAILED
        case NamespaceRestore():
            return events.CONDITION_RESTORE_FAILED
    raise TypeError(f"unexpected operation {op!r}")


def storage_objects(op: NamespaceOperation) -> Tuple[str, str]:
    """Names of the metadata and data objects the operation writes or reads."""
    return storage_object_names(op.name)


def storage_metadata(op: NamespaceOperation) -> Dict[str, str]:
    return backup_metadata(op.target_namespace)


def is_finished(op: NamespaceOperation) -> bool:
    return has_true_condition(op.conditions, finished_condition(op))


def has_failed(op: NamespaceOperation) -> bool:
    return has_true_condition(op.conditions, failed_condition(op))


class UpgradeBackups(BaseResource):
    """Backups taken of every namespace of a cluster before it is upgraded."""

    logger: Logger

    def __init__(self, cluster: AerospikeCluster, logger: Logger = None):
        super().__init__(cluster=cluster.name, namespace=cluster.namespace, labels=cluster.labels)
        self.aerospike_cluster = cluster
        self.logger = logger or logging.getLogger(__name__)

    def backup_name(self, namespace_name: str) -> str:
        return AerospikeClusterResources.upgrade_backup_name(
            namespace_name,
            self.aerospike_cluster.status.version,
            self.aerospike_cluster.spec.version,
        )

    def prepare_namespace_backup(self, namespace_name: str) -> Dict[str, Any]:
        cluster = self.aerospike_cluster
        labels = Labels(self.labels.as_dict()).include_namespace(namespace_name)
        backup_spec = cluster._raw_spec.get("backupSpec") or {}
        spec = {
            "target": {"cluster": cluster.name, "namespace": namespace_name},
            "storage": backup_spec.get("storage"),
        }
        if backup_spec.get("ttl"):
            spec["ttl"] = backup_spec["ttl"]
        return {
            "apiVersion": f"{GROUP_NAME}/{GROUP_VERSION}",
            "kind": BACKUP_KIND,
            "metadata": {
                "name": self.backup_name(namespace_name),
                "namespace": self.namespace,
                "labels": labels.as_dict(),
                "ownerReferences": [cluster.owner_reference_dict()],
            },
            "spec": spec,
        }

    async def create_backups(self):
        """Request a backup of every namespace. Existing requests are kept."""
        for ns in self.aerospike_cluster.spec.namespaces:
            body = self.prepare_namespace_backup(ns.name)
            created = await self.create_custom_object(
                self.custom_objects_api,
                namespace=self.namespace,
                group=GROUP_NAME,
                version=GROUP_VERSION,
                plural=BACKUP_PLURAL,
                body=body,
            )
            if created is None:
                self.logger.debug(f"backup {body['metadata']['name']} already exists")
            else:
                self.logger.info(f"backup {body['metadata']['name']} requested")

    async def fetch_backup(self, namespace_name: str) -> Optional[NamespaceBackup]:
        body = await self.get_custom_object(
            self.custom_objects_api,
            namespace=self.namespace,
            group=GROUP_NAME,
            version=GROUP_VERSION,
            plural=BACKUP_PLURAL,
            name=self.backup_name(namespace_name),
        )
        if body is None:
            return None
        return from_body(body)

    async def backups_finished(self) -> bool:
        """Whether every namespace backup has finished.

        A backup request that disappeared is created again.

        Raises:
            ClusterBackupFailed: If any of the backups failed.
        """
        finished = True
        for ns in self.aerospike_cluster.spec.namespaces:
            backup = await self.fetch_backup(ns.name)
            if backup is None:
                self.logger.warning(f"backup of namespace {ns.name} is missing, requesting it again")
                await self.create_backups()
                return False
            if has_failed(backup):
                raise ClusterBackupFailed(f"backup {backup.name} failed")
            if not is_finished(backup):
                finished = False
        return finished
