"""Version upgrades of an AerospikeCluster.

An upgrade goes through the phases stored in the upgrade-status annotation:

    (none) --> backup --> started --> (none)
                 |           |
                 +--------> failed

Every namespace is backed up before the first pod is touched. Pods are then
restarted one at a time with the new image. A failed upgrade is terminal and
requires manual intervention.
"""

import logging
from logging import Logger
from kubernetes_asyncio.client import V1Pod

from aerospike_operator.common.models.version import VersionUpgrade
from aerospike_operator.resources.aerospikecluster import AerospikeCluster
from aerospike_operator.resources.backup import UpgradeBackups
from aerospike_operator.resources.pods import PodLifecycleManager
from aerospike_operator.types.models import UpgradePhase
from aerospike_operator.utils import events
from aerospike_operator.utils.errors import ClusterBackupFailed, PodUpgradeFailedError


class UpgradeOrchestrator:
    """Drives an AerospikeCluster from its running version to the desired one."""

    logger: Logger

    def __init__(
        self,
        cluster: AerospikeCluster,
        pod_manager: PodLifecycleManager,
        backups: UpgradeBackups = None,
        logger: Logger = None,
    ):
        self.cluster = cluster
        self.pod_manager = pod_manager
        self.logger = logger or logging.getLogger(__name__)
        self.backups = backups or UpgradeBackups(cluster, logger=self.logger)
        # captured before the spec is mirrored into the status
        self.source = cluster.status.version
        self.target = cluster.spec.version

    @property
    def upgrade(self) -> VersionUpgrade:
        return VersionUpgrade.from_str(self.source, self.target)

    async def advance(self) -> bool:
        """Move the upgrade forward. Returns whether pods may be upgraded now."""
        match self.cluster.upgrade_phase:
            case UpgradePhase.NONE:
                await self.backups.create_backups()
                await self.signal_backup_started()
                return False
            case UpgradePhase.BACKUP:
                try:
                    finished = await self.backups.backups_finished()
                except ClusterBackupFailed as ex:
                    self.logger.error(f"pre-upgrade backup of {self.cluster.key} failed: {ex}")
                    await self.signal_backup_failed()
                    await self.signal_upgrade_failed()
                    return False
                if not finished:
                    self.logger.debug("waiting for backups to finish before upgrading")
                    return False
                await self.signal_backup_finished()
                await self.signal_upgrade_started()
                return True
            case UpgradePhase.STARTED:
                return True
            case UpgradePhase.FAILED:
                return False

    async def maybe_upgrade_pod(self, pod: V1Pod) -> V1Pod:
        """Restart the pod with the desired version unless it already runs it.

        Raises:
            PodUpgradeFailedError: If the restarted pod still reports another version.
        """
        name = pod.metadata.name
        target = self.cluster.spec.version
        version = await self.pod_manager.node_inspector.server_version(pod)
        if version == target:
            return pod

        self.logger.debug(f"upgrading pod {name} to version {target}")
        events.record(
            self.cluster.body,
            events.REASON_NODE_UPGRADE_STARTED,
            f"upgrading pod {name} to version {target}",
        )
        new_pod = await self.pod_manager.safe_restart(pod, self.upgrade.get_strategy())
        version = await self.pod_manager.node_inspector.server_version(new_pod)
        if version != target:
            events.record_warning(
                self.cluster.body,
                events.REASON_NODE_UPGRADE_FAILED,
                f"failed to upgrade pod {name} to version {target}",
            )
            raise PodUpgradeFailedError(f"failed to upgrade pod {name} to version {target}")

        events.record(
            self.cluster.body,
            events.REASON_NODE_UPGRADE_FINISHED,
            f"upgraded pod {name} to version {target}",
        )
        return new_pod

    async def _signal(
        self,
        condition: str,
        reason: str,
        message: str,
        phase: UpgradePhase = None,
        warning: bool = False,
    ):
        self.cluster.add_condition(condition, True, reason, message)
        if phase is not None:
            self.cluster.set_upgrade_phase(phase)
        await self.cluster.apply(status_fields=["conditions"])
        if warning:
            events.record_warning(self.cluster.body, reason, message)
        else:
            events.record(self.cluster.body, reason, message)

    async def signal_backup_started(self):
        await self._signal(
            events.CONDITION_AUTO_BACKUP_STARTED,
            events.REASON_CLUSTER_AUTO_BACKUP_STARTED,
            "cluster backup started",
            phase=UpgradePhase.BACKUP,
        )

    async def signal_backup_finished(self):
        await self._signal(
            events.CONDITION_AUTO_BACKUP_FINISHED,
            events.REASON_CLUSTER_AUTO_BACKUP_FINISHED,
            "cluster backup finished",
        )

    async def signal_backup_failed(self):
        await self._signal(
            events.CONDITION_AUTO_BACKUP_FAILED,
            events.REASON_CLUSTER_AUTO_BACKUP_FAILED,
            "cluster backup failed",
            warning=True,
        )

    async def signal_upgrade_started(self):
        await self._signal(
            events.CONDITION_UPGRADE_STARTED,
            events.REASON_CLUSTER_UPGRADE_STARTED,
            f"upgrade from version {self.source} to {self.target} started",
            phase=UpgradePhase.STARTED,
        )

    async def signal_upgrade_failed(self):
        await self._signal(
            events.CONDITION_UPGRADE_FAILED,
            events.REASON_CLUSTER_UPGRADE_FAILED,
            f"upgrade from version {self.source} to {self.target} failed",
            phase=UpgradePhase.FAILED,
            warning=True,
        )

    async def signal_upgrade_finished(self):
        await self._signal(
            events.CONDITION_UPGRADE_FINISHED,
            events.REASON_CLUSTER_UPGRADE_FINISHED,
            f"finished upgrade from version {self.source} to {self.target}",
            phase=UpgradePhase.NONE,
        )
