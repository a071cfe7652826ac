import kopf
import logging
from typing import Any, Mapping

logger = logging.getLogger(__name__)

NORMAL = "Normal"
WARNING = "Warning"

# Event reasons
REASON_VALIDATION_ERROR = "ValidationError"
REASON_NODE_STARTING = "NodeStarting"
REASON_NODE_STARTED = "NodeStarted"
REASON_NODE_STARTED_FAILED = "NodeStartedFailed"
REASON_NODE_UPGRADE_STARTED = "NodeUpgradeStarted"
REASON_NODE_UPGRADE_FAILED = "NodeUpgradeFailed"
REASON_NODE_UPGRADE_FINISHED = "NodeUpgradeFinished"
REASON_WAIT_FOR_MIGRATIONS_STARTED = "WaitForMigrationsStarted"
REASON_WAITING_FOR_MIGRATIONS = "WaitingForMigrations"
REASON_WAIT_FOR_MIGRATIONS_FINISHED = "WaitForMigrationsFinished"
REASON_CLUSTER_UPGRADE_STARTED = "ClusterUpgradeStarted"
REASON_CLUSTER_UPGRADE_FAILED = "ClusterUpgradeFailed"
REASON_CLUSTER_UPGRADE_FINISHED = "ClusterUpgradeFinished"
REASON_CLUSTER_AUTO_BACKUP_STARTED = "ClusterAutoBackupStarted"
REASON_CLUSTER_AUTO_BACKUP_FINISHED = "ClusterAutoBackupFinished"
REASON_CLUSTER_AUTO_BACKUP_FAILED = "ClusterAutoBackupFailed"

# Condition types
CONDITION_BACKUP_STARTED = "BackupStarted"
CONDITION_BACKUP_FINISHED = "BackupFinished"
CONDITION_BACKUP_FAILED = "BackupFailed"
CONDITION_RESTORE_STARTED = "RestoreStarted"
CONDITION_RESTORE_FINISHED = "RestoreFinished"
CONDITION_RESTORE_FAILED = "RestoreFailed"
CONDITION_UPGRADE_STARTED = "UpgradeStarted"
CONDITION_UPGRADE_FINISHED = "UpgradeFinished"
CONDITION_UPGRADE_FAILED = "UpgradeFailed"
CONDITION_AUTO_BACKUP_STARTED = "AutoBackupStarted"
CONDITION_AUTO_BACKUP_FINISHED = "AutoBackupFinished"
CONDITION_AUTO_BACKUP_FAILED = "AutoBackupFailed"


def record(body: Mapping[str, Any], reason: str, message: str, type: str = NORMAL):
    """Post a kubernetes event about the given object."""
    logger.debug(f"{reason}: {message}")
    kopf.event(body, type=type, reason=reason, message=message)


def record_warning(body: Mapping[str, Any], reason: str, message: str):
    logger.warning(f"{reason}: {message}")
    kopf.warn(body, reason=reason, message=message)
