from .aerospikecluster import AerospikeCluster
from .backup import NamespaceBackup, NamespaceRestore, UpgradeBackups
from .pods import PodLifecycleManager
from .pvc import VolumeClaimManager

__all__ = [
    "AerospikeCluster",
    "NamespaceBackup",
    "NamespaceRestore",
    "UpgradeBackups",
    "PodLifecycleManager",
    "VolumeClaimManager",
]
