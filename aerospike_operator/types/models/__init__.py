from .storage import StorageSpec, BackupStorageSpec
from .aerospikecluster_spec import AerospikeClusterSpec, NamespaceSpec, BackupSpec
from .aerospikecluster_status import AerospikeClusterStatus
from .aerospikecluster_resources import AerospikeClusterResources
from .upgrade import UpgradePhase, UPGRADE_STATUS_ANNOTATION
