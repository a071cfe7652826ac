from .storage import StorageSpecSchema, BackupStorageSpecSchema
from .aerospikecluster_spec import (
    AerospikeClusterSpecSchema,
    AerospikeClusterStatusSchema,
    NamespaceSpecSchema,
    BackupSpecSchema,
)
