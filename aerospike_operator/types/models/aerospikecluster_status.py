from typing import Dict, List, Optional
from aerospike_operator.types.base import BaseModel
from aerospike_operator.types.models.aerospikecluster_spec import (
    NamespaceSpec,
    BackupSpec,
)


class AerospikeClusterStatus(BaseModel):
    """Observed state of an aerospike cluster."""

    node_count: int
    version: str
    namespaces: List[NamespaceSpec]
    backup_spec: Optional[BackupSpec]
    conditions: List[Dict]
