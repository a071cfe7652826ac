from typing import Optional
from aerospike_operator.types.base import BaseModel


class StorageSpec(BaseModel):
    """Storage backing a single aerospike namespace."""

    type: str
    size: str
    storage_class_name: Optional[str]
    persistent_volume_claim_ttl: Optional[str]


class BackupStorageSpec(BaseModel):
    """Cloud storage used for namespace backups."""

    type: str
    bucket: str
    secret: str
    secret_namespace: Optional[str]
    secret_key: str
