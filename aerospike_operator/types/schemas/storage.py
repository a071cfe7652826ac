from marshmallow import fields, validate
from aerospike_operator.types.base import BaseSchema
from aerospike_operator.types.models.storage import StorageSpec, BackupStorageSpec

STORAGE_TYPE_FILE = "file"
STORAGE_TYPE_DEVICE = "device"
BACKUP_STORAGE_TYPE_GCS = "gcs"

DEFAULT_PERSISTENT_VOLUME_CLAIM_TTL = "0d"
DEFAULT_SECRET_KEY = "key.json"


class StorageSpecSchema(BaseSchema):
    __model__ = StorageSpec

    type = fields.Str(
        data_key="type",
        required=True,
        validate=validate.OneOf([STORAGE_TYPE_FILE, STORAGE_TYPE_DEVICE]),
    )
    size = fields.Str(data_key="size", required=True)
    storage_class_name = fields.Str(
        data_key="storageClassName", load_default=None, allow_none=True
    )
    persistent_volume_claim_ttl = fields.Str(
        data_key="persistentVolumeClaimTTL",
        load_default=DEFAULT_PERSISTENT_VOLUME_CLAIM_TTL,
    )


class BackupStorageSpecSchema(BaseSchema):
    __model__ = BackupStorageSpec

    type = fields.Str(
        data_key="type",
        load_default=BACKUP_STORAGE_TYPE_GCS,
        validate=validate.OneOf([BACKUP_STORAGE_TYPE_GCS]),
    )
    bucket = fields.Str(data_key="bucket", required=True)
    secret = fields.Str(data_key="secret", required=True)
    secret_namespace = fields.Str(
        data_key="secretNamespace", load_default=None, allow_none=True
    )
    secret_key = fields.Str(data_key="secretKey", load_default=DEFAULT_SECRET_KEY)
