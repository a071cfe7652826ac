import mmh3
import hashlib
from typing import Any, Dict, List, Optional
from aerospike_operator.utils.objects import cached_property
from aerospike_operator.utils.helpers import canonicalize_dict
from aerospike_operator.utils.errors import already_exists_error, not_found_error
from aerospike_operator.common.models.labels import Labels
from aerospike_operator.sensors.base import OperatorSensor
from kubernetes_asyncio.client import (
    ApiException,
    CoreV1Api,
    CustomObjectsApi,
    NetworkingV1Api,
    StorageV1Api,
    V1ConfigMap,
    V1DeleteOptions,
    V1NetworkPolicy,
    V1PersistentVolumeClaim,
    V1PersistentVolumeClaimList,
    V1Pod,
    V1PodList,
    V1Service,
    V1StorageClass,
)
from kubernetes_asyncio.client.api_client import ApiClient

MERGE_PATCH = "application/merge-patch+json"


class BaseResource:
    """Base resource model."""

    OPERATOR_NAME = "aerospike-operator"

    shared_api_client: ApiClient = None
    sensor: OperatorSensor = OperatorSensor()

    _cluster: str
    _namespace: str
    _labels: Labels

    def __init__(self, cluster: str, namespace: str, labels: Labels):
        self._cluster = cluster
        self._namespace = namespace
        self._labels = labels

    @property
    def cluster(self) -> str:
        return self._cluster

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def labels(self) -> Labels:
        return self._labels

    @cached_property
    def api_client(self) -> ApiClient:
        if self.shared_api_client is not None:
            return self.shared_api_client
        return ApiClient()

    @cached_property
    def core_v1_api(self) -> CoreV1Api:
        return CoreV1Api(self.api_client)

    @cached_property
    def custom_objects_api(self) -> CustomObjectsApi:
        return CustomObjectsApi(self.api_client)

    @cached_property
    def networking_v1_api(self) -> NetworkingV1Api:
        return NetworkingV1Api(self.api_client)

    @cached_property
    def storage_v1_api(self) -> StorageV1Api:
        return StorageV1Api(self.api_client)

    def compute_hash(self, data: Any) -> str:
        """Compute a murmur3 hash."""
        if isinstance(data, dict):
            _data = canonicalize_dict(data)
        elif isinstance(data, str):
            _data = data.encode()
        else:
            raise ValueError(f"Hash of {type(data)} is not supported.")
        mumur_str = str(mmh3.hash128(_data))

        hash_obj = hashlib.sha256(mumur_str.encode("utf-8"))
        full_hash = hash_obj.hexdigest()

        # First 16 characters fit in labels/annotations
        return full_hash[:16]

    # ---- services ----

    async def fetch_service(
        self, core_v1_api: CoreV1Api, name: str, namespace: str
    ) -> Optional[V1Service]:
        """Retrieve the latest state of a service"""
        try:
            return await core_v1_api.read_namespaced_service(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def create_service(
        self, core_v1_api: CoreV1Api, namespace: str, service: V1Service
    ) -> None:
        """Create a service. An existing service is left untouched."""
        try:
            await core_v1_api.create_namespaced_service(namespace=namespace, body=service)
        except ApiException as ex:
            if not already_exists_error(ex):
                raise

    async def patch_service(
        self, core_v1_api: CoreV1Api, name: str, namespace: str, service: Any
    ):
        await core_v1_api.patch_namespaced_service(
            name=name,
            namespace=namespace,
            body=service,
        )

    # ---- config maps ----

    async def fetch_config_map(
        self, core_v1_api: CoreV1Api, name: str, namespace: str
    ) -> Optional[V1ConfigMap]:
        try:
            return await core_v1_api.read_namespaced_config_map(
                name=name, namespace=namespace
            )
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def create_config_map(
        self, core_v1_api: CoreV1Api, namespace: str, config_map: V1ConfigMap
    ) -> V1ConfigMap:
        try:
            return await core_v1_api.create_namespaced_config_map(
                namespace=namespace, body=config_map
            )
        except ApiException as ex:
            if already_exists_error(ex):
                return await self.replace_config_map(
                    core_v1_api,
                    name=config_map.metadata.name,
                    namespace=namespace,
                    config_map=config_map,
                )
            raise

    async def replace_config_map(
        self, core_v1_api: CoreV1Api, name: str, namespace: str, config_map: V1ConfigMap
    ) -> V1ConfigMap:
        return await core_v1_api.replace_namespaced_config_map(
            name=name,
            namespace=namespace,
            body=config_map,
        )

    # ---- network policies ----

    async def fetch_network_policy(
        self, networking_v1_api: NetworkingV1Api, name: str, namespace: str
    ) -> Optional[V1NetworkPolicy]:
        try:
            return await networking_v1_api.read_namespaced_network_policy(
                name=name, namespace=namespace
            )
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def create_network_policy(
        self,
        networking_v1_api: NetworkingV1Api,
        namespace: str,
        network_policy: V1NetworkPolicy,
    ) -> None:
        """Create a network policy. An existing policy is left untouched."""
        try:
            await networking_v1_api.create_namespaced_network_policy(
                namespace=namespace, body=network_policy
            )
        except ApiException as ex:
            if not already_exists_error(ex):
                raise

    # ---- storage classes ----

    async def fetch_storage_class(
        self, storage_v1_api: StorageV1Api, name: str
    ) -> Optional[V1StorageClass]:
        try:
            return await storage_v1_api.read_storage_class(name=name)
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    # ---- persistent volume claims ----

    async def create_persistent_volume_claim(
        self,
        core_v1_api: CoreV1Api,
        namespace: str,
        pvc: V1PersistentVolumeClaim,
    ) -> V1PersistentVolumeClaim:
        return await core_v1_api.create_namespaced_persistent_volume_claim(
            namespace=namespace, body=pvc
        )

    async def fetch_persistent_volume_claim(
        self, core_v1_api: CoreV1Api, name: str, namespace: str
    ) -> Optional[V1PersistentVolumeClaim]:
        try:
            return await core_v1_api.read_namespaced_persistent_volume_claim(
                name=name, namespace=namespace
            )
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def list_persistent_volume_claims(
        self, core_v1_api: CoreV1Api, namespace: str, label_selector: Dict[str, str] = None
    ) -> V1PersistentVolumeClaimList:
        label_selector_str = None
        if label_selector:
            label_selector_str = ",".join([f"{k}={v}" for k, v in label_selector.items()])
        return await core_v1_api.list_namespaced_persistent_volume_claim(
            namespace=namespace, label_selector=label_selector_str
        )

    async def patch_persistent_volume_claim(
        self,
        core_v1_api: CoreV1Api,
        name: str,
        namespace: str,
        pvc: Dict[str, Any],
    ) -> V1PersistentVolumeClaim:
        return await core_v1_api.patch_namespaced_persistent_volume_claim(
            name=name,
            namespace=namespace,
            body=pvc,
            _content_type=MERGE_PATCH,
        )

    async def delete_persistent_volume_claim(
        self,
        core_v1_api: CoreV1Api,
        name: str,
        namespace: str,
    ):
        try:
            await core_v1_api.delete_namespaced_persistent_volume_claim(
                name=name,
                namespace=namespace,
                body=V1DeleteOptions(),
            )
        except ApiException as ex:
            if not_found_error(ex):
                return
            raise

    # ---- pods ----

    async def fetch_pod(
        self, core_v1_api: CoreV1Api, name: str, namespace: str
    ) -> Optional[V1Pod]:
        try:
            return await core_v1_api.read_namespaced_pod(name=name, namespace=namespace)
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def create_pod(self, core_v1_api: CoreV1Api, namespace: str, pod: V1Pod) -> V1Pod:
        return await core_v1_api.create_namespaced_pod(namespace=namespace, body=pod)

    async def delete_pod(
        self,
        core_v1_api: CoreV1Api,
        name: str,
        namespace: str,
        delete_options: V1DeleteOptions = None,
    ):
        """Delete a pod.

        Args:
            core_v1_api: CoreV1Api instance
            name: Name of the pod to delete
            namespace: Namespace of the pod
            delete_options: Optional delete options (e.g., grace period)
        """
        try:
            await core_v1_api.delete_namespaced_pod(
                name=name, namespace=namespace, body=delete_options
            )
        except ApiException as ex:
            if not_found_error(ex):
                return
            raise

    async def list_pods(
        self, core_v1_api: CoreV1Api, namespace: str, label_selector: Dict[str, str] = None
    ) -> V1PodList:
        """List pods in namespace, optionally filtered by label selector."""
        label_selector_str = None
        if label_selector:
            label_selector_str = ",".join([f"{k}={v}" for k, v in label_selector.items()])

        return await core_v1_api.list_namespaced_pod(
            namespace=namespace, label_selector=label_selector_str
        )

    # ---- custom objects ----

    async def get_custom_object(
        self,
        custom_objects_api: CustomObjectsApi,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        name: str,
    ) -> Optional[Dict]:
        try:
            return await custom_objects_api.get_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
            )
        except ApiException as ex:
            if not_found_error(ex):
                return None
            raise

    async def create_custom_object(
        self,
        custom_objects_api: CustomObjectsApi,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        body: Dict,
    ) -> Optional[Dict]:
        """Create a custom object. Returns ``None`` if it already exists."""
        try:
            return await custom_objects_api.create_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                body=body,
            )
        except ApiException as ex:
            if already_exists_error(ex):
                return None
            raise

    async def patch_custom_object(
        self,
        custom_objects_api: CustomObjectsApi,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        name: str,
        body: Dict,
    ) -> Dict:
        return await custom_objects_api.patch_namespaced_custom_object(
            group=group,
            version=version,
            namespace=namespace,
            plural=plural,
            name=name,
            body=body,
            _content_type=MERGE_PATCH,
        )

    async def patch_custom_object_status(
        self,
        custom_objects_api: CustomObjectsApi,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        name: str,
        body: Dict,
    ) -> Dict:
        return await custom_objects_api.patch_namespaced_custom_object_status(
            group=group,
            version=version,
            namespace=namespace,
            plural=plural,
            name=name,
            body=body,
            _content_type=MERGE_PATCH,
        )


def items_of(result: Any) -> List:
    """Items of a list response, whether a model or a plain dict."""
    if result is None:
        return []
    if isinstance(result, dict):
        return result.get("items") or []
    return result.items or []
