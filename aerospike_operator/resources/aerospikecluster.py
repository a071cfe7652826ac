import logging
from logging import Logger
from typing import Any, Dict, List, Mapping, Optional
from aerospike_operator.utils.objects import cached_property
from aerospike_operator.utils import aerospike_config
from aerospike_operator.utils.helpers import append_condition, new_condition
from aerospike_operator.types.settings import Settings
from aerospike_operator.types.models import (
    AerospikeClusterSpec,
    AerospikeClusterStatus,
    AerospikeClusterResources,
    UpgradePhase,
    UPGRADE_STATUS_ANNOTATION,
)
from aerospike_operator.types.schemas import (
    AerospikeClusterSpecSchema,
    AerospikeClusterStatusSchema,
)
from aerospike_operator.common.models.labels import Labels
from aerospike_operator.resources.base import BaseResource
from aerospike_operator.sensors import SensorDelegate
from kubernetes_asyncio.client import (
    V1ObjectMeta,
    V1OwnerReference,
    V1Service,
    V1ServiceSpec,
    V1ServicePort,
    V1ConfigMap,
    V1NetworkPolicy,
    V1NetworkPolicySpec,
    V1NetworkPolicyIngressRule,
    V1NetworkPolicyEgressRule,
    V1NetworkPolicyPeer,
    V1NetworkPolicyPort,
    V1LabelSelector,
)
from kubernetes_asyncio.client.api_client import ApiClient


class AerospikeCluster(BaseResource):
    """AerospikeCluster kubernetes resource."""

    logger: Logger
    conf: Settings
    sensor: SensorDelegate
    shared_api_client: ApiClient = None  # Shared across all AerospikeCluster instances

    KIND = "AerospikeCluster"
    GROUP_NAME = "aerospike.travelaudience.com"
    GROUP_VERSION = "v1alpha2"
    PLURAL_NAME = "aerospikeclusters"

    CONFIG_MAP_HASH_ANNOTATION = "aerospike.travelaudience.com/config-map-hash"

    SERVICE_PORT_NAME = "service"
    HEARTBEAT_PORT_NAME = "heartbeat"
    FABRIC_PORT_NAME = "fabric"
    INFO_PORT_NAME = "info"
    ASPROM_PORT_NAME = "prometheus"
    ASPROM_PORT = 9145
    DNS_PORT = 53

    name: str
    uid: str
    resource_version: str
    body: Dict[str, Any]
    annotations: Dict[str, str]
    spec: AerospikeClusterSpec
    status: AerospikeClusterStatus

    # raw spec as received, mirrored verbatim into the status
    _raw_spec: Dict[str, Any]
    _raw_status: Dict[str, Any]

    def __init__(self, name: str, namespace: str, labels: Optional[Dict[str, str]] = None):
        _labels = Labels.generate_default_labels(name, self.OPERATOR_NAME)
        _labels.update(labels or {})
        super().__init__(cluster=name, namespace=namespace, labels=_labels)
        self.name = name

    @classmethod
    def from_body(cls, body: Mapping[str, Any], logger: Logger = None) -> "AerospikeCluster":
        """Build from the raw custom object as returned by the API."""
        metadata = body.get("metadata") or {}
        cluster = AerospikeCluster(metadata["name"], metadata.get("namespace"))
        cluster.logger = logger or logging.getLogger(__name__)
        cluster.body = dict(body)
        cluster.uid = metadata.get("uid")
        cluster.resource_version = metadata.get("resourceVersion")
        cluster.annotations = dict(metadata.get("annotations") or {})
        cluster._raw_spec = dict(body.get("spec") or {})
        cluster._raw_status = dict(body.get("status") or {})
        cluster.spec = AerospikeClusterSpecSchema().load(cluster._raw_spec)
        cluster.status = AerospikeClusterStatusSchema().load(cluster._raw_status)
        return cluster

    @classmethod
    def default(cls) -> "AerospikeCluster":
        return AerospikeCluster(name="default", namespace=None)

    @classmethod
    async def fetch(
        cls, name: str, namespace: str, logger: Logger = None
    ) -> Optional["AerospikeCluster"]:
        """Fetch the latest state of an AerospikeCluster. None if it is gone."""
        resource = cls.default()
        body = await resource.get_custom_object(
            resource.custom_objects_api,
            namespace=namespace,
            group=cls.GROUP_NAME,
            version=cls.GROUP_VERSION,
            plural=cls.PLURAL_NAME,
            name=name,
        )
        if body is None:
            return None
        return cls.from_body(body, logger=logger)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def upgrade_phase(self) -> UpgradePhase:
        return UpgradePhase.from_annotations(self.annotations)

    @property
    def upgrade_requested(self) -> bool:
        """True when the running version differs from the desired one."""
        return bool(self.status.version) and self.status.version != self.spec.version

    @property
    def conditions(self) -> List[Dict]:
        return list(self.status.conditions or [])

    @property
    def service_name(self) -> str:
        return AerospikeClusterResources.service_name(self.name)

    @property
    def discovery_service_name(self) -> str:
        return AerospikeClusterResources.discovery_service_name(self.name)

    @property
    def config_map_name(self) -> str:
        return AerospikeClusterResources.config_map_name(self.name)

    @property
    def network_policy_name(self) -> str:
        return AerospikeClusterResources.network_policy_name(self.name)

    @cached_property
    def config(self) -> str:
        """Rendered aerospike.conf for the desired spec."""
        return aerospike_config.render_config(self.name, self.namespace, self.spec)

    @cached_property
    def config_fingerprint(self) -> str:
        return aerospike_config.fingerprint(self.config)

    @cached_property
    def service(self) -> V1Service:
        return self.prepare_service()

    @cached_property
    def discovery_service(self) -> V1Service:
        return self.prepare_discovery_service()

    @cached_property
    def config_map(self) -> V1ConfigMap:
        return self.prepare_config_map()

    @cached_property
    def network_policy(self) -> V1NetworkPolicy:
        return self.prepare_network_policy()

    def owner_reference(self) -> V1OwnerReference:
        return V1OwnerReference(
            api_version=f"{self.GROUP_NAME}/{self.GROUP_VERSION}",
            kind=self.KIND,
            name=self.name,
            uid=self.uid,
            controller=True,
            block_owner_deletion=True,
        )

    def owner_reference_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": f"{self.GROUP_NAME}/{self.GROUP_VERSION}",
            "kind": self.KIND,
            "name": self.name,
            "uid": self.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }

    def prepare_metadata(self, name: str, annotations: Dict[str, str] = None) -> V1ObjectMeta:
        return V1ObjectMeta(
            name=name,
            namespace=self.namespace,
            labels=self.labels.as_dict(),
            annotations=annotations,
            owner_references=[self.owner_reference()],
        )

    def prepare_service_ports(self) -> List[V1ServicePort]:
        return [
            V1ServicePort(
                name=self.SERVICE_PORT_NAME,
                port=aerospike_config.SERVICE_PORT,
                target_port=self.SERVICE_PORT_NAME,
            ),
            V1ServicePort(
                name=self.HEARTBEAT_PORT_NAME,
                port=aerospike_config.HEARTBEAT_PORT,
                target_port=self.HEARTBEAT_PORT_NAME,
            ),
            V1ServicePort(
                name=self.ASPROM_PORT_NAME,
                port=self.ASPROM_PORT,
                target_port=self.ASPROM_PORT_NAME,
            ),
        ]

    def prepare_service(self) -> V1Service:
        """Build the headless client service."""
        return V1Service(
            api_version="v1",
            kind="Service",
            metadata=self.prepare_metadata(self.service_name),
            spec=V1ServiceSpec(
                selector=self.labels.cluster_label_selectors().as_dict(),
                cluster_ip="None",
                ports=self.prepare_service_ports(),
            ),
        )

    def prepare_discovery_service(self) -> V1Service:
        """Build the headless service used by nodes to find their peers.

        Not-ready addresses are published so that a starting node can join the
        mesh before it passes its readiness probe.
        """
        return V1Service(
            api_version="v1",
            kind="Service",
            metadata=self.prepare_metadata(self.discovery_service_name),
            spec=V1ServiceSpec(
                selector=self.labels.cluster_label_selectors().as_dict(),
                cluster_ip="None",
                publish_not_ready_addresses=True,
                ports=self.prepare_service_ports(),
            ),
        )

    def prepare_service_watch_fields(self, service: V1Service) -> Dict:
        """
        Fields of interest when comparing actual vs desired state of a service.
        Ports are normalized to plain dicts so that live and desired objects hash alike.
        """
        return {
            "spec": {
                "ports": sorted(
                    [
                        {"name": p.name, "port": p.port, "targetPort": str(p.target_port)}
                        for p in (service.spec.ports or [])
                    ],
                    key=lambda p: p["name"] or "",
                ),
                "publishNotReadyAddresses": bool(service.spec.publish_not_ready_addresses),
            },
        }

    def prepare_service_patch(self, service: V1Service) -> Dict:
        """Only ports and not-ready publishing are patched in place."""
        return {
            "spec": {
                "ports": [
                    {"name": p.name, "port": p.port, "targetPort": p.target_port}
                    for p in service.spec.ports
                ],
                "publishNotReadyAddresses": bool(service.spec.publish_not_ready_addresses),
            }
        }

    def prepare_config_map(self) -> V1ConfigMap:
        return V1ConfigMap(
            api_version="v1",
            kind="ConfigMap",
            metadata=self.prepare_metadata(
                self.config_map_name,
                annotations={self.CONFIG_MAP_HASH_ANNOTATION: self.config_fingerprint},
            ),
            data={aerospike_config.CONFIG_FILE_NAME: self.config},
        )

    def prepare_network_policy(self) -> V1NetworkPolicy:
        cluster_pods = V1NetworkPolicyPeer(
            pod_selector=V1LabelSelector(
                match_labels=self.labels.cluster_label_selectors().as_dict()
            )
        )

        def tcp(port: int) -> V1NetworkPolicyPort:
            return V1NetworkPolicyPort(protocol="TCP", port=port)

        return V1NetworkPolicy(
            api_version="networking.k8s.io/v1",
            kind="NetworkPolicy",
            metadata=self.prepare_metadata(self.network_policy_name),
            spec=V1NetworkPolicySpec(
                pod_selector=V1LabelSelector(
                    match_labels=self.labels.cluster_label_selectors().as_dict()
                ),
                policy_types=["Ingress", "Egress"],
                ingress=[
                    V1NetworkPolicyIngressRule(
                        _from=[cluster_pods],
                        ports=[
                            tcp(aerospike_config.FABRIC_PORT),
                            tcp(aerospike_config.HEARTBEAT_PORT),
                        ],
                    ),
                    V1NetworkPolicyIngressRule(
                        ports=[
                            tcp(aerospike_config.SERVICE_PORT),
                            tcp(aerospike_config.INFO_PORT),
                            tcp(self.ASPROM_PORT),
                        ],
                    ),
                ],
                egress=[
                    V1NetworkPolicyEgressRule(
                        to=[cluster_pods],
                        ports=[
                            tcp(aerospike_config.FABRIC_PORT),
                            tcp(aerospike_config.HEARTBEAT_PORT),
                        ],
                    ),
                    V1NetworkPolicyEgressRule(
                        ports=[
                            V1NetworkPolicyPort(protocol="TCP", port=self.DNS_PORT),
                            V1NetworkPolicyPort(protocol="UDP", port=self.DNS_PORT),
                        ],
                    ),
                ],
            ),
        )

    async def synchronize(self) -> "AerospikeCluster":
        """Ensure every supporting object of the cluster exists."""
        await self.sync_service()
        await self.sync_discovery_service()
        await self.sync_config_map()
        await self.sync_network_policy()
        return self

    async def _sync_service(self, desired: V1Service, resource_type: str):
        name = desired.metadata.name
        service: V1Service = await self.fetch_service(self.core_v1_api, name, self.namespace)
        if not service:
            sensor_state = self.sensor.on_resource_sync_start(
                self.cluster, name, self.namespace, resource_type
            )
            success = True
            try:
                await self.create_service(self.core_v1_api, self.namespace, desired)
                self.logger.debug(f"{resource_type} {name} created")
            except Exception as ex:
                success = False
                self.sensor.on_resource_sync_complete(
                    self.cluster, name, self.namespace, resource_type, sensor_state, "create", success, ex
                )
                raise
            self.sensor.on_resource_sync_complete(
                self.cluster, name, self.namespace, resource_type, sensor_state, "create", success
            )
            return

        actual_hash = self.compute_hash(self.prepare_service_watch_fields(service))
        desired_hash = self.compute_hash(self.prepare_service_watch_fields(desired))
        if actual_hash == desired_hash:
            return

        self.sensor.on_resource_drift_detected(
            self.cluster, name, self.namespace, resource_type, ["spec"]
        )
        sensor_state = self.sensor.on_resource_sync_start(
            self.cluster, name, self.namespace, resource_type
        )
        success = True
        try:
            await self.patch_service(
                self.core_v1_api,
                name,
                self.namespace,
                service=self.prepare_service_patch(desired),
            )
            self.logger.info(f"{resource_type} {name} patched")
        except Exception as ex:
            success = False
            self.sensor.on_resource_sync_complete(
                self.cluster, name, self.namespace, resource_type, sensor_state, "patch", success, ex
            )
            raise
        self.sensor.on_resource_sync_complete(
            self.cluster, name, self.namespace, resource_type, sensor_state, "patch", success
        )

    async def sync_service(self):
        """Check current state of the client service and create/patch if needed."""
        await self._sync_service(self.service, "service")

    async def sync_discovery_service(self):
        """Check current state of the discovery service and create/patch if needed."""
        await self._sync_service(self.discovery_service, "discovery_service")

    async def sync_config_map(self) -> V1ConfigMap:
        """Create the config map, or replace it when its hash annotation is outdated."""
        config_map: V1ConfigMap = await self.fetch_config_map(
            self.core_v1_api, self.config_map_name, self.namespace
        )
        if config_map is not None:
            actual_hash = (config_map.metadata.annotations or {}).get(
                self.CONFIG_MAP_HASH_ANNOTATION
            )
            if actual_hash == self.config_fingerprint:
                self.logger.debug(f"configmap {self.config_map_name} is up to date")
                return config_map
            self.sensor.on_resource_drift_detected(
                self.cluster, self.config_map_name, self.namespace, "config_map", ["data"]
            )

        operation = "create" if config_map is None else "replace"
        sensor_state = self.sensor.on_resource_sync_start(
            self.cluster, self.config_map_name, self.namespace, "config_map"
        )
        try:
            if config_map is None:
                result = await self.create_config_map(
                    self.core_v1_api, self.namespace, self.config_map
                )
            else:
                result = await self.replace_config_map(
                    self.core_v1_api, self.config_map_name, self.namespace, self.config_map
                )
        except Exception as ex:
            self.sensor.on_resource_sync_complete(
                self.cluster, self.config_map_name, self.namespace, "config_map", sensor_state, operation, False, ex
            )
            raise
        self.sensor.on_resource_sync_complete(
            self.cluster, self.config_map_name, self.namespace, "config_map", sensor_state, operation, True
        )
        self.logger.info(f"configmap {self.config_map_name} {operation}d")
        return result

    async def sync_network_policy(self):
        """Create the network policy. An existing policy is left untouched."""
        policy = await self.fetch_network_policy(
            self.networking_v1_api, self.network_policy_name, self.namespace
        )
        if policy is not None:
            return
        sensor_state = self.sensor.on_resource_sync_start(
            self.cluster, self.network_policy_name, self.namespace, "network_policy"
        )
        try:
            await self.create_network_policy(
                self.networking_v1_api, self.namespace, self.network_policy
            )
        except Exception as ex:
            self.sensor.on_resource_sync_complete(
                self.cluster, self.network_policy_name, self.namespace, "network_policy", sensor_state, "create", False, ex
            )
            raise
        self.sensor.on_resource_sync_complete(
            self.cluster, self.network_policy_name, self.namespace, "network_policy", sensor_state, "create", True
        )

    def add_condition(self, type: str, status: bool, reason: str, message: str) -> Dict:
        """Append a condition to the local status. Persisted by :meth:`apply`."""
        condition = new_condition(type, status, reason, message)
        self.status.conditions = append_condition(self.status.conditions, condition)
        self._raw_status["conditions"] = list(self.status.conditions)
        return condition

    def set_upgrade_phase(self, phase: UpgradePhase):
        old = self.upgrade_phase
        if phase.annotation_value is None:
            self.annotations.pop(UPGRADE_STATUS_ANNOTATION, None)
        else:
            self.annotations[UPGRADE_STATUS_ANNOTATION] = phase.annotation_value
        if old is not phase:
            self.sensor.on_upgrade_phase_change(
                self.name, self.namespace, old.value, phase.value
            )

    def mirror_spec_into_status(self) -> List[str]:
        """Copy the desired spec into the status. Returns the fields that changed."""
        desired = {
            "backupSpec": self._raw_spec.get("backupSpec"),
            "namespaces": self._raw_spec.get("namespaces"),
            "nodeCount": self._raw_spec.get("nodeCount"),
            "version": self._raw_spec.get("version"),
        }
        changed = []
        for field, value in desired.items():
            if self._raw_status.get(field) != value:
                changed.append(field)
                self._raw_status[field] = value
        if changed:
            self.status = AerospikeClusterStatusSchema().load(self._raw_status)
        return changed

    def prepare_patch(self, original_annotations: Dict[str, str]) -> Dict:
        """Merge patch of the metadata annotations, guarded by resourceVersion."""
        annotations: Dict[str, Optional[str]] = {}
        for key, value in self.annotations.items():
            if original_annotations.get(key) != value:
                annotations[key] = value
        for key in original_annotations:
            if key not in self.annotations:
                annotations[key] = None
        return {
            "metadata": {
                "resourceVersion": self.resource_version,
                "annotations": annotations,
            }
        }

    async def apply(self, status_fields: List[str] = None) -> "AerospikeCluster":
        """Persist the local annotations and status.

        The annotations go through a merge patch of the object, and the status
        through the status subresource. Both carry the last seen resourceVersion
        so that a concurrent update fails with a conflict instead of being lost.
        """
        original_annotations = (self.body.get("metadata") or {}).get("annotations") or {}
        patch = self.prepare_patch(original_annotations)
        if patch["metadata"]["annotations"]:
            result = await self.patch_custom_object(
                self.custom_objects_api,
                namespace=self.namespace,
                group=self.GROUP_NAME,
                version=self.GROUP_VERSION,
                plural=self.PLURAL_NAME,
                name=self.name,
                body=patch,
            )
            self._refresh(result)

        original_status = self.body.get("status") or {}
        if original_status != self._raw_status:
            result = await self.patch_custom_object_status(
                self.custom_objects_api,
                namespace=self.namespace,
                group=self.GROUP_NAME,
                version=self.GROUP_VERSION,
                plural=self.PLURAL_NAME,
                name=self.name,
                body={
                    "metadata": {"resourceVersion": self.resource_version},
                    "status": self._raw_status,
                },
            )
            self._refresh(result)
            self.sensor.on_status_update(
                self.name,
                self.namespace,
                status_fields or [k for k in self._raw_status if original_status.get(k) != self._raw_status[k]],
            )
        return self

    def _refresh(self, body: Optional[Mapping[str, Any]]):
        if not body:
            return
        metadata = body.get("metadata") or {}
        self.resource_version = metadata.get("resourceVersion", self.resource_version)
        self.body = dict(body)
