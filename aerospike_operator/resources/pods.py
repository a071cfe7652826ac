"""Pods of an AerospikeCluster.

Pods are managed directly rather than through a StatefulSet so that a pod is
only ever deleted once the aerospike node it hosts has finished migrating its
partitions to the rest of the cluster.
"""

import asyncio
import hashlib
import logging
import time
from logging import Logger
from typing import Awaitable, Callable, Dict, Iterable, List, Optional
from kubernetes_asyncio import watch
from kubernetes_asyncio.client import (
    V1Affinity,
    V1ConfigMapVolumeSource,
    V1Container,
    V1ContainerPort,
    V1DeleteOptions,
    V1EmptyDirVolumeSource,
    V1LabelSelector,
    V1LabelSelectorRequirement,
    V1ObjectMeta,
    V1PersistentVolumeClaim,
    V1PersistentVolumeClaimVolumeSource,
    V1Pod,
    V1PodAffinityTerm,
    V1PodAntiAffinity,
    V1PodSpec,
    V1Probe,
    V1ResourceRequirements,
    V1TCPSocketAction,
    V1Volume,
    V1VolumeDevice,
    V1VolumeMount,
)

from aerospike_operator.common.models.labels import Labels
from aerospike_operator.common.models.version import DEFAULT_STRATEGY, UpgradeStrategy
from aerospike_operator.resources.aerospikecluster import AerospikeCluster
from aerospike_operator.resources.base import BaseResource, items_of
from aerospike_operator.resources.pvc import (
    LAST_UNMOUNTED_ON_ANNOTATION,
    VolumeClaimManager,
    claim_names,
)
from aerospike_operator.types.models import AerospikeClusterResources
from aerospike_operator.types.schemas.storage import STORAGE_TYPE_DEVICE
from aerospike_operator.types.settings import Settings
from aerospike_operator.utils import aerospike_config, events
from aerospike_operator.utils.errors import (
    MigrationsTimeoutError,
    PodFailedError,
    WaitTimeoutError,
)
from aerospike_operator.utils.storage import memory_request_bytes
from aerospike_operator.web import InfoError, NodeInspector
from aerospike_operator.web.client import NODE_ID_ANNOTATION

SERVER_CONTAINER_NAME = "aerospike-server"
INIT_CONTAINER_NAME = "aerospike-init"
ASPROM_CONTAINER_NAME = "asprom"
SERVER_IMAGE = "aerospike/aerospike-server"

INITIAL_CONFIG_VOLUME_NAME = "aerospike-conf-src"
INITIAL_CONFIG_MOUNT_PATH = "/aerospike-conf-src"
FINAL_CONFIG_VOLUME_NAME = "aerospike-conf"
FINAL_CONFIG_MOUNT_PATH = "/aerospike-conf"
NAMESPACE_VOLUME_PREFIX = "data-ns"

DEFAULT_CPU_REQUEST = "1"
DEFAULT_MEMORY_REQUEST = "4Gi"
SIDECAR_CPU_REQUEST = "10m"
SIDECAR_MEMORY_REQUEST = "32Mi"

READINESS_INITIAL_DELAY_SECONDS = 3
READINESS_TIMEOUT_SECONDS = 2
READINESS_PERIOD_SECONDS = 10
READINESS_FAILURE_THRESHOLD = 3

IMAGE_ERROR_REASONS = frozenset(
    ["ImagePullBackOff", "ImageInspectError", "ErrImagePull", "RegistryUnavailable"]
)

HOSTNAME_TOPOLOGY_KEY = "kubernetes.io/hostname"


def pod_index(pod: V1Pod, cluster_name: str = None) -> int:
    """Index encoded in the pod name, or -1 when the name does not carry one."""
    if cluster_name is None:
        cluster_name = (pod.metadata.labels or {}).get(Labels.AEROSPIKE_CLUSTER_LABEL, "")
    prefix = f"{cluster_name}-"
    name = pod.metadata.name or ""
    if not name.startswith(prefix):
        return -1
    try:
        return int(name[len(prefix):])
    except ValueError:
        return -1


def new_pod_index(indices: Iterable[int]) -> int:
    """Smallest index not currently in use."""
    taken = set(indices)
    idx = 0
    while idx in taken:
        idx += 1
    return idx


def is_pod_ready(pod: V1Pod) -> bool:
    for condition in (pod.status and pod.status.conditions) or []:
        if condition.type == "Ready":
            return condition.status == "True"
    return False


def is_pod_running_and_ready(pod: V1Pod) -> bool:
    return pod.status is not None and pod.status.phase == "Running" and is_pod_ready(pod)


def is_pod_in_failure_state(pod: V1Pod) -> bool:
    """Whether the pod reached a state it is not expected to recover from."""
    if pod.status is None:
        return False
    if pod.status.phase == "Failed":
        return True
    statuses = [
        *(pod.status.init_container_statuses or []),
        *(pod.status.container_statuses or []),
    ]
    for status in statuses:
        state = status.state
        if state is None:
            continue
        # an init container terminates with exit code 0 on success
        if state.terminated is not None and state.terminated.exit_code != 0:
            return True
        if state.waiting is not None and state.waiting.reason in IMAGE_ERROR_REASONS:
            return True
    return False


def node_id(cluster_uid: str, index: int) -> str:
    """Aerospike node id of the pod at the given index.

    Stable across restarts of the same index. Leading zeros are dropped since
    aerospike reports node ids without them.
    """
    digest = hashlib.sha256(f"{cluster_uid}-{index}".encode("utf-8")).hexdigest()
    return digest.lstrip("0")[:12]


class PodLifecycleManager(BaseResource):
    """Converges the pods of an AerospikeCluster to the desired node count."""

    logger: Logger
    conf: Settings

    def __init__(
        self,
        cluster: AerospikeCluster,
        conf: Settings,
        node_inspector: NodeInspector = None,
        pvc_manager: VolumeClaimManager = None,
        debug: bool = None,
        logger: Logger = None,
    ):
        super().__init__(cluster=cluster.name, namespace=cluster.namespace, labels=cluster.labels)
        self.aerospike_cluster = cluster
        self.conf = conf
        self.debug = conf.debug if debug is None else debug
        self.logger = logger or logging.getLogger(__name__)
        self.node_inspector = node_inspector or NodeInspector(
            timeout=conf.client_timeout_seconds
        )
        self.pvc_manager = pvc_manager or VolumeClaimManager(cluster, logger=self.logger)

    @property
    def spec(self):
        return self.aerospike_cluster.spec

    async def list_cluster_pods(self) -> List[V1Pod]:
        """Pods of the cluster sorted by index."""
        result = await self.list_pods(
            self.core_v1_api,
            self.namespace,
            label_selector=self.labels.cluster_label_selectors().as_dict(),
        )
        return sorted(items_of(result), key=lambda p: pod_index(p, self.cluster))

    async def ensure_pods(
        self, upgrade: Callable[[V1Pod], Awaitable[V1Pod]] = None
    ) -> List[V1Pod]:
        """Converge the pod set.

        Scales down from the highest index, restarts pods running an outdated
        configuration and scales up at the lowest free indices. When given,
        ``upgrade`` is awaited for every surviving pod and returns the pod that
        now holds its index.
        """
        pods = await self.list_cluster_pods()
        desired = self.spec.node_count

        while len(pods) > desired:
            pod = pods.pop()
            self.logger.info(f"scaling down: removing pod {pod.metadata.name}")
            await self.safe_delete(pod)

        fingerprint = self.aerospike_cluster.config_fingerprint
        current = []
        for pod in pods:
            if upgrade is not None:
                pod = await upgrade(pod)
            stored = (pod.metadata.annotations or {}).get(
                AerospikeCluster.CONFIG_MAP_HASH_ANNOTATION
            )
            if stored != fingerprint:
                self.logger.info(f"pod {pod.metadata.name} runs an outdated configuration")
                pod = await self.safe_restart(pod)
            current.append(pod)

        while len(current) < desired:
            index = new_pod_index(pod_index(p, self.cluster) for p in current)
            self.logger.info(f"scaling up: creating pod with index {index}")
            current.append(await self.create_pod_at(index))
        return current

    async def safe_delete(self, pod: V1Pod):
        """Delete a pod once the node it hosts has no migrations in progress."""
        start = time.monotonic()
        success = False
        try:
            if is_pod_running_and_ready(pod):
                await self.wait_for_migrations(pod)
            else:
                self.logger.debug(
                    f"pod {pod.metadata.name} is not running and ready, not waiting for migrations"
                )
            await self.delete_pod(
                self.core_v1_api,
                pod.metadata.name,
                self.namespace,
                V1DeleteOptions(
                    grace_period_seconds=int(self.conf.termination_grace_period_seconds)
                ),
            )
            await self.wait_for_pod_deleted(pod.metadata.name)
            for claim in claim_names(pod):
                await self.pvc_manager.signal_unmounted(claim)
            success = True
            self.logger.info(f"pod {pod.metadata.name} deleted")
        finally:
            self.sensor.on_pod_operation(
                self.cluster,
                self.namespace,
                pod.metadata.name,
                "delete",
                success,
                time.monotonic() - start,
            )

    async def safe_restart(
        self, pod: V1Pod, strategy: UpgradeStrategy = DEFAULT_STRATEGY
    ) -> V1Pod:
        """Safe delete followed by the creation of a pod at the same index."""
        start = time.monotonic()
        success = False
        try:
            await self.safe_delete(pod)
            if strategy.recreate_persistent_volume_claims:
                await self.pvc_manager.delete_claims_for(pod)
            new_pod = await self.create_pod_at(
                pod_index(pod, self.cluster),
                reuse_claims=not strategy.recreate_persistent_volume_claims,
            )
            success = True
            return new_pod
        finally:
            self.sensor.on_pod_operation(
                self.cluster,
                self.namespace,
                pod.metadata.name,
                "restart",
                success,
                time.monotonic() - start,
            )

    async def wait_for_migrations(self, pod: V1Pod):
        """Poll the node hosted by the pod until it has no migrations in progress.

        Raises:
            MigrationsTimeoutError: If migrations are still running after the timeout.
            NodeNotFoundError: If the pod hosts a node other than the one it was assigned.
        """
        name = pod.metadata.name
        body = self.aerospike_cluster.body
        deadline = time.monotonic() + self.conf.migrations_timeout_seconds
        next_feedback = time.monotonic() + self.conf.feedback_period_seconds

        events.record(
            body,
            events.REASON_WAIT_FOR_MIGRATIONS_STARTED,
            f"waiting for migrations to finish on pod {name}",
        )
        while await self.node_inspector.has_migrations_in_progress(pod):
            current = time.monotonic()
            if current >= deadline:
                raise MigrationsTimeoutError(
                    f"timed out waiting for migrations to finish on pod {name}"
                )
            if current >= next_feedback:
                events.record(
                    body,
                    events.REASON_WAITING_FOR_MIGRATIONS,
                    f"waiting for migrations to finish on pod {name}",
                )
                next_feedback = current + self.conf.feedback_period_seconds
            await asyncio.sleep(
                min(self.conf.migrations_poll_interval_seconds, deadline - current)
            )
        events.record(
            body,
            events.REASON_WAIT_FOR_MIGRATIONS_FINISHED,
            f"migrations finished on pod {name}",
        )

    async def create_pod_at(self, index: int, reuse_claims: bool = True) -> V1Pod:
        """Create the pod at the given index and wait for it to be running and ready.

        Claims left behind by a previous pod with the same name are mounted
        again unless ``reuse_claims`` is disabled.
        """
        name = AerospikeClusterResources.pod_name(self.cluster, index)
        body = self.aerospike_cluster.body
        start = time.monotonic()
        success = False
        try:
            claims = await self.claims_for(name, reuse=reuse_claims)
            await self.create_pod(self.core_v1_api, self.namespace, self.prepare_pod(index, claims))
            events.record(body, events.REASON_NODE_STARTING, f"starting pod {name}")
            try:
                pod = await self.wait_for_pod_ready(name)
            except (PodFailedError, WaitTimeoutError) as ex:
                events.record_warning(
                    body, events.REASON_NODE_STARTED_FAILED, f"failed to start pod {name}: {ex}"
                )
                raise
            events.record(body, events.REASON_NODE_STARTED, f"pod {name} is running and ready")
            await self.check_cluster_size(pod)
            success = True
            return pod
        finally:
            self.sensor.on_pod_operation(
                self.cluster, self.namespace, name, "create", success, time.monotonic() - start
            )

    async def check_cluster_size(self, pod: V1Pod):
        """Log the size of the cluster a freshly started node has joined."""
        name = pod.metadata.name
        try:
            size = await self.node_inspector.cluster_size(pod)
        except (InfoError, OSError) as ex:
            self.logger.warning(f"failed to read the cluster size from pod {name}: {ex}")
            return
        if size > self.spec.node_count:
            self.logger.warning(
                f"pod {name} reports a cluster of {size} nodes, expected at most {self.spec.node_count}"
            )
        else:
            self.logger.info(f"pod {name} joined a cluster of {size} nodes")

    async def claims_for(
        self, pod_name: str, reuse: bool = True
    ) -> Dict[str, V1PersistentVolumeClaim]:
        """One claim per aerospike namespace, keyed by namespace name."""
        claims = {}
        for ns in self.spec.namespaces:
            claim = await self.pvc_manager.claim_for(pod_name, ns, reuse=reuse)
            if LAST_UNMOUNTED_ON_ANNOTATION in (claim.metadata.annotations or {}):
                await self.pvc_manager.signal_mounted(claim)
            claims[ns.name] = claim
        return claims

    async def wait_for_pod_ready(self, name: str) -> V1Pod:
        """Block until the pod is running and ready.

        Raises:
            PodFailedError: If the pod reaches a failure state.
            WaitTimeoutError: If the pod is not ready within the create timeout.
        """

        def condition(event_type: str, pod: Optional[V1Pod]) -> bool:
            if pod is None or event_type == "DELETED":
                raise PodFailedError(f"pod {name} was deleted while starting")
            if is_pod_in_failure_state(pod):
                raise PodFailedError(f"pod {name} is in a failure state")
            return is_pod_running_and_ready(pod)

        return await self.wait_for_pod(
            name,
            condition,
            self.conf.pod_create_timeout_seconds,
            events.REASON_NODE_STARTING,
            f"waiting for pod {name} to be running and ready",
        )

    async def wait_for_pod_deleted(self, name: str):
        def condition(event_type: str, pod: Optional[V1Pod]) -> bool:
            return pod is None or event_type == "DELETED"

        await self.wait_for_pod(name, condition, self.conf.pod_delete_timeout_seconds)

    async def wait_for_pod(
        self,
        name: str,
        condition: Callable[[str, Optional[V1Pod]], bool],
        timeout: float,
        feedback_reason: str = None,
        feedback_message: str = None,
    ) -> Optional[V1Pod]:
        """Watch a single pod until ``condition`` holds.

        The watch is re-established with the remaining budget whenever the
        stream closes early. Each stream is bounded by the feedback period so
        that a progress event can be emitted between two streams.
        """
        deadline = time.monotonic() + timeout
        while True:
            pod = await self.fetch_pod(self.core_v1_api, name, self.namespace)
            if condition("ADDED", pod):
                return pod
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise WaitTimeoutError(f"timed out waiting for pod {name}")
            stream_timeout = max(1, int(min(remaining, self.conf.feedback_period_seconds)))
            w = watch.Watch()
            try:
                async for event in w.stream(
                    self.core_v1_api.list_namespaced_pod,
                    namespace=self.namespace,
                    field_selector=f"metadata.name={name}",
                    resource_version=pod.metadata.resource_version,
                    timeout_seconds=stream_timeout,
                ):
                    obj = event["object"]
                    if condition(event["type"], obj):
                        return obj
            finally:
                w.stop()
            if feedback_reason and time.monotonic() < deadline:
                events.record(self.aerospike_cluster.body, feedback_reason, feedback_message)

    def prepare_node_id(self, index: int) -> str:
        return node_id(self.aerospike_cluster.uid, index)

    def prepare_image(self) -> str:
        return f"{SERVER_IMAGE}:{self.spec.version}"

    def prepare_labels(self) -> Dict[str, str]:
        return self.labels.as_dict()

    def prepare_annotations(self, index: int) -> Dict[str, str]:
        return {
            AerospikeCluster.CONFIG_MAP_HASH_ANNOTATION: self.aerospike_cluster.config_fingerprint,
            NODE_ID_ANNOTATION: self.prepare_node_id(index),
        }

    def prepare_namespace_volume_name(self, ns_index: int) -> str:
        return f"{NAMESPACE_VOLUME_PREFIX}-{ns_index}"

    def prepare_volumes(self, claims: Dict[str, V1PersistentVolumeClaim]) -> List[V1Volume]:
        volumes = [
            V1Volume(
                name=INITIAL_CONFIG_VOLUME_NAME,
                config_map=V1ConfigMapVolumeSource(name=self.aerospike_cluster.config_map_name),
            ),
            V1Volume(
                name=FINAL_CONFIG_VOLUME_NAME,
                empty_dir=V1EmptyDirVolumeSource(),
            ),
        ]
        for ns_index, ns in enumerate(self.spec.namespaces):
            volumes.append(
                V1Volume(
                    name=self.prepare_namespace_volume_name(ns_index),
                    persistent_volume_claim=V1PersistentVolumeClaimVolumeSource(
                        claim_name=claims[ns.name].metadata.name
                    ),
                )
            )
        return volumes

    def prepare_volume_mounts(self) -> List[V1VolumeMount]:
        mounts = [V1VolumeMount(name=FINAL_CONFIG_VOLUME_NAME, mount_path=FINAL_CONFIG_MOUNT_PATH)]
        for ns_index, ns in enumerate(self.spec.namespaces):
            if ns.storage.type == STORAGE_TYPE_DEVICE:
                continue
            mounts.append(
                V1VolumeMount(
                    name=self.prepare_namespace_volume_name(ns_index),
                    mount_path=aerospike_config.file_mount_path(ns.name),
                )
            )
        return mounts

    def prepare_volume_devices(self) -> Optional[List[V1VolumeDevice]]:
        devices = [
            V1VolumeDevice(
                name=self.prepare_namespace_volume_name(ns_index),
                device_path=aerospike_config.device_path(ns_index),
            )
            for ns_index, ns in enumerate(self.spec.namespaces)
            if ns.storage.type == STORAGE_TYPE_DEVICE
        ]
        return devices or None

    def prepare_resource_requirements(self) -> V1ResourceRequirements:
        memory = memory_request_bytes(ns.memory_size for ns in self.spec.namespaces)
        return V1ResourceRequirements(
            requests={
                "cpu": DEFAULT_CPU_REQUEST,
                "memory": str(memory) if memory is not None else DEFAULT_MEMORY_REQUEST,
            }
        )

    def prepare_readiness_probe(self) -> V1Probe:
        return V1Probe(
            tcp_socket=V1TCPSocketAction(port=aerospike_config.SERVICE_PORT),
            initial_delay_seconds=READINESS_INITIAL_DELAY_SECONDS,
            timeout_seconds=READINESS_TIMEOUT_SECONDS,
            period_seconds=READINESS_PERIOD_SECONDS,
            failure_threshold=READINESS_FAILURE_THRESHOLD,
        )

    def prepare_init_container(self, index: int) -> V1Container:
        """Renders the final configuration file with the node id of the pod."""
        return V1Container(
            name=INIT_CONTAINER_NAME,
            image=self.conf.tools_image,
            image_pull_policy="Always",
            command=[
                "asinit",
                "--node-id",
                self.prepare_node_id(index),
                "--source-config",
                f"{INITIAL_CONFIG_MOUNT_PATH}/{aerospike_config.CONFIG_FILE_NAME}",
                "--target-config",
                f"{FINAL_CONFIG_MOUNT_PATH}/{aerospike_config.CONFIG_FILE_NAME}",
            ],
            volume_mounts=[
                V1VolumeMount(name=INITIAL_CONFIG_VOLUME_NAME, mount_path=INITIAL_CONFIG_MOUNT_PATH),
                V1VolumeMount(name=FINAL_CONFIG_VOLUME_NAME, mount_path=FINAL_CONFIG_MOUNT_PATH),
            ],
            resources=V1ResourceRequirements(
                requests={"cpu": SIDECAR_CPU_REQUEST, "memory": SIDECAR_MEMORY_REQUEST}
            ),
        )

    def prepare_server_container(self) -> V1Container:
        return V1Container(
            name=SERVER_CONTAINER_NAME,
            image=self.prepare_image(),
            command=[
                "/usr/bin/asd",
                "--foreground",
                "--config-file",
                f"{FINAL_CONFIG_MOUNT_PATH}/{aerospike_config.CONFIG_FILE_NAME}",
            ],
            ports=[
                V1ContainerPort(
                    name=AerospikeCluster.SERVICE_PORT_NAME,
                    container_port=aerospike_config.SERVICE_PORT,
                ),
                V1ContainerPort(
                    name=AerospikeCluster.HEARTBEAT_PORT_NAME,
                    container_port=aerospike_config.HEARTBEAT_PORT,
                ),
                V1ContainerPort(
                    name=AerospikeCluster.FABRIC_PORT_NAME,
                    container_port=aerospike_config.FABRIC_PORT,
                ),
                V1ContainerPort(
                    name=AerospikeCluster.INFO_PORT_NAME,
                    container_port=aerospike_config.INFO_PORT,
                ),
            ],
            volume_mounts=self.prepare_volume_mounts(),
            volume_devices=self.prepare_volume_devices(),
            readiness_probe=self.prepare_readiness_probe(),
            resources=self.prepare_resource_requirements(),
        )

    def prepare_asprom_container(self) -> V1Container:
        return V1Container(
            name=ASPROM_CONTAINER_NAME,
            image=self.conf.tools_image,
            image_pull_policy="Always",
            command=["asprom"],
            ports=[
                V1ContainerPort(
                    name=AerospikeCluster.ASPROM_PORT_NAME,
                    container_port=AerospikeCluster.ASPROM_PORT,
                )
            ],
            resources=V1ResourceRequirements(
                requests={"cpu": SIDECAR_CPU_REQUEST, "memory": SIDECAR_MEMORY_REQUEST}
            ),
        )

    def prepare_affinity(self) -> Optional[V1Affinity]:
        """Keeps two nodes of the same cluster off the same kubernetes node."""
        if self.debug:
            return None
        selectors = self.labels.cluster_label_selectors().as_dict()
        return V1Affinity(
            pod_anti_affinity=V1PodAntiAffinity(
                required_during_scheduling_ignored_during_execution=[
                    V1PodAffinityTerm(
                        label_selector=V1LabelSelector(
                            match_expressions=[
                                V1LabelSelectorRequirement(
                                    key=key, operator="In", values=[value]
                                )
                                for key, value in selectors.items()
                            ]
                        ),
                        topology_key=HOSTNAME_TOPOLOGY_KEY,
                    )
                ]
            )
        )

    def prepare_pod(self, index: int, claims: Dict[str, V1PersistentVolumeClaim]) -> V1Pod:
        return V1Pod(
            api_version="v1",
            kind="Pod",
            metadata=V1ObjectMeta(
                name=AerospikeClusterResources.pod_name(self.cluster, index),
                namespace=self.namespace,
                labels=self.prepare_labels(),
                annotations=self.prepare_annotations(index),
                owner_references=[self.aerospike_cluster.owner_reference()],
            ),
            spec=V1PodSpec(
                init_containers=[self.prepare_init_container(index)],
                containers=[self.prepare_server_container(), self.prepare_asprom_container()],
                volumes=self.prepare_volumes(claims),
                affinity=self.prepare_affinity(),
                termination_grace_period_seconds=int(self.conf.termination_grace_period_seconds),
            ),
        )

