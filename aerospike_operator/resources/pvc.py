"""Persistent volume claims backing aerospike namespaces.

Every pod gets one claim per aerospike namespace. Claims outlive their pods:
when a pod is deleted its claims are marked as unmounted and become eligible
for reuse by the next pod with the same name until their TTL expires.
"""

import logging
from datetime import datetime, timedelta, timezone
from logging import Logger
from typing import List, Optional
from kubernetes_asyncio.client import (
    V1ObjectMeta,
    V1PersistentVolumeClaim,
    V1PersistentVolumeClaimSpec,
    V1Pod,
)

from aerospike_operator.types.models import NamespaceSpec
from aerospike_operator.types.schemas.storage import (
    STORAGE_TYPE_DEVICE,
    DEFAULT_PERSISTENT_VOLUME_CLAIM_TTL,
)
from aerospike_operator.common.models.labels import Labels
from aerospike_operator.resources.base import BaseResource, items_of
from aerospike_operator.utils.duration import parse_duration
from aerospike_operator.utils.helpers import iso_datestr_to_datetime, now, utc_now

POD_ANNOTATION = "aerospike.travelaudience.com/pod-name"
LAST_UNMOUNTED_ON_ANNOTATION = "aerospike.travelaudience.com/last-unmounted-on"
PVC_TTL_ANNOTATION = "aerospike.travelaudience.com/pvc-ttl"

VOLUME_MODE_BLOCK = "Block"
VOLUME_MODE_FILESYSTEM = "Filesystem"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def volume_mode(ns: NamespaceSpec) -> str:
    if ns.storage.type == STORAGE_TYPE_DEVICE:
        return VOLUME_MODE_BLOCK
    return VOLUME_MODE_FILESYSTEM


def claim_ttl(ns: NamespaceSpec) -> str:
    return ns.storage.persistent_volume_claim_ttl or DEFAULT_PERSISTENT_VOLUME_CLAIM_TTL


def is_reusable(
    pvc: V1PersistentVolumeClaim,
    pod_name: str,
    namespace_name: str,
    at: datetime = None,
) -> bool:
    """Whether a claim left behind by a deleted pod may be mounted again.

    Raises:
        ValueError: If the unmount timestamp or the TTL cannot be parsed.
    """
    if pvc.metadata.deletion_timestamp is not None:
        return False
    annotations = pvc.metadata.annotations or {}
    labels = pvc.metadata.labels or {}
    if annotations.get(POD_ANNOTATION) != pod_name:
        return False
    if labels.get(Labels.AEROSPIKE_NAMESPACE_LABEL) != namespace_name:
        return False
    last_unmounted = annotations.get(LAST_UNMOUNTED_ON_ANNOTATION)
    if last_unmounted is None:
        return False
    ttl = annotations.get(PVC_TTL_ANNOTATION)
    if ttl is None:
        return False
    last_unmounted_on = iso_datestr_to_datetime(last_unmounted)
    expiration = parse_duration(ttl)
    if expiration == timedelta(0):
        return True
    return (at or utc_now()) < last_unmounted_on + expiration


def _creation_timestamp(pvc: V1PersistentVolumeClaim) -> datetime:
    ts = pvc.metadata.creation_timestamp
    if ts is None:
        return _EPOCH
    if isinstance(ts, str):
        return iso_datestr_to_datetime(ts)
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


class VolumeClaimManager(BaseResource):
    """Creates, reuses and releases the claims of an AerospikeCluster."""

    logger: Logger

    def __init__(self, cluster, logger: Logger = None):
        super().__init__(cluster=cluster.name, namespace=cluster.namespace, labels=cluster.labels)
        self._owner = cluster
        self.logger = logger or logging.getLogger(__name__)

    async def list_claims(self) -> List[V1PersistentVolumeClaim]:
        """Every claim labeled as belonging to the cluster."""
        result = await self.list_persistent_volume_claims(
            self.core_v1_api,
            self.namespace,
            label_selector=self.labels.cluster_label_selectors().as_dict(),
        )
        return items_of(result)

    async def find_reusable(
        self, pod_name: str, ns: NamespaceSpec
    ) -> Optional[V1PersistentVolumeClaim]:
        """Most recently created claim that may be reused by the pod."""
        candidates = [
            pvc for pvc in await self.list_claims() if is_reusable(pvc, pod_name, ns.name)
        ]
        if not candidates:
            return None
        candidates.sort(key=_creation_timestamp, reverse=True)
        self.logger.debug(
            f"using existing persistentvolumeclaim {candidates[0].metadata.name} for pod {pod_name}"
        )
        return candidates[0]

    def prepare_claim(self, pod_name: str, ns: NamespaceSpec) -> V1PersistentVolumeClaim:
        labels = self.labels.as_dict()
        labels[Labels.AEROSPIKE_NAMESPACE_LABEL] = ns.name
        spec = V1PersistentVolumeClaimSpec(
            access_modes=["ReadWriteOnce"],
            resources={"requests": {"storage": ns.storage.size}},
            volume_mode=volume_mode(ns),
        )
        if ns.storage.storage_class_name:
            spec.storage_class_name = ns.storage.storage_class_name
        return V1PersistentVolumeClaim(
            api_version="v1",
            kind="PersistentVolumeClaim",
            metadata=V1ObjectMeta(
                generate_name=f"{pod_name}-{ns.name}-",
                namespace=self.namespace,
                labels=labels,
                annotations={
                    POD_ANNOTATION: pod_name,
                    PVC_TTL_ANNOTATION: claim_ttl(ns),
                },
                owner_references=[self._owner.owner_reference()],
            ),
            spec=spec,
        )

    async def claim_for(
        self, pod_name: str, ns: NamespaceSpec, reuse: bool = True
    ) -> V1PersistentVolumeClaim:
        """Return a claim for the namespace of the given pod, reusing one if possible.

        With ``reuse`` disabled a new claim is always created.
        """
        if reuse:
            existing = await self.find_reusable(pod_name, ns)
            if existing is not None:
                return existing
        pvc = await self.create_persistent_volume_claim(
            self.core_v1_api, self.namespace, self.prepare_claim(pod_name, ns)
        )
        self.logger.debug(f"persistentvolumeclaim {pvc.metadata.name} created for pod {pod_name}")
        return pvc

    async def signal_mounted(self, pvc: V1PersistentVolumeClaim):
        await self.patch_persistent_volume_claim(
            self.core_v1_api,
            pvc.metadata.name,
            self.namespace,
            {"metadata": {"annotations": {LAST_UNMOUNTED_ON_ANNOTATION: None}}},
        )

    async def signal_unmounted(self, pvc_name: str):
        await self.patch_persistent_volume_claim(
            self.core_v1_api,
            pvc_name,
            self.namespace,
            {"metadata": {"annotations": {LAST_UNMOUNTED_ON_ANNOTATION: now()}}},
        )

    async def delete_claims_for(self, pod: V1Pod):
        """Delete every claim mounted by the pod."""
        for name in claim_names(pod):
            await self.delete_persistent_volume_claim(self.core_v1_api, name, self.namespace)
            self.logger.info(f"persistentvolumeclaim {name} of pod {pod.metadata.name} deleted")


def claim_names(pod: V1Pod) -> List[str]:
    """Names of the claims mounted by a pod."""
    names = []
    for volume in pod.spec.volumes or []:
        if volume.persistent_volume_claim is not None:
            names.append(volume.persistent_volume_claim.claim_name)
    return names
