import logging
from logging import Logger
from typing import Optional

from aerospike_operator.controller.owners import split_key
from aerospike_operator.reconciler.upgrades import UpgradeOrchestrator
from aerospike_operator.reconciler.validation import validate
from aerospike_operator.resources.aerospikecluster import AerospikeCluster
from aerospike_operator.resources.pods import PodLifecycleManager
from aerospike_operator.types.models import UpgradePhase
from aerospike_operator.types.settings import Settings
from aerospike_operator.utils import events
from aerospike_operator.utils.errors import PodUpgradeFailedError
from aerospike_operator.web import NodeInspector


class ClusterReconciler:
    """Runs reconcile passes for the keys handed out by the work queue."""

    logger: Logger
    conf: Settings

    def __init__(
        self,
        conf: Settings,
        node_inspector: NodeInspector = None,
        logger: Logger = None,
    ):
        self.conf = conf
        self.node_inspector = node_inspector or NodeInspector(
            timeout=conf.client_timeout_seconds
        )
        self.logger = logger or logging.getLogger(__name__)

    async def reconcile(self, key: str):
        """Reconcile the AerospikeCluster identified by ``namespace/name``.

        Errors propagate so that the key is requeued with backoff.
        """
        namespace, name = split_key(key)
        cluster = await AerospikeCluster.fetch(name, namespace, logger=self.logger)
        if cluster is None:
            self.logger.debug(f"aerospikecluster {key} no longer exists")
            return

        sensor = AerospikeCluster.sensor
        sensor_state = sensor.on_reconcile_start(name, namespace, "queue")
        try:
            await self.reconcile_cluster(cluster)
        except Exception as ex:
            sensor.on_reconcile_complete(name, namespace, sensor_state, False, ex)
            raise
        sensor.on_reconcile_complete(name, namespace, sensor_state, True)

    def pod_manager_for(self, cluster: AerospikeCluster) -> PodLifecycleManager:
        return PodLifecycleManager(
            cluster,
            self.conf,
            node_inspector=self.node_inspector,
            debug=self.conf.debug,
            logger=self.logger,
        )

    async def reconcile_cluster(self, cluster: AerospikeCluster):
        """Run a single reconcile pass."""
        self.logger.info(f"processing cluster {cluster.key}")

        try:
            phase = cluster.upgrade_phase
        except ValueError as ex:
            events.record_warning(cluster.body, events.REASON_VALIDATION_ERROR, str(ex))
            return

        if phase is UpgradePhase.FAILED:
            self.logger.warning(f"a previous version upgrade of {cluster.key} has failed, aborting")
            return

        pod_manager = self.pod_manager_for(cluster)
        orchestrator: Optional[UpgradeOrchestrator] = None
        if cluster.upgrade_requested:
            orchestrator = UpgradeOrchestrator(cluster, pod_manager, logger=self.logger)
            if not await orchestrator.advance():
                return
        elif phase in (UpgradePhase.BACKUP, UpgradePhase.STARTED):
            # status.version already matches spec.version, so the upgrade is done
            self.logger.info(f"finishing the interrupted version upgrade of {cluster.key}")
            await UpgradeOrchestrator(
                cluster, pod_manager, logger=self.logger
            ).signal_upgrade_finished()

        if not await validate(cluster):
            return

        await cluster.synchronize()

        try:
            await pod_manager.ensure_pods(
                upgrade=orchestrator.maybe_upgrade_pod if orchestrator else None
            )
        except PodUpgradeFailedError as ex:
            self.logger.error(str(ex))
            await orchestrator.signal_upgrade_failed()
            return

        changed = cluster.mirror_spec_into_status()
        if changed:
            await cluster.apply(status_fields=changed)

        if orchestrator is not None:
            await orchestrator.signal_upgrade_finished()
