"""Prometheus monitoring backend for the Aerospike operator.

PrometheusMonitor collects operator lifecycle events and exposes them as
Prometheus metrics:

1. Reconciliation Loop Health - Duration, queue depth, throughput, errors
2. Kubernetes Resource Sync - Operation counts, latency, drift detection
3. Pod Lifecycle - Creates, safe deletes, restarts and upgrades
4. Upgrades - Phase transitions of the upgrade-status annotation
"""

from typing import Dict, List, Optional, Any
import time
import logging

from prometheus_client import Counter, Histogram, Gauge

from aerospike_operator.sensors.base import OperatorSensor
from aerospike_operator.controller.owners import split_key

logger = logging.getLogger(__name__)


class PrometheusMonitor(OperatorSensor):
    """Prometheus metrics monitor for the Aerospike operator.

    Metrics are organized by prefix:
    - aerospikeop_reconcile_* - Reconciliation loop metrics
    - aerospikeop_resource_* - Kubernetes resource sync metrics
    - aerospikeop_pod_* - Pod lifecycle metrics
    - aerospikeop_upgrade_* - Upgrade phase metrics
    """

    def __init__(self):
        super().__init__()

        # =============================================================================
        # Reconciliation Loop Metrics
        # =============================================================================

        self.reconcile_duration = Histogram(
            'aerospikeop_reconcile_duration_seconds',
            'Time spent in a reconcile pass',
            labelnames=['cluster_name', 'namespace', 'trigger_source', 'result'],
            buckets=[0.1, 0.5, 1.0, 5.0, 30.0, 60.0, 300.0, 900.0, 3600.0],
        )

        self.reconcile_total = Counter(
            'aerospikeop_reconcile_total',
            'Total number of reconcile passes',
            labelnames=['cluster_name', 'namespace', 'trigger_source', 'result'],
        )

        self.reconcile_errors = Counter(
            'aerospikeop_reconcile_errors_total',
            'Total number of failed reconcile passes',
            labelnames=['cluster_name', 'namespace', 'error_type'],
        )

        self.reconcile_queue_depth = Gauge(
            'aerospikeop_reconcile_queue_depth',
            'Number of cluster keys waiting in the work queue',
        )

        self.reconcile_queue_wait_seconds = Histogram(
            'aerospikeop_reconcile_queue_wait_seconds',
            'Time a cluster key spent waiting in the work queue',
            labelnames=['cluster_name', 'namespace'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
        )

        # =============================================================================
        # Kubernetes Resource Sync Metrics
        # =============================================================================

        self.resource_sync_duration = Histogram(
            'aerospikeop_resource_sync_duration_seconds',
            'Time spent syncing Kubernetes resources',
            labelnames=['cluster_name', 'namespace', 'resource_type', 'operation', 'result'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
        )

        self.resource_sync_total = Counter(
            'aerospikeop_resource_sync_total',
            'Total number of resource sync operations',
            labelnames=['cluster_name', 'namespace', 'resource_type', 'operation', 'result'],
        )

        self.resource_sync_errors = Counter(
            'aerospikeop_resource_sync_errors_total',
            'Total number of resource sync errors',
            labelnames=['cluster_name', 'namespace', 'resource_type', 'error_type'],
        )

        self.resource_drift_detected = Counter(
            'aerospikeop_resource_drift_detected_total',
            'Total number of resource drift detections',
            labelnames=['cluster_name', 'namespace', 'resource_type', 'drift_field'],
        )

        # =============================================================================
        # Pod Lifecycle Metrics
        # =============================================================================

        self.pod_operations_total = Counter(
            'aerospikeop_pod_operations_total',
            'Total number of pod operations',
            labelnames=['cluster_name', 'namespace', 'operation', 'result'],
        )

        self.pod_operation_duration = Histogram(
            'aerospikeop_pod_operation_duration_seconds',
            'Time taken by pod operations including waits for readiness and migrations',
            labelnames=['cluster_name', 'namespace', 'operation'],
            buckets=[1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 900.0, 3600.0],
        )

        # =============================================================================
        # Upgrade & Status Metrics
        # =============================================================================

        self.upgrade_phase_transitions = Counter(
            'aerospikeop_upgrade_phase_transitions_total',
            'Total number of upgrade phase transitions',
            labelnames=['cluster_name', 'namespace', 'from_phase', 'to_phase'],
        )

        self.status_updates = Counter(
            'aerospikeop_status_updates_total',
            'Total number of status updates',
            labelnames=['cluster_name', 'namespace', 'update_field'],
        )

        logger.info("PrometheusMonitor initialized with all metrics")

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_queued(self, key: str, queue_depth: int) -> None:
        self.reconcile_queue_depth.set(queue_depth)

    def on_reconcile_dequeued(self, key: str, wait_time: float) -> None:
        namespace, name = split_key(key)
        self.reconcile_queue_wait_seconds.labels(
            cluster_name=name,
            namespace=namespace,
        ).observe(wait_time)

    def on_reconcile_start(
        self,
        cluster_name: str,
        namespace: str,
        trigger_source: str,
    ) -> Optional[Dict[str, Any]]:
        """Record reconciliation start time."""
        return {
            'start_time': time.time(),
            'trigger_source': trigger_source,
        }

    def on_reconcile_complete(
        self,
        cluster_name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Record reconciliation duration and result."""
        if state:
            duration = time.time() - state['start_time']
            trigger_source = state['trigger_source']
            result = 'success' if success else 'failure'

            self.reconcile_duration.labels(
                cluster_name=cluster_name,
                namespace=namespace,
                trigger_source=trigger_source,
                result=result,
            ).observe(duration)

            self.reconcile_total.labels(
                cluster_name=cluster_name,
                namespace=namespace,
                trigger_source=trigger_source,
                result=result,
            ).inc()

        if error:
            self.reconcile_errors.labels(
                cluster_name=cluster_name,
                namespace=namespace,
                error_type=error.__class__.__name__,
            ).inc()

    # =============================================================================
    # Resource Operation Hooks
    # =============================================================================

    def on_resource_sync_start(
        self,
        cluster_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
    ) -> Optional[Dict[str, Any]]:
        return {
            'start_time': time.time(),
        }

    def on_resource_sync_complete(
        self,
        cluster_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        state: Optional[Dict[str, Any]],
        operation: str,
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Record resource sync duration and result."""
        result = 'success' if success else 'failure'
        if state:
            duration = time.time() - state['start_time']
            self.resource_sync_duration.labels(
                cluster_name=cluster_name,
                namespace=namespace,
                resource_type=resource_type,
                operation=operation,
                result=result,
            ).observe(duration)

        self.resource_sync_total.labels(
            cluster_name=cluster_name,
            namespace=namespace,
            resource_type=resource_type,
            operation=operation,
            result=result,
        ).inc()

        if error:
            self.resource_sync_errors.labels(
                cluster_name=cluster_name,
                namespace=namespace,
                resource_type=resource_type,
                error_type=error.__class__.__name__,
            ).inc()

    def on_resource_drift_detected(
        self,
        cluster_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        drift_fields: List[str],
    ) -> None:
        for field in drift_fields:
            self.resource_drift_detected.labels(
                cluster_name=cluster_name,
                namespace=namespace,
                resource_type=resource_type,
                drift_field=field,
            ).inc()

    # =============================================================================
    # Pod Hooks
    # =============================================================================

    def on_pod_operation(
        self,
        cluster_name: str,
        namespace: str,
        pod_name: str,
        operation: str,
        success: bool,
        duration: Optional[float] = None,
    ) -> None:
        self.pod_operations_total.labels(
            cluster_name=cluster_name,
            namespace=namespace,
            operation=operation,
            result='success' if success else 'failure',
        ).inc()
        if duration is not None:
            self.pod_operation_duration.labels(
                cluster_name=cluster_name,
                namespace=namespace,
                operation=operation,
            ).observe(duration)

    # =============================================================================
    # Upgrade & Status Hooks
    # =============================================================================

    def on_upgrade_phase_change(
        self,
        cluster_name: str,
        namespace: str,
        old_phase: str,
        new_phase: str,
    ) -> None:
        self.upgrade_phase_transitions.labels(
            cluster_name=cluster_name,
            namespace=namespace,
            from_phase=old_phase or "none",
            to_phase=new_phase or "none",
        ).inc()

    def on_status_update(
        self,
        cluster_name: str,
        namespace: str,
        update_fields: List[str],
    ) -> None:
        """Record status update."""
        for field in update_fields:
            self.status_updates.labels(
                cluster_name=cluster_name,
                namespace=namespace,
                update_field=field,
            ).inc()
