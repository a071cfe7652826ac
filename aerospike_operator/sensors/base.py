"""Base sensor classes for operator monitoring.

This module defines the base OperatorSensor class that provides lifecycle hooks
for monitoring operator events. All hooks are no-ops by default, allowing
subclasses to override only the events they care about.

The hook pattern follows Faust's sensor design:
- Hooks come in pairs: on_X_start() and on_X_complete()
- Start hooks return an optional state dict for tracking multi-phase operations
- Complete hooks receive the state dict from their corresponding start hook
"""

from typing import Dict, List, Optional, Any
import logging

logger = logging.getLogger(__name__)


class OperatorSensor:
    """Base sensor class for Aerospike operator monitoring.

    Hooks are grouped in four categories:
    1. Work queue and reconciliation lifecycle
    2. Kubernetes resource sync (services, config maps, network policies)
    3. Pod operations (create, delete, restart, upgrade)
    4. Upgrade phase transitions and status updates

    Example:
        class LoggingSensor(OperatorSensor):
            def on_reconcile_start(self, cluster_name, namespace, trigger_source):
                return {'start_time': time.time()}

            def on_reconcile_complete(self, cluster_name, namespace, state, success, error=None):
                duration = time.time() - state['start_time']
                logger.info(f"Reconciled {cluster_name} in {duration}s")
    """

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_queued(self, key: str, queue_depth: int) -> None:
        """Called when a cluster key is added to the work queue.

        Args:
            key: Cluster key in ``namespace/name`` form
            queue_depth: Number of keys waiting in the queue
        """
        pass

    def on_reconcile_dequeued(self, key: str, wait_time: float) -> None:
        """Called when a worker picks a cluster key from the work queue.

        Args:
            key: Cluster key in ``namespace/name`` form
            wait_time: Time spent in queue (seconds)
        """
        pass

    def on_reconcile_start(
        self,
        cluster_name: str,
        namespace: str,
        trigger_source: str,
    ) -> Optional[Dict[str, Any]]:
        """Called when a reconcile pass begins.

        Args:
            cluster_name: AerospikeCluster resource name
            namespace: Kubernetes namespace
            trigger_source: What triggered the pass (queue, timer, ...)

        Returns:
            Optional state dict passed to on_reconcile_complete
        """
        pass

    def on_reconcile_complete(
        self,
        cluster_name: str,
        namespace: str,
        state: Optional[Dict[str, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Called when a reconcile pass completes.

        Args:
            cluster_name: AerospikeCluster resource name
            namespace: Kubernetes namespace
            state: State dict returned from on_reconcile_start
            success: Whether the pass succeeded
            error: Exception if the pass failed
        """
        pass

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
        """Called when K8s resource sync begins.

        Args:
            cluster_name: Owning AerospikeCluster name
            resource_name: Actual K8s resource name being synced
            namespace: Kubernetes namespace
            resource_type: Type of resource (Service, ConfigMap, NetworkPolicy, ...)

        Returns:
            Optional state dict passed to on_resource_sync_complete
        """
        pass

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
        """Called when K8s resource sync completes.

        Args:
            cluster_name: Owning AerospikeCluster name
            resource_name: Actual K8s resource name being synced
            namespace: Kubernetes namespace
            resource_type: Type of resource
            state: State dict returned from on_resource_sync_start
            operation: Operation performed (created, updated, no-op)
            success: Whether operation succeeded
            error: Exception if operation failed
        """
        pass

    def on_resource_drift_detected(
        self,
        cluster_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        drift_fields: List[str],
    ) -> None:
        """Called when a live resource differs from its desired state."""
        pass

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
        """Called after the operator creates, deletes, restarts or upgrades a pod.

        Args:
            cluster_name: Owning AerospikeCluster name
            namespace: Kubernetes namespace
            pod_name: Pod name
            operation: One of create, delete, restart, upgrade
            success: Whether the operation succeeded
            duration: Time taken including waits (seconds)
        """
        pass

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
        """Called when the upgrade-status annotation changes value."""
        pass

    def on_status_update(
        self,
        cluster_name: str,
        namespace: str,
        update_fields: List[str],
    ) -> None:
        """Called when status is patched.

        Args:
            cluster_name: AerospikeCluster resource name
            namespace: Kubernetes namespace
            update_fields: List of status fields that were updated
        """
        pass

    # =============================================================================
    # Utility Methods
    # =============================================================================

    def asdict(self) -> Dict[str, Any]:
        """Return sensor state as dictionary."""
        return {}
