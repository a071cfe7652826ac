"""Sensor delegation for fan-out pattern.

SensorDelegate routes sensor events to multiple monitoring backends. Each
backend receives the same events and keeps independent state. A failing
sensor is logged and never interrupts the operator.
"""

from typing import Set, Dict, List, Optional, Any
import logging

from aerospike_operator.sensors.base import OperatorSensor

logger = logging.getLogger(__name__)


class SensorDelegate(OperatorSensor):
    """Delegate sensor that fans out events to multiple backends.

    Example:
        delegate = SensorDelegate()
        delegate.add(PrometheusMonitor())

        state = delegate.on_reconcile_start("my-cluster", "default", "queue")
        delegate.on_reconcile_complete("my-cluster", "default", state, True)
    """

    def __init__(self) -> None:
        self._sensors: Set[OperatorSensor] = set()

    def add(self, sensor: OperatorSensor) -> None:
        logger.info(f"Adding sensor: {sensor.__class__.__name__}")
        self._sensors.add(sensor)

    def remove(self, sensor: OperatorSensor) -> None:
        logger.info(f"Removing sensor: {sensor.__class__.__name__}")
        self._sensors.discard(sensor)

    def clear(self) -> None:
        logger.info(f"Clearing {len(self._sensors)} sensors")
        self._sensors.clear()

    def _log_error(self, sensor: OperatorSensor, hook: str, e: Exception) -> None:
        logger.error(
            f"Error in {sensor.__class__.__name__}.{hook}: {e}",
            exc_info=True,
        )

    # =============================================================================
    # Reconciliation Lifecycle Hooks
    # =============================================================================

    def on_reconcile_queued(self, key: str, queue_depth: int) -> None:
        for sensor in self._sensors:
            try:
                sensor.on_reconcile_queued(key, queue_depth)
            except Exception as e:
                self._log_error(sensor, "on_reconcile_queued", e)

    def on_reconcile_dequeued(self, key: str, wait_time: float) -> None:
        for sensor in self._sensors:
            try:
                sensor.on_reconcile_dequeued(key, wait_time)
            except Exception as e:
                self._log_error(sensor, "on_reconcile_dequeued", e)

    def on_reconcile_start(
        self,
        cluster_name: str,
        namespace: str,
        trigger_source: str,
    ) -> Optional[Dict[OperatorSensor, Any]]:
        """Delegate reconcile_start to all sensors.

        Returns:
            Dict mapping each sensor to its returned state, or None if no sensors
        """
        if not self._sensors:
            return None

        states = {}
        for sensor in self._sensors:
            try:
                state = sensor.on_reconcile_start(cluster_name, namespace, trigger_source)
                if state is not None:
                    states[sensor] = state
            except Exception as e:
                self._log_error(sensor, "on_reconcile_start", e)

        return states if states else None

    def on_reconcile_complete(
        self,
        cluster_name: str,
        namespace: str,
        state: Optional[Dict[OperatorSensor, Any]],
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        """Delegate reconcile_complete to all sensors with their specific state."""
        for sensor in self._sensors:
            try:
                sensor_state = state.get(sensor) if state else None
                sensor.on_reconcile_complete(cluster_name, namespace, sensor_state, success, error)
            except Exception as e:
                self._log_error(sensor, "on_reconcile_complete", e)

    # =============================================================================
    # Resource Operation Hooks
    # =============================================================================

    def on_resource_sync_start(
        self,
        cluster_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
    ) -> Optional[Dict[OperatorSensor, Any]]:
        if not self._sensors:
            return None

        states = {}
        for sensor in self._sensors:
            try:
                state = sensor.on_resource_sync_start(
                    cluster_name, resource_name, namespace, resource_type
                )
                if state is not None:
                    states[sensor] = state
            except Exception as e:
                self._log_error(sensor, "on_resource_sync_start", e)

        return states if states else None

    def on_resource_sync_complete(
        self,
        cluster_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        state: Optional[Dict[OperatorSensor, Any]],
        operation: str,
        success: bool,
        error: Optional[Exception] = None,
    ) -> None:
        for sensor in self._sensors:
            try:
                sensor_state = state.get(sensor) if state else None
                sensor.on_resource_sync_complete(
                    cluster_name,
                    resource_name,
                    namespace,
                    resource_type,
                    sensor_state,
                    operation,
                    success,
                    error,
                )
            except Exception as e:
                self._log_error(sensor, "on_resource_sync_complete", e)

    def on_resource_drift_detected(
        self,
        cluster_name: str,
        resource_name: str,
        namespace: str,
        resource_type: str,
        drift_fields: List[str],
    ) -> None:
        for sensor in self._sensors:
            try:
                sensor.on_resource_drift_detected(
                    cluster_name, resource_name, namespace, resource_type, drift_fields
                )
            except Exception as e:
                self._log_error(sensor, "on_resource_drift_detected", e)

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
        for sensor in self._sensors:
            try:
                sensor.on_pod_operation(
                    cluster_name, namespace, pod_name, operation, success, duration
                )
            except Exception as e:
                self._log_error(sensor, "on_pod_operation", e)

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
        for sensor in self._sensors:
            try:
                sensor.on_upgrade_phase_change(cluster_name, namespace, old_phase, new_phase)
            except Exception as e:
                self._log_error(sensor, "on_upgrade_phase_change", e)

    def on_status_update(
        self,
        cluster_name: str,
        namespace: str,
        update_fields: List[str],
    ) -> None:
        for sensor in self._sensors:
            try:
                sensor.on_status_update(cluster_name, namespace, update_fields)
            except Exception as e:
                self._log_error(sensor, "on_status_update", e)

    # =============================================================================
    # Utility Methods
    # =============================================================================

    def asdict(self) -> Dict[str, Any]:
        """Return aggregated state from all sensors.

        Returns:
            Dict mapping sensor class name to its state dict
        """
        return {
            sensor.__class__.__name__: sensor.asdict()
            for sensor in self._sensors
        }
