"""Aerospike Operator Sensor Framework.

Non-invasive instrumentation of operator lifecycle events through a
hook-based pattern, inspired by Faust's sensor architecture.

Usage:
    from aerospike_operator.sensors import SensorDelegate, PrometheusMonitor

    delegate = SensorDelegate()
    delegate.add(PrometheusMonitor())
"""

from aerospike_operator.sensors.base import OperatorSensor
from aerospike_operator.sensors.delegate import SensorDelegate
from aerospike_operator.sensors.prometheus import PrometheusMonitor
from aerospike_operator.sensors.server import init_metrics_server

__all__ = [
    'OperatorSensor',
    'SensorDelegate',
    'PrometheusMonitor',
    'init_metrics_server',
]
