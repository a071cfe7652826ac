import kopf
import logging
from aerospike_operator.types.settings import Settings
from aerospike_operator.resources.base import BaseResource
from aerospike_operator.controller.workqueue import WorkQueue, Dispatcher
from aerospike_operator.reconciler import ClusterReconciler
from aerospike_operator.sensors import init_metrics_server, SensorDelegate, PrometheusMonitor
from kubernetes_asyncio import config
from kubernetes_asyncio.client.api_client import ApiClient


@kopf.on.startup()
async def setup(
    settings: kopf.OperatorSettings, memo: kopf.Memo, logger: logging.Logger, **kwargs
):
    # Load Kubernetes config - try in-cluster first (for production), then local kubeconfig (for dev)
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        logger.info("In-cluster config not found, trying local kubeconfig")
        try:
            await config.load_kube_config()
            logger.info("Loaded local Kubernetes configuration")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    memo.conf = Settings()

    # Create a shared ApiClient for all resources to prevent connection leaks
    shared_client = ApiClient()
    BaseResource.shared_api_client = shared_client
    logger.info("Shared Kubernetes API client initialized")

    sensor_delegate = SensorDelegate()
    sensor_delegate.add(PrometheusMonitor())
    memo.sensor = sensor_delegate
    BaseResource.sensor = sensor_delegate
    logger.info("Sensor infrastructure initialized with PrometheusMonitor")

    try:
        init_metrics_server(memo.conf.metrics_port)
    except Exception as e:
        logger.error(f"Failed to start metrics server: {e}")
        logger.warning("Continuing without metrics server")

    if memo.conf.debug:
        logger.warning("Debug mode is enabled, pod anti-affinity is disabled")

    # Every reconcile pass runs on one of the dispatcher workers
    memo.queue = WorkQueue(sensor=sensor_delegate)
    memo.reconciler = ClusterReconciler(memo.conf)
    memo.dispatcher = Dispatcher(
        memo.queue,
        memo.reconciler.reconcile,
        workers=memo.conf.worker_count,
        shutdown_timeout=memo.conf.shutdown_timeout_seconds,
    )
    memo.dispatcher.start()

    # Handlers only enqueue keys, so they never hold a kopf worker for long
    settings.batching.worker_limit = 2

    # Post log records of WARNING and above as kubernetes events
    settings.posting.enabled = True
    settings.posting.level = logging.WARNING


@kopf.on.cleanup()
async def cleanup(memo: kopf.Memo, logger: logging.Logger, **kwargs):
    """Cleanup handler for operator shutdown."""
    logger.info("Shutting down operator...")

    dispatcher = getattr(memo, "dispatcher", None)
    if dispatcher is not None:
        await dispatcher.stop()

    if BaseResource.shared_api_client:
        await BaseResource.shared_api_client.close()
        BaseResource.shared_api_client = None
        logger.info("Shared API client closed")

    logger.info("Operator shutdown complete")
