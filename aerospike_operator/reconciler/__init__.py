from .cluster import ClusterReconciler
from .upgrades import UpgradeOrchestrator
from .validation import validate

__all__ = ["ClusterReconciler", "UpgradeOrchestrator", "validate"]
