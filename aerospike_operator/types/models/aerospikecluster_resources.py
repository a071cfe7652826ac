class AerospikeClusterResources:
    """Encapsulates the naming scheme used for the resources which the operator manages
    for an AerospikeCluster."""

    @classmethod
    def pod_name(self, cluster_name: str, index: int):
        """Returns the name of the pod with the given index."""
        return f"{cluster_name}-{index}"

    @classmethod
    def service_name(self, cluster_name: str):
        """Returns the name of the client service for a cluster of the given name."""
        return cluster_name

    @classmethod
    def discovery_service_name(self, cluster_name: str):
        """Returns the name of the headless service used for peer discovery."""
        return f"{cluster_name}-discovery"

    @classmethod
    def qualified_discovery_service_name(self, cluster_name: str, namespace: str):
        return f"{self.discovery_service_name(cluster_name)}.{namespace}"

    @classmethod
    def config_map_name(self, cluster_name: str):
        return f"{cluster_name}-config"

    @classmethod
    def network_policy_name(self, cluster_name: str):
        return cluster_name

    @classmethod
    def upgrade_backup_name(self, namespace_name: str, source_version: str, target_version: str):
        """Returns the name of the backup created before upgrading between two versions."""
        source = source_version.replace(".", "")
        target = target_version.replace(".", "")
        return f"{namespace_name}-{source}-{target}-upgrade"
