from typing import Dict


class ResourceLabels:
    AEROSPIKE_DOMAIN: str = "aerospike.travelaudience.com/"

    APP_LABEL = "app"

    AEROSPIKE_CLUSTER_LABEL = AEROSPIKE_DOMAIN + "cluster-name"

    AEROSPIKE_NAMESPACE_LABEL = AEROSPIKE_DOMAIN + "namespace-name"


class Labels(ResourceLabels):
    KUBERNETES_DOMAIN = "app.kubernetes.io/"

    KUBERNETES_MANAGED_BY_LABEL = KUBERNETES_DOMAIN + "managed-by"

    APPLICATION_NAME = "aerospike"

    _labels: Dict[str, str]

    def __init__(self, labels: Dict[str, str] = None) -> None:
        self._labels = labels if labels else dict()

    def update(self, labels: Dict[str, str]) -> "Labels":
        self._labels.update(labels.copy())
        return self

    def as_dict(self) -> Dict[str, str]:
        """Return labels are dictionary."""
        return self._labels.copy()

    def include(self, label: str, value: str) -> "Labels":
        self.update({label: value})
        return self

    def include_app(self) -> "Labels":
        return self.include(self.APP_LABEL, self.APPLICATION_NAME)

    def include_cluster(self, cluster: str) -> "Labels":
        return self.include(self.AEROSPIKE_CLUSTER_LABEL, cluster)

    def include_namespace(self, namespace_name: str) -> "Labels":
        return self.include(self.AEROSPIKE_NAMESPACE_LABEL, namespace_name)

    def include_kubernetes_managed_by(self, operator_name: str) -> "Labels":
        return self.include(self.KUBERNETES_MANAGED_BY_LABEL, operator_name)

    def cluster_label_selectors(self) -> "Labels":
        """Labels that select every pod of a cluster."""
        selector_labels = [self.APP_LABEL, self.AEROSPIKE_CLUSTER_LABEL]
        return Labels(
            {key: self._labels[key] for key in selector_labels if key in self._labels}
        )

    def __str__(self):
        return f"Labels<{self._labels}>"

    @classmethod
    def generate_default_labels(cls, cluster_name: str, managed_by: str) -> "Labels":
        labels = Labels()
        return (
            labels.include_app()
            .include_cluster(cluster_name)
            .include_kubernetes_managed_by(managed_by)
        )
