from enum import Enum
from typing import Mapping, Optional

UPGRADE_STATUS_ANNOTATION = "aerospike.travelaudience.com/upgrade-status"


class UpgradePhase(Enum):
    """Progress of a version upgrade, persisted as a cluster annotation.

    ``NONE`` is represented by the absence of the annotation.
    """

    NONE = ""
    BACKUP = "backup"
    STARTED = "started"
    FAILED = "failed"

    @classmethod
    def from_annotations(cls, annotations: Optional[Mapping[str, str]]) -> "UpgradePhase":
        value = (annotations or {}).get(UPGRADE_STATUS_ANNOTATION)
        if not value:
            return cls.NONE
        try:
            return cls(value)
        except ValueError:
            raise ValueError(
                f"unknown value {value!r} of annotation {UPGRADE_STATUS_ANNOTATION}"
            ) from None

    @property
    def annotation_value(self) -> Optional[str]:
        """Value to merge-patch into the annotation. ``None`` removes the key."""
        return self.value or None

    @property
    def is_terminal(self) -> bool:
        return self is UpgradePhase.FAILED
