from typing import NamedTuple

SUPPORTED_VERSIONS = (
    "4.0.0.4",
    "4.0.0.5",
    "4.0.0.6",
    "4.1.0.1",
    "4.1.0.6",
    "4.2.0.3",
    "4.2.0.4",
    "4.2.0.5",
    "4.2.0.10",
)


class AerospikeVersion(NamedTuple):
    major: int
    minor: int
    patch: int
    revision: int = 0

    @classmethod
    def from_str(cls, version: str) -> "AerospikeVersion":
        """Parse a version string with three or four numeric components."""
        parts = version.split(".")
        if len(parts) < 3 or len(parts) > 4:
            raise ValueError(f"invalid version scheme: {version!r}")
        try:
            return cls(*(int(p) for p in parts))
        except ValueError:
            raise ValueError(f"invalid version scheme: {version!r}") from None

    def is_supported(self) -> bool:
        return str(self) in SUPPORTED_VERSIONS

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}.{self.revision}"


class UpgradeStrategy(NamedTuple):
    """Describes how pods are upgraded."""

    #: New persistent volume claims are created for upgraded pods
    recreate_persistent_volume_claims: bool


DEFAULT_STRATEGY = UpgradeStrategy(recreate_persistent_volume_claims=False)

# Upgrading from before 4.2 to 4.2 or newer changes the on-disk format
# https://www.aerospike.com/docs/operations/upgrade/storage_to_4_2
TO_42XY_STRATEGY = UpgradeStrategy(recreate_persistent_volume_claims=True)


class VersionUpgrade(NamedTuple):
    """A transition between a source and a target aerospike version."""

    source: AerospikeVersion
    target: AerospikeVersion

    @classmethod
    def from_str(cls, source: str, target: str) -> "VersionUpgrade":
        return cls(AerospikeVersion.from_str(source), AerospikeVersion.from_str(target))

    def is_downgrade(self) -> bool:
        return tuple(self.target) < tuple(self.source)

    def is_major_upgrade(self) -> bool:
        return not self.is_downgrade() and self.target.major > self.source.major

    def is_minor_upgrade(self) -> bool:
        return (
            not self.is_downgrade()
            and not self.is_major_upgrade()
            and self.target.minor > self.source.minor
        )

    def is_patch_upgrade(self) -> bool:
        return (
            not self.is_downgrade()
            and not self.is_major_upgrade()
            and not self.is_minor_upgrade()
            and self.target.patch > self.source.patch
        )

    def is_revision_upgrade(self) -> bool:
        return (
            not self.is_downgrade()
            and not self.is_major_upgrade()
            and not self.is_minor_upgrade()
            and not self.is_patch_upgrade()
            and self.target.revision > self.source.revision
        )

    def is_upgradable(self) -> bool:
        """Minor, patch and revision upgrades can be rolled out pod by pod."""
        return (
            self.is_minor_upgrade()
            or self.is_patch_upgrade()
            or self.is_revision_upgrade()
        )

    def is_valid(self) -> bool:
        """Both versions are supported and the transition can be rolled out."""
        return (
            self.source.is_supported()
            and self.target.is_supported()
            and self.is_upgradable()
        )

    def get_strategy(self) -> UpgradeStrategy:
        if not self.is_upgradable():
            raise ValueError(f"cannot upgrade from version {self.source} to {self.target}")
        if self.target.major == 4 and self.source.minor <= 1 and self.target.minor >= 2:
            return TO_42XY_STRATEGY
        return DEFAULT_STRATEGY
