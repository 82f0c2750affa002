"""
Flag snapshots.

A FlagSnapshot is an immutable, validated view of every flag. The
SnapshotStore publishes a new snapshot on reload instead of mutating the
current one, so an evaluation always sees a single consistent snapshot.

Usage:
    store = SnapshotStore(registry, [
        {"name": "new_dashboard", "filters": [{"kind": "Boolean"}]},
    ])

    # External watcher picked up new configuration:
    store.replace(parse_feature_management(config["FeatureManagement"]))
"""

import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

import structlog

from .errors import ConfigurationError, DuplicateFlag, InvalidFilterParameters
from .models import FilterReference, FlagConfiguration
from .registry import FilterRegistry

logger = structlog.get_logger()

FlagSource = FlagConfiguration | Mapping[str, Any]


@dataclass(frozen=True)
class FlagSnapshot:
    """Point-in-time view of all flag configurations."""
    flags: Mapping[str, FlagConfiguration] = field(default_factory=dict, hash=False)
    version: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "flags", MappingProxyType(dict(self.flags)))

    def get(self, name: str) -> FlagConfiguration | None:
        """Get a flag by name."""
        return self.flags.get(name)

    def names(self) -> list[str]:
        """List flag names in load order."""
        return list(self.flags.keys())

    def to_records(self) -> list[dict[str, Any]]:
        """Serialize every flag to plain records."""
        return [flag.to_dict() for flag in self.flags.values()]

    def __len__(self) -> int:
        return len(self.flags)

    def __contains__(self, name: object) -> bool:
        return name in self.flags


# ============================================================
# LOADING
# ============================================================

def load_flag(flag: FlagSource, registry: FilterRegistry) -> FlagConfiguration:
    """
    Validate one flag against a registry.

    Resolves every filter kind and parses its parameters into the typed
    record, so nothing is left to fail at evaluation time.

    Raises:
        ConfigurationError: Unknown kind, bad parameters or bad record
    """
    if not isinstance(flag, FlagConfiguration):
        flag = FlagConfiguration.from_dict(flag)

    filters = []
    for index, ref in enumerate(flag.filters):
        evaluator = registry.resolve(ref.kind)
        try:
            parsed = evaluator.parse_parameters(
                ref.parsed if ref.parsed is not None else ref.parameters,
                flag_name=flag.name,
            )
        except InvalidFilterParameters as e:
            raise type(e)(f"Flag '{flag.name}', filter #{index} ({ref.kind}): {e.message}") from e
        filters.append(FilterReference(kind=ref.kind, parameters=ref.parameters, parsed=parsed))

    return FlagConfiguration(
        name=flag.name,
        filters=tuple(filters),
        combinator=flag.combinator,
        description=flag.description,
    )


def load_flags(
    flags: Iterable[FlagSource],
    registry: FilterRegistry,
    *,
    version: int = 0,
) -> FlagSnapshot:
    """
    Validate a full set of flags into a snapshot.

    Raises:
        DuplicateFlag: If two flags share a name
        ConfigurationError: If any flag is invalid
    """
    loaded: dict[str, FlagConfiguration] = {}
    for source in flags:
        flag = load_flag(source, registry)
        if flag.name in loaded:
            raise DuplicateFlag(f"Flag defined more than once: '{flag.name}'")
        loaded[flag.name] = flag
    return FlagSnapshot(flags=loaded, version=version)


def parse_feature_management(section: Mapping[str, Any]) -> list[FlagConfiguration]:
    """
    Convert an appsettings-style ``FeatureManagement`` section to flags.

    Handles:
    - {"BooleanFilter": true}
    - {"Beta": {"EnabledFor": [{"Name": "Percentage", "Parameters": {"Value": 50}}],
                "RequirementType": "All"}}

    Accepts either the section itself or a mapping that contains it.
    Parameters are not validated here; pass the result to load_flags.
    """
    if "FeatureManagement" in section and isinstance(section["FeatureManagement"], Mapping):
        section = section["FeatureManagement"]

    flags = []
    for name, value in section.items():
        if isinstance(value, bool):
            flags.append(FlagConfiguration(
                name=name,
                filters=(FilterReference(kind="Boolean", parameters={"value": value}),),
            ))
        elif isinstance(value, Mapping):
            enabled_for = value.get("EnabledFor") or []
            if not isinstance(enabled_for, list):
                raise ConfigurationError(f"Flag '{name}': EnabledFor must be a list")
            flags.append(FlagConfiguration.from_dict({
                "name": name,
                "description": value.get("Description", ""),
                "combinator": value.get("RequirementType", "any"),
                "filters": enabled_for,
            }))
        else:
            raise ConfigurationError(
                f"Flag '{name}': expected true/false or a filter section, got {value!r}"
            )
    return flags


# ============================================================
# STORE
# ============================================================

class SnapshotStore:
    """
    Holder of the current snapshot.

    Readers take ``store.snapshot`` once per evaluation and never lock.
    Writers build and validate a complete new snapshot, then swap the
    reference. A failed reload keeps the previous snapshot.
    """

    def __init__(self, registry: FilterRegistry, flags: Iterable[FlagSource] = ()):
        self.registry = registry
        self._lock = threading.Lock()
        self._snapshot = load_flags(flags, registry, version=1)
        logger.info(
            "Snapshot published",
            version=self._snapshot.version,
            flags=len(self._snapshot),
        )

    @property
    def snapshot(self) -> FlagSnapshot:
        """Current snapshot."""
        return self._snapshot

    def replace(self, flags: Iterable[FlagSource]) -> FlagSnapshot:
        """
        Publish a new snapshot built from ``flags``.

        Raises:
            ConfigurationError: If the new flags are invalid
        """
        with self._lock:
            try:
                snapshot = load_flags(flags, self.registry, version=self._snapshot.version + 1)
            except ConfigurationError as e:
                logger.warning(
                    "Snapshot rejected",
                    current_version=self._snapshot.version,
                    error=str(e),
                )
                raise
            self._snapshot = snapshot

        logger.info("Snapshot published", version=snapshot.version, flags=len(snapshot))
        return snapshot
