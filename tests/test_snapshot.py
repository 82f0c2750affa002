"""
Tests for snapshots, loaders and serialization.
"""

import json
import threading

import pytest
from structlog.testing import capture_logs

from featuregate.core.features import (
    Combinator,
    ConfigurationError,
    DuplicateFlag,
    EvaluationContext,
    FeatureEvaluator,
    FilterReference,
    FlagConfiguration,
    InvalidFilterParameters,
    InvalidTimeWindow,
    SnapshotStore,
    UnknownFilterKind,
    load_flag,
    load_flags,
    parse_feature_management,
)


FLAGS = [
    {"name": "BooleanFilter", "filters": [{"kind": "Boolean", "parameters": {"value": True}}]},
    {"name": "PercentageFilter", "filters": [{"kind": "Percentage", "parameters": {"value": 50}}]},
    {
        "name": "TimeWindowFilter",
        "filters": [{"kind": "TimeWindow", "parameters": {
            "start": "2024-06-01T00:00:00Z",
            "end": "Mon, 01 Jul 2024 00:00:00 GMT",
        }}],
    },
    {
        "name": "CustomFilter",
        "filters": [{"kind": "LanguageFilter", "parameters": {"allowed_languages": ["en-GB", "en-US"]}}],
    },
    {
        "name": "TargetingFilter",
        "combinator": "all",
        "description": "Beta audience",
        "filters": [{"kind": "Targeting", "parameters": {"audience": {
            "users": ["alice"],
            "groups": [{"name": "beta", "rollout_percentage": 50}],
            "default_rollout_percentage": 10,
            "exclusion": {"users": ["mallory"]},
        }}}],
    },
]


def contexts(make_context):
    yield make_context()
    yield make_context(headers={"Accept-Language": "en-GB,fr;q=0.9"})
    yield make_context(headers={"Accept-Language": "fr-FR"})
    for i in range(100):
        yield make_context(user_id=f"user-{i}", groups={"beta"} if i % 2 else set())
    yield make_context(user_id="alice")
    yield make_context(user_id="mallory", groups={"beta"})


# ============================================================
# LOADING
# ============================================================

def test_load_flags_builds_snapshot(registry):
    """Test records are validated into typed configurations."""
    snapshot = load_flags(FLAGS, registry, version=7)

    assert snapshot.version == 7
    assert len(snapshot) == 5
    assert "CustomFilter" in snapshot
    assert snapshot.names()[0] == "BooleanFilter"
    assert all(flag.is_loaded for flag in snapshot.flags.values())

    window = snapshot.get("TimeWindowFilter").filters[0].parsed
    assert window.end.isoformat() == "2024-07-01T00:00:00+00:00"


def test_snapshot_is_read_only(registry):
    """Test snapshots cannot be mutated in place."""
    snapshot = load_flags(FLAGS, registry)

    with pytest.raises(TypeError):
        snapshot.flags["new"] = snapshot.get("BooleanFilter")
    with pytest.raises(AttributeError):
        snapshot.version = 99


def test_duplicate_flag_names_rejected(registry):
    """Test flag names are unique within a snapshot."""
    with pytest.raises(DuplicateFlag):
        load_flags([{"name": "a"}, {"name": "a"}], registry)


def test_load_flag_accepts_configuration_objects(registry):
    """Test FlagConfiguration instances load like records."""
    config = FlagConfiguration(
        name="f",
        filters=[FilterReference(kind="Microsoft.Percentage", parameters={"Value": 20})],
        combinator="All",
    )

    loaded = load_flag(config, registry)

    assert loaded.combinator is Combinator.ALL
    assert loaded.filters[0].parsed.value == 20
    assert loaded.filters[0].parsed.seed == "f"
    assert config.is_loaded is False


def test_unknown_kind_fails_load(registry):
    """Test unknown kinds are caught before serving traffic."""
    with pytest.raises(UnknownFilterKind):
        load_flags([{"name": "f", "filters": [{"kind": "Nope"}]}], registry)


@pytest.mark.parametrize(
    "record",
    [
        {"filters": []},
        {"name": ""},
        {"name": "f", "combinator": "sometimes"},
        {"name": "f", "filters": [{"parameters": {}}]},
        {"name": "f", "unexpected": True},
        ["not", "a", "mapping"],
    ],
)
def test_invalid_records_rejected(registry, record):
    """Test malformed records are configuration errors."""
    with pytest.raises(ConfigurationError):
        load_flags([record], registry)


def test_combinator_case_insensitive():
    """Test combinators accept any case."""
    assert FlagConfiguration.from_dict({"name": "f", "combinator": "ALL"}).combinator is Combinator.ALL
    assert FlagConfiguration.from_dict({"name": "f", "combinator": "Any"}).combinator is Combinator.ANY


# ============================================================
# FEATURE MANAGEMENT SECTION
# ============================================================

APPSETTINGS = {
    "FeatureManagement": {
        "BooleanFilter": True,
        "Disabled": False,
        "PercentageFilter": {
            "EnabledFor": [{"Name": "Microsoft.Percentage", "Parameters": {"Value": 50}}],
        },
        "TimeWindowFilter": {
            "EnabledFor": [{"Name": "Microsoft.TimeWindow", "Parameters": {
                "Start": "Sat, 01 Jun 2024 00:00:00 GMT",
                "End": "Mon, 01 Jul 2024 00:00:00 GMT",
            }}],
        },
        "CustomFilter": {
            "RequirementType": "All",
            "EnabledFor": [
                {"Name": "LanguageFilter", "Parameters": {"AllowedLanguages": ["en-GB", "en-US"]}},
                {"Name": "Boolean"},
            ],
        },
        "NoFilters": {"EnabledFor": []},
    }
}


def test_parse_feature_management(registry, make_context):
    """Test the appsettings section shape."""
    flags = parse_feature_management(APPSETTINGS)
    snapshot = load_flags(flags, registry)

    assert snapshot.names() == [
        "BooleanFilter", "Disabled", "PercentageFilter", "TimeWindowFilter", "CustomFilter", "NoFilters",
    ]
    assert snapshot.get("CustomFilter").combinator is Combinator.ALL
    assert snapshot.get("PercentageFilter").combinator is Combinator.ANY
    assert snapshot.get("NoFilters").filters == ()

    features = FeatureEvaluator(SnapshotStore(registry, flags))
    english = make_context(headers={"Accept-Language": "en-US"})
    assert features.is_enabled("BooleanFilter", english) is True
    assert features.is_enabled("Disabled", english) is False
    assert features.is_enabled("TimeWindowFilter", english) is True
    assert features.is_enabled("CustomFilter", english) is True
    assert features.is_enabled("CustomFilter", make_context(headers={"Accept-Language": "fr"})) is False
    assert features.is_enabled("NoFilters", english) is False


def test_parse_feature_management_section_only():
    """Test the section itself is accepted too."""
    flags = parse_feature_management(APPSETTINGS["FeatureManagement"])
    assert flags[0].name == "BooleanFilter"


@pytest.mark.parametrize("value", [1, "yes", None, ["Boolean"]])
def test_parse_feature_management_rejects_bad_values(value):
    """Test flags must be a boolean or a filter section."""
    with pytest.raises(ConfigurationError):
        parse_feature_management({"Flag": value})


def test_parse_feature_management_rejects_bad_enabled_for():
    """Test EnabledFor must be a list."""
    with pytest.raises(ConfigurationError):
        parse_feature_management({"Flag": {"EnabledFor": {"Name": "Boolean"}}})


# ============================================================
# ROUND-TRIP
# ============================================================

def test_serialize_and_reload_gives_same_results(registry, make_context):
    """Test an unchanged snapshot survives a JSON round-trip."""
    original = FeatureEvaluator(SnapshotStore(registry, FLAGS))

    records = json.loads(json.dumps(original.snapshot.to_records()))
    reloaded = FeatureEvaluator(SnapshotStore(registry, records))

    assert reloaded.snapshot.to_records() == original.snapshot.to_records()
    for ctx in contexts(make_context):
        assert reloaded.evaluate_all(ctx) == original.evaluate_all(ctx)


def test_round_trip_keeps_early_year_bounds(registry, make_context):
    """Test a "since forever" start survives serialization."""
    flags = [{"name": "w", "filters": [{"kind": "TimeWindow", "parameters": {
        "start": "0001-01-01T00:00:00Z",
        "end": "2024-07-01T00:00:00Z",
    }}]}]
    original = FeatureEvaluator(SnapshotStore(registry, flags))

    records = json.loads(json.dumps(original.snapshot.to_records()))
    assert records[0]["filters"][0]["parameters"]["start"] == "0001-01-01T00:00:00Z"

    reloaded = FeatureEvaluator(SnapshotStore(registry, records))
    assert reloaded.snapshot.to_records() == original.snapshot.to_records()
    assert reloaded.is_enabled("w", make_context()) is True


def test_to_dict_shape(registry):
    """Test the serialized record shape."""
    snapshot = load_flags(FLAGS, registry)

    record = snapshot.get("TimeWindowFilter").to_dict()
    assert record == {
        "name": "TimeWindowFilter",
        "description": "",
        "combinator": "any",
        "filters": [{
            "kind": "TimeWindow",
            "parameters": {"start": "2024-06-01T00:00:00Z", "end": "2024-07-01T00:00:00Z"},
        }],
    }

    percentage = snapshot.get("PercentageFilter").to_dict()["filters"][0]["parameters"]
    assert percentage == {"value": 50.0, "seed": "PercentageFilter"}


def test_unloaded_configuration_serializes_raw_parameters():
    """Test configurations not yet loaded keep their raw parameters."""
    config = FlagConfiguration.from_dict({"name": "f", "filters": [{"kind": "Boolean", "parameters": {"Value": False}}]})

    assert config.to_dict()["filters"] == [{"kind": "Boolean", "parameters": {"Value": False}}]


# ============================================================
# STORE
# ============================================================

def test_store_replace_publishes_new_version(registry):
    """Test replace swaps in a new snapshot without touching the old one."""
    store = SnapshotStore(registry, FLAGS)
    before = store.snapshot

    with capture_logs() as logs:
        after = store.replace(FLAGS[:2])

    assert before.version == 1
    assert after.version == 2
    assert store.snapshot is after
    assert len(before) == 5
    assert len(after) == 2
    assert {"event": "Snapshot published", "version": 2, "flags": 2, "log_level": "info"} in logs


def test_store_keeps_snapshot_on_failed_replace(registry):
    """Test invalid configuration never replaces a good snapshot."""
    store = SnapshotStore(registry, FLAGS)
    before = store.snapshot

    bad = [{"name": "window", "filters": [{"kind": "TimeWindow", "parameters": {}}]}]
    with capture_logs() as logs:
        with pytest.raises(InvalidTimeWindow):
            store.replace(bad)

    assert store.snapshot is before
    assert any(log["event"] == "Snapshot rejected" for log in logs)

    # Next good reload still moves forward from the current version
    assert store.replace(FLAGS).version == 2


def test_store_rejects_non_mapping_parameters(registry):
    """Test malformed parameters on configuration objects are typed load errors."""
    store = SnapshotStore(registry, FLAGS)
    before = store.snapshot
    bad = FlagConfiguration(name="f", filters=[FilterReference(kind="Boolean", parameters="true")])

    with capture_logs() as logs:
        with pytest.raises(InvalidFilterParameters, match="Flag 'f', filter #0"):
            store.replace([bad])

    assert store.snapshot is before
    assert any(log["event"] == "Snapshot rejected" for log in logs)


def test_concurrent_readers_see_whole_snapshots(registry, make_context):
    """Test readers racing a writer only ever see one of the published snapshots."""
    on = [{"name": f"flag-{i}", "filters": [{"kind": "Boolean", "parameters": {"value": True}}]} for i in range(20)]
    off = [{"name": f"flag-{i}", "filters": [{"kind": "Boolean", "parameters": {"value": False}}]} for i in range(20)]
    features = FeatureEvaluator(SnapshotStore(registry, on))
    ctx = make_context()
    mixed = []
    stop = threading.Event()

    def read():
        while not stop.is_set():
            values = set(features.evaluate_all(ctx).values())
            if len(values) != 1:
                mixed.append(values)

    readers = [threading.Thread(target=read) for _ in range(4)]
    for reader in readers:
        reader.start()
    for i in range(50):
        features.reload(off if i % 2 == 0 else on)
    stop.set()
    for reader in readers:
        reader.join()

    assert mixed == []
