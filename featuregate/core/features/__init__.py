"""
Feature Flag System.

A stateless evaluation core composing pluggable filters:
- Boolean on/off
- Percentage rollouts (sticky per user or session)
- Time windows
- User/group targeting with partial rollouts
- Accept-Language allow-lists

Usage Levels:

Level 1 - Evaluate a flag:
    from featuregate.core.features import EvaluationContext, FeatureEvaluator

    features = FeatureEvaluator.from_flags([
        {"name": "new_dashboard", "filters": [{"kind": "Boolean"}]},
    ])
    features.is_enabled("new_dashboard", EvaluationContext())

Level 2 - Combine filters:
    {
        "name": "summer_sale",
        "combinator": "all",
        "filters": [
            {"kind": "TimeWindow", "parameters": {"start": "2024-06-01T00:00:00Z",
                                                  "end": "2024-09-01T00:00:00Z"}},
            {"kind": "Percentage", "parameters": {"value": 25}},
        ]
    }

Level 3 - appsettings-style configuration:
    flags = parse_feature_management({
        "BooleanFilter": True,
        "CustomFilter": {"EnabledFor": [{"Name": "LanguageFilter",
                                         "Parameters": {"AllowedLanguages": ["en-GB"]}}]},
    })
    features.reload(flags)

Level 4 - In a FastAPI handler:
    from featuregate.core.features import Features, FlagContext

    @router.get("/beta")
    async def beta(features: Features, context: FlagContext):
        if features.is_enabled("beta", context):
            ...

Level 5 - Custom filters:
    @features.registry.filter("Weekday")
    class WeekdayFilter(FilterEvaluator[WeekdayParameters]):
        parameters_model = WeekdayParameters

        def evaluate(self, parameters, context):
            return context.now.weekday() in parameters.days
"""

from .errors import (
    ErrorCodes,
    FeatureFlagError,
    ConfigurationError,
    UnknownFlag,
    DuplicateFlag,
    UnknownFilterKind,
    DuplicateFilterKind,
    InvalidFilterParameters,
    InvalidTimeWindow,
    InvalidPercentageThreshold,
    InvalidAudienceConfiguration,
)

from .interfaces import (
    Combinator,
    EvaluationContext,
    EvaluationResult,
    FilterEvaluator,
)

from .models import (
    FilterReference,
    FlagConfiguration,
    FilterParameters,
    BooleanParameters,
    PercentageParameters,
    TimeWindowParameters,
    TargetingParameters,
    Audience,
    GroupRollout,
    Exclusion,
    LanguageParameters,
)

from .registry import FilterRegistry, create_default_registry

from .snapshot import (
    FlagSnapshot,
    SnapshotStore,
    load_flag,
    load_flags,
    parse_feature_management,
)

from .service import FeatureEvaluator

from .dependencies import (
    Features,
    FlagContext,
    BoundFeatures,
    RequestFeatures,
    configure_features,
    context_from_request,
    get_evaluation_context,
    get_feature_evaluator,
    get_request_features,
)

__all__ = [
    # Errors
    "ErrorCodes",
    "FeatureFlagError",
    "ConfigurationError",
    "UnknownFlag",
    "DuplicateFlag",
    "UnknownFilterKind",
    "DuplicateFilterKind",
    "InvalidFilterParameters",
    "InvalidTimeWindow",
    "InvalidPercentageThreshold",
    "InvalidAudienceConfiguration",
    # Interfaces
    "Combinator",
    "EvaluationContext",
    "EvaluationResult",
    "FilterEvaluator",
    # Models
    "FilterReference",
    "FlagConfiguration",
    "FilterParameters",
    "BooleanParameters",
    "PercentageParameters",
    "TimeWindowParameters",
    "TargetingParameters",
    "Audience",
    "GroupRollout",
    "Exclusion",
    "LanguageParameters",
    # Registry
    "FilterRegistry",
    "create_default_registry",
    # Snapshots
    "FlagSnapshot",
    "SnapshotStore",
    "load_flag",
    "load_flags",
    "parse_feature_management",
    # Service
    "FeatureEvaluator",
    # Dependencies
    "Features",
    "FlagContext",
    "BoundFeatures",
    "RequestFeatures",
    "configure_features",
    "context_from_request",
    "get_evaluation_context",
    "get_feature_evaluator",
    "get_request_features",
]
