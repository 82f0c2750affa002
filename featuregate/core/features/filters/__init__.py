"""
Filter evaluators for feature flags.

Built-in filters:
- Boolean: literal value
- Percentage: percentage rollout
- TimeWindow: enabled between two instants
- Targeting: users, groups and default rollout
- LanguageFilter: Accept-Language allow-list

Add custom filters with FilterRegistry.register or the @registry.filter
decorator.
"""

from .builtin import (
    BooleanFilter,
    PercentageFilter,
    TimeWindowFilter,
    TargetingFilter,
    LanguageFilter,
    bucket,
    in_rollout,
)

__all__ = [
    "BooleanFilter",
    "PercentageFilter",
    "TimeWindowFilter",
    "TargetingFilter",
    "LanguageFilter",
    "bucket",
    "in_rollout",
]
