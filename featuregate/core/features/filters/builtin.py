"""
Built-in filter evaluators.

- Boolean: literal on/off
- Percentage: sticky percentage rollout (random without a stable id)
- TimeWindow: half-open [start, end) window
- Targeting: explicit users, group rollouts, default rollout, exclusions
- LanguageFilter: Accept-Language allow-list (substring match)

Register custom kinds with FilterRegistry.register or @registry.filter.
"""

import hashlib
import random
from datetime import datetime
from typing import Callable

from featuregate.utils.timezone import utc_now

from ..errors import (
    InvalidAudienceConfiguration,
    InvalidPercentageThreshold,
    InvalidTimeWindow,
)
from ..interfaces import EvaluationContext, FilterEvaluator
from ..models import (
    BooleanParameters,
    LanguageParameters,
    PercentageParameters,
    TargetingParameters,
    TimeWindowParameters,
)


def bucket(*parts: str) -> float:
    """
    Map the given parts to a stable value in [0, 100).

    Uses consistent hashing so the same inputs always land in the same
    bucket, with 0.01 resolution.
    """
    digest = hashlib.sha256("\n".join(parts).encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % 10000 / 100


def in_rollout(percentage: float, *parts: str) -> bool:
    """Check whether the hashed parts fall under a rollout percentage."""
    if percentage <= 0:
        return False
    if percentage >= 100:
        return True
    return bucket(*parts) < percentage


class BooleanFilter(FilterEvaluator[BooleanParameters]):
    """
    Returns the configured value.

    Usage:
        {"kind": "Boolean", "parameters": {"value": true}}
    """

    kind = "Boolean"
    parameters_model = BooleanParameters

    def evaluate(self, parameters: BooleanParameters, context: EvaluationContext) -> bool:
        return parameters.value


class PercentageFilter(FilterEvaluator[PercentageParameters]):
    """
    Enable the feature for a percentage of callers.

    Usage:
        {"kind": "Percentage", "parameters": {"value": 25}}

    With a stable id (user id, else session id) in the context the
    decision is sticky. Without one a fresh random draw is made per call.
    """

    kind = "Percentage"
    parameters_model = PercentageParameters
    error_class = InvalidPercentageThreshold

    def __init__(self, random_source: Callable[[], float] = random.random):
        self._random = random_source

    def evaluate(self, parameters: PercentageParameters, context: EvaluationContext) -> bool:
        threshold = parameters.value
        if threshold <= 0:
            return False
        if threshold >= 100:
            return True

        stable_id = context.stable_id
        if stable_id is None:
            return self._random() * 100 < threshold

        return in_rollout(threshold, parameters.seed or "", stable_id)


class TimeWindowFilter(FilterEvaluator[TimeWindowParameters]):
    """
    Enable the feature between two instants.

    Usage:
        {"kind": "TimeWindow", "parameters": {
            "start": "2024-05-01T00:00:00Z",
            "end": "Mon, 01 Jul 2024 00:00:00 GMT"
        }}

    A missing start is open towards the past, a missing end towards the
    future. The start instant is inside the window, the end instant is not.
    """

    kind = "TimeWindow"
    parameters_model = TimeWindowParameters
    error_class = InvalidTimeWindow

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock

    def evaluate(self, parameters: TimeWindowParameters, context: EvaluationContext) -> bool:
        now = context.now or self._clock()

        if parameters.start is not None and now < parameters.start:
            return False
        if parameters.end is not None and now >= parameters.end:
            return False
        return True


class TargetingFilter(FilterEvaluator[TargetingParameters]):
    """
    Enable the feature for an audience.

    Usage:
        {"kind": "Targeting", "parameters": {"audience": {
            "users": ["alice"],
            "groups": [{"name": "beta", "rollout_percentage": 50}],
            "default_rollout_percentage": 0,
            "exclusion": {"users": ["mallory"], "groups": []}
        }}}

    Evaluation order (first match wins):
    1. Excluded user or group -> off
    2. Listed user -> on
    3. Member of a group, inside that group's rollout -> on
    4. Inside the default rollout -> on
    """

    kind = "Targeting"
    parameters_model = TargetingParameters
    error_class = InvalidAudienceConfiguration

    def evaluate(self, parameters: TargetingParameters, context: EvaluationContext) -> bool:
        audience = parameters.audience
        user_id = context.user_id
        groups = context.groups
        seed = parameters.seed or ""

        exclusion = audience.exclusion
        if user_id is not None and user_id in exclusion.users:
            return False
        if groups.intersection(exclusion.groups):
            return False

        if user_id is not None and user_id in audience.users:
            return True

        for group in audience.groups:
            if group.name not in groups:
                continue
            if group.rollout_percentage >= 100:
                return True
            if user_id is not None and in_rollout(
                group.rollout_percentage, seed, group.name, user_id
            ):
                return True

        if user_id is None:
            return audience.default_rollout_percentage >= 100
        return in_rollout(audience.default_rollout_percentage, seed, user_id)


class LanguageFilter(FilterEvaluator[LanguageParameters]):
    """
    Enable the feature for callers whose language header mentions an
    allowed tag.

    Usage:
        {"kind": "LanguageFilter", "parameters": {"allowed_languages": ["en-GB", "en-US"]}}

    Matching is substring containment against the raw header value:
    "en-GB,fr;q=0.9" matches "en-GB", and an allowed "en" matches "en-GB".
    """

    kind = "LanguageFilter"
    parameters_model = LanguageParameters

    def __init__(self, header: str = "Accept-Language"):
        self.header = header

    def evaluate(self, parameters: LanguageParameters, context: EvaluationContext) -> bool:
        value = context.header(parameters.header or self.header)
        return any(tag in value for tag in parameters.allowed_languages)
