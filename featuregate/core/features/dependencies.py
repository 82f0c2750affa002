"""
FastAPI dependencies for feature flags.

The web layer builds the EvaluationContext from the request and passes it
explicitly; the evaluator never looks at request state itself.

Usage:
    from featuregate.core.features import Features, FlagContext

    @router.get("/dashboard")
    async def dashboard(features: Features, context: FlagContext):
        if features.is_enabled("new_dashboard", context):
            return new_dashboard()
        return old_dashboard()

    # Or bound to the current request:
    @router.get("/flags")
    async def flags(features: BoundFeatures):
        return features.get_all()
"""

from datetime import datetime
from typing import Annotated, Any, Iterable

from fastapi import Depends, Request

from featuregate.core.config import Settings, get_settings
from featuregate.utils.timezone import utc_now

from .interfaces import EvaluationContext, EvaluationResult
from .service import FeatureEvaluator


# ============================================================
# EVALUATOR SINGLETON
# ============================================================

_evaluator: FeatureEvaluator | None = None


def configure_features(evaluator: FeatureEvaluator | None) -> None:
    """Install the process-wide evaluator (call at startup)."""
    global _evaluator
    _evaluator = evaluator


def get_feature_evaluator() -> FeatureEvaluator:
    """
    Get the process-wide evaluator.

    Falls back to an evaluator with the built-in filters and no flags, so
    every lookup fails with UnknownFlag until flags are loaded.
    """
    global _evaluator
    if _evaluator is None:
        _evaluator = FeatureEvaluator.from_flags()
    return _evaluator


# Type alias for cleaner injection
Features = Annotated[FeatureEvaluator, Depends(get_feature_evaluator)]


# ============================================================
# CONTEXT
# ============================================================

def _split(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def context_from_request(
    request: Request,
    *,
    user_id: str | None = None,
    groups: Iterable[str] = (),
    now: datetime | None = None,
    attributes: dict[str, Any] | None = None,
    settings: Settings | None = None,
) -> EvaluationContext:
    """
    Build an evaluation context from a request.

    The user comes from (in order) the ``user_id`` argument, an
    authenticated ``request.state.user`` or the user header. Groups are
    merged from the argument, the user object and the groups header.
    Repeated headers are joined with commas.
    """
    feature_settings = (settings or get_settings()).features
    headers = request.headers

    user = getattr(request.state, "user", None)
    if user_id is None and user is not None:
        user_id = getattr(user, "id", None)
    if user_id is None:
        user_id = headers.get(feature_settings.user_header) or None

    all_groups = set(groups)
    if user is not None:
        all_groups.update(getattr(user, "groups", None) or ())
    all_groups.update(_split(headers.get(feature_settings.groups_header, "")))

    return EvaluationContext(
        user_id=user_id,
        groups=frozenset(all_groups),
        session_id=headers.get(feature_settings.session_header) or None,
        headers={key: ",".join(headers.getlist(key)) for key in headers.keys()},
        now=now or utc_now(),
        attributes=attributes or {},
    )


async def get_evaluation_context(request: Request) -> EvaluationContext:
    """Build the evaluation context for the current request."""
    return context_from_request(request)


# Type alias
FlagContext = Annotated[EvaluationContext, Depends(get_evaluation_context)]


# ============================================================
# REQUEST-BOUND FEATURES
# ============================================================

class RequestFeatures:
    """
    Feature evaluator bound to the current request's context.

    Provides convenient methods that automatically pass the context.
    """

    def __init__(self, evaluator: FeatureEvaluator, context: EvaluationContext):
        self._evaluator = evaluator
        self._context = context

    def is_enabled(self, flag_name: str) -> bool:
        """Check if feature is enabled for this request."""
        return self._evaluator.is_enabled(flag_name, self._context)

    def evaluate(self, flag_name: str) -> EvaluationResult:
        """Evaluate feature with detailed result."""
        return self._evaluator.evaluate_flag(flag_name, self._context)

    def get_all(self) -> dict[str, bool]:
        """Get all flags for this request."""
        return self._evaluator.evaluate_all(self._context)

    @property
    def context(self) -> EvaluationContext:
        return self._context

    @property
    def evaluator(self) -> FeatureEvaluator:
        return self._evaluator


async def get_request_features(
    evaluator: Features,
    context: FlagContext,
) -> RequestFeatures:
    """Get the evaluator bound to the current request."""
    return RequestFeatures(evaluator, context)


# Type alias
BoundFeatures = Annotated[RequestFeatures, Depends(get_request_features)]
