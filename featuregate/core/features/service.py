"""
Feature Flag Service - Main evaluation logic.

Resolves a flag from the current snapshot, runs its filters through the
registry and combines the results:
- ALL: every filter must pass (stops at the first failure)
- ANY: one passing filter is enough (stops at the first success)
- no filters: the configured default
"""

from typing import Any, Iterable, Mapping

import structlog
from pydantic import BaseModel

from featuregate.core.config import Settings, get_settings

from .errors import UnknownFlag
from .interfaces import Combinator, EvaluationContext, EvaluationResult
from .models import FilterReference, FlagConfiguration
from .registry import FilterRegistry, create_default_registry
from .snapshot import FlagSnapshot, FlagSource, SnapshotStore

logger = structlog.get_logger()


class FeatureEvaluator:
    """
    Feature flag evaluation service.

    Stateless apart from the snapshot store: every call reads the current
    snapshot once and evaluates against it, so concurrent calls need no
    locking and a reload never shows a half-updated flag.
    """

    def __init__(
        self,
        store: SnapshotStore,
        default_enabled: bool = False,
    ):
        self.store = store
        self.default_enabled = default_enabled

    @classmethod
    def from_flags(
        cls,
        flags: Iterable[FlagSource] = (),
        registry: FilterRegistry | None = None,
        settings: Settings | None = None,
    ) -> "FeatureEvaluator":
        """
        Build an evaluator from already-parsed flag records.

        Uses the built-in registry and FEATURE_DEFAULT_ENABLED unless told
        otherwise.
        """
        settings = settings or get_settings()
        registry = registry or create_default_registry(settings)
        return cls(
            SnapshotStore(registry, flags),
            default_enabled=settings.features.default_enabled,
        )

    @property
    def registry(self) -> FilterRegistry:
        return self.store.registry

    @property
    def snapshot(self) -> FlagSnapshot:
        return self.store.snapshot

    # ============================================================
    # MAIN EVALUATION
    # ============================================================

    def is_enabled(self, flag_name: str, context: EvaluationContext) -> bool:
        """
        Check if a feature is enabled.

        Raises:
            UnknownFlag: If no flag is configured under that name
        """
        return self.evaluate_flag(flag_name, context).enabled

    def evaluate_flag(self, flag_name: str, context: EvaluationContext) -> EvaluationResult:
        """
        Evaluate a feature flag with detailed result.

        Returns EvaluationResult with the reason and deciding filter.
        """
        flag = self.snapshot.get(flag_name)
        if flag is None:
            raise UnknownFlag(flag_name)

        result = self._evaluate(flag, context)
        logger.debug(
            "Flag evaluated",
            flag=flag_name,
            enabled=result.enabled,
            reason=result.reason,
            filter_kind=result.filter_kind,
            filter_index=result.filter_index,
        )
        return result

    def evaluate_all(self, context: EvaluationContext) -> dict[str, bool]:
        """
        Get all flags and their status for one context.

        Useful for sending to a frontend. Uses a single snapshot for
        every flag.
        """
        snapshot = self.snapshot
        return {
            name: self._evaluate(flag, context).enabled
            for name, flag in snapshot.flags.items()
        }

    def evaluate(
        self,
        filter_kind: str,
        parameters: Mapping[str, Any] | BaseModel | None,
        context: EvaluationContext,
        *,
        flag_name: str | None = None,
    ) -> bool:
        """
        Evaluate a single filter outside any flag.

        Args:
            filter_kind: Registered kind or alias
            parameters: Raw parameters (validated here) or a parsed record
            context: Evaluation context
            flag_name: Seed for hashing filters, as if owned by this flag

        Raises:
            UnknownFilterKind: If the kind is not registered
            InvalidFilterParameters: If the parameters are invalid
        """
        evaluator = self.registry.resolve(filter_kind)
        parsed = evaluator.parse_parameters(parameters, flag_name=flag_name)
        return evaluator.evaluate(parsed, context)

    # ============================================================
    # SNAPSHOT MANAGEMENT
    # ============================================================

    def reload(self, flags: Iterable[FlagSource]) -> FlagSnapshot:
        """Replace the current snapshot. Passthrough to the store."""
        return self.store.replace(flags)

    def list_flags(self) -> list[FlagConfiguration]:
        """List all flags in the current snapshot."""
        return list(self.snapshot.flags.values())

    def get_flag(self, flag_name: str) -> FlagConfiguration | None:
        """Get a flag from the current snapshot."""
        return self.snapshot.get(flag_name)

    # ============================================================
    # COMBINATION
    # ============================================================

    def _evaluate(self, flag: FlagConfiguration, context: EvaluationContext) -> EvaluationResult:
        if not flag.filters:
            return EvaluationResult(
                enabled=self.default_enabled,
                reason="No filters configured",
                flag_name=flag.name,
            )

        if flag.combinator is Combinator.ALL:
            for index, ref in enumerate(flag.filters):
                if not self._run(ref, context):
                    return EvaluationResult.no(
                        flag.name,
                        f"Filter '{ref.kind}' not satisfied",
                        filter_kind=ref.kind,
                        filter_index=index,
                    )
            return EvaluationResult.yes(flag.name, "All filters satisfied")

        for index, ref in enumerate(flag.filters):
            if self._run(ref, context):
                return EvaluationResult.yes(
                    flag.name,
                    f"Filter '{ref.kind}' satisfied",
                    filter_kind=ref.kind,
                    filter_index=index,
                )
        return EvaluationResult.no(flag.name, "No filter satisfied")

    def _run(self, ref: FilterReference, context: EvaluationContext) -> bool:
        evaluator = self.registry.resolve(ref.kind)
        return evaluator.evaluate(ref.parsed, context)
