"""
Filter registry.

Maps filter kind names to evaluator instances so new kinds can be added
without touching the evaluator.

Usage:
    registry = create_default_registry()

    @registry.filter("Weekday")
    class WeekdayFilter(FilterEvaluator[WeekdayParameters]):
        ...

    # Later, resolve by name (case-insensitive):
    evaluator = registry.resolve("weekday")
"""

from typing import Callable, Iterable, TypeVar

import structlog

from featuregate.core.config import Settings, get_settings

from .errors import ConfigurationError, DuplicateFilterKind, UnknownFilterKind
from .filters import (
    BooleanFilter,
    LanguageFilter,
    PercentageFilter,
    TargetingFilter,
    TimeWindowFilter,
)
from .interfaces import FilterEvaluator

logger = structlog.get_logger()

E = TypeVar("E", bound=type[FilterEvaluator])


class FilterRegistry:
    """
    Registry of filter evaluators.

    Kinds and aliases share one case-insensitive namespace; registering a
    name twice is an error rather than an overwrite.
    """

    def __init__(self) -> None:
        self._evaluators: dict[str, FilterEvaluator] = {}
        self._kinds: dict[str, str] = {}

    @staticmethod
    def _key(name: str) -> str:
        return name.strip().lower()

    # ============================================================
    # REGISTRATION
    # ============================================================

    def register(
        self,
        kind: str,
        evaluator: FilterEvaluator,
        *,
        aliases: Iterable[str] = (),
    ) -> None:
        """
        Register an evaluator under a kind name.

        Args:
            kind: Canonical kind name
            evaluator: Evaluator instance
            aliases: Extra names resolving to the same evaluator

        Raises:
            DuplicateFilterKind: If the kind or an alias is taken
            ConfigurationError: If a name is empty
        """
        aliases = list(aliases)
        names = [kind, *aliases]
        seen: set[str] = set()
        for name in names:
            key = self._key(name)
            if not key:
                raise ConfigurationError("Filter kind name must not be empty")
            if key in self._evaluators or key in seen:
                raise DuplicateFilterKind(name)
            seen.add(key)

        for key in seen:
            self._evaluators[key] = evaluator
        self._kinds[self._key(kind)] = kind

        logger.info("Registered filter", kind=kind, aliases=aliases)

    def filter(self, kind: str, *, aliases: Iterable[str] = ()) -> Callable[[E], E]:
        """
        Decorator to register an evaluator class.

        The class is instantiated without arguments.

        Usage:
            @registry.filter("Weekday")
            class WeekdayFilter(FilterEvaluator[WeekdayParameters]):
                ...
        """
        def decorator(evaluator_class: E) -> E:
            self.register(kind, evaluator_class(), aliases=aliases)
            return evaluator_class
        return decorator

    # ============================================================
    # LOOKUP
    # ============================================================

    def resolve(self, kind: str) -> FilterEvaluator:
        """
        Get the evaluator for a kind.

        Raises:
            UnknownFilterKind: If nothing is registered under that name
        """
        evaluator = self._evaluators.get(self._key(kind))
        if evaluator is None:
            raise UnknownFilterKind(kind, self.list())
        return evaluator

    def has(self, kind: str) -> bool:
        """Check if a kind or alias is registered."""
        return self._key(kind) in self._evaluators

    def list(self) -> list[str]:
        """List canonical kind names."""
        return list(self._kinds.values())


def create_default_registry(settings: Settings | None = None) -> FilterRegistry:
    """
    Create a registry with the built-in filters.

    The language filter reads the header named by FEATURE_LANGUAGE_HEADER.
    """
    settings = settings or get_settings()

    registry = FilterRegistry()
    registry.register("Boolean", BooleanFilter())
    registry.register("Percentage", PercentageFilter(), aliases=["Microsoft.Percentage"])
    registry.register("TimeWindow", TimeWindowFilter(), aliases=["Microsoft.TimeWindow"])
    registry.register("Targeting", TargetingFilter(), aliases=["Microsoft.Targeting"])
    registry.register(
        "LanguageFilter",
        LanguageFilter(header=settings.features.language_header),
        aliases=["Language"],
    )
    return registry
