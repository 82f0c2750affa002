"""
Pytest fixtures for testing.

Provides:
- Filter registry with the built-in filters
- Evaluator factory over plain flag records
- Fixed clock and context factory
"""

from datetime import datetime, timezone
from typing import Any, Callable

import pytest
import structlog

from featuregate.core.config import Settings
from featuregate.core.features import (
    EvaluationContext,
    FeatureEvaluator,
    FilterRegistry,
    configure_features,
    create_default_registry,
)


FIXED_NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the process environment."""
    return Settings(_env_file=None)


@pytest.fixture
def registry(settings: Settings) -> FilterRegistry:
    """Fresh registry with the built-in filters."""
    return create_default_registry(settings)


@pytest.fixture
def make_evaluator(registry: FilterRegistry, settings: Settings) -> Callable[..., FeatureEvaluator]:
    """Factory that builds an evaluator over the given flag records."""

    def _make(flags: list[Any], default_enabled: bool = False) -> FeatureEvaluator:
        evaluator = FeatureEvaluator.from_flags(flags, registry=registry, settings=settings)
        evaluator.default_enabled = default_enabled
        return evaluator

    return _make


@pytest.fixture
def make_context() -> Callable[..., EvaluationContext]:
    """Factory for contexts evaluated at a fixed instant."""

    def _make(**kwargs: Any) -> EvaluationContext:
        kwargs.setdefault("now", FIXED_NOW)
        return EvaluationContext(**kwargs)

    return _make


@pytest.fixture(autouse=True)
def reset_global_state():
    """Undo process-wide evaluator and logging configuration after each test."""
    yield
    configure_features(None)
    structlog.reset_defaults()

