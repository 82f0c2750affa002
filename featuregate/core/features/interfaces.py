"""
Feature Flag Interfaces - Core abstractions.

These define the contracts shared by the registry, the built-in filters
and the evaluator.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Generic, Mapping, TypeVar

from pydantic import BaseModel, ValidationError

from featuregate.utils.timezone import to_utc

from .errors import InvalidFilterParameters


class Combinator(str, Enum):
    """How a flag combines the results of its filters."""

    ALL = "all"
    ANY = "any"

    @classmethod
    def _missing_(cls, value: object) -> "Combinator | None":
        # Accept "All" / "Any" as written in appsettings-style configuration
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper())
        return None


@dataclass(frozen=True)
class EvaluationContext:
    """
    Request-scoped attributes a flag is evaluated against.

    Built by the calling layer (e.g. an HTTP dependency) and passed
    explicitly to every evaluation. Immutable once created.

    Attributes:
        user_id: Authenticated user id
        groups: Group memberships of the user
        session_id: Stable id for anonymous callers
        headers: Request headers (case-insensitive lookup)
        now: Evaluation time; the filter's clock is used when unset
        attributes: Anything else the caller wants custom filters to see
    """
    user_id: str | None = None
    groups: frozenset[str] = frozenset()
    session_id: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict, hash=False)
    now: datetime | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if self.user_id is not None:
            object.__setattr__(self, "user_id", str(self.user_id))
        if self.session_id is not None:
            object.__setattr__(self, "session_id", str(self.session_id))
        groups = (self.groups,) if isinstance(self.groups, str) else self.groups
        object.__setattr__(self, "groups", frozenset(groups))
        object.__setattr__(
            self,
            "headers",
            MappingProxyType({k.lower(): v for k, v in dict(self.headers).items()}),
        )
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))
        if self.now is not None:
            object.__setattr__(self, "now", to_utc(self.now))

    @property
    def stable_id(self) -> str | None:
        """Identifier that keeps rollout decisions sticky: user, then session."""
        return self.user_id or self.session_id

    def header(self, name: str, default: str = "") -> str:
        """Get a header value by case-insensitive name."""
        return self.headers.get(name.lower(), default)


P = TypeVar("P", bound=BaseModel)


class FilterEvaluator(ABC, Generic[P]):
    """
    A single filter kind.

    Subclasses declare a pydantic ``parameters_model``. Raw parameters are
    validated once by ``parse_parameters`` when flags are loaded; only the
    typed record reaches ``evaluate``.
    """

    kind: str = ""
    parameters_model: type[P]
    error_class: type[InvalidFilterParameters] = InvalidFilterParameters

    def parse_parameters(
        self,
        raw: Mapping[str, Any] | P | None,
        flag_name: str | None = None,
    ) -> P:
        """
        Validate raw configuration into the typed parameter record.

        Args:
            raw: Parameter mapping as found in configuration
            flag_name: Owning flag; used as the hashing seed when the
                parameters have a ``seed`` field left unset

        Raises:
            InvalidFilterParameters: Or the kind-specific subclass
        """
        if isinstance(raw, self.parameters_model):
            params = raw
        elif raw is not None and not isinstance(raw, Mapping):
            raise self.error_class(
                f"Parameters for filter '{self.kind}' must be a mapping, got {type(raw).__name__}"
            )
        else:
            try:
                params = self.parameters_model.model_validate(dict(raw or {}))
            except ValidationError as e:
                raise self.error_class(
                    f"Invalid parameters for filter '{self.kind}': {_describe(e)}"
                ) from e

        if flag_name and "seed" in type(params).model_fields and params.seed is None:
            params = params.model_copy(update={"seed": flag_name})
        return params

    @abstractmethod
    def evaluate(self, parameters: P, context: EvaluationContext) -> bool:
        """
        Decide this filter for one context.

        Must not mutate shared state. May read the clock or randomness.
        """
        pass


def _describe(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(loc) for loc in err["loc"])
        parts.append(f"{location}: {err['msg']}" if location else err["msg"])
    return "; ".join(parts)


@dataclass(frozen=True)
class EvaluationResult:
    """
    Result of feature flag evaluation.

    Includes the decision, the reason and the filter that decided it.
    """
    enabled: bool
    reason: str
    flag_name: str
    filter_kind: str | None = None
    filter_index: int | None = None

    @classmethod
    def yes(cls, flag_name: str, reason: str, **kwargs: Any) -> "EvaluationResult":
        return cls(enabled=True, reason=reason, flag_name=flag_name, **kwargs)

    @classmethod
    def no(cls, flag_name: str, reason: str, **kwargs: Any) -> "EvaluationResult":
        return cls(enabled=False, reason=reason, flag_name=flag_name, **kwargs)
