"""
Feature Flag Models - flag configuration and typed filter parameters.

Flags:
- FilterReference: one (kind, parameters) entry of a flag
- FlagConfiguration: a named flag, its filters and how they combine

Filter parameters (validated once, at load time):
- BooleanParameters
- PercentageParameters
- TimeWindowParameters
- TargetingParameters (Audience, GroupRollout, Exclusion)
- LanguageParameters

Parameter keys are accepted in snake_case or in the PascalCase used by
appsettings-style configuration ("Value", "AllowedLanguages", ...).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Mapping

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_pascal

from featuregate.utils.timezone import parse_datetime, to_iso8601

from .errors import ConfigurationError
from .interfaces import Combinator


# ============================================================
# FILTER PARAMETERS
# ============================================================

class FilterParameters(BaseModel):
    """Base for typed filter parameters."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_pascal,
        populate_by_name=True,
    )


class BooleanParameters(FilterParameters):
    """Literal on/off value."""
    value: bool = True


class PercentageParameters(FilterParameters):
    """
    Percentage rollout.

    Attributes:
        value: Threshold in [0, 100]
        seed: Hash seed; defaults to the owning flag's name
    """
    value: float
    seed: str | None = None

    @field_validator("value")
    @classmethod
    def validate_value(cls, v: float) -> float:
        if not 0 <= v <= 100:
            raise ValueError(f"threshold {v} is outside [0, 100]")
        return v


class TimeWindowParameters(FilterParameters):
    """Half-open window [start, end). Either bound may be omitted, not both."""
    start: datetime | None = None
    end: datetime | None = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def parse_bound(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        if isinstance(v, (str, datetime)):
            return parse_datetime(v)
        return v

    @model_validator(mode="after")
    def validate_window(self) -> "TimeWindowParameters":
        if self.start is None and self.end is None:
            raise ValueError("a time window needs a start, an end, or both")
        if self.start is not None and self.end is not None and self.start >= self.end:
            raise ValueError(f"start {self.start} is not before end {self.end}")
        return self

    @field_serializer("start", "end")
    def serialize_bound(self, v: datetime | None) -> str | None:
        return to_iso8601(v) if v is not None else None


Percentage = Annotated[float, Field(ge=0, le=100)]
NonEmptyStr = Annotated[str, Field(min_length=1)]


class GroupRollout(FilterParameters):
    """Partial rollout to the members of one group."""
    name: NonEmptyStr
    rollout_percentage: Percentage = 0


class Exclusion(FilterParameters):
    """Users and groups that never see the feature."""
    users: tuple[NonEmptyStr, ...] = ()
    groups: tuple[NonEmptyStr, ...] = ()


class Audience(FilterParameters):
    """
    Targeting audience.

    Attributes:
        users: Users that always get the feature
        groups: Per-group rollout percentages
        default_rollout_percentage: Rollout for everybody else
        exclusion: Users/groups that never get the feature
    """
    users: tuple[NonEmptyStr, ...] = ()
    groups: tuple[GroupRollout, ...] = ()
    default_rollout_percentage: Percentage = 0
    exclusion: Exclusion = Field(default_factory=Exclusion)

    @field_validator("groups")
    @classmethod
    def validate_unique_groups(cls, v: tuple[GroupRollout, ...]) -> tuple[GroupRollout, ...]:
        names = [group.name for group in v]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"groups listed more than once: {duplicates}")
        return v


class TargetingParameters(FilterParameters):
    """Targeting filter parameters."""
    audience: Audience
    seed: str | None = None


class LanguageParameters(FilterParameters):
    """
    Language allow-list.

    Attributes:
        allowed_languages: Tags matched by substring against the header
        header: Header to read instead of the configured default
    """
    allowed_languages: tuple[NonEmptyStr, ...] = Field(min_length=1)
    header: str | None = None


# ============================================================
# FLAG CONFIGURATION
# ============================================================

@dataclass(frozen=True)
class FilterReference:
    """
    One filter entry of a flag.

    ``parsed`` is set once the flag has been loaded against a registry.
    """
    kind: str
    parameters: Mapping[str, Any] = field(default_factory=dict, hash=False)
    parsed: BaseModel | None = field(default=None, compare=False, hash=False)

    def to_dict(self) -> dict[str, Any]:
        if self.parsed is not None:
            parameters = self.parsed.model_dump(mode="json", exclude_none=True)
        else:
            parameters = dict(self.parameters)
        return {"kind": self.kind, "parameters": parameters}


@dataclass(frozen=True)
class FlagConfiguration:
    """
    Feature flag definition.

    Attributes:
        name: Unique flag name
        filters: Ordered filter entries
        combinator: ALL (every filter) or ANY (at least one)
        description: What this flag controls
    """
    name: str
    filters: tuple[FilterReference, ...] = ()
    combinator: Combinator = Combinator.ANY
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "filters", tuple(self.filters))
        object.__setattr__(self, "combinator", Combinator(self.combinator))

    @property
    def is_loaded(self) -> bool:
        """True once every filter's parameters have been parsed."""
        return all(ref.parsed is not None for ref in self.filters)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the record shape accepted by ``from_dict``."""
        return {
            "name": self.name,
            "description": self.description,
            "combinator": self.combinator.value,
            "filters": [ref.to_dict() for ref in self.filters],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FlagConfiguration":
        """
        Build an unloaded configuration from a plain record.

        Raises:
            ConfigurationError: If the record shape is invalid
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Flag record must be a mapping, got {type(data).__name__}")
        try:
            record = FlagRecord.model_validate(dict(data))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid flag record {data.get('name')!r}: {e}") from e

        return cls(
            name=record.name,
            description=record.description,
            combinator=record.combinator,
            filters=tuple(
                FilterReference(kind=f.kind, parameters=dict(f.parameters))
                for f in record.filters
            ),
        )


# ============================================================
# RECORD SCHEMAS
# ============================================================

class FilterRecord(BaseModel):
    """Shape of one filter entry in a flag record."""
    model_config = ConfigDict(populate_by_name=True)

    kind: str = Field(..., min_length=1, alias="Name")
    parameters: dict[str, Any] = Field(default_factory=dict, alias="Parameters")


class FlagRecord(BaseModel):
    """Shape of a flag record."""
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: str = Field(..., min_length=1)
    description: str = ""
    combinator: Combinator = Combinator.ANY
    filters: list[FilterRecord] = Field(default_factory=list)

    @field_validator("combinator", mode="before")
    @classmethod
    def normalize_combinator(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v
