"""
Feature flag errors.

Configuration errors are raised while registering filters or loading
flags, before any traffic is served. UnknownFlag is the only error raised
during evaluation; callers can always tell "off" from "missing".
"""


class ErrorCodes:
    """Error code constants."""

    UNKNOWN_FLAG: str = "UNKNOWN_FLAG"
    DUPLICATE_FLAG: str = "DUPLICATE_FLAG"
    UNKNOWN_FILTER_KIND: str = "UNKNOWN_FILTER_KIND"
    DUPLICATE_FILTER_KIND: str = "DUPLICATE_FILTER_KIND"
    INVALID_FILTER_PARAMETERS: str = "INVALID_FILTER_PARAMETERS"
    INVALID_TIME_WINDOW: str = "INVALID_TIME_WINDOW"
    INVALID_PERCENTAGE_THRESHOLD: str = "INVALID_PERCENTAGE_THRESHOLD"
    INVALID_AUDIENCE_CONFIGURATION: str = "INVALID_AUDIENCE_CONFIGURATION"


class FeatureFlagError(Exception):
    """Base class for all feature flag errors."""

    code: str = "FEATURE_FLAG_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class UnknownFlag(FeatureFlagError):
    """Raised when evaluating a flag name that has no configuration."""

    code = ErrorCodes.UNKNOWN_FLAG

    def __init__(self, flag_name: str) -> None:
        super().__init__(f"No configuration for flag '{flag_name}'")
        self.flag_name = flag_name


class ConfigurationError(FeatureFlagError):
    """Raised when filters or flags are misconfigured."""


class DuplicateFlag(ConfigurationError):
    """Raised when two flags in one snapshot share a name."""

    code = ErrorCodes.DUPLICATE_FLAG


class UnknownFilterKind(ConfigurationError):
    """Raised when a flag references a filter kind nobody registered."""

    code = ErrorCodes.UNKNOWN_FILTER_KIND

    def __init__(self, kind: str, available: list[str] | None = None) -> None:
        message = f"Unknown filter kind: '{kind}'"
        if available is not None:
            message += f". Available: {available}"
        super().__init__(message)
        self.kind = kind


class DuplicateFilterKind(ConfigurationError):
    """Raised when a filter kind (or alias) is registered twice."""

    code = ErrorCodes.DUPLICATE_FILTER_KIND

    def __init__(self, kind: str) -> None:
        super().__init__(f"Filter kind already registered: '{kind}'")
        self.kind = kind


class InvalidFilterParameters(ConfigurationError):
    """Raised when filter parameters fail validation."""

    code = ErrorCodes.INVALID_FILTER_PARAMETERS


class InvalidTimeWindow(InvalidFilterParameters):
    """Raised for a time window with no bounds or with start >= end."""

    code = ErrorCodes.INVALID_TIME_WINDOW


class InvalidPercentageThreshold(InvalidFilterParameters):
    """Raised for a percentage threshold outside [0, 100]."""

    code = ErrorCodes.INVALID_PERCENTAGE_THRESHOLD


class InvalidAudienceConfiguration(InvalidFilterParameters):
    """Raised for a malformed targeting audience."""

    code = ErrorCodes.INVALID_AUDIENCE_CONFIGURATION
