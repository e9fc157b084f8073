"""
Feature flag errors.

Only configuration and input problems are raised. Circular dependencies
never surface here: they resolve to ``False``.
"""


class FeatureFlagError(Exception):
    """Base class for all feature flag errors."""


# ============================================================
# CONFIGURATION
# ============================================================

class ConfigurationError(FeatureFlagError):
    """The feature flag configuration is invalid."""


class UndefinedFeatureStoreError(ConfigurationError):
    """A store name was requested that is not configured."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Feature store [{name}] is not defined.")


class UnsupportedDriverError(ConfigurationError):
    """A store uses a driver with no factory."""

    def __init__(self, driver: str):
        self.driver = driver
        super().__init__(f"Driver [{driver}] is not supported.")


# ============================================================
# VARIANTS
# ============================================================

class InvalidVariantWeightsError(FeatureFlagError, ValueError):
    """Variant weights do not form a valid distribution."""

    def __init__(self, message: str, total: int | None = None):
        self.total = total
        super().__init__(message)

    @classmethod
    def must_sum_to_100(cls, total: int) -> "InvalidVariantWeightsError":
        return cls(f"Variant weights must sum to 100, got {total}.", total)


class EmptyVariantWeightsError(InvalidVariantWeightsError):
    """No variants were given."""

    def __init__(self):
        super().__init__("Variant weights cannot be empty.", 0)


# ============================================================
# ROLLOUTS
# ============================================================

class InvalidPercentageError(FeatureFlagError, ValueError):
    """A rollout percentage is outside 0..100."""

    def __init__(self, percentage: object):
        self.percentage = percentage
        super().__init__(f"Percentage must be between 0 and 100, got {percentage!r}.")


class PercentageRolloutError(FeatureFlagError):
    """A percentage rollout was asked to bucket the guest context."""

    def __init__(self):
        super().__init__("Percentage rollout requires a non-null context for consistent hashing.")


# ============================================================
# CONTEXTS
# ============================================================

class CannotSerializeContextError(FeatureFlagError):
    """The context has no stable string identity."""

    def __init__(self, context: object):
        self.context = context
        super().__init__(
            f"Unable to serialize context of type [{type(context).__name__}]. "
            "Pass a Context, an object with `to_feature_context()`, "
            "a string, a number, or a plain data structure."
        )


class InvalidContextTypeError(FeatureFlagError, TypeError):
    """The value cannot be turned into a Context."""

    def __init__(self, context: object):
        self.context = context
        super().__init__(
            f"Cannot resolve a feature context from [{type(context).__name__}]."
        )


# ============================================================
# GROUPS
# ============================================================

class FeatureGroupNotFoundError(FeatureFlagError, KeyError):
    """The named feature group does not exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Feature group [{name}] not found.")

    def __str__(self) -> str:
        return self.args[0]
