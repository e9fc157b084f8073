"""
Feature flag resolution.

Features resolve per context with prerequisites, scoped activations,
group membership, weighted variants and expiry.

Usage Levels:

Level 1 - Static and computed features:
    from flagkit import FeatureManager

    features = FeatureManager()
    features.define("new-dashboard", True)
    features.define("beta-reports", lambda user: user.is_beta)

    features.active("beta-reports", user)

Level 2 - Prerequisites and expiry:
    features.define("advanced", True, requires=["basic"])
    features.define("holiday-banner").expires_after(days=14).resolver(True)

Level 3 - Variants:
    features.define("checkout").variants({"control": 50, "one-page": 50}).resolver()
    features.variant("checkout", user)      # "control" or "one-page", stable per user

Level 4 - Scopes and groups:
    team_scope = Context(0, "user").with_scope("user", company=3, org=2, user=None)
    features.activate("reports", team_scope)    # every user of org 2

    features.define_group("beta", ["reports", "exports"])
    features.assign_to_group("beta", user)
    features.activate_group("beta")

Level 5 - Web requests:
    from flagkit.api import Features, FeatureCacheMiddleware, require_feature

    app.add_middleware(FeatureCacheMiddleware)

    @router.get("/reports", dependencies=[require_feature("reports")])
    async def reports(features: Features):
        ...
"""

from .context import (
    GLOBAL_CONTEXT,
    Context,
    Contextable,
    FeatureScope,
    GuestContext,
    resolve_context,
    serialize_context,
)
from .values import FeatureState, FeatureValue
from .definition import (
    BinaryResolver,
    ConditionalResolver,
    Feature,
    FeatureBuilder,
    FeatureDefinition,
    PercentageResolver,
    Resolver,
    ScheduledResolver,
    StaticResolver,
    TimeWindowResolver,
    UnaryResolver,
    VariantResolver,
)
from .variants import calculate_variant, validate_weights
from .prerequisites import DependencyResolver
from .scope import ScopeMatcher, ScopeRecord
from .groups import GroupMembershipResolver
from .cache import CacheEntry, ResultCache
from .events import (
    EventDispatcher,
    FeatureActivated,
    FeatureDeactivated,
    UnknownFeatureResolved,
)
from .interfaces import Driver, GroupMembershipRepository, GroupRepository
from .engine import ContextualFeatures, ResolutionEngine
from .manager import FeatureManager
from .config import FeatureSettings, get_settings
from .logging import configure_logging, get_logger
from .exceptions import (
    CannotSerializeContextError,
    ConfigurationError,
    EmptyVariantWeightsError,
    FeatureFlagError,
    FeatureGroupNotFoundError,
    InvalidContextTypeError,
    InvalidPercentageError,
    InvalidVariantWeightsError,
    PercentageRolloutError,
    UndefinedFeatureStoreError,
    UnsupportedDriverError,
)

__all__ = [
    # Context
    "Context",
    "Contextable",
    "FeatureScope",
    "GuestContext",
    "GLOBAL_CONTEXT",
    "resolve_context",
    "serialize_context",
    # Values and definitions
    "FeatureState",
    "FeatureValue",
    "Feature",
    "FeatureBuilder",
    "FeatureDefinition",
    "Resolver",
    "StaticResolver",
    "UnaryResolver",
    "BinaryResolver",
    "VariantResolver",
    "PercentageResolver",
    "TimeWindowResolver",
    "ScheduledResolver",
    "ConditionalResolver",
    # Resolution
    "calculate_variant",
    "validate_weights",
    "DependencyResolver",
    "ScopeMatcher",
    "ScopeRecord",
    "GroupMembershipResolver",
    "CacheEntry",
    "ResultCache",
    "ResolutionEngine",
    "ContextualFeatures",
    "FeatureManager",
    # Storage contracts
    "Driver",
    "GroupRepository",
    "GroupMembershipRepository",
    # Events
    "EventDispatcher",
    "FeatureActivated",
    "FeatureDeactivated",
    "UnknownFeatureResolved",
    # Config / logging
    "FeatureSettings",
    "get_settings",
    "configure_logging",
    "get_logger",
    # Errors
    "FeatureFlagError",
    "ConfigurationError",
    "UndefinedFeatureStoreError",
    "UnsupportedDriverError",
    "InvalidVariantWeightsError",
    "EmptyVariantWeightsError",
    "InvalidPercentageError",
    "PercentageRolloutError",
    "CannotSerializeContextError",
    "InvalidContextTypeError",
    "FeatureGroupNotFoundError",
]
