"""
FastAPI integration.
"""

from .dependencies import (
    Features,
    get_feature_manager,
    get_features,
    require_feature,
    require_inactive,
    require_not_forbidden,
)
from .middleware import FeatureCacheMiddleware

__all__ = [
    "Features",
    "get_feature_manager",
    "get_features",
    "require_feature",
    "require_inactive",
    "require_not_forbidden",
    "FeatureCacheMiddleware",
]
