"""
FastAPI dependencies for feature flags.

Usage:
    from flagkit.api import Features, require_feature

    @router.get("/dashboard")
    async def dashboard(features: Features, user: CurrentUser):
        if features.active("new-dashboard", user):
            return new_dashboard()
        return old_dashboard()

    @router.get("/beta", dependencies=[require_feature("beta")])
    async def beta():
        return beta_data()
"""

from functools import lru_cache
from typing import Annotated, Any, Callable

from fastapi import Depends, HTTPException, Request

from ..config import get_settings
from ..definition import UNSET
from ..engine import ResolutionEngine
from ..manager import FeatureManager
from ..values import FeatureValue, is_active


# ============================================================
# MANAGER / STORE
# ============================================================

@lru_cache
def get_feature_manager() -> FeatureManager:
    """Process-wide manager built from settings."""
    return FeatureManager(get_settings())


async def get_features(
    manager: FeatureManager = Depends(get_feature_manager),
) -> ResolutionEngine:
    """Default feature store."""
    return manager.store()


# Type alias for cleaner injection
Features = Annotated[ResolutionEngine, Depends(get_features)]


# ============================================================
# GUARDS
# ============================================================

def require_feature(
    feature: str,
    *,
    status_code: int = 404,
    detail: str | None = None,
    context: Callable[[Request], Any] | None = None,
) -> Any:
    """
    Route dependency rejecting requests when a feature is inactive.

    Args:
        feature: Feature name
        status_code: Response status when inactive (404 hides the route)
        detail: Custom error message
        context: Pulls the context out of the request. Defaults to
            ``request.state.user`` when present, else the store's default
    """
    return _guard(
        feature,
        is_active,
        status_code=status_code,
        detail=detail or ("Not found" if status_code == 404 else f"Feature '{feature}' is not available"),
        context=context,
    )


def require_inactive(
    feature: str,
    *,
    status_code: int = 404,
    detail: str | None = None,
    context: Callable[[Request], Any] | None = None,
) -> Any:
    """
    Route dependency rejecting requests while a feature is active.

    Useful for legacy routes that disappear once their replacement ships.
    """
    return _guard(
        feature,
        lambda value: not is_active(value),
        status_code=status_code,
        detail=detail or ("Not found" if status_code == 404 else f"Feature '{feature}' is active"),
        context=context,
    )


def require_not_forbidden(
    feature: str,
    *,
    status_code: int = 403,
    detail: str | None = None,
    context: Callable[[Request], Any] | None = None,
) -> Any:
    """Route dependency rejecting only an explicit ``False``; undecided passes."""
    return _guard(
        feature,
        lambda value: not FeatureValue(value).is_forbidden(),
        status_code=status_code,
        detail=detail or f"Feature '{feature}' is forbidden",
        context=context,
    )


def _guard(
    feature: str,
    allowed: Callable[[Any], bool],
    *,
    status_code: int,
    detail: str,
    context: Callable[[Request], Any] | None,
) -> Any:
    async def check(request: Request, features: Features) -> None:
        if context is not None:
            ctx = context(request)
        else:
            ctx = getattr(request.state, "user", UNSET)

        if not allowed(features.value(feature, ctx)):
            raise HTTPException(status_code=status_code, detail=detail)

    return Depends(check)
