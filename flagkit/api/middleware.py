"""
Request-scoped feature cache.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from ..manager import FeatureManager
from .dependencies import get_feature_manager


class FeatureCacheMiddleware(BaseHTTPMiddleware):
    """Flush every feature store's cache when a request finishes."""

    def __init__(self, app: ASGIApp, manager: FeatureManager | None = None):
        super().__init__(app)
        self.manager = manager

    async def dispatch(self, request: Request, call_next) -> Response:
        manager = self.manager or get_feature_manager()
        with manager.unit_of_work():
            return await call_next(request)
