"""
Store manager.

Resolves named stores from configuration into ResolutionEngines, owns the
global context shared by all of them and flushes their caches at unit of
work boundaries.

Example usage:
```python
features = FeatureManager()
features.define("new-checkout", lambda user: user.is_beta)

with features.unit_of_work():
    if features.active("new-checkout", user):
        ...

features.store("database").activate("new-checkout", team)
features.extend("redis", lambda config, manager: RedisDriver(config["url"]))
```
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping

import structlog
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .backends.database import (
    DatabaseDriver,
    DatabaseGroupMembershipRepository,
    DatabaseGroupRepository,
)
from .backends.memory import (
    MemoryDriver,
    MemoryGroupMembershipRepository,
    MemoryGroupRepository,
)
from .config import FeatureSettings, get_settings
from .context import serialize_context
from .engine import ResolutionEngine
from .events import EventDispatcher
from .exceptions import UndefinedFeatureStoreError, UnsupportedDriverError
from .interfaces import Driver, GroupMembershipRepository, GroupRepository
from .models import Base
from .variants import calculate_variant

logger = structlog.get_logger(__name__)

DriverFactory = Callable[[dict[str, Any], "FeatureManager"], Driver]


class FeatureManager:
    """
    Named feature stores.

    Attribute access falls through to the default store, so
    ``manager.active(...)`` is ``manager.store().active(...)``.
    """

    def __init__(
        self,
        settings: FeatureSettings | None = None,
        *,
        session_factory: Callable[[], Session] | None = None,
        events: EventDispatcher | None = None,
        default_context: Callable[[], Any] | None = None,
    ):
        self.settings = settings or get_settings()
        self.events = events or EventDispatcher(enabled=self.settings.events_enabled)
        self._session_factory = session_factory
        self._default_context = default_context
        self._stores: dict[str, ResolutionEngine] = {}
        self._custom_drivers: dict[str, DriverFactory] = {}
        self._global_context: Any = None

    # ============================================================
    # STORES
    # ============================================================

    def store(self, name: str | None = None) -> ResolutionEngine:
        """
        Get a store by name, building it on first use.

        Raises:
            UndefinedFeatureStoreError: no store configured under that name
            UnsupportedDriverError: the store's driver has no factory
        """
        name = name or self.settings.default_store
        if name not in self._stores:
            self._stores[name] = self._resolve(name)
        return self._stores[name]

    def _resolve(self, name: str) -> ResolutionEngine:
        config = self.settings.store_config(name)
        if config is None:
            raise UndefinedFeatureStoreError(name)

        driver_name = config.get("driver", "")
        driver = self._create_driver(driver_name, config)
        groups, memberships = self._create_group_storage(driver_name)

        engine = ResolutionEngine(
            driver,
            groups,
            memberships,
            events=self.events,
            default_context=self._default_context,
            name=name,
        )
        engine.load_groups(self.settings.groups)
        if self._global_context is not None:
            engine.set_global_context(self._global_context)

        logger.info("feature_store_resolved", store=name, driver=driver_name)
        return engine

    def _create_driver(self, driver_name: str, config: dict[str, Any]) -> Driver:
        if driver_name in self._custom_drivers:
            return self._custom_drivers[driver_name](config, self)
        if driver_name == "array":
            return MemoryDriver(self.events)
        if driver_name == "database":
            return DatabaseDriver(self.session(), self.events)
        raise UnsupportedDriverError(driver_name)

    def _create_group_storage(
        self,
        driver_name: str,
    ) -> tuple[GroupRepository, GroupMembershipRepository]:
        storage = self.settings.group_storage
        if storage is None:
            storage = "database" if driver_name == "database" else "array"

        if storage == "database":
            db = self.session()
            return DatabaseGroupRepository(db), DatabaseGroupMembershipRepository(db)
        return MemoryGroupRepository(), MemoryGroupMembershipRepository()

    def session(self) -> Session:
        """Session used by database-backed stores."""
        if self._session_factory is None:
            self._session_factory = self._default_session_factory()
        return self._session_factory()

    def _default_session_factory(self) -> Callable[[], Session]:
        url = self.settings.database_url
        options: dict[str, Any] = {}
        if url.startswith("sqlite") and ":memory:" in url:
            options["connect_args"] = {"check_same_thread": False}
            options["poolclass"] = StaticPool

        engine = create_engine(url, **options)
        Base.metadata.create_all(engine)
        factory = sessionmaker(bind=engine, expire_on_commit=False)

        # One session shared by every store of this manager.
        session = factory()
        return lambda: session

    def extend(self, driver_name: str, factory: DriverFactory) -> "FeatureManager":
        """Register a custom driver factory ``factory(config, manager)``."""
        self._custom_drivers[driver_name] = factory
        logger.debug("feature_driver_registered", driver=driver_name)
        return self

    def forget_store(self, name: str | None = None) -> None:
        """Drop built stores so the next access rebuilds them."""
        if name is None:
            self._stores.clear()
        else:
            self._stores.pop(name, None)

    def stores(self) -> dict[str, ResolutionEngine]:
        return dict(self._stores)

    # ============================================================
    # GLOBAL CONTEXT
    # ============================================================

    @property
    def global_context(self) -> Any:
        return self._global_context

    def set_global_context(self, value: Any) -> None:
        self._global_context = value
        for engine in self._stores.values():
            engine.set_global_context(value)

    def clear_global_context(self) -> None:
        self.set_global_context(None)

    def has_global_context(self) -> bool:
        return self._global_context is not None

    # ============================================================
    # UNIT OF WORK
    # ============================================================

    def flush_cache(self) -> None:
        for engine in self._stores.values():
            engine.flush_cache()

    @contextmanager
    def unit_of_work(self) -> Iterator["FeatureManager"]:
        """Flush every store's cache when the block ends, even on error."""
        try:
            yield self
        finally:
            self.flush_cache()

    # ============================================================
    # HELPERS
    # ============================================================

    @staticmethod
    def calculate_variant(feature: str, context: Any, weights: Mapping[str, int]) -> str:
        return calculate_variant(feature, context, weights)

    @staticmethod
    def serialize_context(context: Any) -> str:
        return serialize_context(context)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or "_stores" not in self.__dict__:
            raise AttributeError(name)
        return getattr(self.store(), name)
