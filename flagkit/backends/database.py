"""
Database storage.

SQLAlchemy ``Session`` based. Writes are flushed, never committed: the
caller's unit of work owns the transaction. Resolvers are code, so they
stay in process memory.
"""

from typing import Any, Iterable, Mapping

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..context import GLOBAL_CONTEXT, Context, FeatureScope, serialize_context
from ..definition import Resolver, StaticResolver
from ..events import EventDispatcher
from ..exceptions import FeatureGroupNotFoundError
from ..interfaces import Driver, GroupMembershipRepository, GroupRepository
from ..models import (
    SCOPE_ROW_TYPE,
    FeatureGroupMembershipModel,
    FeatureGroupModel,
    FeatureModel,
)
from ..scope import ScopeRecord


class DatabaseDriver(Driver):
    """Feature values persisted in the ``features`` table."""

    def __init__(self, db: Session, events: EventDispatcher | None = None):
        super().__init__(events)
        self.db = db
        self._resolvers: dict[str, Resolver] = {}

    # ============================================================
    # DEFINITIONS
    # ============================================================

    def define(self, feature: str, resolver: Resolver) -> None:
        self._resolvers[feature] = resolver

    def defined(self) -> list[str]:
        return list(self._resolvers)

    def stored(self) -> list[str]:
        query = select(FeatureModel.name).distinct().order_by(FeatureModel.name)
        return list(self.db.execute(query).scalars().all())

    def resolver_for(self, feature: str) -> Resolver | None:
        return self._resolvers.get(feature)

    # ============================================================
    # VALUES
    # ============================================================

    def _row(self, feature: str, context_type: str, context_id: str) -> FeatureModel | None:
        query = select(FeatureModel).where(
            FeatureModel.name == feature,
            FeatureModel.context_type == context_type,
            FeatureModel.context_id == context_id,
        )
        return self.db.execute(query).scalar_one_or_none()

    def retrieve(self, feature: str, context: Context) -> tuple[bool, Any]:
        row = self._row(feature, context.type, str(context.id))
        if row is None:
            return False, None
        return True, row.value

    def set(self, feature: str, context: Context, value: Any) -> None:
        if context.scope is not None:
            self._set_scope(feature, context.scope, value)
            return

        row = self._row(feature, context.type, str(context.id))
        if row is None:
            self.db.add(FeatureModel(
                name=feature,
                context_type=context.type,
                context_id=str(context.id),
                value=value,
            ))
        else:
            row.value = value
        self.db.flush()

    def _set_scope(self, feature: str, scope: FeatureScope, value: Any) -> None:
        # Replace rather than update so the new row id marks it as newest.
        existing = self._row(feature, SCOPE_ROW_TYPE, scope.cache_key())
        if existing is not None:
            self.db.delete(existing)
            self.db.flush()

        self.db.add(FeatureModel(
            name=feature,
            context_type=SCOPE_ROW_TYPE,
            context_id=scope.cache_key(),
            scope=scope.to_dict(),
            value=value,
        ))
        self.db.flush()

    def set_for_all_contexts(self, feature: str, value: Any) -> None:
        self._resolvers[feature] = StaticResolver(value)
        self.db.execute(delete(FeatureModel).where(FeatureModel.name == feature))
        self.db.add(FeatureModel(
            name=feature,
            context_type=GLOBAL_CONTEXT.type,
            context_id=str(GLOBAL_CONTEXT.id),
            value=value,
        ))
        self.db.flush()

    def delete(self, feature: str, context: Context) -> None:
        if context.scope is not None:
            context_type, context_id = SCOPE_ROW_TYPE, context.scope.cache_key()
        else:
            context_type, context_id = context.type, str(context.id)

        self.db.execute(
            delete(FeatureModel).where(
                FeatureModel.name == feature,
                FeatureModel.context_type == context_type,
                FeatureModel.context_id == context_id,
            )
        )
        self.db.flush()

    def purge(self, features: Iterable[str] | None = None) -> None:
        query = delete(FeatureModel)
        if features is not None:
            query = query.where(FeatureModel.name.in_(list(features)))
        self.db.execute(query)
        self.db.flush()

    def scoped_records(self, feature: str) -> list[ScopeRecord]:
        query = (
            select(FeatureModel)
            .where(FeatureModel.name == feature, FeatureModel.context_type == SCOPE_ROW_TYPE)
            .order_by(FeatureModel.id)
        )
        return [
            ScopeRecord(feature, FeatureScope.from_dict(row.scope), row.value, row.id)
            for row in self.db.execute(query).scalars().all()
        ]


class DatabaseGroupRepository(GroupRepository):
    def __init__(self, db: Session):
        self.db = db

    def _model(self, name: str) -> FeatureGroupModel | None:
        query = select(FeatureGroupModel).where(FeatureGroupModel.name == name)
        return self.db.execute(query).scalar_one_or_none()

    def _require(self, name: str) -> FeatureGroupModel:
        model = self._model(name)
        if model is None:
            raise FeatureGroupNotFoundError(name)
        return model

    def define(self, name: str, features: Iterable[str], metadata: Mapping[str, Any] | None = None) -> None:
        model = self._model(name)
        if model is None:
            model = FeatureGroupModel(name=name)
            self.db.add(model)
        model.features = list(dict.fromkeys(features))
        model.meta = dict(metadata or {})
        self.db.flush()

    def get(self, name: str) -> list[str]:
        return list(self._require(name).features or [])

    def metadata(self, name: str) -> dict[str, Any]:
        return dict(self._require(name).meta or {})

    def all(self) -> dict[str, list[str]]:
        query = select(FeatureGroupModel).order_by(FeatureGroupModel.id)
        return {m.name: list(m.features or []) for m in self.db.execute(query).scalars().all()}

    def exists(self, name: str) -> bool:
        return self._model(name) is not None

    def delete(self, name: str) -> bool:
        result = self.db.execute(delete(FeatureGroupModel).where(FeatureGroupModel.name == name))
        self.db.flush()
        return result.rowcount > 0

    def update(self, name: str, features: Iterable[str]) -> None:
        model = self._require(name)
        # New list object so the JSON column is marked dirty.
        model.features = list(dict.fromkeys(features))
        self.db.flush()


class DatabaseGroupMembershipRepository(GroupMembershipRepository):
    def __init__(self, db: Session):
        self.db = db

    def _membership(self, group: str, key: str) -> FeatureGroupMembershipModel | None:
        query = select(FeatureGroupMembershipModel).where(
            FeatureGroupMembershipModel.group_name == group,
            FeatureGroupMembershipModel.context_key == key,
        )
        return self.db.execute(query).scalar_one_or_none()

    def add_to_group(self, group: str, context: Context) -> None:
        key = serialize_context(context)
        if self._membership(group, key) is None:
            self.db.add(FeatureGroupMembershipModel(group_name=group, context_key=key))
            self.db.flush()

    def remove_from_group(self, group: str, context: Context) -> None:
        self.db.execute(
            delete(FeatureGroupMembershipModel).where(
                FeatureGroupMembershipModel.group_name == group,
                FeatureGroupMembershipModel.context_key == serialize_context(context),
            )
        )
        self.db.flush()

    def is_in_group(self, group: str, context: Context) -> bool:
        return self._membership(group, serialize_context(context)) is not None

    def get_group_members(self, group: str) -> list[str]:
        query = (
            select(FeatureGroupMembershipModel.context_key)
            .where(FeatureGroupMembershipModel.group_name == group)
            .order_by(FeatureGroupMembershipModel.id)
        )
        return list(self.db.execute(query).scalars().all())

    def get_groups_for_context(self, context: Context) -> list[str]:
        query = (
            select(FeatureGroupMembershipModel.group_name)
            .where(FeatureGroupMembershipModel.context_key == serialize_context(context))
            .order_by(FeatureGroupMembershipModel.id)
        )
        return list(self.db.execute(query).scalars().all())

    def clear_group(self, group: str) -> None:
        self.db.execute(
            delete(FeatureGroupMembershipModel).where(FeatureGroupMembershipModel.group_name == group)
        )
        self.db.flush()

    def remove_context_from_all_groups(self, context: Context) -> None:
        self.db.execute(
            delete(FeatureGroupMembershipModel).where(
                FeatureGroupMembershipModel.context_key == serialize_context(context)
            )
        )
        self.db.flush()
