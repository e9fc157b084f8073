"""
SQLAlchemy models for the database store.

Tables:
- features: stored values per feature and context identity, plus scope records
- feature_groups: named feature sets with metadata
- feature_group_memberships: context-to-group assignments
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB, "postgresql")

# context_type of rows holding a scope record rather than an entity value
SCOPE_ROW_TYPE = "__scope__"


class Base(DeclarativeBase):
    """Base class for feature flag models."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }

    def to_dict(self) -> dict[str, Any]:
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class FeatureModel(Base, TimestampMixin):
    """
    One stored feature value.

    Entity rows carry the context identity. Scope rows use
    ``context_type == "__scope__"``, the scope cache key as ``context_id``
    and the full scope in ``scope``. Row id doubles as write order.
    """

    __tablename__ = "features"
    __table_args__ = (
        UniqueConstraint("name", "context_type", "context_id", name="uq_features_name_context"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    context_type: Mapped[str] = mapped_column(String(255), nullable=False)
    context_id: Mapped[str] = mapped_column(String(255), nullable=False)
    scope: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    value: Mapped[Any] = mapped_column(JSONType, nullable=True)

    @property
    def is_scoped(self) -> bool:
        return self.context_type == SCOPE_ROW_TYPE

    def __repr__(self) -> str:
        return f"<Feature {self.name} for {self.context_type}|{self.context_id}>"


class FeatureGroupModel(Base, TimestampMixin):
    __tablename__ = "feature_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    features: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict] = mapped_column("metadata", JSONType, default=dict, nullable=False)

    def __repr__(self) -> str:
        return f"<FeatureGroup {self.name} ({len(self.features or [])} features)>"


class FeatureGroupMembershipModel(Base):
    __tablename__ = "feature_group_memberships"
    __table_args__ = (
        UniqueConstraint("group_name", "context_key", name="uq_group_membership"),
        Index("idx_feature_group_memberships_context", "context_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    context_key: Mapped[str] = mapped_column(String(512), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<FeatureGroupMembership {self.context_key} in {self.group_name}>"
