"""
Group membership fallback.

A context assigned to a group picks up the globally activated value of
any feature in that group, when nothing more direct answered first.
"""

from typing import Any

import structlog

from .context import GLOBAL_CONTEXT, Context
from .exceptions import FeatureGroupNotFoundError
from .interfaces import Driver, GroupMembershipRepository, GroupRepository

logger = structlog.get_logger(__name__)


class GroupMembershipResolver:
    def __init__(
        self,
        groups: GroupRepository,
        memberships: GroupMembershipRepository,
        driver: Driver,
    ):
        self.groups = groups
        self.memberships = memberships
        self.driver = driver

    def is_in_group(self, group: str, context: Context) -> bool:
        return self.memberships.is_in_group(group, context)

    def groups_for(self, context: Context) -> list[str]:
        return self.memberships.get_groups_for_context(context)

    def assign(self, group: str, context: Context) -> None:
        if not self.groups.exists(group):
            raise FeatureGroupNotFoundError(group)
        self.memberships.add_to_group(group, context)

    def unassign(self, group: str, context: Context) -> None:
        self.memberships.remove_from_group(group, context)

    def resolve(self, feature: str, context: Context) -> tuple[Any, bool]:
        """
        Look for a group-level value.

        Returns:
            (value, found). Only values other than False and None count.
        """
        for group in self.groups_for(context):
            try:
                features = self.groups.get(group)
            except FeatureGroupNotFoundError:
                logger.debug("stale_group_membership", group=group, context=context.serialize())
                continue

            if feature not in features:
                continue

            found, value = self.driver.retrieve(feature, GLOBAL_CONTEXT)
            if found and value is not False and value is not None:
                return value, True

        return None, False
