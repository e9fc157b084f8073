"""
Storage backend implementations.
"""

from .database import (
    DatabaseDriver,
    DatabaseGroupMembershipRepository,
    DatabaseGroupRepository,
)
from .memory import (
    MemoryDriver,
    MemoryGroupMembershipRepository,
    MemoryGroupRepository,
)

__all__ = [
    "DatabaseDriver",
    "DatabaseGroupRepository",
    "DatabaseGroupMembershipRepository",
    "MemoryDriver",
    "MemoryGroupRepository",
    "MemoryGroupMembershipRepository",
]
