"""
Feature values.

``False`` is the off-state and ``None`` means "nothing decided". Any
other value (``True``, a variant name, a config dict) is active.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class FeatureState(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNDEFINED = "undefined"


@dataclass(frozen=True)
class FeatureValue:
    value: Any

    @property
    def state(self) -> FeatureState:
        if self.value is False:
            return FeatureState.INACTIVE
        if self.value is None:
            return FeatureState.UNDEFINED
        return FeatureState.ACTIVE

    def is_active(self) -> bool:
        return self.state is FeatureState.ACTIVE

    def is_forbidden(self) -> bool:
        return self.state is FeatureState.INACTIVE

    def is_undefined(self) -> bool:
        return self.state is FeatureState.UNDEFINED


def is_active(value: Any) -> bool:
    """Shortcut for ``FeatureValue(value).is_active()``."""
    return FeatureValue(value).is_active()
