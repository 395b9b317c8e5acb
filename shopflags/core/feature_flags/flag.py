"""Feature flag definitions and evaluation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from shopflags.core.conditions import ConditionOperator, coerce_operator
from shopflags.core.context import parse_datetime
from shopflags.core.errors import ConfigurationError


class FlagConditionType(str, Enum):
    """Which context field a flag condition reads."""

    USER_ROLE = "user_role"
    USER_ID = "user_id"
    ENVIRONMENT = "environment"
    DATE_RANGE = "date_range"
    COUNTRY = "country"


class FlagReason(str, Enum):
    NOT_FOUND = "Flag not found"
    DISABLED = "Flag is disabled"
    OUTSIDE_DATE_RANGE = "Outside date range"
    CONDITIONS_NOT_MET = "Conditions not met"
    OUTSIDE_ROLLOUT = "Outside rollout percentage"
    ENABLED = "All conditions met"


@dataclass
class FlagCondition:
    type: Union[FlagConditionType, str]
    operator: Union[ConditionOperator, str]
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value if isinstance(self.type, Enum) else self.type,
            "operator": self.operator.value if isinstance(self.operator, Enum) else self.operator,
            "value": self.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FlagCondition":
        try:
            raw_type = data["type"]
            operator = data["operator"]
        except KeyError as e:
            raise ConfigurationError(f"Flag condition missing {e}: {dict(data)!r}") from e
        try:
            cond_type: Union[FlagConditionType, str] = FlagConditionType(raw_type)
        except ValueError:
            cond_type = str(raw_type)
        return cls(type=cond_type, operator=coerce_operator(operator), value=data.get("value"))


@dataclass
class FeatureFlag:
    """A named boolean toggle with optional rules and gradual rollout.

    ``rollout`` is the percentage of identities for which the flag may be
    enabled; ``None`` means no percentage gating.
    """

    key: str
    name: str = ""
    description: str = ""
    enabled: bool = False
    rollout: Optional[int] = None
    conditions: List[FlagCondition] = field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.key:
            raise ConfigurationError("Feature flag key must not be empty")
        if not isinstance(self.enabled, bool):
            raise ConfigurationError(
                f"Flag '{self.key}' enabled must be true or false, got {self.enabled!r}"
            )
        if self.rollout is not None and not 0 <= self.rollout <= 100:
            raise ConfigurationError(
                f"Flag '{self.key}' rollout must be between 0 and 100, got {self.rollout}"
            )
        try:
            self.start_date = parse_datetime(self.start_date)
            self.end_date = parse_datetime(self.end_date)
        except ValueError as e:
            raise ConfigurationError(f"Flag '{self.key}' has an invalid date: {e}") from e
        if not self.name:
            self.name = self.key

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "rollout": self.rollout,
            "conditions": [c.to_dict() for c in self.conditions],
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FeatureFlag":
        if "key" not in data:
            raise ConfigurationError(f"Feature flag missing 'key': {dict(data)!r}")
        return cls(
            key=str(data["key"]),
            name=data.get("name", ""),
            description=data.get("description", ""),
            enabled=data.get("enabled", False),
            rollout=data.get("rollout"),
            conditions=[FlagCondition.from_dict(c) for c in data.get("conditions") or []],
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
        )


@dataclass
class FlagEvaluation:
    flag_key: str
    enabled: bool
    reason: FlagReason
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flag_key": self.flag_key,
            "enabled": self.enabled,
            "reason": self.reason.value,
            "metadata": self.metadata,
        }
