"""Experiment definitions, assignments and assignment results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from shopflags.core.conditions import Condition
from shopflags.core.context import parse_datetime, utcnow
from shopflags.core.errors import ConfigurationError


class ExperimentStatus(Enum):
    """Experiment lifecycle status.

    draft -> ready -> running -> paused | completed | cancelled.
    Only ``running`` experiments enroll participants.
    """

    DRAFT = "draft"
    READY = "ready"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ExperimentReason(str, Enum):
    NOT_FOUND = "Experiment not found"
    NOT_ACTIVE = "Experiment not active"
    PREVIOUSLY_ASSIGNED = "Previously assigned"
    TARGETING_NOT_MET = "Does not meet targeting criteria"
    NOT_IN_TRAFFIC = "Not in traffic allocation"
    NO_VARIANT = "No variant available"
    ASSIGNED = "Successfully assigned"
    CONDITION_NOT_MET = "Condition not met"


@dataclass
class Variant:
    """One arm of an experiment. ``config`` is passed through untouched."""

    id: str
    name: str = ""
    weight: float = 0
    config: Dict[str, Any] = field(default_factory=dict)
    description: str = ""

    def __post_init__(self) -> None:
        if self.weight < 0:
            raise ConfigurationError(f"Variant '{self.id}' weight must be non-negative")
        if not self.name:
            self.name = self.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "weight": self.weight,
            "config": self.config,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Variant":
        if "id" not in data:
            raise ConfigurationError(f"Variant missing 'id': {dict(data)!r}")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            weight=data.get("weight", 0),
            config=dict(data.get("config") or {}),
            description=data.get("description") or "",
        )


@dataclass
class Targeting:
    """Eligibility rules; a field left as ``None`` is not checked."""

    user_roles: Optional[List[str]] = None
    user_segments: Optional[List[str]] = None
    geo_location: Optional[List[str]] = None
    device_types: Optional[List[str]] = None
    browsers: Optional[List[str]] = None
    custom_conditions: Optional[List[Condition]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_roles": self.user_roles,
            "user_segments": self.user_segments,
            "geo_location": self.geo_location,
            "device_types": self.device_types,
            "browsers": self.browsers,
            "custom_conditions": (
                [c.to_dict() for c in self.custom_conditions]
                if self.custom_conditions is not None
                else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Targeting":
        data = data or {}
        conditions = data.get("custom_conditions")
        return cls(
            user_roles=data.get("user_roles"),
            user_segments=data.get("user_segments"),
            geo_location=data.get("geo_location"),
            device_types=data.get("device_types"),
            browsers=data.get("browsers"),
            custom_conditions=(
                [Condition.from_dict(c) for c in conditions] if conditions is not None else None
            ),
        )


@dataclass
class Experiment:
    """An A/B(/n) test with variants, targeting and traffic controls."""

    id: str
    name: str = ""
    description: str = ""
    status: ExperimentStatus = ExperimentStatus.DRAFT
    variants: List[Variant] = field(default_factory=list)
    targeting: Targeting = field(default_factory=Targeting)
    metrics: List[str] = field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    traffic_allocation: float = 100
    hypothesis: Optional[str] = None
    success_criteria: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ConfigurationError("Experiment id must not be empty")
        if not isinstance(self.status, ExperimentStatus):
            try:
                self.status = ExperimentStatus(self.status)
            except ValueError as e:
                raise ConfigurationError(
                    f"Experiment '{self.id}' has unknown status {self.status!r}"
                ) from e
        if not 0 <= self.traffic_allocation <= 100:
            raise ConfigurationError(
                f"Experiment '{self.id}' traffic_allocation must be between 0 and 100"
            )
        try:
            self.start_date = parse_datetime(self.start_date)
            self.end_date = parse_datetime(self.end_date)
        except ValueError as e:
            raise ConfigurationError(f"Experiment '{self.id}' has an invalid date: {e}") from e
        if not self.name:
            self.name = self.id

    @property
    def total_weight(self) -> float:
        return sum(v.weight for v in self.variants)

    def get_variant(self, variant_id: str) -> Optional[Variant]:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """Running, started, and not yet ended."""
        now = now or utcnow()
        if self.status is not ExperimentStatus.RUNNING:
            return False
        if self.start_date and now < self.start_date:
            return False
        if self.end_date and now >= self.end_date:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "variants": [v.to_dict() for v in self.variants],
            "targeting": self.targeting.to_dict(),
            "metrics": list(self.metrics),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "traffic_allocation": self.traffic_allocation,
            "hypothesis": self.hypothesis,
            "success_criteria": self.success_criteria,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Experiment":
        if "id" not in data:
            raise ConfigurationError(f"Experiment missing 'id': {dict(data)!r}")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            description=data.get("description", ""),
            status=data.get("status", ExperimentStatus.DRAFT.value),
            variants=[Variant.from_dict(v) for v in data.get("variants") or []],
            targeting=Targeting.from_dict(data.get("targeting")),
            metrics=list(data.get("metrics") or []),
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            traffic_allocation=data.get("traffic_allocation", 100),
            hypothesis=data.get("hypothesis"),
            success_criteria=data.get("success_criteria"),
        )


@dataclass
class Assignment:
    """A sticky variant decision for one identity in one experiment."""

    experiment_id: str
    variant_id: str
    session_id: str
    user_id: Optional[str] = None
    assigned_at: datetime = field(default_factory=utcnow)

    @property
    def identity(self) -> str:
        return self.user_id or self.session_id

    @property
    def key(self) -> str:
        return f"{self.experiment_id}-{self.identity}"

    def to_dict(self) -> Dict[str, Any]:
        # camelCase keeps records compatible with assignments written by the storefront.
        return {
            "experimentId": self.experiment_id,
            "variantId": self.variant_id,
            "assignedAt": self.assigned_at.isoformat(),
            "userId": self.user_id,
            "sessionId": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Assignment":
        try:
            return cls(
                experiment_id=str(data["experimentId"]),
                variant_id=str(data["variantId"]),
                session_id=str(data["sessionId"]),
                user_id=data.get("userId"),
                assigned_at=parse_datetime(data.get("assignedAt")) or utcnow(),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Malformed assignment record {data!r}: {e}") from e


@dataclass
class ExperimentResult:
    experiment_id: str
    variant_id: Optional[str]
    is_participant: bool
    reason: ExperimentReason
    assignment: Optional[Assignment] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "experiment_id": self.experiment_id,
            "variant_id": self.variant_id,
            "is_participant": self.is_participant,
            "reason": self.reason.value,
            "assignment": self.assignment.to_dict() if self.assignment else None,
        }
