"""Evaluation context shared by flag evaluation and experiment assignment.

The context is built by the calling layer for every evaluation call and is
never retained by the evaluators.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, Union

DateLike = Union[datetime, date, str]

ANONYMOUS_IDENTITY = "anonymous"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Optional[DateLike]) -> Optional[datetime]:
    """Coerce a datetime, date or ISO-8601 string into an aware UTC datetime.

    Naive values are interpreted as UTC. Raises ``ValueError`` for strings
    that are not ISO-8601.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported date value: {value!r}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class UserContext:
    """The current user, as known to the auth layer."""

    id: str
    role: Optional[str] = None
    segment: Optional[str] = None
    country: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.attributes)
        data.update(
            {
                "id": self.id,
                "role": self.role,
                "segment": self.segment,
                "country": self.country,
            }
        )
        return data


@dataclass
class SessionContext:
    """The current browsing session."""

    id: str
    device_type: Optional[str] = None  # desktop|mobile|tablet
    browser: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.attributes)
        data.update(
            {
                "id": self.id,
                "device_type": self.device_type,
                "browser": self.browser,
            }
        )
        return data


@dataclass
class EvaluationContext:
    """Who is asking, from where, and when."""

    user: Optional[UserContext] = None
    session: Optional[SessionContext] = None
    environment: Optional[str] = None
    current_date: Optional[datetime] = None
    custom_properties: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.current_date is not None:
            self.current_date = parse_datetime(self.current_date)

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user else None

    @property
    def session_id(self) -> Optional[str]:
        return self.session.id if self.session else None

    @property
    def identity(self) -> str:
        """Identity used for bucketing: user id, then session id, then anonymous."""
        return self.user_id or self.session_id or ANONYMOUS_IDENTITY

    def now(self) -> datetime:
        return self.current_date or utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user": self.user.to_dict() if self.user else None,
            "session": self.session.to_dict() if self.session else None,
            "environment": self.environment,
            "current_date": self.current_date,
            "custom_properties": dict(self.custom_properties),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvaluationContext":
        """Build a context from a plain mapping (API payloads, CLI arguments)."""
        user = None
        user_data = data.get("user")
        if user_data and user_data.get("id") is not None:
            user_data = dict(user_data)
            user = UserContext(
                id=str(user_data.pop("id")),
                role=user_data.pop("role", None),
                segment=user_data.pop("segment", None),
                country=user_data.pop("country", None),
                attributes=user_data.pop("attributes", None) or user_data,
            )

        session = None
        session_data = data.get("session")
        if session_data and session_data.get("id") is not None:
            session_data = dict(session_data)
            session = SessionContext(
                id=str(session_data.pop("id")),
                device_type=session_data.pop("device_type", None),
                browser=session_data.pop("browser", None),
                attributes=session_data.pop("attributes", None) or session_data,
            )

        return cls(
            user=user,
            session=session,
            environment=data.get("environment"),
            current_date=data.get("current_date"),
            custom_properties=dict(data.get("custom_properties") or {}),
        )


__all__ = [
    "ANONYMOUS_IDENTITY",
    "DateLike",
    "EvaluationContext",
    "SessionContext",
    "UserContext",
    "parse_datetime",
    "utcnow",
]
