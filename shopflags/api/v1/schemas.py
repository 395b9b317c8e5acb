"""Request models shared by the v1 routers."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from shopflags.core.context import EvaluationContext, SessionContext, UserContext


class UserModel(BaseModel):
    id: str = Field(..., description="User id")
    role: Optional[str] = Field(None, description="User role, e.g. admin/user/premium")
    segment: Optional[str] = Field(None, description="Marketing segment")
    country: Optional[str] = Field(None, description="ISO country code")
    attributes: Dict[str, Any] = Field(default_factory=dict, description="Extra user fields")


class SessionModel(BaseModel):
    id: str = Field(..., description="Session id")
    device_type: Optional[str] = Field(None, description="desktop/mobile/tablet")
    browser: Optional[str] = Field(None, description="Browser name")
    attributes: Dict[str, Any] = Field(default_factory=dict, description="Extra session fields")


class ContextModel(BaseModel):
    user: Optional[UserModel] = None
    session: Optional[SessionModel] = None
    environment: Optional[str] = Field(None, description="Defaults to the service environment")
    current_date: Optional[datetime] = Field(None, description="Evaluation time; defaults to now")
    custom_properties: Dict[str, Any] = Field(default_factory=dict)

    def to_context(self, default_environment: Optional[str] = None) -> EvaluationContext:
        user = None
        if self.user is not None:
            user = UserContext(
                id=self.user.id,
                role=self.user.role,
                segment=self.user.segment,
                country=self.user.country,
                attributes=dict(self.user.attributes),
            )
        session = None
        if self.session is not None:
            session = SessionContext(
                id=self.session.id,
                device_type=self.session.device_type,
                browser=self.session.browser,
                attributes=dict(self.session.attributes),
            )
        return EvaluationContext(
            user=user,
            session=session,
            environment=self.environment or default_environment,
            current_date=self.current_date,
            custom_properties=dict(self.custom_properties),
        )
