"""Feature flag endpoints."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from shopflags.api.dependencies import get_api_key, get_app_settings, get_flag_evaluator
from shopflags.api.v1.schemas import ContextModel
from shopflags.core.config import Settings
from shopflags.core.feature_flags import FeatureFlagEvaluator

logger = logging.getLogger(__name__)
router = APIRouter()


class FlagListResponse(BaseModel):
    total: int
    flags: List[Dict[str, Any]]


class FlagEvaluationResponse(BaseModel):
    flag_key: str
    enabled: bool
    reason: str
    metadata: Optional[Dict[str, Any]] = Field(None, description="Rollout details")


@router.get("", response_model=FlagListResponse)
async def list_flags(
    evaluator: FeatureFlagEvaluator = Depends(get_flag_evaluator),
    api_key: str = Depends(get_api_key),
):
    flags = [flag.to_dict() for flag in evaluator.get_all_flags()]
    return FlagListResponse(total=len(flags), flags=flags)


@router.post("/{flag_key}/evaluate", response_model=FlagEvaluationResponse)
async def evaluate_flag(
    flag_key: str,
    payload: ContextModel,
    evaluator: FeatureFlagEvaluator = Depends(get_flag_evaluator),
    settings: Settings = Depends(get_app_settings),
    api_key: str = Depends(get_api_key),
):
    """Evaluate one flag; unknown flags come back disabled with a reason."""
    context = payload.to_context(settings.ENVIRONMENT)
    result = evaluator.evaluate(flag_key, context)
    return FlagEvaluationResponse(**result.to_dict())
