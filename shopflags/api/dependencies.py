"""Shared API dependencies."""

from fastapi import Header, HTTPException, Request

from shopflags.core.config import Settings
from shopflags.core.experiments import ExperimentEngine, ExperimentTracker
from shopflags.core.feature_flags import FeatureFlagEvaluator


async def get_api_key(
    request: Request,
    x_api_key: str = Header(default="", alias="X-API-Key"),
) -> str:
    expected = get_app_settings(request).API_KEY
    if not expected:
        return x_api_key
    if not x_api_key:
        raise HTTPException(status_code=401, detail="Missing API Key")
    if x_api_key != expected:
        raise HTTPException(status_code=403, detail="Invalid API Key")
    return x_api_key


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_flag_evaluator(request: Request) -> FeatureFlagEvaluator:
    return request.app.state.flag_evaluator


def get_experiment_engine(request: Request) -> ExperimentEngine:
    return request.app.state.experiment_engine


def get_experiment_tracker(request: Request) -> ExperimentTracker:
    return request.app.state.experiment_tracker
