"""Experiment assignment endpoints."""

import logging
from functools import partial
from typing import Any, Dict, List, Optional

import anyio
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from shopflags.api.dependencies import (
    get_api_key,
    get_app_settings,
    get_experiment_engine,
    get_experiment_tracker,
)
from shopflags.api.v1.schemas import ContextModel
from shopflags.core.config import Settings
from shopflags.core.experiments import ExperimentEngine, ExperimentTracker

logger = logging.getLogger(__name__)
router = APIRouter()


class ExperimentListResponse(BaseModel):
    total: int
    experiments: List[Dict[str, Any]]


class AssignRequest(ContextModel):
    track_view: bool = Field(False, description="Report an experiment.view event when enrolled")


class ExperimentResultResponse(BaseModel):
    experiment_id: str
    variant_id: Optional[str] = None
    is_participant: bool
    reason: str
    assignment: Optional[Dict[str, Any]] = None
    config: Optional[Dict[str, Any]] = Field(None, description="Assigned variant payload")


class AssignmentListResponse(BaseModel):
    user_id: str
    assignments: List[Dict[str, Any]]


class RemoveAssignmentResponse(BaseModel):
    experiment_id: str
    removed: int


@router.get("", response_model=ExperimentListResponse)
async def list_experiments(
    active_only: bool = False,
    engine: ExperimentEngine = Depends(get_experiment_engine),
    api_key: str = Depends(get_api_key),
):
    experiments = engine.get_active_experiments() if active_only else engine.get_all_experiments()
    data = [e.to_dict() for e in experiments]
    return ExperimentListResponse(total=len(data), experiments=data)


@router.post("/{experiment_id}/assign", response_model=ExperimentResultResponse)
async def assign_variant(
    experiment_id: str,
    payload: AssignRequest,
    engine: ExperimentEngine = Depends(get_experiment_engine),
    tracker: ExperimentTracker = Depends(get_experiment_tracker),
    settings: Settings = Depends(get_app_settings),
    api_key: str = Depends(get_api_key),
):
    context = payload.to_context(settings.ENVIRONMENT)
    # store writes happen under the engine lock; keep them off the event loop
    result = await anyio.to_thread.run_sync(engine.assign_variant, experiment_id, context)

    config = None
    if result.is_participant and result.variant_id is not None:
        experiment = engine.get_experiment(experiment_id)
        variant = experiment.get_variant(result.variant_id) if experiment else None
        config = variant.config if variant else None
        if payload.track_view:
            await anyio.to_thread.run_sync(tracker.track_view, result)

    return ExperimentResultResponse(config=config, **result.to_dict())


@router.get("/assignments/{user_id}", response_model=AssignmentListResponse)
async def user_assignments(
    user_id: str,
    engine: ExperimentEngine = Depends(get_experiment_engine),
    api_key: str = Depends(get_api_key),
):
    found = await anyio.to_thread.run_sync(engine.get_user_assignments, user_id)
    assignments = [a.to_dict() for a in found]
    return AssignmentListResponse(user_id=user_id, assignments=assignments)


@router.delete("/{experiment_id}/assignments", response_model=RemoveAssignmentResponse)
async def remove_assignment(
    experiment_id: str,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    engine: ExperimentEngine = Depends(get_experiment_engine),
    api_key: str = Depends(get_api_key),
):
    removed = await anyio.to_thread.run_sync(
        partial(engine.remove_assignment, experiment_id, user_id=user_id, session_id=session_id)
    )
    return RemoveAssignmentResponse(experiment_id=experiment_id, removed=removed)
