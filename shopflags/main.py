"""
shopflags - evaluation service entry point
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shopflags import __version__
from shopflags.api import api_router
from shopflags.core.bootstrap import build_evaluators
from shopflags.core.config import Settings, get_settings
from shopflags.core.experiments import ExperimentEngine, ExperimentTracker
from shopflags.core.feature_flags import FeatureFlagEvaluator
from shopflags.utils.logging import setup_logging

logger = logging.getLogger(__name__)
analytics_logger = logging.getLogger("shopflags.analytics")


def log_tracking_event(event_name: str, properties: Dict[str, Any]) -> None:
    """Default tracking sink: one INFO line per event."""
    analytics_logger.info(
        f"{event_name} {properties}",
        extra={"experiment_id": properties.get("experiment_id")},
    )


def create_app(
    settings: Optional[Settings] = None,
    flag_evaluator: Optional[FeatureFlagEvaluator] = None,
    experiment_engine: Optional[ExperimentEngine] = None,
    tracker: Optional[ExperimentTracker] = None,
    configure_logging: bool = False,
) -> FastAPI:
    """Create the API app around explicit evaluator/engine instances."""
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings.LOG_LEVEL)

    if flag_evaluator is None or experiment_engine is None:
        built_evaluator, built_engine = build_evaluators(settings)
        flag_evaluator = flag_evaluator or built_evaluator
        experiment_engine = experiment_engine or built_engine

    app = FastAPI(
        title="shopflags",
        description="Feature flag and experiment evaluation service",
        version=__version__,
    )
    app.state.settings = settings
    app.state.flag_evaluator = flag_evaluator
    app.state.experiment_engine = experiment_engine
    app.state.experiment_tracker = tracker or ExperimentTracker(log_tracking_event)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api")

    @app.get("/health")
    async def health():
        state = app.state
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "flags": len(state.flag_evaluator.get_all_flags()),
            "experiments": len(state.experiment_engine.get_all_experiments()),
        }

    logger.info(f"shopflags API ready (environment={settings.ENVIRONMENT})")
    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    app = create_app(settings, configure_logging=True)
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
