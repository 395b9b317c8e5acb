"""Build evaluator, engine and assignment store from settings."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from shopflags.core.catalog import get_all_experiments, get_all_feature_flags, load_catalog
from shopflags.core.config import Settings, get_settings
from shopflags.core.errors import ConfigurationError
from shopflags.core.experiments import (
    AssignmentStore,
    Experiment,
    ExperimentEngine,
    FileAssignmentStore,
    InMemoryAssignmentStore,
    KeyValueAssignmentStore,
)
from shopflags.core.feature_flags import FeatureFlag, FeatureFlagEvaluator

logger = logging.getLogger(__name__)

STORE_BACKENDS = ("memory", "file", "redis", "none")


def build_assignment_store(settings: Optional[Settings] = None) -> Optional[AssignmentStore]:
    settings = settings or get_settings()
    backend = settings.ASSIGNMENT_STORE_BACKEND.lower()

    if backend == "none":
        return None
    if backend == "memory":
        return InMemoryAssignmentStore()
    if backend == "file":
        return FileAssignmentStore(settings.ASSIGNMENT_STORE_PATH, settings.ASSIGNMENT_STORAGE_KEY)
    if backend == "redis":
        import redis

        client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
        return KeyValueAssignmentStore(client, settings.ASSIGNMENT_STORAGE_KEY)

    raise ConfigurationError(
        f"Unknown ASSIGNMENT_STORE_BACKEND {backend!r}; expected one of {STORE_BACKENDS}"
    )


def load_definitions(
    settings: Optional[Settings] = None,
) -> Tuple[List[FeatureFlag], List[Experiment]]:
    """Flags and experiments from ``CATALOG_PATH``, else the built-in catalog."""
    settings = settings or get_settings()
    if settings.CATALOG_PATH:
        catalog = load_catalog(settings.CATALOG_PATH)
        return catalog.flags, catalog.experiments
    return (
        get_all_feature_flags(settings.ENVIRONMENT),
        get_all_experiments(settings.ENVIRONMENT),
    )


def build_evaluators(
    settings: Optional[Settings] = None,
) -> Tuple[FeatureFlagEvaluator, ExperimentEngine]:
    settings = settings or get_settings()
    flags, experiments = load_definitions(settings)
    evaluator = FeatureFlagEvaluator(flags, environment=settings.ENVIRONMENT)
    engine = ExperimentEngine(experiments, store=build_assignment_store(settings))
    logger.info(
        f"Bootstrapped {len(flags)} flags and {len(experiments)} experiments "
        f"(environment={settings.ENVIRONMENT}, store={settings.ASSIGNMENT_STORE_BACKEND})",
        extra={"store": settings.ASSIGNMENT_STORE_BACKEND},
    )
    return evaluator, engine
