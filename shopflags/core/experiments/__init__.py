"""Experiments Module.

Provides A/B(/n) testing capabilities:
- Experiment and variant definitions
- Deterministic, sticky variant assignment
- Pluggable assignment persistence
- Event tracking helpers
"""

from shopflags.core.experiments.models import (
    Assignment,
    Experiment,
    ExperimentReason,
    ExperimentResult,
    ExperimentStatus,
    Targeting,
    Variant,
)
from shopflags.core.experiments.store import (
    DEFAULT_STORAGE_KEY,
    AssignmentStore,
    FileAssignmentStore,
    InMemoryAssignmentStore,
    KeyValueAssignmentStore,
)
from shopflags.core.experiments.engine import ExperimentEngine, generate_session_id
from shopflags.core.experiments.tracking import ExperimentTracker

__all__ = [
    # Models
    "Assignment",
    "Experiment",
    "ExperimentReason",
    "ExperimentResult",
    "ExperimentStatus",
    "Targeting",
    "Variant",
    # Store
    "DEFAULT_STORAGE_KEY",
    "AssignmentStore",
    "FileAssignmentStore",
    "InMemoryAssignmentStore",
    "KeyValueAssignmentStore",
    # Engine
    "ExperimentEngine",
    "ExperimentTracker",
    "generate_session_id",
]
