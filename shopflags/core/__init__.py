"""Evaluation core: hashing, conditions, flags and experiments."""

from shopflags.core.context import EvaluationContext, SessionContext, UserContext
from shopflags.core.errors import (
    AssignmentStoreError,
    ConfigurationError,
    ErrorCode,
    ShopflagsError,
)
from shopflags.core.experiments import ExperimentEngine, ExperimentResult
from shopflags.core.feature_flags import FeatureFlagEvaluator, FlagEvaluation
from shopflags.core.hashing import hash_string

__all__ = [
    "AssignmentStoreError",
    "ConfigurationError",
    "ErrorCode",
    "EvaluationContext",
    "ExperimentEngine",
    "ExperimentResult",
    "FeatureFlagEvaluator",
    "FlagEvaluation",
    "SessionContext",
    "ShopflagsError",
    "UserContext",
    "hash_string",
]
