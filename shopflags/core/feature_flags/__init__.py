"""Feature flag evaluation.

Provides:
- Flag definitions with conditions, date windows and rollout
- Ordered evaluation with an explicit reason per outcome
- Registry management (add/remove/update)
"""

from shopflags.core.feature_flags.flag import (
    FeatureFlag,
    FlagCondition,
    FlagConditionType,
    FlagEvaluation,
    FlagReason,
)
from shopflags.core.feature_flags.evaluator import FeatureFlagEvaluator

__all__ = [
    "FeatureFlag",
    "FeatureFlagEvaluator",
    "FlagCondition",
    "FlagConditionType",
    "FlagEvaluation",
    "FlagReason",
]
