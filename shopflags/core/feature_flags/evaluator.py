"""Feature flag evaluation.

Evaluation order is fixed and callers rely on the ``reason`` to tell failure
causes apart:

1. unknown key
2. flag switched off
3. outside ``start_date`` / ``end_date``
4. any condition failing (all must hold)
5. outside the rollout percentage
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional

from shopflags.core.conditions import evaluate_date_condition, evaluate_operator
from shopflags.core.context import ANONYMOUS_IDENTITY, EvaluationContext
from shopflags.core.errors import ConfigurationError
from shopflags.core.feature_flags.flag import (
    FeatureFlag,
    FlagCondition,
    FlagConditionType,
    FlagEvaluation,
    FlagReason,
)
from shopflags.core.hashing import hash_string

logger = logging.getLogger(__name__)


class FeatureFlagEvaluator:
    """Holds a flag registry and evaluates flags against a context."""

    def __init__(
        self,
        flags: Optional[Iterable[FeatureFlag]] = None,
        environment: Optional[str] = None,
    ):
        """
        Args:
            flags: Initial flag definitions; later keys replace earlier ones.
            environment: Fallback for ``environment`` conditions when the
                context does not carry one.
        """
        self.environment = environment
        self._lock = threading.RLock()
        self._flags: Dict[str, FeatureFlag] = {flag.key: flag for flag in flags or []}

    def evaluate(
        self, flag_key: str, context: Optional[EvaluationContext] = None
    ) -> FlagEvaluation:
        context = context or EvaluationContext()
        flag = self._flags.get(flag_key)

        if flag is None:
            result = FlagEvaluation(flag_key, False, FlagReason.NOT_FOUND)
        elif not flag.enabled:
            result = FlagEvaluation(flag_key, False, FlagReason.DISABLED)
        elif not self._within_date_range(flag, context):
            result = FlagEvaluation(flag_key, False, FlagReason.OUTSIDE_DATE_RANGE)
        elif not all(self._evaluate_condition(c, context) for c in flag.conditions):
            result = FlagEvaluation(flag_key, False, FlagReason.CONDITIONS_NOT_MET)
        else:
            result = self._apply_rollout(flag, context)

        logger.debug(
            f"Evaluated flag '{flag_key}': enabled={result.enabled} ({result.reason.value})",
            extra={"flag_key": flag_key, "reason": result.reason.value},
        )
        return result

    def is_enabled(self, flag_key: str, context: Optional[EvaluationContext] = None) -> bool:
        return self.evaluate(flag_key, context).enabled

    def is_enabled_with_fallback(
        self,
        flag_key: str,
        context: Optional[EvaluationContext] = None,
        fallback: bool = False,
    ) -> bool:
        """Like ``is_enabled`` but returns ``fallback`` for unknown flags."""
        result = self.evaluate(flag_key, context)
        if result.reason is FlagReason.NOT_FOUND:
            return fallback
        return result.enabled

    def evaluate_many(
        self, flag_keys: Iterable[str], context: Optional[EvaluationContext] = None
    ) -> Dict[str, bool]:
        return {key: self.evaluate(key, context).enabled for key in flag_keys}

    def _within_date_range(self, flag: FeatureFlag, context: EvaluationContext) -> bool:
        now = context.now()
        if flag.start_date and now < flag.start_date:
            return False
        if flag.end_date and now > flag.end_date:
            return False
        return True

    def _evaluate_condition(self, condition: FlagCondition, context: EvaluationContext) -> bool:
        cond_type = condition.type
        user = context.user

        if cond_type == FlagConditionType.USER_ROLE:
            actual = user.role if user else None
        elif cond_type == FlagConditionType.USER_ID:
            actual = user.id if user else None
        elif cond_type == FlagConditionType.ENVIRONMENT:
            actual = context.environment or self.environment
        elif cond_type == FlagConditionType.COUNTRY:
            actual = user.country if user else None
        elif cond_type == FlagConditionType.DATE_RANGE:
            return evaluate_date_condition(condition.operator, context.now(), condition.value)
        else:
            return False

        return evaluate_operator(condition.operator, actual, condition.value)

    def _apply_rollout(self, flag: FeatureFlag, context: EvaluationContext) -> FlagEvaluation:
        if flag.rollout is not None and flag.rollout < 100:
            user_hash = hash_string(context.user_id or ANONYMOUS_IDENTITY)
            if user_hash >= flag.rollout:
                return FlagEvaluation(
                    flag.key,
                    False,
                    FlagReason.OUTSIDE_ROLLOUT,
                    metadata={"rollout": flag.rollout, "user_hash": user_hash},
                )

        return FlagEvaluation(
            flag.key,
            True,
            FlagReason.ENABLED,
            metadata={"rollout": flag.rollout, "conditions": len(flag.conditions)},
        )

    # Registry management

    def get_flag(self, flag_key: str) -> Optional[FeatureFlag]:
        return self._flags.get(flag_key)

    def get_all_flags(self) -> List[FeatureFlag]:
        return list(self._flags.values())

    def add_flag(self, flag: FeatureFlag) -> None:
        with self._lock:
            flags = dict(self._flags)
            flags[flag.key] = flag
            self._flags = flags
        logger.info(f"Added feature flag: {flag.key}", extra={"flag_key": flag.key})

    def remove_flag(self, flag_key: str) -> bool:
        with self._lock:
            if flag_key not in self._flags:
                return False
            flags = dict(self._flags)
            del flags[flag_key]
            self._flags = flags
        logger.info(f"Removed feature flag: {flag_key}", extra={"flag_key": flag_key})
        return True

    def update_flag(self, flag_key: str, updates: Mapping[str, Any]) -> Optional[FeatureFlag]:
        """Shallow-merge ``updates`` into an existing flag; no-op if missing."""
        with self._lock:
            existing = self._flags.get(flag_key)
            if existing is None:
                return None
            try:
                updated = dataclasses.replace(existing, **dict(updates))
            except TypeError as e:
                raise ConfigurationError(f"Invalid update for flag '{flag_key}': {e}") from e
            flags = dict(self._flags)
            flags[flag_key] = updated
            self._flags = flags

        logger.info(
            f"Updated feature flag '{flag_key}': {sorted(updates)}",
            extra={"flag_key": flag_key},
        )
        return updated
