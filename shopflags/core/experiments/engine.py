"""Experiment Engine.

Assigns identities to experiment variants:
- Activity window and status check
- Sticky assignment lookup
- Targeting rules
- Traffic allocation gating
- Weighted variant selection
- Best-effort persistence of new assignments
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from shopflags.core.context import EvaluationContext, utcnow
from shopflags.core.errors import AssignmentStoreError, ConfigurationError
from shopflags.core.experiments.models import (
    Assignment,
    Experiment,
    ExperimentReason,
    ExperimentResult,
    Targeting,
    Variant,
)
from shopflags.core.experiments.store import AssignmentStore
from shopflags.core.hashing import hash_string

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    return uuid.uuid4().hex


def _membership(allowed: Optional[List[str]], actual: Optional[str]) -> bool:
    # Unset rule, or nothing known about the caller: not checked.
    if allowed is None or not actual:
        return True
    return actual in allowed


class ExperimentEngine:
    """Holds an experiment registry and the sticky assignment map."""

    def __init__(
        self,
        experiments: Optional[Iterable[Experiment]] = None,
        store: Optional[AssignmentStore] = None,
    ):
        self.store = store
        self._lock = threading.RLock()
        self._experiments: Dict[str, Experiment] = {e.id: e for e in experiments or []}
        self._assignments: Dict[str, Assignment] = {}
        self._load_assignments()

    def _load_assignments(self) -> None:
        if self.store is None:
            return
        try:
            assignments = self.store.load()
        except AssignmentStoreError as e:
            logger.warning(f"Failed to load experiment assignments: {e}")
            return
        for assignment in assignments:
            self._assignments[assignment.key] = assignment
        logger.info(f"Loaded {len(assignments)} experiment assignments")

    def _save_assignment(self, assignment: Assignment) -> None:
        self._assignments[assignment.key] = assignment
        if self.store is None:
            return
        try:
            self.store.append(assignment)
        except AssignmentStoreError as e:
            logger.warning(
                f"Failed to persist assignment for '{assignment.experiment_id}': {e}",
                extra={"experiment_id": assignment.experiment_id},
            )

    def assign_variant(
        self, experiment_id: str, context: Optional[EvaluationContext] = None
    ) -> ExperimentResult:
        """Return the variant for this context, enrolling it if needed."""
        context = context or EvaluationContext()
        experiment = self._experiments.get(experiment_id)

        if experiment is None:
            return self._not_participant(experiment_id, ExperimentReason.NOT_FOUND)

        if not experiment.is_active(context.now()):
            return self._not_participant(experiment_id, ExperimentReason.NOT_ACTIVE)

        with self._lock:
            existing = self._find_assignment(experiment_id, context)
            if existing is not None:
                return ExperimentResult(
                    experiment_id=experiment_id,
                    variant_id=existing.variant_id,
                    is_participant=True,
                    reason=ExperimentReason.PREVIOUSLY_ASSIGNED,
                    assignment=existing,
                )

            if not self._meets_targeting(experiment.targeting, context):
                return self._not_participant(experiment_id, ExperimentReason.TARGETING_NOT_MET)

            if not self._in_traffic_allocation(experiment, context):
                return self._not_participant(experiment_id, ExperimentReason.NOT_IN_TRAFFIC)

            variant = self._select_variant(experiment.variants, context)
            if variant is None:
                return self._not_participant(experiment_id, ExperimentReason.NO_VARIANT)

            assignment = Assignment(
                experiment_id=experiment_id,
                variant_id=variant.id,
                assigned_at=utcnow(),
                user_id=context.user_id,
                session_id=context.session_id or generate_session_id(),
            )
            self._save_assignment(assignment)

        logger.info(
            f"Assigned '{context.identity}' to variant '{variant.id}' of '{experiment_id}'",
            extra={"experiment_id": experiment_id, "variant_id": variant.id},
        )
        return ExperimentResult(
            experiment_id=experiment_id,
            variant_id=variant.id,
            is_participant=True,
            reason=ExperimentReason.ASSIGNED,
            assignment=assignment,
        )

    def _not_participant(self, experiment_id: str, reason: ExperimentReason) -> ExperimentResult:
        logger.debug(
            f"'{experiment_id}': {reason.value}",
            extra={"experiment_id": experiment_id, "reason": reason.value},
        )
        return ExperimentResult(
            experiment_id=experiment_id,
            variant_id=None,
            is_participant=False,
            reason=reason,
        )

    def _find_assignment(
        self, experiment_id: str, context: EvaluationContext
    ) -> Optional[Assignment]:
        user_id = context.user_id
        session_id = context.session_id
        for assignment in self._assignments.values():
            if assignment.experiment_id != experiment_id:
                continue
            if user_id and assignment.user_id == user_id:
                return assignment
            if session_id and assignment.session_id == session_id:
                return assignment
        return None

    def _meets_targeting(self, targeting: Targeting, context: EvaluationContext) -> bool:
        user = context.user
        session = context.session

        checks = [
            (targeting.user_roles, user.role if user else None),
            (targeting.user_segments, user.segment if user else None),
            (targeting.geo_location, user.country if user else None),
            (targeting.device_types, session.device_type if session else None),
            (targeting.browsers, session.browser if session else None),
        ]
        if not all(_membership(allowed, actual) for allowed, actual in checks):
            return False

        return all(c.evaluate(context) for c in targeting.custom_conditions or [])

    def _in_traffic_allocation(self, experiment: Experiment, context: EvaluationContext) -> bool:
        if experiment.traffic_allocation >= 100:
            return True
        bucket = hash_string(f"{experiment.id}-{context.identity}")
        return bucket < experiment.traffic_allocation

    def _select_variant(
        self, variants: List[Variant], context: EvaluationContext
    ) -> Optional[Variant]:
        if not variants:
            return None

        # Seeded by identity alone so a user lands in the same bucket across experiments.
        bucket = hash_string(context.identity)
        total_weight = sum(v.weight for v in variants)
        target = (bucket % 100) * (total_weight / 100)

        cumulative = 0.0
        for variant in variants:
            cumulative += variant.weight
            if target <= cumulative:
                return variant

        return variants[-1]

    # Registry and assignment management

    def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        return self._experiments.get(experiment_id)

    def get_all_experiments(self) -> List[Experiment]:
        return list(self._experiments.values())

    def get_active_experiments(self, now: Optional[datetime] = None) -> List[Experiment]:
        now = now or utcnow()
        return [e for e in self._experiments.values() if e.is_active(now)]

    def add_experiment(self, experiment: Experiment) -> None:
        with self._lock:
            experiments = dict(self._experiments)
            experiments[experiment.id] = experiment
            self._experiments = experiments
        logger.info(f"Added experiment: {experiment.id}", extra={"experiment_id": experiment.id})

    def update_experiment(
        self, experiment_id: str, updates: Mapping[str, Any]
    ) -> Optional[Experiment]:
        """Shallow-merge ``updates`` into an existing experiment; no-op if missing.

        Existing assignments are untouched, so participants keep their variant
        even when weights or targeting change.
        """
        with self._lock:
            existing = self._experiments.get(experiment_id)
            if existing is None:
                return None
            try:
                updated = dataclasses.replace(existing, **dict(updates))
            except TypeError as e:
                raise ConfigurationError(
                    f"Invalid update for experiment '{experiment_id}': {e}"
                ) from e
            experiments = dict(self._experiments)
            experiments[experiment_id] = updated
            self._experiments = experiments

        logger.info(
            f"Updated experiment '{experiment_id}': {sorted(updates)}",
            extra={"experiment_id": experiment_id},
        )
        return updated

    def get_assignments(self) -> List[Assignment]:
        with self._lock:
            return list(self._assignments.values())

    def get_user_assignments(self, user_id: str) -> List[Assignment]:
        with self._lock:
            return [a for a in self._assignments.values() if a.user_id == user_id]

    def remove_assignment(
        self,
        experiment_id: str,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> int:
        """Drop matching assignments from memory; the durable store is not touched."""
        with self._lock:
            keys = [
                key
                for key, a in self._assignments.items()
                if a.experiment_id == experiment_id
                and (
                    (user_id and a.user_id == user_id)
                    or (session_id and a.session_id == session_id)
                )
            ]
            for key in keys:
                del self._assignments[key]

        if keys:
            logger.info(
                f"Removed {len(keys)} assignment(s) from '{experiment_id}'",
                extra={"experiment_id": experiment_id},
            )
        return len(keys)

    # Convenience lookups used by hosting layers

    def get_variant_config(
        self, experiment_id: str, context: Optional[EvaluationContext] = None
    ) -> Optional[Dict[str, Any]]:
        result = self.assign_variant(experiment_id, context)
        if not result.is_participant or result.variant_id is None:
            return None
        experiment = self._experiments.get(experiment_id)
        variant = experiment.get_variant(result.variant_id) if experiment else None
        return variant.config if variant else None

    def assign_variants(
        self, experiment_ids: Iterable[str], context: Optional[EvaluationContext] = None
    ) -> Dict[str, ExperimentResult]:
        return {eid: self.assign_variant(eid, context) for eid in experiment_ids}

    def assign_variant_if(
        self,
        experiment_id: str,
        context: Optional[EvaluationContext],
        condition: bool,
    ) -> ExperimentResult:
        """Assign only when the caller-side ``condition`` holds."""
        if not condition:
            return self._not_participant(experiment_id, ExperimentReason.CONDITION_NOT_MET)
        return self.assign_variant(experiment_id, context)
