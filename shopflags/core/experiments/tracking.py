"""Experiment event tracking helpers for hosting layers.

The engine never emits events itself; the host wires an ``ExperimentTracker``
to its analytics callback and reports views, conversions and goals.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from shopflags.core.experiments.models import ExperimentResult

logger = logging.getLogger(__name__)

TrackCallback = Callable[[str, Dict[str, Any]], None]


class ExperimentTracker:
    """Forwards ``experiment.<event>`` events to a host callback."""

    def __init__(self, track_event: Optional[TrackCallback] = None):
        self._track_event = track_event

    def track_event(
        self,
        experiment_id: str,
        event_name: str,
        properties: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Emit one event. Returns False when no callback is set or it failed."""
        if self._track_event is None:
            return False

        payload: Dict[str, Any] = {"experiment_id": experiment_id}
        payload.update(properties or {})
        try:
            self._track_event(f"experiment.{event_name}", payload)
        except Exception as e:
            logger.error(
                f"Tracking callback failed for '{experiment_id}' ({event_name}): {e}",
                extra={"experiment_id": experiment_id},
            )
            return False
        return True

    def track_view(self, result: ExperimentResult) -> bool:
        if not result.is_participant:
            return False
        return self.track_event(
            result.experiment_id,
            "view",
            {"variant_id": result.variant_id},
        )

    def track_conversion(
        self,
        experiment_id: str,
        conversion_type: str,
        value: Optional[float] = None,
    ) -> bool:
        return self.track_event(
            experiment_id,
            "conversion",
            {"conversion_type": conversion_type, "value": value},
        )

    def track_goal(self, experiment_id: str, goal_name: str, goal_value: Any = None) -> bool:
        return self.track_event(
            experiment_id,
            "goal",
            {"goal_name": goal_name, "goal_value": goal_value},
        )
