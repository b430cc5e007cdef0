"""Deterministic stage state machine.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- Prerequisites checked before RUNNING
- Cascade blocking of every downstream stage on failure
- Every transition recorded in the run's audit trail
"""

from __future__ import annotations

import logging

from envoyforge.core.prerequisite_graph import PrerequisiteGraph, PrerequisiteNotMetError
from envoyforge.models.stages import (
    VALID_TRANSITIONS,
    StageState,
    StageTransition,
)

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class StageMachine:
    """Tracks the state of every stage of a single run."""

    def __init__(self, graph: PrerequisiteGraph) -> None:
        self._graph = graph
        self._states: dict[str, StageState] = {
            sid: StageState.NOT_STARTED for sid in graph.stage_ids
        }
        self._transitions: list[StageTransition] = []

    @property
    def transitions(self) -> list[StageTransition]:
        return list(self._transitions)

    def get_current_state(self, stage_id: str) -> StageState:
        return self._states[stage_id]

    def get_all_states(self) -> dict[str, StageState]:
        return dict(self._states)

    def transition(
        self,
        stage_id: str,
        target_state: StageState,
        *,
        reason: str | None = None,
    ) -> StageTransition:
        """Move a stage to ``target_state``.

        Entering RUNNING requires every prerequisite to have PASSED.
        Entering FAILED blocks every transitive dependent.
        """
        current = self._states[stage_id]
        allowed = VALID_TRANSITIONS.get(current, set())
        if target_state not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition {stage_id} from {current.value} to {target_state.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )

        if target_state == StageState.RUNNING and not self._graph.are_prerequisites_met(
            stage_id, self._states
        ):
            reasons = self._graph.get_blocking_reasons(stage_id, self._states)
            raise PrerequisiteNotMetError(
                f"Cannot start {stage_id}: prerequisites not met. "
                f"Blocked by: {'; '.join(reasons)}"
            )

        record = self._record(stage_id, current, target_state, reason)

        if target_state == StageState.FAILED:
            for blocked_id in self._graph.cascade_block(stage_id):
                if self._states[blocked_id] == StageState.NOT_STARTED:
                    self._record(
                        blocked_id,
                        StageState.NOT_STARTED,
                        StageState.BLOCKED,
                        f"upstream stage {stage_id} failed",
                    )

        return record

    def can_start(self, stage_id: str) -> tuple[bool, list[str]]:
        """Check if a stage can transition to RUNNING.

        Returns (can_start, blocking_reasons).
        """
        current = self._states[stage_id]
        if current != StageState.NOT_STARTED:
            return False, [f"Stage is currently {current.value}, not not_started"]
        reasons = self._graph.get_blocking_reasons(stage_id, self._states)
        return not reasons, reasons

    def _record(
        self,
        stage_id: str,
        from_state: StageState,
        to_state: StageState,
        reason: str | None,
    ) -> StageTransition:
        record = StageTransition(
            stage_id=stage_id,
            from_state=from_state,
            to_state=to_state,
            reason=reason,
        )
        self._states[stage_id] = to_state
        self._transitions.append(record)
        logger.debug("%s: %s -> %s", stage_id, from_state.value, to_state.value)
        return record
