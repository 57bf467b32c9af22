"""
dirauth State Machine Base

Table-driven state machine used to sequence one login attempt.

Every event is looked up in a (state, event type) table that yields the
next state and a pure context updater. Registered invariants are checked
against the candidate state before it is committed, and each committed
step is appended to an audit trace.

Trace snapshots only include public fields shown in repr, so anything
declared with ``repr=False`` (passwords, raw diagnostics) stays out.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Tuple, TypeVar

import attrs
import structlog
from returns.result import Failure, Result, Success

from dirauth.core.exceptions import InvariantViolation

logger = structlog.get_logger()


S = TypeVar("S", bound=Enum)  # State type
E = TypeVar("E")  # Event type
C = TypeVar("C")  # Context type

InvariantFn = Callable[[Any, Any], bool]
TransitionEntry = Tuple[Any, Callable[[Any, Any], Any]]


def _traceable(attribute: attrs.Attribute, value: Any) -> bool:
    return attribute.repr and not attribute.name.startswith("_")


def _plain(inst: Any, attribute: Any, value: Any) -> Any:
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, tuple):
        return list(value)
    return value


def snapshot(obj: Any) -> Dict[str, Any]:
    """JSON-ready view of an attrs instance, without hidden fields."""
    if not attrs.has(type(obj)):
        return {"type": type(obj).__name__}
    return attrs.asdict(obj, filter=_traceable, value_serializer=_plain)


@attrs.define(frozen=True, slots=True)
class Transition(Generic[S]):
    """One committed step of a state machine."""

    from_state: S
    event_type: str
    to_state: S
    timestamp: datetime = attrs.Factory(lambda: datetime.now(timezone.utc))
    context_snapshot: Dict[str, Any] = attrs.Factory(dict)
    event_data: Dict[str, Any] = attrs.Factory(dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_state": self.from_state.name,
            "event_type": self.event_type,
            "to_state": self.to_state.name,
            "timestamp": self.timestamp.isoformat(),
            "context_snapshot": self.context_snapshot,
            "event_data": self.event_data,
        }


@attrs.define
class StateMachineBase(ABC, Generic[S, E, C]):
    """
    Base class for table-driven state machines.

    Subclasses provide ``initial_state`` and ``transition_table``; handlers
    in the table are pure functions (event, context) -> new context.

    Example:
        class DoorMachine(StateMachineBase[Door, Any, DoorContext]):
            def initial_state(self) -> Door:
                return Door.CLOSED

            def transition_table(self):
                return {(Door.CLOSED, Opened): (Door.OPEN, self._on_open)}
    """

    _state: S = attrs.field(alias="_state")
    _context: C = attrs.field(alias="_context")
    _history: List[Transition[S]] = attrs.field(factory=list, alias="_history")
    _invariants: List[Tuple[str, InvariantFn]] = attrs.field(factory=list, alias="_invariants")
    _logger: Any = attrs.field(factory=lambda: structlog.get_logger(), alias="_logger")

    @abstractmethod
    def initial_state(self) -> S:
        ...

    @abstractmethod
    def transition_table(self) -> Dict[Tuple[S, type], TransitionEntry]:
        """Map (state, event type) to (next state, context updater)."""
        ...

    @property
    def state(self) -> S:
        return self._state

    @property
    def context(self) -> C:
        return self._context

    def add_invariant(self, name: str, invariant: InvariantFn) -> None:
        """Register a predicate (state, context) -> bool checked on every step."""
        self._invariants.append((name, invariant))

    def process_event(self, event: E) -> Result[S, str]:
        """
        Apply an event.

        Returns:
            Success(new_state) once the step is committed
            Failure(reason) if the table has no entry or the handler raised

        Raises:
            InvariantViolation: If the candidate state breaks an invariant;
            the machine keeps its previous state
        """
        event_name = type(event).__name__
        entry = self.transition_table().get((self._state, type(event)))
        if entry is None:
            self._logger.warning(
                "invalid_transition",
                current_state=self._state.name,
                event_type=event_name,
            )
            return Failure(f"No transition from {self._state.name} on {event_name}")

        next_state, update = entry
        try:
            next_context = update(event, self._context)
        except Exception as e:
            self._logger.error(
                "context_update_failed",
                current_state=self._state.name,
                event_type=event_name,
                error=str(e),
            )
            return Failure(f"Context update failed: {e}")

        self._check_invariants(next_state, next_context)

        self._history.append(
            Transition(
                from_state=self._state,
                event_type=event_name,
                to_state=next_state,
                context_snapshot=snapshot(next_context),
                event_data=snapshot(event),
            )
        )
        self._logger.info(
            "state_transition",
            from_state=self._state.name,
            to_state=next_state.name,
            event_type=event_name,
        )
        self._state, self._context = next_state, next_context
        return Success(next_state)

    def get_trace(self) -> List[Transition[S]]:
        return list(self._history)

    def export_trace_json(self) -> str:
        """Trace as JSON: initial and final state plus every transition."""
        return json.dumps(
            {
                "initial_state": self.initial_state().name,
                "final_state": self._state.name,
                "transitions": [t.to_dict() for t in self._history],
            },
            indent=2,
        )

    def _check_invariants(self, state: S, context: C) -> None:
        for name, invariant in self._invariants:
            if not invariant(state, context):
                self._logger.error(
                    "invariant_violated",
                    invariant=name,
                    from_state=self._state.name,
                    to_state=state.name,
                )
                raise InvariantViolation(f"Invariant '{name}' violated")
