"""
Confirmation session for nlsh.

A ``CommandSession`` owns one proposed command and moves through
AWAITING_DECISION, EDITING and EXPLAINING until the user accepts or cancels.
It consumes discrete events and never touches the terminal itself, so the
same machine runs against a real keyboard or a scripted list of events.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Iterator, List, Optional, Tuple, Union

from nlsh.core.llm import CommandSource, ProposedCommand
from nlsh.errors import EmptyEditError, ProviderError

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Where the session is"""
    AWAITING_DECISION = "awaiting_decision"
    EDITING = "editing"
    EXPLAINING = "explaining"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"


TERMINAL_STATES = (SessionState.ACCEPTED, SessionState.CANCELLED)


class Event(str, Enum):
    """Discrete user inputs"""
    ACCEPT = "accept"
    EDIT = "edit"
    EXPLAIN = "explain"
    CANCEL = "cancel"
    INTERRUPT = "interrupt"
    EDIT_CANCELLED = "edit_cancelled"


@dataclass(frozen=True)
class EditSubmitted:
    """The user confirmed an edit with this text"""
    text: str


SessionEvent = Union[Event, EditSubmitted]

FULL_DECISIONS: Tuple[Event, ...] = (Event.ACCEPT, Event.EXPLAIN, Event.EDIT, Event.CANCEL)
# offered for the one cycle right after an explanation was shown
AFTER_EXPLAIN_DECISIONS: Tuple[Event, ...] = (Event.ACCEPT, Event.EDIT, Event.CANCEL)

Explainer = Callable[[str], str]


class CommandSession:
    """State machine for accepting, editing or explaining one command"""

    def __init__(self, proposal: ProposedCommand, explainer: Explainer):
        if not proposal.raw.strip():
            raise ValueError("a session needs a non-empty command")
        self.proposal = proposal
        self.explainer = explainer
        self.state = SessionState.AWAITING_DECISION
        self.decisions: Tuple[Event, ...] = FULL_DECISIONS
        self.explanation: Optional[str] = None
        self.error: Optional[str] = None
        self.transitions: List[SessionState] = [self.state]

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def _enter(self, state: SessionState) -> SessionState:
        if state != self.state:
            logger.debug("session %s -> %s", self.state.value, state.value)
        self.state = state
        self.transitions.append(state)
        return state

    def handle(self, event: SessionEvent) -> SessionState:
        """Apply one event and return the resulting state"""
        if self.finished:
            return self.state

        if event is Event.INTERRUPT:
            return self._enter(SessionState.CANCELLED)

        if self.state == SessionState.AWAITING_DECISION:
            return self._decide(event)
        if self.state == SessionState.EDITING:
            return self._edit(event)
        return self.state

    def _decide(self, event: SessionEvent) -> SessionState:
        if not isinstance(event, Event) or event not in self.decisions:
            return self.state

        self.decisions = FULL_DECISIONS
        self.explanation = None
        self.error = None

        if event is Event.ACCEPT:
            return self._enter(SessionState.ACCEPTED)
        if event is Event.CANCEL:
            return self._enter(SessionState.CANCELLED)
        if event is Event.EDIT:
            return self._enter(SessionState.EDITING)
        return self._explain()

    def _edit(self, event: SessionEvent) -> SessionState:
        if event is Event.EDIT_CANCELLED:
            self.error = None
            return self._enter(SessionState.AWAITING_DECISION)
        if not isinstance(event, EditSubmitted):
            return self.state

        try:
            self.proposal = self._apply_edit(event.text)
        except EmptyEditError as e:
            self.error = str(e)
            return self._enter(SessionState.EDITING)

        self.error = None
        return self._enter(SessionState.AWAITING_DECISION)

    @staticmethod
    def _apply_edit(text: str) -> ProposedCommand:
        command = text.strip()
        if not command:
            raise EmptyEditError("command cannot be empty")
        return ProposedCommand(raw=command, source=CommandSource.edited)

    def _explain(self) -> SessionState:
        self._enter(SessionState.EXPLAINING)
        try:
            explanation = self.explainer(self.proposal.raw)
        except KeyboardInterrupt:
            return self._enter(SessionState.CANCELLED)
        except ProviderError as e:
            logger.warning("explain failed: %s", e)
            self.error = str(e)
            return self._enter(SessionState.AWAITING_DECISION)

        self.explanation = explanation
        self.decisions = AFTER_EXPLAIN_DECISIONS
        return self._enter(SessionState.AWAITING_DECISION)


class ScriptedEvents:
    """Event source that replays a fixed sequence; running out acts like Ctrl-C"""

    def __init__(self, events: Iterable[SessionEvent]):
        self._events: Iterator[SessionEvent] = iter(events)
        self.seen: List[Tuple[SessionState, SessionEvent]] = []

    def next_event(self, session: CommandSession) -> SessionEvent:
        event = next(self._events, Event.INTERRUPT)
        self.seen.append((session.state, event))
        return event


def drive(session: CommandSession, source) -> CommandSession:
    """
    Feed events from ``source`` until the session finishes.

    ``source`` is anything with ``next_event(session)``. A KeyboardInterrupt
    while waiting for input becomes an INTERRUPT event.
    """
    while not session.finished:
        try:
            event = source.next_event(session)
        except KeyboardInterrupt:
            event = Event.INTERRUPT
        session.handle(event)
    return session
