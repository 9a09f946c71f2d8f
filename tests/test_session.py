"""Tests for the confirmation session and its keyboard front end."""

from typing import List

import pytest
from prompt_toolkit.history import InMemoryHistory

from nlsh.core import terminal
from nlsh.core.llm import CommandSource, ProposedCommand
from nlsh.core.session import (
    AFTER_EXPLAIN_DECISIONS,
    FULL_DECISIONS,
    CommandSession,
    EditSubmitted,
    Event,
    ScriptedEvents,
    SessionState,
    drive,
)
from nlsh.core.terminal import TerminalEvents, style_explanation
from nlsh.errors import NetworkError

AWAITING = SessionState.AWAITING_DECISION


class FakeExplainer:
    """Explainer that answers from a list, raising any exception it finds there."""

    def __init__(self, *answers):
        self.answers = list(answers) or ["Shows disk usage in human-readable units."]
        self.calls: List[str] = []

    def __call__(self, command: str) -> str:
        self.calls.append(command)
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, BaseException):
            raise answer
        return answer


def make_session(command: str = "df -h", explainer=None) -> CommandSession:
    return CommandSession(ProposedCommand(command), explainer or FakeExplainer())


def run(session: CommandSession, *events) -> CommandSession:
    return drive(session, ScriptedEvents(events))


class TestDecisions:

    def test_accept(self):
        session = run(make_session(), Event.ACCEPT)
        assert session.state == SessionState.ACCEPTED
        assert session.transitions == [AWAITING, SessionState.ACCEPTED]
        assert session.proposal.raw == "df -h"

    def test_cancel(self):
        session = run(make_session(), Event.CANCEL)
        assert session.state == SessionState.CANCELLED

    def test_interrupt_cancels(self):
        session = run(make_session(), Event.INTERRUPT)
        assert session.state == SessionState.CANCELLED

    def test_running_out_of_events_cancels(self):
        assert run(make_session()).state == SessionState.CANCELLED

    def test_finished_session_ignores_events(self):
        session = run(make_session(), Event.ACCEPT)
        assert session.handle(Event.CANCEL) == SessionState.ACCEPTED

    def test_empty_command_rejected(self):
        with pytest.raises(ValueError):
            make_session("   ")


class TestExplain:

    def test_explain_then_accept(self):
        explainer = FakeExplainer()
        session = run(make_session(explainer=explainer), Event.EXPLAIN, Event.ACCEPT)

        assert session.state == SessionState.ACCEPTED
        assert explainer.calls == ["df -h"]
        assert session.transitions == [AWAITING, SessionState.EXPLAINING, AWAITING, SessionState.ACCEPTED]

    def test_second_explain_in_a_row_is_ignored(self):
        explainer = FakeExplainer()
        session = make_session(explainer=explainer)

        session.handle(Event.EXPLAIN)
        assert session.decisions == AFTER_EXPLAIN_DECISIONS
        assert session.explanation == "Shows disk usage in human-readable units."

        assert session.handle(Event.EXPLAIN) == AWAITING
        assert explainer.calls == ["df -h"]

        session.handle(Event.ACCEPT)
        assert session.state == SessionState.ACCEPTED

    def test_failed_explain_keeps_the_command(self):
        explainer = FakeExplainer(NetworkError("request to ollama timed out after 30 seconds"), "Shows disk usage.")
        session = make_session(explainer=explainer)

        session.handle(Event.EXPLAIN)
        assert session.state == AWAITING
        assert "timed out" in session.error
        assert session.decisions == FULL_DECISIONS
        assert session.proposal.raw == "df -h"

        # retrying is a fresh call
        session.handle(Event.EXPLAIN)
        assert session.error is None
        assert session.explanation == "Shows disk usage."
        assert explainer.calls == ["df -h", "df -h"]

    def test_interrupt_while_explaining_cancels(self):
        session = make_session(explainer=FakeExplainer(KeyboardInterrupt()))
        assert session.handle(Event.EXPLAIN) == SessionState.CANCELLED

    def test_explain_again_after_edit_cancel(self):
        explainer = FakeExplainer()
        session = run(
            make_session(explainer=explainer),
            Event.EXPLAIN, Event.EDIT, Event.EDIT_CANCELLED, Event.EXPLAIN, Event.CANCEL,
        )
        assert session.state == SessionState.CANCELLED
        assert explainer.calls == ["df -h", "df -h"]


class TestEdit:

    def test_edit_then_accept(self):
        session = run(make_session(), Event.EDIT, EditSubmitted("df -h /home"), Event.ACCEPT)

        assert session.state == SessionState.ACCEPTED
        assert session.proposal.raw == "df -h /home"
        assert session.proposal.source == CommandSource.edited

    def test_edit_is_trimmed(self):
        session = run(make_session(), Event.EDIT, EditSubmitted("  du -sh .  "), Event.ACCEPT)
        assert session.proposal.raw == "du -sh ."

    def test_empty_edit_stays_in_editing(self):
        session = make_session()
        session.handle(Event.EDIT)

        assert session.handle(EditSubmitted("   ")) == SessionState.EDITING
        assert session.error == "command cannot be empty"
        assert session.proposal.raw == "df -h"

        session.handle(EditSubmitted("df -i"))
        assert session.state == AWAITING
        assert session.error is None
        assert session.proposal.raw == "df -i"

    def test_edit_cancelled_restores_command(self):
        session = run(make_session(), Event.EDIT, Event.EDIT_CANCELLED, Event.ACCEPT)
        assert session.proposal.raw == "df -h"
        assert session.proposal.source == CommandSource.generated

    def test_explain_after_edit_uses_edited_command(self):
        explainer = FakeExplainer()
        run(make_session(explainer=explainer), Event.EDIT, EditSubmitted("df -h /"), Event.EXPLAIN, Event.ACCEPT)
        assert explainer.calls == ["df -h /"]

    def test_decisions_ignored_while_editing(self):
        session = make_session()
        session.handle(Event.EDIT)
        assert session.handle(Event.ACCEPT) == SessionState.EDITING

    def test_interrupt_while_editing(self):
        session = run(make_session(), Event.EDIT, Event.INTERRUPT)
        assert session.state == SessionState.CANCELLED


class TestDrive:

    def test_keyboard_interrupt_from_source_cancels(self):
        class Raising:
            def next_event(self, session):
                raise KeyboardInterrupt

        session = drive(make_session(), Raising())
        assert session.state == SessionState.CANCELLED

    def test_scripted_events_record_states(self):
        events = ScriptedEvents([Event.EDIT, EditSubmitted("ls"), Event.ACCEPT])
        drive(make_session(), events)
        assert [state for state, _ in events.seen] == [AWAITING, SessionState.EDITING, AWAITING]


def keys(*pressed):
    it = iter(pressed)

    def _getchar():
        try:
            return next(it)
        except StopIteration:
            raise EOFError
    return _getchar


class TestTerminalEvents:
    """Keypresses become session events."""

    def test_enter_accepts(self):
        source = TerminalEvents(getchar=keys("\r"), interactive=True)
        assert drive(make_session(), source).state == SessionState.ACCEPTED

    def test_unmapped_keys_are_ignored(self):
        source = TerminalEvents(getchar=keys("x", "q", "y"), interactive=True)
        assert drive(make_session(), source).state == SessionState.ACCEPTED

    def test_explain_key_ignored_right_after_explanation(self):
        explainer = FakeExplainer()
        source = TerminalEvents(getchar=keys("e", "E", "n"), interactive=True)
        session = drive(make_session(explainer=explainer), source)

        assert session.state == SessionState.CANCELLED
        assert explainer.calls == ["df -h"]

    def test_arrow_up_opens_editor(self):
        seen = []

        def editor(text):
            seen.append(text)
            return "df -h /var"

        source = TerminalEvents(getchar=keys("\x1b[A", "Y"), line_editor=editor, interactive=True)
        session = drive(make_session(), source)

        assert seen == ["df -h"]
        assert session.proposal.raw == "df -h /var"
        assert session.state == SessionState.ACCEPTED

    def test_ctrl_d_in_editor_returns_to_decision(self):
        def editor(text):
            raise EOFError

        source = TerminalEvents(getchar=keys("\x1bOA", "y"), line_editor=editor, interactive=True)
        session = drive(make_session(), source)
        assert session.proposal.raw == "df -h"
        assert session.state == SessionState.ACCEPTED

    def test_ctrl_c_cancels(self):
        source = TerminalEvents(getchar=keys("\x03"), interactive=True)
        assert drive(make_session(), source).state == SessionState.CANCELLED

    def test_end_of_input_cancels(self):
        source = TerminalEvents(getchar=keys(), interactive=True)
        assert drive(make_session(), source).state == SessionState.CANCELLED

    def test_non_interactive_accepts(self):
        source = TerminalEvents(getchar=keys(), interactive=False)
        assert drive(make_session(), source).state == SessionState.ACCEPTED


class TestStyleExplanation:

    def test_tags_become_markup(self):
        assert style_explanation("<b>rm</b> deletes") == "[bold]rm[/bold] deletes"

    def test_brackets_are_escaped(self):
        assert style_explanation("matches [abc]") == "matches \\[abc]"

    def test_unmatched_closing_tag_dropped(self):
        assert style_explanation("plain</u> text") == "plain text"

    def test_open_tag_closed_at_end(self):
        assert style_explanation("<i>careful") == "[italic]careful[/italic]"


class TestReadRequest:
    """The request prompt keeps one history for the whole loop."""

    def test_one_session_with_history(self, monkeypatch):
        created = []

        class FakePromptSession:
            def __init__(self, **kwargs):
                created.append(kwargs)
                self.defaults = []

            def prompt(self, message, default=""):
                self.defaults.append(default)
                return f"request {len(self.defaults)}"

        monkeypatch.setattr(terminal, "PromptSession", FakePromptSession)
        monkeypatch.setattr(terminal, "create_output", lambda **kwargs: None)
        monkeypatch.setattr(terminal, "_request_session", None)

        assert terminal.read_request() == "request 1"
        assert terminal.read_request("list files") == "request 2"

        assert len(created) == 1
        assert isinstance(created[0]["history"], InMemoryHistory)
        assert terminal._request_session.defaults == ["", "list files"]
