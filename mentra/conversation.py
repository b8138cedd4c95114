"""
Conversation engine — the mode dispatcher behind the chat surface.

One engine drives one conversation surface.  It owns the turn list, the
live input text and the surface's session id, and it routes every outgoing
request to the right backend operation:

* **normal**     — streaming chat; the reply is reconciled chunk by chunk
  into an in-flight assistant turn, then parsed into a finalized turn.
* **concept**    — two-minute explainer for the typed topic (or the last
  user question).
* **weakness**   — analysis of the visible conversation.
* **deep-dive**  — structured deep dive.  Once entered it is sticky: every
  later send goes through it until a new chat or reset.

At most one backend call is outstanding per engine.  A send while a call is
in flight is rejected outright; it is neither queued nor does it cancel the
running call.  Backend failures never escape: they become an assistant turn
apologising with the underlying message, and the engine returns to
``IDLE``.

All public methods block until their backend call finishes, so a GUI calls
them from a worker thread and receives progress through ``on_change``.
"""

import logging
import sqlite3
import threading
from dataclasses import dataclass, replace

import requests

from .draft_store import CHAT_DRAFT_KEY
from .intent import AUTO_SEND_DELAY_MS, classify_intent, should_auto_send
from .mentor_api import MentorAPIError
from .models import (
    EngineState,
    ExplainMode,
    Language,
    Mode,
    ModuleType,
    PlainResult,
    Role,
    Turn,
    TurnKind,
    turns_from_dicts,
    turns_to_dicts,
)
from .response_parser import parse_response
from .session_identity import SessionIdentity
from .stream_reconciler import StreamInterrupted, StreamReconciler
from .timers import DEFAULT_SCHEDULER
from .titles import concept_title, deep_dive_title, make_title, should_title
from .undo import UNDO_TIMEOUT_MS, ResetUndoController

log = logging.getLogger("mentra")

TOPIC_PROMPT = (
    'Please type a topic or question first, then click "Explain in 2 Minutes"'
)


def apology(message: str) -> str:
    return f"Sorry, I encountered an error: {message}. Please try again."


@dataclass(frozen=True)
class ResetSnapshot:
    """State captured right before a reset so it can be undone."""

    input: str
    turns: tuple[Turn, ...]
    session_id: str | None = None


class ConversationEngine:
    """Multi-mode conversation state machine for one surface."""

    def __init__(
        self,
        client,
        *,
        history=None,
        user_provider=None,
        identity: SessionIdentity | None = None,
        drafts=None,
        scheduler=None,
        language: Language = Language.HINGLISH,
        explain_mode: ExplainMode = ExplainMode.CORE,
        undo_timeout_ms: float = UNDO_TIMEOUT_MS,
        voice_autosend_ms: float = AUTO_SEND_DELAY_MS,
        module: ModuleType = ModuleType.CHAT,
        on_change=None,
    ) -> None:
        self._client = client
        self._history = history
        self._users = user_provider
        self._identity = identity or SessionIdentity()
        self._drafts = drafts
        self._scheduler = scheduler or DEFAULT_SCHEDULER
        self._language = Language.parse(language)
        self._explain_mode = ExplainMode.parse(explain_mode)
        self._voice_autosend_ms = voice_autosend_ms
        self._module = module
        self._on_change = on_change

        self._lock = threading.RLock()
        self._state = EngineState.IDLE
        self._turns: list[Turn] = []
        self._input = ""
        self._deep_dive = False
        # Id of the assistant turn still being streamed into.
        self._streaming_id: str | None = None
        # Bumped by new-chat / reset / undo; results of a request started in
        # an older epoch are dropped instead of landing in the new thread.
        self._epoch = 0
        self._voice_timer = None

        self._undo = ResetUndoController(
            get_state=self._snapshot,
            apply_state=self._apply_snapshot,
            timeout_ms=undo_timeout_ms,
            scheduler=self._scheduler,
            on_change=lambda _state: self._notify(),
        )

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def turns(self) -> tuple[Turn, ...]:
        with self._lock:
            return tuple(self._turns)

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def input(self) -> str:
        return self._input

    @property
    def deep_dive_active(self) -> bool:
        return self._deep_dive

    @property
    def can_undo(self) -> bool:
        return self._undo.can_undo

    @property
    def session_id(self) -> str:
        return self._identity.get_or_create()

    @property
    def language(self) -> Language:
        return self._language

    @language.setter
    def language(self, value) -> None:
        self._language = Language.parse(value)

    @property
    def explain_mode(self) -> ExplainMode:
        return self._explain_mode

    @explain_mode.setter
    def explain_mode(self, value) -> None:
        self._explain_mode = ExplainMode.parse(value)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _notify(self) -> None:
        if self._on_change is None:
            return
        with self._lock:
            turns, state = tuple(self._turns), self._state
        try:
            self._on_change(turns, state)
        except Exception:  # noqa: BLE001
            log.exception("[ENGINE] on_change listener failed")

    def _current_user(self):
        if self._users is None:
            return None
        try:
            return self._users.get_current_user()
        except Exception as exc:  # noqa: BLE001
            log.warning("[ENGINE] Could not determine the current user: %s", exc)
            return None

    def _first_name(self) -> str | None:
        user = self._current_user()
        return user.first_name if user else None

    def _messages(self) -> list[dict]:
        return [t.as_message() for t in self._turns]

    def _begin(self) -> int | None:
        """Move IDLE → AWAITING_RESPONSE.  Must hold the lock."""
        if self._state is not EngineState.IDLE:
            log.debug("[ENGINE] Request rejected; engine is %s", self._state.value)
            return None
        self._state = EngineState.AWAITING_RESPONSE
        return self._epoch

    def _finish(self) -> None:
        with self._lock:
            self._state = EngineState.IDLE
            self._streaming_id = None
        self._notify()

    def _append(self, turn: Turn, epoch: int) -> bool:
        with self._lock:
            if epoch != self._epoch:
                log.debug("[ENGINE] Dropping result for a discarded conversation")
                return False
            self._turns.append(turn)
        self._notify()
        return True

    def _replace(self, turn_id: str, epoch: int, **changes) -> bool:
        """Swap the turn with *turn_id* for an updated copy."""
        with self._lock:
            if epoch != self._epoch:
                return False
            for i in range(len(self._turns) - 1, -1, -1):
                if self._turns[i].id == turn_id:
                    self._turns[i] = replace(self._turns[i], **changes)
                    break
            else:
                return False
        self._notify()
        return True

    def _fail(self, exc: Exception, epoch: int) -> None:
        if isinstance(exc, MentorAPIError):
            log.error("[ENGINE] Backend call failed:\n%s", exc.describe())
            message = exc.message
        elif isinstance(exc, (StreamInterrupted, requests.RequestException)):
            log.error("[ENGINE] Backend call failed: %s", exc)
            message = str(exc)
        else:
            log.error("[ENGINE] Unexpected error during backend call: %s: %s",
                      type(exc).__name__, exc, exc_info=True)
            message = str(exc) or type(exc).__name__
        self._append(Turn.assistant(apology(message)), epoch)

    def _persist(self, epoch: int, title: str | None, metadata: dict) -> None:
        """Save the current turn list.  Failures are logged, never raised."""
        if self._history is None:
            return
        user = self._current_user()
        if user is None:
            log.debug("[ENGINE] No signed-in user; history not saved")
            return
        with self._lock:
            if epoch != self._epoch:
                return
            content = {"messages": turns_to_dicts(self._turns)}
            session_id = self._identity.get_or_create()
        try:
            self._history.save(
                user.id, session_id, self._module.value, content, title, metadata,
            )
        except (sqlite3.Error, OSError) as exc:
            log.error("[ENGINE] Failed to save history for %s: %s", session_id, exc)

    def _clear_draft(self) -> None:
        if self._drafts is not None:
            self._drafts.clear(CHAT_DRAFT_KEY)

    def _consume_input(self) -> None:
        """Empty the input box.  Holds the lock."""
        self._input = ""
        # The debounced save still holds the text just sent.
        if self._drafts is not None:
            self._drafts.cancel(CHAT_DRAFT_KEY)

    # ------------------------------------------------------------------
    # Surface lifecycle
    # ------------------------------------------------------------------

    def mount(self) -> None:
        """Resume the session, restore the draft and load stored turns."""
        session_id = self._identity.get_or_create()
        if self._drafts is not None:
            saved = self._drafts.restore(CHAT_DRAFT_KEY)
            with self._lock:
                if saved and not self._input:
                    self._input = saved
        user = self._current_user()
        if user is not None and self._history is not None:
            try:
                record = self._history.get_by_session(user.id, session_id)
            except sqlite3.Error as exc:
                log.error("[ENGINE] Could not load history for %s: %s", session_id, exc)
                record = None
            messages = record.content.get("messages") if record else None
            if isinstance(messages, list):
                with self._lock:
                    self._turns = turns_from_dicts(messages)
                log.info("[ENGINE] Resumed session %s with %d turn(s)",
                         session_id, len(self._turns))
        self._notify()

    def close(self) -> None:
        """Cancel every timer owned by the surface."""
        with self._lock:
            if self._voice_timer is not None:
                self._voice_timer.cancel()
                self._voice_timer = None
            self._undo.close()
        if self._drafts is not None:
            self._drafts.close()

    def set_input(self, text: str) -> None:
        """Update the live input and autosave it."""
        with self._lock:
            self._input = text
        if self._drafts is not None:
            self._drafts.write(CHAT_DRAFT_KEY, text)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send(self, text: str | None = None) -> bool:
        """Send *text* (or the live input).  Returns *False* if rejected."""
        with self._lock:
            to_send = self._input if text is None else text
            if not to_send.strip():
                return False
            epoch = self._begin()
            if epoch is None:
                return False
            self._turns.append(Turn.user(to_send))
            self._consume_input()
            deep_dive = self._deep_dive
            messages = self._messages()
        self._notify()

        try:
            if deep_dive:
                ok = self._run_deep_dive(messages, epoch)
            else:
                ok = self._run_normal(to_send, messages, epoch)
            if ok:
                self._clear_draft()
        finally:
            self._finish()
        return True

    def _run_normal(self, user_input: str, messages: list[dict], epoch: int) -> bool:
        try:
            chunks = self._client.stream_chat(
                messages, self._language, self._first_name(),
            )
            placeholder = Turn.assistant("")
            with self._lock:
                if epoch != self._epoch:
                    return False
                self._turns.append(placeholder)
                self._state = EngineState.STREAMING
                self._streaming_id = placeholder.id
            self._notify()

            reconciler = StreamReconciler(
                publish=lambda text: self._replace(placeholder.id, epoch, content=text),
            )
            full_text = reconciler.consume(chunks)
        except Exception as exc:  # noqa: BLE001
            # Partial streamed content stays visible above the apology.
            self._fail(exc, epoch)
            return False

        parsed = parse_response(full_text)
        finalized = self._replace(
            placeholder.id, epoch,
            content=parsed.content,
            structured=PlainResult(
                confidence=parsed.confidence,
                follow_up=parsed.follow_up,
                suggested_actions=parsed.suggested_actions,
            ),
        )
        if not finalized:
            return False

        with self._lock:
            self._streaming_id = None
            turn_count = len(self._turns)
        title = make_title(user_input) if should_title(turn_count) else None
        self._persist(epoch, title, {
            "mode": Mode.NORMAL.value, "language": self._language.value,
        })
        return True

    # ------------------------------------------------------------------
    # Concept explainer
    # ------------------------------------------------------------------

    def explain_concept(self, explain_mode: ExplainMode | None = None) -> bool:
        """Explain the typed topic, or the last user question, in two minutes.

        Only a typed topic adds a user turn; falling back to an earlier
        question re-uses it silently.  Without any topic a guidance message
        is appended and no request is made.
        """
        mode = ExplainMode.parse(explain_mode) if explain_mode else self._explain_mode
        with self._lock:
            if self._state is not EngineState.IDLE:
                return False
            explicit = self._input.strip()
            topic = explicit
            if not topic:
                last_user = next(
                    (t for t in reversed(self._turns) if t.role is Role.USER), None,
                )
                topic = last_user.content.strip() if last_user else ""
            if not topic:
                self._turns.append(Turn.assistant(TOPIC_PROMPT))
            else:
                epoch = self._begin()
                if explicit:
                    self._turns.append(Turn.user(self._input))
                    self._consume_input()
        self._notify()
        if not topic:
            return False

        try:
            try:
                card = self._client.explain_concept(
                    topic, self._language, self._first_name(), mode,
                )
            except Exception as exc:  # noqa: BLE001
                self._fail(exc, epoch)
                return True
            if not self._append(Turn.assistant(kind=TurnKind.CONCEPT, structured=card), epoch):
                return True
            if explicit:
                self._clear_draft()
            with self._lock:
                turn_count = len(self._turns)
            title = concept_title(topic) if should_title(turn_count) else None
            self._persist(epoch, title, {
                "mode": Mode.CONCEPT.value, "topic": topic, "explainMode": mode.value,
            })
        finally:
            self._finish()
        return True

    # ------------------------------------------------------------------
    # Weakness analysis
    # ------------------------------------------------------------------

    def analyze_weakness(self) -> bool:
        """Analyse the visible conversation.  No-op without any turns."""
        with self._lock:
            if not self._turns:
                return False
            epoch = self._begin()
            if epoch is None:
                return False
            messages = self._messages()
        self._notify()

        try:
            try:
                report = self._client.analyze_weakness(messages, self._language)
            except Exception as exc:  # noqa: BLE001
                self._fail(exc, epoch)
                return True
            if self._append(Turn.assistant(kind=TurnKind.WEAKNESS, structured=report), epoch):
                # Weakness results never rename the session.
                self._persist(epoch, None, {"mode": Mode.WEAKNESS.value})
        finally:
            self._finish()
        return True

    # ------------------------------------------------------------------
    # Deep dive
    # ------------------------------------------------------------------

    def enter_deep_dive(self) -> bool:
        """Switch to sticky deep-dive mode and dive into the conversation."""
        with self._lock:
            if not self._turns:
                return False
            epoch = self._begin()
            if epoch is None:
                return False
            self._deep_dive = True
            messages = self._messages()
        log.info("[ENGINE] Deep-dive mode on")
        self._notify()
        try:
            self._run_deep_dive(messages, epoch)
        finally:
            self._finish()
        return True

    def _run_deep_dive(self, messages: list[dict], epoch: int) -> bool:
        try:
            dive = self._client.deep_dive(messages, self._language)
        except Exception as exc:  # noqa: BLE001
            self._fail(exc, epoch)
            return False
        if not self._append(Turn.assistant(kind=TurnKind.DEEP_DIVE, structured=dive), epoch):
            return False
        # Title rule counts the turns the request was built from.
        title = deep_dive_title(dive.overview) if should_title(len(messages)) else None
        self._persist(epoch, title, {
            "mode": Mode.DEEP_DIVE.value, "language": self._language.value,
        })
        return True

    # ------------------------------------------------------------------
    # New chat / reset / undo
    # ------------------------------------------------------------------

    def _snapshot(self) -> ResetSnapshot:
        with self._lock:
            return ResetSnapshot(
                input=self._input,
                # A half-streamed reply is never brought back by undo.
                turns=tuple(t for t in self._turns if t.id != self._streaming_id),
                session_id=self._identity.current,
            )

    def _apply_snapshot(self, snapshot: ResetSnapshot) -> None:
        with self._lock:
            self._turns = list(snapshot.turns)
            self._input = snapshot.input
            if snapshot.session_id is not None:
                self._identity.resume(snapshot.session_id)

    def _start_new_session(self) -> None:
        """Forget the thread: new epoch, new id, deep dive off.  Holds the lock."""
        self._epoch += 1
        self._deep_dive = False
        if self._voice_timer is not None:
            self._voice_timer.cancel()
            self._voice_timer = None
        self._identity.clear()
        self._identity.get_or_create()

    def new_chat(self) -> None:
        """Start a fresh conversation.  Cannot be undone."""
        with self._lock:
            self._undo.dismiss()
            self._turns = []
            self._input = ""
            self._start_new_session()
        self._clear_draft()
        log.info("[ENGINE] New chat %s", self._identity.current)
        self._notify()

    def reset(self) -> None:
        """Clear the conversation, keeping it recoverable for the undo window."""
        with self._lock:
            self._undo.reset(ResetSnapshot(input="", turns=()))
            self._start_new_session()
        self._clear_draft()
        log.info("[ENGINE] Conversation reset; undo available")
        self._notify()

    def undo_reset(self) -> bool:
        """Restore the conversation cleared by the last :meth:`reset`."""
        with self._lock:
            if not self._undo.undo():
                return False
            self._epoch += 1
            restored_input = self._input
        if restored_input and self._drafts is not None:
            self._drafts.write(CHAT_DRAFT_KEY, restored_input)
        self._notify()
        return True

    def dismiss_undo(self) -> None:
        with self._lock:
            self._undo.dismiss()

    # ------------------------------------------------------------------
    # Voice input
    # ------------------------------------------------------------------

    def handle_voice_transcript(self, text: str) -> str | None:
        """Put a transcript in the input; greetings and commands auto-send.

        Returns the detected intent, or ``None`` for a blank transcript.
        """
        if not text.strip():
            return None
        self.set_input(text)
        intent = classify_intent(text)
        if should_auto_send(intent):
            with self._lock:
                if self._voice_timer is not None:
                    self._voice_timer.cancel()
                self._voice_timer = self._scheduler.call_later(
                    self._voice_autosend_ms, self._voice_send,
                )
        self._notify()
        return intent

    def _voice_send(self) -> None:
        with self._lock:
            self._voice_timer = None
        self.send()
