"""
Debounced autosave of the unsent input text.

Drafts are stored as a JSON object in ``Asset/drafts.json``::

    {"chat-input-draft": {"value": "half a question", "savedAt": "2026-…"}}

Every keystroke calls :meth:`DraftStore.write`, but the file is only
rewritten once typing pauses for the quiet period.  A crash before the
period elapses loses at most what was typed since the last commit; the
committed value itself is never touched by a pending write.
"""

import json
import logging
import os
import threading
from datetime import datetime, timezone

from .paths import asset_path
from .timers import DEFAULT_SCHEDULER

log = logging.getLogger("mentra")

#: Namespace key used by the chat surface.
CHAT_DRAFT_KEY = "chat-input-draft"

#: Quiet period before a write is committed (milliseconds).
DEBOUNCE_MS: int = 2_500


class DraftStore:
    """JSON-file backed draft buffer with a per-key debounce timer."""

    DEFAULT_FILE = asset_path("drafts.json")

    def __init__(self, storage_file: str | None = None,
                 debounce_ms: float = DEBOUNCE_MS,
                 scheduler=None) -> None:
        self.storage_file = storage_file or self.DEFAULT_FILE
        self._debounce_ms = debounce_ms
        self._scheduler = scheduler or DEFAULT_SCHEDULER
        self._lock = threading.Lock()
        self._pending: dict[str, tuple[str, object]] = {}   # key → (value, handle)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _load(self) -> dict:
        if not os.path.exists(self.storage_file):
            return {}
        try:
            with open(self.storage_file, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (json.JSONDecodeError, OSError) as exc:
            log.warning("[DRAFT] Could not read %s: %s", self.storage_file, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict) -> None:
        tmp = self.storage_file + ".tmp"
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(data, fh, ensure_ascii=False, indent=2)
        os.replace(tmp, self.storage_file)

    def _commit(self, key: str, handle_token: object) -> None:
        with self._lock:
            pending = self._pending.get(key)
            # A newer write re-armed the timer; this callback is stale.
            if pending is None or pending[1] is not handle_token:
                return
            value = pending[0]
            del self._pending[key]
            try:
                data = self._load()
                data[key] = {
                    "value": value,
                    "savedAt": datetime.now(timezone.utc).isoformat(),
                }
                self._save(data)
            except OSError as exc:
                log.error("[DRAFT] Failed to persist draft %r: %s", key, exc)
                return
        log.debug("[DRAFT] Committed %r (%d chars)", key, len(value))

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def write(self, key: str, value: str) -> None:
        """Schedule *value* to be committed after the quiet period.

        A write within the window cancels the pending one, so only the value
        present when typing pauses reaches the file.
        """
        with self._lock:
            previous = self._pending.pop(key, None)
            if previous is not None:
                previous[1].cancel()
            token = _Deferred()
            self._pending[key] = (value, token)
        token.handle = self._scheduler.call_later(
            self._debounce_ms, lambda: self._commit(key, token),
        )

    def restore(self, key: str) -> str:
        """Return the last committed value for *key* (``""`` if none)."""
        entry = self._load().get(key)
        if isinstance(entry, dict):
            return str(entry.get("value") or "")
        return ""

    def saved_at(self, key: str) -> str | None:
        """Return the ISO timestamp of the last commit for *key*."""
        entry = self._load().get(key)
        if isinstance(entry, dict):
            return entry.get("savedAt")
        return None

    def cancel(self, key: str) -> None:
        """Drop the pending write for *key*; the committed value stays."""
        with self._lock:
            previous = self._pending.pop(key, None)
        if previous is not None:
            previous[1].cancel()

    def clear(self, key: str) -> None:
        """Drop the committed value and cancel any pending write."""
        with self._lock:
            previous = self._pending.pop(key, None)
            if previous is not None:
                previous[1].cancel()
            data = self._load()
            if key in data:
                del data[key]
                try:
                    self._save(data)
                except OSError as exc:
                    log.error("[DRAFT] Failed to clear draft %r: %s", key, exc)

    def close(self) -> None:
        """Cancel every pending write (surface unmount)."""
        with self._lock:
            for _value, token in self._pending.values():
                token.cancel()
            self._pending.clear()


class _Deferred:
    """Identity token for one armed write; cancels its timer on request.

    The timer handle is attached after :meth:`DraftStore.write` releases its
    lock, so a cancel that arrives first is remembered and applied then.
    """

    def __init__(self) -> None:
        self._handle = None
        self._cancelled = False

    @property
    def handle(self):
        return self._handle

    @handle.setter
    def handle(self, value) -> None:
        self._handle = value
        if self._cancelled and value is not None:
            value.cancel()

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
