"""
Session identity for a conversation surface.

``CurrentSessionSlot`` is the process-wide seed: the id of the conversation
that was open last, optionally mirrored to ``Asset/session.json`` so a
relaunch resumes it (the same idea as the ``active_id`` row the chat store
keeps in its ``meta`` table).

Each conversation surface owns a :class:`SessionIdentity` that reads the
slot once when it is created and from then on works on its own copy, so two
surfaces open at the same time never overwrite each other's id.
"""

import json
import logging
import os
import threading
import uuid

from .paths import asset_path

log = logging.getLogger("mentra")


def new_session_id() -> str:
    return str(uuid.uuid4())


class CurrentSessionSlot:
    """Thread-safe holder for the last-used session id."""

    def __init__(self, storage_file: str | None = None) -> None:
        self._storage_file = storage_file
        self._lock = threading.Lock()
        self._value: str | None = self._load()

    def _load(self) -> str | None:
        if not self._storage_file or not os.path.exists(self._storage_file):
            return None
        try:
            with open(self._storage_file, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (json.JSONDecodeError, OSError) as exc:
            log.warning("[SESSION] Ignoring unreadable %s: %s",
                        self._storage_file, exc)
            return None
        value = data.get("session_id") if isinstance(data, dict) else None
        return value or None

    def _persist(self) -> None:
        if not self._storage_file:
            return
        try:
            if self._value is None:
                if os.path.exists(self._storage_file):
                    os.remove(self._storage_file)
            else:
                with open(self._storage_file, "w", encoding="utf-8") as fh:
                    json.dump({"session_id": self._value}, fh)
        except OSError as exc:
            log.error("[SESSION] Could not persist session id: %s", exc)

    def get(self) -> str | None:
        with self._lock:
            return self._value

    def set(self, value: str | None) -> None:
        with self._lock:
            self._value = value
            self._persist()


_default_slot: CurrentSessionSlot | None = None
_default_lock = threading.Lock()


def default_slot() -> CurrentSessionSlot:
    """Return the process-wide slot backed by ``Asset/session.json``."""
    global _default_slot
    with _default_lock:
        if _default_slot is None:
            _default_slot = CurrentSessionSlot(asset_path("session.json"))
        return _default_slot


class SessionIdentity:
    """Owns the session id of one conversation surface."""

    def __init__(self, slot: CurrentSessionSlot | None = None,
                 id_factory=new_session_id) -> None:
        self._slot = slot if slot is not None else default_slot()
        self._id_factory = id_factory
        self._lock = threading.Lock()
        # Read once; later changes to the slot by other surfaces are ignored.
        self._current: str | None = self._slot.get()

    @property
    def current(self) -> str | None:
        return self._current

    def get_or_create(self) -> str:
        """Return the current id, minting and recording a new one if absent."""
        with self._lock:
            if self._current is None:
                self._current = self._id_factory()
                self._slot.set(self._current)
                log.debug("[SESSION] Started session %s", self._current)
            return self._current

    def clear(self) -> None:
        """Forget the current id so the next :meth:`get_or_create` mints one."""
        with self._lock:
            if self._current is not None:
                log.debug("[SESSION] Cleared session %s", self._current)
            self._current = None
            self._slot.set(None)

    def resume(self, session_id: str) -> None:
        """Switch back to an earlier session, e.g. when a reset is undone."""
        with self._lock:
            self._current = session_id
            self._slot.set(session_id)
            log.debug("[SESSION] Resumed session %s", session_id)
