"""
Current-user provider.

The mentor client keeps the signed-in profile in ``Asset/user.json``::

    {"id": "6f1c…", "display_name": "Asha", "access_token": "…"}

``access_token`` is optional and, when present, is sent to the backend as
a bearer token.  Without a profile the conversation still works but
nothing is written to history.
"""

import json
import logging
import os
import uuid
from dataclasses import asdict, dataclass

from .paths import asset_path

log = logging.getLogger("mentra")

# Where the profile is cached between sessions.
USER_FILE = asset_path("user.json")


@dataclass(frozen=True)
class CurrentUser:
    id: str
    display_name: str | None = None
    access_token: str | None = None

    @property
    def first_name(self) -> str | None:
        """First word of the display name, used to personalise replies."""
        if not self.display_name or not self.display_name.strip():
            return None
        return self.display_name.split()[0]


def save_user(display_name: str, access_token: str | None = None,
              user_id: str | None = None, path: str | None = None) -> CurrentUser:
    """Persist a profile and return it.  A new id is minted when none is given."""
    path = path or USER_FILE
    existing = load_user(path)
    uid = user_id or (existing.id if existing else uuid.uuid4().hex)
    user = CurrentUser(
        id=uid,
        display_name=display_name.strip() or None,
        access_token=access_token if access_token is not None
        else (existing.access_token if existing else None),
    )
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(asdict(user), fh, ensure_ascii=False)
    log.debug("[AUTH] Saved profile %s (%s)", user.id, user.display_name)
    return user


def load_user(path: str | None = None) -> CurrentUser | None:
    """Load the profile from disk, returning ``None`` if absent or unreadable."""
    path = path or USER_FILE
    if not os.path.exists(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (json.JSONDecodeError, OSError) as exc:
        log.warning("[AUTH] Ignoring unreadable profile %s: %s", path, exc)
        return None
    if not isinstance(data, dict) or not data.get("id"):
        return None
    return CurrentUser(
        id=str(data["id"]),
        display_name=data.get("display_name"),
        access_token=data.get("access_token"),
    )


def sign_out(path: str | None = None) -> None:
    """Remove the cached profile from disk."""
    path = path or USER_FILE
    if os.path.exists(path):
        os.remove(path)


class FileUserProvider:
    """``get_current_user()`` backed by the profile file."""

    def __init__(self, path: str | None = None) -> None:
        self._path = path or USER_FILE

    def get_current_user(self) -> CurrentUser | None:
        return load_user(self._path)


class StaticUserProvider:
    """Provider returning a fixed user (or nobody)."""

    def __init__(self, user: CurrentUser | None) -> None:
        self._user = user

    def get_current_user(self) -> CurrentUser | None:
        return self._user
