"""
User settings.

Stored as a JSON object in ``Asset/settings.json``.  Missing or unknown keys
are ignored and invalid values fall back to the defaults below, so a
hand-edited file never stops the application from starting.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields

from .draft_store import DEBOUNCE_MS
from .intent import AUTO_SEND_DELAY_MS
from .mentor_api import REQUEST_TIMEOUT
from .models import ExplainMode, Language
from .paths import asset_path
from .undo import UNDO_TIMEOUT_MS

log = logging.getLogger("mentra")

SETTINGS_FILE = asset_path("settings.json")


@dataclass
class Settings:
    base_url: str = "http://localhost:3000"
    language: str = Language.HINGLISH.value
    explain_mode: str = ExplainMode.CORE.value
    draft_debounce_ms: int = DEBOUNCE_MS
    undo_timeout_ms: int = UNDO_TIMEOUT_MS
    voice_autosend_ms: int = AUTO_SEND_DELAY_MS
    request_timeout: int = REQUEST_TIMEOUT

    def normalised(self) -> "Settings":
        """Return a copy with every field coerced to a valid value."""
        defaults = Settings()
        out = Settings(**asdict(self))
        if not isinstance(out.base_url, str) or not out.base_url.strip():
            out.base_url = defaults.base_url
        out.language = Language.parse(out.language).value
        out.explain_mode = ExplainMode.parse(out.explain_mode).value
        for name in ("draft_debounce_ms", "undo_timeout_ms",
                     "voice_autosend_ms", "request_timeout"):
            value = getattr(out, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                log.warning("[SETTINGS] Invalid %s=%r; using %r",
                            name, value, getattr(defaults, name))
                setattr(out, name, getattr(defaults, name))
        return out


def load_settings(path: str | None = None) -> Settings:
    path = path or SETTINGS_FILE
    if not os.path.exists(path):
        return Settings()
    try:
        with open(path, "r", encoding="utf-8") as fh:
            raw = json.load(fh)
    except (json.JSONDecodeError, OSError) as exc:
        log.warning("[SETTINGS] Could not read %s (%s); using defaults.", path, exc)
        return Settings()
    if not isinstance(raw, dict):
        return Settings()
    known = {f.name for f in fields(Settings)}
    return Settings(**{k: v for k, v in raw.items() if k in known}).normalised()


def save_settings(settings: Settings, path: str | None = None) -> None:
    path = path or SETTINGS_FILE
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(asdict(settings.normalised()), fh, ensure_ascii=False, indent=2)
