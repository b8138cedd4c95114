"""
Extract structured fields from a finished mentor reply.

The backend is asked to end its replies with a few recognisable sections::

    Photosynthesis is how plants turn light into food ...

    Confidence: High
    Follow-up: Do you want a diagram of the light reactions?

    Suggested Actions:
    - 📅 Add to Study Plan
    - 🔍 Go Deeper

:func:`parse_response` pulls those sections out and returns what is left as
``content``.  Models do not follow the convention reliably, so every
section is optional and anything that does not match is simply left in the
text.  The parser never raises.
"""

import logging
import re
from dataclasses import dataclass

from .models import CONFIDENCE_LEVELS

log = logging.getLogger("mentra")

# Optional decoration in front of a section label: any run of non-letters,
# so emoji with variation selectors or keycaps, bullets, numbering and
# markdown all pass.
_DECOR = r"(?:(?![^\W\d_])[^\n])*"
_LEVEL = "(?P<level>" + "|".join(CONFIDENCE_LEVELS) + ")"

_CONFIDENCE_LABEL_RE = re.compile(
    rf"^{_DECOR}confidence(?:\s+level)?{_DECOR}[:\-–=]\s*[*_]*\s*{_LEVEL}\b[\s\S]*$",
    re.IGNORECASE,
)
_CONFIDENCE_BADGE_RE = re.compile(
    rf"^{_DECOR}{_LEVEL}\s+confidence[*_.!\s]*$",
    re.IGNORECASE,
)
_FOLLOW_UP_RE = re.compile(
    rf"^{_DECOR}(?:follow[\s\-]?up(?:\s+question)?|ask[\s\-]?back(?:\s+question)?|quick\s+question)"
    rf"[*_]*\s*[:\-–][*_]*\s*(?P<text>.*)$",
    re.IGNORECASE,
)
_THINKING_FACE_RE = re.compile(r"^\s*\U0001f914\s*(?P<text>.+)$")
_ACTIONS_HEADING_RE = re.compile(
    rf"^{_DECOR}suggested\s+(?:next\s+)?actions?[*_]*(?:\s*:[*_]*\s*(?P<inline>.*))?\s*$",
    re.IGNORECASE,
)
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(?P<item>.+?)\s*$")


@dataclass(frozen=True)
class ParsedResponse:
    content: str
    confidence: str | None = None
    follow_up: str | None = None
    suggested_actions: tuple[str, ...] | None = None


def _clean(text: str) -> str:
    """Strip markdown emphasis and whitespace around a captured value."""
    return text.strip().strip("*_").strip()


def _collect_actions(lines: list[str], start: int, inline: str) -> tuple[list[str], int]:
    """Read the action list that follows a heading at ``lines[start]``.

    Returns ``(actions, end)`` where ``end`` is the index after the last
    consumed line.
    """
    actions: list[str] = []
    if inline:
        parts = re.split(r"\s*[|,]\s*", inline)
        actions.extend(p for p in (_clean(x) for x in parts) if p)
        return actions, start + 1

    i = start + 1
    while i < len(lines):
        line = lines[i]
        if not line.strip():
            # Blank lines inside the list are fine; stop at the first
            # non-bullet line after them.
            j = i
            while j < len(lines) and not lines[j].strip():
                j += 1
            if j < len(lines) and _BULLET_RE.match(lines[j]) and actions:
                i = j
                continue
            break
        match = _BULLET_RE.match(line)
        if not match:
            break
        item = _clean(match.group("item"))
        if item:
            actions.append(item)
        i += 1
    return actions, i


def parse_response(text: str) -> ParsedResponse:
    """Split *text* into content plus the optional structured sections."""
    if not text:
        return ParsedResponse(content="")

    try:
        lines = text.splitlines()
        kept: list[str] = []
        confidence: str | None = None
        follow_up: str | None = None
        actions: list[str] | None = None

        i = 0
        while i < len(lines):
            line = lines[i]

            match = _CONFIDENCE_LABEL_RE.match(line) or _CONFIDENCE_BADGE_RE.match(line)
            if match:
                if confidence is None:
                    confidence = match.group("level").lower()
                i += 1
                continue

            match = _FOLLOW_UP_RE.match(line) or _THINKING_FACE_RE.match(line)
            if match and _clean(match.group("text")):
                if follow_up is None:
                    follow_up = _clean(match.group("text"))
                i += 1
                continue

            match = _ACTIONS_HEADING_RE.match(line)
            if match and actions is None:
                inline = _clean(match.group("inline") or "")
                found, end = _collect_actions(lines, i, inline)
                if found:
                    actions = found
                    i = end
                    continue
                # A heading with nothing under it is dropped as well.
                i += 1
                continue

            kept.append(line)
            i += 1

        content = re.sub(r"\n{3,}", "\n\n", "\n".join(kept)).strip()
        return ParsedResponse(
            content=content,
            confidence=confidence,
            follow_up=follow_up,
            suggested_actions=tuple(actions) if actions else None,
        )
    except Exception as exc:  # noqa: BLE001
        # Malformed input must degrade to "no sections", never to a failure.
        log.warning("[PARSER] Could not parse reply (%s); using raw text.", exc)
        return ParsedResponse(content=text.strip())
