"""Keyword intent check used to decide whether a voice utterance auto-sends."""

import re

GREETING = "greeting"
COMMAND = "command"
STRESS = "stress"
STUDY = "study"

GREETING_PATTERNS: tuple[str, ...] = (
    "hi", "hello", "hey", "namaste", "kaise ho", "kya haal", "sup", "yo",
)
COMMAND_PATTERNS: tuple[str, ...] = (
    "explain in 2 minutes", "analyze", "bana de", "fix kar", "short me",
)
STRESS_PATTERNS: tuple[str, ...] = (
    "samajh nahi", "confused", "darr", "tension", "yaad nahi", "marks kam",
)

#: Delay before an auto-triggered send (milliseconds).
AUTO_SEND_DELAY_MS: int = 500


def _matches(text: str, patterns) -> bool:
    # Word boundaries keep "hi" from firing on "this" or "which".
    return any(re.search(rf"\b{re.escape(p)}\b", text) for p in patterns)


def classify_intent(text: str) -> str:
    """Return ``greeting``, ``command``, ``stress`` or ``study`` for *text*."""
    lower = text.lower()
    if _matches(lower, GREETING_PATTERNS):
        return GREETING
    if _matches(lower, COMMAND_PATTERNS):
        return COMMAND
    if _matches(lower, STRESS_PATTERNS):
        return STRESS
    return STUDY


def should_auto_send(intent: str) -> bool:
    return intent in (GREETING, COMMAND)
