"""
Conversation data model.

A conversation is an ordered list of immutable :class:`Turn` objects.  The
only turn that ever changes is the assistant turn under streaming
reconciliation, and even that one is never mutated in place: the engine
replaces the turn at its index with an updated copy (same ``id``) after
every chunk, and swaps in the parsed, finalized copy when the stream ends.

Turns serialise to the JSON shape the history view already understands
(``timestamp``, ``type``, ``conceptData`` …), so records written by older
clients still load.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

log = logging.getLogger("mentra")


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class TurnKind(str, Enum):
    """Which structured renderer applies to a turn."""

    PLAIN = "plain"
    CONCEPT = "concept"
    WEAKNESS = "weakness"
    DEEP_DIVE = "deep-dive"


class Mode(str, Enum):
    """Interaction modes; the value is what history metadata records."""

    NORMAL = "normal"
    CONCEPT = "2min-concept"
    WEAKNESS = "weakness"
    DEEP_DIVE = "deep-dive"


class EngineState(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting-response"
    STREAMING = "streaming"


class Language(str, Enum):
    ENGLISH = "English"
    HINGLISH = "Hinglish"
    GUJARATI = "Gujarati"

    @classmethod
    def parse(cls, value) -> "Language":
        """Map arbitrary input to a language; unknown values → Hinglish."""
        for lang in cls:
            if value == lang or value == lang.value:
                return lang
        return cls.HINGLISH


class ExplainMode(str, Enum):
    """Sub-modes of the timed concept explainer."""

    CORE = "core"
    EXAM = "exam"
    FRIEND = "friend"
    WRONG = "wrong"

    @classmethod
    def parse(cls, value) -> "ExplainMode":
        for mode in cls:
            if value == mode or value == mode.value:
                return mode
        return cls.CORE


class ModuleType(str, Enum):
    """History buckets shown in the history view."""

    CHAT = "chat"
    NOTES = "notes"
    CAREER = "career"
    EXAM_PLANNER = "exam_planner"
    CONFUSION = "confusion"


CONFIDENCE_LEVELS: tuple[str, ...] = ("high", "medium", "low")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Structured payloads
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PlainResult:
    """Fields extracted from a free-text reply by the response parser."""

    confidence: str | None = None
    follow_up: str | None = None
    suggested_actions: tuple[str, ...] | None = None


@dataclass(frozen=True)
class ConceptCard:
    concept: str
    example: str
    takeaway: str
    topic: str = ""

    def to_dict(self) -> dict:
        return {
            "concept": self.concept,
            "example": self.example,
            "takeaway": self.takeaway,
            "topic": self.topic,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConceptCard":
        return cls(
            concept=str(data["concept"]),
            example=str(data["example"]),
            takeaway=str(data["takeaway"]),
            topic=str(data.get("topic") or ""),
        )


@dataclass(frozen=True)
class WeaknessReport:
    weak_areas: tuple[str, ...]
    why_weak: str
    next_actions: tuple[str, ...]
    confidence: str

    def to_dict(self) -> dict:
        return {
            "weakAreas": list(self.weak_areas),
            "whyWeak": self.why_weak,
            "nextActions": list(self.next_actions),
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WeaknessReport":
        return cls(
            weak_areas=tuple(str(a) for a in data["weakAreas"]),
            why_weak=str(data["whyWeak"]),
            next_actions=tuple(str(a) for a in data["nextActions"]),
            confidence=str(data["confidence"]).lower(),
        )


@dataclass(frozen=True)
class DeepDive:
    overview: str
    why_it_matters: str
    step_by_step: tuple[str, ...]
    example: str
    common_mistakes: tuple[str, ...]
    memory_trick: str
    takeaway: str

    def to_dict(self) -> dict:
        return {
            "overview": self.overview,
            "whyItMatters": self.why_it_matters,
            "stepByStep": list(self.step_by_step),
            "example": self.example,
            "commonMistakes": list(self.common_mistakes),
            "memoryTrick": self.memory_trick,
            "takeaway": self.takeaway,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DeepDive":
        return cls(
            overview=str(data["overview"]),
            why_it_matters=str(data["whyItMatters"]),
            step_by_step=tuple(str(s) for s in data["stepByStep"]),
            example=str(data["example"]),
            common_mistakes=tuple(str(s) for s in data["commonMistakes"]),
            memory_trick=str(data["memoryTrick"]),
            takeaway=str(data["takeaway"]),
        )


# Stored ``type`` value → (kind, key of the structured payload, payload class)
_STRUCTURED_KEYS = {
    TurnKind.CONCEPT: ("conceptData", ConceptCard),
    TurnKind.WEAKNESS: ("weaknessData", WeaknessReport),
    TurnKind.DEEP_DIVE: ("deepDiveData", DeepDive),
}

# Older records call plain turns "normal".
_STORED_TYPES = {
    "normal": TurnKind.PLAIN,
    "plain": TurnKind.PLAIN,
    "concept": TurnKind.CONCEPT,
    "weakness": TurnKind.WEAKNESS,
    "deep-dive": TurnKind.DEEP_DIVE,
}


# ---------------------------------------------------------------------------
# Turn
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Turn:
    """One message in a conversation."""

    role: Role
    content: str = ""
    kind: TurnKind = TurnKind.PLAIN
    structured: PlainResult | ConceptCard | WeaknessReport | DeepDive | None = None
    created_at: str = field(default_factory=_now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @classmethod
    def user(cls, content: str) -> "Turn":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str = "", kind: TurnKind = TurnKind.PLAIN,
                  structured=None) -> "Turn":
        return cls(role=Role.ASSISTANT, content=content, kind=kind,
                   structured=structured)

    def as_message(self) -> dict:
        """Return the ``{"role", "content"}`` pair sent to the backend."""
        return {"role": self.role.value, "content": self.content}

    def to_dict(self) -> dict:
        data: dict = {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.created_at,
            "type": "normal" if self.kind is TurnKind.PLAIN else self.kind.value,
        }
        if isinstance(self.structured, PlainResult):
            if self.structured.confidence:
                data["confidence"] = self.structured.confidence
            if self.structured.follow_up:
                data["askBackQuestion"] = self.structured.follow_up
            if self.structured.suggested_actions:
                data["suggestedActions"] = list(self.structured.suggested_actions)
        elif self.structured is not None:
            key, _cls = _STRUCTURED_KEYS[self.kind]
            data[key] = self.structured.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Turn":
        """Rebuild a turn from its stored form.

        Raises ``ValueError`` / ``KeyError`` / ``TypeError`` on records that
        cannot be interpreted; :func:`turns_from_dicts` skips those.
        """
        role = Role(data["role"])
        kind = _STORED_TYPES.get(data.get("type") or "normal", TurnKind.PLAIN)
        structured = None
        if kind is TurnKind.PLAIN:
            actions = data.get("suggestedActions")
            confidence = data.get("confidence")
            follow_up = data.get("askBackQuestion")
            if confidence or follow_up or actions:
                structured = PlainResult(
                    confidence=confidence,
                    follow_up=follow_up,
                    suggested_actions=tuple(actions) if actions else None,
                )
        else:
            key, payload_cls = _STRUCTURED_KEYS[kind]
            if data.get(key):
                structured = payload_cls.from_dict(data[key])
        kwargs = {}
        if data.get("timestamp"):
            kwargs["created_at"] = str(data["timestamp"])
        if data.get("id"):
            kwargs["id"] = str(data["id"])
        return cls(
            role=role,
            content=str(data.get("content") or ""),
            kind=kind,
            structured=structured,
            **kwargs,
        )


def turns_to_dicts(turns) -> list[dict]:
    return [t.to_dict() for t in turns]


def turns_from_dicts(items) -> list[Turn]:
    """Decode stored turns, skipping entries that cannot be read."""
    turns: list[Turn] = []
    for i, item in enumerate(items or []):
        try:
            turns.append(Turn.from_dict(item))
        except (KeyError, ValueError, TypeError, AttributeError) as exc:
            log.warning("[HISTORY] Skipping unreadable stored turn #%d: %s",
                        i, exc)
    return turns
