"""Tests for turn serialisation and enum parsing."""

import unittest

from mentra.models import (
    ConceptCard,
    DeepDive,
    ExplainMode,
    Language,
    PlainResult,
    Role,
    Turn,
    TurnKind,
    WeaknessReport,
    turns_from_dicts,
    turns_to_dicts,
)


class TestEnums(unittest.TestCase):

    def test_language_fallback(self) -> None:
        self.assertIs(Language.parse("English"), Language.ENGLISH)
        self.assertIs(Language.parse(Language.GUJARATI), Language.GUJARATI)
        self.assertIs(Language.parse("Klingon"), Language.HINGLISH)
        self.assertIs(Language.parse(None), Language.HINGLISH)

    def test_explain_mode_fallback(self) -> None:
        self.assertIs(ExplainMode.parse("exam"), ExplainMode.EXAM)
        self.assertIs(ExplainMode.parse("whatever"), ExplainMode.CORE)


class TestTurnSerialisation(unittest.TestCase):

    def test_plain_turn_uses_stored_field_names(self) -> None:
        turn = Turn.assistant("Body", structured=PlainResult(
            confidence="high", follow_up="More?", suggested_actions=("Quiz me",)))
        data = turn.to_dict()
        self.assertEqual(data["type"], "normal")
        self.assertEqual(data["confidence"], "high")
        self.assertEqual(data["askBackQuestion"], "More?")
        self.assertEqual(data["suggestedActions"], ["Quiz me"])
        self.assertEqual(data["timestamp"], turn.created_at)
        self.assertEqual(Turn.from_dict(data), turn)

    def test_structured_kinds_survive_storage(self) -> None:
        turns = [
            Turn.user("q"),
            Turn.assistant(kind=TurnKind.CONCEPT,
                           structured=ConceptCard("c", "e", "t", topic="Gravity")),
            Turn.assistant(kind=TurnKind.WEAKNESS,
                           structured=WeaknessReport(("a",), "w", ("n",), "low")),
            Turn.assistant(kind=TurnKind.DEEP_DIVE,
                           structured=DeepDive("o", "w", ("s",), "e", ("m",), "t", "k")),
        ]
        data = turns_to_dicts(turns)
        self.assertEqual(data[1]["conceptData"]["topic"], "Gravity")
        self.assertEqual(data[2]["weaknessData"]["weakAreas"], ["a"])
        self.assertEqual(data[3]["deepDiveData"]["memoryTrick"], "t")
        self.assertEqual(turns_from_dicts(data), turns)

    def test_bad_entries_are_skipped(self) -> None:
        good = Turn.user("kept").to_dict()
        with self.assertLogs("mentra", level="WARNING"):
            turns = turns_from_dicts([{"role": "robot"}, "junk", good])
        self.assertEqual([t.content for t in turns], ["kept"])

    def test_as_message(self) -> None:
        self.assertEqual(Turn.user("hi").as_message(), {"role": "user", "content": "hi"})
        self.assertIs(Turn.assistant().role, Role.ASSISTANT)


if __name__ == "__main__":
    unittest.main()
