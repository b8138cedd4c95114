"""Tests for the reply section parser."""

import unittest

from mentra.models import CONFIDENCE_LEVELS
from mentra.response_parser import ParsedResponse, parse_response


class TestParseResponse(unittest.TestCase):

    def test_plain_text_passes_through(self) -> None:
        result = parse_response("Mitochondria are the powerhouse of the cell.")
        self.assertEqual(result, ParsedResponse(
            content="Mitochondria are the powerhouse of the cell.",
        ))

    def test_empty_text(self) -> None:
        self.assertEqual(parse_response(""), ParsedResponse(content=""))

    def test_all_sections_extracted(self) -> None:
        text = (
            "Osmosis moves water across a membrane.\n\n"
            "Confidence: Medium\n"
            "Follow-up: Should we compare it with diffusion?\n\n"
            "Suggested Actions:\n"
            "- 📅 Add to Study Plan\n"
            "- Go Deeper\n"
        )
        result = parse_response(text)
        self.assertEqual(result.content, "Osmosis moves water across a membrane.")
        self.assertEqual(result.confidence, "medium")
        self.assertEqual(result.follow_up, "Should we compare it with diffusion?")
        self.assertEqual(result.suggested_actions, ("📅 Add to Study Plan", "Go Deeper"))

    def test_badge_line_and_thinking_face(self) -> None:
        text = "✅ High Confidence\nAtoms are mostly empty space.\n🤔 Want the Rutherford experiment?"
        result = parse_response(text)
        self.assertEqual(result.confidence, "high")
        self.assertEqual(result.follow_up, "Want the Rutherford experiment?")
        self.assertEqual(result.content, "Atoms are mostly empty space.")

    def test_emoji_decorated_actions_heading(self) -> None:
        for heading in ("⏭️ Suggested Actions:", "4️⃣ Suggested Actions:"):
            with self.subTest(heading=heading):
                text = (
                    "Answer body.\n\n"
                    f"{heading}\n"
                    "- 📅 Create Monthly Plan\n"
                    "- 🧠 Analyze Weak Skills"
                )
                result = parse_response(text)
                self.assertEqual(result.content, "Answer body.")
                self.assertEqual(result.suggested_actions,
                                 ("📅 Create Monthly Plan", "🧠 Analyze Weak Skills"))

    def test_emoji_decorated_confidence_and_follow_up(self) -> None:
        text = "Answer body.\n➡️ Confidence: Low\n↪️ Follow-up: Shall we try an example?"
        result = parse_response(text)
        self.assertEqual(result.content, "Answer body.")
        self.assertEqual(result.confidence, "low")
        self.assertEqual(result.follow_up, "Shall we try an example?")

    def test_every_confidence_level_is_recognised(self) -> None:
        for level in CONFIDENCE_LEVELS:
            with self.subTest(level=level):
                result = parse_response(f"Body.\nConfidence: {level.title()}")
                self.assertEqual(result.confidence, level)
                self.assertEqual(result.content, "Body.")

    def test_markdown_decorated_labels(self) -> None:
        text = "Answer body.\n\n**Confidence:** Low\n**Ask-back:** What did your tutor say?"
        result = parse_response(text)
        self.assertEqual(result.confidence, "low")
        self.assertEqual(result.follow_up, "What did your tutor say?")
        self.assertEqual(result.content, "Answer body.")

    def test_inline_actions(self) -> None:
        result = parse_response("Body\nSuggested Actions: Quiz me | Make notes")
        self.assertEqual(result.suggested_actions, ("Quiz me", "Make notes"))
        self.assertEqual(result.content, "Body")

    def test_first_occurrence_wins(self) -> None:
        text = "Body\nConfidence: High\nConfidence: Low"
        self.assertEqual(parse_response(text).confidence, "high")

    def test_sentence_mentioning_confidence_is_kept(self) -> None:
        text = "Practice builds confidence before exams."
        result = parse_response(text)
        self.assertIsNone(result.confidence)
        self.assertEqual(result.content, text)

    def test_heading_without_items_yields_no_actions(self) -> None:
        result = parse_response("Body text\n\nSuggested Actions:\n\nThanks!")
        self.assertIsNone(result.suggested_actions)
        self.assertIn("Thanks!", result.content)

    def test_collapses_blank_runs_left_by_removed_lines(self) -> None:
        text = "Line one\n\nConfidence: High\n\n\nLine two"
        self.assertEqual(parse_response(text).content, "Line one\n\nLine two")


if __name__ == "__main__":
    unittest.main()
