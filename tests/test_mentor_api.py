"""Tests for the mentor backend client.

The HTTP session is a mock; no real requests are made.
"""

import unittest
from unittest.mock import MagicMock

import requests

from mentra.mentor_api import (
    CHAT_PATH,
    CONCEPT_PATH,
    DEEP_DIVE_PATH,
    WEAKNESS_PATH,
    MentorAPIError,
    MentorClient,
    _build_chat_payload,
    _build_concept_payload,
    _extract_error_detail,
    _summarise_payload,
)
from mentra.models import ExplainMode, Language

DEEP_DIVE_BODY = {
    "overview": "o", "whyItMatters": "w", "stepByStep": ["1", "2"],
    "example": "e", "commonMistakes": ["m"], "memoryTrick": "t", "takeaway": "k",
}


def make_response(status: int = 200, body=None, text: str = "", chunks=None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = text
    resp.encoding = None
    if isinstance(body, Exception):
        resp.json.side_effect = body
    else:
        resp.json.return_value = body
    resp.iter_content.return_value = iter(chunks or [])
    return resp


class ClientTestCase(unittest.TestCase):

    def setUp(self) -> None:
        self.http = MagicMock()
        self.client = MentorClient("http://mentor.test/", access_token="tok",
                                   timeout=5, session=self.http)

    def posted(self) -> tuple[str, dict]:
        args, kwargs = self.http.post.call_args
        return args[0], kwargs


class TestPayloads(unittest.TestCase):

    def test_chat_payload(self) -> None:
        msgs = [{"role": "user", "content": "hi"}]
        self.assertEqual(
            _build_chat_payload(msgs, Language.ENGLISH, "Asha"),
            {"messages": msgs, "language": "English", "firstName": "Asha"},
        )
        self.assertNotIn("firstName", _build_chat_payload(msgs, "bogus", None))
        self.assertEqual(_build_chat_payload(msgs, "bogus", None)["language"], "Hinglish")

    def test_concept_payload(self) -> None:
        self.assertEqual(
            _build_concept_payload("Gravity", Language.GUJARATI, None, ExplainMode.FRIEND),
            {"topic": "Gravity", "language": "Gujarati", "mode": "friend"},
        )

    def test_summarise_payload(self) -> None:
        summary = _summarise_payload({"messages": [1, 2, 3], "topic": "x" * 100})
        self.assertEqual(summary["messages"], "[3 messages]")
        self.assertTrue(summary["topic"].endswith("…"))


class TestErrorDetail(unittest.TestCase):

    def test_error_string(self) -> None:
        resp = make_response(400, {"error": "Topic is required"})
        self.assertEqual(_extract_error_detail(resp), "Topic is required")

    def test_nested_error(self) -> None:
        resp = make_response(500, {"error": {"message": "boom"}})
        self.assertEqual(_extract_error_detail(resp), "boom")

    def test_non_json_body(self) -> None:
        resp = make_response(502, ValueError("no json"), text="<html>Bad gateway</html>")
        self.assertEqual(_extract_error_detail(resp), "<html>Bad gateway</html>")
        resp = make_response(504, ValueError("no json"), text="")
        self.assertEqual(_extract_error_detail(resp), "HTTP 504")


class TestStreamChat(ClientTestCase):

    def test_yields_chunks_and_sends_request(self) -> None:
        resp = make_response(chunks=["Hel", "", "lo"])
        self.http.post.return_value = resp

        chunks = list(self.client.stream_chat([{"role": "user", "content": "hi"}],
                                              Language.HINGLISH, "Asha"))

        self.assertEqual(chunks, ["Hel", "lo"])
        url, kwargs = self.posted()
        self.assertEqual(url, "http://mentor.test" + CHAT_PATH)
        self.assertTrue(kwargs["stream"])
        self.assertEqual(kwargs["timeout"], 5)
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer tok")
        self.assertEqual(kwargs["json"]["firstName"], "Asha")
        self.assertEqual(resp.encoding, "utf-8")
        resp.close.assert_called_once()

    def test_http_error_raised_before_iteration(self) -> None:
        self.http.post.return_value = make_response(429, {"error": "Rate limit exceeded"})
        with self.assertRaises(MentorAPIError) as ctx:
            self.client.stream_chat([], Language.ENGLISH)
        self.assertEqual(ctx.exception.message, "Rate limit exceeded")
        self.assertEqual(ctx.exception.status_code, 429)
        self.assertIn("HTTP 429", ctx.exception.describe())

    def test_connection_error_wrapped(self) -> None:
        self.http.post.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(MentorAPIError) as ctx:
            self.client.stream_chat([], Language.ENGLISH)
        self.assertIn("Could not reach the mentor service", ctx.exception.message)

    def test_no_token_no_auth_header(self) -> None:
        client = MentorClient("http://mentor.test", session=self.http)
        self.http.post.return_value = make_response(chunks=[])
        list(client.stream_chat([], Language.ENGLISH))
        self.assertNotIn("Authorization", self.posted()[1]["headers"])


class TestSingleShotEndpoints(ClientTestCase):

    def test_explain_concept(self) -> None:
        self.http.post.return_value = make_response(
            body={"concept": "c", "example": "e", "takeaway": "t"})
        card = self.client.explain_concept("Gravity", Language.ENGLISH,
                                           explain_mode=ExplainMode.WRONG)
        self.assertEqual((card.concept, card.example, card.takeaway, card.topic),
                         ("c", "e", "t", "Gravity"))
        url, kwargs = self.posted()
        self.assertEqual(url, "http://mentor.test" + CONCEPT_PATH)
        self.assertEqual(kwargs["json"]["mode"], "wrong")
        self.assertFalse(kwargs["stream"])

    def test_missing_field_is_malformed(self) -> None:
        self.http.post.return_value = make_response(body={"concept": "c", "example": "e"})
        with self.assertRaises(MentorAPIError) as ctx:
            self.client.explain_concept("Gravity", Language.ENGLISH)
        self.assertIn("missing takeaway", ctx.exception.message)

    def test_error_body_with_200(self) -> None:
        self.http.post.return_value = make_response(body={"error": "Quota exhausted"})
        with self.assertRaises(MentorAPIError) as ctx:
            self.client.explain_concept("Gravity", Language.ENGLISH)
        self.assertEqual(ctx.exception.message, "Quota exhausted")

    def test_non_json_success(self) -> None:
        self.http.post.return_value = make_response(body=ValueError("x"), text="oops")
        with self.assertRaises(MentorAPIError):
            self.client.explain_concept("Gravity", Language.ENGLISH)

    def test_analyze_weakness(self) -> None:
        self.http.post.return_value = make_response(body={
            "weakAreas": ["Units"], "whyWeak": "w",
            "nextActions": ["Practise"], "confidence": "High",
        })
        report = self.client.analyze_weakness([], Language.ENGLISH)
        self.assertEqual(report.weak_areas, ("Units",))
        self.assertEqual(report.confidence, "high")
        self.assertEqual(self.posted()[0], "http://mentor.test" + WEAKNESS_PATH)

    def test_weakness_lists_required(self) -> None:
        self.http.post.return_value = make_response(body={
            "weakAreas": "Units", "whyWeak": "w",
            "nextActions": ["Practise"], "confidence": "high",
        })
        with self.assertRaises(MentorAPIError):
            self.client.analyze_weakness([], Language.ENGLISH)

    def test_deep_dive(self) -> None:
        self.http.post.return_value = make_response(body=DEEP_DIVE_BODY)
        dive = self.client.deep_dive([{"role": "user", "content": "q"}], Language.ENGLISH)
        self.assertEqual(dive.step_by_step, ("1", "2"))
        self.assertEqual(dive.memory_trick, "t")
        url, kwargs = self.posted()
        self.assertEqual(url, "http://mentor.test" + DEEP_DIVE_PATH)
        self.assertEqual(kwargs["json"], {
            "messages": [{"role": "user", "content": "q"}], "language": "English",
        })


if __name__ == "__main__":
    unittest.main()
