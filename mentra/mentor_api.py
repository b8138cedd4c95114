"""
Mentor backend HTTP client.

The backend exposes one streaming and three single-shot endpoints:

* ``POST /api/chat``               — normal chat, plain-text streamed reply
* ``POST /api/chat/2min-concept``  — timed concept explainer (JSON)
* ``POST /api/chat/weakness``      — weakness analysis of the conversation (JSON)
* ``POST /api/chat/deep-dive``     — structured deep dive (JSON)

Failures of any kind (non-2xx status, an ``{"error": ...}`` body, a payload
missing required fields) are raised as :class:`MentorAPIError` so the
conversation engine has a single exception type to turn into an apology.
"""

import json
import logging
from typing import Iterator

import requests

from .models import ConceptCard, DeepDive, ExplainMode, Language, WeaknessReport

log = logging.getLogger("mentra")

CHAT_PATH = "/api/chat"
CONCEPT_PATH = "/api/chat/2min-concept"
WEAKNESS_PATH = "/api/chat/weakness"
DEEP_DIVE_PATH = "/api/chat/deep-dive"

#: Seconds to wait for the backend before giving up.
REQUEST_TIMEOUT: int = 120

CONCEPT_FIELDS = ("concept", "example", "takeaway")
WEAKNESS_FIELDS = ("weakAreas", "whyWeak", "nextActions", "confidence")
DEEP_DIVE_FIELDS = (
    "overview", "whyItMatters", "stepByStep", "example",
    "commonMistakes", "memoryTrick", "takeaway",
)


# ---------------------------------------------------------------------------
# Error-handling helpers
# ---------------------------------------------------------------------------

class MentorAPIError(Exception):
    """API error that keeps diagnostic context for the log.

    Attributes
    ----------
    message : str
        Human-readable reason (what the user is shown).
    status_code : int | None
        HTTP status code (``None`` for non-HTTP errors).
    endpoint : str
        The URL that was called.
    response_body : str
        First 500 chars of the response body.
    payload_summary : dict | None
        Summarised request payload for reproducing the issue.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
        response_body: str = "",
        payload_summary: dict | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.endpoint = endpoint
        self.response_body = response_body
        self.payload_summary = payload_summary
        super().__init__(message)

    def describe(self) -> str:
        """Multi-line diagnostic text for logs."""
        parts = [self.message]
        if self.status_code is not None:
            parts.append(f"  HTTP {self.status_code}")
        if self.endpoint:
            parts.append(f"  Endpoint: {self.endpoint}")
        if self.response_body:
            parts.append(f"  Response: {self.response_body[:500]}")
        if self.payload_summary:
            parts.append(f"  Payload keys: {list(self.payload_summary.keys())}")
        return "\n".join(parts)


def _extract_error_detail(response: requests.Response) -> str:
    """Return the backend's error string, or a short description of the body.

    The mentor backend answers failures with ``{"error": "..."}``; other
    proxies in between may send ``{"error": {"message": ...}}`` or HTML.
    """
    try:
        body = response.json()
    except ValueError:
        text = response.text or ""
        return text[:500] if text.strip() else f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("error"):
        err = body["error"]
        if isinstance(err, dict):
            return str(err.get("message", err))
        return str(err)
    return f"HTTP {response.status_code}"


def _summarise_payload(payload: dict) -> dict:
    """Return a compact summary of a request payload for diagnostics."""
    summary = {}
    for k, v in payload.items():
        if k == "messages":
            summary["messages"] = f"[{len(v)} messages]"
        elif isinstance(v, str) and len(v) > 80:
            summary[k] = v[:80] + "…"
        else:
            summary[k] = v
    return summary


def _require_fields(data, fields: tuple[str, ...], endpoint: str) -> dict:
    """Reject payloads that are not objects or lack any of *fields*."""
    if not isinstance(data, dict):
        raise MentorAPIError(
            "Malformed response from the mentor service.",
            endpoint=endpoint,
            response_body=json.dumps(data)[:500] if data is not None else "",
        )
    if data.get("error"):
        raise MentorAPIError(str(data["error"]), endpoint=endpoint)
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise MentorAPIError(
            f"Malformed response from the mentor service "
            f"(missing {', '.join(missing)}).",
            endpoint=endpoint,
            response_body=json.dumps(data)[:500],
        )
    return data


def _require_lists(data: dict, fields: tuple[str, ...], endpoint: str) -> None:
    bad = [f for f in fields if not isinstance(data.get(f), list)]
    if bad:
        raise MentorAPIError(
            f"Malformed response from the mentor service "
            f"(expected a list for {', '.join(bad)}).",
            endpoint=endpoint,
            response_body=json.dumps(data)[:500],
        )


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def _build_chat_payload(messages: list[dict], language: Language,
                        first_name: str | None) -> dict:
    payload: dict = {
        "messages": messages,
        "language": Language.parse(language).value,
    }
    if first_name:
        payload["firstName"] = first_name
    return payload


def _build_concept_payload(topic: str, language: Language,
                           first_name: str | None,
                           explain_mode: ExplainMode) -> dict:
    payload: dict = {
        "topic": topic,
        "language": Language.parse(language).value,
        "mode": ExplainMode.parse(explain_mode).value,
    }
    if first_name:
        payload["firstName"] = first_name
    return payload


def _build_history_payload(messages: list[dict], language: Language) -> dict:
    return {
        "messages": messages,
        "language": Language.parse(language).value,
    }


class MentorClient:
    """Thin wrapper around the mentor backend endpoints."""

    def __init__(self, base_url: str, access_token: str | None = None,
                 timeout: float = REQUEST_TIMEOUT,
                 session: requests.Session | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._timeout = timeout
        self._http = session or requests.Session()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    def _post(self, path: str, payload: dict, *, stream: bool = False) -> requests.Response:
        url = self._base_url + path
        log.debug("[API] POST %s  stream=%s  payload=%s",
                  url, stream, _summarise_payload(payload))
        try:
            response = self._http.post(
                url,
                headers=self._headers(),
                json=payload,
                stream=stream,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise MentorAPIError(
                f"Could not reach the mentor service ({type(exc).__name__}: {exc})",
                endpoint=url,
                payload_summary=_summarise_payload(payload),
            ) from exc

        log.debug("[API] POST %s → %d", url, response.status_code)
        if not response.ok:
            detail = _extract_error_detail(response)
            raise MentorAPIError(
                detail,
                status_code=response.status_code,
                endpoint=url,
                response_body=(response.text or "")[:500],
                payload_summary=_summarise_payload(payload),
            )
        return response

    def _post_json(self, path: str, payload: dict, fields: tuple[str, ...]) -> dict:
        response = self._post(path, payload)
        url = self._base_url + path
        try:
            data = response.json()
        except ValueError as exc:
            raise MentorAPIError(
                "The mentor service returned a non-JSON response.",
                status_code=response.status_code,
                endpoint=url,
                response_body=(response.text or "")[:500],
            ) from exc
        return _require_fields(data, fields, url)

    @staticmethod
    def _iter_text(response: requests.Response) -> Iterator[str]:
        """Yield decoded text chunks until the server closes the stream."""
        # Missing charset on a text/plain stream would make requests guess
        # ISO-8859-1; the backend always sends UTF-8.
        if not response.encoding or response.encoding.lower() == "iso-8859-1":
            response.encoding = "utf-8"
        try:
            for chunk in response.iter_content(chunk_size=None, decode_unicode=True):
                if chunk:
                    yield chunk
        finally:
            response.close()

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def stream_chat(self, messages: list[dict], language: Language,
                    first_name: str | None = None) -> Iterator[str]:
        """Open the normal-mode chat stream.

        The request is sent eagerly, so HTTP errors surface here as
        :class:`MentorAPIError`; the returned iterator yields text deltas and
        ends when the server closes the stream.  Transport errors while
        iterating propagate as :mod:`requests` exceptions.
        """
        payload = _build_chat_payload(messages, language, first_name)
        response = self._post(CHAT_PATH, payload, stream=True)
        return self._iter_text(response)

    def explain_concept(self, topic: str, language: Language,
                        first_name: str | None = None,
                        explain_mode: ExplainMode = ExplainMode.CORE) -> ConceptCard:
        """Ask for a two-minute explanation of *topic*."""
        payload = _build_concept_payload(topic, language, first_name, explain_mode)
        data = self._post_json(CONCEPT_PATH, payload, CONCEPT_FIELDS)
        return ConceptCard(
            concept=str(data["concept"]),
            example=str(data["example"]),
            takeaway=str(data["takeaway"]),
            topic=topic,
        )

    def analyze_weakness(self, messages: list[dict],
                         language: Language) -> WeaknessReport:
        """Ask for the weak areas visible in *messages*."""
        payload = _build_history_payload(messages, language)
        data = self._post_json(WEAKNESS_PATH, payload, WEAKNESS_FIELDS)
        _require_lists(data, ("weakAreas", "nextActions"), self._base_url + WEAKNESS_PATH)
        try:
            return WeaknessReport.from_dict(data)
        except (TypeError, ValueError) as exc:
            raise MentorAPIError(
                f"Malformed weakness analysis: {exc}",
                endpoint=self._base_url + WEAKNESS_PATH,
            ) from exc

    def deep_dive(self, messages: list[dict], language: Language) -> DeepDive:
        """Ask for a structured deep dive into the current conversation."""
        payload = _build_history_payload(messages, language)
        data = self._post_json(DEEP_DIVE_PATH, payload, DEEP_DIVE_FIELDS)
        _require_lists(data, ("stepByStep", "commonMistakes"),
                       self._base_url + DEEP_DIVE_PATH)
        try:
            return DeepDive.from_dict(data)
        except (TypeError, ValueError) as exc:
            raise MentorAPIError(
                f"Malformed deep dive: {exc}",
                endpoint=self._base_url + DEEP_DIVE_PATH,
            ) from exc
