"""Chat-completion gateway used by the mentor, guardrail and verifier."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"

MOCK_PREFIX = "⚠️ OpenAI API Key가 설정되지 않았습니다."
ERROR_PREFIX = "Error calling OpenAI: "


class ChatClient(Protocol):
    """Anything that turns a list of `{role, content}` turns into assistant text."""

    def chat(self, messages: list[dict[str, str]]) -> str:
        ...


def _coerce_text(value: Any) -> str:
    """Normalize provider-specific message content shapes into text."""

    if value is None:
        return ""

    if isinstance(value, str):
        return value

    if isinstance(value, list):
        chunks: list[str] = []
        for item in value:
            if isinstance(item, str):
                chunks.append(item)
                continue
            if isinstance(item, dict):
                text = item.get("text") or item.get("content")
                if isinstance(text, str):
                    chunks.append(text)
        return "\n".join(chunks)

    return str(value)


def last_user_content(messages: list[dict[str, str]]) -> str:
    for message in reversed(messages):
        if message.get("role") == "user":
            return str(message.get("content") or "")
    return ""


def mock_response(messages: list[dict[str, str]]) -> str:
    return f"{MOCK_PREFIX} (Mock Response: {last_user_content(messages)})"


def is_gateway_failure(text: str) -> bool:
    """True for the mock and transport-error strings the gateway returns instead of raising."""

    return text.startswith(ERROR_PREFIX) or text.startswith(MOCK_PREFIX)


@dataclass
class OpenAICompatChatClient:
    """Client for OpenAI-compatible chat completion APIs.

    Failures never raise: a missing key yields a recognisable mock reply and
    transport or decoding problems come back as an `Error calling OpenAI:` string.
    """

    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    api_key: str | None = None
    timeout_sec: float = 120
    temperature: float | None = None
    extra_body: dict[str, Any] = field(default_factory=dict)

    def chat(self, messages: list[dict[str, str]]) -> str:
        if not self.api_key:
            logger.warning("No API key configured; returning mock response")
            return mock_response(messages)

        payload: dict[str, Any] = {"model": self.model, "messages": list(messages)}
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        payload.update(self.extra_body)

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        try:
            response = requests.post(
                f"{self.base_url.rstrip('/')}/chat/completions",
                json=payload,
                headers=headers,
                timeout=self.timeout_sec,
            )
        except requests.RequestException as exc:
            logger.warning("Model request failed: %s", exc)
            return f"{ERROR_PREFIX}{exc}"

        if response.status_code >= 400:
            detail = response.text[:300]
            try:
                err = response.json().get("error")
            except (ValueError, AttributeError):
                err = None
            if isinstance(err, dict) and err.get("message"):
                detail = str(err["message"])
            logger.warning("Model backend returned %s", response.status_code)
            return f"{ERROR_PREFIX}{response.status_code} {detail}"

        try:
            data = response.json()
        except ValueError as exc:
            return f"{ERROR_PREFIX}invalid JSON response ({exc})"

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            return f"{ERROR_PREFIX}response missing choices"

        message = choices[0].get("message") or {}
        return _coerce_text(message.get("content"))
