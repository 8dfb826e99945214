"""Parsing utilities for model replies and sandbox output."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

OUTPUT_SENTINEL = "===CODEGENIE_OUTPUT_START==="
RESULT_LABEL = "👉 결과값: "
STRATEGY_TAG = "[UPDATE_STRATEGY:"

FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", flags=re.IGNORECASE | re.DOTALL)


class TestCaseProtocolError(ValueError):
    """Raised when a generated test-case payload does not follow the JSON contract."""

    __test__ = False


@dataclass(frozen=True)
class GeneratedCase:
    input: str
    expected: str
    reason: str | None = None


@dataclass(frozen=True)
class SplitOutput:
    validation: str
    display: str


@dataclass(frozen=True)
class StrategyUpdate:
    text: str
    anchor: str | None
    malformed: bool = False


def strip_code_fence(text: str) -> str:
    """Remove a triple-backtick wrapper (optionally tagged `json`) around a payload."""

    match = FENCE_RE.search(text or "")
    if match:
        return match.group(1).strip()
    return (text or "").strip()


def normalize_output(text: str | None) -> str:
    return (text or "").replace("\r\n", "\n").strip()


def outputs_match(expected: str | None, actual: str | None) -> bool:
    """Compare judge output the way the runner does: empty expectations always pass."""

    if not expected:
        return True
    return normalize_output(expected) == normalize_output(actual)


def split_sentinel_output(stdout: str) -> SplitOutput:
    """Separate user log lines from the harness result printed after the sentinel."""

    if OUTPUT_SENTINEL not in stdout:
        trimmed = stdout.strip()
        return SplitOutput(validation=trimmed, display=trimmed)

    logs, _, value = stdout.partition(OUTPUT_SENTINEL)
    logs = logs.strip()
    value = value.strip()
    if logs:
        return SplitOutput(validation=value, display=f"{logs}\n\n{RESULT_LABEL}{value}")
    return SplitOutput(validation=value, display=value)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


def parse_test_cases(text: str) -> list[GeneratedCase]:
    """Parse the generator's `[{"input": ..., "expected": ...}, ...]` reply."""

    payload = strip_code_fence(text)
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise TestCaseProtocolError(f"invalid JSON: {exc.msg}") from exc

    if not isinstance(data, list):
        raise TestCaseProtocolError("top-level value must be a JSON array")
    if not data:
        raise TestCaseProtocolError("no test cases were generated")

    cases: list[GeneratedCase] = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise TestCaseProtocolError(f"case {index} is not an object")
        if "input" not in item:
            raise TestCaseProtocolError(f"case {index} has no 'input'")

        expected = item.get("expected", item.get("expectedOutput", item.get("expected_output")))
        if expected is None:
            raise TestCaseProtocolError(f"case {index} has no 'expected'")
        expected = _as_text(expected)
        if not expected.strip():
            raise TestCaseProtocolError(f"case {index} has a blank 'expected'")

        reason = item.get("reason") or item.get("explanation")
        cases.append(
            GeneratedCase(
                input=_as_text(item["input"]),
                expected=expected,
                reason=str(reason) if reason else None,
            )
        )
    return cases


def extract_strategy_update(text: str) -> StrategyUpdate:
    """Pull the first `[UPDATE_STRATEGY: ...]` tag out of an assistant reply.

    Only the first `]` after the tag prefix closes it, so strategies that contain
    a closing bracket are truncated. A prefix without a closing bracket leaves
    the text untouched and is reported as malformed.
    """

    start = text.find(STRATEGY_TAG)
    if start < 0:
        return StrategyUpdate(text=text, anchor=None)

    end = text.find("]", start)
    if end < 0:
        return StrategyUpdate(text=text, anchor=None, malformed=True)

    anchor = text[start + len(STRATEGY_TAG) : end].strip()
    visible = text[:start] + text[end + 1 :]
    return StrategyUpdate(text=visible, anchor=anchor or None, malformed=not anchor)
