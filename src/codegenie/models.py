"""Conversation, problem and execution data model."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any

MODE_UNDERSTANDING = "understanding"
MODE_UNDERSTANDING_SUMMARY = "understanding_summary"
MODE_UNDERSTANDING_TRACE = "understanding_trace"
MODE_UNDERSTANDING_HINT = "understanding_hint"
MODE_SOLUTION = "solution"
MODE_COUNTEREXAMPLE = "counterexample"
MODE_DEBUGGING = "debugging"

MODES = (
    MODE_UNDERSTANDING,
    MODE_UNDERSTANDING_SUMMARY,
    MODE_UNDERSTANDING_TRACE,
    MODE_UNDERSTANDING_HINT,
    MODE_SOLUTION,
    MODE_COUNTEREXAMPLE,
    MODE_DEBUGGING,
)

STATUS_ONGOING = "ongoing"
STATUS_RESOLVED = "resolved"

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_SYSTEM = "system"

SOURCE_RAW = "RAW"
SOURCE_BAEKJOON = "BAEKJOON"
SOURCE_PROGRAMMERS = "PROGRAMMERS"

DEFAULT_STRATEGY_ANCHOR = "1. Understand Input -> 2. Design Algorithm -> 3. Implement -> 4. Review"


def normalize_mode(mode: str | None) -> str:
    """Lower-case a mode tag and fold the summary alias onto `understanding`."""

    tag = (mode or "").strip().lower()
    if tag == MODE_UNDERSTANDING_SUMMARY:
        return MODE_UNDERSTANDING
    return tag


def mode_is(mode: str | None, *tags: str) -> bool:
    normalized = normalize_mode(mode)
    return any(normalized == normalize_mode(tag) for tag in tags)


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def next_timestamp(previous: dt.datetime | None) -> dt.datetime:
    """Return the current time, nudged forward so it strictly follows `previous`."""

    now = utc_now()
    if previous is not None and now <= previous:
        return previous + dt.timedelta(microseconds=1)
    return now


def _iso(value: dt.datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_iso(value: Any) -> dt.datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        return value
    return dt.datetime.fromisoformat(str(value))


@dataclass(frozen=True)
class Message:
    role: str
    content: str
    timestamp: dt.datetime

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content, "timestamp": _iso(self.timestamp)}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Message":
        return cls(
            role=str(payload["role"]),
            content=str(payload.get("content") or ""),
            timestamp=_parse_iso(payload.get("timestamp")) or utc_now(),
        )


@dataclass(frozen=True)
class Example:
    input: str
    output: str
    explanation: str | None = None
    is_user_defined: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "input": self.input,
            "output": self.output,
            "explanation": self.explanation,
            "isUserDefined": self.is_user_defined,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Example":
        return cls(
            input=str(payload.get("input") or ""),
            output=str(payload.get("output") or ""),
            explanation=payload.get("explanation"),
            is_user_defined=bool(payload.get("isUserDefined", payload.get("is_user_defined", False))),
        )


@dataclass(frozen=True)
class ProblemSpec:
    """Structured problem statement as scraped from a judge or typed by the learner."""

    source: str = SOURCE_RAW
    source_id: str | None = None
    title: str | None = None
    description: str | None = None
    input_format: str | None = None
    output_format: str | None = None
    constraints: str | None = None
    time_limit: str | None = None
    memory_limit: str | None = None
    examples: tuple[Example, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "sourceId": self.source_id,
            "title": self.title,
            "description": self.description,
            "inputFormat": self.input_format,
            "outputFormat": self.output_format,
            "constraints": self.constraints,
            "timeLimit": self.time_limit,
            "memoryLimit": self.memory_limit,
            "examples": [example.to_dict() for example in self.examples],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ProblemSpec":
        def pick(camel: str, snake: str) -> Any:
            return payload.get(camel, payload.get(snake))

        return cls(
            source=str(payload.get("source") or SOURCE_RAW).upper(),
            source_id=pick("sourceId", "source_id"),
            title=payload.get("title"),
            description=payload.get("description"),
            input_format=pick("inputFormat", "input_format"),
            output_format=pick("outputFormat", "output_format"),
            constraints=payload.get("constraints"),
            time_limit=pick("timeLimit", "time_limit"),
            memory_limit=pick("memoryLimit", "memory_limit"),
            examples=tuple(Example.from_dict(item) for item in payload.get("examples") or []),
        )


@dataclass
class Conversation:
    id: str
    mode: str
    title: str
    user_id: str | None = None
    problem_text: str | None = None
    problem_spec: ProblemSpec | None = None
    user_code: str | None = None
    code_language: str | None = None
    platform: str | None = None
    problem_url: str | None = None
    category: str | None = None
    topics: list[str] = field(default_factory=list)
    status: str = STATUS_ONGOING
    strategy: str | None = None
    messages: list[Message] = field(default_factory=list)
    created_at: dt.datetime = field(default_factory=utc_now)
    updated_at: dt.datetime = field(default_factory=utc_now)

    @property
    def last_timestamp(self) -> dt.datetime | None:
        return self.messages[-1].timestamp if self.messages else None

    def append(self, role: str, content: str) -> Message:
        """Append a message stamped no earlier than the previous one."""

        message = Message(role=role, content=content, timestamp=next_timestamp(self.last_timestamp))
        self.messages.append(message)
        return message

    def touch(self) -> None:
        floor = max(self.updated_at, self.last_timestamp or self.updated_at)
        self.updated_at = next_timestamp(floor)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "mode": self.mode,
            "problemText": self.problem_text,
            "problemSpec": self.problem_spec.to_dict() if self.problem_spec else None,
            "userCode": self.user_code,
            "codeLanguage": self.code_language,
            "platform": self.platform,
            "problemUrl": self.problem_url,
            "category": self.category,
            "topics": list(self.topics),
            "status": self.status,
            "strategy": self.strategy,
            "messages": [message.to_dict() for message in self.messages],
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Conversation":
        spec = payload.get("problemSpec")
        return cls(
            id=str(payload["id"]),
            user_id=payload.get("userId"),
            title=str(payload.get("title") or ""),
            mode=str(payload.get("mode") or ""),
            problem_text=payload.get("problemText"),
            problem_spec=ProblemSpec.from_dict(spec) if spec else None,
            user_code=payload.get("userCode"),
            code_language=payload.get("codeLanguage"),
            platform=payload.get("platform"),
            problem_url=payload.get("problemUrl"),
            category=payload.get("category"),
            topics=[str(topic) for topic in payload.get("topics") or []],
            status=str(payload.get("status") or STATUS_ONGOING),
            strategy=payload.get("strategy"),
            messages=[Message.from_dict(item) for item in payload.get("messages") or []],
            created_at=_parse_iso(payload.get("createdAt")) or utc_now(),
            updated_at=_parse_iso(payload.get("updatedAt")) or utc_now(),
        )


@dataclass(frozen=True)
class TestCase:
    input: str = ""
    expected_output: str = ""

    __test__ = False


@dataclass
class CaseResult:
    input: str
    expected_output: str
    actual_output: str | None = None
    passed: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "input": self.input,
            "expectedOutput": self.expected_output,
            "actualOutput": self.actual_output,
            "passed": self.passed,
            "error": self.error,
        }


@dataclass
class ExecutionReport:
    output: str | None = None
    error: str | None = None
    execution_time_ms: int = 0
    exit_code: int | None = None
    test_results: list[CaseResult] = field(default_factory=list)
    all_passed: bool = False

    @property
    def first_failure(self) -> CaseResult | None:
        for result in self.test_results:
            if not result.passed:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "output": self.output,
            "error": self.error,
            "executionTimeMs": self.execution_time_ms,
            "exitCode": self.exit_code,
            "testResults": [result.to_dict() for result in self.test_results],
            "allPassed": self.all_passed,
        }
