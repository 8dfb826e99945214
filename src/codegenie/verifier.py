"""Execution-guided counterexample verification."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .client import ChatClient, is_gateway_failure
from .models import ExecutionReport, TestCase
from .parsing import GeneratedCase, TestCaseProtocolError, parse_test_cases
from .sandbox import SandboxRunner

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "java"
DEFAULT_RATIONALE = "생성된 입력에서 코드의 출력이 기대값과 다릅니다. 이 입력을 직접 따라가며 로직을 다시 확인해보세요."


@dataclass(frozen=True)
class CaseVerdict:
    """Outcome of running one generated case; `message` is set when verification stops."""

    index: int
    case: GeneratedCase
    passed: bool
    message: str | None = None


def _block(label: str, text: str) -> str:
    return f"**{label}**\n```\n{text}\n```"


def render_execution_error(index: int, case: GeneratedCase, error: str) -> str:
    return "\n".join(
        [
            f"❌ **코드 실행 중 오류가 발생했습니다.** (테스트 {index})",
            "",
            _block("입력", case.input),
            _block("오류", error.strip()),
        ]
    )


def render_counterexample(index: int, total: int, case: GeneratedCase, actual: str) -> str:
    return "\n".join(
        [
            f"❌ **반례를 찾았습니다!** (테스트 {index}/{total})",
            "",
            _block("입력", case.input),
            _block("기대 출력", case.expected.strip()),
            _block("실제 출력", actual.strip()),
            f"**분석**: {case.reason or DEFAULT_RATIONALE}",
        ]
    )


def render_passed(count: int) -> str:
    return f"✅ **검증 통과!** 생성된 테스트 케이스 {count}개를 모두 통과했습니다."


def render_fallback(reply: str, reason: str) -> str:
    return f"{reply}\n\n(⚠️ 자동 검증에 실패했습니다: {reason})"


def judge_case(index: int, total: int, case: GeneratedCase, report: ExecutionReport) -> CaseVerdict:
    """Turn a single-case execution report into a verdict."""

    if report.error:
        return CaseVerdict(index, case, False, render_execution_error(index, case, report.error))
    if not report.test_results:
        return CaseVerdict(index, case, False, render_execution_error(index, case, "no result was produced"))

    result = report.test_results[0]
    if result.error:
        return CaseVerdict(index, case, False, render_execution_error(index, case, result.error))
    if not result.passed:
        return CaseVerdict(
            index, case, False, render_counterexample(index, total, case, result.actual_output or "")
        )
    return CaseVerdict(index, case, True)


class CounterexampleVerifier:
    """Asks the model for labelled test cases and checks the submission against each one."""

    def __init__(self, client: ChatClient, runner: SandboxRunner | None = None) -> None:
        self.client = client
        self.runner = runner or SandboxRunner()

    def verify(self, messages: list[dict[str, str]], *, code: str | None, language: str | None) -> str:
        reply = self.client.chat(messages)
        return self.verify_reply(reply, code=code, language=language)

    def verify_reply(self, reply: str, *, code: str | None, language: str | None) -> str:
        if is_gateway_failure(reply):
            return render_fallback(reply, "모델 응답을 받지 못했습니다")
        if not code or not code.strip():
            return render_fallback(reply, "검증할 코드가 없습니다")

        try:
            cases = parse_test_cases(reply)
        except TestCaseProtocolError as exc:
            logger.warning("Generated test cases are malformed: %s", exc)
            return render_fallback(reply, f"테스트 케이스 JSON 오류 ({exc})")

        try:
            for index, case in enumerate(cases, start=1):
                verdict = self.run_case(index, len(cases), case, code=code, language=language)
                if verdict.message is not None:
                    return verdict.message
        except Exception as exc:
            logger.exception("Counterexample verification aborted")
            return render_fallback(reply, str(exc))

        return render_passed(len(cases))

    def run_case(
        self,
        index: int,
        total: int,
        case: GeneratedCase,
        *,
        code: str,
        language: str | None,
    ) -> CaseVerdict:
        report = self.runner.execute(
            language or DEFAULT_LANGUAGE,
            code,
            [TestCase(input=case.input, expected_output=case.expected)],
        )
        return judge_case(index, total, case, report)
