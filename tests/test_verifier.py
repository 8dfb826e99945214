import json
import unittest

from codegenie.client import ERROR_PREFIX
from codegenie.models import CaseResult, ExecutionReport
from codegenie.parsing import outputs_match
from codegenie.sandbox import SandboxPolicy, SandboxRunner
from codegenie.verifier import CounterexampleVerifier

SUM_CODE = "a, b = map(int, input().split())\nprint(a + b)\n"
ABS_SUM_CODE = "a, b = map(int, input().split())\nprint(abs(a) + abs(b))\n"

CASES = [
    {"input": "2 3", "expected": "5"},
    {"input": "-1 1", "expected": "0", "reason": "음수 입력"},
    {"input": "10 20", "expected": "30"},
]


class _ScriptedClient:
    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.calls = 0

    def chat(self, messages):
        self.calls += 1
        return self.reply


class _TableRunner:
    """Answers from a fixed input -> stdout table and records every execution."""

    def __init__(self, outputs: dict[str, str], errors: dict[str, str] | None = None) -> None:
        self.outputs = outputs
        self.errors = errors or {}
        self.inputs: list[str] = []

    def execute(self, language, code, test_cases):
        case = list(test_cases)[0]
        self.inputs.append(case.input)
        if case.input in self.errors:
            result = CaseResult(case.input, case.expected_output, "", False, self.errors[case.input])
        else:
            actual = self.outputs[case.input]
            result = CaseResult(case.input, case.expected_output, actual, outputs_match(case.expected_output, actual))
        return ExecutionReport(exit_code=0, test_results=[result], all_passed=result.passed)


MESSAGES = [{"role": "system", "content": "generator"}, {"role": "user", "content": "반례 찾아줘"}]


class VerifierLogicTests(unittest.TestCase):
    def test_all_cases_pass(self) -> None:
        runner = _TableRunner({"2 3": "5", "-1 1": "0", "10 20": "30"})
        verifier = CounterexampleVerifier(_ScriptedClient(json.dumps(CASES)), runner)

        result = verifier.verify(MESSAGES, code="x", language="python")

        self.assertTrue(result.startswith("✅"))
        self.assertIn("3개", result)
        self.assertEqual(runner.inputs, ["2 3", "-1 1", "10 20"])

    def test_stops_at_first_counterexample(self) -> None:
        runner = _TableRunner({"2 3": "5", "-1 1": "2", "10 20": "30"})
        verifier = CounterexampleVerifier(_ScriptedClient(json.dumps(CASES)), runner)

        result = verifier.verify(MESSAGES, code="x", language="python")

        self.assertTrue(result.startswith("❌ **반례를 찾았습니다!** (테스트 2/3)"))
        self.assertIn("```\n-1 1\n```", result)
        self.assertIn("**기대 출력**\n```\n0\n```", result)
        self.assertIn("**실제 출력**\n```\n2\n```", result)
        self.assertIn("음수 입력", result)
        self.assertEqual(runner.inputs, ["2 3", "-1 1"])

    def test_execution_error_is_reported_first(self) -> None:
        runner = _TableRunner({"2 3": "5"}, errors={"-1 1": "Time Limit Exceeded"})
        verifier = CounterexampleVerifier(_ScriptedClient(json.dumps(CASES)), runner)

        result = verifier.verify(MESSAGES, code="x", language="python")

        self.assertTrue(result.startswith("❌ **코드 실행 중 오류가 발생했습니다.** (테스트 2)"))
        self.assertIn("Time Limit Exceeded", result)
        self.assertEqual(runner.inputs, ["2 3", "-1 1"])

    def test_fenced_reply_is_accepted(self) -> None:
        runner = _TableRunner({"2 3": "5", "-1 1": "0", "10 20": "30"})
        reply = f"```json\n{json.dumps(CASES)}\n```"
        result = CounterexampleVerifier(_ScriptedClient(reply), runner).verify(MESSAGES, code="x", language="java")
        self.assertTrue(result.startswith("✅"))

    def test_malformed_reply_falls_back_to_raw_text(self) -> None:
        reply = "저는 반례 생성 전문가입니다. 힌트나 풀이는 해당 탭을 이용해주세요."
        runner = _TableRunner({})
        result = CounterexampleVerifier(_ScriptedClient(reply), runner).verify(MESSAGES, code="x", language="java")

        self.assertTrue(result.startswith(reply))
        self.assertIn("⚠️ 자동 검증에 실패했습니다", result)
        self.assertEqual(runner.inputs, [])

    def test_gateway_failure_is_not_parsed(self) -> None:
        reply = f"{ERROR_PREFIX}timeout"
        result = CounterexampleVerifier(_ScriptedClient(reply), _TableRunner({})).verify(
            MESSAGES, code="x", language="java"
        )
        self.assertTrue(result.startswith(reply))
        self.assertIn("⚠️ 자동 검증에 실패했습니다", result)

    def test_missing_code_falls_back(self) -> None:
        runner = _TableRunner({})
        result = CounterexampleVerifier(_ScriptedClient(json.dumps(CASES)), runner).verify(
            MESSAGES, code=None, language=None
        )
        self.assertIn("⚠️ 자동 검증에 실패했습니다", result)
        self.assertEqual(runner.inputs, [])


class VerifierSandboxTests(unittest.TestCase):
    def test_correct_submission_passes(self) -> None:
        reply = json.dumps([{"input": "2 3", "expected": "5"}, {"input": "10 20", "expected": "30"}])
        result = CounterexampleVerifier(_ScriptedClient(reply), SandboxRunner()).verify(
            MESSAGES, code=SUM_CODE, language="python"
        )
        self.assertEqual(result, "✅ **검증 통과!** 생성된 테스트 케이스 2개를 모두 통과했습니다.")

    def test_wrong_submission_yields_counterexample(self) -> None:
        result = CounterexampleVerifier(_ScriptedClient(json.dumps(CASES)), SandboxRunner()).verify(
            MESSAGES, code=ABS_SUM_CODE, language="python"
        )
        self.assertTrue(result.startswith("❌ **반례를 찾았습니다!** (테스트 2/3)"))
        self.assertIn("**실제 출력**\n```\n2\n```", result)

    def test_infinite_loop_is_reported_as_error(self) -> None:
        runner = SandboxRunner(SandboxPolicy(run_timeout_sec=0.5))
        reply = json.dumps([{"input": "1", "expected": "1"}])
        result = CounterexampleVerifier(_ScriptedClient(reply), runner).verify(
            MESSAGES, code="while True:\n    pass\n", language="python"
        )
        self.assertTrue(result.startswith("❌ **코드 실행 중 오류가 발생했습니다.** (테스트 1)"))
        self.assertIn("Time Limit Exceeded", result)

    def test_blank_expected_value_is_not_reported_as_pass(self) -> None:
        reply = json.dumps([{"input": "-1 1", "expected": ""}])
        result = CounterexampleVerifier(_ScriptedClient(reply), SandboxRunner()).verify(
            MESSAGES, code=ABS_SUM_CODE, language="python"
        )
        self.assertFalse(result.startswith("✅"))
        self.assertIn("⚠️ 자동 검증에 실패했습니다", result)


if __name__ == "__main__":
    unittest.main()
