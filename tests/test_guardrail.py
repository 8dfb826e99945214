import unittest

from codegenie.guardrail import (
    GUARDRAIL_SYSTEM_PROMPT,
    IDENTITIES,
    UNAVAILABLE_NOTICE,
    UNDERSTANDING_REDIRECT,
    GuardrailClassifier,
    identity_for,
    parse_decision,
)


class _ScriptedClient:
    def __init__(self, *replies: str) -> None:
        self.replies = list(replies)
        self.calls: list[list[dict[str, str]]] = []

    def chat(self, messages):
        self.calls.append(messages)
        return self.replies.pop(0)


class _BrokenClient:
    def chat(self, messages):
        raise RuntimeError("backend down")


class GuardrailTests(unittest.TestCase):
    def test_understanding_keywords_are_refused_without_model_call(self) -> None:
        client = _ScriptedClient()
        guardrail = GuardrailClassifier(client)

        for mode in ("understanding", "understanding_summary", "understanding_hint"):
            decision = guardrail.validate(mode, "이 코드 디버깅 해줘")
            self.assertFalse(decision.allowed)
            self.assertEqual(decision.reason, UNDERSTANDING_REDIRECT)
            self.assertTrue(decision.reason.startswith(IDENTITIES["understanding"]))
        self.assertEqual(client.calls, [])

    def test_blank_input_is_allowed_without_model_call(self) -> None:
        client = _ScriptedClient()
        self.assertTrue(GuardrailClassifier(client).validate("solution", "   ").allowed)
        self.assertEqual(client.calls, [])

    def test_model_allows_request(self) -> None:
        client = _ScriptedClient('{"allowed": true}')
        decision = GuardrailClassifier(client).validate("solution", "어떤 알고리즘을 써야 하나요?")

        self.assertTrue(decision.allowed)
        messages = client.calls[0]
        self.assertEqual(messages[0], {"role": "system", "content": GUARDRAIL_SYSTEM_PROMPT})
        self.assertEqual(messages[1]["content"], "Current Mode: solution\nUser Request: 어떤 알고리즘을 써야 하나요?")

    def test_refusal_is_prefixed_with_identity(self) -> None:
        client = _ScriptedClient('```json\n{"allowed": false, "reason": "디버깅은 디버깅 탭을 이용해주세요."}\n```')
        decision = GuardrailClassifier(client).validate("counterexample", "디버깅 해줘")

        self.assertFalse(decision.allowed)
        self.assertEqual(decision.reason, f"{IDENTITIES['counterexample']} 디버깅은 디버깅 탭을 이용해주세요.")

    def test_identity_is_not_repeated(self) -> None:
        reason = f"{IDENTITIES['solution']} 전체 코드는 드릴 수 없습니다."
        client = _ScriptedClient('{"allowed": false, "reason": "%s"}' % reason.replace('"', '\\"'))
        decision = GuardrailClassifier(client).validate("solution", "정답 코드 줘")
        self.assertEqual(decision.reason, reason)

    def test_unparseable_reply_fails_open(self) -> None:
        client = _ScriptedClient("Sure, that sounds fine!")
        self.assertTrue(GuardrailClassifier(client).validate("debugging", "왜 틀렸죠?").allowed)

    def test_raising_client_fails_open(self) -> None:
        self.assertTrue(GuardrailClassifier(_BrokenClient()).validate("debugging", "왜 틀렸죠?").allowed)

    def test_fail_closed_refuses_with_identity(self) -> None:
        guardrail = GuardrailClassifier(_BrokenClient(), fail_closed=True)
        decision = guardrail.validate("debugging", "왜 틀렸죠?")

        self.assertFalse(decision.allowed)
        self.assertEqual(decision.reason, f"{IDENTITIES['debugging']} {UNAVAILABLE_NOTICE}")


class DecisionParsingTests(unittest.TestCase):
    def test_requires_boolean_allowed(self) -> None:
        with self.assertRaises(ValueError):
            parse_decision('{"allowed": "yes"}')
        with self.assertRaises(ValueError):
            parse_decision("[true]")

    def test_identity_lookup(self) -> None:
        self.assertEqual(identity_for("UNDERSTANDING_TRACE"), IDENTITIES["understanding"])
        self.assertIsNone(identity_for("chit-chat"))


if __name__ == "__main__":
    unittest.main()
