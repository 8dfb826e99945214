import unittest

from fastapi.testclient import TestClient

from codegenie.api import create_app
from codegenie.chat import DialogueService
from codegenie.guardrail import GUARDRAIL_SYSTEM_PROMPT
from codegenie.repository import InMemoryConversationRepository
from codegenie.sandbox import SandboxRunner


class _AllowingClient:
    def chat(self, messages):
        if messages[0]["content"] == GUARDRAIL_SYSTEM_PROMPT:
            return '{"allowed": true}'
        return "힌트입니다."


class _BrokenRepository(InMemoryConversationRepository):
    def find_by_id(self, conversation_id):
        raise RuntimeError("storage unavailable")


def _client(repository=None, **kwargs) -> TestClient:
    service = DialogueService(repository or InMemoryConversationRepository(), _AllowingClient())
    return TestClient(create_app(service, SandboxRunner()), **kwargs)


class ChatEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = _client()

    def _start(self, **body) -> dict:
        payload = {"mode": "debugging", "problemText": "두 수를 더하시오", "userCode": "print(1)"}
        payload.update(body)
        response = self.client.post("/api/chat/start", json=payload, headers={"X-User-Id": "u1"})
        self.assertEqual(response.status_code, 200)
        return response.json()

    def test_start_returns_envelope(self) -> None:
        body = self._start()

        self.assertEqual(body["status"], "success")
        self.assertEqual(body["message"], "대화가 시작되었습니다.")
        data = body["data"]
        self.assertEqual(data["userId"], "u1")
        self.assertEqual(data["mode"], "debugging")
        self.assertEqual(data["userCode"], "print(1)")
        self.assertEqual(len(data["messages"]), 1)
        self.assertEqual(data["messages"][0]["role"], "assistant")

    def test_start_with_structured_problem(self) -> None:
        spec = {
            "source": "baekjoon",
            "sourceId": 1000,
            "title": "A+B",
            "examples": [{"input": "1 2", "output": "3"}],
        }
        data = self._start(problemSpec=spec)["data"]

        self.assertEqual(data["problemSpec"]["source"], "BAEKJOON")
        self.assertEqual(data["problemSpec"]["sourceId"], "1000")
        self.assertEqual(data["problemSpec"]["examples"][0]["output"], "3")

    def test_send_message_and_fetch_history(self) -> None:
        conversation_id = self._start()["data"]["id"]

        response = self.client.post("/api/chat/message", json={"conversationId": conversation_id, "content": "왜 틀렸죠?"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["role"], "assistant")
        self.assertEqual(response.json()["data"]["content"], "힌트입니다.")

        detail = self.client.get(f"/api/history/{conversation_id}").json()["data"]
        self.assertEqual([m["role"] for m in detail["messages"]], ["assistant", "user", "assistant"])

        listing = self.client.get("/api/history", headers={"X-User-Id": "u1"}).json()["data"]
        self.assertEqual([item["id"] for item in listing], [conversation_id])
        self.assertEqual(self.client.get("/api/history", headers={"X-User-Id": "u2"}).json()["data"], [])

    def test_update_and_status_rules(self) -> None:
        conversation_id = self._start()["data"]["id"]

        unchanged = self.client.put(f"/api/chat/{conversation_id}", json={}).json()["data"]
        self.assertEqual(unchanged["title"], "새로운 대화 (debugging)")

        updated = self.client.put(
            f"/api/chat/{conversation_id}", json={"title": "A+B 디버깅", "status": "resolved"}
        ).json()["data"]
        self.assertEqual(updated["title"], "A+B 디버깅")
        self.assertEqual(updated["status"], "resolved")

        response = self.client.put(f"/api/chat/{conversation_id}", json={"status": "ongoing"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["status"], "error")

    def test_delete(self) -> None:
        conversation_id = self._start()["data"]["id"]

        response = self.client.delete(f"/api/chat/{conversation_id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["message"], "대화가 삭제되었습니다.")
        self.assertEqual(self.client.delete(f"/api/chat/{conversation_id}").status_code, 404)

    def test_unknown_conversation_is_404(self) -> None:
        response = self.client.get("/api/history/missing")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"status": "error", "message": "Conversation not found: missing"})

        response = self.client.post("/api/chat/message", json={"conversationId": "missing", "content": "hi"})
        self.assertEqual(response.status_code, 404)

    def test_unexpected_failure_is_500_envelope(self) -> None:
        client = _client(_BrokenRepository(), raise_server_exceptions=False)
        response = client.get("/api/history/anything")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"status": "error", "message": "storage unavailable"})


class ExecuteEndpointTests(unittest.TestCase):
    def test_execute_returns_bare_report(self) -> None:
        response = _client().post(
            "/api/execute",
            json={
                "language": "python",
                "code": "a, b = map(int, input().split())\nprint(a + b)\n",
                "testCases": [
                    {"input": "2 3", "expectedOutput": "5"},
                    {"input": "1 1", "expectedOutput": "3"},
                ],
            },
        )

        self.assertEqual(response.status_code, 200)
        report = response.json()
        self.assertFalse(report["allPassed"])
        self.assertEqual([r["passed"] for r in report["testResults"]], [True, False])
        self.assertEqual(report["testResults"][1]["actualOutput"], "2")
        self.assertEqual(report["exitCode"], 0)

    def test_execute_without_cases(self) -> None:
        report = _client().post("/api/execute", json={"language": "python", "code": "print('hi')"}).json()
        self.assertEqual(report["output"], "hi")
        self.assertTrue(report["allPassed"])

    def test_execute_unsupported_language(self) -> None:
        report = _client().post("/api/execute", json={"language": "brainfuck", "code": "+"}).json()
        self.assertEqual(report["error"], "Unsupported language: brainfuck")
        self.assertEqual(report["exitCode"], 1)


if __name__ == "__main__":
    unittest.main()
