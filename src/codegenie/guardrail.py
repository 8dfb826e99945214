"""Pre-filter that keeps each mentor mode inside its own scope."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from .client import ChatClient
from .models import MODE_COUNTEREXAMPLE, MODE_DEBUGGING, MODE_SOLUTION, MODE_UNDERSTANDING, normalize_mode
from .parsing import strip_code_fence

logger = logging.getLogger(__name__)

REDIRECT_KEYWORDS = ("반례", "디버깅", "에러", "오류")

IDENTITIES = {
    MODE_UNDERSTANDING: "저는 **문제 파악**을 도와드리는 역할입니다.",
    MODE_SOLUTION: "저는 **단계별 풀이**를 도와드리는 역할입니다.",
    MODE_DEBUGGING: "저는 **디버깅**을 도와드리는 역할입니다.",
    MODE_COUNTEREXAMPLE: "저는 **반례 찾기**를 도와드리는 역할입니다.",
}

UNDERSTANDING_REDIRECT = (
    "저는 **문제 파악**을 도와드리는 역할입니다. "
    "디버깅은 **'검증 및 디버깅' > '디버깅'**, 반례는 **'반례 찾기'** 기능을 이용해주세요."
)

UNAVAILABLE_NOTICE = "요청 범위를 확인하지 못했습니다. 잠시 후 다시 시도해주세요."

GUARDRAIL_SYSTEM_PROMPT = """You are a 'Mode Guardrail' for a coding mentor AI.
Your job is to STRICTLY classify if the User's Request matches the Current Mode's allowed scope.

[Modes, Personas, & Scopes]
1. 'understanding' (UI Label: **문제 파악**):
   - Identity: "저는 **문제 파악**을 도와드리는 역할입니다."
   - Sub-tabs: **핵심 요약**, **예제 분석**, **힌트/알고리즘**.
   - ✅ ALLOWED: Explaining problem, tracing examples, algorithm concepts.
   - ❌ REFUSE: 'debug', 'fix', 'code', 'solution', 'counterexample'.

2. 'solution' (UI Label: **단계별 풀이**):
   - Identity: "저는 **단계별 풀이**를 도와드리는 역할입니다."
   - ✅ ALLOWED: Logic flow, pseudo-code.
   - ❌ REFUSE: Full code at once, specific error debugging.

3. 'debugging' (UI Label: **검증 및 디버깅** > **디버깅**):
   - Identity: "저는 **디버깅**을 도와드리는 역할입니다."
   - ✅ ALLOWED: Fixing bugs, analyzing error logs, code correction.
   - ❌ REFUSE: Asking for counterexamples (redirect to 'Counterexample' tab).

4. 'counterexample' (UI Label: **검증 및 디버깅** > **반례 찾기**):
   - Identity: "저는 **반례 찾기**를 도와드리는 역할입니다."
   - ✅ ALLOWED: Finding inputs that break the code.
   - ❌ REFUSE: "Debugging" (redirect to 'Debugging' tab), "Solution", "Explain Problem".

[Refusal Rules]
- If the request violates the mode, return {"allowed": false, "reason": "REFUSAL_TEXT"}.
- **CRITICAL**: The refusal message MUST start with the AI's current identity.
  - E.g., If mode is 'counterexample', start with: "저는 **반례 찾기**를 도와드리는 역할입니다."
  - Then redirect: "디버깅은 **'검증 및 디버깅' 탭의 '디버깅'** 기능을 이용해주세요."
- Use EXACT UI LABELS showing the path.
- ALL OUTPUT MUST BE IN KOREAN.
- Output JSON ONLY.

[Example 1: Cross-Mode Refusal]
Mode: understanding
User: "왜 이 코드가 에러나?" (Debug request)
Response: {"allowed": false, "reason": "저는 **문제 파악**을 도와드리는 역할입니다. 코드 에러 확인은 **'검증 및 디버깅' 탭의 '디버깅'** 기능을 이용해주세요."}

[Example 2: Sub-Mode Refusal]
Mode: counterexample
User: "디버깅 해줘"
Response: {"allowed": false, "reason": "저는 **반례 찾기**를 도와드리는 역할입니다. 디버깅은 **'검증 및 디버깅' 탭의 '디버깅'** 기능을 이용해주세요."}
"""


@dataclass(frozen=True)
class GuardrailDecision:
    allowed: bool
    reason: str | None = None


ALLOW = GuardrailDecision(allowed=True)


def identity_for(mode: str | None) -> str | None:
    tag = normalize_mode(mode)
    if tag.startswith(MODE_UNDERSTANDING):
        return IDENTITIES[MODE_UNDERSTANDING]
    return IDENTITIES.get(tag)


def parse_decision(text: str) -> GuardrailDecision:
    """Parse `{"allowed": bool, "reason": str}` from a classifier reply."""

    data = json.loads(strip_code_fence(text))
    if not isinstance(data, dict) or not isinstance(data.get("allowed"), bool):
        raise ValueError("guardrail reply is missing a boolean 'allowed'")
    reason = data.get("reason")
    return GuardrailDecision(allowed=data["allowed"], reason=str(reason) if reason else None)


class GuardrailClassifier:
    """Validates a user turn against the conversation's mode before it reaches the mentor."""

    def __init__(self, client: ChatClient, *, fail_closed: bool = False) -> None:
        self.client = client
        self.fail_closed = fail_closed

    def validate(self, mode: str, user_text: str | None) -> GuardrailDecision:
        if not user_text or not user_text.strip():
            return ALLOW

        if normalize_mode(mode).startswith(MODE_UNDERSTANDING) and any(
            keyword in user_text for keyword in REDIRECT_KEYWORDS
        ):
            return GuardrailDecision(allowed=False, reason=UNDERSTANDING_REDIRECT)

        messages = [
            {"role": "system", "content": GUARDRAIL_SYSTEM_PROMPT},
            {"role": "user", "content": f"Current Mode: {mode}\nUser Request: {user_text}"},
        ]
        try:
            decision = parse_decision(self.client.chat(messages))
        except Exception as exc:
            return self._unavailable(mode, exc)

        if decision.allowed:
            return ALLOW
        return GuardrailDecision(allowed=False, reason=self._with_identity(mode, decision.reason))

    def _unavailable(self, mode: str, exc: Exception) -> GuardrailDecision:
        if not self.fail_closed:
            logger.warning("Guardrail check failed, allowing request: %s", exc)
            return ALLOW
        logger.warning("Guardrail check failed, refusing request: %s", exc)
        return GuardrailDecision(allowed=False, reason=self._with_identity(mode, UNAVAILABLE_NOTICE))

    @staticmethod
    def _with_identity(mode: str, reason: str | None) -> str:
        identity = identity_for(mode)
        text = (reason or "").strip()
        if identity is None:
            return text
        if text.startswith(identity):
            return text
        return f"{identity} {text}".strip()
