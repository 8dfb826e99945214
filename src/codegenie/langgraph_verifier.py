"""LangGraph-based orchestration of counterexample verification."""

from __future__ import annotations

import logging
from typing import TypedDict

try:
    from langgraph.graph import END, START, StateGraph
except Exception as exc:  # pragma: no cover
    END = START = StateGraph = None
    _LANGGRAPH_IMPORT_ERROR: Exception | None = exc
else:  # pragma: no cover
    _LANGGRAPH_IMPORT_ERROR = None

from .client import ChatClient, is_gateway_failure
from .parsing import GeneratedCase, TestCaseProtocolError, parse_test_cases
from .sandbox import SandboxRunner
from .verifier import CounterexampleVerifier, render_fallback, render_passed

logger = logging.getLogger(__name__)


class LangGraphUnavailableError(RuntimeError):
    """Raised when the graph verifier is requested without the `agentic` extra installed."""


def is_langgraph_available() -> bool:
    """True when `langgraph.graph` imported cleanly."""

    return _LANGGRAPH_IMPORT_ERROR is None


class _GraphState(TypedDict, total=False):
    messages: list[dict[str, str]]
    code: str | None
    language: str | None

    reply: str
    cases: list[GeneratedCase]
    index: int
    fallback_reason: str | None
    result: str | None


class LangGraphCounterexampleVerifier(CounterexampleVerifier):
    """Counterexample verification implemented as a LangGraph state machine."""

    def __init__(
        self,
        client: ChatClient,
        runner: SandboxRunner | None = None,
        *,
        recursion_limit: int = 200,
    ) -> None:
        if not is_langgraph_available():
            raise LangGraphUnavailableError(
                "LangGraph is not installed. Install with `pip install 'codegenie[agentic]'`."
            ) from _LANGGRAPH_IMPORT_ERROR

        super().__init__(client, runner)
        self.recursion_limit = recursion_limit
        self._graph = self._build_graph()

    def verify(self, messages: list[dict[str, str]], *, code: str | None, language: str | None) -> str:
        latest: _GraphState = {}
        try:
            for latest in self._graph.stream(
                {"messages": list(messages), "code": code, "language": language},
                config={"recursion_limit": self.recursion_limit},
                stream_mode="values",
            ):
                pass
        except Exception as exc:
            logger.exception("Graph verification aborted")
            reason = (str(exc).splitlines() or [type(exc).__name__])[0]
            return render_fallback(latest.get("reply") or "", reason)
        return str(latest["result"])

    def _build_graph(self):
        builder = StateGraph(_GraphState)
        builder.add_node("generate", self._node_generate)
        builder.add_node("parse", self._node_parse)
        builder.add_node("execute", self._node_execute)
        builder.add_node("report", self._node_report)
        builder.add_node("fallback", self._node_fallback)

        builder.add_edge(START, "generate")
        builder.add_edge("generate", "parse")
        builder.add_conditional_edges(
            "parse",
            self._route_after_parse,
            {
                "execute": "execute",
                "fallback": "fallback",
            },
        )
        builder.add_conditional_edges(
            "execute",
            self._route_after_execute,
            {
                "execute": "execute",
                "report": "report",
                "fallback": "fallback",
            },
        )
        builder.add_edge("report", END)
        builder.add_edge("fallback", END)
        return builder.compile()

    def _node_generate(self, state: _GraphState) -> _GraphState:
        next_state = dict(state)
        next_state.update(
            {
                "reply": self.client.chat(state["messages"]),
                "cases": [],
                "index": 0,
                "fallback_reason": None,
                "result": None,
            }
        )
        return next_state

    def _node_parse(self, state: _GraphState) -> _GraphState:
        reply = state.get("reply") or ""
        code = state.get("code")
        next_state = dict(state)

        if is_gateway_failure(reply):
            next_state["fallback_reason"] = "모델 응답을 받지 못했습니다"
        elif not code or not code.strip():
            next_state["fallback_reason"] = "검증할 코드가 없습니다"
        else:
            try:
                next_state["cases"] = parse_test_cases(reply)
            except TestCaseProtocolError as exc:
                next_state["fallback_reason"] = f"테스트 케이스 JSON 오류 ({exc})"
        return next_state

    def _node_execute(self, state: _GraphState) -> _GraphState:
        cases = list(state.get("cases") or [])
        index = int(state.get("index") or 0)
        next_state = dict(state)
        next_state["index"] = index + 1

        try:
            verdict = self.run_case(
                index + 1,
                len(cases),
                cases[index],
                code=str(state.get("code") or ""),
                language=state.get("language"),
            )
        except Exception as exc:
            next_state["fallback_reason"] = str(exc)
            return next_state

        if verdict.message is not None:
            next_state["result"] = verdict.message
        return next_state

    def _node_report(self, state: _GraphState) -> _GraphState:
        next_state = dict(state)
        if not next_state.get("result"):
            next_state["result"] = render_passed(len(state.get("cases") or []))
        return next_state

    def _node_fallback(self, state: _GraphState) -> _GraphState:
        next_state = dict(state)
        next_state["result"] = render_fallback(
            state.get("reply") or "", str(state.get("fallback_reason") or "")
        )
        return next_state

    def _route_after_parse(self, state: _GraphState) -> str:
        return "fallback" if state.get("fallback_reason") else "execute"

    def _route_after_execute(self, state: _GraphState) -> str:
        if state.get("fallback_reason"):
            return "fallback"
        if state.get("result") or int(state.get("index") or 0) >= len(state.get("cases") or []):
            return "report"
        return "execute"
