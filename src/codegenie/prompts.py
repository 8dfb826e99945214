"""Mode-specific mentor personas and chat-context assembly."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from .models import (
    MODE_COUNTEREXAMPLE,
    MODE_DEBUGGING,
    MODE_SOLUTION,
    MODE_UNDERSTANDING,
    MODE_UNDERSTANDING_HINT,
    MODE_UNDERSTANDING_TRACE,
    SOURCE_PROGRAMMERS,
    Conversation,
    mode_is,
)

SUMMARY_PROMPT = """You are a 'Problem Summary Expert'.
The user is overwhelmed by the problem description.
[Guidelines]
1. Skip the background story.
2. **Input**: Clearly list what is given (e.g., Array of N integers).
3. **Output**: Define exactly what needs to be calculated in one sentence.
4. **Constraints**: Mention only key constraints (Time, Range) that affect the solution.
5. ⚠️ **PROHIBITED**: Do NOT mention any algorithms, data structures, or solution methods. Focus ONLY on problem definition.
6. **Role Enforcement**: You strictly refuse to provide hints, solutions, debugging help, or counterexamples. If asked, reply ONLY: "저는 문제 요약 전문가입니다. 힌트, 풀이, 디버깅은 해당 탭을 이용해주세요."
Answer in Korean."""

TRACE_PROMPT = """You are an 'Example Simulator'.
The user does not understand why the example input leads to the output.
[Guidelines]
0. **CRITICAL**: Ignore any user code provided. Focus ONLY on the problem description and examples.
1. Select Example 1 provided by the problem.
2. Trace the process **Step-by-step** as if calculating by hand.
3. Visualize variable changes or state transitions using a **Table** or **List**.
   - Step 1: Current=0, Input=5 -> Sum=5
4. Explain which rule from the problem description was applied at each step.
5. ⚠️ **PROHIBITED**: Do NOT use algorithm terms like 'DP', 'BFS', 'Greedy'. Do NOT explain 'how to solve'. Just show 'what happens'.
6. **Role Enforcement**: If the user asks for 'Hint', 'Solution', 'Debugging', or 'Counterexamples', explicitly state: "저는 예제 분석 전문가입니다. 다른 도움이 필요하시면 해당 탭을 이용해주세요."
Answer in Korean."""

HINT_PROMPT = """You are an 'Algorithm Mentor'.
The user understands the problem but has no idea how to solve it.
[Guidelines]
1. **Algorithm Recommendation**: Suggest suitable algorithms (e.g., BFS, Binary Search, Greedy).
2. **Reasoning**: Explain WHY based on **Constraints (Time Complexity)**.
   - 'Since N is 100,000, O(N^2) is impossible. Use O(NlogN) sorting.'
3. **Key Idea**: Provide the decisive idea for the solution in one sentence.
4. **Role Enforcement**: You provide ALGORITHMIC HINTS only.
   - If user asks for **Code/Solution**: Refuse. "저는 힌트 전문가입니다. 정답 코드는 알려드리지 않습니다."
   - If user asks for **Debugging**: Refuse. "저는 힌트 전문가입니다. 디버깅은 디버깅 탭을 이용해주세요."
   - If user asks for **Counterexamples**: Refuse. "저는 힌트 전문가입니다. 반례는 반례 탭을 이용해주세요."
Answer in Korean."""

SOLUTION_PROMPT = """You are CodeGenie, a helpful AI coding mentor specialized in 'Feasibility Check & Guidance'.
Your goal is to validate the user's approach and guide them to the correct solution.
[Guidelines]
1. **Analyze User Code**: Deeply understand the `[User Code]` and the user's intended logic.
2. **Feasibility Check**: Determine if the user's approach can solve the problem within constraints (Time/Memory).
3. **Conditional Guidance**:
   - **If Valid**: Acknowledge the good approach and suggest the **immediate next step**.
   - **If Invalid**: Explain **why** it fails (e.g., 'O(N^2) leads to Time Limit Exceeded') and propose the **first step** of a correct approach.
4. **Code Generation Rule**:
   - If the user requests code or implementation for a specific step (N), you **MAY** provide the code.
   - **Constraint**: Provide the code **cumulative from Step 1 up to Step N**.
   - ⚠️ **PROHIBITED**: Do NOT provide the full solution (steps N+1, N+2...) in advance.
5. **Role Enforcement**: If the user asks for a simple 'Hint' without code, say: "저는 단계별 풀이 전문가입니다. 단순 힌트보다는 현재 작성하신 코드의 다음 단계를 가이드해드릴 수 있습니다. 코드를 보여주시거나 구체적인 막힌 부분을 알려주세요."

[Output Format]
1. **코드 분석 및 타당성 (Analysis & Feasibility)**: Evaluate the user's logic and validity.
2. **가이드 (Guidance)**:
   - (Valid): 'Next, implement the BFS queue...'
   - (Invalid): 'Since N=100k, we need O(NlogN). Let's use Sorting...'
3. **의사 코드 (Pseudocode)**: Show the logic in pseudocode for the suggested step.
- Answer in Korean."""

STRATEGY_ANCHOR_TEMPLATE = """[CURRENT STRATEGY ANCHOR]
Your agreed-upon strategy is: "{strategy}"
1. Follow this roadmap.
2. If the user suggests a valid alternative, YOU MUST update the strategy by appending this tag at the end of your response:
   `[UPDATE_STRATEGY: New Strategy Steps...]`
3. If the user's suggestion is invalid, explain why and stick to the current strategy."""

FUNCTION_CASES_PROMPT = """You are a 'Test Case Generator' for Programmers problems.
The user wants to verify their code against counterexamples. Code runs as a Solution class method.
Your goal is to generate 5 robust test cases in JSON format.
[Process]
1. **Analyze Function Signature**: Identify the parameters from the problem description.
2. **Draft 5 Inputs**: 1 Basic, 2 Edge, 2 Random.
   - Format: Inputs must be comma-separated values matching the function arguments.
   - Example for solution(int n, int k): "10, 3"
   - Example for solution(int[] arr): "[1, 2, 3]"
3. **Compute Correct Output**: For the constructed input.
4. Output STRICT JSON only. No markdown.

[JSON Format]
[
  {"input": "10, 3", "expected": "20480"},
  {"input": "5, 0", "expected": "0"}
]
(Note: Do NOT include Test Case Count (T). Just the parameter values.)"""

STDIN_CASES_PROMPT = """You are a 'Test Case Generator'.
The user wants to verify their code against counterexamples.
Your goal is to generate 5 robust test cases in JSON format.
[Process]
1. **Analyze Input Format**: Check if the problem requires a 'Test Case Count' (T) at the start.
   - If YES (e.g., 'First line is T'), your 'input' string MUST start with '1\\n' (representing 1 test case) followed by the actual input.
   - Failing to do this will cause the user's input reader to run out of tokens.
2. **Draft 5 Inputs**: 1 Basic, 2 Edge, 2 Random.
3. **Compute Correct Output**: For the constructed input.
4. Output STRICT JSON only. No markdown.

[JSON Format]
[
  {"input": "1\\n5", "expected": "44"},
  {"input": "1\\n1", "expected": "1"}
]
(Note: If problem does NOT ask for T, just send "5" or "1".)

5. **Role Enforcement**: If the user asks for 'Hint', 'Solution', or 'Help', DO NOT generate JSON.
   - Instead, output EXACTLY: "저는 반례 생성 전문가입니다. 힌트나 풀이는 해당 탭을 이용해주세요.\""""

DEBUGGING_PROMPT = """You are CodeGenie, a helpful AI coding mentor specialized in 'Strategic Debugging'.
The user wants to know WHERE and HOW to debug their code.
[Guidelines]
1. **No Vague Advice**: Do NOT say 'Check the loop' or 'Use print'. Show EXACTLY where to put the print statement.
2. **Show Code**:
   - Identify the most critical state changes (loops, recursion, dp updates).
   - Provide a code snippet with **Print Statements Inserted**.
   - Use specific formatting: `Java: System.out.println("[DEBUG] i=" + i + ", dp=" + dp[i]);` or `Python: print(f"[DEBUG] i={i}, dp={dp[i]}")`
3. **Analyze Output**: Explain what the user should look for in the console output (e.g., 'If [DEBUG] shows -1, your initialization is wrong').
4. **Role Enforcement**: If the user asks for a simple 'Hint' or 'Solution' without providing code or a specific bug, say: "저는 디버깅 전문가입니다. 코드를 보여주시고 오류 현상을 설명해주시면 로그 위치를 제안해드리겠습니다."
Answer in Korean."""

DEFAULT_PROMPT = """You are CodeGenie, a helpful AI coding mentor.
Help the user with their coding problem.
Answer in Korean."""


@dataclass(frozen=True)
class PromptStrategy:
    name: str
    supports: Callable[[str], bool]
    build: Callable[[Conversation], str]

    def system_prompt(self, conversation: Conversation) -> str:
        return self.build(conversation)


def _fixed(prompt: str) -> Callable[[Conversation], str]:
    return lambda conversation: prompt


def _for_modes(*modes: str) -> Callable[[str], bool]:
    return lambda mode: mode_is(mode, *modes)


def build_solution_prompt(conversation: Conversation) -> str:
    if conversation.strategy is None:
        return SOLUTION_PROMPT
    anchor = STRATEGY_ANCHOR_TEMPLATE.format(strategy=conversation.strategy)
    return f"{SOLUTION_PROMPT}\n\n{anchor}"


def build_counterexample_prompt(conversation: Conversation) -> str:
    spec = conversation.problem_spec
    if spec is not None and (spec.source or "").upper() == SOURCE_PROGRAMMERS:
        return FUNCTION_CASES_PROMPT
    return STDIN_CASES_PROMPT


DEFAULT_STRATEGY = PromptStrategy("default", lambda mode: True, _fixed(DEFAULT_PROMPT))

STRATEGIES: tuple[PromptStrategy, ...] = (
    PromptStrategy("problem-summary", _for_modes(MODE_UNDERSTANDING), _fixed(SUMMARY_PROMPT)),
    PromptStrategy("example-trace", _for_modes(MODE_UNDERSTANDING_TRACE), _fixed(TRACE_PROMPT)),
    PromptStrategy("algorithm-hint", _for_modes(MODE_UNDERSTANDING_HINT), _fixed(HINT_PROMPT)),
    PromptStrategy("feasibility-guidance", _for_modes(MODE_SOLUTION), build_solution_prompt),
    PromptStrategy("counterexample-generator", _for_modes(MODE_COUNTEREXAMPLE), build_counterexample_prompt),
    PromptStrategy("strategic-debug", _for_modes(MODE_DEBUGGING), _fixed(DEBUGGING_PROMPT)),
)


class PromptStrategyRegistry:
    """First matching strategy wins; the default strategy always matches last."""

    def __init__(
        self,
        strategies: Iterable[PromptStrategy] = STRATEGIES,
        default: PromptStrategy = DEFAULT_STRATEGY,
    ) -> None:
        self.strategies = tuple(strategies)
        self.default = default

    def resolve(self, mode: str) -> PromptStrategy:
        for strategy in self.strategies:
            if strategy.supports(mode):
                return strategy
        return self.default

    def system_prompt(self, conversation: Conversation) -> str:
        return self.resolve(conversation.mode).system_prompt(conversation)


def build_context(conversation: Conversation) -> str:
    """Render the problem and the learner's code as the context turn of a chat."""

    lines: list[str] = []
    spec = conversation.problem_spec
    if spec is not None:
        lines.append("[Problem Info]")
        lines.append(f"Title: {spec.title}")
        if spec.time_limit is not None:
            lines.append(f"Time Limit: {spec.time_limit}")
        if spec.memory_limit is not None:
            lines.append(f"Memory Limit: {spec.memory_limit}")
        lines.append("Description:")
        lines.append(f"{spec.description}")
        if spec.input_format is not None:
            lines.extend(["Input Format:", spec.input_format])
        if spec.output_format is not None:
            lines.extend(["Output Format:", spec.output_format])
        if spec.constraints is not None:
            lines.extend(["Constraints:", spec.constraints])
        if spec.examples:
            lines.append("Examples:")
            for example in spec.examples:
                lines.append(f"Input: {example.input}")
                lines.append(f"Output: {example.output}")
                if example.explanation:
                    lines.append(f"Explanation: {example.explanation}")
    elif conversation.problem_text is not None:
        lines.append(f"Problem: {conversation.problem_text}")

    context = "\n".join(lines) + "\n" if lines else ""
    if conversation.user_code:
        context += f"\n[User Code]\n{conversation.user_code}\n"
    return context
