"""Command-line interface for serving the mentor and running submissions locally."""

from __future__ import annotations

import argparse
import os
from pathlib import Path

import uvicorn

from .api import create_app
from .chat import DialogueService
from .client import OpenAICompatChatClient
from .config import ServiceConfig, load_env_file
from .guardrail import GuardrailClassifier
from .langgraph_verifier import LangGraphCounterexampleVerifier, LangGraphUnavailableError
from .logs import setup_logging
from .models import MODE_COUNTEREXAMPLE, SOURCE_BAEKJOON, SOURCE_PROGRAMMERS, SOURCE_RAW, ProblemSpec
from .pipeline import load_cases, run_cases, save_debug, save_report
from .repository import build_repository
from .sandbox import SandboxPolicy, SandboxRunner, summarize_report
from .verifier import CounterexampleVerifier

VERIFY_REQUEST = "제 코드의 반례를 찾아주세요."


def _build_runner(config: ServiceConfig) -> SandboxRunner:
    return SandboxRunner(
        SandboxPolicy(
            compile_timeout_sec=config.compile_timeout_sec,
            run_timeout_sec=config.run_timeout_sec,
            max_output_bytes=config.max_output_bytes,
        )
    )


def _build_client(config: ServiceConfig) -> OpenAICompatChatClient:
    return OpenAICompatChatClient(
        base_url=config.base_url,
        model=config.model,
        api_key=config.api_key,
        timeout_sec=config.llm_timeout_sec,
    )


def _build_verifier(kind: str, client, runner: SandboxRunner) -> CounterexampleVerifier:
    if kind == "langgraph":
        try:
            return LangGraphCounterexampleVerifier(client, runner)
        except LangGraphUnavailableError as exc:
            raise SystemExit(str(exc)) from exc
    return CounterexampleVerifier(client, runner)


def build_service(
    config: ServiceConfig,
    *,
    runner: SandboxRunner | None = None,
    verifier_kind: str | None = None,
    database_url: str | None = None,
) -> DialogueService:
    """Wire repository, gateway, guardrail and verifier from configuration."""

    runner = runner or _build_runner(config)
    client = _build_client(config)
    return DialogueService(
        build_repository(database_url if database_url is not None else config.database_url),
        client,
        guardrail=GuardrailClassifier(client, fail_closed=config.guardrail_fail_closed),
        verifier=_build_verifier(verifier_kind or config.verifier, client, runner),
        history_size=config.history_window,
    )


def cmd_serve(args: argparse.Namespace) -> None:
    config = ServiceConfig.from_env()
    runner = _build_runner(config)
    service = build_service(config, runner=runner, database_url=args.database_url)
    print(f"[serve] model={config.model} verifier={config.verifier} store={args.database_url or config.database_url or 'memory'}")
    uvicorn.run(create_app(service, runner), host=args.host, port=args.port, log_level=config.log_level.lower())


def cmd_execute(args: argparse.Namespace) -> None:
    config = ServiceConfig.from_env()
    runner = _build_runner(config)
    code = Path(args.code_file).read_text(encoding="utf-8")

    cases = load_cases(args.input_csv) if args.input_csv else []
    report_df, report = run_cases(runner, args.language, code, cases, verbose=not args.quiet)

    if report.error:
        print(f"[execute] error:\n{report.error}")
    elif not cases:
        print(report.output or "")

    print(f"[execute] {summarize_report(report)} all_passed={report.all_passed}")

    if args.output_csv:
        output = save_report(report_df, args.output_csv)
        print(f"[execute] saved report to {output}")
    if args.debug_json:
        output = save_debug(report, args.debug_json)
        print(f"[execute] saved debug trace to {output}")

    if not report.all_passed:
        raise SystemExit(1)


def cmd_verify(args: argparse.Namespace) -> None:
    config = ServiceConfig.from_env()
    code = Path(args.code_file).read_text(encoding="utf-8")
    problem_text = Path(args.problem_file).read_text(encoding="utf-8") if args.problem_file else None

    service = build_service(config, verifier_kind=args.verifier, database_url="")
    spec = None
    if problem_text is not None:
        spec = ProblemSpec(source=args.source, title=Path(args.problem_file).stem, description=problem_text)

    conversation = service.start(
        MODE_COUNTEREXAMPLE,
        problem_text,
        code,
        code_language=args.language,
        problem_spec=spec,
    )
    reply = service.send(conversation.id, args.request)
    print(reply.content)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="codegenie", description="CodeGenie mentor service")
    parser.add_argument("--log-level", default=os.getenv("CODEGENIE_LOG_LEVEL", "INFO"))
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8080)
    serve.add_argument("--database-url", default=None, help="SQLAlchemy URL; in-memory store when omitted")
    serve.set_defaults(func=cmd_serve)

    execute = subparsers.add_parser("execute", help="Run a submission against a CSV of test cases")
    execute.add_argument("--code-file", required=True)
    execute.add_argument("--language", default="java")
    execute.add_argument("--input-csv", default=None, help="CSV with `input` and optional `expected` columns")
    execute.add_argument("--output-csv", default=None)
    execute.add_argument("--debug-json", default=None)
    execute.add_argument("--quiet", action="store_true")
    execute.set_defaults(func=cmd_execute)

    verify = subparsers.add_parser("verify", help="Ask the model for test cases and check a submission against them")
    verify.add_argument("--code-file", required=True)
    verify.add_argument("--language", default="java")
    verify.add_argument("--problem-file", default=None)
    verify.add_argument(
        "--source",
        choices=[SOURCE_RAW, SOURCE_BAEKJOON, SOURCE_PROGRAMMERS],
        default=SOURCE_RAW,
        help="PROGRAMMERS asks for function-argument inputs instead of stdin",
    )
    verify.add_argument(
        "--verifier",
        choices=["classic", "langgraph"],
        default=os.getenv("CODEGENIE_VERIFIER", "classic"),
    )
    verify.add_argument("--request", default=VERIFY_REQUEST)
    verify.set_defaults(func=cmd_verify)

    return parser


def main(argv: list[str] | None = None) -> None:
    load_env_file()
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)
    args.func(args)


if __name__ == "__main__":
    main()
