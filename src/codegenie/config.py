"""Service configuration sourced from the environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from dotenv import load_dotenv

from .client import DEFAULT_BASE_URL, DEFAULT_MODEL

_TRUE = {"1", "true", "yes", "on"}


def load_env_file(path: str | None = None) -> None:
    """Load a `.env` file without overriding variables already set."""

    load_dotenv(dotenv_path=path, override=False)


def _number(env: Mapping[str, str], name: str, default: float, cast=float):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class ServiceConfig:
    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    llm_timeout_sec: float = 120.0
    database_url: str | None = None
    verifier: str = "classic"
    guardrail_fail_closed: bool = False
    compile_timeout_sec: float = 15.0
    run_timeout_sec: float = 2.0
    max_output_bytes: int = 1_048_576
    history_window: int = 10
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "ServiceConfig":
        env = os.environ if env is None else env
        verifier = (env.get("CODEGENIE_VERIFIER") or "classic").strip().lower()
        if verifier not in {"classic", "langgraph"}:
            raise ValueError(f"CODEGENIE_VERIFIER must be 'classic' or 'langgraph', got {verifier!r}")

        return cls(
            api_key=env.get("OPENAI_API_KEY") or None,
            base_url=env.get("CODEGENIE_LLM_BASE_URL") or DEFAULT_BASE_URL,
            model=env.get("CODEGENIE_MODEL") or DEFAULT_MODEL,
            llm_timeout_sec=_number(env, "CODEGENIE_LLM_TIMEOUT_SEC", 120.0),
            database_url=env.get("CODEGENIE_DATABASE_URL") or None,
            verifier=verifier,
            guardrail_fail_closed=(env.get("CODEGENIE_GUARDRAIL_FAIL_CLOSED") or "").strip().lower() in _TRUE,
            compile_timeout_sec=_number(env, "CODEGENIE_COMPILE_TIMEOUT_SEC", 15.0),
            run_timeout_sec=_number(env, "CODEGENIE_RUN_TIMEOUT_SEC", 2.0),
            max_output_bytes=_number(env, "CODEGENIE_MAX_OUTPUT_BYTES", 1_048_576, cast=int),
            history_window=_number(env, "CODEGENIE_HISTORY_WINDOW", 10, cast=int),
            log_level=(env.get("CODEGENIE_LOG_LEVEL") or "INFO").upper(),
        )
