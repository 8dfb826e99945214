"""Compile-and-run sandbox for learner submissions."""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import sys
import tempfile
import threading
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

from .harness import (
    CANONICAL_CLASS,
    JAVA_HARNESS_CLASS,
    JAVA_HARNESS_SOURCE,
    PYTHON_HARNESS_FILE,
    PYTHON_HARNESS_SOURCE,
    java_has_entry_point,
    prepare_java_source,
    python_has_entry_point,
)
from .models import CaseResult, ExecutionReport, TestCase
from .parsing import outputs_match, split_sentinel_output

logger = logging.getLogger(__name__)

TIME_LIMIT_EXCEEDED = "Time Limit Exceeded"
OUTPUT_TRUNCATED = "... (output truncated)"

LANGUAGE_ALIASES = {
    "java": "java",
    "python": "python",
    "python3": "python",
    "py": "python",
}


class UnsupportedLanguageError(ValueError):
    """Raised when a submission names a language without a toolchain."""


@dataclass(frozen=True)
class SandboxPolicy:
    compile_timeout_sec: float = 15.0
    run_timeout_sec: float = 2.0
    drain_grace_sec: float = 1.0
    max_output_bytes: int = 1_048_576
    workspace_prefix: str = "codegenie_"
    python_executable: str = sys.executable
    javac_executable: str = "javac"
    java_executable: str = "java"


@dataclass(frozen=True)
class ProcessOutcome:
    stdout: str
    stderr: str
    exit_code: int | None
    timed_out: bool
    duration_sec: float
    truncated: bool = False


@dataclass(frozen=True)
class PreparedProgram:
    language: str
    run_command: list[str]
    compile_command: list[str] | None = None
    uses_harness: bool = False


def canonical_language(language: str | None) -> str:
    tag = (language or "").strip().lower()
    try:
        return LANGUAGE_ALIASES[tag]
    except KeyError:
        raise UnsupportedLanguageError(f"Unsupported language: {language}") from None


def _prepare_java(workspace: Path, code: str, policy: SandboxPolicy) -> PreparedProgram:
    has_main = java_has_entry_point(code)
    source = workspace / f"{CANONICAL_CLASS}.java"
    source.write_text(prepare_java_source(code), encoding="utf-8")

    sources = [source.name]
    if not has_main:
        harness = workspace / f"{JAVA_HARNESS_CLASS}.java"
        harness.write_text(JAVA_HARNESS_SOURCE, encoding="utf-8")
        sources.append(harness.name)

    return PreparedProgram(
        language="java",
        compile_command=[policy.javac_executable, "-encoding", "UTF-8", *sources],
        run_command=[
            policy.java_executable,
            "-Dfile.encoding=UTF-8",
            "-cp",
            str(workspace),
            CANONICAL_CLASS if has_main else JAVA_HARNESS_CLASS,
        ],
        uses_harness=not has_main,
    )


def _prepare_python(workspace: Path, code: str, policy: SandboxPolicy) -> PreparedProgram:
    is_script = python_has_entry_point(code)
    source = workspace / f"{CANONICAL_CLASS}.py"
    source.write_text(code, encoding="utf-8")

    entry = source.name
    if not is_script:
        (workspace / PYTHON_HARNESS_FILE).write_text(PYTHON_HARNESS_SOURCE, encoding="utf-8")
        entry = PYTHON_HARNESS_FILE

    return PreparedProgram(
        language="python",
        compile_command=[policy.python_executable, "-m", "py_compile", source.name],
        run_command=[policy.python_executable, "-I", "-X", "utf8", entry],
        uses_harness=not is_script,
    )


_TOOLCHAINS: dict[str, Callable[[Path, str, SandboxPolicy], PreparedProgram]] = {
    "java": _prepare_java,
    "python": _prepare_python,
}


def _kill_tree(process: subprocess.Popen) -> None:
    if process.returncode is not None:
        return
    try:
        if os.name == "posix":
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass


@dataclass
class _OutputBuffer:
    """Keeps at most `limit` bytes; anything past it is counted as truncation and dropped."""

    limit: int | None = None
    chunks: list[bytes] = field(default_factory=list)
    size: int = 0
    truncated: bool = False

    def append(self, chunk: bytes) -> None:
        if self.limit is not None:
            room = self.limit - self.size
            if len(chunk) > room:
                self.truncated = True
                chunk = chunk[: max(room, 0)]
        if chunk:
            self.chunks.append(chunk)
            self.size += len(chunk)

    def text(self) -> str:
        return b"".join(self.chunks).decode("utf-8", errors="replace")


def _drain(stream: IO[bytes], sink: _OutputBuffer) -> None:
    try:
        for chunk in iter(lambda: stream.read(4096), b""):
            sink.append(chunk)
    except (OSError, ValueError) as exc:
        logger.debug("Stream drain stopped early: %s", exc)
    finally:
        stream.close()


def _start_drainer(stream: IO[bytes], sink: _OutputBuffer, name: str) -> threading.Thread:
    thread = threading.Thread(target=_drain, args=(stream, sink), name=f"drain-{name}", daemon=True)
    thread.start()
    return thread


def _feed(stream: IO[bytes], text: str | None) -> None:
    try:
        if text:
            stream.write(text.encode("utf-8"))
            stream.flush()
    except BrokenPipeError:
        # The child exited without consuming its input.
        pass
    finally:
        try:
            stream.close()
        except BrokenPipeError:
            pass


def run_process(
    command: list[str],
    *,
    cwd: Path,
    timeout_sec: float,
    grace_sec: float = 1.0,
    stdin_text: str | None = None,
    merge_stderr: bool = False,
    feed_stdin: bool = True,
    max_output_bytes: int | None = None,
) -> ProcessOutcome:
    """Run one child with concurrent stream draining and a hard wall-clock ceiling.

    Both drainers start before stdin is written so a chatty child can never stall
    on a full pipe. A watchdog kills the process group when the ceiling elapses,
    which also unblocks a stdin write the child never reads. Each stream keeps at
    most `max_output_bytes`; the drainers still read to EOF past that point.
    """

    start = time.perf_counter()
    process = subprocess.Popen(
        command,
        cwd=str(cwd),
        stdin=subprocess.PIPE if feed_stdin else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
        start_new_session=os.name == "posix",
    )

    stdout = _OutputBuffer(max_output_bytes)
    stderr = _OutputBuffer(max_output_bytes)
    drainers = [_start_drainer(process.stdout, stdout, "stdout")]
    if not merge_stderr:
        drainers.append(_start_drainer(process.stderr, stderr, "stderr"))

    expired = threading.Event()

    def _expire() -> None:
        expired.set()
        _kill_tree(process)

    watchdog = threading.Timer(timeout_sec, _expire)
    watchdog.daemon = True
    watchdog.start()
    try:
        if feed_stdin:
            _feed(process.stdin, stdin_text)
        exit_code = process.wait()
    finally:
        watchdog.cancel()

    for thread in drainers:
        thread.join(grace_sec)

    return ProcessOutcome(
        stdout=stdout.text(),
        stderr=stderr.text(),
        exit_code=exit_code,
        timed_out=expired.is_set(),
        duration_sec=time.perf_counter() - start,
        truncated=stdout.truncated or stderr.truncated,
    )


def _remove_workspace(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove sandbox workspace %s: %s", path, exc)


class SandboxRunner:
    """Compiles a submission once and runs it against each test case in order."""

    def __init__(self, policy: SandboxPolicy | None = None) -> None:
        self.policy = policy or SandboxPolicy()

    def execute(
        self,
        language: str,
        code: str,
        test_cases: Iterable[TestCase] | None = None,
    ) -> ExecutionReport:
        started = time.perf_counter()
        report = ExecutionReport()
        workspace: Path | None = None

        try:
            prepare = _TOOLCHAINS[canonical_language(language)]
            workspace = Path(
                tempfile.mkdtemp(prefix=f"{self.policy.workspace_prefix}{uuid.uuid4().hex}_")
            )
            program = prepare(workspace, code, self.policy)

            compile_error = self._compile(program, workspace)
            if compile_error is not None:
                logger.info("Compilation failed for %s submission", program.language)
                report.error = f"Compilation Failed:\n{compile_error}"
                report.exit_code = 1
                return report

            cases = list(test_cases or [])
            if cases:
                for case in cases:
                    report.test_results.append(self._run_case(program, workspace, case))
                report.all_passed = all(result.passed for result in report.test_results)
            else:
                result = self._run_case(program, workspace, TestCase())
                result.passed = result.error is None
                report.test_results.append(result)
                report.output = result.actual_output
                report.all_passed = result.passed
            report.exit_code = 0
        except UnsupportedLanguageError as exc:
            report.error = str(exc)
            report.exit_code = 1
        except Exception as exc:
            logger.exception("Sandbox execution failed")
            report.error = f"System Error: {exc}"
            report.all_passed = False
        finally:
            if workspace is not None:
                _remove_workspace(workspace)
            report.execution_time_ms = int((time.perf_counter() - started) * 1000)

        return report

    def _compile(self, program: PreparedProgram, workspace: Path) -> str | None:
        if program.compile_command is None:
            return None

        outcome = run_process(
            program.compile_command,
            cwd=workspace,
            timeout_sec=self.policy.compile_timeout_sec,
            grace_sec=self.policy.drain_grace_sec,
            merge_stderr=True,
            feed_stdin=False,
            max_output_bytes=self.policy.max_output_bytes,
        )
        if outcome.timed_out:
            return f"Compilation Time Limit Exceeded ({self.policy.compile_timeout_sec:g}s)"
        if outcome.exit_code != 0:
            return outcome.stdout
        return None

    def _run_case(self, program: PreparedProgram, workspace: Path, case: TestCase) -> CaseResult:
        result = CaseResult(input=case.input, expected_output=case.expected_output)
        try:
            outcome = run_process(
                program.run_command,
                cwd=workspace,
                timeout_sec=self.policy.run_timeout_sec,
                grace_sec=self.policy.drain_grace_sec,
                stdin_text=case.input,
                max_output_bytes=self.policy.max_output_bytes,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            result.error = f"Execution Error: {exc}"
            return result

        if outcome.timed_out:
            logger.debug("Case timed out after %.2fs", outcome.duration_sec)
            result.error = TIME_LIMIT_EXCEEDED
            result.actual_output = ""
            return result

        split = split_sentinel_output(outcome.stdout)
        result.actual_output = split.display
        if outcome.truncated:
            logger.debug("Case output exceeded %d bytes", self.policy.max_output_bytes)
            result.actual_output = f"{split.display}\n{OUTPUT_TRUNCATED}"
        if outcome.exit_code != 0:
            result.error = f"Runtime Error: {outcome.stderr}"
            return result

        result.passed = outputs_match(case.expected_output, split.validation)
        return result


def execute_code(
    language: str,
    code: str,
    test_cases: Iterable[TestCase] | None = None,
    policy: SandboxPolicy | None = None,
) -> ExecutionReport:
    """Run a submission once against `test_cases` with a throwaway runner."""

    return SandboxRunner(policy).execute(language, code, test_cases)


def summarize_report(report: ExecutionReport, max_chars: int = 400) -> str:
    if report.error:
        return report.error[:max_chars]
    passed = sum(1 for result in report.test_results if result.passed)
    return f"{passed}/{len(report.test_results)} cases passed in {report.execution_time_ms}ms"
