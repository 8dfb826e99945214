"""Dataframe-level utilities for running a submission over a table of test cases."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pandas as pd

from .models import ExecutionReport, TestCase
from .sandbox import SandboxRunner

REPORT_COLUMNS = ["case", "input", "expected", "actual", "passed", "error"]


def load_cases(path: str | Path, *, input_col: str = "input", expected_col: str = "expected") -> list[TestCase]:
    """Read test cases from a CSV; a missing expected column means ad-hoc runs."""

    frame = pd.read_csv(path, dtype=str, keep_default_na=False)
    return cases_from_frame(frame, input_col=input_col, expected_col=expected_col)


def cases_from_frame(
    frame: pd.DataFrame,
    *,
    input_col: str = "input",
    expected_col: str = "expected",
) -> list[TestCase]:
    if input_col not in frame.columns:
        raise ValueError(f"Missing required columns: {[input_col]}")

    has_expected = expected_col in frame.columns
    cases: list[TestCase] = []
    for values in frame.to_dict(orient="records"):
        expected = values.get(expected_col) if has_expected else ""
        cases.append(TestCase(input=_cell(values.get(input_col)), expected_output=_cell(expected)))
    return cases


def _cell(value: Any) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value)


def run_cases(
    runner: SandboxRunner,
    language: str,
    code: str,
    cases: list[TestCase],
    *,
    verbose: bool = True,
) -> tuple[pd.DataFrame, ExecutionReport]:
    """Execute all cases in one sandbox invocation and tabulate the per-case results."""

    report = runner.execute(language, code, cases)
    rows = report_rows(report)

    if verbose:
        total = len(rows)
        for row in rows:
            status = "PASS" if row["passed"] else "FAIL"
            print(f"[{row['case']:02d}/{total:02d}] {status} expected={row['expected']!r} actual={row['actual']!r}")

    return pd.DataFrame(rows, columns=REPORT_COLUMNS), report


def report_rows(report: ExecutionReport) -> list[dict[str, Any]]:
    return [
        {
            "case": index,
            "input": result.input,
            "expected": result.expected_output,
            "actual": result.actual_output,
            "passed": result.passed,
            "error": result.error,
        }
        for index, result in enumerate(report.test_results, start=1)
    ]


def save_report(report_df: pd.DataFrame, output_path: str | Path) -> Path:
    """Save the case table with the fixed report columns."""

    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)

    if list(report_df.columns) != REPORT_COLUMNS:
        report_df = report_df[REPORT_COLUMNS]

    report_df.to_csv(output, index=False)
    return output


def save_debug(report: ExecutionReport, output_path: str | Path) -> Path:
    """Persist the full execution report as JSON."""

    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(report.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    return output
