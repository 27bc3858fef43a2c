"""
Report generation for benchmark results.

Produces text and JSON reports from :class:`BenchmarkResult` mappings.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from hydrocombine.validation.benchmarks import BenchmarkResult

logger = logging.getLogger(__name__)


def generate_text_report(results: dict[str, BenchmarkResult]) -> str:
    """Generate a plain-text benchmark report.

    Parameters
    ----------
    results : dict[str, BenchmarkResult]
        Benchmark name to result mapping.

    Returns
    -------
    str
        Formatted text report.
    """
    lines: list[str] = []
    n_pass = sum(1 for r in results.values() if r.passed)
    n_total = len(results)
    lines.append(f"Synthetic network checks: {n_pass}/{n_total} passed")
    lines.append("=" * 40)
    lines.append("")

    for name, result in results.items():
        status = "PASS" if result.passed else "FAIL"
        lines.append(f"[{status}] {name}")
        if result.description:
            lines.append(f"  {result.description}")
        lines.append(f"  Max error: {result.max_error:.3g}")
        lines.append(f"  Tolerance: {result.tolerance:g}")
        lines.append(f"  {result.summary}")

        if result.errors:
            lines.append("  Checks:")
            for check, error in result.errors.items():
                lines.append(f"    {check}: {error:.3g}")

        lines.append("")

    return "\n".join(lines)


def generate_json_report(results: dict[str, BenchmarkResult]) -> str:
    """Generate a JSON benchmark report.

    Parameters
    ----------
    results : dict[str, BenchmarkResult]
        Benchmark name to result mapping.

    Returns
    -------
    str
        JSON string.  Non-finite errors are written as ``null``.
    """
    report: dict[str, Any] = {}

    for name, result in results.items():
        report[name] = {
            "passed": result.passed,
            "max_error": _finite_or_none(result.max_error),
            "tolerance": result.tolerance,
            "summary": result.summary,
            "description": result.description,
            "errors": {k: _finite_or_none(v) for k, v in result.errors.items()},
        }

    return json.dumps(report, indent=2)


def _finite_or_none(value: float):
    return value if value == value and abs(value) != float("inf") else None
