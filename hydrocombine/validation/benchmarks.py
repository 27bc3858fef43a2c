"""
Region optimisation benchmark cases.

Each benchmark is a named, self-contained scenario built from
:mod:`hydrocombine.validation.scenarios` with a check that measures how far
the optimised network is from the hand-computed answer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict

import numpy as np

from hydrocombine.network import RiverNetwork
from hydrocombine.region import ENSEMBLE_MEAN, ENSEMBLE_MEAN_INFO, OPTIMIZED, optimise_region
from hydrocombine.validation import scenarios

logger = logging.getLogger(__name__)

Check = Callable[[RiverNetwork, RiverNetwork], Dict[str, float]]


@dataclass
class BenchmarkResult:
    """Outcome of one benchmark.

    Parameters
    ----------
    passed : bool
        True if every check error is within tolerance.
    tolerance : float
        Largest accepted absolute error.
    errors : dict[str, float]
        Check name to absolute error.
    max_error : float
        Largest error across checks.
    summary : str
        Number of checks and the largest error.
    description : str
        What the scenario tests.
    """

    passed: bool = False
    tolerance: float = 1e-6
    errors: Dict[str, float] = field(default_factory=dict)
    max_error: float = 0.0
    summary: str = ""
    description: str = ""


@dataclass
class Benchmark:
    """A single benchmark case.

    Parameters
    ----------
    name : str
        Short identifier.
    description : str
        Human-readable description.
    build : callable
        Returns the input network.
    check : callable
        ``check(original, optimised) -> {name: abs_error}``.
    options : dict
        Keyword arguments for :func:`~hydrocombine.region.optimise_region`.
    tolerance : float
        Largest accepted absolute error.
    """

    name: str
    description: str
    build: Callable[[], RiverNetwork]
    check: Check
    options: Dict[str, Any] = field(default_factory=dict)
    tolerance: float = 1e-6

    def run(self) -> RiverNetwork:
        """Optimise the scenario network."""
        return optimise_region(self.build(), **self.options)

    def validate(self) -> BenchmarkResult:
        """Run and check the benchmark."""
        original = self.build()
        optimised = optimise_region(original, **self.options)
        errors = {k: float(v) for k, v in self.check(original, optimised).items()}
        max_error = max(errors.values()) if errors else 0.0
        passed = bool(np.isfinite(max_error) and max_error <= self.tolerance)
        return BenchmarkResult(
            passed=passed,
            tolerance=self.tolerance,
            errors=errors,
            max_error=max_error,
            summary=f"{len(errors)} checks, max error {max_error:.3g} (tolerance {self.tolerance:g})",
            description=self.description,
        )


def _max_abs(a, b) -> float:
    return float(np.max(np.abs(np.asarray(a, dtype=float) - np.asarray(b, dtype=float))))


def _check_single_member(original: RiverNetwork, optimised: RiverNetwork) -> Dict[str, float]:
    r1 = original[1].runoff["model_a"]
    r2 = original[2].runoff["model_a"]
    return {
        "weight": abs(float(optimised[2].optimisation_info.weights.iloc[0]) - 1.0),
        "headwater_discharge": _max_abs(optimised[1].discharge[OPTIMIZED], r1),
        "outlet_discharge": _max_abs(optimised[2].discharge[OPTIMIZED], r1 + r2),
    }


def _check_series(original: RiverNetwork, optimised: RiverNetwork) -> Dict[str, float]:
    lower = optimised[3].optimisation_info
    own = original[3].runoff[list(lower.weights.index)] @ lower.weights
    increment = optimised[3].discharge[OPTIMIZED] - optimised[2].discharge[OPTIMIZED]
    return {
        "lower_increment": _max_abs(increment, own),
        "lower_weights": _max_abs(lower.weights[["model_a", "model_b"]], [1.0, 0.0]),
        "upper_fit": _max_abs(optimised[2].discharge[OPTIMIZED], original[2].observation),
        "resolved_by_upper": float(optimised[1].optimised_at != 2),
    }


def _check_confluence(original: RiverNetwork, optimised: RiverNetwork) -> Dict[str, float]:
    outlet = optimised[4].optimisation_info
    w = outlet.weights
    own = sum(original[rid].runoff[list(w.index)] @ w for rid in (3, 4))
    headwaters = optimised[1].discharge[OPTIMIZED] + optimised[2].discharge[OPTIMIZED]
    return {
        "outlet_increment": _max_abs(optimised[4].discharge[OPTIMIZED] - headwaters, own),
        "junction_increment": _max_abs(
            optimised[3].discharge[OPTIMIZED] - headwaters, original[3].runoff[list(w.index)] @ w
        ),
        "junction_resolved_by_outlet": float(optimised[3].optimised_at != 4),
    }


def _check_ungauged(original: RiverNetwork, optimised: RiverNetwork) -> Dict[str, float]:
    mean = {rid: original[rid].runoff.mean(axis=1) for rid in (2, 3, 4, 9)}
    gauge = optimised[1].discharge[OPTIMIZED]
    expected_outlet = gauge + mean[2] + mean[3] + mean[4]
    return {
        "outlet_discharge": _max_abs(optimised[4].discharge[ENSEMBLE_MEAN], expected_outlet),
        "isolated_discharge": _max_abs(optimised[9].discharge[ENSEMBLE_MEAN], mean[9]),
        "isolated_marker": float(optimised[9].optimisation_info != ENSEMBLE_MEAN_INFO),
        "isolated_station": float(optimised[9].optimised_at is not None),
    }


_DEFAULTS = {"optim_method": "CLS", "sampling": "serial", "train": 1.0}

# Registry of available benchmarks
BENCHMARKS: Dict[str, Benchmark] = {}


def register_benchmarks() -> None:
    """Populate the BENCHMARKS registry with all available benchmarks."""
    cases = [
        Benchmark(
            name="single_member",
            description="One member, one gauge: discharge equals accumulated runoff",
            build=scenarios.single_member_network,
            check=_check_single_member,
            options=dict(_DEFAULTS),
        ),
        Benchmark(
            name="series_mass_balance",
            description="Two gauges in series: lower gauge fits only its own area",
            build=scenarios.series_network,
            check=_check_series,
            options=dict(_DEFAULTS),
            tolerance=1e-4,
        ),
        Benchmark(
            name="confluence_below_gauges",
            description="Two gauged headwaters joining above a gauged outlet",
            build=scenarios.confluence_network,
            check=_check_confluence,
            options=dict(_DEFAULTS),
            tolerance=1e-4,
        ),
        Benchmark(
            name="ungauged_outlet",
            description="Ensemble mean below the last gauge and on an isolated segment",
            build=scenarios.ungauged_outlet_network,
            check=_check_ungauged,
            options=dict(_DEFAULTS),
        ),
    ]
    for case in cases:
        BENCHMARKS.setdefault(case.name, case)


def run_all_benchmarks() -> Dict[str, BenchmarkResult]:
    """Run all registered benchmarks.

    Returns
    -------
    dict[str, BenchmarkResult]
        Benchmark name to result mapping.
    """
    register_benchmarks()
    results: Dict[str, BenchmarkResult] = {}

    for name, benchmark in BENCHMARKS.items():
        logger.info("Running benchmark: %s", name)
        try:
            results[name] = benchmark.validate()
        except Exception as e:
            logger.error("Benchmark '%s' failed: %s", name, e)
            results[name] = BenchmarkResult(
                passed=False,
                max_error=float("nan"),
                summary=f"ERROR: {e}",
                description=benchmark.description,
            )

    return results


def print_benchmark_report(results: Dict[str, BenchmarkResult]) -> None:
    """Print each scenario with its check errors, flagging checks over tolerance."""
    n_pass = sum(1 for r in results.values() if r.passed)
    n_total = len(results)

    print(f"\nRegion optimisation on {n_total} synthetic networks")
    print("-" * 60)
    for name, result in results.items():
        status = "PASS" if result.passed else "FAIL"
        print(f"[{status}] {name}: {result.description or result.summary}")
        if not result.errors:
            print(f"    {result.summary}")
        for check, error in result.errors.items():
            marker = "" if error <= result.tolerance else "  <- above tolerance"
            print(f"    {check:<28} |error| = {error:.3g}{marker}")
    print("-" * 60)
    print(f"Total: {n_pass}/{n_total} passed\n")
