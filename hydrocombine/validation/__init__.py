"""
Validation module for hydrocombine.

Synthetic networks with known answers, benchmark checks of the region
optimisation against them, and text/JSON reporting.
"""

from hydrocombine.validation.benchmarks import (
    BENCHMARKS,
    Benchmark,
    BenchmarkResult,
    run_all_benchmarks,
)

__all__ = [
    "BENCHMARKS",
    "Benchmark",
    "BenchmarkResult",
    "run_all_benchmarks",
]
