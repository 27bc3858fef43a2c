"""
hydrocombine command-line interface.

``hydrocombine validate`` optimises the synthetic river networks of
:mod:`hydrocombine.validation.scenarios` and compares the routed,
combined discharge with the answers known by construction.
``hydrocombine benchmark`` writes the same comparison as a report.
"""

from __future__ import annotations

import logging

import click


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log station progress at INFO level.")
def cli(verbose: bool) -> None:
    """hydrocombine - Ensemble runoff combination over river networks."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
def validate() -> None:
    """Check mass balance and weights on the synthetic networks.

    Exits with status 1 if any check error exceeds its tolerance.
    """
    from hydrocombine.validation.benchmarks import print_benchmark_report, run_all_benchmarks

    click.echo("Optimising synthetic networks...")
    results = run_all_benchmarks()
    print_benchmark_report(results)

    if not all(r.passed for r in results.values()):
        raise SystemExit(1)


@cli.command()
@click.option("--format", "fmt", type=click.Choice(["text", "json"]), default="text")
def benchmark(fmt: str) -> None:
    """Report per-check errors for every synthetic network.

    Parameters
    ----------
    fmt : str
        'text' for a readable listing, 'json' for one object per network.
    """
    from hydrocombine.validation.benchmarks import run_all_benchmarks
    from hydrocombine.validation.reports import generate_json_report, generate_text_report

    click.echo("Optimising synthetic networks...")
    results = run_all_benchmarks()

    if fmt == "json":
        click.echo(generate_json_report(results))
    else:
        click.echo(generate_text_report(results))


if __name__ == "__main__":
    cli()
