"""
hydrocombine.plots - Plotting utilities for station combination results
"""

from __future__ import annotations

from typing import Optional, Tuple

import matplotlib.pyplot as plt
import pandas as pd
from matplotlib.dates import DateFormatter

from .optimise import WeightResult


def apply_hydrocombine_style():
    """Apply the standard plotting style."""
    plt.rcParams.update({
        "figure.dpi": 140,
        "figure.facecolor": "white",
        "axes.facecolor": "white",
        "axes.grid": True,
        "grid.alpha": 0.3,
        "font.size": 10,
    })


def plot_weights(result: WeightResult, ax: Optional[plt.Axes] = None) -> plt.Axes:
    """
    Plot fitted weights.

    A bar per member for whole-record fits; one line per member across
    months or years for periodic fits.
    """
    if ax is None:
        _, ax = plt.subplots(figsize=(6, 4))

    if isinstance(result.weights, pd.DataFrame):
        for member in result.weights.columns:
            ax.plot(result.weights.index, result.weights[member], marker="o", label=str(member))
        ax.set_xlabel(result.weights.index.name or "Period")
        ax.legend(loc="best", fontsize=8)
    else:
        ax.bar([str(m) for m in result.weights.index], result.weights.values, color="steelblue")
        ax.set_xlabel("Ensemble member")
        ax.tick_params(axis="x", rotation=45)

    ax.axhline(0.0, color="black", linewidth=0.8)
    ax.set_ylabel("Weight")
    ax.set_title(f"{result.method} weights ({result.granularity})", fontsize=11)
    return ax


def plot_station_fit(
    result: WeightResult,
    title: Optional[str] = None,
    save_path: Optional[str] = None,
    figsize: Tuple[int, int] = (12, 5),
) -> plt.Figure:
    """
    Plot observed vs optimised discharge at a station, with its weights.

    Parameters
    ----------
    result : WeightResult
        Fit returned for a station.
    title : str, optional
        Figure title; defaults to the station name.
    save_path : str, optional
        Path to save the figure.
    figsize : tuple
        Figure size.

    Returns
    -------
    plt.Figure
    """
    fig, (ax_ts, ax_w) = plt.subplots(
        1, 2, figsize=figsize, gridspec_kw={"width_ratios": [3, 1]}
    )

    ax_ts.plot(result.observed.index, result.observed.values, color="black", linewidth=1.0, label="Observed")
    ax_ts.plot(
        result.optimized.index,
        result.optimized.values,
        color="tab:red",
        linewidth=1.0,
        alpha=0.8,
        label="Optimized",
    )
    ax_ts.set_ylabel("Discharge", fontsize=11)
    ax_ts.set_xlabel("Date", fontsize=11)
    ax_ts.xaxis.set_major_formatter(DateFormatter("%Y"))
    ax_ts.legend(loc="upper right", fontsize=9)

    full = result.goodness_of_fit[result.goodness_of_fit["subset"] == "full"]
    ax_ts.annotate(
        f"NSE = {full['NSE'].mean():.2f}   KGE = {full['KGE'].mean():.2f}",
        xy=(0.02, 0.98),
        xycoords="axes fraction",
        fontsize=9,
        ha="left",
        va="top",
        bbox=dict(boxstyle="round", facecolor="white", alpha=0.8),
    )

    plot_weights(result, ax=ax_w)

    if title is None:
        title = f"Station {result.station}" if result.station is not None else "Station fit"
    fig.suptitle(title, fontsize=12, fontweight="bold")
    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=300, bbox_inches="tight")

    return fig
