"""Tests for plotting utilities."""

from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pytest

from hydrocombine.plots import apply_hydrocombine_style, plot_station_fit, plot_weights
from hydrocombine.region import optimise_region


@pytest.fixture
def upper_result(series):
    out = optimise_region(series, optim_method="CLS", sampling="serial", train=0.8)
    return out[2].optimisation_info


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


class TestPlots:
    def test_plot_weights_bar(self, upper_result) -> None:
        ax = plot_weights(upper_result)
        assert ax.get_ylabel() == "Weight"
        assert len(ax.patches) == 2

    def test_plot_weights_monthly(self, series) -> None:
        out = optimise_region(series, combination="monthly", sampling="serial", train=1.0)
        ax = plot_weights(out[2].optimisation_info)
        assert len(ax.get_lines()) >= 2

    def test_plot_station_fit(self, upper_result, tmp_path) -> None:
        apply_hydrocombine_style()
        path = tmp_path / "fit.png"
        fig = plot_station_fit(upper_result, save_path=str(path))
        assert path.exists()
        assert "Upper" in fig._suptitle.get_text()
