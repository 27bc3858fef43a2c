"""Tests for goodness-of-fit metrics."""

from __future__ import annotations

import numpy as np
import pytest

from hydrocombine.metrics import METRICS, goodness_of_fit, kge, mae, me, nse, pbias, pearson_r, rmse

OBS = np.array([1.0, 2.0, 3.0, 4.0, 5.0])


class TestMetrics:
    """Tests for individual metrics."""

    def test_perfect_fit(self) -> None:
        assert nse(OBS, OBS) == pytest.approx(1.0)
        assert kge(OBS, OBS) == pytest.approx(1.0)
        assert pearson_r(OBS, OBS) == pytest.approx(1.0)
        assert rmse(OBS, OBS) == 0.0
        assert pbias(OBS, OBS) == 0.0

    def test_constant_offset(self) -> None:
        sim = OBS + 1.0
        assert me(sim, OBS) == pytest.approx(1.0)
        assert mae(sim, OBS) == pytest.approx(1.0)
        assert rmse(sim, OBS) == pytest.approx(1.0)
        assert pbias(sim, OBS) == pytest.approx(100.0 * 5.0 / 15.0)

    def test_mean_prediction_has_zero_nse(self) -> None:
        sim = np.full(OBS.size, OBS.mean())
        assert nse(sim, OBS) == pytest.approx(0.0)

    def test_nan_pairs_ignored(self) -> None:
        sim = np.array([1.0, np.nan, 3.0, 4.0, 5.0])
        obs = np.array([1.0, 2.0, 3.0, np.nan, 5.0])
        assert rmse(sim, obs) == 0.0

    def test_degenerate_inputs_are_nan(self) -> None:
        flat = np.ones(4)
        assert np.isnan(nse(flat, flat))
        assert np.isnan(kge(flat, flat))
        assert np.isnan(rmse(np.array([np.nan]), np.array([1.0])))

    def test_shape_mismatch(self) -> None:
        with pytest.raises(ValueError):
            rmse(np.ones(3), np.ones(4))


class TestGoodnessOfFit:
    def test_all_metrics_present(self) -> None:
        scores = goodness_of_fit(OBS * 1.1, OBS)
        assert set(scores) == set(METRICS)
        assert scores["PBIAS"] == pytest.approx(10.0)
