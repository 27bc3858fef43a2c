"""Tests for single-station weight fitting."""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd
import pytest

from hydrocombine.optimise import (
    OBSERVATIONS,
    WarningFlags,
    build_flow_table,
    combine_annual,
    combine_monthly,
    combine_timeseries,
    drop_missing_columns,
    fit,
    has_complete_rows,
    split_sample,
)
from hydrocombine.validation.scenarios import monthly_dates, synthetic_runoff


def make_flow(n_months: int = 120, weights=(0.3, 0.7)) -> pd.DataFrame:
    dates = monthly_dates(n_months)
    flow = synthetic_runoff(dates, seed=3)
    flow[OBSERVATIONS] = weights[0] * flow["model_a"] + weights[1] * flow["model_b"]
    return flow


def _messages(caplog, text: str) -> list:
    return [r for r in caplog.records if text in r.getMessage()]


class TestFlowTable:
    """Tests for flow table preparation."""

    def test_rows_without_observations_dropped(self, dates) -> None:
        discharge = synthetic_runoff(dates)
        obs = pd.Series(1.0, index=dates[10:20])
        flow = build_flow_table(discharge, obs)
        assert len(flow) == 10
        assert list(flow.columns) == ["model_a", "model_b", OBSERVATIONS]

    def test_nan_observations_dropped(self, dates) -> None:
        discharge = synthetic_runoff(dates)
        obs = pd.Series(1.0, index=dates)
        obs.iloc[:5] = np.nan
        assert len(build_flow_table(discharge, obs)) == len(dates) - 5

    def test_no_overlap_is_empty(self, dates) -> None:
        discharge = synthetic_runoff(dates)
        obs = pd.Series(1.0, index=pd.date_range("1950-01-01", periods=3, freq="MS"))
        assert build_flow_table(discharge, obs).empty

    def test_drop_missing_columns(self) -> None:
        flow = make_flow(12)
        flow["model_c"] = np.nan
        assert "model_c" not in drop_missing_columns(flow).columns

    def test_has_complete_rows(self) -> None:
        flow = make_flow(12)
        flow["model_c"] = np.nan
        assert has_complete_rows(flow)

    def test_members_missing_on_observed_rows(self) -> None:
        flow = make_flow(12)
        flow.iloc[:6, 0] = np.nan
        flow.iloc[6:, 1] = np.nan
        assert not has_complete_rows(flow)
        assert not has_complete_rows(flow[[OBSERVATIONS]])


class TestSplitSample:
    """Tests for train/test sampling."""

    def test_serial_prefix(self) -> None:
        train, test = split_sample(10, 0.7, "serial")
        assert train.tolist() == list(range(7))
        assert test.tolist() == [7, 8, 9]

    def test_serial_floors(self) -> None:
        train, _ = split_sample(10, 0.55, "serial")
        assert train.size == 5

    def test_random_disjoint(self) -> None:
        train, test = split_sample(20, 0.5, "random", np.random.default_rng(0))
        assert train.size == 10
        assert set(train).isdisjoint(test)
        assert sorted(set(train) | set(test)) == list(range(20))

    def test_random_reproducible(self) -> None:
        a, _ = split_sample(50, 0.5, "random", np.random.default_rng(3))
        b, _ = split_sample(50, 0.5, "random", np.random.default_rng(3))
        np.testing.assert_array_equal(a, b)

    def test_full_training_reuses_rows_for_testing(self) -> None:
        train, test = split_sample(8, 1.0, "serial")
        np.testing.assert_array_equal(train, test)

    def test_unknown_sampling(self) -> None:
        with pytest.raises(ValueError):
            split_sample(8, 0.5, "blocked")


class TestGranularity:
    """Tests for timeseries/monthly/annual fitting."""

    def test_timeseries_recovers_weights(self) -> None:
        result, _ = combine_timeseries(make_flow(), "CLS", sampling="serial", train=0.5)
        assert result.granularity == "timeseries"
        assert result.weights["model_a"] == pytest.approx(0.3, abs=1e-4)
        assert result.weights["model_b"] == pytest.approx(0.7, abs=1e-4)
        assert set(result.goodness_of_fit["subset"]) == {"train", "test", "full"}
        full = result.goodness_of_fit[result.goodness_of_fit["subset"] == "full"]
        assert full["NSE"].iloc[0] == pytest.approx(1.0, abs=1e-6)

    def test_optimized_aligned_with_observed(self) -> None:
        result, _ = combine_timeseries(make_flow(), "CLS", sampling="serial", train=1.0)
        assert result.optimized.index.equals(result.observed.index)
        np.testing.assert_allclose(result.optimized, result.observed, atol=1e-4)

    def test_bias_correction_is_zero(self) -> None:
        result, _ = combine_timeseries(make_flow(), "CLS", sampling="serial")
        np.testing.assert_array_equal(result.bias_correction, np.zeros(12))

    def test_monthly_has_twelve_rows(self) -> None:
        result, _ = combine_monthly(make_flow(), "CLS", sampling="serial", train=1.0)
        assert result.weights.shape == (12, 2)
        assert result.weights.index.tolist() == list(range(1, 13))
        assert result.weights.index.name == "Month"
        np.testing.assert_allclose(result.weights.sum(axis=1), 1.0, atol=1e-8)
        assert isinstance(result.intercept, pd.Series)

    def test_monthly_missing_months_use_full_record(self) -> None:
        flow = make_flow()
        flow = flow[flow.index.month <= 6]
        result, _ = combine_monthly(flow, "NNLS", sampling="serial", train=1.0)
        assert result.weights.shape == (12, 2)
        full, _ = combine_timeseries(flow, "NNLS", sampling="serial", train=1.0)
        for month in range(7, 13):
            np.testing.assert_allclose(result.weights.loc[month], full.weights.values)
        assert set(result.goodness_of_fit["period"]) == set(range(1, 7))

    def test_annual_per_year(self) -> None:
        result, _ = combine_annual(make_flow(36), "CLS", sampling="serial", train=1.0)
        assert result.weights.index.tolist() == [2000, 2001, 2002]
        assert result.weights.index.name == "Year"
        combined = result.combination_weights()
        pd.testing.assert_series_equal(combined, result.weights.mean(axis=0))
        assert result.combination_intercept() == 0.0

    def test_fit_dispatch(self) -> None:
        result, flags = fit(make_flow(), "OLS", sampling="serial", granularity="monthly")
        assert result.granularity == "monthly"
        assert result.method == "OLS"
        assert isinstance(flags, WarningFlags)

    def test_unknown_granularity(self) -> None:
        with pytest.raises(ValueError, match="granularity"):
            fit(make_flow(), "CLS", granularity="weekly")

    def test_no_observations(self) -> None:
        flow = make_flow(24)
        flow[OBSERVATIONS] = np.nan
        with pytest.raises(ValueError):
            combine_timeseries(flow, "CLS")

    def test_summary_mentions_station(self) -> None:
        result, _ = combine_timeseries(make_flow(), "CLS", sampling="serial")
        result.station, result.river_id = "Gauge", 3
        text = result.summary()
        assert "Gauge" in text
        assert "model_a" in text


class TestSamplingWarnings:
    """Sampling warnings are logged at most once per run."""

    def test_small_training_set_warns_once(self, caplog) -> None:
        flow = make_flow(24)
        with caplog.at_level(logging.WARNING, logger="hydrocombine.optimise"):
            _, flags = combine_monthly(flow, "CLS", sampling="serial", train=0.5)
        assert len(_messages(caplog, "Training set")) == 1
        assert len(_messages(caplog, "overfitted")) == 1
        assert flags == WarningFlags(overfit=True, train=True)

    def test_flags_suppress_repeat(self, caplog) -> None:
        flow = make_flow(24)
        with caplog.at_level(logging.WARNING, logger="hydrocombine.optimise"):
            combine_timeseries(
                flow, "CLS", sampling="serial", train=0.25, flags=WarningFlags(overfit=True, train=True)
            )
        assert not _messages(caplog, "Training set")
        assert not _messages(caplog, "overfitted")

    def test_large_training_set_is_quiet(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="hydrocombine.optimise"):
            _, flags = combine_timeseries(make_flow(), "CLS", sampling="serial", train=0.5)
        assert flags == WarningFlags()
        assert not caplog.records

    def test_too_few_rows_fits_full_series(self) -> None:
        """With fewer training rows than parameters the whole period is used."""
        flow = make_flow(3)
        result, _ = combine_timeseries(flow, "OLS", sampling="serial", train=0.3)
        train = result.goodness_of_fit[result.goodness_of_fit["subset"] == "train"]
        assert train["n"].iloc[0] == 3
