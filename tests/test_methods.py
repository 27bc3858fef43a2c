"""Tests for combination weight estimators."""

from __future__ import annotations

import numpy as np
import pytest

from hydrocombine.methods import (
    METHODS,
    CLSMethod,
    CombinationMethod,
    GRCMethod,
    ObjectiveMethod,
    OLSMethod,
    get_method,
)


@pytest.fixture
def ensemble():
    """Three members; observations are 0.6 * m0 + 0.4 * m1."""
    rng = np.random.default_rng(7)
    preds = rng.uniform(1.0, 10.0, size=(200, 3))
    obs = 0.6 * preds[:, 0] + 0.4 * preds[:, 1]
    return obs, preds


@pytest.fixture
def noisy_ensemble():
    """Members are noisy, biased copies of the observations."""
    rng = np.random.default_rng(11)
    obs = rng.uniform(5.0, 15.0, size=300)
    preds = np.column_stack(
        [
            obs * 1.2 + rng.normal(0, 1.0, obs.size),
            obs * 0.7 + rng.normal(0, 0.5, obs.size),
            rng.uniform(0.0, 20.0, obs.size),
        ]
    )
    return obs, preds


class TestRegistry:
    """Tests for method lookup."""

    def test_names(self) -> None:
        assert {"OLS", "GRA", "GRB", "GRC", "CLS", "NNLS", "BG", "EIG1", "EIG2", "best"} <= set(METHODS)

    def test_case_insensitive(self) -> None:
        assert isinstance(get_method("cls"), CLSMethod)
        assert isinstance(get_method("Best"), METHODS["best"])

    def test_unknown_name(self) -> None:
        with pytest.raises(ValueError, match="Unknown optimisation method"):
            get_method("XYZ")

    def test_instance_passthrough(self) -> None:
        method = CLSMethod()
        assert get_method(method) is method

    def test_callable_wrapped(self) -> None:
        def mse(w, obs, preds):
            return float(np.mean((preds @ w - obs) ** 2))

        method = get_method(mse, method="BFGS")
        assert isinstance(method, ObjectiveMethod)
        assert method.name == "mse"
        assert method.minimize_options["method"] == "BFGS"

    def test_intercept_flags(self) -> None:
        assert OLSMethod.intercept and GRCMethod.intercept and METHODS["EIG2"].intercept
        assert not CLSMethod.intercept and not METHODS["NNLS"].intercept

    def test_n_parameters(self) -> None:
        assert OLSMethod().n_parameters(3) == 4
        assert CLSMethod().n_parameters(3) == 3


class TestConstrainedMethods:
    """Weight constraints of each estimator."""

    def test_cls_recovers_simplex_weights(self, ensemble) -> None:
        obs, preds = ensemble
        weights, intercept = CLSMethod().fit(obs, preds)
        np.testing.assert_allclose(weights, [0.6, 0.4, 0.0], atol=1e-4)
        assert intercept == 0.0

    @pytest.mark.parametrize("name", ["CLS", "GRB"])
    def test_cls_nonnegative_and_sum_to_one(self, name, noisy_ensemble) -> None:
        obs, preds = noisy_ensemble
        weights, _ = get_method(name).fit(obs, preds)
        assert np.all(weights >= 0)
        assert weights.sum() == pytest.approx(1.0)

    @pytest.mark.parametrize("name", ["NNLS", "GRA", "GRB", "BG", "best"])
    def test_nonnegative(self, name, noisy_ensemble) -> None:
        obs, preds = noisy_ensemble
        weights, _ = get_method(name).fit(obs, preds)
        assert np.all(weights >= 0)

    def test_cls_single_member(self) -> None:
        weights, _ = CLSMethod().fit(np.arange(5.0), np.arange(5.0)[:, None] * 2)
        np.testing.assert_allclose(weights, [1.0])

    def test_nnls_free_sum(self, ensemble) -> None:
        obs, preds = ensemble
        weights, _ = get_method("NNLS").fit(obs * 2.0, preds)
        assert weights.sum() == pytest.approx(2.0, rel=1e-6)

    def test_ols_intercept(self, ensemble) -> None:
        obs, preds = ensemble
        weights, intercept = OLSMethod().fit(obs + 3.0, preds)
        assert intercept == pytest.approx(3.0)
        np.testing.assert_allclose(weights, [0.6, 0.4, 0.0], atol=1e-8)

    def test_bg_inverse_mse(self) -> None:
        obs = np.zeros(4)
        preds = np.column_stack([np.ones(4), 2.0 * np.ones(4)])
        weights, _ = get_method("BG").fit(obs, preds)
        np.testing.assert_allclose(weights, [0.8, 0.2])

    def test_best_member(self, noisy_ensemble) -> None:
        obs, preds = noisy_ensemble
        weights, _ = get_method("best").fit(obs, preds)
        assert weights.tolist().count(1.0) == 1

    @pytest.mark.parametrize("name", ["EIG1", "EIG2"])
    def test_eigen_weights_sum_to_one(self, name, noisy_ensemble) -> None:
        obs, preds = noisy_ensemble
        weights, _ = get_method(name).fit(obs, preds)
        assert weights.sum() == pytest.approx(1.0)


class TestInputs:
    def test_missing_values_rejected(self) -> None:
        preds = np.array([[1.0], [np.nan]])
        with pytest.raises(ValueError, match="missing"):
            CLSMethod().fit(np.array([1.0, 2.0]), preds)

    def test_shape_mismatch(self) -> None:
        with pytest.raises(ValueError):
            CLSMethod().fit(np.ones(3), np.ones((4, 2)))

    def test_base_class_not_implemented(self) -> None:
        with pytest.raises(NotImplementedError):
            CombinationMethod().fit(np.ones(3), np.ones((3, 1)))

    def test_objective_method(self, ensemble) -> None:
        obs, preds = ensemble

        def mse(w, obs, preds):
            return float(np.mean((preds @ w - obs) ** 2))

        weights, intercept = ObjectiveMethod(mse, method="BFGS").fit(obs, preds)
        np.testing.assert_allclose(weights, [0.6, 0.4, 0.0], atol=1e-3)
        assert intercept == 0.0
