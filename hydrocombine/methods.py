"""
hydrocombine.methods - Ensemble combination weight estimators.

Every estimator implements :class:`CombinationMethod`::

    weights, intercept = method.fit(obs, preds)

with ``obs`` of shape ``(n,)`` and ``preds`` of shape ``(n, k)`` (one
column per ensemble member, no missing values).  The combined estimate is
``preds @ weights + intercept``.

==========  ========================================  =========  ==========
Name        Weights                                   Sum        Intercept
==========  ========================================  =========  ==========
OLS / GRC   unconstrained least squares               free       yes
CLS / GRB   constrained least squares, w >= 0         1          no
NNLS        non-negative least squares                free       no
GRA         bounded least squares, w >= 0             free       no
BG          Bates-Granger inverse error variance      1          no
EIG1        eigenvector of the error MSE matrix       1          no
EIG2        bias-corrected EIG1                       1          yes
best        best single member (lowest RMSE)          1          no
==========  ========================================  =========  ==========

A callable ``objective(w, obs, preds) -> float`` is wrapped by
:class:`ObjectiveMethod` and minimised with :func:`scipy.optimize.minimize`.

References
----------
Granger, C.W.J., and Ramanathan, R., 1984, Improved methods of combining
forecasts: Journal of Forecasting, v. 3, p. 197-204.

Bates, J.M., and Granger, C.W.J., 1969, The combination of forecasts:
Operational Research Quarterly, v. 20, p. 451-468.

Hsiao, C., and Wan, S.K., 2014, Is there an optimal forecast combination?:
Journal of Econometrics, v. 178, p. 294-309.
"""

from __future__ import annotations

import logging
from typing import Callable, ClassVar, Dict, Tuple, Type, Union

import numpy as np
from scipy.optimize import lsq_linear, minimize, nnls

log = logging.getLogger(__name__)

Objective = Callable[[np.ndarray, np.ndarray, np.ndarray], float]


def _check_inputs(obs: np.ndarray, preds: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    obs = np.asarray(obs, dtype=float)
    preds = np.asarray(preds, dtype=float)
    if preds.ndim == 1:
        preds = preds[:, None]
    if obs.ndim != 1 or preds.ndim != 2 or preds.shape[0] != obs.shape[0]:
        raise ValueError(
            f"obs must be (n,) and preds (n, k); got {obs.shape} and {preds.shape}"
        )
    if obs.size == 0:
        raise ValueError("Cannot fit combination weights on an empty series")
    if np.isnan(obs).any() or np.isnan(preds).any():
        raise ValueError("obs and preds must not contain missing values")
    return obs, preds


def _normalise(weights: np.ndarray) -> np.ndarray:
    """Clip to non-negative and rescale to sum to one."""
    w = np.clip(weights, 0.0, None)
    total = w.sum()
    if total <= 0:
        return np.full(w.size, 1.0 / w.size)
    return w / total


class CombinationMethod:
    """Base class for combination weight estimators."""

    name: ClassVar[str] = ""
    intercept: ClassVar[bool] = False

    def fit(self, obs: np.ndarray, preds: np.ndarray) -> Tuple[np.ndarray, float]:
        obs, preds = _check_inputs(obs, preds)
        return self._fit(obs, preds)

    def _fit(self, obs: np.ndarray, preds: np.ndarray) -> Tuple[np.ndarray, float]:
        raise NotImplementedError

    def n_parameters(self, n_members: int) -> int:
        """Number of estimated parameters for ``n_members`` predictors."""
        return n_members + int(self.intercept)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class OLSMethod(CombinationMethod):
    """Ordinary least squares with intercept."""

    name = "OLS"
    intercept = True

    def _fit(self, obs, preds):
        design = np.column_stack([np.ones(obs.size), preds])
        coef, *_ = np.linalg.lstsq(design, obs, rcond=None)
        return coef[1:], float(coef[0])


class GRCMethod(OLSMethod):
    """Granger-Ramanathan C: least squares with intercept, free sum."""

    name = "GRC"


class CLSMethod(CombinationMethod):
    """Constrained least squares: weights >= 0 summing to one, no intercept."""

    name = "CLS"

    def _fit(self, obs, preds):
        n, k = preds.shape
        if k == 1:
            return np.ones(1), 0.0

        scale = max(float(np.mean(obs**2)), np.finfo(float).tiny) * n

        def loss(w):
            resid = preds @ w - obs
            return float(resid @ resid) / scale

        def grad(w):
            return 2.0 * preds.T @ (preds @ w - obs) / scale

        result = minimize(
            loss,
            np.full(k, 1.0 / k),
            jac=grad,
            method="SLSQP",
            bounds=[(0.0, 1.0)] * k,
            constraints=({"type": "eq", "fun": lambda w: w.sum() - 1.0, "jac": lambda w: np.ones(k)},),
            options={"ftol": 1e-12, "maxiter": 500},
        )
        if not result.success:
            log.debug("%s solver did not converge: %s", self.name, result.message)
        return _normalise(result.x), 0.0


class GRBMethod(CLSMethod):
    """Granger-Ramanathan B: no intercept, weights summing to one."""

    name = "GRB"


class NNLSMethod(CombinationMethod):
    """Non-negative least squares, no intercept, free sum."""

    name = "NNLS"

    def _fit(self, obs, preds):
        weights, _ = nnls(preds, obs)
        return weights, 0.0


class GRAMethod(CombinationMethod):
    """Granger-Ramanathan A: no intercept, free sum, bounded to w >= 0."""

    name = "GRA"

    def _fit(self, obs, preds):
        result = lsq_linear(preds, obs, bounds=(0.0, np.inf))
        return np.clip(result.x, 0.0, None), 0.0


class BatesGrangerMethod(CombinationMethod):
    """Weights proportional to the inverse mean squared error of each member."""

    name = "BG"

    def _fit(self, obs, preds):
        mse = np.mean((preds - obs[:, None]) ** 2, axis=0)
        perfect = np.flatnonzero(mse == 0)
        if perfect.size:
            weights = np.zeros(mse.size)
            weights[perfect[0]] = 1.0
            return weights, 0.0
        inv = 1.0 / mse
        return inv / inv.sum(), 0.0


class EIG1Method(CombinationMethod):
    """
    Standard eigenvector combination.

    With ``S`` the mean squared error matrix of the forecast errors,
    eigenpairs ``(l_j, v_j)`` and ``d_j = sum(v_j)``, the eigenvector
    minimising ``l_j / d_j**2`` is rescaled to ``v_j / d_j``.
    """

    name = "EIG1"

    def _fit(self, obs, preds):
        return self._eigen_weights(obs, preds), 0.0

    @staticmethod
    def _eigen_weights(obs: np.ndarray, preds: np.ndarray) -> np.ndarray:
        errors = obs[:, None] - preds
        mse_matrix = errors.T @ errors / obs.size
        values, vectors = np.linalg.eigh(mse_matrix)
        sums = vectors.sum(axis=0)
        usable = np.abs(sums) > 1e-12
        if not usable.any():
            k = preds.shape[1]
            return np.full(k, 1.0 / k)
        ratio = np.full(values.size, np.inf)
        ratio[usable] = values[usable] / sums[usable] ** 2
        j = int(np.argmin(ratio))
        return vectors[:, j] / sums[j]


class EIG2Method(EIG1Method):
    """Bias-corrected eigenvector combination on mean-centred series, with intercept."""

    name = "EIG2"
    intercept = True

    def _fit(self, obs, preds):
        obs_mean = obs.mean()
        pred_mean = preds.mean(axis=0)
        weights = self._eigen_weights(obs - obs_mean, preds - pred_mean)
        return weights, float(obs_mean - pred_mean @ weights)


class BestMemberMethod(CombinationMethod):
    """Select the single member with the lowest RMSE."""

    name = "best"

    def _fit(self, obs, preds):
        rmse = np.sqrt(np.mean((preds - obs[:, None]) ** 2, axis=0))
        weights = np.zeros(rmse.size)
        weights[int(np.argmin(rmse))] = 1.0
        return weights, 0.0


class ObjectiveMethod(CombinationMethod):
    """
    Minimise a caller-supplied objective over the weight vector.

    Parameters
    ----------
    objective : callable
        ``objective(weights, obs, preds) -> float``.
    **minimize_options
        Passed to :func:`scipy.optimize.minimize`; ``method`` defaults to
        ``"Nelder-Mead"``.  The start point is equal weights.
    """

    intercept = False

    def __init__(self, objective: Objective, **minimize_options) -> None:
        if not callable(objective):
            raise ValueError("objective must be callable")
        self.objective = objective
        self.minimize_options = dict(minimize_options)
        self.minimize_options.setdefault("method", "Nelder-Mead")

    @property
    def name(self) -> str:  # type: ignore[override]
        return getattr(self.objective, "__name__", "custom")

    def _fit(self, obs, preds):
        k = preds.shape[1]
        result = minimize(self.objective, np.full(k, 1.0 / k), args=(obs, preds), **self.minimize_options)
        if not result.success:
            log.debug("Objective %s did not converge: %s", self.name, result.message)
        return np.asarray(result.x, dtype=float), 0.0

    def __repr__(self) -> str:
        return f"ObjectiveMethod({self.name})"


METHODS: Dict[str, Type[CombinationMethod]] = {
    cls.name: cls
    for cls in (
        OLSMethod,
        GRCMethod,
        CLSMethod,
        GRBMethod,
        NNLSMethod,
        GRAMethod,
        BatesGrangerMethod,
        EIG1Method,
        EIG2Method,
        BestMemberMethod,
    )
}


def get_method(method: Union[str, Objective, CombinationMethod], /, **options) -> CombinationMethod:
    """
    Resolve a method name, objective function or instance to an estimator.

    Parameters
    ----------
    method : str, callable or CombinationMethod
        Registered name (case-insensitive), an objective function, or an
        estimator instance (returned unchanged).
    **options
        Passed to :class:`ObjectiveMethod` for callables.

    Raises
    ------
    ValueError
        If ``method`` is an unknown name.
    """
    if isinstance(method, CombinationMethod):
        return method
    if callable(method):
        return ObjectiveMethod(method, **options)
    lookup = {name.upper(): cls for name, cls in METHODS.items()}
    try:
        return lookup[str(method).upper()]()
    except KeyError:
        raise ValueError(f"Unknown optimisation method {method!r}.  Available: {sorted(METHODS)}")
