"""
hydrocombine.metrics - Goodness-of-fit scores for simulated vs observed flow.

All functions take ``sim`` and ``obs`` array-likes of equal length and
ignore pairs where either value is NaN.
"""

from __future__ import annotations

from typing import Callable, Dict, Sequence, Tuple

import numpy as np


def _pairs(sim: Sequence[float], obs: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    sim = np.asarray(sim, dtype=float)
    obs = np.asarray(obs, dtype=float)
    if sim.shape != obs.shape:
        raise ValueError(f"sim and obs shapes differ: {sim.shape} vs {obs.shape}")
    ok = ~(np.isnan(sim) | np.isnan(obs))
    return sim[ok], obs[ok]


def me(sim, obs) -> float:
    """Mean error (sim - obs)."""
    s, o = _pairs(sim, obs)
    return float(np.mean(s - o)) if s.size else np.nan


def mae(sim, obs) -> float:
    """Mean absolute error."""
    s, o = _pairs(sim, obs)
    return float(np.mean(np.abs(s - o))) if s.size else np.nan


def rmse(sim, obs) -> float:
    """Root mean squared error."""
    s, o = _pairs(sim, obs)
    return float(np.sqrt(np.mean((s - o) ** 2))) if s.size else np.nan


def pbias(sim, obs) -> float:
    """Percent bias, ``100 * sum(sim - obs) / sum(obs)``."""
    s, o = _pairs(sim, obs)
    total = o.sum()
    if not s.size or total == 0:
        return np.nan
    return float(100.0 * (s - o).sum() / total)


def pearson_r(sim, obs) -> float:
    """Pearson correlation coefficient."""
    s, o = _pairs(sim, obs)
    if s.size < 2 or np.std(s) == 0 or np.std(o) == 0:
        return np.nan
    return float(np.corrcoef(s, o)[0, 1])


def nse(sim, obs) -> float:
    """
    Nash-Sutcliffe efficiency.

    ``1 - sum((sim - obs)^2) / sum((obs - mean(obs))^2)``; 1 is a perfect
    fit, 0 is no better than the observed mean.
    """
    s, o = _pairs(sim, obs)
    denom = np.sum((o - o.mean()) ** 2) if o.size else 0.0
    if denom == 0:
        return np.nan
    return float(1.0 - np.sum((s - o) ** 2) / denom)


def kge(sim, obs) -> float:
    """
    Kling-Gupta efficiency (Gupta et al., 2009).

    ``1 - sqrt((r - 1)^2 + (alpha - 1)^2 + (beta - 1)^2)`` with ``r`` the
    correlation, ``alpha`` the ratio of standard deviations and ``beta`` the
    ratio of means.
    """
    s, o = _pairs(sim, obs)
    if s.size < 2 or o.mean() == 0 or np.std(o) == 0:
        return np.nan
    r = pearson_r(s, o)
    if np.isnan(r):
        return np.nan
    alpha = np.std(s) / np.std(o)
    beta = s.mean() / o.mean()
    return float(1.0 - np.sqrt((r - 1.0) ** 2 + (alpha - 1.0) ** 2 + (beta - 1.0) ** 2))


METRICS: Dict[str, Callable[[Sequence[float], Sequence[float]], float]] = {
    "ME": me,
    "MAE": mae,
    "RMSE": rmse,
    "PBIAS": pbias,
    "R": pearson_r,
    "NSE": nse,
    "KGE": kge,
}


def goodness_of_fit(sim, obs) -> Dict[str, float]:
    """Evaluate every metric in :data:`METRICS`."""
    return {name: func(sim, obs) for name, func in METRICS.items()}
