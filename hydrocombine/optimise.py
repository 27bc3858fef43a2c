"""
hydrocombine.optimise - Fit combination weights at a single station.

A station's *flow table* pairs the routed discharge of every ensemble
member with the observed streamflow, aligned by date::

                 member_a  member_b  observations
    Date
    2000-01-01       12.1      10.4          11.0
    2000-02-01        9.8       8.7           9.1

Weights are fitted over the whole record (``"timeseries"``), separately
for each calendar month (``"monthly"``, 12 weight vectors) or for each
calendar year (``"annual"``).  Within each period the rows are split into
a training and a testing set, either as a contiguous prefix/suffix
(``"serial"``) or at random (``"random"``).

Sampling warnings are logged at most once per run.  The "already warned"
state is an immutable :class:`WarningFlags` value that every fitting
function takes and returns, so the caller threads it through a sequence of
stations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Hashable, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from hydrocombine.methods import CombinationMethod, get_method
from hydrocombine.metrics import goodness_of_fit

log = logging.getLogger(__name__)

OBSERVATIONS = "observations"
MONTHS = tuple(range(1, 13))


@dataclass(frozen=True)
class WarningFlags:
    """Which once-per-run sampling warnings have already been logged."""

    overfit: bool = False
    train: bool = False


@dataclass
class WeightResult:
    """
    Fitted combination for one station.

    Attributes
    ----------
    method : str
        Name of the combination method.
    granularity : str
        ``"timeseries"``, ``"monthly"`` or ``"annual"``.
    weights : pd.Series or pd.DataFrame
        One weight per member for ``"timeseries"``; a 12-row table indexed
        by month for ``"monthly"``; a table indexed by year for
        ``"annual"``.
    intercept : float or pd.Series
        Intercept, per month / per year for the periodic granularities.
    goodness_of_fit : pd.DataFrame
        Columns ``period``, ``subset`` (``train``/``test``/``full``), ``n``
        and the metrics of :data:`hydrocombine.metrics.METRICS`.
    optimized : pd.Series
        The fitted combination at the station, indexed by date.
    observed : pd.Series
        Observations the combination was fitted against.
    bias_correction : np.ndarray
        Monthly bias terms.  Always zero: bias correction is not applied.
    station, river_id : optional
        The station this result belongs to.
    """

    method: str
    granularity: str
    weights: Union[pd.Series, pd.DataFrame]
    intercept: Union[float, pd.Series]
    goodness_of_fit: pd.DataFrame
    optimized: pd.Series
    observed: pd.Series
    bias_correction: np.ndarray = field(default_factory=lambda: np.zeros(12))
    station: Optional[str] = None
    river_id: Optional[Hashable] = None

    @property
    def members(self) -> List[str]:
        if isinstance(self.weights, pd.DataFrame):
            return list(self.weights.columns)
        return list(self.weights.index)

    def combination_weights(self) -> Union[pd.Series, pd.DataFrame]:
        """
        Weights used to combine runoff over the contributing area.

        Annual fits are reduced to the mean of the yearly weight vectors and
        applied as a constant over the whole period.
        """
        if self.granularity == "annual":
            return self.weights.mean(axis=0)
        return self.weights

    def combination_intercept(self) -> Union[float, pd.Series]:
        """Intercept matching :meth:`combination_weights`."""
        if self.granularity == "annual":
            return float(self.intercept.mean())
        return self.intercept

    def summary(self) -> str:
        """Short text summary of the fit."""
        full = self.goodness_of_fit[self.goodness_of_fit["subset"] == "full"]
        lines = [
            f"Station {self.station} ({self.river_id}) - {self.method}, {self.granularity}",
            f"  Members : {', '.join(map(str, self.members))}",
            f"  NSE     : {full['NSE'].mean():.3f}",
            f"  KGE     : {full['KGE'].mean():.3f}",
        ]
        if self.granularity == "timeseries":
            lines.append("  Weights : " + ", ".join(f"{k}={v:.3f}" for k, v in self.weights.items()))
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Flow table preparation
# ---------------------------------------------------------------------------


def build_flow_table(discharge: pd.DataFrame, observation: pd.Series) -> pd.DataFrame:
    """
    Align routed discharge with observations by date.

    Rows without an observation are dropped.

    Parameters
    ----------
    discharge : pd.DataFrame
        Routed discharge at the station, one column per member.
    observation : pd.Series
        Observed streamflow indexed by date.

    Returns
    -------
    pd.DataFrame
        Member columns followed by an ``observations`` column.
    """
    obs = observation.rename(OBSERVATIONS)
    obs.index = pd.DatetimeIndex(obs.index, name="Date")
    flow = discharge.join(obs, how="left")
    return flow[flow[OBSERVATIONS].notna()]


def drop_missing_columns(flow: pd.DataFrame) -> pd.DataFrame:
    """Remove columns that are entirely missing."""
    keep = flow.notna().any(axis=0)
    if not keep.all():
        log.debug("Dropping all-missing columns: %s", list(flow.columns[~keep]))
    return flow.loc[:, keep]


def has_complete_rows(flow: pd.DataFrame) -> bool:
    """True if at least one observed row has every remaining member defined."""
    usable = drop_missing_columns(flow)
    if OBSERVATIONS not in usable.columns or len(usable.columns) < 2:
        return False
    return not usable.dropna().empty


# ---------------------------------------------------------------------------
# Train / test sampling
# ---------------------------------------------------------------------------


def split_sample(
    n: int,
    train: float,
    sampling: str,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Row indices of the training and testing sets.

    ``"serial"`` uses the first ``floor(train * n)`` rows for training and
    the rest for testing.  ``"random"`` draws ``round(train * n)`` rows
    without replacement.  When no rows are left for testing the training
    set is reused.
    """
    if sampling == "serial":
        train_idx = np.arange(int(np.floor(train * n)))
    elif sampling == "random":
        rng = rng if rng is not None else np.random.default_rng()
        size = int(round(train * n))
        train_idx = np.sort(rng.choice(n, size=size, replace=False))
    else:
        raise ValueError(f"sampling must be 'serial' or 'random', got {sampling!r}")

    test_idx = np.setdiff1d(np.arange(n), train_idx)
    if test_idx.size == 0:
        test_idx = train_idx
    return train_idx, test_idx


# ---------------------------------------------------------------------------
# Per-period fitting
# ---------------------------------------------------------------------------


def _fit_period(
    flow: pd.DataFrame,
    method: CombinationMethod,
    sampling: str,
    train: float,
    flags: WarningFlags,
    rng: Optional[np.random.Generator],
    min_train_rows: int,
    overfit_ratio: float,
    period: Any,
) -> Tuple[pd.Series, float, List[Dict[str, Any]], pd.Series, WarningFlags]:
    flow = drop_missing_columns(flow)
    if OBSERVATIONS not in flow.columns:
        raise ValueError(f"No observations to fit (period {period})")
    members = [c for c in flow.columns if c != OBSERVATIONS]
    if not members:
        raise ValueError(f"No ensemble members left to combine (period {period})")
    data = flow.dropna()
    n = len(data)
    if n == 0:
        raise ValueError(f"No complete rows to fit (period {period})")

    n_params = method.n_parameters(len(members))
    train_idx, test_idx = split_sample(n, train, sampling, rng)

    if train_idx.size < max(min_train_rows, n_params):
        if not flags.train:
            log.warning(
                "Training set of %d rows (period %s) is smaller than %d; "
                "consider a larger training fraction",
                train_idx.size,
                period,
                max(min_train_rows, n_params),
            )
            flags = replace(flags, train=True)
        if train_idx.size < n_params:
            train_idx = test_idx = np.arange(n)

    if train_idx.size < overfit_ratio * n_params and not flags.overfit:
        log.warning(
            "Only %d training rows for %d parameters (period %s); results may be overfitted",
            train_idx.size,
            n_params,
            period,
        )
        flags = replace(flags, overfit=True)

    obs = data[OBSERVATIONS].to_numpy(dtype=float)
    preds = data[members].to_numpy(dtype=float)
    weights, intercept = method.fit(obs[train_idx], preds[train_idx])
    combined = preds @ weights + intercept

    rows = []
    for subset, idx in (("train", train_idx), ("test", test_idx), ("full", np.arange(n))):
        rows.append(
            {"period": period, "subset": subset, "n": int(idx.size), **goodness_of_fit(combined[idx], obs[idx])}
        )
    return (
        pd.Series(weights, index=members, name=period),
        float(intercept),
        rows,
        pd.Series(combined, index=data.index, name="Optimized"),
        flags,
    )


def _observed(flow: pd.DataFrame) -> pd.Series:
    return flow[OBSERVATIONS].rename(OBSERVATIONS)


def combine_timeseries(
    flow: pd.DataFrame,
    method,
    sampling: str = "random",
    train: float = 0.5,
    flags: WarningFlags = WarningFlags(),
    rng: Optional[np.random.Generator] = None,
    min_train_rows: int = 12,
    overfit_ratio: float = 5.0,
) -> Tuple[WeightResult, WarningFlags]:
    """Fit one weight vector over the whole record."""
    method = get_method(method)
    flow = drop_missing_columns(flow)
    weights, intercept, rows, optimized, flags = _fit_period(
        flow, method, sampling, train, flags, rng, min_train_rows, overfit_ratio, "all"
    )
    weights.name = "weight"
    result = WeightResult(
        method=method.name,
        granularity="timeseries",
        weights=weights,
        intercept=intercept,
        goodness_of_fit=pd.DataFrame(rows),
        optimized=optimized,
        observed=_observed(flow),
    )
    return result, flags


def combine_monthly(
    flow: pd.DataFrame,
    method,
    sampling: str = "random",
    train: float = 0.5,
    flags: WarningFlags = WarningFlags(),
    rng: Optional[np.random.Generator] = None,
    min_train_rows: int = 12,
    overfit_ratio: float = 5.0,
) -> Tuple[WeightResult, WarningFlags]:
    """
    Fit 12 independent weight vectors, one per calendar month.

    A month without observations falls back to weights fitted on the full
    record.
    """
    method = get_method(method)
    flow = drop_missing_columns(flow)
    weights, intercepts, rows, parts = [], [], [], []
    fallback = None

    for month in MONTHS:
        subset = flow[flow.index.month == month]
        if subset.empty:
            if fallback is None:
                log.info("No observations for some months; using full-record weights for them")
                fallback = _fit_period(
                    flow, method, sampling, train, flags, rng, min_train_rows, overfit_ratio, "all"
                )
                flags = fallback[4]
            w, b = fallback[0].rename(month), fallback[1]
        else:
            w, b, period_rows, optimized, flags = _fit_period(
                subset, method, sampling, train, flags, rng, min_train_rows, overfit_ratio, month
            )
            rows.extend(period_rows)
            parts.append(optimized)
        weights.append(w)
        intercepts.append(b)

    weight_table = pd.DataFrame(weights).reindex(columns=[c for c in flow.columns if c != OBSERVATIONS])
    weight_table.index = pd.Index(MONTHS, name="Month")
    result = WeightResult(
        method=method.name,
        granularity="monthly",
        weights=weight_table.fillna(0.0),
        intercept=pd.Series(intercepts, index=weight_table.index, name="intercept"),
        goodness_of_fit=pd.DataFrame(rows),
        optimized=pd.concat(parts).sort_index(),
        observed=_observed(flow),
    )
    return result, flags


def combine_annual(
    flow: pd.DataFrame,
    method,
    sampling: str = "random",
    train: float = 0.5,
    flags: WarningFlags = WarningFlags(),
    rng: Optional[np.random.Generator] = None,
    min_train_rows: int = 12,
    overfit_ratio: float = 5.0,
) -> Tuple[WeightResult, WarningFlags]:
    """Fit an independent weight vector for each calendar year with observations."""
    method = get_method(method)
    flow = drop_missing_columns(flow)
    weights, intercepts, rows, parts = [], [], [], []

    for year in sorted(set(flow.index.year)):
        w, b, period_rows, optimized, flags = _fit_period(
            flow[flow.index.year == year],
            method,
            sampling,
            train,
            flags,
            rng,
            min_train_rows,
            overfit_ratio,
            int(year),
        )
        weights.append(w)
        intercepts.append(b)
        rows.extend(period_rows)
        parts.append(optimized)

    if not weights:
        raise ValueError("No observations to fit")
    weight_table = pd.DataFrame(weights).fillna(0.0)
    weight_table.index.name = "Year"
    result = WeightResult(
        method=method.name,
        granularity="annual",
        weights=weight_table,
        intercept=pd.Series(intercepts, index=weight_table.index, name="intercept"),
        goodness_of_fit=pd.DataFrame(rows),
        optimized=pd.concat(parts).sort_index(),
        observed=_observed(flow),
    )
    return result, flags


_COMBINERS = {
    "timeseries": combine_timeseries,
    "monthly": combine_monthly,
    "annual": combine_annual,
}


def fit(
    flow: pd.DataFrame,
    method,
    sampling: str = "random",
    train: float = 0.5,
    granularity: str = "timeseries",
    flags: WarningFlags = WarningFlags(),
    rng: Optional[np.random.Generator] = None,
    min_train_rows: int = 12,
    overfit_ratio: float = 5.0,
) -> Tuple[WeightResult, WarningFlags]:
    """
    Fit combination weights for one station's flow table.

    Parameters
    ----------
    flow : pd.DataFrame
        Flow table from :func:`build_flow_table` (after any control
        correction).
    method : str, callable or CombinationMethod
        See :func:`hydrocombine.methods.get_method`.
    sampling : str
        ``"serial"`` or ``"random"``.
    train : float
        Training fraction in (0, 1].
    granularity : str
        ``"timeseries"``, ``"monthly"`` or ``"annual"``.
    flags : WarningFlags
        Warnings already logged during this run.
    rng : numpy.random.Generator, optional
        Source of randomness for ``"random"`` sampling.
    min_train_rows, overfit_ratio
        Thresholds for the sampling warnings.

    Returns
    -------
    tuple
        ``(WeightResult, WarningFlags)``.
    """
    try:
        combiner = _COMBINERS[granularity]
    except KeyError:
        raise ValueError(f"Unknown granularity {granularity!r}.  Available: {sorted(_COMBINERS)}")
    return combiner(flow, method, sampling, train, flags, rng, min_train_rows, overfit_ratio)
