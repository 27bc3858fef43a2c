"""
Synthetic river networks with known answers.

Observations are built as exact combinations of the synthetic runoff
members, so a correct optimisation recovers the weights used to build them
and the routed discharge can be checked against hand-computed sums.
"""

from __future__ import annotations

from typing import Dict, Hashable, Optional, Sequence

import numpy as np
import pandas as pd

from hydrocombine.network import RiverNetwork, Segment

MEMBERS = ("model_a", "model_b")


def monthly_dates(n_months: int = 120, start: str = "2000-01-01") -> pd.DatetimeIndex:
    """Month-start dates."""
    return pd.date_range(start, periods=n_months, freq="MS", name="Date")


def synthetic_runoff(
    dates: pd.DatetimeIndex,
    members: Sequence[str] = MEMBERS,
    scale: float = 1.0,
    seed: int = 0,
) -> pd.DataFrame:
    """
    Positive seasonal runoff with member-specific noise.

    Parameters
    ----------
    dates : pd.DatetimeIndex
    members : sequence of str
        Column names.
    scale : float
        Mean runoff level.
    seed : int
        Seed of the noise generator.
    """
    rng = np.random.default_rng(seed)
    season = 1.0 + 0.5 * np.sin(2.0 * np.pi * (dates.month.to_numpy() - 1) / 12.0)
    data = {
        member: scale * season * rng.uniform(0.5, 1.5, size=len(dates))
        for member in members
    }
    return pd.DataFrame(data, index=dates)


def _combo(runoff: pd.DataFrame, weights: Dict[str, float]) -> pd.Series:
    return sum(runoff[m] * w for m, w in weights.items())


def single_member_network(dates: Optional[pd.DatetimeIndex] = None) -> RiverNetwork:
    """
    Two segments ``1 -> 2`` with one member and a gauge at 2 observing the
    accumulated runoff exactly.
    """
    dates = monthly_dates() if dates is None else dates
    r1 = synthetic_runoff(dates, members=("model_a",), seed=1)
    r2 = synthetic_runoff(dates, members=("model_a",), seed=2)
    obs = (r1["model_a"] + r2["model_a"]).rename("observations")
    return RiverNetwork(
        [
            Segment(1, r1, next_down=2),
            Segment(2, r2, next_down=None, observation=obs, station="Outlet"),
        ]
    )


def series_network(
    dates: Optional[pd.DatetimeIndex] = None,
    upper_weights: Optional[Dict[str, float]] = None,
    lower_weights: Optional[Dict[str, float]] = None,
) -> RiverNetwork:
    """
    Linear chain ``1 -> 2 -> 3`` with gauges at 2 ("Upper") and 3 ("Lower").

    The gauge at 2 observes ``upper_weights`` applied to segments 1 and 2;
    the gauge at 3 adds ``lower_weights`` applied to segment 3.
    """
    dates = monthly_dates() if dates is None else dates
    upper_weights = upper_weights or {"model_a": 0.7, "model_b": 0.3}
    lower_weights = lower_weights or {"model_a": 1.0, "model_b": 0.0}
    runoff = {rid: synthetic_runoff(dates, seed=rid) for rid in (1, 2, 3)}
    obs_upper = _combo(runoff[1], upper_weights) + _combo(runoff[2], upper_weights)
    obs_lower = obs_upper + _combo(runoff[3], lower_weights)
    return RiverNetwork(
        [
            Segment(1, runoff[1], next_down=2),
            Segment(2, runoff[2], next_down=3, observation=obs_upper, station="Upper"),
            Segment(3, runoff[3], next_down=None, observation=obs_lower, station="Lower"),
        ]
    )


def confluence_network(dates: Optional[pd.DatetimeIndex] = None) -> RiverNetwork:
    """
    Two gauged headwaters joining below their gauges::

        1 (West) --\\
                    3 --> 4 (Outlet)
        2 (East) --/

    Gauges at 1, 2 and 4.  The outlet observes both headwater signals plus
    the ``model_a`` runoff of segments 3 and 4.
    """
    dates = monthly_dates() if dates is None else dates
    runoff = {rid: synthetic_runoff(dates, seed=10 + rid) for rid in (1, 2, 3, 4)}
    west = _combo(runoff[1], {"model_a": 0.2, "model_b": 0.8})
    east = _combo(runoff[2], {"model_a": 0.6, "model_b": 0.4})
    outlet = west + east + runoff[3]["model_a"] + runoff[4]["model_a"]
    return RiverNetwork(
        [
            Segment(1, runoff[1], next_down=3, observation=west, station="West"),
            Segment(2, runoff[2], next_down=3, observation=east, station="East"),
            Segment(3, runoff[3], next_down=4),
            Segment(4, runoff[4], next_down=None, observation=outlet, station="Outlet"),
        ]
    )


def ungauged_outlet_network(dates: Optional[pd.DatetimeIndex] = None) -> RiverNetwork:
    """
    A gauge with ungauged segments below it and an isolated segment::

        1 (Gauge) --> 2 --> 4
                      3 --/
        9 (isolated)

    Segments 2, 3, 4 and 9 have no downstream station.
    """
    dates = monthly_dates() if dates is None else dates
    runoff: Dict[Hashable, pd.DataFrame] = {
        rid: synthetic_runoff(dates, seed=20 + rid) for rid in (1, 2, 3, 4, 9)
    }
    gauge = _combo(runoff[1], {"model_a": 0.5, "model_b": 0.5})
    return RiverNetwork(
        [
            Segment(1, runoff[1], next_down=2, observation=gauge, station="Gauge"),
            Segment(2, runoff[2], next_down=4),
            Segment(3, runoff[3], next_down=4),
            Segment(4, runoff[4], next_down=None),
            Segment(9, runoff[9], next_down=None),
        ]
    )
