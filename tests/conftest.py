"""Shared fixtures for hydrocombine tests."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from hydrocombine.network import RiverNetwork, Segment
from hydrocombine.validation import scenarios


@pytest.fixture
def dates() -> pd.DatetimeIndex:
    """Ten years of month-start dates."""
    return scenarios.monthly_dates(120)


@pytest.fixture
def short_dates() -> pd.DatetimeIndex:
    """Three month-start dates."""
    return pd.date_range("2001-01-01", periods=3, freq="MS", name="Date")


def constant_runoff(dates: pd.DatetimeIndex, **members: float) -> pd.DataFrame:
    """Runoff table with one constant column per member."""
    return pd.DataFrame({m: np.full(len(dates), v, dtype=float) for m, v in members.items()}, index=dates)


@pytest.fixture
def make_runoff():
    """Factory for runoff tables with constant member columns."""
    return constant_runoff


@pytest.fixture
def chain(short_dates: pd.DatetimeIndex) -> RiverNetwork:
    """Ungauged chain 1 -> 2 -> 3 with runoff 1, 2 and 3 (member ``a``)."""
    return RiverNetwork(
        [
            Segment(1, constant_runoff(short_dates, a=1.0), next_down=2),
            Segment(2, constant_runoff(short_dates, a=2.0), next_down=3),
            Segment(3, constant_runoff(short_dates, a=3.0), next_down=None),
        ]
    )


@pytest.fixture
def single_member() -> RiverNetwork:
    return scenarios.single_member_network()


@pytest.fixture
def series() -> RiverNetwork:
    return scenarios.series_network()


@pytest.fixture
def confluence() -> RiverNetwork:
    return scenarios.confluence_network()


@pytest.fixture
def ungauged_outlet() -> RiverNetwork:
    return scenarios.ungauged_outlet_network()
