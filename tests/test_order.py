"""Tests for station ordering."""

from __future__ import annotations

from unittest.mock import patch

import pandas as pd
import pytest

from hydrocombine.network import NetworkStructureError, RiverNetwork, Segment
from hydrocombine.order import order_stations


class TestOrderStations:
    """Tests for order_stations."""

    def test_series_order(self, series: RiverNetwork) -> None:
        order = order_stations(series)
        assert [o.station for o in order] == ["Upper", "Lower"]
        upper, lower = order
        assert upper.downstream_station == "Lower"
        assert lower.downstream_station is None
        assert lower.upstream_stations == ("Upper",)
        assert lower.nearest_upstream == "Upper"

    def test_confluence_order(self, confluence: RiverNetwork) -> None:
        order = order_stations(confluence)
        assert [o.station for o in order] == ["West", "East", "Outlet"]
        outlet = order[-1]
        assert set(outlet.upstream_stations) == {"West", "East"}
        assert outlet.nearest_upstream in {"West", "East"}

    def test_upstream_stations_come_first(self, confluence: RiverNetwork) -> None:
        order = order_stations(confluence)
        position = {o.station: i for i, o in enumerate(order)}
        for o in order:
            if o.downstream_station is not None:
                assert position[o.station] < position[o.downstream_station]

    def test_nearest_upstream_has_most_segments(self, make_runoff) -> None:
        """Of two gauged tributaries, the larger one is the nearest upstream."""
        dates = pd.date_range("2001-01-01", periods=3, freq="MS")
        runoff = make_runoff(dates, a=1.0)
        obs = pd.Series(1.0, index=dates)
        net = RiverNetwork(
            [
                Segment("a1", runoff, next_down="a2"),
                Segment("a2", runoff, next_down="out", observation=obs, station="Big"),
                Segment("b1", runoff, next_down="out", observation=obs, station="Small"),
                Segment("out", runoff, observation=obs, station="Outlet"),
            ]
        )
        order = order_stations(net)
        assert [o.station for o in order] == ["Small", "Big", "Outlet"]
        assert order[-1].nearest_upstream == "Big"

    def test_no_stations(self, chain: RiverNetwork) -> None:
        assert order_stations(chain) == []

    def test_unnamed_station_uses_id(self, chain: RiverNetwork, short_dates) -> None:
        chain[2].observation = pd.Series(1.0, index=short_dates)
        order = order_stations(chain)
        assert order[0].station == "2"
        assert order[0].river_id == 2

    def test_empty_downstream_walk_raises(self, series: RiverNetwork) -> None:
        with patch.object(RiverNetwork, "downstream", return_value=[]):
            with pytest.raises(NetworkStructureError, match="no downstream"):
                order_stations(series)

    def test_counts_contradicting_topology_raise(self, make_runoff, short_dates) -> None:
        obs = pd.Series(1.0, index=short_dates)
        runoff = make_runoff(short_dates, a=1.0)
        net = RiverNetwork(
            [
                Segment(1, runoff, next_down=2, up_segments=5, observation=obs, station="Head"),
                Segment(2, runoff, up_segments=1, observation=obs, station="Outlet"),
            ]
        )
        with pytest.raises(NetworkStructureError, match="after downstream station 'Outlet'") as info:
            order_stations(net)
        assert info.value.river_id == 1

    def test_tied_counts_follow_network_order(self, make_runoff, short_dates) -> None:
        obs = pd.Series(1.0, index=short_dates)
        runoff = make_runoff(short_dates, a=1.0)
        net = RiverNetwork(
            [
                Segment(1, runoff, next_down=2, up_segments=0, observation=obs, station="Head"),
                Segment(2, runoff, up_segments=0, observation=obs, station="Outlet"),
            ]
        )
        order = order_stations(net)
        assert [entry.station for entry in order] == ["Head", "Outlet"]
        assert order[0].downstream_station == "Outlet"
