"""
hydrocombine.order - Processing order of gauge stations.

Stations are sorted by the number of segments upstream of them, so a
station always comes before every station downstream of it.  Walking each
station's downstream chain and intersecting it with the gauged segments
gives its nearest downstream station; inverting that relation gives the
stations immediately upstream.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Tuple

from hydrocombine.network import NetworkStructureError, RiverNetwork

log = logging.getLogger(__name__)


@dataclass
class StationOrder:
    """
    One gauge station and its gauged neighbours.

    Attributes
    ----------
    station : str
        Station name.
    river_id : hashable
        Segment the station sits on.
    up_segments : int
        Number of segments upstream of the station.
    downstream_station : str, optional
        Nearest gauged station downstream.
    upstream_stations : tuple of str
        Stations whose nearest downstream station is this one.
    nearest_upstream : str, optional
        The upstream station with the most upstream segments.
    """

    station: str
    river_id: Hashable
    up_segments: int
    downstream_station: Optional[str] = None
    upstream_stations: Tuple[str, ...] = ()
    nearest_upstream: Optional[str] = None


def order_stations(network: RiverNetwork) -> List[StationOrder]:
    """
    Order the gauged segments of ``network`` from most upstream to most
    downstream.

    Parameters
    ----------
    network : RiverNetwork

    Returns
    -------
    list of StationOrder

    Raises
    ------
    NetworkStructureError
        If a station's downstream walk is empty (the station is not part of
        its own downstream chain), the network contains a cycle, or the
        ``up_segments`` counts put a station after a station downstream of
        it.
    """
    position = {rid: i for i, rid in enumerate(network.ids)}
    gauged = sorted(
        network.stations(),
        key=lambda seg: (seg.up_segments, position[seg.river_id]),
    )
    order = [
        StationOrder(station=seg.station_name, river_id=seg.river_id, up_segments=seg.up_segments)
        for seg in gauged
    ]
    by_segment = {entry.river_id: entry for entry in order}
    rank = {entry.river_id: i for i, entry in enumerate(order)}
    upstream_of: Dict[Hashable, List[StationOrder]] = {entry.river_id: [] for entry in order}

    for entry in order:
        chain = network.downstream(entry.river_id)
        if len(chain) == 0:
            raise NetworkStructureError(entry.river_id, "station has no downstream segments")
        hits = [by_segment[rid] for rid in chain if rid in by_segment]
        for below in hits[1:]:
            if rank[below.river_id] < rank[entry.river_id]:
                raise NetworkStructureError(
                    entry.river_id,
                    f"up_segments={entry.up_segments} orders station {entry.station!r} after "
                    f"downstream station {below.station!r} (up_segments={below.up_segments})",
                )
        if len(hits) > 1:
            below = hits[1]
            entry.downstream_station = below.station
            upstream_of[below.river_id].append(entry)

    for entry in order:
        ups = upstream_of[entry.river_id]
        entry.upstream_stations = tuple(up.station for up in ups)
        if ups:
            entry.nearest_upstream = max(ups, key=lambda up: up.up_segments).station

    log.debug("Station order: %s", [entry.station for entry in order])
    return order
