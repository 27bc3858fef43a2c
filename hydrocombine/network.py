"""
hydrocombine.network - River network of segments with runoff ensembles.

A :class:`RiverNetwork` holds :class:`Segment` records and a
:class:`networkx.DiGraph` of their drainage links (edges run downstream).
Each segment points to the segment it drains into through ``next_down``
and owns its own timeseries containers:

* ``runoff``: ``pandas.DataFrame`` indexed by date, one column per
  ensemble member.
* ``discharge``: routed discharge in the same layout (set by
  :mod:`hydrocombine.routing`).
* ``observation``: observed streamflow (``pandas.Series``) for gauged
  segments.
* ``control`` / ``control_type``: a correction series and its
  ``(action, variable)`` kind, e.g. ``("add", "discharge")``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Hashable, Iterable, Iterator, List, Optional, Tuple

import networkx as nx
import pandas as pd

log = logging.getLogger(__name__)

CONTROL_ACTIONS = ("add", "set")
CONTROL_VARIABLES = ("discharge", "runoff")


class NetworkStructureError(ValueError):
    """Raised when the river network is malformed.

    Parameters
    ----------
    river_id : hashable
        Segment at which the inconsistency was detected.
    reason : str
        Description of the problem.
    """

    def __init__(self, river_id: Hashable, reason: str) -> None:
        super().__init__(f"Error in station positions / routing at segment {river_id!r}: {reason}")
        self.river_id = river_id
        self.reason = reason


@dataclass
class Segment:
    """
    One river segment.

    Parameters
    ----------
    river_id : hashable
        Unique segment identifier.
    runoff : pd.DataFrame
        Runoff ensemble, indexed by date, one column per member.
    next_down : hashable, optional
        Identifier of the downstream segment, ``None`` at an outlet.
    up_segments : int, optional
        Number of segments upstream.  Filled in by :class:`RiverNetwork`
        when not given.
    discharge : pd.DataFrame, optional
        Routed discharge, same layout as ``runoff``.
    observation : pd.Series, optional
        Observed streamflow indexed by date.
    station : str, optional
        Gauge name.
    control : pd.Series, optional
        Control timeseries indexed by date.
    control_type : tuple of str, optional
        ``(action, variable)``, action in ``("add", "set")`` and variable in
        ``("discharge", "runoff")``.
    optimised_at : hashable, optional
        Segment id of the station whose weights resolved this segment.
    optimisation_info : object, optional
        The fitted :class:`~hydrocombine.optimise.WeightResult`, or the
        ensemble-mean marker string.
    """

    river_id: Hashable
    runoff: pd.DataFrame
    next_down: Optional[Hashable] = None
    up_segments: Optional[int] = None
    discharge: Optional[pd.DataFrame] = None
    observation: Optional[pd.Series] = None
    station: Optional[str] = None
    control: Optional[pd.Series] = None
    control_type: Optional[Tuple[str, str]] = None
    optimised_at: Optional[Hashable] = None
    optimisation_info: Any = None

    def __post_init__(self) -> None:
        if not isinstance(self.runoff, pd.DataFrame):
            raise ValueError(f"Segment {self.river_id!r}: runoff must be a DataFrame")
        self.runoff = _as_date_indexed(self.runoff)
        if self.observation is not None:
            self.observation = _as_date_indexed(self.observation)
        if self.control is not None:
            self.control = _as_date_indexed(self.control)
        if self.control_type is not None:
            action, variable = self.control_type
            if action not in CONTROL_ACTIONS or variable not in CONTROL_VARIABLES:
                raise ValueError(
                    f"Segment {self.river_id!r}: invalid control_type {self.control_type!r}"
                )
            self.control_type = (action, variable)

    @property
    def is_station(self) -> bool:
        """True if the segment carries an observation record."""
        return self.observation is not None

    @property
    def station_name(self) -> str:
        """Gauge name, falling back to the segment id."""
        return self.station if self.station is not None else str(self.river_id)

    @property
    def members(self) -> List[str]:
        """Names of the runoff ensemble members."""
        return list(self.runoff.columns)

    def copy(self) -> "Segment":
        """Return an independent copy (timeseries containers are copied)."""
        return replace(
            self,
            runoff=self.runoff.copy(),
            discharge=None if self.discharge is None else self.discharge.copy(),
            observation=None if self.observation is None else self.observation.copy(),
            control=None if self.control is None else self.control.copy(),
        )


def _as_date_indexed(data):
    """Coerce the index of a Series/DataFrame to a sorted DatetimeIndex named ``Date``."""
    data = data.copy()
    data.index = pd.DatetimeIndex(data.index, name="Date")
    return data.sort_index()


class RiverNetwork:
    """
    Directed river network of :class:`Segment` records.

    Segments whose ``next_down`` is ``None`` or refers to a segment outside
    the network are outlets.  Iteration follows insertion order.

    Examples
    --------
    >>> net = RiverNetwork([
    ...     Segment(1, runoff, next_down=2),
    ...     Segment(2, runoff, next_down=None, observation=obs, station="Gauge"),
    ... ])
    >>> net.upstream(2)
    [2, 1]
    >>> net.downstream(1)
    [1, 2]
    """

    def __init__(self, segments: Iterable[Segment]) -> None:
        self._segments: Dict[Hashable, Segment] = {}
        for seg in segments:
            if seg.river_id in self._segments:
                raise ValueError(f"Duplicate segment id {seg.river_id!r}")
            self._segments[seg.river_id] = seg
        self._graph = nx.DiGraph()
        self._graph.add_nodes_from(self._segments)
        self._graph.add_edges_from(
            (seg.river_id, seg.next_down)
            for seg in self._segments.values()
            if seg.next_down is not None and seg.next_down in self._segments
        )
        self._fill_up_segments()
        log.debug("Network of %d segments, %d stations", len(self._segments), len(self.stations()))

    # ------------------------------------------------------------------
    # Container protocol
    # ------------------------------------------------------------------

    def __getitem__(self, river_id: Hashable) -> Segment:
        try:
            return self._segments[river_id]
        except KeyError:
            raise KeyError(f"Segment {river_id!r} not in network")

    def __contains__(self, river_id: Hashable) -> bool:
        return river_id in self._segments

    def __iter__(self) -> Iterator[Segment]:
        return iter(self._segments.values())

    def __len__(self) -> int:
        return len(self._segments)

    @property
    def ids(self) -> List[Hashable]:
        return list(self._segments)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def upstream(self, river_id: Hashable) -> List[Hashable]:
        """
        Segment ``river_id`` and every segment draining into it.

        The segment itself comes first; the rest follow breadth-first.
        """
        if river_id not in self._graph:
            return []
        return [river_id] + [up for _, up in nx.bfs_edges(self._graph, river_id, reverse=True)]

    def downstream(self, river_id: Hashable) -> List[Hashable]:
        """
        Chain of segments from ``river_id`` down to the outlet.

        The segment itself comes first.  Returns an empty list for an
        unknown segment.
        """
        if river_id not in self._graph:
            return []
        return list(nx.dfs_preorder_nodes(self._graph, river_id))

    def direct_upstream(self, river_id: Hashable) -> List[Hashable]:
        """Segments draining directly into ``river_id``."""
        if river_id not in self._graph:
            return []
        return list(self._graph.predecessors(river_id))

    def topological_order(self) -> List[Hashable]:
        """
        Segment ids ordered headwaters first, so every segment comes after
        all segments draining into it.

        Raises
        ------
        NetworkStructureError
            If the network contains a cycle.
        """
        try:
            return list(nx.topological_sort(self._graph))
        except nx.NetworkXUnfeasible:
            stuck = nx.find_cycle(self._graph)[0][0]
            raise NetworkStructureError(stuck, "network contains a cycle") from None

    def stations(self) -> List[Segment]:
        """Segments carrying an observation record."""
        return [seg for seg in self._segments.values() if seg.is_station]

    # ------------------------------------------------------------------
    # Copies and summaries
    # ------------------------------------------------------------------

    def subset(self, river_ids: Iterable[Hashable]) -> "RiverNetwork":
        """Independent copy restricted to ``river_ids`` (network order kept)."""
        wanted = set(river_ids)
        return RiverNetwork(seg.copy() for rid, seg in self._segments.items() if rid in wanted)

    def copy(self) -> "RiverNetwork":
        """Deep copy of the network."""
        return RiverNetwork(seg.copy() for seg in self._segments.values())

    def provenance(self) -> pd.DataFrame:
        """
        Which station resolved each segment.

        Returns
        -------
        pd.DataFrame
            Columns ``river_id``, ``next_down``, ``up_segments``, ``station``,
            ``optimised_at``, ``optimisation``.
        """
        rows = []
        for seg in self._segments.values():
            info = seg.optimisation_info
            if info is None:
                label = None
            elif isinstance(info, str):
                label = info
            else:
                label = getattr(info, "method", type(info).__name__)
            rows.append(
                {
                    "river_id": seg.river_id,
                    "next_down": seg.next_down,
                    "up_segments": seg.up_segments,
                    "station": seg.station if seg.is_station else None,
                    "optimised_at": seg.optimised_at,
                    "optimisation": label,
                }
            )
        return pd.DataFrame(rows)

    def _fill_up_segments(self) -> None:
        for rid in self.topological_order():
            seg = self._segments[rid]
            if seg.up_segments is None:
                seg.up_segments = len(nx.ancestors(self._graph, rid))

    def __repr__(self) -> str:
        return f"RiverNetwork({len(self)} segments, {len(self.stations())} stations)"
