"""
hydrocombine.region - Region-wide optimisation and regionalization.

Workflow
--------
1. Order the gauge stations from most upstream to most downstream
   (:func:`hydrocombine.order.order_stations`).
2. For each station in that order:

   a. Take its contributing area: every segment upstream of it that no
      earlier station has claimed, plus the segments below it with their
      runoff zeroed.
   b. Route runoff over the area and pair the station's discharge with its
      observations.
   c. Subtract any discharge control (flow already attributed to stations
      upstream) from observations and predictions.
   d. Fit combination weights.
   e. Combine runoff over the area with the weights, route again, write the
      result back and record the segments in the ledger.
   f. Store the routed discharge below the station as an ``("add",
      "discharge")`` control on those segments, for the next station
      downstream to subtract.

3. Segments never claimed by a station get the ensemble mean.
4. Controls are reset to what the caller passed in.

Stations must be processed strictly in that order: step (f) of one station
feeds step (c) of the stations below it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Hashable, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from hydrocombine.config import RegionConfig
from hydrocombine.network import NetworkStructureError, RiverNetwork, Segment
from hydrocombine.optimise import WarningFlags, build_flow_table, fit, has_complete_rows
from hydrocombine.order import StationOrder, order_stations
from hydrocombine.routing import accumulate_runoff

log = logging.getLogger(__name__)

OPTIMIZED = "Optimized"
ENSEMBLE_MEAN = "Ensemble_mean"
ENSEMBLE_MEAN_STATION = "Ensemble Mean"
ENSEMBLE_MEAN_INFO = "Ensemble Mean - not optimised"

_COMBINED_COLUMNS = (OPTIMIZED, ENSEMBLE_MEAN)


# ---------------------------------------------------------------------------
# Resolution ledger
# ---------------------------------------------------------------------------


class ResolutionLedger:
    """
    Append-only record of which station resolved each segment.

    Each segment can be recorded once; a second :meth:`add` for the same
    segment raises ``ValueError``.
    """

    def __init__(self) -> None:
        self._entries: Dict[Hashable, Tuple[str, Optional[Hashable]]] = {}

    def add(self, river_ids: Iterable[Hashable], station: str, station_id: Optional[Hashable]) -> None:
        """Record ``river_ids`` as resolved by ``station`` (at ``station_id``)."""
        river_ids = list(river_ids)
        already = [rid for rid in river_ids if rid in self._entries]
        if already or len(set(river_ids)) != len(river_ids):
            raise ValueError(f"Segments already resolved: {already or river_ids}")
        for rid in river_ids:
            self._entries[rid] = (station, station_id)

    def get(self, river_id: Hashable) -> Optional[Tuple[str, Optional[Hashable]]]:
        return self._entries.get(river_id)

    def __contains__(self, river_id: Hashable) -> bool:
        return river_id in self._entries

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def to_frame(self) -> pd.DataFrame:
        """Columns ``river_id``, ``station``, ``station_river_id``."""
        return pd.DataFrame(
            [(rid, station, sid) for rid, (station, sid) in self._entries.items()],
            columns=["river_id", "station", "station_river_id"],
        )


@dataclass
class RegionState:
    """Accumulator carried from one station to the next."""

    network: RiverNetwork
    ledger: ResolutionLedger
    flags: WarningFlags
    rng: np.random.Generator


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------


def combine_runoff(
    runoff: pd.DataFrame,
    weights: Union[pd.Series, pd.DataFrame],
    intercept: Union[float, pd.Series] = 0.0,
    bias: Optional[Sequence[float]] = None,
    name: str = OPTIMIZED,
    drop: bool = True,
) -> pd.DataFrame:
    """
    Combine a runoff ensemble into a single column.

    Parameters
    ----------
    runoff : pd.DataFrame
        Runoff indexed by date, one column per member.  Columns named
        ``"Optimized"`` or ``"Ensemble_mean"`` are not treated as members.
    weights : pd.Series or pd.DataFrame
        Weight per member, or a 12-row table of weights indexed by month.
        Members without a weight get zero.
    intercept : float or pd.Series
        Constant added to the combination; a Series is indexed by month.
    bias : sequence of 12 floats, optional
        Monthly bias terms added to the combination.
    name : str
        Name of the combined column.
    drop : bool
        Return only the combined column; otherwise keep the members too.

    Returns
    -------
    pd.DataFrame
    """
    members = [c for c in runoff.columns if c not in _COMBINED_COLUMNS]
    values = runoff[members].to_numpy(dtype=float)
    months = runoff.index.month

    if isinstance(weights, pd.DataFrame):
        table = weights.reindex(columns=members).fillna(0.0)
        combined = (values * table.loc[months].to_numpy(dtype=float)).sum(axis=1)
    else:
        combined = values @ weights.reindex(members).fillna(0.0).to_numpy(dtype=float)

    if isinstance(intercept, pd.Series):
        combined = combined + intercept.reindex(months).fillna(0.0).to_numpy(dtype=float)
    else:
        combined = combined + float(intercept)
    if bias is not None:
        combined = combined + np.asarray(bias, dtype=float)[months - 1]

    if drop:
        return pd.DataFrame({name: combined}, index=runoff.index)
    out = runoff[members].copy()
    out[name] = combined
    return out


def subtract_control(flow: pd.DataFrame, segment: Segment) -> pd.DataFrame:
    """
    Remove discharge already attributed upstream from a station's flow table.

    If ``segment`` carries a control of variable ``"discharge"``, the
    control (aligned by date; dates it does not cover count as zero) is
    subtracted from the observations and every prediction column.
    Otherwise ``flow`` is returned unchanged.
    """
    if segment.control is None or segment.control_type is None:
        return flow
    if segment.control_type[1] != "discharge":
        return flow
    control = segment.control.reindex(flow.index).fillna(0.0)
    log.debug("Subtracting discharge control at segment %r", segment.river_id)
    return flow.sub(control, axis=0)


def contributing_area(
    network: RiverNetwork,
    ledger: ResolutionLedger,
    river_id: Hashable,
) -> Tuple[RiverNetwork, List[Hashable], List[Hashable]]:
    """
    Sub-network optimised for the station at ``river_id``.

    Returns
    -------
    tuple
        ``(subnetwork, area, boundary)``: an independent copy of the
        segments involved, the unresolved segments upstream of the station
        (itself included) that the station will resolve, and the segments
        below the station, whose runoff is zeroed in the copy.

    Raises
    ------
    NetworkStructureError
        If the station has no downstream segments.
    """
    chain = network.downstream(river_id)
    if len(chain) == 0:
        raise NetworkStructureError(river_id, "station has no downstream segments")

    area = [rid for rid in network.upstream(river_id) if rid not in ledger]
    boundary = [rid for rid in chain[1:] if rid not in ledger]
    sub = network.subset(area + boundary)
    for rid in boundary:
        sub[rid].runoff = sub[rid].runoff * 0.0
    for seg in sub:
        seg.discharge = None
    return sub, area, boundary


# ---------------------------------------------------------------------------
# Station propagation and fallback
# ---------------------------------------------------------------------------


def propagate_station(state: RegionState, entry: StationOrder, config: RegionConfig) -> RegionState:
    """
    Optimise one station and regionalize its weights to its contributing area.

    Returns the updated accumulator.  A station whose observations do not
    overlap the routed discharge, or overlap it only where every member is
    missing, is skipped and its segments stay unresolved.
    """
    network, ledger = state.network, state.ledger
    sub, area, boundary = contributing_area(network, ledger, entry.river_id)
    accumulate_runoff(sub, config.routing)

    station_seg = sub[entry.river_id]
    flow = subtract_control(build_flow_table(station_seg.discharge, station_seg.observation), station_seg)
    if flow.empty:
        log.warning(
            "Station %s (%r): no observations overlap the routed discharge; skipped",
            entry.station,
            entry.river_id,
        )
        return state
    if not has_complete_rows(flow):
        log.warning(
            "Station %s (%r): no observed date has routed discharge for the members; skipped",
            entry.station,
            entry.river_id,
        )
        return state

    result, flags = fit(
        flow,
        config.method(),
        sampling=config.sampling,
        train=config.train,
        granularity=config.combination,
        flags=state.flags,
        rng=state.rng,
        min_train_rows=config.min_train_rows,
        overfit_ratio=config.overfit_ratio,
    )
    result.station = entry.station
    result.river_id = entry.river_id

    weights = result.combination_weights()
    # Spread the intercept so the station's accumulated discharge carries it once.
    share = result.combination_intercept() / len(area)
    in_area = set(area)
    for seg in sub:
        seg.runoff = combine_runoff(
            seg.runoff,
            weights,
            intercept=share if seg.river_id in in_area else 0.0,
            drop=config.drop,
        )
    accumulate_runoff(sub, config.routing)

    for rid in area:
        target = network[rid]
        target.runoff = sub[rid].runoff
        target.discharge = sub[rid].discharge
        target.optimised_at = entry.river_id
        target.optimisation_info = result
    ledger.add(area, entry.station, entry.river_id)

    for rid in boundary:
        target = network[rid]
        target.control = sub[rid].discharge[OPTIMIZED].rename("control")
        target.control_type = ("add", "discharge")

    log.debug(
        "Station %s resolved %d segments, %d boundary controls",
        entry.station,
        len(area),
        len(boundary),
    )
    return replace(state, flags=flags)


def combine_unresolved(
    network: RiverNetwork,
    ledger: ResolutionLedger,
    routing: str = "instant",
    drop: bool = True,
) -> List[Hashable]:
    """
    Give every segment missing from ``ledger`` the ensemble mean.

    Each member gets weight ``1 / n_members``; the combination is routed
    (with any boundary controls), the segments are tagged with
    :data:`ENSEMBLE_MEAN_INFO` and no resolving station, and recorded in
    the ledger.

    Returns
    -------
    list
        Ids of the segments combined.
    """
    remaining = [rid for rid in network.ids if rid not in ledger]
    if not remaining:
        return remaining

    sub = network.subset(remaining)
    for seg in sub:
        members = [c for c in seg.runoff.columns if c not in _COMBINED_COLUMNS]
        weights = pd.Series(1.0 / len(members), index=members)
        seg.runoff = combine_runoff(seg.runoff, weights, name=ENSEMBLE_MEAN, drop=drop)
        seg.discharge = None
    accumulate_runoff(sub, routing)

    for seg in sub:
        target = network[seg.river_id]
        target.runoff = seg.runoff
        target.discharge = seg.discharge
        target.optimised_at = None
        target.optimisation_info = ENSEMBLE_MEAN_INFO
    ledger.add(remaining, ENSEMBLE_MEAN_STATION, None)
    log.info("%d segments without a downstream station set to the ensemble mean", len(remaining))
    return remaining


def assemble_result(
    network: RiverNetwork,
    original_controls: Dict[Hashable, Tuple[Optional[pd.Series], Optional[Tuple[str, str]]]],
) -> RiverNetwork:
    """
    Put back the controls the caller passed in.

    Segments that had a control get it back; boundary controls added during
    the run are dropped from the others.
    """
    for seg in network:
        control, control_type = original_controls.get(seg.river_id, (None, None))
        seg.control = control
        seg.control_type = control_type
    return network


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def run_region(network: RiverNetwork, config: RegionConfig) -> RegionState:
    """
    Run the region optimisation and return the final accumulator.

    ``network`` is not modified; the returned state holds an augmented
    copy and the complete resolution ledger.
    """
    if config.has_intercept:
        log.warning(
            "%s contains an intercept which may cause a considerable amount of negative "
            "streamflow estimates in river segments with no observations",
            config.method().name,
        )

    working = network.copy()
    original_controls = {seg.river_id: (seg.control, seg.control_type) for seg in working}
    for seg in working:
        seg.discharge = None
        seg.optimised_at = None
        seg.optimisation_info = None

    stations = order_stations(working)
    state = RegionState(
        network=working,
        ledger=ResolutionLedger(),
        flags=WarningFlags(),
        rng=np.random.default_rng(config.seed),
    )

    for i, entry in enumerate(stations, start=1):
        if config.verbose:
            log.info("Optimising station %s (%d/%d)", entry.station, i, len(stations))
        state = propagate_station(state, entry, config)

    if config.no_station == "em":
        combine_unresolved(state.network, state.ledger, config.routing, config.drop)

    assemble_result(state.network, original_controls)
    return state


def optimise_region(
    network: RiverNetwork,
    routing: str = "instant",
    train: float = 0.5,
    optim_method="CLS",
    combination: str = "timeseries",
    sampling: str = "random",
    region_type: str = "upstream",
    no_station: str = "em",
    drop: bool = True,
    *,
    config: Optional[RegionConfig] = None,
    **options,
) -> RiverNetwork:
    """
    Combine the runoff ensemble optimally for every segment of a network.

    Weights are fitted at each gauge station, from the most upstream
    station down, and applied to the station's unresolved upstream segments
    (``region_type="upstream"``).  Segments with no downstream station get
    the ensemble mean (``no_station="em"``).

    Parameters
    ----------
    network : RiverNetwork
        Segments with runoff ensembles; stations carry observations.
    routing : str
        Routing method, see :mod:`hydrocombine.routing`.
    train : float
        Training fraction of each station's record, in (0, 1].
    optim_method : str or callable
        Combination method, see :mod:`hydrocombine.methods`.
    combination : str
        ``"timeseries"``, ``"monthly"`` or ``"annual"``.
    sampling : str
        ``"serial"`` or ``"random"``.
    region_type : str
        Only ``"upstream"``.
    no_station : str
        Only ``"em"``.
    drop : bool
        Keep only the combined column in the output tables.
    config : RegionConfig, optional
        Complete configuration; overrides every other option when given.
    **options
        Further :class:`~hydrocombine.config.RegionConfig` fields
        (``seed``, ``min_train_rows``, ``overfit_ratio``, ``optim_options``,
        ``verbose``).

    Returns
    -------
    RiverNetwork
        A new network with recomputed ``runoff`` and ``discharge`` and the
        provenance fields ``optimised_at`` and ``optimisation_info`` set on
        every segment.

    Raises
    ------
    NetworkStructureError
        If the station layout is inconsistent; no output is produced.
    ValueError
        On invalid options.
    """
    if config is None:
        config = RegionConfig(
            routing=routing,
            train=train,
            optim_method=optim_method,
            combination=combination,
            sampling=sampling,
            region_type=region_type,
            no_station=no_station,
            drop=drop,
            **options,
        )
    return run_region(network, config).network
