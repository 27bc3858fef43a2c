"""
hydrocombine.routing - Runoff accumulation along the river network.

Routing turns per-segment runoff into discharge accumulated from every
upstream segment.  Methods are looked up by name in :data:`ROUTING_METHODS`;
``"instant"`` (no travel time) is built in and others can be added with
:func:`register_routing`.

Controls
--------
Segments may carry a control timeseries with ``control_type`` of the form
``(action, variable)``:

* ``("set", "runoff")`` / ``("add", "runoff")`` replace / add to the
  segment's runoff before accumulation.
* ``("set", "discharge")`` replaces the segment's discharge; the replaced
  value is what flows downstream.
* ``("add", "discharge")`` adds to the segment's reported discharge only.
  The added flow is *not* passed downstream: every downstream segment that
  should see it carries its own control.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Hashable, Optional

import pandas as pd

from hydrocombine.network import RiverNetwork, Segment

log = logging.getLogger(__name__)

RoutingFunction = Callable[..., RiverNetwork]


def _control_frame(segment: Segment, like: pd.DataFrame) -> Optional[pd.DataFrame]:
    """Broadcast the segment's control series over the columns of ``like``."""
    if segment.control is None or segment.control_type is None:
        return None
    values = segment.control.reindex(like.index)
    return pd.DataFrame({col: values for col in like.columns}, index=like.index)


def _apply_control(segment: Segment, data: pd.DataFrame, variable: str) -> pd.DataFrame:
    if segment.control_type is None or segment.control_type[1] != variable:
        return data
    ctrl = _control_frame(segment, data)
    if segment.control_type[0] == "set":
        return ctrl.where(ctrl.notna(), data)
    return data + ctrl.fillna(0.0)


def instant_routing(network: RiverNetwork) -> RiverNetwork:
    """
    Accumulate runoff with no travel time.

    Discharge at a segment is its own runoff plus the discharge flowing
    out of every segment directly upstream, for the same date.  Segments
    are processed headwaters first.  ``discharge`` is set in place on every
    segment of ``network``.

    Parameters
    ----------
    network : RiverNetwork

    Returns
    -------
    RiverNetwork
        The same network, with ``discharge`` populated.
    """
    outflow: Dict[Hashable, pd.DataFrame] = {}
    for rid in network.topological_order():
        seg = network[rid]
        flow = _apply_control(seg, seg.runoff.astype(float), "runoff")
        for up in network.direct_upstream(rid):
            flow = flow.add(outflow[up], fill_value=0.0)

        if seg.control_type == ("set", "discharge"):
            flow = _apply_control(seg, flow, "discharge")
        outflow[rid] = flow
        if seg.control_type == ("add", "discharge"):
            seg.discharge = _apply_control(seg, flow, "discharge")
        else:
            seg.discharge = flow
    return network


ROUTING_METHODS: Dict[str, RoutingFunction] = {
    "instant": instant_routing,
}


def register_routing(name: str, func: RoutingFunction) -> None:
    """Add ``func`` to :data:`ROUTING_METHODS` (overwrites an existing name)."""
    ROUTING_METHODS[name] = func


def accumulate_runoff(network: RiverNetwork, method: str = "instant", **options) -> RiverNetwork:
    """
    Route runoff to discharge on every segment of ``network``.

    Parameters
    ----------
    network : RiverNetwork
        Network to route; ``discharge`` is replaced in place.
    method : str
        Name of a registered routing method.
    **options
        Passed to the routing function.

    Returns
    -------
    RiverNetwork

    Raises
    ------
    ValueError
        If ``method`` is not registered.
    """
    try:
        func = ROUTING_METHODS[method]
    except KeyError:
        raise ValueError(
            f"Unknown routing method {method!r}.  Available: {sorted(ROUTING_METHODS)}"
        )
    log.debug("Routing %d segments with %r", len(network), method)
    return func(network, **options)
