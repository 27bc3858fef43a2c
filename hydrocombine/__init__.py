"""
hydrocombine - Optimal combination of runoff ensembles over river networks

Includes:
- River network of segments with runoff ensembles and gauge observations
- Instant runoff routing with discharge/runoff controls
- Combination weight estimators (CLS, OLS, NNLS, Granger-Ramanathan,
  Bates-Granger, eigenvector, best member, custom objectives)
- Station-level fitting over the full record, by month or by year
- Region-wide optimisation: weights fitted at each gauge are regionalized
  to its ungauged upstream segments, with mass-balance corrections between
  gauges in series and an ensemble-mean fallback elsewhere
"""

from .config import RegionConfig
from .methods import METHODS, CombinationMethod, ObjectiveMethod, get_method
from .metrics import METRICS, goodness_of_fit
from .network import NetworkStructureError, RiverNetwork, Segment
from .optimise import WarningFlags, WeightResult, build_flow_table, fit, split_sample
from .order import StationOrder, order_stations
from .region import (
    ENSEMBLE_MEAN,
    ENSEMBLE_MEAN_INFO,
    OPTIMIZED,
    RegionState,
    ResolutionLedger,
    combine_runoff,
    combine_unresolved,
    optimise_region,
    run_region,
)
from .routing import ROUTING_METHODS, accumulate_runoff, register_routing

__version__ = "0.1.0"
__author__ = "hydrocombine"

__all__ = [
    # Network
    "Segment",
    "RiverNetwork",
    "NetworkStructureError",
    # Routing
    "accumulate_runoff",
    "register_routing",
    "ROUTING_METHODS",
    # Methods and metrics
    "CombinationMethod",
    "ObjectiveMethod",
    "METHODS",
    "get_method",
    "METRICS",
    "goodness_of_fit",
    # Station fitting
    "WarningFlags",
    "WeightResult",
    "build_flow_table",
    "split_sample",
    "fit",
    # Region
    "RegionConfig",
    "StationOrder",
    "order_stations",
    "ResolutionLedger",
    "RegionState",
    "combine_runoff",
    "combine_unresolved",
    "run_region",
    "optimise_region",
    "OPTIMIZED",
    "ENSEMBLE_MEAN",
    "ENSEMBLE_MEAN_INFO",
]
