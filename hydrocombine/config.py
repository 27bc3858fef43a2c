"""
Configuration for region-wide ensemble optimisation.

:class:`RegionConfig` collects every option of
:func:`hydrocombine.region.optimise_region`, normalises the accepted
aliases (``"ts"``, ``"mon"``, ``"ann"``, ``"em"``) and rejects unknown
values before any work starts.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Optional, Union

from hydrocombine.methods import CombinationMethod, get_method
from hydrocombine.routing import ROUTING_METHODS

logger = logging.getLogger(__name__)

GRANULARITY_ALIASES: Dict[str, str] = {
    "timeseries": "timeseries",
    "ts": "timeseries",
    "monthly": "monthly",
    "mon": "monthly",
    "annual": "annual",
    "ann": "annual",
}

SAMPLING_OPTIONS = ("serial", "random")

REGION_TYPES = ("upstream",)

NO_STATION_ALIASES: Dict[str, str] = {
    "em": "em",
    "ensemble mean": "em",
}


@dataclass
class RegionConfig:
    """Options for :func:`~hydrocombine.region.optimise_region`.

    Parameters
    ----------
    routing : str
        Registered routing method name.
    train : float
        Fraction of each station's record used for training, in (0, 1].
    optim_method : str or callable
        Combination method name (see :mod:`hydrocombine.methods`) or an
        objective function ``f(w, obs, preds) -> float``.
    combination : str
        Fitting granularity: ``"timeseries"``, ``"monthly"`` or ``"annual"``.
    sampling : str
        ``"serial"`` or ``"random"`` train/test split.
    region_type : str
        Regionalization rule; only ``"upstream"``.
    no_station : str
        Policy for segments without a downstream station; only ``"em"``
        (ensemble mean).
    drop : bool
        Drop the ensemble member columns from the output runoff and
        discharge tables, keeping only the combined column.
    seed : int or None
        Seed for random train/test sampling.
    min_train_rows : int
        Training rows below which a sampling warning is logged.
    overfit_ratio : float
        Training rows per estimated parameter below which an overfitting
        warning is logged.
    optim_options : dict
        Passed to :func:`scipy.optimize.minimize` for objective functions.
    verbose : bool
        Log progress per station at INFO level.
    """

    routing: str = "instant"
    train: float = 0.5
    optim_method: Union[str, Callable[..., float], CombinationMethod] = "CLS"
    combination: str = "timeseries"
    sampling: str = "random"
    region_type: str = "upstream"
    no_station: str = "em"
    drop: bool = True
    seed: Optional[int] = None
    min_train_rows: int = 12
    overfit_ratio: float = 5.0
    optim_options: Dict[str, Any] = field(default_factory=dict)
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.routing not in ROUTING_METHODS:
            raise ValueError(
                f"Unknown routing {self.routing!r}.  Available: {sorted(ROUTING_METHODS)}"
            )
        if not 0.0 < float(self.train) <= 1.0:
            raise ValueError(f"train must be in (0, 1], got {self.train}")
        self.train = float(self.train)

        try:
            self.combination = GRANULARITY_ALIASES[str(self.combination).lower()]
        except KeyError:
            raise ValueError(
                f"Unknown combination {self.combination!r}.  "
                f"Available: {sorted(set(GRANULARITY_ALIASES.values()))}"
            )
        if self.sampling not in SAMPLING_OPTIONS:
            raise ValueError(f"sampling must be one of {SAMPLING_OPTIONS}, got {self.sampling!r}")
        if self.region_type not in REGION_TYPES:
            raise ValueError(f"region_type must be one of {REGION_TYPES}, got {self.region_type!r}")
        try:
            self.no_station = NO_STATION_ALIASES[str(self.no_station).lower()]
        except KeyError:
            raise ValueError(
                f"no_station must be one of {sorted(NO_STATION_ALIASES)}, got {self.no_station!r}"
            )
        if self.min_train_rows < 1:
            raise ValueError(f"min_train_rows must be positive, got {self.min_train_rows}")
        if self.overfit_ratio <= 0:
            raise ValueError(f"overfit_ratio must be positive, got {self.overfit_ratio}")
        self.optim_options = dict(self.optim_options or {})
        # Resolve now so an unknown method name fails before any routing.
        self.method()

    def method(self) -> CombinationMethod:
        """The combination estimator selected by ``optim_method``."""
        return get_method(self.optim_method, **self.optim_options)

    @property
    def has_intercept(self) -> bool:
        return self.method().intercept

    @classmethod
    def from_dict(cls, options: Dict[str, Any]) -> "RegionConfig":
        """Build from a flat dict, ignoring unknown keys (logged at DEBUG)."""
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(options) - known)
        if unknown:
            logger.debug("Ignoring unknown RegionConfig keys: %s", unknown)
        return cls(**{k: v for k, v in options.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to a flat dict; callables are replaced by their name."""
        out = asdict(self)
        if not isinstance(self.optim_method, str):
            out["optim_method"] = self.method().name
        return out
