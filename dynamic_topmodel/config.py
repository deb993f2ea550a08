"""Resolution of run options into a fully specified :class:`RunConfig`."""
from dataclasses import dataclass, field
from typing import Optional, Tuple
import logging

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError
from .io import subset_period

logger = logging.getLogger(__name__)


@dataclass
class RunConfig:
    dt: float                          # hr, time step
    n_steps: int                       # number of steps in the run
    channel: Tuple[int, ...]           # unit indices of the channel units
    outlet: int                        # unit index of the outlet channel
    ntt: int = 2                       # inner sub-steps of the subsurface update
    qt0: float = 1e-4                  # m/hr, initial specific discharge
    sim_start: Optional[pd.Timestamp] = None
    sim_end: Optional[pd.Timestamp] = None
    index: Optional[pd.Index] = field(default=None, repr=False)
    debug_balance: bool = False        # print the water balance summary
    stats_show: bool = True            # log run statistics at the end

    def __post_init__(self):
        if not np.isfinite(self.dt) or self.dt <= 0:
            raise ConfigurationError(f"Time step dt must be > 0, got {self.dt}.")
        if int(self.ntt) != self.ntt or self.ntt < 1:
            raise ConfigurationError(f"ntt must be an integer >= 1, got {self.ntt}.")
        self.ntt = int(self.ntt)
        if self.n_steps < 1:
            raise ConfigurationError("The simulation window contains no time steps.")
        if not self.channel:
            raise ConfigurationError("At least one channel unit is required.")
        if self.outlet not in self.channel:
            raise ConfigurationError(
                f"Outlet unit {self.outlet} is not one of the channel units {list(self.channel)}."
            )
        if not np.isfinite(self.qt0) or self.qt0 < 0:
            raise ConfigurationError(f"Initial discharge qt0 must be >= 0, got {self.qt0}.")
        if self.index is None:
            self.index = pd.RangeIndex(self.n_steps)

    @property
    def outlet_column(self):
        """Column of the outlet in the per-channel discharge buffer."""
        return self.channel.index(self.outlet)


def infer_dt(index):
    """Time step in hours from a DatetimeIndex, or None if it cannot be told."""
    if isinstance(index, pd.DatetimeIndex) and len(index) > 1:
        steps = np.asarray((index[1:] - index[:-1]).total_seconds(), dtype=float) / 3600.0
        if np.any(steps <= 0):
            raise ConfigurationError("Forcing time index must be strictly increasing.")
        if not np.allclose(steps, steps[0]):
            logger.warning("Irregular forcing time index; using the median interval as dt.")
        return float(np.median(steps))
    return None


def align_series(series, index, name="series"):
    """Align an optional series to the run index; arrays must match in length."""
    if series is None:
        return None
    if isinstance(series, (pd.Series, pd.DataFrame)) and isinstance(index, pd.DatetimeIndex) \
            and isinstance(series.index, pd.DatetimeIndex):
        return series.reindex(index)
    values = series.to_numpy(dtype=float) if isinstance(series, (pd.Series, pd.DataFrame)) \
        else np.asarray(series, dtype=float)
    if values.shape[0] != len(index):
        raise ConfigurationError(
            f"{name} has {values.shape[0]} steps but the run has {len(index)}."
        )
    return values


def resolve_channels(units, ichan=None, i_out=None):
    n = units.n_units
    if ichan is None:
        channel = tuple(int(i) for i in units.channel_index)
    else:
        channel = tuple(int(i) for i in np.atleast_1d(ichan))
    if not channel:
        raise ConfigurationError("No channel unit: flag one with is_channel or pass ichan.")
    bad = [i for i in channel if i < 0 or i >= n]
    if bad:
        raise ConfigurationError(f"Channel indices {bad} outside the unit table (0..{n - 1}).")
    if len(set(channel)) != len(channel):
        raise ConfigurationError(f"Duplicate channel indices {list(channel)}.")
    zero = [i for i in channel if units.area[i] <= 0]
    if zero:
        raise ConfigurationError(f"Channel units {zero} must have a positive area.")
    outlet = channel[0] if i_out is None else int(i_out)
    return channel, outlet


def resolve_config(units, rain, dt=None, ntt=2, qt0=1e-4, ichan=None, i_out=None,
                   sim_start=None, sim_end=None, **options):
    """Validate the run options against the inputs.

    Returns ``(config, rain)`` with ``rain`` cut to the simulation window.
    """
    if rain is None:
        raise ConfigurationError("A rainfall series is required.")
    if isinstance(rain, (pd.Series, pd.DataFrame)):
        if isinstance(rain, pd.Series):
            rain = rain.to_frame()
        if sim_start is not None or sim_end is not None:
            if not isinstance(rain.index, pd.DatetimeIndex):
                raise ConfigurationError("sim_start/sim_end need a rainfall series indexed by time.")
            rain = subset_period(rain, sim_start, sim_end)
        index = rain.index
        if dt is None:
            dt = infer_dt(index)
    else:
        rain = np.asarray(rain, dtype=float)
        if rain.ndim == 0:
            raise ConfigurationError("The rainfall series must be one or two dimensional.")
        if rain.ndim == 1:
            rain = rain[:, None]
        if sim_start is not None or sim_end is not None:
            raise ConfigurationError("sim_start/sim_end need a rainfall series indexed by time.")
        index = pd.RangeIndex(rain.shape[0])

    if dt is None:
        logger.info("Time step could not be inferred from the rainfall index; using 1 hr.")
        dt = 1.0
    if rain.shape[0] == 0:
        raise ConfigurationError("The rainfall series has no time steps in the simulation window.")
    if rain.ndim != 2 or rain.shape[1] == 0:
        raise ConfigurationError("The rainfall series has no gauge columns.")

    channel, outlet = resolve_channels(units, ichan, i_out)
    cfg = RunConfig(
        dt=float(dt),
        n_steps=int(rain.shape[0]),
        channel=channel,
        outlet=outlet,
        ntt=ntt,
        qt0=float(qt0),
        sim_start=index[0] if isinstance(index, pd.DatetimeIndex) else None,
        sim_end=index[-1] if isinstance(index, pd.DatetimeIndex) else None,
        index=index,
        **options,
    )
    return cfg, rain
