"""Downslope redistribution of surface excess storage."""
from dataclasses import dataclass

import numpy as np

from .celerity import LinearStorageDischarge
from .exceptions import ConfigurationError

DEFAULT_RELATION = LinearStorageDischarge("vof")


@dataclass(frozen=True)
class OverflowPolicy:
    """Decides whether a receiving unit can take more surface water.

    A unit is full once its excess reaches ``ex_max`` (``inclusive=True``)
    or only once it goes beyond it (``inclusive=False``). Fullness is judged
    at the start of each sub-step, so by default a receiver that is not yet
    full takes everything sent to it in that sub-step and may end above
    ``ex_max``. With ``cap_intake=True`` it accepts only up to ``ex_max`` and
    the rest leaves along its own row of the overflow matrix.
    """
    inclusive: bool = True
    cap_intake: bool = False

    def is_full(self, ex, ex_max):
        ex = np.asarray(ex, dtype=float)
        ex_max = np.asarray(ex_max, dtype=float)
        return ex >= ex_max if self.inclusive else ex > ex_max


def distribute_surface_excess(units, ex, Wsurf, Wover=None, dt=1.0, ntt=1,
                              channel=None, outlet=None, relation=None, policy=None):
    """Move surface excess from hillslope units downslope.

    Each hillslope unit releases ``min(ex, q * dtt)`` per sub-step, ``q`` given
    by ``relation`` (linear in storage by default). The released volume is
    split along ``Wsurf``; shares aimed at a full receiver follow ``Wover``
    instead. Fractions not assigned by a row, and water arriving at units of
    zero area, go to ``outlet``. Channel units only receive; their excess is
    removed by the caller.

    Returns the new excess vector (m); the input is not modified.
    """
    ntt = int(ntt)
    if ntt < 1:
        raise ConfigurationError(f"ntt must be >= 1, got {ntt}.")
    relation = relation or DEFAULT_RELATION
    policy = policy or OverflowPolicy()
    Wsurf = np.asarray(Wsurf, dtype=float)
    Wover = Wsurf if Wover is None else np.asarray(Wover, dtype=float)
    n = units.n_units
    channel = np.asarray([] if channel is None else channel, dtype=int)
    hill = np.ones(n, dtype=bool)
    hill[channel] = False
    area = units.area
    has_area = area > 0
    if outlet is None:
        outlet = channel[0] if channel.size else None

    surf_rest = np.clip(1.0 - Wsurf.sum(axis=1), 0.0, None)
    over_rest = np.clip(1.0 - Wover.sum(axis=1), 0.0, None)
    dtt = dt / ntt
    ex = np.array(ex, dtype=float)

    for _ in range(ntt):
        if not np.any(ex[hill] > 0):
            break
        rate = np.maximum(relation.flux(units, ex), 0.0)
        released = np.where(hill, np.minimum(ex, rate * dtt), 0.0)
        vol = released * area

        full = policy.is_full(ex, units.ex_max) & hill
        diverted = vol * (Wsurf * full[None, :]).sum(axis=1)
        received = vol @ (Wsurf * ~full[None, :]) + diverted @ Wover
        to_outlet = float(np.sum(vol * surf_rest) + np.sum(diverted * over_rest))

        if policy.cap_intake:
            # room left in each receiver after its own release; spill is not tested again
            room = np.full(n, np.inf)
            lim = hill & has_area & np.isfinite(units.ex_max)
            room[lim] = np.maximum(units.ex_max[lim] - ex[lim] + released[lim], 0.0) * area[lim]
            spill = np.maximum(received - room, 0.0)
            received = received - spill + spill @ Wover
            to_outlet += float(np.sum(spill * over_rest))
        to_outlet += float(np.sum(received[~has_area]))

        gain = np.zeros(n)
        np.divide(received, area, out=gain, where=has_area)
        ex = ex - released + gain
        if outlet is not None and to_outlet > 0:
            ex[outlet] += to_outlet / area[outlet]
    return ex
