import logging

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def routing_table(table):
    """Normalise a routing table to a (k, 2) array of (distance_m, fraction).

    Accepts a list of pairs, an array or a two-column DataFrame. Fractions not
    summing to one are rescaled with a warning.
    """
    if isinstance(table, pd.DataFrame):
        arr = table.iloc[:, :2].to_numpy(dtype=float)
    else:
        arr = np.asarray(table, dtype=float)
    if arr.ndim == 1 and arr.size == 2:
        arr = arr[None, :]
    if arr.ndim != 2 or arr.shape[1] < 2 or arr.shape[0] == 0:
        raise ConfigurationError(
            "Routing table must contain (distance, fraction) pairs, got shape "
            f"{arr.shape}."
        )
    arr = arr[:, :2].copy()
    if np.any(~np.isfinite(arr)) or np.any(arr < 0):
        raise ConfigurationError("Routing table distances and fractions must be finite and >= 0.")
    total = arr[:, 1].sum()
    if total <= 0:
        raise ConfigurationError("Routing table fractions sum to zero.")
    if not np.isclose(total, 1.0):
        logger.warning("Routing fractions sum to %.4f; rescaling them to 1.", total)
        arr[:, 1] = arr[:, 1] / total
    return arr


def build_routing_kernel(table, vchan, dt):
    """Discrete travel-time kernel for a channel with velocity ``vchan`` (m/hr).

    Each distance class is delayed by ``distance / (vchan * dt)`` steps. A
    fractional delay is shared between the two neighbouring whole steps so the
    kernel keeps the mean travel time. ``kernel[k]`` is the share of an inflow
    that reaches the outlet ``k`` steps later; the kernel sums to one.
    """
    table = routing_table(table)
    if vchan <= 0:
        raise ConfigurationError(f"Channel velocity must be > 0, got {vchan}.")
    if dt <= 0:
        raise ConfigurationError(f"Time step must be > 0, got {dt}.")
    delay = table[:, 0] / (vchan * dt)
    lo = np.floor(delay).astype(int)
    w_hi = delay - lo
    kernel = np.zeros(int(lo.max()) + 2)
    np.add.at(kernel, lo, table[:, 1] * (1.0 - w_hi))
    np.add.at(kernel, lo + 1, table[:, 1] * w_hi)
    return np.trim_zeros(kernel, "b")


def downstream_targets(W, channel, outlet, targets=None):
    """Column of the per-channel buffer that each channel delivers to.

    A channel passes its flow to the channel its row of ``W`` sends the most
    to (itself excluded), followed down until a channel that passes nothing
    on. The outlet always keeps its own flow. ``targets`` maps a channel unit
    index to the channel unit it should deliver to and takes precedence over
    ``W``.
    """
    W = np.asarray(W, dtype=float)
    channel = [int(c) for c in channel]
    pos = {c: k for k, c in enumerate(channel)}
    targets = {int(k): int(v) for k, v in dict(targets or {}).items()}
    unknown = [k for k, v in targets.items() if k not in pos or v not in pos]
    if unknown:
        raise ConfigurationError(f"Channel targets for units {unknown} do not name channel units.")
    if targets.get(outlet, outlet) != outlet:
        raise ConfigurationError(f"The outlet unit {outlet} cannot deliver to another channel.")

    nxt = {}
    for c in channel:
        if c in targets:
            nxt[c] = targets[c]
            continue
        w = np.array([W[c, d] if d != c else 0.0 for d in channel])
        nxt[c] = channel[int(np.argmax(w))] if c != outlet and w.max() > 0 else c

    cols = []
    for c in channel:
        path = [c]
        while nxt[path[-1]] != path[-1]:
            if nxt[path[-1]] in path:
                raise ConfigurationError(f"Channel network loops through units {path}.")
            path.append(nxt[path[-1]])
        cols.append(pos[path[-1]])
    return cols


def route_channel_flows(Qr, inflow, kernels, it, targets=None):
    """Spread channel inflows at step ``it`` forward in time into ``Qr``.

    Args:
        Qr: (n_steps, n_channels) outlet buffer in m³/hr, updated in place.
        inflow: inflow to each channel at step ``it`` (m³/hr).
        kernels: one routing kernel per channel.
        it: current step index; nothing is written before it.
        targets: column of ``Qr`` each channel delivers to (default its own).

    Returns:
        Sum of the rates that fall beyond the end of ``Qr`` (m³/hr), still in
        transit when the run ends.
    """
    n_steps = Qr.shape[0]
    if targets is None:
        targets = range(len(kernels))
    beyond = 0.0
    for q, kernel, col in zip(np.atleast_1d(inflow), kernels, targets):
        if q == 0:
            continue
        k = min(len(kernel), n_steps - it)
        Qr[it:it + k, col] += q * kernel[:k]
        beyond += q * float(kernel[k:].sum())
    return beyond


def warm_start(Qr, q0, kernels, targets=None):
    """Add the tail of a steady inflow ``q0`` (m³/hr per channel) received
    before the first step.

    Returns ``(in_transit, beyond)``: the total rate still in transit at the
    start of the run and the part of it that falls after the end of ``Qr``.
    """
    n_steps = Qr.shape[0]
    if targets is None:
        targets = range(len(kernels))
    in_transit = 0.0
    beyond = 0.0
    for q, kernel, col in zip(np.atleast_1d(q0), kernels, targets):
        # inflow at step -j reaches step t through kernel[t + j]
        tail = np.cumsum(kernel[::-1])[::-1][1:]
        k = min(len(tail), n_steps)
        Qr[:k, col] += q * tail[:k]
        in_transit += q * float(tail.sum())
        beyond += q * float(tail[k:].sum())
    return in_transit, beyond


def to_discharge(q_spec, area_m2):
    """Specific discharge (m/hr) -> discharge (m³/hr)."""
    return np.asarray(q_spec, dtype=float) * float(area_m2)


def to_specific(Q, area_m2):
    """Discharge (m³/hr) -> specific discharge (m/hr)."""
    return np.asarray(Q, dtype=float) / float(area_m2)
