"""Flux-storage relationships.

A relationship maps the storage state of every unit to its outgoing specific
flux. The subsurface router uses one to turn saturated zone deficits into
baseflow, the surface excess distributor uses another to drain surface
storage. Any object with a ``flux(units, storage)`` method returning an
array of rates (m/hr) can be supplied in place of the defaults.
"""
import numpy as np


class FluxStorageRelation:

    def flux(self, units, storage):
        raise NotImplementedError

    def __call__(self, units, storage):
        return self.flux(units, storage)


class ExponentialTransmissivity(FluxStorageRelation):
    """``qbf = exp(ln_t0) * exp(-sd / m)``, zero once ``sd >= sd_max``."""

    def flux(self, units, storage):
        sd = np.asarray(storage, dtype=float)
        q = units.q0 * np.exp(-sd / units.m)
        return np.where(sd < units.sd_max, q, 0.0)

    def deficit(self, units, q):
        """Inverse of :meth:`flux`: deficit at which baseflow equals ``q``."""
        q = np.maximum(np.asarray(q, dtype=float), np.finfo(float).tiny)
        sd = -units.m * np.log(q / units.q0)
        return np.clip(sd, 0.0, units.sd_max)


class LinearStorageDischarge(FluxStorageRelation):
    """``q = storage * v / area``, with ``v`` the overland velocity by default."""

    def __init__(self, velocity="vof"):
        self.velocity = velocity

    def flux(self, units, storage):
        storage = np.asarray(storage, dtype=float)
        v = getattr(units, self.velocity)
        rate = np.zeros_like(storage)
        np.divide(storage * v, units.area, out=rate, where=units.area > 0)
        return rate


class FunctionRelation(FluxStorageRelation):
    """Wrap a plain ``f(storage) -> rate`` callable."""

    def __init__(self, func):
        self.func = func

    def flux(self, units, storage):
        storage = np.asarray(storage, dtype=float)
        rate = np.asarray(self.func(storage), dtype=float)
        return np.broadcast_to(rate, storage.shape).copy()


def as_relation(obj, default):
    if obj is None:
        return default
    if isinstance(obj, FluxStorageRelation) or hasattr(obj, "flux"):
        return obj
    if callable(obj):
        return FunctionRelation(obj)
    raise TypeError(f"Cannot use {obj!r} as a flux-storage relationship.")
