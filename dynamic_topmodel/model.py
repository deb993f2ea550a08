from dataclasses import replace
from enum import Enum
import logging
import time

import numpy as np
import pandas as pd
from scipy.optimize import brentq

from .balance import aggregate, print_balance, report
from .celerity import ExponentialTransmissivity, LinearStorageDischarge, as_relation
from .config import align_series, resolve_config
from .display import StepSnapshot, as_observer
from .exceptions import ConfigurationError
from .forcing import distribute_forcing
from .matrices import complementary_matrix, export_fractions, validate_weights
from .parameters import UnitTable
from .routing import (
    build_routing_kernel,
    downstream_targets,
    route_channel_flows,
    routing_table,
    warm_start,
)
from .states import FLUX_NAMES, STORAGE_NAMES, SimulationState
from .subsurface import update_subsurface
from .surface import OverflowPolicy, distribute_surface_excess

logger = logging.getLogger(__name__)


class Phase(Enum):
    IDLE = "idle"
    INITIALISING = "initialising"
    STEPPING = "stepping"
    FINALISING = "finalising"
    DONE = "done"


def initial_deficit(relation, units, q):
    """Deficit at which each unit's baseflow equals ``q``.

    Uses the relation's own inverse when it has one, otherwise solves for
    each unit on ``[0, sd_max]`` with Brent's method. A unit whose baseflow
    stays above ``q`` over the whole range starts at ``sd_max``; one that
    never reaches ``q`` starts saturated.
    """
    if hasattr(relation, "deficit"):
        return relation.deficit(units, np.full(units.n_units, q))
    sd = np.zeros(units.n_units)
    for i in range(units.n_units):
        def residual(s):
            trial = sd.copy()
            trial[i] = s
            return float(relation.flux(units, trial)[i]) - q

        hi = float(units.sd_max[i])
        if residual(0.0) <= 0:
            continue
        if residual(hi) >= 0:
            sd[i] = hi
        else:
            sd[i] = brentq(residual, 0.0, hi)
    return sd


def initial_state(units, channel, qt0, relation):
    """Storages in equilibrium with a specific discharge ``qt0`` (m/hr)."""
    hill = np.ones(units.n_units, dtype=bool)
    hill[list(channel)] = False
    srz = units.srz0 * units.srz_max
    sd = initial_deficit(relation, units, qt0)
    suz = qt0 * units.td * sd
    zeros = np.zeros(units.n_units)
    return SimulationState(
        srz=np.where(hill, np.clip(srz, 0.0, units.srz_max), 0.0),
        suz=np.where(hill, suz, 0.0),
        sd=np.where(hill, sd, 0.0),
        ex=zeros,
    )


class DynamicTopmodel:
    """Dynamic TOPMODEL for a catchment split into response units.

    Args:
        units: list of UnitParameters, DataFrame or UnitTable.
        weights: N x N subsurface weighting matrix; row i gives the fractions
            of unit i's outflow passed to every unit.
        routing: channel routing table of (distance m, fraction) pairs.
        Wsurf: surface routing matrix (default ``weights``).
        Wover: overflow matrix used when a receiver is full (default ``Wsurf``).
        dqds: flux-storage relationship for baseflow; an object with
            ``flux(units, sd)`` or a plain ``f(sd)``. Exponential by default.
        surface_relation: flux-storage relationship for surface excess.
        overflow_policy: OverflowPolicy deciding when a receiver is full.
    """

    def __init__(self, units, weights, routing, Wsurf=None, Wover=None, dqds=None,
                 surface_relation=None, overflow_policy=None):
        self.units = UnitTable.coerce(units)
        n = self.units.n_units
        self.W = validate_weights(weights, n, "weights")
        self.Wsurf = self.W if Wsurf is None else validate_weights(Wsurf, n, "Wsurf")
        self.Wover = self.Wsurf if Wover is None else validate_weights(Wover, n, "Wover")
        self.A = complementary_matrix(self.W, self.units.area)
        self.routing = routing_table(routing)
        self.relation = as_relation(dqds, ExponentialTransmissivity())
        self.surface_relation = as_relation(surface_relation, LinearStorageDischarge("vof"))
        self.policy = overflow_policy or OverflowPolicy()
        self.phase = Phase.IDLE
        self.config = None
        self.state = None

    # ------------------------------------------------------------------
    def initialise(self, rain, pe=None, qobs=None, qt0=1e-4, dt=None, ntt=2,
                   ichan=None, i_out=None, sim_start=None, sim_end=None,
                   upstream_inputs=None, observer=None, channel_targets=None, **options):
        self.phase = Phase.INITIALISING
        u = self.units
        cfg, rain = resolve_config(u, rain, dt=dt, ntt=ntt, qt0=qt0, ichan=ichan, i_out=i_out,
                                   sim_start=sim_start, sim_end=sim_end, **options)
        self.config = cfg
        channel = list(cfg.channel)
        n_steps, n_chan = cfg.n_steps, len(channel)

        self.rain = distribute_forcing(rain, u.gauge_id, u.rain_fact, "rain")
        if pe is None:
            self.pe = np.zeros_like(self.rain)
        else:
            self.pe = distribute_forcing(align_series(pe, cfg.index, "pe"),
                                         u.gauge_id, u.pe_fact, "pe")
        self.qobs = align_series(qobs, cfg.index, "qobs")
        self.upstream = self._upstream(upstream_inputs)

        hill = np.ones(u.n_units, dtype=bool)
        hill[channel] = False
        self.export = np.where(hill, export_fractions(self.W, u.area), 0.0)
        self.kernels = [build_routing_kernel(self.routing, u.vchan[c], cfg.dt) for c in channel]
        self.targets = downstream_targets(self.W, channel, cfg.outlet, channel_targets)

        self.state = initial_state(u, channel, cfg.qt0, self.relation)
        self.Qr = np.zeros((n_steps, n_chan))
        self.Qsim = np.zeros((n_steps, n_chan))
        col = cfg.outlet_column
        q_init = np.zeros(n_chan)
        q_init[col] = cfg.qt0 * u.catchment_area
        in_transit, self.beyond = warm_start(self.Qr, q_init, self.kernels, self.targets)
        self.storage_start = self.state.total_storage(u.area) + in_transit * cfg.dt

        self.fluxes = np.zeros((n_steps, u.n_units, len(FLUX_NAMES)))
        self.storages = np.zeros((n_steps, u.n_units, len(STORAGE_NAMES)))
        self.Qof = np.zeros(n_steps)
        self.observer = as_observer(observer)
        self.it = 0
        self._t0 = time.perf_counter()
        self.phase = Phase.STEPPING
        logger.debug("Initialised run: %s", cfg)
        return cfg

    def _upstream(self, upstream_inputs):
        cfg = self.config
        total = np.zeros(cfg.n_steps)
        if upstream_inputs is None:
            return total
        if isinstance(upstream_inputs, (pd.Series, pd.DataFrame, np.ndarray)):
            upstream_inputs = [upstream_inputs]
        for i, q in enumerate(upstream_inputs):
            values = np.asarray(align_series(q, cfg.index, f"upstream input {i}"), dtype=float)
            if values.ndim > 1:
                values = values.sum(axis=1)
            total += np.nan_to_num(values, nan=0.0)
        return total

    # ------------------------------------------------------------------
    def step(self):
        """Advance the run by one time step and return the step's fluxes."""
        if self.phase is not Phase.STEPPING:
            raise RuntimeError(f"Cannot step a model in phase {self.phase.value}; call initialise() first.")
        cfg, u = self.config, self.units
        if self.it >= cfg.n_steps:
            raise RuntimeError(f"All {cfg.n_steps} steps have been run; call finalise().")
        it = self.it
        dt, channel, outlet = cfg.dt, list(cfg.channel), cfg.outlet
        col = cfg.outlet_column

        # surface excess from the previous step moves downslope
        ex = self.state.ex
        if np.any(ex > 0):
            ex = distribute_surface_excess(u, ex, self.Wsurf, self.Wover, dt=dt, ntt=cfg.ntt,
                                           channel=channel, outlet=outlet,
                                           relation=self.surface_relation, policy=self.policy)
        else:
            ex = ex.copy()

        # excess reaching a channel goes to the outlet within the step
        Qof_chan = ex[channel] * u.area[channel] / dt
        ex[channel] = 0.0
        state = replace(self.state, ex=ex)

        state, fl = update_subsurface(u, state, self.rain[it], self.pe[it], self.A, dt,
                                      ntt=cfg.ntt, channel=channel, export=self.export,
                                      outlet=outlet, relation=self.relation)
        hill = np.ones(u.n_units, dtype=bool)
        hill[channel] = False
        fl.qof = np.where(hill, self.surface_relation.flux(u, state.ex), 0.0)
        fl.qof[channel] = Qof_chan / u.area[channel]
        fl.qin[channel] += Qof_chan / u.area[channel]

        inflow = fl.qin[channel] * u.area[channel]
        self.beyond += route_channel_flows(self.Qr, inflow, self.kernels, it, self.targets)

        # upstream hydrographs join after routing, at the outlet only
        self.Qsim[it] = self.Qr[it]
        self.Qsim[it, col] += self.upstream[it]

        self.state = state
        self.fluxes[it] = fl.as_matrix()
        self.storages[it] = state.as_matrix()
        self.Qof[it] = float(np.sum(Qof_chan))
        self._notify(it, fl)
        self.it += 1
        return fl

    def _notify(self, it, fl):
        cfg, u = self.config, self.units
        try:
            snap = StepSnapshot.build(
                it, cfg.n_steps, cfg.index[it],
                self.Qsim[:, cfg.outlet_column] / u.catchment_area,
                rain=fl.rain @ u.area / u.catchment_area,
                ae=fl.ae @ u.area / u.catchment_area,
                fluxes=self.fluxes[it], storages=self.storages[it],
                qobs=self.qobs,
            )
            self.observer.update(snap)
        except Exception:
            logger.warning("Display observer failed at step %d", it, exc_info=True)

    # ------------------------------------------------------------------
    def finalise(self):
        if self.phase is not Phase.STEPPING:
            raise RuntimeError(f"Cannot finalise a model in phase {self.phase.value}.")
        cfg, u = self.config, self.units
        if self.it < cfg.n_steps:
            raise RuntimeError(f"Run stopped after {self.it} of {cfg.n_steps} steps.")
        self.phase = Phase.FINALISING
        storage_end = self.state.total_storage(u.area) + self.beyond * cfg.dt
        results = aggregate(
            u, cfg, self.fluxes, self.storages, self.Qsim, self.Qr, self.upstream, self.Qof,
            self.storage_start, storage_end, qobs=self.qobs,
            run_time_s=time.perf_counter() - self._t0,
        )
        self.observer.close()
        if cfg.stats_show:
            report(results)
        if cfg.debug_balance:
            print_balance(results)
        self.phase = Phase.DONE
        return results

    def run(self, rain, pe=None, **kwargs):
        """Run the model over the whole forcing series.

        Args:
            rain: rainfall (m/hr), DataFrame/Series with one column per gauge
                or an array.
            pe: potential evapotranspiration (m/hr), same layout; zero if None.
            **kwargs: see :meth:`initialise` (qobs, qt0, dt, ntt, ichan, i_out,
                sim_start, sim_end, upstream_inputs, observer, debug_balance,
                stats_show).

        Returns:
            RunResults
        """
        if rain is None:
            raise ConfigurationError("A rainfall series is required.")
        self.initialise(rain, pe, **kwargs)
        for _ in range(self.config.n_steps):
            self.step()
        return self.finalise()


def run_dtm(units, weights, rain, routing, pe=None, Wsurf=None, Wover=None, dqds=None, **kwargs):
    """One-call interface: build a :class:`DynamicTopmodel` and run it."""
    model = DynamicTopmodel(units, weights, routing, Wsurf=Wsurf, Wover=Wover, dqds=dqds)
    return model.run(rain, pe, **kwargs)
