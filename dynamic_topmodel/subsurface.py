"""Root zone, unsaturated zone and saturated zone update for one time step.

All hillslope units are advanced together in ``ntt`` explicit sub-steps of
``dt / ntt`` hours. Within a sub-step every rate is computed from the state
at the start of the sub-step before any storage is written.

Per hillslope unit and sub-step:

1. baseflow ``qbf`` from the deficit through the flux-storage relationship;
2. lateral input ``qin`` = area weighted baseflow received from upslope;
3. root zone gains rain, loses actual ET (at most PE, scaled by the relative
   root zone storage, and at most the storage left) and spills anything above
   ``srz_max`` into the unsaturated zone;
4. unsaturated zone drains to the water table at ``suz / (td * sd)``;
5. deficit changes by ``qbf - qin - uz``; a deficit driven below zero is
   set to zero and the surplus becomes surface excess.

Channel units take no part in 1-5. They keep zero storage and collect the
lateral inflow, the rain falling on them and, for the outlet, the outflow
of units whose weights do not sum to one.
"""
import numpy as np

from .celerity import ExponentialTransmissivity
from .exceptions import ConfigurationError
from .states import SimulationState, StepFluxes

DEFAULT_RELATION = ExponentialTransmissivity()


def unsaturated_drainage(suz, sd, td, dtt):
    """Drainage rate out of the unsaturated zone, never more than ``suz``."""
    cap = suz / dtt
    rate = np.array(cap, dtype=float)
    wet = sd > 0
    np.divide(suz, td * sd, out=rate, where=wet)
    return np.minimum(rate, cap)


def update_subsurface(units, state, rain, pe, A, dt, ntt=2, channel=None,
                      export=None, outlet=None, relation=None):
    """Advance the subsurface stores of all units by one step of ``dt`` hours.

    Args:
        units: UnitTable.
        state: SimulationState at the start of the step (not modified).
        rain, pe: per-unit rates for this step (m/hr).
        A: complementary matrix from :func:`matrices.complementary_matrix`.
        dt: step length (hr).
        ntt: number of inner sub-steps.
        channel: indices of channel units.
        export: per-unit fraction of baseflow leaving the hillslope directly
            (weights rows not summing to one); sent to ``outlet``.
        outlet: index of the unit receiving direct exports.
        relation: flux-storage relationship for baseflow.

    Returns:
        (SimulationState, StepFluxes); fluxes are means over the sub-steps.
    """
    ntt = int(ntt)
    if ntt < 1:
        raise ConfigurationError(f"ntt must be >= 1, got {ntt}.")
    relation = relation or DEFAULT_RELATION
    n = units.n_units
    channel = np.asarray([] if channel is None else channel, dtype=int)
    hill = np.ones(n, dtype=bool)
    hill[channel] = False
    export = np.zeros(n) if export is None else np.where(hill, export, 0.0)
    rain = np.asarray(rain, dtype=float)
    pe = np.asarray(pe, dtype=float)
    dtt = dt / ntt

    start = state.copy()
    srz, suz, sd, ex = start.srz, start.suz, start.sd, start.ex
    sums = {k: np.zeros(n) for k in ("qbf", "qin", "uz", "ae", "ex")}
    exported = 0.0

    rain_h = np.where(hill, rain, 0.0)
    pe_h = np.where(hill, pe, 0.0)

    for _ in range(ntt):
        qbf = np.where(hill, np.maximum(relation.flux(units, sd), 0.0), 0.0)
        qin = A @ qbf + qbf

        # Root zone
        srz_new = srz + rain_h * dtt
        ae = np.minimum(pe_h * np.minimum(1.0, srz_new / units.srz_max), srz_new / dtt)
        srz_new = srz_new - ae * dtt
        spill = np.maximum(srz_new - units.srz_max, 0.0)
        srz_new = srz_new - spill

        # Unsaturated zone
        suz_new = suz + spill
        uz = np.where(hill, unsaturated_drainage(suz_new, sd, units.td, dtt), 0.0)
        suz_new = np.maximum(suz_new - uz * dtt, 0.0)

        # Saturated zone
        sd_new = sd + (qbf - qin - uz) * dtt
        surplus = np.where(hill, np.maximum(-sd_new, 0.0), 0.0)
        sd_new = np.maximum(sd_new, 0.0)

        srz = np.where(hill, srz_new, srz)
        suz = np.where(hill, suz_new, suz)
        sd = np.where(hill, sd_new, sd)
        ex = ex + surplus

        sums["qbf"] += qbf
        sums["qin"] += qin
        sums["uz"] += uz
        sums["ae"] += ae
        sums["ex"] += surplus / dtt
        exported += float(np.sum(export * qbf * units.area))

    means = {k: v / ntt for k, v in sums.items()}
    qin = means["qin"]
    qin[channel] = qin[channel] + rain[channel]
    if outlet is not None and exported > 0:
        qin[outlet] += exported / ntt / units.area[outlet]

    fluxes = StepFluxes(
        qbf=means["qbf"],
        qin=qin,
        uz=means["uz"],
        rain=rain.copy(),
        ae=means["ae"],
        ex=means["ex"],
        qof=np.zeros(n),
    )
    return SimulationState(srz=srz, suz=suz, sd=sd, ex=ex), fluxes
