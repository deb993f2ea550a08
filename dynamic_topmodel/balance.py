"""Water balance and collection of run results."""
from dataclasses import dataclass, asdict
from typing import Dict, Optional
import logging

import numpy as np
import pandas as pd

from .io import results_frame
from .metrics import nse, time_at_peak
from .states import FLUX_NAMES, STORAGE_NAMES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WaterBalance:
    """Catchment totals over a run, all volumes in m³."""
    tot_in: float           # rainfall onto all units
    upstream_in: float      # hydrographs added at the outlet
    Q_out: float            # routed discharge from the catchment itself
    ae_out: float           # actual evapotranspiration
    storage_start: float    # unit storages + water in transit in the channel
    storage_end: float

    @property
    def tot_out(self):
        return self.Q_out + self.ae_out

    @property
    def delta_storage(self):
        return self.storage_end - self.storage_start

    @property
    def error(self):
        return self.tot_in - self.tot_out - self.delta_storage

    @property
    def rel_error(self):
        scale = max(abs(self.tot_in), abs(self.tot_out), abs(self.delta_storage))
        return self.error / scale if scale > 0 else 0.0

    def to_dict(self):
        d = asdict(self)
        d.update(tot_out=self.tot_out, delta_storage=self.delta_storage,
                 error=self.error, rel_error=self.rel_error)
        return d


@dataclass
class RunResults:
    qsim: pd.Series                       # m/hr at the outlet
    Qsim: pd.DataFrame                    # m³/hr, one column per channel unit
    fluxes: Dict[str, pd.DataFrame]       # m/hr (ex: m/hr generated)
    storages: Dict[str, pd.DataFrame]     # m
    ae: pd.Series                         # m/hr, area weighted
    Qof: pd.Series                        # m³/hr of surface water into channels
    catch_area: float                     # m²
    balance: WaterBalance
    config: object
    qobs: Optional[pd.Series] = None
    nse: Optional[float] = None
    time_at_peak: object = None
    prop_ovf: float = np.nan
    run_time_s: float = 0.0

    @property
    def Q_m3s(self):
        return self.qsim * self.catch_area / 3600.0


def water_balance(rain, ae, area, dt, Qr_internal, upstream, storage_start, storage_end):
    """Totals for a run.

    Args:
        rain, ae: (n_steps, n_units) rates in m/hr.
        area: unit areas (m²).
        dt: step length (hr).
        Qr_internal: (n_steps, n_channels) routed discharge without upstream
            inputs (m³/hr).
        upstream: (n_steps,) upstream inflow added at the outlet (m³/hr).
        storage_start, storage_end: total stored water (m³).
    """
    return WaterBalance(
        tot_in=float(np.sum(rain * area[None, :]) * dt),
        upstream_in=float(np.sum(upstream) * dt),
        Q_out=float(np.sum(Qr_internal) * dt),
        ae_out=float(np.sum(ae * area[None, :]) * dt),
        storage_start=float(storage_start),
        storage_end=float(storage_end),
    )


def aggregate(units, config, fluxes, storages, Qsim, Qr, upstream, Qof,
              storage_start, storage_end, qobs=None, run_time_s=0.0):
    """Assemble :class:`RunResults` from the arrays logged by the loop.

    ``fluxes`` is (n_steps, n_units, 7) and ``storages`` (n_steps, n_units, 4)
    in ``FLUX_NAMES`` / ``STORAGE_NAMES`` order. Nothing passed in is modified.
    """
    index = config.index
    area = units.area
    catch_area = units.catchment_area

    flux_frames = {name: results_frame(fluxes[:, :, k], index, units.ids)
                   for k, name in enumerate(FLUX_NAMES)}
    storage_frames = {name: results_frame(storages[:, :, k], index, units.ids)
                      for k, name in enumerate(STORAGE_NAMES)}

    chan_ids = [units.ids[i] for i in config.channel]
    Qsim_df = results_frame(Qsim, index, chan_ids)
    qsim = pd.Series(Qsim[:, config.outlet_column] / catch_area, index=index, name="qsim")
    ae = pd.Series(fluxes[:, :, FLUX_NAMES.index("ae")] @ area / catch_area, index=index, name="ae")
    Qof_s = pd.Series(np.asarray(Qof, dtype=float), index=index, name="Qof")

    balance = water_balance(
        fluxes[:, :, FLUX_NAMES.index("rain")], fluxes[:, :, FLUX_NAMES.index("ae")],
        area, config.dt, Qr, upstream, storage_start, storage_end,
    )

    total_q = float(np.sum(Qr))
    prop_ovf = float(np.sum(Qof)) / total_q if total_q > 0 else np.nan

    score = None
    qobs_s = None
    if qobs is not None:
        qobs_s = pd.Series(np.asarray(qobs, dtype=float).reshape(len(index), -1)[:, 0],
                           index=index, name="qobs")
        score = nse(qobs_s.values, qsim.values)

    return RunResults(
        qsim=qsim, Qsim=Qsim_df, fluxes=flux_frames, storages=storage_frames,
        ae=ae, Qof=Qof_s, catch_area=catch_area, balance=balance, config=config,
        qobs=qobs_s, nse=score, time_at_peak=time_at_peak(qsim),
        prop_ovf=prop_ovf, run_time_s=run_time_s,
    )


def report(results, log=None):
    """Log the run statistics."""
    log = log or logger
    b = results.balance
    log.info("Time at peak is %s", results.time_at_peak)
    if results.nse is not None:
        log.info("NSE is %.3f", results.nse)
    log.info("Total overland flow contribution is %.1f mm",
             results.Qof.sum() * results.config.dt / results.catch_area * 1000)
    log.info("Total discharge was %.1f mm", b.Q_out / results.catch_area * 1000)
    log.info("Water balance error %.3g m3 (%.2e relative)", b.error, b.rel_error)
    log.info("Run took %.1f seconds", results.run_time_s)
    if abs(b.rel_error) > 1e-3:
        log.warning("Water balance does not close: relative error %.2e", b.rel_error)


def print_balance(results):
    """Printed water balance summary in mm over the catchment."""
    b = results.balance
    mm = 1000.0 / results.catch_area
    print("\n=== WATER BALANCE (run) ===")
    print(f"Σrain  = {b.tot_in * mm:12.2f} mm")
    print(f"ΣQsim  = {b.Q_out * mm:12.2f} mm")
    print(f"ΣAE    = {b.ae_out * mm:12.2f} mm")
    if b.upstream_in:
        print(f"ΣQup   = {b.upstream_in * mm:12.2f} mm (not in the balance)")
    print(f"ΔS     = {b.delta_storage * mm:12.2f} mm "
          f"(Sini={b.storage_start * mm:.2f} → Sfin={b.storage_end * mm:.2f})")
    print(f"Resid. = {b.error * mm:12.4f} mm  (ideal ≈ 0)")
