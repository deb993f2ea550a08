"""Per-step observers: progress text and a live hydrograph plot.

The simulation loop calls ``observer.update(snapshot)`` once per time step.
Observers only read the snapshot; their return value is ignored and an
exception raised by one is logged without stopping the run.
"""
from dataclasses import dataclass
import logging

import matplotlib.pyplot as plt
import numpy as np

logger = logging.getLogger(__name__)


def _frozen(a):
    a = np.array(a, dtype=float)
    a.setflags(write=False)
    return a


@dataclass(frozen=True)
class StepSnapshot:
    it: int                 # step index (0-based)
    n_steps: int
    time: object            # index label of the step
    q_outlet: float         # m/hr, specific discharge at the outlet
    rain: float             # m/hr, area-weighted rainfall
    ae: float               # m/hr, area-weighted actual evapotranspiration
    qsim: np.ndarray        # m/hr, outlet series up to and including this step
    fluxes: np.ndarray      # (n_units, 7) in FLUX_NAMES order
    storages: np.ndarray    # (n_units, 4) in STORAGE_NAMES order
    qobs: object = None     # observed series (m/hr) or None

    @classmethod
    def build(cls, it, n_steps, time, qsim, rain, ae, fluxes, storages, qobs=None):
        return cls(
            it=it, n_steps=n_steps, time=time,
            q_outlet=float(qsim[it]), rain=float(rain), ae=float(ae),
            qsim=_frozen(qsim[:it + 1]),
            fluxes=_frozen(fluxes), storages=_frozen(storages),
            qobs=qobs,
        )


class Observer:

    def update(self, snapshot):
        pass

    def close(self):
        pass


class NullDisplay(Observer):
    """Does nothing."""


class TextProgress(Observer):
    """Logs the outlet discharge every ``every`` steps (values in mm/hr)."""

    def __init__(self, every=24, log=None):
        self.every = max(int(every), 1)
        self.log = log or logger

    def update(self, snapshot):
        last = snapshot.it == snapshot.n_steps - 1
        if snapshot.it % self.every and not last:
            return
        self.log.info(
            "step %d/%d %s: q=%.4f mm/hr rain=%.4f mm/hr ae=%.4f mm/hr",
            snapshot.it + 1, snapshot.n_steps, snapshot.time,
            snapshot.q_outlet * 1000, snapshot.rain * 1000, snapshot.ae * 1000,
        )


class HydrographPlot(Observer):
    """Redraws simulated (and observed) discharge in mm/hr with matplotlib.

    The figure is created on the first update. With a non-interactive
    backend it is only drawn into memory, so it can be saved afterwards.
    """

    def __init__(self, every=10, max_q=None, ax=None, pause=None):
        self.every = max(int(every), 1)
        self.max_q = max_q
        self.ax = ax
        self.pause = pause
        self.line_sim = None

    def _setup(self, snapshot):
        if self.ax is None:
            _, self.ax = plt.subplots(figsize=(10, 4))
        ax = self.ax
        ax.set_xlim(0, snapshot.n_steps)
        ax.set_xlabel("Time step")
        ax.set_ylabel("Specific discharge (mm/hr)")
        ax.grid(True)
        if snapshot.qobs is not None:
            obs = np.asarray(snapshot.qobs, dtype=float) * 1000
            ax.plot(np.arange(len(obs)), obs, "k:", label="Observed")
        (self.line_sim,) = ax.plot([], [], "C0-", label="Simulated")
        ax.legend(loc="upper right")

    def update(self, snapshot):
        last = snapshot.it == snapshot.n_steps - 1
        if snapshot.it % self.every and not last:
            return
        if self.line_sim is None:
            self._setup(snapshot)
        q = snapshot.qsim * 1000
        self.line_sim.set_data(np.arange(len(q)), q)
        top = self.max_q if self.max_q is not None else max(float(np.nanmax(q)) * 1.1, 1e-6)
        self.ax.set_ylim(0, top)
        self.ax.set_title(f"{snapshot.time}  q = {snapshot.q_outlet * 1000:.3f} mm/hr")
        self.ax.figure.canvas.draw_idle()
        if self.pause:
            plt.pause(self.pause)

    def close(self):
        if self.ax is not None:
            plt.close(self.ax.figure)


class CallbackObserver(Observer):
    """Adapts a plain ``f(snapshot)`` callable."""

    def __init__(self, func):
        self.func = func

    def update(self, snapshot):
        self.func(snapshot)


def as_observer(obj):
    if obj is None:
        return NullDisplay()
    if isinstance(obj, Observer) or hasattr(obj, "update"):
        return obj
    if callable(obj):
        return CallbackObserver(obj)
    raise TypeError(f"Cannot use {obj!r} as a display observer.")
