from dataclasses import dataclass, fields

import numpy as np

STORAGE_NAMES = ("srz", "suz", "sd", "ex")
FLUX_NAMES = ("qbf", "qin", "uz", "rain", "ae", "ex", "qof")


@dataclass
class SimulationState:
    srz: np.ndarray  # m - root zone storage
    suz: np.ndarray  # m - unsaturated zone storage
    sd: np.ndarray   # m - saturated zone deficit
    ex: np.ndarray   # m - surface excess storage

    @classmethod
    def zeros(cls, n):
        return cls(*(np.zeros(n) for _ in range(4)))

    def copy(self):
        return SimulationState(*(getattr(self, f.name).copy() for f in fields(self)))

    def as_matrix(self):
        """Storages stacked as an (n_units, 4) array in STORAGE_NAMES order."""
        return np.column_stack([getattr(self, s) for s in STORAGE_NAMES])

    def total_storage(self, area):
        """Water held by the units (m³); deficit counts as missing water."""
        return float(np.sum((self.srz + self.suz - self.sd + self.ex) * area))


@dataclass
class StepFluxes:
    qbf: np.ndarray   # m/hr - baseflow out of each unit
    qin: np.ndarray   # m/hr - lateral input from upslope
    uz: np.ndarray    # m/hr - drainage unsaturated -> saturated zone
    rain: np.ndarray  # m/hr
    ae: np.ndarray    # m/hr - actual evapotranspiration
    ex: np.ndarray    # m/hr - saturation excess generated in the step
    qof: np.ndarray   # m/hr - overland flow

    def as_matrix(self):
        """Fluxes stacked as an (n_units, 7) array in FLUX_NAMES order."""
        return np.column_stack([getattr(self, f) for f in FLUX_NAMES])
