from dataclasses import dataclass, fields
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError


@dataclass
class UnitParameters:
    area: float                  # m², plan area of the unit
    id: Optional[str] = None     # label used for output columns

    # Forcing
    gauge_id: int = 0            # 0-based column of the rain/PE series
    rain_fact: float = 1.0
    pe_fact: float = 1.0

    # Subsurface
    m: float = 0.01              # m, exponential decline of transmissivity
    ln_t0: float = 2.0           # ln(m/hr), specific lateral transmissivity
    srz_max: float = 0.1         # m, root zone capacity
    srz0: float = 0.5            # -, initial root zone storage / srz_max
    sd_max: float = 0.5          # m, max effective deficit of saturated zone
    td: float = 1.0              # hr/m, unsaturated zone time delay

    # Surface
    vof: float = 50.0            # m/hr, overland flow velocity
    vchan: float = 1000.0        # m/hr, channel flow velocity
    ex_max: float = np.inf       # m, surface excess storage capacity

    is_channel: bool = False


_INT_FIELDS = ("gauge_id",)
_BOOL_FIELDS = ("is_channel",)


class UnitTable:
    """Per-unit parameters laid out as one numpy vector per field.

    Built once per run and treated as read-only afterwards. Build it from a
    list of :class:`UnitParameters` or from a DataFrame whose columns are
    named after the fields of :class:`UnitParameters`.
    """

    def __init__(self, units: Sequence[UnitParameters]):
        units = list(units)
        if not units:
            raise ConfigurationError("The unit table is empty.")
        self.n_units = len(units)
        self.ids = [str(u.id) if u.id is not None else str(i) for i, u in enumerate(units)]
        if len(set(self.ids)) != self.n_units:
            raise ConfigurationError("Unit ids must be unique.")

        for f in fields(UnitParameters):
            if f.name == "id":
                continue
            values = [getattr(u, f.name) for u in units]
            if f.name in _INT_FIELDS:
                arr = np.asarray(values, dtype=int)
            elif f.name in _BOOL_FIELDS:
                arr = np.asarray(values, dtype=bool)
            else:
                arr = np.asarray(values, dtype=float)
            arr.setflags(write=False)
            setattr(self, f.name, arr)

        if not np.all(np.isfinite(self.area)) or np.any(self.area < 0):
            raise ConfigurationError("Unit areas must be finite and >= 0.")
        if self.catchment_area <= 0:
            raise ConfigurationError("Total catchment area must be > 0.")
        if np.any(self.m <= 0):
            bad = [self.ids[i] for i in np.flatnonzero(self.m <= 0)]
            raise ConfigurationError(f"Parameter m must be > 0 (units {bad}).")
        if np.any(self.srz_max <= 0):
            bad = [self.ids[i] for i in np.flatnonzero(self.srz_max <= 0)]
            raise ConfigurationError(f"Parameter srz_max must be > 0 (units {bad}).")
        if np.any(self.td <= 0):
            bad = [self.ids[i] for i in np.flatnonzero(self.td <= 0)]
            raise ConfigurationError(f"Parameter td must be > 0 (units {bad}).")

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "UnitTable":
        if "area" not in df.columns:
            raise ConfigurationError("Missing column area in the unit table.")
        known = {f.name for f in fields(UnitParameters)}
        cols = [c for c in df.columns if c in known]
        units = []
        for i, (label, row) in enumerate(df[cols].iterrows()):
            kw = {c: row[c] for c in cols if not pd.isna(row[c])}
            if "id" not in kw:
                kw["id"] = label if not isinstance(df.index, pd.RangeIndex) else i
            units.append(UnitParameters(**kw))
        return cls(units)

    @classmethod
    def coerce(cls, units) -> "UnitTable":
        if isinstance(units, UnitTable):
            return units
        if isinstance(units, pd.DataFrame):
            return cls.from_frame(units)
        return cls(units)

    @property
    def catchment_area(self) -> float:
        return float(np.sum(self.area))

    @property
    def channel_index(self) -> np.ndarray:
        return np.flatnonzero(self.is_channel)

    @property
    def q0(self) -> np.ndarray:
        """Specific baseflow at zero deficit (m/hr)."""
        return np.exp(self.ln_t0)

    def __len__(self):
        return self.n_units

    def __repr__(self):
        return f"UnitTable(n_units={self.n_units}, area={self.catchment_area:.1f} m2)"
