"""Loading of prepared inputs (forcing series, unit tables, weights)."""
import pandas as pd
import numpy as np


def load_csv(path, date_col="date", tz=None, scale=1.0):
    """Time-indexed series (rain, pe, qobs) from CSV.

    ``scale`` converts the stored units, e.g. ``1e-3`` for mm/hr -> m/hr.
    """
    df = pd.read_csv(path, parse_dates=[date_col])
    df = df.set_index(date_col).sort_index()
    if tz:
        df.index = df.index.tz_localize(tz, nonexistent="shift_forward", ambiguous="NaT").tz_convert(tz)
    if scale != 1.0:
        df = df * scale
    return df


def subset_period(df, start=None, end=None):
    if start is not None:
        df = df[df.index >= pd.to_datetime(start)]
    if end is not None:
        df = df[df.index <= pd.to_datetime(end)]
    return df


def load_units_csv(path, id_col="id"):
    """Unit (HRU) table; columns named after ``UnitParameters`` fields."""
    df = pd.read_csv(path)
    if id_col in df.columns:
        df[id_col] = df[id_col].astype(str)
    if "is_channel" in df.columns:
        df["is_channel"] = df["is_channel"].astype(str).str.strip().str.lower().isin(
            ["1", "true", "yes", "t"]
        )
    return df


def load_weights_csv(path, header=True):
    """Square weighting matrix. With ``header`` the first row and column
    carry unit labels and are dropped."""
    if header:
        df = pd.read_csv(path, index_col=0)
    else:
        df = pd.read_csv(path, header=None)
    return df.to_numpy(dtype=float)


def load_routing_csv(path):
    """Routing table as a (distance, fraction) array."""
    df = pd.read_csv(path)
    return df.iloc[:, :2].to_numpy(dtype=float)


def results_frame(values, index, columns):
    return pd.DataFrame(np.asarray(values, dtype=float), index=index, columns=columns)
