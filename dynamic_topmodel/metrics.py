import numpy as np
import pandas as pd


def nse(obs, sim):
    obs = np.asarray(obs, dtype=float)
    sim = np.asarray(sim, dtype=float)
    ok = np.isfinite(obs) & np.isfinite(sim)
    obs, sim = obs[ok], sim[ok]
    if obs.size == 0:
        return np.nan
    m = np.mean(obs)
    num = np.sum((obs - sim)**2)
    den = np.sum((obs - m)**2)
    return 1 - num/den if den > 0 else np.nan


def time_at_peak(q):
    """Index label (timestamp or step number) of the largest value of ``q``."""
    if isinstance(q, pd.DataFrame):
        q = q.iloc[:, 0]
    if isinstance(q, pd.Series):
        return q.idxmax() if q.notna().any() else None
    q = np.asarray(q, dtype=float)
    return int(np.nanargmax(q)) if np.isfinite(q).any() else None
