"""Distribution of gauged rainfall and PE onto response units."""
import logging

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def as_matrix(series, name="series"):
    """Return a forcing series (DataFrame, Series or array) as a 2-D float array."""
    if isinstance(series, (pd.DataFrame, pd.Series)):
        values = series.to_numpy(dtype=float)
    else:
        values = np.asarray(series, dtype=float)
    if values.ndim == 1:
        values = values[:, None]
    if values.ndim != 2:
        raise ConfigurationError(f"{name} must be one or two dimensional, got {values.ndim} dimensions.")
    if values.shape[0] == 0:
        raise ConfigurationError(f"{name} has no time steps.")
    if values.shape[1] == 0:
        raise ConfigurationError(f"{name} has no gauge columns.")
    return values


def clamp_gauges(gauge_id, n_cols, name="series"):
    gauge_id = np.asarray(gauge_id, dtype=int)
    bad = (gauge_id < 0) | (gauge_id >= n_cols)
    if np.any(bad):
        logger.warning(
            "%s: gauge ids %s not available (%d column(s)); using the nearest column.",
            name, sorted(set(gauge_id[bad].tolist())), n_cols,
        )
    return np.clip(gauge_id, 0, n_cols - 1)


def distribute_forcing(series, gauge_id, factor, name="series"):
    """Per-unit forcing: ``factor[i] * series[:, gauge_id[i]]``.

    Returns a (n_steps, n_units) array. Missing or negative rates are
    replaced by zero.
    """
    values = as_matrix(series, name)
    invalid = ~np.isfinite(values) | (values < 0)
    n_invalid = int(invalid.sum())
    if n_invalid > 0:
        logger.warning("%s: %d missing or negative values replaced by 0.", name, n_invalid)
        values = np.where(invalid, 0.0, values)

    cols = clamp_gauges(gauge_id, values.shape[1], name)
    factor = np.asarray(factor, dtype=float)
    if factor.shape != cols.shape:
        raise ConfigurationError(
            f"{name}: {factor.size} correction factors for {cols.size} units."
        )
    return values[:, cols] * factor[None, :]
