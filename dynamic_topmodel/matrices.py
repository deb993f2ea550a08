"""Weighting matrices between response units."""
import logging

import numpy as np

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def validate_weights(W, n_units, name="weights"):
    """Check a weighting matrix against the unit count and return a float copy.

    Rows summing to more than one would create water; they are rescaled to
    sum to one and a warning is logged.
    """
    W = np.array(W, dtype=float)
    if W.ndim != 2 or W.shape[0] != W.shape[1]:
        raise ConfigurationError(f"{name} must be a square matrix, got shape {W.shape}.")
    if W.shape[0] != n_units:
        raise ConfigurationError(
            f"{name} is {W.shape[0]}x{W.shape[1]} but the unit table has {n_units} units."
        )
    if not np.all(np.isfinite(W)):
        raise ConfigurationError(f"{name} contains non-finite entries.")
    if np.any(W < 0):
        rows = np.unique(np.nonzero(W < 0)[0]).tolist()
        raise ConfigurationError(f"{name} has negative entries in rows {rows}.")

    rowsum = W.sum(axis=1)
    over = rowsum > 1.0 + 1e-9
    if np.any(over):
        logger.warning(
            "%s: rows %s sum to more than 1 (max %.4f); rescaling them to 1.",
            name, np.flatnonzero(over).tolist(), rowsum.max(),
        )
        W[over] = W[over] / rowsum[over, None]
    return W


def export_fractions(W, area=None):
    """Fraction of each unit's outflow sent straight to the outlet.

    That is the part a row does not assign, plus, when ``area`` is given, the
    part assigned to units of zero area (they cannot hold the water).
    """
    W = np.asarray(W, dtype=float)
    export = np.clip(1.0 - W.sum(axis=1), 0.0, None)
    if area is not None:
        empty = np.asarray(area, dtype=float) <= 0
        export = export + W[:, empty].sum(axis=1)
    return export


def complementary_matrix(W, area):
    """Net inflow matrix ``A = diag(1/a) W^T diag(a) - I``.

    ``A @ q`` gives, for each unit, the specific inflow received from all
    units minus its own outflow ``q``. Units with zero area receive nothing;
    what is sent to them is exported (see :func:`export_fractions`).
    """
    W = np.asarray(W, dtype=float)
    a = np.asarray(area, dtype=float)
    if W.ndim != 2 or W.shape[0] != W.shape[1]:
        raise ConfigurationError(f"Weighting matrix must be square, got shape {W.shape}.")
    if a.ndim != 1 or a.shape[0] != W.shape[0]:
        raise ConfigurationError(
            f"Area vector has length {a.size} but the weighting matrix is {W.shape[0]}x{W.shape[1]}."
        )
    if np.any(W < 0):
        raise ConfigurationError("Weighting matrix has negative entries.")

    inv_a = np.zeros_like(a)
    np.divide(1.0, a, out=inv_a, where=a > 0)
    N = W.shape[0]
    return inv_a[:, None] * W.T * a[None, :] - np.eye(N)
