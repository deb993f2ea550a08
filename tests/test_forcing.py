import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Ensure local package is importable
sys.path.append(str(Path(__file__).resolve().parents[1]))

from dynamic_topmodel.exceptions import ConfigurationError
from dynamic_topmodel.forcing import distribute_forcing


def test_distribute_forcing_uses_gauge_and_factor():
    rain = pd.DataFrame({"g0": [1.0, 2.0, 3.0], "g1": [10.0, 20.0, 30.0]})

    out = distribute_forcing(rain, gauge_id=[0, 1, 1], factor=[1.0, 1.0, 0.5])

    assert out.shape == (3, 3)
    assert np.allclose(out[:, 0], [1.0, 2.0, 3.0])
    assert np.allclose(out[:, 1], [10.0, 20.0, 30.0])
    assert np.allclose(out[:, 2], [5.0, 10.0, 15.0])


def test_gauge_index_clamped_to_last_column(caplog):
    rain = np.array([[1.0, 2.0], [3.0, 4.0]])
    with caplog.at_level("WARNING"):
        out = distribute_forcing(rain, gauge_id=[7], factor=[1.0], name="rain")
    assert np.allclose(out[:, 0], [2.0, 4.0])
    assert "gauge ids [7]" in caplog.text


def test_single_series_is_one_gauge():
    out = distribute_forcing(np.array([0.1, 0.2]), gauge_id=[0, 0], factor=[1.0, 2.0])
    assert np.allclose(out, [[0.1, 0.2], [0.2, 0.4]])


def test_missing_and_negative_values_set_to_zero():
    out = distribute_forcing(np.array([0.1, np.nan, -1.0]), gauge_id=[0], factor=[1.0])
    assert np.allclose(out[:, 0], [0.1, 0.0, 0.0])


def test_empty_forcing_rejected():
    with pytest.raises(ConfigurationError):
        distribute_forcing(np.zeros((0, 1)), gauge_id=[0], factor=[1.0])
    with pytest.raises(ConfigurationError):
        distribute_forcing(pd.DataFrame(index=range(3)), gauge_id=[0], factor=[1.0])
