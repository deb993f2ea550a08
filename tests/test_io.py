import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Ensure local package is importable
sys.path.append(str(Path(__file__).resolve().parents[1]))

from dynamic_topmodel.exceptions import ConfigurationError
from dynamic_topmodel.io import load_csv, load_routing_csv, load_units_csv, load_weights_csv
from dynamic_topmodel.model import run_dtm
from dynamic_topmodel.parameters import UnitTable


def write_inputs(tmp_path):
    (tmp_path / "units.csv").write_text(
        "id,area,m,ln_t0,srz_max,td,is_channel\n"
        "hill,4000,0.01,3.0,0.03,1.0,false\n"
        "foot,800,0.015,2.0,0.03,0.5,FALSE\n"
        "river,200,,,,,TRUE\n"
    )
    (tmp_path / "weights.csv").write_text(
        "unit,hill,foot,river\n"
        "hill,0,0.7,0.3\n"
        "foot,0,0,1\n"
        "river,0,0,1\n"
    )
    (tmp_path / "routing.csv").write_text("distance,fraction\n0,0.6\n1200,0.4\n")
    dates = pd.date_range("2021-03-01", periods=12, freq="h")
    rain_mm = [0, 2, 5, 3, 1, 0, 0, 0, 0, 0, 0, 0]
    pd.DataFrame({"date": dates, "rain": rain_mm}).to_csv(tmp_path / "rain.csv", index=False)
    pd.DataFrame({"date": dates, "pe": np.full(12, 0.1)}).to_csv(tmp_path / "pe.csv", index=False)


def test_units_csv_defaults_and_channel_flag(tmp_path):
    write_inputs(tmp_path)
    units = UnitTable.from_frame(load_units_csv(tmp_path / "units.csv"))

    assert units.ids == ["hill", "foot", "river"]
    assert units.is_channel.tolist() == [False, False, True]
    assert units.m[2] == 0.01            # blank cell falls back to the default
    assert units.vof[0] == 50.0
    assert units.catchment_area == 5000.0


def test_missing_area_column_rejected():
    with pytest.raises(ConfigurationError, match="area"):
        UnitTable.from_frame(pd.DataFrame({"m": [0.01]}))


def test_weights_and_routing_csv(tmp_path):
    write_inputs(tmp_path)
    W = load_weights_csv(tmp_path / "weights.csv")
    table = load_routing_csv(tmp_path / "routing.csv")
    assert W.shape == (3, 3)
    assert np.allclose(W.sum(axis=1), 1.0)
    assert np.allclose(table, [[0.0, 0.6], [1200.0, 0.4]])


def test_run_from_csv_inputs(tmp_path):
    write_inputs(tmp_path)
    units = load_units_csv(tmp_path / "units.csv")
    W = load_weights_csv(tmp_path / "weights.csv")
    routing = load_routing_csv(tmp_path / "routing.csv")
    rain = load_csv(tmp_path / "rain.csv", scale=1e-3)
    pe = load_csv(tmp_path / "pe.csv", scale=1e-3)

    res = run_dtm(units, W, rain, routing, pe=pe, qt0=1e-4, stats_show=False)

    assert res.config.dt == 1.0
    assert list(res.Qsim.columns) == ["river"]
    assert res.qsim.index.equals(rain.index)
    assert abs(res.balance.error) <= 1e-6 * res.balance.tot_in
