import sys
from pathlib import Path

import numpy as np

# Ensure local package is importable
sys.path.append(str(Path(__file__).resolve().parents[1]))

from dynamic_topmodel.parameters import UnitParameters, UnitTable
from dynamic_topmodel.surface import OverflowPolicy, distribute_surface_excess


def cascade(ex_max_middle=0.0, vof=1e9):
    # 0 -> 1 -> channel 2 on the surface; overflow from 0 goes straight to 2
    units = UnitTable([
        UnitParameters(area=100.0, vof=vof),
        UnitParameters(area=100.0, vof=vof, ex_max=ex_max_middle),
        UnitParameters(area=100.0, is_channel=True),
    ])
    Wsurf = np.array([[0.0, 1.0, 0.0], [0.0, 0.0, 1.0], [0.0, 0.0, 1.0]])
    Wover = np.array([[0.0, 0.0, 1.0], [0.0, 0.0, 1.0], [0.0, 0.0, 1.0]])
    return units, Wsurf, Wover


def test_receiver_at_capacity_diverts_along_overflow_matrix():
    units, Wsurf, Wover = cascade(ex_max_middle=0.0)
    ex = np.array([0.01, 0.0, 0.0])

    out = distribute_surface_excess(units, ex, Wsurf, Wover, dt=1.0, ntt=1, channel=[2],
                                    policy=OverflowPolicy(inclusive=True))

    assert np.allclose(out, [0.0, 0.0, 0.01])


def test_exclusive_policy_accepts_receiver_exactly_at_capacity():
    units, Wsurf, Wover = cascade(ex_max_middle=0.0)
    ex = np.array([0.01, 0.0, 0.0])

    out = distribute_surface_excess(units, ex, Wsurf, Wover, dt=1.0, ntt=1, channel=[2],
                                    policy=OverflowPolicy(inclusive=False))

    assert np.allclose(out, [0.0, 0.01, 0.0])


def test_overflow_policy_comparison():
    inclusive = OverflowPolicy(inclusive=True)
    exclusive = OverflowPolicy(inclusive=False)
    ex = np.array([0.0, 0.1, 0.2])
    cap = np.array([0.1, 0.1, 0.1])
    assert inclusive.is_full(ex, cap).tolist() == [False, True, True]
    assert exclusive.is_full(ex, cap).tolist() == [False, False, True]


def test_linear_release_rate():
    units, Wsurf, Wover = cascade(ex_max_middle=np.inf, vof=10.0)
    ex = np.array([0.01, 0.0, 0.0])

    out = distribute_surface_excess(units, ex, Wsurf, Wover, dt=1.0, ntt=1, channel=[2])

    # q = ex * v / area = 0.01 * 10 / 100 per hour
    moved = 0.01 * 10.0 / 100.0
    assert np.isclose(out[0], 0.01 - moved)
    assert np.isclose(out[1], moved)


def test_redistribution_never_creates_water():
    rng = np.random.default_rng(3)
    n = 6
    units = UnitTable(
        [UnitParameters(area=a, vof=v, ex_max=c) for a, v, c in
         zip(rng.uniform(50, 500, n - 1), rng.uniform(1, 100, n - 1), rng.uniform(0, 0.02, n - 1))]
        + [UnitParameters(area=200.0, is_channel=True)]
    )
    Wsurf = rng.random((n, n)) * 0.15
    Wover = rng.random((n, n)) * 0.1
    ex = np.r_[rng.uniform(0, 0.05, n - 1), 0.0]

    out = distribute_surface_excess(units, ex, Wsurf, Wover, dt=1.0, ntt=3, channel=[n - 1])

    assert np.all(out >= 0)
    assert np.isclose(np.sum(out * units.area), np.sum(ex * units.area))


def test_channel_excess_left_for_the_caller():
    units, Wsurf, Wover = cascade(ex_max_middle=np.inf)
    ex = np.array([0.0, 0.0, 0.02])
    out = distribute_surface_excess(units, ex, Wsurf, Wover, dt=1.0, ntt=2, channel=[2])
    assert np.allclose(out, ex)


def test_receiver_not_yet_full_may_overshoot_by_default():
    units, Wsurf, Wover = cascade(ex_max_middle=0.004)
    ex = np.array([0.01, 0.0, 0.0])

    out = distribute_surface_excess(units, ex, Wsurf, Wover, dt=1.0, ntt=1, channel=[2])

    assert np.allclose(out, [0.0, 0.01, 0.0])


def test_capped_intake_spills_along_overflow_matrix():
    units, Wsurf, Wover = cascade(ex_max_middle=0.004)
    ex = np.array([0.01, 0.0, 0.0])

    out = distribute_surface_excess(units, ex, Wsurf, Wover, dt=1.0, ntt=1, channel=[2],
                                    policy=OverflowPolicy(cap_intake=True))

    assert np.allclose(out, [0.0, 0.004, 0.006])
    assert np.isclose(np.sum(out * units.area), np.sum(ex * units.area))
