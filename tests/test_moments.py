"""Tests for the transverse charge-moment utilities."""

from __future__ import annotations

import math

import pytest
import torch

from colorpic.currents import moments


def _density_1d(values: dict[int, float], n: int = 8, components: int = 1) -> torch.Tensor:
    rho = torch.zeros(n, components, dtype=torch.float64)
    for site, q in values.items():
        rho[site, 0] = q
    return rho


def test_site_positions_row_major():
    pos = moments.site_positions((2, 3), 0.5)
    assert pos.tolist() == [[0.0, 0.0], [0.0, 0.5], [0.0, 1.0], [0.5, 0.0], [0.5, 0.5], [0.5, 1.0]]


def test_remove_monopole_returns_new_tensor():
    rho = _density_1d({1: 2.0, 3: 1.0})
    out = moments.remove_monopole_moment(rho)
    assert float(out.sum()) == pytest.approx(0.0, abs=1e-15)
    assert float(rho.sum()) == 3.0


def test_center_and_average_distance():
    rho = _density_1d({1: 1.0, 3: -1.0})
    center = moments.center_of_abs_charge(rho, (8,), 1.0, 0)
    assert center.tolist() == [2.0]
    assert float(moments.average_distance(rho, (8,), 1.0, 0)) == 1.0


def test_center_of_invariant_charge():
    rho = torch.zeros(8, 2, dtype=torch.float64)
    rho[1] = torch.tensor([3.0, 4.0], dtype=torch.float64)  # |Q| = 5
    rho[6] = torch.tensor([0.0, 5.0], dtype=torch.float64)  # |Q| = 5
    center = moments.center_of_invariant_charge(rho, (8,), 2.0)
    assert center.tolist() == pytest.approx([7.0])


def test_zero_density_gives_nan():
    rho = torch.zeros(8, 1, dtype=torch.float64)
    assert math.isnan(float(moments.center_of_abs_charge(rho, (8,), 1.0, 0)[0]))
    assert math.isnan(float(moments.average_distance(rho, (8,), 1.0, 0)))


def test_remove_dipole_moment_cancels_first_moment():
    rho = _density_1d({1: 1.0, 5: 1.0, 4: -1.0}, n=12)
    center = moments.center_of_abs_charge(rho, (12,), 1.0, 0)
    x = moments.site_positions((12,), 1.0)[:, 0]

    dipole_before = float((rho[:, 0] * (x - center[0])).sum())
    assert dipole_before == pytest.approx(-4.0 / 3.0)

    out = moments.remove_dipole_moment(rho, (12,), 1.0)
    assert float(out.sum()) == pytest.approx(float(rho.sum()))
    assert float((out[:, 0] * (x - center[0])).sum()) == pytest.approx(0.0, abs=1e-12)
    # input is left untouched
    assert float(rho[4, 0]) == -1.0
