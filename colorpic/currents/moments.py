"""Charge moments of a transverse color-charge density.

Optional, explicitly invoked utilities: initial conditions are expected to be
colorless already, so `ParticleLCCurrent` only calls the removal routines
when asked to. All functions take a flattened density (cells_⊥, C) on a
periodic transverse lattice.

Center-of-charge utilities divide by the total (absolute or invariant)
charge and return NaN for an all-zero density; callers must guard.
"""

from __future__ import annotations

from typing import Sequence

import torch

from colorpic.kernels.pic import cic_stencil_periodic, scatter_cic


def site_positions(num_cells: Sequence[int], spacing: float, *, device=None, dtype=torch.float64) -> torch.Tensor:
    """Physical positions (cells, d) of all lattice sites in row-major order."""
    axes = [torch.arange(int(n), device=device, dtype=dtype) * float(spacing) for n in num_cells]
    grids = torch.meshgrid(*axes, indexing="ij")
    return torch.stack([g.reshape(-1) for g in grids], dim=-1)


def total_charge(density: torch.Tensor) -> torch.Tensor:
    return density.sum(dim=0)


def remove_monopole_moment(density: torch.Tensor) -> torch.Tensor:
    """Subtract the mean charge from every site (returns a new tensor)."""
    return density - total_charge(density) / density.shape[0]


def center_of_abs_charge(
    density: torch.Tensor,
    num_cells: Sequence[int],
    spacing: float,
    component: int,
) -> torch.Tensor:
    pos = site_positions(num_cells, spacing, device=density.device, dtype=density.dtype)
    q = density[:, component].abs()
    return (q[:, None] * pos).sum(dim=0) / q.sum()


def average_distance(
    density: torch.Tensor,
    num_cells: Sequence[int],
    spacing: float,
    component: int,
) -> torch.Tensor:
    """Charge-weighted mean distance to the center of absolute charge."""
    pos = site_positions(num_cells, spacing, device=density.device, dtype=density.dtype)
    center = center_of_abs_charge(density, num_cells, spacing, component)
    q = density[:, component].abs()
    dist = torch.linalg.vector_norm(pos - center, dim=-1)
    return (q * dist).sum() / q.sum()


def center_of_invariant_charge(
    density: torch.Tensor,
    num_cells: Sequence[int],
    spacing: float,
) -> torch.Tensor:
    """Center weighted by the invariant charge (Σ_a Q_a²)^½."""
    pos = site_positions(num_cells, spacing, device=density.device, dtype=density.dtype)
    q = torch.sqrt((density * density).sum(dim=-1))
    return (q[:, None] * pos).sum(dim=0) / q.sum()


def remove_dipole_moment(
    density: torch.Tensor,
    num_cells: Sequence[int],
    spacing: float,
) -> torch.Tensor:
    """Cancel the dipole moment of each component with a compensating CIC dipole.

    For every component a pair of opposite charges is placed symmetrically
    around the center of absolute charge, separated by the average distance.
    Returns a new tensor.
    """
    out = density.clone()
    pos = site_positions(num_cells, spacing, device=density.device, dtype=density.dtype)
    C = density.shape[-1]
    for c in range(C):
        center = center_of_abs_charge(density, num_cells, spacing, c)
        avg = average_distance(density, num_cells, spacing, c)
        q = density[:, c]
        rel = pos - center
        dist = torch.linalg.vector_norm(rel, dim=-1)

        dipole_charge = (q * dist / avg).sum()
        dipole_vector = (q[:, None] * rel).sum(dim=0) / (dipole_charge * avg)

        offset = dipole_vector * avg / 2.0
        positions = torch.stack([center + offset, center - offset], dim=0)
        charges = torch.zeros(2, C, device=density.device, dtype=density.dtype)
        charges[0, c] = -dipole_charge
        charges[1, c] = dipole_charge

        st = cic_stencil_periodic(positions, grid_dims=tuple(num_cells), dx=spacing)
        scatter_cic(st, charges, out)
    return out
