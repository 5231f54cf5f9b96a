"""Scalar and field observables read from a `LatticeGrid`.

Energies are totals over the box (energy density × as^D). With
tr(t^a t^b) = norm δ^ab the plaquette energy per plane is

    ½ B² ≈ (N − Re tr C_ij) / (norm · (g as²)²)
"""

from __future__ import annotations

import torch

from colorpic.kernels.leapfrog import SolverKind, plaquette
from colorpic.lattice.grid import LatticeGrid


def electric_energy(grid: LatticeGrid) -> float:
    volume = grid.spacing**grid.num_dimensions
    return float(0.5 * (grid.E * grid.E).sum().item() * volume)


def magnetic_energy(
    grid: LatticeGrid,
    *,
    coupling: float = 1.0,
    kind: SolverKind = SolverKind.YANG_MILLS,
) -> float:
    """Magnetic energy from the stored B (Maxwell) or from plaquettes (Yang-Mills)."""
    volume = grid.spacing**grid.num_dimensions
    if SolverKind(kind) is SolverKind.MAXWELL:
        return float(0.5 * (grid.B * grid.B).sum().item() * volume)

    alg = grid.algebra
    scale = alg.norm * (float(coupling) * grid.spacing**2) ** 2
    total = 0.0
    for i, j in grid.planes:
        tr = torch.diagonal(plaquette(grid, i, j), dim1=-2, dim2=-1).sum(dim=-1).real
        total += float((alg.num_colors - tr).sum().item())
    return total / scale * volume


def gauss_violation(grid: LatticeGrid) -> float:
    """Squared norm of D·E − ρ summed over the lattice."""
    diff = grid.gauss_constraint() - grid.rho
    return float((diff * diff).sum().item())


def magnetic_field(grid: LatticeGrid, *, coupling: float = 1.0) -> torch.Tensor:
    """Color-magnetic field B_i(x) from plaquettes, (cells, 3, C).

    Only defined on three-dimensional lattices.
    """
    if grid.num_dimensions != 3:
        raise ValueError(f"magnetic_field requires a 3D lattice, got {grid.num_dimensions} dimensions")
    alg = grid.algebra
    scale = float(coupling) * grid.spacing**2
    # B_x ~ F_yz, B_y ~ F_zx, B_z ~ F_xy
    planes = ((1, 2), (2, 0), (0, 1))
    return torch.stack([alg.project(plaquette(grid, i, j)) / scale for i, j in planes], dim=1)
