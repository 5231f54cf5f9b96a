"""Leapfrog field solvers on a periodic lattice (torch implementation).

Two strategies share one `FieldSolver.step(grid)` entry point:

- `SolverKind.MAXWELL`: the simple Abelian leapfrog. E lives at integer and B
  at half-integer time steps; curls use second-order central differences.
  Acts component-wise, so it also serves as the linearized (free) limit of a
  non-Abelian field.
- `SolverKind.YANG_MILLS`: temporal-gauge lattice Yang-Mills. E is updated
  from plaquettes, then links are advanced by exp(-i g as dt E).

Boundary policy: periodic along every axis via rolls, so no cell is skipped.

------------------------------------------------------------------------------
COMMENT CONVENTION (physics choices)
------------------------------------------------------------------------------
  # [CHOICE] <name>
  # [FORMULA] <math / equation / mapping>
  # [REASON] <brief why this form/value>
  # [NOTES] <brief caveats, assumptions, invariants>
------------------------------------------------------------------------------
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import torch

from colorpic.lattice.grid import LatticeGrid


class SolverKind(str, Enum):
    MAXWELL = "maxwell"
    YANG_MILLS = "yang_mills"


def _roll(t: torch.Tensor, shift: int, dim: int) -> torch.Tensor:
    return torch.roll(t, shifts=int(shift), dims=int(dim))


def central_diff_periodic(f: torch.Tensor, dx: float, dim: int) -> torch.Tensor:
    """Second-order central difference with periodic BC."""
    return (_roll(f, -1, dim) - _roll(f, +1, dim)) * (0.5 / float(dx))


def maxwell_step(grid: LatticeGrid, dt: float) -> None:
    """Advance E(t) → E(t+dt) and B(t+dt/2) → B(t+3dt/2) in place.

    # [CHOICE] plane representation of B
    # [FORMULA] dE_i/dt = Σ_j ∂_j B_ij − J_i ;  dB_ij/dt = −(∂_i E_j − ∂_j E_i)
    # [NOTES] in 2D the single plane (0,1) is B_z; in 3D planes are (xy, xz, yz)
    """
    dx = grid.spacing
    E = grid.field(grid.E)
    B = grid.field(grid.B)
    J = grid.field(grid.J)

    curl_b = torch.zeros_like(E)
    for p, (i, j) in enumerate(grid.planes):
        b = B[..., p, :]
        curl_b[..., i, :] += central_diff_periodic(b, dx, j)
        curl_b[..., j, :] -= central_diff_periodic(b, dx, i)
    E += float(dt) * (curl_b - J)

    for p, (i, j) in enumerate(grid.planes):
        curl_e = central_diff_periodic(E[..., j, :], dx, i) - central_diff_periodic(E[..., i, :], dx, j)
        B[..., p, :] -= float(dt) * curl_e

    # Links are static in the Abelian field-strength formulation.
    grid.U_next.copy_(grid.U)
    grid.swap_links()


def plaquette(grid: LatticeGrid, i: int, j: int) -> torch.Tensor:
    """C_ij(x) = U_i(x) U_j(x+i) U_i(x+j)^† U_j(x)^† for every site, (cells, N, N)."""
    alg = grid.algebra
    U = grid.field(grid.U)
    ui = U[..., i, :, :]
    uj = U[..., j, :, :]
    c = ui @ _roll(uj, -1, i) @ alg.adj(_roll(ui, -1, j)) @ alg.adj(uj)
    return c.reshape(grid.total_cells, alg.num_colors, alg.num_colors)


def plaquette_force(grid: LatticeGrid) -> torch.Tensor:
    """Σ_{j≠i} [P(C_ij(x)) + P(C_i,−j(x))] for every site and direction, (cells, D, C).

    C_ij(x)   = U_i(x) U_j(x+i) U_i(x+j)^† U_j(x)^†
    C_i,−j(x) = U_i(x) U_j(x+i−j)^† U_i(x−j)^† U_j(x−j)
    """
    alg = grid.algebra
    d = grid.num_dimensions
    U = grid.field(grid.U)
    force = torch.zeros(*grid.num_cells, d, alg.num_components, device=grid.device, dtype=grid.dtype)
    for i in range(d):
        ui = U[..., i, :, :]
        for j in range(d):
            if j == i:
                continue
            uj = U[..., j, :, :]
            uj_xi = _roll(uj, -1, i)
            ui_xj = _roll(ui, -1, j)
            c_pos = ui @ uj_xi @ alg.adj(ui_xj) @ alg.adj(uj)

            ui_mj = _roll(ui, +1, j)
            uj_mj = _roll(uj, +1, j)
            uj_xi_mj = _roll(uj_xi, +1, j)
            c_neg = ui @ alg.adj(uj_xi_mj) @ alg.adj(ui_mj) @ uj_mj

            force[..., i, :] += alg.project(c_pos) + alg.project(c_neg)
    return force.reshape(grid.total_cells, d, alg.num_components)


def yang_mills_step(grid: LatticeGrid, dt: float, coupling: float) -> None:
    """Temporal-gauge leapfrog: E(t) → E(t+dt), U(t+dt/2) → U(t+3dt/2).

    # [CHOICE] lattice equations of motion
    # [FORMULA] E_i += dt · ( Σ_j [P(C_ij) + P(C_i,−j)] / (g as³) − J_i )
    #           U_i ← exp(−i g as dt E_i) U_i
    # [REASON] Abelian limit reproduces dE/dt = curl B − J and E = −∂_t A
    # [NOTES] preserves the covariant Gauss law D·E = ρ when ρ, J obey continuity
    """
    g = float(coupling)
    a = grid.spacing
    force = plaquette_force(grid)
    grid.E += float(dt) * (force / (g * a ** 3) - grid.J)

    alg = grid.algebra
    step = alg.get_link(grid.E * (-g * a * float(dt)))
    grid.U_next.copy_(step @ grid.U)
    grid.swap_links()


@dataclass(frozen=True)
class FieldSolver:
    """Closed set of leapfrog strategies behind a single `step`.

    After `step`, `grid.U` holds the advanced links and `grid.U_next` the
    previous ones (read by the current generators for old-position charges).
    """

    kind: SolverKind = SolverKind.YANG_MILLS
    dt: float = 0.5
    coupling: float = 1.0

    def step(self, grid: LatticeGrid) -> None:
        if grid.num_dimensions < 2:
            raise ValueError(f"field solver requires at least 2 dimensions, got {grid.num_dimensions}")
        match SolverKind(self.kind):
            case SolverKind.MAXWELL:
                maxwell_step(grid, self.dt)
            case SolverKind.YANG_MILLS:
                yang_mills_step(grid, self.dt, self.coupling)
