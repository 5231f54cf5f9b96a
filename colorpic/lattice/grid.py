"""Periodic lattice holding gauge links, electric fields and color sources.

Every per-cell quantity is stored flattened with row-major cell order (last
axis fastest), matching `colorpic.kernels.pic.flatten_index`:

    E       (cells, D, C)     electric field, algebra components
    U       (cells, D, N, N)  gauge links U_i(x) from x to x+i
    U_next  (cells, D, N, N)  link buffer written by the field solver; after
                              `swap_links` it holds the previous links
    rho     (cells, C)        charge density accumulator
    J       (cells, D, C)     current density accumulator, J_i(x) on link x→x+i
    B       (cells, P, C)     Abelian magnetic field per plane (i<j), only used
                              by the Maxwell solver

Index arithmetic wraps periodically along every axis.
"""

from __future__ import annotations

import math
from itertools import combinations
from typing import Sequence

import torch
from tensordict import TensorDict

from colorpic.kernels.color import ColorAlgebra
from colorpic.kernels.pic import flatten_index


def reduce_grid_pos(values: Sequence, direction: int) -> tuple:
    """Drop the entry along `direction` (full lattice → transverse lattice)."""
    return tuple(v for k, v in enumerate(values) if k != int(direction))


def covariant_divergence(
    algebra: ColorAlgebra,
    E: torch.Tensor,
    U: torch.Tensor,
    num_cells: Sequence[int],
    spacing: float,
) -> torch.Tensor:
    """Lattice Gauss-law charge Σ_i [E_i(x) − U_i(x−i)^† E_i(x−i) U_i(x−i)] / as.

    E: (cells, D, C), U: (cells, D, N, N); returns (cells, C).
    """
    dims = tuple(int(n) for n in num_cells)
    d = len(dims)
    Ef = E.view(*dims, d, E.shape[-1])
    Uf = U.view(*dims, d, U.shape[-2], U.shape[-1])
    div = torch.zeros(*dims, E.shape[-1], device=E.device, dtype=E.dtype)
    for i in range(d):
        e_here = Ef[..., i, :]
        e_back = torch.roll(e_here, shifts=1, dims=i)
        u_back = torch.roll(Uf[..., i, :, :], shifts=1, dims=i)
        div = div + e_here - algebra.act(e_back, algebra.adj(u_back))
    return (div / float(spacing)).reshape(-1, E.shape[-1])


class LatticeGrid:
    """Flattened N-dimensional periodic lattice."""

    def __init__(self, num_cells: Sequence[int], spacing: float, algebra: ColorAlgebra) -> None:
        dims = tuple(int(n) for n in num_cells)
        if len(dims) < 1 or any(n <= 0 for n in dims):
            raise ValueError(f"num_cells must be a non-empty sequence of positive ints, got {tuple(num_cells)}")
        if not (float(spacing) > 0.0):
            raise ValueError(f"spacing must be > 0, got {spacing}")

        self.num_cells = dims
        self.num_dimensions = len(dims)
        self.spacing = float(spacing)
        self.algebra = algebra
        self.device = algebra.device
        self.dtype = algebra.dtype
        self.total_cells = int(math.prod(dims))
        self.planes: list[tuple[int, int]] = list(combinations(range(self.num_dimensions), 2))

        n, d = self.total_cells, self.num_dimensions
        self.E = algebra.algebra_zero(n, d)
        self.U = algebra.group_identity(n, d)
        self.U_next = algebra.group_identity(n, d)
        self.rho = algebra.algebra_zero(n)
        self.J = algebra.algebra_zero(n, d)
        self.B = algebra.algebra_zero(n, len(self.planes))

    def __repr__(self) -> str:
        return f"LatticeGrid(num_cells={self.num_cells}, spacing={self.spacing}, algebra={self.algebra!r})"

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def box_size(self, axis: int) -> float:
        return self.num_cells[axis] * self.spacing

    def cell_index(self, pos: torch.Tensor | Sequence[int]) -> torch.Tensor:
        """Flattened index of integer lattice coordinates (..., D), wrapped periodically."""
        if not isinstance(pos, torch.Tensor):
            pos = torch.tensor(list(pos), dtype=torch.int64, device=self.device)
        if pos.shape[-1] != self.num_dimensions:
            raise ValueError(f"expected {self.num_dimensions} coordinates, got {pos.shape[-1]}")
        return flatten_index(pos, self.num_cells)

    def cell_pos(self, index: torch.Tensor | int) -> torch.Tensor:
        """Integer lattice coordinates (..., D) of a flattened index."""
        idx = torch.as_tensor(index, dtype=torch.int64, device=self.device)
        coords = []
        for n in reversed(self.num_cells):
            coords.append(torch.remainder(idx, n))
            idx = torch.div(idx, n, rounding_mode="floor")
        return torch.stack(coords[::-1], dim=-1)

    def shift(self, index: torch.Tensor | int, axis: int, step: int) -> torch.Tensor:
        pos = self.cell_pos(index)
        pos[..., axis] += int(step)
        return self.cell_index(pos)

    def floored_grid_point(self, positions: torch.Tensor) -> torch.Tensor:
        """Integer coordinates floor(x / as) of physical positions (..., D)."""
        return torch.floor(positions / self.spacing).to(torch.int64)

    def field(self, t: torch.Tensor) -> torch.Tensor:
        """View a flattened per-cell tensor with the lattice shape in front."""
        return t.view(*self.num_cells, *t.shape[1:])

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def get_u(self, index: torch.Tensor | int, axis: int | torch.Tensor) -> torch.Tensor:
        return self.U[index, axis]

    def get_u_next(self, index: torch.Tensor | int, axis: int | torch.Tensor) -> torch.Tensor:
        return self.U_next[index, axis]

    def set_u(self, index: torch.Tensor | int, axis: int, value: torch.Tensor) -> None:
        self.U[index, axis] = value

    def set_u_next(self, index: torch.Tensor | int, axis: int, value: torch.Tensor) -> None:
        self.U_next[index, axis] = value

    def swap_links(self) -> None:
        """Promote U_next to U; the previous links stay readable in U_next."""
        self.U, self.U_next = self.U_next, self.U

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def add_rho(self, index: torch.Tensor, q: torch.Tensor) -> None:
        """Additive accumulation (index may repeat)."""
        self.rho.index_add_(0, index.reshape(-1), q.reshape(-1, self.algebra.num_components))

    def add_j(self, index: torch.Tensor, axis: int, j: torch.Tensor) -> None:
        j = j.reshape(-1, self.algebra.num_components)
        contrib = torch.zeros(j.shape[0], self.num_dimensions, j.shape[1], device=j.device, dtype=self.J.dtype)
        contrib[:, axis] = j
        self.J.index_add_(0, index.reshape(-1), contrib)

    def reset_charge_density(self) -> None:
        self.rho.zero_()
        self.J.zero_()

    # ------------------------------------------------------------------
    # Derived quantities
    # ------------------------------------------------------------------

    def gauss_constraint(self) -> torch.Tensor:
        """Charge implied by the electric field at every site, (cells, C)."""
        return covariant_divergence(self.algebra, self.E, self.U, self.num_cells, self.spacing)

    def snapshot(self) -> TensorDict:
        return TensorDict(
            {
                "E": self.E.clone(),
                "U": self.U.clone(),
                "rho": self.rho.clone(),
                "J": self.J.clone(),
            },
            batch_size=[self.total_cells],
        )
