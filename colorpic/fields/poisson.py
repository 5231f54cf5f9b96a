"""Boost-invariant (light-cone) initial conditions from a transverse charge density.

A color source moving at the speed of light along `direction` with
orientation o = ±1 is described by a transverse density ρ_⊥(x_⊥) and a
normalized longitudinal Gaussian profile f(z). In temporal gauge its field is
a pure gauge in each transverse slice, rotated along z by the Wilson line

    V(x) = exp(i g o F(z) φ(x_⊥)),   Δ_⊥ φ = −ρ_⊥,   F(z) = ∫_{−∞}^{z} f

which gives

    U_i(x) = V(x) V(x+i)^†              (transverse links)
    U_z(x) = 1
    E_i(x) = −f(z) V(x) ∇⁺_i φ V(x)^†    (transverse electric field)
    D·E(x) = f(z) V(x) ρ_⊥ V(x)^†        (covariant Gauss law, exact on the lattice)

Links are stored half a time step ahead of E (t = +at/2 in `U`, t = −at/2 in
`U_next`), matching the leapfrog convention of `colorpic.kernels.leapfrog`.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Sequence

import torch

from colorpic.kernels.pic import flatten_index
from colorpic.lattice.grid import covariant_divergence, reduce_grid_pos

if TYPE_CHECKING:
    from colorpic.simulation.context import Simulation


def solve_transverse_poisson(
    rho: torch.Tensor,
    transverse_num_cells: Sequence[int],
    spacing: float,
) -> torch.Tensor:
    """Solve Δ_⊥ φ = −ρ on a periodic lattice (per component) by FFT.

    rho: (cells_⊥, C). The zero mode is dropped, so φ answers to ρ minus its mean.
    """
    dims = tuple(int(n) for n in transverse_num_cells)
    d = len(dims)
    C = rho.shape[-1]
    rho_f = rho.view(*dims, C)
    axes = tuple(range(d))

    # [CHOICE] lattice Laplacian eigenvalues
    # [FORMULA] λ(k) = −(4/as²) Σ_a sin²(π k_a / n_a)
    # [REASON] exact inverse of the 2(d)+1-point stencil used by the Gauss law
    lam = torch.zeros(dims, device=rho.device, dtype=rho.dtype)
    for a, n in enumerate(dims):
        k = torch.arange(n, device=rho.device, dtype=rho.dtype)
        s = torch.sin(math.pi * k / n) ** 2
        shape = [1] * d
        shape[a] = n
        lam = lam + s.view(shape)
    lam = lam * (-4.0 / float(spacing) ** 2)

    rho_hat = torch.fft.fftn(rho_f, dim=axes)
    safe = torch.where(lam != 0, lam, torch.ones_like(lam))
    phi_hat = torch.where((lam != 0)[..., None], -rho_hat / safe[..., None], torch.zeros_like(rho_hat))
    phi = torch.fft.ifftn(phi_hat, dim=axes).real
    return phi.reshape(-1, C).to(rho.dtype)


class LightConePoissonSolver:
    """Initial-condition solver for a single light-cone source."""

    def __init__(
        self,
        direction: int,
        orientation: int,
        location: float,
        longitudinal_width: float,
        transverse_charge_density: torch.Tensor,
        transverse_num_cells: Sequence[int],
    ) -> None:
        if int(orientation) not in (-1, 1):
            raise ValueError(f"orientation must be -1 or 1, got {orientation}")
        if not (float(longitudinal_width) > 0.0):
            raise ValueError(f"longitudinal_width must be > 0, got {longitudinal_width}")
        self.direction = int(direction)
        self.orientation = int(orientation)
        self.location = float(location)
        self.longitudinal_width = float(longitudinal_width)
        self.transverse_charge_density = transverse_charge_density
        self.transverse_num_cells = tuple(int(n) for n in transverse_num_cells)

        self.phi: torch.Tensor | None = None
        self._gauss: torch.Tensor | None = None

    def initialize(self, sim: "Simulation") -> None:
        grid = sim.grid
        if not (0 <= self.direction < grid.num_dimensions):
            raise ValueError(f"direction must be in [0, {grid.num_dimensions}), got {self.direction}")
        expected = reduce_grid_pos(grid.num_cells, self.direction)
        if self.transverse_num_cells != expected:
            raise ValueError(f"transverse grid {self.transverse_num_cells} does not match lattice {expected}")
        self.phi = solve_transverse_poisson(self.transverse_charge_density, self.transverse_num_cells, grid.spacing)

    def profile(self, z: torch.Tensor) -> torch.Tensor:
        """Normalized Gaussian f(z)."""
        sigma = self.longitudinal_width
        return torch.exp(-((z - self.location) ** 2) / (2.0 * sigma * sigma)) / (math.sqrt(2.0 * math.pi) * sigma)

    def cumulative_profile(self, z: torch.Tensor) -> torch.Tensor:
        """F(z) = ∫_{−∞}^{z} f."""
        return 0.5 * (1.0 + torch.erf((z - self.location) / (math.sqrt(2.0) * self.longitudinal_width)))

    def solve(self, sim: "Simulation") -> None:
        if self.phi is None:
            raise RuntimeError("LightConePoissonSolver.solve() called before initialize()")
        grid = sim.grid
        alg = grid.algebra
        g = sim.coupling
        at = sim.time_step
        a = grid.spacing
        d = grid.num_dimensions
        o = self.orientation

        pos = grid.cell_pos(torch.arange(grid.total_cells, device=grid.device))
        transverse = torch.cat([pos[:, : self.direction], pos[:, self.direction + 1 :]], dim=1)
        t_index = flatten_index(transverse, self.transverse_num_cells)
        z = pos[:, self.direction].to(grid.dtype) * a

        phi = self.phi[t_index]  # (cells, C)
        phi_field = grid.field(phi)

        def wilson_line(t: float) -> torch.Tensor:
            # Source profile at time t is the t=0 profile shifted by o·t.
            F = self.cumulative_profile(z - o * t)
            return alg.get_link(phi * (g * o) * F[:, None])

        def transverse_links(V: torch.Tensor) -> torch.Tensor:
            U = alg.group_identity(grid.total_cells, d)
            Vf = grid.field(V)
            for i in range(d):
                if i == self.direction:
                    continue
                V_fwd = torch.roll(Vf, shifts=-1, dims=i).reshape(V.shape)
                U[:, i] = V @ alg.adj(V_fwd)
            return U

        V0 = wilson_line(0.0)
        f = self.profile(z)
        E_src = alg.algebra_zero(grid.total_cells, d)
        for i in range(d):
            if i == self.direction:
                continue
            grad = ((torch.roll(phi_field, shifts=-1, dims=i) - phi_field) / a).reshape(phi.shape)
            E_src[:, i] = -f[:, None] * alg.act(grad, V0)

        U_src = transverse_links(wilson_line(0.5 * at))
        U_prev = transverse_links(wilson_line(-0.5 * at))

        self._gauss = covariant_divergence(alg, E_src, U_src, grid.num_cells, a)

        grid.E += E_src
        grid.U = U_src @ grid.U
        grid.U_next = U_prev @ grid.U_next

    def gauss_constraint(self, index: int | torch.Tensor) -> torch.Tensor:
        """Charge implied at a lattice site by this source's field configuration."""
        return self.gauss_constraint_field()[index]

    def gauss_constraint_field(self) -> torch.Tensor:
        if self._gauss is None:
            raise RuntimeError("LightConePoissonSolver.gauss_constraint() called before solve()")
        return self._gauss
