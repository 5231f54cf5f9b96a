"""Field generators: analytic initial field configurations applied before the run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

import torch

from colorpic.kernels.leapfrog import central_diff_periodic

if TYPE_CHECKING:
    from colorpic.simulation.context import Simulation


def _normalized(v: Sequence[float]) -> tuple[float, ...]:
    t = torch.tensor([float(x) for x in v], dtype=torch.float64)
    return tuple((t / torch.linalg.vector_norm(t)).tolist())


@dataclass
class PlanePulse:
    """Gaussian plane pulse A(t, x) = a · exp(−(n·(x−x0) − c t)² / 2σ²).

    `amplitude_spatial_direction` and `amplitude_color_direction` are
    normalized on construction; the pulse moves along `direction`.
    """

    direction: tuple[float, ...]
    position: tuple[float, ...]
    amplitude_spatial_direction: tuple[float, ...]
    amplitude_color_direction: tuple[float, ...]
    amplitude_magnitude: float
    sigma: float

    def __post_init__(self) -> None:
        if len(self.direction) != len(self.position) or len(self.direction) != len(self.amplitude_spatial_direction):
            raise ValueError(
                "direction, position and amplitude_spatial_direction must have equal length, got "
                f"{len(self.direction)}, {len(self.position)}, {len(self.amplitude_spatial_direction)}"
            )
        if not (float(self.sigma) > 0.0):
            raise ValueError(f"sigma must be > 0, got {self.sigma}")
        self.direction = tuple(float(x) for x in self.direction)
        self.position = tuple(float(x) for x in self.position)
        self.amplitude_spatial_direction = _normalized(self.amplitude_spatial_direction)
        self.amplitude_color_direction = _normalized(self.amplitude_color_direction)
        self.amplitude_magnitude = float(self.amplitude_magnitude)
        self.sigma = float(self.sigma)

    def amplitude(self, sim: "Simulation") -> torch.Tensor:
        """Field amplitude a_i^k, shape (D, C)."""
        grid = sim.grid
        spatial = torch.tensor(self.amplitude_spatial_direction, device=grid.device, dtype=grid.dtype)
        color = torch.tensor(self.amplitude_color_direction, device=grid.device, dtype=grid.dtype)
        return self.amplitude_magnitude * spatial[:, None] * color[None, :]

    def apply_field_configuration(self, sim: "Simulation") -> None:
        grid = sim.grid
        alg = grid.algebra
        d = grid.num_dimensions
        if len(self.direction) != d:
            raise ValueError(f"plane pulse has {len(self.direction)} dimensions, lattice has {d}")
        if len(self.amplitude_color_direction) != alg.num_components:
            raise ValueError(
                f"color direction must have {alg.num_components} components, got {len(self.amplitude_color_direction)}"
            )
        g = sim.coupling
        a = grid.spacing
        at = sim.time_step
        sigma = self.sigma
        c = 1.0

        pos = grid.cell_pos(torch.arange(grid.total_cells, device=grid.device)).to(grid.dtype) * a
        n = torch.tensor(self.direction, device=grid.device, dtype=grid.dtype)
        x0 = torch.tensor(self.position, device=grid.device, dtype=grid.dtype)
        phase = (pos - x0) @ n
        amp = self.amplitude(sim)

        def gauge_factor(t: float) -> torch.Tensor:
            return torch.exp(-((phase - c * t) ** 2) / (2.0 * sigma * sigma))

        # [CHOICE] plane pulse initial data
        # [FORMULA] E = −∂_t A = −c φ/σ² exp(−φ²/2σ²) a ;  U ← U exp(i g as A(t = ±at/2))
        # [NOTES] links sit half a step ahead of E (U) and behind it (U_next)
        e_factor = -c * phase / (sigma * sigma) * torch.exp(-(phase**2) / (2.0 * sigma * sigma))
        grid.E += e_factor[:, None, None] * amp[None, :, :]

        A_ahead = gauge_factor(0.5 * at)[:, None, None] * amp[None, :, :]
        A_behind = gauge_factor(-0.5 * at)[:, None, None] * amp[None, :, :]
        grid.U = grid.U @ alg.get_link(A_ahead * (g * a))
        grid.U_next = grid.U_next @ alg.get_link(A_behind * (g * a))

        # Abelian field strength for the Maxwell strategy, B at t = +at/2.
        Af = grid.field(A_ahead)
        B = grid.field(grid.B)
        for p, (i, j) in enumerate(grid.planes):
            B[..., p, :] += central_diff_periodic(Af[..., j, :], a, i) - central_diff_periodic(Af[..., i, :], a, j)
