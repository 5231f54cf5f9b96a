from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import torch

from colorpic.kernels.leapfrog import SolverKind


@dataclass
class SimulationConfig:
    """Configuration for a lattice run."""

    # Lattice and time
    num_cells: tuple[int, ...] = (16, 16, 16)
    spacing: float = 1.0
    # [CHOICE] time step
    # [FORMULA] at / as <= 1 / sqrt(D)
    # [REASON] Courant bound of the leapfrog; 0.5 is stable in 2D and 3D
    time_step: float = 0.5
    coupling: float = 1.0

    # Gauge group: 1 → U(1), N >= 2 → SU(N)
    num_colors: int = 2
    solver: SolverKind = SolverKind.YANG_MILLS

    num_steps: int = 32

    # Reproducibility
    seed: int = 0

    # Device (None picks CUDA when available)
    device: str | None = "cpu"
    dtype: torch.dtype = field(default_factory=lambda: torch.float64)

    # Sources and initial fields
    current_generators: list[Any] = field(default_factory=list)
    field_generators: list[Any] = field(default_factory=list)

    # Instrumentation
    record_history: bool = False
    observables_enabled: bool = True
    log_interval: int = 8
