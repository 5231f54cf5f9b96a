"""Simulation context: the lattice, the solver and the generators acting on them.

One step is

    reset ρ, J → every current generator deposits → field solver → instruments

The `Simulation` is passed explicitly into every generator call; generators
read parameters from it and write into `sim.grid`. Current generators provide
`initialize_fields`, `initialize_particles` and `apply_current`; field
generators provide `apply_field_configuration`.
"""

from __future__ import annotations

from typing import Any, Sequence

import torch
from tensordict import TensorDict

from colorpic.console import console
from colorpic.instrument.observables import electric_energy, gauss_violation, magnetic_energy
from colorpic.instrument.protocol import InstrumentProtocol
from colorpic.kernels.color import ColorAlgebra
from colorpic.kernels.leapfrog import FieldSolver, SolverKind
from colorpic.kernels.runtime import resolve_device
from colorpic.lattice.grid import LatticeGrid
from colorpic.simulation.config import SimulationConfig


class Simulation:
    def __init__(
        self,
        num_cells: Sequence[int],
        *,
        spacing: float = 1.0,
        time_step: float = 0.5,
        coupling: float = 1.0,
        num_colors: int = 2,
        solver: SolverKind = SolverKind.YANG_MILLS,
        device: str | None = "cpu",
        dtype: torch.dtype = torch.float64,
        current_generators: Sequence[Any] = (),
        field_generators: Sequence[Any] = (),
        instruments: Sequence[InstrumentProtocol] = (),
        observables_enabled: bool = True,
    ) -> None:
        if not (float(time_step) > 0.0):
            raise ValueError(f"time_step must be > 0, got {time_step}")
        if float(coupling) == 0.0:
            raise ValueError(f"coupling must be non-zero, got {coupling}")
        self.algebra = ColorAlgebra(num_colors, device=resolve_device(device), dtype=dtype)
        self.grid = LatticeGrid(num_cells, spacing, self.algebra)
        self.solver = FieldSolver(SolverKind(solver), float(time_step), float(coupling))
        self.current_generators: list[Any] = list(current_generators)
        self.field_generators: list[Any] = list(field_generators)
        self.instruments: list[InstrumentProtocol] = list(instruments)
        self.observables_enabled = bool(observables_enabled)
        self.total_steps = 0
        self._initialized = False

    @classmethod
    def from_config(cls, config: SimulationConfig, *, instruments: Sequence[InstrumentProtocol] = ()) -> "Simulation":
        return cls(
            config.num_cells,
            spacing=config.spacing,
            time_step=config.time_step,
            coupling=config.coupling,
            num_colors=config.num_colors,
            solver=config.solver,
            device=config.device,
            dtype=config.dtype,
            current_generators=config.current_generators,
            field_generators=config.field_generators,
            instruments=instruments,
            observables_enabled=config.observables_enabled,
        )

    def __repr__(self) -> str:
        return (
            f"Simulation(grid={self.grid!r}, solver={self.solver.kind.value}, "
            f"dt={self.time_step}, g={self.coupling}, steps={self.total_steps})"
        )

    # ------------------------------------------------------------------
    # Parameters read by generators
    # ------------------------------------------------------------------

    @property
    def lattice_spacing(self) -> float:
        return self.grid.spacing

    @property
    def time_step(self) -> float:
        return self.solver.dt

    @property
    def coupling(self) -> float:
        return self.solver.coupling

    @property
    def num_colors(self) -> int:
        return self.algebra.num_colors

    @property
    def num_components(self) -> int:
        return self.algebra.num_components

    @property
    def num_dimensions(self) -> int:
        return self.grid.num_dimensions

    @property
    def time(self) -> float:
        return self.total_steps * self.time_step

    def box_size(self, axis: int) -> float:
        return self.grid.box_size(axis)

    # ------------------------------------------------------------------
    # Evolution
    # ------------------------------------------------------------------

    def add_current_generator(self, generator: Any) -> None:
        if self._initialized:
            raise RuntimeError("current generators must be added before initialize()")
        self.current_generators.append(generator)

    def add_field_generator(self, generator: Any) -> None:
        if self._initialized:
            raise RuntimeError("field generators must be added before initialize()")
        self.field_generators.append(generator)

    def initialize(self) -> None:
        """Apply initial fields, superpose every source, then sample and deposit.

        All sources put their fields on the grid before any of them samples
        particles, so each samples the Gauss-law charge of the full
        configuration.
        """
        if self._initialized:
            raise RuntimeError("Simulation.initialize() called twice")
        for generator in self.field_generators:
            generator.apply_field_configuration(self)
        self.grid.reset_charge_density()
        for generator in self.current_generators:
            generator.initialize_fields(self)
        for generator in self.current_generators:
            generator.initialize_particles(self)
            generator.apply_current(self)
            count = getattr(generator, "num_particles", None)
            if count is not None:
                console.info(f"{type(generator).__name__}: {count} particles")
        self._initialized = True

    def step(self) -> TensorDict:
        if not self._initialized:
            self.initialize()
        self.grid.reset_charge_density()
        for generator in self.current_generators:
            generator.apply_current(self)
        self.solver.step(self.grid)
        self.total_steps += 1

        state = self.state()
        for instrument in self.instruments:
            instrument.update(state)
        return state

    def run(self, steps: int) -> TensorDict | None:
        if int(steps) < 0:
            raise ValueError(f"steps must be >= 0, got {steps}")
        state = None
        for _ in range(int(steps)):
            state = self.step()
        return state

    def state(self) -> TensorDict:
        """Scalar post-step summary (observables only when enabled)."""
        grid = self.grid
        num_particles = sum(int(getattr(g, "num_particles", 0)) for g in self.current_generators)
        values: dict[str, torch.Tensor] = {
            "step": torch.tensor(self.total_steps),
            "time": torch.tensor(self.time, dtype=grid.dtype),
            "num_particles": torch.tensor(num_particles),
            "total_charge": grid.rho.sum(dim=0).clone(),
        }
        if self.observables_enabled:
            values["electric_energy"] = torch.tensor(electric_energy(grid), dtype=grid.dtype)
            values["magnetic_energy"] = torch.tensor(
                magnetic_energy(grid, coupling=self.coupling, kind=self.solver.kind), dtype=grid.dtype
            )
            values["gauss_violation"] = torch.tensor(gauss_violation(grid), dtype=grid.dtype)
        return TensorDict(values, batch_size=[])
