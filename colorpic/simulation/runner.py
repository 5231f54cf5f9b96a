from __future__ import annotations

import random
import time
from typing import Any, Dict

import numpy as np
import torch

from colorpic.console import console
from colorpic.instrument.history import StateHistoryInstrument
from colorpic.simulation.config import SimulationConfig
from colorpic.simulation.context import Simulation


def run_simulation(config: SimulationConfig) -> Dict[str, Any]:
    """Build a `Simulation` from `config`, initialize it and run `num_steps` steps."""

    # ---------------------------------------------------------------------
    # Reproducibility
    # ---------------------------------------------------------------------
    seed = int(config.seed)
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)

    history = StateHistoryInstrument() if config.record_history else None
    sim = Simulation.from_config(config, instruments=[] if history is None else [history])

    console.header(
        "COLORPIC LATTICE RUN",
        Device=str(sim.grid.device),
        Grid=str(sim.grid.num_cells),
        Group=repr(sim.algebra),
        Solver=sim.solver.kind.value,
        Steps=str(config.num_steps),
    )

    with console.spinner("Solving initial conditions..."):
        sim.initialize()

    start_time = time.time()
    state = None
    interval = max(1, int(config.log_interval))
    try:
        for step in range(int(config.num_steps)):
            state = sim.step()
            if config.observables_enabled and (step + 1) % interval == 0:
                console.info(
                    f"Step {sim.total_steps:6d} | {int(state['num_particles'])}p | "
                    f"E_el={float(state['electric_energy']):.6g} E_mag={float(state['magnetic_energy']):.6g} | "
                    f"gauss={float(state['gauss_violation']):.3g}"
                )
    except KeyboardInterrupt:
        console.warn("Simulation stopped by user.")

    total_time = time.time() - start_time
    if state is None:
        state = sim.state()
    console.success(
        "Run finished",
        detail=f"{sim.total_steps} steps in {total_time:.2f}s",
    )

    results: Dict[str, Any] = {
        "steps": sim.total_steps,
        "total_time_s": total_time,
        "final_particles": int(state["num_particles"]),
        "simulation": sim,
    }
    if config.observables_enabled:
        results["final_electric_energy"] = float(state["electric_energy"])
        results["final_magnetic_energy"] = float(state["magnetic_energy"])
        results["final_gauss_violation"] = float(state["gauss_violation"])
    if history is not None:
        results["history"] = history.history
    return results
