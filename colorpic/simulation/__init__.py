from __future__ import annotations

from colorpic.simulation.config import SimulationConfig
from colorpic.simulation.context import Simulation
from colorpic.simulation.runner import run_simulation

__all__ = ["Simulation", "SimulationConfig", "run_simulation"]
