from __future__ import annotations

from colorpic.fields.generators import PlanePulse
from colorpic.fields.poisson import LightConePoissonSolver, solve_transverse_poisson

__all__ = ["LightConePoissonSolver", "PlanePulse", "solve_transverse_poisson"]
