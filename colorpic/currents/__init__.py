from __future__ import annotations

from colorpic.currents.particle_lc import ParticleLCCurrent, PointCharge, make_particles

__all__ = ["ParticleLCCurrent", "PointCharge", "make_particles"]
