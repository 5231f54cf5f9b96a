from __future__ import annotations

from colorpic.lattice.grid import LatticeGrid, covariant_divergence, reduce_grid_pos

__all__ = ["LatticeGrid", "covariant_divergence", "reduce_grid_pos"]
