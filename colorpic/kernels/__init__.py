"""Tensor kernels: color algebra, particle-in-cell stencils and leapfrog solvers.

Everything here operates on flattened per-cell tensors (row-major, periodic)
and is vectorized over cells and particles.
"""
from __future__ import annotations

__all__: list[str] = []
