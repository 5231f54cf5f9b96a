"""colorpic: classical lattice Yang-Mills fields coupled to colored particles.

Subpackages:
- `colorpic.kernels`: color algebra, particle-in-cell stencils, leapfrog solvers
- `colorpic.lattice`: the periodic lattice grid
- `colorpic.fields`: initial-condition solvers and field generators
- `colorpic.currents`: charge-conserving particle current generators
- `colorpic.simulation`: simulation context, configuration and runner
- `colorpic.instrument`: observables and per-step instruments

Keep this module light; import from the subpackages.
"""

from __future__ import annotations

__all__: list[str] = []
