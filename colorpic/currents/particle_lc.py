"""Light-cone current from colored point particles on fixed trajectories.

The generator samples the Gauss-law charge of a boost-invariant source with
one particle per lattice site, moves the particles at the speed of light along
`direction`, transports their color charge along the links they cross
(discretized Wong equations) and deposits ρ and J so that the covariant
lattice continuity equation

    ρ'(x) − ρ(x) + (at/as) Σ_i [J_i(x) − U_i(x−i)^† J_i(x−i) U_i(x−i)] = 0

holds to floating-point precision while the links along `direction` do not
change between steps (U_next == U). When they do, a particle crossing a cell
boundary leaves a residual of first order in the link change: the old charge
is interpolated with the previous links, while the transport keeps |Q| fixed.
Moves that start on a lattice site stay exact.

Particles are held in a `TensorDict` (batch size [n]) with keys
`pos_old`, `pos_new`, `vel` (n, D) and `q_old`, `q_new` (n, C). The old/new
swap exchanges whole tensors, so no particle is ever seen half-swapped.

Particles leaving the box are dropped without redistributing their charge.
Sources are expected to leave the lattice only through the longitudinal
boundaries, where the evolution is no longer tracked.

------------------------------------------------------------------------------
COMMENT CONVENTION (physics choices)
------------------------------------------------------------------------------
  # [CHOICE] <name>
  # [FORMULA] <math / equation / mapping>
  # [REASON] <brief why this form/value>
  # [NOTES] <brief caveats, assumptions, invariants>
------------------------------------------------------------------------------
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

import torch
from tensordict import TensorDict

from colorpic.currents import moments
from colorpic.fields.poisson import LightConePoissonSolver
from colorpic.kernels.pic import cic_stencil_periodic, scatter_cic
from colorpic.lattice.grid import reduce_grid_pos

if TYPE_CHECKING:
    from colorpic.simulation.context import Simulation


@dataclass
class PointCharge:
    """Initial-condition point charge on the transverse lattice.

    `color_direction` is normalized on construction; a zero vector yields NaN
    components.
    """

    location: tuple[float, ...]
    color_direction: tuple[float, ...]
    magnitude: float

    def __post_init__(self) -> None:
        v = torch.tensor([float(x) for x in self.color_direction], dtype=torch.float64)
        v = v / torch.linalg.vector_norm(v)
        self.location = tuple(float(x) for x in self.location)
        self.color_direction = tuple(v.tolist())
        self.magnitude = float(self.magnitude)


def make_particles(
    pos_old: torch.Tensor,
    pos_new: torch.Tensor,
    vel: torch.Tensor,
    q_old: torch.Tensor,
    q_new: torch.Tensor | None = None,
) -> TensorDict:
    """Pack a particle ensemble (all tensors share the leading dimension)."""
    n = int(pos_old.shape[0])
    return TensorDict(
        {
            "pos_old": pos_old,
            "pos_new": pos_new,
            "vel": vel,
            "q_old": q_old,
            "q_new": q_old.clone() if q_new is None else q_new,
        },
        batch_size=[n],
    )


@dataclass
class ParticleLCCurrent:
    """Charge-conserving current of a light-cone source sampled by particles."""

    direction: int
    orientation: int
    location: float
    longitudinal_width: float
    # [CHOICE] sampling threshold
    # [FORMULA] keep site if |Q|² > charge_threshold · (g as)²
    # [REASON] bounds the particle count by skipping the Gaussian tails
    charge_threshold: float = 1e-17
    remove_monopole: bool = False
    remove_dipole: bool = False

    charges: list[PointCharge] = field(default_factory=list)
    transverse_charge_density: torch.Tensor | None = None
    transverse_num_cells: tuple[int, ...] = ()
    particles: TensorDict | None = None
    poisson_solver: LightConePoissonSolver | None = None

    def __post_init__(self) -> None:
        if int(self.orientation) not in (-1, 1):
            raise ValueError(f"orientation must be -1 or 1, got {self.orientation}")
        self.direction = int(self.direction)
        self.orientation = int(self.orientation)

    @property
    def num_particles(self) -> int:
        return 0 if self.particles is None else int(self.particles.batch_size[0])

    def add_charge(self, location: Sequence[float], color_direction: Sequence[float], magnitude: float) -> None:
        """Add a point charge at a transverse location (initial conditions only)."""
        self.charges.append(PointCharge(tuple(location), tuple(color_direction), magnitude))

    def set_transverse_charge_density(self, density: torch.Tensor) -> None:
        self.transverse_charge_density = density

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize_current(self, sim: "Simulation") -> None:
        """Build the transverse density, solve the initial fields, sample particles, deposit ρ and J."""
        self.initialize_fields(sim)
        self.initialize_particles(sim)
        self.apply_current(sim)

    def initialize_fields(self, sim: "Simulation") -> None:
        """Build the transverse density and superpose this source's fields on the grid."""
        grid = sim.grid
        if not (0 <= self.direction < grid.num_dimensions):
            raise ValueError(f"direction must be in [0, {grid.num_dimensions}), got {self.direction}")
        self.transverse_num_cells = reduce_grid_pos(grid.num_cells, self.direction)

        num_transverse = 1
        for n in self.transverse_num_cells:
            num_transverse *= n
        if self.transverse_charge_density is None:
            self.transverse_charge_density = grid.algebra.algebra_zero(num_transverse)
        else:
            density = self.transverse_charge_density.to(device=grid.device, dtype=grid.dtype)
            if tuple(density.shape) != (num_transverse, grid.algebra.num_components):
                raise ValueError(
                    f"transverse charge density must have shape {(num_transverse, grid.algebra.num_components)}, "
                    f"got {tuple(density.shape)}"
                )
            self.transverse_charge_density = density.clone()
        for charge in self.charges:
            self._interpolate_point_charge(sim, charge)

        if self.remove_monopole:
            self.transverse_charge_density = moments.remove_monopole_moment(self.transverse_charge_density)
        if self.remove_dipole:
            self.transverse_charge_density = moments.remove_dipole_moment(
                self.transverse_charge_density, self.transverse_num_cells, grid.spacing
            )

        self.poisson_solver = LightConePoissonSolver(
            self.direction,
            self.orientation,
            self.location,
            self.longitudinal_width,
            self.transverse_charge_density,
            self.transverse_num_cells,
        )
        self.poisson_solver.initialize(sim)
        self.poisson_solver.solve(sim)

    def _interpolate_point_charge(self, sim: "Simulation", charge: PointCharge) -> None:
        """Cloud-in-cell smearing over the 2^(D−1) surrounding transverse sites."""
        grid = sim.grid
        alg = grid.algebra
        if len(charge.location) != len(self.transverse_num_cells):
            raise ValueError(
                f"point charge location must have {len(self.transverse_num_cells)} transverse coordinates, "
                f"got {len(charge.location)}"
            )
        if len(charge.color_direction) != alg.num_components:
            raise ValueError(
                f"color direction must have {alg.num_components} components, got {len(charge.color_direction)}"
            )
        amplitude = torch.tensor(charge.color_direction, device=grid.device, dtype=grid.dtype)
        amplitude = amplitude * (charge.magnitude / grid.spacing ** (grid.num_dimensions - 1))
        position = torch.tensor([charge.location], device=grid.device, dtype=grid.dtype)
        st = cic_stencil_periodic(position, grid_dims=self.transverse_num_cells, dx=grid.spacing)
        scatter_cic(st, amplitude[None, :], self.transverse_charge_density)

    def initialize_particles(self, sim: "Simulation") -> None:
        """Sample one particle per site from the Gauss-law charge of the initial fields.

        The support is where this source's own configuration is charged; the
        sampled value is the charge of the superposed grid configuration not
        yet carried by particles (`D·E − ρ`). With several non-commuting
        sources the links of one rotate the charge of the others, so the
        private constraint alone would violate the grid's Gauss law. Where two
        supports overlap, the source sampled first takes the shared charge.
        """
        if self.poisson_solver is None:
            raise RuntimeError("initialize_particles() requires a solved Poisson problem")
        grid = sim.grid
        alg = grid.algebra
        at = sim.time_step
        o = self.orientation

        prefactor = sim.coupling * grid.spacing
        limit = self.charge_threshold * prefactor * prefactor
        own = self.poisson_solver.gauss_constraint_field()
        charges = grid.gauss_constraint() - grid.rho
        keep = (alg.square(own) > limit) & (alg.square(charges) > limit)
        cells = torch.nonzero(keep, as_tuple=False).reshape(-1)

        pos = grid.cell_pos(cells).to(grid.dtype) * grid.spacing
        # [CHOICE] start two steps back
        # [FORMULA] x_old = x − 2·at·o,  x_new = x − at·o
        # [NOTES] the first apply_current swaps and moves, landing particles on their sites
        t0 = -2.0 * at
        pos_old = pos.clone()
        pos_new = pos.clone()
        pos_old[:, self.direction] += t0 * o
        pos_new[:, self.direction] += (t0 + at) * o

        vel = torch.zeros_like(pos)
        vel[:, self.direction] = float(o)

        q = charges[cells].clone()
        self.particles = make_particles(pos_old, pos_new, vel, q)

    # ------------------------------------------------------------------
    # Per-step evolution
    # ------------------------------------------------------------------

    def apply_current(self, sim: "Simulation") -> None:
        """Evolve charges, drop particles outside the box, deposit ρ and J."""
        self.evolve_charges(sim)
        self.remove_particles(sim)
        self.interpolate_charges_and_currents(sim)

    def evolve_charges(self, sim: "Simulation") -> None:
        """Swap old/new buffers, move by v·at and parallel-transport the charges."""
        p = self.particles
        if p is None or self.num_particles == 0:
            return
        grid = sim.grid
        alg = grid.algebra
        at = sim.time_step
        a = grid.spacing
        d = self.direction

        pos_old = p["pos_new"]
        q_old = p["q_new"]
        vel = p["vel"]
        pos_new = pos_old + vel * at

        x_old = pos_old[:, d] / a
        x_new = pos_new[:, d] / a
        idx_old = torch.floor(x_old)
        idx_new = torch.floor(x_new)

        cell_old = grid.cell_index(grid.floored_grid_point(pos_old))
        cell_new = grid.cell_index(grid.floored_grid_point(pos_new))
        U_old = grid.U[cell_old, d]
        U_new = grid.U[cell_new, d]

        v = vel[:, d]

        # One-cell move: partial link over the distance traveled.
        dist = torch.abs(v * at / a)
        W_same = alg.scale_link(U_old, dist)
        W_same = torch.where((v > 0)[:, None, None], W_same, alg.adj(W_same))

        # [CHOICE] two-cell moves
        # [FORMULA] right: W = U0·U1 ; left: W = (U1·U0)^†
        # [REASON] path order of the traversed partial links; exact covariant continuity for static links
        U0 = alg.scale_link(U_old, torch.abs(idx_new - x_old))
        U1 = alg.scale_link(U_new, torch.abs(idx_new - x_new))
        W_right = U0 @ U1

        U0 = alg.scale_link(U_old, torch.abs(idx_old - x_old))
        U1 = alg.scale_link(U_new, torch.abs(idx_old - x_new))
        W_left = alg.adj(U1 @ U0)

        same = (idx_old == idx_new)[:, None, None]
        right = (idx_old < idx_new)[:, None, None]
        W = torch.where(same, W_same, torch.where(right, W_right, W_left))

        # Wong: Q' = W^† Q W
        q_new = alg.act(q_old, alg.adj(W))

        p.update(
            {
                "pos_old": pos_old,
                "pos_new": pos_new,
                "q_old": q_old,
                "q_new": q_new,
            }
        )

    def remove_particles(self, sim: "Simulation") -> int:
        """Drop particles whose new position left [0, box) on any axis; returns the count."""
        p = self.particles
        if p is None or self.num_particles == 0:
            return 0
        grid = sim.grid
        box = torch.tensor(
            [grid.box_size(i) for i in range(grid.num_dimensions)], device=grid.device, dtype=grid.dtype
        )
        pos = p["pos_new"]
        inside = ((pos >= 0) & (pos < box)).all(dim=1)
        removed = int((~inside).sum().item())
        if removed:
            self.particles = p[inside]
        return removed

    def interpolate_charges_and_currents(self, sim: "Simulation") -> None:
        """Deposit ρ at the new positions and the charge-conserving J of the move."""
        p = self.particles
        if p is None or self.num_particles == 0:
            return
        grid = sim.grid
        alg = grid.algebra
        a = grid.spacing
        c = a / sim.time_step
        d = self.direction

        pos_old, pos_new = p["pos_old"], p["pos_new"]
        q_old, q_new = p["q_old"], p["q_new"]

        gp_old = grid.floored_grid_point(pos_old)
        gp_new = grid.floored_grid_point(pos_new)
        cell0_old = grid.cell_index(gp_old)
        cell0_new = grid.cell_index(gp_new)
        cell1_new = grid.shift(cell0_new, d, 1)

        d0_new = pos_new[:, d] / a - gp_new[:, d].to(grid.dtype)
        d1_new = 1.0 - d0_new
        d0_old = pos_old[:, d] / a - gp_old[:, d].to(grid.dtype)
        d1_old = 1.0 - d0_old

        # Previous links for the old charge, current links for the new one.
        # [NOTES] ρ_old must equal the previous deposit; crossing moves conserve
        #   exactly only when U_next == U along `direction`
        U_old = grid.U_next[cell0_old, d]
        U_new = grid.U[cell0_new, d]

        # 1) Charge: linear interpolation to the two bracketing sites.
        U0_new = alg.scale_link(U_new, d0_new)
        U1_new = alg.adj(alg.scale_link(U_new, d1_new))
        Q0_new = alg.act(q_new, U0_new) * d1_new[:, None]
        Q1_new = alg.act(q_new, U1_new) * d0_new[:, None]

        grid.add_rho(cell0_new, Q0_new)
        grid.add_rho(cell1_new, Q1_new)

        # 2) Current balancing the change of the interpolated charge.
        U0_old = alg.scale_link(U_old, d0_old)
        U1_old = alg.adj(alg.scale_link(U_old, d1_old))
        Q0_old = alg.act(q_old, U0_old) * d1_old[:, None]
        Q1_old = alg.act(q_old, U1_old) * d0_old[:, None]

        long_old = gp_old[:, d]
        long_new = gp_new[:, d]
        same = (long_old == long_new)[:, None]
        right = (long_new > long_old)[:, None]
        left = (long_new < long_old)[:, None]

        J_same = (Q0_new - Q0_old) * (-c)

        J_old_right = Q0_old * c
        J_new_right = alg.act(J_old_right, alg.adj(grid.U[cell0_old, d])) + (Q0_new - Q1_old) * (-c)

        J_new_left = Q0_new * (-c)
        J_old_left = alg.act(J_new_left, alg.adj(U_new)) + (Q1_new - Q0_old) * (-c)

        zero = torch.zeros_like(J_same)
        J_at_new = torch.where(same, J_same, torch.where(right, J_new_right, J_new_left))
        J_at_old = torch.where(right, J_old_right, torch.where(left, J_old_left, zero))

        grid.add_j(cell0_old, d, J_at_old)
        grid.add_j(cell0_new, d, J_at_new)
