"""Tests for the particle light-cone current generator.

These tests run on CPU in float64 and validate:
- Charge conservation for one-cell, two-cell-right and two-cell-left moves
  (Σ J = q·Δx/at to 1e-14 with trivial links).
- Covariant lattice continuity with random static SU(2) links.
- Sign consistency, particle survival and removal, zero-charge idempotence.
- End-to-end initialization from point charges.
"""

from __future__ import annotations

import pytest
import torch

from colorpic.currents.particle_lc import ParticleLCCurrent, PointCharge, make_particles
from colorpic.lattice.grid import covariant_divergence
from colorpic.simulation.context import Simulation

ACCURACY_LIMIT = 1e-14
DT = 0.5

# (x_old, x_new) along the motion axis, in units of as = 1
MOVES = {
    "one_cell": (5.2, 5.7),
    "two_cell_right": (5.7, 6.2),
    "two_cell_left": (6.2, 5.7),
}


def _sim(num_colors: int = 2, num_cells=(4, 16)) -> Simulation:
    return Simulation(num_cells, num_colors=num_colors, time_step=DT, spacing=1.0)


def _generator(direction: int = 1, orientation: int = 1) -> ParticleLCCurrent:
    return ParticleLCCurrent(direction, orientation, 8.0, 1.0)


def _set_particles(sim: Simulation, gen: ParticleLCCurrent, moves, charges: torch.Tensor) -> None:
    """Place particles so that the next `evolve_charges` performs `moves`."""
    n = len(moves)
    start = torch.tensor([[1.0, m[0]] for m in moves], dtype=torch.float64)
    vel = torch.zeros(n, 2, dtype=torch.float64)
    vel[:, 1] = torch.tensor([(m[1] - m[0]) / DT for m in moves], dtype=torch.float64)
    gen.particles = make_particles(start.clone(), start, vel, charges.clone(), charges.clone())


def _rho_at_rest(sim: Simulation, gen: ParticleLCCurrent, pos: torch.Tensor, q: torch.Tensor) -> torch.Tensor:
    sim.grid.reset_charge_density()
    gen.particles = make_particles(pos.clone(), pos.clone(), torch.zeros_like(pos), q.clone(), q.clone())
    gen.interpolate_charges_and_currents(sim)
    return sim.grid.rho.clone()


def _continuity_residual(sim: Simulation, gen: ParticleLCCurrent, moves, q: torch.Tensor) -> torch.Tensor:
    grid = sim.grid
    pos_old = torch.tensor([[1.0, m[0]] for m in moves], dtype=torch.float64)
    # the previous deposit was made with the links now held in U_next
    U_now = grid.U
    grid.U = grid.U_next
    rho_old = _rho_at_rest(sim, gen, pos_old, q)
    grid.U = U_now

    grid.reset_charge_density()
    _set_particles(sim, gen, moves, q)
    gen.apply_current(sim)
    div = covariant_divergence(grid.algebra, grid.J, grid.U, grid.num_cells, grid.spacing)
    return grid.rho - rho_old + sim.time_step * div


def _almost_equal(x: float, y: float, limit: float = ACCURACY_LIMIT) -> bool:
    if x == y:
        return True
    return abs(x - y) / abs(x + y) <= limit


@pytest.mark.parametrize("name", list(MOVES))
@pytest.mark.parametrize("colors", [1, 2])
def test_current_sum_matches_displacement(name, colors):
    sim = _sim(colors)
    gen = _generator()
    x_old, x_new = MOVES[name]
    q = torch.zeros(1, sim.num_components, dtype=torch.float64)
    q[0, 0] = 1.3
    _set_particles(sim, gen, [(x_old, x_new)], q)
    gen.apply_current(sim)

    p = gen.particles
    delta = float(p["pos_new"][0, 1] - p["pos_old"][0, 1])
    total = float(sim.grid.J[:, 1, 0].sum())
    assert _almost_equal(1.3 * delta / DT, total)
    # no transverse current, no other color component
    assert not sim.grid.J[:, 0].any()
    if colors > 1:
        assert not sim.grid.J[:, :, 1:].any()
    # charge is deposited, not created
    assert _almost_equal(float(sim.grid.rho[:, 0].sum()), 1.3)


@pytest.mark.parametrize("name", list(MOVES))
def test_continuity_with_trivial_links(name):
    sim = _sim(2)
    gen = _generator()
    q = torch.tensor([[0.4, -1.1, 0.8]], dtype=torch.float64)
    residual = _continuity_residual(sim, gen, [MOVES[name]], q)
    assert float(residual.abs().max()) < 1e-14


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_covariant_continuity_with_random_links(seed):
    sim = _sim(2)
    grid = sim.grid
    alg = grid.algebra
    g = torch.Generator().manual_seed(seed)
    grid.U = alg.get_link(0.8 * torch.randn(grid.total_cells, 2, 3, generator=g, dtype=torch.float64))
    grid.U_next = grid.U.clone()

    gen = _generator()
    moves = list(MOVES.values())
    q = torch.randn(len(moves), 3, generator=g, dtype=torch.float64)
    residual = _continuity_residual(sim, gen, moves, q)
    assert float(residual.abs().max()) < 1e-12


def _evolving_link_residual(eps: float, move, seed: int = 5) -> float:
    sim = _sim(2)
    grid = sim.grid
    alg = grid.algebra
    g = torch.Generator().manual_seed(seed)
    a = 0.8 * torch.randn(grid.total_cells, 2, 3, generator=g, dtype=torch.float64)
    grid.U = alg.get_link(a)
    grid.U_next = alg.get_link(a + eps * torch.randn(a.shape, generator=g, dtype=torch.float64))
    q = torch.randn(1, 3, generator=g, dtype=torch.float64)
    residual = _continuity_residual(sim, _generator(), [move], q)
    return float(residual.abs().max())


@pytest.mark.parametrize("name", ["two_cell_right", "two_cell_left"])
def test_continuity_with_evolving_links_is_first_order(name):
    move = MOVES[name]
    coarse = _evolving_link_residual(1e-3, move)
    fine = _evolving_link_residual(1e-4, move)
    assert 0.0 < coarse < 0.1
    assert fine < 0.2 * coarse


def test_move_from_lattice_site_is_exact_with_evolving_links():
    for move in [(5.0, 5.5), (6.0, 5.5)]:
        assert _evolving_link_residual(1e-2, move) < 1e-12


def test_charge_transport_preserves_invariant_square():
    sim = _sim(2)
    grid = sim.grid
    alg = grid.algebra
    g = torch.Generator().manual_seed(7)
    grid.U = alg.get_link(torch.randn(grid.total_cells, 2, 3, generator=g, dtype=torch.float64))
    grid.U_next = grid.U.clone()
    gen = _generator()
    moves = list(MOVES.values())
    q = torch.randn(len(moves), 3, generator=g, dtype=torch.float64)
    _set_particles(sim, gen, moves, q)
    gen.evolve_charges(sim)
    q_new = gen.particles["q_new"]
    assert torch.allclose(alg.square(q_new), alg.square(q), atol=1e-12)
    assert torch.equal(gen.particles["q_old"], q)


@pytest.mark.parametrize("name", list(MOVES))
def test_current_sign_follows_motion(name):
    sim = _sim(1)
    gen = _generator()
    x_old, x_new = MOVES[name]
    _set_particles(sim, gen, [(x_old, x_new)], torch.tensor([[2.0]], dtype=torch.float64))
    gen.apply_current(sim)
    J = sim.grid.J[:, 1, 0]
    nonzero = J[J != 0]
    assert nonzero.numel() > 0
    if x_new > x_old:
        assert bool((nonzero > 0).all())
    else:
        assert bool((nonzero < 0).all())


def test_particles_inside_box_survive():
    sim = _sim(1)
    gen = _generator()
    moves = [(0.2, 0.7), (15.2, 15.7), (7.9, 8.4)]
    _set_particles(sim, gen, moves, torch.ones(3, 1, dtype=torch.float64))
    gen.apply_current(sim)
    assert gen.num_particles == 3


@pytest.mark.parametrize("move", [(15.7, 16.2), (0.2, -0.3), (15.5, 16.0)])
def test_particles_leaving_box_are_removed(move):
    sim = _sim(1)
    gen = _generator()
    moves = [move, (4.0, 4.5)]
    _set_particles(sim, gen, moves, torch.ones(2, 1, dtype=torch.float64))
    removed = gen.remove_particles(sim)
    assert removed == 0
    gen.evolve_charges(sim)
    assert gen.remove_particles(sim) == 1
    assert gen.num_particles == 1
    assert float(gen.particles["pos_new"][0, 1]) == 4.5


def test_zero_charge_deposits_nothing():
    sim = _sim(2)
    gen = _generator()
    q = torch.zeros(3, 3, dtype=torch.float64)
    _set_particles(sim, gen, list(MOVES.values()), q)
    gen.apply_current(sim)
    assert not sim.grid.rho.any()
    assert not sim.grid.J.any()
    # repeated application leaves the state unchanged
    gen.apply_current(sim)
    assert not sim.grid.rho.any()
    assert not gen.particles["q_new"].any()


def test_empty_ensemble_is_a_no_op():
    sim = _sim(2)
    gen = _generator()
    gen.apply_current(sim)
    assert gen.num_particles == 0
    assert not sim.grid.rho.any()


def test_point_charge_normalizes_color():
    charge = PointCharge((1.0,), (3.0, 0.0, 4.0), 2.0)
    assert charge.color_direction == pytest.approx((0.6, 0.0, 0.8))
    zero = PointCharge((1.0,), (0.0, 0.0, 0.0), 1.0)
    assert all(c != c for c in zero.color_direction)  # NaN


def test_rejects_bad_orientation():
    with pytest.raises(ValueError, match="orientation"):
        ParticleLCCurrent(1, 0, 8.0, 1.0)


def _initialized(num_colors: int, orientation: int = 1) -> tuple[Simulation, ParticleLCCurrent]:
    sim = _sim(num_colors, num_cells=(8, 32))
    gen = ParticleLCCurrent(1, orientation, 16.0, 1.5)
    color = [1.0] + [0.0] * (sim.num_components - 1)
    gen.add_charge([2.0], color, 1.0)
    gen.add_charge([5.5], color, -1.0)
    sim.add_current_generator(gen)
    sim.initialize()
    return sim, gen


@pytest.mark.parametrize("orientation", [1, -1])
def test_initialize_samples_gauss_charge(orientation):
    sim, gen = _initialized(1, orientation)
    grid = sim.grid
    assert gen.num_particles > 0
    p = gen.particles
    # velocity is the orientation along the propagation axis
    assert torch.equal(p["vel"][:, 1], torch.full((gen.num_particles,), float(orientation), dtype=torch.float64))
    assert not p["vel"][:, 0].any()
    # after the initial deposition particles sit on lattice sites
    assert torch.equal(p["pos_new"], torch.floor(p["pos_new"]))
    # the deposited density reproduces the Gauss-law charge
    target = gen.poisson_solver.gauss_constraint_field()
    assert torch.allclose(grid.rho, target, atol=1e-8)
    assert float((grid.gauss_constraint() - grid.rho).abs().max()) < 1e-8


def test_initialize_transverse_density_is_smeared_point_charges():
    sim, gen = _initialized(2)
    density = gen.transverse_charge_density
    assert density.shape == (8, 3)
    assert float(density[2, 0]) == 1.0
    assert float(density[5, 0]) == pytest.approx(-0.5)
    assert float(density[6, 0]) == pytest.approx(-0.5)
    assert float(density[:, 0].sum()) == pytest.approx(0.0, abs=1e-15)


def test_initialize_rejects_bad_point_charge():
    sim = _sim(2, num_cells=(8, 32))
    gen = ParticleLCCurrent(1, 1, 16.0, 1.5)
    gen.add_charge([2.0, 1.0], [1.0, 0.0, 0.0], 1.0)
    with pytest.raises(ValueError, match="transverse coordinates"):
        gen.initialize_current(sim)


def test_monopole_removal_option():
    sim = _sim(1, num_cells=(8, 32))
    gen = ParticleLCCurrent(1, 1, 16.0, 1.5, remove_monopole=True)
    gen.add_charge([2.0], [1.0], 1.0)
    gen.initialize_current(sim)
    assert float(gen.transverse_charge_density.sum()) == pytest.approx(0.0, abs=1e-14)


def test_threshold_limits_sampling():
    _, loose = _initialized(1)
    sim = _sim(1, num_cells=(8, 32))
    strict = ParticleLCCurrent(1, 1, 16.0, 1.5, charge_threshold=1e-4)
    strict.add_charge([2.0], [1.0], 1.0)
    strict.add_charge([5.5], [1.0], -1.0)
    strict.initialize_current(sim)
    assert 0 < strict.num_particles < loose.num_particles
