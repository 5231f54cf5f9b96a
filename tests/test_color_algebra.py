"""Tests for the batched U(1)/SU(N) color algebra.

These tests run on CPU in float64 and validate:
- Generator normalization tr(t^a t^b) = norm δ^ab.
- exp/log are inverse on the principal branch.
- Links are unitary with unit determinant (SU(N)).
- The adjoint action preserves the invariant square and is trivial for U(1).
- The plaquette projection recovers small algebra elements.
"""

from __future__ import annotations

import pytest
import torch

from colorpic.kernels.color import ColorAlgebra, gell_mann_matrices


def _random_algebra(alg: ColorAlgebra, *shape: int, scale: float = 1.0, seed: int = 0) -> torch.Tensor:
    g = torch.Generator().manual_seed(seed)
    return scale * torch.randn(*shape, alg.num_components, generator=g, dtype=torch.float64)


@pytest.mark.parametrize("n", [2, 3, 4])
def test_generator_normalization(n):
    alg = ColorAlgebra(n)
    t = alg.generators
    gram = torch.einsum("aij,bji->ab", t, t)
    eye = torch.eye(alg.num_components, dtype=torch.float64)
    assert torch.allclose(gram.real, alg.norm * eye, atol=1e-14)
    assert float(gram.imag.abs().max()) < 1e-14
    # hermitian and traceless
    assert torch.allclose(t, t.transpose(-2, -1).conj())
    assert torch.allclose(torch.diagonal(t, dim1=-2, dim2=-1).sum(-1), torch.zeros(alg.num_components, dtype=t.dtype))


def test_gell_mann_su2_is_pauli():
    s = gell_mann_matrices(2)
    pauli = torch.tensor(
        [[[0, 1], [1, 0]], [[0, -1j], [1j, 0]], [[1, 0], [0, -1]]],
        dtype=torch.complex128,
    )
    assert torch.equal(s, pauli)


def test_gell_mann_rejects_small_n():
    with pytest.raises(ValueError):
        gell_mann_matrices(1)


def test_num_components():
    assert ColorAlgebra(1).num_components == 1
    assert ColorAlgebra(2).num_components == 3
    assert ColorAlgebra(3).num_components == 8
    with pytest.raises(ValueError):
        ColorAlgebra(0)


@pytest.mark.parametrize("n", [1, 2, 3])
def test_exp_log_inverse(n):
    alg = ColorAlgebra(n)
    a = _random_algebra(alg, 64, scale=0.7)
    u = alg.get_link(a)
    back = alg.get_algebra_element(u)
    assert torch.allclose(back, a, atol=1e-10)


@pytest.mark.parametrize("n", [2, 3])
def test_links_are_special_unitary(n):
    alg = ColorAlgebra(n)
    u = alg.get_link(_random_algebra(alg, 32, scale=2.0))
    eye = alg.group_identity(32)
    assert torch.allclose(u @ alg.adj(u), eye, atol=1e-12)
    det = torch.linalg.det(u)
    assert torch.allclose(det, torch.ones_like(det), atol=1e-12)


def test_su2_closed_form_matches_matrix_exp():
    alg = ColorAlgebra(2)
    a = _random_algebra(alg, 16, scale=3.0)
    ref = torch.linalg.matrix_exp(1j * alg.to_matrix(a))
    assert torch.allclose(alg.get_link(a), ref, atol=1e-12)


def test_zero_algebra_element_gives_identity():
    for n in (1, 2, 3):
        alg = ColorAlgebra(n)
        u = alg.get_link(alg.algebra_zero(5))
        assert torch.allclose(u, alg.group_identity(5), atol=1e-15)
        assert torch.allclose(alg.get_algebra_element(alg.group_identity(5)), alg.algebra_zero(5), atol=1e-15)


@pytest.mark.parametrize("n", [2, 3])
def test_act_preserves_square(n):
    alg = ColorAlgebra(n)
    a = _random_algebra(alg, 20, seed=1)
    u = alg.get_link(_random_algebra(alg, 20, scale=1.5, seed=2))
    rotated = alg.act(a, u)
    assert torch.allclose(alg.square(rotated), alg.square(a), atol=1e-12)
    # act with U then U^† is the identity
    assert torch.allclose(alg.act(rotated, alg.adj(u)), a, atol=1e-12)


def test_act_is_trivial_for_u1():
    alg = ColorAlgebra(1)
    a = _random_algebra(alg, 10)
    u = alg.get_link(_random_algebra(alg, 10, seed=3))
    out = alg.act(a, u)
    assert torch.equal(out, a)
    assert out is not a


@pytest.mark.parametrize("n", [1, 2, 3])
def test_project_recovers_small_elements(n):
    alg = ColorAlgebra(n)
    a = _random_algebra(alg, 8, scale=1e-6)
    assert torch.allclose(alg.project(alg.get_link(a)), a, rtol=1e-6, atol=1e-18)


@pytest.mark.parametrize("n", [1, 2])
def test_scale_link(n):
    alg = ColorAlgebra(n)
    a = _random_algebra(alg, 6, scale=0.5)
    u = alg.get_link(a)
    d = torch.linspace(0.0, 1.0, 6, dtype=torch.float64)
    assert torch.allclose(alg.scale_link(u, d), alg.get_link(a * d[:, None]), atol=1e-12)
    assert torch.allclose(alg.scale_link(u, 1.0), u, atol=1e-12)


def test_get_link_validates_components():
    alg = ColorAlgebra(2)
    with pytest.raises(ValueError, match="3 algebra components"):
        alg.get_link(torch.zeros(4, 2, dtype=torch.float64))
