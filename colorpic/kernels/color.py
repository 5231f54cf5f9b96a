"""Batched color algebra: u(1), su(2) and su(N) with their groups (torch).

Algebra elements are real component tensors of shape (..., C) and group
elements are complex matrices of shape (..., N, N), where N is the number of
colors and C the number of algebra components (1 for U(1), N²-1 otherwise).

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

import math
from typing import Optional

import torch

__all__ = [
    "ColorAlgebra",
    "gell_mann_matrices",
]


def gell_mann_matrices(n: int, *, dtype: torch.dtype = torch.complex128) -> torch.Tensor:
    """Generalized Gell-Mann matrices λ^a for su(n), shape (n²-1, n, n).

    Ordering follows the standard convention, so n=2 gives the Pauli matrices
    (σ1, σ2, σ3) and n=3 gives λ1..λ8.
    """
    if n < 2:
        raise ValueError(f"su(n) requires n >= 2, got {n}")
    mats: list[torch.Tensor] = []
    for k in range(1, n):
        for j in range(k):
            sym = torch.zeros(n, n, dtype=dtype)
            sym[j, k] = 1.0
            sym[k, j] = 1.0
            mats.append(sym)
            anti = torch.zeros(n, n, dtype=dtype)
            anti[j, k] = -1j
            anti[k, j] = 1j
            mats.append(anti)
        diag = torch.zeros(n, n, dtype=dtype)
        scale = math.sqrt(2.0 / (k * (k + 1)))
        for l in range(k):
            diag[l, l] = scale
        diag[k, k] = -k * scale
        mats.append(diag)
    return torch.stack(mats, dim=0)


class ColorAlgebra:
    """Lie algebra / Lie group arithmetic for a U(1) or SU(N) gauge theory.

    # [CHOICE] exponential map
    # [FORMULA] U = exp(i a^k t^k), t^k = λ^k / 2 (SU(N)), t = 1 (U(1))
    # [REASON] links are U_i(x) = exp(i g as A_i(x)); algebra components are real
    # [NOTES] tr(t^a t^b) = norm δ^ab with norm = 1/2 (SU(N)) or 1 (U(1))
    """

    def __init__(
        self,
        num_colors: int,
        *,
        device: Optional[torch.device | str] = None,
        dtype: torch.dtype = torch.float64,
    ) -> None:
        if int(num_colors) < 1:
            raise ValueError(f"num_colors must be >= 1, got {num_colors}")
        self.num_colors = int(num_colors)
        self.device = torch.device(device) if device is not None else torch.device("cpu")
        self.dtype = dtype
        self.cdtype = torch.complex128 if dtype == torch.float64 else torch.complex64

        if self.num_colors == 1:
            self.num_components = 1
            gens = torch.ones(1, 1, 1, dtype=self.cdtype)
            self.norm = 1.0
        else:
            self.num_components = self.num_colors * self.num_colors - 1
            gens = 0.5 * gell_mann_matrices(self.num_colors, dtype=self.cdtype)
            self.norm = 0.5
        self.generators = gens.to(self.device)

    def __repr__(self) -> str:
        name = "U(1)" if self.is_abelian else f"SU({self.num_colors})"
        return f"ColorAlgebra({name}, components={self.num_components})"

    @property
    def is_abelian(self) -> bool:
        return self.num_colors == 1

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def algebra_zero(self, *shape: int) -> torch.Tensor:
        return torch.zeros(*shape, self.num_components, device=self.device, dtype=self.dtype)

    def group_identity(self, *shape: int) -> torch.Tensor:
        n = self.num_colors
        eye = torch.eye(n, device=self.device, dtype=self.cdtype)
        return eye.expand(*shape, n, n).clone()

    # ------------------------------------------------------------------
    # Matrix representation
    # ------------------------------------------------------------------

    def to_matrix(self, a: torch.Tensor) -> torch.Tensor:
        """Hermitian matrix a^k t^k."""
        return torch.einsum("...k,kij->...ij", a.to(self.cdtype), self.generators)

    def from_matrix(self, m: torch.Tensor) -> torch.Tensor:
        """Components Re tr(t^k m) / norm (inverse of `to_matrix` on hermitian input)."""
        tr = torch.einsum("kij,...ji->...k", self.generators, m)
        return tr.real.to(self.dtype) / self.norm

    # ------------------------------------------------------------------
    # Exponential / logarithm
    # ------------------------------------------------------------------

    def get_link(self, a: torch.Tensor) -> torch.Tensor:
        """Group element exp(i a^k t^k) for algebra components a (..., C)."""
        if a.shape[-1] != self.num_components:
            raise ValueError(f"expected {self.num_components} algebra components, got {a.shape[-1]}")
        if self.num_colors == 1:
            return torch.exp(1j * a.to(self.dtype))[..., None].to(self.cdtype)
        if self.num_colors == 2:
            # [CHOICE] closed-form SU(2) exponential
            # [FORMULA] exp(i θ n·σ/2) = cos(θ/2) + i sin(θ/2) n·σ
            # [REASON] exact to rounding, cheaper than a generic matrix exponential
            theta = torch.linalg.vector_norm(a, dim=-1)
            safe = torch.where(theta > 0, theta, torch.ones_like(theta))
            s = torch.where(theta > 0, torch.sin(0.5 * theta) / safe, torch.full_like(theta, 0.5))
            c = torch.cos(0.5 * theta)
            b = a * s[..., None]
            b1, b2, b3 = b[..., 0], b[..., 1], b[..., 2]
            u00 = torch.complex(c, b3)
            u01 = torch.complex(b2, b1)
            u10 = torch.complex(-b2, b1)
            u11 = torch.complex(c, -b3)
            row0 = torch.stack([u00, u01], dim=-1)
            row1 = torch.stack([u10, u11], dim=-1)
            return torch.stack([row0, row1], dim=-2).to(self.cdtype)
        return torch.linalg.matrix_exp(1j * self.to_matrix(a))

    def get_algebra_element(self, u: torch.Tensor) -> torch.Tensor:
        """Algebra components of log(U) / i (principal branch)."""
        if self.num_colors == 1:
            return torch.angle(u[..., 0, 0])[..., None].to(self.dtype)
        if self.num_colors == 2:
            u0 = 0.5 * (u[..., 0, 0] + u[..., 1, 1]).real
            b1 = 0.5 * (u[..., 0, 1] + u[..., 1, 0]).imag
            b2 = 0.5 * (u[..., 0, 1] - u[..., 1, 0]).real
            b3 = 0.5 * (u[..., 0, 0] - u[..., 1, 1]).imag
            b = torch.stack([b1, b2, b3], dim=-1).to(self.dtype)
            nb = torch.linalg.vector_norm(b, dim=-1)
            safe = torch.where(nb > 0, nb, torch.ones_like(nb))
            ratio = torch.where(nb > 0, 2.0 * torch.atan2(nb, u0.to(self.dtype)) / safe, torch.full_like(nb, 2.0))
            return b * ratio[..., None]
        # [NOTES] generic SU(N): diagonalize; eigenvalues lie on the unit circle
        w, v = torch.linalg.eig(u)
        phases = torch.angle(w).to(self.cdtype)
        h = v @ torch.diag_embed(phases) @ torch.linalg.inv(v)
        return self.from_matrix(h)

    def scale_link(self, u: torch.Tensor, d: torch.Tensor | float) -> torch.Tensor:
        """Fractional link exp(d · log U)."""
        a = self.get_algebra_element(u)
        if isinstance(d, torch.Tensor):
            d = d.to(self.dtype)[..., None]
        return self.get_link(a * d)

    # ------------------------------------------------------------------
    # Group / adjoint arithmetic
    # ------------------------------------------------------------------

    @staticmethod
    def mult(u: torch.Tensor, v: torch.Tensor) -> torch.Tensor:
        return u @ v

    @staticmethod
    def adj(u: torch.Tensor) -> torch.Tensor:
        return u.transpose(-2, -1).conj()

    def act(self, a: torch.Tensor, u: torch.Tensor) -> torch.Tensor:
        """Adjoint action U a U^† on algebra components."""
        if self.is_abelian:
            return a.clone()
        m = self.to_matrix(a)
        return self.from_matrix(u @ m @ self.adj(u))

    @staticmethod
    def square(a: torch.Tensor) -> torch.Tensor:
        return (a * a).sum(dim=-1)

    def project(self, u: torch.Tensor) -> torch.Tensor:
        """Anti-hermitian projection Im tr(t^k U) / norm.

        For U ≈ 1 + i a^k t^k this returns a; it is the lattice force term used
        by the Yang-Mills leapfrog.
        """
        tr = torch.einsum("kij,...ji->...k", self.generators, u)
        return tr.imag.to(self.dtype) / self.norm
