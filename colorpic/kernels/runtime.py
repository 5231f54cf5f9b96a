"""Backend availability detection.

The solvers are written against float64/complex128 tensors, which rules out
Apple's MPS backend. CUDA is used when present, the CPU otherwise.
"""

from __future__ import annotations

import torch

__all__ = [
    "cuda_supported",
    "get_device",
    "resolve_device",
]


def cuda_supported() -> bool:
    try:
        return bool(torch.cuda.is_available())
    except Exception:
        return False


def get_device() -> str:
    """Get the device to use for the lattice simulation."""
    if cuda_supported():
        return "cuda"
    return "cpu"


def resolve_device(device: str | None) -> torch.device:
    """Validate a requested device; `None` picks the best available one."""
    if device is None:
        return torch.device(get_device())
    dev = torch.device(device)
    match dev.type:
        case "cpu":
            return dev
        case "cuda":
            if not cuda_supported():
                raise RuntimeError(f"device {device!r} requested but CUDA is not available")
            return dev
        case _:
            raise RuntimeError(f"device {device!r} does not support float64 lattice fields; use 'cpu' or 'cuda'")
