"""Instrument protocol for lattice runs.

Instruments observe the simulation after every step; they never mutate it.
"""

from typing import Protocol

from tensordict import TensorDict


class InstrumentProtocol(Protocol):
    def update(self, state: TensorDict) -> None:
        """Update the instrument with the current (post-step) simulation state."""
        raise NotImplementedError("Subclasses must implement this method")
