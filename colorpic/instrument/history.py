"""State-history instrument for lattice runs."""

from __future__ import annotations

from tensordict import TensorDict


class StateHistoryInstrument:
    """Capture per-step state snapshots.

    - append snapshots to an in-memory list (`history`)
    - optional downsampling via `sample_every`
    - optional cap via `max_frames` (oldest frames are dropped)
    """

    def __init__(self, *, sample_every: int = 1, max_frames: int | None = None) -> None:
        if int(sample_every) < 1:
            raise ValueError(f"sample_every must be >= 1, got {sample_every}")
        self.sample_every = int(sample_every)
        self.max_frames = max_frames
        self.history: list[TensorDict] = []
        self._seen = 0

    def update(self, state: TensorDict) -> None:
        seen = self._seen
        self._seen += 1
        if seen % self.sample_every:
            return
        self.history.append(state)
        if self.max_frames is not None and len(self.history) > int(self.max_frames):
            del self.history[0]

    def series(self, key: str) -> list:
        """Values of one state entry across recorded frames."""
        return [frame[key] for frame in self.history]
