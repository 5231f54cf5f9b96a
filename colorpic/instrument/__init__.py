from __future__ import annotations

from colorpic.instrument.history import StateHistoryInstrument
from colorpic.instrument.observables import electric_energy, gauss_violation, magnetic_energy, magnetic_field
from colorpic.instrument.protocol import InstrumentProtocol

__all__ = [
    "InstrumentProtocol",
    "StateHistoryInstrument",
    "electric_energy",
    "gauss_violation",
    "magnetic_energy",
    "magnetic_field",
]
