from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np

from motion_synth.core.events import OscillatorParams, ParameterSet
from motion_synth.models.config import ChordPreset, ConfigurationError


def envelope_step(
    amplitude: float,
    drive: float,
    k_attack: float,
    k_release: float,
    dt: float,
    noise_floor: float,
) -> float:
    """One attack/release update of an envelope follower.

    ``drive`` is the (already normalized, possibly summed) excitation. The
    result is clamped to [0, 1] and snapped to exactly 0 below the floor.
    """
    value = amplitude + k_attack * drive - k_release * dt * amplitude
    value = min(1.0, max(0.0, value))
    if value < noise_floor:
        return 0.0
    return value


@dataclass
class ChordState:
    fundamental: float
    harmonics: np.ndarray
    relative_amplitudes: np.ndarray
    phases: np.ndarray
    k_attack: np.ndarray
    k_release: np.ndarray
    amplitudes: np.ndarray = field(default=None)
    # Screen-space anchor for spatially gated voices.
    x: float | None = None

    def __post_init__(self):
        self.harmonics = np.asarray(self.harmonics, dtype=float)
        self.relative_amplitudes = np.asarray(self.relative_amplitudes, dtype=float)
        self.phases = np.asarray(self.phases, dtype=float)
        self.k_attack = np.asarray(self.k_attack, dtype=float)
        self.k_release = np.asarray(self.k_release, dtype=float)
        sizes = {
            self.harmonics.size,
            self.relative_amplitudes.size,
            self.phases.size,
            self.k_attack.size,
            self.k_release.size,
        }
        if len(sizes) != 1 or 0 in sizes:
            raise ConfigurationError("chord lists must share the same nonzero length")
        if self.fundamental <= 0 or np.any(self.harmonics <= 0):
            raise ConfigurationError("chord frequencies must be positive")
        if self.amplitudes is None:
            self.amplitudes = np.zeros(self.harmonics.size, dtype=float)
        else:
            self.amplitudes = np.asarray(self.amplitudes, dtype=float)

    @classmethod
    def from_preset(cls, preset: ChordPreset, fundamental: float | None = None) -> "ChordState":
        return cls(
            fundamental=float(fundamental if fundamental is not None else preset.fundamental),
            harmonics=preset.harmonics,
            relative_amplitudes=preset.relative_amplitudes,
            phases=preset.phases,
            k_attack=preset.k_attack,
            k_release=preset.k_release,
            x=preset.x,
        )

    @property
    def size(self) -> int:
        return int(self.harmonics.size)

    def excite(self, drive: float, dt: float, noise_floor: float) -> np.ndarray:
        """Advance every harmonic's envelope by one mapping call."""
        for idx in range(self.size):
            self.amplitudes[idx] = envelope_step(
                float(self.amplitudes[idx]),
                drive,
                float(self.k_attack[idx]),
                float(self.k_release[idx]),
                dt,
                noise_floor,
            )
        return self.amplitudes

    def parameters(self, normalization: float = 1.0) -> List[OscillatorParams]:
        return [
            OscillatorParams(
                frequency=float(ratio * self.fundamental),
                amplitude=float(weight * amplitude * normalization),
                phase=float(phase),
            )
            for ratio, weight, amplitude, phase in zip(
                self.harmonics, self.relative_amplitudes, self.amplitudes, self.phases
            )
        ]

    def rest(self) -> List[OscillatorParams]:
        return [
            OscillatorParams(frequency=float(ratio * self.fundamental), amplitude=0.0, phase=float(phase))
            for ratio, phase in zip(self.harmonics, self.phases)
        ]

    def reset(self) -> None:
        self.amplitudes[:] = 0.0


def flatten(voices: Sequence[Sequence[OscillatorParams]]) -> ParameterSet:
    return tuple(param for voice in voices for param in voice)
