from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Sequence

import numpy as np

from motion_synth.core.constants import DEFAULT_AMPLITUDE, DEFAULT_FREQUENCY, DEFAULT_PHASE
from motion_synth.core.events import OscillatorParams, ParameterSet, mute_parameters
from motion_synth.models.config import ConfigurationError, SynthesisConfig

TWO_PI = 2.0 * math.pi


class ParameterChannel:
    """Single-slot, latest-value-wins handoff between the two timing domains.

    ``deque.append`` and ``deque.popleft`` are atomic, so neither side ever
    waits on the other; an unread value is simply replaced by a newer one.
    """

    def __init__(self):
        self._slot: Deque[ParameterSet] = deque(maxlen=1)
        # Producer-side record of the last published set; never read by the consumer.
        self.last_published: ParameterSet = ()

    def publish(self, params: Sequence[OscillatorParams]) -> None:
        params = tuple(params)
        self.last_published = params
        self._slot.append(params)

    def take(self) -> Optional[ParameterSet]:
        try:
            return self._slot.popleft()
        except IndexError:
            return None

    @property
    def pending(self) -> bool:
        return bool(self._slot)


@dataclass
class Wave:
    target_frequency: float = DEFAULT_FREQUENCY
    target_amplitude: float = DEFAULT_AMPLITUDE
    current_frequency: float = DEFAULT_FREQUENCY
    current_amplitude: float = DEFAULT_AMPLITUDE
    phase_offset: float = DEFAULT_PHASE
    accumulator: float = 0.0

    def retarget(self, params: OscillatorParams) -> None:
        frequency, amplitude, phase = (float(v) for v in params)
        if not (math.isfinite(frequency) and frequency > 0.0 and math.isfinite(amplitude) and math.isfinite(phase)):
            # Unusable target: hold the pitch and fade out.
            self.target_amplitude = 0.0
            return
        self.target_frequency = frequency
        self.target_amplitude = min(1.0, max(0.0, amplitude))
        self.phase_offset = phase

    def glide(self, smoothing_factor: float) -> None:
        self.current_frequency += (self.target_frequency - self.current_frequency) * smoothing_factor
        self.current_amplitude += (self.target_amplitude - self.current_amplitude) * smoothing_factor


class OscillatorBank:
    """Additive bank of sine oscillators rendered one output buffer at a time.

    New parameter sets are picked up only at buffer boundaries. Frequency and
    amplitude glide toward their targets once per buffer, which spreads the
    low-rate parameter steps over several buffers and keeps the output free
    of clicks.
    """

    def __init__(
        self,
        sample_rate: int = 44100,
        smoothing_factor: float = 0.1,
        max_block: int = 4096,
        channel: Optional[ParameterChannel] = None,
    ):
        if int(sample_rate) <= 0:
            raise ConfigurationError(f"sample_rate must be positive, got {sample_rate}")
        if not 0.0 < float(smoothing_factor) <= 1.0:
            raise ConfigurationError(f"smoothing_factor must lie in (0, 1], got {smoothing_factor}")
        if int(max_block) <= 0:
            raise ConfigurationError(f"max_block must be positive, got {max_block}")
        self.sample_rate = int(sample_rate)
        self.smoothing_factor = float(smoothing_factor)
        self.channel = channel or ParameterChannel()
        self.waves: List[Wave] = [Wave()]
        self._allocate(int(max_block))

    @classmethod
    def from_config(cls, cfg: SynthesisConfig, channel: Optional[ParameterChannel] = None) -> "OscillatorBank":
        return cls(
            sample_rate=cfg.sample_rate,
            smoothing_factor=cfg.smoothing_factor,
            max_block=max(cfg.blocksize, 4096),
            channel=channel,
        )

    def _allocate(self, frames: int) -> None:
        self._ramp = np.arange(1, frames + 1, dtype=np.float64)
        self._phase = np.empty(frames, dtype=np.float64)
        self._mix = np.empty(frames, dtype=np.float64)

    @property
    def active_count(self) -> int:
        return sum(1 for wave in self.waves if wave.current_amplitude > 0.0 or wave.target_amplitude > 0.0)

    def submit(self, params: Sequence[OscillatorParams]) -> None:
        self.channel.publish(params)

    def silence(self) -> None:
        """Republish the last parameter set muted; the glide fades the output out.

        Works from the producer side of the channel only, so it is safe to call
        while the audio callback is running.
        """
        last = self.channel.last_published
        if last:
            self.channel.publish(mute_parameters(last))

    def _apply_pending(self) -> None:
        params = self.channel.take()
        if params is None:
            return
        if len(self.waves) != len(params):
            del self.waves[len(params):]
            while len(self.waves) < len(params):
                self.waves.append(Wave())
        for wave, param in zip(self.waves, params):
            wave.retarget(param)

    def process(self, out: np.ndarray) -> np.ndarray:
        """Render one mono buffer into ``out`` (any float dtype), in place."""
        frames = out.shape[0]
        if frames > self._ramp.shape[0]:
            self._allocate(frames)
        self._apply_pending()

        mix = self._mix[:frames]
        phase = self._phase[:frames]
        ramp = self._ramp[:frames]
        mix.fill(0.0)
        for wave in self.waves:
            wave.glide(self.smoothing_factor)
            increment = TWO_PI * wave.current_frequency / self.sample_rate
            # Sample n sits n increments past the accumulator; advance, then emit.
            np.multiply(ramp, increment, out=phase)
            phase += wave.accumulator + wave.phase_offset
            np.sin(phase, out=phase)
            phase *= wave.current_amplitude
            mix += phase
            wave.accumulator = math.fmod(wave.accumulator + increment * frames, TWO_PI)
        out[:] = mix
        return out

    def render(self, frames: int) -> np.ndarray:
        return self.process(np.zeros(frames, dtype=np.float32))
