from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Dict, Optional, Sequence, Tuple, Type, Union

from pydantic import ValidationError

from motion_synth.core.constants import DEFAULT_FREQUENCY, SCREEN_SPACE, WORLD_SPACE
from motion_synth.core.envelope import ChordState, flatten
from motion_synth.core.events import MotionFrame, OscillatorParams, ParameterSet, mute_parameters
from motion_synth.models.config import ChordPreset, ConfigurationError, MappingConfig, ValueRange

logger = logging.getLogger(__name__)

RangeLike = Union[ValueRange, Tuple[float, float]]


def as_range(value: RangeLike, label: str) -> ValueRange:
    if isinstance(value, ValueRange):
        return value
    try:
        low, high = value
        return ValueRange(min=low, max=high)
    except (TypeError, ValueError, ValidationError) as exc:
        raise ConfigurationError(f"invalid {label}: {value!r}") from exc


def height_to_frequency(height: float, height_range: ValueRange, frequency_range: ValueRange) -> float:
    """Linear, inverted map: the top of the height range gives the lowest pitch."""
    normalized = height_range.normalize(height)
    return frequency_range.min + (1.0 - normalized) * frequency_range.span


def velocity_to_amplitude(speed: float, velocity_range: ValueRange) -> float:
    # Square-root curve for a perceptually smoother response.
    return math.sqrt(velocity_range.normalize(speed))


def _check_noise_floor(noise_floor: float) -> float:
    if not 0.0 <= float(noise_floor) < 1.0:
        raise ConfigurationError(f"noise_floor must lie in [0, 1), got {noise_floor}")
    return float(noise_floor)


def _check_dt(envelope_dt_s: Optional[float]) -> Optional[float]:
    if envelope_dt_s is not None and float(envelope_dt_s) <= 0.0:
        raise ConfigurationError(f"envelope_dt_s must be positive, got {envelope_dt_s}")
    return None if envelope_dt_s is None else float(envelope_dt_s)


class MappingStrategy(ABC):
    """Maps a motion frame to oscillator parameters.

    Subclasses implement ``_map`` and return None when a required joint is
    missing; ``map`` then holds the previous pitch and mutes it. Strategies
    own their envelope state and never raise on per-frame conditions.
    """

    name: str = ""

    def map(self, frame: Optional[MotionFrame], previous: Sequence[OscillatorParams] = ()) -> ParameterSet:
        if not isinstance(frame, MotionFrame):
            return self._silence(previous)
        params = self._map(frame)
        if params is None:
            logger.debug("%s: required joint missing at t=%s, muting", self.name, frame.timestamp)
            return self._silence(previous)
        if not all(p.is_finite() for p in params):
            logger.debug("%s: non-finite parameters at t=%s, muting", self.name, frame.timestamp)
            return self._silence(previous)
        return params

    @abstractmethod
    def _map(self, frame: MotionFrame) -> Optional[ParameterSet]:
        ...

    @abstractmethod
    def rest(self) -> ParameterSet:
        """Silent parameters, used before any previous set exists."""

    def _silence(self, previous: Sequence[OscillatorParams]) -> ParameterSet:
        if previous:
            return mute_parameters(previous)
        return self.rest()


class EnvelopeStrategy(MappingStrategy):
    noise_floor: float = 0.1

    def __init__(
        self,
        velocity_range: RangeLike = (0.2, 0.5),
        envelope_dt_s: Optional[float] = 1.0 / 30.0,
        noise_floor: Optional[float] = None,
    ):
        self.velocity_range = as_range(velocity_range, "velocity_range")
        self.envelope_dt_s = _check_dt(envelope_dt_s)
        if noise_floor is not None:
            self.noise_floor = _check_noise_floor(noise_floor)

    def _dt(self, frame: MotionFrame) -> float:
        if self.envelope_dt_s is not None:
            return self.envelope_dt_s
        return max(0.0, float(frame.delta_time))

    def _drive(self, speed: float) -> float:
        return self.velocity_range.normalize(speed)


class ThereminStrategy(MappingStrategy):
    """Single voice: joint height sets pitch, joint speed sets volume."""

    name = "theremin"

    def __init__(
        self,
        frequency_range: RangeLike = (220.0, 880.0),
        height_range: RangeLike = (-2.0, -0.5),
        velocity_range: RangeLike = (0.0, 5.0),
        joint: str = "left_wrist",
    ):
        self.frequency_range = as_range(frequency_range, "frequency_range")
        self.height_range = as_range(height_range, "height_range")
        self.velocity_range = as_range(velocity_range, "velocity_range")
        self.joint = joint

    @classmethod
    def from_config(cls, cfg: MappingConfig) -> "ThereminStrategy":
        return cls(cfg.frequency_range, cfg.height_range, cfg.velocity_range, joint=cfg.pitch_joint)

    def _map(self, frame: MotionFrame) -> Optional[ParameterSet]:
        kin = frame.kinematics(self.joint, WORLD_SPACE)
        if kin is None:
            return None
        frequency = height_to_frequency(float(kin.position[1]), self.height_range, self.frequency_range)
        amplitude = velocity_to_amplitude(kin.speed, self.velocity_range)
        return (OscillatorParams(frequency=frequency, amplitude=amplitude, phase=0.0),)

    def rest(self) -> ParameterSet:
        return (OscillatorParams(frequency=DEFAULT_FREQUENCY, amplitude=0.0, phase=0.0),)


class WristsHarmonicsStrategy(MappingStrategy):
    """One point's height sets the fundamental, another's sets a shared volume."""

    name = "wrists_harmonics"

    def __init__(
        self,
        frequency_range: RangeLike = (220.0, 880.0),
        height_range: RangeLike = (-2.0, -0.5),
        harmonic_multipliers: Sequence[float] = (1.0, 2.0, 4.0, 8.0),
        pitch_joint: str = "left_wrist",
        volume_joint: str = "right_wrist",
    ):
        self.frequency_range = as_range(frequency_range, "frequency_range")
        self.height_range = as_range(height_range, "height_range")
        if not harmonic_multipliers or any(m <= 0 for m in harmonic_multipliers):
            raise ConfigurationError("harmonic_multipliers must be a nonempty list of positive ratios")
        self.harmonic_multipliers = tuple(float(m) for m in harmonic_multipliers)
        self.pitch_joint = pitch_joint
        self.volume_joint = volume_joint

    @classmethod
    def from_config(cls, cfg: MappingConfig) -> "WristsHarmonicsStrategy":
        return cls(
            cfg.frequency_range,
            cfg.height_range,
            cfg.harmonic_multipliers,
            pitch_joint=cfg.pitch_joint,
            volume_joint=cfg.volume_joint,
        )

    def _map(self, frame: MotionFrame) -> Optional[ParameterSet]:
        pitch = frame.kinematics(self.pitch_joint, WORLD_SPACE)
        volume = frame.kinematics(self.volume_joint, WORLD_SPACE)
        if pitch is None or volume is None:
            return None
        fundamental = height_to_frequency(float(pitch.position[1]), self.height_range, self.frequency_range)
        level = math.sqrt(1.0 - self.height_range.normalize(float(volume.position[1])))
        amplitude = level / len(self.harmonic_multipliers)
        return tuple(
            OscillatorParams(frequency=fundamental * multiplier, amplitude=amplitude, phase=0.0)
            for multiplier in self.harmonic_multipliers
        )

    def rest(self) -> ParameterSet:
        return tuple(
            OscillatorParams(frequency=DEFAULT_FREQUENCY * multiplier, amplitude=0.0, phase=0.0)
            for multiplier in self.harmonic_multipliers
        )


class ChordStrategy(EnvelopeStrategy):
    """A single harmonic voice excited by the speed of one joint.

    The fundamental flips between two pitches with the sign of the joint's
    vertical velocity.
    """

    name = "chord"

    def __init__(
        self,
        chord: ChordPreset,
        alt_fundamental: float = 660.0,
        velocity_range: RangeLike = (0.2, 0.5),
        joint: str = "right_wrist",
        envelope_dt_s: Optional[float] = 1.0 / 30.0,
        noise_floor: Optional[float] = None,
    ):
        super().__init__(velocity_range, envelope_dt_s, noise_floor)
        if alt_fundamental <= 0:
            raise ConfigurationError("alt_fundamental must be positive")
        self.state = ChordState.from_preset(chord)
        self.base_fundamental = self.state.fundamental
        self.alt_fundamental = float(alt_fundamental)
        self.joint = joint

    @classmethod
    def from_config(cls, cfg: MappingConfig) -> "ChordStrategy":
        return cls(
            cfg.chord,
            alt_fundamental=cfg.chord_alt_fundamental,
            velocity_range=cfg.envelope_velocity_range,
            joint=cfg.trigger_joint,
            envelope_dt_s=cfg.envelope_dt_s,
            noise_floor=cfg.noise_floor,
        )

    def _map(self, frame: MotionFrame) -> Optional[ParameterSet]:
        kin = frame.kinematics(self.joint, WORLD_SPACE)
        if kin is None:
            return None
        self.state.fundamental = self.base_fundamental if kin.velocity[1] > 0 else self.alt_fundamental
        self.state.excite(self._drive(kin.speed), self._dt(frame), self.noise_floor)
        return tuple(self.state.parameters())

    def rest(self) -> ParameterSet:
        return tuple(self.state.rest())


class DualChordStrategy(EnvelopeStrategy):
    """Two harmonic voices, one per wrist, each with its own envelope."""

    name = "dual_chord"

    def __init__(
        self,
        left_chord: ChordPreset,
        right_chord: ChordPreset,
        velocity_range: RangeLike = (0.2, 0.5),
        joints: Tuple[str, str] = ("left_wrist", "right_wrist"),
        envelope_dt_s: Optional[float] = 1.0 / 30.0,
        noise_floor: Optional[float] = None,
    ):
        super().__init__(velocity_range, envelope_dt_s, noise_floor)
        self.voices = (ChordState.from_preset(left_chord), ChordState.from_preset(right_chord))
        self.joints = tuple(joints)

    @classmethod
    def from_config(cls, cfg: MappingConfig) -> "DualChordStrategy":
        return cls(
            cfg.left_chord,
            cfg.right_chord,
            velocity_range=cfg.envelope_velocity_range,
            envelope_dt_s=cfg.envelope_dt_s,
            noise_floor=cfg.noise_floor,
        )

    def _map(self, frame: MotionFrame) -> Optional[ParameterSet]:
        kinematics = [frame.kinematics(joint, WORLD_SPACE) for joint in self.joints]
        if any(kin is None for kin in kinematics):
            return None
        dt = self._dt(frame)
        normalization = 1.0 / len(self.voices)
        out = []
        for voice, kin in zip(self.voices, kinematics):
            voice.excite(self._drive(kin.speed), dt, self.noise_floor)
            out.append(voice.parameters(normalization))
        return flatten(out)

    def rest(self) -> ParameterSet:
        return flatten([voice.rest() for voice in self.voices])


class ChordFieldStrategy(EnvelopeStrategy):
    """Fixed chord anchors along the screen's x axis, struck by passing wrists.

    Each limb's excitation of an anchor is scaled by how close it is
    horizontally; contributions of both limbs are summed before decay.
    """

    name = "chord_field"
    noise_floor = 0.01

    def __init__(
        self,
        anchors: Sequence[ChordPreset],
        velocity_range: RangeLike = (0.2, 0.5),
        max_distance: float = 0.05,
        joints: Sequence[str] = ("left_wrist", "right_wrist"),
        envelope_dt_s: Optional[float] = 1.0 / 30.0,
        noise_floor: Optional[float] = None,
    ):
        super().__init__(velocity_range, envelope_dt_s, noise_floor)
        if not anchors:
            raise ConfigurationError("chord field needs at least one anchor")
        if any(anchor.x is None for anchor in anchors):
            raise ConfigurationError("every chord field anchor needs an x position")
        if float(max_distance) <= 0.0:
            raise ConfigurationError(f"max_distance must be positive, got {max_distance}")
        self.voices = tuple(ChordState.from_preset(anchor) for anchor in anchors)
        self.max_distance = float(max_distance)
        self.joints = tuple(joints)

    @classmethod
    def from_config(cls, cfg: MappingConfig) -> "ChordFieldStrategy":
        return cls(
            cfg.field_anchors,
            velocity_range=cfg.envelope_velocity_range,
            max_distance=cfg.field_max_distance,
            envelope_dt_s=cfg.envelope_dt_s,
            noise_floor=cfg.noise_floor,
        )

    def proximity(self, anchor_x: float, x: float) -> float:
        return 1.0 - min(1.0, abs(anchor_x - x) / self.max_distance)

    def _map(self, frame: MotionFrame) -> Optional[ParameterSet]:
        limbs = [frame.kinematics(joint, SCREEN_SPACE) for joint in self.joints]
        if any(kin is None for kin in limbs):
            return None
        drives = [(self._drive(kin.speed), float(kin.position[0])) for kin in limbs]
        dt = self._dt(frame)
        normalization = 1.0 / len(self.voices)
        out = []
        for voice in self.voices:
            drive = sum(level * self.proximity(voice.x, x) for level, x in drives)
            voice.excite(drive, dt, self.noise_floor)
            out.append(voice.parameters(normalization))
        return flatten(out)

    def rest(self) -> ParameterSet:
        return flatten([voice.rest() for voice in self.voices])


mapping_strategies: Dict[str, Type[MappingStrategy]] = {
    ThereminStrategy.name: ThereminStrategy,
    WristsHarmonicsStrategy.name: WristsHarmonicsStrategy,
    ChordStrategy.name: ChordStrategy,
    DualChordStrategy.name: DualChordStrategy,
    ChordFieldStrategy.name: ChordFieldStrategy,
}


def build_strategy(cfg: MappingConfig, name: Optional[str] = None) -> MappingStrategy:
    name = name or cfg.strategy
    if name not in mapping_strategies:
        raise ConfigurationError(
            f"Unknown mapping strategy: {name} (available: {', '.join(sorted(mapping_strategies))})"
        )
    return mapping_strategies[name].from_config(cfg)
