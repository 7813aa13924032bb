from __future__ import annotations

import math
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class ConfigurationError(ValueError):
    """Raised once at setup when a component is handed invalid settings."""


class ValueRange(BaseModel):
    min: float
    max: float

    @model_validator(mode="after")
    def _validate_bounds(self) -> "ValueRange":
        if not (math.isfinite(self.min) and math.isfinite(self.max)):
            raise ValueError("range bounds must be finite")
        if self.max <= self.min:
            raise ValueError(f"range max ({self.max}) must be greater than min ({self.min})")
        return self

    @property
    def span(self) -> float:
        return self.max - self.min

    def clamp(self, value: float) -> float:
        return max(self.min, min(self.max, float(value)))

    def normalize(self, value: float) -> float:
        return (self.clamp(value) - self.min) / self.span


class TrackingConfig(BaseModel):
    ema_alpha: float = Field(default=0.25, gt=0.0, le=1.0)
    history_size: int = Field(default=5, ge=1)
    first_frame_dt_s: float = Field(default=0.033, gt=0.0)
    track_screen_space: bool = True


class ChordPreset(BaseModel):
    fundamental: float = Field(gt=0.0)
    harmonics: list[float]
    relative_amplitudes: list[float]
    phases: list[float]
    k_attack: list[float]
    k_release: list[float]
    # Screen-space x of the anchor; only used by the spatially gated field.
    x: Optional[float] = None

    @model_validator(mode="after")
    def _validate_lengths(self) -> "ChordPreset":
        lengths = {
            len(self.harmonics),
            len(self.relative_amplitudes),
            len(self.phases),
            len(self.k_attack),
            len(self.k_release),
        }
        if len(lengths) != 1 or 0 in lengths:
            raise ValueError("chord preset lists must share the same nonzero length")
        if any(h <= 0 for h in self.harmonics):
            raise ValueError("harmonic ratios must be positive")
        if any(a < 0 or a > 1 for a in self.relative_amplitudes):
            raise ValueError("relative amplitudes must lie in [0, 1]")
        if any(k < 0 for k in self.k_attack + self.k_release):
            raise ValueError("attack/release constants must be nonnegative")
        return self


def _default_chord() -> ChordPreset:
    return ChordPreset(
        fundamental=440.0,
        harmonics=[1.0, 2.5, 5.0],
        relative_amplitudes=[0.5, 0.3, 0.2],
        phases=[0.0, math.pi / 2, math.pi],
        k_attack=[0.1, 0.1, 0.1],
        k_release=[6.0, 18.0, 36.0],
    )


def _default_left_chord() -> ChordPreset:
    return ChordPreset(
        fundamental=220.0,
        harmonics=[1.0, 2.0, 3.0, 4.0, 5.0],
        relative_amplitudes=[0.4, 0.4, 0.2, 0.2, 0.1],
        phases=[0.0, 0.0, 0.0, 0.0, 0.0],
        k_attack=[0.1, 0.1, 0.1, 0.1, 0.1],
        k_release=[4.0, 8.0, 16.0, 16.0, 16.0],
    )


def _default_field_anchors() -> list[ChordPreset]:
    anchors = []
    for x, fundamental, k_attack in ((0.2, 220.0, 0.1), (0.4, 500.0, 0.3), (0.6, 660.0, 0.1), (0.8, 900.0, 0.1)):
        anchors.append(
            ChordPreset(
                x=x,
                fundamental=fundamental,
                harmonics=[1.0, 2.5, 5.0],
                relative_amplitudes=[0.5, 0.3, 0.2],
                phases=[0.0, math.pi / 2, math.pi],
                k_attack=[k_attack] * 3,
                k_release=[6.0, 18.0, 36.0],
            )
        )
    return anchors


StrategyName = Literal["theremin", "wrists_harmonics", "chord", "dual_chord", "chord_field"]


class MappingConfig(BaseModel):
    strategy: StrategyName = "theremin"
    frequency_range: ValueRange = Field(default_factory=lambda: ValueRange(min=220.0, max=880.0))
    height_range: ValueRange = Field(default_factory=lambda: ValueRange(min=-2.0, max=-0.5))
    velocity_range: ValueRange = Field(default_factory=lambda: ValueRange(min=0.0, max=5.0))
    envelope_velocity_range: ValueRange = Field(
        default_factory=lambda: ValueRange(min=0.2, max=0.5)
    )
    pitch_joint: str = "left_wrist"
    volume_joint: str = "right_wrist"
    trigger_joint: str = "right_wrist"
    harmonic_multipliers: list[float] = Field(default_factory=lambda: [1.0, 2.0, 4.0, 8.0])
    # None means "use the measured frame delta" instead of a fixed step.
    envelope_dt_s: Optional[float] = Field(default=1.0 / 30.0, gt=0.0)
    noise_floor: Optional[float] = Field(default=None, ge=0.0, lt=1.0)
    chord: ChordPreset = Field(default_factory=_default_chord)
    chord_alt_fundamental: float = Field(default=660.0, gt=0.0)
    left_chord: ChordPreset = Field(default_factory=_default_left_chord)
    right_chord: ChordPreset = Field(default_factory=_default_chord)
    field_anchors: list[ChordPreset] = Field(default_factory=_default_field_anchors)
    field_max_distance: float = Field(default=0.05, gt=0.0)

    @field_validator("harmonic_multipliers")
    @classmethod
    def _validate_multipliers(cls, value: list[float]) -> list[float]:
        if not value or any(m <= 0 for m in value):
            raise ValueError("harmonic_multipliers must be a nonempty list of positive ratios")
        return value

    @field_validator("field_anchors")
    @classmethod
    def _validate_anchors(cls, value: list[ChordPreset]) -> list[ChordPreset]:
        if not value:
            raise ValueError("field_anchors must not be empty")
        if any(anchor.x is None for anchor in value):
            raise ValueError("every field anchor needs an x position")
        return value


class SynthesisConfig(BaseModel):
    sample_rate: int = Field(default=44100, gt=0)
    blocksize: int = Field(default=512, gt=0)
    smoothing_factor: float = Field(default=0.1, gt=0.0, le=1.0)
    # Buffers to keep the stream alive after muting, so the fade-out completes.
    fade_buffers: int = Field(default=32, ge=1)
    device: Optional[str] = None
    latency: str = "low"


class CameraConfig(BaseModel):
    index: int = 0
    mirror: bool = True
    target_fps: int = Field(default=30, gt=0)


class ModelConfig(BaseModel):
    path: str = "models/pose_landmarker_lite.task"
    min_detection_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    min_tracking_confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class AppConfig(BaseModel):
    tracking: TrackingConfig = Field(default_factory=TrackingConfig)
    mapping: MappingConfig = Field(default_factory=MappingConfig)
    synthesis: SynthesisConfig = Field(default_factory=SynthesisConfig)
    camera: CameraConfig = Field(default_factory=CameraConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigUpdate(BaseModel):
    tracking: Optional[TrackingConfig] = None
    mapping: Optional[MappingConfig] = None
    synthesis: Optional[SynthesisConfig] = None
    camera: Optional[CameraConfig] = None
    model: Optional[ModelConfig] = None
    logging: Optional[LoggingConfig] = None
