from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from motion_synth.core.constants import SCREEN_SPACE, WORLD_SPACE

Landmarks = Sequence[Any]


def _first_person(people: Optional[Sequence[Landmarks]]) -> Optional[Landmarks]:
    if people is None or len(people) == 0:
        return None
    first = people[0]
    if first is None or len(first) == 0:
        return None
    return first


def landmark_xyz(landmark: Any) -> Optional[np.ndarray]:
    """Coerce a landmark given as a mapping, an ``x/y/z`` object or a sequence.

    Returns None when the landmark is absent or carries non-finite coordinates.
    A missing ``z`` is read as 0.
    """
    if landmark is None:
        return None
    try:
        if isinstance(landmark, Mapping):
            xyz = (landmark["x"], landmark["y"], landmark.get("z", 0.0))
        elif hasattr(landmark, "x") and hasattr(landmark, "y"):
            xyz = (landmark.x, landmark.y, getattr(landmark, "z", 0.0))
        else:
            values = list(landmark)
            xyz = (values[0], values[1], values[2] if len(values) > 2 else 0.0)
        point = np.array([float(v) if v is not None else 0.0 for v in xyz], dtype=float)
    except (KeyError, IndexError, TypeError, ValueError):
        return None
    if not np.all(np.isfinite(point)):
        return None
    return point


@dataclass(frozen=True)
class LandmarkFrame:
    timestamp: float
    world_landmarks: Optional[Sequence[Landmarks]] = None
    landmarks: Optional[Sequence[Landmarks]] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "LandmarkFrame":
        return cls(
            timestamp=float(payload.get("timestamp", 0.0)),
            world_landmarks=payload.get("worldLandmarks"),
            landmarks=payload.get("landmarks"),
        )

    def person(self, space: str) -> Optional[Landmarks]:
        if space == WORLD_SPACE:
            return _first_person(self.world_landmarks)
        if space == SCREEN_SPACE:
            return _first_person(self.landmarks)
        raise KeyError(space)


def _zeros() -> np.ndarray:
    return np.zeros(3, dtype=float)


@dataclass(frozen=True)
class JointKinematics:
    position: np.ndarray
    velocity: np.ndarray = field(default_factory=_zeros)
    acceleration: np.ndarray = field(default_factory=_zeros)

    @property
    def speed(self) -> float:
        return float(np.linalg.norm(self.velocity))

    @property
    def acceleration_magnitude(self) -> float:
        return float(np.linalg.norm(self.acceleration))


@dataclass(frozen=True)
class Joint:
    name: str
    world: Optional[JointKinematics] = None
    screen: Optional[JointKinematics] = None

    def in_space(self, space: str) -> Optional[JointKinematics]:
        if space == WORLD_SPACE:
            return self.world
        if space == SCREEN_SPACE:
            return self.screen
        raise KeyError(space)


@dataclass(frozen=True)
class BodyFeatures:
    center_of_mass: np.ndarray = field(default_factory=_zeros)
    overall_velocity: float = 0.0
    overall_acceleration: float = 0.0
    activity_level: float = 0.0
    energy: float = 0.0

    @classmethod
    def from_joints(cls, kinematics: Sequence[JointKinematics]) -> "BodyFeatures":
        if not kinematics:
            return cls()
        center = np.mean([k.position for k in kinematics], axis=0)
        # Joints without motion are left out of the averages, not counted as zero.
        speeds = [s for s in (k.speed for k in kinematics) if s > 0]
        accels = [a for a in (k.acceleration_magnitude for k in kinematics) if a > 0]
        overall_velocity = float(np.mean(speeds)) if speeds else 0.0
        overall_acceleration = float(np.mean(accels)) if accels else 0.0
        return cls(
            center_of_mass=center,
            overall_velocity=overall_velocity,
            overall_acceleration=overall_acceleration,
            activity_level=overall_velocity,
            energy=float(sum(s * s for s in speeds)),
        )


@dataclass(frozen=True)
class MotionFrame:
    timestamp: float
    delta_time: float
    joints: Mapping[str, Joint] = field(default_factory=dict)
    body: Mapping[str, BodyFeatures] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "joints", MappingProxyType(dict(self.joints)))
        object.__setattr__(self, "body", MappingProxyType(dict(self.body)))

    def kinematics(self, joint_name: str, space: str = WORLD_SPACE) -> Optional[JointKinematics]:
        joint = self.joints.get(joint_name)
        if joint is None:
            return None
        return joint.in_space(space)


class OscillatorParams(NamedTuple):
    frequency: float
    amplitude: float
    phase: float = 0.0

    def muted(self) -> "OscillatorParams":
        return self._replace(amplitude=0.0)

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in self)

    def as_dict(self) -> dict:
        return {"frequency": self.frequency, "amplitude": self.amplitude, "phase": self.phase}


ParameterSet = Tuple[OscillatorParams, ...]


def mute_parameters(params: Sequence[OscillatorParams]) -> ParameterSet:
    return tuple(p.muted() for p in params)


class EventBus:
    def __init__(self):
        self._subs: Dict[str, List[Callable]] = {}

    def subscribe(self, event_name: str, callback: Callable) -> None:
        self._subs.setdefault(event_name, []).append(callback)

    def unsubscribe(self, event_name: str, callback: Callable) -> None:
        callbacks = self._subs.get(event_name, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def publish(self, event_name: str, payload) -> None:
        for callback in self._subs.get(event_name, []):
            callback(payload)
