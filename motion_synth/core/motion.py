from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Deque, Dict, Mapping, Optional

import numpy as np

from motion_synth.core.constants import SCREEN_SPACE, TRACKED_JOINTS, WORLD_SPACE
from motion_synth.core.events import (
    BodyFeatures,
    EventBus,
    Joint,
    JointKinematics,
    LandmarkFrame,
    Landmarks,
    MotionFrame,
    landmark_xyz,
)
from motion_synth.core.smoothing import JointSmoother
from motion_synth.models.config import ConfigurationError, TrackingConfig

logger = logging.getLogger(__name__)

MOTION_EVENT = "motion"


class MotionTracker:
    """Turns raw landmark frames into smoothed kinematic features.

    World-space landmarks are required; screen-space landmarks are tracked
    alongside them when supplied. Each processed frame is kept in a short
    FIFO history, used only to difference against the next frame, and is
    published on the event bus under ``"motion"``.
    """

    def __init__(
        self,
        alpha: float = 0.25,
        history_size: int = 5,
        first_frame_dt_s: float = 0.033,
        track_screen_space: bool = True,
        tracked_joints: Mapping[str, int] = TRACKED_JOINTS,
        event_bus: Optional[EventBus] = None,
    ):
        if int(history_size) < 1:
            raise ConfigurationError(f"history_size must be at least 1, got {history_size}")
        if float(first_frame_dt_s) <= 0.0:
            raise ConfigurationError("first_frame_dt_s must be positive")
        if not tracked_joints:
            raise ConfigurationError("tracked_joints must not be empty")
        self.tracked_joints = dict(tracked_joints)
        self.first_frame_dt_s = float(first_frame_dt_s)
        self.track_screen_space = bool(track_screen_space)
        self.event_bus = event_bus or EventBus()
        self._smoothers = {
            WORLD_SPACE: JointSmoother(alpha),
            SCREEN_SPACE: JointSmoother(alpha),
        }
        self._history: Deque[MotionFrame] = deque(maxlen=int(history_size))
        self._previous_timestamp: Optional[float] = None

    @classmethod
    def from_config(cls, cfg: TrackingConfig, event_bus: Optional[EventBus] = None) -> "MotionTracker":
        return cls(
            alpha=cfg.ema_alpha,
            history_size=cfg.history_size,
            first_frame_dt_s=cfg.first_frame_dt_s,
            track_screen_space=cfg.track_screen_space,
            event_bus=event_bus,
        )

    @property
    def alpha(self) -> float:
        return self._smoothers[WORLD_SPACE].alpha

    @property
    def history(self) -> tuple[MotionFrame, ...]:
        return tuple(self._history)

    @property
    def last_frame(self) -> Optional[MotionFrame]:
        return self._history[-1] if self._history else None

    def subscribe(self, callback: Callable[[MotionFrame], None]) -> None:
        self.event_bus.subscribe(MOTION_EVENT, callback)

    def reset(self) -> None:
        self._history.clear()
        for smoother in self._smoothers.values():
            smoother.reset()
        self._previous_timestamp = None

    def process(self, frame: Optional[LandmarkFrame]) -> Optional[MotionFrame]:
        if frame is None:
            return None
        world = frame.person(WORLD_SPACE)
        if world is None:
            logger.debug("No world landmarks at t=%s, skipping frame", frame.timestamp)
            return None

        people: Dict[str, Landmarks] = {WORLD_SPACE: world}
        if self.track_screen_space:
            screen = frame.person(SCREEN_SPACE)
            if screen is not None:
                people[SCREEN_SPACE] = screen

        timestamp = float(frame.timestamp)
        if self._previous_timestamp is None:
            delta_time = self.first_frame_dt_s
        else:
            delta_time = (timestamp - self._previous_timestamp) / 1000.0

        previous = self.last_frame
        per_space = {
            space: self._track_space(space, landmarks, delta_time, previous)
            for space, landmarks in people.items()
        }

        joints: Dict[str, Joint] = {}
        for name in self.tracked_joints:
            world_kin = per_space[WORLD_SPACE].get(name)
            screen_kin = per_space.get(SCREEN_SPACE, {}).get(name)
            if world_kin is None and screen_kin is None:
                continue
            joints[name] = Joint(name=name, world=world_kin, screen=screen_kin)

        body = {
            space: BodyFeatures.from_joints(list(kinematics.values()))
            for space, kinematics in per_space.items()
        }
        motion = MotionFrame(timestamp=timestamp, delta_time=delta_time, joints=joints, body=body)

        self._history.append(motion)
        self._previous_timestamp = timestamp
        logger.debug(
            "Motion frame t=%.1f dt=%.4f joints=%d activity=%.3f",
            timestamp,
            delta_time,
            len(joints),
            body[WORLD_SPACE].activity_level,
        )
        self.event_bus.publish(MOTION_EVENT, motion)
        return motion

    def _track_space(
        self,
        space: str,
        landmarks: Landmarks,
        delta_time: float,
        previous: Optional[MotionFrame],
    ) -> Dict[str, JointKinematics]:
        smoother = self._smoothers[space]
        out: Dict[str, JointKinematics] = {}
        for name, index in self.tracked_joints.items():
            raw = landmark_xyz(landmarks[index]) if index < len(landmarks) else None
            if raw is None:
                continue
            position = np.array(smoother.update(name, raw), dtype=float)
            velocity = np.zeros(3, dtype=float)
            acceleration = np.zeros(3, dtype=float)
            prev = previous.kinematics(name, space) if previous is not None else None
            if prev is not None and delta_time > 0:
                velocity = (position - prev.position) / delta_time
                acceleration = (velocity - prev.velocity) / delta_time
            out[name] = JointKinematics(
                position=position, velocity=velocity, acceleration=acceleration
            )
        return out
