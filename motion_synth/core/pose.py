from __future__ import annotations

from typing import Optional

import cv2
import mediapipe as mp
import numpy as np

from motion_synth.core.events import LandmarkFrame
from motion_synth.models.config import ModelConfig


class PoseEstimator:
    """MediaPipe pose landmarker in video mode, tracking a single person."""

    def __init__(self, cfg: ModelConfig):
        vision = mp.tasks.vision
        options = vision.PoseLandmarkerOptions(
            base_options=mp.tasks.BaseOptions(model_asset_path=cfg.path),
            running_mode=vision.RunningMode.VIDEO,
            num_poses=1,
            min_pose_detection_confidence=cfg.min_detection_confidence,
            min_tracking_confidence=cfg.min_tracking_confidence,
        )
        self.landmarker = vision.PoseLandmarker.create_from_options(options)
        self._last_timestamp_ms = -1

    def detect(self, frame: np.ndarray, timestamp_ms: float) -> Optional[LandmarkFrame]:
        # The landmarker rejects timestamps that do not strictly increase.
        ts = max(int(timestamp_ms), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = ts
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
        result = self.landmarker.detect_for_video(image, ts)
        if not result.pose_world_landmarks:
            return None
        return LandmarkFrame(
            timestamp=float(timestamp_ms),
            world_landmarks=result.pose_world_landmarks,
            landmarks=result.pose_landmarks,
        )

    def close(self) -> None:
        self.landmarker.close()
