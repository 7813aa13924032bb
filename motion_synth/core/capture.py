from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import cv2
import numpy as np

from motion_synth.models.config import CameraConfig

logger = logging.getLogger(__name__)


class CameraReadError(Exception):
    """Raised when the capture device cannot deliver a frame."""


@dataclass
class CameraFrame:
    timestamp: float
    frame: np.ndarray
    seq: int


class CameraSource:
    def __init__(
        self,
        cfg: CameraConfig,
        clock: Callable[[], float] = time.monotonic,
        capture_factory: Callable[[int], cv2.VideoCapture] = cv2.VideoCapture,
    ):
        self.cfg = cfg
        self._clock = clock
        self._capture_factory = capture_factory
        self._cap: Optional[cv2.VideoCapture] = None
        self._seq = 0

    def open(self) -> "CameraSource":
        if self._cap is None:
            self._cap = self._capture_factory(self.cfg.index)
            if not self._cap.isOpened():
                self._cap.release()
                self._cap = None
                raise CameraReadError(f"Could not open camera {self.cfg.index}")
            logger.info("Opened camera %s", self.cfg.index)
        return self

    def read(self) -> CameraFrame:
        if self._cap is None:
            raise CameraReadError("Camera is not open")
        ok, frame = self._cap.read()
        if not ok or frame is None:
            raise CameraReadError(f"Failed to read from camera {self.cfg.index}")
        if self.cfg.mirror:
            frame = cv2.flip(frame, 1)
        self._seq += 1
        return CameraFrame(timestamp=self._clock() * 1000.0, frame=frame, seq=self._seq)

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info("Released camera %s", self.cfg.index)

    def __enter__(self) -> "CameraSource":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.release()
