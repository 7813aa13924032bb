from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from motion_synth.core.audio import AudioOutput
from motion_synth.core.capture import CameraReadError
from motion_synth.core.constants import WORLD_SPACE
from motion_synth.core.pipeline import MotionPipeline
from motion_synth.models.config import AppConfig

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    running: bool = False
    message: str = "idle"
    frames_processed: int = 0
    frames_skipped: int = 0
    last_timestamp: float = 0.0
    loop_fps: float = 0.0
    loop_ms: float = 0.0
    activity_level: float = 0.0
    last_parameters: list = field(default_factory=list)


class SessionManager:
    """Runs the motion domain on a background thread.

    Each cycle reads a camera frame, detects landmarks and pushes the result
    through the pipeline; the audio output renders on its own callback clock.
    """

    def __init__(
        self,
        cfg: AppConfig,
        pipeline: MotionPipeline,
        audio: AudioOutput,
        camera_factory: Callable[[AppConfig], Any],
        estimator_factory: Callable[[AppConfig], Any],
    ):
        self.cfg = cfg
        self.pipeline = pipeline
        self.audio = audio
        self._camera_factory = camera_factory
        self._estimator_factory = estimator_factory
        self.state = SessionState()
        self._thread: Optional[threading.Thread] = None
        self._stop_evt = threading.Event()
        self._lock = threading.Lock()

    def start(self) -> dict:
        with self._lock:
            if self.state.running:
                return {"ok": True, "message": "already_running"}
            self.audio.start()
            self._stop_evt.clear()
            self._thread = threading.Thread(target=self._run_loop, daemon=True)
            self.state.running = True
            self.state.message = "starting"
            self._thread.start()
        logger.info("Session started with strategy %s", self.pipeline.strategy.name)
        return {"ok": True, "message": "started"}

    def stop(self) -> dict:
        with self._lock:
            if not self.state.running and self._thread is None:
                return {"ok": True, "message": "already_stopped"}
            self._stop_evt.set()
        if self._thread is not None:
            self._thread.join(timeout=3.0)
            self._thread = None
        self.pipeline.mute()
        self.audio.stop()
        with self._lock:
            self.state.running = False
            self.state.message = "stopped"
        logger.info("Session stopped")
        return {"ok": True, "message": "stopped"}

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the motion loop exits; True if it has."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def status(self) -> dict:
        return {
            "running": self.state.running,
            "message": self.state.message,
            "strategy": self.pipeline.strategy.name,
            "frames_processed": self.state.frames_processed,
            "frames_skipped": self.state.frames_skipped,
            "last_timestamp": self.state.last_timestamp,
            "loop_fps": self.state.loop_fps,
            "loop_ms": self.state.loop_ms,
            "activity_level": self.state.activity_level,
            "last_parameters": self.state.last_parameters,
            "audio": self.audio.status(),
        }

    def _run_loop(self) -> None:
        camera = None
        estimator = None
        try:
            camera = self._camera_factory(self.cfg)
            camera.open()
            estimator = self._estimator_factory(self.cfg)
            target_dt = 1.0 / max(self.cfg.camera.target_fps, 1)
            self.state.message = "running"
            prev_cycle_end = time.time()

            while not self._stop_evt.is_set():
                t0 = time.time()
                captured = camera.read()
                landmarks = estimator.detect(captured.frame, captured.timestamp)
                params = self.pipeline.process(landmarks)
                self.state.frames_processed = self.pipeline.frames_processed
                self.state.frames_skipped = self.pipeline.frames_skipped
                self.state.last_timestamp = captured.timestamp
                if params is not None:
                    motion = self.pipeline.tracker.last_frame
                    self.state.activity_level = motion.body[WORLD_SPACE].activity_level
                    self.state.last_parameters = [p.as_dict() for p in params]

                elapsed = time.time() - t0
                elapsed_ms = elapsed * 1000.0
                if self.state.loop_ms <= 0.0:
                    self.state.loop_ms = elapsed_ms
                else:
                    self.state.loop_ms = (0.8 * self.state.loop_ms) + (0.2 * elapsed_ms)

                now = time.time()
                inst_fps = 1.0 / max(1e-6, now - prev_cycle_end)
                if self.state.loop_fps <= 0.0:
                    self.state.loop_fps = inst_fps
                else:
                    self.state.loop_fps = (0.8 * self.state.loop_fps) + (0.2 * inst_fps)
                prev_cycle_end = now

                if elapsed < target_dt:
                    self._stop_evt.wait(target_dt - elapsed)
        except CameraReadError as exc:
            logger.warning("Camera stopped delivering frames: %s", exc)
            self.state.message = f"camera: {exc}"
        except Exception as exc:  # noqa: BLE001
            logger.exception("Motion loop failed")
            self.state.message = f"error: {exc}"
        finally:
            if camera is not None:
                camera.release()
            if estimator is not None:
                estimator.close()
            self.pipeline.mute()
            self.state.running = False
