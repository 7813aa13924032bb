from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from motion_synth.core.audio import AudioOutput
from motion_synth.core.capture import CameraSource
from motion_synth.core.events import EventBus
from motion_synth.core.mapping import MappingStrategy, build_strategy
from motion_synth.core.motion import MotionTracker
from motion_synth.core.pipeline import MotionPipeline
from motion_synth.core.session import SessionManager
from motion_synth.core.synthesis import OscillatorBank, ParameterChannel
from motion_synth.models.config import AppConfig
from motion_synth.services.config_store import ConfigStore


@dataclass
class RuntimeContext:
    config_store: ConfigStore
    event_bus: EventBus
    tracker: MotionTracker
    strategy: MappingStrategy
    bank: OscillatorBank
    pipeline: MotionPipeline
    audio_output: AudioOutput
    session_manager: SessionManager


def _camera(cfg: AppConfig) -> CameraSource:
    return CameraSource(cfg.camera)


def _estimator(cfg: AppConfig):
    # mediapipe is heavy; load it only when a session actually starts.
    from motion_synth.core.pose import PoseEstimator

    return PoseEstimator(cfg.model)


def build_runtime(config_path: Path, strategy: Optional[str] = None) -> RuntimeContext:
    config_store = ConfigStore(config_path)
    cfg = config_store.config
    event_bus = EventBus()
    tracker = MotionTracker.from_config(cfg.tracking, event_bus=event_bus)
    mapping = build_strategy(cfg.mapping, name=strategy)
    channel = ParameterChannel()
    bank = OscillatorBank.from_config(cfg.synthesis, channel=channel)
    pipeline = MotionPipeline(tracker, mapping, channel, event_bus=event_bus)
    audio_output = AudioOutput(bank, cfg.synthesis)
    session_manager = SessionManager(
        cfg,
        pipeline,
        audio_output,
        camera_factory=_camera,
        estimator_factory=_estimator,
    )
    return RuntimeContext(
        config_store=config_store,
        event_bus=event_bus,
        tracker=tracker,
        strategy=mapping,
        bank=bank,
        pipeline=pipeline,
        audio_output=audio_output,
        session_manager=session_manager,
    )
