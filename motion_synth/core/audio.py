from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import numpy as np

from motion_synth.core.synthesis import OscillatorBank
from motion_synth.models.config import SynthesisConfig

logger = logging.getLogger(__name__)


def open_sounddevice_stream(**kwargs) -> Any:
    # Imported here so that PortAudio is only required once a device is opened.
    import sounddevice as sd

    return sd.OutputStream(**kwargs)


class AudioOutput:
    """Drives an ``OscillatorBank`` from a real-time output stream callback."""

    def __init__(
        self,
        bank: OscillatorBank,
        cfg: SynthesisConfig,
        stream_factory: Callable[..., Any] = open_sounddevice_stream,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.bank = bank
        self.cfg = cfg
        self._stream_factory = stream_factory
        self._sleep = sleep
        self._stream: Optional[Any] = None
        self._buffer = np.zeros(max(cfg.blocksize, 4096), dtype=np.float32)
        self._callbacks = 0
        self._status_flags = 0

    @property
    def running(self) -> bool:
        return self._stream is not None

    @property
    def fade_seconds(self) -> float:
        return self.cfg.fade_buffers * self.cfg.blocksize / float(self.cfg.sample_rate)

    def _callback(self, outdata, frames, time_info, status) -> None:
        # Runs on the audio thread: no locks, no logging.
        if status:
            self._status_flags += 1
        if frames > self._buffer.shape[0]:
            self._buffer = np.zeros(frames, dtype=np.float32)
        block = self._buffer[:frames]
        self.bank.process(block)
        outdata[:] = block[:, np.newaxis]
        self._callbacks += 1

    def start(self) -> None:
        if self._stream is not None:
            return
        stream = self._stream_factory(
            samplerate=self.cfg.sample_rate,
            blocksize=self.cfg.blocksize,
            channels=1,
            dtype="float32",
            device=self.cfg.device,
            latency=self.cfg.latency,
            callback=self._callback,
        )
        stream.start()
        self._stream = stream
        logger.info(
            "Audio output started: %d Hz, blocksize %d", self.cfg.sample_rate, self.cfg.blocksize
        )

    def stop(self) -> None:
        """Fade to silence, then release the device."""
        if self._stream is None:
            return
        self.bank.silence()
        self._sleep(self.fade_seconds)
        stream, self._stream = self._stream, None
        try:
            stream.stop()
        finally:
            stream.close()
        logger.info("Audio output stopped after %.3fs fade", self.fade_seconds)

    def status(self) -> dict:
        return {
            "running": self.running,
            "callbacks": self._callbacks,
            "status_flags": self._status_flags,
            "active_waves": self.bank.active_count,
        }
