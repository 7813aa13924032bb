from __future__ import annotations

import logging
from typing import Optional

from motion_synth.core.events import (
    EventBus,
    LandmarkFrame,
    MotionFrame,
    ParameterSet,
    mute_parameters,
)
from motion_synth.core.mapping import MappingStrategy
from motion_synth.core.motion import MotionTracker
from motion_synth.core.synthesis import ParameterChannel

logger = logging.getLogger(__name__)

PARAMETERS_EVENT = "parameters"


class MotionPipeline:
    """The motion-domain chain: landmarks -> features -> mapping -> channel.

    Every stage runs synchronously on the caller's thread; the only hand-off
    to the audio domain is the latest-value-wins parameter channel.
    """

    def __init__(
        self,
        tracker: MotionTracker,
        strategy: MappingStrategy,
        channel: ParameterChannel,
        event_bus: Optional[EventBus] = None,
    ):
        self.tracker = tracker
        self.strategy = strategy
        self.channel = channel
        self.event_bus = event_bus or tracker.event_bus
        self.parameters: ParameterSet = strategy.rest()
        self.frames_processed = 0
        self.frames_skipped = 0

    def process(self, frame: Optional[LandmarkFrame]) -> Optional[ParameterSet]:
        motion = self.tracker.process(frame)
        if motion is None:
            self.frames_skipped += 1
            return None
        return self.apply(motion)

    def apply(self, motion: MotionFrame) -> ParameterSet:
        params = self.strategy.map(motion, self.parameters)
        self.parameters = params
        self.frames_processed += 1
        self.channel.publish(params)
        self.event_bus.publish(PARAMETERS_EVENT, params)
        return params

    def mute(self) -> ParameterSet:
        self.parameters = mute_parameters(self.parameters)
        self.channel.publish(self.parameters)
        self.event_bus.publish(PARAMETERS_EVENT, self.parameters)
        logger.debug("Muted %d oscillators", len(self.parameters))
        return self.parameters
