import unittest

import numpy as np

from motion_synth.core.constants import POSE_LANDMARK_COUNT, TRACKED_JOINTS
from motion_synth.core.events import EventBus, LandmarkFrame
from motion_synth.core.mapping import ChordStrategy, ThereminStrategy
from motion_synth.core.motion import MotionTracker
from motion_synth.core.pipeline import PARAMETERS_EVENT, MotionPipeline
from motion_synth.core.synthesis import OscillatorBank, ParameterChannel
from motion_synth.models.config import MappingConfig


def _wrist_frame(timestamp, height):
    person = [None] * POSE_LANDMARK_COUNT
    person[TRACKED_JOINTS["left_wrist"]] = {"x": 0.0, "y": height, "z": 0.0}
    person[TRACKED_JOINTS["right_wrist"]] = {"x": 0.2, "y": height, "z": 0.0}
    return LandmarkFrame(timestamp=timestamp, world_landmarks=[person])


def _pipeline(strategy=None):
    bus = EventBus()
    tracker = MotionTracker(alpha=1.0, event_bus=bus)
    channel = ParameterChannel()
    pipeline = MotionPipeline(tracker, strategy or ThereminStrategy(), channel)
    return pipeline, channel, bus


class MotionPipelineTests(unittest.TestCase):
    def test_raised_wrist_end_to_end(self):
        pipeline, channel, _ = _pipeline()
        bank = OscillatorBank(channel=channel)
        results = []
        for timestamp, height in ((0.0, -2.0), (66.0, -0.5), (100.0, -0.5)):
            results.append(pipeline.process(_wrist_frame(timestamp, height)))
            bank.render(512)

        frequencies = [params[0].frequency for params in results]
        amplitudes = [params[0].amplitude for params in results]
        np.testing.assert_allclose(frequencies, [880.0, 220.0, 220.0], rtol=0, atol=1e-9)
        # Still, then a fast move saturating the velocity range, then still again.
        np.testing.assert_allclose(amplitudes, [0.0, 1.0, 0.0], rtol=0, atol=1e-9)

        wave = bank.waves[0]
        self.assertEqual(wave.target_frequency, 220.0)
        self.assertEqual(wave.target_amplitude, 0.0)
        self.assertGreater(wave.current_amplitude, 0.0)
        self.assertLess(wave.current_frequency, 880.0)

    def test_frames_without_body_are_skipped(self):
        pipeline, channel, _ = _pipeline()
        self.assertIsNone(pipeline.process(LandmarkFrame(timestamp=0.0)))
        self.assertIsNone(pipeline.process(None))
        self.assertEqual(pipeline.frames_skipped, 2)
        self.assertEqual(pipeline.frames_processed, 0)
        self.assertFalse(channel.pending)

    def test_latest_parameters_reach_channel_and_bus(self):
        pipeline, channel, bus = _pipeline()
        seen = []
        bus.subscribe(PARAMETERS_EVENT, seen.append)
        pipeline.process(_wrist_frame(0.0, -2.0))
        last = pipeline.process(_wrist_frame(33.0, -1.25))
        self.assertEqual(channel.take(), last)
        self.assertEqual(len(seen), 2)
        self.assertEqual(pipeline.parameters, last)
        self.assertEqual(pipeline.frames_processed, 2)

    def test_missing_joint_holds_previous_pitch(self):
        pipeline, _, _ = _pipeline()
        pipeline.process(_wrist_frame(0.0, -2.0))
        before = pipeline.process(_wrist_frame(33.0, -1.25))
        person = [None] * POSE_LANDMARK_COUNT
        person[TRACKED_JOINTS["nose"]] = {"x": 0.0, "y": -1.6, "z": 0.0}
        after = pipeline.process(LandmarkFrame(timestamp=66.0, world_landmarks=[person]))
        self.assertEqual(after[0].frequency, before[0].frequency)
        self.assertEqual(after[0].amplitude, 0.0)

    def test_mute_keeps_frequencies(self):
        pipeline, channel, _ = _pipeline(ChordStrategy(MappingConfig().chord))
        person_move = [_wrist_frame(0.0, -1.0), _wrist_frame(33.0, -0.9)]
        for frame in person_move:
            pipeline.process(frame)
        before = pipeline.parameters
        muted = pipeline.mute()
        self.assertEqual([p.frequency for p in muted], [p.frequency for p in before])
        self.assertTrue(all(p.amplitude == 0.0 for p in muted))
        self.assertEqual(channel.take(), muted)

    def test_initial_parameters_are_silent(self):
        pipeline, _, _ = _pipeline(ChordStrategy(MappingConfig().chord))
        self.assertEqual(len(pipeline.parameters), 3)
        self.assertTrue(all(p.amplitude == 0.0 for p in pipeline.parameters))


if __name__ == "__main__":
    unittest.main()
