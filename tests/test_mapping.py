import math
import unittest

import numpy as np

from motion_synth.core.events import Joint, JointKinematics, MotionFrame, OscillatorParams
from motion_synth.core.mapping import (
    ChordFieldStrategy,
    ChordStrategy,
    DualChordStrategy,
    ThereminStrategy,
    WristsHarmonicsStrategy,
    build_strategy,
    height_to_frequency,
    mapping_strategies,
    velocity_to_amplitude,
)
from motion_synth.models.config import ConfigurationError, MappingConfig, ValueRange


def _kin(position, velocity=(0.0, 0.0, 0.0)):
    return JointKinematics(
        position=np.array(position, dtype=float), velocity=np.array(velocity, dtype=float)
    )


def _frame(world=None, screen=None, timestamp=0.0, delta_time=1.0 / 30.0):
    world = world or {}
    screen = screen or {}
    joints = {
        name: Joint(name=name, world=world.get(name), screen=screen.get(name))
        for name in set(world) | set(screen)
    }
    return MotionFrame(timestamp=timestamp, delta_time=delta_time, joints=joints)


class NumericPolicyTests(unittest.TestCase):
    def test_height_to_frequency_is_non_increasing(self):
        heights = ValueRange(min=-2.0, max=-0.5)
        freqs = ValueRange(min=220.0, max=880.0)
        low = height_to_frequency(-2.0, heights, freqs)
        mid = height_to_frequency(-1.25, heights, freqs)
        high = height_to_frequency(-0.5, heights, freqs)
        self.assertAlmostEqual(low, 880.0)
        self.assertAlmostEqual(mid, 550.0)
        self.assertAlmostEqual(high, 220.0)
        self.assertGreaterEqual(low, mid)
        self.assertGreaterEqual(mid, high)

    def test_height_outside_range_is_clamped(self):
        heights = ValueRange(min=-2.0, max=-0.5)
        freqs = ValueRange(min=220.0, max=880.0)
        self.assertAlmostEqual(height_to_frequency(-5.0, heights, freqs), 880.0)
        self.assertAlmostEqual(height_to_frequency(3.0, heights, freqs), 220.0)

    def test_velocity_to_amplitude_uses_square_root(self):
        velocities = ValueRange(min=0.0, max=5.0)
        self.assertAlmostEqual(velocity_to_amplitude(1.25, velocities), 0.5)
        self.assertAlmostEqual(velocity_to_amplitude(0.0, velocities), 0.0)
        self.assertAlmostEqual(velocity_to_amplitude(50.0, velocities), 1.0)


class ThereminStrategyTests(unittest.TestCase):
    def test_maps_height_and_speed(self):
        strategy = ThereminStrategy()
        params = strategy.map(_frame(world={"left_wrist": _kin((0.0, -1.25, 0.0), (0.0, 1.25, 0.0))}))
        self.assertEqual(len(params), 1)
        self.assertAlmostEqual(params[0].frequency, 550.0)
        self.assertAlmostEqual(params[0].amplitude, 0.5)
        self.assertEqual(params[0].phase, 0.0)

    def test_missing_joint_holds_pitch_and_mutes(self):
        strategy = ThereminStrategy()
        previous = (OscillatorParams(frequency=330.0, amplitude=0.8, phase=0.0),)
        params = strategy.map(_frame(world={"right_wrist": _kin((0.0, -1.0, 0.0))}), previous)
        self.assertEqual(params, (OscillatorParams(330.0, 0.0, 0.0),))

    def test_malformed_frame_without_previous_is_silent(self):
        params = ThereminStrategy().map(None, ())
        self.assertEqual(len(params), 1)
        self.assertEqual(params[0].amplitude, 0.0)
        self.assertGreater(params[0].frequency, 0.0)

    def test_invalid_range_is_rejected_at_construction(self):
        with self.assertRaises(ConfigurationError):
            ThereminStrategy(frequency_range=(880.0, 220.0))
        with self.assertRaises(ConfigurationError):
            ThereminStrategy(height_range=(-1.0, -1.0))


class WristsHarmonicsStrategyTests(unittest.TestCase):
    def test_dual_point_mapping(self):
        strategy = WristsHarmonicsStrategy()
        frame = _frame(
            world={
                "left_wrist": _kin((0.0, -2.0, 0.0)),
                "right_wrist": _kin((0.0, -2.0, 0.0)),
            }
        )
        params = strategy.map(frame)
        self.assertEqual([p.frequency for p in params], [880.0, 1760.0, 3520.0, 7040.0])
        for param in params:
            self.assertAlmostEqual(param.amplitude, 0.25)

    def test_volume_joint_at_top_is_silent(self):
        strategy = WristsHarmonicsStrategy()
        frame = _frame(
            world={
                "left_wrist": _kin((0.0, -1.25, 0.0)),
                "right_wrist": _kin((0.0, -0.5, 0.0)),
            }
        )
        params = strategy.map(frame)
        self.assertTrue(all(p.amplitude == 0.0 for p in params))
        self.assertAlmostEqual(params[0].frequency, 550.0)

    def test_missing_volume_joint_mutes_previous(self):
        strategy = WristsHarmonicsStrategy()
        previous = strategy.map(
            _frame(world={"left_wrist": _kin((0.0, -2.0, 0.0)), "right_wrist": _kin((0.0, -2.0, 0.0))})
        )
        params = strategy.map(_frame(world={"left_wrist": _kin((0.0, -0.5, 0.0))}), previous)
        self.assertEqual([p.frequency for p in params], [p.frequency for p in previous])
        self.assertTrue(all(p.amplitude == 0.0 for p in params))

    def test_empty_multipliers_rejected(self):
        with self.assertRaises(ConfigurationError):
            WristsHarmonicsStrategy(harmonic_multipliers=())


class ChordStrategyTests(unittest.TestCase):
    def setUp(self):
        self.strategy = ChordStrategy(MappingConfig().chord)

    def test_fast_upward_motion_builds_up_amplitude(self):
        frame = _frame(world={"right_wrist": _kin((0.0, -1.0, 0.0), (0.0, 1.0, 0.0))})
        params = self.strategy.map(frame)
        self.assertEqual([p.frequency for p in params], [440.0, 1100.0, 2200.0])
        np.testing.assert_allclose([p.amplitude for p in params], [0.05, 0.03, 0.02], rtol=0, atol=1e-12)
        self.assertEqual([p.phase for p in params], [0.0, math.pi / 2, math.pi])

    def test_downward_motion_switches_fundamental(self):
        frame = _frame(world={"right_wrist": _kin((0.0, -1.0, 0.0), (0.0, -1.0, 0.0))})
        params = self.strategy.map(frame)
        self.assertEqual(params[0].frequency, 660.0)

    def test_slow_motion_decays_to_exact_zero(self):
        fast = _frame(world={"right_wrist": _kin((0.0, -1.0, 0.0), (0.0, 1.0, 0.0))})
        still = _frame(world={"right_wrist": _kin((0.0, -1.0, 0.0), (0.0, 0.1, 0.0))})
        self.strategy.map(fast)
        self.strategy.map(fast)
        params = self.strategy.map(still)
        for _ in range(20):
            params = self.strategy.map(still, params)
        self.assertTrue(all(p.amplitude == 0.0 for p in params))

    def test_amplitudes_stay_bounded_under_sustained_drive(self):
        frame = _frame(world={"right_wrist": _kin((0.0, -1.0, 0.0), (0.0, 10.0, 0.0))})
        params = ()
        for _ in range(200):
            params = self.strategy.map(frame, params)
            for param in params:
                self.assertGreaterEqual(param.amplitude, 0.0)
                self.assertLessEqual(param.amplitude, 1.0)

    def test_measured_frame_delta_can_drive_release(self):
        strategy = ChordStrategy(MappingConfig().chord, envelope_dt_s=None, noise_floor=0.0)
        strategy.map(_frame(world={"right_wrist": _kin((0, 0, 0), (0, 1.0, 0))}))
        params = strategy.map(
            _frame(world={"right_wrist": _kin((0, 0, 0))}, delta_time=0.1)
        )
        # 0.1 * (1 - 6 * 0.1) on the fundamental, weighted by 0.5
        self.assertAlmostEqual(params[0].amplitude, 0.5 * 0.04)


class DualChordStrategyTests(unittest.TestCase):
    def test_two_voices_are_normalized(self):
        cfg = MappingConfig()
        strategy = DualChordStrategy(cfg.left_chord, cfg.right_chord)
        frame = _frame(
            world={
                "left_wrist": _kin((0, 0, 0), (0.5, 0.0, 0.0)),
                "right_wrist": _kin((0, 0, 0), (0.0, 0.0, 0.0)),
            }
        )
        params = strategy.map(frame)
        self.assertEqual(len(params), 8)
        self.assertEqual([p.frequency for p in params[:5]], [220.0, 440.0, 660.0, 880.0, 1100.0])
        np.testing.assert_allclose(
            [p.amplitude for p in params[:5]],
            [0.1 * w * 0.5 for w in cfg.left_chord.relative_amplitudes],
            rtol=0,
            atol=1e-12,
        )
        self.assertTrue(all(p.amplitude == 0.0 for p in params[5:]))

    def test_missing_wrist_mutes_everything(self):
        cfg = MappingConfig()
        strategy = DualChordStrategy(cfg.left_chord, cfg.right_chord)
        params = strategy.map(_frame(world={"left_wrist": _kin((0, 0, 0), (1, 0, 0))}))
        self.assertEqual(len(params), 8)
        self.assertTrue(all(p.amplitude == 0.0 for p in params))


class ChordFieldStrategyTests(unittest.TestCase):
    def setUp(self):
        self.cfg = MappingConfig(strategy="chord_field")
        self.strategy = ChordFieldStrategy(self.cfg.field_anchors)

    def test_proximity_falls_linearly(self):
        self.assertAlmostEqual(self.strategy.proximity(0.4, 0.4), 1.0)
        self.assertAlmostEqual(self.strategy.proximity(0.4, 0.425), 0.5)
        self.assertAlmostEqual(self.strategy.proximity(0.4, 0.5), 0.0)

    def test_only_nearby_anchor_is_struck(self):
        frame = _frame(
            screen={
                "left_wrist": _kin((0.4, 0.5, 0.0), (0.5, 0.0, 0.0)),
                "right_wrist": _kin((0.95, 0.5, 0.0), (0.5, 0.0, 0.0)),
            }
        )
        params = self.strategy.map(frame)
        self.assertEqual(len(params), 12)
        struck = params[3:6]
        self.assertEqual(struck[0].frequency, 500.0)
        # k_attack 0.3, full drive and proximity, weight 0.5, normalization 1/4
        self.assertAlmostEqual(struck[0].amplitude, 0.3 * 0.5 * 0.25)
        for idx, param in enumerate(params):
            if idx not in (3, 4, 5):
                self.assertEqual(param.amplitude, 0.0)

    def test_two_limbs_sum_before_decay(self):
        both = _frame(
            screen={
                "left_wrist": _kin((0.2, 0.5, 0.0), (0.5, 0.0, 0.0)),
                "right_wrist": _kin((0.2, 0.5, 0.0), (0.5, 0.0, 0.0)),
            }
        )
        params = self.strategy.map(both)
        # 0.1 attack per limb, two limbs, weight 0.5, normalization 1/4
        self.assertAlmostEqual(params[0].amplitude, 0.2 * 0.5 * 0.25)

    def test_world_only_frame_is_muted(self):
        frame = _frame(world={"left_wrist": _kin((0, 0, 0)), "right_wrist": _kin((0, 0, 0))})
        params = self.strategy.map(frame)
        self.assertEqual(len(params), 12)
        self.assertTrue(all(p.amplitude == 0.0 for p in params))

    def test_anchor_without_position_rejected(self):
        anchor = self.cfg.chord.model_copy()
        with self.assertRaises(ConfigurationError):
            ChordFieldStrategy([anchor])
        with self.assertRaises(ConfigurationError):
            ChordFieldStrategy(self.cfg.field_anchors, max_distance=0.0)


class BuildStrategyTests(unittest.TestCase):
    def test_every_registered_strategy_builds(self):
        for name in mapping_strategies:
            strategy = build_strategy(MappingConfig(), name=name)
            self.assertEqual(strategy.name, name)
            rest = strategy.rest()
            self.assertTrue(rest)
            self.assertTrue(all(p.amplitude == 0.0 and p.frequency > 0 for p in rest))

    def test_unknown_strategy(self):
        with self.assertRaises(ConfigurationError):
            build_strategy(MappingConfig(), name="nope")

    def test_config_selects_strategy(self):
        strategy = build_strategy(MappingConfig(strategy="dual_chord"))
        self.assertIsInstance(strategy, DualChordStrategy)


if __name__ == "__main__":
    unittest.main()
