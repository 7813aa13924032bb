from __future__ import annotations

from typing import Dict

import numpy as np

from motion_synth.models.config import ConfigurationError


class JointSmoother:
    """Exponential moving average of joint positions, one cache entry per joint name.

    The cache survives frames in which a joint is absent, so a returning joint
    resumes from its last smoothed position.
    """

    def __init__(self, alpha: float):
        if not 0.0 < float(alpha) <= 1.0:
            raise ConfigurationError(f"smoothing alpha must lie in (0, 1], got {alpha}")
        self.alpha = float(alpha)
        self.state: Dict[str, np.ndarray] = {}

    def update(self, joint_name: str, xyz) -> np.ndarray:
        point = np.array(xyz, dtype=float)
        cached = self.state.get(joint_name)
        if cached is not None:
            # In place: the cache owns its array, callers only get copies.
            cached *= 1.0 - self.alpha
            cached += self.alpha * point
            point = cached
        else:
            self.state[joint_name] = point
        return point.copy()

    def reset(self) -> None:
        self.state.clear()
