# MediaPipe pose landmarker emits 33 landmarks per person.
POSE_LANDMARK_COUNT = 33

# Tracked subset, name -> landmark index.
TRACKED_JOINTS = {
    "nose": 0,
    "left_shoulder": 11,
    "right_shoulder": 12,
    "left_elbow": 13,
    "right_elbow": 14,
    "left_wrist": 15,
    "right_wrist": 16,
    "left_hip": 23,
    "right_hip": 24,
    "left_knee": 25,
    "right_knee": 26,
    "left_ankle": 27,
    "right_ankle": 28,
}

WORLD_SPACE = "world"
SCREEN_SPACE = "screen"

# Silent default for a freshly allocated oscillator.
DEFAULT_FREQUENCY = 440.0
DEFAULT_AMPLITUDE = 0.0
DEFAULT_PHASE = 0.0
