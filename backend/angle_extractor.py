import logging
import math
from typing import Optional, Sequence

from errors import DegenerateGeometry
from models import JointName, Landmark, LandmarkFrame

logger = logging.getLogger(__name__)

# Landmark roles (a, vertex, c) for each joint angle.
ANGLE_JOINTS: dict[JointName, tuple[str, str, str]] = {
    JointName.LEFT_ELBOW: ("left_shoulder", "left_elbow", "left_wrist"),
    JointName.RIGHT_ELBOW: ("right_shoulder", "right_elbow", "right_wrist"),
    JointName.LEFT_SHOULDER: ("left_hip", "left_shoulder", "left_elbow"),
    JointName.RIGHT_SHOULDER: ("right_hip", "right_shoulder", "right_elbow"),
    JointName.LEFT_WRIST: ("left_elbow", "left_wrist", "left_index"),
    JointName.RIGHT_WRIST: ("right_elbow", "right_wrist", "right_index"),
    JointName.LEFT_HIP: ("left_shoulder", "left_hip", "left_knee"),
    JointName.RIGHT_HIP: ("right_shoulder", "right_hip", "right_knee"),
    JointName.LEFT_KNEE: ("left_hip", "left_knee", "left_ankle"),
    JointName.RIGHT_KNEE: ("right_hip", "right_knee", "right_ankle"),
    JointName.LEFT_ANKLE: ("left_knee", "left_ankle", "left_foot_index"),
    JointName.RIGHT_ANKLE: ("right_knee", "right_ankle", "right_foot_index"),
}

# MediaPipe Pose landmark indices
LANDMARK_NAMES = [
    "nose", "left_eye_inner", "left_eye", "left_eye_outer",
    "right_eye_inner", "right_eye", "right_eye_outer",
    "left_ear", "right_ear", "mouth_left", "mouth_right",
    "left_shoulder", "right_shoulder", "left_elbow", "right_elbow",
    "left_wrist", "right_wrist", "left_pinky", "right_pinky",
    "left_index", "right_index", "left_thumb", "right_thumb",
    "left_hip", "right_hip", "left_knee", "right_knee",
    "left_ankle", "right_ankle", "left_heel", "right_heel",
    "left_foot_index", "right_foot_index",
]

_EPS = 1e-9


def angle_at(a: Optional[Landmark], b: Optional[Landmark], c: Optional[Landmark]) -> float:
    """Interior angle at ``b`` between the rays b->a and b->c, in degrees.

    Uses all three coordinates when every landmark carries ``z``, otherwise
    works in the image plane. Raises DegenerateGeometry when a landmark is
    missing or either ray has zero length.
    """
    if a is None or b is None or c is None:
        raise DegenerateGeometry("missing landmark")

    use_z = a.z is not None and b.z is not None and c.z is not None
    ba = (a.x - b.x, a.y - b.y, (a.z - b.z) if use_z else 0.0)
    bc = (c.x - b.x, c.y - b.y, (c.z - b.z) if use_z else 0.0)

    if math.hypot(*ba) < _EPS or math.hypot(*bc) < _EPS:
        raise DegenerateGeometry("zero-length ray")

    cross = (
        ba[1] * bc[2] - ba[2] * bc[1],
        ba[2] * bc[0] - ba[0] * bc[2],
        ba[0] * bc[1] - ba[1] * bc[0],
    )
    dot = ba[0] * bc[0] + ba[1] * bc[1] + ba[2] * bc[2]
    return math.degrees(math.atan2(math.hypot(*cross), dot))


class AngleExtractor:
    """Turns landmark frames into named joint angles."""

    def __init__(self, min_confidence: float = 0.0):
        self.min_confidence = min_confidence

    def _landmark(self, frame: LandmarkFrame, name: str) -> Optional[Landmark]:
        lm = frame.landmarks.get(name)
        if lm is None or lm.confidence < self.min_confidence:
            return None
        return lm

    def joint_angle(self, frame: LandmarkFrame, joint: JointName) -> float:
        a, b, c = (self._landmark(frame, role) for role in ANGLE_JOINTS[joint])
        return angle_at(a, b, c)

    def extract_angles(self, frame: LandmarkFrame) -> dict[JointName, float]:
        angles: dict[JointName, float] = {}
        for joint in ANGLE_JOINTS:
            try:
                angles[joint] = self.joint_angle(frame, joint)
            except DegenerateGeometry as e:
                logger.debug("skipping %s at %d ms: %s", joint.value, frame.timestamp_ms, e)
        return angles


def frame_from_landmark_list(timestamp_ms: int, landmarks: Sequence) -> LandmarkFrame:
    """Build a LandmarkFrame from a MediaPipe-ordered landmark list.

    Items may be Landmark instances or any object with x, y, z and
    visibility attributes.
    """
    named = {}
    for name, lm in zip(LANDMARK_NAMES, landmarks):
        if isinstance(lm, Landmark):
            named[name] = lm
            continue
        visibility = getattr(lm, "visibility", None)
        named[name] = Landmark(
            x=lm.x,
            y=lm.y,
            z=getattr(lm, "z", None),
            confidence=1.0 if visibility is None else min(max(visibility, 0.0), 1.0),
        )
    return LandmarkFrame(timestamp_ms=timestamp_ms, landmarks=named)
