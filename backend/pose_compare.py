from typing import Mapping, Optional

from models import JOINT_ORDER, JointName, JointScore, PoseComparison
from settings import EngineConfig


def round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def compare_poses(
    user_angles: Mapping[JointName, float],
    reference_angles: Mapping[JointName, float],
    config: Optional[EngineConfig] = None,
) -> PoseComparison:
    """Score one user frame against one reference frame, joint by joint."""
    config = config or EngineConfig()
    max_diff = config.pose_max_angle_difference_degrees
    tolerance = config.pose_angle_tolerance_degrees

    joint_scores = []
    for joint in JOINT_ORDER:
        if joint not in user_angles or joint not in reference_angles:
            continue
        user, ref = user_angles[joint], reference_angles[joint]
        diff = abs(user - ref)
        hint = ""
        if diff > tolerance:
            hint = "Stretch" if user > ref else "Bend"
        joint_scores.append(
            JointScore(
                joint_name=joint.value,
                score=max(0.0, 100.0 * (1.0 - diff / max_diff)),
                user_angle=user,
                reference_angle=ref,
                difference=diff,
                hint=hint,
            )
        )

    # joints that scored zero do not count toward the frame average
    scored = [s.score for s in joint_scores if s.score > 0]
    overall = round_half_up(sum(scored) / len(scored)) if scored else 0
    return PoseComparison(joint_scores=joint_scores, overall_score=overall)
