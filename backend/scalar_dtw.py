from typing import Optional, Sequence, Union

import numpy as np
from dtw import dtw
from dtw.stepPattern import symmetric1

from errors import InsufficientData
from models import AngleSequence, DTWResult, JointName
from settings import EngineConfig

AngleInput = Union[AngleSequence, Sequence[float], np.ndarray]


def as_angles(seq: AngleInput) -> np.ndarray:
    if isinstance(seq, AngleSequence):
        return np.asarray(seq.angles(), dtype=float)
    return np.asarray(seq, dtype=float).reshape(-1)


def dtw_cost(x: np.ndarray, y: np.ndarray) -> float:
    """Accumulated alignment cost using |x[i] - y[j]| as the local cost and
    the match/insert/delete step set."""
    alignment = dtw(
        np.asarray(x, dtype=float).reshape(-1, 1),
        np.asarray(y, dtype=float).reshape(-1, 1),
        dist_method="cityblock",
        step_pattern=symmetric1,
        distance_only=True,
    )
    return float(alignment.distance)


def score_from_cost(normalized_cost: float, scale_factor: float) -> float:
    return float(np.clip(100.0 - normalized_cost * scale_factor, 0.0, 100.0))


class ScalarDTW:
    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def compare(self, user_seq: AngleInput, ref_seq: AngleInput, joint_name: JointName) -> DTWResult:
        user = as_angles(user_seq)
        ref = as_angles(ref_seq)

        min_len = self.config.min_sequence_length
        if len(user) < min_len or len(ref) < min_len:
            raise InsufficientData(
                f"{JointName(joint_name).value}: need {min_len} samples, "
                f"got user={len(user)} reference={len(ref)}"
            )

        cost = dtw_cost(user, ref)
        normalized = cost / (len(user) + len(ref))
        return DTWResult(
            joint_name=joint_name,
            score=score_from_cost(normalized, self.config.dtw_scale_factor),
            raw_cost=cost,
            normalized_cost=normalized,
            user_length=len(user),
            reference_length=len(ref),
        )
