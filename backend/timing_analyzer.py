import logging
from typing import Optional, Sequence

import numpy as np

from models import MovementGap, PoseAngles, Speed, TimingIssues, TimingReport
from settings import EngineConfig

logger = logging.getLogger(__name__)


def _frame_deltas(prev: PoseAngles, curr: PoseAngles) -> list[float]:
    common = prev.angles.keys() & curr.angles.keys()
    return [abs(curr.angles[j] - prev.angles[j]) for j in common]


class TimingAnalyzer:
    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def significant_movements(self, frames: Sequence[PoseAngles]) -> list[int]:
        """Indices of frames whose summed angle change from the previous
        frame exceeds the movement threshold."""
        threshold = self.config.significant_movement_threshold_degrees
        significant = []
        for i in range(1, len(frames)):
            if sum(_frame_deltas(frames[i - 1], frames[i])) > threshold:
                significant.append(i)
        return significant

    def movement_gaps(self, frames: Sequence[PoseAngles]) -> list[MovementGap]:
        """Maximal runs of frames in which no joint moves more than the gap
        epsilon, keeping only runs that last at least the minimum duration."""
        eps = self.config.gap_epsilon_degrees
        min_duration = self.config.gap_min_duration_ms

        gaps = []
        start = None
        for i in range(1, len(frames) + 1):
            still = False
            if i < len(frames):
                deltas = _frame_deltas(frames[i - 1], frames[i])
                still = bool(deltas) and max(deltas) <= eps
            if still:
                if start is None:
                    start = i - 1
                continue
            if start is not None:
                end = i - 1
                duration = frames[end].timestamp_ms - frames[start].timestamp_ms
                if duration >= min_duration:
                    gaps.append(MovementGap(start=start, end=end, duration_ms=duration))
                start = None
        return gaps

    def classify_speed(
        self,
        user_frames: Sequence[PoseAngles],
        ref_frames: Sequence[PoseAngles],
        user_significant: Sequence[int],
        ref_significant: Sequence[int],
    ) -> Speed:
        user_times = np.array([user_frames[i].timestamp_ms for i in user_significant], dtype=float)
        ref_times = np.array([ref_frames[i].timestamp_ms for i in ref_significant], dtype=float)
        user_intervals = np.diff(user_times)
        ref_intervals = np.diff(ref_times)

        n = min(len(user_intervals), len(ref_intervals))
        if n == 0:
            return "good"

        ref_intervals = ref_intervals[:n]
        user_intervals = user_intervals[:n]
        valid = ref_intervals > 0
        if not valid.any():
            return "good"
        ratios = user_intervals[valid] / ref_intervals[valid]

        tol = self.config.speed_tolerance
        slower = int(np.sum(ratios > 1.0 + tol))
        faster = int(np.sum(ratios < 1.0 - tol))
        if slower * 2 > len(ratios):
            return "slow"
        if faster * 2 > len(ratios):
            return "fast"
        return "good"

    def has_delay(
        self,
        user_frames: Sequence[PoseAngles],
        ref_frames: Sequence[PoseAngles],
        user_significant: Sequence[int],
        ref_significant: Sequence[int],
        session_start_ms: Optional[int] = None,
    ) -> bool:
        if not user_frames or not ref_frames or not ref_significant:
            return False
        if session_start_ms is None:
            session_start_ms = min(user_frames[0].timestamp_ms, ref_frames[0].timestamp_ms)

        ref_first = ref_frames[ref_significant[0]].timestamp_ms - session_start_ms
        if user_significant:
            user_first = user_frames[user_significant[0]].timestamp_ms - session_start_ms
        else:
            # never moved: late by at least the whole recording
            user_first = user_frames[-1].timestamp_ms - session_start_ms
        return user_first - ref_first > self.config.delay_grace_ms

    def analyze(
        self,
        user_frames: Sequence[PoseAngles],
        ref_frames: Sequence[PoseAngles],
        session_start_ms: Optional[int] = None,
    ) -> TimingReport:
        user_sig = self.significant_movements(user_frames)
        ref_sig = self.significant_movements(ref_frames)
        gaps = self.movement_gaps(user_frames)

        issues = TimingIssues(
            delays=self.has_delay(user_frames, ref_frames, user_sig, ref_sig, session_start_ms),
            gaps=bool(gaps),
            speed=self.classify_speed(user_frames, ref_frames, user_sig, ref_sig),
        )
        logger.debug(
            "timing: %d/%d significant frames, %d gaps, %s",
            len(user_sig), len(ref_sig), len(gaps), issues,
        )
        return TimingReport(
            user_significant_frames=user_sig,
            reference_significant_frames=ref_sig,
            user_gaps=gaps,
            issues=issues,
        )
