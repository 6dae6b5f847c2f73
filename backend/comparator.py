import logging
from typing import Iterable, Mapping, Optional

import numpy as np

from angle_extractor import AngleExtractor
from errors import DimensionMismatch, InsufficientData, OutOfOrderSample
from fast_dtw import FastDTW
from models import (
    JOINT_ORDER,
    AngleTable,
    AngleVectorFrame,
    ComparisonResult,
    DTWResult,
    FastDTWResult,
    JointName,
    LandmarkFrame,
    PoseAngles,
    PoseComparison,
    TimingIssues,
)
from pose_compare import compare_poses, round_half_up
from scalar_dtw import ScalarDTW
from sequence_buffer import SequenceBuffer
from settings import EngineConfig
from timing_analyzer import TimingAnalyzer

logger = logging.getLogger(__name__)

NOT_ENOUGH_DATA_FEEDBACK = "Not enough pose data. Please try again."

# (minimum score, feedback), highest tier first; the last tier catches the rest
FEEDBACK_TIERS = [
    (90, "Excellent work! Your form is nearly perfect and matches the reference movement with high precision."),
    (80, "Great job! Your movement shows good precision with only minor deviations from the reference."),
    (70, "Good performance! Your movement is mostly on track, with a few areas that could use improvement."),
    (60, "Decent effort. Your movement has the right general pattern, but needs refinement in several areas."),
    (50, "Fair attempt. Your movement shows some similarities to the reference, but needs significant improvement."),
    (30, "Keep practicing. Your movement needs considerable refinement to match the reference pattern."),
    (0, "More practice needed. Try focusing on matching the basic form of the reference movement."),
]


def feedback_for_score(score: float) -> str:
    for threshold, message in FEEDBACK_TIERS:
        if score >= threshold:
            return message
    return FEEDBACK_TIERS[-1][1]


class ScoreAggregator:
    """Blends per-joint DTW scores with the latest-frame pose comparison.

    FastDTW output is attached for display only and does not move the final
    score.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def aggregate(
        self,
        per_joint_dtw: Mapping[JointName, DTWResult],
        pose_comparison: PoseComparison,
        fast_dtw: Optional[FastDTWResult],
        timing: TimingIssues,
        user_angle_table: Optional[AngleTable] = None,
        reference_angle_table: Optional[AngleTable] = None,
    ) -> ComparisonResult:
        min_len = self.config.min_sequence_length
        valid = {
            joint: result
            for joint, result in per_joint_dtw.items()
            if result.user_length >= min_len and result.reference_length >= min_len
        }
        for joint in per_joint_dtw.keys() - valid.keys():
            logger.debug("excluding %s from the DTW mean: sequence shorter than %d", joint.value, min_len)
        if not valid:
            raise InsufficientData("no joint had enough samples to compare")

        mean_dtw = round_half_up(float(np.mean([r.score for r in valid.values()])))
        blended = self.config.dtw_weight * mean_dtw + self.config.pose_weight * pose_comparison.overall_score
        final_score = min(100, max(0, round_half_up(blended)))

        return ComparisonResult(
            final_score=final_score,
            feedback=feedback_for_score(final_score),
            dtw_results=valid,
            pose_comparison=pose_comparison,
            fast_dtw=fast_dtw,
            timing=timing,
            user_angle_table=user_angle_table,
            reference_angle_table=reference_angle_table,
        )


def build_angle_vectors(
    sequences: Mapping[JointName, list[float]], joints: list[JointName]
) -> list[AngleVectorFrame]:
    """One vector per frame across ``joints``; a joint that ran out of
    samples repeats its last angle."""
    frames = max(len(sequences[j]) for j in joints)
    vectors = []
    for i in range(frames):
        angles = tuple(
            sequences[j][i] if i < len(sequences[j]) else sequences[j][-1] for j in joints
        )
        vectors.append(AngleVectorFrame(joint_names=tuple(joints), angles=angles))
    return vectors


class EvaluationSession:
    """Owns the user and reference buffers for one evaluation.

    Create one per recording; do not share it between evaluations.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.extractor = AngleExtractor(self.config.min_landmark_confidence)
        self.user_buffer = SequenceBuffer("user")
        self.reference_buffer = SequenceBuffer("reference")
        self.user_frames: list[PoseAngles] = []
        self.reference_frames: list[PoseAngles] = []

    def _add_frame(self, frame: LandmarkFrame, buffer: SequenceBuffer, frames: list[PoseAngles]) -> PoseAngles:
        if frames and frame.timestamp_ms <= frames[-1].timestamp_ms:
            raise OutOfOrderSample(
                f"{buffer.source} frame at {frame.timestamp_ms} ms is not after "
                f"{frames[-1].timestamp_ms} ms"
            )
        angles = self.extractor.extract_angles(frame)
        for joint, angle in angles.items():
            buffer.record(joint, frame.timestamp_ms, angle)
        pose = PoseAngles(timestamp_ms=frame.timestamp_ms, angles=angles)
        frames.append(pose)
        return pose

    def add_user_frame(self, frame: LandmarkFrame) -> PoseAngles:
        return self._add_frame(frame, self.user_buffer, self.user_frames)

    def add_reference_frame(self, frame: LandmarkFrame) -> PoseAngles:
        return self._add_frame(frame, self.reference_buffer, self.reference_frames)

    def add_frames(self, user_frames: Iterable[LandmarkFrame], reference_frames: Iterable[LandmarkFrame]):
        for adder, frames in ((self.add_user_frame, user_frames), (self.add_reference_frame, reference_frames)):
            for frame in frames:
                try:
                    adder(frame)
                except OutOfOrderSample as e:
                    logger.warning("dropping frame: %s", e)

    def _joint_dtw(self) -> dict[JointName, DTWResult]:
        scalar = ScalarDTW(self.config)
        results = {}
        for joint in JOINT_ORDER:
            user_seq = self.user_buffer.export_sequence(joint)
            ref_seq = self.reference_buffer.export_sequence(joint)
            try:
                results[joint] = scalar.compare(user_seq, ref_seq, joint)
            except InsufficientData as e:
                logger.debug("excluding joint: %s", e)
        return results

    def _fast_dtw(self, joints: list[JointName]) -> Optional[FastDTWResult]:
        user = {j: self.user_buffer.export_sequence(j).angles() for j in joints}
        ref = {j: self.reference_buffer.export_sequence(j).angles() for j in joints}
        try:
            return FastDTW(self.config).compare(
                build_angle_vectors(ref, joints),
                build_angle_vectors(user, joints),
                self.config.fast_dtw_radius,
            )
        except (InsufficientData, DimensionMismatch) as e:
            logger.warning("skipping FastDTW analysis: %s", e)
            return None

    def _angle_tables(self) -> tuple[AngleTable, AngleTable]:
        user_table = self.user_buffer.angle_table()
        # reference column: what the reference was doing at each user timestamp
        reference_table = self.reference_buffer.angle_table(
            user_table.timestamps, self.config.nearest_sample_window_ms
        )
        return user_table, reference_table

    def evaluate(self) -> ComparisonResult:
        min_len = self.config.min_sequence_length
        if len(self.user_frames) < min_len or len(self.reference_frames) < min_len:
            raise InsufficientData(
                f"need {min_len} frames per stream, got user={len(self.user_frames)} "
                f"reference={len(self.reference_frames)}"
            )

        dtw_results = self._joint_dtw()
        if not dtw_results:
            raise InsufficientData("no joint had enough samples in both streams")
        logger.info(
            "per-joint DTW: %s",
            {j.value: round(r.score, 1) for j, r in dtw_results.items()},
        )

        fast_result = self._fast_dtw(list(dtw_results))
        timing = TimingAnalyzer(self.config).analyze(self.user_frames, self.reference_frames)
        pose_comparison = compare_poses(
            self.user_frames[-1].angles, self.reference_frames[-1].angles, self.config
        )
        user_table, reference_table = self._angle_tables()

        return ScoreAggregator(self.config).aggregate(
            dtw_results,
            pose_comparison,
            fast_result,
            timing.issues,
            user_angle_table=user_table,
            reference_angle_table=reference_table,
        )


def compare_streams(
    user_frames: Iterable[LandmarkFrame],
    reference_frames: Iterable[LandmarkFrame],
    config: Optional[EngineConfig] = None,
) -> ComparisonResult:
    """Compare a user performance against a reference performance."""
    session = EvaluationSession(config)
    session.add_frames(user_frames, reference_frames)
    return session.evaluate()
