import unittest

import numpy as np

from errors import DimensionMismatch, InsufficientData
from fast_dtw import FastDTW, _coarsen, _exact_dtw, best_fast_dtw, fast_dtw
from models import AngleVectorFrame, JointName
from settings import EngineConfig

JOINTS = (JointName.LEFT_ELBOW, JointName.RIGHT_ELBOW, JointName.LEFT_KNEE)


def routine(frames: int, phase: float = 0.0) -> np.ndarray:
    t = np.linspace(0, 4 * np.pi, frames)
    return np.column_stack([
        90 + 60 * np.sin(t + phase),
        90 + 45 * np.cos(t + phase),
        120 + 30 * np.sin(0.5 * t + phase),
    ])


def vectors(array, joints=JOINTS) -> list[AngleVectorFrame]:
    return [AngleVectorFrame(joint_names=joints, angles=tuple(row)) for row in np.asarray(array)]


class FastDTWAlgorithmTests(unittest.TestCase):
    def test_coarsen_rounds_up(self) -> None:
        x = np.arange(10, dtype=float).reshape(5, 2)
        coarse = _coarsen(x)
        self.assertEqual(coarse.shape, (3, 2))
        np.testing.assert_allclose(coarse[0], [1.0, 2.0])
        np.testing.assert_allclose(coarse[2], [8.0, 9.0])

    def test_small_inputs_use_exact_dtw(self) -> None:
        x = routine(6)
        y = routine(7, phase=0.4)
        self.assertEqual(fast_dtw(x, y, radius=5), _exact_dtw(x, y))

    def test_never_beats_exact_dtw(self) -> None:
        rng = np.random.default_rng(11)
        for n, m in ((40, 40), (64, 31), (25, 90)):
            x = rng.uniform(0, 180, (n, 3))
            y = rng.uniform(0, 180, (m, 3))
            exact, _ = _exact_dtw(x, y)
            approx, path = fast_dtw(x, y, radius=1)
            self.assertGreaterEqual(approx + 1e-6, exact)
            self.assertEqual(path[0], (0, 0))
            self.assertEqual(path[-1], (n - 1, m - 1))

    def test_best_alignment_never_above_single_radius(self) -> None:
        rng = np.random.default_rng(23)
        x = rng.uniform(0, 180, (40, 2))
        y = rng.uniform(0, 180, (33, 2))
        for radius in range(5):
            best, path = best_fast_dtw(x, y, radius)
            single, _ = fast_dtw(x, y, radius)
            self.assertLessEqual(best, single)
            self.assertEqual(path[-1], (39, 32))

    def test_path_is_monotone_and_continuous(self) -> None:
        _, path = fast_dtw(routine(80), routine(50, phase=0.3), radius=2)
        for (i0, j0), (i1, j1) in zip(path, path[1:]):
            self.assertIn((i1 - i0, j1 - j0), {(1, 0), (0, 1), (1, 1)})


class FastDTWCompareTests(unittest.TestCase):
    def setUp(self) -> None:
        self.fast = FastDTW(EngineConfig())

    def test_identical_sequences(self) -> None:
        v = vectors(routine(60))
        result = self.fast.compare(v, v, radius=5)
        self.assertEqual(result.overall_score, 100.0)
        self.assertEqual(result.raw_cost, 0.0)
        self.assertEqual(len(result.per_frame_scores), len(result.path))
        self.assertTrue(all(s == 100.0 for s in result.per_frame_scores))
        self.assertEqual(result.joint_errors, [0.0, 0.0, 0.0])
        self.assertEqual(result.joint_names, ["left elbow", "right elbow", "left knee"])

    def test_slower_performance_scores_high(self) -> None:
        ref = routine(60)
        user = np.repeat(ref, 2, axis=0)
        result = self.fast.compare(vectors(ref), vectors(user), radius=5)
        self.assertGreaterEqual(result.overall_score, 90.0)

    def test_joint_errors_point_at_the_diverging_joint(self) -> None:
        ref = np.column_stack([np.full(20, 90.0), np.full(20, 45.0)])
        user = ref + np.array([36.0, 0.0])
        joints = (JointName.LEFT_ELBOW, JointName.LEFT_KNEE)
        result = self.fast.compare(vectors(ref, joints), vectors(user, joints), radius=2)
        self.assertAlmostEqual(result.joint_errors[0], 0.2)
        self.assertAlmostEqual(result.joint_errors[1], 0.0)
        self.assertLess(result.overall_score, 100.0)
        self.assertGreater(result.overall_score, 0.0)

    def test_uniform_offset_matches_scalar_mapping(self) -> None:
        ref = np.full((10, 3), 90.0)
        user = ref + 15.0
        result = self.fast.compare(vectors(ref), vectors(user), radius=1)
        self.assertAlmostEqual(result.overall_score, 80.0)
        for score in result.per_frame_scores:
            self.assertAlmostEqual(score, 80.0)

    def test_wider_radius_is_not_worse(self) -> None:
        rng = np.random.default_rng(5)
        cases = [
            (rng.uniform(0, 180, (14, 3)), rng.uniform(0, 180, (50, 3))),
            (routine(55), routine(27, phase=0.9) + rng.normal(0, 8, (27, 3))),
            (routine(18, phase=0.3) + rng.normal(0, 8, (18, 3)), routine(28)),
        ]
        for ref, user in cases:
            # every radius here stays below the exact-DTW cutoff
            results = [self.fast.compare(vectors(ref), vectors(user), radius=r) for r in range(6)]
            for narrow, wide in zip(results, results[1:]):
                self.assertLessEqual(wide.raw_cost, narrow.raw_cost)
                self.assertGreaterEqual(wide.overall_score, narrow.overall_score)

    def test_wide_radius_matches_exact_dtw(self) -> None:
        ref, user = routine(30), routine(24, phase=0.6)
        exact, _ = _exact_dtw(ref, user)
        result = self.fast.compare(vectors(ref), vectors(user), radius=30)
        self.assertAlmostEqual(result.raw_cost, exact)

    def test_default_radius_comes_from_config(self) -> None:
        fast = FastDTW(EngineConfig(fast_dtw_radius=40))
        ref, user = vectors(routine(30)), vectors(routine(24, phase=0.6))
        self.assertEqual(fast.compare(ref, user).raw_cost, self.fast.compare(ref, user, radius=40).raw_cost)

    def test_insufficient_frames(self) -> None:
        with self.assertRaises(InsufficientData):
            self.fast.compare(vectors(routine(4)), vectors(routine(20)))
        with self.assertRaises(InsufficientData):
            self.fast.compare(vectors(routine(20)), vectors(routine(3)))

    def test_dimension_mismatch(self) -> None:
        reordered = (JointName.RIGHT_ELBOW, JointName.LEFT_ELBOW, JointName.LEFT_KNEE)
        with self.assertRaises(DimensionMismatch):
            self.fast.compare(vectors(routine(10)), vectors(routine(10), reordered))
        with self.assertRaises(DimensionMismatch):
            self.fast.compare(vectors(routine(10)), vectors(routine(10)[:, :2], JOINTS[:2]))


if __name__ == "__main__":
    unittest.main()
