import logging
import math
from typing import Optional, Sequence

import numpy as np
from dtw import dtw
from dtw.stepPattern import symmetric1

from errors import DimensionMismatch, InsufficientData
from models import AngleVectorFrame, FastDTWResult
from scalar_dtw import score_from_cost
from settings import EngineConfig

logger = logging.getLogger(__name__)

Path = list[tuple[int, int]]

_MAX_ANGLE = 180.0


def _exact_dtw(x: np.ndarray, y: np.ndarray) -> tuple[float, Path]:
    # symmetric1: every step adds the plain local distance, no slope weights
    alignment = dtw(x, y, dist_method="euclidean", step_pattern=symmetric1)
    path = list(zip(alignment.index1.tolist(), alignment.index2.tolist()))
    return float(alignment.distance), path


def _coarsen(x: np.ndarray) -> np.ndarray:
    n = len(x) // 2 * 2
    halved = x[:n].reshape(-1, 2, x.shape[1]).mean(axis=1)
    if len(x) % 2:
        halved = np.vstack([halved, x[-1:]])
    return halved


def _expand_window(path: Path, n: int, m: int, radius: int) -> tuple[np.ndarray, np.ndarray]:
    """Per-row [lo, hi] column bounds at full resolution for a coarse path."""
    cn, cm = (n + 1) // 2, (m + 1) // 2
    coarse_lo = np.full(cn, cm, dtype=int)
    coarse_hi = np.full(cn, -1, dtype=int)
    for ci, cj in path:
        rows = slice(max(0, ci - radius), min(cn, ci + radius + 1))
        coarse_lo[rows] = np.minimum(coarse_lo[rows], cj - radius)
        coarse_hi[rows] = np.maximum(coarse_hi[rows], cj + radius)

    fine_rows = np.arange(n) // 2
    lo = np.clip(2 * coarse_lo[fine_rows], 0, m - 1)
    hi = np.clip(2 * coarse_hi[fine_rows] + 1, 0, m - 1)
    return lo, hi


def _windowed_dtw(x: np.ndarray, y: np.ndarray, lo: np.ndarray, hi: np.ndarray) -> tuple[float, Path]:
    n, m = len(x), len(y)
    rows: list[np.ndarray] = []

    for i in range(n):
        l, h = int(lo[i]), int(hi[i])
        local = np.linalg.norm(y[l:h + 1] - x[i], axis=1)
        row = np.full(h - l + 1, np.inf)
        if i == 0:
            row[0] = local[0]
            for k in range(1, len(row)):
                row[k] = row[k - 1] + local[k]
        else:
            prev = rows[-1]
            pl, ph = int(lo[i - 1]), int(hi[i - 1])
            for k in range(len(row)):
                j = l + k
                best = np.inf
                if pl <= j <= ph:
                    best = prev[j - pl]
                if pl <= j - 1 <= ph:
                    best = min(best, prev[j - 1 - pl])
                if k > 0:
                    best = min(best, row[k - 1])
                row[k] = local[k] + best
        rows.append(row)

    def acc(i: int, j: int) -> float:
        if i < 0 or j < 0 or j < lo[i] or j > hi[i]:
            return np.inf
        return rows[i][j - lo[i]]

    i, j = n - 1, m - 1
    path = [(i, j)]
    while i > 0 or j > 0:
        # diagonal first so ties keep the path short
        candidates = ((i - 1, j - 1), (i - 1, j), (i, j - 1))
        i, j = min(candidates, key=lambda c: acc(*c))
        path.append((i, j))
    path.reverse()
    return float(acc(n - 1, m - 1)), path


def fast_dtw(x: np.ndarray, y: np.ndarray, radius: int) -> tuple[float, Path]:
    """Approximate DTW cost and warp path between two (frames, joints) arrays.

    Both sequences are halved by averaging neighbouring frames until one is
    at most ``radius + 2`` long and exact DTW is run there. The coarse path is
    then projected back a level at a time, widened by ``radius`` cells, and
    DTW is re-run inside that band only.
    """
    min_size = radius + 2
    if len(x) <= min_size or len(y) <= min_size:
        return _exact_dtw(x, y)

    _, coarse_path = fast_dtw(_coarsen(x), _coarsen(y), radius)
    lo, hi = _expand_window(coarse_path, len(x), len(y), radius)
    return _windowed_dtw(x, y, lo, hi)


def best_fast_dtw(x: np.ndarray, y: np.ndarray, radius: int) -> tuple[float, Path]:
    """Cheapest fast_dtw alignment over every radius from 0 to ``radius``.

    A single band is not guaranteed to contain the narrower bands' paths, so
    the cost of one fast_dtw call can rise with the radius. Keeping the best
    one makes the cost non-increasing in ``radius``.
    """
    best = None
    for r in range(radius + 1):
        cost, path = fast_dtw(x, y, r)
        if best is None or cost < best[0]:
            best = (cost, path)
        if min(len(x), len(y)) <= r + 2:
            # exact from here on
            break
    return best


class FastDTW:
    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def _validate(self, ref_vectors: Sequence[AngleVectorFrame], user_vectors: Sequence[AngleVectorFrame]):
        min_len = self.config.min_sequence_length
        if len(ref_vectors) < min_len or len(user_vectors) < min_len:
            raise InsufficientData(
                f"need {min_len} frames, got reference={len(ref_vectors)} user={len(user_vectors)}"
            )
        joint_names = ref_vectors[0].joint_names
        if not joint_names:
            raise DimensionMismatch("angle vectors are empty")
        for frame in (*ref_vectors, *user_vectors):
            if frame.joint_names != joint_names:
                raise DimensionMismatch(
                    f"expected joints {[j.value for j in joint_names]}, "
                    f"got {[j.value for j in frame.joint_names]}"
                )
        return joint_names

    def compare(
        self,
        ref_vectors: Sequence[AngleVectorFrame],
        user_vectors: Sequence[AngleVectorFrame],
        radius: Optional[int] = None,
    ) -> FastDTWResult:
        if radius is None:
            radius = self.config.fast_dtw_radius
        if radius < 0:
            raise ValueError("radius must be non-negative")

        joint_names = self._validate(ref_vectors, user_vectors)
        ref = np.array([f.angles for f in ref_vectors], dtype=float)
        user = np.array([f.angles for f in user_vectors], dtype=float)

        cost, path = best_fast_dtw(ref, user, radius)

        ri = np.array([p[0] for p in path])
        ui = np.array([p[1] for p in path])
        diffs = np.abs(ref[ri] - user[ui])  # (steps, joints)
        step_dist = np.linalg.norm(diffs, axis=1)

        dims = math.sqrt(len(joint_names))
        scale = self.config.dtw_scale_factor
        normalized = cost / (len(ref) + len(user)) / dims
        # a diagonal path has one step per frame pair, i.e. half of n + m
        per_frame = np.clip(100.0 - step_dist / dims * scale / 2.0, 0.0, 100.0)

        logger.debug(
            "fastdtw: %d x %d frames, radius=%d, cost=%.2f, path=%d",
            len(ref), len(user), radius, cost, len(path),
        )
        return FastDTWResult(
            overall_score=score_from_cost(normalized, scale),
            per_frame_scores=per_frame.tolist(),
            joint_errors=(diffs.mean(axis=0) / _MAX_ANGLE).tolist(),
            joint_names=[j.value.replace("_", " ") for j in joint_names],
            raw_cost=cost,
            path=[[int(a), int(b)] for a, b in path],
        )
