import bisect
from typing import Iterable, Optional

from errors import OutOfOrderSample
from models import AngleSample, AngleSequence, AngleTable, JointName, Source

DEFAULT_WINDOW_MS = 300


class SequenceBuffer:
    """Timestamped angle samples per joint for one stream of one session.

    A buffer belongs to a single evaluation session and is dropped with it.
    """

    def __init__(self, source: Source):
        self.source = source
        self._samples: dict[JointName, list[AngleSample]] = {}
        self._timestamps: dict[JointName, list[int]] = {}

    def __len__(self) -> int:
        return sum(len(s) for s in self._samples.values())

    def joints(self) -> list[JointName]:
        return [j for j in JointName if self._samples.get(j)]

    def record(self, joint_name: JointName, timestamp_ms: int, angle_degrees: float) -> AngleSample:
        joint_name = JointName(joint_name)
        stamps = self._timestamps.setdefault(joint_name, [])
        if stamps and timestamp_ms <= stamps[-1]:
            raise OutOfOrderSample(
                f"{self.source} {joint_name.value}: {timestamp_ms} ms is not after {stamps[-1]} ms"
            )
        sample = AngleSample(
            joint_name=joint_name, timestamp_ms=timestamp_ms, angle_degrees=angle_degrees
        )
        stamps.append(timestamp_ms)
        self._samples.setdefault(joint_name, []).append(sample)
        return sample

    def export_sequence(self, joint_name: JointName) -> AngleSequence:
        joint_name = JointName(joint_name)
        return AngleSequence(
            joint_name=joint_name,
            source=self.source,
            samples=tuple(self._samples.get(joint_name, ())),
        )

    def nearest_sample(
        self, joint_name: JointName, timestamp_ms: int, window_ms: int = DEFAULT_WINDOW_MS
    ) -> Optional[AngleSample]:
        """Closest sample to ``timestamp_ms``, or None if it is further
        than ``window_ms`` away. Ties go to the earlier sample."""
        joint_name = JointName(joint_name)
        stamps = self._timestamps.get(joint_name)
        if not stamps:
            return None

        idx = bisect.bisect_left(stamps, timestamp_ms)
        candidates = [i for i in (idx - 1, idx) if 0 <= i < len(stamps)]
        best = min(candidates, key=lambda i: abs(stamps[i] - timestamp_ms))
        if abs(stamps[best] - timestamp_ms) > window_ms:
            return None
        return self._samples[joint_name][best]

    def angle_table(
        self,
        timestamps: Optional[Iterable[int]] = None,
        window_ms: int = DEFAULT_WINDOW_MS,
    ) -> AngleTable:
        """Tabular export for display.

        Without ``timestamps`` the rows are every recorded timestamp. With
        them, each cell holds the nearest sample within ``window_ms``.
        """
        joints = self.joints()
        if timestamps is None:
            rows = sorted({t for j in joints for t in self._timestamps[j]})
        else:
            rows = list(timestamps)

        columns: dict[str, list[Optional[float]]] = {}
        for joint in joints:
            column = []
            for t in rows:
                sample = self.nearest_sample(joint, t, window_ms if timestamps is not None else 0)
                column.append(sample.angle_degrees if sample else None)
            columns[joint.value] = column
        return AngleTable(timestamps=rows, angles=columns)
