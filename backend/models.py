from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class JointName(str, Enum):
    LEFT_ELBOW = "left_elbow"
    RIGHT_ELBOW = "right_elbow"
    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"
    LEFT_WRIST = "left_wrist"
    RIGHT_WRIST = "right_wrist"
    LEFT_HIP = "left_hip"
    RIGHT_HIP = "right_hip"
    LEFT_KNEE = "left_knee"
    RIGHT_KNEE = "right_knee"
    LEFT_ANKLE = "left_ankle"
    RIGHT_ANKLE = "right_ankle"


# Fixed ordering for joint-angle vectors.
JOINT_ORDER: tuple[JointName, ...] = tuple(JointName)

Source = Literal["user", "reference"]
Speed = Literal["slow", "good", "fast"]


class Landmark(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    z: Optional[float] = None
    confidence: float = Field(1.0, ge=0.0, le=1.0)


class LandmarkFrame(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp_ms: int = Field(ge=0)
    landmarks: dict[str, Landmark]


class AngleSample(BaseModel):
    model_config = ConfigDict(frozen=True)

    joint_name: JointName
    timestamp_ms: int = Field(ge=0)
    angle_degrees: float = Field(ge=0.0, le=180.0)


class AngleSequence(BaseModel):
    model_config = ConfigDict(frozen=True)

    joint_name: JointName
    source: Source
    samples: tuple[AngleSample, ...] = ()

    @model_validator(mode="after")
    def _check_samples(self):
        last = None
        for sample in self.samples:
            if sample.joint_name != self.joint_name:
                raise ValueError(
                    f"sample for {sample.joint_name.value} in {self.joint_name.value} sequence"
                )
            if last is not None and sample.timestamp_ms < last:
                raise ValueError("sample timestamps must be non-decreasing")
            last = sample.timestamp_ms
        return self

    def __len__(self) -> int:
        return len(self.samples)

    def angles(self) -> list[float]:
        return [s.angle_degrees for s in self.samples]

    def timestamps(self) -> list[int]:
        return [s.timestamp_ms for s in self.samples]


class PoseAngles(BaseModel):
    """Joint angles extracted from one frame; joints that could not be
    measured in that frame are simply absent."""

    model_config = ConfigDict(frozen=True)

    timestamp_ms: int = Field(ge=0)
    angles: dict[JointName, float]


class AngleVectorFrame(BaseModel):
    model_config = ConfigDict(frozen=True)

    joint_names: tuple[JointName, ...]
    angles: tuple[float, ...]

    @model_validator(mode="after")
    def _check_lengths(self):
        if len(self.joint_names) != len(self.angles):
            raise ValueError("joint_names and angles must have the same length")
        return self


class DTWResult(BaseModel):
    joint_name: JointName
    score: float = Field(ge=0.0, le=100.0)
    raw_cost: float = Field(ge=0.0)
    normalized_cost: float = Field(ge=0.0)
    user_length: int
    reference_length: int


class FastDTWResult(BaseModel):
    overall_score: float = Field(ge=0.0, le=100.0)
    per_frame_scores: list[float]
    joint_errors: list[float]
    joint_names: list[str]
    raw_cost: float = Field(ge=0.0)
    path: list[list[int]]  # [[ref_idx, user_idx], ...]


class TimingIssues(BaseModel):
    delays: bool = False
    gaps: bool = False
    speed: Speed = "good"


class MovementGap(BaseModel):
    start: int
    end: int
    duration_ms: int


class TimingReport(BaseModel):
    user_significant_frames: list[int]
    reference_significant_frames: list[int]
    user_gaps: list[MovementGap]
    issues: TimingIssues


class JointScore(BaseModel):
    joint_name: str
    score: float
    user_angle: Optional[float] = None
    reference_angle: Optional[float] = None
    difference: Optional[float] = None
    hint: str = ""


class PoseComparison(BaseModel):
    joint_scores: list[JointScore] = []
    overall_score: float = Field(0.0, ge=0.0, le=100.0)


class AngleTable(BaseModel):
    timestamps: list[int]
    angles: dict[str, list[Optional[float]]]


class ComparisonResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    final_score: int = Field(ge=0, le=100)
    feedback: str
    dtw_results: dict[JointName, DTWResult]
    pose_comparison: PoseComparison
    fast_dtw: Optional[FastDTWResult] = None
    timing: TimingIssues
    user_angle_table: Optional[AngleTable] = None
    reference_angle_table: Optional[AngleTable] = None


class CompareRequest(BaseModel):
    user_frames: list[LandmarkFrame]
    reference_frames: list[LandmarkFrame]


class JobStatus(BaseModel):
    job_id: str
    status: str  # pending, processing, complete, insufficient_data, error
    message: str = ""
