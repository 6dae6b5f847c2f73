import os

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# A constant 15 degree deviation on equal-length sequences normalises to
# 15 * n / (2 * n) = 7.5 and should cost 20 points. Keep this value fixed so
# scores stay comparable between releases.
DEFAULT_DTW_SCALE_FACTOR = 20.0 / 7.5


class EngineConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MOTION_", env_file=".env", extra="ignore"
    )

    significant_movement_threshold_degrees: float = Field(15.0, gt=0)
    gap_epsilon_degrees: float = Field(2.0, ge=0)
    gap_min_duration_ms: int = Field(500, ge=0)
    nearest_sample_window_ms: int = Field(300, ge=0)
    fast_dtw_radius: int = Field(5, ge=0)
    dtw_scale_factor: float = Field(DEFAULT_DTW_SCALE_FACTOR, gt=0)
    min_sequence_length: int = Field(5, ge=1)

    delay_grace_ms: int = Field(1000, ge=0)
    speed_tolerance: float = Field(0.2, ge=0, lt=1)

    # Final score blend: DTW mean vs latest-frame pose comparison.
    dtw_weight: float = Field(0.7, ge=0, le=1)
    pose_weight: float = Field(0.3, ge=0, le=1)

    min_landmark_confidence: float = Field(0.3, ge=0, le=1)
    pose_max_angle_difference_degrees: float = Field(60.0, gt=0)
    pose_angle_tolerance_degrees: float = Field(10.0, ge=0)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MOTION_", env_file=".env", extra="ignore"
    )

    project_name: str = "DanceCompare API"
    api_prefix: str = "/api"
    cors_origins: list[str] = ["*"]
    logging_config_file: str = os.path.join(BASE_DIR, "logging.ini")


settings = Settings()
