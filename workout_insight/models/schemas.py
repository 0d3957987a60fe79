"""Pydantic models describing workout inputs and API payloads."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class WorkoutSample(BaseModel):
    """One time-series sample; optional channels exist only when the device recorded them."""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    time: float = Field(ge=0, description="Seconds elapsed since the start of the activity")
    distance: float = Field(default=0.0, description="Metres covered so far")
    heartrate: float | None = None
    speed: float | None = Field(default=None, description="Metres per second")
    altitude: float | None = None
    cadence: float | None = None
    watts: float | None = None


class ActivitySummary(BaseModel):
    """Aggregate record for one workout as delivered by the fitness platform."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, allow_inf_nan=False)

    id: int | None = None
    name: str | None = None
    activity_type: str = Field(default="Workout", alias="type")
    sport_type: str | None = None

    moving_time: int | None = Field(default=None, ge=0, description="Seconds")
    elapsed_time: int | None = Field(default=None, ge=0, description="Seconds")
    distance: float | None = Field(default=None, ge=0, description="Metres")
    total_elevation_gain: float | None = None
    elev_high: float | None = None
    elev_low: float | None = None

    average_heartrate: float | None = None
    max_heartrate: float | None = None
    average_speed: float | None = Field(default=None, description="Metres per second")
    max_speed: float | None = None
    average_watts: float | None = None
    max_watts: float | None = None
    average_cadence: float | None = None

    calories: float | None = None
    gear_name: str | None = None
    suffer_score: float | None = None


class UserProfile(BaseModel):
    """Physiological parameters supplied by the user."""

    model_config = ConfigDict(allow_inf_nan=False)

    age: int = Field(gt=0, le=120)
    weight: float = Field(gt=0, description="Kilograms")
    height: float | None = Field(default=None, gt=0, description="Centimetres")
    resting_heart_rate: int = Field(gt=0, lt=250)


class StreamSet(BaseModel):
    """Platform streams keyed by type (parallel arrays indexed by sample)."""

    time: list[float] = []
    distance: list[float] | None = None
    heartrate: list[float | None] | None = None
    velocity_smooth: list[float | None] | None = None
    altitude: list[float | None] | None = None
    cadence: list[float | None] | None = None
    watts: list[float | None] | None = None


class AnalyzeRequest(BaseModel):
    """Request body for generating (or fetching) an activity analysis."""

    force_refresh: bool = False
    profile: UserProfile | None = None
    activity: ActivitySummary | None = None
    samples: list[WorkoutSample] | None = None
    streams: StreamSet | None = None

    @model_validator(mode="after")
    def check_single_series(self) -> "AnalyzeRequest":
        if self.samples is not None and self.streams is not None:
            raise ValueError("Provide either samples or streams, not both")
        return self


class AnalysisResponse(BaseModel):
    """Successful analysis payload."""

    activity_id: int
    content: str
    is_cached: bool
    updated_at: datetime


class AnalysisErrorResponse(BaseModel):
    """Failure payload shared by every analysis error kind."""

    error_kind: str
    message: str
    retry_after_seconds: int | None = None
    cached_fallback: str | None = None


class UsageResponse(BaseModel):
    """Snapshot of today's generation usage."""

    scope: str
    count: int
    reset_key: str
    daily_limit: int
    remaining: int
    seconds_until_reset: int


class UsageUpdate(BaseModel):
    """Manual correction of today's usage counter."""

    count: int = Field(ge=0)


class ModelLimits(BaseModel):
    rpm: int
    tpm: int
    rpd: int


class ModelInfoResponse(BaseModel):
    """Descriptor of the generation model in use."""

    id: str
    name: str
    limits: ModelLimits
