"""Analysis schemas for API responses."""

import base64
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pitchscan.types import AnalysisResult, DetectionResultSet, PerformanceReport, Team


def _base64(data: bytes | None) -> str | None:
    return base64.b64encode(data).decode("ascii") if data else None


class TeamColors(BaseModel):
    """Main jersey color of each team."""

    model_config = ConfigDict(from_attributes=True)

    home: str = Field(description="Home team jersey color")
    away: str = Field(description="Away team jersey color")


class PlayerDetection(BaseModel):
    """One detected player; box values are percentages of the frame."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(description="Player ID, unique within the response")
    x: float = Field(description="X coordinate of top-left corner (0-100)")
    y: float = Field(description="Y coordinate of top-left corner (0-100)")
    width: float = Field(description="Width of bounding box (0-100)")
    height: float = Field(description="Height of bounding box (0-100)")
    confidence: float = Field(description="Detection confidence (0-1)")
    team: Team
    team_color: str
    timestamp_seconds: float = Field(description="Video time the detection refers to")
    jersey_number: str | None = None
    inferred_fields: list[str] = Field(
        default_factory=list,
        description="Fields the model did not supply and that were defaulted",
    )
    avatar_jpeg: str | None = Field(None, description="Base64 JPEG crop of the player from the analyzed frame")

    @field_validator("inferred_fields", mode="before")
    @classmethod
    def _sorted_fields(cls, value: Any) -> list[str]:
        return sorted(value) if value else []


class DetectionResponse(BaseModel):
    """Response of a player detection run."""

    success: bool = True
    players: list[PlayerDetection]
    team_colors: TeamColors
    degraded: bool = Field(False, description="True when players are fallback data, not model output")
    warning: str | None = Field(None, description="Probable cause when the result is degraded")
    attempts: int = Field(0, description="Inference attempts made")
    frame_timestamp_seconds: float | None = Field(
        None, description="Timestamp of the analyzed frame in frame mode"
    )
    best_frame_jpeg: str | None = Field(None, description="Base64 JPEG of the analyzed frame in frame mode")

    @classmethod
    def from_result(cls, result: AnalysisResult[DetectionResultSet]) -> "DetectionResponse":
        players = [
            PlayerDetection.model_validate(d).model_copy(update={"avatar_jpeg": _base64(result.avatars.get(d.id))})
            for d in result.value.detections
        ]
        return cls(
            players=players,
            team_colors=TeamColors.model_validate(result.value.team_colors),
            degraded=result.degraded,
            warning=result.warning,
            attempts=result.attempts,
            frame_timestamp_seconds=result.best_frame.timestamp_seconds if result.best_frame else None,
            best_frame_jpeg=_base64(result.best_frame.image_bytes) if result.best_frame else None,
        )


class DominantFoot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    right: int = Field(description="Share of right-foot touches (percent)")
    left: int = Field(description="Share of left-foot touches (percent)")


class PerformanceData(BaseModel):
    """Per-player performance scores for one match."""

    model_config = ConfigDict(from_attributes=True)

    match_id: str
    date: str
    opponent: str
    overall: int = Field(ge=0, le=100)
    speed: int = Field(ge=0, le=100)
    passing: int = Field(ge=0, le=100)
    positioning: int = Field(ge=0, le=100)
    touches: int = Field(ge=0)
    distance_km: float = Field(ge=0, description="Distance covered in kilometers")
    top_speed_kmh: float = Field(ge=0, description="Top speed in km/h")
    pass_accuracy: int = Field(ge=0, le=100)
    dominant_foot: DominantFoot
    inferred_fields: list[str] = Field(default_factory=list)

    @field_validator("inferred_fields", mode="before")
    @classmethod
    def _sorted_fields(cls, value: Any) -> list[str]:
        return sorted(value) if value else []


class PerformanceResponse(BaseModel):
    """Response of a player performance analysis run."""

    success: bool = True
    player_id: str
    player_name: str
    performance_data: PerformanceData
    degraded: bool = False
    warning: str | None = None
    attempts: int = 0

    @classmethod
    def from_result(
        cls, result: AnalysisResult[PerformanceReport], player_id: str, player_name: str
    ) -> "PerformanceResponse":
        return cls(
            player_id=player_id,
            player_name=player_name,
            performance_data=PerformanceData.model_validate(result.value),
            degraded=result.degraded,
            warning=result.warning,
            attempts=result.attempts,
        )
