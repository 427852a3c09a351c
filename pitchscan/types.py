from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Generic, Protocol, TypeVar

T = TypeVar("T")


class ByteSource(Protocol):
    """Random-access reader over a payload that may not be memory resident."""

    def read(self, offset: int, length: int) -> bytes: ...


@dataclass
class BytesSource:
    """Byte source over an in-memory payload."""

    data: bytes

    def read(self, offset: int, length: int) -> bytes:
        return self.data[offset : offset + length]


@dataclass
class FileSource:
    """Byte source reading ranges from a file on disk."""

    path: Path

    def read(self, offset: int, length: int) -> bytes:
        with open(self.path, "rb") as f:
            f.seek(offset)
            return f.read(length)


@dataclass
class MediaAsset:
    """A binary payload accepted for upload."""

    display_name: str
    mime_type: str
    size_bytes: int
    source: ByteSource

    @classmethod
    def from_bytes(cls, data: bytes, display_name: str, mime_type: str) -> "MediaAsset":
        return cls(
            display_name=display_name,
            mime_type=mime_type,
            size_bytes=len(data),
            source=BytesSource(data),
        )

    @classmethod
    def from_path(cls, path: str | Path, mime_type: str, display_name: str | None = None) -> "MediaAsset":
        path = Path(path)
        return cls(
            display_name=display_name or path.name,
            mime_type=mime_type,
            size_bytes=path.stat().st_size,
            source=FileSource(path),
        )


@dataclass
class UploadSession:
    """An in-progress resumable transfer."""

    upload_url: str
    size_bytes: int
    bytes_sent: int = 0
    finalized: bool = False

    @property
    def remaining_bytes(self) -> int:
        return self.size_bytes - self.bytes_sent

    def acknowledge(self, chunk_length: int, finalize: bool) -> None:
        """Advance the offset after the remote side accepted a chunk."""
        if self.finalized:
            raise RuntimeError("Upload session already finalized")
        if self.bytes_sent + chunk_length > self.size_bytes:
            raise RuntimeError(
                f"Chunk of {chunk_length} bytes overruns session size {self.size_bytes}"
            )
        self.bytes_sent += chunk_length
        if finalize:
            self.finalized = True


class RemoteAssetState(str, Enum):
    """Server-side processing state of an uploaded file."""

    PROCESSING = "PROCESSING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"

    @classmethod
    def from_wire(cls, value: Any) -> "RemoteAssetState":
        # Unknown or missing states (STATE_UNSPECIFIED, PENDING, ...) keep polling.
        if isinstance(value, str):
            upper = value.strip().upper()
            if upper == cls.ACTIVE.value:
                return cls.ACTIVE
            if upper == cls.FAILED.value:
                return cls.FAILED
        return cls.PROCESSING


@dataclass
class RemoteAsset:
    """Server-side handle to an uploaded file."""

    name: str
    uri: str
    mime_type: str
    state: RemoteAssetState = RemoteAssetState.PROCESSING

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RemoteAsset":
        return cls(
            name=data["name"],
            uri=data.get("uri", ""),
            mime_type=data.get("mimeType", ""),
            state=RemoteAssetState.from_wire(data.get("state")),
        )


@dataclass
class FrameSample:
    """A rasterized still image and the video time it was taken at."""

    timestamp_seconds: float
    image_bytes: bytes
    mime_type: str = "image/jpeg"


class Team(str, Enum):
    HOME = "home"
    AWAY = "away"


@dataclass(frozen=True)
class TeamColors:
    home: str = "Blue"
    away: str = "Red"

    def for_team(self, team: Team) -> str:
        return self.home if team == Team.HOME else self.away


@dataclass(frozen=True)
class Detection:
    """One identified player, with percentage box coordinates."""

    id: int
    x: float
    y: float
    width: float
    height: float
    confidence: float
    team: Team
    team_color: str
    timestamp_seconds: float
    jersey_number: str | None = None
    is_referee: bool = False
    inferred_fields: frozenset[str] = field(default_factory=frozenset)

    @property
    def x_center(self) -> float:
        return self.x + self.width / 2

    @property
    def y_center(self) -> float:
        return self.y + self.height / 2


@dataclass
class DetectionResultSet:
    team_colors: TeamColors = field(default_factory=TeamColors)
    detections: list[Detection] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.detections)


@dataclass(frozen=True)
class DominantFoot:
    right: int
    left: int


@dataclass(frozen=True)
class PerformanceReport:
    """Per-player match performance scores."""

    match_id: str
    date: str
    opponent: str
    overall: int
    speed: int
    passing: int
    positioning: int
    touches: int
    distance_km: float
    top_speed_kmh: float
    pass_accuracy: int
    dominant_foot: DominantFoot
    inferred_fields: frozenset[str] = field(default_factory=frozenset)


@dataclass
class AnalysisResult(Generic[T]):
    """Outcome of a pipeline run.

    ``degraded`` is True when ``value`` came from the fallback generator
    rather than the model; ``warning`` then names the probable cause.
    ``avatars`` maps detection ids to JPEG crops of ``best_frame``.
    """

    value: T
    degraded: bool = False
    attempts: int = 0
    warning: str | None = None
    best_frame: FrameSample | None = None
    avatars: dict[int, bytes] = field(default_factory=dict)
