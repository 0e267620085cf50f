"""Timeline project schemas as sent by the editor for export.

Field names on the wire are camelCase; attributes are snake_case.
All models are frozen: the compiler only ever reads them.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

AssetKind = Literal["video", "image", "audio", "text"]
ExportFormat = Literal["mp4", "mov", "gif"]


class TimelineModel(BaseModel):
    """Base for all timeline schemas."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Transform(TimelineModel):
    """2-D transform of a clip in project-canvas pixels."""

    x: float = 0.0
    y: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0
    rotation: float = 0.0
    opacity: float = 1.0
    anchor_x: float = 0.0
    anchor_y: float = 0.0


class TextMeta(TimelineModel):
    initial_text: str | None = None


class Asset(TimelineModel):
    id: str
    source: str
    kind: AssetKind
    duration: float | None = None
    text_meta: TextMeta | None = None


class Clip(TimelineModel):
    """A clip placed on the timeline (seconds)."""

    id: str
    track_id: str
    asset_id: str
    kind: str
    start: float = Field(ge=0)
    end: float
    in_point: float | None = None
    out_point: float | None = None
    transform: Transform | None = None
    params: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _check_range(self) -> "Clip":
        if self.end <= self.start:
            raise ValueError(f"clip {self.id}: end ({self.end}) must be greater than start ({self.start})")
        return self

    @property
    def effective_in_point(self) -> float:
        return self.start if self.in_point is None else self.in_point

    @property
    def effective_out_point(self) -> float:
        return self.end if self.out_point is None else self.out_point

    @property
    def effective_transform(self) -> Transform:
        return self.transform or Transform()

    @property
    def timeline_duration(self) -> float:
        return self.end - self.start


class Track(TimelineModel):
    id: str
    kind: str
    name: str | None = None
    order: int = 0
    hidden: bool = False
    muted: bool = False
    clips: list[Clip] = Field(default_factory=list)


class Project(TimelineModel):
    id: str
    name: str = ""
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    fps: float | None = None
    background_color: str | None = None
    assets: list[Asset] = Field(default_factory=list)
    tracks: list[Track] = Field(default_factory=list)

    @property
    def duration(self) -> float:
        """Timeline length: the latest clip end over all tracks."""
        return max((clip.end for track in self.tracks for clip in track.clips), default=0.0)

    def find_asset(self, asset_id: str) -> Asset | None:
        for asset in self.assets:
            if asset.id == asset_id:
                return asset
        return None


class ExportOptions(TimelineModel):
    """Export parameters chosen in the editor's export dialog."""

    width: int = Field(gt=0)
    height: int = Field(gt=0)
    fps: float = Field(default=30, gt=0)
    title: str = "export"
    format: ExportFormat = "mp4"
    video_quality: str | None = None
    video_codec: Literal["h264", "hevc"] = "h264"
    video_bitrate_kbps: int = Field(default=8000, gt=0)
    audio_codec: Literal["aac", "pcm"] = "aac"
    audio_bitrate_kbps: int = Field(default=192, gt=0)
    audio_sample_rate: int = Field(default=48000, gt=0)
