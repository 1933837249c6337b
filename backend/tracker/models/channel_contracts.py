from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from backend.tracker.services.channel_registry import ComposedChannel, MetadataUpdate
from backend.tracker.services.delta_engine import ChannelDelta, DailySummary


class AddChannelRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str = Field(max_length=2048)

    @field_validator("url")
    @classmethod
    def _require_url(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Channel URL is required")
        return normalized


class ChannelMetadataPatch(BaseModel):
    """Only keys present in the request body are applied; null clears like an empty string."""

    model_config = ConfigDict(extra="ignore")

    note: str | None = Field(default=None, max_length=10_000)
    description: str | None = Field(default=None, max_length=10_000)
    detail_description: str | None = Field(
        default=None,
        max_length=50_000,
        validation_alias=AliasChoices("detail_description", "detailDescription"),
    )

    def present_fields(self) -> dict[str, str | None]:
        return {
            field_name: getattr(self, field_name)
            for field_name in ("note", "description", "detail_description")
            if field_name in self.model_fields_set
        }


class ChannelResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    channel_id: str
    title: str
    thumbnail: str | None
    subscriber_count: int
    video_count: int
    view_count: int
    url: str
    note: str
    description: str
    detail_description: str
    added_at: str

    @classmethod
    def from_composed(cls, channel: ComposedChannel) -> ChannelResponse:
        return cls(
            id=channel.channel_id,
            channel_id=channel.channel_id,
            title=channel.title,
            thumbnail=channel.thumbnail,
            subscriber_count=channel.subscriber_count,
            video_count=channel.video_count,
            view_count=channel.view_count,
            url=channel.url,
            note=channel.note,
            description=channel.description,
            detail_description=channel.detail_description,
            added_at=channel.added_at,
        )


class MetadataUpdateResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool
    channel_id: str
    created: bool
    note: str | None = None
    description: str | None = None
    detail_description: str | None = None

    @classmethod
    def from_update(cls, update: MetadataUpdate) -> MetadataUpdateResponse:
        return cls(
            success=True,
            channel_id=update.channel_id,
            created=update.created,
            **update.applied,
        )


class RemoveChannelResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool
    removed: bool


class ChannelDeltaResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    channel_id: str
    new_videos: int
    new_views: int
    first_seen: bool

    @classmethod
    def from_delta(cls, delta: ChannelDelta) -> ChannelDeltaResponse:
        return cls(
            channel_id=delta.channel_id,
            new_videos=delta.new_videos,
            new_views=delta.new_views,
            first_seen=delta.first_seen,
        )


class DailySummaryResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: str
    new_videos_today: int
    new_views_today: int
    channels: list[ChannelDeltaResponse]

    @classmethod
    def from_summary(cls, summary: DailySummary) -> DailySummaryResponse:
        return cls(
            date=summary.day.isoformat(),
            new_videos_today=summary.new_videos,
            new_views_today=summary.new_views,
            channels=[ChannelDeltaResponse.from_delta(delta) for delta in summary.channels],
        )


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str
    api_key_configured: bool
    database_connected: bool
