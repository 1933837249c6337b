from __future__ import annotations

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.tracker.clock import FixedOffsetClock
from backend.tracker.dependencies import (
    get_clock,
    get_registry,
    get_summary_service,
)
from backend.tracker.models.channel_contracts import (
    AddChannelRequest,
    ChannelMetadataPatch,
    ChannelResponse,
    DailySummaryResponse,
    MetadataUpdateResponse,
    RemoveChannelResponse,
)
from backend.tracker.services.channel_registry import ChannelRegistry
from backend.tracker.services.delta_engine import DailySummaryService

router = APIRouter()


@router.post(
    "/channel",
    response_model=ChannelResponse,
    tags=["channels"],
    operation_id="add_channel",
)
def add_channel(
    request: AddChannelRequest,
    registry: Annotated[ChannelRegistry, Depends(get_registry)],
) -> ChannelResponse:
    return ChannelResponse.from_composed(registry.add_channel(request.url))


@router.get(
    "/channels",
    response_model=list[ChannelResponse],
    tags=["channels"],
    operation_id="list_channels",
)
def list_channels(
    registry: Annotated[ChannelRegistry, Depends(get_registry)],
    refresh: Annotated[bool, Query()] = False,
) -> list[ChannelResponse]:
    channels = registry.list_channels(force_refresh=refresh)
    return [ChannelResponse.from_composed(channel) for channel in channels]


@router.patch(
    "/channel/{channel_id}/note",
    response_model=MetadataUpdateResponse,
    response_model_exclude_none=True,
    tags=["channels"],
    operation_id="update_channel_metadata",
)
def update_channel_metadata(
    channel_id: str,
    patch: ChannelMetadataPatch,
    registry: Annotated[ChannelRegistry, Depends(get_registry)],
) -> MetadataUpdateResponse:
    context_tokens = bind_contextvars(channel_id=channel_id)
    try:
        update = registry.update_metadata(channel_id, patch.present_fields())
    finally:
        reset_contextvars(**context_tokens)
    return MetadataUpdateResponse.from_update(update)


@router.delete(
    "/channel/{channel_id}",
    response_model=RemoveChannelResponse,
    tags=["channels"],
    operation_id="remove_channel",
)
def remove_channel(
    channel_id: str,
    registry: Annotated[ChannelRegistry, Depends(get_registry)],
) -> RemoveChannelResponse:
    # Removing an untracked id is a successful no-op.
    removed = registry.remove_channel(channel_id)
    return RemoveChannelResponse(success=True, removed=removed)


@router.get(
    "/daily-summary",
    response_model=DailySummaryResponse,
    tags=["summary"],
    operation_id="daily_summary",
)
def daily_summary(
    summary_service: Annotated[DailySummaryService, Depends(get_summary_service)],
    clock: Annotated[FixedOffsetClock, Depends(get_clock)],
    day: Annotated[date | None, Query(alias="date")] = None,
) -> DailySummaryResponse:
    summary = summary_service.compute(day if day is not None else clock.today())
    return DailySummaryResponse.from_summary(summary)
