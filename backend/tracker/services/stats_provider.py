from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, cast
from http.client import HTTPException
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from backend.tracker.config import YOUTUBE_MAX_BATCH_SIZE
from backend.tracker.repositories.common import to_count
from backend.tracker.telemetry import TelemetryClient

LOGGER = logging.getLogger("channel_tracker.provider")
_USER_AGENT = "channel-tracker/0.1"


@dataclass(frozen=True)
class ChannelStats:
    channel_id: str
    title: str
    thumbnail: str | None
    description: str
    subscriber_count: int
    video_count: int
    view_count: int


@dataclass(frozen=True)
class BatchStats:
    """Stats returned by a batch fetch plus the ids whose chunk request failed."""

    stats: tuple[ChannelStats, ...]
    failed_ids: tuple[str, ...]

    def answered_ids(self, requested_ids: Sequence[str]) -> list[str]:
        failed = set(self.failed_ids)
        return [channel_id for channel_id in requested_ids if channel_id not in failed]


class StatsProviderError(Exception):
    pass


class ChannelNotFoundError(StatsProviderError):
    pass


class ProviderNotConfiguredError(StatsProviderError):
    pass


class ProviderUnavailableError(StatsProviderError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class YouTubeStatsProvider:
    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://www.googleapis.com/youtube/v3",
        timeout_seconds: float = 10.0,
        max_batch_size: int = YOUTUBE_MAX_BATCH_SIZE,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._max_batch_size = max(1, min(max_batch_size, YOUTUBE_MAX_BATCH_SIZE))
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()

    @property
    def configured(self) -> bool:
        return self._api_key is not None

    def resolve_username(self, value: str) -> str:
        """Return the canonical channel id of the first channel search hit for `value`."""
        payload = self._get(
            "search",
            {"part": "snippet", "q": value, "type": "channel", "maxResults": "1"},
        )
        for item in _items(payload):
            channel_id = _as_dict(item.get("id")).get("channelId")
            if isinstance(channel_id, str) and channel_id.strip():
                return channel_id
        raise ChannelNotFoundError(f"No channel found for '{value}'.")

    def fetch_one(self, channel_id: str) -> ChannelStats:
        payload = self._get(
            "channels",
            {"part": "snippet,statistics", "id": channel_id},
        )
        for item in _items(payload):
            stats = _parse_channel_item(item)
            if stats is not None:
                return stats
        raise ChannelNotFoundError(f"Channel '{channel_id}' was not found.")

    def fetch_batch(self, channel_ids: Sequence[str]) -> BatchStats:
        """
        Fetch statistics for many channels, one request per chunk of ids.

        A failing chunk is logged and skipped; results from the other chunks are
        still returned and the skipped ids are listed in `failed_ids`. An id that
        is absent from a successful chunk is not a failure. Configuration errors
        are raised before any request.
        """
        self._require_api_key()
        unique_ids = list(dict.fromkeys(channel_id for channel_id in channel_ids if channel_id))
        results: list[ChannelStats] = []
        failed_ids: list[str] = []
        for chunk_index, start in enumerate(range(0, len(unique_ids), self._max_batch_size)):
            chunk = unique_ids[start : start + self._max_batch_size]
            try:
                payload = self._get(
                    "channels",
                    {"part": "snippet,statistics", "id": ",".join(chunk)},
                )
            except ProviderUnavailableError as exc:
                LOGGER.warning(
                    "provider batch chunk failed chunk_index=%s chunk_size=%s status=%s",
                    chunk_index,
                    len(chunk),
                    exc.status_code,
                    exc_info=True,
                )
                self._telemetry.emit(
                    "provider.batch.chunk_failed",
                    chunk_index=chunk_index,
                    chunk_size=len(chunk),
                    status_code=exc.status_code,
                )
                failed_ids.extend(chunk)
                continue

            for item in _items(payload):
                stats = _parse_channel_item(item)
                if stats is not None:
                    results.append(stats)
        return BatchStats(stats=tuple(results), failed_ids=tuple(failed_ids))

    def _require_api_key(self) -> str:
        if self._api_key is None:
            raise ProviderNotConfiguredError(
                "YouTube API key is not configured. Set CHANNEL_TRACKER_YOUTUBE_API_KEY."
            )
        return self._api_key

    def _get(self, resource: str, params: dict[str, str]) -> dict[str, Any]:
        api_key = self._require_api_key()
        return _fetch_youtube_json(
            url=f"{self._base_url}/{resource}",
            params={**params, "key": api_key},
            timeout_seconds=self._timeout_seconds,
        )


def _fetch_youtube_json(
    *,
    url: str,
    params: dict[str, str],
    timeout_seconds: float,
) -> dict[str, Any]:
    request = Request(
        f"{url}?{urlencode(params)}",
        headers={"accept": "application/json", "user-agent": _USER_AGENT},
        method="GET",
    )
    try:
        with urlopen(request, timeout=timeout_seconds) as response:
            raw_body = response.read().decode("utf-8", errors="replace")
    except HTTPError as exc:
        raw_body = exc.read().decode("utf-8", errors="replace")
        message = _extract_error_message(_parse_json_dict(raw_body))
        raise ProviderUnavailableError(
            f"YouTube API request failed with status {exc.code}: {message or exc.reason}",
            status_code=int(exc.code),
        ) from exc
    except (URLError, HTTPException, TimeoutError, OSError, ValueError) as exc:
        raise ProviderUnavailableError(f"YouTube API request failed: {exc}") from exc

    return _parse_json_dict(raw_body)


def _parse_channel_item(item: dict[str, Any]) -> ChannelStats | None:
    channel_id = item.get("id")
    if not isinstance(channel_id, str) or not channel_id.strip():
        return None
    snippet = _as_dict(item.get("snippet"))
    statistics = _as_dict(item.get("statistics"))
    thumbnail_url = _as_dict(_as_dict(snippet.get("thumbnails")).get("default")).get("url")
    return ChannelStats(
        channel_id=channel_id,
        title=str(snippet.get("title") or ""),
        thumbnail=thumbnail_url if isinstance(thumbnail_url, str) and thumbnail_url else None,
        description=str(snippet.get("description") or ""),
        subscriber_count=to_count(statistics.get("subscriberCount")),
        video_count=to_count(statistics.get("videoCount")),
        view_count=to_count(statistics.get("viewCount")),
    )


def _items(payload: dict[str, Any]) -> list[dict[str, Any]]:
    raw_items = payload.get("items")
    if not isinstance(raw_items, list):
        return []
    return [_as_dict(item) for item in cast(list[Any], raw_items)]


def _extract_error_message(payload: dict[str, Any]) -> str | None:
    message = _as_dict(payload.get("error")).get("message")
    if isinstance(message, str) and message.strip():
        return message.strip()
    return None


def _parse_json_dict(raw_body: str) -> dict[str, Any]:
    if not raw_body.strip():
        return {}
    try:
        parsed = json.loads(raw_body)
    except json.JSONDecodeError:
        return {}
    return _as_dict(parsed)


def _as_dict(value: object) -> dict[str, Any]:
    if isinstance(value, dict):
        return cast(dict[str, Any], value)
    return {}
