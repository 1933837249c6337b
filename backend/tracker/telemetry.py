from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol

import structlog

from backend.tracker.config import AppSettings

TelemetryValue = bool | int | float | str | None

# User-authored channel metadata and anything that can carry the API key.
_REDACTED_ATTRIBUTES: frozenset[str] = frozenset(
    {"authorization", "description", "detail_description", "note", "source_url", "url"}
)
_REDACTED_SUFFIXES: tuple[str, ...] = ("_key", "_secret", "_token")
_MAX_TEXT_LENGTH = 120
_MAX_LISTED_IDS = 5


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, TelemetryValue]) -> None:
        ...


class StructuredLogTelemetrySink:
    """Writes each event as one structured record on the telemetry logger."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger("channel_tracker.telemetry")

    def emit(self, *, event_name: str, attributes: Mapping[str, TelemetryValue]) -> None:
        self._logger.info(event_name, **attributes)


@dataclass(frozen=True)
class TelemetryClient:
    sink: TelemetrySink | None = None

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(sink=None)

    @property
    def enabled(self) -> bool:
        return self.sink is not None

    def emit(self, event_name: str, **attributes: Any) -> None:
        if self.sink is None:
            return
        self.sink.emit(
            event_name=event_name,
            attributes={key: _attribute_value(key, value) for key, value in attributes.items()},
        )


def build_telemetry_client(settings: AppSettings) -> TelemetryClient:
    if not settings.telemetry_enabled or settings.telemetry_sink == "none":
        return TelemetryClient.disabled()
    return TelemetryClient(sink=StructuredLogTelemetrySink())


def _attribute_value(key: str, value: Any) -> TelemetryValue:
    if key in _REDACTED_ATTRIBUTES or key.endswith(_REDACTED_SUFFIXES):
        return "[redacted]"
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        text = " ".join(value.split())
        return text if len(text) <= _MAX_TEXT_LENGTH else f"{text[:_MAX_TEXT_LENGTH]}..."
    if (
        isinstance(value, Collection)
        and not isinstance(value, Mapping)
        and all(isinstance(item, str) for item in value)
    ):
        return _summarize_ids(sorted(value))
    return type(value).__name__


def _summarize_ids(channel_ids: list[str]) -> str:
    listed = ",".join(channel_ids[:_MAX_LISTED_IDS])
    hidden = len(channel_ids) - _MAX_LISTED_IDS
    return f"{listed} (+{hidden} more)" if hidden > 0 else listed
