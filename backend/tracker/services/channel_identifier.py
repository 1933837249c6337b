from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

ChannelRefKind = Literal["username", "id"]


@dataclass(frozen=True)
class ChannelRef:
    kind: ChannelRefKind
    value: str


# Checked in order; each captures the path segment up to the next "/" or "?".
_CHANNEL_URL_PATTERNS: tuple[tuple[ChannelRefKind, re.Pattern[str]], ...] = (
    ("username", re.compile(r"youtube\.com/@([^/?#]+)")),
    ("id", re.compile(r"youtube\.com/channel/([^/?#]+)")),
    ("username", re.compile(r"youtube\.com/c/([^/?#]+)")),
    ("username", re.compile(r"youtube\.com/user/([^/?#]+)")),
)


def extract_channel_ref(url: str) -> ChannelRef | None:
    """
    Parse a channel reference out of a YouTube URL.

    Recognizes `/@handle`, `/channel/<id>`, `/c/<name>` and `/user/<name>` URLs.
    Trailing slashes, sub-paths and query strings are ignored. Returns None when
    none of the shapes match.
    """
    candidate = url.strip()
    for kind, pattern in _CHANNEL_URL_PATTERNS:
        match = pattern.search(candidate)
        if match is not None:
            return ChannelRef(kind=kind, value=match.group(1))
    return None
