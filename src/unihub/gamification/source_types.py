"""Closed set of ledger source types."""

from __future__ import annotations

import enum
from typing import assert_never

from unihub.gamification.errors import InvalidArgumentError


class SourceType(str, enum.Enum):
    EVENT = "EVENT"
    BLOG = "BLOG"
    EVENT_LEAVE = "EVENT_LEAVE"
    REPORT_RESOLVED = "REPORT_RESOLVED"
    REPORT_DISMISSED = "REPORT_DISMISSED"
    OTHER = "OTHER"


def parse_source_type(value: SourceType | str) -> SourceType:
    """Coerce a caller-supplied value, rejecting anything outside the enum."""
    if isinstance(value, SourceType):
        return value
    try:
        return SourceType(str(value).upper())
    except ValueError:
        raise InvalidArgumentError(f"Unknown source type: {value!r}") from None


def stored_source_type(value: str) -> SourceType:
    """Source type of a persisted ledger row; unknown legacy values read as OTHER."""
    try:
        return SourceType(value.upper())
    except ValueError:
        return SourceType.OTHER


def source_label(source_type: SourceType) -> str:
    """Human label for points history rows."""
    match source_type:
        case SourceType.EVENT:
            return "Event participation"
        case SourceType.BLOG:
            return "Blog post"
        case SourceType.EVENT_LEAVE:
            return "Left event"
        case SourceType.REPORT_RESOLVED:
            return "Report resolved"
        case SourceType.REPORT_DISMISSED:
            return "Report dismissed"
        case SourceType.OTHER:
            return "Other"
        case _:
            assert_never(source_type)


def source_link(source_type: SourceType, source_id: int | None) -> str | None:
    """Frontend route for the object that produced a ledger entry."""
    if source_id is None:
        return None
    match source_type:
        case SourceType.EVENT | SourceType.EVENT_LEAVE:
            return f"/events/{source_id}"
        case SourceType.BLOG:
            return f"/blogs/{source_id}"
        case SourceType.REPORT_RESOLVED | SourceType.REPORT_DISMISSED:
            return "/reports"
        case SourceType.OTHER:
            return None
        case _:
            assert_never(source_type)
