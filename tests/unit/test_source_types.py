"""Source type parsing, labels and links."""

from __future__ import annotations

import pytest

from unihub.gamification.errors import InvalidArgumentError
from unihub.gamification.source_types import (
    SourceType,
    parse_source_type,
    source_label,
    source_link,
    stored_source_type,
)


class TestParse:
    def test_enum_passthrough(self) -> None:
        assert parse_source_type(SourceType.BLOG) is SourceType.BLOG

    def test_case_insensitive_string(self) -> None:
        assert parse_source_type("event") is SourceType.EVENT
        assert parse_source_type("Report_Resolved") is SourceType.REPORT_RESOLVED

    def test_unknown_rejected(self) -> None:
        with pytest.raises(InvalidArgumentError, match="Unknown source type"):
            parse_source_type("LOTTERY")

    def test_stored_value_round_trips(self) -> None:
        assert stored_source_type("EVENT_LEAVE") is SourceType.EVENT_LEAVE

    def test_unknown_stored_value_reads_as_other(self) -> None:
        assert stored_source_type("WORKSHOP") is SourceType.OTHER


class TestLabels:
    @pytest.mark.parametrize("source", list(SourceType))
    def test_every_source_has_label(self, source: SourceType) -> None:
        assert source_label(source)

    def test_event_label(self) -> None:
        assert source_label(SourceType.EVENT) == "Event participation"


class TestLinks:
    def test_event_and_leave_share_route(self) -> None:
        assert source_link(SourceType.EVENT, 12) == "/events/12"
        assert source_link(SourceType.EVENT_LEAVE, 12) == "/events/12"

    def test_blog_route(self) -> None:
        assert source_link(SourceType.BLOG, 7) == "/blogs/7"

    def test_reports_route(self) -> None:
        assert source_link(SourceType.REPORT_DISMISSED, 3) == "/reports"

    def test_no_source_id(self) -> None:
        assert source_link(SourceType.BLOG, None) is None

    def test_other_has_no_link(self) -> None:
        assert source_link(SourceType.OTHER, 1) is None
