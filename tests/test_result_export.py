"""
Tests for inline vs. summarized presentation and the fixed-width export.
"""

import pytest

from chatgate.core.errors import NotFound
from chatgate.services.result_export import (
    NO_RESULTS_TEXT,
    ResultExporter,
    render_export,
    truncate_value,
)
from conftest import make_rows


def _body_lines(document: str) -> tuple[str, list[str]]:
    """Header line and data lines of an export document."""
    lines = document.splitlines()
    rule = next(i for i, line in enumerate(lines) if line and set(line) == {"-"})
    header = lines[rule - 1]
    body: list[str] = []
    for line in lines[rule + 1 :]:
        if not line:
            break
        body.append(line)
    return header, body


class TestPresent:
    def test_empty_rows(self) -> None:
        presentation = ResultExporter().present([], "q")
        assert presentation.kind == "text"
        assert presentation.text == NO_RESULTS_TEXT

    def test_single_row_is_key_value_layout(self) -> None:
        presentation = ResultExporter().present([{"key": "BUG-1", "status": "Open"}], "q")
        assert presentation.kind == "text"
        assert f"{'key':<20}: BUG-1" in presentation.text
        assert "Found 1 result(s)" in presentation.text

    def test_exactly_threshold_rows_are_inline(self) -> None:
        exporter = ResultExporter()
        presentation = exporter.present(make_rows(50), "all bugs")
        assert presentation.kind == "text"
        assert presentation.bundle_id is None
        assert len(exporter) == 0
        for i in range(1, 51):
            assert f"BUG-{i} " in presentation.text
        assert "Found 50 result(s)" in presentation.text

    def test_over_threshold_creates_bundle_with_preview(self) -> None:
        exporter = ResultExporter()
        presentation = exporter.present(make_rows(51), "all bugs")
        assert presentation.kind == "summary"
        assert presentation.bundle_id is not None
        assert presentation.download_url == f"/api/download/summary/{presentation.bundle_id}"
        assert "BUG-10 " in presentation.text
        assert "BUG-11 " not in presentation.text
        assert "... and 41 more results" in presentation.text
        assert len(exporter.get(presentation.bundle_id).rows) == 51

    def test_bundle_ids_are_unique(self) -> None:
        exporter = ResultExporter(clock=lambda: 1_000.0)
        ids = {exporter.store(make_rows(1), "q").bundle_id for _ in range(100)}
        assert len(ids) == 100

    def test_bundle_is_a_snapshot(self) -> None:
        exporter = ResultExporter()
        rows = make_rows(51)
        bundle_id = exporter.present(rows, "q").bundle_id
        rows.clear()
        assert len(exporter.get(bundle_id).rows) == 51


class TestExport:
    def test_header_and_row_count_round_trip(self) -> None:
        exporter = ResultExporter()
        rows = make_rows(60)
        bundle_id = exporter.present(rows, "open bugs").bundle_id
        document = exporter.export(bundle_id)
        header, body = _body_lines(document)
        assert header.split() == ["key", "status", "priority"]
        assert len(body) == 60
        assert "Query: open bugs" in document
        assert "Total Results: 60" in document
        assert document.rstrip().endswith("End of Results")

    def test_long_values_are_truncated(self) -> None:
        exporter = ResultExporter()
        bundle = exporter.store([{"summary": "x" * 30, "key": "BUG-1"}], "q")
        _, body = _body_lines(render_export(bundle))
        assert body[0].startswith("x" * 21 + "...")
        assert "x" * 22 not in body[0]

    def test_truncate_value(self) -> None:
        assert truncate_value("a" * 24) == "a" * 24
        assert truncate_value("a" * 25) == "a" * 21 + "..."
        assert truncate_value(None) == ""

    def test_unknown_bundle_raises_not_found(self) -> None:
        with pytest.raises(NotFound):
            ResultExporter().export("summary_missing")


class TestSweep:
    def test_purges_bundles_older_than_ttl(self) -> None:
        clock_now = [0.0]
        exporter = ResultExporter(clock=lambda: clock_now[0])
        old = exporter.store(make_rows(1), "q").bundle_id
        clock_now[0] = 3_000.0
        fresh = exporter.store(make_rows(1), "q").bundle_id
        assert exporter.sweep(ttl=3_600.0, now=3_700.0) == 1
        with pytest.raises(NotFound):
            exporter.get(old)
        assert exporter.get(fresh).bundle_id == fresh
