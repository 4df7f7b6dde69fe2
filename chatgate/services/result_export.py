"""
Result presentation: small result sets inline, large ones as a preview plus a
stored bundle that can be exported later as a fixed-width text document.

Bundles are snapshots: rows are copied into a tuple at creation and never
mutated. Export documents are rendered on demand, not cached.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from chatgate.core.config import (
    API_PREFIX,
    BUNDLE_TTL_SECONDS,
    EXPORT_COLUMN_WIDTH,
    EXPORT_VALUE_MAX,
    INLINE_COLUMN_WIDTH,
    PREVIEW_ROWS,
    SUMMARY_THRESHOLD,
)
from chatgate.core.errors import NotFound

logger = logging.getLogger(__name__)

Row = dict[str, str]

NO_RESULTS_TEXT = "No results found for your query. Try refining your search criteria."
ELLIPSIS = "..."
RULE = "=" * 80


@dataclass(frozen=True)
class ResultBundle:
    bundle_id: str
    original_query: str
    rows: tuple[Row, ...]
    created_at: float


@dataclass(frozen=True)
class Presentation:
    """What the chat response shows: ``kind`` is "text" or "summary"."""

    kind: str
    text: str
    bundle_id: str | None = None

    @property
    def download_url(self) -> str | None:
        if self.bundle_id is None:
            return None
        return export_url(self.bundle_id)


def export_url(bundle_id: str) -> str:
    return f"{API_PREFIX}/download/summary/{bundle_id}"


def truncate_value(value: str | None, max_length: int = EXPORT_VALUE_MAX) -> str:
    """Values longer than ``max_length`` keep ``max_length - 3`` chars plus an ellipsis."""
    if value is None:
        return ""
    if len(value) <= max_length:
        return value
    return value[: max_length - len(ELLIPSIS)] + ELLIPSIS


def format_single_row(row: Row) -> str:
    return "\n".join(f"{key:<{INLINE_COLUMN_WIDTH}}: {value}" for key, value in row.items())


def format_rows(rows: list[Row]) -> str:
    """Table with a header taken from the first row, then every given row."""
    if not rows:
        return ""
    columns = list(rows[0].keys())
    header = "".join(f"{col:<{INLINE_COLUMN_WIDTH}} | " for col in columns)
    lines = [header, "-" * min(100, len(header) - 1)]
    for row in rows:
        lines.append("".join(f"{row.get(col, ''):<{INLINE_COLUMN_WIDTH}} | " for col in columns))
    return "\n".join(lines)


def render_export(bundle: ResultBundle, generated_at: datetime | None = None) -> str:
    """Fixed-width export document for every row in the bundle."""
    generated_at = generated_at or datetime.now()
    width = EXPORT_COLUMN_WIDTH
    lines = [
        "Query Results",
        "=============",
        "",
        f"Query: {bundle.original_query}",
        f"Generated on: {generated_at:%Y-%m-%d %H:%M:%S}",
        f"Total Results: {len(bundle.rows)}",
        "",
        RULE,
        "",
    ]
    if bundle.rows:
        columns = list(bundle.rows[0].keys())
        lines.append("".join(f"{col:<{width}}" for col in columns).rstrip())
        lines.append("-" * (len(columns) * width))
        for row in bundle.rows:
            lines.append(
                "".join(f"{truncate_value(row.get(col, '')):<{width}}" for col in columns).rstrip()
            )
    lines.extend(["", "", RULE, "End of Results", ""])
    return "\n".join(lines)


class ResultExporter:
    """Owns the bundle table and decides inline vs. summarized presentation."""

    def __init__(
        self,
        threshold: int = SUMMARY_THRESHOLD,
        preview_rows: int = PREVIEW_ROWS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.threshold = threshold
        self.preview_rows = preview_rows
        self._clock = clock
        self._bundles: dict[str, ResultBundle] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._bundles)

    def present(self, rows: list[Row], original_query: str) -> Presentation:
        if not rows:
            return Presentation(kind="text", text=NO_RESULTS_TEXT)
        if len(rows) <= self.threshold:
            return self._inline(rows)
        bundle = self.store(rows, original_query)
        return self._summary(bundle)

    def _inline(self, rows: list[Row]) -> Presentation:
        body = format_single_row(rows[0]) if len(rows) == 1 else format_rows(rows)
        text = (
            "**Results for your query:**\n\n"
            f"```\n{body}\n```"
            f"\n\n**Summary:** Found {len(rows)} result(s)"
        )
        return Presentation(kind="text", text=text)

    def _summary(self, bundle: ResultBundle) -> Presentation:
        total = len(bundle.rows)
        preview = list(bundle.rows[: self.preview_rows])
        text = (
            "**Large Result Set Found**\n\n"
            f"Found **{total} results** for your query.\n\n"
            f"**Preview (first {len(preview)} results):**\n\n"
            f"```\n{format_rows(preview)}\n\n... and {total - len(preview)} more results\n```"
            "\n\n**Download Complete Results:**\n"
            f"Click [here]({export_url(bundle.bundle_id)}) to download all results as a text file."
        )
        return Presentation(kind="summary", text=text, bundle_id=bundle.bundle_id)

    def store(self, rows: list[Row], original_query: str) -> ResultBundle:
        now = self._clock()
        bundle = ResultBundle(
            bundle_id=f"summary_{int(now * 1000)}_{uuid.uuid4().hex}",
            original_query=original_query,
            rows=tuple(dict(r) for r in rows),
            created_at=now,
        )
        with self._lock:
            self._bundles[bundle.bundle_id] = bundle
        logger.info("[result_export:store] bundle_id=%s rows=%d", bundle.bundle_id, len(bundle.rows))
        return bundle

    def get(self, bundle_id: str) -> ResultBundle:
        with self._lock:
            bundle = self._bundles.get(bundle_id)
        if bundle is None:
            raise NotFound("Summary not found", stage="export")
        return bundle

    def export(self, bundle_id: str) -> str:
        return render_export(self.get(bundle_id))

    def sweep(self, ttl: float = BUNDLE_TTL_SECONDS, now: float | None = None) -> int:
        """Purge bundles older than ``ttl`` seconds."""
        now = self._clock() if now is None else now
        with self._lock:
            expired = [bid for bid, b in self._bundles.items() if now - b.created_at > ttl]
            for bid in expired:
                del self._bundles[bid]
        return len(expired)
