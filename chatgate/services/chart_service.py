"""
Chart rendering and retrieval.

Rendering uses matplotlib's object API (``Figure``) rather than pyplot so
concurrent renders on worker threads share no global figure state.
Retrieval only ever serves files that resolve inside the chart directory.
"""

import asyncio
import logging
import time
import uuid
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

from matplotlib.figure import Figure  # noqa: E402

from chatgate.core.config import CHART_DIR
from chatgate.core.errors import InternalError, NotFound, PathSecurityViolation

logger = logging.getLogger(__name__)

CHART_WIDTH_PX = 600
CHART_HEIGHT_PX = 400
_DPI = 100


def _as_number(value: str) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def chart_series(rows: list[dict[str, str]]) -> dict[str, float]:
    """
    Turn result rows into label -> value pairs.

    One all-numeric row is plotted column-wise (column name -> value). Otherwise
    the first column is the label and the first numeric column the value.
    """
    if not rows:
        return {}
    first = rows[0]
    if len(rows) == 1 and first and all(_as_number(v) is not None for v in first.values()):
        return {k: float(v) for k, v in first.items()}

    columns = list(first.keys())
    if len(columns) < 2:
        return {}
    label_col = columns[0]
    value_col = next(
        (c for c in columns[1:] if all(_as_number(r.get(c, "")) is not None for r in rows)),
        None,
    )
    if value_col is None:
        return {}
    series: dict[str, float] = {}
    for row in rows:
        label = row.get(label_col, "")
        series[label] = series.get(label, 0.0) + float(row[value_col])
    return series


class ChartRenderer:
    """Renders pie/bar PNGs into the chart directory."""

    def __init__(self, chart_dir: str | Path = CHART_DIR) -> None:
        self.chart_dir = Path(chart_dir).resolve()

    async def render(self, rows: list[dict[str, str]], kind: str) -> Path:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.render_sync, rows, kind)

    def render_sync(self, rows: list[dict[str, str]], kind: str) -> Path:
        series = chart_series(rows)
        if not series:
            raise InternalError("The query results have no numeric values to chart.", stage="chart")
        self.chart_dir.mkdir(parents=True, exist_ok=True)

        fig = Figure(figsize=(CHART_WIDTH_PX / _DPI, CHART_HEIGHT_PX / _DPI), dpi=_DPI)
        ax = fig.subplots()
        labels = list(series.keys())
        values = list(series.values())
        if kind == "pie":
            ax.pie(values, labels=labels, autopct="%1.1f%%")
            ax.set_title("Issue Distribution")
            ax.axis("equal")
        else:
            ax.bar(labels, values)
            ax.set_title("Issue Summary")
            ax.set_xlabel("Issue Categories")
            ax.set_ylabel("Count")
            ax.tick_params(axis="x", labelrotation=45)
        fig.tight_layout()

        filename = f"chart_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}.png"
        path = self.chart_dir / filename
        fig.savefig(path, dpi=_DPI)
        logger.info("[chart_service:render] OUT kind=%s points=%d file=%s", kind, len(series), filename)
        return path


def resolve_chart_path(filename: str, chart_dir: str | Path = CHART_DIR) -> Path:
    """
    Map a chart filename to a file inside ``chart_dir``.

    Raises PathSecurityViolation for anything that is not a bare filename or
    would resolve outside the directory, NotFound when the file is missing.
    Error messages never include filesystem paths.
    """
    root = Path(chart_dir).resolve()
    name = filename or ""
    if not name or name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
        logger.warning("[chart_service:resolve] path traversal attempt blocked filename=%r", name)
        raise PathSecurityViolation("Invalid chart reference", stage="chart")
    candidate = (root / name).resolve()
    if candidate.parent != root:
        logger.warning("[chart_service:resolve] path escaped chart dir filename=%r", name)
        raise PathSecurityViolation("Invalid chart reference", stage="chart")
    if not candidate.is_file():
        logger.info("[chart_service:resolve] chart not found filename=%r", name)
        raise NotFound("Chart not found", stage="chart")
    return candidate
