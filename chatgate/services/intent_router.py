"""
Intent classification for inbound chat messages. Pure; no external calls.
"""

from enum import Enum

DEFECT_PREFIX = "defect:"
CHART_KEYWORDS: tuple[str, ...] = ("chart", "graph", "visualize", "plot")


class Intent(str, Enum):
    DEFECT = "defect"
    CHART = "chart"
    TEXT = "text"


def classify(text: str) -> Intent:
    """
    ``defect:`` prefix wins over everything; otherwise any chart keyword makes
    it a chart query; the rest are text queries. Case-insensitive.
    """
    lowered = (text or "").strip().lower()
    if lowered.startswith(DEFECT_PREFIX):
        return Intent.DEFECT
    if any(keyword in lowered for keyword in CHART_KEYWORDS):
        return Intent.CHART
    return Intent.TEXT


def chart_kind(text: str) -> str:
    """Chart-kind hint for the renderer: pie when asked for, bar otherwise."""
    return "pie" if "pie" in (text or "").lower() else "bar"
