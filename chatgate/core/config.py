"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Keeps the rest of the app decoupled from how config is sourced.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


# AWS (Bedrock agents + Lambda query reader)
AWS_REGION: str = os.getenv("AWS_REGION", "us-east-1").strip() or "us-east-1"

# Agent that turns a question into a query string
QUERY_AGENT_ID: str = os.getenv("QUERY_AGENT_ID", "").strip()
QUERY_AGENT_ALIAS_ID: str = os.getenv("QUERY_AGENT_ALIAS_ID", "").strip()

# Agent that answers "defect:" questions
DEFECT_AGENT_ID: str = os.getenv("DEFECT_AGENT_ID", "").strip()
DEFECT_AGENT_ALIAS_ID: str = os.getenv("DEFECT_AGENT_ALIAS_ID", "").strip()

# Agent invocation (seconds). The deadline bounds the local wait only.
AGENT_DEADLINE_SECONDS: float = _env_float("AGENT_DEADLINE_SECONDS", 120.0)
AGENT_READ_TIMEOUT: float = _env_float("AGENT_READ_TIMEOUT", 900.0)
AGENT_CONNECT_TIMEOUT: float = _env_float("AGENT_CONNECT_TIMEOUT", 120.0)
AGENT_MAX_CONCURRENCY: int = _env_int("AGENT_MAX_CONCURRENCY", 100)

# Query execution service: "lambda" (AWS Lambda reader) or "http"
QUERY_BACKEND: str = os.getenv("QUERY_BACKEND", "lambda").strip().lower() or "lambda"
QUERY_LAMBDA_NAME: str = os.getenv("QUERY_LAMBDA_NAME", "").strip()
QUERY_SERVICE_URL: str = os.getenv("QUERY_SERVICE_URL", "").strip()
QUERY_API_TIMEOUT: float = _env_float("QUERY_API_TIMEOUT", 60.0)

# Admission control: at most N requests per session in a sliding window
RATE_LIMIT_MAX_REQUESTS: int = _env_int("RATE_LIMIT_MAX_REQUESTS", 30)
RATE_LIMIT_WINDOW_SECONDS: float = _env_float("RATE_LIMIT_WINDOW_SECONDS", 60.0)

# Reaping
SESSION_IDLE_TIMEOUT: float = _env_float("SESSION_IDLE_TIMEOUT", 30 * 60.0)
SWEEP_INTERVAL_SECONDS: float = _env_float("SWEEP_INTERVAL_SECONDS", 30 * 60.0)
BUNDLE_TTL_SECONDS: float = _env_float("BUNDLE_TTL_SECONDS", 60 * 60.0)

# Result presentation
SUMMARY_THRESHOLD: int = 50
PREVIEW_ROWS: int = 10
INLINE_COLUMN_WIDTH: int = 20
EXPORT_COLUMN_WIDTH: int = 25
EXPORT_VALUE_MAX: int = 24

# Charts are written here and served back by filename only
CHART_DIR: str = os.getenv("CHART_DIR", "charts").strip() or "charts"

# HTTP surface
API_PREFIX: str = "/api"
SESSION_HEADER: str = "X-Session-ID"
CORS_ORIGINS: list[str] = [
    o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
] or ["*"]

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
