"""
Query execution service clients: send a generated query, get rows back.

Two transports share one wire format. Request: {"action": "query", "sqlQuery": ...}.
Reply: {"statusCode": 200, "body": "<JSON array of row objects>"}. Rows come
back as ordered {column: text} mappings; JSON null becomes "null".
"""

import asyncio
import json
import logging
from typing import Any, Protocol

import boto3
import httpx
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, ReadTimeoutError

from chatgate.core.config import (
    AWS_REGION,
    QUERY_API_TIMEOUT,
    QUERY_BACKEND,
    QUERY_LAMBDA_NAME,
    QUERY_SERVICE_URL,
)
from chatgate.core.errors import UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)

Row = dict[str, str]
_STAGE = "query"


class QueryExecutor(Protocol):
    async def execute(self, query: str) -> list[Row]: ...


def _stringify(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def parse_result_payload(data: Any) -> list[Row]:
    """Validate a query-service reply and normalise its rows."""
    if isinstance(data, list):
        body: Any = data
    elif isinstance(data, dict):
        status = data.get("statusCode")
        if status != 200:
            raise UpstreamError(
                f"Query execution failed (status {status}): {data.get('body')}",
                stage=_STAGE,
            )
        body = data.get("body")
        if isinstance(body, str):
            try:
                body = json.loads(body)
            except json.JSONDecodeError as e:
                raise UpstreamError(f"Query service returned malformed rows: {e}", stage=_STAGE) from e
    else:
        raise UpstreamError("Query service returned an unexpected payload", stage=_STAGE)

    if body is None:
        return []
    if not isinstance(body, list):
        raise UpstreamError("Query service returned an unexpected payload", stage=_STAGE)
    rows: list[Row] = []
    for item in body:
        if not isinstance(item, dict):
            raise UpstreamError("Query service returned a non-object row", stage=_STAGE)
        rows.append({str(k): _stringify(v) for k, v in item.items()})
    return rows


def _request_payload(query: str) -> dict[str, str]:
    return {"action": "query", "sqlQuery": query}


class LambdaQueryExecutor:
    """Runs queries through the reader Lambda function (blocking boto3, off the event loop)."""

    def __init__(
        self,
        function_name: str = QUERY_LAMBDA_NAME,
        region: str = AWS_REGION,
        timeout: float = QUERY_API_TIMEOUT,
        client: Any = None,
    ) -> None:
        self.function_name = function_name
        if client is None:
            config = Config(
                read_timeout=timeout,
                connect_timeout=timeout,
                retries={"total_max_attempts": 1, "mode": "standard"},
            )
            client = boto3.client("lambda", region_name=region, config=config)
        self._client = client

    async def execute(self, query: str) -> list[Row]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._invoke, query)

    def _invoke(self, query: str) -> list[Row]:
        if not self.function_name:
            raise UpstreamError("Query service is not configured", stage=_STAGE)
        logger.info("[query_service:lambda] IN  function=%s query_len=%d", self.function_name, len(query))
        try:
            response = self._client.invoke(
                FunctionName=self.function_name,
                Payload=json.dumps(_request_payload(query)).encode("utf-8"),
            )
        except (ReadTimeoutError, ConnectTimeoutError) as e:
            raise UpstreamTimeout(f"Query service timed out: {e}", stage=_STAGE) from e
        except (BotoCoreError, ClientError) as e:
            raise UpstreamError(f"Query service call failed: {e}", stage=_STAGE) from e

        status = response.get("StatusCode")
        raw = response["Payload"].read().decode("utf-8")
        if status != 200:
            raise UpstreamError(f"Query service invocation failed with status {status}", stage=_STAGE)
        if response.get("FunctionError"):
            raise UpstreamError(f"Query service function error: {raw[:500]}", stage=_STAGE)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise UpstreamError(f"Query service returned malformed JSON: {e}", stage=_STAGE) from e
        rows = parse_result_payload(data)
        logger.info("[query_service:lambda] OUT rows=%d", len(rows))
        return rows


class HttpQueryExecutor:
    """Runs queries against an HTTP endpoint speaking the same payload format."""

    def __init__(
        self,
        url: str = QUERY_SERVICE_URL,
        timeout: float = QUERY_API_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def execute(self, query: str) -> list[Row]:
        if not self.url:
            raise UpstreamError("Query service is not configured", stage=_STAGE)
        logger.info("[query_service:http] IN  url=%s query_len=%d", self.url, len(query))
        try:
            response = await self._client.post(self.url, json=_request_payload(query))
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(f"Query service timed out: {e}", stage=_STAGE) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Query service call failed: {e}", stage=_STAGE) from e
        if response.status_code != 200:
            raise UpstreamError(
                f"Query service error {response.status_code}: {response.text[:500]}",
                stage=_STAGE,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"Query service returned malformed JSON: {e}", stage=_STAGE) from e
        rows = parse_result_payload(data)
        logger.info("[query_service:http] OUT rows=%d", len(rows))
        return rows

    async def aclose(self) -> None:
        await self._client.aclose()


def build_query_executor(backend: str = QUERY_BACKEND) -> QueryExecutor:
    if backend == "http":
        return HttpQueryExecutor()
    if backend == "lambda":
        return LambdaQueryExecutor()
    raise ValueError(f"Unknown QUERY_BACKEND {backend!r}; expected 'lambda' or 'http'")
