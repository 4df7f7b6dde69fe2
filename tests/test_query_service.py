"""
Tests for the query execution clients. boto3 and httpx are replaced with fakes.
"""

import asyncio
import io
import json

import httpx
import pytest

from chatgate.core.errors import UpstreamError
from chatgate.services.query_service import HttpQueryExecutor, LambdaQueryExecutor, parse_result_payload


class FakeLambda:
    def __init__(self, payload: dict, status: int = 200, function_error: str | None = None) -> None:
        self.payload = payload
        self.status = status
        self.function_error = function_error
        self.requests: list[dict] = []

    def invoke(self, FunctionName: str, Payload: bytes) -> dict:
        self.requests.append({"function": FunctionName, "payload": json.loads(Payload)})
        response = {"StatusCode": self.status, "Payload": io.BytesIO(json.dumps(self.payload).encode())}
        if self.function_error:
            response["FunctionError"] = self.function_error
        return response


class TestParseResultPayload:
    def test_parses_body_string_and_stringifies_values(self) -> None:
        data = {"statusCode": 200, "body": json.dumps([{"key": "BUG-1", "points": 3, "owner": None}])}
        assert parse_result_payload(data) == [{"key": "BUG-1", "points": "3", "owner": "null"}]

    def test_preserves_column_order(self) -> None:
        data = {"statusCode": 200, "body": json.dumps([{"z": 1, "a": 2, "m": 3}])}
        assert list(parse_result_payload(data)[0].keys()) == ["z", "a", "m"]

    def test_non_200_status_carries_diagnostic(self) -> None:
        with pytest.raises(UpstreamError) as exc_info:
            parse_result_payload({"statusCode": 500, "body": "syntax error near FROM"})
        assert "syntax error near FROM" in exc_info.value.message

    def test_bare_list_is_accepted(self) -> None:
        assert parse_result_payload([{"a": "b"}]) == [{"a": "b"}]


class TestLambdaQueryExecutor:
    def test_execute_sends_query_action(self) -> None:
        fake = FakeLambda({"statusCode": 200, "body": json.dumps([{"key": "BUG-1"}])})
        executor = LambdaQueryExecutor(function_name="reader", client=fake)
        rows = asyncio.run(executor.execute("SELECT key FROM issues"))
        assert rows == [{"key": "BUG-1"}]
        assert fake.requests == [
            {"function": "reader", "payload": {"action": "query", "sqlQuery": "SELECT key FROM issues"}}
        ]

    def test_function_error_is_upstream_error(self) -> None:
        fake = FakeLambda({"errorMessage": "boom"}, function_error="Unhandled")
        executor = LambdaQueryExecutor(function_name="reader", client=fake)
        with pytest.raises(UpstreamError):
            asyncio.run(executor.execute("SELECT 1"))

    def test_unconfigured_function_is_upstream_error(self) -> None:
        executor = LambdaQueryExecutor(function_name="", client=FakeLambda({}))
        with pytest.raises(UpstreamError):
            asyncio.run(executor.execute("SELECT 1"))


class TestHttpQueryExecutor:
    def _executor(self, handler) -> HttpQueryExecutor:
        return HttpQueryExecutor(
            url="http://query.local/run",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

    def test_execute_posts_payload(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"statusCode": 200, "body": json.dumps([{"n": 1}])})

        async def run():
            executor = self._executor(handler)
            try:
                return await executor.execute("SELECT n")
            finally:
                await executor.aclose()

        assert asyncio.run(run()) == [{"n": "1"}]
        assert seen == [{"action": "query", "sqlQuery": "SELECT n"}]

    def test_http_error_status_is_upstream_error(self) -> None:
        async def run():
            executor = self._executor(lambda request: httpx.Response(503, text="unavailable"))
            try:
                await executor.execute("SELECT 1")
            finally:
                await executor.aclose()

        with pytest.raises(UpstreamError) as exc_info:
            asyncio.run(run())
        assert "503" in exc_info.value.message
