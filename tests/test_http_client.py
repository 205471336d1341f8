"""Tests for the upstream HTTP client core: retries, deadlines, encoding and decoding."""

import json

import httpx
import pytest
from pydantic import BaseModel

from shared.http.backoff import ConstantBackoff
from shared.http.client import Client, should_retry
from shared.http.credentials import from_header, from_query
from shared.http.errors import (
    REQUEST_ID_HEADER,
    APIError,
    EncodingError,
    ErrorCode,
    TransportError,
    UpstreamError,
)
from shared.http.options import (
    with_backoff,
    with_credentials,
    with_language,
    with_max_retries,
    with_timeout,
    with_transport,
    with_user_agent,
)
from tests.conftest import ENDPOINT, FakeTransport, status


class Pokemon(BaseModel):
    name: str
    is_legendary: bool


class Unserializable:
    """Encodes into the query string but not into a JSON body."""

    def to_query_parameters(self) -> list[tuple[str, str]]:
        return []


def _client(transport: FakeTransport, *opts) -> Client:
    return Client(ENDPOINT, with_transport(transport), *opts)


def _response(code: int, **kwargs) -> httpx.Response:
    return httpx.Response(code, **kwargs)


class TestShouldRetry:
    def test_no_response_is_retried(self):
        assert should_retry(None, None, 0, 2) is True

    @pytest.mark.parametrize("code", [500, 502, 503, 409])
    def test_retryable_statuses(self, code):
        assert should_retry(None, _response(code), 0, 2) is True

    def test_rate_limit_is_not_retried(self):
        err = APIError(ErrorCode.RATE_LIMIT_EXCEEDED, method="GET", resource="/", request_id="")
        assert should_retry(err, _response(429), 0, 2) is False

    def test_other_error_statuses_are_retried(self):
        err = APIError(ErrorCode.NOT_FOUND, method="GET", resource="/", request_id="")
        assert should_retry(err, _response(404), 0, 2) is True

    def test_success_is_not_retried(self):
        assert should_retry(None, _response(200), 0, 2) is False

    def test_budget_exhausted(self):
        assert should_retry(None, None, 2, 2) is False


class TestSuccessfulCalls:
    @pytest.mark.asyncio
    async def test_get_decodes_into_receiver(self):
        transport = FakeTransport([_response(200, json={"name": "mewtwo", "is_legendary": True})])
        async with _client(transport) as client:
            result = await client.call("GET", "/pokemon-species/mewtwo/", receiver=Pokemon)

        assert result == Pokemon(name="mewtwo", is_legendary=True)
        assert transport.call_count == 1
        assert str(transport.requests[0].url) == f"{ENDPOINT}/pokemon-species/mewtwo/"

    @pytest.mark.asyncio
    async def test_no_receiver_discards_body(self):
        transport = FakeTransport()
        async with _client(transport) as client:
            assert await client.call("DELETE", "/items/1") is None

    @pytest.mark.asyncio
    async def test_path_without_leading_slash(self):
        transport = FakeTransport()
        async with _client(transport) as client:
            await client.call("GET", "status")
        assert transport.requests[0].url.path == "/api/status"

    @pytest.mark.asyncio
    async def test_standard_headers(self):
        transport = FakeTransport()
        opts = (with_user_agent("pokeapi/sdk-test"), with_language("fr-FR"))
        async with _client(transport, *opts) as client:
            await client.call("GET", "/items")

        headers = transport.requests[0].headers
        assert headers["Accept"] == "application/json"
        assert headers["Accept-Language"] == "fr-FR"
        assert headers["User-Agent"] == "pokeapi/sdk-test"
        assert headers["Host"] == "upstream.test"
        assert len(headers[REQUEST_ID_HEADER]) == 36

    @pytest.mark.asyncio
    async def test_request_id_stable_across_retries(self):
        transport = FakeTransport([_response(503), _response(200, json={})])
        async with _client(transport) as client:
            await client.call("GET", "/items")

        ids = {r.headers[REQUEST_ID_HEADER] for r in transport.requests}
        assert transport.call_count == 2
        assert len(ids) == 1

    @pytest.mark.asyncio
    async def test_get_encodes_data_only_into_query(self):
        transport = FakeTransport()
        async with _client(transport) as client:
            await client.call("GET", "/translate", {"text": "hello there"})

        request = transport.requests[0]
        assert request.url.params["text"] == "hello there"
        assert request.content == b""
        assert "Content-Type" not in request.headers

    @pytest.mark.asyncio
    async def test_write_encodes_data_into_query_and_body(self):
        transport = FakeTransport([_response(201, json={})])
        async with _client(transport) as client:
            await client.call("POST", "/items", {"name": "mewtwo", "level": 70})

        request = transport.requests[0]
        assert request.url.params["name"] == "mewtwo"
        assert request.url.params["level"] == "70"
        assert json.loads(request.content) == {"name": "mewtwo", "level": 70}
        assert request.headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_write_content_length_matches_body_on_every_retry(self):
        transport = FakeTransport(handler=status(503))
        async with _client(transport, with_max_retries(2)) as client:
            with pytest.raises(UpstreamError):
                await client.call("POST", "/items", {"a": 1})

        assert transport.call_count == 3
        for request in transport.requests:
            assert request.content == b'{"a":1}'
            assert request.headers["Content-Length"] == str(len(request.content))
            assert "Transfer-Encoding" not in request.headers

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH"])
    async def test_write_framing_accepted_by_strict_server(self, method):
        def strict(request: httpx.Request) -> httpx.Response:
            declared = int(request.headers.get("Content-Length", "-1"))
            if declared != len(request.content):
                return httpx.Response(400, json={"error": "bad framing"})
            return httpx.Response(200, json=json.loads(request.content))

        transport = httpx.MockTransport(strict)
        async with Client(ENDPOINT, with_transport(transport)) as client:
            echoed = await client.call(method, "/items", {"name": "mewtwo"}, dict)

        assert echoed == {"name": "mewtwo"}

    @pytest.mark.asyncio
    async def test_default_transport_is_built_by_client(self):
        async with Client(ENDPOINT) as client:
            assert isinstance(client.transport.transport, httpx.AsyncHTTPTransport)

    @pytest.mark.asyncio
    async def test_header_credentials(self):
        transport = FakeTransport()
        opts = with_credentials(from_header("X-Funtranslations-Api-Secret", "s3cret"))
        async with _client(transport, opts) as client:
            await client.call("GET", "/yoda.json")
        assert transport.requests[0].headers["X-Funtranslations-Api-Secret"] == "s3cret"

    @pytest.mark.asyncio
    async def test_query_credentials(self):
        transport = FakeTransport()
        opts = with_credentials(from_query("api_key", "s3cret"))
        async with _client(transport, opts) as client:
            await client.call("GET", "/items", {"page": 2})
        params = transport.requests[0].url.params
        assert params["api_key"] == "s3cret"
        assert params["page"] == "2"


class TestRetries:
    @pytest.mark.asyncio
    async def test_server_error_retried_until_budget_exhausted(self):
        transport = FakeTransport(handler=status(500, content=b"boom"))
        async with _client(transport, with_max_retries(2)) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.call("GET", "/items")

        assert transport.call_count == 3
        err = exc_info.value
        assert err.code == ErrorCode.SERVER_ERROR
        assert err.status_code == 500
        assert err.response == b"boom"

    @pytest.mark.asyncio
    async def test_rate_limited_is_attempted_once(self):
        transport = FakeTransport(handler=status(429))
        async with _client(transport, with_max_retries(5)) as client:
            with pytest.raises(APIError) as exc_info:
                await client.call("GET", "/items")

        assert transport.call_count == 1
        assert exc_info.value.code == ErrorCode.RATE_LIMIT_EXCEEDED

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self):
        transport = FakeTransport(
            [_response(502), _response(200, json={"name": "ditto", "is_legendary": False})]
        )
        async with _client(transport, with_backoff(ConstantBackoff(0.01))) as client:
            result = await client.call("GET", "/pokemon-species/ditto/", receiver=Pokemon)

        assert result.name == "ditto"
        assert transport.call_count == 2

    @pytest.mark.asyncio
    async def test_zero_retries_attempts_once(self):
        transport = FakeTransport(handler=status(503))
        async with _client(transport, with_max_retries(0)) as client:
            with pytest.raises(APIError) as exc_info:
                await client.call("GET", "/items")

        assert transport.call_count == 1
        assert exc_info.value.code == ErrorCode.SERVER_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_connection_failure_is_transport_error(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = FakeTransport(handler=refuse)
        async with _client(transport, with_max_retries(1)) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.call("GET", "/items")

        assert transport.call_count == 2
        assert exc_info.value.code == ErrorCode.HTTP_CLIENT_ERROR
        assert exc_info.value.status_code == 0
        assert exc_info.value.source == "connection refused"

    @pytest.mark.asyncio
    async def test_protocol_failure_is_transport_error(self):
        def reject(request: httpx.Request) -> httpx.Response:
            raise RuntimeError("Too much data for declared Content-Length")

        transport = FakeTransport(handler=reject)
        async with _client(transport, with_max_retries(1)) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.call("POST", "/items", {"name": "mewtwo"})

        assert transport.call_count == 2
        assert exc_info.value.code == ErrorCode.HTTP_CLIENT_ERROR
        assert exc_info.value.source == "Too much data for declared Content-Length"


class TestEncodingFailures:
    @pytest.mark.asyncio
    async def test_unencodable_query_makes_no_attempt(self):
        transport = FakeTransport()
        async with _client(transport) as client:
            with pytest.raises(EncodingError) as exc_info:
                await client.call("GET", "/items", object())

        assert transport.call_count == 0
        assert exc_info.value.code == ErrorCode.ENCODING_ERROR
        assert exc_info.value.resource == "/items"

    @pytest.mark.asyncio
    async def test_unencodable_body_makes_no_attempt(self):
        transport = FakeTransport()
        async with _client(transport) as client:
            with pytest.raises(EncodingError) as exc_info:
                await client.call("POST", "/items", Unserializable())

        assert transport.call_count == 0
        assert exc_info.value.code == ErrorCode.ENCODING_ERROR

    @pytest.mark.asyncio
    async def test_undecodable_response(self):
        transport = FakeTransport([_response(200, content=b"<html>oops</html>")])
        async with _client(transport) as client:
            with pytest.raises(EncodingError) as exc_info:
                await client.call("GET", "/items", receiver=Pokemon)

        err = exc_info.value
        assert transport.call_count == 1
        assert err.code == ErrorCode.ENCODING_ERROR
        assert err.status_code == 200
        assert err.response == b"<html>oops</html>"


class TestDeadlines:
    @pytest.mark.asyncio
    async def test_expired_deadline_is_http_client_error(self):
        transport = FakeTransport(delay=1.0)
        async with _client(transport) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.call("GET", "/items", timeout=0.05)

        assert exc_info.value.code == ErrorCode.HTTP_CLIENT_ERROR
        assert exc_info.value.source == "deadline exceeded"

    @pytest.mark.asyncio
    async def test_configured_timeout_applies(self):
        transport = FakeTransport(delay=1.0)
        async with _client(transport, with_timeout(0.05), with_max_retries(0)) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.call("GET", "/items")

        assert exc_info.value.source == "deadline exceeded"
        assert transport.call_count == 1

    @pytest.mark.asyncio
    async def test_deadline_stops_backoff_sleep(self):
        transport = FakeTransport(handler=status(500))
        opts = (with_backoff(ConstantBackoff(5.0)), with_max_retries(3))
        async with _client(transport, *opts) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.call("GET", "/items", timeout=0.1)

        assert transport.call_count == 1
        assert exc_info.value.source == "deadline exceeded"
