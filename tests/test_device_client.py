"""Tests for the ZMote HTTP device client."""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest
from pytest_httpx import HTTPXMock

from zmote_ir.device_client import (
    DeviceClient,
    SendirOutcome,
    classify_sendir_response,
    format_sendir_request,
)
from zmote_ir.exceptions import (
    CommunicationError,
    DeviceBusyError,
    ErrorKind,
)

from .conftest import POWER_CODE, TEST_URL, TEST_UUID

SENDIR_URL = f"{TEST_URL}/v2/{TEST_UUID}"
UUID_URL = f"{TEST_URL}/uuid"


class TestClassifySendirResponse:
    """Tests for classify_sendir_response."""

    @pytest.mark.parametrize(
        ("status_code", "body", "expected"),
        [
            (200, "completeir,1:1,0", SendirOutcome.SUCCESS),
            (200, "  completeir,1:1,0\n", SendirOutcome.SUCCESS),
            (200, "busyIR,1:1,0", SendirOutcome.BUSY),
            (200, "BUSYIR", SendirOutcome.BUSY),
            (200, "error,1:1,3", SendirOutcome.ERROR),
            (200, "something else", SendirOutcome.ERROR),
            (200, "", SendirOutcome.ERROR),
            (200, "   ", SendirOutcome.ERROR),
            (200, None, SendirOutcome.ERROR),
            (500, "completeir,1:1,0", SendirOutcome.ERROR),
            (404, "busyIR", SendirOutcome.ERROR),
        ],
    )
    def test_classification(self, status_code: int, body: str | None, expected: SendirOutcome) -> None:
        """Test every branch of the sendir response classification."""
        assert classify_sendir_response(status_code, body) == expected

    def test_format_sendir_request(self) -> None:
        """Test the sendir request body."""
        assert format_sendir_request("38000,1,1,342") == "sendir,1:1,0,38000,1,1,342"


class TestCheck:
    """Tests for DeviceClient.check."""

    @pytest.mark.asyncio
    async def test_check_succeeds_for_matching_uuid(self, httpx_mock: HTTPXMock) -> None:
        """Test that a matching uuid reply passes, case-insensitively."""
        httpx_mock.add_response(url=UUID_URL, method="GET", text=f"uuid,{TEST_UUID.upper()}")
        async with DeviceClient(TEST_UUID, TEST_URL + "/") as client:
            assert client.url == TEST_URL
            await client.check()

    @pytest.mark.asyncio
    async def test_check_rejects_other_uuid(self, httpx_mock: HTTPXMock) -> None:
        """Test that a reply from another device is an error."""
        httpx_mock.add_response(url=UUID_URL, method="GET", text="uuid,0000000000000000")
        async with DeviceClient(TEST_UUID, TEST_URL) as client:
            with pytest.raises(CommunicationError, match=TEST_UUID):
                await client.check()

    @pytest.mark.asyncio
    async def test_check_rejects_empty_body(self, httpx_mock: HTTPXMock) -> None:
        """Test that an empty reply is an error."""
        httpx_mock.add_response(url=UUID_URL, method="GET", text="")
        async with DeviceClient(TEST_UUID, TEST_URL) as client:
            with pytest.raises(CommunicationError):
                await client.check()

    @pytest.mark.asyncio
    async def test_check_rejects_http_error(self, httpx_mock: HTTPXMock) -> None:
        """Test that a non-200 status is an error even with a matching body."""
        httpx_mock.add_response(url=UUID_URL, method="GET", status_code=500, text=f"uuid,{TEST_UUID}")
        async with DeviceClient(TEST_UUID, TEST_URL) as client:
            with pytest.raises(CommunicationError):
                await client.check()

    @pytest.mark.asyncio
    async def test_check_timeout(self, httpx_mock: HTTPXMock) -> None:
        """Test that a timeout becomes a CommunicationError."""
        httpx_mock.add_exception(httpx.ReadTimeout("timed out"), url=UUID_URL)
        async with DeviceClient(TEST_UUID, TEST_URL) as client:
            with pytest.raises(CommunicationError, match="Timed out") as exc_info:
                await client.check(timeout=1)
        assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)


class TestSendir:
    """Tests for DeviceClient.sendir."""

    @pytest.mark.asyncio
    async def test_sendir_posts_code(self, httpx_mock: HTTPXMock) -> None:
        """Test the request framing of a successful send."""
        httpx_mock.add_response(url=SENDIR_URL, method="POST", text="completeir,1:1,0")
        async with DeviceClient(TEST_UUID, TEST_URL) as client:
            await client.sendir(POWER_CODE)
        request = httpx_mock.get_request()
        assert request is not None
        assert request.content == f"sendir,1:1,0,{POWER_CODE}".encode()
        assert request.headers["Content-Type"] == "text/plain"

    @pytest.mark.asyncio
    async def test_sendir_busy(self, httpx_mock: HTTPXMock) -> None:
        """Test that a busy reply raises DeviceBusyError with kind BUSY."""
        httpx_mock.add_response(url=SENDIR_URL, method="POST", text="busyIR,1:1,0")
        async with DeviceClient(TEST_UUID, TEST_URL) as client:
            with pytest.raises(DeviceBusyError) as exc_info:
                await client.sendir(POWER_CODE)
        assert exc_info.value.kind == ErrorKind.BUSY

    @pytest.mark.asyncio
    async def test_sendir_error_reply(self, httpx_mock: HTTPXMock) -> None:
        """Test that an error reply raises a non-busy CommunicationError."""
        httpx_mock.add_response(url=SENDIR_URL, method="POST", text="error,1:1,3")
        async with DeviceClient(TEST_UUID, TEST_URL) as client:
            with pytest.raises(CommunicationError) as exc_info:
                await client.sendir(POWER_CODE)
        assert exc_info.value.kind == ErrorKind.COMMUNICATION

    @pytest.mark.asyncio
    async def test_sendir_empty_reply_is_error(self, httpx_mock: HTTPXMock) -> None:
        """Test that an empty reply is never treated as success."""
        httpx_mock.add_response(url=SENDIR_URL, method="POST", text="")
        async with DeviceClient(TEST_UUID, TEST_URL) as client:
            with pytest.raises(CommunicationError):
                await client.sendir(POWER_CODE)

    @pytest.mark.asyncio
    async def test_sendir_connection_error(self, httpx_mock: HTTPXMock) -> None:
        """Test that a transport error becomes a CommunicationError."""
        httpx_mock.add_exception(httpx.ConnectError("connection refused"), url=SENDIR_URL)
        async with DeviceClient(TEST_UUID, TEST_URL) as client:
            with pytest.raises(CommunicationError) as exc_info:
                await client.sendir(POWER_CODE)
        assert exc_info.value.kind == ErrorKind.COMMUNICATION


class TestClientLifecycle:
    """Tests for request serialization and closing."""

    @pytest.mark.asyncio
    async def test_requests_are_serialized(self) -> None:
        """Test that concurrent sends on one client never overlap."""
        active = 0
        max_active = 0

        async def fake_request(*args: object, **kwargs: object) -> httpx.Response:
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.01)
            active -= 1
            return httpx.Response(200, text="completeir,1:1,0")

        http_client = AsyncMock(spec=httpx.AsyncClient)
        http_client.request.side_effect = fake_request
        client = DeviceClient(TEST_UUID, TEST_URL, http_client=http_client)
        await asyncio.gather(*(client.sendir(POWER_CODE) for _ in range(5)))
        assert http_client.request.await_count == 5
        assert max_active == 1

    @pytest.mark.asyncio
    async def test_aclose_leaves_injected_client_open(self) -> None:
        """Test that an injected HTTP client is not closed, and aclose is idempotent."""
        http_client = AsyncMock(spec=httpx.AsyncClient)
        client = DeviceClient(TEST_UUID, TEST_URL, http_client=http_client)
        await client.aclose()
        await client.aclose()
        assert client.closed
        http_client.aclose.assert_not_awaited()
        with pytest.raises(CommunicationError):
            await client.sendir(POWER_CODE)

    @pytest.mark.asyncio
    async def test_aclose_waits_for_request_in_progress(self) -> None:
        """Test that closing a client does not abort a send that is already on the wire."""
        events: list[str] = []

        async def slow_request(*args: object, **kwargs: object) -> httpx.Response:
            events.append("request started")
            await asyncio.sleep(0.2)
            events.append("request finished")
            return httpx.Response(200, text="completeir,1:1,0")

        async def record_aclose() -> None:
            events.append("pool closed")

        client = DeviceClient(TEST_UUID, TEST_URL)
        await client._http_client.aclose()
        http_client = AsyncMock(spec=httpx.AsyncClient)
        http_client.request.side_effect = slow_request
        http_client.aclose.side_effect = record_aclose
        client._http_client = http_client

        send = asyncio.create_task(client.sendir(POWER_CODE))
        await asyncio.sleep(0.05)
        await client.aclose()
        await asyncio.wait_for(send, 1.0)
        assert events == ["request started", "request finished", "pool closed"]
        with pytest.raises(CommunicationError):
            await client.sendir(POWER_CODE)
