"""
Tests for the RedisQ long-poll event source.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from pytest_httpx import HTTPXMock

from zkb_ingest.core.errors import ConnectivityError
from zkb_ingest.services.redisq.models import RedisQConfig
from zkb_ingest.services.redisq.poller import RedisQEventSource

pytestmark = pytest.mark.asyncio

REDISQ_URL = "https://zkillredisq.stream/listen.php"


@pytest_asyncio.fixture
async def client():
    async with httpx.AsyncClient() as c:
        yield c


@pytest.fixture
def source(client) -> RedisQEventSource:
    return RedisQEventSource(
        config=RedisQConfig(url=REDISQ_URL, queue_id="test-queue", ttw=1),
        client=client,
    )


class TestQueueId:
    async def test_generates_queue_id(self, client):
        source = RedisQEventSource(config=RedisQConfig(url=REDISQ_URL), client=client)

        assert source.config.queue_id.startswith("zkb-ingest-")

    async def test_keeps_configured_queue_id(self, source):
        assert source.config.queue_id == "test-queue"


class TestPollOnce:
    async def test_package_yields_event(self, source, httpx_mock: HTTPXMock, redisq_package):
        httpx_mock.add_response(method="GET", json={"package": redisq_package})

        event = await source.poll_once()

        assert event is not None
        assert event.kill_id == 100
        request = httpx_mock.get_request()
        assert request.url.params["queueID"] == "test-queue"
        assert request.url.params["ttw"] == "1"

    async def test_null_package_is_quiet(self, source, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="GET", json={"package": None})

        assert await source.poll_once() is None

    async def test_read_timeout_is_quiet(self, source, httpx_mock: HTTPXMock):
        httpx_mock.add_exception(httpx.ReadTimeout("long poll expired"))

        assert await source.poll_once() is None

    async def test_rate_limit_pauses(self, source, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="GET", status_code=429, headers={"Retry-After": "12"})
        source._pause = AsyncMock()

        assert await source.poll_once() is None
        source._pause.assert_awaited_once_with(12.0)

    async def test_server_error_raises(self, source, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="GET", status_code=502)

        with pytest.raises(ConnectivityError):
            await source.poll_once()

    async def test_malformed_package_dropped(self, source, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="GET", json={"package": {"killID": 100}})

        assert await source.poll_once() is None
        assert source.get_status().envelopes_dropped == 1

    async def test_non_json_body_dropped(self, source, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="GET", text="<html>maintenance</html>")

        assert await source.poll_once() is None
        assert source.get_status().envelopes_dropped == 1


class TestEvents:
    async def test_error_backs_off_then_yields(
        self, source, httpx_mock: HTTPXMock, redisq_package
    ):
        httpx_mock.add_exception(httpx.ConnectError("refused"))
        httpx_mock.add_response(method="GET", json={"package": redisq_package})
        source._pause = AsyncMock()

        events = source.events()
        event = await events.__anext__()
        await events.aclose()

        assert event.kill_id == 100
        source._pause.assert_awaited_once_with(2.0)
        status = source.get_status()
        assert status.events_yielded == 1
        assert status.consecutive_errors == 0
        assert status.is_running is False

    async def test_stop_ends_iteration(self, source, httpx_mock: HTTPXMock, redisq_package):
        httpx_mock.add_response(method="GET", json={"package": redisq_package})

        received = []
        async for event in source:
            received.append(event)
            source.stop()

        assert [e.kill_id for e in received] == [100]

    async def test_close_leaves_borrowed_client_open(self, source, client):
        await source.close()

        assert source.client is client
        assert not client.is_closed
