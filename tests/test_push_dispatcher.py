# tests/test_push_dispatcher.py

from __future__ import annotations

import json

import httpx
import pytest

from classsync.core.errors import DispatchError
from classsync.core.ports import PushRequest
from classsync.push.dispatcher import HttpPushDispatcher, OfflinePushDispatcher

REQUEST = PushRequest(
    section_id="sec-1",
    title="New Quiz Assigned",
    message="Quiz 3 - Due: Oct 12, 2025",
    recipient_ids=("student-1", "student-2"),
)


def make_dispatcher(handler, **kw) -> HttpPushDispatcher:
    return HttpPushDispatcher(
        "https://push.example.test/functions/v1/",
        api_key=kw.pop("api_key", "secret-key"),
        transport=httpx.MockTransport(handler),
        **kw,
    )


@pytest.mark.asyncio
async def test_posts_payload_to_function_url() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True})

    result = await make_dispatcher(handler).dispatch(REQUEST)

    assert result.success is True
    [req] = seen
    assert req.method == "POST"
    assert str(req.url) == "https://push.example.test/functions/v1/send-push-notification"
    assert req.headers["Authorization"] == "Bearer secret-key"
    assert json.loads(req.content) == {
        "sectionId": "sec-1",
        "title": "New Quiz Assigned",
        "message": "Quiz 3 - Due: Oct 12, 2025",
        "studentIds": ["student-1", "student-2"],
    }


@pytest.mark.asyncio
async def test_custom_function_and_no_key() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    dispatcher = make_dispatcher(handler, api_key=None, function="notify")
    assert (await dispatcher.dispatch(REQUEST)).success

    assert seen[0].url.path == "/functions/v1/notify"
    assert "Authorization" not in seen[0].headers


@pytest.mark.asyncio
async def test_error_status_raises_dispatch_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    with pytest.raises(DispatchError, match="500"):
        await make_dispatcher(handler).dispatch(REQUEST)


@pytest.mark.asyncio
async def test_transport_error_raises_dispatch_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(DispatchError) as exc_info:
        await make_dispatcher(handler).dispatch(REQUEST)
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


def test_base_url_is_required() -> None:
    with pytest.raises(ValueError):
        HttpPushDispatcher("  ")


def test_from_settings(settings) -> None:
    settings.push_url = "https://push.example.test"
    settings.push_api_key = "k"
    dispatcher = HttpPushDispatcher.from_settings(settings)
    assert dispatcher.url == "https://push.example.test/send-push-notification"


@pytest.mark.asyncio
async def test_offline_dispatcher_records_requests() -> None:
    dispatcher = OfflinePushDispatcher()
    result = await dispatcher.dispatch(REQUEST)
    assert result.success is True
    assert dispatcher.sent == [REQUEST]
