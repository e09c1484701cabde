# src/classsync/push/dispatcher.py

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.errors import DispatchError
from ..core.ports import DispatchResult, PushRequest

logger = logging.getLogger(__name__)


def push_payload(request: PushRequest) -> dict[str, Any]:
    """JSON body expected by the push function."""
    return {
        "sectionId": request.section_id,
        "title": request.title,
        "message": request.message,
        "studentIds": list(request.recipient_ids),
    }


class HttpPushDispatcher:
    """
    Invokes a hosted push function over HTTP.

    POST {base_url}/{function} with a JSON body and an optional Bearer key.
    Transport errors and non-2xx responses raise DispatchError.
    """

    def __init__(
            self,
            base_url: str,
            *,
            function: str = "send-push-notification",
            api_key: str | None = None,
            connect_timeout: float = 5.0,
            read_timeout: float = 15.0,
            transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url or not base_url.strip():
            raise ValueError("Push base URL is not set. Set CLASSSYNC_PUSH_URL in your .env.")
        self.url = f"{base_url.strip().rstrip('/')}/{function.strip().strip('/')}"
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"
        self._timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=10.0,
            pool=connect_timeout,
        )
        self._transport = transport

    @classmethod
    def from_settings(cls, settings) -> HttpPushDispatcher:
        return cls(
            settings.push_url,
            function=settings.push_function,
            api_key=settings.push_api_key,
            connect_timeout=settings.push_connect_timeout,
            read_timeout=settings.push_read_timeout,
        )

    async def dispatch(self, request: PushRequest) -> DispatchResult:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self.url, headers=self._headers, json=push_payload(request))
        except httpx.HTTPError as e:
            raise DispatchError(f"Push request failed: {e}") from e

        if response.status_code >= 400:
            raise DispatchError(f"Push function error {response.status_code}: {response.text}")

        logger.debug(
            "Push sent section=%s recipients=%d status=%s",
            request.section_id,
            len(request.recipient_ids),
            response.status_code,
        )
        return DispatchResult(success=True)


class OfflinePushDispatcher:
    """
    Push dispatcher used when no push endpoint is configured.

    Logs the request and reports success, so local runs behave like a deployment
    whose push channel is healthy.
    """

    def __init__(self) -> None:
        self.sent: list[PushRequest] = []

    async def dispatch(self, request: PushRequest) -> DispatchResult:
        self.sent.append(request)
        logger.info(
            "Offline push (not delivered) section=%s title=%r recipients=%d",
            request.section_id,
            request.title,
            len(request.recipient_ids),
        )
        return DispatchResult(success=True)
