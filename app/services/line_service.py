from typing import Optional

import httpx

from app.logging_config import get_logger

logger = get_logger("line_service")

MAX_TEXT_LENGTH = 5000


class MediaFetchError(Exception):
    """Message content could not be downloaded from the platform."""


def build_text_messages(text: str) -> list[dict]:
    if len(text) > MAX_TEXT_LENGTH:
        text = text[: MAX_TEXT_LENGTH - 1] + "…"
    return [{"type": "text", "text": text}]


class LineService:
    """Client for the LINE Messaging API."""

    def __init__(
        self,
        channel_access_token: str,
        api_base: str = "https://api.line.me/v2/bot",
        data_api_base: str = "https://api-data.line.me/v2/bot",
        timeout_seconds: float = 10.0,
        media_timeout_seconds: float = 15.0,
    ):
        self.channel_access_token = channel_access_token
        self.api_base = api_base.rstrip("/")
        self.data_api_base = data_api_base.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.media_timeout_seconds = media_timeout_seconds

    @property
    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.channel_access_token}"}

    async def _make_request(self, path: str, data: dict) -> dict:
        """POST to the Messaging API. Never raises; failures come back as ok=False."""
        url = f"{self.api_base}/{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(url, headers=self._headers, json=data)
        except httpx.HTTPError as e:
            logger.error(f"LINE API error: {e}")
            return {"ok": False, "error": str(e)}

        if response.status_code != 200:
            logger.warning(
                "LINE API rejected request",
                extra={"context": {"path": path, "status": response.status_code, "body": response.text[:300]}},
            )
            return {"ok": False, "status": response.status_code, "error": response.text[:300]}
        return {"ok": True}

    async def reply_message(self, reply_token: str, text: str) -> bool:
        result = await self._make_request(
            "message/reply",
            {"replyToken": reply_token, "messages": build_text_messages(text)},
        )
        return bool(result.get("ok"))

    async def push_message(self, to: str, text: str) -> bool:
        result = await self._make_request(
            "message/push",
            {"to": to, "messages": build_text_messages(text)},
        )
        return bool(result.get("ok"))

    async def get_message_content(self, message_id: str, timeout_seconds: Optional[float] = None) -> bytes:
        """Download the binary content of an image message."""
        url = f"{self.data_api_base}/message/{message_id}/content"
        timeout = timeout_seconds if timeout_seconds is not None else self.media_timeout_seconds
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.get(url, headers=self._headers)
        except httpx.HTTPError as exc:
            raise MediaFetchError(f"Content download failed for {message_id}: {exc}") from exc

        if response.status_code != 200:
            raise MediaFetchError(f"Content download for {message_id} returned {response.status_code}")
        if not response.content:
            raise MediaFetchError(f"Content for {message_id} is empty")
        return response.content
