from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from app.services.line_service import MAX_TEXT_LENGTH, LineService, MediaFetchError, build_text_messages


def _client(mock_cls: MagicMock) -> MagicMock:
    return mock_cls.return_value.__aenter__.return_value


@pytest.fixture
def line():
    return LineService("token-abc", api_base="https://line.test/v2/bot", data_api_base="https://data.line.test/v2/bot")


class TestBuildTextMessages:
    def test_short_text_unchanged(self):
        assert build_text_messages("hi") == [{"type": "text", "text": "hi"}]

    def test_long_text_truncated(self):
        text = build_text_messages("x" * 6000)[0]["text"]
        assert len(text) == MAX_TEXT_LENGTH
        assert text.endswith("…")


class TestReplyAndPush:
    @pytest.mark.asyncio
    @patch("app.services.line_service.httpx.AsyncClient")
    async def test_reply_posts_token_and_text(self, mock_cls, line):
        _client(mock_cls).post = AsyncMock(return_value=MagicMock(status_code=200))

        assert await line.reply_message("r-1", "hello") is True

        call = _client(mock_cls).post.await_args
        assert call.args[0] == "https://line.test/v2/bot/message/reply"
        assert call.kwargs["json"] == {"replyToken": "r-1", "messages": [{"type": "text", "text": "hello"}]}
        assert call.kwargs["headers"] == {"Authorization": "Bearer token-abc"}

    @pytest.mark.asyncio
    @patch("app.services.line_service.httpx.AsyncClient")
    async def test_push_posts_target(self, mock_cls, line):
        _client(mock_cls).post = AsyncMock(return_value=MagicMock(status_code=200))

        assert await line.push_message("C1", "hello") is True

        call = _client(mock_cls).post.await_args
        assert call.args[0] == "https://line.test/v2/bot/message/push"
        assert call.kwargs["json"]["to"] == "C1"

    @pytest.mark.asyncio
    @patch("app.services.line_service.httpx.AsyncClient")
    async def test_rejected_token_returns_false(self, mock_cls, line):
        _client(mock_cls).post = AsyncMock(
            return_value=MagicMock(status_code=400, text='{"message":"Invalid reply token"}')
        )

        assert await line.reply_message("r-1", "hello") is False

    @pytest.mark.asyncio
    @patch("app.services.line_service.httpx.AsyncClient")
    async def test_transport_error_returns_false(self, mock_cls, line):
        _client(mock_cls).post = AsyncMock(side_effect=httpx.ConnectError("refused"))

        assert await line.push_message("C1", "hello") is False


class TestGetMessageContent:
    @pytest.mark.asyncio
    @patch("app.services.line_service.httpx.AsyncClient")
    async def test_returns_bytes(self, mock_cls, line):
        _client(mock_cls).get = AsyncMock(return_value=MagicMock(status_code=200, content=b"\x89PNG"))

        assert await line.get_message_content("m-1") == b"\x89PNG"
        assert _client(mock_cls).get.await_args.args[0] == "https://data.line.test/v2/bot/message/m-1/content"
        mock_cls.assert_called_once_with(timeout=15.0)

    @pytest.mark.asyncio
    @patch("app.services.line_service.httpx.AsyncClient")
    async def test_explicit_timeout(self, mock_cls, line):
        _client(mock_cls).get = AsyncMock(return_value=MagicMock(status_code=200, content=b"img"))

        await line.get_message_content("m-1", timeout_seconds=3)

        mock_cls.assert_called_once_with(timeout=3)

    @pytest.mark.asyncio
    @patch("app.services.line_service.httpx.AsyncClient")
    async def test_not_found_raises(self, mock_cls, line):
        _client(mock_cls).get = AsyncMock(return_value=MagicMock(status_code=404, content=b""))

        with pytest.raises(MediaFetchError):
            await line.get_message_content("m-1")

    @pytest.mark.asyncio
    @patch("app.services.line_service.httpx.AsyncClient")
    async def test_empty_content_raises(self, mock_cls, line):
        _client(mock_cls).get = AsyncMock(return_value=MagicMock(status_code=200, content=b""))

        with pytest.raises(MediaFetchError):
            await line.get_message_content("m-1")

    @pytest.mark.asyncio
    @patch("app.services.line_service.httpx.AsyncClient")
    async def test_timeout_raises(self, mock_cls, line):
        _client(mock_cls).get = AsyncMock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(MediaFetchError):
            await line.get_message_content("m-1")
