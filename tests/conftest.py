from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from app.services.dispatcher import ReplyDispatcher
from app.services.knowledge_service import KnowledgeBase
from app.services.orchestrator import CollaboratorTimeouts, EventOrchestrator
from app.services.pending_images import PendingImageStore

KNOWLEDGE_YAML = """
entries:
  "101":
    title: Login failed
    description: Wrong password or the account is locked.
    keywords: [login, password]
    steps:
      - Check the email and password
      - Reset the password
  "204":
    title: Payment declined
    description: The bank declined the card.
    keywords: [payment, card]
    steps:
      - Check the card limit
  "305":
    title: Upload failed
    description: The file is too large for login page banners.
    keywords: [upload]
    steps: []
"""


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def knowledge_path(tmp_path) -> Path:
    path = tmp_path / "knowledge_base.yaml"
    path.write_text(KNOWLEDGE_YAML, encoding="utf-8")
    return path


@pytest.fixture
def knowledge(knowledge_path):
    return KnowledgeBase(knowledge_path)


@pytest.fixture
def line_service():
    """LINE client double: every send succeeds."""
    line = Mock()
    line.reply_message = AsyncMock(return_value=True)
    line.push_message = AsyncMock(return_value=True)
    line.get_message_content = AsyncMock(return_value=b"image-bytes")
    return line


@pytest.fixture
def ocr_service():
    ocr = Mock()
    ocr.detect_text = AsyncMock(return_value="INVOICE 42")
    return ocr


@pytest.fixture
def payment_service():
    payment = Mock()
    payment.lookup_attempt = AsyncMock(return_value=None)
    return payment


@pytest.fixture
def complete():
    return Mock(return_value="AI answer")


@pytest.fixture
def store(clock):
    return PendingImageStore(ttl_seconds=120, clock=clock)


@pytest.fixture
def orchestrator(line_service, store, knowledge, ocr_service, payment_service, complete, clock):
    return EventOrchestrator(
        dispatcher=ReplyDispatcher(line_service, reply_ttl_seconds=50, clock=clock, wall_clock=clock),
        store=store,
        knowledge=knowledge,
        ocr=ocr_service,
        payment=payment_service,
        complete=complete,
        trigger_phrases=("@bot",),
        typing_delay_seconds=0,
        timeouts=CollaboratorTimeouts(knowledge=1, media=1, ocr=1, payment=1, llm=1),
    )


def _make_event(
    *,
    text: str | None = None,
    image_id: str | None = None,
    source_type: str = "user",
    source_id: str = "U1",
    reply_token: str = "reply-token",
    timestamp_ms: int = 1_000_000,
) -> dict:
    """Build a raw LINE message event; the default timestamp matches FakeClock's start."""
    id_field = {"user": "userId", "group": "groupId", "room": "roomId"}.get(source_type, "userId")
    source = {"type": source_type, id_field: source_id}
    if source_type != "user":
        source["userId"] = "U-member"
    if image_id is not None:
        message = {"type": "image", "id": image_id}
    else:
        message = {"type": "text", "id": "m-1", "text": text or ""}
    return {
        "type": "message",
        "replyToken": reply_token,
        "timestamp": timestamp_ms,
        "source": source,
        "message": message,
    }


@pytest.fixture
def make_event():
    return _make_event
