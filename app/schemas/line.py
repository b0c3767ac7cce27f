from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class LineSource(BaseModel):
    type: str  # user, group, room
    userId: Optional[str] = None
    groupId: Optional[str] = None
    roomId: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class LineMessage(BaseModel):
    id: str
    type: str  # text, image, sticker, video, audio, file, location
    text: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class LineEvent(BaseModel):
    type: str
    replyToken: Optional[str] = None
    timestamp: Optional[int] = None  # epoch milliseconds
    source: Optional[LineSource] = None
    message: Optional[LineMessage] = None

    model_config = ConfigDict(extra="ignore")

    @property
    def is_text(self) -> bool:
        return self.type == "message" and self.message is not None and self.message.type == "text"

    @property
    def is_image(self) -> bool:
        return self.type == "message" and self.message is not None and self.message.type == "image"


class LineWebhookRequest(BaseModel):
    destination: Optional[str] = None
    events: list[Any] = []


class LineWebhookResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    events: int = 0
