from app.schemas.line import LineEvent, LineMessage, LineSource, LineWebhookRequest, LineWebhookResponse

__all__ = ["LineEvent", "LineMessage", "LineSource", "LineWebhookRequest", "LineWebhookResponse"]
