from fastapi import FastAPI

from app.config import settings
from app.logging_config import get_logger, setup_logging
from app.routers import webhook

setup_logging(settings.log_level)

app = FastAPI(
    title="LINE Helpdesk Bot",
    description="Routes LINE chat events to search, code lookup, payment check, OCR and AI chat",
    version="0.1.0",
)

app.include_router(webhook.router)

logger = get_logger("main")


def configured_collaborators() -> dict[str, bool]:
    return {
        "line": bool(settings.line_channel_access_token),
        "openai": bool(settings.openai_api_key),
        "vision": bool(settings.google_vision_api_key),
        "payment": bool(settings.payment_api_url),
        "alerts": bool(settings.alert_bot_token and settings.alert_chat_id),
    }


@app.on_event("startup")
async def log_configuration() -> None:
    # Only presence flags; secrets never reach the logs.
    logger.info("Service starting", extra={"context": configured_collaborators()})


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/config")
async def health_config():
    return {
        "status": "ok",
        "configured": configured_collaborators(),
        "triggers": list(settings.trigger_phrases),
    }
