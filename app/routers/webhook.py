import json
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from pydantic import ValidationError
from starlette.requests import ClientDisconnect

from app.config import settings
from app.logging_config import get_logger
from app.schemas.line import LineWebhookRequest, LineWebhookResponse
from app.services.orchestrator import EventOrchestrator, build_orchestrator

logger = get_logger("webhook")

router = APIRouter()

_orchestrator: Optional[EventOrchestrator] = None


def get_orchestrator() -> EventOrchestrator:
    """Process-wide orchestrator; owns the pending-image store."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator(settings)
    return _orchestrator


async def parse_webhook_body(request: Request) -> tuple[Optional[dict], Optional[str]]:
    """
    Decode the webhook body tolerantly.
    Returns (payload, None) or (None, reason).
    """
    try:
        raw = await request.body()
    except ClientDisconnect:
        logger.info("Webhook client disconnected during body read")
        return None, "Client disconnected"

    if not raw or not raw.strip():
        return None, "Empty payload"

    for enc in ("utf-8", "latin-1"):
        try:
            payload = json.loads(raw.decode(enc, errors="replace"))
            break
        except ValueError:
            continue
    else:
        logger.warning(
            "Webhook payload is not valid JSON",
            extra={"context": {"body_preview": raw[:200].decode("utf-8", "ignore")}},
        )
        return None, "Invalid JSON payload"

    if not isinstance(payload, dict):
        return None, "Invalid payload format"
    return payload, None


@router.post("/webhook", response_model=LineWebhookResponse)
async def handle_line_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    orchestrator: EventOrchestrator = Depends(get_orchestrator),
):
    """
    Acknowledge a LINE webhook delivery and process its events afterwards.
    Always answers 200: a non-2xx answer makes the platform redeliver the batch.
    """
    payload, reason = await parse_webhook_body(request)
    if payload is None:
        return LineWebhookResponse(success=reason == "Empty payload", message=reason)

    try:
        webhook = LineWebhookRequest.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Webhook payload validation failed", extra={"context": {"error": str(exc)[:500]}})
        return LineWebhookResponse(success=False, message="Invalid webhook payload")

    if not webhook.events:
        # Console "Verify" sends an empty batch.
        return LineWebhookResponse(success=True, message="No events")

    background_tasks.add_task(orchestrator.handle_batch, webhook.events)
    logger.info(
        "Webhook accepted",
        extra={"context": {"destination": webhook.destination, "events": len(webhook.events)}},
    )
    return LineWebhookResponse(success=True, message="Accepted", events=len(webhook.events))


@router.post("/callback", response_model=LineWebhookResponse)
async def handle_line_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    orchestrator: EventOrchestrator = Depends(get_orchestrator),
):
    return await handle_line_webhook(request, background_tasks, orchestrator)
