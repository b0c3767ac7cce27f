import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional

from pydantic import ValidationError

from app.config import Settings
from app.logging_config import get_logger
from app.schemas.line import LineEvent
from app.services import ai_service
from app.services.alert_service import alert_error
from app.services.dispatcher import ReplyContext, ReplyDispatcher
from app.services.intent_service import (
    DEFAULT_TRIGGER_PHRASES,
    AiChat,
    ClassifiedIntent,
    CodeLookup,
    Ignore,
    OcrRequest,
    PaymentCheck,
    Search,
    classify,
    has_trigger,
)
from app.services.knowledge_service import KnowledgeBase
from app.services.line_service import LineService
from app.services.messages import (
    MSG_AI_ERROR,
    MSG_AI_WORKING,
    MSG_EMPTY_PROMPT,
    MSG_KNOWLEDGE_ERROR,
    MSG_OCR_ERROR,
    MSG_PAYMENT_ASK_REFERENCE,
    MSG_PAYMENT_ERROR,
    format_code_advice,
    format_image_stored,
    format_ocr_text,
    format_payment_status,
    format_search_results,
)
from app.services.ocr_service import OcrService
from app.services.payment_service import PaymentService
from app.services.pending_images import PendingImageStore
from app.services.result import Result
from app.services.source_key import SourceKey, resolve_source_key

logger = get_logger("orchestrator")

# Per-event outcomes, returned for logging and tests.
OUTCOME_IMAGE_STORED = "image_stored"
OUTCOME_SEARCH = "search"
OUTCOME_CODE_LOOKUP = "code_lookup"
OUTCOME_PAYMENT_ASKED = "payment_reference_requested"
OUTCOME_PAYMENT_CHECKED = "payment_checked"
OUTCOME_OCR = "ocr"
OUTCOME_OCR_MISSING = "ocr_image_missing"
OUTCOME_AI_CHAT = "ai_chat"
OUTCOME_IGNORED = "ignored"
OUTCOME_UNSUPPORTED = "unsupported"
OUTCOME_INVALID = "invalid"
OUTCOME_FAILED = "failed"


@dataclass(frozen=True)
class CollaboratorTimeouts:
    knowledge: float = 3.0
    media: float = 15.0
    ocr: float = 20.0
    payment: float = 10.0
    llm: float = 60.0


class EventOrchestrator:
    """Routes each inbound LINE event to one response pipeline."""

    def __init__(
        self,
        *,
        dispatcher: ReplyDispatcher,
        store: PendingImageStore,
        knowledge: KnowledgeBase,
        ocr: OcrService,
        payment: PaymentService,
        complete: Callable[[str], str] = ai_service.complete,
        trigger_phrases: Iterable[str] = DEFAULT_TRIGGER_PHRASES,
        typing_delay_seconds: float = 0.0,
        timeouts: CollaboratorTimeouts = CollaboratorTimeouts(),
    ):
        self.dispatcher = dispatcher
        self.store = store
        self.knowledge = knowledge
        self.ocr = ocr
        self.payment = payment
        self.complete = complete
        self.trigger_phrases = tuple(trigger_phrases)
        self.typing_delay_seconds = typing_delay_seconds
        self.timeouts = timeouts

    @property
    def line(self) -> LineService:
        return self.dispatcher.line

    async def handle_batch(self, events: list[Any]) -> list[str]:
        """Process all events concurrently; one failure never affects the others."""
        if not events:
            return []
        outcomes = await asyncio.gather(*(self._handle_isolated(index, raw) for index, raw in enumerate(events)))
        logger.info("Batch processed", extra={"context": {"events": len(events), "outcomes": outcomes}})
        return list(outcomes)

    async def _handle_isolated(self, index: int, raw: Any) -> str:
        try:
            event = raw if isinstance(raw, LineEvent) else LineEvent.model_validate(raw)
        except ValidationError as exc:
            logger.warning(
                "Skipping malformed event",
                extra={"context": {"index": index, "error": str(exc)[:500]}},
            )
            return OUTCOME_INVALID

        try:
            return await self.handle_event(event)
        except Exception as exc:
            source = resolve_source_key(event.source)
            logger.error(
                f"Event handling failed: {exc}",
                exc_info=True,
                extra={"context": {"index": index, "source": str(source), "event_type": event.type}},
            )
            await asyncio.to_thread(
                alert_error,
                "Event handling failed",
                {"source": str(source), "error": str(exc)[:200]},
            )
            return OUTCOME_FAILED

    async def handle_event(self, event: LineEvent) -> str:
        if event.is_image:
            return await self._handle_image(event)
        if event.is_text:
            return await self._handle_text(event)
        logger.debug(f"Unsupported event: type={event.type}, message={event.message.type if event.message else None}")
        return OUTCOME_UNSUPPORTED

    async def _handle_image(self, event: LineEvent) -> str:
        source = resolve_source_key(event.source)
        if self.store.put(source, event.message.id) is None:
            return OUTCOME_UNSUPPORTED
        logger.info("Image stored", extra={"context": {"source": str(source), "media_id": event.message.id}})

        if not source.is_direct:
            ctx = self.dispatcher.open_context(source, event.replyToken, event.timestamp)
            trigger = self.trigger_phrases[0] if self.trigger_phrases else ""
            await self.dispatcher.reply(ctx, format_image_stored(trigger, self.store.ttl_seconds))
        return OUTCOME_IMAGE_STORED

    async def _handle_text(self, event: LineEvent) -> str:
        source = resolve_source_key(event.source)
        ctx = self.dispatcher.open_context(source, event.replyToken, event.timestamp)
        text = event.message.text or ""

        intent = classify(
            text,
            is_direct=source.is_direct,
            has_pending_image=self.store.peek(source) is not None,
            trigger_phrases=self.trigger_phrases,
        )
        logger.info(
            "Event routed",
            extra={
                "context": {
                    "source": str(source),
                    "intent": intent.kind.value,
                    "triggered": has_trigger(text, self.trigger_phrases),
                }
            },
        )
        return await self.execute(intent, ctx)

    async def execute(self, intent: ClassifiedIntent, ctx: ReplyContext) -> str:
        if isinstance(intent, Search):
            return await self._run_search(intent, ctx)
        if isinstance(intent, CodeLookup):
            return await self._run_code_lookup(intent, ctx)
        if isinstance(intent, PaymentCheck):
            return await self._run_payment_check(intent, ctx)
        if isinstance(intent, OcrRequest):
            return await self._run_ocr(ctx)
        if isinstance(intent, AiChat):
            return await self._run_ai_chat(intent, ctx)
        if isinstance(intent, Ignore):
            return OUTCOME_IGNORED
        raise TypeError(f"Unhandled intent: {intent!r}")

    async def run_with_timeout(
        self,
        collaborator: str,
        call: Awaitable,
        *,
        timeout: float,
        source: SourceKey,
        error_code: str,
    ) -> Result:
        """Await a collaborator with a deadline; timeouts and errors become failures."""
        try:
            value = await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"{collaborator} timed out",
                extra={"context": {"source": str(source), "collaborator": collaborator, "timeout_seconds": timeout}},
            )
            return Result.failure(f"{collaborator} timed out after {timeout}s", "timeout", collaborator)
        except Exception as exc:
            logger.error(
                f"{collaborator} failed: {exc}",
                extra={"context": {"source": str(source), "collaborator": collaborator, "error": str(exc)}},
            )
            return Result.failure(str(exc), error_code, collaborator)
        return Result.success(value, collaborator)

    async def _run_search(self, intent: Search, ctx: ReplyContext) -> str:
        result = await self.run_with_timeout(
            "knowledge",
            asyncio.to_thread(self.knowledge.search, intent.query),
            timeout=self.timeouts.knowledge,
            source=ctx.source,
            error_code="knowledge_error",
        )
        text = format_search_results(intent.query, result.value) if result.ok else MSG_KNOWLEDGE_ERROR
        await self.dispatcher.reply(ctx, text)
        return OUTCOME_SEARCH

    async def _run_code_lookup(self, intent: CodeLookup, ctx: ReplyContext) -> str:
        result = await self.run_with_timeout(
            "knowledge",
            asyncio.to_thread(self.knowledge.lookup, intent.code),
            timeout=self.timeouts.knowledge,
            source=ctx.source,
            error_code="knowledge_error",
        )
        text = format_code_advice(intent.code, result.value) if result.ok else MSG_KNOWLEDGE_ERROR
        await self.dispatcher.reply(ctx, text)
        return OUTCOME_CODE_LOOKUP

    async def _run_payment_check(self, intent: PaymentCheck, ctx: ReplyContext) -> str:
        if not intent.attempt_id:
            await self.dispatcher.reply(ctx, MSG_PAYMENT_ASK_REFERENCE)
            return OUTCOME_PAYMENT_ASKED

        result = await self.run_with_timeout(
            "payment",
            self.payment.lookup_attempt(intent.attempt_id),
            timeout=self.timeouts.payment,
            source=ctx.source,
            error_code="payment_error",
        )
        text = format_payment_status(intent.attempt_id, result.value) if result.ok else MSG_PAYMENT_ERROR
        await self.dispatcher.reply(ctx, text)
        return OUTCOME_PAYMENT_CHECKED

    async def _run_ocr(self, ctx: ReplyContext) -> str:
        pending = self.store.consume(ctx.source)
        if pending is None:
            # Expired or taken by a concurrent request since classification.
            logger.info(f"Pending image gone before OCR for {ctx.source}")
            return OUTCOME_OCR_MISSING

        content = await self.run_with_timeout(
            "media",
            self.line.get_message_content(pending.media_id),
            timeout=self.timeouts.media,
            source=ctx.source,
            error_code="media_error",
        )
        if not content.ok:
            await self.dispatcher.reply(ctx, MSG_OCR_ERROR)
            return OUTCOME_OCR

        detected = await self.run_with_timeout(
            "ocr",
            self.ocr.detect_text(content.value),
            timeout=self.timeouts.ocr,
            source=ctx.source,
            error_code="ocr_error",
        )
        await self.dispatcher.reply(ctx, format_ocr_text(detected.value) if detected.ok else MSG_OCR_ERROR)
        return OUTCOME_OCR

    async def _run_ai_chat(self, intent: AiChat, ctx: ReplyContext) -> str:
        prompt = intent.prompt.strip()
        if not prompt:
            await self.dispatcher.reply(ctx, MSG_EMPTY_PROMPT)
            return OUTCOME_AI_CHAT

        async def produce() -> str:
            result = await self.run_with_timeout(
                "ai",
                asyncio.to_thread(self.complete, prompt),
                timeout=self.timeouts.llm,
                source=ctx.source,
                error_code="ai_error",
            )
            return result.value if result.ok else MSG_AI_ERROR

        await self.dispatcher.acknowledge_then_push(
            ctx,
            MSG_AI_WORKING,
            produce,
            typing_delay_seconds=self.typing_delay_seconds,
        )
        return OUTCOME_AI_CHAT


def build_orchestrator(config: Settings, store: Optional[PendingImageStore] = None) -> EventOrchestrator:
    line = LineService(
        config.line_channel_access_token,
        api_base=config.line_api_base,
        data_api_base=config.line_data_api_base,
        timeout_seconds=config.line_timeout_seconds,
        media_timeout_seconds=config.media_timeout_seconds,
    )
    return EventOrchestrator(
        dispatcher=ReplyDispatcher(line, reply_ttl_seconds=config.reply_token_ttl_seconds),
        store=store if store is not None else PendingImageStore(ttl_seconds=config.pending_image_ttl_seconds),
        knowledge=KnowledgeBase(config.knowledge_base_path),
        ocr=OcrService(config.google_vision_api_key, timeout_seconds=config.ocr_timeout_seconds),
        payment=PaymentService(
            config.payment_api_url,
            config.payment_api_key,
            timeout_seconds=config.payment_timeout_seconds,
        ),
        trigger_phrases=config.trigger_phrases,
        typing_delay_seconds=config.typing_delay_seconds,
        timeouts=CollaboratorTimeouts(
            knowledge=config.knowledge_timeout_seconds,
            media=config.media_timeout_seconds,
            ocr=config.ocr_timeout_seconds,
            payment=config.payment_timeout_seconds,
            llm=config.llm_timeout_seconds,
        ),
    )
