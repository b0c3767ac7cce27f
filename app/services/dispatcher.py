import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from app.logging_config import get_logger
from app.services.line_service import LineService
from app.services.source_key import SourceKey

logger = get_logger("dispatcher")

DEFAULT_REPLY_TOKEN_TTL_SECONDS = 50.0


@dataclass
class ReplyContext:
    """Outbound channels for one inbound event.

    The reply token may be used once, within ttl_seconds of the event's
    creation on the platform (received_at is backdated by the delivery delay).
    Anything sent after that goes to the conversation's push target.
    """

    source: SourceKey
    reply_token: Optional[str]
    received_at: float
    ttl_seconds: float = DEFAULT_REPLY_TOKEN_TTL_SECONDS
    used: bool = False

    @property
    def push_target(self) -> Optional[str]:
        return self.source.push_target

    def is_valid(self, now: float) -> bool:
        if not self.reply_token or self.used:
            return False
        return now - self.received_at <= self.ttl_seconds


class ReplyDispatcher:
    """Sends text over the one-shot reply channel or the push channel.

    Neither primitive raises or retries: a failed send is logged and lost
    rather than risking a duplicate message.
    """

    def __init__(
        self,
        line: LineService,
        reply_ttl_seconds: float = DEFAULT_REPLY_TOKEN_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.line = line
        self.reply_ttl_seconds = reply_ttl_seconds
        self._clock = clock
        self._wall_clock = wall_clock

    def open_context(
        self,
        source: SourceKey,
        reply_token: Optional[str],
        event_timestamp_ms: Optional[int] = None,
    ) -> ReplyContext:
        """Start the reply window at the platform's event time when it is known."""
        received_at = self._clock()
        if event_timestamp_ms:
            # Delivery delay already spent from the token's lifetime; never negative.
            delay = max(self._wall_clock() - event_timestamp_ms / 1000.0, 0.0)
            received_at -= delay
        return ReplyContext(
            source=source,
            reply_token=reply_token,
            received_at=received_at,
            ttl_seconds=self.reply_ttl_seconds,
        )

    async def reply(self, ctx: ReplyContext, message: str) -> bool:
        if not ctx.reply_token:
            logger.warning(f"No reply token for {ctx.source}, reply dropped")
            return False
        if ctx.used:
            logger.warning(f"Reply token already used for {ctx.source}, reply dropped")
            return False
        if not ctx.is_valid(self._clock()):
            logger.warning(
                "Reply token expired, reply dropped",
                extra={"context": {"source": str(ctx.source), "age_seconds": round(self._clock() - ctx.received_at, 2)}},
            )
            return False

        # Spent before the attempt: a failed send is never retried on the same token.
        ctx.used = True
        try:
            sent = await self.line.reply_message(ctx.reply_token, message)
        except Exception as exc:
            logger.error(f"Reply failed for {ctx.source}: {exc}", exc_info=True)
            return False

        if not sent:
            logger.warning(f"Reply rejected for {ctx.source}")
        return sent

    async def push(self, source: SourceKey, message: str) -> bool:
        target = source.push_target
        if not target:
            logger.warning(f"No push target for {source}, push skipped")
            return False
        try:
            sent = await self.line.push_message(target, message)
        except Exception as exc:
            logger.error(f"Push failed for {source}: {exc}", exc_info=True)
            return False

        if not sent:
            logger.warning(f"Push rejected for {source}")
        return sent

    async def acknowledge_then_push(
        self,
        ctx: ReplyContext,
        acknowledgement: str,
        produce: Callable[[], Awaitable[str]],
        typing_delay_seconds: float = 0.0,
    ) -> bool:
        """Spend the reply token on a short acknowledgement, then push the slow answer.

        With a push target, the final answer never goes through the reply
        token, which may have expired while produce() was running. Without
        one there is no acknowledgement and the answer is sent as the reply,
        if the token is still valid by then.
        """
        if ctx.push_target is None:
            answer = await produce()
            return await self.reply(ctx, answer)

        await self.reply(ctx, acknowledgement)
        if typing_delay_seconds > 0:
            await asyncio.sleep(typing_delay_seconds)
        answer = await produce()
        return await self.push(ctx.source, answer)
