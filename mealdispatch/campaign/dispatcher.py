"""Rate-limited batch dispatcher.

Splits a batch into chunks of ``per_second_limit`` messages, hands each
chunk to the channel in one call, and waits after every chunk except
the last until a full second has passed since that chunk started.  No
rolling one-second window therefore ever carries more than
``per_second_limit`` sends.

Failures are data, never exceptions:

- a recipient whose message fails to render is failed alone;
- a chunk whose channel call raises is failed as a whole -- the channel
  may have delivered some of it, but there is no way to know which.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from mealdispatch.campaign.recipients import EligibleRecipient
from mealdispatch.notification.email_sender import DeliveryReceipt, OutboundMessage

logger = logging.getLogger(__name__)

CHUNK_WINDOW_SECONDS = 1.0


class MessageChannel(Protocol):
    def send_batch(self, messages: Sequence[OutboundMessage]) -> list[DeliveryReceipt]:
        ...


@dataclass
class ChunkOutcome:
    index: int
    size: int
    succeeded: int
    failed: int
    elapsed_seconds: float
    error: str | None = None


@dataclass
class DispatchResult:
    succeeded_ids: list[str] = field(default_factory=list)
    failed_ids: list[str] = field(default_factory=list)
    chunks: list[ChunkOutcome] = field(default_factory=list)

    def merge(self, other: DispatchResult) -> None:
        self.succeeded_ids.extend(other.succeeded_ids)
        self.failed_ids.extend(other.failed_ids)
        self.chunks.extend(other.chunks)


def chunked(items: Sequence, size: int) -> list[Sequence]:
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [items[i:i + size] for i in range(0, len(items), size)]


class RateLimitedDispatcher:
    """Deliver messages through *channel* under a per-second ceiling."""

    def __init__(self, channel: MessageChannel) -> None:
        self.channel = channel

    # -- delivery -----------------------------------------------------------

    def send_batch(
        self,
        messages: Sequence[OutboundMessage],
        per_second_limit: int,
    ) -> DispatchResult:
        """Send *messages* in paced chunks and report per-recipient outcomes."""
        if per_second_limit <= 0:
            raise ValueError("per_second_limit must be positive")

        result = DispatchResult()
        chunks = chunked(messages, per_second_limit)

        for i, chunk in enumerate(chunks):
            started = time.monotonic()
            outcome = self._send_chunk(i, chunk, result)
            outcome.elapsed_seconds = time.monotonic() - started
            result.chunks.append(outcome)

            if i < len(chunks) - 1:
                remaining = CHUNK_WINDOW_SECONDS - (time.monotonic() - started)
                if remaining > 0:
                    time.sleep(remaining)

        return result

    def _send_chunk(
        self,
        index: int,
        chunk: Sequence[OutboundMessage],
        result: DispatchResult,
    ) -> ChunkOutcome:
        ids = [m.recipient_id for m in chunk]
        try:
            receipts = self.channel.send_batch(chunk)
        except Exception as exc:
            logger.warning(
                "Chunk %d (%d messages) failed outright: %s", index, len(chunk), exc.__class__.__name__,
            )
            result.failed_ids.extend(ids)
            return ChunkOutcome(
                index=index, size=len(chunk), succeeded=0, failed=len(chunk),
                elapsed_seconds=0.0, error=str(exc) or exc.__class__.__name__,
            )

        sent = {r.recipient_id for r in receipts if r.status == "SENT"}
        ok = [rid for rid in ids if rid in sent]
        # A message with no receipt counts as failed.
        bad = [rid for rid in ids if rid not in sent]
        result.succeeded_ids.extend(ok)
        result.failed_ids.extend(bad)
        return ChunkOutcome(
            index=index, size=len(chunk), succeeded=len(ok), failed=len(bad), elapsed_seconds=0.0,
        )

    # -- render + deliver ---------------------------------------------------

    def dispatch(
        self,
        recipients: Sequence[EligibleRecipient],
        render: Callable[[EligibleRecipient], OutboundMessage],
        per_second_limit: int,
    ) -> DispatchResult:
        """Render a message per recipient, then ``send_batch`` the rendered ones."""
        render_failed = DispatchResult()
        messages: list[OutboundMessage] = []
        for recipient in recipients:
            try:
                messages.append(render(recipient))
            except Exception as exc:
                logger.warning("Rendering failed for recipient %s: %s", recipient.id, exc)
                render_failed.failed_ids.append(recipient.id)

        result = self.send_batch(messages, per_second_limit)
        result.merge(render_failed)
        logger.info(
            "Dispatched %d recipients: %d succeeded, %d failed (%d render failures)",
            len(recipients), len(result.succeeded_ids), len(result.failed_ids),
            len(render_failed.failed_ids),
        )
        return result
