"""Test doubles shared across the campaign test modules."""
from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

from mealdispatch.campaign.errors import ChannelError
from mealdispatch.campaign.recipients import EligibleRecipient
from mealdispatch.notification.email_sender import DeliveryReceipt, OutboundMessage


class RecordingChannel:
    """Channel that records every chunk and can fail chosen chunks or recipients."""

    def __init__(
        self,
        clock=None,
        fail_chunks: Sequence[int] = (),
        refuse_ids: Sequence[str] = (),
        seconds_per_chunk: float = 0.0,
    ) -> None:
        self.clock = clock
        self.fail_chunks = set(fail_chunks)
        self.refuse_ids = set(refuse_ids)
        self.seconds_per_chunk = seconds_per_chunk
        self.chunks: list[list[OutboundMessage]] = []
        self.chunk_started_at: list[float] = []

    @property
    def sent_ids(self) -> list[str]:
        return [
            m.recipient_id
            for i, chunk in enumerate(self.chunks)
            if i not in self.fail_chunks
            for m in chunk
            if m.recipient_id not in self.refuse_ids
        ]

    def send_batch(self, messages: Sequence[OutboundMessage]) -> list[DeliveryReceipt]:
        index = len(self.chunks)
        self.chunks.append(list(messages))
        if self.clock is not None:
            self.chunk_started_at.append(self.clock.monotonic())
            self.clock.advance(self.seconds_per_chunk)
        if index in self.fail_chunks:
            raise ChannelError("connection reset by peer")
        now = datetime.now(timezone.utc)
        return [
            DeliveryReceipt(
                recipient_id=m.recipient_id,
                status="FAILED" if m.recipient_id in self.refuse_ids else "SENT",
                timestamp=now,
            )
            for m in messages
        ]


def make_recipients(count: int, prefix: str = "user") -> list[EligibleRecipient]:
    return [
        EligibleRecipient(
            id=f"{prefix}-{i:04d}",
            delivery_address=f"{prefix}{i}@mealmail.io",
            name=f"User {i}",
            payload={"meals": {"monday": {"breakfast": "Poha"}}, "meal_settings": {}},
        )
        for i in range(count)
    ]


def make_messages(count: int) -> list[OutboundMessage]:
    return [
        OutboundMessage(
            recipient_id=f"user-{i:04d}",
            to=f"user{i}@mealmail.io",
            subject="Your Weekly Meal Plan",
            html_body="<p>plan</p>",
            text_body="plan",
        )
        for i in range(count)
    ]
