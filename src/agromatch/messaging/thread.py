"""
Per-request conversation threads.

A thread connects the two parties of a request: the consumer who submitted it and the
farmer who accepted it. Messages are append-only; only the `read` flag ever changes.

Authentication happens upstream, but the sender pairing is still checked here:
`sender_type=consumer` must be the request's consumer and `sender_type=farmer` must be
the accepting farmer. A request without an accepting farmer has no counterpart yet, so
it cannot carry messages.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from agromatch.config.settings import MessagingSettings, get_settings
from agromatch.core.errors import NotFoundError, ValidationError
from agromatch.core.time import now_utc
from agromatch.domain.models import Message, NecessityRequest, SenderType
from agromatch.storage.base import MessageStore, RequestStore

logger = logging.getLogger(__name__)


def expected_sender(request: NecessityRequest, sender_type: SenderType) -> str | None:
    """The identity allowed to post as `sender_type` on `request` (None if nobody yet)."""
    if sender_type == SenderType.CONSUMER:
        return request.consumer_id
    if sender_type == SenderType.FARMER:
        return request.accepted_by
    raise ValidationError(f"Unknown sender_type {sender_type!r}")


def counterpart(request: NecessityRequest, sender_type: SenderType) -> str | None:
    """The receiver of a message sent as `sender_type`."""
    other = SenderType.FARMER if sender_type == SenderType.CONSUMER else SenderType.CONSUMER
    return expected_sender(request, other)


class MessageThread:
    def __init__(
        self,
        requests: RequestStore,
        messages: MessageStore,
        *,
        settings: MessagingSettings | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._requests = requests
        self._messages = messages
        self._settings = settings or get_settings().messaging
        self._clock = clock

    def _request(self, request_id: str) -> NecessityRequest:
        found = self._requests.find_by_id(request_id)
        if found is None:
            raise NotFoundError(f"Request {request_id} not found")
        return found

    def append_message(
        self,
        request_id: str,
        sender_id: str,
        sender_type: SenderType | str,
        text: str,
        *,
        receiver_id: str | None = None,
    ) -> Message:
        """Validate the sender pairing and append a message to the request's thread."""
        try:
            kind = SenderType(sender_type)
        except ValueError as e:
            raise ValidationError(f"Unknown sender_type {sender_type!r}") from e

        body = text.strip() if isinstance(text, str) else ""
        if not body:
            raise ValidationError("Message text must not be empty")
        if len(body) > self._settings.max_text_length:
            raise ValidationError(
                f"Message text exceeds {self._settings.max_text_length} characters"
            )

        request = self._request(request_id)
        if request.accepted_by is None:
            raise ValidationError(
                f"Request {request_id} has no accepting farmer yet; messages need both parties"
            )

        allowed = expected_sender(request, kind)
        if sender_id != allowed:
            raise ValidationError(
                f"sender {sender_id!r} is not the {kind.value} of request {request_id}"
            )

        receiver = counterpart(request, kind)
        if receiver_id is not None and receiver_id != receiver:
            raise ValidationError(
                f"receiver {receiver_id!r} is not the other party of request {request_id}"
            )

        message = self._messages.append(
            request_id=request_id,
            sender_id=sender_id,
            receiver_id=receiver,
            sender_type=kind,
            text=body,
            created_at=self._clock(),
        )
        logger.info("Message %s on request %s from %s %s", message.id, request_id, kind.value, sender_id)
        return message

    def list_messages(self, request_id: str) -> list[Message]:
        """Thread messages, oldest first (insertion order on equal timestamps)."""
        self._request(request_id)
        return sorted(self._messages.find_by_request(request_id), key=lambda m: m.created_at)

    def mark_read(self, request_id: str, receiver_id: str) -> int:
        """Mark every unread message addressed to `receiver_id` as read; return the count."""
        self._request(request_id)
        changed = self._messages.mark_read_batch(request_id, receiver_id)
        logger.debug("Marked %d messages read on request %s for %s", changed, request_id, receiver_id)
        return changed

    def unread_count(self, request_id: str, receiver_id: str) -> int:
        return sum(
            1 for m in self.list_messages(request_id) if m.receiver_id == receiver_id and not m.read
        )
