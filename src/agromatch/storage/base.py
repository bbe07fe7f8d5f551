"""
Persistence ports consumed by the matching core.

The core never talks to a database directly; it is handed objects that satisfy these
protocols. `agromatch.storage.memory` provides in-process implementations used by the
CLI and the tests; a real deployment would back them with its primary store.

The only primitive with a concurrency contract is `compare_and_set_status`: it must
apply `new_fields` atomically *only if* the stored status still equals
`expected_status`, and report a mismatch instead of overwriting.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping, Protocol

from agromatch.domain.models import (
    Message,
    NecessityRequest,
    NecessityRequestDraft,
    RequestStatus,
    SenderType,
)

# Fields a status transition may write; everything else on a request is immutable.
TRANSITION_FIELDS = frozenset({"status", "accepted_by", "delivery_time"})

# Set once on acceptance; later transitions may repeat the value but never change it.
WRITE_ONCE_FIELDS = frozenset({"accepted_by", "delivery_time"})


class RequestStore(Protocol):
    def create(self, draft: NecessityRequestDraft, *, created_at: datetime) -> NecessityRequest:
        """Persist a new pending request and assign its id."""
        ...

    def find_by_id(self, request_id: str) -> NecessityRequest | None: ...

    def find_by_consumer(self, consumer_id: str) -> list[NecessityRequest]: ...

    def find_by_accepted_by(
        self, actor_id: str, statuses: Iterable[RequestStatus]
    ) -> list[NecessityRequest]: ...

    def find_all_active(self) -> list[NecessityRequest]:
        """All requests whose status is not `rejected`."""
        ...

    def find_all(self) -> list[NecessityRequest]: ...

    def compare_and_set_status(
        self,
        request_id: str,
        expected_status: RequestStatus,
        new_fields: Mapping[str, Any],
    ) -> NecessityRequest | None:
        """Atomically apply `new_fields` if the current status is `expected_status`.

        Returns the updated request, or None when the observed status differs.
        Raises `NotFoundError` for an unknown id and `ConflictError` when `new_fields`
        would change an already-set write-once field.
        """
        ...


class MessageStore(Protocol):
    def append(
        self,
        *,
        request_id: str,
        sender_id: str,
        receiver_id: str,
        sender_type: SenderType,
        text: str,
        created_at: datetime,
    ) -> Message: ...

    def find_by_request(self, request_id: str) -> list[Message]:
        """Messages of one thread in insertion order."""
        ...

    def mark_read_batch(self, request_id: str, receiver_id: str) -> int:
        """Flip `read` on unread messages addressed to `receiver_id`; return how many changed."""
        ...
