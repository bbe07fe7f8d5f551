"""
In-memory request/message stores.

Thread-safe doubles for the persistence ports: every read and write happens under one
lock per store, which is what makes `compare_and_set_status` atomic here. Records are
handed out as deep copies so callers can never mutate stored state.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Iterable, Mapping

from agromatch.core.errors import ConflictError, NotFoundError
from agromatch.domain.models import (
    Message,
    NecessityRequest,
    NecessityRequestDraft,
    RequestStatus,
    SenderType,
)
from agromatch.storage.base import TRANSITION_FIELDS, WRITE_ONCE_FIELDS

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


class InMemoryRequestStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._requests: dict[str, NecessityRequest] = {}

    @classmethod
    def from_requests(cls, requests: Iterable[NecessityRequest]) -> "InMemoryRequestStore":
        """Seed a store with already-materialized records (e.g. loaded from JSON)."""
        store = cls()
        for r in requests:
            store._requests[r.id] = r.model_copy(deep=True)
        return store

    def create(self, draft: NecessityRequestDraft, *, created_at: datetime) -> NecessityRequest:
        record = NecessityRequest.model_validate(
            {
                **draft.model_dump(mode="python"),
                "id": _new_id(),
                "status": RequestStatus.PENDING,
                "created_at": created_at,
            }
        )
        with self._lock:
            self._requests[record.id] = record
        return record.model_copy(deep=True)

    def find_by_id(self, request_id: str) -> NecessityRequest | None:
        with self._lock:
            found = self._requests.get(request_id)
            return found.model_copy(deep=True) if found else None

    def _select(self, predicate) -> list[NecessityRequest]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._requests.values() if predicate(r)]

    def find_by_consumer(self, consumer_id: str) -> list[NecessityRequest]:
        return self._select(lambda r: r.consumer_id == consumer_id)

    def find_by_accepted_by(
        self, actor_id: str, statuses: Iterable[RequestStatus]
    ) -> list[NecessityRequest]:
        wanted = set(statuses)
        return self._select(lambda r: r.accepted_by == actor_id and r.status in wanted)

    def find_all_active(self) -> list[NecessityRequest]:
        return self._select(lambda r: r.status != RequestStatus.REJECTED)

    def find_all(self) -> list[NecessityRequest]:
        return self._select(lambda r: True)

    def compare_and_set_status(
        self,
        request_id: str,
        expected_status: RequestStatus,
        new_fields: Mapping[str, Any],
    ) -> NecessityRequest | None:
        unknown = set(new_fields) - TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"compare_and_set_status cannot write fields: {sorted(unknown)}")

        with self._lock:
            current = self._requests.get(request_id)
            if current is None:
                raise NotFoundError(f"Request {request_id} not found")
            if current.status != expected_status:
                logger.debug(
                    "CAS mismatch on %s: expected=%s observed=%s",
                    request_id,
                    expected_status.value,
                    current.status.value,
                )
                return None
            for key in WRITE_ONCE_FIELDS & set(new_fields):
                previous = getattr(current, key)
                if previous is not None and new_fields[key] != previous:
                    raise ConflictError(
                        f"Request {request_id} already has {key}={previous!r}; it cannot be rewritten"
                    )
            updated = NecessityRequest.model_validate(
                {**current.model_dump(mode="python"), **dict(new_fields)}
            )
            self._requests[request_id] = updated
            return updated.model_copy(deep=True)


class InMemoryMessageStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._threads: dict[str, list[Message]] = {}

    def append(
        self,
        *,
        request_id: str,
        sender_id: str,
        receiver_id: str,
        sender_type: SenderType,
        text: str,
        created_at: datetime,
    ) -> Message:
        message = Message(
            id=_new_id(),
            request_id=request_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            sender_type=sender_type,
            text=text,
            created_at=created_at,
        )
        with self._lock:
            self._threads.setdefault(request_id, []).append(message)
        return message.model_copy()

    def find_by_request(self, request_id: str) -> list[Message]:
        with self._lock:
            return [m.model_copy() for m in self._threads.get(request_id, [])]

    def mark_read_batch(self, request_id: str, receiver_id: str) -> int:
        changed = 0
        with self._lock:
            thread = self._threads.get(request_id, [])
            for i, m in enumerate(thread):
                if m.receiver_id == receiver_id and not m.read:
                    thread[i] = m.model_copy(update={"read": True})
                    changed += 1
        return changed
