"""
Request lifecycle: submission, the status state machine, and the listing queries.

States: pending -> accepted -> fulfilled, or pending -> rejected.

| action  | from     | to        | who may act                     |
|---------|----------|-----------|---------------------------------|
| accept  | pending  | accepted  | any farmer                      |
| reject  | pending  | rejected  | any farmer                      |
| fulfill | accepted | fulfilled | only the farmer who accepted it |

Every transition is written with the store's `compare_and_set_status`, keyed on the
status the transition starts from. If another caller changed the status between our
read and our write, the store reports a mismatch and we raise `ConflictError` instead
of overwriting, which gives "exactly one farmer wins" under concurrent accepts.
A transition not defined from the current status raises `InvalidStateError` (itself a
`ConflictError`, so "already taken" callers can catch one type).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping

from pydantic import ValidationError as PydanticValidationError

from agromatch.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from agromatch.core.geo import validate_coordinates
from agromatch.core.time import now_utc
from agromatch.domain.models import (
    COMMITTED_STATUSES,
    NecessityRequest,
    NecessityRequestDraft,
    RequestStatus,
)
from agromatch.storage.base import RequestStore

logger = logging.getLogger(__name__)


class Action(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    FULFILL = "fulfill"


@dataclass(frozen=True)
class Transition:
    source: RequestStatus
    target: RequestStatus
    owner_only: bool = False


TRANSITIONS: dict[Action, Transition] = {
    Action.ACCEPT: Transition(RequestStatus.PENDING, RequestStatus.ACCEPTED),
    Action.REJECT: Transition(RequestStatus.PENDING, RequestStatus.REJECTED),
    Action.FULFILL: Transition(RequestStatus.ACCEPTED, RequestStatus.FULFILLED, owner_only=True),
}


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string")
    return value.strip()


def _newest_first(requests: list[NecessityRequest]) -> list[NecessityRequest]:
    return sorted(requests, key=lambda r: (r.created_at, r.id), reverse=True)


class LifecycleController:
    """Owns every status change of a necessity request."""

    def __init__(self, store: RequestStore, *, clock: Callable[[], datetime] = now_utc):
        self._store = store
        self._clock = clock

    def submit(self, payload: NecessityRequestDraft | Mapping[str, Any]) -> NecessityRequest:
        """Create a pending request from a creation payload.

        The payload has usually been validated upstream already; it is checked again here
        (non-empty items, positive quantities, coordinate ranges) and rejected with
        `ValidationError` if malformed.
        """
        try:
            draft = NecessityRequestDraft.model_validate(
                payload.model_dump(mode="python") if isinstance(payload, NecessityRequestDraft) else payload
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid necessity request: {e}") from e
        validate_coordinates(draft.location.coordinates.lat, draft.location.coordinates.lng)

        created = self._store.create(draft, created_at=self._clock())
        logger.info(
            "Request %s submitted by consumer %s (%d items, urgency=%s)",
            created.id,
            created.consumer_id,
            len(created.items),
            created.urgency.value,
        )
        return created

    def get(self, request_id: str) -> NecessityRequest:
        found = self._store.find_by_id(request_id)
        if found is None:
            raise NotFoundError(f"Request {request_id} not found")
        return found

    def list_all(self) -> list[NecessityRequest]:
        return _newest_first(self._store.find_all())

    def list_active(self) -> list[NecessityRequest]:
        return _newest_first(self._store.find_all_active())

    def list_for_consumer(self, consumer_id: str) -> list[NecessityRequest]:
        return _newest_first(self._store.find_by_consumer(consumer_id))

    def list_accepted_by(self, actor_id: str) -> list[NecessityRequest]:
        """Snapshot of the requests a farmer has committed to (accepted or fulfilled)."""
        return _newest_first(self._store.find_by_accepted_by(actor_id, COMMITTED_STATUSES))

    def allowed_actions(self, request: NecessityRequest, actor_id: str) -> list[Action]:
        """Actions `actor_id` may attempt on `request` right now."""
        return [
            action
            for action, t in TRANSITIONS.items()
            if request.status == t.source and (not t.owner_only or request.accepted_by == actor_id)
        ]

    def accept(self, request_id: str, actor_id: str, delivery_time: str) -> NecessityRequest:
        actor = _require_text(actor_id, "actor_id")
        delivery = _require_text(delivery_time, "delivery_time")
        return self._apply(
            request_id,
            Action.ACCEPT,
            actor,
            {"accepted_by": actor, "delivery_time": delivery},
        )

    def reject(self, request_id: str, actor_id: str) -> NecessityRequest:
        return self._apply(request_id, Action.REJECT, _require_text(actor_id, "actor_id"))

    def fulfill(self, request_id: str, actor_id: str) -> NecessityRequest:
        return self._apply(request_id, Action.FULFILL, _require_text(actor_id, "actor_id"))

    def _apply(
        self,
        request_id: str,
        action: Action,
        actor: str,
        extra_fields: Mapping[str, Any] | None = None,
    ) -> NecessityRequest:
        t = TRANSITIONS[action]
        current = self.get(request_id)

        if current.status != t.source:
            raise InvalidStateError(
                f"Cannot {action.value} request {request_id}: status is {current.status.value}, "
                f"expected {t.source.value}"
            )
        if t.owner_only and current.accepted_by != actor:
            raise UnauthorizedError(
                f"Only the accepting farmer may {action.value} request {request_id}"
            )

        fields: dict[str, Any] = {"status": t.target, **(extra_fields or {})}
        updated = self._store.compare_and_set_status(request_id, t.source, fields)
        if updated is None:
            logger.warning(
                "Lost %s race on request %s (actor=%s); status changed concurrently",
                action.value,
                request_id,
                actor,
            )
            raise ConflictError(f"Request {request_id} is no longer {t.source.value}")

        logger.info(
            "Request %s %s -> %s by %s",
            request_id,
            t.source.value,
            t.target.value,
            actor,
        )
        return updated
