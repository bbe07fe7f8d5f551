"""
Error taxonomy for the matching core.

Every error raised on purpose by AgroMatch derives from `AgroMatchError`, so callers
(an HTTP layer, the CLI, a worker) can map the whole family in one place:

- `ValidationError`: malformed input (coordinates, empty items/text, party mismatch)
- `NotFoundError`: unknown request id
- `ConflictError`: the stored status changed under us (someone else acted first)
- `InvalidStateError`: the requested transition is not defined from the current state
- `UnauthorizedError`: the actor is not allowed to perform the transition

The core never retries a `ConflictError`; it is surfaced so the caller can re-fetch.
"""

from __future__ import annotations


class AgroMatchError(Exception):
    """Base class for all domain errors."""

    code = "AGROMATCH_ERROR"


class ValidationError(AgroMatchError, ValueError):
    code = "VALIDATION_ERROR"


class NotFoundError(AgroMatchError, LookupError):
    code = "NOT_FOUND"


class ConflictError(AgroMatchError):
    code = "CONFLICT"


class InvalidStateError(ConflictError):
    code = "INVALID_STATE"


class UnauthorizedError(AgroMatchError, PermissionError):
    code = "UNAUTHORIZED"
