"""
Request snapshot loader.

A snapshot is a local JSON array of stored necessity requests (default:
`data/requests.sample.json`), e.g. an export from the primary store. We validate it
into typed Pydantic models so the clustering/ranking code can assume a consistent shape.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from agromatch.core.env import resolve_project_path
from agromatch.core.errors import ValidationError
from agromatch.domain.models import NecessityRequest


_REQUESTS_ADAPTER = TypeAdapter(list[NecessityRequest])


def load_requests(path: str | Path) -> list[NecessityRequest]:
    """Load and validate a request snapshot JSON file."""
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    try:
        return _REQUESTS_ADAPTER.validate_python(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid request snapshot {resolved}: {e}") from e
