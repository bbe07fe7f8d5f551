from __future__ import annotations

from typing import Any, Mapping

from agromatch.config.settings import Settings

"""
Per-call settings overrides (safe subset).

Dashboards and the CLI may tune clustering/ranking knobs for a single computation
(e.g. "show me 5 km clusters"). This module:
- validates the override payload against a whitelist,
- deep-merges the safe subset onto current settings,
- re-validates with Pydantic so types/ranges remain correct.

Paths and logging are never overridable per call.
"""

# A value of True allows any key under that subtree; a nested dict restricts it
# to the listed keys, recursively.
ALLOWED_SETTINGS_OVERRIDES_TREE: dict[str, Any] = {
    "clustering": True,
    "ranking": {
        "nearby_radius_km": True,
        "default_limit": True,
    },
    "messaging": {"max_text_length": True},
}


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    # New dict so the caller's `base` (often the cached settings dump) is never mutated.
    merged: dict[str, Any] = dict(base)
    for key, override_value in override.items():
        if isinstance(override_value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(dict(merged[key]), override_value)
            continue
        merged[key] = override_value
    return merged


def _filter_overrides(
    overrides: Mapping[str, Any],
    *,
    allowed_tree: Mapping[str, Any],
    path: tuple[str, ...] = (),
) -> dict[str, Any]:
    filtered: dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in allowed_tree:
            dotted_path = ".".join((*path, key))
            raise ValueError(f"settings_overrides contains a disallowed key: '{dotted_path}'")

        allowed = allowed_tree[key]
        if allowed is True:
            filtered[key] = value
            continue

        if not isinstance(value, Mapping):
            dotted_path = ".".join((*path, key))
            raise ValueError(f"settings_overrides key '{dotted_path}' must be a mapping")

        filtered[key] = _filter_overrides(value, allowed_tree=allowed, path=(*path, key))
    return filtered


def apply_settings_overrides(settings: Settings, overrides: Mapping[str, Any] | None) -> Settings:
    """Return `settings` with a whitelisted override payload merged in (re-validated)."""
    if not overrides:
        return settings

    safe_overrides = _filter_overrides(overrides, allowed_tree=ALLOWED_SETTINGS_OVERRIDES_TREE)
    merged_payload = _deep_merge(settings.model_dump(mode="python"), safe_overrides)
    return Settings.model_validate(merged_payload)
