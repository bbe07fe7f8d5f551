"""
AgroMatch CLI entrypoint.

This CLI is intended for quick local inspection of a request snapshot (a JSON export of
the request store) without any UI. It delegates all logic to `agromatch.matching`.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from agromatch.config.overrides import apply_settings_overrides
from agromatch.config.settings import get_settings
from agromatch.core.errors import AgroMatchError
from agromatch.core.logging import configure_logging
from agromatch.domain.models import NecessityRequest, RequestStatus
from agromatch.matching.clusters import compute_clusters
from agromatch.matching.ranking import rank_by_distance, rank_clusters_by_distance
from agromatch.storage.loader import load_requests
from agromatch.storage.memory import InMemoryRequestStore


def _active_requests(args: argparse.Namespace) -> list[NecessityRequest]:
    path = args.requests or get_settings().data.requests_path
    store = InMemoryRequestStore.from_requests(load_requests(path))
    return store.find_all_active()


def _parse_overrides(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"--override must be a JSON object: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("--override must be a JSON object")
    return data


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _cmd_clusters(args: argparse.Namespace) -> int:
    settings = apply_settings_overrides(get_settings(), _parse_overrides(args.override))
    clusters = compute_clusters(_active_requests(args), settings=settings.clustering)

    if args.json:
        _print_json([c.model_dump(mode="json") for c in clusters])
        return 0

    if not clusters:
        print("No demand clusters.")
        return 0
    for i, c in enumerate(clusters, start=1):
        lat, lng = c.center.as_pair()
        print(
            f"{i:>2}. [{c.priority.value}] {c.item}: {c.total_demand:g} {c.unit} "
            f"from {c.member_count} requests around ({lat:.4f}, {lng:.4f})"
        )
    return 0


def _cmd_rank(args: argparse.Namespace) -> int:
    settings = get_settings()
    limit = args.limit if args.limit is not None else settings.ranking.default_limit
    # Farmers can only take requests that are still pending.
    pending = [r for r in _active_requests(args) if r.status == RequestStatus.PENDING]
    ranked = rank_by_distance(
        pending,
        (args.lat, args.lng),
        max_distance_km=args.max_distance_km,
        limit=limit,
    )

    if args.json:
        _print_json([rr.model_dump(mode="json") for rr in ranked])
        return 0

    for i, rr in enumerate(ranked, start=1):
        r = rr.request
        items = ", ".join(f"{it.quantity:g} {it.unit} {it.name}" for it in r.items)
        print(f"{i:>2}. {rr.distance_km:7.2f} km  {r.location.name} [{r.urgency.value}/{r.status.value}]  {items}")
    return 0


def _cmd_nearby_clusters(args: argparse.Namespace) -> int:
    settings = get_settings()
    clusters = compute_clusters(_active_requests(args), settings=settings.clustering)
    nearby = rank_clusters_by_distance(
        clusters,
        (args.lat, args.lng),
        max_distance_km=args.radius_km,
        settings=settings.ranking,
    )

    if args.json:
        _print_json([c.model_dump(mode="json") for c in nearby])
        return 0

    if not nearby:
        print("No priority demands in your area.")
        return 0
    for i, c in enumerate(nearby, start=1):
        print(
            f"{i:>2}. {c.item}: {c.total_demand:g} {c.unit}, {c.member_count} locations, "
            f"{c.distance_km:.1f} km away [{c.priority.value}]"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the AgroMatch CLI."""
    parser = argparse.ArgumentParser(prog="agromatch")
    parser.add_argument("--log-level", default=None, help="Override AGROMATCH_LOG_LEVEL for this run")
    sub = parser.add_subparsers(dest="command", required=True)

    def _snapshot_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--requests",
            default=None,
            help="Request snapshot JSON (defaults to data.requests_path from settings)",
        )
        p.add_argument("--json", action="store_true", help="Output machine-readable JSON")

    cl = sub.add_parser("clusters", help="Compute same-item demand clusters.")
    _snapshot_args(cl)
    cl.add_argument(
        "--override",
        default=None,
        help='JSON settings overrides, e.g. \'{"clustering": {"radius_km": 5}}\'',
    )
    cl.set_defaults(func=_cmd_clusters)

    rk = sub.add_parser("rank", help="Rank pending requests by distance from a location.")
    _snapshot_args(rk)
    rk.add_argument("--lat", required=True, type=float)
    rk.add_argument("--lng", required=True, type=float)
    rk.add_argument("--max-distance-km", type=float, default=None)
    rk.add_argument("--limit", type=int, default=None)
    rk.set_defaults(func=_cmd_rank)

    nb = sub.add_parser("nearby-clusters", help="Clusters whose center is near a location.")
    _snapshot_args(nb)
    nb.add_argument("--lat", required=True, type=float)
    nb.add_argument("--lng", required=True, type=float)
    nb.add_argument("--radius-km", type=float, default=None, help="Defaults to ranking.nearby_radius_km")
    nb.set_defaults(func=_cmd_nearby_clusters)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m agromatch.cli`."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    func: Any = getattr(args, "func")
    try:
        return int(func(args))
    except AgroMatchError as e:
        print(f"error [{e.code}]: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"error [VALIDATION_ERROR]: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
