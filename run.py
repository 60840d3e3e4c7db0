"""CLI entrypoint."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv as _load_dotenv

from discovery import config
from discovery.adapter import MAIN_CATEGORIES
from discovery.business_client import AsyncBusinessSource, BusinessClient
from discovery.geo import StaticLocationProvider
from discovery.http import DiscoveryError, HttpClient, RequestMetrics
from discovery.models import FilterCriteria
from discovery.pipeline import discover
from discovery.reporting import (
    ensure_dir,
    render_results,
    render_summary,
    write_results_csv,
    write_results_json,
)


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Optionally load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    _load_dotenv(dotenv_path=env_path, override=False)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Discover and rank nearby businesses")
    parser.add_argument("--query", type=str, default="", help="Free-text search")
    parser.add_argument(
        "--category",
        action="append",
        default=[],
        help="Category label to include (repeatable; any match)",
    )
    parser.add_argument("--min-rating", type=float, default=0.0)
    parser.add_argument(
        "--max-distance",
        type=str,
        default=config.DISTANCE_ALL,
        help=f"Distance ceiling in km, or '{config.DISTANCE_ALL}'",
    )
    parser.add_argument(
        "--price",
        action="append",
        default=[],
        help="Price tier as symbols, e.g. $$ (repeatable; any match)",
    )
    parser.add_argument("--open-now", action="store_true")
    parser.add_argument(
        "--feature",
        action="append",
        default=[],
        help="Required feature (repeatable; all must match)",
    )
    parser.add_argument(
        "--main-category",
        type=str,
        default=config.MAIN_CATEGORY_ALL,
        choices=[config.MAIN_CATEGORY_ALL, *MAIN_CATEGORIES],
        help="Top-level category group",
    )
    parser.add_argument(
        "--sort",
        type=str,
        default=config.SORT_FEATURED,
        choices=list(config.SORT_MODES),
        help=f"Result order (default: {config.SORT_FEATURED}, verified first then rating)",
    )
    parser.add_argument("--lat", type=float, default=None, help="User latitude")
    parser.add_argument("--lng", type=float, default=None, help="User longitude")
    parser.add_argument("--accuracy", type=float, default=None, help="Location accuracy in meters")
    parser.add_argument("--api-url", type=str, default=None)
    parser.add_argument("--config", type=str, default=None, help="Path to discovery_config.json")
    parser.add_argument("--out", type=str, default=None, help="Write results.json/results.csv here")
    parser.add_argument("--limit", type=int, default=20, help="Rows to print (default: 20)")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def criteria_from_args(args: argparse.Namespace) -> FilterCriteria:
    return FilterCriteria(
        query=args.query or "",
        categories=frozenset(c for c in args.category if c),
        min_rating=max(0.0, args.min_rating or 0.0),
        max_distance=args.max_distance or config.DISTANCE_ALL,
        price_tiers=frozenset(p for p in args.price if p),
        open_now=bool(args.open_now),
        features=frozenset(f for f in args.feature if f),
        main_category=args.main_category or config.MAIN_CATEGORY_ALL,
        sort_by=args.sort or config.SORT_FEATURED,
    )


def main(argv: Optional[List[str]] = None) -> int:
    load_env()
    args = parse_args(argv)
    config.load_discovery_config(args.config)
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    api_url = args.api_url or os.environ.get("DISCOVERY_API_URL") or config.API_URL
    location = None
    if args.lat is not None and args.lng is not None:
        location = StaticLocationProvider(args.lat, args.lng, accuracy=args.accuracy).current_location()
        logging.getLogger(__name__).debug(
            "Using location %.5f,%.5f (accuracy=%s)", location.lat, location.lng, location.accuracy
        )

    metrics = RequestMetrics()
    http_client = HttpClient(
        timeout=config.HTTP_TIMEOUT_SECONDS,
        retry_max=config.HTTP_RETRY_MAX,
        backoff_base=config.HTTP_BACKOFF_BASE,
        backoff_max=config.HTTP_BACKOFF_MAX,
        metrics=metrics,
    )
    source = AsyncBusinessSource(BusinessClient(http_client, api_url=api_url))

    try:
        result = discover(source, criteria_from_args(args), origin=location)
        if args.out:
            ensure_dir(args.out)
            write_results_json(os.path.join(args.out, "results.json"), result.entities)
            write_results_csv(os.path.join(args.out, "results.csv"), result.entities)
    except (DiscoveryError, OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        http_client.close()

    if result.state.error:
        print(f"Error: {result.state.error}", file=sys.stderr)
        return 1

    for line in render_summary(result.total, len(result.entities), result.rejection_counts):
        print(line)
    for line in render_results(result.entities[: max(0, args.limit)]):
        print(line)
    logging.getLogger(__name__).info(
        "HTTP requests=%s retries=%s failures=%s",
        metrics.network_requests,
        metrics.retries,
        metrics.failures,
    )
    if args.out:
        print(f"Done. Results written to {args.out}/results.json and {args.out}/results.csv")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
