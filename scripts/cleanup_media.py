"""Cron entry point for purging soft-deleted product images."""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass
from datetime import datetime

from src.storefront.catalog.product_repository import ProductRepository
from src.storefront.catalog.registry import AssetRegistry
from src.storefront.config import load_config
from src.storefront.logging import configure_logging
from src.storefront.media.media_cleanup import DeferredDeletionJob
from src.storefront.media.storage import build_storage
from src.storefront.utils.clock import utcnow


@dataclass(slots=True)
class CleanupSummary:
    purged: int
    failed: int
    products_examined: int
    dry_run: bool


def perform_cleanup(*, dry_run: bool, reference_time: datetime | None = None) -> CleanupSummary:
    """Execute one purge pass and return summary counters."""
    config = load_config()
    registry = AssetRegistry(repo=ProductRepository(config.session_factory))
    job = DeferredDeletionJob(
        registry=registry,
        storage=build_storage(config.storage),
        grace_hours=config.cleanup.grace_hours,
        batch_limit=config.cleanup.batch_limit,
    )

    now = reference_time or utcnow()

    if dry_run:
        eligible = job.preview(now)
        return CleanupSummary(
            purged=len(eligible),
            failed=0,
            products_examined=len({product_id for product_id, _ in eligible}),
            dry_run=True,
        )

    report = asyncio.run(job.run_once(now=now))
    return CleanupSummary(
        purged=report.purged_count,
        failed=report.assets_failed + report.products_failed,
        products_examined=report.products_examined,
        dry_run=False,
    )


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Purge product images soft-deleted past the grace period.")
    parser.add_argument("--dry-run", action="store_true", help="Only report eligible images without deleting.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or [])
    configure_logging()
    try:
        summary = perform_cleanup(dry_run=args.dry_run)
    except Exception as exc:
        print(f"cleanup failed: {exc}", file=sys.stderr)
        return 2

    if summary.dry_run:
        print(
            f"cleanup dry-run, eligible={summary.purged}, products={summary.products_examined}",
            file=sys.stdout,
        )
    else:
        print(
            f"cleanup done, purged={summary.purged}, failed={summary.failed}, "
            f"products={summary.products_examined}",
            file=sys.stdout,
        )
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
