#!/usr/bin/env python3
"""
Media Ledger one-off retention sweep.

Purges every asset whose expiry is at or before the cutoff, exactly as the
scheduled sweep does. Useful after an outage or when SWEEP_ENABLED=false.

Usage:
    # Sweep everything expired as of now
    python3 scripts/run_sweep.py

    # Show what would be purged without touching storage or the database
    python3 scripts/run_sweep.py --dry-run

    # Sweep as of a specific instant
    python3 scripts/run_sweep.py --cutoff 2026-10-01T00:00:00+00:00
"""

import argparse
import asyncio
import sys
from datetime import UTC, datetime

from sqlalchemy import select

from medialedger.config import settings
from medialedger.db.models import MediaAsset
from medialedger.db.session import create_engine, create_session_factory
from medialedger.observability import get_logger, setup_logging
from medialedger.services.container import build_services
from medialedger.services.retention import asset_to_domain

setup_logging()
logger = get_logger("run_sweep")


def parse_cutoff(value: str) -> datetime:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    cutoff = datetime.fromisoformat(value)
    if cutoff.tzinfo is None:
        cutoff = cutoff.replace(tzinfo=UTC)
    return cutoff


async def run(cutoff: datetime, dry_run: bool) -> int:
    engine = create_engine(settings)
    services = build_services(settings, create_session_factory(engine))
    try:
        if dry_run:
            async with services.store.read_session() as session:
                stmt = (
                    select(MediaAsset)
                    .where(MediaAsset.expires_at <= cutoff)
                    .order_by(MediaAsset.expires_at)
                )
                assets = [asset_to_domain(a) for a in (await session.execute(stmt)).scalars()]
            for asset in assets:
                print(
                    f"{asset.asset_id}  {asset.content_type.value:5}  "
                    f"expired {asset.expires_at.isoformat()}  {asset.blob_key}"
                )
            print(f"{len(assets)} asset(s) would be purged")
            return 0

        result = await services.retention.sweep(cutoff)
        print(
            f"run {result.run_id}: scanned={result.scanned_count} "
            f"deleted={result.deleted_count} errors={result.error_count}"
        )
        return 1 if result.error_count else 0
    finally:
        aclose = getattr(services.retention.storage, "aclose", None)
        if aclose is not None:
            await aclose()
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the media retention sweep once")
    parser.add_argument(
        "--cutoff",
        type=parse_cutoff,
        default=None,
        help="Purge assets expiring at or before this ISO timestamp (default: now)",
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="List expired assets without deleting them"
    )
    args = parser.parse_args()

    cutoff = args.cutoff or datetime.now(UTC)
    logger.info("manual_sweep_starting", cutoff=cutoff.isoformat(), dry_run=args.dry_run)
    sys.exit(asyncio.run(run(cutoff, args.dry_run)))


if __name__ == "__main__":
    main()
