"""Sync every post of a TikTok profile into the database.

Usage (from backend/ directory):
    python scripts/sync_profile.py --handle <handle> [--force-recache] [--max-pages N]
    python scripts/sync_profile.py --retry-failed

Prerequisites:
    - DB is running and migrated (alembic upgrade head)
    - SCRAPECREATORS_API_KEY and the S3_* storage keys are set in .env
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Windows: asyncpg requires SelectorEventLoop
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Allow imports from backend/tiktok_ingest/
sys.path.insert(0, str(Path(__file__).parent.parent))

from tiktok_ingest.config import settings
from tiktok_ingest.errors import IngestError
from tiktok_ingest.observability import init_sentry, setup_logging
from tiktok_ingest.runtime import ingest_runtime
from tiktok_ingest.services.profile_sync_service import sync_profile


async def run_sync(handle: str, force_recache: bool, max_pages: int | None) -> None:
    async with ingest_runtime(settings) as runtime:
        result = await sync_profile(
            runtime.scraping,
            runtime.reconciler,
            handle,
            force_recache=force_recache,
            max_pages=max_pages,
        )

    print()
    print("─" * 60)
    print(f"Synced @{result.handle}")
    print(f"  profile_id     = {result.profile_id}")
    print(f"  pages scraped  = {result.pages_scraped}")
    print(f"  posts scraped  = {result.posts_scraped}")
    print(f"  posts created  = {result.posts_created}")
    print(f"  posts updated  = {result.posts_updated}")
    if result.duplicates_skipped:
        print(f"  duplicates     = {result.duplicates_skipped}")
    print("─" * 60)


async def run_retry() -> None:
    async with ingest_runtime(settings) as runtime:
        retried = await runtime.assets.retry_failed()
        stats = await runtime.assets.get_stats()
    print(f"Retried {retried} failed assets")
    print(f"  cache assets: {stats}")


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--handle", help="TikTok handle, with or without @")
    parser.add_argument("--force-recache", action="store_true", default=False)
    parser.add_argument("--max-pages", type=int, default=None)
    parser.add_argument("--retry-failed", action="store_true", default=False,
                        help="re-fetch FAILED cache assets instead of syncing")
    args = parser.parse_args()

    if not args.retry_failed and not args.handle:
        parser.error("--handle is required unless --retry-failed is given")

    setup_logging(settings.LOG_LEVEL)
    init_sentry(settings)

    try:
        if args.retry_failed:
            asyncio.run(run_retry())
        else:
            asyncio.run(run_sync(args.handle, args.force_recache, args.max_pages))
    except IngestError as exc:
        print(f"ERROR ({exc.kind.value}): {exc.message}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
