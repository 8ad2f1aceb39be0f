import argparse
import sys
from typing import List, Optional

from dmmcache.api.dependencies import AppComponents, build_components
from dmmcache.core.database import setup_database, teardown_database
from dmmcache.core.exceptions import DmmCacheError
from dmmcache.core.logger import logger
from dmmcache.core.models import settings
from dmmcache.utils.media_ids import (MAX_MIN_SIZE_GB, MAX_PAGE, MediaKey,
                                      parse_optional_int)


async def stats_command(components: AppComponents):
    store = components.store

    print("\nAvailability Store")
    print("-" * 40)
    print(f"{'Content keys':<25} {await store.size():>10,}")
    print(f"{'Processing markers':<25} {await store.processing_count():>10,}")
    print(f"{'Requested markers':<25} {await store.requested_count():>10,}")
    print("-" * 40)


async def lookup_command(
    components: AppComponents, key: str, trusted: bool, min_size: int, page: int
):
    media_key = str(MediaKey.parse(key))
    min_size = parse_optional_int(min_size, "minSize", MAX_MIN_SIZE_GB)
    page = parse_optional_int(page, "page", MAX_PAGE)
    store = components.store

    if trusted:
        records = await store.get_completed(media_key, min_size, page)
    else:
        records = await store.get_general(media_key, min_size, page)

    tier = "trusted" if trusted else "general"
    print(f"\n{media_key} ({tier}, page {page}): {len(records)} results")
    print("=" * 100)
    for record in records:
        size_gb = record.size / 1024**3
        print(
            f"{record.hash:<42} {size_gb:>8.2f}GB {len(record.files):>5} files  {record.title or ''}"
        )


async def request_command(components: AppComponents, key: str):
    media_key = MediaKey.parse(key)
    await components.store.save(media_key.requested_key, [])
    print(f"Marked {media_key} as requested ({media_key.requested_key})")


async def check_command(components: AppComponents, hashes: List[str]):
    matches = await components.gateway.check_hashes(hashes)

    print(f"\n{len(matches)}/{len(hashes)} hashes available")
    for match in matches:
        print(f"  {match.hash}  {len(match.files)} files  {match.size:,} bytes")


def problem_command(components: AppComponents):
    problem_key, solution = components.authenticator.generate_problem()
    print(f"dmmProblemKey={problem_key}")
    print(f"solution={solution}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="DMM Cache Availability Store Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show store counters
  python -m dmmcache stats

  # Show the first page of trusted results for a movie
  python -m dmmcache lookup movie:tt1877830 --trusted

  # Queue a season for scraping
  python -m dmmcache request tv:tt0944947:1

  # Check hashes against the store
  python -m dmmcache check 0123456789abcdef0123456789abcdef01234567
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("stats", help="Show content, processing and requested counts")

    lookup_parser = subparsers.add_parser("lookup", help="Show cached results for a key")
    lookup_parser.add_argument("key", help="movie:<imdbId> or tv:<imdbId>:<season>")
    lookup_parser.add_argument(
        "--trusted", action="store_true", help="Read the trusted tier"
    )
    lookup_parser.add_argument(
        "--min-size", type=int, default=0, help="Minimum size in GB"
    )
    lookup_parser.add_argument("--page", type=int, default=0, help="Page number")

    request_parser = subparsers.add_parser("request", help="Write a requested marker")
    request_parser.add_argument("key", help="movie:<imdbId> or tv:<imdbId>:<season>")

    check_parser = subparsers.add_parser("check", help="Check info hashes")
    check_parser.add_argument("hashes", nargs="+", help="40 character info hashes")

    subparsers.add_parser(
        "problem", help="Print a problem key and solution for the configured salt"
    )

    return parser


async def main(argv: Optional[List[str]] = None, components: Optional[AppComponents] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    components = components or build_components(settings)

    if args.command == "problem":
        problem_command(components)
        return

    try:
        await setup_database(components.database, components.settings)

        if args.command == "stats":
            await stats_command(components)

        elif args.command == "lookup":
            await lookup_command(
                components, args.key, args.trusted, args.min_size, args.page
            )

        elif args.command == "request":
            await request_command(components, args.key)

        elif args.command == "check":
            await check_command(components, args.hashes)

    except DmmCacheError as e:
        print(f"Error: {e.display_message}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}")
        logger.exception("CLI command failed")
        sys.exit(1)
    finally:
        await teardown_database(components.database)
