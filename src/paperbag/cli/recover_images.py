"""CLI command for releasing images orphaned in 'processing'.

Generation jobs run inside the API process, so a crash or redeploy leaves
their images in 'processing' with nothing left to finish them. This command
moves them back to 'pending' so users can request the transformation again.

Usage:
    python -m paperbag.cli [OPTIONS]

Examples:
    # Reset every image stuck in processing
    python -m paperbag.cli

    # Only count them (no database writes)
    python -m paperbag.cli --dry-run

    # Verbose logging
    python -m paperbag.cli -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from typing import Sequence

import structlog

from paperbag.core.config import Settings, configure_logging
from paperbag.core.database import setup_db_session
from paperbag.models.image import ImageStatus
from paperbag.uow import UowFactory, create_uow_factory
from paperbag.workers.cartoon_generation_worker import recover_orphaned_images

logger = structlog.get_logger()


def parse_args(argv: Sequence[str] | None = None) -> Namespace:
    """Options: --dry-run and -v/--verbose."""
    parser = ArgumentParser(
        description="Reset images stuck in 'processing' back to 'pending'",
        epilog="Run while the API is stopped, or right after a crash",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Count orphaned images without database writes",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log at DEBUG level",
    )

    return parser.parse_args(argv)


async def run_recovery(uow_factory: UowFactory, dry_run: bool = False) -> int:
    """Reset (or with `dry_run`, count) images in processing.

    Returns:
        Number of images found in processing
    """
    if dry_run:
        async with await uow_factory() as uow:
            return await uow.images.count_by_status(ImageStatus.PROCESSING)
    return await recover_orphaned_images(uow_factory)


async def async_main(argv: Sequence[str] | None = None) -> int:
    """Run the command and return its exit code.

    Returns:
        0 on success, 1 on failure, 130 when interrupted
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    logger.info("cli.started", dry_run=args.dry_run)

    uow_factory = create_uow_factory(setup_db_session(settings.database_url, settings.db_pool_size))

    try:
        count = await run_recovery(uow_factory, dry_run=args.dry_run)
        if args.dry_run and count:
            async with await uow_factory() as uow:
                stuck = await uow.images.get_by_status(ImageStatus.PROCESSING, limit=20)
        else:
            stuck = []
    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nInterrupted, some images may still be in processing", file=sys.stderr)
        return 130
    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nRecovery failed: {e}", file=sys.stderr)
        return 1

    print("\n" + "=" * 60)
    print("Image Recovery Summary")
    print("=" * 60)
    if args.dry_run:
        print(f"Images stuck in processing: {count}")
        for image in stuck:
            print(f"  - {image.id} (user {image.user_id}, style {image.style})")
        if count > len(stuck):
            print(f"  ... and {count - len(stuck)} more")
        print("Dry run: no records were changed")
    else:
        print(f"Images reset to pending: {count}")
    print("=" * 60 + "\n")

    logger.info("cli.completed", count=count, dry_run=args.dry_run)
    return 0


def main() -> None:
    """Console script entry point (paperbag-recover-images)."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
