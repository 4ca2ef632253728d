#!/usr/bin/env python3
"""
Command line entry point.

Usage:
    certsync run [--force] [--debug] [--no-task]
    certsync check
    certsync init-db
"""
import argparse
import asyncio
import logging
import sys

from certsync.core.config import settings
from certsync.core.exceptions import AcmeShNotInstalledError, ConfigurationError

logger = logging.getLogger("certsync")


def setup_logging(debug: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


async def run(force: bool, debug: bool, insert_task: bool) -> int:
    from certsync.core.database import AsyncSessionLocal, engine
    from certsync.services.letsencrypt_service import LetsEncryptService

    try:
        async with AsyncSessionLocal() as db:
            try:
                result = await LetsEncryptService(db).run(force=force, debug=debug, insert_task=insert_task)
            except (AcmeShNotInstalledError, ConfigurationError) as e:
                logger.error(str(e))
                return 1
    finally:
        await engine.dispose()

    logger.info(
        f"Issued: {len(result.issued)}, renewed: {len(result.renewed)}, "
        f"failed: {len(result.failed)}, skipped: {len(result.skipped)}"
    )
    return 0


async def check() -> int:
    from certsync.core.database import AsyncSessionLocal, engine
    from certsync.services.letsencrypt_service import LetsEncryptService

    try:
        async with AsyncSessionLocal() as db:
            needed = await LetsEncryptService(db).check()
    finally:
        await engine.dispose()

    print("run needed" if needed else "nothing to do")
    return 0


async def init_db() -> int:
    from certsync.core.database import engine
    from certsync.core.init import create_tables

    try:
        await create_tables(engine)
    finally:
        await engine.dispose()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="certsync", description="Let's Encrypt certificate orchestration")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Issue new certificates and store renewed ones")
    run_parser.add_argument("--force", action="store_true", help="Re-read every known certificate from disk")
    run_parser.add_argument("--debug", action="store_true", help="Verbose logging, passes --debug to acme.sh")
    run_parser.add_argument("--no-task", action="store_true", help="Do not enqueue the web-server reconfiguration task")

    subparsers.add_parser("check", help="Report whether a run has work to do")
    subparsers.add_parser("init-db", help="Create the database tables")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(getattr(args, "debug", False))

    if args.command == "run":
        return asyncio.run(run(args.force, args.debug, not args.no_task))
    if args.command == "check":
        return asyncio.run(check())
    return asyncio.run(init_db())


if __name__ == "__main__":
    sys.exit(main())
