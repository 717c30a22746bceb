#!/usr/bin/env python3
"""
CLI for operating the durable event queue.

Provides commands to inspect the queue, run a processing pass, purge
expired entries and generate an encryption key.
"""

import argparse
import asyncio
import secrets
import sys

from src.config import settings
from src.services.queue_service import QueueService


def generate_encryption_key() -> str:
    """
    Generate a random 256-bit key for envelope encryption.

    Returns:
        64-character hex string
    """
    return secrets.token_hex(32)


async def cmd_stats() -> None:
    """Print entry counts by status."""
    stats = await QueueService().get_stats()

    print(f"Queue table: {settings.dynamodb_table_queue}\n")
    for status, count in stats.items():
        if status == "total":
            continue
        print(f"{status:<12} {count}")
    print("-" * 20)
    print(f"{'total':<12} {stats['total']}")


async def cmd_recent(limit: int) -> None:
    """
    Print the most recently created entries.

    Args:
        limit: Maximum number of entries to show
    """
    entries = await QueueService().get_recent(limit)

    if not entries:
        print("No queue entries found.")
        return

    print(f"Found {len(entries)} entry(s):\n")
    print(f"{'ID':<38} {'Status':<12} {'Retries':<8} {'Created':<28} Error")
    print("-" * 110)
    for entry in entries:
        print(
            f"{entry.id:<38} {entry.status.value:<12} {entry.retry_count:<8} "
            f"{entry.created_at:<28} {entry.error_message or ''}"
        )


async def cmd_process() -> None:
    """Run one processing pass and print its report."""
    report = await QueueService().process_queue()

    if report.skipped:
        print("→ Processing already running, skipped")
        return
    print("✓ Queue processed")
    print(f"  Fetched:   {report.fetched}")
    print(f"  Completed: {report.completed}")
    print(f"  Retried:   {report.retried}")
    print(f"  Failed:    {report.failed}")
    if report.errors:
        print(f"  Errors:    {report.errors}")
    print(f"  Duration:  {report.duration_seconds}s")


async def cmd_purge() -> None:
    """Delete entries past their retention."""
    report = await QueueService().purge_expired()

    print(f"✓ Purged {report.total} entry(s)")
    print(f"  Completed past retention: {report.completed_deleted}")
    print(f"  Failed past retention:    {report.failed_deleted}")
    print(f"  Completed over limit:     {report.excess_deleted}")


def cmd_generate_key() -> None:
    """Print a new encryption key."""
    print(generate_encryption_key())
    print("\nSet it as ENCRYPTION_KEY on the server and the client.", file=sys.stderr)


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Operate the analytics event queue",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")

    subparsers.add_parser("stats", help="Show entry counts by status")

    recent_parser = subparsers.add_parser("recent", help="List recent entries")
    recent_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Number of entries to show (default: 20)",
    )

    subparsers.add_parser("process", help="Run one processing pass")
    subparsers.add_parser("purge", help="Delete entries past retention")
    subparsers.add_parser("generate-key", help="Generate an encryption key")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Execute command
    if args.command == "stats":
        asyncio.run(cmd_stats())
    elif args.command == "recent":
        asyncio.run(cmd_recent(args.limit))
    elif args.command == "process":
        asyncio.run(cmd_process())
    elif args.command == "purge":
        asyncio.run(cmd_purge())
    elif args.command == "generate-key":
        cmd_generate_key()


if __name__ == "__main__":
    main()
