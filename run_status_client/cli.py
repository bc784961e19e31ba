import argparse
import asyncio
import sys
from typing import List, Optional, TextIO

from loguru import logger
from run_status_client.cancellation import CancellationToken, interrupt_on_signals
from run_status_client.errors import HardFailure, PollInterruptedError, PollTimeoutError
from run_status_client.models import (
    DEFAULT_MAX_DURATION,
    DEFAULT_POLL_INTERVAL,
    PollPolicy,
    RunResponse,
    status_of,
)
from run_status_client.poller import clear_line
from run_status_client.run_status_client import RunClient

DEFAULT_BASE_URL = "http://localhost:8080"


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="run-status", description="Track remote runs.")
    sub = p.add_subparsers(dest="command", required=True)

    follow = sub.add_parser("follow", help="Poll a run until it finishes.")
    follow.add_argument("run_id", type=str)
    follow.add_argument("--base-url", default=DEFAULT_BASE_URL, type=str)
    follow.add_argument(
        "--interval",
        default=DEFAULT_POLL_INTERVAL,
        type=float,
        help="Seconds between polls (clamped to 1-30).",
    )
    follow.add_argument(
        "--timeout",
        default=DEFAULT_MAX_DURATION,
        type=float,
        help="Give up after this many seconds; 0 waits forever.",
    )
    follow.add_argument("--no-progress", action="store_true")
    follow.add_argument("--debug", action="store_true")
    return p


def configure_logging(debug: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "WARNING")


def print_run_details(run: RunResponse, out: TextIO) -> None:
    print(f"Run ID: {run.id}", file=out)
    print(f"Status: {run.status}", file=out)
    print(f"Repository: {run.repository}", file=out)
    print(f"Branch: {run.source} → {run.target}", file=out)
    if run.title:
        print(f"Title: {run.title}", file=out)
    if run.updated_at is not None:
        print(f"Updated: {run.updated_at:%Y-%m-%d %H:%M:%S}", file=out)
    if run.error:
        print(f"Error: {run.error}", file=out)


async def follow(args: argparse.Namespace, out: TextIO) -> int:
    policy = PollPolicy(
        interval=args.interval,
        max_duration=args.timeout,
        show_progress=not args.no_progress,
        debug=args.debug,
    )
    policy = policy.model_copy(update={"interval": policy.clamped_interval()})

    def on_status_change(run: RunResponse) -> None:
        clear_line(out)
        print_run_details(run, out)
        print("\nFollowing run status...", file=out)

    client = RunClient(
        args.base_url, policy, on_status_change=on_status_change, progress_stream=out
    )

    with interrupt_on_signals(CancellationToken()) as token:
        try:
            run = await client.follow_run(args.run_id, token)
        except PollInterruptedError as e:
            clear_line(out)
            print(f"\nStopped following run {args.run_id}.", file=out)
            print(f"Last seen status: {status_of(e.last_snapshot)}", file=out)
            return 0
        except (HardFailure, PollTimeoutError) as e:
            clear_line(out)
            print(f"failed to follow run status: {e}", file=sys.stderr)
            return 1

    clear_line(out)
    print("\nFinal status:", file=out)
    print_run_details(run, out)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.debug)

    if args.command == "follow":
        return asyncio.run(follow(args, sys.stdout))
    raise ValueError(f"Unsupported command: {args.command}")


if __name__ == "__main__":
    sys.exit(main())
