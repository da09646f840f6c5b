# ruff: noqa: T201

from __future__ import annotations

import argparse
import logging
import sys
import threading
from signal import SIGINT, SIGTERM, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from pildhora import __version__
from pildhora.app import diagnose_device, reconcile_devices
from pildhora.config import configure_logging
from pildhora.domain.diagnosis import render_findings
from pildhora.domain.reconciliation import render_report

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

cancel_requested = threading.Event()


def _positive_int(value: str) -> int:
    parsed = int(value)
    if parsed < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {parsed}")
    return parsed


def _positive_float(value: str) -> float:
    parsed = float(value)
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {parsed}")
    return parsed


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pildhora",
        description="Reconcile and diagnose dispenser data across Firestore and the Realtime DB",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser(
        "reconcile", help="Detect drift between both stores and repair it"
    )
    reconcile.add_argument(
        "--dry-run",
        action="store_true",
        help="Report planned repairs without writing anything",
    )
    reconcile.add_argument(
        "--max-workers",
        type=_positive_int,
        default=None,
        help="Concurrent store calls (defaults to config)",
    )
    reconcile.add_argument(
        "--timeout",
        type=_positive_float,
        default=None,
        help="Per-call timeout in seconds (defaults to config)",
    )

    diagnose = subparsers.add_parser(
        "diagnose", help="Audit one caregiver/device pair (read-only)"
    )
    diagnose.add_argument("--caregiver-id", type=str, required=True, help="Caregiver user id")
    diagnose.add_argument("--device-id", type=str, required=True, help="Device id")
    diagnose.add_argument(
        "--timeout",
        type=_positive_float,
        default=None,
        help="Per-call timeout in seconds",
    )

    return parser.parse_args(list(argv))


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO, force=True)

    try:
        if parsed_args.command == "diagnose":
            caregiver_id = parsed_args.caregiver_id.strip()
            device_id = parsed_args.device_id.strip()
            if not caregiver_id or not device_id:
                raise ValueError("--caregiver-id and --device-id must not be blank")  # noqa: TRY301
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "reconcile":
            report = reconcile_devices(
                dry_run=parsed_args.dry_run,
                max_workers=parsed_args.max_workers,
                call_timeout_seconds=parsed_args.timeout,
                cancel=cancel_requested,
            )
            print("\n".join(render_report(report)))
            exit_code = report.exit_code
        elif parsed_args.command == "diagnose":
            findings = diagnose_device(
                caregiver_id=caregiver_id,
                device_id=device_id,
                timeout_seconds=parsed_args.timeout,
            )
            print("\n".join(render_findings(findings)))
            exit_code = 0
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(1)

    sys.exit(exit_code)


def shutdown_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """First Ctrl+C lets in-flight writes finish, the second one exits."""
    if cancel_requested.is_set():
        log.info("Closed by user")
        sys.exit(130)
    log.info("Cancellation requested; finishing in-flight operations")
    cancel_requested.set()


def run() -> None:
    load_dotenv()
    signal(SIGINT, shutdown_handler)
    signal(SIGTERM, shutdown_handler)
    main()


if __name__ == "__main__":
    run()
