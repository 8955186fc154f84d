from __future__ import annotations

import argparse
import os
import signal
import socket
import sys
import time

from .logging_utils import configure_logging, log_event, log_warning


def _default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Process pending storage deletion jobs.")
    parser.add_argument("--dry-run", action="store_true", help="List the jobs that would be processed and exit.")
    parser.add_argument("--batch-size", type=int, default=None, help="Objects per storage delete call.")
    parser.add_argument("--limit", type=int, default=None, help="Max pending jobs fetched per run.")
    parser.add_argument("--loop", action="store_true", help="Keep polling until SIGTERM/SIGINT.")
    return parser.parse_args(argv)


def run_once(db_factory, storage, policy, *, worker_id: str):
    from .deletion_queue import run_deletion_worker  # noqa: PLC0415

    with db_factory() as db:
        return run_deletion_worker(db, storage, policy, worker_id=worker_id)


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    args = _parse_args(argv)
    worker_id = os.getenv("WORKER_ID") or _default_worker_id()

    try:
        from .config import settings  # noqa: PLC0415
        from .database import SessionLocal  # noqa: PLC0415
        from .deletion_queue import EXIT_FATAL, EXIT_OK, DeletionPolicy  # noqa: PLC0415
        from .storage import build_storage  # noqa: PLC0415

        policy = DeletionPolicy.from_settings(
            settings,
            batch_size=args.batch_size,
            fetch_limit=args.limit,
            dry_run=True if args.dry_run else None,
        )
        storage = build_storage(settings)
    except Exception as exc:  # noqa: BLE001
        log_warning("deletion_worker_fatal", worker_id=worker_id, error=str(exc))
        return 1

    log_event(
        "deletion_worker_started",
        worker_id=worker_id,
        dry_run=policy.dry_run,
        batch_size=policy.batch_size,
        fetch_limit=policy.fetch_limit,
        loop=args.loop,
    )

    if not args.loop:
        try:
            report = run_once(SessionLocal, storage, policy, worker_id=worker_id)
        except Exception as exc:  # noqa: BLE001
            log_warning("deletion_worker_fatal", worker_id=worker_id, error=str(exc))
            return EXIT_FATAL
        finally:
            storage.close()
        if report.nothing_to_do:
            log_event("deletion_worker_idle", worker_id=worker_id, reason="nothing to process")
        elif report.exit_code != EXIT_OK:
            log_warning("deletion_worker_partial_failure", worker_id=worker_id, **report.as_dict())
        return report.exit_code

    shutdown_requested = False

    def _handle_signal(signum, _frame):  # noqa: ANN001
        nonlocal shutdown_requested
        shutdown_requested = True
        log_warning("deletion_worker_shutdown_requested", worker_id=worker_id, signal=signum)

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    exit_code = EXIT_OK
    try:
        while not shutdown_requested:
            try:
                report = run_once(SessionLocal, storage, policy, worker_id=worker_id)
                exit_code = max(exit_code, report.exit_code)
            except Exception as exc:  # noqa: BLE001
                log_warning("deletion_worker_loop_error", worker_id=worker_id, error=str(exc))
            time.sleep(max(0.1, float(settings.worker_poll_interval_seconds)))
    finally:
        storage.close()

    log_event("deletion_worker_stopped", worker_id=worker_id)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
