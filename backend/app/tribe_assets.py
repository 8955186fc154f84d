"""Storage objects owned by a tribe and the batch-delete routine shared by the worker and the direct endpoint."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Sequence, TypeVar

from .logging_utils import log_event, log_warning
from .schemas import EventSummary, TribeSummary
from .storage import ObjectStorage, StorageError
from .storage_paths import parse_public_url


T = TypeVar("T")


@dataclass(frozen=True)
class TribeObject:
    bucket: str
    object_path: str
    event_id: str | None = None


@dataclass
class BatchOutcome:
    bucket: str
    paths: list[str]
    ok: bool
    attempts: int
    error: str | None = None


def collect_tribe_objects(tribe: TribeSummary, events: Iterable[EventSummary]) -> list[TribeObject]:
    """Cover image first, then event banners; URLs that do not parse are skipped."""
    found: list[TribeObject] = []
    parsed = parse_public_url(tribe.cover_url)
    if parsed:
        found.append(TribeObject(bucket=parsed.bucket, object_path=parsed.object_path))
    for event in events:
        parsed = parse_public_url(event.banner_url)
        if parsed:
            found.append(TribeObject(bucket=parsed.bucket, object_path=parsed.object_path, event_id=event.id))
    return found


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    size = max(1, int(size))
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def backoff_ms(attempt: int, base_ms: int) -> int:
    return int(base_ms * (2 ** max(0, attempt - 1)))


def delete_batch(
    storage: ObjectStorage,
    bucket: str,
    paths: list[str],
    *,
    max_attempts: int,
    retry_base_ms: int,
    sleep: Callable[[float], None] = time.sleep,
) -> BatchOutcome:
    last_error: str | None = None
    attempts = max(1, int(max_attempts))
    for attempt in range(1, attempts + 1):
        try:
            storage.remove(bucket, paths)
        except StorageError as exc:
            last_error = str(exc) or exc.__class__.__name__
            log_warning(
                "storage_delete_attempt_failed",
                bucket=bucket,
                paths_count=len(paths),
                attempt=attempt,
                max_attempts=attempts,
                error=last_error,
            )
            if attempt < attempts:
                delay = backoff_ms(attempt, retry_base_ms)
                log_event("storage_delete_retrying", bucket=bucket, attempt=attempt, backoff_ms=delay)
                sleep(delay / 1000.0)
            continue
        return BatchOutcome(bucket=bucket, paths=list(paths), ok=True, attempts=attempt)
    return BatchOutcome(bucket=bucket, paths=list(paths), ok=False, attempts=attempts, error=last_error)
