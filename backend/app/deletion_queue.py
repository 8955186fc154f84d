from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy.orm import Session

from . import models
from .config import Settings
from .logging_utils import log_event, log_warning
from .schemas import PlannedDeletionJob
from .storage import ObjectStorage
from .tribe_assets import chunked, delete_batch


EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2

PENDING = models.DeletionJobStatus.pending.value
IN_PROGRESS = models.DeletionJobStatus.in_progress.value
COMPLETED = models.DeletionJobStatus.completed.value
FAILED = models.DeletionJobStatus.failed.value


@dataclass(frozen=True)
class DeletionPolicy:
    batch_size: int = 10
    fetch_limit: int = 100
    max_attempts: int = 3
    retry_base_ms: int = 500
    batch_pause_ms: int = 200
    dry_run: bool = False
    reclaim_after_seconds: int | None = None

    @classmethod
    def from_settings(cls, config: Settings, **overrides: Any) -> "DeletionPolicy":
        values = {
            "batch_size": config.delete_batch_size,
            "fetch_limit": config.delete_job_fetch_limit,
            "max_attempts": config.delete_max_attempts,
            "retry_base_ms": config.delete_retry_base_ms,
            "batch_pause_ms": config.delete_batch_pause_ms,
            "dry_run": config.dry_run,
            "reclaim_after_seconds": config.deletion_reclaim_after_seconds,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


@dataclass
class WorkerReport:
    dry_run: bool = False
    fetched: int = 0
    claimed: int = 0
    skipped: int = 0
    reclaimed: int = 0
    batches_succeeded: int = 0
    batches_failed: int = 0
    completed_job_ids: list[int] = field(default_factory=list)
    failed_job_ids: list[int] = field(default_factory=list)
    would_process: list[dict[str, Any]] = field(default_factory=list)

    @property
    def nothing_to_do(self) -> bool:
        return self.fetched == 0

    @property
    def exit_code(self) -> int:
        return EXIT_PARTIAL_FAILURE if self.batches_failed else EXIT_OK

    def as_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "fetched": self.fetched,
            "claimed": self.claimed,
            "skipped": self.skipped,
            "reclaimed": self.reclaimed,
            "batches_succeeded": self.batches_succeeded,
            "batches_failed": self.batches_failed,
            "completed": len(self.completed_job_ids),
            "failed": len(self.failed_job_ids),
        }


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def enqueue_deletion_jobs(db: Session, planned: list[PlannedDeletionJob]) -> list[models.DeletionJob]:
    jobs = [
        models.DeletionJob(
            tribe_id=item.tribe_id,
            event_id=item.event_id,
            bucket=item.bucket,
            object_path=item.object_path,
            status=PENDING,
            attempts=0,
            created_by=item.created_by,
        )
        for item in planned
    ]
    if not jobs:
        return []
    db.add_all(jobs)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    for job in jobs:
        db.refresh(job)
    log_event("deletion_jobs_enqueued", count=len(jobs), tribe_id=jobs[0].tribe_id)
    return jobs


def fetch_pending_jobs(db: Session, *, limit: int) -> list[models.DeletionJob]:
    return (
        db.query(models.DeletionJob)
        .filter(models.DeletionJob.status == PENDING)
        .order_by(models.DeletionJob.created_at.asc(), models.DeletionJob.id.asc())
        .limit(max(1, int(limit)))
        .all()
    )


def claim_job(db: Session, job_id: int, *, worker_id: str) -> models.DeletionJob | None:
    """Move one job from pending to in_progress; None when another worker got there first."""
    count = (
        db.query(models.DeletionJob)
        .filter(models.DeletionJob.id == job_id, models.DeletionJob.status == PENDING)
        .update(
            {
                "status": IN_PROGRESS,
                "attempts": models.DeletionJob.attempts + 1,
                "claimed_at": _now_utc(),
                "claimed_by": worker_id,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    if count != 1:
        return None
    return db.get(models.DeletionJob, job_id)


def mark_jobs_completed(db: Session, job_ids: list[int]) -> int:
    if not job_ids:
        return 0
    count = (
        db.query(models.DeletionJob)
        .filter(models.DeletionJob.id.in_(job_ids), models.DeletionJob.status == IN_PROGRESS)
        .update({"status": COMPLETED, "completed_at": _now_utc()}, synchronize_session=False)
    )
    db.commit()
    return int(count or 0)


def mark_jobs_failed(db: Session, job_ids: list[int], error: str) -> int:
    if not job_ids:
        return 0
    count = (
        db.query(models.DeletionJob)
        .filter(models.DeletionJob.id.in_(job_ids), models.DeletionJob.status == IN_PROGRESS)
        .update({"status": FAILED, "last_error": error or "unknown error"}, synchronize_session=False)
    )
    db.commit()
    return int(count or 0)


def requeue_stale_jobs(db: Session, *, stale_after_seconds: int) -> int:
    cutoff = _now_utc() - timedelta(seconds=stale_after_seconds)
    count = (
        db.query(models.DeletionJob)
        .filter(
            models.DeletionJob.status == IN_PROGRESS,
            models.DeletionJob.claimed_at != None,  # noqa: E711
            models.DeletionJob.claimed_at < cutoff,
        )
        .update({"status": PENDING, "claimed_at": None, "claimed_by": None}, synchronize_session=False)
    )
    if count:
        db.commit()
        log_warning("deletion_jobs_requeued_stale", count=count, stale_after_seconds=stale_after_seconds)
    return int(count or 0)


def _group_by_bucket(jobs: list[models.DeletionJob]) -> dict[str, list[models.DeletionJob]]:
    grouped: dict[str, list[models.DeletionJob]] = {}
    for job in jobs:
        grouped.setdefault(job.bucket, []).append(job)
    return grouped


def run_deletion_worker(
    db: Session,
    storage: ObjectStorage,
    policy: DeletionPolicy,
    *,
    worker_id: str,
    sleep: Callable[[float], None] = time.sleep,
) -> WorkerReport:
    report = WorkerReport(dry_run=policy.dry_run)

    if policy.reclaim_after_seconds and not policy.dry_run:
        report.reclaimed = requeue_stale_jobs(db, stale_after_seconds=policy.reclaim_after_seconds)

    pending = fetch_pending_jobs(db, limit=policy.fetch_limit)
    report.fetched = len(pending)
    if not pending:
        log_event("deletion_worker_nothing_to_process", worker_id=worker_id)
        return report

    log_event("deletion_worker_fetched", worker_id=worker_id, count=len(pending), dry_run=policy.dry_run)

    if policy.dry_run:
        report.would_process = [
            {"id": job.id, "bucket": job.bucket, "object_path": job.object_path} for job in pending
        ]
        for item in report.would_process:
            log_event("deletion_worker_would_process", **item)
        return report

    claimed: list[models.DeletionJob] = []
    for job_id in [job.id for job in pending]:
        job = claim_job(db, job_id, worker_id=worker_id)
        if job is None:
            report.skipped += 1
            continue
        claimed.append(job)
    report.claimed = len(claimed)

    if not claimed:
        log_event("deletion_worker_nothing_claimed", worker_id=worker_id, skipped=report.skipped)
        return report

    for bucket, jobs in _group_by_bucket(claimed).items():
        batches = list(chunked(jobs, policy.batch_size))
        log_event("deletion_bucket_started", bucket=bucket, objects=len(jobs), batches=len(batches))
        for index, batch in enumerate(batches, start=1):
            job_ids = [job.id for job in batch]
            paths = list(dict.fromkeys(job.object_path for job in batch))
            outcome = delete_batch(
                storage,
                bucket,
                paths,
                max_attempts=policy.max_attempts,
                retry_base_ms=policy.retry_base_ms,
                sleep=sleep,
            )
            if outcome.ok:
                mark_jobs_completed(db, job_ids)
                report.batches_succeeded += 1
                report.completed_job_ids.extend(job_ids)
                log_event(
                    "deletion_batch_completed",
                    bucket=bucket,
                    batch=index,
                    batches=len(batches),
                    removed=len(paths),
                    attempts=outcome.attempts,
                )
            else:
                mark_jobs_failed(db, job_ids, outcome.error or "storage delete failed")
                report.batches_failed += 1
                report.failed_job_ids.extend(job_ids)
                log_warning(
                    "deletion_batch_failed",
                    bucket=bucket,
                    batch=index,
                    batches=len(batches),
                    job_ids=job_ids,
                    attempts=outcome.attempts,
                    error=outcome.error,
                )
            sleep(policy.batch_pause_ms / 1000.0)

    log_event("deletion_worker_finished", worker_id=worker_id, **report.as_dict())
    return report
