from __future__ import annotations

import time
from typing import Callable, Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import auth, models, schemas
from .deletion_queue import enqueue_deletion_jobs
from .logging_utils import log_event, log_warning
from .storage import ObjectStorage
from .storage_paths import group_by_bucket
from .tribe_assets import TribeObject, collect_tribe_objects, delete_batch


def _server_error(message: str, exc: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"message": message, "details": str(exc)},
    )


def load_tribe(db: Session, tribe_id: str) -> Optional[schemas.TribeSummary]:
    tribe = db.query(models.Tribe).filter(models.Tribe.id == tribe_id).first()
    if tribe is None:
        return None
    return schemas.TribeSummary.model_validate(tribe)


def load_tribe_events(db: Session, tribe_id: str) -> list[schemas.EventSummary]:
    try:
        rows = (
            db.query(models.Event)
            .filter(models.Event.tribe_id == tribe_id)
            .order_by(models.Event.created_at.asc(), models.Event.id.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        db.rollback()
        log_warning("tribe_events_fetch_failed", tribe_id=tribe_id, error=str(exc))
        raise _server_error("Failed to fetch events", exc)
    return [schemas.EventSummary.model_validate(row) for row in rows]


def authorize_tribe_owner(
    db: Session,
    resolver: auth.IdentityResolver,
    access_token: Optional[str],
    tribe_id: Optional[str],
) -> tuple[str, schemas.TribeSummary]:
    if not tribe_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing tribeId")
    user_id = auth.resolve_caller(resolver, access_token)
    tribe = load_tribe(db, tribe_id)
    auth.require_tribe_owner(tribe, user_id)
    return user_id, tribe


def plan_deletion_jobs(objects: list[TribeObject], *, tribe_id: str, user_id: str) -> list[schemas.PlannedDeletionJob]:
    return [
        schemas.PlannedDeletionJob(
            tribe_id=tribe_id,
            event_id=obj.event_id,
            bucket=obj.bucket,
            object_path=obj.object_path,
            created_by=user_id,
        )
        for obj in objects
    ]


def enqueue_tribe_deletion(
    db: Session,
    *,
    tribe: schemas.TribeSummary,
    user_id: str,
    dry_run: bool = False,
) -> schemas.EnqueueDeletionResponse:
    events = load_tribe_events(db, tribe.id)
    objects = collect_tribe_objects(tribe, events)
    planned = plan_deletion_jobs(objects, tribe_id=tribe.id, user_id=user_id)

    if dry_run:
        removals = group_by_bucket(objects)
        log_event("tribe_deletion_dry_run", tribe_id=tribe.id, planned=len(planned))
        return schemas.EnqueueDeletionResponse(
            dry_run=True,
            planned=len(planned),
            inserted=0,
            removals_by_bucket=removals,
            planned_jobs=planned,
        )

    if not planned:
        log_event("tribe_deletion_nothing_to_enqueue", tribe_id=tribe.id, events=len(events))
        return schemas.EnqueueDeletionResponse(planned=0, inserted=0)

    try:
        jobs = enqueue_deletion_jobs(db, planned)
    except SQLAlchemyError as exc:
        log_warning("deletion_jobs_enqueue_failed", tribe_id=tribe.id, planned=len(planned), error=str(exc))
        raise _server_error("Failed to enqueue deletion jobs", exc)

    return schemas.EnqueueDeletionResponse(
        planned=len(planned),
        inserted=len(jobs),
        jobs=[schemas.DeletionJobResponse.model_validate(job) for job in jobs],
    )


def delete_tribe_with_storage(
    db: Session,
    storage: ObjectStorage,
    *,
    tribe: schemas.TribeSummary,
    max_attempts: int = 1,
    retry_base_ms: int = 500,
    sleep: Callable[[float], None] = time.sleep,
) -> schemas.DirectDeleteResponse:
    """Delete the tribe's stored files now, then soft-delete the tribe and cancel its events.

    Storage cleanup is best-effort: a failing bucket is logged and left behind,
    the database rows stay the source of truth.
    """
    started = time.monotonic()
    events = load_tribe_events(db, tribe.id)
    objects = collect_tribe_objects(tribe, events)

    by_bucket = group_by_bucket(objects)

    buckets_failed: list[str] = []
    for bucket, paths in by_bucket.items():
        try:
            outcome = delete_batch(
                storage,
                bucket,
                list(dict.fromkeys(paths)),
                max_attempts=max_attempts,
                retry_base_ms=retry_base_ms,
                sleep=sleep,
            )
        except Exception as exc:  # noqa: BLE001
            log_warning("direct_delete_storage_error", tribe_id=tribe.id, bucket=bucket, error=str(exc))
            buckets_failed.append(bucket)
            continue
        if not outcome.ok:
            log_warning("direct_delete_storage_failed", tribe_id=tribe.id, bucket=bucket, error=outcome.error)
            buckets_failed.append(bucket)

    try:
        db.query(models.Tribe).filter(models.Tribe.id == tribe.id).update(
            {"is_deleted": True}, synchronize_session=False
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        log_warning("direct_delete_tribe_update_failed", tribe_id=tribe.id, error=str(exc))
        raise _server_error("Failed to update tribe", exc)

    if events:
        try:
            db.query(models.Event).filter(models.Event.tribe_id == tribe.id).update(
                {"is_cancelled": True}, synchronize_session=False
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            log_warning("direct_delete_events_update_failed", tribe_id=tribe.id, error=str(exc))

    log_event(
        "tribe_deleted_with_storage",
        tribe_id=tribe.id,
        files_deleted=len(objects),
        events_processed=len(events),
        buckets_failed=buckets_failed,
        elapsed_ms=int((time.monotonic() - started) * 1000),
    )
    return schemas.DirectDeleteResponse(
        tribe_id=tribe.id,
        files_deleted=len(objects),
        events_processed=len(events),
        buckets_failed=buckets_failed,
    )


def list_tribe_deletion_jobs(db: Session, tribe_id: str) -> schemas.DeletionJobListResponse:
    rows = (
        db.query(models.DeletionJob)
        .filter(models.DeletionJob.tribe_id == tribe_id)
        .order_by(models.DeletionJob.created_at.asc(), models.DeletionJob.id.asc())
        .all()
    )
    counts = {state.value: 0 for state in models.DeletionJobStatus}
    for row in rows:
        counts[row.status] = counts.get(row.status, 0) + 1
    return schemas.DeletionJobListResponse(
        tribe_id=tribe_id,
        counts=counts,
        items=[schemas.DeletionJobResponse.model_validate(row) for row in rows],
    )
