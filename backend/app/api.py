from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import Body, Depends, FastAPI, HTTPException, status, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from . import auth, models, schemas, tribe_deletion
from .config import settings
from .database import engine, get_db
from .geocoding import Geocoder, GeocoderError, NominatimGeocoder, geocode_location
from .logging_utils import configure_logging, RequestIdMiddleware, log_event, log_warning
from .storage import ObjectStorage, build_storage

configure_logging()


def _check_configuration():
    if not settings.database_url:
        raise RuntimeError('DATABASE_URL is required')
    if not settings.resolved_storage_url or not settings.supabase_service_key:
        logging.warning('Storage URL or service key missing; delete-tribe-with-storage will answer 500')
    if settings.identity_mode == "jwt" and not settings.supabase_jwt_secret:
        logging.warning('IDENTITY_MODE=jwt but SUPABASE_JWT_SECRET is missing; authenticated endpoints will fail')


@asynccontextmanager
async def lifespan(_app: FastAPI):
    _check_configuration()
    if settings.auto_create_tables:
        models.Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="TribeVibe Functions", version="1.0.0", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins or [],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
)


def get_identity_resolver() -> auth.IdentityResolver:
    try:
        return auth.get_identity_resolver()
    except RuntimeError as exc:
        log_warning("identity_not_configured", error=str(exc))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server not configured")


def get_storage():
    try:
        storage = build_storage(settings)
    except RuntimeError as exc:
        log_warning("storage_not_configured", error=str(exc))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server not configured")
    try:
        yield storage
    finally:
        storage.close()


def get_geocoder() -> Geocoder:
    return NominatimGeocoder(
        settings.geocoder_url,
        settings.geocoder_user_agent,
        timeout=settings.geocoder_timeout_seconds,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    code = f"http_{exc.status_code}"
    details = None
    if isinstance(exc.detail, dict):
        message = str(exc.detail.get("message") or "Error")
        details = exc.detail.get("details")
    else:
        message = exc.detail if isinstance(exc.detail, str) else "Error"
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": error, "detail": message},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [{"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")} for err in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {"code": "validation_error", "message": "Invalid request body", "details": details},
            "detail": "Invalid request body",
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logging.getLogger("tribevibe").exception("unhandled_error", extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"code": "internal_error", "message": "Server error"}},
    )


@app.get("/")
def read_root():
    return {"message": "Hello from TribeVibe functions!"}


@app.get("/api/health")
def health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok"}


@app.post(
    "/functions/v1/delete-tribe",
    response_model=schemas.EnqueueDeletionResponse,
    response_model_exclude_none=True,
)
def delete_tribe(
    payload: Optional[schemas.DeleteTribeRequest] = Body(default=None),
    db: Session = Depends(get_db),
    access_token: Optional[str] = Depends(auth.get_bearer_token),
    resolver: auth.IdentityResolver = Depends(get_identity_resolver),
):
    payload = payload or schemas.DeleteTribeRequest()
    user_id, tribe = tribe_deletion.authorize_tribe_owner(db, resolver, access_token, payload.tribe_id)
    log_event("delete_tribe_requested", tribe_id=tribe.id, user_id=user_id, dry_run=payload.dry_run)
    return tribe_deletion.enqueue_tribe_deletion(db, tribe=tribe, user_id=user_id, dry_run=payload.dry_run)


@app.post(
    "/functions/v1/delete-tribe-with-storage",
    response_model=schemas.DirectDeleteResponse,
)
def delete_tribe_with_storage(
    payload: Optional[schemas.DeleteTribeRequest] = Body(default=None),
    db: Session = Depends(get_db),
    access_token: Optional[str] = Depends(auth.get_bearer_token),
    resolver: auth.IdentityResolver = Depends(get_identity_resolver),
    storage: ObjectStorage = Depends(get_storage),
):
    payload = payload or schemas.DeleteTribeRequest()
    user_id, tribe = tribe_deletion.authorize_tribe_owner(db, resolver, access_token, payload.tribe_id)
    log_event("delete_tribe_with_storage_requested", tribe_id=tribe.id, user_id=user_id)
    return tribe_deletion.delete_tribe_with_storage(
        db,
        storage,
        tribe=tribe,
        max_attempts=settings.direct_delete_max_attempts,
        retry_base_ms=settings.delete_retry_base_ms,
    )


@app.get("/api/tribes/{tribe_id}/deletion-jobs", response_model=schemas.DeletionJobListResponse)
def list_deletion_jobs(
    tribe_id: str,
    db: Session = Depends(get_db),
    access_token: Optional[str] = Depends(auth.get_bearer_token),
    resolver: auth.IdentityResolver = Depends(get_identity_resolver),
):
    _user_id, tribe = tribe_deletion.authorize_tribe_owner(db, resolver, access_token, tribe_id)
    return tribe_deletion.list_tribe_deletion_jobs(db, tribe.id)


@app.post("/functions/v1/geocode")
def geocode(
    payload: Optional[schemas.GeocodeRequest] = Body(default=None),
    geocoder: Geocoder = Depends(get_geocoder),
):
    location = payload.location if payload else None
    if not location or not isinstance(location, str):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"lat": None, "lng": None, "error": "Location is required and must be a string"},
        )
    try:
        coords = geocode_location(geocoder, location)
    except GeocoderError as exc:
        log_warning("geocode_failed", location=location, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"lat": None, "lng": None, "error": "Failed to geocode location"},
        )
    return {"lat": coords.lat, "lng": coords.lng}
