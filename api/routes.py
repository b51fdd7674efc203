"""
API Routes for Face Attendance

FastAPI endpoints for:
- Image validation (ingestion check)
- Enrollment photo upload
- Attendance submission, history and stats
- Signed storage retrieval
- Runtime configuration
"""
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import FileResponse, JSONResponse

from .auth import get_current_principal
from .schemas import (
    ValidateImageRequest, ValidationResponse,
    FacePhotoRequest, FacePhotoResponse,
    AttendanceRequest, AttendanceResponse,
    AttendanceHistoryResponse, AttendanceStatsResponse,
    ConfigUpdateRequest, ConfigResponse,
    HealthResponse
)

import config
from database.connection import ping_database
from models.errors import AuthorizationError, ErrorKind, MalformedInputError, status_for_kind
from models.face_detector import get_face_detector
from services.attendance_submission import SubmissionOutcome, SubmissionState, get_submission_orchestrator
from services.enrollment import get_enrollment_service
from services.ingestion import get_ingestion_service
from services.object_storage import get_object_storage
from services.record_store import RecordStoreError, get_record_store
from utils.config_utils import update_config_values
from utils.image_utils import load_image_from_bytes, parse_image_data_uri

logger = logging.getLogger(__name__)

router = APIRouter()

MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}


@router.get("/health", response_model=HealthResponse)
async def health_check(detector=Depends(get_face_detector)):
    """
    Health check endpoint
    """
    try:
        detector_available = detector.available
    except Exception:
        detector_available = False

    return HealthResponse(
        status="healthy",
        version="1.0.0",
        models_loaded={"face_detector": detector_available},
        database=await ping_database()
    )


@router.post("/validate_face_image", response_model=ValidationResponse)
async def validate_face_image(
    req: ValidateImageRequest,
    principal: str = Depends(get_current_principal),
    ingestion=Depends(get_ingestion_service)
):
    """
    Validate an uploaded face image without storing it.

    The image format is decided from the decoded bytes only; the subtype in
    the data URI is ignored. Rejections return 400 with the specific reason.
    """
    result = await ingestion.admit(principal, req.user_id, req.image_data)
    if not result.valid:
        return JSONResponse(status_code=400, content=result.to_dict())
    return ValidationResponse(**result.to_dict())


@router.post("/face_photos", response_model=FacePhotoResponse)
async def upload_face_photo(
    req: FacePhotoRequest,
    principal: str = Depends(get_current_principal),
    enrollment=Depends(get_enrollment_service)
):
    """
    Upload one enrollment photo (counts toward the photo cap)
    """
    data = await enrollment.enroll_photo(principal, req.user_id, req.image_data)
    return FacePhotoResponse(success=True, **data)


@router.post("/attendance", response_model=AttendanceResponse)
async def submit_attendance(
    req: AttendanceRequest,
    response: Response,
    principal: str = Depends(get_current_principal),
    ingestion=Depends(get_ingestion_service),
    orchestrator=Depends(get_submission_orchestrator)
):
    """
    Mark attendance from a captured frame.

    The uploaded image is checked first (ingestion verdict); the frame is
    then run through the full submission and the terminal state returned.
    """
    verdict = await ingestion.admit(principal, req.claimed_owner_id, req.image_data)
    validation = ValidationResponse(**verdict.to_dict())
    if not verdict.valid:
        # Rejected before capture: report it as the validating stage would
        rejected = SubmissionOutcome(submission_id=req.submission_id or uuid.uuid4().hex)
        rejected.advance(SubmissionState.CAPTURING)
        rejected.advance(SubmissionState.VALIDATING)
        rejected.validation = verdict
        rejected.fail(ErrorKind.VALIDATION_REJECTED, verdict.error_reason)
        response.status_code = status_for_kind(ErrorKind.VALIDATION_REJECTED)
        return AttendanceResponse(success=False, validation=validation, **rejected.to_dict())

    _, image_bytes = parse_image_data_uri(req.image_data)
    frame = load_image_from_bytes(image_bytes)
    if frame is None:
        raise MalformedInputError("Could not decode image")

    outcome = await orchestrator.submit(principal, req.claimed_owner_id, frame, req.submission_id)
    if outcome.error is not None:
        response.status_code = status_for_kind(outcome.error.kind)

    return AttendanceResponse(
        success=outcome.state == SubmissionState.DONE,
        validation=validation,
        **outcome.to_dict()
    )


@router.get("/attendance/history", response_model=AttendanceHistoryResponse)
async def attendance_history(
    limit: int = Query(50, ge=1, le=500),
    principal: str = Depends(get_current_principal),
    record_store=Depends(get_record_store)
):
    """
    Caller's attendance records, newest first
    """
    try:
        records = await record_store.list_for_principal(principal, limit=limit)
    except RecordStoreError as e:
        logger.error(f"History read failed for {principal}: {e}")
        raise HTTPException(status_code=502, detail="Failed to read attendance records")

    return AttendanceHistoryResponse(success=True, count=len(records), records=records)


@router.get("/attendance/stats", response_model=AttendanceStatsResponse)
async def attendance_stats(
    principal: str = Depends(get_current_principal),
    record_store=Depends(get_record_store)
):
    """
    Caller's attendance totals and rate (percent)
    """
    try:
        stats = await record_store.get_stats(principal)
    except RecordStoreError as e:
        logger.error(f"Stats read failed for {principal}: {e}")
        raise HTTPException(status_code=502, detail="Failed to read attendance stats")

    return AttendanceStatsResponse(success=True, **stats)


@router.get("/storage/{path:path}")
async def get_stored_object(
    path: str,
    expires: int = Query(...),
    signature: str = Query(...),
    storage=Depends(get_object_storage)
):
    """
    Serve a stored image through its time-limited signed URL
    """
    if not storage.verify(path, expires, signature):
        raise AuthorizationError("Invalid or expired URL")

    file_path = storage.open_path(path)
    if file_path is None:
        raise HTTPException(status_code=404, detail="Object not found")

    return FileResponse(file_path, media_type=MEDIA_TYPES.get(file_path.suffix, "application/octet-stream"))


def _current_config() -> ConfigResponse:
    return ConfigResponse(
        stage_timeout_seconds=config.STAGE_TIMEOUT_SECONDS,
        notifications_enabled=config.NOTIFICATIONS_ENABLED,
        max_uploads=config.MAX_UPLOADS_PER_DAY,
        max_file_size=config.MAX_FILE_SIZE,
        min_dimension=config.MIN_DIMENSION,
        max_dimension=config.MAX_DIMENSION
    )


@router.get("/config", response_model=ConfigResponse)
async def get_config():
    """
    Current runtime settings
    """
    return _current_config()


@router.post("/config", response_model=ConfigResponse)
async def update_config(req: ConfigUpdateRequest, principal: str = Depends(get_current_principal)):
    """
    Update runtime settings in memory and persist them to data/config.json
    """
    updates = {}
    if req.stage_timeout_seconds is not None:
        config.STAGE_TIMEOUT_SECONDS = req.stage_timeout_seconds
        updates["STAGE_TIMEOUT_SECONDS"] = req.stage_timeout_seconds

    if req.notifications_enabled is not None:
        config.NOTIFICATIONS_ENABLED = req.notifications_enabled
        updates["NOTIFICATIONS_ENABLED"] = req.notifications_enabled

    if updates and not update_config_values(updates):
        logger.warning("Config updated in memory only; could not persist")

    logger.info(f"Config updated by {principal}: {req}")
    return _current_config()
