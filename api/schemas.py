"""
Pydantic Schemas for API Request/Response Models
"""
from pydantic import BaseModel, Field
from typing import List, Dict, Optional, Any


# ==================== Request Models ====================

class ValidateImageRequest(BaseModel):
    """Ingestion check for one image"""
    user_id: str = Field(..., description="Owner the image is uploaded for")
    image_data: str = Field(..., description="data:image/<subtype>;base64,<data>")


class FacePhotoRequest(BaseModel):
    """Enrollment photo upload"""
    user_id: str
    image_data: str


class AttendanceRequest(BaseModel):
    """Full attendance submission"""
    claimed_owner_id: str
    image_data: str
    submission_id: Optional[str] = Field(None, max_length=64, description="Client idempotency key")


class ConfigUpdateRequest(BaseModel):
    """Runtime-tunable settings (all optional)"""
    stage_timeout_seconds: Optional[float] = Field(None, gt=0, le=120)
    notifications_enabled: Optional[bool] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=6)
    full_name: str
    roll_number: str


# ==================== Response Models ====================

class ValidationResponse(BaseModel):
    """Validator verdict"""
    valid: bool
    size: int
    format: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    error: Optional[str] = None
    reason: Optional[str] = None
    bound: Optional[int] = None


class FacePhotoResponse(BaseModel):
    success: bool
    path: str
    url: str
    photo_count: int
    validation: ValidationResponse


class StageErrorModel(BaseModel):
    stage: str
    kind: str
    reason: str


class AttendanceResponse(BaseModel):
    """Ingestion verdict plus the submission's terminal state"""
    success: bool
    validation: ValidationResponse
    submission_id: Optional[str] = None
    state: str
    states: List[str] = []
    record_id: Optional[str] = None
    image_reference: Optional[str] = None
    error: Optional[StageErrorModel] = None
    message: Optional[str] = None
    retry: bool = False


class AttendanceRecordModel(BaseModel):
    id: str
    submission_id: str
    user_id: Optional[str] = None
    confidence_score: float
    status: str
    image_url: Optional[str] = None
    created_at: Optional[str] = None


class AttendanceHistoryResponse(BaseModel):
    success: bool
    count: int
    records: List[AttendanceRecordModel]


class AttendanceStatsResponse(BaseModel):
    success: bool
    total_records: int
    present_count: int
    absent_count: int
    attendance_rate: Optional[float] = None


class ConfigResponse(BaseModel):
    stage_timeout_seconds: float
    notifications_enabled: bool
    max_uploads: int
    max_file_size: int
    min_dimension: int
    max_dimension: int


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    models_loaded: Dict[str, bool]
    database: bool


class LoginResponse(BaseModel):
    success: bool
    message: str
    access_token: Optional[str] = None
    token_type: str = "bearer"
    user_id: Optional[str] = None
    full_name: Optional[str] = None


class RegisterResponse(BaseModel):
    success: bool
    message: str
    user: Dict[str, Any]
