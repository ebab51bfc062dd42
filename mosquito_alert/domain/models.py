from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime
from uuid import UUID
from enum import Enum

# ============================================================================
# ENUMS
# ============================================================================

class ReportStatus(str, Enum):
    PENDING = "PENDING"
    VALID = "VALID"
    INVALID = "INVALID"
    IN_PROGRESS = "IN_PROGRESS"
    CLEARED = "CLEARED"


class BreedingType(str, Enum):
    STANDING_WATER = "Standing Water"
    TRASH = "Trash"
    DRAIN = "Drain"


class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class ApiModel(BaseModel):
    """Base for wire DTOs: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ============================================================================
# RESPONSE DTOs
# ============================================================================

class OwnerSummary(ApiModel):
    id: UUID
    name: str
    email: str


class ReportResponse(ApiModel):
    """Report as returned by the API"""
    id: UUID
    user_id: UUID
    owner: Optional[OwnerSummary] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    breeding_type: str
    severity: str
    description: Optional[str] = None
    image_url: str
    status: ReportStatus
    points_awarded: int
    ai_verdict: Optional[str] = None
    ai_confidence: Optional[int] = None
    created_at: datetime


class ReportCreatedResponse(ApiModel):
    message: str
    report_id: UUID
    status: ReportStatus
    points_awarded: int
    report: ReportResponse


class StatusUpdateResponse(ApiModel):
    message: str
    points_change: int
    deleted: bool = False
    report: Optional[ReportResponse] = None


class MessageResponse(ApiModel):
    message: str


class UserResponse(ApiModel):
    """Account profile; the password hash is never part of it"""
    id: UUID
    name: str
    email: str
    role: Role
    points: int
    created_at: Optional[datetime] = None


class TokenResponse(UserResponse):
    token: str
    token_type: str = "bearer"


class ClassificationResponse(ApiModel):
    is_valid: bool
    confidence: int = Field(..., ge=0, le=100)
    verdict: str
    reasoning: List[str]
    detections: List[dict] = []
    fallback: bool = False
    timestamp: datetime


class OverviewResponse(ApiModel):
    total_reports: int
    total_users: int
    valid_reports: int
    pending_reports: int
    in_progress_reports: int
    cleared_reports: int


class DailyCount(ApiModel):
    date: str
    count: int


class DistributionSlice(ApiModel):
    name: str
    value: int


class AreaRisk(ApiModel):
    location: str
    report_count: int
    risk_level: str
    risk_score: int


class LeaderboardEntry(ApiModel):
    id: UUID
    name: str
    email: str
    points: int


# ============================================================================
# REQUEST DTOs
# ============================================================================

class SignupRequest(ApiModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., pattern=r"^\S+@\S+\.\S+$")
    password: str = Field(..., min_length=6, max_length=128)


class LoginRequest(ApiModel):
    email: str
    password: str


class ChangePasswordRequest(ApiModel):
    current_password: str
    new_password: str = Field(..., min_length=6, max_length=128)


class StatusUpdateRequest(ApiModel):
    """Admin status change; status stays a plain string so unknown values reach the engine"""
    status: str = Field(..., min_length=1)
    expected_status: Optional[str] = None
