"""
Database Schemas for SafeStay

Each Pydantic model represents a MongoDB collection.
Collection name = lowercase of class name (User -> "user", Counterreport -> "counterreport").
Request bodies for the API live at the bottom of the module.
"""

from datetime import datetime
from typing import Any, List, Literal, Optional, get_args

from pydantic import BaseModel, EmailStr, Field

Role = Literal['student', 'owner', 'admin']
IssueType = Literal['Food Safety', 'Water Quality', 'Hygiene', 'Security', 'Infrastructure']
ReportStatus = Literal['pending', 'approved', 'rejected']
CounterStatus = Literal['none', 'pending', 'accepted', 'rejected']
CounterReason = Literal['false_information', 'outdated_issue', 'mistaken_identity', 'resolved_issue', 'malicious_intent', 'other']
CounterDecision = Literal['accepted', 'rejected']
OtpType = Literal['verification', 'password-reset']
SafetyClassification = Literal['Safe', 'Risky', 'High Risk']

ISSUE_TYPES = get_args(IssueType)
REPORT_STATUSES = get_args(ReportStatus)
COUNTER_REASONS = get_args(CounterReason)
COUNTER_DECISIONS = get_args(CounterDecision)
SELF_SERVICE_ROLES = ('student', 'owner')


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address, stored lowercase")
    role: Role = Field('student', description="Role of the account")
    password: str = Field(..., description="bcrypt hash")
    isBanned: bool = Field(False)
    isVerified: bool = Field(False)


class Image(BaseModel):
    url: str
    publicId: str


class Accommodation(BaseModel):
    name: str = Field(..., max_length=200)
    address: str
    city: str
    description: str
    amenities: List[str] = Field(default_factory=list)
    totalRooms: int = Field(..., ge=1)
    occupiedRooms: int = Field(0, ge=0)
    pricePerMonth: float = Field(..., ge=0)
    contactPhone: str
    images: List[str] = Field(default_factory=list)
    owner: Any = Field(..., description="ObjectId of the owning user")
    isVerified: bool = Field(False)
    riskScore: int = Field(0, description="Weighted sum over non-rejected reports with the same name")


class Report(BaseModel):
    accommodationName: str = Field(..., max_length=200)
    issueType: IssueType
    description: str = Field(..., max_length=2000)
    images: List[Image] = Field(default_factory=list, max_length=5)
    status: ReportStatus = 'pending'
    isCountered: bool = False
    counterStatus: CounterStatus = 'none'
    upvotes: int = Field(0, ge=0)
    upvotedBy: List[Any] = Field(default_factory=list)
    user: Any = Field(..., description="ObjectId of the author")


class Counterreport(BaseModel):
    originalReport: Any
    accommodation: Any
    owner: Any
    reason: CounterReason
    explanation: str
    evidenceUrls: List[str] = Field(default_factory=list)
    evidenceDescription: Optional[str] = None
    status: Literal['pending', 'accepted', 'rejected'] = 'pending'
    adminNotes: Optional[str] = None
    reviewedAt: Optional[datetime] = None


class Otp(BaseModel):
    email: str
    otp: str
    type: OtpType
    expiresAt: datetime


# ---------- Request bodies ----------

class SignupRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None


class PasswordChange(BaseModel):
    currentPassword: Optional[str] = None
    newPassword: Optional[str] = None


class EmailRequest(BaseModel):
    email: Optional[str] = None


class VerifyEmailRequest(BaseModel):
    email: Optional[str] = None
    otp: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    email: Optional[str] = None
    otp: Optional[str] = None
    newPassword: Optional[str] = None


class ReportIn(BaseModel):
    # validated by the report engine so malformed images can be dropped
    accommodationName: Optional[str] = None
    issueType: Optional[str] = None
    description: Optional[str] = None
    images: Optional[List[Any]] = None


class ReportStatusUpdate(BaseModel):
    status: Optional[str] = None


class AccommodationIn(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    description: Optional[str] = None
    amenities: Optional[List[str]] = None
    totalRooms: Optional[int] = None
    pricePerMonth: Optional[float] = None
    contactPhone: Optional[str] = None
    images: Optional[List[str]] = None


class OccupancyUpdate(BaseModel):
    occupiedRooms: int


class CounterReportIn(BaseModel):
    reportId: Optional[str] = None
    reason: Optional[str] = None
    explanation: Optional[str] = None
    evidenceUrls: Optional[List[str]] = None
    evidenceDescription: Optional[str] = None


class CounterResolution(BaseModel):
    status: Optional[str] = None
    adminNotes: Optional[str] = None


class BanUpdate(BaseModel):
    isBanned: bool
