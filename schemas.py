from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from model import ApprovalStatus, EmergencyContact, LeaveType, UserRole


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Auth

class LoginRequest(BaseModel):
    username: str
    password: str


class OTPSendRequest(BaseModel):
    username: str


class OTPLoginRequest(BaseModel):
    username: str
    otp: str = Field(pattern=r"^\d{4,8}$")


class OTPChallenge(BaseModel):
    username: str
    purpose: str
    expires_at: datetime
    otp: Optional[str] = None  # demo only


class Token(BaseModel):
    access_token: str
    token_type: str


class TokenData(BaseModel):
    username: str
    role: UserRole
    user_id: str


# Users

class UserBase(BaseModel):
    username: str = Field(min_length=1)
    name: str = Field(min_length=1)
    email: EmailStr
    role: UserRole = UserRole.employee
    department: str = Field(min_length=1)
    manager_id: Optional[str] = None


class UserCreate(UserBase):
    password: Optional[str] = None


class UserUpdate(BaseModel):
    username: Optional[str] = None
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    department: Optional[str] = None
    manager_id: Optional[str] = None
    password: Optional[str] = None


class UserOut(UserBase):
    id: str

    model_config = ConfigDict(from_attributes=True)


# Leave requests

class LeaveSubmission(BaseModel):
    """Input handed to the workflow engine. No validation beyond types."""

    employee_id: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    exit_reentry_visa: bool = False
    emergency_contact: Optional[EmergencyContact] = None
    reason: str


class LeaveCreate(BaseModel):
    leave_type: LeaveType
    start_date: date
    end_date: date
    exit_reentry_visa: bool = False
    emergency_contact: Optional[EmergencyContact] = None
    reason: str

    @field_validator("reason")
    @classmethod
    def reason_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Reason is required")
        return v.strip()

    @field_validator("start_date")
    @classmethod
    def start_not_in_past(cls, v: date) -> date:
        if v < date.today():
            raise ValueError("Start date cannot be in the past")
        return v

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end_date < self.start_date:
            raise ValueError("End date must be on or after start date")
        return self


class Decision(BaseModel):
    approved: bool
    remarks: Optional[str] = None
    otp: Optional[str] = Field(default=None, pattern=r"^\d{4,8}$")


class ApprovalStepOut(BaseModel):
    id: str
    step: int
    approver_role: UserRole
    approver_id: Optional[str] = None
    approver_name: Optional[str] = None
    status: ApprovalStatus
    timestamp: Optional[datetime] = None
    remarks: Optional[str] = None
    digital_signature: bool
    otp_verified: bool

    model_config = ConfigDict(from_attributes=True)


class LeaveRequestOut(BaseModel):
    id: str
    employee_id: str
    employee_name: str
    department: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    duration: int
    exit_reentry_visa: bool
    emergency_contact: Optional[EmergencyContact] = None
    reason: str
    submitted_at: datetime
    current_step: int
    final_status: ApprovalStatus
    approval_steps: List[ApprovalStepOut]
    pdf_generated: bool

    model_config = ConfigDict(from_attributes=True)


class DashboardStats(BaseModel):
    role: UserRole
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    total_approved: Optional[int] = None
    approval_rate: Optional[int] = None
    department_breakdown: Optional[Dict[str, int]] = None


# Admin

class HolidayCreate(BaseModel):
    name: str = Field(min_length=1)
    date: date
    type: str = "National"


# Errors

class ErrorResponse(BaseModel):
    detail: str
    code: int
    timestamp: datetime = Field(default_factory=_utcnow)


class SuccessResponse(BaseModel):
    message: str
    data: Optional[dict] = None
    timestamp: datetime = Field(default_factory=_utcnow)
