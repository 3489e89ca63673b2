from datetime import date, datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict


class UserRole(str, Enum):
    employee = "employee"
    manager = "manager"
    hr = "hr"
    coo = "coo"


class LeaveType(str, Enum):
    annual = "annual"
    sick = "sick"
    emergency = "emergency"
    maternity = "maternity"
    hajj = "hajj"
    unpaid = "unpaid"


class ApprovalStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


# Fixed approval chain, in step order
APPROVAL_CHAIN: Tuple[UserRole, ...] = (UserRole.manager, UserRole.hr, UserRole.coo)
FINAL_STEP = len(APPROVAL_CHAIN)


class Record(BaseModel):
    """Base for stored records. Records are never mutated, only replaced."""

    model_config = ConfigDict(frozen=True)


class User(Record):
    id: str
    username: str
    name: str
    email: str
    role: UserRole
    department: str
    manager_id: Optional[str] = None
    password_hash: str


class EmergencyContact(Record):
    name: str = ""
    phone: str = ""
    relationship: str = ""


class ApprovalStep(Record):
    id: str
    step: int
    approver_role: UserRole
    approver_id: Optional[str] = None
    approver_name: Optional[str] = None
    status: ApprovalStatus = ApprovalStatus.pending
    timestamp: Optional[datetime] = None
    remarks: Optional[str] = None
    digital_signature: bool = False
    otp_verified: bool = False


class LeaveRequest(Record):
    id: str
    employee_id: str
    employee_name: str
    department: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    duration: int
    exit_reentry_visa: bool = False
    emergency_contact: Optional[EmergencyContact] = None
    reason: str
    submitted_at: datetime
    current_step: int = 1
    final_status: ApprovalStatus = ApprovalStatus.pending
    approval_steps: Tuple[ApprovalStep, ...]
    pdf_generated: bool = False

    @property
    def active_step(self) -> Optional[ApprovalStep]:
        return next((s for s in self.approval_steps if s.step == self.current_step), None)

    def step_for_role(self, role: UserRole) -> Optional[ApprovalStep]:
        return next((s for s in self.approval_steps if s.approver_role == role), None)

    @property
    def is_final(self) -> bool:
        return self.final_status != ApprovalStatus.pending
