from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from auth import OTP_PURPOSE_APPROVAL, AuthService
from config import Settings
from dependencies import get_app_settings, get_auth_service, get_current_user, get_current_db_user, get_engine, require_role
from exports import build_certificate_pdf, certificate_filename, csv_filename, export_requests_csv
from model import LeaveRequest, User, UserRole
from schemas import DashboardStats, Decision, ErrorResponse, LeaveCreate, LeaveRequestOut, LeaveSubmission, TokenData
from workflow import LeaveWorkflowEngine, WorkflowError

router = APIRouter(
    prefix="/leaves",
    tags=["leaves"],
    dependencies=[Depends(get_current_user)]
)

APPROVER_ROLES = (UserRole.manager, UserRole.hr, UserRole.coo)
OVERVIEW_ROLES = (UserRole.hr, UserRole.coo)

_ERROR_STATUS = {
    WorkflowError.NOT_FOUND: (status.HTTP_404_NOT_FOUND, "Leave request not found"),
    WorkflowError.STEP_NOT_FOUND: (status.HTTP_404_NOT_FOUND, "Approval step not found"),
    WorkflowError.ALREADY_FINAL: (status.HTTP_409_CONFLICT, "Leave request is already closed"),
    WorkflowError.INVALID_TRANSITION: (status.HTTP_409_CONFLICT, "This step is not awaiting a decision"),
}


def _http_error(code: int, detail: str) -> HTTPException:
    return HTTPException(status_code=code, detail=ErrorResponse(code=code, detail=detail).model_dump(mode="json"))


def _get_or_404(engine: LeaveWorkflowEngine, request_id: str) -> LeaveRequest:
    leave = engine.get_request(request_id)
    if not leave:
        raise _http_error(status.HTTP_404_NOT_FOUND, "Leave request not found")
    return leave


def _can_view(user: TokenData, leave: LeaveRequest) -> bool:
    if leave.employee_id == user.user_id or user.role in OVERVIEW_ROLES:
        return True
    if user.role == UserRole.manager:
        step = leave.step_for_role(UserRole.manager)
        return bool(step and step.approver_id == user.user_id)
    return False


@router.post("/", response_model=LeaveRequestOut, status_code=status.HTTP_201_CREATED)
def create_leave(
    leave: LeaveCreate,
    engine: LeaveWorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_db_user)
):
    result = engine.submit_request(LeaveSubmission(employee_id=current_user.id, **leave.model_dump()))
    if not result.ok:
        code, detail = _ERROR_STATUS[result.error]
        raise _http_error(code, detail)
    return result.request


@router.get("/mine", response_model=List[LeaveRequestOut])
def get_my_leaves(
    engine: LeaveWorkflowEngine = Depends(get_engine),
    current_user: TokenData = Depends(get_current_user)
):
    return engine.get_requests_by_employee(current_user.user_id)


@router.get("/pending", response_model=List[LeaveRequestOut])
def get_pending_approvals(
    engine: LeaveWorkflowEngine = Depends(get_engine),
    current_user: TokenData = Depends(require_role(*APPROVER_ROLES))
):
    return engine.get_requests_for_approver(current_user.role, current_user.user_id)


@router.get("/stats", response_model=DashboardStats)
def get_stats(
    engine: LeaveWorkflowEngine = Depends(get_engine),
    current_user: TokenData = Depends(get_current_user)
):
    return engine.get_dashboard_stats(current_user.role, current_user.user_id)


@router.get("/", response_model=List[LeaveRequestOut])
def get_leaves(
    status: str = None,
    department: str = None,
    engine: LeaveWorkflowEngine = Depends(get_engine),
    current_user: TokenData = Depends(require_role(*OVERVIEW_ROLES))
):
    leaves = engine.list_requests()

    # Apply filters
    if status:
        leaves = [r for r in leaves if r.final_status.value == status]
    if department:
        leaves = [r for r in leaves if r.department == department]
    return leaves


@router.get("/export.csv")
def export_leaves_csv(
    engine: LeaveWorkflowEngine = Depends(get_engine),
    current_user: TokenData = Depends(require_role(*OVERVIEW_ROLES))
):
    return Response(
        content=export_requests_csv(engine.list_requests()),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{csv_filename()}"'},
    )


@router.get("/{request_id}", response_model=LeaveRequestOut)
def get_leave(
    request_id: str,
    engine: LeaveWorkflowEngine = Depends(get_engine),
    current_user: TokenData = Depends(get_current_user)
):
    leave = _get_or_404(engine, request_id)
    if not _can_view(current_user, leave):
        raise _http_error(status.HTTP_403_FORBIDDEN, "You cannot view this leave request")
    return leave


@router.get("/{request_id}/certificate")
def download_certificate(
    request_id: str,
    engine: LeaveWorkflowEngine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
    current_user: TokenData = Depends(get_current_user)
):
    leave = _get_or_404(engine, request_id)
    if leave.employee_id != current_user.user_id and current_user.role not in OVERVIEW_ROLES:
        raise _http_error(status.HTTP_403_FORBIDDEN, "You cannot download this certificate")
    if not leave.pdf_generated:
        raise _http_error(status.HTTP_409_CONFLICT, "Certificate is available once the request is closed")

    return Response(
        content=build_certificate_pdf(leave, settings.APP_NAME, settings.COMPANY_NAME),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{certificate_filename(leave, settings.CERTIFICATE_PREFIX)}"'
        },
    )


@router.post("/{request_id}/steps/{step_id}/decision", response_model=LeaveRequestOut)
def decide_leave_step(
    request_id: str,
    step_id: str,
    decision: Decision,
    engine: LeaveWorkflowEngine = Depends(get_engine),
    auth_service: AuthService = Depends(get_auth_service),
    current_user: TokenData = Depends(require_role(*APPROVER_ROLES))
):
    leave = _get_or_404(engine, request_id)
    step = next((s for s in leave.approval_steps if s.id == step_id), None)
    if not step:
        raise _http_error(status.HTTP_404_NOT_FOUND, "Approval step not found")

    if step.approver_role != current_user.role:
        raise _http_error(status.HTTP_403_FORBIDDEN, "This step belongs to another role")
    if current_user.role == UserRole.manager and step.approver_id != current_user.user_id:
        raise _http_error(status.HTTP_403_FORBIDDEN, "This request is assigned to another manager")

    # Only spend an approval code on a decision that can go through
    error = engine.check_decision(request_id, step_id)
    if error:
        code, detail = _ERROR_STATUS[error]
        raise _http_error(code, detail)

    otp_verified = False
    if decision.otp:
        if not auth_service.verify_otp(current_user.username, decision.otp, OTP_PURPOSE_APPROVAL):
            raise _http_error(status.HTTP_400_BAD_REQUEST, "Invalid OTP")
        otp_verified = True

    result = engine.approve_request(
        request_id,
        step_id,
        decision.approved,
        remarks=decision.remarks,
        otp_verified=otp_verified,
        actor_id=current_user.user_id,
    )
    if not result.ok:
        code, detail = _ERROR_STATUS[result.error]
        raise _http_error(code, detail)
    return result.request
