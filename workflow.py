import logging
import uuid
from collections import Counter
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from crud import UserDirectory
from database import Database
from model import (
    APPROVAL_CHAIN,
    FINAL_STEP,
    ApprovalStatus,
    ApprovalStep,
    LeaveRequest,
    UserRole,
)
from notifications import Notifier
from schemas import DashboardStats, LeaveSubmission

logger = logging.getLogger(__name__)


class WorkflowError(str, Enum):
    NOT_FOUND = "not_found"
    STEP_NOT_FOUND = "step_not_found"
    ALREADY_FINAL = "already_final"
    INVALID_TRANSITION = "invalid_transition"


class DecisionOutcome(str, Enum):
    ADVANCED = "advanced"
    APPROVED = "approved"
    REJECTED = "rejected"


class WorkflowResult(BaseModel):
    ok: bool
    request: Optional[LeaveRequest] = None
    error: Optional[WorkflowError] = None
    outcome: Optional[DecisionOutcome] = None

    @classmethod
    def failure(cls, error: WorkflowError) -> "WorkflowResult":
        return cls(ok=False, error=error)


def leave_duration(start, end) -> int:
    """Inclusive day count; a same-day leave is one day."""
    return abs((end - start).days) + 1


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _step_label(role: UserRole) -> str:
    return f"{role.value.upper()} Approval"


class LeaveWorkflowEngine:
    """Owns the leave requests and drives them through manager, HR and COO.

    State per request::

        pending(step 1) -> pending(step 2) -> pending(step 3) -> approved
        any pending step --reject--> rejected

    Approved and rejected requests are terminal.
    """

    def __init__(self, db: Database, directory: UserDirectory, notifier: Notifier):
        self.db = db
        self.directory = directory
        self.notifier = notifier

    # =========================
    # Notifications
    # =========================
    def _dispatch(self, method: str, *args):
        # Fire-and-forget: a failed notification never undoes a transition
        try:
            getattr(self.notifier, method)(*args)
        except Exception:
            logger.exception("Notification %s failed", method)

    # =========================
    # Approver resolution
    # =========================
    def _resolve_approver_id(self, role: UserRole, employee) -> Optional[str]:
        if role == UserRole.manager:
            manager = self.directory.get_user_by_id(employee.manager_id)
            if manager and manager.role == UserRole.manager:
                return manager.id
            return None

        # Any holder of the role may act; the binding is only used to notify
        holders = self.directory.list_by_role(role)
        return holders[0].id if holders else None

    def _build_steps(self, employee) -> tuple:
        return tuple(
            ApprovalStep(
                id=_new_id(f"step_{index}"),
                step=index,
                approver_role=role,
                approver_id=self._resolve_approver_id(role, employee),
            )
            for index, role in enumerate(APPROVAL_CHAIN, start=1)
        )

    # =========================
    # Engine API
    # =========================
    def submit_request(self, data: LeaveSubmission) -> WorkflowResult:
        """Create a request with its three approval steps and notify the manager."""
        employee = self.directory.get_user_by_id(data.employee_id)
        if not employee:
            return WorkflowResult.failure(WorkflowError.NOT_FOUND)

        request = LeaveRequest(
            id=_new_id("req"),
            employee_id=employee.id,
            employee_name=employee.name,
            department=employee.department,
            leave_type=data.leave_type,
            start_date=data.start_date,
            end_date=data.end_date,
            duration=leave_duration(data.start_date, data.end_date),
            exit_reentry_visa=data.exit_reentry_visa,
            emergency_contact=data.emergency_contact,
            reason=data.reason,
            submitted_at=datetime.now(timezone.utc),
            approval_steps=self._build_steps(employee),
        )
        self.db.replace_leave_requests([*self.db.leave_requests, request])
        logger.info("Leave request %s submitted by %s (%d days)", request.id, employee.username, request.duration)

        manager = self.directory.get_user_by_id(request.approval_steps[0].approver_id)
        if manager:
            self._dispatch("notify_approval_needed", request, manager.email, manager.name, "Manager Approval")
        else:
            logger.warning("No manager found for %s; approval email not sent", employee.username)

        return WorkflowResult(ok=True, request=request)

    def check_decision(self, request_id: str, step_id: str) -> Optional[WorkflowError]:
        """Why a decision on this step would be refused, or None if it can be made."""
        request = self.get_request(request_id)
        if not request:
            return WorkflowError.NOT_FOUND

        step = next((s for s in request.approval_steps if s.id == step_id), None)
        if not step:
            return WorkflowError.STEP_NOT_FOUND

        if request.is_final:
            return WorkflowError.ALREADY_FINAL

        if step.step != request.current_step or step.status != ApprovalStatus.pending:
            return WorkflowError.INVALID_TRANSITION
        return None

    def approve_request(
        self,
        request_id: str,
        step_id: str,
        approved: bool,
        remarks: Optional[str] = None,
        otp_verified: bool = False,
        actor_id: Optional[str] = None,
    ) -> WorkflowResult:
        """Approve or reject the active step of a request."""
        error = self.check_decision(request_id, step_id)
        if error:
            return WorkflowResult.failure(error)

        request = self.get_request(request_id)
        step = next(s for s in request.approval_steps if s.id == step_id)

        actor = self.directory.get_user_by_id(actor_id) or self.directory.get_user_by_id(step.approver_id)
        approver_name = actor.name if actor else step.approver_role.value.upper()

        decided = step.model_copy(update={
            "status": ApprovalStatus.approved if approved else ApprovalStatus.rejected,
            "timestamp": datetime.now(timezone.utc),
            "remarks": remarks,
            "otp_verified": otp_verified,
            "digital_signature": True,
            "approver_name": approver_name,
        })
        steps = tuple(decided if s.id == step_id else s for s in request.approval_steps)

        current_step = request.current_step
        final_status = request.final_status
        if not approved:
            final_status = ApprovalStatus.rejected
            outcome = DecisionOutcome.REJECTED
        elif current_step < FINAL_STEP:
            current_step += 1
            outcome = DecisionOutcome.ADVANCED
        else:
            final_status = ApprovalStatus.approved
            outcome = DecisionOutcome.APPROVED

        updated = request.model_copy(update={
            "approval_steps": steps,
            "current_step": current_step,
            "final_status": final_status,
            "pdf_generated": final_status != ApprovalStatus.pending,
        })
        self.db.replace_leave_requests(updated if r.id == request_id else r for r in self.db.leave_requests)
        logger.info(
            "Leave request %s step %d %s by %s",
            request_id, step.step, decided.status.value, approver_name,
        )

        self._notify_after_decision(updated, outcome, actor.name if actor else None)
        return WorkflowResult(ok=True, request=updated, outcome=outcome)

    def _notify_after_decision(self, request: LeaveRequest, outcome: DecisionOutcome, approver_name: Optional[str]):
        if outcome == DecisionOutcome.ADVANCED:
            next_step = request.active_step
            next_approver = self.directory.get_user_by_id(next_step.approver_id) if next_step else None
            if next_approver:
                self._dispatch(
                    "notify_approval_needed",
                    request, next_approver.email, next_approver.name, _step_label(next_approver.role),
                )
            else:
                logger.warning("No approver bound to step %d of %s", request.current_step, request.id)
            return

        if not approver_name:
            approver_name = "COO" if outcome == DecisionOutcome.APPROVED else "Approver"
        employee = self.directory.get_user_by_id(request.employee_id)
        if employee:
            self._dispatch("notify_status_changed", request, employee.email, request.final_status.value, approver_name)

    # =========================
    # Queries
    # =========================
    def get_request(self, request_id: str) -> Optional[LeaveRequest]:
        return next((r for r in self.db.leave_requests if r.id == request_id), None)

    def list_requests(self) -> List[LeaveRequest]:
        return list(self.db.leave_requests)

    def get_requests_for_approver(self, role: UserRole, approver_id: Optional[str] = None) -> List[LeaveRequest]:
        """Requests whose active step belongs to ``role`` and is still pending.

        Managers with an id only see steps bound to them; HR and COO see the
        whole queue for their role.
        """
        role = UserRole(role)
        result = []
        for request in self.db.leave_requests:
            step = request.active_step
            if not step or step.approver_role != role or step.status != ApprovalStatus.pending:
                continue
            if role == UserRole.manager and approver_id and step.approver_id != approver_id:
                continue
            result.append(request)
        return result

    def get_requests_by_employee(self, employee_id: str) -> List[LeaveRequest]:
        return [r for r in self.db.leave_requests if r.employee_id == employee_id]

    def get_dashboard_stats(self, role: UserRole, user_id: Optional[str] = None) -> DashboardStats:
        role = UserRole(role)
        if role == UserRole.employee:
            mine = self.get_requests_by_employee(user_id)
            statuses = Counter(r.final_status for r in mine)
            return DashboardStats(
                role=role,
                total=len(mine),
                pending=statuses[ApprovalStatus.pending],
                approved=statuses[ApprovalStatus.approved],
                rejected=statuses[ApprovalStatus.rejected],
            )

        requests = self.list_requests()
        steps = [r.step_for_role(role) for r in requests]
        if role == UserRole.manager and user_id:
            steps = [s for s in steps if s and s.approver_id == user_id]
        steps = [s for s in steps if s]
        statuses = Counter(s.status for s in steps)

        stats = DashboardStats(
            role=role,
            total=len(steps) if role == UserRole.manager else len(requests),
            pending=len(self.get_requests_for_approver(role, user_id)),
            approved=statuses[ApprovalStatus.approved],
            rejected=statuses[ApprovalStatus.rejected],
        )
        if role in (UserRole.hr, UserRole.coo):
            stats.department_breakdown = dict(Counter(r.department for r in requests))
        if role == UserRole.coo:
            stats.total_approved = sum(1 for r in requests if r.final_status == ApprovalStatus.approved)
            stats.approval_rate = round(stats.total_approved / len(requests) * 100) if requests else 0
        return stats
