import logging
from pathlib import Path
from typing import List

from jinja2 import Environment, FileSystemLoader, select_autoescape
from pydantic import BaseModel

from config import Settings
from model import LeaveRequest

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent


class EmailMessage(BaseModel):
    to: str
    subject: str
    html: str


class Notifier:
    """Outbound messages for the leave workflow and login.

    Callers do not wait on delivery and do not retry; a subclass that talks
    to a real provider should raise on failure and let the caller log it.
    """

    def notify_approval_needed(self, request: LeaveRequest, approver_email: str, approver_name: str, step_label: str):
        raise NotImplementedError

    def notify_status_changed(self, request: LeaveRequest, employee_email: str, status: str, approver_name: str):
        raise NotImplementedError

    def send_otp(self, email: str, otp: str, ttl_minutes: int):
        raise NotImplementedError


def leave_type_label(request: LeaveRequest) -> str:
    return request.leave_type.value.replace("_", " ")


class EmailNotifier(Notifier):
    """Demo mailer: renders the email, logs it and keeps it in ``outbox``."""

    def __init__(self, settings: Settings, template_dir: Path = BASE_DIR / "templates"):
        self.settings = settings
        self.outbox: List[EmailMessage] = []
        self.env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html"]),
        )

    def _render(self, template: str, **context) -> str:
        return self.env.get_template(template).render(
            app_name=self.settings.APP_NAME,
            company_name=self.settings.COMPANY_NAME,
            **context,
        )

    def _send(self, to: str, subject: str, html: str) -> EmailMessage:
        message = EmailMessage(to=to, subject=subject, html=html)
        self.outbox.append(message)
        logger.info("Email sent to %s: %s", to, subject)
        logger.debug("Email content: %s", html)
        return message

    def send_otp(self, email: str, otp: str, ttl_minutes: int):
        html = self._render("email/otp.html", otp=otp, ttl_minutes=ttl_minutes)
        return self._send(email, f"{self.settings.APP_NAME} - Login OTP", html)

    def notify_approval_needed(self, request, approver_email, approver_name, step_label):
        html = self._render(
            "email/approval_needed.html",
            request=request,
            leave_type=leave_type_label(request).upper(),
            approver_name=approver_name,
            step_label=step_label,
        )
        subject = f"{self.settings.APP_NAME} - Approval Required: {request.employee_name}"
        return self._send(approver_email, subject, html)

    def notify_status_changed(self, request, employee_email, status, approver_name):
        html = self._render(
            "email/status_changed.html",
            request=request,
            leave_type=leave_type_label(request).upper(),
            status=status,
            approved=status == "approved",
            approver_name=approver_name,
        )
        subject = f"{self.settings.APP_NAME} - Request {status.upper()}: {leave_type_label(request)} Leave"
        return self._send(employee_email, subject, html)
