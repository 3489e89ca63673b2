import csv
import io
import re
from datetime import date, datetime, timezone
from typing import Iterable, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from model import ApprovalStatus, LeaveRequest

CSV_HEADER = [
    "Request ID",
    "Employee Name",
    "Department",
    "Leave Type",
    "Start Date",
    "End Date",
    "Duration",
    "Status",
    "Submitted",
]


def csv_filename(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"leave_requests_{today.isoformat()}.csv"


def certificate_filename(request: LeaveRequest, prefix: str, ext: str = "pdf") -> str:
    employee = re.sub(r"\s+", "_", request.employee_name)
    return f"{prefix}_{request.id}_{employee}.{ext}"


def export_requests_csv(requests: Iterable[LeaveRequest]) -> str:
    """One row per request, ISO dates."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for r in requests:
        writer.writerow([
            r.id,
            r.employee_name,
            r.department,
            r.leave_type.value,
            r.start_date.isoformat(),
            r.end_date.isoformat(),
            r.duration,
            r.final_status.value,
            r.submitted_at.date().isoformat(),
        ])
    return buffer.getvalue()


def _p(text) -> str:
    return escape(str(text))


def build_certificate_pdf(request: LeaveRequest, app_name: str, company_name: str) -> bytes:
    """Render the leave approval certificate."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=40,
        leftMargin=40,
        topMargin=50,
        bottomMargin=40,
        title=f"Leave Request {request.id}",
    )

    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(name="Header", fontSize=16, leading=20, alignment=1, spaceAfter=6))
    styles.add(ParagraphStyle(name="Small", fontSize=8, textColor=colors.grey))

    elements = [
        Paragraph(_p(app_name), styles["Header"]),
        Paragraph(_p(company_name), styles["Small"]),
        Spacer(1, 12),
        Paragraph("LEAVE REQUEST APPROVAL CERTIFICATE", styles["Heading2"]),
        Spacer(1, 8),
    ]

    elements.append(Paragraph("<b>EMPLOYEE INFORMATION</b>", styles["Heading3"]))
    elements.append(Paragraph(f"Employee Name: {_p(request.employee_name)}", styles["Normal"]))
    elements.append(Paragraph(f"Department: {_p(request.department)}", styles["Normal"]))
    elements.append(Paragraph(f"Employee ID: {_p(request.employee_id)}", styles["Normal"]))
    elements.append(Spacer(1, 10))

    elements.append(Paragraph("<b>LEAVE DETAILS</b>", styles["Heading3"]))
    visa = "Required" if request.exit_reentry_visa else "Not Required"
    for line in (
        f"Leave Type: {request.leave_type.value.upper().replace('_', ' ')}",
        f"Start Date: {request.start_date.isoformat()}",
        f"End Date: {request.end_date.isoformat()}",
        f"Duration: {request.duration} days",
        f"Exit/Re-entry Visa: {visa}",
        f"Reason: {request.reason}",
    ):
        elements.append(Paragraph(_p(line), styles["Normal"]))
    elements.append(Spacer(1, 10))

    contact = request.emergency_contact
    if contact and contact.name:
        elements.append(Paragraph("<b>EMERGENCY CONTACT</b>", styles["Heading3"]))
        elements.append(Paragraph(f"Name: {_p(contact.name)}", styles["Normal"]))
        elements.append(Paragraph(f"Phone: {_p(contact.phone)}", styles["Normal"]))
        elements.append(Paragraph(f"Relationship: {_p(contact.relationship)}", styles["Normal"]))
        elements.append(Spacer(1, 10))

    elements.append(Paragraph("<b>APPROVAL TRAIL</b>", styles["Heading3"]))
    trail = [["#", "Step", "Approver", "Status", "Date", "Remarks", "Signed", "OTP"]]
    for step in request.approval_steps:
        trail.append([
            step.step,
            f"{step.approver_role.value.upper()} APPROVAL",
            step.approver_name or "-",
            step.status.value.upper(),
            step.timestamp.strftime("%Y-%m-%d %H:%M") if step.timestamp else "-",
            Paragraph(_p(step.remarks or ""), styles["Small"]),
            "Yes" if step.digital_signature else "-",
            "Yes" if step.otp_verified else "-",
        ])
    elements.append(
        Table(
            trail,
            colWidths=[20, 90, 85, 60, 75, 90, 35, 30],
            style=TableStyle([
                ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
            ]),
        )
    )
    elements.append(Spacer(1, 16))

    status_colour = "green" if request.final_status == ApprovalStatus.approved else "red"
    elements.append(
        Paragraph(
            f'<font color="{status_colour}"><b>FINAL STATUS: {request.final_status.value.upper()}</b></font>',
            styles["Heading2"],
        )
    )
    elements.append(Spacer(1, 30))
    elements.append(
        Paragraph(f"This document is digitally generated and certified by {_p(app_name)}", styles["Small"])
    )
    elements.append(
        Paragraph(
            f"Generated on: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M')} UTC",
            styles["Small"],
        )
    )

    doc.build(elements)
    return buffer.getvalue()
