"""Shared fixtures: every test gets its own store, directory and engine."""

from datetime import date, timedelta
from typing import Iterator, List, Tuple

import pytest
from fastapi.testclient import TestClient

from config import Settings
from crud import UserDirectory
from database import Database, seed_demo_data
from main import create_app
from model import LeaveType
from notifications import EmailNotifier, Notifier
from schemas import LeaveSubmission
from workflow import LeaveWorkflowEngine

DEMO_PASSWORD = "password123"

# Demo organisation ids
EMPLOYEE_ID = "1"
MANAGER_ID = "2"
HR_ID = "3"
COO_ID = "4"
SALES_EMPLOYEE_ID = "5"
SALES_MANAGER_ID = "6"


class RecordingNotifier(Notifier):
    """Keeps every call instead of sending anything."""

    def __init__(self):
        self.calls: List[Tuple] = []

    def notify_approval_needed(self, request, approver_email, approver_name, step_label):
        self.calls.append(("approval_needed", request.id, approver_email, approver_name, step_label))

    def notify_status_changed(self, request, employee_email, status, approver_name):
        self.calls.append(("status_changed", request.id, employee_email, status, approver_name))

    def send_otp(self, email, otp, ttl_minutes):
        self.calls.append(("otp", email, otp, ttl_minutes))


class FailingNotifier(Notifier):
    def notify_approval_needed(self, *args):
        raise ConnectionError("mail server down")

    def notify_status_changed(self, *args):
        raise ConnectionError("mail server down")

    def send_otp(self, *args):
        raise ConnectionError("mail server down")


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def db(settings) -> Database:
    store = Database()
    seed_demo_data(store, settings.DEFAULT_USER_PASSWORD)
    return store


@pytest.fixture
def directory(db, settings) -> UserDirectory:
    return UserDirectory(db, default_password=settings.DEFAULT_USER_PASSWORD)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def engine(db, directory, notifier) -> LeaveWorkflowEngine:
    return LeaveWorkflowEngine(db, directory, notifier)


@pytest.fixture
def submission():
    def _make(employee_id=EMPLOYEE_ID, start=date(2025, 1, 10), end=date(2025, 1, 12), **kwargs):
        return LeaveSubmission(
            employee_id=employee_id,
            leave_type=kwargs.pop("leave_type", LeaveType.annual),
            start_date=start,
            end_date=end,
            reason=kwargs.pop("reason", "Family visit"),
            **kwargs,
        )
    return _make


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
def email_notifier(settings) -> EmailNotifier:
    return EmailNotifier(settings)


@pytest.fixture
def app(settings, db, email_notifier):
    return create_app(settings=settings, db=db, notifier=email_notifier)


@pytest.fixture
def client(app) -> Iterator[TestClient]:
    # https so the Secure session cookie is sent back
    with TestClient(app, base_url="https://testserver") as c:
        yield c


@pytest.fixture
def login(client):
    def _login(username: str, password: str = DEMO_PASSWORD) -> dict:
        resp = client.post("/auth/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()
    return _login


@pytest.fixture
def leave_payload():
    start = date.today() + timedelta(days=7)
    return {
        "leave_type": "annual",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=2)).isoformat(),
        "exit_reentry_visa": True,
        "emergency_contact": {"name": "Mona Doe", "phone": "+966500000000", "relationship": "Spouse"},
        "reason": "Family visit",
    }
