from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from auth import OTP_PURPOSE_APPROVAL
from config import Settings
from conftest import EMPLOYEE_ID, HR_ID, MANAGER_ID
from main import create_app


@pytest.fixture
def submitted(client, login, leave_payload):
    """A request filed by john.doe through the API."""
    login("john.doe")
    resp = client.post("/leaves/", json=leave_payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _decide(client, leave, step_index, approved=True, **extra):
    step_id = leave["approval_steps"][step_index]["id"]
    return client.post(
        f"/leaves/{leave['id']}/steps/{step_id}/decision",
        json={"approved": approved, "remarks": "ok", **extra},
    )


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["users"] == 8
    assert resp.headers["X-Frame-Options"] == "DENY"


def test_login_sets_cookie(client, login):
    body = login("john.doe")

    assert body["user"]["id"] == EMPLOYEE_ID
    assert "password_hash" not in body["user"]
    assert client.cookies.get("access_token") == body["access_token"]

    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.json()["username"] == "john.doe"


def test_login_with_wrong_password(client):
    resp = client.post("/auth/login", json={"username": "john.doe", "password": "nope"})

    assert resp.status_code == 401
    assert resp.json()["detail"]["detail"] == "Invalid credentials"


def test_protected_routes_need_a_session(client):
    assert client.get("/auth/me").status_code == 401
    assert client.get("/leaves/mine").status_code == 401
    assert client.get("/employees/").status_code == 401


def test_logout_revokes_token(client, login):
    token = login("john.doe")["access_token"]

    assert client.post("/auth/logout").status_code == 200
    assert client.get("/auth/me").status_code == 401

    client.cookies.clear()
    client.cookies.set("access_token", token)
    resp = client.get("/auth/me")
    assert resp.status_code == 401
    assert resp.json()["detail"]["detail"] == "Token not found or revoked"


def test_otp_login(client, email_notifier):
    challenge = client.post("/auth/otp/send", json={"username": "hr.admin"})
    assert challenge.status_code == 200
    otp = challenge.json()["otp"]
    assert otp in email_notifier.outbox[-1].html

    resp = client.post("/auth/otp/login", json={"username": "hr.admin", "otp": otp})
    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == HR_ID

    replay = client.post("/auth/otp/login", json={"username": "hr.admin", "otp": otp})
    assert replay.status_code == 401


def test_otp_send_for_unknown_user(client):
    assert client.post("/auth/otp/send", json={"username": "ghost"}).status_code == 400


def test_otp_send_is_rate_limited(client):
    codes = [client.post("/auth/otp/send", json={"username": "john.doe"}).status_code for _ in range(6)]

    assert codes[:5] == [200] * 5
    assert codes[5] == 429


def test_submit_leave(submitted, email_notifier):
    assert submitted["employee_name"] == "John Doe"
    assert submitted["duration"] == 3
    assert submitted["final_status"] == "pending"
    assert submitted["current_step"] == 1
    assert [s["approver_role"] for s in submitted["approval_steps"]] == ["manager", "hr", "coo"]
    assert submitted["approval_steps"][0]["approver_id"] == MANAGER_ID
    assert email_notifier.outbox[-1].to == "sarah.manager@atcl.sa"


@pytest.mark.parametrize("change", [
    {"start_date": (date.today() - timedelta(days=1)).isoformat()},
    {"end_date": date.today().isoformat(), "start_date": (date.today() + timedelta(days=3)).isoformat()},
    {"reason": "   "},
    {"leave_type": "sabbatical"},
])
def test_submit_rejects_invalid_input(client, login, leave_payload, change):
    login("john.doe")
    resp = client.post("/leaves/", json={**leave_payload, **change})

    assert resp.status_code == 422


def test_employee_sees_own_requests(client, login, submitted):
    mine = client.get("/leaves/mine").json()
    assert [r["id"] for r in mine] == [submitted["id"]]
    assert client.get(f"/leaves/{submitted['id']}").status_code == 200

    login("ali.sales")
    assert client.get("/leaves/mine").json() == []
    assert client.get(f"/leaves/{submitted['id']}").status_code == 403


def test_unknown_request_is_404(client, login):
    login("hr.admin")

    assert client.get("/leaves/req_missing").status_code == 404


def test_manager_queue_is_scoped(client, login, submitted):
    login("sarah.manager")
    assert [r["id"] for r in client.get("/leaves/pending").json()] == [submitted["id"]]

    login("omar.salesmgr")
    assert client.get("/leaves/pending").json() == []


def test_employee_has_no_queue(client, login):
    login("john.doe")

    assert client.get("/leaves/pending").status_code == 403


def test_decision_by_other_manager_is_forbidden(client, login, submitted):
    login("omar.salesmgr")

    assert _decide(client, submitted, 0).status_code == 403


def test_decision_by_wrong_role_is_forbidden(client, login, submitted):
    login("hr.admin")

    assert _decide(client, submitted, 0).status_code == 403


def test_decision_out_of_turn_conflicts(client, login, submitted):
    login("hr.admin")

    resp = _decide(client, submitted, 1)
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == 409


def test_decision_with_invalid_otp(client, login, submitted):
    login("sarah.manager")

    resp = _decide(client, submitted, 0, otp="123456")
    assert resp.status_code == 400
    assert resp.json()["detail"]["detail"] == "Invalid OTP"


def test_decision_with_approval_otp(client, login, submitted):
    login("sarah.manager")
    otp = client.post("/auth/otp/approval").json()["otp"]

    resp = _decide(client, submitted, 0, otp=otp)

    assert resp.status_code == 200
    step = resp.json()["approval_steps"][0]
    assert step["status"] == "approved"
    assert step["otp_verified"] is True
    assert step["approver_name"] == "Sarah Al-Rashid"
    assert resp.json()["current_step"] == 2


def test_full_chain_and_certificate(client, login, submitted, email_notifier):
    login("sarah.manager")
    assert _decide(client, submitted, 0).status_code == 200
    assert email_notifier.outbox[-1].to == "hr.admin@atcl.sa"

    login("john.doe")
    early = client.get(f"/leaves/{submitted['id']}/certificate")
    assert early.status_code == 409

    login("hr.admin")
    assert _decide(client, submitted, 1).status_code == 200
    login("coo.executive")
    final = _decide(client, submitted, 2)
    assert final.status_code == 200
    assert final.json()["final_status"] == "approved"
    assert final.json()["pdf_generated"] is True
    assert email_notifier.outbox[-1].subject == "ATCL Leave System - Request APPROVED: annual Leave"

    again = _decide(client, submitted, 2)
    assert again.status_code == 409

    login("john.doe")
    pdf = client.get(f"/leaves/{submitted['id']}/certificate")
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert f"ATCL_Leave_Request_{submitted['id']}_John_Doe.pdf" in pdf.headers["content-disposition"]
    assert pdf.content.startswith(b"%PDF")


def test_rejection_closes_request(client, login, submitted, email_notifier):
    login("sarah.manager")

    resp = _decide(client, submitted, 0, approved=False)

    assert resp.json()["final_status"] == "rejected"
    assert resp.json()["approval_steps"][1]["status"] == "pending"
    assert email_notifier.outbox[-1].to == "john.doe@atcl.sa"


def test_list_and_filter_requests(client, login, submitted):
    login("coo.executive")

    assert len(client.get("/leaves/").json()) == 1
    assert client.get("/leaves/", params={"status": "approved"}).json() == []
    assert client.get("/leaves/", params={"department": "Sales"}).json() == []

    login("john.doe")
    assert client.get("/leaves/").status_code == 403


def test_stats(client, login, submitted):
    assert client.get("/leaves/stats").json()["pending"] == 1

    login("coo.executive")
    stats = client.get("/leaves/stats").json()
    assert stats["total"] == 1
    assert stats["department_breakdown"] == {"Software Development": 1}
    assert stats["approval_rate"] == 0


def test_csv_export(client, login, submitted):
    login("hr.admin")

    resp = client.get("/leaves/export.csv")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "leave_requests_" in resp.headers["content-disposition"]
    lines = resp.text.splitlines()
    assert lines[0].startswith("Request ID,Employee Name")
    assert lines[1].startswith(f"{submitted['id']},John Doe,")


def test_csv_export_needs_overview_role(client, login):
    login("john.doe")

    assert client.get("/leaves/export.csv").status_code == 403


def test_employee_admin(client, login):
    login("hr.admin")
    created = client.post("/employees/", json={
        "username": "layla.ops",
        "name": "Layla Al-Harbi",
        "email": "layla.ops@atcl.sa",
        "department": "Operations",
        "manager_id": MANAGER_ID,
        "password": "layla-pass",
    })
    assert created.status_code == 201
    user_id = created.json()["id"]

    dup = client.post("/employees/", json={**created.json(), "password": "x"})
    assert dup.status_code == 400

    assert client.put(f"/employees/{user_id}", json={"department": "Finance"}).json()["department"] == "Finance"
    assert len(client.get("/employees/managers").json()) == 3
    assert client.delete(f"/employees/{user_id}").status_code == 204
    assert client.get(f"/employees/{user_id}").status_code == 404
    assert client.delete(f"/employees/{HR_ID}").status_code == 400


def test_new_employee_can_log_in(client, login):
    login("hr.admin")
    client.post("/employees/", json={
        "username": "layla.ops",
        "name": "Layla Al-Harbi",
        "email": "layla.ops@atcl.sa",
        "department": "Operations",
        "manager_id": MANAGER_ID,
    })

    assert login("layla.ops", "password123")["user"]["role"] == "employee"


def test_deleted_user_loses_session(client, login):
    login("hr.admin")
    hr_cookie = client.cookies.get("access_token")
    login("john.doe")
    john_cookie = client.cookies.get("access_token")

    client.cookies.clear()
    client.cookies.set("access_token", hr_cookie)
    assert client.delete(f"/employees/{EMPLOYEE_ID}").status_code == 204

    client.cookies.clear()
    client.cookies.set("access_token", john_cookie)
    assert client.get("/auth/me").status_code == 401


def test_employees_are_hr_only(client, login):
    login("john.doe")

    assert client.get("/employees/").status_code == 403
    assert client.get(f"/employees/{EMPLOYEE_ID}").status_code == 200
    assert client.get(f"/employees/{HR_ID}").status_code == 403


def test_quotas_and_holidays(client, login):
    login("hr.admin")

    assert client.get("/admin/quotas").json()["annual"] == 30
    quotas = {**client.get("/admin/quotas").json(), "annual": 25}
    assert client.put("/admin/quotas", json=quotas).json()["annual"] == 25

    holidays = client.get("/admin/holidays").json()
    assert [h["date"] for h in holidays] == sorted(h["date"] for h in holidays)

    added = client.post("/admin/holidays", json={"name": "Founding Day", "date": "2025-02-22"})
    assert added.status_code == 201
    assert added.json()["id"] == 5
    assert client.delete("/admin/holidays/5").status_code == 204
    assert client.delete("/admin/holidays/5").status_code == 404


def test_admin_is_hr_only(client, login):
    login("coo.executive")

    assert client.get("/admin/quotas").status_code == 403


def test_rate_limits_follow_app_settings(db, email_notifier):
    settings = Settings(_env_file=None, OTP_RATE_LIMIT="2/minute")
    app = create_app(settings=settings, db=db, notifier=email_notifier)

    with TestClient(app, base_url="https://testserver") as c:
        codes = [c.post("/auth/otp/send", json={"username": "john.doe"}).status_code for _ in range(3)]

    assert codes == [200, 200, 429]


def test_rate_limits_are_per_app(client, db, email_notifier):
    for _ in range(5):
        client.post("/auth/otp/send", json={"username": "john.doe"})

    other = create_app(settings=Settings(_env_file=None), db=db, notifier=email_notifier)
    with TestClient(other, base_url="https://testserver") as c:
        assert c.post("/auth/otp/send", json={"username": "john.doe"}).status_code == 200


def test_refused_decision_keeps_approval_otp(app, client, login, submitted):
    login("sarah.manager")
    assert _decide(client, submitted, 0).status_code == 200
    otp = client.post("/auth/otp/approval").json()["otp"]

    again = _decide(client, submitted, 0, otp=otp)

    assert again.status_code == 409
    assert app.state.auth.verify_otp("sarah.manager", otp, OTP_PURPOSE_APPROVAL) is True


def test_manager_with_reports_cannot_be_demoted(client, login):
    login("hr.admin")

    resp = client.put(f"/employees/{MANAGER_ID}", json={"role": "employee"})

    assert resp.status_code == 400
    assert client.get(f"/employees/{MANAGER_ID}").json()["role"] == "manager"
