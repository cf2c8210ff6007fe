import re
from decimal import Decimal

import pytest

from extensions import db, mail
from models import AuditLog, Participant, ParticipantStatus, PaymentStatus, Promoter, PromoterStatus, Tier
from conftest import TURNSTILE_TOKEN


@pytest.fixture
def admin_headers(admin_user, auth_headers):
    return auth_headers(admin_user)


# ------------------------------------------------------------------
# Access control
# ------------------------------------------------------------------
def test_admin_endpoints_require_a_token(client):
    resp = client.get("/api/admin/participants")

    assert resp.status_code == 401


def test_promoters_cannot_use_admin_endpoints(client, make_promoter, auth_headers):
    promoter = make_promoter()

    resp = client.get("/api/admin/promoters", headers=auth_headers(promoter.user))

    assert resp.status_code == 403


# ------------------------------------------------------------------
# Approval workflow
# ------------------------------------------------------------------
def test_approving_a_promoter_issues_credentials(client, make_promoter, admin_user, admin_headers):
    promoter = make_promoter(code="REFAPPR01", status=PromoterStatus.PENDING)
    email = promoter.user.email

    with mail.record_messages() as outbox:
        resp = client.put("/api/admin/promoters/approve",
                          json={"promoterId": promoter.id, "approved": True, "commissionRate": 0.15},
                          headers=admin_headers)

    assert resp.status_code == 200
    body = resp.get_json()["promoter"]
    assert body["status"] == "APPROVED"
    assert body["commissionRate"] == pytest.approx(0.15)

    promoter = db.session.get(Promoter, promoter.id)
    assert promoter.approved_by == admin_user.id
    assert promoter.approved_at is not None

    audit = AuditLog.query.filter_by(action="PROMOTER_APPROVED").one()
    assert audit.old_values == {"status": "PENDING"}
    assert audit.new_values["status"] == "APPROVED"

    assert len(outbox) == 1
    assert outbox[0].recipients == [email]
    assert "REFAPPR01" in outbox[0].body
    temp_password = re.search(r"Temporary password: (\S+)", outbox[0].body).group(1)

    login = client.post("/api/auth/login",
                        json={"email": email, "password": temp_password, "turnstileToken": TURNSTILE_TOKEN})
    assert login.status_code == 200


def test_rejecting_a_promoter_records_reason(client, make_promoter, admin_headers):
    promoter = make_promoter(status=PromoterStatus.PENDING)

    with mail.record_messages() as outbox:
        resp = client.put("/api/admin/promoters/approve",
                          json={"promoterId": promoter.id, "approved": False,
                                "rejectionReason": "Audience outside launch regions"},
                          headers=admin_headers)

    assert resp.status_code == 200
    promoter = db.session.get(Promoter, promoter.id)
    assert promoter.status == PromoterStatus.REJECTED
    assert promoter.rejection_reason == "Audience outside launch regions"
    assert AuditLog.query.filter_by(action="PROMOTER_REJECTED").count() == 1
    assert outbox[0].subject == "Update on your promoter application"


def test_only_pending_applications_can_be_decided(client, make_promoter, admin_headers):
    promoter = make_promoter(status=PromoterStatus.APPROVED)

    resp = client.put("/api/admin/promoters/approve", json={"promoterId": promoter.id, "approved": False},
                      headers=admin_headers)

    assert resp.status_code == 400
    assert db.session.get(Promoter, promoter.id).status == PromoterStatus.APPROVED


@pytest.mark.parametrize("body, status", [
    ({"promoterId": "1", "approved": True}, 400),
    ({"promoterId": 1, "approved": "yes"}, 400),
    ({"promoterId": 1, "approved": True, "commissionRate": 1.5}, 400),
    ({"promoterId": 9999, "approved": True}, 404),
])
def test_approval_input_is_validated(client, admin_headers, body, status):
    resp = client.put("/api/admin/promoters/approve", json=body, headers=admin_headers)

    assert resp.status_code == status


def test_participant_status_update_is_audited(client, make_participant, admin_headers):
    participant = make_participant(status=ParticipantStatus.ACTIVE)

    resp = client.put("/api/admin/participants/status",
                      json={"participantId": participant.id, "status": "suspended", "reason": "Clue sharing"},
                      headers=admin_headers)

    assert resp.status_code == 200
    assert db.session.get(Participant, participant.id).status == ParticipantStatus.SUSPENDED
    audit = AuditLog.query.filter_by(action="PARTICIPANT_STATUS_UPDATE").one()
    assert audit.old_values == {"status": "ACTIVE"}
    assert audit.new_values == {"status": "SUSPENDED", "reason": "Clue sharing"}


def test_participant_status_must_be_known(client, make_participant, admin_headers):
    participant = make_participant()

    resp = client.put("/api/admin/participants/status",
                      json={"participantId": participant.id, "status": "BANISHED"}, headers=admin_headers)

    assert resp.status_code == 400


# ------------------------------------------------------------------
# Dashboard and listings
# ------------------------------------------------------------------
def test_dashboard_overview(client, make_participant, make_payment, make_promoter, admin_headers):
    premium = make_participant(tier=Tier.PREMIUM, status=ParticipantStatus.ACTIVE)
    make_participant(tier=Tier.FREE, status=ParticipantStatus.ACTIVE)
    make_payment(premium, status=PaymentStatus.COMPLETED)
    make_payment(premium, status=PaymentStatus.FAILED)
    make_promoter(code="REFDASH01")
    make_promoter(code="REFDASH02", status=PromoterStatus.PENDING)

    resp = client.get("/api/admin/dashboard", headers=admin_headers)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["overview"] == {
        "totalParticipants": 2,
        "totalPromoters": 2,
        "pendingPromoters": 1,
        "totalRevenue": pytest.approx(99.0),
        "recentRegistrations": 2,
    }
    assert body["tierDistribution"] == {"PREMIUM": 1, "FREE": 1}
    assert len(body["monthlyTrend"]) == 6
    assert body["monthlyTrend"][-1]["registrations"] == 2
    assert [p["referralCode"] for p in body["topPromoters"]] == ["REFDASH01"]


def test_list_participants_filters_by_tier_and_search(client, make_participant, make_payment, admin_headers):
    vip = make_participant(tier=Tier.VIP, email="vip.hunter@example.com")
    make_payment(vip, status=PaymentStatus.COMPLETED)
    make_participant(tier=Tier.PREMIUM, email="other@example.com")

    resp = client.get("/api/admin/participants?tier=vip&search=hunter", headers=admin_headers)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["pagination"]["total"] == 1
    item = body["participants"][0]
    assert item["user"]["email"] == "vip.hunter@example.com"
    assert len(item["completedPayments"]) == 1


def test_list_participants_rejects_unknown_filter(client, admin_headers):
    resp = client.get("/api/admin/participants?tier=GOLD", headers=admin_headers)

    assert resp.status_code == 400


def test_list_promoters_filters_by_status(client, make_promoter, admin_headers):
    make_promoter(code="REFLIST01")
    make_promoter(code="REFLIST02", status=PromoterStatus.PENDING)

    resp = client.get("/api/admin/promoters?status=pending", headers=admin_headers)

    assert resp.status_code == 200
    codes = [p["referralCode"] for p in resp.get_json()["promoters"]]
    assert codes == ["REFLIST02"]


def test_list_payments_filters_by_status(client, make_participant, make_payment, admin_headers):
    participant = make_participant()
    make_payment(participant, status=PaymentStatus.FAILED, amount=Decimal("99.00"))
    make_payment(participant, status=PaymentStatus.PENDING)

    resp = client.get("/api/admin/payments?status=FAILED", headers=admin_headers)

    assert resp.status_code == 200
    payments = resp.get_json()["payments"]
    assert [p["status"] for p in payments] == ["FAILED"]
    assert payments[0]["user"]["id"] == participant.user_id


def test_audit_log_listing(client, make_participant, admin_headers):
    participant = make_participant(status=ParticipantStatus.ACTIVE)
    client.put("/api/admin/participants/status",
               json={"participantId": participant.id, "status": "SUSPENDED"}, headers=admin_headers)

    resp = client.get("/api/admin/audit-logs?action=participant_status_update", headers=admin_headers)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["pagination"]["total"] == 1
    log = body["logs"][0]
    assert log["entityType"] == "PARTICIPANT"
    assert log["entityId"] == str(participant.id)
    assert log["actor"]["email"] == "root@example.com"
