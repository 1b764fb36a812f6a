"""Tests for acceptance, escrow, completion and cancellation."""

from datetime import timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from naafe.config import settings
from naafe.models.payment import Payment, EscrowStatus
from naafe.services.payment_gateway import EscrowCharge, LedgerEscrowGateway, PaymentGatewayError
from tests.conftest import FULL_TERMS, SERVICE_AT, make_offer


class FailingGateway(LedgerEscrowGateway):
    """Gateway whose provider rejects every operation."""

    async def create_escrow_charge(self, db, offer_id, amount, currency):
        raise PaymentGatewayError("card declined")

    async def release_funds(self, db, payment_ref):
        raise PaymentGatewayError("provider unavailable")

    async def refund(self, db, payment_ref, percentage):
        raise PaymentGatewayError("provider unavailable")


class DeferredCaptureGateway(LedgerEscrowGateway):
    """Gateway that confirms escrow later through the callback."""

    async def create_escrow_charge(self, db, offer_id, amount, currency):
        charge = await super().create_escrow_charge(db, offer_id, amount, currency)
        return EscrowCharge(payment_ref=charge.payment_ref, captured=False)


async def notifications_for(client: AsyncClient, headers: dict) -> list[dict]:
    response = await client.get("/api/notifications", headers=headers)
    assert response.status_code == 200
    return response.json()["notifications"]


# Acceptance

@pytest.mark.asyncio
async def test_accept_reports_missing_terms_and_confirmations(client: AsyncClient, offer, seeker):
    _, headers = seeker
    await client.patch(f"/api/offers/{offer['id']}/negotiation", headers=headers, json={"price": 500})

    response = await client.post(f"/api/offers/{offer['id']}/accept", headers=headers)

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "AGREEMENT_INCOMPLETE"
    assert detail["missing_fields"] == ["date", "time", "materials", "scope"]
    assert detail["pending_confirmations"] == ["seeker", "provider"]

    response = await client.get(f"/api/offers/{offer['id']}", headers=headers)
    assert response.json()["status"] == "negotiating"


@pytest.mark.asyncio
async def test_accept_with_confirmations_but_incomplete_terms(client: AsyncClient, offer, seeker, provider):
    _, seeker_headers = seeker
    _, provider_headers = provider
    terms = dict(FULL_TERMS)
    terms.pop("scope")
    await client.patch(f"/api/offers/{offer['id']}/negotiation", headers=provider_headers, json=terms)
    await client.post(f"/api/offers/{offer['id']}/confirm-negotiation", headers=seeker_headers)
    await client.post(f"/api/offers/{offer['id']}/confirm-negotiation", headers=provider_headers)

    response = await client.post(f"/api/offers/{offer['id']}/accept", headers=seeker_headers)

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["missing_fields"] == ["scope"]
    assert detail["pending_confirmations"] == []


@pytest.mark.asyncio
async def test_only_seeker_can_accept(client: AsyncClient, agreed_offer, provider):
    _, headers = provider

    response = await client.post(f"/api/offers/{agreed_offer['id']}/accept", headers=headers)

    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_accept_rejects_every_other_open_offer(
    client: AsyncClient, job_request, agreed_offer, seeker, other_provider, provider
):
    _, seeker_headers = seeker
    _, other_headers = other_provider
    sibling = await make_offer(client, job_request, other_headers, price=700)
    await client.patch(
        f"/api/offers/{sibling['id']}/negotiation",
        headers=other_headers,
        json={"price": 650}
    )

    response = await client.post(f"/api/offers/{agreed_offer['id']}/accept", headers=seeker_headers)
    assert response.status_code == 200

    response = await client.get(
        f"/api/job-requests/{job_request['id']}/offers",
        headers=seeker_headers
    )
    statuses = {o["id"]: o["status"] for o in response.json()}
    assert statuses == {agreed_offer["id"]: "accepted", sibling["id"]: "rejected"}

    # The losing offer cannot be revived
    response = await client.post(f"/api/offers/{sibling['id']}/accept", headers=seeker_headers)
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "INVALID_STATE"

    other_notifications = await notifications_for(client, other_headers)
    assert [n["type"] for n in other_notifications] == ["offer_rejected"]


@pytest.mark.asyncio
async def test_accept_is_idempotent(client: AsyncClient, accepted_offer, seeker, provider):
    _, seeker_headers = seeker
    _, provider_headers = provider

    response = await client.post(f"/api/offers/{accepted_offer['id']}/accept", headers=seeker_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "accepted"
    assert data["version"] == accepted_offer["version"]
    assert data["payment"]["status"] == "not_paid"

    provider_notifications = await notifications_for(client, provider_headers)
    assert [n["type"] for n in provider_notifications].count("offer_accepted") == 1


@pytest.mark.asyncio
async def test_terms_locked_after_acceptance(client: AsyncClient, accepted_offer, seeker, provider):
    _, seeker_headers = seeker
    _, provider_headers = provider

    response = await client.patch(
        f"/api/offers/{accepted_offer['id']}/negotiation",
        headers=provider_headers,
        json={"price": 900}
    )
    assert response.status_code == 409

    response = await client.post(f"/api/offers/{accepted_offer['id']}/reset-confirmation", headers=seeker_headers)
    assert response.status_code == 409


# Escrow and completion

@pytest.mark.asyncio
async def test_escrow_then_complete(client: AsyncClient, db, accepted_offer, seeker, provider):
    _, seeker_headers = seeker
    _, provider_headers = provider

    response = await client.post(f"/api/offers/{accepted_offer['id']}/escrow", headers=seeker_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "in_progress"
    assert data["payment"]["status"] == "escrowed"
    assert float(data["payment"]["amount"]) == 500
    assert data["payment"]["payment_ref"].startswith("pay_")

    response = await client.post(f"/api/offers/{accepted_offer['id']}/complete", headers=provider_headers)
    assert response.status_code == 403

    response = await client.post(f"/api/offers/{accepted_offer['id']}/complete", headers=seeker_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "completed"
    assert data["payment"]["status"] == "released"
    assert data["can_review"] is True

    result = await db.execute(select(Payment).where(Payment.offer_id == accepted_offer["id"]))
    payment = result.scalar_one()
    assert payment.status == EscrowStatus.RELEASED
    assert payment.provider_amount == Decimal("500.00")

    response = await client.get(f"/api/job-requests/{accepted_offer['job_request_id']}", headers=seeker_headers)
    assert response.json()["status"] == "completed"

    types = [n["type"] for n in await notifications_for(client, provider_headers)]
    assert "payment_escrowed" in types
    assert "payment_released" in types


@pytest.mark.asyncio
async def test_escrow_requires_accepted_offer(client: AsyncClient, agreed_offer, seeker):
    _, headers = seeker

    response = await client.post(f"/api/offers/{agreed_offer['id']}/escrow", headers=headers)

    assert response.status_code == 409
    assert response.json()["detail"]["status"] == "negotiating"


@pytest.mark.asyncio
async def test_cannot_complete_before_escrow(client: AsyncClient, accepted_offer, seeker):
    _, headers = seeker

    response = await client.post(f"/api/offers/{accepted_offer['id']}/complete", headers=headers)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "INVALID_STATE"


@pytest.mark.asyncio
async def test_failed_escrow_charge_leaves_offer_unchanged(
    client: AsyncClient, db, coordinator, accepted_offer, seeker
):
    _, headers = seeker
    coordinator.gateway = FailingGateway()

    response = await client.post(f"/api/offers/{accepted_offer['id']}/escrow", headers=headers)

    assert response.status_code == 502
    assert response.json()["detail"]["code"] == "PAYMENT_FAILED"

    response = await client.get(f"/api/offers/{accepted_offer['id']}", headers=headers)
    data = response.json()
    assert data["status"] == "accepted"
    assert data["payment"]["status"] == "not_paid"
    assert data["version"] == accepted_offer["version"]

    result = await db.execute(select(Payment).where(Payment.offer_id == accepted_offer["id"]))
    assert result.scalars().all() == []


@pytest.mark.asyncio
async def test_failed_release_leaves_offer_in_progress(client: AsyncClient, coordinator, in_progress_offer, seeker):
    _, headers = seeker
    coordinator.gateway = FailingGateway()

    response = await client.post(f"/api/offers/{in_progress_offer['id']}/complete", headers=headers)

    assert response.status_code == 502
    response = await client.get(f"/api/offers/{in_progress_offer['id']}", headers=headers)
    data = response.json()
    assert data["status"] == "in_progress"
    assert data["payment"]["status"] == "escrowed"


@pytest.mark.asyncio
async def test_escrow_captured_callback(client: AsyncClient, coordinator, accepted_offer, seeker):
    _, headers = seeker
    coordinator.gateway = DeferredCaptureGateway()

    response = await client.post(f"/api/offers/{accepted_offer['id']}/escrow", headers=headers)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "accepted"
    assert data["payment"]["status"] == "pending"
    payment_ref = data["payment"]["payment_ref"]

    response = await client.post(
        "/api/payments/escrow-captured",
        json={"offer_id": accepted_offer["id"], "payment_ref": "pay_someone_else"}
    )
    assert response.status_code == 422

    callback = {"offer_id": accepted_offer["id"], "payment_ref": payment_ref}
    response = await client.post("/api/payments/escrow-captured", json=callback)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "in_progress"
    assert data["payment"]["status"] == "escrowed"
    version = data["version"]

    # Retried delivery
    response = await client.post("/api/payments/escrow-captured", json=callback)
    assert response.status_code == 200
    assert response.json()["version"] == version


@pytest.mark.asyncio
async def test_escrow_callback_requires_secret_when_configured(client: AsyncClient, accepted_offer, monkeypatch):
    monkeypatch.setattr(settings, "PAYMENT_WEBHOOK_SECRET", "whsec_test")
    callback = {"offer_id": accepted_offer["id"], "payment_ref": "pay_123"}

    response = await client.post("/api/payments/escrow-captured", json=callback)
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "INVALID_WEBHOOK_SECRET"

    response = await client.post(
        "/api/payments/escrow-captured",
        json=callback,
        headers={"X-Webhook-Secret": "whsec_test"}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "in_progress"


# Cancellation

@pytest.mark.asyncio
@pytest.mark.parametrize("hours_before, percentage, refund, payment_status", [
    (13, 100, 500, "refunded"),
    (12, 100, 500, "refunded"),
    (11, 70, 350, "partial_refund"),
    (1, 70, 350, "partial_refund"),
])
async def test_cancellation_refund_tiers(
    client: AsyncClient, db, clock, in_progress_offer, provider, seeker,
    hours_before, percentage, refund, payment_status
):
    _, provider_headers = provider
    _, seeker_headers = seeker
    clock.now = SERVICE_AT - timedelta(hours=hours_before)

    response = await client.post(
        f"/api/offers/{in_progress_offer['id']}/cancel-request",
        headers=provider_headers,
        json={"reason": "Sick"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "cancelled"
    assert data["payment"]["status"] == payment_status
    cancellation = data["cancellation"]
    assert float(cancellation["refund_percentage"]) == percentage
    assert float(cancellation["refund_amount"]) == refund
    assert cancellation["reason"] == "Sick"
    assert cancellation["requested_by"] == data["provider_id"]

    result = await db.execute(select(Payment).where(Payment.offer_id == in_progress_offer["id"]))
    payment = result.scalar_one()
    assert payment.refund_amount == Decimal(refund)
    assert payment.provider_amount == Decimal(500 - refund)

    response = await client.get(f"/api/job-requests/{in_progress_offer['job_request_id']}", headers=seeker_headers)
    assert response.json()["status"] == "cancelled"

    for headers in (seeker_headers, provider_headers):
        types = [n["type"] for n in await notifications_for(client, headers)]
        assert "service_cancelled" in types


@pytest.mark.asyncio
async def test_cancelling_unpaid_offer_refunds_nothing(client: AsyncClient, accepted_offer, seeker):
    _, headers = seeker

    response = await client.post(f"/api/offers/{accepted_offer['id']}/cancel-request", headers=headers)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "cancelled"
    assert data["payment"]["status"] == "not_paid"
    assert float(data["cancellation"]["refund_amount"]) == 0
    assert data["cancellation"]["reason"] == "No reason provided"


@pytest.mark.asyncio
async def test_cancellation_is_not_repeatable(client: AsyncClient, db, in_progress_offer, seeker):
    _, headers = seeker
    response = await client.post(f"/api/offers/{in_progress_offer['id']}/cancel-request", headers=headers)
    assert response.status_code == 200

    response = await client.post(f"/api/offers/{in_progress_offer['id']}/cancel-request", headers=headers)

    assert response.status_code == 409
    assert response.json()["detail"]["status"] == "cancelled"
    result = await db.execute(select(Payment).where(Payment.offer_id == in_progress_offer["id"]))
    assert len(result.scalars().all()) == 1


@pytest.mark.asyncio
async def test_cannot_cancel_during_negotiation(client: AsyncClient, agreed_offer, seeker):
    _, headers = seeker

    response = await client.post(f"/api/offers/{agreed_offer['id']}/cancel-request", headers=headers)

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_failed_refund_leaves_offer_in_progress(client: AsyncClient, coordinator, in_progress_offer, seeker):
    _, headers = seeker
    coordinator.gateway = FailingGateway()

    response = await client.post(f"/api/offers/{in_progress_offer['id']}/cancel-request", headers=headers)

    assert response.status_code == 502
    response = await client.get(f"/api/offers/{in_progress_offer['id']}", headers=headers)
    data = response.json()
    assert data["status"] == "in_progress"
    assert data["cancellation"] is None


# Terminal states

@pytest.mark.asyncio
async def test_completed_offer_is_immutable(client: AsyncClient, in_progress_offer, seeker, provider):
    _, seeker_headers = seeker
    _, provider_headers = provider
    offer_id = in_progress_offer["id"]
    response = await client.post(f"/api/offers/{offer_id}/complete", headers=seeker_headers)
    assert response.status_code == 200

    attempts = [
        client.patch(f"/api/offers/{offer_id}/negotiation", headers=provider_headers, json={"price": 900}),
        client.post(f"/api/offers/{offer_id}/confirm-negotiation", headers=seeker_headers),
        client.post(f"/api/offers/{offer_id}/reset-confirmation", headers=seeker_headers),
        client.post(f"/api/offers/{offer_id}/accept", headers=seeker_headers),
        client.post(f"/api/offers/{offer_id}/cancel-request", headers=seeker_headers),
        client.post(f"/api/offers/{offer_id}/reject", headers=provider_headers),
    ]
    for attempt in attempts:
        response = await attempt
        assert response.status_code == 409, response.text
        assert response.json()["detail"]["code"] == "INVALID_STATE"

    response = await client.get(f"/api/offers/{offer_id}", headers=seeker_headers)
    assert response.json()["status"] == "completed"


@pytest.mark.asyncio
async def test_rejected_offer_is_immutable(client: AsyncClient, offer, seeker, provider):
    _, seeker_headers = seeker
    _, provider_headers = provider
    response = await client.post(f"/api/offers/{offer['id']}/reject", headers=provider_headers)
    assert response.status_code == 200

    for headers in (seeker_headers, provider_headers):
        response = await client.post(f"/api/offers/{offer['id']}/confirm-negotiation", headers=headers)
        assert response.status_code == 409

    response = await client.post(f"/api/offers/{offer['id']}/cancel-request", headers=seeker_headers)
    assert response.status_code == 409

    types = [n["type"] for n in await notifications_for(client, seeker_headers)]
    assert "offer_rejected" in types


# Notifications

@pytest.mark.asyncio
async def test_agreement_and_acceptance_notifications(client: AsyncClient, accepted_offer, seeker, provider):
    _, seeker_headers = seeker
    _, provider_headers = provider

    seeker_types = [n["type"] for n in await notifications_for(client, seeker_headers)]
    provider_types = [n["type"] for n in await notifications_for(client, provider_headers)]

    assert seeker_types.count("offer_received") == 1
    assert seeker_types.count("agreement_reached") == 1
    assert provider_types.count("agreement_reached") == 1
    assert provider_types.count("offer_accepted") == 1


@pytest.mark.asyncio
async def test_mark_notification_read(client: AsyncClient, offer, seeker, provider):
    _, seeker_headers = seeker
    _, provider_headers = provider
    response = await client.get("/api/notifications", headers=seeker_headers)
    data = response.json()
    assert data["unread_count"] == 1
    notification = data["notifications"][0]
    assert notification["offer_id"] == offer["id"]
    assert notification["is_read"] is False

    response = await client.post(f"/api/notifications/{notification['id']}/read", headers=provider_headers)
    assert response.status_code == 403

    response = await client.post(f"/api/notifications/{notification['id']}/read", headers=seeker_headers)
    assert response.status_code == 200
    assert response.json()["read_at"] is not None

    response = await client.get("/api/notifications", headers=seeker_headers, params={"unread_only": True})
    data = response.json()
    assert data["unread_count"] == 0
    assert data["notifications"] == []
