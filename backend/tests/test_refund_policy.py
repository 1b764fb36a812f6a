"""Tests for the cancellation refund policy and escrow split."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from naafe.models.offer import Offer
from naafe.services.lifecycle import refund_percentage_for, scheduled_service_time
from naafe.services.payment_gateway import EscrowCharge, LedgerEscrowGateway, PaymentGateway, split_refund

SCHEDULED = datetime(2030, 6, 1, 10, 0)


@pytest.mark.parametrize("before, expected", [
    (timedelta(hours=13), Decimal("100")),
    (timedelta(hours=12, seconds=1), Decimal("100")),
    (timedelta(hours=12), Decimal("100")),
    (timedelta(hours=11, minutes=59, seconds=59), Decimal("70")),
    (timedelta(hours=11), Decimal("70")),
    (timedelta(0), Decimal("70")),
    (-timedelta(hours=3), Decimal("70")),
])
def test_refund_tiers(before, expected):
    assert refund_percentage_for(SCHEDULED, SCHEDULED - before) == expected


def test_no_schedule_means_full_refund():
    assert refund_percentage_for(None, datetime(2030, 6, 1)) == Decimal("100")


def test_scheduled_time_combines_date_and_time():
    offer = Offer(negotiated_date=date(2030, 6, 1), negotiated_time="18:30")
    assert scheduled_service_time(offer) == datetime(2030, 6, 1, 18, 30)


def test_scheduled_time_defaults_to_midnight():
    offer = Offer(negotiated_date=date(2030, 6, 1))
    assert scheduled_service_time(offer) == datetime(2030, 6, 1, 0, 0)


def test_scheduled_time_requires_a_date():
    offer = Offer(negotiated_time="10:00")
    assert scheduled_service_time(offer) is None


@pytest.mark.parametrize("amount, percentage, refund, remainder", [
    (Decimal("500"), Decimal("100"), Decimal("500.00"), Decimal("0.00")),
    (Decimal("500"), Decimal("70"), Decimal("350.00"), Decimal("150.00")),
    (Decimal("99.99"), Decimal("70"), Decimal("69.99"), Decimal("30.00")),
    (Decimal("0.05"), Decimal("70"), Decimal("0.04"), Decimal("0.01")),
])
def test_split_refund(amount, percentage, refund, remainder):
    assert split_refund(amount, percentage) == (refund, remainder)


def test_split_refund_rejects_out_of_range_percentage():
    with pytest.raises(ValueError):
        split_refund(Decimal("100"), Decimal("120"))


def test_gateway_must_implement_every_operation():
    class ChargeOnlyGateway(PaymentGateway):
        async def create_escrow_charge(self, db, offer_id, amount, currency):
            return EscrowCharge(payment_ref="pay-1", captured=True)

    with pytest.raises(TypeError):
        ChargeOnlyGateway()

    assert isinstance(LedgerEscrowGateway(), PaymentGateway)
