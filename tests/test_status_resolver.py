"""
Tests for the order status resolver.

Tests: current vocabulary, legacy vocabulary, the payment-dependent legacy
pending, unknown pass-through and bucket counting.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from types import SimpleNamespace

import pytest

from domain.enums import OrderStatus, PaymentMethod, PaymentStatus, StatusBucket
from services import status_resolver
from services.status_resolver import resolve


def _order(status, payment_status="pending", payment_method="card"):
    return SimpleNamespace(order_status=status, payment_status=payment_status, payment_method=payment_method)


class TestCurrentVocabulary:

    @pytest.mark.unit
    @pytest.mark.parametrize("raw,bucket", [
        ("to_pay", StatusBucket.TO_PAY),
        ("to_ship", StatusBucket.TO_SHIP),
        ("to_receive", StatusBucket.TO_RECEIVE),
        ("completed", StatusBucket.COMPLETED),
        ("returned", StatusBucket.RETURNED),
        ("cancelled", StatusBucket.CANCELLED),
    ])
    def test_maps_directly(self, raw, bucket):
        assert resolve(raw, "pending", "card") is bucket

    @pytest.mark.unit
    def test_payment_does_not_affect_current_values(self):
        """to_pay stays ToPay even when paid; only legacy pending is payment-sensitive."""
        assert resolve("to_pay", "paid", "cash_on_delivery") is StatusBucket.TO_PAY


class TestLegacyVocabulary:

    @pytest.mark.unit
    def test_pending_unpaid_prepaid_is_to_pay(self):
        assert resolve("pending", "pending", "gcash") is StatusBucket.TO_PAY

    @pytest.mark.unit
    def test_pending_paid_is_to_ship(self):
        assert resolve("pending", "paid", "card") is StatusBucket.TO_SHIP

    @pytest.mark.unit
    def test_pending_cod_is_to_ship(self):
        """COD is collected on delivery, so a pending COD order is ready to ship."""
        assert resolve("pending", "pending", "cash_on_delivery") is StatusBucket.TO_SHIP

    @pytest.mark.unit
    @pytest.mark.parametrize("raw,bucket", [
        ("confirmed", StatusBucket.TO_SHIP),
        ("processing", StatusBucket.TO_SHIP),
        ("shipped", StatusBucket.TO_RECEIVE),
        ("delivered", StatusBucket.COMPLETED),
    ])
    def test_other_legacy_values(self, raw, bucket):
        assert resolve(raw, "pending", "card") is bucket

    @pytest.mark.unit
    def test_accepts_enum_members(self):
        assert resolve(OrderStatus.PENDING, PaymentStatus.PAID, PaymentMethod.CARD) is StatusBucket.TO_SHIP


class TestUnknownStatus:

    @pytest.mark.unit
    def test_unknown_value_passes_through(self):
        resolved = resolve("on_hold", "pending", "card")
        assert resolved == "on_hold"
        assert status_resolver.is_known(resolved) is False

    @pytest.mark.unit
    def test_unknown_never_matches_a_bucket(self):
        order = _order("on_hold")
        assert not any(status_resolver.matches_bucket(order, b) for b in StatusBucket)


class TestCountByBucket:

    @pytest.mark.unit
    def test_every_bucket_present_and_unknown_kept(self):
        orders = [
            _order("pending", "pending", "card"),
            _order("pending", "pending", "cash_on_delivery"),
            _order("to_ship"),
            _order("delivered"),
            _order("on_hold"),
        ]
        counts = status_resolver.count_by_bucket(orders)

        assert counts["to_pay"] == 1
        assert counts["to_ship"] == 2
        assert counts["completed"] == 1
        assert counts["returned"] == 0
        assert counts["on_hold"] == 1
        assert sum(counts.values()) == len(orders)

    @pytest.mark.unit
    def test_resolver_is_deterministic(self):
        args = ("pending", "paid", "grab_pay")
        assert resolve(*args) is resolve(*args)
