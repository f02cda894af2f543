"""
Tests for AccessService: grant, extension, revocation and guest claims.
"""

from datetime import datetime, timedelta

import pytest

from gateflow.database import db
from gateflow.models import GuestPurchase, PaymentTransaction, ProductAccess, User


NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def access_service(services):
    return services.access


def _tx(product, session_id="cs_test_1", user=None, email="buyer@example.com", metadata=None):
    tx = PaymentTransaction(
        session_id=session_id,
        product_id=product.id,
        customer_email=email,
        user_id=user.id if user else None,
        amount=4900,
        currency="USD",
        status="completed",
        metadata_json=metadata or {},
    )
    db.session.add(tx)
    db.session.commit()
    return tx


class TestGrantAccess:

    def test_new_permanent_grant(self, access_service, user, product):
        access = access_service.grant_access(user.id, product.id, None, now=NOW)

        assert access.access_expires_at is None
        assert access.access_duration_days is None
        assert access.is_permanent

    def test_new_limited_grant(self, access_service, user, limited_product):
        access = access_service.grant_access(user.id, limited_product.id, 30, now=NOW)

        assert access.access_expires_at == NOW + timedelta(days=30)
        assert access.access_duration_days == 30

    def test_active_limited_grant_is_extended(self, access_service, user, limited_product):
        access_service.grant_access(user.id, limited_product.id, 30, now=NOW)
        later = NOW + timedelta(days=10)

        access = access_service.grant_access(user.id, limited_product.id, 30, now=later)

        assert access.access_expires_at == NOW + timedelta(days=60)
        assert ProductAccess.query.count() == 1

    def test_expired_grant_restarts_from_now(self, access_service, user, limited_product):
        access_service.grant_access(user.id, limited_product.id, 30, now=NOW)
        later = NOW + timedelta(days=45)

        access = access_service.grant_access(user.id, limited_product.id, 30, now=later)

        assert access.access_expires_at == later + timedelta(days=30)

    def test_limited_upgraded_to_permanent(self, access_service, user, limited_product):
        access_service.grant_access(user.id, limited_product.id, 30, now=NOW)

        access = access_service.grant_access(user.id, limited_product.id, None, now=NOW)

        assert access.access_expires_at is None
        assert access.access_duration_days is None

    def test_permanent_stays_permanent(self, access_service, user, product):
        access_service.grant_access(user.id, product.id, None, now=NOW)

        access = access_service.grant_access(user.id, product.id, 7, now=NOW)

        assert access.access_expires_at is None

    def test_has_access_respects_expiry(self, access_service, user, limited_product):
        access_service.grant_access(user.id, limited_product.id, 30, now=NOW)

        assert access_service.has_access(user.id, limited_product.id, now=NOW + timedelta(days=29))
        assert not access_service.has_access(user.id, limited_product.id, now=NOW + timedelta(days=31))


class TestRevokeForTransaction:

    def test_logged_in_purchase_with_bump(self, access_service, user, product, order_bump):
        access_service.grant_access(user.id, product.id)
        access_service.grant_access(user.id, order_bump.bump_product_id, 7)
        tx = _tx(product, user=user, metadata={"has_bump": True, "bump_product_id": order_bump.bump_product_id})

        revoked = access_service.revoke_for_transaction(tx)
        db.session.commit()

        assert revoked == 2
        assert ProductAccess.query.filter_by(user_id=user.id).count() == 0

    def test_unclaimed_guest_rows_removed(self, access_service, product):
        tx = _tx(product, email="guest@example.com")
        db.session.add(GuestPurchase(customer_email="guest@example.com", product_id=product.id,
                                     session_id=tx.session_id, transaction_amount=4900))
        db.session.commit()

        revoked = access_service.revoke_for_transaction(tx)
        db.session.commit()

        assert revoked == 0
        assert GuestPurchase.query.count() == 0

    def test_claimed_guest_access_revoked(self, access_service, user, product):
        tx = _tx(product, email=user.email)
        db.session.add(GuestPurchase(customer_email=user.email, product_id=product.id,
                                     session_id=tx.session_id, transaction_amount=4900))
        db.session.commit()
        access_service.claim_guest_purchases(user)
        assert access_service.has_access(user.id, product.id)

        revoked = access_service.revoke_for_transaction(tx)
        db.session.commit()

        assert revoked == 1
        assert not access_service.has_access(user.id, product.id)


class TestClaimGuestPurchases:

    def test_claims_main_and_bump(self, access_service, product, order_bump):
        tx = _tx(product, email="guest@example.com")
        db.session.add_all([
            GuestPurchase(customer_email="guest@example.com", product_id=product.id,
                          session_id=tx.session_id, transaction_amount=4900),
            GuestPurchase(customer_email="guest@example.com", product_id=order_bump.bump_product_id,
                          session_id=f"{tx.session_id}_bump", transaction_amount=0),
        ])
        user = User(email="guest@example.com")
        db.session.add(user)
        db.session.commit()

        granted = access_service.claim_guest_purchases(user)

        assert sorted(granted) == sorted([product.id, order_bump.bump_product_id])
        assert all(g.claimed_by_user_id == user.id for g in GuestPurchase.query.all())

    def test_claim_is_one_time(self, access_service, product):
        tx = _tx(product, email="guest@example.com")
        db.session.add(GuestPurchase(customer_email="guest@example.com", product_id=product.id,
                                     session_id=tx.session_id, transaction_amount=4900))
        user = User(email="guest@example.com")
        db.session.add(user)
        db.session.commit()

        assert access_service.claim_guest_purchases(user) == [product.id]
        assert access_service.claim_guest_purchases(user) == []

    def test_refunded_purchase_not_claimed(self, access_service, product):
        tx = _tx(product, email="guest@example.com")
        tx.status = "refunded"
        db.session.add(GuestPurchase(customer_email="guest@example.com", product_id=product.id,
                                     session_id=tx.session_id, transaction_amount=4900))
        user = User(email="guest@example.com")
        db.session.add(user)
        db.session.commit()

        assert access_service.claim_guest_purchases(user) == []
        assert not access_service.has_access(user.id, product.id)
