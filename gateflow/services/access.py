# -*- coding: utf-8 -*-
"""
Product access management.

grant_access/revoke_access only stage changes on the session; the caller
owns the transaction boundary so a whole purchase commits or rolls back as
one unit.
"""
from datetime import timedelta
from typing import List, Optional

from gateflow.database import db
from gateflow.models.access import ProductAccess
from gateflow.models.base import utcnow
from gateflow.models.payment import GuestPurchase, PaymentTransaction, TransactionStatus
from gateflow.models.product import Product
from gateflow.services.structured_logging import get_logger, mask_email

logger = get_logger('gateflow.access')


def _limited(duration_days: Optional[int]) -> bool:
    return duration_days is not None and duration_days > 0


class AccessService:

    def __init__(self, db_session=None):
        self._session = db_session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def grant_access(self, user_id: str, product_id: str, duration_days: Optional[int] = None,
                     now=None) -> ProductAccess:
        """Create or refresh a user's access to a product.

        - no row or expired row: access starts now (permanent when no duration)
        - active limited row: extended by the duration, or upgraded to permanent
        - permanent row: kept permanent
        """
        now = now or utcnow()
        access = self.session.query(ProductAccess).filter_by(
            user_id=user_id, product_id=product_id).first()

        if access is None:
            access = ProductAccess(user_id=user_id, product_id=product_id)
            self.session.add(access)
            current_expiry = None
            active = False
        else:
            current_expiry = access.access_expires_at
            active = access.is_active(now)

        if active and current_expiry is None:
            new_expiry = None
        elif active:
            new_expiry = current_expiry + timedelta(days=duration_days) if _limited(duration_days) else None
        else:
            new_expiry = now + timedelta(days=duration_days) if _limited(duration_days) else None

        access.access_granted_at = now
        access.access_expires_at = new_expiry
        access.access_duration_days = duration_days if new_expiry is not None else None
        self.session.flush()
        return access

    def revoke_access(self, user_id: str, product_id: str) -> int:
        return self.session.query(ProductAccess).filter_by(
            user_id=user_id, product_id=product_id).delete(synchronize_session=False)

    def has_access(self, user_id: str, product_id: str, now=None) -> bool:
        access = self.session.query(ProductAccess).filter_by(
            user_id=user_id, product_id=product_id).first()
        return access is not None and access.is_active(now)

    def list_access(self, user_id: str) -> List[ProductAccess]:
        return self.session.query(ProductAccess).filter_by(user_id=user_id).all()

    def revoke_for_transaction(self, tx: PaymentTransaction) -> int:
        """Remove every grant that the transaction produced.

        Logged-in purchases lose main and bump access directly. Guest
        purchases lose their unclaimed guest rows and, when a user already
        claimed them, that user's access.
        """
        revoked = 0
        metadata = tx.metadata_json or {}
        bump_product_id = metadata.get('bump_product_id') if metadata.get('has_bump') else None

        if tx.user_id:
            revoked += self.revoke_access(tx.user_id, tx.product_id)
            if bump_product_id:
                revoked += self.revoke_access(tx.user_id, bump_product_id)
        else:
            for guest in GuestPurchase.for_session(tx.session_id):
                if guest.claimed_by_user_id:
                    revoked += self.revoke_access(guest.claimed_by_user_id, guest.product_id)
                self.session.delete(guest)

        logger.info(
            "Access revoked for transaction",
            transaction_id=tx.id,
            revoked=revoked,
        )
        return revoked

    def claim_guest_purchases(self, user) -> List[str]:
        """Grant access for unclaimed guest purchases made with the user's email."""
        now = utcnow()
        pending = self.session.query(GuestPurchase).filter(
            GuestPurchase.customer_email == user.email,
            GuestPurchase.claimed_by_user_id.is_(None),
        ).all()

        granted = []
        for guest in pending:
            session_id = guest.session_id[:-len('_bump')] if guest.session_id.endswith('_bump') else guest.session_id
            tx = self.session.query(PaymentTransaction).filter_by(session_id=session_id).first()
            if tx is not None and tx.status != TransactionStatus.COMPLETED.value:
                continue

            product = self.session.get(Product, guest.product_id)
            duration = product.auto_grant_duration_days if product else None
            self.grant_access(user.id, guest.product_id, duration, now=now)
            guest.claimed_by_user_id = user.id
            guest.claimed_at = now
            granted.append(guest.product_id)

        self.session.commit()
        if granted:
            logger.info(
                "Guest purchases claimed",
                email=mask_email(user.email),
                product_count=len(granted),
            )
        return granted
