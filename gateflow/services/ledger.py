# -*- coding: utf-8 -*-
"""
Payment ledger: the single source-of-truth mutation for a completed payment.

`complete_payment` records the transaction, redeems the coupon and grants
access (or stores guest purchases) in one database transaction. The unique
session_id column makes it safe to call twice for the same session.
"""
import re
from dataclasses import asdict, dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from gateflow.database import db
from gateflow.errors import DownstreamFailure
from gateflow.models.base import isoformat
from gateflow.models.coupon import Coupon, CouponRedemption
from gateflow.models.payment import GuestPurchase, PaymentTransaction, TransactionStatus
from gateflow.models.product import OrderBump, Product
from gateflow.models.user import User
from gateflow.services.access import AccessService
from gateflow.services.structured_logging import get_logger, mask_email

logger = get_logger('gateflow.ledger')

SCENARIO_LOGGED_IN = 'logged_in'
SCENARIO_EXISTING_USER_EMAIL = 'existing_user_email'
SCENARIO_GUEST_NEW = 'guest_new'
SCENARIO_ALREADY_PROCESSED = 'already_processed'

SESSION_ID_RE = re.compile(r'^(cs|pi)_[a-zA-Z0-9_]+$')
EMAIL_RE = re.compile(r'^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$')
MAX_AMOUNT = 99999999


@dataclass
class CompletionRequest:
    session_id: str
    product_id: str
    customer_email: str
    amount: int
    currency: str = 'usd'
    payment_intent_id: Optional[str] = None
    user_id: Optional[str] = None
    bump_product_id: Optional[str] = None
    coupon_id: Optional[str] = None


@dataclass
class CompletionResult:
    success: bool
    scenario: Optional[str] = None
    access_granted: bool = False
    already_had_access: bool = False
    already_processed: bool = False
    requires_login: bool = False
    is_guest_purchase: bool = False
    send_magic_link: bool = False
    bump_access_granted: bool = False
    access_expires_at: Optional[str] = None
    customer_email: Optional[str] = None
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> 'CompletionResult':
        return cls(success=False, error=error)

    def to_dict(self) -> dict:
        return asdict(self)


def _validate(req: CompletionRequest) -> Optional[str]:
    if not req.session_id or len(req.session_id) > 255:
        return 'Invalid session ID'
    if not SESSION_ID_RE.match(req.session_id):
        return 'Invalid session ID format'
    if not req.product_id:
        return 'Product ID is required'
    if not req.customer_email or not EMAIL_RE.match(req.customer_email):
        return 'Valid email address is required'
    if req.amount is None or req.amount <= 0 or req.amount > MAX_AMOUNT:
        return 'Invalid amount'
    return None


class PaymentLedger:

    def __init__(self, access_service: Optional[AccessService] = None, db_session=None):
        self._session = db_session
        self.access = access_service or AccessService(db_session)

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def find_existing(self, session_id: str, payment_intent_id: Optional[str] = None):
        tx = self.session.query(PaymentTransaction).filter_by(session_id=session_id).first()
        if tx is None and payment_intent_id:
            tx = self.session.query(PaymentTransaction).filter_by(
                stripe_payment_intent_id=payment_intent_id).first()
        return tx

    def _already_processed(self, tx: PaymentTransaction, email: str) -> CompletionResult:
        metadata = tx.metadata_json or {}
        return CompletionResult(
            success=True,
            scenario=SCENARIO_ALREADY_PROCESSED,
            access_granted=True,
            already_had_access=True,
            already_processed=True,
            is_guest_purchase=metadata.get('scenario') in (SCENARIO_EXISTING_USER_EMAIL, SCENARIO_GUEST_NEW),
            customer_email=email,
            transaction_id=tx.id,
            message='Payment already processed (idempotent)',
        )

    def complete_payment(self, req: CompletionRequest) -> CompletionResult:
        """Record a completed payment and grant access.

        Returns a failed result for invalid input or an unknown product, and an
        already-processed result when the session (or payment intent) was
        recorded before. Raises DownstreamFailure for database errors.
        """
        error = _validate(req)
        if error:
            return CompletionResult.failure(error)

        email = req.customer_email.strip().lower()

        try:
            existing = self.find_existing(req.session_id, req.payment_intent_id)
            if existing is not None:
                return self._already_processed(existing, email)

            product = self.session.query(Product).filter_by(id=req.product_id, is_active=True).first()
            if product is None:
                return CompletionResult.failure('Product not found or inactive')

            bump = None
            if req.bump_product_id:
                bump = (
                    self.session.query(OrderBump)
                    .join(Product, OrderBump.bump_product_id == Product.id)
                    .filter(
                        OrderBump.main_product_id == product.id,
                        OrderBump.bump_product_id == req.bump_product_id,
                        OrderBump.is_active.is_(True),
                        Product.is_active.is_(True),
                    )
                    .first()
                )
                if bump is None:
                    logger.warning(
                        "Bump product not offered for this product, ignoring",
                        product_id=product.id,
                        bump_product_id=req.bump_product_id,
                    )

            user = self.session.get(User, req.user_id) if req.user_id else None
            if req.user_id and user is None:
                logger.warning("Checkout user not found, treating as guest", user_id=req.user_id)
            existing_user = None if user else User.find_by_email(email)

            if user is not None:
                scenario = SCENARIO_LOGGED_IN
            elif existing_user is not None:
                scenario = SCENARIO_EXISTING_USER_EMAIL
            else:
                scenario = SCENARIO_GUEST_NEW

            tx = PaymentTransaction(
                session_id=req.session_id,
                stripe_payment_intent_id=req.payment_intent_id,
                product_id=product.id,
                customer_email=email,
                user_id=user.id if user else None,
                amount=int(req.amount),
                currency=(req.currency or 'usd').upper(),
                status=TransactionStatus.COMPLETED.value,
                metadata_json={
                    'scenario': scenario,
                    'has_bump': bump is not None,
                    'bump_product_id': bump.bump_product_id if bump else None,
                    'has_coupon': bool(req.coupon_id),
                    'coupon_id': req.coupon_id,
                },
            )
            self.session.add(tx)
            self.session.flush()

            if req.coupon_id:
                self._redeem_coupon(req.coupon_id, tx, user)

            result = CompletionResult(
                success=True,
                scenario=scenario,
                customer_email=email,
                transaction_id=tx.id,
            )

            if scenario == SCENARIO_LOGGED_IN:
                had_access = self.access.has_access(user.id, product.id)
                access = self.access.grant_access(user.id, product.id, product.auto_grant_duration_days)
                result.access_granted = True
                result.already_had_access = had_access
                result.access_expires_at = isoformat(access.access_expires_at)
                if bump is not None:
                    self.access.grant_access(user.id, bump.bump_product_id, bump.effective_duration_days)
                    result.bump_access_granted = True
            else:
                self.session.add(GuestPurchase(
                    customer_email=email,
                    product_id=product.id,
                    session_id=req.session_id,
                    transaction_amount=int(req.amount),
                ))
                if bump is not None:
                    self.session.add(GuestPurchase(
                        customer_email=email,
                        product_id=bump.bump_product_id,
                        session_id=f"{req.session_id}_bump",
                        transaction_amount=0,
                    ))
                result.is_guest_purchase = True
                result.requires_login = True
                result.send_magic_link = True

            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            # A concurrent delivery recorded the same session first.
            existing = self.find_existing(req.session_id, req.payment_intent_id)
            if existing is None:
                raise DownstreamFailure(
                    f"Conflicting record, payment not stored: {e.__class__.__name__}",
                    session_id=req.session_id,
                ) from e
            return self._already_processed(existing, email)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise DownstreamFailure(f"Database error: {e.__class__.__name__}", session_id=req.session_id) from e

        logger.info(
            "Payment completed",
            scenario=result.scenario,
            transaction_id=result.transaction_id,
            product_id=product.id,
            email=mask_email(email),
            bump=bump is not None,
        )
        return result

    def _redeem_coupon(self, coupon_id: str, tx: PaymentTransaction, user: Optional[User]):
        coupon = self.session.get(Coupon, coupon_id)
        if coupon is None:
            logger.warning("Coupon on paid session no longer exists", coupon_id=coupon_id, transaction_id=tx.id)
            return
        self.session.add(CouponRedemption(
            coupon_id=coupon.id,
            user_id=user.id if user else None,
            customer_email=tx.customer_email,
            transaction_id=tx.id,
        ))
        self.session.query(Coupon).filter_by(id=coupon.id).update(
            {Coupon.current_usage_count: Coupon.current_usage_count + 1},
            synchronize_session=False,
        )
