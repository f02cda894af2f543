# -*- coding: utf-8 -*-
"""
Side-effect appliers, one per payment event category.

Appliers never raise for expected failures (missing data, unknown
transaction, database errors); they report them through HandlerResult so
the dispatcher can acknowledge the delivery and operators can follow up
from the logs.
"""
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from gateflow.database import db
from gateflow.errors import AnomalyNotFound, DownstreamFailure, MissingRequiredData
from gateflow.models.base import utcnow, isoformat
from gateflow.models.payment import PaymentTransaction, TransactionStatus
from gateflow.services.events import (
    CHECKOUT_SESSION_COMPLETED,
    ChargeRefunded,
    CheckoutCompleted,
    DisputeCreated,
    PaymentSucceeded,
)
from gateflow.services.ledger import CompletionRequest, PaymentLedger
from gateflow.services.structured_logging import get_logger, mask_email

logger = get_logger('gateflow.appliers')


@dataclass
class HandlerResult:
    processed: bool
    message: Optional[str] = None
    error: Optional[str] = None
    data: dict = field(default_factory=dict)


def _report(error, event_id: Optional[str] = None) -> HandlerResult:
    logger.log_error_event(error.message, error_kind=error.error_kind, webhook_event_id=event_id, **error.context)
    return HandlerResult(processed=False, message=error.message)


class CompletionApplier:
    """Completes a purchase through the ledger, then schedules notifications."""

    def __init__(self, ledger: PaymentLedger, notifier=None, oto_service=None):
        self.ledger = ledger
        self.notifier = notifier
        self.oto_service = oto_service

    def apply_checkout(self, event: CheckoutCompleted) -> HandlerResult:
        if event.type == CHECKOUT_SESSION_COMPLETED and not event.is_paid:
            return HandlerResult(processed=True, message='Skipped: payment not yet paid')

        md = event.metadata
        if not md.product_id or not event.customer_email:
            return _report(MissingRequiredData(
                'Missing product_id or customer_email in session', session_id=event.session_id), event.id)

        request = CompletionRequest(
            session_id=event.session_id,
            product_id=md.product_id,
            customer_email=event.customer_email,
            amount=event.amount_total,
            currency=event.currency,
            payment_intent_id=event.payment_intent_id,
            user_id=md.user_id,
            bump_product_id=md.bump_product_id,
            coupon_id=md.coupon_id,
        )
        payload = {
            'email': event.customer_email,
            'product_id': md.product_id,
            'amount': event.amount_total,
            'currency': event.currency,
            'session_id': event.session_id,
            'bump_product_id': md.bump_product_id,
            'coupon_id': md.coupon_id,
            'first_name': md.first_name,
            'last_name': md.last_name,
            'source': 'stripe_webhook',
        }
        return self._complete(event.id, request, payload)

    def apply_payment_intent(self, event: PaymentSucceeded) -> HandlerResult:
        # Checkout sessions also emit this event; the session usually got there first.
        existing = self.ledger.find_existing(event.payment_intent_id, event.payment_intent_id)
        if existing is not None:
            return HandlerResult(processed=True, message=f"Already processed: {existing.id}")

        md = event.metadata
        if not md.product_id or not event.customer_email:
            return _report(MissingRequiredData(
                'Missing product_id or email in payment intent',
                payment_intent_id=event.payment_intent_id), event.id)

        request = CompletionRequest(
            session_id=event.payment_intent_id,
            product_id=md.product_id,
            customer_email=event.customer_email,
            amount=event.amount,
            currency=event.currency,
            payment_intent_id=event.payment_intent_id,
            user_id=md.user_id,
            bump_product_id=md.bump_product_id,
            coupon_id=md.coupon_id,
        )
        payload = {
            'email': event.customer_email,
            'product_id': md.product_id,
            'amount': event.amount,
            'currency': event.currency,
            'payment_intent_id': event.payment_intent_id,
            'bump_product_id': md.bump_product_id,
            'coupon_id': md.coupon_id,
            'first_name': md.first_name,
            'last_name': md.last_name,
            'source': 'stripe_webhook',
        }
        return self._complete(event.id, request, payload)

    def _complete(self, event_id: str, request: CompletionRequest, payload: dict) -> HandlerResult:
        try:
            result = self.ledger.complete_payment(request)
        except DownstreamFailure as e:
            return _report(e, event_id)

        if not result.success:
            logger.warning(
                "Payment completion rejected",
                webhook_event_id=event_id,
                reason=result.error,
                email=mask_email(request.customer_email),
            )
            return HandlerResult(processed=False, message=result.error or 'Payment processing failed')

        if result.already_processed:
            return HandlerResult(
                processed=True,
                message=f"Already processed: {result.transaction_id}",
                data=result.to_dict(),
            )

        if self.notifier is not None:
            if not result.already_had_access:
                self.notifier.trigger('purchase.completed', dict(payload, is_guest=result.is_guest_purchase))
            if result.send_magic_link:
                self.notifier.send_magic_link(result.customer_email)

        if self.oto_service is not None:
            try:
                self.oto_service.generate_for_transaction(result.transaction_id)
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.log_error_event(
                    f"OTO coupon generation failed: {e.__class__.__name__}",
                    error_kind=DownstreamFailure.error_kind,
                    transaction_id=result.transaction_id,
                )

        return HandlerResult(
            processed=True,
            message=f"Payment processed: {result.scenario}",
            data=result.to_dict(),
        )


class RefundApplier:
    """Marks the transaction refunded and deletes the access it granted."""

    def __init__(self, access_service, db_session=None):
        self.access = access_service
        self._session = db_session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def apply(self, event: ChargeRefunded) -> HandlerResult:
        if not event.payment_intent_id:
            return _report(MissingRequiredData('No payment_intent in charge', charge_id=event.charge_id), event.id)

        tx = PaymentTransaction.find_by_payment_reference(event.payment_intent_id)
        if tx is None:
            return _report(AnomalyNotFound(
                'Transaction not found for refund', payment_intent_id=event.payment_intent_id), event.id)

        return self.refund_transaction(tx, refund_id=event.refund_id, amount=event.amount_refunded or None)

    def refund_transaction(self, tx: PaymentTransaction, refund_id: Optional[str] = None,
                           amount: Optional[int] = None) -> HandlerResult:
        if tx.status == TransactionStatus.REFUNDED.value:
            return HandlerResult(processed=True, message='Already refunded')
        if tx.status == TransactionStatus.DISPUTED.value:
            return HandlerResult(processed=True, message='Transaction already disputed')
        if not tx.can_transition_to(TransactionStatus.REFUNDED):
            return HandlerResult(processed=False, message=f"Cannot refund a {tx.status} transaction")

        try:
            tx.transition_to(TransactionStatus.REFUNDED)
            tx.refund_id = refund_id
            tx.refunded_amount = amount if amount is not None else tx.amount
            tx.refunded_at = utcnow()
            revoked = self.access.revoke_for_transaction(tx)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            _report(DownstreamFailure(
                f"Refund update failed: {e.__class__.__name__}", transaction_id=tx.id))
            return HandlerResult(processed=False, message='Failed to update transaction status')

        logger.info("Refund applied", transaction_id=tx.id, refund_id=refund_id, revoked=revoked)
        return HandlerResult(
            processed=True,
            message='Refund processed and access revoked',
            data={'transaction_id': tx.id, 'revoked': revoked},
        )


class DisputeApplier:
    """Records dispute details for manual review and revokes access immediately."""

    def __init__(self, access_service, stripe_gateway, db_session=None):
        self.access = access_service
        self.stripe = stripe_gateway
        self._session = db_session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def apply(self, event: DisputeCreated) -> HandlerResult:
        payment_intent_id = event.payment_intent_id
        if not payment_intent_id:
            if not event.charge_id:
                return _report(MissingRequiredData('No charge in dispute', dispute_id=event.dispute_id), event.id)
            try:
                payment_intent_id = self.stripe.get_charge_payment_intent(event.charge_id)
            except DownstreamFailure as e:
                return _report(e, event.id)
            if not payment_intent_id:
                return _report(MissingRequiredData(
                    'No payment_intent in disputed charge', charge_id=event.charge_id), event.id)

        tx = PaymentTransaction.find_by_payment_reference(payment_intent_id)
        if tx is None:
            return _report(AnomalyNotFound(
                'Transaction not found for dispute', payment_intent_id=payment_intent_id), event.id)

        if tx.status == TransactionStatus.DISPUTED.value:
            return HandlerResult(processed=True, message='Already disputed')

        dispute = {
            'dispute_id': event.dispute_id,
            'dispute_reason': event.reason,
            'dispute_status': event.status,
            'dispute_created': isoformat(event.created),
        }

        if tx.status == TransactionStatus.REFUNDED.value:
            # Money already returned; keep the record for review without changing status.
            tx.dispute = dispute
            self.session.commit()
            return HandlerResult(processed=True, message='Transaction already refunded, dispute recorded')

        if not tx.can_transition_to(TransactionStatus.DISPUTED):
            return HandlerResult(processed=False, message=f"Cannot dispute a {tx.status} transaction")

        try:
            tx.transition_to(TransactionStatus.DISPUTED)
            tx.dispute = dispute
            revoked = self.access.revoke_for_transaction(tx)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            _report(DownstreamFailure(
                f"Dispute update failed: {e.__class__.__name__}", transaction_id=tx.id))
            return HandlerResult(processed=False, message='Failed to update transaction status')

        logger.warning(
            "Dispute recorded, access revoked",
            transaction_id=tx.id,
            dispute_id=event.dispute_id,
            dispute_reason=event.reason,
            revoked=revoked,
        )
        return HandlerResult(
            processed=True,
            message='Dispute recorded and access revoked',
            data={'transaction_id': tx.id, 'revoked': revoked},
        )
