# -*- coding: utf-8 -*-
"""
Event dispatcher: idempotency guard plus routing of typed events to appliers.

dispatch() never raises. Whatever happens after the signature check is
turned into a HandlerResult, so the webhook route can always acknowledge
the delivery with 200.
"""
from sqlalchemy.exc import SQLAlchemyError

from gateflow.database import db
from gateflow.services.appliers import HandlerResult
from gateflow.services.events import (
    EVENT_CLASSES,
    ChargeRefunded,
    CheckoutCompleted,
    DisputeCreated,
    PaymentSucceeded,
    UnhandledEvent,
    parse_event,
)
from gateflow.services.structured_logging import get_logger

logger = get_logger('gateflow.dispatcher')


class EventDispatcher:

    def __init__(self, completion, refund, dispute, idempotency_store, metrics=None):
        self.idempotency = idempotency_store
        self.metrics = metrics
        self._routes = {
            CheckoutCompleted: completion.apply_checkout,
            PaymentSucceeded: completion.apply_payment_intent,
            ChargeRefunded: refund.apply,
            DisputeCreated: dispute.apply,
            UnhandledEvent: self._acknowledge_unhandled,
        }
        missing = [cls.__name__ for cls in EVENT_CLASSES if cls not in self._routes]
        if missing:
            raise ValueError(f"No handler registered for: {', '.join(missing)}")

    def _acknowledge_unhandled(self, event: UnhandledEvent) -> HandlerResult:
        return HandlerResult(processed=True, message=f"Unhandled event type: {event.type}")

    def _record(self, event_type: str, outcome: str):
        if self.metrics is not None:
            self.metrics.record_webhook_event(event_type, outcome)

    def dispatch(self, raw_event: dict, provider: str = 'stripe') -> HandlerResult:
        event_type = raw_event.get('type') or 'unknown'
        try:
            event = parse_event(raw_event)
        except (ValueError, TypeError) as e:
            logger.log_error_event(str(e), error_kind='missing_required_data', webhook_event_type=event_type)
            self._record(event_type, 'failed')
            return HandlerResult(processed=False, error=f"Malformed event: {e}")

        if isinstance(event, UnhandledEvent):
            self._record(event.type, 'ignored')
            return self._acknowledge_unhandled(event)

        try:
            claimed = self.idempotency.claim(event.id, provider, event.type)
        except Exception as e:
            self._rollback()
            logger.exception(
                "Idempotency store unavailable",
                error_kind='downstream_failure',
                webhook_event_id=event.id,
            )
            self._record(event.type, 'failed')
            return HandlerResult(processed=False, error=f"Idempotency store unavailable: {e.__class__.__name__}")

        if not claimed:
            self._record(event.type, 'duplicate')
            return HandlerResult(processed=True, message=f"Already processed: {event.id}")

        handler = self._routes[type(event)]
        try:
            result = handler(event)
        except Exception as e:
            self._rollback()
            logger.exception(
                f"Handler failed for {event.type}",
                error_kind='downstream_failure',
                webhook_event_id=event.id,
            )
            result = HandlerResult(processed=False, error=str(e) or e.__class__.__name__)

        self._finish(event.id, result)
        self._record(event.type, 'processed' if result.processed else 'failed')
        return result

    def _finish(self, event_id: str, result: HandlerResult):
        try:
            if result.processed:
                self.idempotency.record_processed(event_id, result.message)
            else:
                self.idempotency.mark_failed(event_id, result.error or result.message)
        except Exception:
            self._rollback()
            logger.exception("Could not update idempotency record", webhook_event_id=event_id)

    @staticmethod
    def _rollback():
        try:
            db.session.rollback()
        except SQLAlchemyError:
            logger.exception("Session rollback failed")
