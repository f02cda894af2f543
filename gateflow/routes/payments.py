# -*- coding: utf-8 -*-
"""
Admin payment routes: transaction listing and refunds.
"""
from flask import Blueprint, request, jsonify
from pydantic import ValidationError

from gateflow.database import db
from gateflow.errors import DownstreamFailure
from gateflow.middleware.auth import admin_required
from gateflow.models.payment import PaymentTransaction, TransactionStatus
from gateflow.schemas.checkout import RefundRequest
from gateflow.schemas.common import validation_error_response
from gateflow.services.container import get_services
from gateflow.services.structured_logging import get_logger

logger = get_logger('gateflow.payments')

payments_bp = Blueprint('payments', __name__)


@payments_bp.route('/api/v1/payments', methods=['GET'])
@admin_required
def list_transactions():
    query = db.session.query(PaymentTransaction)

    status = request.args.get('status')
    if status:
        if status not in {s.value for s in TransactionStatus}:
            return jsonify({'error': 'validation_error', 'message': 'Invalid status filter', 'field': 'status'}), 400
        query = query.filter(PaymentTransaction.status == status)

    email = request.args.get('email')
    if email:
        query = query.filter(PaymentTransaction.customer_email == email.strip().lower())

    try:
        limit = min(max(int(request.args.get('limit', 50)), 1), 200)
    except ValueError:
        return jsonify({'error': 'validation_error', 'message': 'limit must be an integer', 'field': 'limit'}), 400

    transactions = query.order_by(PaymentTransaction.created_at.desc()).limit(limit).all()
    return jsonify({'transactions': [tx.to_dict() for tx in transactions]}), 200


@payments_bp.route('/api/v1/payments/<transaction_id>/refund', methods=['POST'])
@admin_required
def refund_transaction(transaction_id: str):
    """Refund a completed transaction at Stripe and revoke the access it granted"""
    try:
        data = RefundRequest(**(request.get_json(silent=True) or {}))
    except ValidationError as e:
        return validation_error_response(e)

    tx = db.session.get(PaymentTransaction, transaction_id)
    if tx is None:
        return jsonify({'error': 'not_found', 'message': 'Transaction not found'}), 404

    if tx.status != TransactionStatus.COMPLETED.value:
        return jsonify({
            'error': 'invalid_status',
            'message': f"Only completed transactions can be refunded (status: {tx.status})",
        }), 400

    if data.amount is not None and data.amount > tx.amount:
        return jsonify({
            'error': 'validation_error',
            'message': 'Refund amount exceeds transaction amount',
            'field': 'amount',
        }), 400

    services = get_services()
    try:
        refund = services.stripe.create_refund(
            tx.stripe_payment_intent_id or tx.session_id,
            amount=data.amount,
            reason=data.reason,
            metadata={'transaction_id': tx.id},
        )
    except DownstreamFailure as e:
        logger.log_error_event(e.message, error_kind=e.error_kind, transaction_id=tx.id)
        return jsonify({'error': 'stripe_error', 'message': e.message}), 502

    result = services.refund.refund_transaction(tx, refund_id=refund.id, amount=data.amount)
    if not result.processed:
        return jsonify({'error': 'refund_not_recorded', 'message': result.message, 'refund_id': refund.id}), 500

    return jsonify({
        'success': True,
        'refund_id': refund.id,
        'message': result.message,
        'transaction': tx.to_dict(),
    }), 200
