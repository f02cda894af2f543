# -*- coding: utf-8 -*-
"""
Per-app service wiring.

`build_services` assembles the webhook pipeline (verifiers -> dispatcher ->
appliers -> ledger) and the outbound side from app config, and stores the
result in `app.extensions["gateflow"]`. Routes and background jobs look
services up there; tests pass overrides (fake gateway, stores) to create_app.
"""
from dataclasses import dataclass
from typing import Any, Dict

from flask import Flask, current_app

from gateflow.database import db
from gateflow.services.access import AccessService
from gateflow.services.appliers import CompletionApplier, DisputeApplier, RefundApplier
from gateflow.services.coupons import CouponService, OtoService
from gateflow.services.dispatcher import EventDispatcher
from gateflow.services.emailer import Emailer
from gateflow.services.idempotency import build_idempotency_store
from gateflow.services.ledger import PaymentLedger
from gateflow.services.magic_link import MagicLinkService
from gateflow.services.notifier import Notifier
from gateflow.services.signature import build_verifiers
from gateflow.services.stripe_gateway import StripeGateway
from gateflow.services.tracking import ConversionTracker
from gateflow.services.webhook_service import WebhookService


@dataclass
class Services:
    verifiers: Dict[str, Any]
    idempotency: Any
    access: AccessService
    ledger: PaymentLedger
    stripe: Any
    completion: CompletionApplier
    refund: RefundApplier
    dispute: DisputeApplier
    dispatcher: EventDispatcher
    notifier: Notifier
    webhooks: WebhookService
    tracker: ConversionTracker
    coupons: CouponService
    oto: OtoService
    magic_links: MagicLinkService


def build_services(app: Flask, **overrides) -> Services:
    """Build the service graph for `app`. Keyword overrides replace single leaves."""
    config = app.config
    metrics = app.extensions.get('metrics')

    verifiers = overrides.get('verifiers') or build_verifiers(config)
    idempotency = overrides.get('idempotency') or build_idempotency_store(config)
    stripe_gateway = overrides.get('stripe') or StripeGateway(config.get('STRIPE_SECRET_KEY'))

    access = AccessService()
    ledger = PaymentLedger(access_service=access)
    coupons = CouponService()
    oto = OtoService()

    notifier = overrides.get('notifier') or Notifier(
        app,
        backend=config.get('NOTIFIER_BACKEND', 'thread'),
        max_workers=int(config.get('NOTIFIER_MAX_WORKERS', 4)),
        redis_url=config.get('REDIS_URL'),
    )

    completion = CompletionApplier(ledger, notifier=notifier, oto_service=oto)
    refund = RefundApplier(access)
    dispute = DisputeApplier(access, stripe_gateway)
    dispatcher = EventDispatcher(completion, refund, dispute, idempotency, metrics=metrics)

    webhooks = overrides.get('webhooks') or WebhookService(
        db.session,
        timeout=int(config.get('WEBHOOK_TIMEOUT_SECONDS', 5)),
        metrics=metrics,
    )
    tracker = overrides.get('tracker') or ConversionTracker(
        graph_api_version=config.get('FB_GRAPH_API_VERSION', 'v18.0'),
        public_base_url=config.get('PUBLIC_BASE_URL', ''),
    )

    emailer = Emailer(
        config.get('SENDGRID_API_KEY'),
        config.get('FROM_EMAIL'),
        config.get('FROM_NAME'),
        sandbox=bool(config.get('SENDGRID_SANDBOX')),
    )
    magic_links = overrides.get('magic_links') or MagicLinkService(
        config['JWT_SECRET_KEY'],
        int(config.get('MAGIC_LINK_TTL_MIN', 60)),
        config.get('PUBLIC_BASE_URL', ''),
        emailer=emailer,
    )

    services = Services(
        verifiers=verifiers,
        idempotency=idempotency,
        access=access,
        ledger=ledger,
        stripe=stripe_gateway,
        completion=completion,
        refund=refund,
        dispute=dispute,
        dispatcher=dispatcher,
        notifier=notifier,
        webhooks=webhooks,
        tracker=tracker,
        coupons=coupons,
        oto=oto,
        magic_links=magic_links,
    )
    app.extensions['gateflow'] = services
    return services


def get_services() -> Services:
    return current_app.extensions['gateflow']
