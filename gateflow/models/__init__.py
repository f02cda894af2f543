# -*- coding: utf-8 -*-
from gateflow.database import db

from .user import User
from .product import Product, OrderBump, OtoOffer
from .coupon import Coupon, CouponRedemption
from .payment import PaymentTransaction, GuestPurchase, TransactionStatus
from .access import ProductAccess
from .idempotency import ProcessedWebhookEvent
from .webhook import WebhookEndpoint, WebhookLog
from .integrations import IntegrationsConfig

__all__ = [
    "db",
    "User",
    "Product",
    "OrderBump",
    "OtoOffer",
    "Coupon",
    "CouponRedemption",
    "PaymentTransaction",
    "GuestPurchase",
    "TransactionStatus",
    "ProductAccess",
    "ProcessedWebhookEvent",
    "WebhookEndpoint",
    "WebhookLog",
    "IntegrationsConfig",
]
