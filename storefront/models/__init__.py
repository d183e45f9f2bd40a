"""Модели базы данных."""
from storefront.models.order import Order, OrderStatus, PaymentStatus
from storefront.models.payment import PaymentSession, PaymentNotification

__all__ = [
    "Order",
    "OrderStatus",
    "PaymentStatus",
    "PaymentSession",
    "PaymentNotification",
]
