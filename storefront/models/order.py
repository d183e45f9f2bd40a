"""Модель заказа."""
import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Numeric, JSON
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database import Base


class OrderStatus(str, enum.Enum):
    """Статус заказа."""

    CREATED = "created"
    PENDING_PAYMENT = "pending_payment"
    PROCESSING = "processing"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    """Статус оплаты. paid и failed - конечные."""

    UNPAID = "unpaid"
    PAID = "paid"
    FAILED = "failed"


TERMINAL_PAYMENT_STATUSES = frozenset({PaymentStatus.PAID.value, PaymentStatus.FAILED.value})


class Order(Base):
    """Модель заказа."""

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    order_code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    customer_id: Mapped[str | None] = mapped_column(String, nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String, nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String, nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)  # Сумма товаров
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    shipping_fee: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    final_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)  # total - discount + shipping
    currency: Mapped[str] = mapped_column(String(3), default="VND")

    status: Mapped[str] = mapped_column(String, default=OrderStatus.CREATED.value)
    # Меняется только через OrderReconciler
    payment_status: Mapped[str] = mapped_column(String, default=PaymentStatus.UNPAID.value)
    payment_method: Mapped[str | None] = mapped_column(String, nullable=True)  # vnpay / momo
    payment_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    @staticmethod
    def compute_final_amount(total: Decimal, discount: Decimal, shipping_fee: Decimal) -> Decimal:
        return total - discount + shipping_fee

    @property
    def is_payment_terminal(self) -> bool:
        return self.payment_status in TERMINAL_PAYMENT_STATUSES
