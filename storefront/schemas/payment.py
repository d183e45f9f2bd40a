"""Типы данных платежного контура."""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal


class PaymentProvider(str, enum.Enum):
    """Поддерживаемые платежные шлюзы."""

    VNPAY = "vnpay"
    MOMO = "momo"


class DeliveryChannel(str, enum.Enum):
    """Канал, по которому пришло уведомление об оплате."""

    REDIRECT = "redirect"  # браузер плательщика вернулся с шлюза
    SERVER_PUSH = "server_push"  # IPN от шлюза


class ReconcileOutcome(str, enum.Enum):
    """Результат сверки уведомления с заказом."""

    PAID = "paid"
    FAILED = "failed"
    ALREADY_RECONCILED = "already_reconciled"
    INVALID_SIGNATURE = "invalid_signature"
    ORDER_NOT_FOUND = "order_not_found"
    AMOUNT_MISMATCH = "amount_mismatch"


@dataclass(frozen=True)
class ClientContext:
    """Данные клиента, нужные шлюзу при создании платежа."""

    ip_address: str | None = None
    bank_code: str | None = None
    locale: str | None = None
    order_description: str | None = None


@dataclass(frozen=True)
class VerificationResult:
    """
    Результат проверки входящего уведомления.

    verified=False - payload не заслуживает доверия вообще.
    verified=True, success=False - подпись верна, но оплата не прошла.
    """

    verified: bool
    success: bool
    provider: str
    order_code: str | None = None
    amount: Decimal | None = None
    transaction_id: str | None = None
    request_id: str | None = None
    response_code: str | None = None
    response_message: str = ""

    @classmethod
    def rejected(cls, provider: str, message: str, **declared) -> "VerificationResult":
        return cls(verified=False, success=False, provider=provider, response_message=message, **declared)


@dataclass(frozen=True)
class GatewayAcknowledgement:
    """Ответ шлюзу на IPN в формате его протокола."""

    status_code: int
    body: dict | None = None


@dataclass(frozen=True)
class NotificationEvent:
    """Одно входящее уведомление от шлюза, уже прошедшее проверку подписи."""

    provider: str
    channel: DeliveryChannel
    verification: VerificationResult
    raw_params: dict = field(default_factory=dict)
    received_at: datetime = field(default_factory=datetime.utcnow)
    amount_tolerance: Decimal = Decimal("0")

    @property
    def verified(self) -> bool:
        return self.verification.verified

    @property
    def success(self) -> bool:
        return self.verification.success

    @property
    def order_code(self) -> str | None:
        return self.verification.order_code

    @property
    def amount(self) -> Decimal | None:
        return self.verification.amount

    @property
    def transaction_id(self) -> str | None:
        return self.verification.transaction_id

    @property
    def result_code(self) -> str | None:
        return self.verification.response_code
