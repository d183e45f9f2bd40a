"""Создание платежной сессии и URL для перехода на шлюз."""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import InvalidAmount, InvalidCheckoutData
from storefront.models.order import Order, OrderStatus, PaymentStatus
from storefront.models.payment import PaymentSession
from storefront.schemas.payment import ClientContext
from storefront.services.gateways import GatewayRegistry
from storefront.services.gateways.base import REQUEST_ID_SEPARATOR, build_request_id
from storefront.services.order_service import OrderService

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = timedelta(minutes=15)
MAX_REQUEST_ID_ATTEMPTS = 5


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class CheckoutSessionResult:
    """Созданная сессия и URL шлюза."""

    session: PaymentSession
    redirect_url: str


class CheckoutService:
    """Сервис создания платежных сессий."""

    def __init__(
        self,
        db: AsyncSession,
        gateways: GatewayRegistry,
        session_ttl: timedelta = DEFAULT_SESSION_TTL,
    ):
        self.db = db
        self.gateways = gateways
        self.session_ttl = session_ttl
        self.order_service = OrderService(db)

    async def create_session(
        self,
        order: Order | None,
        provider: str,
        client_context: ClientContext,
    ) -> CheckoutSessionResult:
        """
        Создать попытку оплаты заказа через выбранный шлюз.

        Сессия сохраняется до построения URL; если шлюз отказал, транзакция
        откатывается целиком. Заказ переходит created -> pending_payment,
        payment_status остается unpaid.

        Raises:
            InvalidCheckoutData: нет заказа/провайдера, заказ уже оплачен или отменен
                или не удалось подобрать свободный request_id
            InvalidAmount: сумма к оплате <= 0
            PaymentGatewayError: шлюз не смог создать платеж
        """
        if order is None:
            raise InvalidCheckoutData("Order is required for checkout")
        if not provider:
            raise InvalidCheckoutData("Payment provider is required", details={"order_code": order.order_code})

        adapter = self.gateways.resolve(provider)
        self._validate_order(order)
        order_code = order.order_code

        for attempt in range(1, MAX_REQUEST_ID_ATTEMPTS + 1):
            now = datetime.utcnow()
            request_id = await self._next_request_id(order_code)
            session = PaymentSession(
                order_id=order.id,
                order_code=order_code,
                provider=adapter.provider,
                request_id=request_id,
                amount=order.final_amount,
                client_ip=client_context.ip_address,
                created_at=now,
                expires_at=now + self.session_ttl,
            )
            self.db.add(session)
            await self.order_service.mark_pending_payment(order, adapter.provider)

            try:
                await self.db.flush()
            except IntegrityError:
                # Параллельная попытка заняла тот же request_id
                await self.db.rollback()
                logger.warning(
                    f"Payment request id {request_id} already exists, "
                    f"retry attempt {attempt}/{MAX_REQUEST_ID_ATTEMPTS}"
                )
                await self.db.refresh(order)
                self._validate_order(order)
                continue

            try:
                redirect_url = await adapter.build_redirect_url(session, client_context)
            except Exception:
                await self.db.rollback()
                raise

            await self.db.commit()
            logger.info(
                f"Payment session {request_id} created for order {order_code} "
                f"via {adapter.provider}: amount={session.amount}, expires_at={session.expires_at.isoformat()}"
            )
            return CheckoutSessionResult(session=session, redirect_url=redirect_url)

        raise InvalidCheckoutData(
            f"Failed to generate unique payment request id for order {order_code}",
            details={"order_code": order_code, "attempts": MAX_REQUEST_ID_ATTEMPTS},
        )

    @staticmethod
    def _validate_order(order: Order) -> None:
        if order.payment_status != PaymentStatus.UNPAID.value:
            raise InvalidCheckoutData(
                f"Order {order.order_code} is already {order.payment_status}",
                details={"order_code": order.order_code, "payment_status": order.payment_status},
            )
        if order.status == OrderStatus.CANCELLED.value:
            raise InvalidCheckoutData(
                f"Order {order.order_code} is cancelled",
                details={"order_code": order.order_code},
            )
        if order.final_amount is None or Decimal(order.final_amount) <= 0:
            raise InvalidAmount(order.order_code, order.final_amount)

    async def _next_request_id(self, order_code: str) -> str:
        """
        Уникальный идентификатор попытки: код заказа + миллисекунды.

        Если в ту же миллисекунду уже была попытка (или часы отстают), берем
        следующий номер после максимального использованного.
        """
        stmt = select(PaymentSession.request_id).where(PaymentSession.order_code == order_code)
        result = await self.db.execute(stmt)
        used = []
        for request_id in result.scalars().all():
            _, _, suffix = request_id.rpartition(REQUEST_ID_SEPARATOR)
            if suffix.isdigit():
                used.append(int(suffix))

        suffix = _now_ms()
        if used and suffix <= max(used):
            suffix = max(used) + 1
        return build_request_id(order_code, suffix)
