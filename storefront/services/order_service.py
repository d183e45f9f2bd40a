"""Сервис для работы с заказами."""
import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import InvalidCheckoutData
from storefront.models.order import Order, OrderStatus

logger = logging.getLogger(__name__)

ORDER_CODE_PREFIX = "ORD"
MAX_CODE_ATTEMPTS = 5


class OrderService:
    """Сервис для работы с заказами."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_order(
        self,
        total_amount: Decimal,
        discount_amount: Decimal = Decimal("0"),
        shipping_fee: Decimal = Decimal("0"),
        currency: str = "VND",
        customer_id: str | None = None,
        customer_email: str | None = None,
        customer_name: str | None = None,
        order_code: str | None = None,
    ) -> Order:
        """
        Создать заказ в статусе created/unpaid.

        Скидка и доставка приходят уже посчитанными, итоговая сумма
        вычисляется здесь: total - discount + shipping.
        """
        if total_amount is None or discount_amount is None or shipping_fee is None:
            raise InvalidCheckoutData("Order amounts are required")

        final_amount = Order.compute_final_amount(total_amount, discount_amount, shipping_fee)

        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            code = order_code or await self._generate_order_code()
            order = Order(
                order_code=code,
                customer_id=customer_id,
                customer_email=customer_email,
                customer_name=customer_name,
                total_amount=total_amount,
                discount_amount=discount_amount,
                shipping_fee=shipping_fee,
                final_amount=final_amount,
                currency=currency,
            )
            self.db.add(order)
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                if order_code:
                    raise InvalidCheckoutData(
                        f"Order code {order_code} already exists",
                        details={"order_code": order_code},
                    )
                logger.warning(f"Order code {code} already exists, retry attempt {attempt}/{MAX_CODE_ATTEMPTS}")
                continue

            await self.db.refresh(order)
            logger.info(f"Order {order.order_code} created: final_amount={order.final_amount} {order.currency}")
            return order

        raise InvalidCheckoutData("Failed to generate unique order code")

    async def _generate_order_code(self) -> str:
        """Код вида ORD2025071100001: префикс, дата и счетчик за день."""
        prefix = f"{ORDER_CODE_PREFIX}{datetime.utcnow().strftime('%Y%m%d')}"
        stmt = (
            select(Order.order_code)
            .where(Order.order_code.like(f"{prefix}%"))
            .order_by(Order.order_code.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        last_code = result.scalar_one_or_none()

        counter = 1
        if last_code and last_code[len(prefix):].isdigit():
            counter = int(last_code[len(prefix):]) + 1
        return f"{prefix}{counter:05d}"

    async def get_by_code(self, order_code: str) -> Order | None:
        """Получить заказ по коду."""
        stmt = select(Order).where(Order.order_code == order_code)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_pending_payment(self, order: Order, provider: str) -> None:
        """
        Перевести заказ created -> pending_payment при старте оплаты.

        payment_status здесь не трогаем. Изменения не коммитятся.
        """
        if order.status == OrderStatus.CREATED.value:
            order.status = OrderStatus.PENDING_PAYMENT.value
        order.payment_method = provider
        self.db.add(order)
