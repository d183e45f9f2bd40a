"""Действия после успешной оплаты: очистка корзины и письмо с подтверждением."""
import logging

import httpx

from storefront.core.task_queue import TaskQueue
from storefront.models.order import Order

logger = logging.getLogger(__name__)

CLEAR_CART_TASK = "clear_cart"
SEND_CONFIRMATION_TASK = "send_order_confirmation"


class CartClient:
    """Клиент сервиса корзины."""

    def __init__(
        self,
        base_url: str | None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def clear_cart(self, customer_id: str | None, order_code: str) -> None:
        """
        Очистить корзину покупателя.

        Ошибки HTTP пробрасываются, чтобы очередь повторила задачу.
        """
        if not self.base_url:
            logger.warning("Cart service URL not configured, skipping cart clearing")
            return
        if not customer_id:
            logger.info(f"Order {order_code} has no customer, nothing to clear")
            return

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                f"{self.base_url}/carts/{customer_id}/clear",
                json={"order_code": order_code},
            )
            response.raise_for_status()
        logger.info(f"Cart cleared for customer {customer_id} after order {order_code}")


class OrderMailer:
    """Клиент почтового сервиса."""

    def __init__(
        self,
        base_url: str | None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def send_order_confirmation(
        self,
        order_code: str,
        email: str | None,
        final_amount: str,
        currency: str,
        customer_name: str | None = None,
    ) -> None:
        """Отправить письмо с подтверждением заказа."""
        if not self.base_url:
            logger.warning("Mail service URL not configured, skipping order confirmation")
            return
        if not email:
            logger.info(f"Order {order_code} has no customer email, confirmation not sent")
            return

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                f"{self.base_url}/emails/order-confirmation",
                json={
                    "to": email,
                    "customer_name": customer_name,
                    "order_code": order_code,
                    "final_amount": final_amount,
                    "currency": currency,
                },
            )
            response.raise_for_status()
        logger.info(f"Order confirmation for {order_code} sent to {email}")


def register_post_payment_handlers(queue: TaskQueue, cart_client: CartClient, mailer: OrderMailer) -> None:
    """Подключить обработчики задач после оплаты к очереди."""
    queue.register(CLEAR_CART_TASK, cart_client.clear_cart)
    queue.register(SEND_CONFIRMATION_TASK, mailer.send_order_confirmation)


def enqueue_post_payment_tasks(queue: TaskQueue, order: Order) -> None:
    """Поставить задачи для оплаченного заказа."""
    queue.enqueue(CLEAR_CART_TASK, customer_id=order.customer_id, order_code=order.order_code)
    queue.enqueue(
        SEND_CONFIRMATION_TASK,
        order_code=order.order_code,
        email=order.customer_email,
        final_amount=str(order.final_amount),
        currency=order.currency,
        customer_name=order.customer_name,
    )
