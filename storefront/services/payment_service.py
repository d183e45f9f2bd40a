"""Сервис для работы с платежами."""
import logging
from datetime import timedelta
from typing import Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import InvalidCheckoutData, OrderNotFoundError
from storefront.core.task_queue import TaskQueue
from storefront.schemas.payment import ClientContext, DeliveryChannel, NotificationEvent
from storefront.services.checkout_service import (
    DEFAULT_SESSION_TTL,
    CheckoutService,
    CheckoutSessionResult,
)
from storefront.services.gateways import GatewayRegistry
from storefront.services.notification_verifier import NotificationVerifier
from storefront.services.order_service import OrderService
from storefront.services.reconciliation_service import OrderReconciler, ReconcileResult

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Точка входа платежного контура.

    start_checkout - создать сессию и получить URL шлюза.
    handle_notification - обработать уведомление из любого канала (redirect или IPN):
    проверка подписи, затем сверка с заказом. Канал записывается, но на алгоритм не влияет.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateways: GatewayRegistry,
        task_queue: TaskQueue | None = None,
        session_ttl: timedelta = DEFAULT_SESSION_TTL,
    ):
        self.db = db
        self.gateways = gateways
        self.order_service = OrderService(db)
        self.checkout = CheckoutService(db, gateways, session_ttl=session_ttl)
        self.verifier = NotificationVerifier(gateways)
        self.reconciler = OrderReconciler(db, task_queue)

    async def start_checkout(
        self,
        order_code: str,
        provider: str,
        client_context: ClientContext,
    ) -> CheckoutSessionResult:
        """
        Начать оплату заказа.

        Raises:
            InvalidCheckoutData, InvalidAmount, OrderNotFoundError, PaymentGatewayError
        """
        if not order_code:
            raise InvalidCheckoutData("Order code is required")

        order = await self.order_service.get_by_code(order_code)
        if order is None:
            raise OrderNotFoundError(order_code)

        return await self.checkout.create_session(order, provider, client_context)

    async def handle_notification(
        self,
        provider: str,
        raw_params: Mapping[str, object],
        channel: DeliveryChannel,
    ) -> ReconcileResult:
        """
        Обработать уведомление шлюза.

        Raises:
            UnsupportedProvider: неизвестный тег провайдера
        """
        adapter = self.gateways.resolve(provider)
        verification = self.verifier.verify(provider, raw_params)
        logger.info(
            f"{provider} notification via {channel.value}: verified={verification.verified}, "
            f"success={verification.success}, order_code={verification.order_code}, "
            f"code={verification.response_code}"
        )

        event = NotificationEvent(
            provider=adapter.provider,
            channel=channel,
            verification=verification,
            raw_params=dict(raw_params),
            amount_tolerance=adapter.amount_tolerance,
        )
        return await self.reconciler.reconcile(event)
