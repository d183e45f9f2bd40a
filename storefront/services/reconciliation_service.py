"""Сверка уведомлений об оплате с заказами."""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.task_queue import TaskQueue
from storefront.models.order import Order, OrderStatus, PaymentStatus
from storefront.models.payment import PaymentNotification
from storefront.schemas.payment import NotificationEvent, ReconcileOutcome
from storefront.services.order_service import OrderService
from storefront.services.post_payment_service import enqueue_post_payment_tasks

logger = logging.getLogger(__name__)
alert_logger = logging.getLogger("storefront.alerts")


@dataclass(frozen=True)
class ReconcileResult:
    """Исход сверки и состояние заказа после нее."""

    outcome: ReconcileOutcome
    order_code: str | None = None
    payment_status: str | None = None
    payment_details: dict | None = None
    message: str = ""

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID.value


def amounts_match(declared: Decimal | None, expected: Decimal, tolerance: Decimal) -> bool:
    if declared is None:
        return False
    return abs(Decimal(declared) - Decimal(expected)) <= tolerance


class OrderReconciler:
    """
    Машина состояний оплаты: unpaid -> paid | failed.

    paid и failed конечные. Переход выполняется одним условным UPDATE
    (WHERE payment_status = 'unpaid'), поэтому из нескольких одновременных
    уведомлений по одному заказу переход выполняет ровно одно, остальные
    получают ALREADY_RECONCILED. Побочные действия (корзина, письмо) ставятся
    в очередь только победителем.
    """

    def __init__(self, db: AsyncSession, task_queue: TaskQueue | None = None):
        self.db = db
        self.task_queue = task_queue
        self.order_service = OrderService(db)

    async def reconcile(self, event: NotificationEvent) -> ReconcileResult:
        if not event.verified:
            logger.warning(
                f"Rejected {event.provider} notification via {event.channel.value}: "
                f"{event.verification.response_message} (order_code={event.order_code})"
            )
            await self._record(event, ReconcileOutcome.INVALID_SIGNATURE)
            return ReconcileResult(
                outcome=ReconcileOutcome.INVALID_SIGNATURE,
                order_code=event.order_code,
                message=event.verification.response_message,
            )

        order = await self.order_service.get_by_code(event.order_code) if event.order_code else None
        if order is None:
            alert_logger.error(
                f"Payment notification for unknown order {event.order_code} "
                f"(provider={event.provider}, transaction_id={event.transaction_id})"
            )
            await self._record(event, ReconcileOutcome.ORDER_NOT_FOUND)
            return ReconcileResult(
                outcome=ReconcileOutcome.ORDER_NOT_FOUND,
                order_code=event.order_code,
                message="Order not found",
            )

        if order.is_payment_terminal:
            return await self._already_reconciled(order, event)

        if not amounts_match(event.amount, order.final_amount, event.amount_tolerance):
            alert_logger.error(
                f"Amount mismatch for order {order.order_code}: expected {order.final_amount}, "
                f"got {event.amount} (provider={event.provider}, transaction_id={event.transaction_id})"
            )
            await self._record(event, ReconcileOutcome.AMOUNT_MISMATCH)
            return ReconcileResult(
                outcome=ReconcileOutcome.AMOUNT_MISMATCH,
                order_code=order.order_code,
                payment_status=order.payment_status,
                payment_details=order.payment_details,
                message="Amount mismatch",
            )

        outcome = ReconcileOutcome.PAID if event.success else ReconcileOutcome.FAILED
        new_status = PaymentStatus.PAID if event.success else PaymentStatus.FAILED
        details = {
            "provider": event.provider,
            "transaction_id": event.transaction_id,
            "request_id": event.verification.request_id,
            "response_code": event.result_code,
            "response_message": event.verification.response_message,
            "source": event.channel.value,
            "amount": str(event.amount),
            "recorded_at": event.received_at.isoformat(),
        }
        values = {
            "payment_status": new_status.value,
            "payment_details": details,
            "updated_at": datetime.utcnow(),
        }
        if event.success:
            values["status"] = OrderStatus.PROCESSING.value

        stmt = (
            update(Order)
            .where(Order.id == order.id, Order.payment_status == PaymentStatus.UNPAID.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)

        if result.rowcount != 1:
            # Другой обработчик успел раньше - читаем его результат
            await self.db.rollback()
            await self.db.refresh(order)
            return await self._already_reconciled(order, event)

        self.db.add(self._audit_row(event, outcome))
        await self.db.commit()
        await self.db.refresh(order)

        logger.info(
            f"Order {order.order_code} payment_status -> {order.payment_status} "
            f"(provider={event.provider}, channel={event.channel.value}, transaction_id={event.transaction_id})"
        )

        if event.success and self.task_queue is not None:
            # Оплата уже зафиксирована, ошибка очереди не должна менять ответ шлюзу
            try:
                enqueue_post_payment_tasks(self.task_queue, order)
            except Exception as e:
                alert_logger.error(
                    f"Failed to enqueue post-payment tasks for paid order {order.order_code}: {e}",
                    exc_info=True,
                )

        return ReconcileResult(
            outcome=outcome,
            order_code=order.order_code,
            payment_status=order.payment_status,
            payment_details=order.payment_details,
            message=event.verification.response_message,
        )

    async def _already_reconciled(self, order: Order, event: NotificationEvent) -> ReconcileResult:
        logger.info(
            f"Order {order.order_code} already {order.payment_status}, "
            f"ignoring {event.provider} notification via {event.channel.value}"
        )
        await self._record(event, ReconcileOutcome.ALREADY_RECONCILED)
        return ReconcileResult(
            outcome=ReconcileOutcome.ALREADY_RECONCILED,
            order_code=order.order_code,
            payment_status=order.payment_status,
            payment_details=order.payment_details,
            message="Order already reconciled",
        )

    async def _record(self, event: NotificationEvent, outcome: ReconcileOutcome) -> None:
        self.db.add(self._audit_row(event, outcome))
        await self.db.commit()

    @staticmethod
    def _audit_row(event: NotificationEvent, outcome: ReconcileOutcome) -> PaymentNotification:
        return PaymentNotification(
            provider=event.provider,
            channel=event.channel.value,
            order_code=event.order_code,
            request_id=event.verification.request_id,
            transaction_id=event.transaction_id,
            response_code=event.result_code,
            amount=event.amount,
            verified=event.verified,
            success=event.success,
            outcome=outcome.value,
            raw_payload=dict(event.raw_params),
            received_at=event.received_at,
        )
