"""Очистка отработавших платежных сессий и старых записей журнала."""
from datetime import datetime, timedelta

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.payment import PaymentNotification, PaymentSession


class PaymentHousekeepingService:
    """Удаление данных, которые больше не нужны платежному контуру. Заказы не трогает."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def delete_expired_sessions(self, now: datetime | None = None) -> int:
        """
        Удалить платежные сессии с истекшим сроком.

        Заказ при этом остается unpaid: брошенная оплата ничего не меняет.

        Returns:
            Количество удаленных сессий
        """
        cutoff = now or datetime.utcnow()
        stmt = delete(PaymentSession).where(PaymentSession.expires_at <= cutoff)
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount or 0

    async def delete_old_notifications(self, days: int = 30, now: datetime | None = None) -> int:
        """
        Удалить записи журнала уведомлений старше указанного количества дней.

        Returns:
            Количество удаленных записей
        """
        cutoff = (now or datetime.utcnow()) - timedelta(days=days)
        stmt = delete(PaymentNotification).where(PaymentNotification.received_at < cutoff)
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount or 0
