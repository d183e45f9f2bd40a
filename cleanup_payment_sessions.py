"""Скрипт для ручного запуска очистки платежных сессий и журнала уведомлений."""
import asyncio
import logging

from storefront.config import settings
from storefront.database import AsyncSessionLocal
from storefront.services.housekeeping_service import PaymentHousekeepingService

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main():
    """Удалить истекшие сессии и старые уведомления."""
    try:
        async with AsyncSessionLocal() as db:
            service = PaymentHousekeepingService(db)
            sessions = await service.delete_expired_sessions()
            notifications = await service.delete_old_notifications(
                days=settings.payment_notification_retention_days
            )
            logger.info(
                f"Удалено {sessions} истекших сессий и {notifications} уведомлений "
                f"(старше {settings.payment_notification_retention_days} дней)"
            )
    except Exception as e:
        logger.error(f"Ошибка при очистке платежных данных: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    asyncio.run(main())
