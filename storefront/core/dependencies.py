"""Dependencies для FastAPI."""
from datetime import timedelta
from functools import lru_cache

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import settings
from storefront.core.task_queue import TaskQueue
from storefront.database import get_db
from storefront.services.gateways import GatewayRegistry, build_gateway_registry
from storefront.services.payment_service import PaymentService


@lru_cache
def get_gateways() -> GatewayRegistry:
    """Адаптеры шлюзов, собранные из настроек."""
    return build_gateway_registry(settings)


def get_task_queue(request: Request) -> TaskQueue | None:
    """Очередь фоновых задач, созданная в lifespan приложения."""
    return getattr(request.app.state, "task_queue", None)


async def get_payment_service(
    db: AsyncSession = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateways),
    task_queue: TaskQueue | None = Depends(get_task_queue),
) -> PaymentService:
    return PaymentService(
        db,
        gateways,
        task_queue=task_queue,
        session_ttl=timedelta(minutes=settings.payment_session_ttl_minutes),
    )


def get_client_ip(request: Request) -> str:
    """IP клиента с учетом прокси."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "127.0.0.1"
