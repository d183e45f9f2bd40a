"""Главный файл приложения."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from storefront.config import settings
from storefront.api.v1 import router as api_v1_router
from storefront.core.task_queue import TaskQueue
from storefront.database import AsyncSessionLocal
from storefront.services.housekeeping_service import PaymentHousekeepingService
from storefront.services.post_payment_service import (
    CartClient,
    OrderMailer,
    register_post_payment_handlers,
)

# Настройка логирования
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Глобальный планировщик задач
scheduler = AsyncIOScheduler()


async def cleanup_payment_data():
    """Периодическая задача: удалить истекшие платежные сессии и старый журнал уведомлений."""
    try:
        async with AsyncSessionLocal() as db:
            service = PaymentHousekeepingService(db)
            sessions = await service.delete_expired_sessions()
            notifications = await service.delete_old_notifications(
                days=settings.payment_notification_retention_days
            )
            if sessions or notifications:
                logger.info(
                    f"Удалено {sessions} истекших платежных сессий и "
                    f"{notifications} записей журнала уведомлений"
                )
    except Exception as e:
        logger.error(f"Ошибка при очистке платежных данных: {e}", exc_info=True)


def create_task_queue() -> TaskQueue:
    """Очередь фоновых задач с обработчиками действий после оплаты."""
    queue = TaskQueue(
        max_attempts=settings.task_queue_max_attempts,
        backoff_base=settings.task_queue_backoff_base_seconds,
        backoff_max=settings.task_queue_backoff_max_seconds,
        workers=settings.task_queue_workers,
    )
    register_post_payment_handlers(
        queue,
        CartClient(settings.cart_service_url, timeout=settings.payment_http_timeout),
        OrderMailer(settings.mail_service_url, timeout=settings.payment_http_timeout),
    )
    return queue


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения."""
    # Startup
    task_queue = create_task_queue()
    await task_queue.start()
    app.state.task_queue = task_queue

    scheduler.add_job(
        cleanup_payment_data,
        trigger=IntervalTrigger(minutes=settings.payment_cleanup_interval_minutes),
        id="cleanup_payment_data",
        name="Очистка платежных сессий",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Планировщик задач запущен. Очистка платежных данных каждые "
        f"{settings.payment_cleanup_interval_minutes} мин"
    )

    yield

    # Shutdown
    scheduler.shutdown(wait=False)
    await task_queue.stop()


app = FastAPI(
    title="Storefront Payments API",
    description="Оформление оплаты и сверка статусов платежей",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS - в development режиме разрешаем все origins
if settings.is_development:
    cors_origins = ["*"]
    # Нельзя использовать allow_credentials=True с allow_origins=["*"]
    allow_creds = False
else:
    cors_origins = list(set(settings.cors_origins))
    allow_creds = True

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_creds,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Подключаем роутеры
app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Корневой endpoint."""
    return {
        "message": "Storefront Payments API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}
