"""Очередь фоновых задач процесса с политикой повторов."""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

TaskHandler = Callable[..., Awaitable[None]]


@dataclass
class QueuedTask:
    """Задача в очереди."""

    name: str
    payload: dict
    enqueued_at: datetime = field(default_factory=datetime.utcnow)
    attempts: int = 0


class TaskQueue:
    """
    Очередь fire-and-forget задач (письма, очистка корзины).

    Принадлежит приложению: создается в lifespan и передается через зависимости.
    Каждая задача выполняется с ограниченным числом попыток и экспоненциальной
    паузой между ними. Задачи, исчерпавшие попытки, попадают в dead_letters.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 30.0,
        workers: int = 1,
        dead_letter_limit: int = 100,
    ):
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.workers = workers
        self.dead_letters: deque[QueuedTask] = deque(maxlen=dead_letter_limit)
        self._handlers: dict[str, TaskHandler] = {}
        self._queue: asyncio.Queue[QueuedTask] = asyncio.Queue()
        self._worker_tasks: list[asyncio.Task] = []

    def register(self, name: str, handler: TaskHandler) -> None:
        """Зарегистрировать обработчик задачи."""
        self._handlers[name] = handler

    def enqueue(self, name: str, **payload) -> QueuedTask:
        """Поставить задачу в очередь. Не блокирует."""
        if name not in self._handlers:
            raise ValueError(f"No handler registered for task '{name}'")
        task = QueuedTask(name=name, payload=payload)
        self._queue.put_nowait(task)
        logger.info(f"Task '{name}' enqueued")
        return task

    @property
    def is_running(self) -> bool:
        return any(not worker.done() for worker in self._worker_tasks)

    async def start(self) -> None:
        """Запустить воркеры."""
        if self.is_running:
            return
        self._worker_tasks = [
            asyncio.create_task(self._worker(), name=f"task-queue-worker-{i}")
            for i in range(self.workers)
        ]
        logger.info(f"Task queue started with {self.workers} worker(s)")

    async def join(self) -> None:
        """Дождаться выполнения всех поставленных задач."""
        await self._queue.join()

    async def stop(self, timeout: float = 10.0) -> None:
        """Дождаться текущих задач (не дольше timeout) и остановить воркеры."""
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Task queue stopped with {self._queue.qsize()} unfinished task(s)")

        for worker in self._worker_tasks:
            worker.cancel()
        await asyncio.gather(*self._worker_tasks, return_exceptions=True)
        self._worker_tasks = []
        logger.info("Task queue stopped")

    async def _worker(self) -> None:
        while True:
            task = await self._queue.get()
            try:
                await self._run(task)
            finally:
                self._queue.task_done()

    async def _run(self, task: QueuedTask) -> None:
        handler = self._handlers[task.name]
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    task.attempts = attempt.retry_state.attempt_number
                    if task.attempts > 1:
                        logger.warning(f"Retrying task '{task.name}', attempt {task.attempts}/{self.max_attempts}")
                    await handler(**task.payload)
        except Exception as e:
            logger.error(
                f"Task '{task.name}' failed after {task.attempts} attempt(s): {e}",
                exc_info=True,
            )
            self.dead_letters.append(task)
        else:
            logger.info(f"Task '{task.name}' completed")
