from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from starlette.concurrency import run_in_threadpool

from src.app.config import settings

log = logging.getLogger("extraction_queue")


def _process_with_default_pipeline(job_id: str) -> Any:
    from src.app.services.extraction_pipeline import get_pipeline

    return get_pipeline().process_job_id(job_id)


class ExtractionQueue:
    """
    In-process job dispatch.

    Callers enqueue a job id and return immediately; a fixed pool of worker
    tasks runs the synchronous pipeline in the threadpool.
    """

    def __init__(
        self,
        process: Callable[[str], Any] = _process_with_default_pipeline,
        workers: int = settings.EXTRACTION_WORKERS,
    ) -> None:
        self._process = process
        self._worker_count = max(1, workers)
        self._queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return any(not worker.done() for worker in self._workers)

    async def start(self) -> None:
        async with self._lock:
            if self.running:
                return
            self._workers = [
                asyncio.create_task(self._run(index), name=f"extraction-worker-{index}")
                for index in range(self._worker_count)
            ]
            log.info("extraction.queue_started workers=%d", self._worker_count)

    async def stop(self) -> None:
        async with self._lock:
            if not self._workers:
                return
            for _ in self._workers:
                await self._queue.put(None)
            try:
                await asyncio.gather(*self._workers)
            finally:
                self._workers = []
                log.info("extraction.queue_stopped")

    async def enqueue(self, job_id: str) -> None:
        if not self.running:
            raise RuntimeError("Extraction queue is not running")
        await self._queue.put(job_id)
        log.info("extraction.enqueued job=%s pending=%d", job_id, self._queue.qsize())

    async def join(self) -> None:
        await self._queue.join()

    async def _run(self, index: int) -> None:
        while True:
            job_id = await self._queue.get()
            if job_id is None:
                self._queue.task_done()
                break
            try:
                await run_in_threadpool(self._process, job_id)
                log.info("extraction.worker_done worker=%d job=%s", index, job_id)
            except Exception:
                log.exception("extraction.worker_unexpected_error worker=%d job=%s", index, job_id)
            finally:
                self._queue.task_done()


_EXTRACTION_QUEUE: Optional[ExtractionQueue] = None


def get_queue() -> ExtractionQueue:
    global _EXTRACTION_QUEUE
    if _EXTRACTION_QUEUE is None:
        _EXTRACTION_QUEUE = ExtractionQueue()
    return _EXTRACTION_QUEUE


async def start_worker() -> None:
    await get_queue().start()


async def stop_worker() -> None:
    await get_queue().stop()


async def enqueue(job_id: str) -> None:
    await get_queue().enqueue(job_id)
