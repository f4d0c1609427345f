"""Bounded queue of sync requests served by a fixed number of workers."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional
import logging

from retention_sync.models import SyncResult

logger = logging.getLogger(__name__)

RunSync = Callable[[str, bool], Awaitable[SyncResult]]


@dataclass
class SyncRequest:
    integration_id: str
    full_resync: bool
    future: asyncio.Future


class SyncWorkerPool:
    """Caps how many syncs execute at once, however many are queued."""
    
    def __init__(self, run_sync: RunSync, workers: int = 4, queue_size: int = 100):
        if workers < 1:
            raise ValueError("worker pool needs at least one worker")
        self._run_sync = run_sync
        self.workers = workers
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._tasks: List[asyncio.Task] = []
        self._accepting = False
    
    @property
    def running(self) -> bool:
        return self._accepting
    
    @property
    def pending(self) -> int:
        return self._queue.qsize()
    
    async def start(self) -> None:
        if self._tasks:
            return
        self._accepting = True
        self._tasks = [
            asyncio.create_task(self._worker(f"sync_worker_{i}"))
            for i in range(self.workers)
        ]
        logger.info(f"Started {self.workers} sync workers")
    
    async def submit(self, integration_id: str, full_resync: bool = False) -> asyncio.Future:
        """Queue a sync; waits while the queue is full.
        
        The returned future resolves to the SyncResult or the error the
        run raised.
        """
        if not self._accepting:
            raise RuntimeError("sync worker pool is not running")
        future = asyncio.get_running_loop().create_future()
        await self._queue.put(SyncRequest(integration_id, full_resync, future))
        return future
    
    async def _worker(self, worker_name: str) -> None:
        logger.debug(f"Worker {worker_name} started")
        while True:
            request = await self._queue.get()
            try:
                if request.future.cancelled():
                    continue
                try:
                    result = await self._run_sync(request.integration_id, request.full_resync)
                except asyncio.CancelledError:
                    if not request.future.done():
                        request.future.cancel()
                    raise
                except Exception as e:
                    if not request.future.done():
                        request.future.set_exception(e)
                else:
                    if not request.future.done():
                        request.future.set_result(result)
            finally:
                self._queue.task_done()
    
    async def stop(self, drain: bool = True, timeout: Optional[float] = None) -> None:
        """Stop accepting work and shut the workers down.
        
        With ``drain`` queued requests still run; without it they are
        abandoned and their futures cancelled. In-flight runs are given
        ``timeout`` seconds to finish before being cancelled.
        """
        self._accepting = False
        if not drain:
            while not self._queue.empty():
                request = self._queue.get_nowait()
                request.future.cancel()
                self._queue.task_done()
        
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Sync workers did not finish in time, cancelling in-flight runs")
        
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Sync workers stopped")
