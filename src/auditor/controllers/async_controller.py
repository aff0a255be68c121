# src/auditor/controllers/async_controller.py
import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class AsyncController:
    """
    Base class for asynchronous controllers.

    Owns a single worker task and provides the setup/shutdown lifecycle around it.
    """

    def __init__(self):
        self._setup_done = False
        self._worker_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    async def setup(self):
        """
        Prepares resources for the controller. Runs once; subclasses extend it.
        """
        if self._setup_done:
            return
        self._setup_done = True
        logger.debug("%s setup done.", type(self).__name__)

    async def wait(self):
        """Waits for the worker task to finish. Cancellation of the task is not propagated."""
        if self._worker_task is None:
            return
        try:
            await asyncio.shield(self._worker_task)
        except asyncio.CancelledError:
            if not self._worker_task.cancelled():
                raise

    async def shutdown(self):
        """Gracefully shuts down resources and cancels the running task."""
        try:
            if self._worker_task and not self._worker_task.done():
                self._worker_task.cancel()
                try:
                    await self._worker_task
                except asyncio.CancelledError:
                    logger.debug("Worker task cancelled cleanly.")
        except Exception as e:
            logger.error("Error during controller shutdown: %s", e, exc_info=True)
