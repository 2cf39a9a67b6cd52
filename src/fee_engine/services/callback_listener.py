"""Inbound channel for gateway callbacks.

Webhook requests enqueue a ``GatewayCallback`` and return immediately; a
single worker task feeds callbacks to the handler in arrival order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from fee_engine.gateways.base import GatewayCallback

logger = logging.getLogger(__name__)

CallbackHandler = Callable[[GatewayCallback], Awaitable[Any]]


class CallbackListener:
    """Queue-backed callback consumer with an explicit start/stop lifecycle.

    Usage:
        listener = CallbackListener(handler)
        await listener.start()
        await listener.enqueue(callback)
        await listener.stop()  # drains queued callbacks first
    """

    def __init__(self, handler: CallbackHandler, maxsize: int = 0):
        self.handler = handler
        self._queue: asyncio.Queue[GatewayCallback] = asyncio.Queue(maxsize=maxsize)
        self._worker: asyncio.Task[None] | None = None
        self.processed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        """Start the worker task (idempotent)."""
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name="gateway-callback-listener")
        logger.info("Callback listener started")

    async def stop(self, drain: bool = True) -> None:
        """Stop the worker, processing queued callbacks first when ``drain``."""
        if self._worker is None:
            return
        if drain:
            await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info(
            "Callback listener stopped (%d processed, %d failed)",
            self.processed,
            self.failed,
        )

    async def enqueue(self, callback: GatewayCallback) -> None:
        if not self.running:
            raise RuntimeError("Callback listener is not running")
        await self._queue.put(callback)

    async def join(self) -> None:
        """Wait until every queued callback has been handled."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            callback = await self._queue.get()
            try:
                await self.handler(callback)
                self.processed += 1
            except Exception:
                self.failed += 1
                logger.exception(
                    "Callback handling failed for %s intent %s (transaction %s)",
                    callback.category,
                    callback.intent_id,
                    callback.gateway_transaction_id,
                )
            finally:
                self._queue.task_done()
