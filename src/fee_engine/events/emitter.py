"""Async event emitter for publishing domain events.

Services collect events during a unit of work and publish them only after
the transaction commits, so handlers never observe rolled-back state.
Handlers are isolated: one failing handler does not stop the others.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, TypeVar, Union

from fee_engine.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DomainEvent)

Handler = Callable[[DomainEvent], Union[None, Awaitable[None]]]


@dataclass
class HandlerRegistration:
    """Registration of an event handler."""

    handler: Handler
    event_types: set[str] | None  # None = all events
    categories: set[EventCategory] | None  # None = all categories

    def matches(self, event: DomainEvent) -> bool:
        if self.event_types and event.event_type not in self.event_types:
            return False
        if self.categories and event.category not in self.categories:
            return False
        return True


class AsyncEventEmitter:
    """Publishes events to registered sync or async handlers.

    Usage:
        emitter = AsyncEventEmitter()

        async def notify_resident(event: PaymentSucceeded) -> None:
            await push.send(...)

        emitter.on(PaymentSucceeded, notify_resident)
        emitter.on_category(EventCategory.PERMIT, audit_log)
        await emitter.emit_all(events)
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []

    def on(self, event_type: type[T] | list[type[T]], handler: Handler) -> None:
        """Register handler for specific event type(s)."""
        types = event_type if isinstance(event_type, list) else [event_type]
        self._handlers.append(
            HandlerRegistration(
                handler=handler,
                event_types={t.__name__ for t in types},
                categories=None,
            )
        )

    def on_category(
        self,
        category: EventCategory | list[EventCategory],
        handler: Handler,
    ) -> None:
        """Register handler for event category(ies)."""
        cats = category if isinstance(category, list) else [category]
        self._handlers.append(
            HandlerRegistration(handler=handler, event_types=None, categories=set(cats))
        )

    def on_all(self, handler: Handler) -> None:
        """Register handler for all events."""
        self._handlers.append(
            HandlerRegistration(handler=handler, event_types=None, categories=None)
        )

    def off(self, handler: Handler) -> None:
        """Unregister a handler."""
        self._handlers = [reg for reg in self._handlers if reg.handler is not handler]

    async def emit(self, event: DomainEvent) -> list[Exception]:
        """Emit an event to all matching handlers.

        Returns list of any exceptions raised by handlers.
        """
        errors: list[Exception] = []
        pending: list[Awaitable[Any]] = []

        for reg in self._handlers:
            if not reg.matches(event):
                continue
            try:
                result = reg.handler(event)
            except Exception as e:
                logger.exception("Handler %s failed for event %s", reg.handler, event.event_type)
                errors.append(e)
                continue
            if inspect.isawaitable(result):
                pending.append(self._await_handler(reg.handler, result, event))

        if pending:
            results = await asyncio.gather(*pending, return_exceptions=True)
            errors.extend(r for r in results if isinstance(r, Exception))
        return errors

    async def emit_all(self, events: Iterable[DomainEvent]) -> list[Exception]:
        """Emit events in order; used after a unit of work commits."""
        errors: list[Exception] = []
        for event in events:
            errors.extend(await self.emit(event))
        return errors

    async def _await_handler(
        self,
        handler: Handler,
        awaitable: Awaitable[Any],
        event: DomainEvent,
    ) -> None:
        try:
            await awaitable
        except Exception:
            logger.exception("Async handler %s failed for event %s", handler, event.event_type)
            raise
