"""
Event bus.

LSP notifications and commands are translated into the typed events below
and published on a process-wide :class:`EventBus`.  The core (validation,
build supervision) subscribes to them, so it can be driven and tested
without an editor attached.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any, Callable

from isolsp.history import BuildResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IsolspEvent:
    ts: float = field(default_factory=time.perf_counter)
    type: str = ''

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DocumentOpened(IsolspEvent):
    type: str = 'DocumentOpened'
    uri: str = ''


@dataclass(frozen=True)
class DocumentSaved(IsolspEvent):
    type: str = 'DocumentSaved'
    uri: str = ''


@dataclass(frozen=True)
class BuildRequested(IsolspEvent):
    type: str = 'BuildRequested'
    action: str = 'build'
    spec_path: str = ''
    uri: str = ''
    invocation_id: str = ''


@dataclass(frozen=True)
class CancelRequested(IsolspEvent):
    type: str = 'CancelRequested'
    invocation_id: str = ''


@dataclass(frozen=True)
class BuildFinished(IsolspEvent):
    type: str = 'BuildFinished'
    invocation_id: str = ''
    result: BuildResult | None = None


Handler = Callable[[IsolspEvent], Any]


class EventBus:
    """Synchronous dispatcher with coroutine support.

    Handlers run in subscription order.  A handler that returns a coroutine
    is scheduled on the running event loop and the resulting task is
    returned from :meth:`publish`.  A handler that raises is logged and the
    remaining handlers still run.
    """

    def __init__(self):
        self._handlers: dict[type[IsolspEvent], list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type[IsolspEvent], handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type[IsolspEvent], handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: IsolspEvent) -> list[asyncio.Task]:
        tasks: list[asyncio.Task] = []
        for handler in list(self._handlers.get(type(event), [])):
            try:
                result = handler(event)
            except Exception:
                logger.error('handler %r failed for %s', handler, event.type, exc_info=True)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                task.add_done_callback(_log_task_failure)
                tasks.append(task)
        return tasks


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error('event handler task failed', exc_info=exc)


bus = EventBus()
