"""
The change dispatcher delivers configuration-change events to subscribers.

Topics are setting names. Every handler for a topic is called synchronously, in
subscription order, on the same turn as the write that triggered it. A handler
that raises is logged and skipped; the remaining handlers still run.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import sys
import traceback
from collections.abc import Callable
from collections.abc import Iterable
from typing import Any

from shieldcore import exceptions
from shieldcore import hooks

logger = logging.getLogger(__name__)

ALL = "*"
"""
Wildcard topic. Its handlers are called for every watched setting, with the
name of the changed setting instead of its value.
"""


def cut_traceback(tb, func_name):
    """
    Cut off a traceback at the function with the given name.
    The func_name's frame is excluded.

    Args:
        tb: traceback object, as returned by sys.exc_info()[2]
        func_name: function name

    Returns:
        Reduced traceback.
    """
    tb_orig = tb
    for _, _, fname, _ in traceback.extract_tb(tb):
        tb = tb.tb_next
        if fname == func_name:
            break
    return tb or tb_orig


@contextlib.contextmanager
def safecall(what: str = "Handler"):
    try:
        yield
    except Exception:
        etype, value, tb = sys.exc_info()
        tb = cut_traceback(tb, "safecall")
        tb = cut_traceback(tb, "_invoke")
        assert etype
        assert value
        logger.error(
            f"{what} error: {value}",
            exc_info=(etype, value, tb),
        )


class Debouncer:
    """
    Wraps a handler so that a burst of calls within `window` seconds results
    in a single trailing call with the last argument.
    """

    def __init__(self, handler: Callable[[Any], None], window: float) -> None:
        self.handler = handler
        self.window = window
        self._timer: asyncio.TimerHandle | None = None
        self._last: Any = None

    def __call__(self, value: Any) -> None:
        self._last = value
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.window, self._fire)

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        with safecall("Debounced handler"):
            self.handler(self._last)

    def __repr__(self):
        return f"Debouncer({self.handler!r}, {self.window})"


class Dispatcher:
    """
    If `topics` is given, the dispatcher only accepts subscriptions to those
    topics (plus the wildcard). Otherwise any topic name is accepted.
    """

    def __init__(self, topics: Iterable[str] | None = None) -> None:
        self.topics: set[str] | None = set(topics) if topics is not None else None
        self._handlers: dict[str, list[Callable[[Any], None]]] = {}

    def add_topics(self, *topics: str) -> None:
        if self.topics is not None:
            self.topics.update(topics)

    def _check_topic(self, topic: str) -> None:
        if topic == ALL or self.topics is None:
            return
        if topic not in self.topics:
            raise exceptions.OptionsError(f"No such topic: {topic}")

    def subscribe(self, topic: str, handler: Callable[[Any], None]) -> None:
        """
        Register a handler to be called with the new value whenever `topic` fires.
        """
        self._check_topic(topic)
        if inspect.iscoroutinefunction(handler):
            raise exceptions.OptionsError(
                f"Async handler {handler!r} cannot be subscribed to {topic}; spawn a task instead"
            )
        self._handlers.setdefault(topic, []).append(handler)

    def debounced_subscribe(
        self, topic: str, handler: Callable[[Any], None], window: float
    ) -> Debouncer:
        """
        Like subscribe(), but coalesce firings that happen within `window`
        seconds of each other into one trailing call. Returns the Debouncer,
        which can be cancelled or passed to unsubscribe().
        """
        d = Debouncer(handler, window)
        self.subscribe(topic, d)
        return d

    def unsubscribe(self, topic: str, handler: Callable[[Any], None]) -> None:
        handlers = self._handlers.get(topic, [])
        self._handlers[topic] = [h for h in handlers if h is not handler]
        if isinstance(handler, Debouncer):
            handler.cancel()

    def handlers(self, topic: str) -> list[Callable[[Any], None]]:
        return list(self._handlers.get(topic, []))

    def publish(self, event: hooks.ConfigChangedHook) -> None:
        for h in self.handlers(event.key):
            self._invoke(h, event.value)
        for h in self.handlers(ALL):
            self._invoke(h, event.key)

    def _invoke(self, handler: Callable[[Any], None], arg: Any) -> None:
        with safecall():
            handler(arg)

    def __repr__(self):
        return f"Dispatcher({sorted(self._handlers)})"
