import asyncio
import logging
import os
import time
from collections.abc import Coroutine
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)

_KEEP_ALIVE = set()


def create_task(
    coro: Coroutine,
    *,
    name: str,
    keep_ref: bool,
    tab_id: int | None = None,
) -> asyncio.Task:
    """
    Wrapper around `asyncio.create_task`.

    - Use `keep_ref` to keep an internal reference.
      Fire-and-forget work (module transitions, scheduled refreshes, async message
      handlers) has no other owner, and the event loop only keeps weak references to tasks.
    - Use `tab_id` to attach the originating tab as additional debug info on the task.
    """
    t = asyncio.create_task(coro)
    set_task_debug_info(t, name=name, tab_id=tab_id)
    if keep_ref and not t.done():
        _KEEP_ALIVE.add(t)
        t.add_done_callback(_KEEP_ALIVE.discard)
    return t


def spawn(
    coro: Coroutine,
    *,
    name: str,
    tab_id: int | None = None,
) -> asyncio.Task:
    """
    Fire-and-forget variant of `create_task`: nobody awaits the task, so a
    failure is logged instead of being left unretrieved.
    """

    async def run():
        try:
            await coro
        except Exception as e:
            logger.warning(f"{name} failed: {e}")

    return create_task(run(), name=name, keep_ref=True, tab_id=tab_id)


def set_task_debug_info(
    task: asyncio.Task,
    *,
    name: str,
    tab_id: int | None = None,
) -> None:
    """Set debug info for an externally-spawned task."""
    task.created = time.time()  # type: ignore
    if __debug__ is True and (test := os.environ.get("PYTEST_CURRENT_TEST", None)):
        name = f"{name} [created in {test}]"
    task.set_name(name)
    if tab_id is not None:
        task.tab_id = tab_id  # type: ignore


def task_repr(task: asyncio.Task) -> str:
    """Get a task representation with debug info."""
    name = task.get_name()
    a: float = getattr(task, "created", 0)
    if a:
        age = f" (age: {time.time() - a:.0f}s)"
    else:
        age = ""
    tab_id = getattr(task, "tab_id", None)
    if tab_id is not None:
        return f"tab {tab_id}: {name}{age}"
    return f"{name}{age}"


@contextmanager
def install_exception_handler(handler) -> Iterator[None]:
    loop = asyncio.get_running_loop()
    existing = loop.get_exception_handler()
    loop.set_exception_handler(handler)
    try:
        yield
    finally:
        loop.set_exception_handler(existing)
