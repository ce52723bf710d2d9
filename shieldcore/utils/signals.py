"""
Signals are a small dispatching primitive: any number of receivers subscribe,
and every send() calls them in the order they connected.

Two flavours exist:
  - SyncSignal, whose receivers must be plain functions and run inline,
  - AsyncSignal, whose receivers may be coroutine functions and are awaited together.

Receivers are held weakly by default, so a bound method does not keep its
owner alive. Pass weak=False for closures that have no other owner, such as the
lambdas a capability module registers for its lifecycle events.
"""

from __future__ import annotations

import asyncio
import inspect
import weakref
from collections.abc import Awaitable
from collections.abc import Callable
from typing import Any
from typing import cast
from typing import Generic
from typing import ParamSpec
from typing import TypeVar

P = ParamSpec("P")
R = TypeVar("R")


class _StrongRef:
    """Mimics the weakref.ref call interface for a strongly held receiver."""

    __slots__ = ("obj",)

    def __init__(self, obj: Callable) -> None:
        self.obj = obj

    def __call__(self) -> Callable:
        return self.obj


def make_weak_ref(obj: Any) -> weakref.ReferenceType:
    """
    Like weakref.ref(), but using weakref.WeakMethod for bound methods.
    """
    if hasattr(obj, "__self__"):
        return cast(weakref.ref, weakref.WeakMethod(obj))
    else:
        return weakref.ref(obj)


class _SignalMixin:
    def __init__(self) -> None:
        self.receivers: list[Callable[[], Callable | None]] = []

    def connect(self, receiver: Callable, weak: bool = True) -> None:
        if weak:
            self.receivers.append(make_weak_ref(receiver))
        else:
            self.receivers.append(_StrongRef(receiver))

    def disconnect(self, receiver: Callable) -> None:
        self.receivers = [r for r in self.receivers if r() != receiver]

    def notify(self, *args, **kwargs):
        cleanup = False
        # iterate over a copy: receivers may connect further receivers.
        for ref in list(self.receivers):
            r = ref()
            if r is not None:
                yield r(*args, **kwargs)
            else:
                cleanup = True
        if cleanup:
            self.receivers = [r for r in self.receivers if r() is not None]


class _SyncSignal(Generic[P], _SignalMixin):
    def connect(self, receiver: Callable[P, None], weak: bool = True) -> None:
        assert not inspect.iscoroutinefunction(receiver)
        super().connect(receiver, weak)

    def disconnect(self, receiver: Callable[P, None]) -> None:
        super().disconnect(receiver)

    def send(self, *args: P.args, **kwargs: P.kwargs) -> None:
        for ret in super().notify(*args, **kwargs):
            assert ret is None or not inspect.isawaitable(ret)


class _AsyncSignal(Generic[P], _SignalMixin):
    def connect(
        self, receiver: Callable[P, Awaitable[None] | None], weak: bool = True
    ) -> None:
        super().connect(receiver, weak)

    def disconnect(self, receiver: Callable[P, Awaitable[None] | None]) -> None:
        super().disconnect(receiver)

    async def send(self, *args: P.args, **kwargs: P.kwargs) -> None:
        await asyncio.gather(
            *[
                aws
                for aws in super().notify(*args, **kwargs)
                if aws is not None and inspect.isawaitable(aws)
            ]
        )


# noinspection PyPep8Naming
def SyncSignal(receiver_spec: Callable[P, None]) -> _SyncSignal[P]:
    """
    Create a synchronous signal with the given function signature for receivers.

    Example:

        changed = SyncSignal(lambda updated: None)
        changed.connect(print)
        changed.send(updated={"enable_ad_block"})
    """
    return cast(_SyncSignal[P], _SyncSignal())


# noinspection PyPep8Naming
def AsyncSignal(receiver_spec: Callable[P, Awaitable[None] | None]) -> _AsyncSignal[P]:
    """
    Create a signal that supports both regular and async receivers:

        enabled = AsyncSignal(lambda module: None)
        enabled.connect(on_enabled, weak=False)
        await enabled.send(module)
    """
    return cast(_AsyncSignal[P], _AsyncSignal())
