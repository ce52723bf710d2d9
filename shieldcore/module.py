"""
Capability modules are the units doing the actual filtering work: ad blocking,
anti-tracking, telemetry collection and so on. Their internals are opaque to the
orchestration layer, which only relies on the contract below.

This module also ships an in-process implementation of that contract. Real
filtering engines subclass Module and override its init()/unload() hooks.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Mapping
from typing import Any
from typing import Protocol

from shieldcore import exceptions
from shieldcore import hooks
from shieldcore.utils import signals

logger = logging.getLogger(__name__)

ADBLOCKER = "adblocker"
ANTITRACKING = "antitracking"
HUMAN_WEB = "human-web"
MESSAGE_CENTER = "message-center"
OFFERS = "offers-v2"
HPN = "hpn"
CORE = "core"


class ModuleState(enum.Enum):
    DISABLED = "disabled"
    ENABLED = "enabled"


class CapabilityModule(Protocol):
    name: str

    @property
    def is_enabled(self) -> bool: ...

    @property
    def is_disabled(self) -> bool: ...

    async def is_ready(self) -> None:
        """Resolves once the module is enabled and able to run actions."""

    def on(self, event: str, handler: Callable[..., Awaitable[None] | None]) -> None: ...

    def action(self, operation: str, *args: Any) -> Any: ...


class ModuleHost(Protocol):
    modules: dict[str, CapabilityModule]

    async def start(self) -> None: ...

    async def enable_module(self, name: str) -> None: ...

    async def disable_module(self, name: str) -> None: ...

    def install_whitelist(self, checks: Mapping[str, Callable[[str], bool]]) -> None:
        """
        Hand each named filtering module the check telling it which requests
        it must leave alone.
        """


class Module:
    """
    Reference capability module.

    Actions are plain callables registered by name; `action()` invokes them
    only while the module is enabled. Lifecycle events are dispatched by hook
    name, so `on("enabled", handler)` subscribes to ModuleEnabledHook.
    """

    def __init__(
        self,
        name: str,
        *,
        enabled: bool = False,
        whitelist_check: Callable[[str], bool] | None = None,
    ) -> None:
        self.name = name
        self.state = ModuleState.ENABLED if enabled else ModuleState.DISABLED
        self.whitelist_check = whitelist_check
        self.actions: dict[str, Callable[..., Any]] = {}
        self._events: dict[str, signals._AsyncSignal] = {}
        self._ready = asyncio.Event()
        if enabled:
            self._ready.set()

    def __repr__(self):
        return f"Module({self.name}, {self.state.value})"

    @property
    def is_enabled(self) -> bool:
        return self.state is ModuleState.ENABLED

    @property
    def is_disabled(self) -> bool:
        return self.state is ModuleState.DISABLED

    async def is_ready(self) -> None:
        await self._ready.wait()

    def is_whitelisted(self, target: str) -> bool:
        return self.whitelist_check is not None and self.whitelist_check(target)

    def on(self, event: str, handler: Callable[..., Awaitable[None] | None]) -> None:
        self._events.setdefault(event, signals.AsyncSignal(lambda *args: None))
        self._events[event].connect(handler, weak=False)

    async def emit(self, event: hooks.Hook) -> None:
        if sig := self._events.get(event.name):
            await sig.send(*event.args())

    def register_action(self, operation: str, func: Callable[..., Any]) -> None:
        self.actions[operation] = func

    def action(self, operation: str, *args: Any) -> Any:
        if not self.is_enabled:
            raise exceptions.ModuleError(
                f"Cannot run {operation}: module {self.name} is disabled"
            )
        try:
            func = self.actions[operation]
        except KeyError:
            raise exceptions.ModuleError(
                f"Module {self.name} has no action {operation}"
            ) from None
        return func(*args)

    async def init(self) -> None:
        """Set up the module's internals. Called on every enable."""

    async def unload(self) -> None:
        """Tear down the module's internals. Called on every disable."""

    async def enable(self) -> None:
        if self.is_enabled:
            return
        await self.init()
        self.state = ModuleState.ENABLED
        self._ready.set()
        logger.debug(f"Module {self.name} enabled")
        await self.emit(hooks.ModuleEnabledHook(self))

    async def disable(self) -> None:
        if self.is_disabled:
            return
        self._ready.clear()
        await self.unload()
        self.state = ModuleState.DISABLED
        logger.debug(f"Module {self.name} disabled")


class Host:
    """
    In-process module host: owns a set of Modules and enables or disables
    them by name.
    """

    def __init__(self, modules: Iterable[Module] = ()) -> None:
        self.modules: dict[str, Module] = {}
        for m in modules:
            self.add(m)

    def add(self, module: Module) -> None:
        if module.name in self.modules:
            raise exceptions.ModuleError(f"A module called {module.name} already exists.")
        self.modules[module.name] = module

    def get(self, name: str) -> Module:
        try:
            return self.modules[name]
        except KeyError:
            raise exceptions.ModuleError(f"No such module: {name}") from None

    async def start(self) -> None:
        """
        Bring up every module that starts out enabled so that it signals
        readiness and its lifecycle listeners run.
        """
        for m in self.modules.values():
            if m.is_enabled:
                await m.emit(hooks.ModuleEnabledHook(m))

    async def enable_module(self, name: str) -> None:
        await self.get(name).enable()

    async def disable_module(self, name: str) -> None:
        await self.get(name).disable()

    def install_whitelist(self, checks: Mapping[str, Callable[[str], bool]]) -> None:
        for name, check in checks.items():
            if m := self.modules.get(name):
                m.whitelist_check = check

    def enabled(self) -> list[str]:
        return [name for name, m in self.modules.items() if m.is_enabled]
