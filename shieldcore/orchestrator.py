"""
The module orchestrator drives capability modules through enable/disable
transitions in response to setting changes.

Every module-enablement setting is bound to one or more modules. A write to
such a setting requests a transition; requests are dropped while a previous
transition for the same binding is still in flight, and recorded for later
while the process is bootstrapping. The deferred values are applied once,
explicitly, when bootstrap finishes.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field
from typing import Any

from shieldcore import abtest
from shieldcore import browser
from shieldcore import exceptions
from shieldcore import module
from shieldcore import options
from shieldcore.utils import asyncio_utils

logger = logging.getLogger(__name__)


class Lifecycle(enum.Enum):
    BOOTSTRAPPING = "bootstrapping"
    RUNNING = "running"


class Transition(enum.Enum):
    IDLE = "idle"
    TRANSITIONING = "transitioning"


class ModulePhase(enum.Enum):
    DISABLED = "disabled"
    PENDING = "pending"
    ENABLED = "enabled"


@dataclass(frozen=True)
class Binding:
    topic: str
    modules: tuple[str, ...]
    after: str | None = None
    """Name of an orchestrator method to run after a successful transition."""
    skip_on_legacy: bool = False
    skip_on_bundled: bool = True

    def available(self, info: browser.BrowserInfo) -> bool:
        if self.skip_on_bundled and info.bundled:
            return False
        if self.skip_on_legacy and info.is_legacy:
            return False
        return True


BINDINGS: tuple[Binding, ...] = (
    Binding(
        "enable_human_web",
        (module.HUMAN_WEB,),
        after="recompute_telemetry",
        skip_on_legacy=True,
    ),
    Binding(
        "enable_offers",
        (module.MESSAGE_CENTER, module.OFFERS),
        skip_on_legacy=True,
    ),
    Binding(
        "enable_anti_tracking",
        (module.ANTITRACKING,),
        after="push_antitracking_config",
    ),
    Binding("enable_ad_block", (module.ADBLOCKER,)),
)

LEGACY_DISABLED_MODULES = (module.HPN, module.OFFERS, module.HUMAN_WEB)


def antitracking_config(tests: abtest.ABTest) -> dict[str, Any]:
    if tests.has_test("antitracking_full"):
        return {"qsEnabled": True, "telemetryMode": 2}
    elif tests.has_test("antitracking_half"):
        return {"qsEnabled": True, "telemetryMode": 1}
    elif tests.has_test("antitracking_collect"):
        return {"qsEnabled": False, "telemetryMode": 1}
    return {"qsEnabled": False, "telemetryMode": 0}


@dataclass
class OrchestratorContext:
    lifecycle: Lifecycle = Lifecycle.BOOTSTRAPPING
    transitions: dict[str, Transition] = field(default_factory=dict)
    deferred: dict[str, bool] = field(default_factory=dict)
    """Last value written to each binding's topic while bootstrapping."""

    def transition(self, topic: str) -> Transition:
        return self.transitions.get(topic, Transition.IDLE)


class ModuleOrchestrator:
    def __init__(
        self,
        opts: options.Options,
        host: module.ModuleHost,
        tests: abtest.ABTest,
        info: browser.BrowserInfo,
        context: OrchestratorContext | None = None,
        bindings: tuple[Binding, ...] = BINDINGS,
    ) -> None:
        self.options = opts
        self.host = host
        self.abtest = tests
        self.browser = info
        self.context = context or OrchestratorContext()
        self.bindings = {b.topic: b for b in bindings}
        self._installed = False

    def install(self) -> None:
        """
        Subscribe to the enablement settings. Values loaded before this call
        count as the persisted state, not as user requests.
        """
        if self._installed:
            return
        for b in self.bindings.values():
            self.options.dispatcher.subscribe(b.topic, self._make_handler(b))
        self._installed = True

    def _make_handler(self, binding: Binding) -> Callable[[bool], None]:
        def handler(value: bool) -> None:
            self.request(binding.topic, value)

        handler.__name__ = f"on_{binding.topic}"
        return handler

    def _module(self, name: str) -> module.CapabilityModule:
        try:
            return self.host.modules[name]
        except KeyError:
            raise exceptions.ModuleError(f"No such module: {name}") from None

    def request(self, topic: str, enabled: bool) -> bool:
        """
        Request a transition of the modules bound to topic. Returns True if a
        transition was started.
        """
        binding = self.bindings[topic]
        if not binding.available(self.browser):
            return False
        if self.context.lifecycle is Lifecycle.BOOTSTRAPPING:
            logger.debug(f"Deferring {topic}={enabled} until bootstrap completes")
            self.context.deferred[topic] = enabled
            return False
        if self.context.transition(topic) is Transition.TRANSITIONING:
            logger.debug(f"Dropping {topic}={enabled}: transition in progress")
            return False
        self.context.transitions[topic] = Transition.TRANSITIONING
        asyncio_utils.create_task(
            self._transition(binding, enabled),
            name=f"transition {topic}={enabled}",
            keep_ref=True,
        )
        return True

    async def _transition(self, binding: Binding, enabled: bool) -> None:
        try:
            for name in binding.modules:
                await self.set_module_enabled(self._module(name), enabled)
            if binding.after:
                getattr(self, binding.after)()
        except Exception as e:
            # The setting and the module state may now disagree; the next
            # write to the setting retries.
            logger.warning(
                f"Could not {'enable' if enabled else 'disable'} {', '.join(binding.modules)}: {e}"
            )
        finally:
            self.context.transitions[binding.topic] = Transition.IDLE

    async def set_module_enabled(
        self, mod: module.CapabilityModule, enabled: bool
    ) -> None:
        if enabled:
            if mod.is_enabled:
                return
            await self.host.enable_module(mod.name)
        else:
            if mod.is_disabled:
                return
            # never race a disable against an enable that has not finished yet.
            await mod.is_ready()
            await self.host.disable_module(mod.name)

    def phase(self, name: str) -> ModulePhase:
        for b in self.bindings.values():
            if name in b.modules and self.context.transition(b.topic) is Transition.TRANSITIONING:
                return ModulePhase.PENDING
        if self._module(name).is_enabled:
            return ModulePhase.ENABLED
        return ModulePhase.DISABLED

    async def disable_legacy_modules(self) -> None:
        for name in LEGACY_DISABLED_MODULES:
            if name in self.host.modules:
                await self.set_module_enabled(self._module(name), False)

    async def reconcile(self, upgraded_from_legacy: bool = False) -> None:
        """
        Sync settings with the actual module states at the end of startup.

        Topics written during bootstrap keep their written value; they are
        applied to the modules by finish_bootstrap(). Users upgrading from the
        legacy major version start with the anti-suite off.
        """
        if self.context.lifecycle is not Lifecycle.BOOTSTRAPPING:
            raise exceptions.ModuleError("Reconciliation only happens during bootstrap")
        if self.browser.bundled:
            return
        pending = set(self.context.deferred)
        opts = self.options
        if upgraded_from_legacy:
            opts.enable_ad_block = False
            opts.enable_anti_tracking = False
            if not self.browser.is_legacy:
                self.context.deferred["enable_human_web"] = opts.enable_human_web
            pending |= {"enable_ad_block", "enable_anti_tracking", "enable_human_web"}

        synced = {}
        for b in self.bindings.values():
            if b.topic in pending or not b.available(self.browser):
                continue
            synced[b.topic] = not self._module(b.modules[-1]).is_disabled
        if self.browser.is_legacy:
            synced["enable_human_web"] = False
            synced["enable_offers"] = False
        opts.update(**synced)
        for topic in synced:
            self.context.deferred.pop(topic, None)

    def finish_bootstrap(self) -> None:
        """
        Leave the bootstrap phase and apply every deferred enablement value.
        """
        self.context.lifecycle = Lifecycle.RUNNING
        deferred, self.context.deferred = self.context.deferred, {}
        for topic, value in deferred.items():
            self.request(topic, value)

    def push_antitracking_config(self) -> None:
        """
        Push the anti-tracking configuration derived from the A/B tests and
        the data-collection opt-in down to the anti-tracking module.
        """
        antitracking = self._module(module.ANTITRACKING)
        if not (self.options.enable_anti_tracking and antitracking.is_enabled):
            return
        config = antitracking_config(self.abtest)
        if not self.options.enable_human_web:
            # no anti-tracking telemetry without the data-collection opt-in
            config["telemetryMode"] = 0
        for opt, val in config.items():
            logger.debug(f"antitracking: set config option {opt}={val}")
            antitracking.action("setConfigOption", opt, val)

    def recompute_telemetry(self) -> None:
        """
        Re-derive everything that depends on the A/B tests and the
        data-collection opt-in. Offers stay off unless the offers test is active.
        """
        self.push_antitracking_config()
        self.options.enable_offers = (
            self.abtest.has_test("offers") and self.options.enable_offers
        )
