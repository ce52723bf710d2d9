"""
Request interception happens at two stages: before a request is sent, and
when its response headers arrive. Several capability modules contribute steps
to each stage. Our own steps must run before the steps of every module that is
already active when we insert them; modules enabled later append their steps
after ours.

Until insertion succeeds, our interceptor is attached as a plain listener. If
the pipeline facility is unavailable, it stays that way (degraded mode).
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Protocol

from shieldcore import exceptions
from shieldcore import module

logger = logging.getLogger(__name__)

STEP_PREFIX = "shield"


class Stage(enum.Enum):
    PRE_SEND = "onBeforeRequest"
    HEADERS_RECEIVED = "onHeadersReceived"


class ExecutionMode(enum.Enum):
    BLOCKING = "blocking"
    """May cancel or redirect the request."""
    COLLECT = "collect"
    """Observes the request only."""


@dataclass(frozen=True)
class StepRegistration:
    module: str
    step: str
    stage: Stage


KNOWN_STEPS: tuple[StepRegistration, ...] = (
    StepRegistration(module.ANTITRACKING, "antitracking.onBeforeRequest", Stage.PRE_SEND),
    StepRegistration(
        module.ANTITRACKING, "antitracking.onHeadersReceived", Stage.HEADERS_RECEIVED
    ),
    StepRegistration(module.ADBLOCKER, "adblocker", Stage.PRE_SEND),
)


def ordering_constraints(
    enabled: Iterable[str],
    registrations: Iterable[StepRegistration] = KNOWN_STEPS,
) -> dict[Stage, list[str]]:
    """
    For each stage, the steps of currently enabled modules that our own step
    has to run before.
    """
    enabled = set(enabled)
    before: dict[Stage, list[str]] = {s: [] for s in Stage}
    for r in registrations:
        if r.module in enabled:
            before[r.stage].append(r.step)
    return before


RequestState = dict[str, Any]


@dataclass
class StepDescriptor:
    name: str
    mode: ExecutionMode
    before: list[str]
    handler: Callable[..., Any]


class PipelineFacility(Protocol):
    @property
    def is_disabled(self) -> bool: ...

    async def add_pipeline_step(self, stage: Stage, step: StepDescriptor) -> None: ...

    def remove_pipeline_step(self, stage: Stage, name: str) -> None: ...


class RequestInterceptor(Protocol):
    def on_before_request(self, state: RequestState) -> dict[str, Any] | None:
        """
        Return {"cancel": True} or {"redirectUrl": ...} to stop the request,
        or None to let it through.
        """

    def on_headers_received(self, state: RequestState) -> None: ...


class WebRequestPipeline:
    """
    In-process pipeline facility.

    A step is inserted right before the earliest registered step named in its
    `before` list, or appended if none of them is registered. Blocking steps
    receive the request state and the response being built and return False
    to stop the chain. Collect steps only receive the state.
    """

    def __init__(self, disabled: bool = False) -> None:
        self.disabled = disabled
        self.steps: dict[Stage, list[StepDescriptor]] = {s: [] for s in Stage}

    @property
    def is_disabled(self) -> bool:
        return self.disabled

    def names(self, stage: Stage) -> list[str]:
        return [s.name for s in self.steps[stage]]

    async def add_pipeline_step(self, stage: Stage, step: StepDescriptor) -> None:
        if self.disabled:
            raise exceptions.PipelineUnavailable("pipeline is disabled")
        steps = self.steps[stage]
        if step.name in self.names(stage):
            raise exceptions.PipelineError(
                f"A step called {step.name} already exists in {stage.value}"
            )
        positions = [i for i, s in enumerate(steps) if s.name in step.before]
        if positions:
            steps.insert(min(positions), step)
        else:
            steps.append(step)

    def remove_pipeline_step(self, stage: Stage, name: str) -> None:
        self.steps[stage] = [s for s in self.steps[stage] if s.name != name]

    def run(self, stage: Stage, state: RequestState) -> dict[str, Any]:
        response: dict[str, Any] = {}
        for step in self.steps[stage]:
            if step.mode is ExecutionMode.BLOCKING:
                if step.handler(state, response) is False:
                    break
            else:
                step.handler(state)
        return response


@dataclass
class DirectListeners:
    """
    Plain per-stage listener registry, used when steps cannot be ordered
    through the pipeline.
    """

    listeners: dict[Stage, list[Callable[..., Any]]] = field(
        default_factory=lambda: {s: [] for s in Stage}
    )

    def add(self, stage: Stage, listener: Callable[..., Any]) -> None:
        if listener not in self.listeners[stage]:
            self.listeners[stage].append(listener)

    def remove(self, stage: Stage, listener: Callable[..., Any]) -> None:
        self.listeners[stage] = [li for li in self.listeners[stage] if li != listener]

    def registered(self, stage: Stage) -> list[Callable[..., Any]]:
        return list(self.listeners[stage])


class PipelineStepInserter:
    def __init__(
        self,
        facility: PipelineFacility | None,
        host: module.ModuleHost,
        interceptor: RequestInterceptor,
        listeners: DirectListeners,
        registrations: Iterable[StepRegistration] = KNOWN_STEPS,
        name: str = STEP_PREFIX,
    ) -> None:
        self.facility = facility
        self.host = host
        self.interceptor = interceptor
        self.listeners = listeners
        self.registrations = tuple(registrations)
        self.name = name
        self.inserted = False

    def attach_listeners(self) -> None:
        """Attach the interceptor as plain listeners to both stages."""
        self.listeners.add(Stage.PRE_SEND, self.interceptor.on_before_request)
        self.listeners.add(Stage.HEADERS_RECEIVED, self.interceptor.on_headers_received)

    def detach_listeners(self) -> None:
        self.listeners.remove(Stage.PRE_SEND, self.interceptor.on_before_request)
        self.listeners.remove(
            Stage.HEADERS_RECEIVED, self.interceptor.on_headers_received
        )

    def enabled_modules(self) -> list[str]:
        return [name for name, m in self.host.modules.items() if m.is_enabled]

    def _before_request(self, state: RequestState, response: dict[str, Any]) -> bool:
        result = self.interceptor.on_before_request(state)
        if result and (result.get("cancel") is True or result.get("redirectUrl")):
            response.update(result)
            return False
        return True

    def _headers_received(self, state: RequestState) -> bool:
        self.interceptor.on_headers_received(state)
        return True

    def steps(self) -> dict[Stage, StepDescriptor]:
        before = ordering_constraints(self.enabled_modules(), self.registrations)
        return {
            Stage.PRE_SEND: StepDescriptor(
                name=f"{self.name}.{Stage.PRE_SEND.value}",
                mode=ExecutionMode.BLOCKING,
                before=before[Stage.PRE_SEND],
                handler=self._before_request,
            ),
            Stage.HEADERS_RECEIVED: StepDescriptor(
                name=f"{self.name}.{Stage.HEADERS_RECEIVED.value}",
                mode=ExecutionMode.COLLECT,
                before=before[Stage.HEADERS_RECEIVED],
                handler=self._headers_received,
            ),
        }

    async def insert(self) -> None:
        """
        Insert our steps into both stages. Completes once both insertions
        succeeded; raises PipelineUnavailable if there is no usable pipeline,
        or whatever the facility raised for a failed insertion. Either both
        steps end up in the pipeline or neither does.
        """
        if self.inserted:
            raise exceptions.PipelineError("pipeline steps have already been inserted")
        if self.facility is None or self.facility.is_disabled:
            raise exceptions.PipelineUnavailable(
                "cannot initialise request pipeline: module disabled"
            )
        self.detach_listeners()
        steps = self.steps()
        results = await asyncio.gather(
            *(self.facility.add_pipeline_step(stage, step) for stage, step in steps.items()),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            for (stage, step), r in zip(steps.items(), results):
                if not isinstance(r, BaseException):
                    self.facility.remove_pipeline_step(stage, step.name)
            raise errors[0]
        self.inserted = True
        logger.debug(
            "Pipeline steps inserted: "
            + ", ".join(f"{s.name} before {s.before or 'nothing'}" for s in steps.values())
        )


class PassThrough:
    """Interceptor that lets every request through untouched."""

    def on_before_request(self, state: RequestState) -> dict[str, Any] | None:
        return None

    def on_headers_received(self, state: RequestState) -> None:
        return None
