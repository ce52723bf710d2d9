"""
The message router demultiplexes inbound messages from front-end contexts
(content scripts, the panel, extension pages) to handlers.

Handlers are plain methods marked with the @handler decorator and collected
from handler objects at startup. After `freeze()` the routing table is
read-only. Inbound messages come from untrusted contexts: the router never
raises for them, it logs and reports the message as handled or not.
"""

from __future__ import annotations

import enum
import inspect
import logging
import types
from collections.abc import Callable
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from shieldcore import browser
from shieldcore import dispatcher
from shieldcore import exceptions
from shieldcore import services
from shieldcore.utils import asyncio_utils

logger = logging.getLogger(__name__)

FOREIGN_SOURCE = "cliqz-content-script"
"""Messages from the bundled modules' own content scripts carry this source."""


class Origin(enum.Enum):
    PLATFORM_PAGES = "platform_pages"
    PURPLEBOX = "purplebox"
    GHOSTERY_DOT_COM = "ghostery_dot_com"
    PAGE_PERFORMANCE = "page_performance"
    NOTIFICATIONS = "notifications"
    CLICK_TO_PLAY = "click_to_play"
    BLOCKED_REDIRECT = "blocked_redirect"


FALLTHROUGH_ORIGINS = frozenset({Origin.PAGE_PERFORMANCE})
"""Origins whose unknown messages are resolved against the universal handlers."""


class Response(enum.Enum):
    SYNC = "sync"
    """The handler's return value is the response, delivered before dispatch returns."""
    ASYNC = "async"
    """The handler is a coroutine; its result is delivered later."""


Respond = Callable[[Any], None]


@dataclass(frozen=True)
class Route:
    origin: Origin | None
    name: str
    mode: Response
    func: Callable[..., Any]

    def __str__(self):
        return f"{self.origin.value if self.origin else '*'}/{self.name}"


def handler(name: str, origin: Origin | None = None, mode: Response | None = None):
    """
    Mark a method as the handler for messages called `name` from `origin`,
    or for universal messages if no origin is given.

    Coroutine functions default to Response.ASYNC.
    """

    def decorator(function):
        m = mode
        if m is None:
            m = Response.ASYNC if inspect.iscoroutinefunction(function) else Response.SYNC
        if m is Response.ASYNC and not inspect.iscoroutinefunction(function):
            raise exceptions.RouterError(
                f"Handler {function.__qualname__} for {name} must be a coroutine function"
            )

        function.__dict__["route"] = (origin, name, m)
        return function

    return decorator


@dataclass(frozen=True)
class Sender:
    tab_id: int | None = None
    tab_url: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> Sender:
        if not isinstance(data, Mapping):
            data = {}
        tab = data.get("tab")
        if not isinstance(tab, Mapping):
            tab = {}
        # some platforms have no url on the tab object
        tab_url = tab.get("url") or data.get("url") or ""
        tab_id = tab.get("id")
        return cls(
            tab_id=tab_id if isinstance(tab_id, int) else None,
            tab_url=tab_url if isinstance(tab_url, str) else "",
        )


@dataclass(frozen=True)
class Message:
    name: str
    origin: str | None = None
    payload: Any = None
    message_id: str | None = None
    source: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Message:
        try:
            name = data["name"]
        except (KeyError, TypeError):
            raise exceptions.RouterError(f"Malformed message: {data!r}") from None
        origin = data.get("origin")
        message_id = data.get("messageId")
        if not isinstance(name, str):
            raise exceptions.RouterError(f"Malformed message name: {name!r}")
        if origin is not None and not isinstance(origin, str):
            raise exceptions.RouterError(f"Malformed message origin: {origin!r}")
        return cls(
            name=name,
            origin=origin,
            payload=data.get("message"),
            message_id=message_id,
            source=data.get("source"),
        )


class Unhandled(exceptions.RouterError):
    """
    No handler takes the message. Synchronous handlers may raise this to
    decline a message, in which case no response is sent.
    """


class Router:
    def __init__(
        self, info: browser.BrowserInfo, messenger: services.Messenger
    ) -> None:
        self.browser = info
        self.messenger = messenger
        self.routes: dict[tuple[Origin | None, str], Route] | Mapping = {}
        self.frozen = False

    def add(self, origin: Origin | None, name: str, mode: Response, func: Callable) -> None:
        if self.frozen:
            raise exceptions.RouterError("Cannot add routes after the router was frozen")
        key = (origin, name)
        if key in self.routes:
            raise exceptions.RouterError(f"Duplicate handler for {self.routes[key]}")
        self.routes[key] = Route(origin, name, mode, func)  # type: ignore[index]

    def collect(self, obj: Any) -> None:
        """Register every @handler-decorated method of obj."""
        for i in dir(obj):
            if not i.startswith("__"):
                o = getattr(obj, i)
                try:
                    route = getattr(o, "route", None)
                    is_handler = isinstance(route, tuple)
                except Exception:
                    pass  # getattr may raise if o implements __getattr__.
                else:
                    if is_handler:
                        self.add(*route, o)

    def freeze(self) -> None:
        self.routes = types.MappingProxyType(dict(self.routes))
        self.frozen = True

    def resolve(self, message: Message) -> Route:
        try:
            origin: Origin | None = Origin(message.origin)
        except ValueError:
            origin = None
        key = (origin, message.name)
        if key not in self.routes and origin in FALLTHROUGH_ORIGINS:
            key = (None, message.name)
        try:
            return self.routes[key]
        except KeyError:
            raise Unhandled(
                f"Unhandled message {message.name} from {message.origin or 'unknown origin'}"
            ) from None

    def _legacy_respond(self, message: Message, sender: Sender) -> Respond:
        # Response callbacks get lost on legacy platforms when several
        # browser instances are running, so we send a follow-up message instead.
        message_id = message.message_id
        assert message_id

        if sender.tab_id:

            def respond(result: Any) -> None:
                self.messenger.send_message(sender.tab_id, message_id, result)

        else:

            def respond(result: Any) -> None:
                self.messenger.send_message_to_panel(message_id, result)

        return respond

    def dispatch(
        self,
        message: Message,
        sender: Sender,
        respond: Respond | None = None,
    ) -> bool:
        """
        Route a message to its handler. Returns True if a response will be
        delivered asynchronously through `respond`, False otherwise.
        """
        if message.source == FOREIGN_SOURCE:
            return False
        if self.browser.is_legacy and message.message_id:
            respond = self._legacy_respond(message, sender)
        try:
            route = self.resolve(message)
        except Unhandled as e:
            logger.debug(str(e))
            return False

        if route.mode is Response.SYNC:
            with dispatcher.safecall(f"Message handler {route}"):
                try:
                    result = route.func(message.payload, sender)
                except Unhandled as e:
                    logger.debug(str(e))
                    return False
                if respond is not None:
                    respond(result)
            return False

        asyncio_utils.create_task(
            self._run_async(route, message, sender, respond),
            name=f"message {route}",
            keep_ref=True,
            tab_id=sender.tab_id,
        )
        return respond is not None

    def handle(
        self,
        request: Mapping[str, Any],
        sender: Mapping[str, Any] | None,
        respond: Respond | None = None,
    ) -> bool:
        """Dispatch a raw wire message."""
        try:
            message = Message.from_dict(request)
        except exceptions.RouterError as e:
            logger.debug(str(e))
            return False
        return self.dispatch(message, Sender.from_dict(sender), respond)

    async def _run_async(
        self,
        route: Route,
        message: Message,
        sender: Sender,
        respond: Respond | None,
    ) -> None:
        result = None
        with dispatcher.safecall(f"Message handler {route}"):
            result = await route.func(message.payload, sender)
        if respond is not None:
            with dispatcher.safecall(f"Response to {route}"):
                respond(result)
