from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from collections.abc import Callable
from pathlib import Path
from typing import Any

from shieldcore import abtest
from shieldcore import browser
from shieldcore import dispatcher
from shieldcore import exceptions
from shieldcore import handlers
from shieldcore import library
from shieldcore import log
from shieldcore import module
from shieldcore import offers
from shieldcore import optmanager
from shieldcore import options
from shieldcore import orchestrator
from shieldcore import pipeline
from shieldcore import policy
from shieldcore import router
from shieldcore import scheduler
from shieldcore import services
from shieldcore import session
from shieldcore import version
from shieldcore import versioning
from shieldcore.utils import asyncio_utils
from shieldcore.utils import fetch

logger = logging.getLogger(__name__)

SETUP_URL = "app/templates/setup.html"

PANEL_REFRESH_WINDOW = 0.2
"""Bursts of setting changes within this many seconds rebuild the panel data once."""


class Master:
    """
    The master owns every component and runs the startup sequence.

    Setting writes made while starting up never drive capability modules
    directly: the orchestrator records them and applies them once, after the
    modules have been brought up and the settings were reconciled with them.
    """

    _termlog: log.TermLogHandler | None = None

    def __init__(
        self,
        opts: options.Options | None,
        host: module.ModuleHost,
        svc: services.Services,
        *,
        info: browser.BrowserInfo | None = None,
        sess: session.Session | None = None,
        facility: pipeline.PipelineFacility | None = None,
        interceptor: pipeline.RequestInterceptor | None = None,
        fetch_json: Callable[[str], Awaitable[Any]] = fetch.get_json,
        confdir: str | None = None,
        event_loop: asyncio.AbstractEventLoop | None = None,
        with_termlog: bool = False,
    ) -> None:
        self.options: options.Options = opts or options.Options()
        self.host = host
        self.services = svc
        self.browser = info or browser.BrowserInfo()
        self.session = sess or session.Session()
        self.fetch_json = fetch_json
        self.confdir = confdir

        if with_termlog:
            self._termlog = log.TermLogHandler()
            self._termlog.configure(self.options.log_verbosity)
            self._termlog.install()
        self.options.changed.connect(self._options_changed)

        self.policy = policy.Policy(self.options, self.session)
        self.host.install_whitelist(self.policy.whitelist_checks())
        self.abtest = abtest.ABTest(self.options, fetch_json)
        self.orchestrator = orchestrator.ModuleOrchestrator(
            self.options, host, self.abtest, self.browser
        )
        self.listeners = pipeline.DirectListeners()
        self.inserter = pipeline.PipelineStepInserter(
            facility, host, interceptor or pipeline.PassThrough(), self.listeners
        )
        self.library = library.LibraryUpdater(self.options, svc, fetch_json)
        self.offers = offers.OfferBridge(host, svc.cmp)

        self.scheduler = scheduler.Scheduler()
        self.scheduler.add("cmp", svc.cmp.fetch)
        if not self.browser.is_legacy:
            self.scheduler.add("abtest", self.refresh_abtests)
        self.scheduler.add("library", self.library.auto_update)

        self.router = router.Router(self.browser, svc.messenger)
        for h in handlers.default_handlers(self):
            self.router.collect(h)
        self.router.freeze()

        # We expect an active event loop here already: setting changes may
        # spawn tasks before start() is called.
        self.event_loop = event_loop or asyncio.get_running_loop()
        self.should_exit = asyncio.Event()

    @property
    def confpath(self) -> Path | None:
        if self.confdir is None:
            return None
        return Path(self.confdir).expanduser() / options.CONF_BASENAME

    def _options_changed(self, updated: set[str]) -> None:
        if self._termlog is not None and "log_verbosity" in updated:
            self._termlog.configure(self.options.log_verbosity)

    def _save(self, updated: set[str]) -> None:
        if path := self.confpath:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                optmanager.save(self.options, path)
            except (exceptions.OptionsError, OSError) as e:
                logger.error(f"Could not save settings: {e}")

    async def refresh_abtests(self) -> None:
        await self.abtest.fetch()
        self.orchestrator.recompute_telemetry()

    def install_subscriptions(self) -> None:
        d = self.options.dispatcher
        d.subscribe("selected_app_ids", self.on_selected_apps)
        d.subscribe("login_info", self.on_login_info)
        d.debounced_subscribe(dispatcher.ALL, self.refresh_panel, PANEL_REFRESH_WINDOW)

    def on_selected_apps(self, app_ids: dict[str, int]) -> None:
        db = self.services.tracker_db
        db.none_selected = not app_ids
        # apps may have been removed from the list, so we cannot just compare counts.
        db.all_selected = bool(app_ids) and all(a in app_ids for a in db.apps)

    def on_login_info(self, login_info: dict[str, Any]) -> None:
        if login_info.get("logged_in"):
            asyncio_utils.spawn(
                self.services.accounts.pull_user_settings(), name="pull user settings"
            )
        self.services.panel_data.init()

    def refresh_panel(self, key: str) -> None:
        logger.debug(f"User setting changed: {key}")
        self.services.panel_data.init()

    def handle_message(
        self,
        request: dict[str, Any],
        sender: dict[str, Any] | None,
        respond: router.Respond | None = None,
    ) -> bool:
        return self.router.handle(request, sender, respond)

    async def start(self) -> None:
        opts = self.options
        if path := self.confpath:
            try:
                optmanager.load_paths(opts, path)
            except exceptions.OptionsError as e:
                logger.error(f"Ignoring settings file: {e}")

        versioning.initialize_versioning(opts, self.session, version.VERSION)
        if self.session.just_installed:
            asyncio_utils.spawn(
                self.services.tabs.open_new_tab(SETUP_URL, True), name="open setup"
            )

        self.inserter.attach_listeners()
        self.orchestrator.install()
        self.install_subscriptions()
        self.offers.install()

        await self.host.start()
        if self.browser.is_legacy:
            await self.orchestrator.disable_legacy_modules()

        try:
            await self.inserter.insert()
        except Exception as e:
            logger.log(log.ALERT, f"Request pipeline unavailable, using plain listeners: {e}")
            self.inserter.attach_listeners()

        await self.orchestrator.reconcile(self.session.upgraded_from_legacy)

        results = await asyncio.gather(
            *(db.init() for db in self.services.databases()), return_exceptions=True
        )
        for r in results:
            if isinstance(r, Exception):
                logger.error(f"Could not load list: {r}")

        self.scheduler.start()
        self.services.panel_data.init()
        self.orchestrator.finish_bootstrap()

        try:
            await self.services.accounts.pull_user_settings()
        except Exception as e:
            logger.info(f"Cannot pull user settings: {e}")

        # settings are persisted only once startup has completed
        self._save(set())
        opts.changed.connect(self._save)
        self.session.init_complete = True
        logger.info(f"{version.SHIELDCORE} started")

    async def run(self) -> None:
        with asyncio_utils.install_exception_handler(self._asyncio_exception_handler):
            self.should_exit.clear()
            try:
                await self.start()
                await self.should_exit.wait()
            finally:
                await self.done()

    def shutdown(self) -> None:
        """
        Shut down. This method is thread-safe.
        """
        self.event_loop.call_soon_threadsafe(self.should_exit.set)

    async def done(self) -> None:
        await self.scheduler.stop()
        if self._termlog is not None:
            self._termlog.uninstall()

    def _asyncio_exception_handler(self, loop, context) -> None:
        try:
            exc: Exception = context["exception"]
        except KeyError:
            logger.error(f"Unhandled asyncio error: {context}")
        else:
            logger.error(
                "Unhandled error in task.",
                exc_info=(type(exc), exc, exc.__traceback__),
            )
