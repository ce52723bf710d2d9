from unittest import mock

import pytest

from shieldcore import browser
from shieldcore import exceptions
from shieldcore import module
from shieldcore import options
from shieldcore import orchestrator
from shieldcore.orchestrator import Lifecycle
from shieldcore.orchestrator import ModulePhase
from shieldcore.orchestrator import Transition
from shieldcore.test import tservices

ALL_BUT_ADBLOCK = tuple(m for m in tservices.DEFAULT_ENABLED if m != module.ADBLOCKER)


class TestAntitrackingConfig:
    @pytest.mark.parametrize(
        "tests, expected",
        [
            ({"antitracking_full"}, {"qsEnabled": True, "telemetryMode": 2}),
            ({"antitracking_half"}, {"qsEnabled": True, "telemetryMode": 1}),
            ({"antitracking_collect"}, {"qsEnabled": False, "telemetryMode": 1}),
            ({"antitracking_full", "antitracking_half"}, {"qsEnabled": True, "telemetryMode": 2}),
            (set(), {"qsEnabled": False, "telemetryMode": 0}),
        ],
    )
    def test_config(self, tests, expected):
        t = mock.Mock()
        t.has_test.side_effect = lambda name: name in tests
        assert orchestrator.antitracking_config(t) == expected


def test_binding_available():
    b = orchestrator.Binding("enable_human_web", (module.HUMAN_WEB,), skip_on_legacy=True)
    assert b.available(browser.BrowserInfo())
    assert not b.available(browser.BrowserInfo(name="edge"))
    assert not b.available(browser.BrowserInfo(bundled=True))
    b = orchestrator.Binding("enable_ad_block", (module.ADBLOCKER,))
    assert b.available(browser.BrowserInfo(name="edge"))


async def test_enable_while_running():
    async with tservices.context(enabled=ALL_BUT_ADBLOCK) as tctx:
        await tctx.start()
        orch = tctx.master.orchestrator
        assert orch.context.lifecycle is Lifecycle.RUNNING
        # the setting follows the module state after startup
        assert tctx.options.enable_ad_block is False

        with mock.patch.object(
            tctx.host, "enable_module", wraps=tctx.host.enable_module
        ) as enable:
            tctx.options.enable_ad_block = True
            assert orch.phase(module.ADBLOCKER) is ModulePhase.PENDING
            # a second request for the same binding is dropped while the first is in flight
            tctx.options.enable_ad_block = True
            await tctx.settle()

        enable.assert_called_once_with(module.ADBLOCKER)
        assert tctx.module(module.ADBLOCKER).is_enabled
        assert orch.context.transition("enable_ad_block") is Transition.IDLE
        assert orch.phase(module.ADBLOCKER) is ModulePhase.ENABLED


async def test_disable_while_running():
    async with tservices.context() as tctx:
        await tctx.start()
        tctx.options.enable_anti_tracking = False
        await tctx.settle()
        assert tctx.module(module.ANTITRACKING).is_disabled
        assert tctx.master.orchestrator.phase(module.ANTITRACKING) is ModulePhase.DISABLED

        # requesting the current state again is a no-op
        with mock.patch.object(tctx.host, "disable_module") as disable:
            tctx.options.enable_anti_tracking = False
            await tctx.settle()
        disable.assert_not_called()


async def test_request_after_transition_completes():
    async with tservices.context() as tctx:
        await tctx.start()
        orch = tctx.master.orchestrator
        assert orch.request("enable_ad_block", False)
        await tctx.settle()
        assert orch.request("enable_ad_block", True)
        await tctx.settle()
        assert tctx.module(module.ADBLOCKER).is_enabled


async def test_multi_module_binding():
    async with tservices.context() as tctx:
        await tctx.start()
        tctx.master.orchestrator.request("enable_offers", False)
        await tctx.settle()
        assert tctx.module(module.MESSAGE_CENTER).is_disabled
        assert tctx.module(module.OFFERS).is_disabled


async def test_failed_transition_clears_guard(caplog):
    async with tservices.context(enabled=ALL_BUT_ADBLOCK) as tctx:
        await tctx.start()
        orch = tctx.master.orchestrator
        with mock.patch.object(
            tctx.host,
            "enable_module",
            side_effect=exceptions.ModuleError("boom"),
        ):
            tctx.options.enable_ad_block = True
            await tctx.settle()
        assert "Could not enable adblocker: boom" in caplog.text
        assert orch.context.transition("enable_ad_block") is Transition.IDLE

        # the next write retries
        tctx.options.enable_ad_block = True
        await tctx.settle()
        assert tctx.module(module.ADBLOCKER).is_enabled


async def test_writes_while_bootstrapping_are_deferred():
    async with tservices.context(enabled=ALL_BUT_ADBLOCK) as tctx:
        orch = tctx.master.orchestrator
        orch.install()
        orch.install()
        assert len(tctx.options.dispatcher.handlers("enable_ad_block")) == 1

        tctx.options.enable_ad_block = False
        tctx.options.enable_ad_block = True
        assert orch.context.deferred == {"enable_ad_block": True}
        assert orch.context.transitions == {}
        assert tctx.module(module.ADBLOCKER).is_disabled

        await tctx.start()
        # reconciliation must not overwrite the deferred value
        assert tctx.options.enable_ad_block is True
        assert tctx.module(module.ADBLOCKER).is_enabled
        assert orch.context.deferred == {}


def test_finish_bootstrap_applies_deferred():
    opts = options.Options()
    orch = orchestrator.ModuleOrchestrator(
        opts, mock.Mock(), mock.Mock(), browser.BrowserInfo()
    )
    orch.context.deferred = {"enable_ad_block": False, "enable_anti_tracking": True}
    with mock.patch.object(orch, "request") as request:
        orch.finish_bootstrap()
    assert orch.context.lifecycle is Lifecycle.RUNNING
    assert orch.context.deferred == {}
    assert request.call_args_list == [
        mock.call("enable_ad_block", False),
        mock.call("enable_anti_tracking", True),
    ]


async def test_reconcile_only_while_bootstrapping():
    async with tservices.context() as tctx:
        await tctx.start()
        with pytest.raises(exceptions.ModuleError):
            await tctx.master.orchestrator.reconcile()


async def test_reconcile_syncs_settings_from_modules():
    enabled = (module.ANTITRACKING, module.MESSAGE_CENTER, module.CORE)
    async with tservices.context(enabled=enabled) as tctx:
        await tctx.start()
        assert tctx.options.enable_ad_block is False
        assert tctx.options.enable_anti_tracking is True
        assert tctx.options.enable_human_web is False
        assert tctx.options.enable_offers is False


async def test_upgrade_from_legacy():
    opts = options.Options(previous_version="7.4.3", version_history=["7.4.3"])
    async with tservices.context(options=opts) as tctx:
        await tctx.start()
        assert tctx.session.upgraded_from_legacy
        assert opts.enable_ad_block is False
        assert opts.enable_anti_tracking is False
        assert opts.enable_human_web is True
        assert opts.is_expert is True
        assert opts.enable_smart_block is False
        assert tctx.module(module.ADBLOCKER).is_disabled
        assert tctx.module(module.ANTITRACKING).is_disabled
        assert tctx.module(module.HUMAN_WEB).is_enabled


async def test_legacy_platform():
    async with tservices.context(info=browser.BrowserInfo(name="edge")) as tctx:
        await tctx.start()
        assert tctx.options.enable_human_web is False
        assert tctx.options.enable_offers is False
        for name in orchestrator.LEGACY_DISABLED_MODULES:
            assert tctx.module(name).is_disabled

        # telemetry and offers bindings do not exist on legacy platforms
        assert not tctx.master.orchestrator.request("enable_human_web", True)
        tctx.options.enable_human_web = True
        await tctx.settle()
        assert tctx.module(module.HUMAN_WEB).is_disabled

        assert tctx.master.orchestrator.request("enable_ad_block", False)
        await tctx.settle()
        assert tctx.module(module.ADBLOCKER).is_disabled


async def test_bundled_platform():
    async with tservices.context(info=browser.BrowserInfo(bundled=True)) as tctx:
        await tctx.start()
        tctx.options.enable_ad_block = False
        await tctx.settle()
        assert tctx.module(module.ADBLOCKER).is_enabled


async def test_push_antitracking_config():
    async with tservices.context() as tctx:
        await tctx.start()
        orch = tctx.master.orchestrator
        set_option = tctx.module(module.ANTITRACKING).actions["setConfigOption"]
        set_option.reset_mock()

        orch.abtest.tests = {"antitracking_full"}
        orch.push_antitracking_config()
        assert set_option.call_args_list == [
            mock.call("qsEnabled", True),
            mock.call("telemetryMode", 2),
        ]

        set_option.reset_mock()
        tctx.options.update(enable_human_web=False)
        await tctx.settle()
        set_option.reset_mock()
        orch.push_antitracking_config()
        assert set_option.call_args_list == [
            mock.call("qsEnabled", True),
            mock.call("telemetryMode", 0),
        ]


async def test_push_antitracking_config_needs_module():
    async with tservices.context() as tctx:
        await tctx.start()
        tctx.options.enable_anti_tracking = False
        await tctx.settle()
        set_option = tctx.module(module.ANTITRACKING).actions["setConfigOption"]
        set_option.reset_mock()
        tctx.master.orchestrator.push_antitracking_config()
        set_option.assert_not_called()


async def test_recompute_telemetry():
    async with tservices.context() as tctx:
        await tctx.start()
        orch = tctx.master.orchestrator
        orch.abtest.tests = {"offers"}
        orch.recompute_telemetry()
        assert tctx.options.enable_offers is True

        orch.abtest.tests = set()
        orch.recompute_telemetry()
        assert tctx.options.enable_offers is False
        await tctx.settle()
        assert tctx.module(module.OFFERS).is_disabled


async def test_unknown_module():
    opts = options.Options()
    host = tservices.thost()
    del host.modules[module.ADBLOCKER]
    orch = orchestrator.ModuleOrchestrator(opts, host, mock.Mock(), browser.BrowserInfo())
    with pytest.raises(exceptions.ModuleError, match="No such module"):
        orch.phase(module.ADBLOCKER)
