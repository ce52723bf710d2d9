import asyncio
from unittest import mock

import pytest
from hypothesis import given
from hypothesis import strategies as st

from shieldcore import dispatcher
from shieldcore import exceptions
from shieldcore import hooks


def publish(d, key, value):
    d.publish(hooks.ConfigChangedHook(key, value))


def test_subscribe_and_publish():
    d = dispatcher.Dispatcher()
    calls = []
    d.subscribe("enable_ad_block", lambda v: calls.append(("a", v)))
    d.subscribe("enable_ad_block", lambda v: calls.append(("b", v)))
    d.subscribe("show_alert", lambda v: calls.append(("c", v)))

    publish(d, "enable_ad_block", True)
    assert calls == [("a", True), ("b", True)]


def test_wildcard_receives_key():
    d = dispatcher.Dispatcher()
    topic = mock.Mock()
    wildcard = mock.Mock()
    d.subscribe("is_expert", topic)
    d.subscribe(dispatcher.ALL, wildcard)
    publish(d, "is_expert", True)
    topic.assert_called_once_with(True)
    wildcard.assert_called_once_with("is_expert")


def test_unsubscribe():
    d = dispatcher.Dispatcher()
    h = mock.Mock()
    d.subscribe("is_expert", h)
    d.unsubscribe("is_expert", h)
    publish(d, "is_expert", True)
    assert not h.called
    assert d.handlers("is_expert") == []
    # unknown handlers are ignored
    d.unsubscribe("is_expert", h)


def test_closed_topics():
    d = dispatcher.Dispatcher(topics=["enable_ad_block"])
    d.subscribe("enable_ad_block", mock.Mock())
    d.subscribe(dispatcher.ALL, mock.Mock())
    with pytest.raises(exceptions.OptionsError, match="No such topic"):
        d.subscribe("enable_adblock", mock.Mock())
    d.add_topics("enable_adblock")
    d.subscribe("enable_adblock", mock.Mock())


def test_async_handler_rejected():
    d = dispatcher.Dispatcher()

    async def handler(value):
        pass

    with pytest.raises(exceptions.OptionsError, match="Async handler"):
        d.subscribe("enable_ad_block", handler)


def test_handler_isolation(caplog):
    d = dispatcher.Dispatcher()
    after = mock.Mock()

    def broken(value):
        raise ValueError("broken handler")

    d.subscribe("enable_ad_block", broken)
    d.subscribe("enable_ad_block", after)
    publish(d, "enable_ad_block", False)
    after.assert_called_once_with(False)
    assert "Handler error: broken handler" in caplog.text
    assert "Traceback" in caplog.text


def test_safecall_logs(caplog):
    def broken():
        raise ValueError("oops")

    with dispatcher.safecall("Thing"):
        broken()
    assert "Thing error: oops" in caplog.text


@given(st.lists(st.integers(min_value=0, max_value=30), max_size=20))
def test_handlers_observe_every_value_in_order(values):
    d = dispatcher.Dispatcher()
    seen = []
    d.subscribe("alert_bubble_timeout", seen.append)
    for v in values:
        publish(d, "alert_bubble_timeout", v)
    assert seen == values


async def test_debounce():
    d = dispatcher.Dispatcher()
    seen = []
    debouncer = d.debounced_subscribe("alert_bubble_timeout", seen.append, 0.05)
    for v in range(5):
        publish(d, "alert_bubble_timeout", v)
    assert seen == []
    assert debouncer.pending
    await asyncio.sleep(0.2)
    assert seen == [4]
    assert not debouncer.pending

    publish(d, "alert_bubble_timeout", 10)
    await asyncio.sleep(0.2)
    assert seen == [4, 10]


async def test_debounce_unsubscribe():
    d = dispatcher.Dispatcher()
    seen = []
    debouncer = d.debounced_subscribe(dispatcher.ALL, seen.append, 0.05)
    publish(d, "is_expert", True)
    d.unsubscribe(dispatcher.ALL, debouncer)
    await asyncio.sleep(0.2)
    assert seen == []


async def test_debounced_handler_error(caplog_async):
    d = dispatcher.Dispatcher()

    def broken(value):
        raise ValueError("late failure")

    d.debounced_subscribe("is_expert", broken, 0.01)
    publish(d, "is_expert", True)
    await caplog_async.await_log("Debounced handler error: late failure")
