import gc

import pytest

from billbuddy.core.bus import EventBus


def test_one_shot_listener_stays_unsubscribed():
    bus = EventBus()
    calls = []

    def once(*args):
        calls.append(args)
        bus.unsubscribe("evt", once)

    bus.subscribe("evt", once)
    bus.emit("evt", 1)
    bus.emit("evt", 2)
    assert calls == [(1,)]


def test_listener_removed_mid_emit_is_skipped():
    bus = EventBus()
    calls = []

    def second(*args):
        calls.append("second")

    def first(*args):
        calls.append("first")
        bus.unsubscribe("evt", second)

    bus.subscribe("evt", first)
    bus.subscribe("evt", second)
    bus.emit("evt")
    assert calls == ["first"]


def test_listener_added_mid_emit_runs_from_next_emit():
    bus = EventBus()
    calls = []

    def late():
        calls.append("late")

    def first():
        calls.append("first")
        bus.subscribe("evt", late)
        bus.unsubscribe("evt", first)

    bus.subscribe("evt", first)
    bus.emit("evt")
    bus.emit("evt")
    assert calls == ["first", "late"]


def test_dead_bound_methods_are_pruned():
    bus = EventBus()

    class Screen:
        def on_evt(self):
            raise AssertionError("closed screen was notified")

    screen = Screen()
    bus.subscribe("evt", screen.on_evt)
    del screen
    gc.collect()
    bus.emit("evt")
    assert bus._subs["evt"] == []


def test_raising_listener_propagates_and_keeps_subscriptions():
    bus = EventBus()

    def boom():
        raise RuntimeError("boom")

    bus.subscribe("evt", boom)
    with pytest.raises(RuntimeError):
        bus.emit("evt")
    assert bus._subs["evt"] == [boom]
