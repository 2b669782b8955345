"""Tests for observable fields and the shared connection state."""

import threading
from unittest.mock import MagicMock

import pytest

from tcplink.network.connection_state import (
    INITIAL_STATUS,
    STATUS_DISCONNECTED,
    ConnectionState,
    FieldView,
    ObservableField,
)


@pytest.fixture
def state():
    return ConnectionState()


# ---------------------------------------------------------------------------
# ObservableField
# ---------------------------------------------------------------------------

class TestObservableField:
    def test_initial_value_and_version(self):
        f = ObservableField("count", 0)
        assert f.name == "count"
        assert f.value == 0
        assert f.version == 0

    def test_set_bumps_version(self):
        f = ObservableField("count", 0)
        f.set(5)
        f.set(6)
        assert f.value == 6
        assert f.version == 2

    def test_update_applies_function(self):
        f = ObservableField("log", ())
        result = f.update(lambda v: v + ("a",))
        assert result == ("a",)
        assert f.value == ("a",)

    def test_subscribe_receives_current_value_immediately(self):
        f = ObservableField("status", "idle")
        cb = MagicMock()
        f.subscribe(cb)
        cb.assert_called_once_with("idle")

    def test_subscribe_receives_updates(self):
        f = ObservableField("status", "idle")
        seen = []
        f.subscribe(seen.append)
        f.set("busy")
        f.set("done")
        assert seen == ["idle", "busy", "done"]

    def test_unsubscribe_stops_delivery(self):
        f = ObservableField("status", "idle")
        seen = []
        unsubscribe = f.subscribe(seen.append)
        unsubscribe()
        f.set("busy")
        assert seen == ["idle"]

    def test_unsubscribe_twice_is_harmless(self):
        f = ObservableField("status", "idle")
        seen = []
        unsubscribe = f.subscribe(seen.append)
        unsubscribe()
        unsubscribe()
        f.set("busy")
        assert seen == ["idle"]

    def test_failing_subscriber_does_not_break_others(self):
        f = ObservableField("status", "idle")
        bad = MagicMock(side_effect=RuntimeError("boom"))
        good = MagicMock()
        f.subscribe(bad)
        f.subscribe(good)
        f.set("busy")
        assert f.value == "busy"
        good.assert_called_with("busy")

    def test_wait_for_returns_when_predicate_holds(self):
        f = ObservableField("flag", False)
        timer = threading.Timer(0.05, f.set, args=(True,))
        timer.start()
        try:
            assert f.wait_for(lambda v: v is True, timeout=5.0) is True
        finally:
            timer.cancel()

    def test_wait_for_times_out(self):
        f = ObservableField("flag", False)
        assert f.wait_for(lambda v: v is True, timeout=0.05) is False

    def test_concurrent_updates_are_not_lost(self):
        f = ObservableField("log", ())

        def writer(tag):
            for i in range(100):
                f.update(lambda v: v + (f"{tag}{i}",))

        threads = [threading.Thread(target=writer, args=(t,)) for t in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(f.value) == 400
        assert f.version == 400

    def test_older_version_is_not_delivered_after_newer(self):
        f = ObservableField("status", "idle")
        seen = []
        f.subscribe(seen.append)
        f.set("new")
        # a delivery read before "new" and arriving after it
        f._notify("old", 0)
        f._notify("old", 1)
        assert seen == ["idle", "new"]

    def test_subscribers_end_on_final_value_under_concurrent_writes(self):
        f = ObservableField("counter", 0)
        last = {}
        start = threading.Event()

        def writer():
            start.wait()
            for _ in range(200):
                f.update(lambda v: v + 1)

        def subscriber(name):
            start.wait()
            f.subscribe(lambda v: last.__setitem__(name, v))

        threads = [threading.Thread(target=writer) for _ in range(4)]
        threads += [threading.Thread(target=subscriber, args=(f"s{i}",)) for i in range(4)]
        for t in threads:
            t.start()
        start.set()
        for t in threads:
            t.join()
        assert f.value == 800
        assert last == {f"s{i}": 800 for i in range(4)}


class TestFieldView:
    def test_view_reflects_field(self):
        f = ObservableField("status", "idle")
        view = f.read_only()
        assert isinstance(view, FieldView)
        f.set("busy")
        assert view.value == "busy"
        assert view.version == 1
        assert view.name == "status"

    def test_view_has_no_setter(self):
        view = ObservableField("status", "idle").read_only()
        assert not hasattr(view, "set")
        assert not hasattr(view, "update")
        with pytest.raises(AttributeError):
            view.value = "hacked"

    def test_view_subscribe(self):
        f = ObservableField("status", "idle")
        seen = []
        f.read_only().subscribe(seen.append)
        f.set("busy")
        assert seen == ["idle", "busy"]


# ---------------------------------------------------------------------------
# ConnectionState
# ---------------------------------------------------------------------------

class TestConnectionStateDefaults:
    def test_initial_values(self, state):
        snap = state.snapshot()
        assert snap == {
            "connected": False,
            "server_address": "",
            "server_port": 0,
            "received_messages": (),
            "sent_messages": (),
            "status_message": INITIAL_STATUS,
        }

    def test_initial_status_text(self):
        assert INITIAL_STATUS == "not connected"
        assert STATUS_DISCONNECTED == "disconnected"


class TestConnectionStateMutations:
    def test_set_server_info(self, state):
        state.set_server_info("10.0.0.5", 9000)
        assert state.server_address.value == "10.0.0.5"
        assert state.server_port.value == 9000

    def test_connected_status_includes_target(self, state):
        state.set_server_info("10.0.0.5", 9000)
        state.update_connection_state(True)
        assert state.connected.value is True
        assert state.status_message.value == "connected to 10.0.0.5:9000"

    def test_disconnected_status(self, state):
        state.set_server_info("10.0.0.5", 9000)
        state.update_connection_state(True)
        state.update_connection_state(False)
        assert state.connected.value is False
        assert state.status_message.value == "disconnected"

    def test_status_override_is_a_single_change(self, state):
        state.set_server_info("10.0.0.5", 9000)
        state.update_connection_state(True)
        seen = []
        state.status_message.subscribe(seen.append)
        state.update_connection_state(False, status="connection lost")
        assert state.connected.value is False
        assert seen == ["connected to 10.0.0.5:9000", "connection lost"]
        assert STATUS_DISCONNECTED not in seen

    def test_target_is_recorded_before_the_flag(self, state):
        state.set_server_info("10.0.0.9", 9)
        address_when_connected = []

        def on_connected(value):
            if value:
                address_when_connected.append(state.server_address.value)

        state.connected.subscribe(on_connected)
        state.update_connection_state(True, "10.0.0.1", 1)
        assert address_when_connected == ["10.0.0.1"]
        assert state.server_port.value == 1
        assert state.status_message.value == "connected to 10.0.0.1:1"

    def test_target_needs_both_address_and_port(self, state):
        state.set_server_info("10.0.0.9", 9)
        state.update_connection_state(True, address="10.0.0.1")
        assert state.server_address.value == "10.0.0.9"
        assert state.status_message.value == "connected to 10.0.0.9:9"

    def test_append_messages_preserve_order(self, state):
        state.append_received_message("one")
        state.append_received_message("two")
        state.append_sent_message("hi")
        assert state.received_messages.value == ("one", "two")
        assert state.sent_messages.value == ("hi",)

    def test_message_logs_are_immutable_snapshots(self, state):
        state.append_received_message("one")
        before = state.received_messages.value
        state.append_received_message("two")
        assert before == ("one",)

    def test_clear_messages_leaves_connection_alone(self, state):
        state.set_server_info("10.0.0.5", 9000)
        state.update_connection_state(True)
        state.append_received_message("one")
        state.append_sent_message("hi")
        state.clear_messages()
        assert state.received_messages.value == ()
        assert state.sent_messages.value == ()
        assert state.connected.value is True
        assert state.server_address.value == "10.0.0.5"

    def test_update_status_message(self, state):
        state.update_status_message("sending message...")
        assert state.status_message.value == "sending message..."

    def test_fields_are_named(self, state):
        names = [f.name for f in state.fields()]
        assert names == ["connected", "server_address", "server_port",
                         "received_messages", "sent_messages", "status_message"]
