"""Tests for SubscriptionSet and SubscriptionManager."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from zway_mqtt.structs import DataChangeType, DataEvent, DataType
from zway_mqtt.subscriptions import SubscriptionManager, SubscriptionSet
from zway_mqtt.zway.adapter import ControllerAdapter
from zway_mqtt.zway.simulated import DataHolder

LEVEL_PATH = "devices.2.instances.0.commandClasses.37.data.level"


def _drain(context) -> list:
    events = []
    while not context.events.empty():
        events.append(context.events.get_nowait())
    return events


@pytest.fixture
def manager(sim_context):
    return SubscriptionManager(sim_context, ControllerAdapter(sim_context))


class TestSubscriptionSet:
    def test_add_is_test_and_set(self):
        subs = SubscriptionSet()
        assert subs.add("devices.2") is True
        assert subs.add("devices.2") is False
        assert "devices.2" in subs
        assert len(subs) == 1

    def test_iteration_is_sorted_snapshot(self):
        subs = SubscriptionSet()
        for path in ("b", "a", "c"):
            subs.add(path)
        assert list(subs) == ["a", "b", "c"]

    def test_concurrent_adds_claim_once(self):
        """Only one of many threads wins the same path."""
        subs = SubscriptionSet()
        results: list[bool] = []
        lock = threading.Lock()
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            won = subs.add("devices.5")
            with lock:
                results.append(won)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert len(subs) == 1


class TestSubscribe:
    def test_walks_whole_subtree_once(self, manager, zway, sim_context):
        root = zway.data_root()
        added = manager.subscribe(root)

        all_nodes = list(root.walk())
        assert added == len(all_nodes)
        assert all(node.callback_count == 1 for node in all_nodes)
        assert set(sim_context.subscriptions) == {node.path for node in all_nodes}

    def test_preorder_natural_child_order(self, sim_context):
        root = DataHolder("")
        a = root.add_child("a")
        a.add_child("a1")
        a.add_child("a2")
        root.add_child("b")
        adapter = MagicMock()
        manager = SubscriptionManager(sim_context, adapter)

        manager.subscribe(root)

        visited = [call.args[0].path for call in adapter.watch.call_args_list]
        assert visited == ["", "a", "a.a1", "a.a2", "b"]

    def test_double_subscribe_is_idempotent(self, manager, zway, sim_context):
        """One observer per node and one event per change, however often we subscribe."""
        level = zway.data_root().find(LEVEL_PATH)
        assert manager.subscribe(zway.data_root()) > 0
        assert manager.subscribe(zway.data_root()) == 0
        assert manager.subscribe(level) == 0
        assert level.callback_count == 1

        _drain(sim_context)
        level.set_value(True)
        events = _drain(sim_context)
        assert events == [DataEvent(change=DataChangeType.UPDATED, node=level)]

    def test_child_created_gets_one_observer(self, manager, zway, sim_context):
        data = zway.data_root().find("devices.2.instances.0.commandClasses.37.data")
        manager.subscribe(data)
        _drain(sim_context)

        child = data.add_child("lastChange", DataType.INTEGER, 0)
        events = _drain(sim_context)
        assert events == [DataEvent(change=DataChangeType.CHILD_CREATED, node=child)]

        assert manager.subscribe(events[0].node) == 1
        assert manager.subscribe(child) == 0
        assert child.callback_count == 1

    def test_known_node_skips_its_subtree(self, sim_context):
        root = DataHolder("")
        a = root.add_child("a")
        a.add_child("a1")
        adapter = MagicMock()
        manager = SubscriptionManager(sim_context, adapter)
        sim_context.subscriptions.add("a")

        assert manager.subscribe(root) == 1
        adapter.watch.assert_called_once_with(root)

    def test_attach_failure_is_logged_and_walk_continues(self, sim_context, caplog):
        root = DataHolder("")
        root.add_child("a")
        root.add_child("b")
        adapter = MagicMock()
        adapter.watch.side_effect = [None, RuntimeError("no memory"), None]
        manager = SubscriptionManager(sim_context, adapter)

        with caplog.at_level("CRITICAL", logger="zway_mqtt.subscriptions"):
            added = manager.subscribe(root)

        assert added == 2
        assert adapter.watch.call_count == 3
        assert "Failed to add data callback for a" in caplog.text

    def test_subscribe_tree_starts_at_root(self, manager, zway, sim_context):
        manager.subscribe_tree()
        assert "" in sim_context.subscriptions
        assert LEVEL_PATH in sim_context.subscriptions
