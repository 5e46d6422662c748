"""Tests for the client-side order history."""

import asyncio
import json
import os
import stat

from storefront_server.history import OrderHistory

from conftest import make_order


class TestOrderHistory:
    def test_record_persists(self, data, history_file):
        history = OrderHistory(data, history_file)
        history.record("o1")
        history.record("o2")
        history.record("o1")

        assert history.order_ids == ["o1", "o2"]
        with open(history_file) as f:
            assert json.load(f) == {"order_ids": ["o1", "o2"]}
        assert stat.S_IMODE(os.stat(history_file).st_mode) == 0o600

        assert OrderHistory(data, history_file).order_ids == ["o1", "o2"]

    def test_corrupt_file_ignored(self, data, history_file):
        with open(history_file, "w") as f:
            f.write("{not json")

        assert OrderHistory(data, history_file).order_ids == []

    def test_refresh_loads_orders(self, data, history_file):
        data.orders["o1"] = make_order("A3B7K9M2", order_id="o1")
        history = OrderHistory(data, history_file)
        history.record("o1")

        assert asyncio.run(history.refresh()) is True
        assert [o.id for o in history.orders] == ["o1"]
        assert history.last_error is None

    def test_failed_refresh_keeps_snapshot(self, data, history_file):
        data.orders["o1"] = make_order("A3B7K9M2", order_id="o1")
        history = OrderHistory(data, history_file)
        history.record("o1")
        asyncio.run(history.refresh())

        data.fail.add("get_orders")
        assert asyncio.run(history.refresh()) is False

        assert [o.id for o in history.orders] == ["o1"]
        assert history.last_error == "service down"
        assert history.order_ids == ["o1"]

    def test_find_by_tracking_code(self, data, history_file):
        data.orders["o1"] = make_order("A3B7K9M2", order_id="o1")
        history = OrderHistory(data, history_file)
        history.record("o1")
        asyncio.run(history.refresh())

        assert history.find_by_tracking_code(" a3b7k9m2").id == "o1"
        assert history.find_by_tracking_code("ZZZZZZZZ") is None

    def test_unwritable_file_keeps_ids_in_memory(self, data, tmp_path):
        history = OrderHistory(data, str(tmp_path / "missing" / "orders.json"))

        history.record("o1")

        assert history.order_ids == ["o1"]
        assert not os.path.exists(history.history_file)
