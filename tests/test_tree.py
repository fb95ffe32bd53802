"""Tests for the in-memory tree and the output node registry."""

import logging

import pytest

from livecompute._node import NodeRegistry, OutputNode
from livecompute._tree import MemoryTree, OutputSpec, in_scope


class RecordingListener:
    def __init__(self) -> None:
        self.events: list[tuple[str, ...]] = []

    def on_input_change(self, name: str, *, user: bool) -> None:
        self.events.append(("input", name, "user" if user else "script"))

    def on_structure_change(self) -> None:
        self.events.append(("structure",))


class TestInScope:
    def test_everything_without_scope(self):
        assert in_scope("order.lines", None)
        assert in_scope("", "")

    def test_nested_scope(self):
        assert in_scope("order.lines", "order")
        assert in_scope("order", "order")
        assert not in_scope("orders", "order")
        assert not in_scope("", "order")


class TestMemoryTree:
    def test_values_are_stored_as_plain_text(self):
        tree = MemoryTree()
        tree.add_field("qty", 2, notify=False)
        tree.add_field("rate", 1.5, notify=False)
        tree.add_field("active", value=True, notify=False)
        assert tree.values() == {"qty": "2", "rate": "1.5", "active": "true"}

    def test_notifications(self):
        tree = MemoryTree()
        listener = RecordingListener()
        unsubscribe = tree.subscribe(listener)

        tree.add_field("qty", "1")
        tree.set_value("qty", "2")
        tree.set_value("qty", "3", user=False)
        tree.add_output(OutputSpec("total", "qty * 2"))
        tree.remove_field("total")
        assert listener.events == [
            ("structure",),
            ("input", "qty", "user"),
            ("input", "qty", "script"),
            ("structure",),
            ("structure",),
        ]

        unsubscribe()
        tree.set_value("qty", "4")
        assert len(listener.events) == 5

    def test_write_is_recorded_without_notification(self):
        tree = MemoryTree()
        tree.add_output(OutputSpec("total", "1"), notify=False)
        listener = RecordingListener()
        tree.subscribe(listener)
        tree.write("total", "1")
        tree.write("missing", "1")
        assert tree.read("total") == "1"
        assert tree.writes == [("total", "1")]
        assert listener.events == []

    def test_unknown_field(self):
        tree = MemoryTree()
        assert tree.read("nope") is None
        with pytest.raises(KeyError, match="Unknown field"):
            tree.set_value("nope", "1")
        with pytest.raises(KeyError):
            tree.remove_field("nope")

    def test_scoped_queries(self):
        tree = MemoryTree()
        tree.add_field("x", "1", scope="order", notify=False)
        tree.add_field("y", "1", scope="summary", notify=False)
        tree.add_output(OutputSpec("line", "x", scope="order.lines"), notify=False)
        tree.add_output(OutputSpec("total", "y", scope="summary"), notify=False)
        assert tree.input_names("order") == ["x", "line"]
        assert [spec.id for spec in tree.output_specs("order")] == ["line"]
        assert [spec.id for spec in tree.output_specs()] == ["line", "total"]

    def test_focus_is_cleared_on_removal(self):
        tree = MemoryTree()
        tree.add_field("x", "1", notify=False)
        tree.focus("x")
        assert tree.is_focused("x")
        tree.remove_field("x", notify=False)
        assert tree.focused is None


class TestOutputNode:
    def test_from_spec(self):
        spec = OutputSpec("rows[0][total]", "rows_0_qty * price", format="currency", trigger_variables=("refresh",))
        node = OutputNode.from_spec(spec)
        assert node.id == "rows_0_total"
        assert node.field == "rows[0][total]"
        assert node.dependencies == frozenset({"rows_0_qty", "price", "refresh"})
        assert node.trigger_variables == ("refresh",)
        assert node.last_value is None
        assert not node.evaluated

    def test_update_keeps_cache_for_same_expression(self):
        node = OutputNode.from_spec(OutputSpec("total", "a + b"))
        node.last_value = 3.0
        node.evaluated = True
        assert node.update_from(OutputSpec("total", "a + b", format="currency"))
        assert node.format == "currency"
        assert node.last_value == 3.0
        assert not node.update_from(OutputSpec("total", "a + b", format="currency"))

    def test_new_expression_resets_cache(self):
        node = OutputNode.from_spec(OutputSpec("total", "a + b"))
        node.last_value = 3.0
        node.last_written = "3"
        node.evaluated = True
        assert node.update_from(OutputSpec("total", "a * b"))
        assert node.dependencies == frozenset({"a", "b"})
        assert node.last_value is None
        assert node.last_written is None
        assert not node.evaluated


class TestNodeRegistry:
    def test_sync_reports_differences(self):
        registry = NodeRegistry()
        diff = registry.sync([OutputSpec("a", "x"), OutputSpec("b", "x")])
        assert diff.added == ["a", "b"]
        assert registry.ids() == ["a", "b"]

        kept = registry.get("a")
        diff = registry.sync([OutputSpec("a", "x"), OutputSpec("c", "y"), OutputSpec("b", "x * 2")])
        assert diff.added == ["c"]
        assert diff.changed == ["b"]
        assert diff.removed == []
        assert registry.get("a") is kept
        assert registry.ids() == ["a", "c", "b"]

        diff = registry.sync([OutputSpec("c", "y")])
        assert diff.removed == ["a", "b"]
        assert "a" not in registry
        assert len(registry) == 1

    def test_unchanged_sync_is_falsy(self):
        registry = NodeRegistry()
        registry.sync([OutputSpec("a", "x")])
        assert not registry.sync([OutputSpec("a", "x")])

    def test_colliding_ids(self, caplog: pytest.LogCaptureFixture):
        registry = NodeRegistry()
        with caplog.at_level(logging.WARNING):
            registry.sync([OutputSpec("order-total", "1"), OutputSpec("order_total", "2")])
        assert len(registry) == 1
        assert "flatten to the same id" in caplog.text
