"""Unit tests for trigger-driven EventNode recomputation."""

import pytest

from injuryflow import DependencyGraph, EventNode, NodeKind


def make_event_graph():
    """data -> event, with recomputation gated by the 'clicks' counter."""
    state = {"clicks": 0, "data": "first"}
    seen = []

    def snapshot(data):
        seen.append(data)
        return f"{data}#{len(seen)}"

    graph = DependencyGraph()
    graph.input("clicks", lambda: state["clicks"])
    graph.input("data", lambda: state["data"])
    graph.derive("upper", lambda d: d.upper(), deps=["data"])
    graph.event("snapshot", snapshot, trigger="clicks", deps=["upper"])
    graph.derive("shown", lambda s: f"<{s}>", deps=["snapshot"])
    graph.seal()
    return graph, state, seen


def click(graph, state):
    state["clicks"] += 1
    return graph.invalidate("clicks")


@pytest.mark.unit
@pytest.mark.graph
class TestEventNodeTrigger:
    """An EventNode fires on trigger advance, not on data change."""

    def test_first_pull_computes(self):
        graph, _, seen = make_event_graph()

        assert graph.value("snapshot") == "FIRST#1"
        assert seen == ["FIRST"]
        assert isinstance(graph.node("snapshot"), EventNode)
        assert graph.node("snapshot").kind is NodeKind.EVENT

    def test_data_change_alone_keeps_cached_value(self):
        graph, state, seen = make_event_graph()
        graph.value("snapshot")

        state["data"] = "second"
        changed = graph.invalidate("data")

        assert changed == ["upper"]
        assert not graph.is_dirty("snapshot")
        assert graph.node("snapshot").data_stale
        assert graph.value("snapshot") == "FIRST#1"
        assert len(seen) == 1

    def test_trigger_reads_current_data(self):
        """A triggered recompute sees data changed since the last one."""
        graph, state, seen = make_event_graph()
        graph.value("snapshot")
        state["data"] = "second"
        graph.invalidate("data")

        click(graph, state)

        assert graph.value("snapshot") == "SECOND#2"
        assert seen == ["FIRST", "SECOND"]
        assert not graph.node("snapshot").data_stale

    def test_trigger_without_data_change_recomputes(self):
        graph, state, seen = make_event_graph()
        graph.value("snapshot")

        click(graph, state)

        assert graph.value("snapshot") == "FIRST#2"

    def test_several_clicks_before_pull_recompute_once(self):
        graph, state, seen = make_event_graph()
        graph.value("snapshot")

        for _ in range(3):
            click(graph, state)
        graph.value("snapshot")
        graph.value("snapshot")

        assert len(seen) == 2
        assert graph.compute_count("snapshot") == 2

    def test_trigger_invalidation_reaches_downstream(self):
        graph, state, _ = make_event_graph()
        assert graph.value("shown") == "<FIRST#1>"

        assert click(graph, state) == ["snapshot", "shown"]
        assert graph.value("shown") == "<FIRST#2>"

    def test_data_change_does_not_reach_past_event_node(self):
        graph, state, _ = make_event_graph()
        graph.value("shown")

        state["data"] = "second"
        graph.invalidate("data")

        assert not graph.is_dirty("shown")

    def test_invalidation_without_counter_change_keeps_value(self):
        """Dirty but same counter: the cached value is still current."""
        graph, _, seen = make_event_graph()
        graph.value("snapshot")

        graph.invalidate("clicks")
        graph.invalidate("snapshot")

        assert graph.value("snapshot") == "FIRST#1"
        assert len(seen) == 1
        assert not graph.is_dirty("snapshot")

    def test_data_nodes_are_pulled_only_when_triggered(self):
        graph, state, _ = make_event_graph()
        graph.value("snapshot")
        state["data"] = "second"
        graph.invalidate("data")

        graph.value("snapshot")
        assert graph.is_dirty("upper")

        click(graph, state)
        graph.value("snapshot")
        assert not graph.is_dirty("upper")


@pytest.mark.unit
@pytest.mark.graph
class TestEventNodeErrors:
    """Errors raised while an event node recomputes."""

    def make_graph(self):
        state = {"clicks": 0, "items": []}
        graph = DependencyGraph()
        graph.input("clicks", lambda: state["clicks"])
        graph.input("items", lambda: state["items"])
        graph.event("first", lambda items: items[0], trigger="clicks", deps=["items"])
        graph.seal()
        return graph, state

    def test_error_is_cached_for_the_trigger_value(self):
        graph, state = self.make_graph()

        with pytest.raises(IndexError):
            graph.value("first")

        state["items"] = ["a"]
        graph.invalidate("items")
        with pytest.raises(IndexError):
            graph.value("first")
        assert graph.compute_count("first") == 1

    def test_next_trigger_recovers(self):
        graph, state = self.make_graph()
        with pytest.raises(IndexError):
            graph.value("first")

        state["items"] = ["a"]
        graph.invalidate("items")
        state["clicks"] += 1
        graph.invalidate("clicks")

        assert graph.value("first") == "a"

    def test_last_value_kept_after_failure(self):
        graph, state = self.make_graph()
        state["items"] = ["a"]
        assert graph.value("first") == "a"

        state["items"] = []
        graph.invalidate("items")
        state["clicks"] += 1
        graph.invalidate("clicks")

        with pytest.raises(IndexError):
            graph.value("first")
        assert graph.last_value("first") == "a"
