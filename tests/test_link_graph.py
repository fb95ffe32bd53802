"""Tests for building the dependency and bidirectional link maps."""

from livecompute._graph import build_link_graph


class TestBuildLinkGraph:
    def test_independent_nodes_are_not_linked(self) -> None:
        graph = build_link_graph({"total": frozenset({"harga", "qty"}), "tax": frozenset({"rate"})})
        assert graph.peers("total") == frozenset()
        assert graph.peers("tax") == frozenset()
        assert graph.order == ("total", "tax")

    def test_shared_input_links_both_ways(self) -> None:
        graph = build_link_graph({"a": frozenset({"x"}), "b": frozenset({"x", "y"})})
        assert graph.are_linked("a", "b")
        assert graph.are_linked("b", "a")
        # Sharing an input is not an ordering constraint
        assert not graph.graph.has_cycle()
        assert graph.graph.successors("a") == frozenset()

    def test_reading_another_node_links_and_orders(self) -> None:
        graph = build_link_graph({"grand": frozenset({"subtotal", "fee"}), "subtotal": frozenset({"qty"})})
        assert graph.are_linked("grand", "subtotal")
        assert graph.graph.successors("subtotal") == frozenset({"grand"})
        assert graph.order == ("subtotal", "grand")

    def test_wildcard_dependency_overlaps_concrete(self) -> None:
        graph = build_link_graph(
            {"total": frozenset({"rows_?_amount"}), "rows_1_amount": frozenset({"rows_1_qty", "rows_1_price"})},
        )
        assert graph.are_linked("total", "rows_1_amount")
        assert graph.order == ("rows_1_amount", "total")

    def test_mutual_references_form_a_cycle(self) -> None:
        graph = build_link_graph({"a": frozenset({"b"}), "b": frozenset({"a"})})
        assert graph.peers("a") == frozenset({"b"})
        assert graph.graph.has_cycle()
        assert graph.order == ("a", "b")

    def test_links_are_symmetric(self) -> None:
        nodes = {
            "a": frozenset({"x"}),
            "b": frozenset({"a"}),
            "c": frozenset({"rows_?_v"}),
            "d": frozenset({"rows_2_v", "x"}),
        }
        graph = build_link_graph(nodes)
        for node_id, peers in graph.bidirectional_map.items():
            assert node_id not in peers
            for peer in peers:
                assert node_id in graph.peers(peer)

    def test_dependents_of_variable(self) -> None:
        graph = build_link_graph(
            {
                "total": frozenset({"rows_?_amount"}),
                "first": frozenset({"rows_0_amount"}),
                "other": frozenset({"fee"}),
            },
        )
        assert graph.dependents_of("rows_0_amount") == ["total", "first"]
        assert graph.dependents_of("rows_7_amount") == ["total"]
        assert graph.dependents_of("unknown") == []

    def test_empty(self) -> None:
        graph = build_link_graph({})
        assert graph.order == ()
        assert graph.dependency_map == {}
