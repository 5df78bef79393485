# tests/test_env.py
"""
Tests for the structural analyses and the Environment that caches them.
"""

import io

import pytest

from nllcheck.env import Environment
from nllcheck.errors import GraphError
from nllcheck.graph import BasicBlock
from nllcheck.graph_algorithms import (
    TransposedGraph,
    dominators,
    reverse_post_order,
)
from nllcheck.ir import Point
from tests.conftest import diamond_graph, loop_graph, make_graph, nested_loop_graph


def _names(graph, nodes):
    return [graph.block_name(n) for n in nodes]


class TestReversePostOrder:

    def test_diamond(self):
        g = diamond_graph()
        assert _names(g, reverse_post_order(g, g.start_node())) == [
            "START", "R", "L", "JOIN", "EXIT",
        ]

    def test_unreachable_blocks_excluded(self):
        g = make_graph([
            BasicBlock("START", [], ["EXIT"]),
            BasicBlock("DEAD", [], ["EXIT"]),
            BasicBlock("EXIT"),
        ])
        assert _names(g, reverse_post_order(g, g.start_node())) == ["START", "EXIT"]


class TestDominators:

    def test_diamond_idoms(self):
        g = diamond_graph()
        doms = dominators(g)
        idx = g.block_index_str
        assert doms.immediate_dominator(idx("START")) is None
        assert doms.immediate_dominator(idx("L")) == idx("START")
        assert doms.immediate_dominator(idx("JOIN")) == idx("START")
        assert doms.immediate_dominator(idx("EXIT")) == idx("JOIN")
        assert doms.dominates(idx("START"), idx("EXIT"))
        assert not doms.dominates(idx("L"), idx("JOIN"))
        assert doms.common_dominator(idx("L"), idx("R")) == idx("START")

    def test_postdominators_via_transpose(self):
        g = diamond_graph()
        idx = g.block_index_str
        post = dominators(TransposedGraph.with_start(g, idx("EXIT")))
        assert post.root() == idx("EXIT")
        assert post.immediate_dominator(idx("JOIN")) == idx("EXIT")
        assert post.immediate_dominator(idx("L")) == idx("JOIN")
        assert post.immediate_dominator(idx("START")) == idx("JOIN")

    def test_mutual_dominator(self):
        g = diamond_graph()
        doms = dominators(g)
        idx = g.block_index_str
        assert doms.mutual_dominator([idx("EXIT"), idx("L"), idx("R")]) == idx("START")
        assert doms.mutual_dominator([idx("EXIT")]) == idx("EXIT")
        assert doms.mutual_dominator([]) is None


class TestEnvironment:

    def test_requires_exit_block(self):
        g = make_graph([BasicBlock("START", [], ["END"]), BasicBlock("END")])
        with pytest.raises(GraphError, match="EXIT"):
            Environment(g)

    def test_dump_dominators(self):
        env = Environment(diamond_graph())
        assert env.format_dominators() == "\n".join([
            "- START",
            "  - R",
            "  - L",
            "  - JOIN",
            "    - EXIT",
        ])
        out = io.StringIO()
        env.dump_dominators(out)
        assert out.getvalue() == env.format_dominators() + "\n"

    def test_dump_postdominators(self):
        env = Environment(diamond_graph())
        lines = env.format_postdominators().splitlines()
        assert lines[0] == "- EXIT"
        assert lines[1] == "  - JOIN"
        assert sorted(lines[2:]) == ["    - L", "    - R", "    - START"]

    def test_interval_head(self):
        g = loop_graph()
        env = Environment(g)
        idx = g.block_index_str
        assert env.interval_head(idx("B1")) == idx("B1")
        assert env.interval_head(idx("B2")) == idx("B1")
        assert env.interval_head(idx("START")) == idx("START")
        assert env.interval_head(idx("EXIT")) == idx("START")

    def test_mutual_interval(self):
        g = loop_graph()
        env = Environment(g)
        idx = g.block_index_str
        assert env.mutual_interval([idx("B2"), idx("EXIT")]) == idx("B1")
        assert env.mutual_interval([idx("START"), idx("EXIT")]) == idx("START")
        assert env.mutual_interval([]) is None

    def test_loop_tree(self):
        g = loop_graph()
        env = Environment(g)
        idx = g.block_index_str
        (loop,) = env.loop_tree.loops()
        assert loop.header == idx("B1")
        assert loop.body == frozenset({idx("B1"), idx("B2")})
        assert env.loop_tree.nesting_depth(idx("B2")) == 1
        assert env.loop_tree.nesting_depth(idx("EXIT")) == 0

    def test_reachability(self):
        g = loop_graph()
        env = Environment(g)
        idx = g.block_index_str
        assert env.reachable.can_reach(idx("B2"), idx("B1"))
        assert env.reachable.can_reach(idx("EXIT"), idx("EXIT"))
        assert not env.reachable.can_reach(idx("EXIT"), idx("START"))

    def test_points(self):
        g = loop_graph()
        env = Environment(g)
        b2 = g.block_index_str("B2")
        assert env.start_point(b2) == Point(b2, 0)
        assert env.end_action(b2) == 2
        assert env.end_point(b2) == Point(b2, 2)
        assert str(env.end_point(b2)) == "(B2 @ 2)"

    def test_mutual_interval_rejects_unreachable_block(self):
        g = make_graph([
            BasicBlock("START", [], ["EXIT"]),
            BasicBlock("DEAD", [], ["EXIT"]),
            BasicBlock("EXIT"),
        ])
        env = Environment(g)
        idx = g.block_index_str
        with pytest.raises(GraphError, match="'DEAD' is unreachable"):
            env.mutual_interval([idx("EXIT"), idx("DEAD")])
        with pytest.raises(GraphError):
            env.dominators.mutual_dominator([idx("EXIT"), idx("DEAD")])
        with pytest.raises(GraphError):
            env.dominators.common_dominator(idx("DEAD"), idx("START"))


class TestNestedLoops:

    @pytest.fixture
    def nested(self):
        g = nested_loop_graph()
        return g, Environment(g), g.block_index_str

    def test_nesting(self, nested):
        g, env, idx = nested
        outer, inner = env.loop_tree.loops()
        assert outer.header == idx("H1")
        assert outer.body == frozenset({idx("H1"), idx("H2"), idx("B"), idx("L1")})
        assert outer.parent is None and outer.depth == 1
        assert outer.children == [idx("H2")]
        assert inner.header == idx("H2")
        assert inner.body == frozenset({idx("H2"), idx("B")})
        assert inner.parent == idx("H1") and inner.depth == 2

    def test_nesting_depth(self, nested):
        g, env, idx = nested
        assert env.loop_tree.nesting_depth(idx("B")) == 2
        assert env.loop_tree.nesting_depth(idx("L1")) == 1
        assert env.loop_tree.nesting_depth(idx("START")) == 0

    def test_interval_head_is_innermost(self, nested):
        g, env, idx = nested
        assert env.interval_head(idx("B")) == idx("H2")
        assert env.interval_head(idx("H2")) == idx("H2")
        assert env.interval_head(idx("L1")) == idx("H1")
        assert env.interval_head(idx("H1")) == idx("H1")
        assert env.interval_head(idx("EXIT")) == idx("START")

    def test_mutual_interval(self, nested):
        g, env, idx = nested
        assert env.mutual_interval([idx("B"), idx("L1")]) == idx("H2")
        assert env.mutual_interval([idx("H1"), idx("B")]) == idx("H1")
        assert env.mutual_interval([idx("START"), idx("EXIT")]) == idx("START")
