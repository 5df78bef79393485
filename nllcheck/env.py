# nllcheck/env.py
"""
Analysis environment for one function.

An :class:`Environment` is built once per function and caches every
structural analysis the downstream passes need: reverse post-order, the
dominator tree, the postdominator tree (dominators of the transposed graph
rooted at the block named ``"EXIT"``), the loop tree and reachability.
Nothing in it changes after construction.

Usage example
-------------
::

    env = Environment(graph)
    env.interval_head(block)          # enclosing loop header, or START
    env.mutual_interval([b1, b2])     # loop header of their common dominator
    print(env.format_dominators())
"""

from __future__ import annotations

import logging
import sys
from typing import Iterable, List, Optional, TextIO

from nllcheck.errors import GraphError
from nllcheck.graph import EXIT, FuncGraph
from nllcheck.graph_algorithms import (
    Dominators,
    LoopTree,
    Reachability,
    TransposedGraph,
    dominators,
    dominators_given_rpo,
    loop_tree_given,
    reachable_given_rpo,
    reverse_post_order,
)
from nllcheck.ir import BlockIndex, Path, Point, Ty

_log = logging.getLogger(__name__)


class Environment:
    """Immutable cache of structural analyses over a :class:`FuncGraph`.

    Attributes
    ----------
    graph : FuncGraph
    reverse_post_order : list[BlockIndex]
        Blocks reachable from the start block, in reverse post-order.
    dominators : Dominators
        Forward dominator tree.
    postdominators : Dominators
        Dominator tree of the transposed graph rooted at ``EXIT``.
    loop_tree : LoopTree
    reachable : Reachability

    Raises
    ------
    GraphError
        If the graph does not contain exactly one block named ``"EXIT"``.
    """

    def __init__(self, graph: FuncGraph) -> None:
        self.graph = graph
        exits = graph.blocks_named(EXIT)
        if len(exits) != 1:
            raise GraphError(
                f"expected exactly one block named {EXIT!r}, found {len(exits)}"
            )

        rpo = reverse_post_order(graph, graph.start_node())
        self.reverse_post_order: List[BlockIndex] = rpo
        self.dominators: Dominators = dominators_given_rpo(graph, rpo)
        self.reachable: Reachability = reachable_given_rpo(graph, rpo)
        self.loop_tree: LoopTree = loop_tree_given(graph, self.dominators)

        transpose = TransposedGraph.with_start(graph, graph.block_index_str(EXIT))
        self.postdominators: Dominators = dominators(transpose)

        _log.debug(
            "environment ready: %d/%d blocks reachable, %d loops",
            len(rpo), graph.num_nodes(), len(self.loop_tree.loops()),
        )

    # ---- dominator tree dumps ----------------------------------------

    def format_dominators(self) -> str:
        return "\n".join(self._tree_lines(self.dominators))

    def format_postdominators(self) -> str:
        return "\n".join(self._tree_lines(self.postdominators))

    def dump_dominators(self, stream: Optional[TextIO] = None) -> None:
        print(self.format_dominators(), file=stream or sys.stdout)

    def dump_postdominators(self, stream: Optional[TextIO] = None) -> None:
        print(self.format_postdominators(), file=stream or sys.stdout)

    def _tree_lines(self, tree: Dominators) -> List[str]:
        lines: List[str] = []

        def _walk(node: BlockIndex, indent: int) -> None:
            lines.append(" " * indent + f"- {self.graph.block_name(node)}")
            for child in tree.children(node):
                _walk(child, indent + 2)

        _walk(tree.root(), 0)
        return lines

    # ---- intervals ---------------------------------------------------

    def interval_head(self, block: BlockIndex) -> BlockIndex:
        """Header of the loop enclosing *block*, or the start block."""
        head = self.loop_tree.loop_head_of_node(block)
        return head if head is not None else self.graph.start_node()

    def mutual_interval(self, blocks: Iterable[BlockIndex]) -> Optional[BlockIndex]:
        """Interval head of the nearest common dominator of *blocks*.

        Returns ``None`` when *blocks* is empty.

        Raises
        ------
        GraphError
            If a block is unreachable from the start block.
        """
        blocks = list(blocks)
        for block in blocks:
            if not self.dominators.is_reachable(block):
                raise GraphError(
                    f"block {self.graph.block_name(block)!r} is unreachable from "
                    f"{self.graph.block_name(self.graph.start_node())!r}"
                )
        dom = self.dominators.mutual_dominator(blocks)
        if dom is None:
            return None
        return self.interval_head(dom)

    # ---- points ------------------------------------------------------

    def start_point(self, block: BlockIndex) -> Point:
        return Point(block, 0, self.graph.block_name(block))

    def end_action(self, block: BlockIndex) -> int:
        return len(self.graph.block_data(block).actions) + 1

    def end_point(self, block: BlockIndex) -> Point:
        return Point(block, self.end_action(block), self.graph.block_name(block))

    def point(self, block: BlockIndex, action: int) -> Point:
        return Point(block, action, self.graph.block_name(block))

    # ---- type oracle passthrough -------------------------------------

    def path_ty(self, path: Path) -> Ty:
        return self.graph.path_ty(path)

    def supporting_prefixes(self, path: Path):
        return self.graph.supporting_prefixes(path)
