# nllcheck/graph_algorithms.py
"""
Structural graph analyses used by :class:`nllcheck.env.Environment`.

These analyses reason about the *shape* of control flow (traversal order,
dominance, loops, reachability) rather than about the actions inside
blocks.  They program against a small structural protocol so they work on
both :class:`~nllcheck.graph.FuncGraph` and the :class:`TransposedGraph`
view used for postdominators.

A "Graph" must expose:
  .start_node()      : node       — traversal root
  .nodes()           : iterable   — all nodes
  .successors(n)     : list[node]
  .predecessors(n)   : list[node]

Principal analyses
------------------
- reverse_post_order
- Dominators (+ dominators / dominators_given_rpo)
- TransposedGraph
- LoopTree (+ loop_tree_given)
- Reachability (+ reachable_given_rpo)

References
----------
[1] Cooper, Harvey, Kennedy – "A Simple, Fast Dominance Algorithm", 2001.
[2] Aho, Lam, Sethi, Ullman – "Compilers: Principles, Techniques, &
    Tools", 2e, §9.6 (natural loops), §9.7 (dominators).
"""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import (
    Any, Deque, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple,
)

from nllcheck.errors import GraphError

Graph = Any
Node = Any


# ===================================================================
#  1. Reverse post-order
# ===================================================================

def reverse_post_order(graph: Graph, start: Node) -> List[Node]:
    """Return the nodes reachable from *start* in reverse post-order.

    Successors are visited in edge order via an iterative DFS, so the result
    is deterministic for a given graph.
    """
    finish: List[Node] = []
    visited: Set[Node] = {start}
    stack: List[Tuple[Node, int]] = [(start, 0)]
    while stack:
        node, idx = stack[-1]
        succs = graph.successors(node)
        if idx < len(succs):
            stack[-1] = (node, idx + 1)
            child = succs[idx]
            if child not in visited:
                visited.add(child)
                stack.append((child, 0))
        else:
            stack.pop()
            finish.append(node)
    finish.reverse()
    return finish


# ===================================================================
#  2. Dominators
# ===================================================================

class Dominators:
    """
    Immediate-dominator table computed with the Cooper–Harvey–Kennedy
    iterative algorithm [1].

    Attributes after .compute():
        idom     : Dict[node, node]        — immediate dominator
        children : Dict[node, List[node]]  — dominator-tree children

    Root convention
    ---------------
    The root's immediate dominator is itself (``idom[root] == root``).
    Nodes unreachable from the root have no entry in ``idom``.
    """

    def __init__(self, graph: Graph, rpo: List[Node]):
        self.graph = graph
        self._rpo = list(rpo)
        self._rpo_num: Dict[Node, int] = {n: i for i, n in enumerate(self._rpo)}
        self.idom: Dict[Node, Node] = {}
        self._children: Dict[Node, List[Node]] = defaultdict(list)
        self._computed = False

    # ---- public API --------------------------------------------------

    def compute(self) -> "Dominators":
        if self._computed:
            return self
        self._compute_idom()
        self._build_tree()
        self._computed = True
        return self

    def root(self) -> Node:
        return self._rpo[0]

    def is_reachable(self, node: Node) -> bool:
        return node in self.idom

    def immediate_dominator(self, node: Node) -> Optional[Node]:
        """Return the immediate dominator of *node*, ``None`` for the root."""
        parent = self.idom.get(node)
        if parent is None or parent == node:
            return None
        return parent

    def children(self, node: Node) -> List[Node]:
        """Children of *node* in the dominator tree, in RPO."""
        return self._children.get(node, [])

    def dominators_of(self, node: Node) -> List[Node]:
        """Return *node* and all of its dominators, innermost first."""
        result: List[Node] = []
        cur: Optional[Node] = node if node in self.idom else None
        while cur is not None:
            result.append(cur)
            cur = self.immediate_dominator(cur)
        return result

    def dominates(self, a: Node, b: Node) -> bool:
        """Return True if *a* dominates *b*.  A node dominates itself."""
        return a in self.dominators_of(b)

    def strictly_dominates(self, a: Node, b: Node) -> bool:
        return a != b and self.dominates(a, b)

    def common_dominator(self, a: Node, b: Node) -> Node:
        """Nearest common ancestor of *a* and *b* in the dominator tree.

        Raises
        ------
        GraphError
            If either node is unreachable from the root.
        """
        self._require_reachable(a)
        self._require_reachable(b)
        return self._intersect(a, b)

    def mutual_dominator(self, nodes: Iterable[Node]) -> Optional[Node]:
        """Nearest common dominator of all *nodes*, ``None`` if empty.

        Raises
        ------
        GraphError
            If any node is unreachable from the root.
        """
        result: Optional[Node] = None
        for n in nodes:
            self._require_reachable(n)
            result = n if result is None else self._intersect(result, n)
        return result

    # ---- internals ---------------------------------------------------

    def _require_reachable(self, node: Node) -> None:
        if node not in self.idom:
            raise GraphError(f"node {node!r} is unreachable from the root {self.root()!r}")

    def _intersect(self, b1: Node, b2: Node) -> Node:
        """Walk two fingers up the idom tree until they meet."""
        finger1, finger2 = b1, b2
        while finger1 != finger2:
            while self._rpo_num[finger1] > self._rpo_num[finger2]:
                finger1 = self.idom[finger1]
            while self._rpo_num[finger2] > self._rpo_num[finger1]:
                finger2 = self.idom[finger2]
        return finger1

    def _compute_idom(self) -> None:
        if not self._rpo:
            return
        root = self._rpo[0]
        self.idom = {root: root}

        changed = True
        while changed:
            changed = False
            for node in self._rpo[1:]:
                preds = [p for p in self.graph.predecessors(node) if p in self.idom]
                if not preds:
                    continue
                new_idom = preds[0]
                for p in preds[1:]:
                    new_idom = self._intersect(new_idom, p)
                if self.idom.get(node) != new_idom:
                    self.idom[node] = new_idom
                    changed = True

    def _build_tree(self) -> None:
        self._children = defaultdict(list)
        for node in self._rpo:
            parent = self.immediate_dominator(node)
            if parent is not None:
                self._children[parent].append(node)


def dominators_given_rpo(graph: Graph, rpo: List[Node]) -> Dominators:
    return Dominators(graph, rpo).compute()


def dominators(graph: Graph) -> Dominators:
    return dominators_given_rpo(graph, reverse_post_order(graph, graph.start_node()))


# ===================================================================
#  3. Transposed graph
# ===================================================================

class TransposedGraph:
    """Lightweight reversed view of a graph, rooted at a chosen node.

    Successors and predecessors are swapped; nodes are shared with the
    underlying graph.  Used to compute postdominators by running the
    dominator algorithm on the reversed edges.
    """

    def __init__(self, base: Graph, start: Node):
        self._base = base
        self._start = start

    @classmethod
    def with_start(cls, base: Graph, start: Node) -> "TransposedGraph":
        return cls(base, start)

    def start_node(self) -> Node:
        return self._start

    def nodes(self) -> Iterable[Node]:
        return self._base.nodes()

    def successors(self, node: Node) -> List[Node]:
        return self._base.predecessors(node)

    def predecessors(self, node: Node) -> List[Node]:
        return self._base.successors(node)


# ===================================================================
#  4. Loop tree
# ===================================================================

@dataclass
class NaturalLoop:
    """
    A natural loop in the CFG.

    Attributes
    ----------
    header     : the loop header (dominates all body nodes)
    body       : frozenset of nodes constituting the loop body
    back_edges : list of (tail, header) back-edge pairs
    depth      : nesting depth (1 = outermost)
    parent     : header of the enclosing loop, or None
    children   : headers of immediately nested loops
    """
    header: Node
    body: FrozenSet[Node]
    back_edges: List[Tuple[Node, Node]]
    depth: int = 1
    parent: Optional[Node] = None
    children: List[Node] = field(default_factory=list)


class LoopTree:
    """
    Nesting forest of the natural loops of a graph.

    Algorithm (Aho et al. §9.6):
    1. Identify back-edges (edges n→h where h dominates n).
    2. For each header, compute the loop body by reverse reachability from
       the back-edge tails to the header.
    3. Nest loops by body inclusion.
    """

    def __init__(self, graph: Graph, doms: Dominators):
        self.graph = graph
        self.doms = doms
        self._loops: Dict[Node, NaturalLoop] = {}
        self._innermost: Dict[Node, Node] = {}
        self._detected = False

    def detect(self) -> "LoopTree":
        if self._detected:
            return self

        # Step 1: back-edges, grouped by header
        header_to_tails: Dict[Node, List[Node]] = defaultdict(list)
        for node in self.graph.nodes():
            if not self.doms.is_reachable(node):
                continue
            for succ in self.graph.successors(node):
                if self.doms.dominates(succ, node):
                    header_to_tails[succ].append(node)

        # Step 2: loop bodies
        for header, tails in header_to_tails.items():
            body: Set[Node] = {header}
            worklist: Deque[Node] = deque()
            for tail in tails:
                if tail not in body:
                    body.add(tail)
                    worklist.append(tail)
            while worklist:
                n = worklist.popleft()
                for pred in self.graph.predecessors(n):
                    if pred not in body and self.doms.is_reachable(pred):
                        body.add(pred)
                        worklist.append(pred)
            self._loops[header] = NaturalLoop(
                header=header,
                body=frozenset(body),
                back_edges=[(t, header) for t in tails],
            )

        # Step 3: nesting: A nested in B if A.body ⊂ B.body
        by_size = sorted(self._loops.values(), key=lambda l: len(l.body))
        for i, inner in enumerate(by_size):
            for outer in by_size[i + 1:]:
                if inner.body < outer.body:
                    inner.parent = outer.header
                    outer.children.append(inner.header)
                    break
        for loop in self._loops.values():
            depth, p = 1, loop.parent
            while p is not None:
                depth += 1
                p = self._loops[p].parent
            loop.depth = depth

        # Innermost loop per node: the smallest body wins
        for loop in reversed(by_size):
            for n in loop.body:
                self._innermost[n] = loop.header

        self._detected = True
        return self

    def loops(self) -> List[NaturalLoop]:
        """All loops, outermost first."""
        return sorted(self._loops.values(), key=lambda l: l.depth)

    def loop_head_of_node(self, node: Node) -> Optional[Node]:
        """Header of the innermost loop containing *node*, or ``None``."""
        return self._innermost.get(node)

    def loop(self, header: Node) -> NaturalLoop:
        return self._loops[header]

    def nesting_depth(self, node: Node) -> int:
        head = self.loop_head_of_node(node)
        return self._loops[head].depth if head is not None else 0


def loop_tree_given(graph: Graph, doms: Dominators) -> LoopTree:
    return LoopTree(graph, doms).detect()


# ===================================================================
#  5. Reachability
# ===================================================================

class Reachability:
    """Transitive reachability between the nodes reachable from the root.

    Every node reaches itself.
    """

    def __init__(self, graph: Graph, rpo: List[Node]):
        self._reach: Dict[Node, FrozenSet[Node]] = {}
        sets: Dict[Node, Set[Node]] = {n: {n} for n in rpo}
        changed = True
        # post-order converges in one pass for acyclic graphs
        while changed:
            changed = False
            for n in reversed(rpo):
                before = len(sets[n])
                for s in graph.successors(n):
                    sets[n] |= sets[s]
                if len(sets[n]) != before:
                    changed = True
        self._reach = {n: frozenset(s) for n, s in sets.items()}

    def can_reach(self, source: Node, target: Node) -> bool:
        return target in self._reach.get(source, frozenset())

    def reachable_from(self, source: Node) -> FrozenSet[Node]:
        return self._reach.get(source, frozenset())


def reachable_given_rpo(graph: Graph, rpo: List[Node]) -> Reachability:
    return Reachability(graph, rpo)
