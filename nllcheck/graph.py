# nllcheck/graph.py
"""
nllcheck.graph
==============

Per-function control-flow graph and type oracle.

A :class:`FuncGraph` is a directed graph whose nodes are *basic blocks*
(ordered lists of :class:`~nllcheck.ir.Action`) identified by a dense
integer :data:`~nllcheck.ir.BlockIndex` and by a unique name.  The graph
also owns the function's variable declarations and the struct table, so it
can answer the two type queries the borrow checker needs:

``path_ty(path)``
    The type of the storage a path denotes.
``supporting_prefixes(path)``
    The prefixes of a path that must remain valid for the path itself to
    remain valid.

Public API
----------
    BasicBlock      - a single block: name, actions, successor names
    FuncGraph       - the graph for one function

Typical usage::

    from nllcheck.graph import BasicBlock, FuncGraph
    from nllcheck.ir import Action, Assign, Struct, Variable, make_path

    g = FuncGraph(
        blocks=[
            BasicBlock("START", [Action(Assign(make_path("a"), make_path("b")))],
                       successors=["EXIT"]),
            BasicBlock("EXIT"),
        ],
        decls={Variable("a"): Struct("Foo"), Variable("b"): Struct("Foo")},
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from nllcheck.errors import GraphError, InvariantViolation
from nllcheck.ir import (
    Action,
    BlockIndex,
    BorrowKind,
    Bound,
    Extension,
    Path,
    Ref,
    Struct,
    StructDecl,
    Ty,
    Unit,
    VarPath,
    Variable,
)

_log = logging.getLogger(__name__)

START = "START"
EXIT = "EXIT"


# ---------------------------------------------------------------------------
# BasicBlock
# ---------------------------------------------------------------------------

@dataclass
class BasicBlock:
    """A basic block.

    Attributes
    ----------
    name : str
        Unique block name.  ``"START"`` and ``"EXIT"`` are conventional
        names for the entry and the distinguished exit block.
    actions : list[Action]
        Ordered actions executed by the block.
    successors : list[str]
        Names of the successor blocks, in edge order.
    """

    name: str
    actions: List[Action] = field(default_factory=list)
    successors: List[str] = field(default_factory=list)

    def __repr__(self) -> str:
        return (
            f"BasicBlock({self.name!r}, nactions={len(self.actions)}, "
            f"successors={self.successors!r})"
        )


# ---------------------------------------------------------------------------
# FuncGraph
# ---------------------------------------------------------------------------

class FuncGraph:
    """Control-flow graph of a single function.

    Parameters
    ----------
    blocks : sequence of BasicBlock
        All blocks.  Block indices follow this order.
    decls : mapping Variable -> Ty
        Declared variables and their types, in declaration order.
    structs : iterable of StructDecl, optional
        Struct layouts referenced by the declared types.
    start : str, optional
        Name of the start block.  Defaults to ``"START"`` when such a block
        exists, otherwise the first block.

    Raises
    ------
    GraphError
        If there are no blocks, a block name is duplicated, a successor names
        an unknown block, or *start* names an unknown block.
    """

    def __init__(
        self,
        blocks: Sequence[BasicBlock],
        decls: Optional[Mapping[Variable, Ty]] = None,
        structs: Optional[Iterable[StructDecl]] = None,
        start: Optional[str] = None,
    ) -> None:
        if not blocks:
            raise GraphError("a function graph needs at least one block")
        self._blocks: List[BasicBlock] = list(blocks)
        self._index: Dict[str, BlockIndex] = {}
        for idx, bb in enumerate(self._blocks):
            if bb.name in self._index:
                raise GraphError(f"duplicate block name {bb.name!r}")
            self._index[bb.name] = idx

        self._succs: List[List[BlockIndex]] = []
        self._preds: List[List[BlockIndex]] = [[] for _ in self._blocks]
        for idx, bb in enumerate(self._blocks):
            succs: List[BlockIndex] = []
            for name in bb.successors:
                if name not in self._index:
                    raise GraphError(
                        f"block {bb.name!r} jumps to unknown block {name!r}"
                    )
                s = self._index[name]
                succs.append(s)
                self._preds[s].append(idx)
            self._succs.append(succs)

        if start is None:
            start = START if START in self._index else self._blocks[0].name
        if start not in self._index:
            raise GraphError(f"start block {start!r} does not exist")
        self._start: BlockIndex = self._index[start]

        self._decls: Dict[Variable, Ty] = dict(decls or {})
        self._structs: Dict[str, StructDecl] = {s.name: s for s in (structs or ())}
        _log.debug(
            "built graph with %d blocks, %d decls, %d structs",
            len(self._blocks), len(self._decls), len(self._structs),
        )

    # ----- graph queries ----------------------------------------------------

    def start_node(self) -> BlockIndex:
        return self._start

    def num_nodes(self) -> int:
        return len(self._blocks)

    def nodes(self) -> range:
        return range(len(self._blocks))

    def successors(self, block: BlockIndex) -> List[BlockIndex]:
        return self._succs[block]

    def predecessors(self, block: BlockIndex) -> List[BlockIndex]:
        return self._preds[block]

    def block_data(self, block: BlockIndex) -> BasicBlock:
        return self._blocks[block]

    def block_name(self, block: BlockIndex) -> str:
        return self._blocks[block].name

    def block_index_str(self, name: str) -> BlockIndex:
        """Return the index of the block called *name*.

        Raises
        ------
        GraphError
            If no such block exists.
        """
        try:
            return self._index[name]
        except KeyError:
            raise GraphError(f"no block named {name!r}") from None

    def blocks_named(self, name: str) -> List[BlockIndex]:
        return [i for i, bb in enumerate(self._blocks) if bb.name == name]

    # ----- declarations -----------------------------------------------------

    def decls(self) -> List[Variable]:
        """Declared variables, in declaration order."""
        return list(self._decls)

    def decl_ty(self, var: Variable) -> Ty:
        try:
            return self._decls[var]
        except KeyError:
            raise InvariantViolation(f"variable {var} has no declaration") from None

    def struct_decl(self, name: str) -> StructDecl:
        try:
            return self._structs[name]
        except KeyError:
            raise InvariantViolation(f"struct {name} is not declared") from None

    # ----- type oracle ------------------------------------------------------

    def path_ty(self, path: Path) -> Ty:
        """Return the type of the storage denoted by *path*.

        Raises
        ------
        InvariantViolation
            If *path* extends a ``Unit`` or ``Bound`` type, dereferences a
            non-reference, or names an undeclared field.
        """
        if isinstance(path, VarPath):
            return self.decl_ty(path.var)
        assert isinstance(path, Extension)
        base_ty = self.path_ty(path.base)
        if isinstance(base_ty, Ref):
            if not path.field.is_star:
                raise InvariantViolation(
                    f"field {path.field} of reference-typed path {path.base}"
                )
            return base_ty.referent
        if isinstance(base_ty, Struct):
            if path.field.is_star:
                raise InvariantViolation(f"dereference of struct-typed path {path.base}")
            fty = self.struct_decl(base_ty.name).field_ty(path.field)
            if fty is None:
                raise InvariantViolation(
                    f"struct {base_ty.name} has no field {path.field}"
                )
            return fty
        if isinstance(base_ty, Unit):
            raise InvariantViolation(f"unit type of {path.base} has no fields")
        if isinstance(base_ty, Bound):
            raise InvariantViolation(f"unexpected bound type at {path.base}")
        raise InvariantViolation(f"unknown type {base_ty!r}")

    def supporting_prefixes(self, path: Path) -> Set[Path]:
        """Return the supporting prefixes of *path*.

        The walk goes from *path* toward its root variable.  Struct fields
        and dereferences of ``&mut`` references are stripped and the walk
        continues; a dereference of a shared reference ends the walk (the
        reference itself is not included), since the data behind ``&T``
        stays valid whatever happens to the variable holding it.
        """
        result: Set[Path] = set()
        p: Path = path
        while True:
            result.add(p)
            if isinstance(p, VarPath):
                return result
            assert isinstance(p, Extension)
            if p.field.is_star:
                base_ty = self.path_ty(p.base)
                if isinstance(base_ty, Ref) and base_ty.kind is BorrowKind.SHARED:
                    return result
            p = p.base

    # ----- serialisation helpers --------------------------------------------

    def to_dot(self, title: Optional[str] = None) -> str:
        """Return a Graphviz DOT representation of this graph."""
        lines = ["digraph CFG {"]
        if title:
            lines.append(f'  label="{title}";')
        lines.append("  node [shape=box, fontname=monospace, fontsize=10];")
        for idx, bb in enumerate(self._blocks):
            body = "\\l".join(str(a).replace('"', '\\"') for a in bb.actions)
            color = ""
            if idx == self._start:
                color = ', style=filled, fillcolor="#ccffcc"'
            elif bb.name == EXIT:
                color = ', style=filled, fillcolor="#ffcccc"'
            lines.append(f'  {bb.name} [label="{bb.name}\\n{body}"{color}];')
        for idx, bb in enumerate(self._blocks):
            for s in self._succs[idx]:
                lines.append(f"  {bb.name} -> {self._blocks[s].name};")
        lines.append("}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"FuncGraph(blocks={len(self._blocks)}, "
            f"start={self.block_name(self._start)!r}, decls={len(self._decls)})"
        )
