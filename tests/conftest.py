# tests/conftest.py
"""
Shared builders for the nllcheck test-suite.

Most tests work on the same small type universe::

    struct Foo { b: Bar }
    struct Bar { c: Baz }
    struct Baz { }

    a: Foo      x: Foo
    r: &'r0 mut Bar
    s: &'r1 Bar
    u: ()
    t: %0

``make_env`` wraps a list of actions into a ``START -> EXIT`` function over
those declarations; ``make_graph`` takes explicit blocks.
"""

from pathlib import Path as FsPath

import pytest

from nllcheck.env import Environment
from nllcheck.graph import BasicBlock, FuncGraph
from nllcheck.ir import (
    Action,
    BorrowKind,
    Bound,
    FieldName,
    Point,
    Ref,
    Struct,
    StructDecl,
    Unit,
    Use,
    Variable,
    make_path,
)
from nllcheck.loans import Loan

DATA_DIR = FsPath(__file__).parent / "data"

STRUCTS = [
    StructDecl("Foo", ((FieldName("b"), Struct("Bar")),)),
    StructDecl("Bar", ((FieldName("c"), Struct("Baz")),)),
    StructDecl("Baz", ()),
]

DECLS = {
    Variable("a"): Struct("Foo"),
    Variable("x"): Struct("Foo"),
    Variable("r"): Ref("r0", BorrowKind.MUT, Struct("Bar")),
    Variable("s"): Ref("r1", BorrowKind.SHARED, Struct("Bar")),
    Variable("u"): Unit(),
    Variable("t"): Bound(0),
}


def P(text):
    """Parse ``"a.b.c"`` / ``"r.*"`` into a path."""
    head, *rest = text.split(".")
    return make_path(head, *rest)


def make_graph(blocks, decls=None, structs=None, start=None):
    return FuncGraph(
        blocks,
        DECLS if decls is None else decls,
        STRUCTS if structs is None else structs,
        start=start,
    )


def make_env(actions=(), decls=None):
    """Environment for a straight-line ``START -> EXIT`` function."""
    graph = make_graph(
        [
            BasicBlock("START", [a if isinstance(a, Action) else Action(a) for a in actions], ["EXIT"]),
            BasicBlock("EXIT"),
        ],
        decls=decls,
    )
    return Environment(graph)


def loan(path, kind=BorrowKind.SHARED, block=0, action=0, name="START"):
    return Loan(P(path), kind, Point(block, action, name))


def loop_graph(decls=None):
    """``START -> B1 -> B2 -> B1``, ``B2 -> EXIT``; ``x`` is used in B2."""
    return make_graph(
        [
            BasicBlock("START", [], ["B1"]),
            BasicBlock("B1", [], ["B2"]),
            BasicBlock("B2", [Action(Use(P("x")))], ["B1", "EXIT"]),
            BasicBlock("EXIT"),
        ],
        decls=decls,
    )


def nested_loop_graph():
    """Loop ``H2 <-> B`` nested inside loop ``H1 -> ... -> L1 -> H1``.

    ``START -> H1 -> H2 -> B``, ``B -> H2 | L1``, ``L1 -> H1 | EXIT``.
    """
    return make_graph(
        [
            BasicBlock("START", [], ["H1"]),
            BasicBlock("H1", [], ["H2"]),
            BasicBlock("H2", [], ["B"]),
            BasicBlock("B", [], ["H2", "L1"]),
            BasicBlock("L1", [], ["H1", "EXIT"]),
            BasicBlock("EXIT"),
        ]
    )


def diamond_graph():
    """``START -> {L, R} -> JOIN -> EXIT``."""
    return make_graph(
        [
            BasicBlock("START", [], ["L", "R"]),
            BasicBlock("L", [], ["JOIN"]),
            BasicBlock("R", [], ["JOIN"]),
            BasicBlock("JOIN", [], ["EXIT"]),
            BasicBlock("EXIT"),
        ]
    )


@pytest.fixture
def env():
    return make_env()


@pytest.fixture
def data_dir():
    return DATA_DIR
