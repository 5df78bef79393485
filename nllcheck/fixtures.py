# nllcheck/fixtures.py
"""
Fixture documents.

A fixture is a JSON-compatible mapping describing one function (its
structs, declarations and blocks) plus the loan-scope table that a region
engine would have produced for it.  Fixtures drive the command-line front
end and the larger tests.  Paths are written as lists (``["a", "b"]`` is
``a.b``, ``["r", "*"]`` is ``(*r)``); no program syntax is parsed.

Document shape::

    {
      "name": "scenario-a",
      "structs": {"Foo": {"b": "Bar"}, "Bar": {}},
      "decls": {"a": "Foo", "r": {"ref": {"region": "r0", "kind": "mut", "to": "Bar"}}},
      "blocks": [
        {"name": "START",
         "actions": [{"op": "assign", "dest": ["a"], "src": ["b"], "error": true}],
         "successors": ["EXIT"]},
        {"name": "EXIT"}
      ],
      "loans": [
        {"path": ["a", "b"], "kind": "shared", "point": ["START", 0],
         "live": [["START", 1]]}
      ],
      "config": {"report": "last"}
    }

Type descriptors: ``"()"`` is unit, any other string names a struct,
``{"ref": {"region", "kind", "to"}}`` is a reference and ``{"bound": n}``
a type parameter.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path as FsPath
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from nllcheck.config import CheckerConfig
from nllcheck.env import Environment
from nllcheck.errors import FixtureError, GraphError
from nllcheck.graph import BasicBlock, FuncGraph
from nllcheck.ir import (
    Action,
    ActionKind,
    Assign,
    Borrow,
    BorrowKind,
    Bound,
    Constraint,
    Drop,
    FieldName,
    Init,
    Noop,
    Outlives,
    Path,
    Point,
    Ref,
    StorageDead,
    Struct,
    StructDecl,
    Subtype,
    Ty,
    Unit,
    Use,
    Variable,
    make_path,
)
from nllcheck.loans import Loan, LoanTable

_log = logging.getLogger(__name__)


@dataclass
class Fixture:
    """A loaded fixture: the graph, its loan table and checker config."""

    name: str
    graph: FuncGraph
    loans: LoanTable
    config: CheckerConfig = field(default_factory=CheckerConfig)

    def environment(self) -> Environment:
        return Environment(self.graph)


# ---------------------------------------------------------------------------
# Element decoders
# ---------------------------------------------------------------------------

def _decode_ty(raw: Any) -> Ty:
    if isinstance(raw, str):
        return Unit() if raw == "()" else Struct(raw)
    if isinstance(raw, Mapping):
        if "ref" in raw:
            ref = raw["ref"]
            try:
                return Ref(
                    str(ref["region"]),
                    _decode_kind(ref["kind"]),
                    _decode_ty(ref["to"]),
                )
            except KeyError as exc:
                raise FixtureError(f"reference type missing {exc}") from None
        if "bound" in raw:
            try:
                return Bound(int(raw["bound"]))
            except (TypeError, ValueError):
                raise FixtureError(f"bound index must be an integer, got {raw['bound']!r}") from None
    raise FixtureError(f"cannot decode type {raw!r}")


def _decode_kind(raw: Any) -> BorrowKind:
    try:
        return BorrowKind(raw)
    except ValueError:
        raise FixtureError(f"unknown borrow kind {raw!r}") from None


def _decode_path(raw: Any) -> Path:
    if isinstance(raw, str):
        return make_path(raw)
    if isinstance(raw, Sequence) and raw and all(isinstance(p, str) for p in raw):
        return make_path(raw[0], *raw[1:])
    raise FixtureError(f"cannot decode path {raw!r}")


def _operand_vars(kind: ActionKind) -> List[Variable]:
    """Variables named by the operands of *kind*."""
    if isinstance(kind, Init):
        return [kind.dest.root] + [s.root for s in kind.sources]
    if isinstance(kind, (Assign, Borrow)):
        return [kind.dest.root, kind.src.root]
    if isinstance(kind, Constraint) and isinstance(kind.constraint, Subtype):
        return [kind.constraint.sub, kind.constraint.sup]
    if isinstance(kind, (Use, Drop)):
        return [kind.path.root]
    if isinstance(kind, StorageDead):
        return [kind.var]
    return []


def _check_declared(decls: Mapping[Variable, Ty], var: Variable, where: str) -> None:
    if var not in decls:
        raise FixtureError(f"{where} names undeclared variable {var}")


def _require(raw: Mapping[str, Any], key: str) -> Any:
    try:
        return raw[key]
    except KeyError:
        raise FixtureError(f"action {dict(raw)!r} is missing {key!r}") from None


def _decode_action(raw: Mapping[str, Any]) -> Action:
    op = _require(raw, "op")
    kind: ActionKind
    if op == "init":
        kind = Init(
            _decode_path(_require(raw, "dest")),
            tuple(_decode_path(s) for s in raw.get("sources", ())),
        )
    elif op == "assign":
        kind = Assign(_decode_path(_require(raw, "dest")), _decode_path(_require(raw, "src")))
    elif op == "borrow":
        kind = Borrow(
            _decode_path(_require(raw, "dest")),
            str(raw.get("region", "_")),
            _decode_kind(raw.get("kind", "shared")),
            _decode_path(_require(raw, "src")),
        )
    elif op == "outlives":
        kind = Constraint(Outlives(str(_require(raw, "sup")), str(_require(raw, "sub"))))
    elif op == "subtype":
        kind = Constraint(
            Subtype(Variable(_require(raw, "sub")), Variable(_require(raw, "sup")))
        )
    elif op == "use":
        kind = Use(_decode_path(_require(raw, "path")))
    elif op == "drop":
        kind = Drop(_decode_path(_require(raw, "path")))
    elif op == "storage_dead":
        kind = StorageDead(Variable(_require(raw, "var")))
    elif op == "noop":
        kind = Noop()
    else:
        raise FixtureError(f"unknown action op {op!r}")
    return Action(kind, should_have_error=bool(raw.get("error", False)))


def _decode_point(graph: FuncGraph, raw: Any) -> Point:
    if not (isinstance(raw, Sequence) and len(raw) == 2):
        raise FixtureError(f"points are [block, action] pairs, got {raw!r}")
    name, action = raw
    try:
        block = graph.block_index_str(name)
    except GraphError as exc:
        raise FixtureError(str(exc)) from None
    limit = len(graph.block_data(block).actions) + 1
    if not isinstance(action, int) or not 0 <= action <= limit:
        raise FixtureError(f"action index {action!r} out of range for block {name!r}")
    return Point(block, action, name)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def load_fixture(data: Mapping[str, Any], name: Optional[str] = None) -> Fixture:
    """Build a :class:`Fixture` from a decoded document.

    Raises
    ------
    FixtureError
        If the document is malformed.
    GraphError
        If the described graph is malformed.
    """
    structs = [
        StructDecl(
            sname,
            tuple((FieldName(f), _decode_ty(t)) for f, t in (sfields or {}).items()),
        )
        for sname, sfields in data.get("structs", {}).items()
    ]
    decls: Dict[Variable, Ty] = {
        Variable(v): _decode_ty(t) for v, t in data.get("decls", {}).items()
    }
    raw_blocks = data.get("blocks")
    if not raw_blocks:
        raise FixtureError("fixture has no blocks")
    blocks: List[BasicBlock] = []
    for raw in raw_blocks:
        if "name" not in raw:
            raise FixtureError(f"block without a name: {raw!r}")
        blocks.append(
            BasicBlock(
                raw["name"],
                [_decode_action(a) for a in raw.get("actions", ())],
                list(raw.get("successors", ())),
            )
        )
        for action in blocks[-1].actions:
            for var in _operand_vars(action.kind):
                _check_declared(decls, var, f"block {raw['name']!r} action `{action.kind}`")
    graph = FuncGraph(blocks, decls, structs, start=data.get("start"))

    entries = []
    for raw in data.get("loans", ()):
        try:
            loan = Loan(
                _decode_path(raw["path"]),
                _decode_kind(raw.get("kind", "shared")),
                _decode_point(graph, raw["point"]),
            )
            live = [_decode_point(graph, p) for p in raw["live"]]
        except KeyError as exc:
            raise FixtureError(f"loan missing {exc}") from None
        _check_declared(decls, loan.path.root, f"loan of {loan.path}")
        entries.append((loan, live))

    fixture = Fixture(
        name=name or str(data.get("name", "<fixture>")),
        graph=graph,
        loans=LoanTable.from_ranges(entries),
        config=CheckerConfig.from_mapping(data.get("config", {})),
    )
    _log.debug("loaded fixture %s: %r, %r", fixture.name, graph, fixture.loans)
    return fixture


def load_fixture_file(path: Union[str, FsPath]) -> Fixture:
    """Read and decode a JSON fixture file."""
    fs_path = FsPath(path)
    try:
        text = fs_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise FixtureError(f"{fs_path}: cannot read fixture: {exc}") from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise FixtureError(f"{fs_path}: invalid JSON: {exc}") from exc
    if not isinstance(data, Mapping):
        raise FixtureError(f"{fs_path}: top level must be an object")
    return load_fixture(data, name=str(data.get("name", fs_path.stem)))
