# nllcheck/loans.py
"""
Loans and loan-scope traversal.

Deciding *which* loans are in scope at a point is region inference and is
not part of nllcheck.  The checker only needs a traversal that hands it,
for every relevant point, the action executed there and the loans active
at that point.  Anything with a ``walk(env, callback)`` method works; see
:class:`LoanScope`.

:class:`LoanTable` is the in-package implementation: an explicit table of
which loan is live at which points, as produced by an external region
engine or written out by hand in a fixture.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import (
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

from nllcheck.ir import Action, BlockIndex, BorrowKind, Path, Point


@dataclass(frozen=True)
class Loan:
    """A recorded borrow of *path*, created at *point*."""

    path: Path
    kind: BorrowKind
    point: Point

    def __str__(self) -> str:
        mut = "mut " if self.kind is BorrowKind.MUT else ""
        return f"&{mut}{self.path} @ {self.point}"


WalkCallback = Callable[[Point, Optional[Action], Sequence[Loan]], None]


@runtime_checkable
class LoanScope(Protocol):
    """Traversal primitive supplied by a loan-scope engine.

    ``walk`` must invoke *callback* once per relevant point with the action
    executed at that point (``None`` at block entry/exit) and the loans
    active there.  The loan sequence is only valid during the call.
    """

    def walk(self, env, callback: WalkCallback) -> None:
        ...


class LoanTable:
    """Loan scope backed by an explicit ``point → loans`` table.

    Blocks are walked in the environment's reverse post-order; within a
    block every point from ``0`` (entry) to ``N+1`` (exit) is visited, with
    the block's ``i``-th action reported at point ``i``.

    Loans are keyed on ``(block, action)``, so points built with or without
    a display name find the same entry.
    """

    def __init__(self) -> None:
        self._table: Dict[Tuple[BlockIndex, int], List[Loan]] = defaultdict(list)

    @classmethod
    def from_ranges(
        cls, entries: Iterable[Tuple[Loan, Iterable[Point]]]
    ) -> "LoanTable":
        """Build a table from ``(loan, points_where_live)`` pairs."""
        table = cls()
        for loan, points in entries:
            for point in points:
                table.add(point, loan)
        return table

    def add(self, point: Point, loan: Loan) -> None:
        key = (point.block, point.action)
        if loan not in self._table[key]:
            self._table[key].append(loan)

    def loans_at(self, point: Point) -> List[Loan]:
        return list(self._table.get((point.block, point.action), ()))

    def walk(self, env, callback: WalkCallback) -> None:
        for block in env.reverse_post_order:
            actions = env.graph.block_data(block).actions
            for index in range(env.end_action(block) + 1):
                point = env.point(block, index)
                action = actions[index - 1] if 1 <= index <= len(actions) else None
                callback(point, action, self.loans_at(point))

    def __len__(self) -> int:
        return sum(len(v) for v in self._table.values())

    def __repr__(self) -> str:
        return f"LoanTable(points={len(self._table)}, entries={len(self)})"
