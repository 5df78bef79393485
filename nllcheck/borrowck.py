# nllcheck/borrowck.py
"""
nllcheck.borrowck
=================

Path-conflict checker.

For every point, given the action executed there and the loans in scope,
the checker validates the action's reads, writes, moves and storage
deallocations against the loans:

  ┌──────────────────┬─────────────────────────────────────────────────┐
  │ access           │ rejected when some in-scope loan ...            │
  ├──────────────────┼─────────────────────────────────────────────────┤
  │ write  p         │ freezes p                                       │
  │ read   p         │ intersects p and is a mutable loan              │
  │ move   p         │ intersects p (any kind)                         │
  │ StorageDead v    │ freezes the bare variable v                     │
  └──────────────────┴─────────────────────────────────────────────────┘

A loan L **intersects** a path P when L.path is a prefix of P (accessing
``a.b.c`` touches a loan of ``a.b``) or P is a supporting prefix of L.path
(accessing ``a.b`` touches a loan of ``a.b.c``).

A loan L **freezes** a path P when P is a prefix of L.path that can be
overwritten without going through a reference (see
:meth:`BorrowCheck.frozen_by_borrow_of`), or L.path is a prefix of P.

Each check stops at the first conflicting loan.  The driver,
:func:`borrow_check`, compares every action's outcome with its
``should_have_error`` flag and reports mismatches according to the
configured :class:`~nllcheck.config.ReportPolicy`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

from nllcheck.config import DEFAULT_CONFIG, CheckerConfig, ReportPolicy
from nllcheck.env import Environment
from nllcheck.errors import BorrowError, BorrowErrors, InvariantViolation
from nllcheck.ir import (
    Action,
    ActionKind,
    Assign,
    Borrow,
    BorrowKind,
    Bound,
    Constraint,
    Drop,
    Extension,
    Init,
    Noop,
    Path,
    Point,
    Ref,
    StorageDead,
    Struct,
    Unit,
    Use,
    VarPath,
    Variable,
)
from nllcheck.loans import Loan, LoanScope

_log = logging.getLogger(__name__)


# ===========================================================================
# PER-POINT CHECKER
# ===========================================================================

@dataclass
class BorrowCheck:
    """Checks the action at a single point against the loans in scope."""

    env: Environment
    point: Point
    loans: Sequence[Loan]

    def check_action(self, action: ActionKind) -> None:
        """Raise :class:`BorrowError` if *action* conflicts with a loan."""
        _log.debug("check_action(%s) at %s", action, self.point)
        if isinstance(action, Init):
            self.check_write(action.dest)
            for source in action.sources:
                self.check_read(source)
        elif isinstance(action, Assign):
            self.check_write(action.dest)
            self.check_read(action.src)
        elif isinstance(action, Borrow):
            self.check_write(action.dest)
            self.check_read(action.src)
            if action.kind is BorrowKind.MUT:
                # a mutable borrow may later write through the reference
                self.check_write(action.src)
        elif isinstance(action, (Constraint, Noop)):
            pass
        elif isinstance(action, Use):
            self.check_read(action.path)
        elif isinstance(action, Drop):
            self.check_move(action.path)
        elif isinstance(action, StorageDead):
            self.check_storage_dead(action.var)
        else:
            raise InvariantViolation(f"unknown action kind {action!r}")

    def check_write(self, path: Path) -> None:
        """Cannot write to *path* if a loan freezes it.

        This covers writing to ``a`` or ``a.b`` while ``a.b`` is borrowed,
        and writing to ``a.b.c`` while ``a.b`` is borrowed.
        """
        _log.debug("check_write of %s at %s with loans=%s", path, self.point, self._loan_list())
        loan = self.find_loan_that_freezes(path)
        if loan is not None:
            raise BorrowError.for_write(self.point, path, loan.path, loan.point)

    def check_read(self, path: Path) -> None:
        """Cannot read ``a.b.c`` if ``a.b.c``, a sub-path ``a.b.c.d`` or a
        prefix ``a.b`` is mutably borrowed.
        """
        _log.debug("check_read of %s at %s with loans=%s", path, self.point, self._loan_list())
        for loan in self.find_loans_that_intersect(path):
            if loan.kind is BorrowKind.MUT:
                raise BorrowError.for_read(self.point, path, loan.path, loan.point)

    def check_move(self, path: Path) -> None:
        """Cannot move *path* if it, a sub-path or a prefix is borrowed.

        Stricter than writes and storage-dead: a variable ``x`` holding a
        ``&mut`` may be overwritten while ``*x`` is borrowed, but not moved,
        since the move would make the reference usable at its new home.
        """
        _log.debug("check_move of %s at %s with loans=%s", path, self.point, self._loan_list())
        for loan in self.find_loans_that_intersect(path):
            raise BorrowError.for_move(self.point, path, loan.path, loan.point)

    def check_storage_dead(self, var: Variable) -> None:
        """Cannot free *var* while data interior to it is borrowed.

        Having ``(*var)`` borrowed is fine.
        """
        _log.debug("check_storage_dead of %s at %s with loans=%s", var, self.point, self._loan_list())
        loan = self.find_loan_that_freezes(VarPath(var))
        if loan is not None:
            raise BorrowError.for_storage_dead(self.point, var, loan.path, loan.point)

    # ----- loan relations -----------------------------------------------

    def find_loans_that_intersect(self, path: Path) -> Iterator[Loan]:
        """Yield the in-scope loans that intersect *path*, in order.

        For ``P = a.b.c``: loans of ``a.b.c``, of ``a.b`` (the reference
        reaches P) and of ``a.b.c.d`` (reading P reads the loaned data)
        all intersect.
        """
        path_prefixes = path.prefixes()
        for loan in self.loans:
            if loan.path in path_prefixes or path in self.env.supporting_prefixes(loan.path):
                yield loan

    def find_loan_that_freezes(self, path: Path) -> Optional[Loan]:
        """Return the first in-scope loan that makes writing or freeing
        *path* illegal, or ``None``.
        """
        prefixes = path.prefixes()
        for loan in self.loans:
            # a loan of `a.b` prevents writes to `a` and `a.b`...
            if path in self.frozen_by_borrow_of(loan.path):
                return loan
            # ...and to `a.b.c`
            if loan.path in prefixes:
                return loan
        return None

    def frozen_by_borrow_of(self, path: Path) -> List[Path]:
        """Paths which, if overwritten or freed, invalidate a loan of *path*.

        Walks from *path* toward the root.  Overwriting a struct overwrites
        all of its fields, so struct bases are included; the walk stops at a
        dereference because writing ``r`` does not touch the memory at
        ``(*r)``.

        Raises
        ------
        InvariantViolation
            If an extension is rooted in a ``Unit`` or ``Bound`` type.
        """
        result: List[Path] = []
        while True:
            result.append(path)
            if isinstance(path, VarPath):
                return result
            assert isinstance(path, Extension)
            base_ty = self.env.path_ty(path.base)
            if isinstance(base_ty, Ref):
                if not path.field.is_star:
                    raise InvariantViolation(
                        f"reference-typed {path.base} extended with field {path.field}"
                    )
                return result
            if isinstance(base_ty, Struct):
                path = path.base
            elif isinstance(base_ty, Unit):
                raise InvariantViolation("unit has no fields")
            elif isinstance(base_ty, Bound):
                raise InvariantViolation("unexpected bound type")
            else:
                raise InvariantViolation(f"unknown type {base_ty!r}")

    def _loan_list(self) -> List[str]:
        return [str(loan) for loan in self.loans]


# ===========================================================================
# DRIVER
# ===========================================================================

def check_point(
    env: Environment, point: Point, action: Action, loans: Sequence[Loan]
) -> Optional[BorrowError]:
    """Check one action and compare the outcome with its expectation.

    Returns the mismatch, or ``None`` if the outcome was as expected.
    """
    try:
        BorrowCheck(env, point, loans).check_action(action.kind)
    except BorrowError as err:
        if not action.should_have_error:
            return err
        _log.debug("expected error at %s: %s", point, err)
        return None
    if action.should_have_error:
        return BorrowError.no_error(point)
    return None


def collect_mismatches(env: Environment, loan_scope: LoanScope) -> List[BorrowError]:
    """Walk every point of *loan_scope* and return all outcome mismatches
    in traversal order.
    """
    mismatches: List[BorrowError] = []

    def _visit(point: Point, action: Optional[Action], loans: Sequence[Loan]) -> None:
        if action is None:
            return
        err = check_point(env, point, action, loans)
        if err is not None:
            _log.info("mismatch at %s: %s", point, err)
            mismatches.append(err)

    loan_scope.walk(env, _visit)
    return mismatches


def borrow_check(
    env: Environment,
    loan_scope: LoanScope,
    config: Optional[CheckerConfig] = None,
) -> None:
    """Borrow-check a function.

    Returns ``None`` if every action's outcome matched its
    ``should_have_error`` flag.

    Raises
    ------
    BorrowError
        Under ``ReportPolicy.LAST`` (the default) the mismatch seen last in
        traversal order, earlier ones being dropped; under
        ``ReportPolicy.FIRST`` the first one.
    BorrowErrors
        Under ``ReportPolicy.ALL``, every mismatch.
    InvariantViolation
        If the type table is malformed.
    """
    config = config or DEFAULT_CONFIG
    mismatches = collect_mismatches(env, loan_scope)
    if not mismatches:
        return None
    if config.report is ReportPolicy.ALL:
        raise BorrowErrors(mismatches)
    if config.report is ReportPolicy.FIRST:
        raise mismatches[0]
    raise mismatches[-1]
