# nllcheck/errors.py
"""
Error types for nllcheck.

Hierarchy
─────────
::

    NllError (base)
    ├── BorrowError        - an action conflicts with an in-scope loan, or an
    │                        action's outcome disagrees with its expectation
    ├── BorrowErrors       - several BorrowErrors reported together
    ├── GraphError         - malformed CFG (missing EXIT, unknown block, ...)
    └── FixtureError       - malformed fixture document

    InvariantViolation     - internal invariant broken (malformed type table),
                             not an NllError
    UnknownVariableError   - liveness query on an undeclared variable

``InvariantViolation`` derives from ``AssertionError`` so that code catching
``NllError`` to report ordinary borrow-check rejections can never swallow a
malformed-input failure by accident.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Any, List, Optional, Sequence

if TYPE_CHECKING:
    from nllcheck.ir import Path, Point, Variable


class ConflictKind(enum.Enum):
    """Which rule produced a :class:`BorrowError`."""

    WRITE = "write"
    READ = "read"
    MOVE = "move"
    STORAGE_DEAD = "storage-dead"
    NO_ERROR = "no-error"


class NllError(Exception):
    """Base class for every recoverable nllcheck error."""


class BorrowError(NllError):
    """A borrow-check failure at a single point.

    The message text is the contract callers match against; the structured
    attributes are provided for programmatic consumers.

    Attributes
    ----------
    kind : ConflictKind
    point : Point
        The point at which the offending action executes.
    path : Path or Variable or None
        The accessed path (the variable for storage-dead conflicts).
    loan_path : Path or None
        The path of the conflicting loan.
    loan_point : Point or None
        Where the conflicting loan was created.
    """

    def __init__(
        self,
        kind: ConflictKind,
        point: "Point",
        message: str,
        path: Any = None,
        loan_path: Optional["Path"] = None,
        loan_point: Optional["Point"] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.point = point
        self.path = path
        self.loan_path = loan_path
        self.loan_point = loan_point
        self.message = message

    # ---- constructors, one per message template -----------------------

    @classmethod
    def no_error(cls, point: "Point") -> "BorrowError":
        return cls(
            ConflictKind.NO_ERROR,
            point,
            f"point {point} had no error, but should have",
        )

    @classmethod
    def for_move(
        cls, point: "Point", path: "Path", loan_path: "Path", loan_point: "Point"
    ) -> "BorrowError":
        return cls(
            ConflictKind.MOVE,
            point,
            f"point {point} cannot move {path} because {loan_path} "
            f"is borrowed (at point `{loan_point}`)",
            path,
            loan_path,
            loan_point,
        )

    @classmethod
    def for_read(
        cls, point: "Point", path: "Path", loan_path: "Path", loan_point: "Point"
    ) -> "BorrowError":
        return cls(
            ConflictKind.READ,
            point,
            f"point {point} cannot read {path} because {loan_path} "
            f"is mutably borrowed (at point `{loan_point}`)",
            path,
            loan_path,
            loan_point,
        )

    @classmethod
    def for_write(
        cls, point: "Point", path: "Path", loan_path: "Path", loan_point: "Point"
    ) -> "BorrowError":
        return cls(
            ConflictKind.WRITE,
            point,
            f"point {point} cannot write {path} because {loan_path} "
            f"is borrowed (at point `{loan_point}`)",
            path,
            loan_path,
            loan_point,
        )

    @classmethod
    def for_storage_dead(
        cls,
        point: "Point",
        var: "Variable",
        loan_path: "Path",
        loan_point: "Point",
    ) -> "BorrowError":
        return cls(
            ConflictKind.STORAGE_DEAD,
            point,
            f"point {point} cannot kill storage for {var} because "
            f"{loan_path} is borrowed (at point `{loan_point}`)",
            var,
            loan_path,
            loan_point,
        )

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"BorrowError({self.kind.value}, {self.message!r})"


class BorrowErrors(NllError):
    """Several borrow errors reported at once, in traversal order."""

    def __init__(self, errors: Sequence[BorrowError]) -> None:
        self.errors: List[BorrowError] = list(errors)
        super().__init__("\n".join(e.message for e in self.errors))

    def __len__(self) -> int:
        return len(self.errors)

    def __iter__(self):
        return iter(self.errors)


class GraphError(NllError):
    """The control-flow graph is malformed."""


class FixtureError(NllError):
    """A fixture document could not be turned into a graph."""


class InvariantViolation(AssertionError):
    """An internal invariant was broken by malformed input.

    Raised, for instance, when a dereference-extended path is rooted in a
    ``Unit`` or ``Bound`` type.  This is never a borrow-check verdict.
    """


class UnknownVariableError(KeyError):
    """A liveness query named a variable the function never declared."""

    def __init__(self, var: Any) -> None:
        super().__init__(var)
        self.var = var

    def __str__(self) -> str:
        return f"variable {self.var} is not declared in this function"
