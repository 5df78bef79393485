# nllcheck/ir.py
"""
nllcheck.ir
===========

Program representation consumed by the borrow checker.

A function is a graph of basic blocks (see :mod:`nllcheck.graph`), each
holding an ordered list of :class:`Action` objects.  Actions operate on
:class:`Path` values: a bare variable (``a``) or a field / dereference
extension of another path (``a.b``, ``(*r)``).  Every value type here is
immutable and compares structurally, so paths and types can be used as
dictionary keys and set members.

Public API
----------
    Variable        - storage slot declared in a function
    FieldName       - field selector; ``FieldName.star()`` is a dereference
    Path            - ``VarPath`` | ``Extension``
    Ty              - ``Unit`` | ``Struct`` | ``Ref`` | ``Bound``
    BorrowKind      - ``SHARED`` | ``MUT``
    StructDecl      - declared layout of a struct type
    Point           - ``(block, action)`` coordinate
    Action          - an action kind plus its expected-outcome flag
    Init, Assign, Borrow, Constraint, Use, Drop, StorageDead, Noop
                    - action kinds
    Outlives, Subtype
                    - constraint payloads
    make_path       - convenience constructor: ``make_path("a", "b")``
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union


# ===========================================================================
# VARIABLES AND FIELDS
# ===========================================================================

@dataclass(frozen=True)
class Variable:
    """An opaque identifier for a storage slot declared in a function."""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class FieldName:
    """A field selector.  The name ``*`` denotes a dereference."""

    name: str

    STAR = "*"

    @classmethod
    def star(cls) -> "FieldName":
        return cls(cls.STAR)

    @property
    def is_star(self) -> bool:
        return self.name == self.STAR

    def __str__(self) -> str:
        return self.name


# ===========================================================================
# PATHS
# ===========================================================================

class Path:
    """A symbolic storage location.

    Concrete paths are :class:`VarPath` and :class:`Extension`.  Two paths
    are equal iff they are structurally identical.
    """

    __slots__ = ()

    @property
    def root(self) -> Variable:
        """The variable at the bottom of the path."""
        p: Path = self
        while isinstance(p, Extension):
            p = p.base
        assert isinstance(p, VarPath)
        return p.var

    def prefixes(self) -> List["Path"]:
        """Return this path and every path obtained by stripping trailing
        extensions, innermost first: ``a.b.c`` → ``[a.b.c, a.b, a]``.
        """
        result: List[Path] = []
        p: Path = self
        while True:
            result.append(p)
            if isinstance(p, Extension):
                p = p.base
            else:
                return result

    def extend(self, field_name: Union[FieldName, str]) -> "Extension":
        if isinstance(field_name, str):
            field_name = FieldName(field_name)
        return Extension(self, field_name)

    def deref(self) -> "Extension":
        return Extension(self, FieldName.star())

    @property
    def is_var(self) -> bool:
        return isinstance(self, VarPath)


@dataclass(frozen=True)
class VarPath(Path):
    """A bare variable used as a path."""

    var: Variable

    def __str__(self) -> str:
        return str(self.var)


@dataclass(frozen=True)
class Extension(Path):
    """``base.field``, or ``(*base)`` when *field* is the star sentinel."""

    base: Path
    field: FieldName

    def __str__(self) -> str:
        if self.field.is_star:
            return f"(*{self.base})"
        return f"{self.base}.{self.field}"


def make_path(var: Union[str, Variable], *fields: Union[str, FieldName]) -> Path:
    """Build a path from a variable and a sequence of field names.

    >>> str(make_path("a", "b", "c"))
    'a.b.c'
    >>> str(make_path("r", "*"))
    '(*r)'
    """
    if isinstance(var, str):
        var = Variable(var)
    p: Path = VarPath(var)
    for f in fields:
        p = p.extend(f)
    return p


# ===========================================================================
# TYPES
# ===========================================================================

class BorrowKind(enum.Enum):
    SHARED = "shared"
    MUT = "mut"


class Ty:
    """Base class for types."""

    __slots__ = ()


@dataclass(frozen=True)
class Unit(Ty):
    """The unit type; it has no fields."""

    def __str__(self) -> str:
        return "()"


@dataclass(frozen=True)
class Struct(Ty):
    """A named struct type; its layout lives in a :class:`StructDecl`."""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Ref(Ty):
    """A reference ``&'region T`` or ``&'region mut T``."""

    region: str
    kind: BorrowKind
    referent: Ty

    def __str__(self) -> str:
        mut = " mut" if self.kind is BorrowKind.MUT else ""
        return f"&'{self.region}{mut} {self.referent}"


@dataclass(frozen=True)
class Bound(Ty):
    """An unresolved type parameter.  Must never reach the checker."""

    index: int

    def __str__(self) -> str:
        return f"%{self.index}"


@dataclass(frozen=True)
class StructDecl:
    """Declared layout of a struct: an ordered sequence of typed fields."""

    name: str
    fields: Tuple[Tuple[FieldName, Ty], ...] = ()

    def field_ty(self, name: FieldName) -> Optional[Ty]:
        for fname, fty in self.fields:
            if fname == name:
                return fty
        return None

    def field_names(self) -> List[FieldName]:
        return [fname for fname, _ in self.fields]


# ===========================================================================
# POINTS
# ===========================================================================

BlockIndex = int


@dataclass(frozen=True)
class Point:
    """A position in the CFG.

    ``action`` ranges over ``0..=N+1`` for a block with ``N`` actions:
    ``0`` is the block entry, ``1..=N`` index the actions and ``N+1`` is
    the block exit.  *name* only affects rendering.
    """

    block: BlockIndex
    action: int
    name: str = field(default="", compare=False)

    def __str__(self) -> str:
        label = self.name or f"bb{self.block}"
        return f"({label} @ {self.action})"


# ===========================================================================
# ACTIONS
# ===========================================================================

class ActionKind:
    """Base class for the action variants below."""

    __slots__ = ()


@dataclass(frozen=True)
class Outlives:
    """Region constraint ``'sup: 'sub``."""

    sup: str
    sub: str

    def __str__(self) -> str:
        return f"'{self.sup}: '{self.sub}"


@dataclass(frozen=True)
class Subtype:
    """Subtyping constraint between the types of two variables."""

    sub: Variable
    sup: Variable

    def __str__(self) -> str:
        return f"{self.sub} <: {self.sup}"


ConstraintPayload = Union[Outlives, Subtype]


@dataclass(frozen=True)
class Init(ActionKind):
    dest: Path
    sources: Tuple[Path, ...] = ()

    def __str__(self) -> str:
        return f"{self.dest} = use({', '.join(str(s) for s in self.sources)})"


@dataclass(frozen=True)
class Assign(ActionKind):
    dest: Path
    src: Path

    def __str__(self) -> str:
        return f"{self.dest} = {self.src}"


@dataclass(frozen=True)
class Borrow(ActionKind):
    dest: Path
    region: str
    kind: BorrowKind
    src: Path

    def __str__(self) -> str:
        mut = " mut" if self.kind is BorrowKind.MUT else ""
        return f"{self.dest} = &'{self.region}{mut} {self.src}"


@dataclass(frozen=True)
class Constraint(ActionKind):
    constraint: ConstraintPayload

    def __str__(self) -> str:
        return str(self.constraint)


@dataclass(frozen=True)
class Use(ActionKind):
    path: Path

    def __str__(self) -> str:
        return f"use({self.path})"


@dataclass(frozen=True)
class Drop(ActionKind):
    path: Path

    def __str__(self) -> str:
        return f"drop({self.path})"


@dataclass(frozen=True)
class StorageDead(ActionKind):
    var: Variable

    def __str__(self) -> str:
        return f"StorageDead({self.var})"


@dataclass(frozen=True)
class Noop(ActionKind):
    def __str__(self) -> str:
        return "noop"


@dataclass(frozen=True)
class Action:
    """An action plus its expected outcome.

    ``should_have_error`` marks actions the checker is expected to reject;
    test fixtures use it to validate themselves.
    """

    kind: ActionKind
    should_have_error: bool = False

    def __str__(self) -> str:
        suffix = " //! ERROR" if self.should_have_error else ""
        return f"{self.kind};{suffix}"

