"""
nllcheck — Borrow-checking verifier over control-flow graphs
============================================================

Given a function expressed as a graph of basic blocks of primitive actions,
and for every program point the set of loans in scope there, ``nllcheck``
decides whether each action conflicts with a loan, and cross-checks that
verdict against the action's expected-outcome flag.

Core modules
------------
ir
    Paths, types, points and action kinds.
graph
    Per-function CFG and type oracle (``path_ty``, ``supporting_prefixes``).
graph_algorithms
    Reverse post-order, dominators, transposed graphs, loop tree,
    reachability.
env
    Cached structural analyses for one function.
liveness
    Backward live-variable fixed point.
loans
    Loans and the loan-scope traversal protocol.
borrowck
    The path-conflict checker and its driver.
fixtures
    JSON fixture documents.

Quick start
-----------
>>> from nllcheck import Environment, borrow_check, load_fixture_file
>>> fixture = load_fixture_file("scenario.json")           # doctest: +SKIP
>>> borrow_check(fixture.environment(), fixture.loans)      # doctest: +SKIP

Package layout
--------------
::

    nllcheck/
    ├── __init__.py            ← this file
    ├── __main__.py
    ├── main.py                CLI
    ├── errors.py
    ├── config.py
    ├── ir.py
    ├── graph.py
    ├── graph_algorithms.py
    ├── env.py
    ├── liveness.py
    ├── loans.py
    ├── borrowck.py
    └── fixtures.py
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import TYPE_CHECKING, List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__license__ = "MIT"
__all__: List[str] = []          # populated incrementally below

_log = logging.getLogger(__name__)
_log.addHandler(logging.NullHandler())

# ---------------------------------------------------------------------------
# Internal registry: (module_name, list_of_names_to_import)
# ---------------------------------------------------------------------------

_CORE_MODULES = {
    "errors": [
        "NllError",
        "BorrowError",
        "BorrowErrors",
        "ConflictKind",
        "GraphError",
        "FixtureError",
        "InvariantViolation",
        "UnknownVariableError",
    ],
    "config": [
        "CheckerConfig",
        "ReportPolicy",
        "DEFAULT_CONFIG",
    ],
    "ir": [
        "Variable",
        "FieldName",
        "Path",
        "VarPath",
        "Extension",
        "make_path",
        "BorrowKind",
        "Ty",
        "Unit",
        "Struct",
        "Ref",
        "Bound",
        "StructDecl",
        "Point",
        "Action",
        "Init",
        "Assign",
        "Borrow",
        "Constraint",
        "Outlives",
        "Subtype",
        "Use",
        "Drop",
        "StorageDead",
        "Noop",
    ],
    "graph": [
        "BasicBlock",
        "FuncGraph",
    ],
    "graph_algorithms": [
        "Dominators",
        "LoopTree",
        "Reachability",
        "TransposedGraph",
        "reverse_post_order",
    ],
    "env": [
        "Environment",
    ],
    "liveness": [
        "Liveness",
        "def_use",
    ],
    "loans": [
        "Loan",
        "LoanScope",
        "LoanTable",
    ],
    "borrowck": [
        "BorrowCheck",
        "borrow_check",
        "check_point",
        "collect_mismatches",
    ],
    "fixtures": [
        "Fixture",
        "load_fixture",
        "load_fixture_file",
    ],
}


def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace.

    Parameters
    ----------
    module_rel_name:
        Module name relative to this package (e.g. ``"graph"``).
    names:
        Public symbols to re-export.
    """
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        raise ImportError(
            f"nllcheck: required submodule '{module_rel_name}' "
            f"failed to import: {exc}"
        ) from exc

    current_module = sys.modules[__name__]
    for name in names:
        if not hasattr(mod, name):
            raise AttributeError(f"nllcheck.{module_rel_name} does not export '{name}'")
        setattr(current_module, name, getattr(mod, name))
        __all__.append(name)

    setattr(current_module, module_rel_name, mod)
    if module_rel_name not in __all__:
        __all__.append(module_rel_name)


for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names)

del _mod, _names


def list_submodules() -> List[str]:
    """Return the names of the core submodules."""
    return sorted(_CORE_MODULES)


__all__ += ["list_submodules", "__version__"]

# ---------------------------------------------------------------------------
# TYPE_CHECKING block: re-declares every export for static type checkers
# ---------------------------------------------------------------------------

if TYPE_CHECKING:
    from .errors import (
        NllError as NllError,
        BorrowError as BorrowError,
        BorrowErrors as BorrowErrors,
        ConflictKind as ConflictKind,
        GraphError as GraphError,
        FixtureError as FixtureError,
        InvariantViolation as InvariantViolation,
        UnknownVariableError as UnknownVariableError,
    )
    from .config import (
        CheckerConfig as CheckerConfig,
        ReportPolicy as ReportPolicy,
        DEFAULT_CONFIG as DEFAULT_CONFIG,
    )
    from .ir import (
        Variable as Variable,
        FieldName as FieldName,
        Path as Path,
        VarPath as VarPath,
        Extension as Extension,
        make_path as make_path,
        BorrowKind as BorrowKind,
        Ty as Ty,
        Unit as Unit,
        Struct as Struct,
        Ref as Ref,
        Bound as Bound,
        StructDecl as StructDecl,
        Point as Point,
        Action as Action,
        Init as Init,
        Assign as Assign,
        Borrow as Borrow,
        Constraint as Constraint,
        Outlives as Outlives,
        Subtype as Subtype,
        Use as Use,
        Drop as Drop,
        StorageDead as StorageDead,
        Noop as Noop,
    )
    from .graph import (
        BasicBlock as BasicBlock,
        FuncGraph as FuncGraph,
    )
    from .graph_algorithms import (
        Dominators as Dominators,
        LoopTree as LoopTree,
        Reachability as Reachability,
        TransposedGraph as TransposedGraph,
        reverse_post_order as reverse_post_order,
    )
    from .env import Environment as Environment
    from .liveness import (
        Liveness as Liveness,
        def_use as def_use,
    )
    from .loans import (
        Loan as Loan,
        LoanScope as LoanScope,
        LoanTable as LoanTable,
    )
    from .borrowck import (
        BorrowCheck as BorrowCheck,
        borrow_check as borrow_check,
        check_point as check_point,
        collect_mismatches as collect_mismatches,
    )
    from .fixtures import (
        Fixture as Fixture,
        load_fixture as load_fixture,
        load_fixture_file as load_fixture_file,
    )
