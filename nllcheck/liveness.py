# nllcheck/liveness.py
"""
Live-variable analysis.

Direction:   BACKWARD
Confluence:  JOIN (may / union)
Lattice:     ℘(Variable)  — encoded as an ``int`` bitset per block
Transfer:    in(B) = use(B) ∪ (out(B) − def(B)), applied action by action
             from the last action of B to the first

"May the current value of variable x still be read along some path
starting at the entry of block B?"

The fixed point is computed by round-robin sweeps over the blocks in
reverse post-order.  Each sweep reads successor facts from a snapshot taken
at the start of the sweep and builds each block's new fact in a scratch
integer, so bits read and bits written never alias within a sweep.  The
lattice has finite height (one bit per declared variable) and the transfer
functions are monotone, so the sweeps terminate.

Def/use per action
------------------
======================  ==========================  =======================
action                  defines                     uses
======================  ==========================  =======================
``Borrow(d, _, _, _)``  root of ``d`` if bare var   (root of ``d`` if not)
``Assign(d, s)``        root of ``d`` if bare var   root of ``s``
``Init(d, ss)``         root of ``d`` if bare var   roots of ``ss``
``Constraint(Subtype)``                             both variables
``Constraint(Outlives)``
``Use(p)``, ``Drop(p)``                             root of ``p``
``StorageDead(v)``      ``v``
``Noop``
======================  ==========================  =======================

A write through an extension (``a.b = ...``) leaves the rest of ``a`` in
place, so it counts as a use of ``a`` rather than a definition.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Set, Tuple

from nllcheck.config import DEFAULT_CONFIG, CheckerConfig
from nllcheck.env import Environment
from nllcheck.errors import InvariantViolation, UnknownVariableError
from nllcheck.ir import (
    Action,
    ActionKind,
    Assign,
    BlockIndex,
    Borrow,
    Constraint,
    Drop,
    Init,
    Noop,
    Path,
    Point,
    StorageDead,
    Subtype,
    Use,
    Variable,
)

_log = logging.getLogger(__name__)

LivenessCallback = Callable[[Point, Action, int], None]


# ===========================================================================
# DEF / USE
# ===========================================================================

def _write_target(dest: Path) -> Tuple[List[Variable], List[Variable]]:
    if dest.is_var:
        return [dest.root], []
    return [], [dest.root]


def def_use(kind: ActionKind) -> Tuple[List[Variable], List[Variable]]:
    """Return ``(defined, used)`` variables for an action kind."""
    if isinstance(kind, Borrow):
        return _write_target(kind.dest)
    if isinstance(kind, Assign):
        defs, uses = _write_target(kind.dest)
        return defs, uses + [kind.src.root]
    if isinstance(kind, Init):
        defs, uses = _write_target(kind.dest)
        return defs, uses + [s.root for s in kind.sources]
    if isinstance(kind, Constraint):
        if isinstance(kind.constraint, Subtype):
            return [], [kind.constraint.sub, kind.constraint.sup]
        return [], []
    if isinstance(kind, (Use, Drop)):
        return [], [kind.path.root]
    if isinstance(kind, StorageDead):
        return [kind.var], []
    if isinstance(kind, Noop):
        return [], []
    raise InvariantViolation(f"unknown action kind {kind!r}")


# ===========================================================================
# LIVENESS
# ===========================================================================

class Liveness:
    """Per-block live-on-entry sets for one function.

    After construction (with ``compute=True``, the default) use:
      - ``live_on_entry(var, block)`` → bool
      - ``live_variables(block)``     → set of variables
      - ``sweeps`` / ``converged``    → fixed-point statistics

    Parameters
    ----------
    env : Environment
    config : CheckerConfig, optional
        Supplies ``max_sweeps``.
    compute : bool
        Run the fixed point immediately.  Pass ``False`` to drive
        :meth:`sweep` by hand.
    """

    def __init__(
        self,
        env: Environment,
        config: Optional[CheckerConfig] = None,
        compute: bool = True,
    ) -> None:
        self.env = env
        self.config = config or DEFAULT_CONFIG
        self.var_bits: Dict[Variable, int] = {
            v: i for i, v in enumerate(env.graph.decls())
        }
        self._bits: Dict[BlockIndex, int] = {b: 0 for b in env.graph.nodes()}
        self.sweeps = 0
        self.converged = False
        if compute:
            self.compute()

    # ----- queries ------------------------------------------------------

    def bit(self, var: Variable) -> int:
        try:
            return self.var_bits[var]
        except KeyError:
            raise UnknownVariableError(var) from None

    def live_on_entry(self, var: Variable, block: BlockIndex) -> bool:
        return bool(self._bits[block] >> self.bit(var) & 1)

    def live_variables(self, block: BlockIndex) -> Set[Variable]:
        bits = self._bits[block]
        return {v for v, i in self.var_bits.items() if bits >> i & 1}

    def bits(self, block: BlockIndex) -> int:
        return self._bits[block]

    # ----- fixed point --------------------------------------------------

    def compute(self) -> "Liveness":
        """Sweep until no block's live-in set changes."""
        while not self.converged:
            if self.sweeps >= self.config.max_sweeps:
                raise InvariantViolation(
                    f"liveness did not converge within {self.config.max_sweeps} sweeps"
                )
            self.sweep()
        _log.debug("liveness converged after %d sweeps", self.sweeps)
        return self

    def sweep(self) -> bool:
        """Run one full sweep; return ``True`` if any block changed."""
        snapshot = dict(self._bits)
        changed = False
        for block in self.env.reverse_post_order:
            new_bits = self.simulate_block(block, snapshot)
            if new_bits != self._bits[block]:
                self._bits[block] = new_bits
                changed = True
        self.sweeps += 1
        self.converged = not changed
        return changed

    def simulate_block(
        self,
        block: BlockIndex,
        facts: Optional[Dict[BlockIndex, int]] = None,
        callback: Optional[LivenessCallback] = None,
    ) -> int:
        """Return the live-in bits of *block*.

        Successor facts are read from *facts* (defaults to the current
        results).  *callback*, if given, is invoked after each action with
        the action's point, the action, and the bits live before it.
        """
        facts = self._bits if facts is None else facts
        graph = self.env.graph

        # everything live in a successor is live at the exit of the block
        buf = 0
        for succ in graph.successors(block):
            buf |= facts[succ]

        actions = graph.block_data(block).actions
        for index in range(len(actions) - 1, -1, -1):
            action = actions[index]
            defs, uses = def_use(action.kind)
            for v in defs:
                buf &= ~(1 << self.bit(v))
            for v in uses:
                buf |= 1 << self.bit(v)
            if callback is not None:
                callback(self.env.point(block, index + 1), action, buf)
        return buf

    def __repr__(self) -> str:
        return (
            f"Liveness(vars={len(self.var_bits)}, sweeps={self.sweeps}, "
            f"converged={self.converged})"
        )
