# nllcheck/config.py
"""
Checker configuration.

A :class:`CheckerConfig` is a frozen bag of knobs handed to
:func:`nllcheck.borrowck.borrow_check` and :class:`nllcheck.liveness.Liveness`.
The defaults reproduce the historical checker output, so callers that do
not care can pass nothing.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, fields
from typing import Any, Mapping

from nllcheck.errors import FixtureError


class ReportPolicy(enum.Enum):
    """Which outcome mismatches :func:`borrow_check` reports.

    ``LAST``
        Only the mismatch seen last in traversal order (the historical default).
    ``FIRST``
        Only the first mismatch.
    ``ALL``
        Every mismatch, aggregated into a ``BorrowErrors``.
    """

    LAST = "last"
    FIRST = "first"
    ALL = "all"


@dataclass(frozen=True)
class CheckerConfig:
    """Knobs for the checker and the liveness fixed point.

    Attributes
    ----------
    report : ReportPolicy
        Mismatch reporting policy, see :class:`ReportPolicy`.
    max_sweeps : int
        Upper bound on liveness sweeps; exceeding it is an invariant
        violation since the lattice height bounds the real count.
    """

    report: ReportPolicy = ReportPolicy.LAST
    max_sweeps: int = 10_000

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CheckerConfig":
        """Build a config from a plain mapping such as a fixture's
        ``"config"`` section.

        Raises
        ------
        FixtureError
            On unknown keys or values.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise FixtureError(f"unknown config keys: {', '.join(sorted(unknown))}")
        kwargs: dict = {}
        if "report" in data:
            try:
                kwargs["report"] = ReportPolicy(data["report"])
            except ValueError:
                raise FixtureError(f"unknown report policy {data['report']!r}") from None
        if "max_sweeps" in data:
            sweeps = data["max_sweeps"]
            if not isinstance(sweeps, int) or sweeps < 1:
                raise FixtureError(f"max_sweeps must be a positive integer, got {sweeps!r}")
            kwargs["max_sweeps"] = sweeps
        return cls(**kwargs)

    def replace(self, **changes: Any) -> "CheckerConfig":
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update(changes)
        return CheckerConfig(**values)


DEFAULT_CONFIG = CheckerConfig()
