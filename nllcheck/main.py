#!/usr/bin/env python3
"""nllcheck/main.py — CLI entry-point for nllcheck.

Usage examples
--------------
    # Borrow-check one or more fixtures
    python -m nllcheck check tests/data/scenario_a.json

    # Report every mismatch instead of the last one
    python -m nllcheck check fixture.json --report all

    # Print the dominator / postdominator trees and live-in sets
    python -m nllcheck dump fixture.json --dominators --postdominators --liveness

    # Graphviz output of the CFG
    python -m nllcheck dump fixture.json --dot

Exit codes
----------
    0   Success (every fixture passed).
    1   At least one fixture reported a borrow-check mismatch.
    2   Infrastructure failure (missing file, malformed fixture or graph).
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import Optional, Sequence, TextIO

from nllcheck import __version__
from nllcheck.borrowck import borrow_check
from nllcheck.config import ReportPolicy
from nllcheck.errors import BorrowError, BorrowErrors, NllError
from nllcheck.fixtures import Fixture, load_fixture_file
from nllcheck.liveness import Liveness

_log = logging.getLogger("nllcheck")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``nllcheck`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("nllcheck")
    root.setLevel(level)
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)


def _load(raw: str) -> Fixture:
    """Load the fixture at *raw*, exiting with ``EXIT_INFRA`` on failure."""
    p = Path(raw).expanduser().resolve()
    if not p.exists():
        _log.error("fixture not found: %s", p)
        raise SystemExit(EXIT_INFRA)
    try:
        return load_fixture_file(p)
    except NllError as exc:
        _log.error("%s: %s", p, exc)
        raise SystemExit(EXIT_INFRA)


# ===========================================================================
# Commands
# ===========================================================================

def cmd_check(args: argparse.Namespace, stream: Optional[TextIO] = None) -> int:
    """Borrow-check every fixture named on the command line."""
    stream = stream or sys.stdout
    failures = 0
    for raw in args.fixtures:
        fixture = _load(raw)
        config = fixture.config
        if args.report is not None:
            config = config.replace(report=ReportPolicy(args.report))
        try:
            env = fixture.environment()
            borrow_check(env, fixture.loans, config)
        except BorrowErrors as errs:
            failures += 1
            for err in errs:
                stream.write(f"{fixture.name}: error: {err}\n")
        except BorrowError as err:
            failures += 1
            stream.write(f"{fixture.name}: error: {err}\n")
        except NllError as exc:
            _log.error("%s: %s", fixture.name, exc)
            return EXIT_INFRA
        else:
            stream.write(f"{fixture.name}: ok\n")

    _log.info("%d fixture(s) checked, %d failed", len(args.fixtures), failures)
    return EXIT_ERROR if failures else EXIT_OK


def cmd_dump(args: argparse.Namespace, stream: Optional[TextIO] = None) -> int:
    """Print structural analyses of a fixture's graph."""
    stream = stream or sys.stdout
    fixture = _load(args.fixture)
    try:
        env = fixture.environment()
    except NllError as exc:
        _log.error("%s: %s", fixture.name, exc)
        return EXIT_INFRA

    if args.dot:
        stream.write(fixture.graph.to_dot(title=fixture.name) + "\n")
    if args.dominators:
        stream.write("dominators:\n")
        env.dump_dominators(stream)
    if args.postdominators:
        stream.write("postdominators:\n")
        env.dump_postdominators(stream)
    if args.liveness:
        liveness = Liveness(env, fixture.config)
        stream.write(f"liveness ({liveness.sweeps} sweeps):\n")
        for block in env.reverse_post_order:
            live = sorted(str(v) for v in liveness.live_variables(block))
            stream.write(f"  {env.graph.block_name(block)}: {', '.join(live) or '-'}\n")
    return EXIT_OK


# ===========================================================================
# Parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="nllcheck",
        description=(
            "nllcheck: borrow-checking verifier for CFG fixtures.\n\n"
            "Checks every action against the loans in scope at its point\n"
            "and compares the outcome with the action's expected error flag."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              nllcheck check fixture.json
              nllcheck check a.json b.json --report all
              nllcheck dump fixture.json --dominators --liveness
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    # --- check -------------------------------------------------------------
    p_check = subparsers.add_parser(
        "check",
        help="Borrow-check fixture files.",
    )
    p_check.add_argument("fixtures", nargs="+", metavar="FIXTURE")
    p_check.add_argument(
        "--report",
        choices=[p.value for p in ReportPolicy],
        default=None,
        help="Which mismatches to report (default: fixture config, else last).",
    )
    p_check.set_defaults(func=cmd_check)

    # --- dump --------------------------------------------------------------
    p_dump = subparsers.add_parser(
        "dump",
        help="Print structural analyses of a fixture.",
    )
    p_dump.add_argument("fixture", metavar="FIXTURE")
    p_dump.add_argument("--dominators", action="store_true", help="Dominator tree.")
    p_dump.add_argument("--postdominators", action="store_true", help="Postdominator tree.")
    p_dump.add_argument("--liveness", action="store_true", help="Live-in variables per block.")
    p_dump.add_argument("--dot", action="store_true", help="Graphviz DOT of the CFG.")
    p_dump.set_defaults(func=cmd_dump)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the nllcheck CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
