# tests/test_borrowck.py
"""
Tests for the path-conflict checker and the borrow-check driver.
"""

import pytest

from nllcheck.borrowck import BorrowCheck, borrow_check, check_point, collect_mismatches
from nllcheck.config import CheckerConfig, ReportPolicy
from nllcheck.errors import BorrowError, BorrowErrors, ConflictKind, InvariantViolation
from nllcheck.ir import (
    Action,
    Assign,
    Borrow,
    BorrowKind,
    Constraint,
    Drop,
    Init,
    Noop,
    Outlives,
    Point,
    StorageDead,
    Use,
    Variable,
)
from nllcheck.loans import LoanTable
from tests.conftest import P, loan, make_env

MUT = BorrowKind.MUT
SHARED = BorrowKind.SHARED

AT = Point(0, 1, "START")


def checker(*loans):
    return BorrowCheck(make_env([Noop()]), AT, list(loans))


# ===========================================================================
# Freeze / intersect relations
# ===========================================================================

class TestRelations:

    @pytest.mark.parametrize("text", ["a", "a.b", "a.b.c", "r.*", "r.*.c", "s.*.c"])
    def test_frozen_by_borrow_of_contains_path(self, text):
        assert P(text) in checker().frozen_by_borrow_of(P(text))

    def test_frozen_by_borrow_of_struct_chain(self):
        assert checker().frozen_by_borrow_of(P("a.b.c")) == [P("a.b.c"), P("a.b"), P("a")]

    def test_frozen_by_borrow_of_stops_at_reference(self):
        assert checker().frozen_by_borrow_of(P("r.*")) == [P("r.*")]
        assert checker().frozen_by_borrow_of(P("r.*.c")) == [P("r.*.c"), P("r.*")]

    @pytest.mark.parametrize("text", ["u.f", "t.f"])
    def test_frozen_by_borrow_of_unit_or_bound(self, text):
        with pytest.raises(InvariantViolation):
            checker().frozen_by_borrow_of(P(text))

    def test_intersecting_loans(self):
        bc = checker(loan("a.b"), loan("x"), loan("a.b.c"))
        found = list(bc.find_loans_that_intersect(P("a.b")))
        assert [str(l.path) for l in found] == ["a.b", "a.b.c"]

    def test_loan_of_prefix_intersects(self):
        bc = checker(loan("a"))
        assert [l.path for l in bc.find_loans_that_intersect(P("a.b.c"))] == [P("a")]

    def test_first_freezing_loan_wins(self):
        bc = checker(loan("x"), loan("a.b.c", MUT), loan("a.b"))
        assert bc.find_loan_that_freezes(P("a")).path == P("a.b.c")

    def test_nothing_freezes_unrelated_path(self):
        assert checker(loan("a.b")).find_loan_that_freezes(P("x")) is None


# ===========================================================================
# Scenarios
# ===========================================================================

class TestScenarios:

    def test_a_write_blocked_by_field_borrow(self):
        bc = checker(loan("a.b", SHARED))
        with pytest.raises(BorrowError) as exc:
            bc.check_action(Assign(P("a"), P("x")))
        assert exc.value.kind is ConflictKind.WRITE
        assert str(exc.value) == (
            "point (START @ 1) cannot write a because a.b is borrowed "
            "(at point `(START @ 0)`)"
        )

    def test_b_write_to_reference_allowed(self):
        bc = checker(loan("r.*", MUT))
        bc.check_write(P("r"))
        bc.check_action(Assign(P("r"), P("s")))

    def test_c_read_blocked_by_mutable_field_loan(self):
        with pytest.raises(BorrowError) as exc:
            checker(loan("a.b", MUT)).check_read(P("a.b.c"))
        assert exc.value.kind is ConflictKind.READ
        assert "cannot read a.b.c because a.b is mutably borrowed" in str(exc.value)

    def test_c_read_allowed_under_shared_loan(self):
        checker(loan("a.b", SHARED)).check_read(P("a.b.c"))

    def test_read_of_container_blocked_by_mutable_field_loan(self):
        with pytest.raises(BorrowError):
            checker(loan("a.b", MUT)).check_read(P("a"))

    @pytest.mark.parametrize("kind", [SHARED, MUT])
    def test_d_write_and_move_of_borrowed_path_both_fail(self, kind):
        bc = checker(loan("a.b", kind))
        with pytest.raises(BorrowError):
            bc.check_write(P("a.b"))
        with pytest.raises(BorrowError) as exc:
            bc.check_move(P("a.b"))
        assert exc.value.kind is ConflictKind.MOVE
        assert "cannot move a.b because a.b is borrowed" in str(exc.value)

    @pytest.mark.parametrize("kind", [SHARED, MUT])
    def test_d_move_of_mut_reference_stricter_than_write(self, kind):
        bc = checker(loan("r.*", kind))
        bc.check_write(P("r"))
        with pytest.raises(BorrowError):
            bc.check_move(P("r"))

    def test_move_of_shared_reference_allowed(self):
        checker(loan("s.*")).check_move(P("s"))

    def test_storage_dead_blocked_by_interior_loan(self):
        with pytest.raises(BorrowError) as exc:
            checker(loan("a.b")).check_action(StorageDead(Variable("a")))
        assert exc.value.kind is ConflictKind.STORAGE_DEAD
        assert str(exc.value).startswith("point (START @ 1) cannot kill storage for a because a.b")

    def test_storage_dead_allowed_with_deref_loan(self):
        checker(loan("r.*", MUT)).check_action(StorageDead(Variable("r")))


class TestCheckAction:

    def test_mutable_borrow_checks_source_as_write(self):
        bc = checker(loan("a.b", SHARED))
        bc.check_action(Borrow(P("x"), "r2", SHARED, P("a.b")))
        with pytest.raises(BorrowError) as exc:
            bc.check_action(Borrow(P("x"), "r2", MUT, P("a.b")))
        assert exc.value.kind is ConflictKind.WRITE

    def test_init_reads_every_source(self):
        bc = checker(loan("x.b", MUT))
        with pytest.raises(BorrowError) as exc:
            bc.check_action(Init(P("a"), (P("a"), P("x"))))
        assert exc.value.kind is ConflictKind.READ

    @pytest.mark.parametrize("action", [Noop(), Constraint(Outlives("r0", "r1"))])
    def test_actions_without_accesses(self, action):
        checker(loan("a", MUT)).check_action(action)

    def test_use_is_a_read_and_drop_a_move(self):
        bc = checker(loan("a.b", SHARED))
        bc.check_action(Use(P("a")))
        with pytest.raises(BorrowError):
            bc.check_action(Drop(P("a")))


# ===========================================================================
# Driver
# ===========================================================================

def _table(env, *entries):
    """Loan table with each ``(loan, action_index)`` live in START."""
    return LoanTable.from_ranges(
        (l, [env.point(0, index)]) for l, index in entries
    )


class TestDriver:

    def test_check_point_outcomes(self):
        env = make_env([Noop()])
        bad = Action(Assign(P("a"), P("x")))
        expected = Action(Assign(P("a"), P("x")), should_have_error=True)
        loans = [loan("a.b")]
        assert check_point(env, AT, bad, loans).kind is ConflictKind.WRITE
        assert check_point(env, AT, expected, loans) is None
        assert check_point(env, AT, Action(Noop()), loans) is None
        missing = check_point(env, AT, Action(Noop(), True), loans)
        assert str(missing) == "point (START @ 1) had no error, but should have"

    def test_clean_function_passes(self):
        env = make_env([Assign(P("a"), P("x")), Use(P("a"))])
        assert borrow_check(env, LoanTable()) is None

    def test_expected_error_passes(self):
        env = make_env([Action(Assign(P("a"), P("x")), should_have_error=True)])
        assert borrow_check(env, _table(env, (loan("a.b"), 1))) is None

    def test_missing_expected_error(self):
        env = make_env([Action(Use(P("a")), should_have_error=True)])
        with pytest.raises(BorrowError) as exc:
            borrow_check(env, LoanTable())
        assert exc.value.kind is ConflictKind.NO_ERROR

    def test_e_last_mismatch_wins(self):
        env = make_env([Assign(P("a"), P("x")), Action(Use(P("a")), should_have_error=True)])
        table = _table(env, (loan("a.b"), 1))
        with pytest.raises(BorrowError) as exc:
            borrow_check(env, table)
        assert exc.value.kind is ConflictKind.NO_ERROR
        assert exc.value.point == Point(0, 2)

    def test_e_matching_action_does_not_clear_mismatch(self):
        env = make_env([
            Assign(P("a"), P("x")),
            Action(Assign(P("a"), P("x")), should_have_error=True),
        ])
        table = _table(env, (loan("a.b"), 1), (loan("a.b"), 2))
        with pytest.raises(BorrowError) as exc:
            borrow_check(env, table)
        assert exc.value.point == Point(0, 1)

    def test_first_and_all_policies(self):
        env = make_env([Assign(P("a"), P("x")), Action(Use(P("a")), should_have_error=True)])
        table = _table(env, (loan("a.b"), 1))
        with pytest.raises(BorrowError) as exc:
            borrow_check(env, table, CheckerConfig(report=ReportPolicy.FIRST))
        assert exc.value.kind is ConflictKind.WRITE
        with pytest.raises(BorrowErrors) as many:
            borrow_check(env, table, CheckerConfig(report=ReportPolicy.ALL))
        assert [e.kind for e in many.value] == [ConflictKind.WRITE, ConflictKind.NO_ERROR]
        assert len(collect_mismatches(env, table)) == 2

    def test_idempotent(self):
        env = make_env([Assign(P("a"), P("x"))])
        table = _table(env, (loan("a.b"), 1))
        first = collect_mismatches(env, table)
        second = collect_mismatches(env, table)
        assert [str(e) for e in first] == [str(e) for e in second]

    def test_invariant_violation_propagates(self):
        env = make_env([Assign(P("x"), P("a"))])
        table = _table(env, (loan("u.f"), 1))
        with pytest.raises(InvariantViolation):
            borrow_check(env, table)
