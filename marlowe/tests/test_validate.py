"""Tests for static contract validation."""

import pytest

from marlowe.bundle import reference
from marlowe.config import EngineConfig
from marlowe.core.types import (
    Assert, Bound, ChoiceId, Choice, CLOSE, Constant, Deposit, DivValue, If,
    Let, LOVELACE, Notify, Pay, PartyPayee, Role, UseValue, ValueGE, ValueGT, When,
    TRUE_OBS, FALSE_OBS,
)
from marlowe.validate import validate_and_report, validate_contract

ALICE = Role("alice")
BOB = Role("bob")
FULL = EngineConfig(allow_let_assert=True)


def messages(findings):
    return [f.message for f in findings]


class TestValidContracts:

    def test_close(self):
        result = validate_contract(CLOSE)
        assert not result.has_errors
        assert not result.has_warnings

    def test_escrow(self):
        contract = When(
            [Deposit(ALICE, ALICE, LOVELACE, 10).then(
                When([Notify(TRUE_OBS).then(Pay(ALICE, PartyPayee(BOB), LOVELACE, 10, CLOSE))],
                     2_000, CLOSE))],
            1_000, CLOSE,
        )
        result = validate_and_report(contract)
        assert not result.has_errors
        assert not result.has_warnings


class TestErrors:

    def test_let_not_allowed_by_default(self):
        result = validate_contract(Let("x", 1, CLOSE))
        assert messages(result.errors) == ["Let is not supported by this engine configuration"]
        assert not validate_contract(Let("x", 1, CLOSE), FULL).has_errors

    def test_assert_not_allowed_by_default(self):
        result = validate_contract(Assert(TRUE_OBS, CLOSE))
        assert result.errors[0].path == "$"
        assert "Assert" in result.errors[0].message

    def test_choice_without_bounds(self):
        contract = When([Choice(ChoiceId("c", ALICE), []).then(CLOSE)], 10, CLOSE)
        result = validate_contract(contract)
        assert result.errors[0].path == "$.when[0].case.choose_between"

    def test_inverted_bound(self):
        contract = When([Choice(ChoiceId("c", ALICE), [Bound(0, 1), Bound(5, 2)]).then(CLOSE)], 10, CLOSE)
        result = validate_contract(contract)
        assert messages(result.errors) == ["Bound [5, 2] is empty"]
        assert result.errors[0].path == "$.when[0].case.choose_between[1]"

    def test_raise_on_error(self):
        with pytest.raises(ValueError, match="validation failed"):
            validate_and_report(Let("x", 1, CLOSE))
        result = validate_and_report(Let("x", 1, CLOSE), raise_on_error=False)
        assert result.has_errors


class TestWarnings:

    def test_non_positive_pay(self):
        result = validate_contract(Pay(ALICE, PartyPayee(BOB), LOVELACE, 0, CLOSE))
        assert result.warnings[0].path == "$.pay"

    def test_non_positive_deposit(self):
        contract = When([Deposit(ALICE, ALICE, LOVELACE, -1).then(CLOSE)], 10, CLOSE)
        assert result_paths(validate_contract(contract)) == ["$.when[0].case.deposits"]

    def test_constant_condition(self):
        result = validate_contract(If(FALSE_OBS, CLOSE, CLOSE))
        assert messages(result.warnings) == ["Condition is constant, the then branch is unreachable"]

    def test_timeouts_must_increase(self):
        inner = When([], 500, CLOSE)
        contract = When([Notify(TRUE_OBS).then(inner)], 1_000, CLOSE)
        assert result_paths(validate_contract(contract)) == ["$.when[0].then.timeout"]

    def test_timeout_checked_through_references(self):
        inner = When([], 500, CLOSE)
        contract = When([Notify(TRUE_OBS).then(reference(inner))], 1_000, CLOSE)
        assert result_paths(validate_contract(contract)) == ["$.when[0].then.timeout"]

    def test_duplicate_deposit(self):
        contract = When([
            Deposit(ALICE, ALICE, LOVELACE, 10).then(CLOSE),
            Deposit(ALICE, ALICE, LOVELACE, 10).then(CLOSE),
        ], 10, CLOSE)
        result = validate_contract(contract)
        assert messages(result.warnings) == ["Deposit duplicates case 0 and can never be chosen"]

    def test_shadowing_and_unbound(self):
        contract = Let("x", 1, Let("x", UseValue("y"), CLOSE))
        result = validate_contract(contract, FULL)
        assert sorted(messages(result.warnings)) == [
            "'y' is not bound by an enclosing Let",
            "Let shadows the earlier binding of 'x'",
        ]

    def test_bound_value_in_scope(self):
        contract = Let("x", 1, Pay(ALICE, PartyPayee(BOB), LOVELACE, UseValue("x"), CLOSE))
        assert not validate_contract(contract, FULL).has_warnings

    def test_division_by_zero(self):
        contract = Pay(ALICE, PartyPayee(BOB), LOVELACE, DivValue(10, 0), CLOSE)
        assert result_paths(validate_contract(contract)) == ["$.pay.by"]

    def test_false_notify_and_assert(self):
        notify = When([Notify(FALSE_OBS).then(CLOSE)], 10, CLOSE)
        assert messages(validate_contract(notify).warnings) == ["Notify condition is always false"]
        assertion = Assert(FALSE_OBS, CLOSE)
        assert messages(validate_contract(assertion, FULL).warnings) == ["Assertion always fails"]

    def test_comparison_operands(self):
        contract = When([Notify(ValueGT(UseValue("z"), 0)).then(CLOSE)], 10, CLOSE)
        assert result_paths(validate_contract(contract)) == ["$.when[0].case.notify_if.value"]

    def test_comparison_right_operand_path(self):
        contract = When([Notify(ValueGE(0, UseValue("z"))).then(CLOSE)], 10, CLOSE)
        assert result_paths(validate_contract(contract)) == ["$.when[0].case.notify_if.ge_than"]


def result_paths(result):
    return [w.path for w in result.warnings]
