"""Tests for the contract reducer, input application and transactions."""

import pytest

from marlowe.config import EngineConfig
from marlowe.core.errors import (
    AmbiguousTimeIntervalError, ApplyNoMatchError, HashMismatchError,
    IntervalInPastError, InvalidIntervalError, UnsupportedConstructError,
    UselessTransactionError,
)
from marlowe.core.semantics import (
    AmbiguousTimeInterval, NotReduced, Reduced,
    apply_all_inputs, apply_input, compute_transaction, fix_interval,
    next_timeout, reduce_contract_step, reduce_contract_until_quiescent,
)
from marlowe.core.state import (
    Assertion, IChoice, IDeposit, INotify, MerkleizedInput, NonPositiveDeposit,
    NonPositivePay, PartialPay, Payment, Shadow, State, TimeInterval,
    Transaction, make_environment,
)
from marlowe.core.types import (
    AccountPayee, Assert, AvailableMoney, Bound, ChoiceId, Choice, Close, CLOSE,
    Deposit, If, Let, Notify, Pay, PartyPayee, Reference, UseValue, ValueGE, When,
    TRUE_OBS, FALSE_OBS,
)

FAR_FUTURE = 10 ** 13


# =============================================================================
# Single steps
# =============================================================================

class TestClose:
    """Close refunds accounts one at a time."""

    def test_close_without_accounts_is_not_reduced(self, env, empty):
        assert reduce_contract_step(env, empty, CLOSE) == NotReduced()

    def test_close_refunds_first_account(self, env, funded, alice, bob, ada, dollar):
        result = reduce_contract_step(env, funded, CLOSE)
        assert isinstance(result, Reduced)
        assert result.payment == Payment(alice, PartyPayee(alice), ada, 100)
        assert result.continuation == CLOSE
        assert result.state.accounts == {(bob, dollar): 20}

    def test_close_exhaustion(self, env, alice, bob, carol, ada, dollar):
        state = State(accounts={(alice, ada): 1, (bob, ada): 2, (carol, dollar): 3})
        steps = 0
        contract = CLOSE
        while True:
            result = reduce_contract_step(env, state, contract)
            if isinstance(result, NotReduced):
                break
            steps += 1
            assert result.payment is not None
            state, contract = result.state, result.continuation
        assert steps == 3
        assert state.accounts == {}

    def test_close_until_quiescent_pays_in_order(self, env, funded, alice, bob, ada, dollar):
        result = reduce_contract_until_quiescent(env, funded, CLOSE)
        assert result.reduced
        assert [p.amount for p in result.payments] == [100, 20]
        assert [p.from_account for p in result.payments] == [alice, bob]
        assert result.state.accounts == {}


class TestPay:
    """Pay debits the source account and emits a payment."""

    @pytest.mark.parametrize("balance", [0, 5, 10])
    @pytest.mark.parametrize("amount", [-1, 0, 3, 10, 15])
    def test_pay_correctness(self, env, alice, bob, ada, balance, amount):
        state = State(accounts={(alice, ada): balance})
        contract = Pay(alice, PartyPayee(bob), ada, amount, CLOSE)
        result = reduce_contract_step(env, state, contract)
        assert isinstance(result, Reduced)
        assert result.continuation == CLOSE

        paid = min(balance, max(amount, 0))
        if amount <= 0:
            assert isinstance(result.warning, NonPositivePay)
            assert result.payment is None
            assert result.state == state
            return
        assert result.payment.amount == paid
        assert result.state.available_money(alice, ada) == balance - paid
        if paid < amount:
            assert result.warning == PartialPay(alice, PartyPayee(bob), ada, amount, paid)
        else:
            assert result.warning is None

    def test_pay_to_account_credits_payee(self, env, funded, alice, bob, ada):
        contract = Pay(alice, AccountPayee(bob), ada, 30, CLOSE)
        result = reduce_contract_step(env, funded, contract)
        assert result.state.available_money(alice, ada) == 70
        assert result.state.available_money(bob, ada) == 30
        assert result.payment == Payment(alice, AccountPayee(bob), ada, 30)

    def test_pay_to_party_leaves_contract(self, env, funded, alice, bob, ada):
        contract = Pay(alice, PartyPayee(bob), ada, 30, CLOSE)
        result = reduce_contract_step(env, funded, contract)
        assert result.state.available_money(alice, ada) == 70
        assert result.state.available_money(bob, ada) == 0

    def test_empty_account_is_removed(self, env, funded, alice, bob, ada):
        contract = Pay(alice, PartyPayee(bob), ada, 100, CLOSE)
        result = reduce_contract_step(env, funded, contract)
        assert (alice, ada) not in result.state.accounts


class TestIf:

    def test_branches(self, env, empty):
        waiting = When([], FAR_FUTURE, CLOSE)
        assert reduce_contract_step(env, empty, If(TRUE_OBS, CLOSE, waiting)).continuation == CLOSE
        assert reduce_contract_step(env, empty, If(FALSE_OBS, CLOSE, waiting)).continuation == waiting

    def test_branch_on_state(self, env, funded, alice, ada):
        contract = If(ValueGE(AvailableMoney(alice, ada), 100), CLOSE, When([], FAR_FUTURE, CLOSE))
        result = reduce_contract_step(env, funded, contract)
        assert result.continuation == CLOSE
        assert result.state == funded


class TestWhenBoundary:
    """Timeout T against interval [a, b]."""

    @pytest.mark.parametrize("a,b,timeout,expected", [
        (0, 9, 10, "not_reduced"),        # b < T
        (10, 20, 10, "timed_out"),        # T <= a
        (11, 20, 10, "timed_out"),
        (9, 10, 10, "ambiguous"),         # a < T <= b
        (0, 20, 10, "ambiguous"),
    ])
    def test_boundary(self, empty, a, b, timeout, expected):
        env = make_environment(a, b)
        fallback = When([], FAR_FUTURE, CLOSE)
        result = reduce_contract_step(env, empty, When([], timeout, fallback))
        if expected == "not_reduced":
            assert result == NotReduced()
        elif expected == "timed_out":
            assert result == Reduced(empty, fallback)
        else:
            assert result == AmbiguousTimeInterval(timeout)

    def test_ambiguous_error_keeps_earlier_effects(self, funded, alice, bob, ada):
        env = make_environment(0, 20)
        contract = Pay(alice, PartyPayee(bob), ada, 10, When([], 10, CLOSE))
        with pytest.raises(AmbiguousTimeIntervalError) as excinfo:
            reduce_contract_until_quiescent(env, funded, contract)
        assert excinfo.value.timeout == 10
        assert excinfo.value.payments == [Payment(alice, PartyPayee(bob), ada, 10)]


class TestLetAssert:
    """Let and Assert are rejected unless enabled."""

    def test_let_unsupported_by_default(self, env, empty):
        with pytest.raises(UnsupportedConstructError) as excinfo:
            reduce_contract_step(env, empty, Let("x", 1, CLOSE))
        assert excinfo.value.construct == "Let"

    def test_assert_unsupported_by_default(self, env, empty):
        with pytest.raises(UnsupportedConstructError):
            reduce_contract_until_quiescent(env, empty, Assert(TRUE_OBS, CLOSE))

    def test_let_binds_and_shadows(self, env, empty):
        config = EngineConfig(allow_let_assert=True)
        contract = Let("x", 1, Let("x", UseValue("x").add(1), CLOSE))
        result = reduce_contract_until_quiescent(env, empty, contract, config)
        assert result.state.bound_values == {"x": 2}
        assert result.warnings == (Shadow("x", 1, 2),)

    def test_failed_assert_warns(self, env, empty):
        config = EngineConfig(allow_let_assert=True)
        result = reduce_contract_until_quiescent(env, empty, Assert(FALSE_OBS, CLOSE), config)
        assert result.warnings == (Assertion(),)


class TestQuiescence:

    def test_quiescent_contract_is_unchanged(self, env, funded, alice, ada):
        contract = When([Deposit(alice, alice, ada, 10).then(CLOSE)], FAR_FUTURE, CLOSE)
        result = reduce_contract_until_quiescent(env, funded, contract)
        assert not result.reduced
        assert result.state == funded
        assert result.continuation == contract
        assert result.payments == ()
        assert result.warnings == ()

    def test_reference_in_contract_position_is_rejected(self, env, empty):
        with pytest.raises(TypeError):
            reduce_contract_step(env, empty, Reference("abc"))


# =============================================================================
# Inputs
# =============================================================================

class TestApplyInput:
    """Applying single inputs to a waiting When."""

    def test_deposit_matches_evaluated_amount(self, env, empty, alice, bob, ada):
        contract = When([Deposit(bob, alice, ada, 10).then(CLOSE)], FAR_FUTURE, CLOSE)
        warning, state, cont = apply_input(env, empty, IDeposit(bob, alice, ada, 10), contract)
        assert warning is None
        assert state.available_money(bob, ada) == 10
        assert cont == CLOSE

    def test_deposit_with_wrong_amount_does_not_match(self, env, empty, alice, ada):
        contract = When([Deposit(alice, alice, ada, 10).then(CLOSE)], FAR_FUTURE, CLOSE)
        with pytest.raises(ApplyNoMatchError):
            apply_input(env, empty, IDeposit(alice, alice, ada, 11), contract)

    def test_non_positive_deposit_warns(self, env, empty, alice, ada):
        contract = When([Deposit(alice, alice, ada, 0).then(CLOSE)], FAR_FUTURE, CLOSE)
        warning, state, _ = apply_input(env, empty, IDeposit(alice, alice, ada, 0), contract)
        assert warning == NonPositiveDeposit(alice, alice, ada, 0)
        assert state.accounts == {}

    def test_choice_in_bounds(self, env, empty, alice):
        choice_id = ChoiceId("price", alice)
        contract = When([Choice(choice_id, [Bound(0, 5), Bound(10, 20)]).then(CLOSE)],
                        FAR_FUTURE, CLOSE)
        _, state, _ = apply_input(env, empty, IChoice(choice_id, 12), contract)
        assert state.choices == {choice_id: 12}
        with pytest.raises(ApplyNoMatchError):
            apply_input(env, empty, IChoice(choice_id, 7), contract)

    def test_notify_requires_true_observation(self, env, empty):
        contract = When([Notify(FALSE_OBS).then(CLOSE)], FAR_FUTURE, CLOSE)
        with pytest.raises(ApplyNoMatchError):
            apply_input(env, empty, INotify(), contract)

    def test_first_matching_case_wins(self, env, empty):
        second = When([], FAR_FUTURE, CLOSE)
        contract = When([Notify(TRUE_OBS).then(CLOSE), Notify(TRUE_OBS).then(second)],
                        FAR_FUTURE, CLOSE)
        _, _, cont = apply_input(env, empty, INotify(), contract)
        assert cont == CLOSE

    def test_only_when_accepts_input(self, env, empty):
        with pytest.raises(ApplyNoMatchError):
            apply_input(env, empty, INotify(), CLOSE)

    def test_merkleized_case_requires_matching_hash(self, env, empty):
        contract = When([Notify(TRUE_OBS).then(Reference("abc"))], FAR_FUTURE, CLOSE)
        continuation = When([], FAR_FUTURE, CLOSE)

        _, _, cont = apply_input(env, empty, MerkleizedInput(INotify(), "abc", continuation), contract)
        assert cont == continuation

        with pytest.raises(HashMismatchError):
            apply_input(env, empty, MerkleizedInput(INotify(), "def", continuation), contract)
        with pytest.raises(HashMismatchError):
            apply_input(env, empty, INotify(), contract)

    def test_merkleized_input_on_inline_case(self, env, empty):
        contract = When([Notify(TRUE_OBS).then(CLOSE)], FAR_FUTURE, CLOSE)
        with pytest.raises(HashMismatchError):
            apply_input(env, empty, MerkleizedInput(INotify(), "abc", CLOSE), contract)


class TestApplyAllInputs:

    def test_deposit_then_close_refunds(self, env, empty, alice, ada):
        contract = When([Deposit(alice, alice, ada, 10).then(CLOSE)], FAR_FUTURE, CLOSE)
        result = apply_all_inputs(env, empty, contract, [IDeposit(alice, alice, ada, 10)])
        assert result.reduced
        assert result.continuation == CLOSE
        assert result.payments == (Payment(alice, PartyPayee(alice), ada, 10),)
        assert result.state.accounts == {}

    def test_sequence_of_inputs(self, env, empty, alice, bob, ada):
        contract = When(
            [Deposit(alice, alice, ada, 10).then(
                When([Deposit(bob, bob, ada, 5).then(CLOSE)], FAR_FUTURE, CLOSE))],
            FAR_FUTURE, CLOSE,
        )
        inputs = [IDeposit(alice, alice, ada, 10), IDeposit(bob, bob, ada, 5)]
        result = apply_all_inputs(env, empty, contract, inputs)
        assert [p.amount for p in result.payments] == [10, 5]

    def test_no_inputs_only_reduces(self, env, funded):
        result = apply_all_inputs(env, funded, CLOSE, [])
        assert result.reduced
        assert len(result.payments) == 2


# =============================================================================
# Transactions
# =============================================================================

class TestFixInterval:

    def test_invalid_interval(self):
        with pytest.raises(InvalidIntervalError):
            TimeInterval(10, 5)

    def test_interval_in_past(self):
        with pytest.raises(IntervalInPastError):
            fix_interval(TimeInterval(0, 5), State(min_time=10))

    def test_trims_to_min_time(self):
        env, state = fix_interval(TimeInterval(0, 50), State(min_time=10))
        assert env.time_interval == TimeInterval(10, 50)
        assert state.min_time == 10

    def test_advances_min_time(self):
        env, state = fix_interval(TimeInterval(20, 50), State(min_time=10))
        assert env.time_interval == TimeInterval(20, 50)
        assert state.min_time == 20


class TestComputeTransaction:

    def test_deposit_transaction(self, empty, alice, ada):
        contract = When([Deposit(alice, alice, ada, 10).then(CLOSE)], FAR_FUTURE, CLOSE)
        tx = Transaction(TimeInterval(100, 200), [IDeposit(alice, alice, ada, 10)])
        output = compute_transaction(tx, empty, contract)
        assert output.contract == CLOSE
        assert output.payments == (Payment(alice, PartyPayee(alice), ada, 10),)
        assert output.state.min_time == 100
        assert output.environment == make_environment(100, 200)

    def test_useless_transaction(self, empty, alice, ada):
        contract = When([Deposit(alice, alice, ada, 10).then(CLOSE)], FAR_FUTURE, CLOSE)
        with pytest.raises(UselessTransactionError):
            compute_transaction(Transaction(TimeInterval(100, 200)), empty, contract)

    def test_closing_a_funded_contract_is_useful(self, funded):
        output = compute_transaction(Transaction(TimeInterval(0, 10)), funded, Close())
        assert len(output.payments) == 2

    def test_timeout_transaction(self, empty):
        contract = When([], 50, CLOSE)
        output = compute_transaction(Transaction(TimeInterval(60, 70)), empty, contract)
        assert output.contract == CLOSE


class TestNextTimeout:

    def test_close_has_no_timeout(self):
        assert next_timeout(CLOSE, 0) is None

    def test_first_future_timeout(self):
        contract = When([], 100, When([], 200, CLOSE))
        assert next_timeout(contract, 0) == 100
        assert next_timeout(contract, 100) == 200
        assert next_timeout(contract, 200) is None

    def test_through_if_takes_minimum(self):
        contract = If(TRUE_OBS, When([], 300, CLOSE), When([], 150, CLOSE))
        assert next_timeout(contract, 0) == 150

    def test_through_pay(self, alice, bob, ada):
        contract = Pay(alice, PartyPayee(bob), ada, 1, When([], 40, CLOSE))
        assert next_timeout(contract, 0) == 40
