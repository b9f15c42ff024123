"""
Contract reduction semantics.

``reduce_contract_step`` is the single-step transition function and
``reduce_contract_until_quiescent`` drives it until the contract needs
external input or time to pass. Input application and transaction
computation are layered on top of the same loop.

Everything here is deterministic: identical (environment, state, contract)
always reduce identically.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from ..config import DEFAULT_CONFIG, EngineConfig
from .errors import (
    AmbiguousTimeIntervalError,
    ApplyNoMatchError,
    HashMismatchError,
    IntervalInPastError,
    UnsupportedConstructError,
    UselessTransactionError,
)
from .evaluate import eval_observation, eval_value
from .state import (
    Environment, State, TimeInterval, Payment, Transaction, TransactionOutput,
    NonPositivePay, PartialPay, Shadow, Assertion, NonPositiveDeposit,
    IDeposit, IChoice, INotify, MerkleizedInput, Input, InputContent,
    input_content,
)
from .types import (
    Contract, Close, Pay, If, When, Let, Assert, Case, Reference,
    Action, Deposit, Choice, Notify, Bound,
    AccountPayee, PartyPayee,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Step results
# =============================================================================

@dataclass(frozen=True)
class NotReduced:
    """The contract needs external input, more time, or is fully closed."""


@dataclass(frozen=True)
class Reduced:
    state: State
    continuation: Contract
    payment: Optional[Payment] = None
    warning: Optional[object] = None


@dataclass(frozen=True)
class AmbiguousTimeInterval:
    """The window contains the timeout of the When being reduced."""
    timeout: int


StepResult = Union[NotReduced, Reduced, AmbiguousTimeInterval]


@dataclass(frozen=True)
class ReduceResult:
    reduced: bool
    warnings: Tuple[object, ...]
    payments: Tuple[Payment, ...]
    state: State
    continuation: Contract


# =============================================================================
# Single step
# =============================================================================

def reduce_contract_step(
    env: Environment,
    state: State,
    contract: Contract,
    config: EngineConfig = DEFAULT_CONFIG,
) -> StepResult:
    """Apply one reduction step without external input."""
    if isinstance(contract, Close):
        return _reduce_close(state)
    elif isinstance(contract, Pay):
        return _reduce_pay(env, state, contract)
    elif isinstance(contract, If):
        branch = contract.then if eval_observation(env, state, contract.observation) else contract.else_
        return Reduced(state, branch)
    elif isinstance(contract, When):
        interval = env.time_interval
        if interval.to < contract.deadline:
            return NotReduced()
        if contract.deadline <= interval.from_:
            return Reduced(state, contract.contingency)
        return AmbiguousTimeInterval(contract.deadline)
    elif isinstance(contract, Let):
        if not config.allow_let_assert:
            raise UnsupportedConstructError("Let")
        return _reduce_let(env, state, contract)
    elif isinstance(contract, Assert):
        if not config.allow_let_assert:
            raise UnsupportedConstructError("Assert")
        warning = None if eval_observation(env, state, contract.observation) else Assertion()
        return Reduced(state, contract.then, warning=warning)
    elif isinstance(contract, Reference):
        raise TypeError(f"Reference {contract.label} is only valid as a case continuation")
    raise TypeError(f"Unknown contract: {contract!r}")


def _reduce_close(state: State) -> StepResult:
    for party, token, amount in state.iter_accounts():
        payment = Payment(party, PartyPayee(party), token, amount)
        return Reduced(state.with_balance(party, token, 0), Close(), payment=payment)
    return NotReduced()


def _reduce_pay(env: Environment, state: State, contract: Pay) -> StepResult:
    amount = eval_value(env, state, contract.value)
    if amount <= 0:
        warning = NonPositivePay(contract.from_account, contract.to, contract.token, amount)
        return Reduced(state, contract.then, warning=warning)

    balance = state.available_money(contract.from_account, contract.token)
    paid = min(balance, amount)
    new_state = state.with_balance(contract.from_account, contract.token, balance - paid)
    if isinstance(contract.to, AccountPayee):
        new_state = new_state.add_money(contract.to.party, contract.token, paid)

    warning = None
    if paid < amount:
        warning = PartialPay(contract.from_account, contract.to, contract.token, amount, paid)
    payment = Payment(contract.from_account, contract.to, contract.token, paid)
    return Reduced(new_state, contract.then, payment=payment, warning=warning)


def _reduce_let(env: Environment, state: State, contract: Let) -> StepResult:
    value = eval_value(env, state, contract.value)
    warning = None
    if contract.value_id in state.bound_values:
        warning = Shadow(contract.value_id, state.bound_values[contract.value_id], value)
    return Reduced(state.with_bound_value(contract.value_id, value), contract.then, warning=warning)


# =============================================================================
# Driving loop
# =============================================================================

def reduce_contract_until_quiescent(
    env: Environment,
    state: State,
    contract: Contract,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ReduceResult:
    """
    Repeat reduction steps until the contract is quiescent.

    Raises AmbiguousTimeIntervalError when a When timeout falls inside the
    window; the error carries the warnings and payments of the steps that
    succeeded before it.
    """
    reduced = False
    warnings: List[object] = []
    payments: List[Payment] = []

    while True:
        result = reduce_contract_step(env, state, contract, config)
        if isinstance(result, NotReduced):
            return ReduceResult(reduced, tuple(warnings), tuple(payments), state, contract)
        if isinstance(result, AmbiguousTimeInterval):
            logger.debug("Ambiguous interval %s for timeout %s", env.time_interval, result.timeout)
            raise AmbiguousTimeIntervalError(result.timeout, env.time_interval, warnings, payments)

        reduced = True
        if result.payment is not None:
            payments.append(result.payment)
        if result.warning is not None:
            warnings.append(result.warning)
        logger.debug("Reduced %s -> %s", type(contract).__name__, type(result.continuation).__name__)
        state = result.state
        contract = result.continuation


# =============================================================================
# Input application
# =============================================================================

def in_bounds(number: int, bounds: Sequence[Bound]) -> bool:
    return any(bound.contains(number) for bound in bounds)


def _apply_action(env: Environment, state: State, content: InputContent, action: Action):
    """Return (warning, new_state) when the input satisfies the action, else None."""
    if isinstance(content, IDeposit) and isinstance(action, Deposit):
        if (content.into_account == action.into_account
                and content.party == action.party
                and content.token == action.token
                and content.amount == eval_value(env, state, action.value)):
            warning = None
            if content.amount <= 0:
                warning = NonPositiveDeposit(content.party, content.into_account,
                                             content.token, content.amount)
            return warning, state.add_money(content.into_account, content.token, content.amount)
        return None
    elif isinstance(content, IChoice) and isinstance(action, Choice):
        if content.choice_id == action.choice_id and in_bounds(content.chosen, action.bounds):
            return None, state.with_choice(content.choice_id, content.chosen)
        return None
    elif isinstance(content, INotify) and isinstance(action, Notify):
        if eval_observation(env, state, action.observation):
            return None, state
        return None
    return None


def _case_continuation(input_: Input, case: Case) -> Contract:
    if isinstance(case.then, Reference):
        if not isinstance(input_, MerkleizedInput):
            raise HashMismatchError(case.then.label, None)
        if input_.continuation_hash != case.then.label:
            raise HashMismatchError(case.then.label, input_.continuation_hash)
        return input_.continuation
    if isinstance(input_, MerkleizedInput):
        raise HashMismatchError(None, input_.continuation_hash)
    return case.then


def apply_input(
    env: Environment,
    state: State,
    input_: Input,
    contract: Contract,
) -> Tuple[Optional[object], State, Contract]:
    """Apply one input to a quiescent When; the first matching case wins."""
    if not isinstance(contract, When):
        raise ApplyNoMatchError(input_, contract)
    content = input_content(input_)
    for case in contract.cases:
        applied = _apply_action(env, state, content, case.action)
        if applied is None:
            continue
        warning, new_state = applied
        return warning, new_state, _case_continuation(input_, case)
    raise ApplyNoMatchError(input_, contract)


def apply_all_inputs(
    env: Environment,
    state: State,
    contract: Contract,
    inputs: Sequence[Input],
    config: EngineConfig = DEFAULT_CONFIG,
) -> ReduceResult:
    """Alternate reduction to quiescence with input application."""
    changed = False
    warnings: List[object] = []
    payments: List[Payment] = []

    pending = list(inputs)
    while True:
        try:
            result = reduce_contract_until_quiescent(env, state, contract, config)
        except AmbiguousTimeIntervalError as err:
            raise AmbiguousTimeIntervalError(
                err.timeout, err.interval, warnings + err.warnings, payments + err.payments
            ) from err
        changed = changed or result.reduced
        warnings.extend(result.warnings)
        payments.extend(result.payments)
        if not pending:
            return ReduceResult(changed, tuple(warnings), tuple(payments),
                                result.state, result.continuation)

        warning, state, contract = apply_input(env, result.state, pending.pop(0), result.continuation)
        changed = True
        if warning is not None:
            warnings.append(warning)


# =============================================================================
# Transactions
# =============================================================================

def fix_interval(interval: TimeInterval, state: State) -> Tuple[Environment, State]:
    """Trim the interval to the state's minimum time and advance it."""
    if interval.to < state.min_time:
        raise IntervalInPastError(state.min_time, interval.from_, interval.to)
    low = max(interval.from_, state.min_time)
    return Environment(TimeInterval(low, interval.to)), state.with_min_time(low)


def compute_transaction(
    tx: Transaction,
    state: State,
    contract: Contract,
    config: EngineConfig = DEFAULT_CONFIG,
) -> TransactionOutput:
    env, fixed_state = fix_interval(tx.interval, state)
    result = apply_all_inputs(env, fixed_state, contract, tx.inputs, config)
    if not result.reduced and (not isinstance(contract, Close) or not state.accounts):
        raise UselessTransactionError()
    return TransactionOutput(
        warnings=result.warnings,
        payments=result.payments,
        state=result.state,
        contract=result.continuation,
        environment=env,
    )


def next_timeout(contract: Contract, min_time: int) -> Optional[int]:
    """Earliest When timeout after min_time reachable without input."""
    if isinstance(contract, Close):
        return None
    elif isinstance(contract, (Pay, Let, Assert)):
        return next_timeout(contract.then, min_time)
    elif isinstance(contract, If):
        candidates = [
            t for t in (next_timeout(contract.then, min_time),
                        next_timeout(contract.else_, min_time))
            if t is not None
        ]
        return min(candidates) if candidates else None
    elif isinstance(contract, When):
        if min_time < contract.deadline:
            return contract.deadline
        return next_timeout(contract.contingency, min_time)
    raise TypeError(f"Unknown contract: {contract!r}")
