"""
Ledger-like state threaded through a reduction, and the records the reducer
emits (payments, warnings) or consumes (environment, inputs, transactions).

State is a frozen value: every update returns a new State and the mappings
held by a State are never modified after construction.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, Optional, Tuple, Union

from .errors import InvalidIntervalError
from .types import ChoiceId, Contract, Party, Payee, Token


# =============================================================================
# Environment
# =============================================================================

@dataclass(frozen=True)
class TimeInterval:
    """Inclusive POSIX-millisecond window bounding the execution instant."""
    from_: int
    to: int

    def __post_init__(self):
        if self.from_ > self.to:
            raise InvalidIntervalError(self.from_, self.to)


@dataclass(frozen=True)
class Environment:
    time_interval: TimeInterval


def make_environment(from_: int, to: int) -> Environment:
    return Environment(TimeInterval(from_, to))


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_posix_ms(moment: Union[int, datetime]) -> int:
    """Convert a datetime (naive means UTC) or POSIX milliseconds to milliseconds."""
    if isinstance(moment, bool):
        raise TypeError("Expected a datetime or integer milliseconds, got bool")
    if isinstance(moment, int):
        return moment
    if isinstance(moment, datetime):
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return (moment - _EPOCH) // timedelta(milliseconds=1)
    raise TypeError(f"Expected a datetime or integer milliseconds, got {type(moment).__name__}")


# =============================================================================
# State
# =============================================================================

AccountId = Tuple[Party, Token]


@dataclass(frozen=True)
class State:
    """
    Contract state.

    accounts: (party, token) -> balance, insertion ordered, only positive
        balances are stored.
    choices: last number chosen for each choice id.
    bound_values: values bound by Let.
    min_time: lower bound every later time interval is trimmed to.
    """
    accounts: Dict[AccountId, int] = field(default_factory=dict)
    choices: Dict[ChoiceId, int] = field(default_factory=dict)
    bound_values: Dict[str, int] = field(default_factory=dict)
    min_time: int = 0

    def __post_init__(self):
        accounts = {key: amount for key, amount in dict(self.accounts).items() if amount > 0}
        object.__setattr__(self, "accounts", accounts)
        object.__setattr__(self, "choices", dict(self.choices))
        object.__setattr__(self, "bound_values", dict(self.bound_values))

    def available_money(self, party: Party, token: Token) -> int:
        return self.accounts.get((party, token), 0)

    def iter_accounts(self) -> Iterator[Tuple[Party, Token, int]]:
        for (party, token), amount in self.accounts.items():
            yield party, token, amount

    def with_balance(self, party: Party, token: Token, amount: int) -> 'State':
        """Set a balance; non-positive balances remove the account."""
        accounts = dict(self.accounts)
        if amount > 0:
            accounts[(party, token)] = amount
        else:
            accounts.pop((party, token), None)
        return replace(self, accounts=accounts)

    def add_money(self, party: Party, token: Token, amount: int) -> 'State':
        if amount <= 0:
            return self
        return self.with_balance(party, token, self.available_money(party, token) + amount)

    def with_choice(self, choice_id: ChoiceId, chosen: int) -> 'State':
        choices = dict(self.choices)
        choices[choice_id] = chosen
        return replace(self, choices=choices)

    def with_bound_value(self, value_id: str, value: int) -> 'State':
        bound_values = dict(self.bound_values)
        bound_values[value_id] = value
        return replace(self, bound_values=bound_values)

    def with_min_time(self, min_time: int) -> 'State':
        return replace(self, min_time=min_time)


def empty_state(min_time: int = 0) -> State:
    return State(min_time=min_time)


# =============================================================================
# Payments and warnings
# =============================================================================

@dataclass(frozen=True)
class Payment:
    from_account: Party
    to: Payee
    token: Token
    amount: int


@dataclass(frozen=True)
class NonPositivePay:
    account: Party
    payee: Payee
    token: Token
    amount: int


@dataclass(frozen=True)
class PartialPay:
    account: Party
    payee: Payee
    token: Token
    expected: int
    actual: int


@dataclass(frozen=True)
class Shadow:
    """A Let rebound an identifier that already had a value."""
    value_id: str
    previous: int
    new: int


@dataclass(frozen=True)
class Assertion:
    """An Assert observation evaluated to false."""


@dataclass(frozen=True)
class NonPositiveDeposit:
    party: Party
    account: Party
    token: Token
    amount: int


TransactionWarning = Union[NonPositivePay, PartialPay, Shadow, Assertion, NonPositiveDeposit]


# =============================================================================
# Inputs and transactions
# =============================================================================

@dataclass(frozen=True)
class IDeposit:
    into_account: Party
    party: Party
    token: Token
    amount: int


@dataclass(frozen=True)
class IChoice:
    choice_id: ChoiceId
    chosen: int


@dataclass(frozen=True)
class INotify:
    pass


InputContent = Union[IDeposit, IChoice, INotify]


@dataclass(frozen=True)
class MerkleizedInput:
    """Input for a case whose continuation is stored by hash."""
    content: InputContent
    continuation_hash: str
    continuation: Contract


Input = Union[IDeposit, IChoice, INotify, MerkleizedInput]


def input_content(input_: Input) -> InputContent:
    if isinstance(input_, MerkleizedInput):
        return input_.content
    return input_


@dataclass(frozen=True)
class Transaction:
    interval: TimeInterval
    inputs: Tuple[Input, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "inputs", tuple(self.inputs))


@dataclass(frozen=True)
class TransactionOutput:
    warnings: Tuple[TransactionWarning, ...]
    payments: Tuple[Payment, ...]
    state: State
    contract: Contract
    environment: Optional[Environment] = None
