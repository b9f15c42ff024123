"""
Contract tree definitions for the Marlowe DSL.

Every node is a frozen dataclass and every sequence is a tuple, so a tree is
immutable once built. Trees come from the fluent helpers defined here, from
marlowe.core.builders, from the textual parser or from the JSON codec.
"""

import json
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, Union


# =============================================================================
# Coercion helpers
# =============================================================================

def as_value(value) -> 'Value':
    """Lift a Python integer into a Constant, pass Values through."""
    if isinstance(value, bool):
        raise TypeError(f"Expected an integer or Value, got bool {value!r}")
    if isinstance(value, int):
        return Constant(value)
    if isinstance(value, VALUE_TYPES):
        return value
    raise TypeError(f"Expected an integer or Value, got {type(value).__name__}")


def as_observation(obs) -> 'Observation':
    """Lift a Python bool into a ConstantObs, pass Observations through."""
    if isinstance(obs, bool):
        return ConstantObs(obs)
    if isinstance(obs, OBSERVATION_TYPES):
        return obs
    raise TypeError(f"Expected a bool or Observation, got {type(obs).__name__}")


def _coerce(node, values=(), observations=()):
    for name in values:
        object.__setattr__(node, name, as_value(getattr(node, name)))
    for name in observations:
        object.__setattr__(node, name, as_observation(getattr(node, name)))


class Thenable:
    """A contract prefix waiting for its continuation."""

    def __init__(self, build: Callable[['Contract'], 'Contract']):
        self._build = build

    def then(self, cont: 'Contract') -> 'Contract':
        return self._build(cont)


# =============================================================================
# Parties, tokens and payees
# =============================================================================

class _DepositInto:
    def __init__(self, party: 'Party', token: 'Token', value: 'Value'):
        self._party = party
        self._token = token
        self._value = value

    def into_account(self, account: 'Party') -> 'Deposit':
        return Deposit(account, self._party, self._token, self._value)

    def into_own_account(self) -> 'Deposit':
        return Deposit(self._party, self._party, self._token, self._value)


class _ChooseBetween:
    def __init__(self, choice_id: 'ChoiceId'):
        self._choice_id = choice_id

    def between(self, *bounds: 'Bound') -> 'Choice':
        return Choice(self._choice_id, bounds)


class _PayTo:
    def __init__(self, source: 'Party', token: 'Token', value: 'Value', payee_type):
        self._source = source
        self._token = token
        self._value = value
        self._payee_type = payee_type

    def to(self, destination: 'Party') -> Thenable:
        payee = self._payee_type(destination)
        return Thenable(
            lambda cont: Pay(self._source, payee, self._token, self._value, cont)
        )


class _PartyOps:
    """Fluent builders shared by both party kinds."""

    def deposits(self, value, token: 'Token') -> _DepositInto:
        return _DepositInto(self, token, as_value(value))

    def chooses(self, choice_name: str) -> _ChooseBetween:
        return _ChooseBetween(ChoiceId(choice_name, self))

    def transfer(self, value, token: 'Token') -> _PayTo:
        """Move money to another internal account."""
        return _PayTo(self, token, as_value(value), AccountPayee)

    def pay_out(self, value, token: 'Token') -> _PayTo:
        """Pay money out of the contract to a party."""
        return _PayTo(self, token, as_value(value), PartyPayee)

    def available_money(self, token: 'Token') -> 'AvailableMoney':
        return AvailableMoney(self, token)


@dataclass(frozen=True)
class Role(_PartyOps):
    """Party identified by a role token."""
    role_token: str


@dataclass(frozen=True)
class Address(_PartyOps):
    """Party identified by a ledger address."""
    address: str


Party = Union[Role, Address]


@dataclass(frozen=True)
class Token:
    currency_symbol: str
    token_name: str


LOVELACE = Token("", "")


@dataclass(frozen=True)
class PartyPayee:
    """External payout to a party."""
    party: Party


@dataclass(frozen=True)
class AccountPayee:
    """Credit to an internal account of the contract."""
    party: Party


Payee = Union[PartyPayee, AccountPayee]


@dataclass(frozen=True)
class ChoiceId:
    name: str
    owner: Party

    def value(self) -> 'ChoiceValue':
        return ChoiceValue(self)


@dataclass(frozen=True)
class Bound:
    """Inclusive range of acceptable chosen numbers."""
    from_: int
    to: int

    def contains(self, number: int) -> bool:
        return self.from_ <= number <= self.to


# =============================================================================
# Values
# =============================================================================

class _ValueOps:
    """Arithmetic and comparison builders shared by all values."""

    def neg(self) -> 'NegValue':
        return NegValue(self)

    def add(self, right) -> 'AddValue':
        return AddValue(self, right)

    def sub(self, right) -> 'SubValue':
        return SubValue(self, right)

    def mul(self, right) -> 'MulValue':
        return MulValue(self, right)

    def div(self, by) -> 'DivValue':
        return DivValue(self, by)

    def eq(self, right) -> 'ValueEQ':
        return ValueEQ(self, right)

    def ge(self, right) -> 'ValueGE':
        return ValueGE(self, right)

    def gt(self, right) -> 'ValueGT':
        return ValueGT(self, right)

    def lt(self, right) -> 'ValueLT':
        return ValueLT(self, right)

    def le(self, right) -> 'ValueLE':
        return ValueLE(self, right)


@dataclass(frozen=True)
class Constant(_ValueOps):
    value: int


@dataclass(frozen=True)
class AvailableMoney(_ValueOps):
    """Balance of an internal account for a token."""
    account: Party
    token: Token


@dataclass(frozen=True)
class ChoiceValue(_ValueOps):
    """Last number chosen for a choice, 0 if never chosen."""
    choice_id: ChoiceId


@dataclass(frozen=True)
class NegValue(_ValueOps):
    value: 'Value'

    def __post_init__(self):
        _coerce(self, values=("value",))


@dataclass(frozen=True)
class AddValue(_ValueOps):
    left: 'Value'
    right: 'Value'

    def __post_init__(self):
        _coerce(self, values=("left", "right"))


@dataclass(frozen=True)
class SubValue(_ValueOps):
    left: 'Value'
    right: 'Value'

    def __post_init__(self):
        _coerce(self, values=("left", "right"))


@dataclass(frozen=True)
class MulValue(_ValueOps):
    left: 'Value'
    right: 'Value'

    def __post_init__(self):
        _coerce(self, values=("left", "right"))


@dataclass(frozen=True)
class DivValue(_ValueOps):
    """Integer division truncating toward zero."""
    dividend: 'Value'
    divisor: 'Value'

    def __post_init__(self):
        _coerce(self, values=("dividend", "divisor"))


@dataclass(frozen=True)
class UseValue(_ValueOps):
    """Value bound earlier by a Let."""
    value_id: str


@dataclass(frozen=True)
class Cond(_ValueOps):
    observation: 'Observation'
    if_true: 'Value'
    if_false: 'Value'

    def __post_init__(self):
        _coerce(self, values=("if_true", "if_false"), observations=("observation",))


@dataclass(frozen=True)
class TimeIntervalStart(_ValueOps):
    pass


@dataclass(frozen=True)
class TimeIntervalEnd(_ValueOps):
    pass


Value = Union[
    Constant, AvailableMoney, ChoiceValue, NegValue, AddValue, SubValue,
    MulValue, DivValue, UseValue, Cond, TimeIntervalStart, TimeIntervalEnd
]

VALUE_TYPES = (
    Constant, AvailableMoney, ChoiceValue, NegValue, AddValue, SubValue,
    MulValue, DivValue, UseValue, Cond, TimeIntervalStart, TimeIntervalEnd,
)


# =============================================================================
# Observations
# =============================================================================

class _ObservationOps:
    def and_(self, right) -> 'AndObs':
        return AndObs(self, right)

    def or_(self, right) -> 'OrObs':
        return OrObs(self, right)

    def not_(self) -> 'NotObs':
        return NotObs(self)


@dataclass(frozen=True)
class ConstantObs(_ObservationOps):
    value: bool


TRUE_OBS = ConstantObs(True)
FALSE_OBS = ConstantObs(False)


@dataclass(frozen=True)
class AndObs(_ObservationOps):
    left: 'Observation'
    right: 'Observation'

    def __post_init__(self):
        _coerce(self, observations=("left", "right"))


@dataclass(frozen=True)
class OrObs(_ObservationOps):
    left: 'Observation'
    right: 'Observation'

    def __post_init__(self):
        _coerce(self, observations=("left", "right"))


@dataclass(frozen=True)
class NotObs(_ObservationOps):
    observation: 'Observation'

    def __post_init__(self):
        _coerce(self, observations=("observation",))


@dataclass(frozen=True)
class ValueEQ(_ObservationOps):
    left: Value
    right: Value

    def __post_init__(self):
        _coerce(self, values=("left", "right"))


@dataclass(frozen=True)
class ValueGE(_ObservationOps):
    left: Value
    right: Value

    def __post_init__(self):
        _coerce(self, values=("left", "right"))


@dataclass(frozen=True)
class ValueGT(_ObservationOps):
    left: Value
    right: Value

    def __post_init__(self):
        _coerce(self, values=("left", "right"))


@dataclass(frozen=True)
class ValueLT(_ObservationOps):
    left: Value
    right: Value

    def __post_init__(self):
        _coerce(self, values=("left", "right"))


@dataclass(frozen=True)
class ValueLE(_ObservationOps):
    left: Value
    right: Value

    def __post_init__(self):
        _coerce(self, values=("left", "right"))


@dataclass(frozen=True)
class ChoseSomething(_ObservationOps):
    choice_id: ChoiceId


Observation = Union[
    ConstantObs, AndObs, OrObs, NotObs, ValueEQ, ValueGE, ValueGT, ValueLT,
    ValueLE, ChoseSomething
]

OBSERVATION_TYPES = (
    ConstantObs, AndObs, OrObs, NotObs, ValueEQ, ValueGE, ValueGT, ValueLT,
    ValueLE, ChoseSomething,
)


# =============================================================================
# Actions and cases
# =============================================================================

@dataclass(frozen=True)
class Reference:
    """
    Continuation stored by content hash instead of inline.

    The label is the identity. A reference built from a known contract keeps
    that contract so the bundle builder can emit it; a reference decoded from
    the wire may only know its label.
    """
    label: str
    contract: Optional['Contract'] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Deposit:
    """Party deposits value of token into an internal account."""
    into_account: Party
    party: Party
    token: Token
    value: Value

    def __post_init__(self):
        _coerce(self, values=("value",))

    def then(self, cont: Union['Contract', Reference]) -> 'Case':
        return Case(self, cont)


@dataclass(frozen=True)
class Choice:
    choice_id: ChoiceId
    bounds: Tuple[Bound, ...]

    def __post_init__(self):
        object.__setattr__(self, "bounds", tuple(self.bounds))

    def then(self, cont: Union['Contract', Reference]) -> 'Case':
        return Case(self, cont)

    def value(self) -> ChoiceValue:
        return ChoiceValue(self.choice_id)


@dataclass(frozen=True)
class Notify:
    observation: Observation

    def __post_init__(self):
        _coerce(self, observations=("observation",))

    def then(self, cont: Union['Contract', Reference]) -> 'Case':
        return Case(self, cont)


Action = Union[Deposit, Choice, Notify]


@dataclass(frozen=True)
class Case:
    action: Action
    then: Union['Contract', Reference]

    @property
    def is_merkleized(self) -> bool:
        return isinstance(self.then, Reference)


# =============================================================================
# Contracts
# =============================================================================

@dataclass(frozen=True)
class Close:
    """Refund every account and finish."""


CLOSE = Close()


@dataclass(frozen=True)
class Pay:
    from_account: Party
    to: Payee
    token: Token
    value: Value
    then: 'Contract'

    def __post_init__(self):
        _coerce(self, values=("value",))


@dataclass(frozen=True)
class If:
    observation: Observation
    then: 'Contract'
    else_: 'Contract'

    def __post_init__(self):
        _coerce(self, observations=("observation",))


@dataclass(frozen=True)
class When:
    """
    Wait for one of the cases until timeout, then continue with the contingency.

    A When built without a timeout has no contingency yet. An enclosing
    set_contingency fills it in; otherwise it resolves to (0, Close) and
    times out immediately. A timeout given without a continuation means Close.
    """
    cases: Tuple[Case, ...]
    timeout: Optional[int] = None
    timeout_continuation: Optional['Contract'] = None

    def __post_init__(self):
        object.__setattr__(self, "cases", tuple(self.cases))
        if self.timeout is None:
            if self.timeout_continuation is not None:
                raise ValueError("A timeout continuation needs a timeout")
        elif self.timeout_continuation is None:
            object.__setattr__(self, "timeout_continuation", CLOSE)

    @property
    def has_contingency(self) -> bool:
        return self.timeout is not None

    @property
    def deadline(self) -> int:
        return 0 if self.timeout is None else self.timeout

    @property
    def contingency(self) -> 'Contract':
        return CLOSE if self.timeout_continuation is None else self.timeout_continuation


@dataclass(frozen=True)
class Let:
    value_id: str
    value: Value
    then: 'Contract'

    def __post_init__(self):
        _coerce(self, values=("value",))


@dataclass(frozen=True)
class Assert:
    observation: Observation
    then: 'Contract'

    def __post_init__(self):
        _coerce(self, observations=("observation",))


Contract = Union[Close, Pay, If, When, Let, Assert]

CONTRACT_TYPES = (Close, Pay, If, When, Let, Assert)


# =============================================================================
# Textual rendering
# =============================================================================

def _quote(text: str) -> str:
    return json.dumps(text)


def party_to_source(party: Party) -> str:
    if isinstance(party, Role):
        return f"(Role {_quote(party.role_token)})"
    elif isinstance(party, Address):
        return f"(Address {_quote(party.address)})"
    raise TypeError(f"Unknown party: {party!r}")


def token_to_source(token: Token) -> str:
    return f"(Token {_quote(token.currency_symbol)} {_quote(token.token_name)})"


def payee_to_source(payee: Payee) -> str:
    if isinstance(payee, PartyPayee):
        return f"(Party {party_to_source(payee.party)})"
    elif isinstance(payee, AccountPayee):
        return f"(Account {party_to_source(payee.party)})"
    raise TypeError(f"Unknown payee: {payee!r}")


def choice_id_to_source(choice_id: ChoiceId) -> str:
    return f"(ChoiceId {_quote(choice_id.name)} {party_to_source(choice_id.owner)})"


def value_to_source(value: Value) -> str:
    """Render a Value in textual Marlowe syntax."""
    if isinstance(value, Constant):
        return f"(Constant {value.value})"
    elif isinstance(value, AvailableMoney):
        return f"(AvailableMoney {party_to_source(value.account)} {token_to_source(value.token)})"
    elif isinstance(value, ChoiceValue):
        return f"(ChoiceValue {choice_id_to_source(value.choice_id)})"
    elif isinstance(value, NegValue):
        return f"(NegValue {value_to_source(value.value)})"
    elif isinstance(value, AddValue):
        return f"(AddValue {value_to_source(value.left)} {value_to_source(value.right)})"
    elif isinstance(value, SubValue):
        return f"(SubValue {value_to_source(value.left)} {value_to_source(value.right)})"
    elif isinstance(value, MulValue):
        return f"(MulValue {value_to_source(value.left)} {value_to_source(value.right)})"
    elif isinstance(value, DivValue):
        return f"(DivValue {value_to_source(value.dividend)} {value_to_source(value.divisor)})"
    elif isinstance(value, UseValue):
        return f"(UseValue {_quote(value.value_id)})"
    elif isinstance(value, Cond):
        return (
            f"(Cond {observation_to_source(value.observation)} "
            f"{value_to_source(value.if_true)} {value_to_source(value.if_false)})"
        )
    elif isinstance(value, TimeIntervalStart):
        return "TimeIntervalStart"
    elif isinstance(value, TimeIntervalEnd):
        return "TimeIntervalEnd"
    raise TypeError(f"Unknown value: {value!r}")


def observation_to_source(obs: Observation) -> str:
    """Render an Observation in textual Marlowe syntax."""
    if isinstance(obs, ConstantObs):
        return "TrueObs" if obs.value else "FalseObs"
    elif isinstance(obs, AndObs):
        return f"(AndObs {observation_to_source(obs.left)} {observation_to_source(obs.right)})"
    elif isinstance(obs, OrObs):
        return f"(OrObs {observation_to_source(obs.left)} {observation_to_source(obs.right)})"
    elif isinstance(obs, NotObs):
        return f"(NotObs {observation_to_source(obs.observation)})"
    elif isinstance(obs, ChoseSomething):
        return f"(ChoseSomething {choice_id_to_source(obs.choice_id)})"

    comparisons = {
        ValueEQ: "ValueEQ", ValueGE: "ValueGE", ValueGT: "ValueGT",
        ValueLT: "ValueLT", ValueLE: "ValueLE",
    }
    name = comparisons.get(type(obs))
    if name is None:
        raise TypeError(f"Unknown observation: {obs!r}")
    return f"({name} {value_to_source(obs.left)} {value_to_source(obs.right)})"


def action_to_source(action: Action) -> str:
    if isinstance(action, Deposit):
        return (
            f"(Deposit {party_to_source(action.into_account)} {party_to_source(action.party)} "
            f"{token_to_source(action.token)} {value_to_source(action.value)})"
        )
    elif isinstance(action, Choice):
        bounds = ", ".join(f"(Bound {b.from_} {b.to})" for b in action.bounds)
        return f"(Choice {choice_id_to_source(action.choice_id)} [{bounds}])"
    elif isinstance(action, Notify):
        return f"(Notify {observation_to_source(action.observation)})"
    raise TypeError(f"Unknown action: {action!r}")


def case_to_source(case: Case) -> str:
    if isinstance(case.then, Reference):
        return f"MerkleizedCase {action_to_source(case.action)} {_quote(case.then.label)}"
    return f"Case {action_to_source(case.action)} {_nested(case.then)}"


def _nested(contract: Contract) -> str:
    text = to_source(contract)
    return text if isinstance(contract, Close) else f"({text})"


def to_source(contract: Contract) -> str:
    """Render a Contract in textual Marlowe syntax (single line)."""
    if isinstance(contract, Close):
        return "Close"
    elif isinstance(contract, Pay):
        return (
            f"Pay {party_to_source(contract.from_account)} {payee_to_source(contract.to)} "
            f"{token_to_source(contract.token)} {value_to_source(contract.value)} "
            f"{_nested(contract.then)}"
        )
    elif isinstance(contract, If):
        return (
            f"If {observation_to_source(contract.observation)} "
            f"{_nested(contract.then)} {_nested(contract.else_)}"
        )
    elif isinstance(contract, When):
        cases = ", ".join(case_to_source(c) for c in contract.cases)
        return f"When [{cases}] {contract.deadline} {_nested(contract.contingency)}"
    elif isinstance(contract, Let):
        return (
            f"Let {_quote(contract.value_id)} {value_to_source(contract.value)} "
            f"{_nested(contract.then)}"
        )
    elif isinstance(contract, Assert):
        return f"Assert {observation_to_source(contract.observation)} {_nested(contract.then)}"
    raise TypeError(f"Unknown contract: {contract!r}")
