"""
Higher-level combinators for building contracts.

These produce exactly the trees the plain constructors produce, so a contract
built with ``do(wait_for(deposit), CLOSE)`` is structurally equal (and hashes
equal) to ``When([deposit.then(CLOSE)])``.
"""

from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Union

from .state import to_posix_ms
from .types import (
    Action, Bound, Case, ChoiceId, Contract, Party, Thenable, Token, Value,
    AccountPayee, Address, PartyPayee, Role,
    Assert, Close, Cond, If, Let, Pay, Reference, UseValue, When, CLOSE,
    as_value,
)

Deadline = Union[int, datetime]


def role(role_token: str) -> Role:
    return Role(role_token)


def address(addr: str) -> Address:
    return Address(addr)


def token(currency_symbol: str, token_name: str) -> Token:
    return Token(currency_symbol, token_name)


def account(party: Party) -> AccountPayee:
    return AccountPayee(party)


def party(p: Party) -> PartyPayee:
    return PartyPayee(p)


def choice_id(name: str, owner: Party) -> ChoiceId:
    return ChoiceId(name, owner)


def bound(from_: int, to: int) -> Bound:
    return Bound(from_, to)


def max_value(a, b) -> Value:
    a, b = as_value(a), as_value(b)
    return Cond(a.gt(b), a, b)


def min_value(a, b) -> Value:
    a, b = as_value(a), as_value(b)
    return Cond(a.lt(b), a, b)


# =============================================================================
# Sequencing
# =============================================================================

def do(*chain) -> Contract:
    """Chain thenables right to left, ending with a contract."""
    if not chain:
        raise ValueError("do() needs at least a final contract")
    contract = chain[-1]
    for step in reversed(chain[:-1]):
        contract = step.then(contract)
    return contract


def sequence(*steps: Thenable) -> Thenable:
    """Compose thenables into one that still waits for its continuation."""
    return Thenable(lambda cont: do(*steps, cont))


class _WaitFor:
    def __init__(self, action: Action):
        self._action = action

    def then(self, cont: Contract) -> Contract:
        return When([self._action.then(cont)])

    def after(self, deadline: Deadline, deadline_cont: Contract) -> Thenable:
        timeout = to_posix_ms(deadline)
        return Thenable(
            lambda cont: When([self._action.then(cont)], timeout, deadline_cont)
        )


def wait_for(action: Action) -> _WaitFor:
    return _WaitFor(action)


def wait_until(deadline: Deadline) -> Thenable:
    """Do nothing until the deadline, then continue."""
    timeout = to_posix_ms(deadline)
    return Thenable(lambda cont: When([], timeout, cont))


class _LetBinding:
    def __init__(self, value_id: str, value):
        self._value_id = value_id
        self._value = as_value(value)

    def then(self, cont: Contract) -> Contract:
        return Let(self._value_id, self._value, cont)

    def in_(self, body: Callable[[Value], Contract]) -> Contract:
        return Let(self._value_id, self._value, body(UseValue(self._value_id)))


def let(value_id: str, value) -> _LetBinding:
    return _LetBinding(value_id, value)


# =============================================================================
# Case combinators
# =============================================================================

def any_of(actions: Sequence[Action], cont: Contract) -> List[Case]:
    """Any one of the actions leads to cont."""
    return [action.then(cont) for action in actions]


def _when(cases: List[Case], timeout: Optional[Deadline],
          timeout_continuation: Optional[Contract]) -> When:
    if timeout is None:
        return When(cases, None, timeout_continuation)
    return When(cases, to_posix_ms(timeout), timeout_continuation)


def seq(actions: Sequence[Action], cont: Contract, timeout: Optional[Deadline] = None,
        timeout_continuation: Optional[Contract] = None) -> List[Case]:
    """The actions must happen in the given order before cont."""
    if not actions:
        return []
    if len(actions) == 1:
        return [actions[0].then(cont)]
    rest = _when(seq(actions[1:], cont, timeout, timeout_continuation),
                 timeout, timeout_continuation)
    return [actions[0].then(rest)]


def all_of(actions: Sequence[Action], cont: Contract, timeout: Optional[Deadline] = None,
           timeout_continuation: Optional[Contract] = None) -> List[Case]:
    """The actions must all happen, in any order, before cont."""
    if not actions:
        return []
    if len(actions) == 1:
        return [actions[0].then(cont)]
    cases = []
    for index, action in enumerate(actions):
        others = list(actions[:index]) + list(actions[index + 1:])
        rest = _when(all_of(others, cont, timeout, timeout_continuation),
                     timeout, timeout_continuation)
        cases.append(action.then(rest))
    return cases


# =============================================================================
# Contingencies
# =============================================================================

def _fill(contract: Contract, timeout: int, cont: Contract) -> Contract:
    if isinstance(contract, Close):
        return contract
    elif isinstance(contract, (Pay, Let, Assert)):
        return replace(contract, then=_fill(contract.then, timeout, cont))
    elif isinstance(contract, If):
        return replace(contract, then=_fill(contract.then, timeout, cont),
                       else_=_fill(contract.else_, timeout, cont))
    elif isinstance(contract, When):
        # A referenced continuation is sealed by its hash and is left as is.
        cases = [
            case if isinstance(case.then, Reference)
            else Case(case.action, _fill(case.then, timeout, cont))
            for case in contract.cases
        ]
        if contract.has_contingency:
            return replace(contract, cases=cases,
                           timeout_continuation=_fill(contract.timeout_continuation, timeout, cont))
        return replace(contract, cases=cases, timeout=timeout, timeout_continuation=cont)
    raise TypeError(f"Unknown contract: {contract!r}")


class _Contingency:
    def __init__(self, scope: Union[Contract, Thenable]):
        self._scope = scope

    def after(self, deadline: Deadline, cont: Contract) -> Union[Contract, Thenable]:
        """
        Give every When in the scope that has no timeout yet this deadline
        and continuation. Whens that already have one, including those filled
        by an inner set_contingency, are left alone. cont itself is not
        rewritten.
        """
        timeout = to_posix_ms(deadline)
        scope = self._scope
        if isinstance(scope, Thenable):
            return Thenable(lambda then: _fill(scope.then(then), timeout, cont))
        return _fill(scope, timeout, cont)


def set_contingency(scope: Union[Contract, Thenable]) -> _Contingency:
    """Default timeout for the Whens in scope: ``set_contingency(c).after(t, k)``."""
    return _Contingency(scope)
