"""
Parser for textual Marlowe contracts using Lark.

Uses the grammar in grammar.lark and Lark's Earley parser to produce the
contract tree defined in marlowe.core.types. ``to_source`` renders a tree
back to the same syntax.
"""

import json
from pathlib import Path
from typing import Union

from lark import Lark, Transformer, v_args
from lark.exceptions import UnexpectedInput, VisitError

from .core.errors import ParseError
from .core.types import (
    Contract, Close, Pay, If, When, Let, Assert,
    Case, Reference, Deposit, Choice, Notify, Bound,
    Role, Address, Token, PartyPayee, AccountPayee, ChoiceId,
    Constant, AvailableMoney, ChoiceValue, NegValue, AddValue, SubValue,
    MulValue, DivValue, UseValue, Cond, TimeIntervalStart, TimeIntervalEnd,
    ConstantObs, AndObs, OrObs, NotObs, ValueEQ, ValueGE, ValueGT, ValueLT,
    ValueLE, ChoseSomething,
)


GRAMMAR_PATH = Path(__file__).parent / "grammar.lark"


@v_args(inline=True)
class ContractTransformer(Transformer):
    """Transform a Lark parse tree into contract nodes."""

    # =========================================================================
    # Contracts
    # =========================================================================

    def close(self):
        return Close()

    def pay(self, from_account, payee, token, value, then):
        return Pay(from_account, payee, token, value, then)

    def if_contract(self, observation, then, else_):
        return If(observation, then, else_)

    def when(self, cases, timeout, timeout_continuation):
        return When(cases, int(timeout), timeout_continuation)

    def let(self, value_id, value, then):
        return Let(self._unquote(value_id), value, then)

    def assert_contract(self, observation, then):
        return Assert(observation, then)

    def cases(self, *cases):
        return list(cases)

    def inline_case(self, action, then):
        return Case(action, then)

    def merkleized_case(self, action, label):
        return Case(action, Reference(self._unquote(label)))

    # =========================================================================
    # Actions
    # =========================================================================

    def deposit(self, into_account, party, token, value):
        return Deposit(into_account, party, token, value)

    def choice(self, choice_id, bounds):
        return Choice(choice_id, bounds)

    def notify(self, observation):
        return Notify(observation)

    def bounds(self, *bounds):
        return list(bounds)

    def bound(self, from_, to):
        return Bound(int(from_), int(to))

    # =========================================================================
    # Parties, tokens, payees
    # =========================================================================

    def role(self, name):
        return Role(self._unquote(name))

    def address(self, addr):
        return Address(self._unquote(addr))

    def token(self, currency_symbol, token_name):
        return Token(self._unquote(currency_symbol), self._unquote(token_name))

    def party_payee(self, party):
        return PartyPayee(party)

    def account_payee(self, party):
        return AccountPayee(party)

    def choice_id(self, name, owner):
        return ChoiceId(self._unquote(name), owner)

    # =========================================================================
    # Values
    # =========================================================================

    def constant(self, n):
        return Constant(int(n))

    def available_money(self, party, token):
        return AvailableMoney(party, token)

    def choice_value(self, choice_id):
        return ChoiceValue(choice_id)

    def neg_value(self, value):
        return NegValue(value)

    def add_value(self, left, right):
        return AddValue(left, right)

    def sub_value(self, left, right):
        return SubValue(left, right)

    def mul_value(self, left, right):
        return MulValue(left, right)

    def div_value(self, dividend, divisor):
        return DivValue(dividend, divisor)

    def use_value(self, value_id):
        return UseValue(self._unquote(value_id))

    def cond(self, observation, if_true, if_false):
        return Cond(observation, if_true, if_false)

    def time_interval_start(self):
        return TimeIntervalStart()

    def time_interval_end(self):
        return TimeIntervalEnd()

    # =========================================================================
    # Observations
    # =========================================================================

    def true_obs(self):
        return ConstantObs(True)

    def false_obs(self):
        return ConstantObs(False)

    def and_obs(self, left, right):
        return AndObs(left, right)

    def or_obs(self, left, right):
        return OrObs(left, right)

    def not_obs(self, observation):
        return NotObs(observation)

    def value_eq(self, left, right):
        return ValueEQ(left, right)

    def value_ge(self, left, right):
        return ValueGE(left, right)

    def value_gt(self, left, right):
        return ValueGT(left, right)

    def value_lt(self, left, right):
        return ValueLT(left, right)

    def value_le(self, left, right):
        return ValueLE(left, right)

    def chose_something(self, choice_id):
        return ChoseSomething(choice_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _unquote(self, s) -> str:
        """Decode a JSON-style quoted string token."""
        return json.loads(str(s))


_parser = None


def get_parser() -> Lark:
    """Get or create the Lark parser instance."""
    global _parser
    if _parser is None:
        with open(GRAMMAR_PATH) as f:
            grammar = f.read()
        _parser = Lark(
            grammar,
            parser='earley',
            propagate_positions=True,
            maybe_placeholders=True,
        )
    return _parser


def parse(source: str) -> Contract:
    """Parse textual Marlowe into a contract tree."""
    try:
        tree = get_parser().parse(source)
    except UnexpectedInput as e:
        message = (str(e).strip().splitlines() or ["syntax error"])[0]
        raise ParseError(message, e.line, e.column) from e
    try:
        return ContractTransformer().transform(tree)
    except VisitError as e:
        meta = getattr(e.obj, "meta", None)
        line = getattr(meta, "line", 0) or 0
        column = getattr(meta, "column", 0) or 0
        raise ParseError(str(e.orig_exc), line, column) from e


def parse_file(path: Union[str, Path]) -> Contract:
    """Parse a file containing one textual contract."""
    with open(path) as f:
        return parse(f.read())
