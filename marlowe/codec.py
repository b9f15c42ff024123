"""
JSON codec for Marlowe entities.

Encoding produces plain JSON-compatible Python data (dicts, lists, str, int,
bool). Decoding validates the shape and reports the JSON path of the first
problem in a DecodeError. Integers are kept as Python ints end to end;
``loads`` refuses floating point numbers so amounts never lose precision.

Wire shapes follow the Marlowe JSON format: contracts are keyed by their
distinguishing fields (``{"when": ..., "timeout": ..., ...}``), ``"close"`` is
a bare string, and a merkleized case carries ``{"then": {"ref": label}}``.
"""

import json
from typing import Any, Callable, Dict, List

from .core.errors import DecodeError
from .core.state import (
    Environment, State, TimeInterval, Payment,
    IDeposit, IChoice, INotify, MerkleizedInput, Input, InputContent,
)
from .core.types import (
    Party, Role, Address, Token, Payee, PartyPayee, AccountPayee,
    ChoiceId, Bound,
    Value, Constant, AvailableMoney, ChoiceValue, NegValue, AddValue, SubValue,
    MulValue, DivValue, UseValue, Cond, TimeIntervalStart, TimeIntervalEnd,
    Observation, ConstantObs, AndObs, OrObs, NotObs, ValueEQ, ValueGE, ValueGT,
    ValueLT, ValueLE, ChoseSomething,
    Action, Deposit, Choice, Notify, Case, Reference,
    Contract, Close, Pay, If, When, Let, Assert,
)


# =============================================================================
# Shape helpers
# =============================================================================

def _is_int(data: Any) -> bool:
    return isinstance(data, int) and not isinstance(data, bool)


def _int(data: Any, path: str) -> int:
    if not _is_int(data):
        raise DecodeError(f"expected an integer, got {type(data).__name__}", path)
    return data


def _str(data: Any, path: str) -> str:
    if not isinstance(data, str):
        raise DecodeError(f"expected a string, got {type(data).__name__}", path)
    return data


def _list(data: Any, path: str) -> list:
    if not isinstance(data, list):
        raise DecodeError(f"expected a list, got {type(data).__name__}", path)
    return data


def _has(data: Any, *keys: str) -> bool:
    return isinstance(data, dict) and set(data) == set(keys)


def _object(data: Any, path: str, *keys: str) -> dict:
    if not _has(data, *keys):
        raise DecodeError(f"expected an object with keys {', '.join(keys)}", path)
    return data


# =============================================================================
# Parties, tokens, payees, choices
# =============================================================================

def encode_party(party: Party) -> dict:
    if isinstance(party, Role):
        return {"role_token": party.role_token}
    elif isinstance(party, Address):
        return {"address": party.address}
    raise TypeError(f"Unknown party: {party!r}")


def decode_party(data: Any, path: str = "$") -> Party:
    if _has(data, "role_token"):
        return Role(_str(data["role_token"], f"{path}.role_token"))
    elif _has(data, "address"):
        return Address(_str(data["address"], f"{path}.address"))
    raise DecodeError("expected a party ({role_token} or {address})", path)


def encode_token(token: Token) -> dict:
    return {"currency_symbol": token.currency_symbol, "token_name": token.token_name}


def decode_token(data: Any, path: str = "$") -> Token:
    _object(data, path, "currency_symbol", "token_name")
    return Token(
        _str(data["currency_symbol"], f"{path}.currency_symbol"),
        _str(data["token_name"], f"{path}.token_name"),
    )


def encode_payee(payee: Payee) -> dict:
    if isinstance(payee, PartyPayee):
        return {"party": encode_party(payee.party)}
    elif isinstance(payee, AccountPayee):
        return {"account": encode_party(payee.party)}
    raise TypeError(f"Unknown payee: {payee!r}")


def decode_payee(data: Any, path: str = "$") -> Payee:
    if _has(data, "party"):
        return PartyPayee(decode_party(data["party"], f"{path}.party"))
    elif _has(data, "account"):
        return AccountPayee(decode_party(data["account"], f"{path}.account"))
    raise DecodeError("expected a payee ({party} or {account})", path)


def encode_choice_id(choice_id: ChoiceId) -> dict:
    return {"choice_name": choice_id.name, "choice_owner": encode_party(choice_id.owner)}


def decode_choice_id(data: Any, path: str = "$") -> ChoiceId:
    _object(data, path, "choice_name", "choice_owner")
    return ChoiceId(
        _str(data["choice_name"], f"{path}.choice_name"),
        decode_party(data["choice_owner"], f"{path}.choice_owner"),
    )


def encode_bound(bound: Bound) -> dict:
    return {"from": bound.from_, "to": bound.to}


def decode_bound(data: Any, path: str = "$") -> Bound:
    _object(data, path, "from", "to")
    return Bound(_int(data["from"], f"{path}.from"), _int(data["to"], f"{path}.to"))


# =============================================================================
# Values and observations
# =============================================================================

_BINARY_VALUES = (
    (AddValue, "add", "and"),
    (SubValue, "value", "minus"),
    (MulValue, "multiply", "times"),
)

_COMPARISONS = (
    (ValueEQ, "equal_to"),
    (ValueGE, "ge_than"),
    (ValueGT, "gt"),
    (ValueLT, "lt"),
    (ValueLE, "le_than"),
)


def encode_value(value: Value) -> Any:
    if isinstance(value, Constant):
        return value.value
    elif isinstance(value, AvailableMoney):
        return {"amount_of_token": encode_token(value.token),
                "in_account": encode_party(value.account)}
    elif isinstance(value, ChoiceValue):
        return {"value_of_choice": encode_choice_id(value.choice_id)}
    elif isinstance(value, NegValue):
        return {"negate": encode_value(value.value)}
    elif isinstance(value, DivValue):
        return {"divide": encode_value(value.dividend), "by": encode_value(value.divisor)}
    elif isinstance(value, UseValue):
        return {"use_value": value.value_id}
    elif isinstance(value, Cond):
        return {"if": encode_observation(value.observation),
                "then": encode_value(value.if_true),
                "else": encode_value(value.if_false)}
    elif isinstance(value, TimeIntervalStart):
        return "time_interval_start"
    elif isinstance(value, TimeIntervalEnd):
        return "time_interval_end"
    for cls, left, right in _BINARY_VALUES:
        if isinstance(value, cls):
            return {left: encode_value(value.left), right: encode_value(value.right)}
    raise TypeError(f"Unknown value: {value!r}")


def decode_value(data: Any, path: str = "$") -> Value:
    if _is_int(data):
        return Constant(data)
    elif data == "time_interval_start":
        return TimeIntervalStart()
    elif data == "time_interval_end":
        return TimeIntervalEnd()
    elif _has(data, "amount_of_token", "in_account"):
        return AvailableMoney(decode_party(data["in_account"], f"{path}.in_account"),
                              decode_token(data["amount_of_token"], f"{path}.amount_of_token"))
    elif _has(data, "value_of_choice"):
        return ChoiceValue(decode_choice_id(data["value_of_choice"], f"{path}.value_of_choice"))
    elif _has(data, "negate"):
        return NegValue(decode_value(data["negate"], f"{path}.negate"))
    elif _has(data, "divide", "by"):
        return DivValue(decode_value(data["divide"], f"{path}.divide"),
                        decode_value(data["by"], f"{path}.by"))
    elif _has(data, "use_value"):
        return UseValue(_str(data["use_value"], f"{path}.use_value"))
    elif _has(data, "if", "then", "else"):
        return Cond(decode_observation(data["if"], f"{path}.if"),
                    decode_value(data["then"], f"{path}.then"),
                    decode_value(data["else"], f"{path}.else"))
    for cls, left, right in _BINARY_VALUES:
        if _has(data, left, right):
            return cls(decode_value(data[left], f"{path}.{left}"),
                       decode_value(data[right], f"{path}.{right}"))
    raise DecodeError("expected a value", path)


def encode_observation(obs: Observation) -> Any:
    if isinstance(obs, ConstantObs):
        return obs.value
    elif isinstance(obs, AndObs):
        return {"both": encode_observation(obs.left), "and": encode_observation(obs.right)}
    elif isinstance(obs, OrObs):
        return {"either": encode_observation(obs.left), "or": encode_observation(obs.right)}
    elif isinstance(obs, NotObs):
        return {"not": encode_observation(obs.observation)}
    elif isinstance(obs, ChoseSomething):
        return {"chose_something_for": encode_choice_id(obs.choice_id)}
    for cls, key in _COMPARISONS:
        if isinstance(obs, cls):
            return {"value": encode_value(obs.left), key: encode_value(obs.right)}
    raise TypeError(f"Unknown observation: {obs!r}")


def decode_observation(data: Any, path: str = "$") -> Observation:
    if isinstance(data, bool):
        return ConstantObs(data)
    elif _has(data, "both", "and"):
        return AndObs(decode_observation(data["both"], f"{path}.both"),
                      decode_observation(data["and"], f"{path}.and"))
    elif _has(data, "either", "or"):
        return OrObs(decode_observation(data["either"], f"{path}.either"),
                     decode_observation(data["or"], f"{path}.or"))
    elif _has(data, "not"):
        return NotObs(decode_observation(data["not"], f"{path}.not"))
    elif _has(data, "chose_something_for"):
        return ChoseSomething(
            decode_choice_id(data["chose_something_for"], f"{path}.chose_something_for"))
    for cls, key in _COMPARISONS:
        if _has(data, "value", key):
            return cls(decode_value(data["value"], f"{path}.value"),
                       decode_value(data[key], f"{path}.{key}"))
    raise DecodeError("expected an observation", path)


# =============================================================================
# Actions, cases and contracts
# =============================================================================

def encode_action(action: Action) -> dict:
    if isinstance(action, Deposit):
        return {"party": encode_party(action.party),
                "deposits": encode_value(action.value),
                "of_token": encode_token(action.token),
                "into_account": encode_party(action.into_account)}
    elif isinstance(action, Choice):
        return {"for_choice": encode_choice_id(action.choice_id),
                "choose_between": [encode_bound(b) for b in action.bounds]}
    elif isinstance(action, Notify):
        return {"notify_if": encode_observation(action.observation)}
    raise TypeError(f"Unknown action: {action!r}")


def decode_action(data: Any, path: str = "$") -> Action:
    if _has(data, "party", "deposits", "of_token", "into_account"):
        return Deposit(decode_party(data["into_account"], f"{path}.into_account"),
                       decode_party(data["party"], f"{path}.party"),
                       decode_token(data["of_token"], f"{path}.of_token"),
                       decode_value(data["deposits"], f"{path}.deposits"))
    elif _has(data, "for_choice", "choose_between"):
        bounds = _list(data["choose_between"], f"{path}.choose_between")
        return Choice(decode_choice_id(data["for_choice"], f"{path}.for_choice"),
                      [decode_bound(b, f"{path}.choose_between[{i}]") for i, b in enumerate(bounds)])
    elif _has(data, "notify_if"):
        return Notify(decode_observation(data["notify_if"], f"{path}.notify_if"))
    raise DecodeError("expected an action", path)


def encode_case(case: Case) -> dict:
    if isinstance(case.then, Reference):
        return {"case": encode_action(case.action), "then": {"ref": case.then.label}}
    return {"case": encode_action(case.action), "then": encode_contract(case.then)}


def decode_case(data: Any, path: str = "$") -> Case:
    if _has(data, "case", "merkleized_then"):
        action = decode_action(data["case"], f"{path}.case")
        return Case(action, Reference(_str(data["merkleized_then"], f"{path}.merkleized_then")))
    _object(data, path, "case", "then")
    action = decode_action(data["case"], f"{path}.case")
    if _has(data["then"], "ref"):
        return Case(action, Reference(_str(data["then"]["ref"], f"{path}.then.ref")))
    return Case(action, decode_contract(data["then"], f"{path}.then"))


def encode_contract(contract: Contract) -> Any:
    if isinstance(contract, Close):
        return "close"
    elif isinstance(contract, Pay):
        return {"from_account": encode_party(contract.from_account),
                "to": encode_payee(contract.to),
                "token": encode_token(contract.token),
                "pay": encode_value(contract.value),
                "then": encode_contract(contract.then)}
    elif isinstance(contract, If):
        return {"if": encode_observation(contract.observation),
                "then": encode_contract(contract.then),
                "else": encode_contract(contract.else_)}
    elif isinstance(contract, When):
        return {"when": [encode_case(c) for c in contract.cases],
                "timeout": contract.deadline,
                "timeout_continuation": encode_contract(contract.contingency)}
    elif isinstance(contract, Let):
        return {"let": contract.value_id,
                "be": encode_value(contract.value),
                "then": encode_contract(contract.then)}
    elif isinstance(contract, Assert):
        return {"assert": encode_observation(contract.observation),
                "then": encode_contract(contract.then)}
    raise TypeError(f"Unknown contract: {contract!r}")


def decode_contract(data: Any, path: str = "$") -> Contract:
    if data == "close":
        return Close()
    elif _has(data, "from_account", "to", "token", "pay", "then"):
        return Pay(decode_party(data["from_account"], f"{path}.from_account"),
                   decode_payee(data["to"], f"{path}.to"),
                   decode_token(data["token"], f"{path}.token"),
                   decode_value(data["pay"], f"{path}.pay"),
                   decode_contract(data["then"], f"{path}.then"))
    elif _has(data, "if", "then", "else"):
        return If(decode_observation(data["if"], f"{path}.if"),
                  decode_contract(data["then"], f"{path}.then"),
                  decode_contract(data["else"], f"{path}.else"))
    elif _has(data, "when", "timeout", "timeout_continuation"):
        cases = _list(data["when"], f"{path}.when")
        return When([decode_case(c, f"{path}.when[{i}]") for i, c in enumerate(cases)],
                    _int(data["timeout"], f"{path}.timeout"),
                    decode_contract(data["timeout_continuation"], f"{path}.timeout_continuation"))
    elif _has(data, "let", "be", "then"):
        return Let(_str(data["let"], f"{path}.let"),
                   decode_value(data["be"], f"{path}.be"),
                   decode_contract(data["then"], f"{path}.then"))
    elif _has(data, "assert", "then"):
        return Assert(decode_observation(data["assert"], f"{path}.assert"),
                      decode_contract(data["then"], f"{path}.then"))
    raise DecodeError("expected a contract", path)


# =============================================================================
# State, inputs, payments, environment
# =============================================================================

def encode_state(state: State) -> dict:
    return {
        "accounts": [[[encode_party(p), encode_token(t)], amount]
                     for p, t, amount in state.iter_accounts()],
        "choices": [[encode_choice_id(c), n] for c, n in state.choices.items()],
        "boundValues": [[value_id, n] for value_id, n in state.bound_values.items()],
        "minTime": state.min_time,
    }


def _pairs(data: Any, path: str) -> List[list]:
    entries = _list(data, path)
    for i, entry in enumerate(entries):
        if not isinstance(entry, list) or len(entry) != 2:
            raise DecodeError("expected a [key, value] pair", f"{path}[{i}]")
    return entries


def decode_state(data: Any, path: str = "$") -> State:
    _object(data, path, "accounts", "choices", "boundValues", "minTime")
    accounts = {}
    for i, (key, amount) in enumerate(_pairs(data["accounts"], f"{path}.accounts")):
        entry = f"{path}.accounts[{i}]"
        if not isinstance(key, list) or len(key) != 2:
            raise DecodeError("expected a [party, token] account id", f"{entry}[0]")
        party = decode_party(key[0], f"{entry}[0][0]")
        token = decode_token(key[1], f"{entry}[0][1]")
        accounts[(party, token)] = _int(amount, f"{entry}[1]")
    choices = {
        decode_choice_id(key, f"{path}.choices[{i}][0]"): _int(n, f"{path}.choices[{i}][1]")
        for i, (key, n) in enumerate(_pairs(data["choices"], f"{path}.choices"))
    }
    bound_values = {
        _str(key, f"{path}.boundValues[{i}][0]"): _int(n, f"{path}.boundValues[{i}][1]")
        for i, (key, n) in enumerate(_pairs(data["boundValues"], f"{path}.boundValues"))
    }
    return State(accounts, choices, bound_values, _int(data["minTime"], f"{path}.minTime"))


def _encode_input_content(content: InputContent) -> Any:
    if isinstance(content, IDeposit):
        return {"input_from_party": encode_party(content.party),
                "that_deposits": content.amount,
                "of_token": encode_token(content.token),
                "into_account": encode_party(content.into_account)}
    elif isinstance(content, IChoice):
        return {"for_choice_id": encode_choice_id(content.choice_id),
                "input_that_chooses_num": content.chosen}
    elif isinstance(content, INotify):
        return "input_notify"
    raise TypeError(f"Unknown input: {content!r}")


def encode_input(input_: Input) -> Any:
    if isinstance(input_, MerkleizedInput):
        merkle = {"continuation_hash": input_.continuation_hash,
                  "merkleized_continuation": encode_contract(input_.continuation)}
        if isinstance(input_.content, INotify):
            return merkle
        return {**_encode_input_content(input_.content), **merkle}
    return _encode_input_content(input_)


_DEPOSIT_INPUT_KEYS = ("input_from_party", "that_deposits", "of_token", "into_account")
_CHOICE_INPUT_KEYS = ("for_choice_id", "input_that_chooses_num")
_MERKLE_KEYS = ("continuation_hash", "merkleized_continuation")


def _decode_input_content(data: dict, path: str) -> InputContent:
    if _has(data, *_DEPOSIT_INPUT_KEYS):
        return IDeposit(decode_party(data["into_account"], f"{path}.into_account"),
                        decode_party(data["input_from_party"], f"{path}.input_from_party"),
                        decode_token(data["of_token"], f"{path}.of_token"),
                        _int(data["that_deposits"], f"{path}.that_deposits"))
    elif _has(data, *_CHOICE_INPUT_KEYS):
        return IChoice(decode_choice_id(data["for_choice_id"], f"{path}.for_choice_id"),
                       _int(data["input_that_chooses_num"], f"{path}.input_that_chooses_num"))
    raise DecodeError("expected an input", path)


def decode_input(data: Any, path: str = "$") -> Input:
    if data == "input_notify":
        return INotify()
    if not isinstance(data, dict):
        raise DecodeError("expected an input", path)
    if not all(key in data for key in _MERKLE_KEYS):
        return _decode_input_content(data, path)

    continuation_hash = _str(data["continuation_hash"], f"{path}.continuation_hash")
    continuation = decode_contract(data["merkleized_continuation"], f"{path}.merkleized_continuation")
    rest = {k: v for k, v in data.items() if k not in _MERKLE_KEYS}
    content = INotify() if not rest else _decode_input_content(rest, path)
    return MerkleizedInput(content, continuation_hash, continuation)


def encode_payment(payment: Payment) -> dict:
    return {"payment_from": encode_party(payment.from_account),
            "to": encode_payee(payment.to),
            "token": encode_token(payment.token),
            "amount": payment.amount}


def decode_payment(data: Any, path: str = "$") -> Payment:
    _object(data, path, "payment_from", "to", "token", "amount")
    return Payment(decode_party(data["payment_from"], f"{path}.payment_from"),
                   decode_payee(data["to"], f"{path}.to"),
                   decode_token(data["token"], f"{path}.token"),
                   _int(data["amount"], f"{path}.amount"))


def encode_environment(env: Environment) -> dict:
    return {"timeInterval": {"from": env.time_interval.from_, "to": env.time_interval.to}}


def decode_environment(data: Any, path: str = "$") -> Environment:
    _object(data, path, "timeInterval")
    window = _object(data["timeInterval"], f"{path}.timeInterval", "from", "to")
    return Environment(TimeInterval(_int(window["from"], f"{path}.timeInterval.from"),
                                    _int(window["to"], f"{path}.timeInterval.to")))


# =============================================================================
# JSON text boundary
# =============================================================================

def _reject_float(text: str):
    raise DecodeError(f"floating point number {text} is not allowed")


def _reject_constant(text: str):
    raise DecodeError(f"non-finite number {text} is not allowed")


def canonical_json(data: Any) -> str:
    """Deterministic compact JSON with sorted keys."""
    return json.dumps(data, sort_keys=True, separators=(',', ':'))


def dumps(data: Any, **kwargs) -> str:
    return json.dumps(data, **kwargs)


def loads(text: str, decoder: Callable[[Any, str], Any] = None) -> Any:
    """
    Parse JSON text, keeping integers exact and refusing floats.

    With a decoder (e.g. decode_contract) the parsed data is decoded too.
    """
    try:
        data = json.loads(text, parse_float=_reject_float, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise DecodeError(f"invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})") from e
    if decoder is None:
        return data
    return decoder(data, "$")


ENCODERS: Dict[str, Callable[[Any], Any]] = {
    "party": encode_party,
    "token": encode_token,
    "value": encode_value,
    "observation": encode_observation,
    "action": encode_action,
    "contract": encode_contract,
}

DECODERS: Dict[str, Callable[[Any, str], Any]] = {
    "party": decode_party,
    "token": decode_token,
    "value": decode_value,
    "observation": decode_observation,
    "action": decode_action,
    "contract": decode_contract,
}
