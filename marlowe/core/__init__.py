"""
Marlowe core - contract language and reduction semantics.

This package provides:
- types: the immutable contract tree and its fluent builders
- state: environment, ledger state, payments, warnings and inputs
- evaluate: value and observation evaluation
- semantics: the reducer, input application and transactions
- builders: higher-level contract combinators
- errors: the error taxonomy
"""

from .types import (
    Role,
    Address,
    Token,
    LOVELACE,
    PartyPayee,
    AccountPayee,
    ChoiceId,
    Bound,
    Constant,
    AvailableMoney,
    ChoiceValue,
    NegValue,
    AddValue,
    SubValue,
    MulValue,
    DivValue,
    UseValue,
    Cond,
    TimeIntervalStart,
    TimeIntervalEnd,
    ConstantObs,
    TRUE_OBS,
    FALSE_OBS,
    AndObs,
    OrObs,
    NotObs,
    ValueEQ,
    ValueGE,
    ValueGT,
    ValueLT,
    ValueLE,
    ChoseSomething,
    Deposit,
    Choice,
    Notify,
    Case,
    Reference,
    Close,
    CLOSE,
    Pay,
    If,
    When,
    Let,
    Assert,
    to_source,
)

from .state import (
    TimeInterval,
    Environment,
    make_environment,
    to_posix_ms,
    State,
    empty_state,
    Payment,
    NonPositivePay,
    PartialPay,
    Shadow,
    Assertion,
    NonPositiveDeposit,
    IDeposit,
    IChoice,
    INotify,
    MerkleizedInput,
    Transaction,
    TransactionOutput,
)

from .evaluate import eval_value, eval_observation

from .semantics import (
    NotReduced,
    Reduced,
    AmbiguousTimeInterval,
    ReduceResult,
    reduce_contract_step,
    reduce_contract_until_quiescent,
    apply_input,
    apply_all_inputs,
    fix_interval,
    compute_transaction,
    next_timeout,
)

from .errors import (
    MarloweError,
    AmbiguousTimeIntervalError,
    UnsupportedConstructError,
    ApplyNoMatchError,
    HashMismatchError,
    ChosenNumberOutOfBoundsError,
    InvalidIntervalError,
    IntervalInPastError,
    UselessTransactionError,
    ContinuationResolutionError,
    DepositCollisionError,
    BundleCorruptionError,
    BundleResolutionError,
    DecodeError,
    ParseError,
    ConfigError,
)

__all__ = [
    # Parties, tokens, payees
    "Role",
    "Address",
    "Token",
    "LOVELACE",
    "PartyPayee",
    "AccountPayee",
    "ChoiceId",
    "Bound",
    # Values
    "Constant",
    "AvailableMoney",
    "ChoiceValue",
    "NegValue",
    "AddValue",
    "SubValue",
    "MulValue",
    "DivValue",
    "UseValue",
    "Cond",
    "TimeIntervalStart",
    "TimeIntervalEnd",
    # Observations
    "ConstantObs",
    "TRUE_OBS",
    "FALSE_OBS",
    "AndObs",
    "OrObs",
    "NotObs",
    "ValueEQ",
    "ValueGE",
    "ValueGT",
    "ValueLT",
    "ValueLE",
    "ChoseSomething",
    # Actions and contracts
    "Deposit",
    "Choice",
    "Notify",
    "Case",
    "Reference",
    "Close",
    "CLOSE",
    "Pay",
    "If",
    "When",
    "Let",
    "Assert",
    "to_source",
    # State
    "TimeInterval",
    "Environment",
    "make_environment",
    "to_posix_ms",
    "State",
    "empty_state",
    "Payment",
    "NonPositivePay",
    "PartialPay",
    "Shadow",
    "Assertion",
    "NonPositiveDeposit",
    "IDeposit",
    "IChoice",
    "INotify",
    "MerkleizedInput",
    "Transaction",
    "TransactionOutput",
    # Semantics
    "eval_value",
    "eval_observation",
    "NotReduced",
    "Reduced",
    "AmbiguousTimeInterval",
    "ReduceResult",
    "reduce_contract_step",
    "reduce_contract_until_quiescent",
    "apply_input",
    "apply_all_inputs",
    "fix_interval",
    "compute_transaction",
    "next_timeout",
    # Errors
    "MarloweError",
    "AmbiguousTimeIntervalError",
    "UnsupportedConstructError",
    "ApplyNoMatchError",
    "HashMismatchError",
    "ChosenNumberOutOfBoundsError",
    "InvalidIntervalError",
    "IntervalInPastError",
    "UselessTransactionError",
    "ContinuationResolutionError",
    "DepositCollisionError",
    "BundleCorruptionError",
    "BundleResolutionError",
    "DecodeError",
    "ParseError",
    "ConfigError",
]
