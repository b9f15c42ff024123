"""
Marlowe - deterministic engine for Marlowe financial contracts.

This package provides:
- core: contract tree, ledger state, evaluator and reducer
- actions: applicable-actions engine over injected contract sources
- bundle: content hashing and merkleized contract bundles
- codec: JSON encoding and decoding of every entity
- parser: textual contract syntax
- validate: static contract checks
- config: engine configuration
"""

from . import core
from .config import EngineConfig, DEFAULT_CONFIG, config_from_dict, load_config

from .core.builders import (
    do,
    wait_for,
    wait_until,
    any_of,
    all_of,
    seq,
    set_contingency,
    let,
    max_value,
    min_value,
)

from .codec import (
    encode_contract,
    decode_contract,
    encode_state,
    decode_state,
    encode_input,
    decode_input,
    dumps,
    loads,
)

from .bundle import (
    BundleObject,
    RuntimeObject,
    ContractHasher,
    hash_contract,
    reference,
    merkleize,
    continuations_of,
    merge_bundle_maps,
    to_runtime_object,
    from_runtime_object,
)

from .actions import (
    ContractSources,
    ActiveContract,
    ClosedContract,
    ContinuationCache,
    CanAdvance,
    CanDeposit,
    CanChoose,
    CanNotify,
    AppliedAction,
    ANYBODY,
    applicable_actions,
    get_applicable_actions,
    compute_environment,
)

from .parser import parse, parse_file
from .validate import ValidationResult, validate_contract

__version__ = "0.1.0"

__all__ = [
    "core",
    # Configuration
    "EngineConfig",
    "DEFAULT_CONFIG",
    "config_from_dict",
    "load_config",
    # Builders
    "do",
    "wait_for",
    "wait_until",
    "any_of",
    "all_of",
    "seq",
    "set_contingency",
    "let",
    "max_value",
    "min_value",
    # Codec
    "encode_contract",
    "decode_contract",
    "encode_state",
    "decode_state",
    "encode_input",
    "decode_input",
    "dumps",
    "loads",
    # Bundles
    "BundleObject",
    "RuntimeObject",
    "ContractHasher",
    "hash_contract",
    "reference",
    "merkleize",
    "continuations_of",
    "merge_bundle_maps",
    "to_runtime_object",
    "from_runtime_object",
    # Applicable actions
    "ContractSources",
    "ActiveContract",
    "ClosedContract",
    "ContinuationCache",
    "CanAdvance",
    "CanDeposit",
    "CanChoose",
    "CanNotify",
    "AppliedAction",
    "ANYBODY",
    "applicable_actions",
    "get_applicable_actions",
    "compute_environment",
    # Parsing and validation
    "parse",
    "parse_file",
    "ValidationResult",
    "validate_contract",
]
