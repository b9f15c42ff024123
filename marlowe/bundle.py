"""
Content-addressed contract bundles.

A contract is hashed as the SHA-256 of its canonical JSON encoding, in which
merkleized case continuations appear as ``{"ref": label}``. A bundle map
stores every referenced continuation under its label so a runtime can load
only the branches a transaction actually reaches.

Hashing is a separate pass over an already built (immutable) tree. The
hasher memoizes labels by node identity and keeps each hashed node alive, so
an id is never reused while its label is cached.
"""

import hashlib
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .codec import DECODERS, ENCODERS, canonical_json, encode_contract
from .core.errors import (
    BundleCorruptionError, BundleResolutionError, DecodeError, HashMismatchError,
)
from .core.types import (
    Case, Contract, Close, Pay, If, When, Let, Assert, Reference,
)

logger = logging.getLogger(__name__)

Label = str

OBJECT_TYPES = ("party", "value", "observation", "token", "contract", "action")


def hash_data(data: Any) -> Label:
    """Compute deterministic hash of JSON-compatible data."""
    return hashlib.sha256(canonical_json(data).encode()).hexdigest()


# =============================================================================
# Bundle objects
# =============================================================================

@dataclass(frozen=True)
class BundleObject:
    """A labelled entry: the object's kind and its JSON encoding."""
    type: str
    value: Any

    def __post_init__(self):
        if self.type not in OBJECT_TYPES:
            raise ValueError(f"Unknown bundle object type: {self.type}")

    def canonical(self) -> str:
        return canonical_json({"type": self.type, "value": self.value})

    def to_json(self) -> dict:
        return {"type": self.type, "value": self.value}


BundleMap = Dict[Label, BundleObject]


def merge_bundle_maps(left: BundleMap, right: BundleMap) -> BundleMap:
    """
    Union of two bundle maps.

    A label present in both must name identical content; anything else is a
    collision or an upstream bug and raises BundleCorruptionError.
    """
    merged = dict(left)
    for label, obj in right.items():
        existing = merged.get(label)
        if existing is None:
            merged[label] = obj
        elif existing.canonical() != obj.canonical():
            raise BundleCorruptionError(label, existing.to_json(), obj.to_json())
    return merged


@dataclass(frozen=True)
class RuntimeObject:
    """A contract packaged for a runtime: entry label plus every object."""
    main: Label
    objects: BundleMap = field(default_factory=dict)


# =============================================================================
# Hashing
# =============================================================================

def _iter_cases(contract: Contract) -> Iterator[Case]:
    """Cases reachable from a contract without crossing a reference."""
    stack = [contract]
    while stack:
        node = stack.pop()
        if isinstance(node, Close):
            continue
        elif isinstance(node, (Pay, Let, Assert)):
            stack.append(node.then)
        elif isinstance(node, If):
            stack.extend((node.else_, node.then))
        elif isinstance(node, When):
            yield from node.cases
            stack.append(node.contingency)
            stack.extend(case.then for case in reversed(node.cases)
                         if not isinstance(case.then, Reference))
        else:
            raise TypeError(f"Unknown contract: {node!r}")


class ContractHasher:
    """Hashes contracts and collects their continuations, memoized by node."""

    def __init__(self):
        self._labels: Dict[int, Tuple[Contract, Label]] = {}
        self._bundles: Dict[int, Tuple[Contract, BundleMap]] = {}

    def hash(self, contract: Contract) -> Label:
        cached = self._labels.get(id(contract))
        if cached is not None:
            return cached[1]
        label = hash_data(encode_contract(contract))
        self._labels[id(contract)] = (contract, label)
        return label

    def reference(self, contract: Contract) -> Reference:
        return Reference(self.hash(contract), contract)

    def continuations(self, contract: Contract) -> BundleMap:
        """Every referenced continuation reachable from the contract."""
        cached = self._bundles.get(id(contract))
        if cached is not None:
            return cached[1]

        bundle: BundleMap = {}
        for case in _iter_cases(contract):
            ref = case.then
            if not isinstance(ref, Reference):
                continue
            if ref.contract is None:
                raise BundleResolutionError(ref.label, "reference carries no contract")
            actual = self.hash(ref.contract)
            if actual != ref.label:
                raise HashMismatchError(ref.label, actual)
            own = {ref.label: BundleObject("contract", encode_contract(ref.contract))}
            bundle = merge_bundle_maps(bundle, own)
            bundle = merge_bundle_maps(bundle, self.continuations(ref.contract))

        self._bundles[id(contract)] = (contract, bundle)
        return bundle

    def to_runtime_object(self, contract: Contract) -> RuntimeObject:
        main = self.hash(contract)
        own = {main: BundleObject("contract", encode_contract(contract))}
        objects = merge_bundle_maps(self.continuations(contract), own)
        logger.debug("Packaged contract %s with %d objects", main, len(objects))
        return RuntimeObject(main, objects)


# The module-level helpers use a fresh hasher per call so cached nodes are
# released afterwards; keep a ContractHasher around to share work across calls.

def hash_contract(contract: Contract) -> Label:
    return ContractHasher().hash(contract)


def reference(contract: Contract) -> Reference:
    """Reference to a contract by its content hash, for a merkleized case."""
    return ContractHasher().reference(contract)


def continuations_of(contract: Contract) -> BundleMap:
    return ContractHasher().continuations(contract)


def to_runtime_object(contract: Contract) -> RuntimeObject:
    return ContractHasher().to_runtime_object(contract)


def merkleize(contract: Contract, hasher: Optional[ContractHasher] = None) -> Contract:
    """Replace every inline case continuation with a reference, bottom up."""
    hasher = hasher or ContractHasher()
    if isinstance(contract, Close):
        return contract
    elif isinstance(contract, (Pay, Let, Assert)):
        return replace(contract, then=merkleize(contract.then, hasher))
    elif isinstance(contract, If):
        return replace(contract, then=merkleize(contract.then, hasher),
                       else_=merkleize(contract.else_, hasher))
    elif isinstance(contract, When):
        cases = []
        for case in contract.cases:
            if isinstance(case.then, Reference):
                cases.append(case)
            else:
                cases.append(Case(case.action, hasher.reference(merkleize(case.then, hasher))))
        if contract.timeout_continuation is None:
            return replace(contract, cases=cases)
        return replace(contract, cases=cases,
                       timeout_continuation=merkleize(contract.timeout_continuation, hasher))
    raise TypeError(f"Unknown contract: {contract!r}")


# =============================================================================
# Loading
# =============================================================================

class _BundleLoader:
    def __init__(self, objects: BundleMap, inline: bool):
        self.objects = objects
        self.inline = inline
        self._expanded: Dict[Label, Any] = {}
        self._contracts: Dict[Label, Contract] = {}
        self._loading: List[Label] = []

    def expand(self, label: Label, stack: Tuple[Label, ...] = ()) -> Any:
        """JSON of an object with every nested reference substituted."""
        if label in stack:
            cycle = " -> ".join(stack + (label,))
            raise BundleResolutionError(label, f"reference cycle {cycle}")
        if label in self._expanded:
            return self._expanded[label]
        obj = self.objects.get(label)
        if obj is None:
            raise BundleResolutionError(label, "label not found in bundle")
        expanded = self._substitute(obj.value, stack + (label,))
        self._expanded[label] = expanded
        return expanded

    def _substitute(self, data: Any, stack: Tuple[Label, ...]) -> Any:
        if isinstance(data, list):
            return [self._substitute(item, stack) for item in data]
        if not isinstance(data, dict):
            return data
        if set(data) == {"ref"}:
            return self.expand(data["ref"], stack)
        if not self.inline and set(data) == {"case", "then"} and _is_ref(data["then"]):
            # Case continuations stay referenced; they are loaded separately.
            self._check_contract(data["then"]["ref"])
            return {"case": self._substitute(data["case"], stack), "then": data["then"]}
        return {key: self._substitute(value, stack) for key, value in data.items()}

    def _check_contract(self, label: Label):
        obj = self.objects.get(label)
        if obj is None:
            raise BundleResolutionError(label, "label not found in bundle")
        if obj.type != "contract":
            raise BundleResolutionError(label, f"case continuation is a {obj.type}")

    def load(self, label: Label, expected: str) -> Any:
        obj = self.objects.get(label)
        if obj is None:
            raise BundleResolutionError(label, "label not found in bundle")
        if obj.type != expected:
            raise BundleResolutionError(label, f"expected a {expected}, found a {obj.type}")
        try:
            decoded = DECODERS[obj.type](self.expand(label), f"$[{label}]")
        except DecodeError as e:
            raise BundleResolutionError(label, str(e)) from e
        if obj.type == "contract" and not self.inline:
            decoded = self.attach(decoded)
        return decoded

    def contract(self, label: Label) -> Contract:
        if label in self._loading:
            cycle = " -> ".join(self._loading[self._loading.index(label):] + [label])
            raise BundleResolutionError(label, f"reference cycle {cycle}")
        if label not in self._contracts:
            self._loading.append(label)
            try:
                self._contracts[label] = self.load(label, "contract")
            finally:
                self._loading.pop()
        return self._contracts[label]

    def attach(self, contract: Contract) -> Contract:
        """Give every bare reference in the tree its loaded contract."""
        if isinstance(contract, Close):
            return contract
        elif isinstance(contract, (Pay, Let, Assert)):
            return replace(contract, then=self.attach(contract.then))
        elif isinstance(contract, If):
            return replace(contract, then=self.attach(contract.then),
                           else_=self.attach(contract.else_))
        elif isinstance(contract, When):
            cases = []
            for case in contract.cases:
                if isinstance(case.then, Reference):
                    ref = Reference(case.then.label, self.contract(case.then.label))
                    cases.append(Case(case.action, ref))
                else:
                    cases.append(Case(case.action, self.attach(case.then)))
            if contract.timeout_continuation is None:
                return replace(contract, cases=cases)
            return replace(contract, cases=cases,
                           timeout_continuation=self.attach(contract.timeout_continuation))
        raise TypeError(f"Unknown contract: {contract!r}")


def _is_ref(data: Any) -> bool:
    return isinstance(data, dict) and set(data) == {"ref"}


def from_runtime_object(obj: RuntimeObject, inline: bool = True) -> Contract:
    """
    Load the main contract of a bundle.

    References to parties, tokens, values, observations and actions are always
    substituted. With inline=True case continuations are substituted too and
    the result is a plain contract; otherwise they stay as references that
    carry the loaded continuation, so when a bundle references nothing but
    case continuations, hashing the result gives obj.main back.
    """
    loader = _BundleLoader(obj.objects, inline)
    return loader.contract(obj.main)


def runtime_object_to_json(obj: RuntimeObject) -> dict:
    return {"main": obj.main,
            "objects": {label: o.to_json() for label, o in obj.objects.items()}}


def runtime_object_from_json(data: Any) -> RuntimeObject:
    if not isinstance(data, dict) or set(data) != {"main", "objects"}:
        raise DecodeError("expected an object with keys main, objects")
    if not isinstance(data["main"], str):
        raise DecodeError("expected a string label", "$.main")
    if not isinstance(data["objects"], dict):
        raise DecodeError("expected a mapping of labels to objects", "$.objects")

    objects: BundleMap = {}
    for label, entry in data["objects"].items():
        path = f"$.objects[{label}]"
        if not isinstance(entry, dict) or set(entry) != {"type", "value"}:
            raise DecodeError("expected an object with keys type, value", path)
        if entry["type"] not in OBJECT_TYPES:
            raise DecodeError(f"unknown object type {entry['type']!r}", f"{path}.type")
        objects[label] = BundleObject(entry["type"], entry["value"])
    return RuntimeObject(data["main"], objects)


def encode_object(kind: str, node: Any) -> BundleObject:
    """Bundle entry for any kind of node."""
    return BundleObject(kind, ENCODERS[kind](node))
