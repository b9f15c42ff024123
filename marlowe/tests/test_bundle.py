"""Tests for contract hashing and bundle maps."""

import hashlib

import pytest

from marlowe.bundle import (
    BundleObject, ContractHasher, RuntimeObject, continuations_of, encode_object,
    from_runtime_object, hash_contract, hash_data, merge_bundle_maps, merkleize,
    reference, runtime_object_from_json, runtime_object_to_json, to_runtime_object,
)
from marlowe.codec import dumps, encode_contract, loads
from marlowe.core.errors import (
    BundleCorruptionError, BundleResolutionError, DecodeError, HashMismatchError,
)
from marlowe.core.types import (
    CLOSE, Deposit, LOVELACE, Notify, Pay, PartyPayee, Reference, Role, When,
    TRUE_OBS,
)

ALICE = Role("alice")
BOB = Role("bob")


def escrow():
    """Two-level contract: deposit, then either notify or time out."""
    release = Pay(ALICE, PartyPayee(BOB), LOVELACE, 10, CLOSE)
    inner = When([Notify(TRUE_OBS).then(release)], 2_000, CLOSE)
    return When([Deposit(ALICE, ALICE, LOVELACE, 10).then(inner)], 1_000, CLOSE)


class TestHashing:
    """Labels are SHA-256 over canonical JSON."""

    def test_close(self):
        assert hash_contract(CLOSE) == hashlib.sha256(b'"close"').hexdigest()

    def test_hash_data_ignores_key_order(self):
        assert hash_data({"a": 1, "b": 2}) == hash_data({"b": 2, "a": 1})

    def test_equal_contracts_hash_equal(self):
        assert hash_contract(escrow()) == hash_contract(escrow())
        assert hash_contract(escrow()) != hash_contract(CLOSE)

    def test_reference_carries_label_and_contract(self):
        contract = escrow()
        ref = reference(contract)
        assert ref.label == hash_contract(contract)
        assert ref.contract is contract
        assert ref == Reference(ref.label)

    def test_hasher_memoizes(self):
        hasher = ContractHasher()
        contract = escrow()
        assert hasher.hash(contract) is hasher.hash(contract)


class TestContinuations:

    def test_inline_contract_has_none(self):
        assert continuations_of(escrow()) == {}

    def test_nested_references(self):
        leaf = Pay(ALICE, PartyPayee(BOB), LOVELACE, 1, CLOSE)
        middle = When([Notify(TRUE_OBS).then(reference(leaf))], 10, CLOSE)
        top = When([Notify(TRUE_OBS).then(reference(middle))], 5, CLOSE)

        bundle = continuations_of(top)
        assert set(bundle) == {hash_contract(leaf), hash_contract(middle)}
        assert bundle[hash_contract(leaf)] == BundleObject("contract", encode_contract(leaf))

    def test_label_mismatch(self):
        contract = When([Notify(TRUE_OBS).then(Reference("bogus", CLOSE))], 5, CLOSE)
        with pytest.raises(HashMismatchError):
            continuations_of(contract)

    def test_reference_without_contract(self):
        contract = When([Notify(TRUE_OBS).then(Reference("abc"))], 5, CLOSE)
        with pytest.raises(BundleResolutionError):
            continuations_of(contract)


class TestMergeBundleMaps:

    def test_union(self):
        left = {"a": BundleObject("value", 1)}
        right = {"b": BundleObject("value", 2), "a": BundleObject("value", 1)}
        assert merge_bundle_maps(left, right) == {"a": BundleObject("value", 1),
                                                  "b": BundleObject("value", 2)}

    def test_conflict(self):
        with pytest.raises(BundleCorruptionError) as excinfo:
            merge_bundle_maps({"a": BundleObject("value", 1)}, {"a": BundleObject("value", 2)})
        assert excinfo.value.label == "a"

    def test_unknown_object_type(self):
        with pytest.raises(ValueError):
            BundleObject("widget", 1)


class TestRuntimeObject:

    def test_main_label(self):
        contract = merkleize(escrow())
        obj = to_runtime_object(contract)
        assert obj.main == hash_contract(contract)
        assert len(obj.objects) == 3

    def test_inline_load_restores_plain_contract(self):
        obj = to_runtime_object(merkleize(escrow()))
        assert from_runtime_object(obj) == escrow()

    def test_referenced_load_keeps_hash(self):
        merkleized = merkleize(escrow())
        obj = to_runtime_object(merkleized)
        loaded = from_runtime_object(obj, inline=False)

        assert loaded == merkleized
        assert hash_contract(loaded) == obj.main
        assert loaded.cases[0].then.contract is not None

    def test_json_round_trip(self):
        obj = to_runtime_object(merkleize(escrow()))
        data = loads(dumps(runtime_object_to_json(obj)))
        assert runtime_object_from_json(data) == obj

    def test_substitutes_non_contract_objects(self):
        data = encode_contract(Pay(ALICE, PartyPayee(BOB), LOVELACE, 5, CLOSE))
        data["from_account"] = {"ref": "alice"}
        obj = RuntimeObject("main", {
            "main": BundleObject("contract", data),
            "alice": encode_object("party", ALICE),
        })
        assert from_runtime_object(obj) == Pay(ALICE, PartyPayee(BOB), LOVELACE, 5, CLOSE)

    def test_cycle(self):
        obj = RuntimeObject("a", {
            "a": BundleObject("contract", {"ref": "b"}),
            "b": BundleObject("contract", {"ref": "a"}),
        })
        with pytest.raises(BundleResolutionError) as excinfo:
            from_runtime_object(obj)
        assert "cycle" in str(excinfo.value)

    def test_case_continuation_cycle_kept_referenced(self):
        def waits_for(label):
            return BundleObject("contract", {
                "when": [{"case": {"notify_if": True}, "then": {"ref": label}}],
                "timeout": 10,
                "timeout_continuation": "close",
            })

        obj = RuntimeObject("a", {"a": waits_for("b"), "b": waits_for("a")})
        with pytest.raises(BundleResolutionError) as excinfo:
            from_runtime_object(obj, inline=False)
        assert "reference cycle a -> b -> a" in str(excinfo.value)

    def test_missing_label(self):
        with pytest.raises(BundleResolutionError):
            from_runtime_object(RuntimeObject("nowhere", {}))

    def test_main_of_wrong_type(self):
        obj = RuntimeObject("p", {"p": encode_object("party", ALICE)})
        with pytest.raises(BundleResolutionError):
            from_runtime_object(obj)

    def test_undecodable_object(self):
        obj = RuntimeObject("c", {"c": BundleObject("contract", {"pay": 1})})
        with pytest.raises(BundleResolutionError):
            from_runtime_object(obj)

    def test_bad_json_shape(self):
        with pytest.raises(DecodeError):
            runtime_object_from_json({"main": "a"})
        with pytest.raises(DecodeError):
            runtime_object_from_json({"main": "a", "objects": {"a": {"type": "widget", "value": 1}}})


class TestMerkleize:

    def test_every_case_is_referenced(self):
        merkleized = merkleize(escrow())
        case = merkleized.cases[0]
        assert isinstance(case.then, Reference)
        assert isinstance(case.then.contract.cases[0].then, Reference)
        assert merkleized.timeout_continuation == CLOSE

    def test_changes_the_hash(self):
        assert hash_contract(merkleize(escrow())) != hash_contract(escrow())

    def test_idempotent(self):
        once = merkleize(escrow())
        assert merkleize(once) == once

    def test_keeps_missing_contingency_missing(self):
        merkleized = merkleize(When([Notify(TRUE_OBS).then(CLOSE)]))
        assert not merkleized.has_contingency
        assert merkleized.contingency == CLOSE
