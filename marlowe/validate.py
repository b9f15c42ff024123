"""
Static validation of contract trees.

These checks run before a contract is deployed to catch mistakes the type
structure can't express: inverted choice bounds, timeouts that do not
increase, payments of constant non-positive amounts and the like.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional

from .config import DEFAULT_CONFIG, EngineConfig
from .core.types import (
    Contract, Close, Pay, If, When, Let, Assert, Case, Reference,
    Action, Deposit, Choice, Notify,
    Value, Constant, AvailableMoney, ChoiceValue, NegValue, AddValue, SubValue,
    MulValue, DivValue, UseValue, Cond, TimeIntervalStart, TimeIntervalEnd,
    Observation, ConstantObs, AndObs, OrObs, NotObs, ValueEQ, ValueGE, ValueGT,
    ValueLT, ValueLE, ChoseSomething,
)


@dataclass
class ValidationError:
    """A validation finding with the JSON-style path of the offending node."""
    message: str
    path: str = "$"
    severity: str = "error"  # "error" or "warning"

    def __str__(self):
        return f"[{self.severity}] {self.path}: {self.message}"


@dataclass
class ValidationResult:
    """Result of validation."""
    errors: List[ValidationError] = field(default_factory=list)
    warnings: List[ValidationError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def add_error(self, message: str, path: str = "$"):
        self.errors.append(ValidationError(message, path, "error"))

    def add_warning(self, message: str, path: str = "$"):
        self.warnings.append(ValidationError(message, path, "warning"))

    def merge(self, other: 'ValidationResult'):
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)

    def __str__(self):
        lines = []
        for err in self.errors:
            lines.append(str(err))
        for warn in self.warnings:
            lines.append(str(warn))
        return "\n".join(lines)


@dataclass(frozen=True)
class _Scope:
    """What is known on the path from the root to the current node."""
    bound_ids: FrozenSet[str] = frozenset()
    # Timeout of the closest enclosing When, if any.
    timeout: Optional[int] = None


def validate_contract(contract: Contract, config: EngineConfig = DEFAULT_CONFIG) -> ValidationResult:
    """Run all validations on a contract."""
    return _validate(contract, "$", _Scope(), config)


def validate_and_report(contract: Contract, config: EngineConfig = DEFAULT_CONFIG,
                        raise_on_error: bool = True) -> ValidationResult:
    """
    Validate a contract and optionally raise on errors.

    Args:
        contract: The contract to validate
        config: Engine configuration (decides whether Let/Assert are allowed)
        raise_on_error: If True, raise ValueError on validation errors

    Returns:
        ValidationResult with all errors and warnings
    """
    result = validate_contract(contract, config)

    if result.has_errors and raise_on_error:
        raise ValueError(f"Contract validation failed:\n{result}")

    return result


# =============================================================================
# Contracts
# =============================================================================

def _validate(contract: Contract, path: str, scope: _Scope, config: EngineConfig) -> ValidationResult:
    result = ValidationResult()

    if isinstance(contract, Close):
        return result

    elif isinstance(contract, Pay):
        result.merge(validate_value(contract.value, f"{path}.pay", scope))
        if isinstance(contract.value, Constant) and contract.value.value <= 0:
            result.add_warning(f"Pays a non-positive amount ({contract.value.value})", f"{path}.pay")
        result.merge(_validate(contract.then, f"{path}.then", scope, config))

    elif isinstance(contract, If):
        result.merge(validate_observation(contract.observation, f"{path}.if", scope))
        if isinstance(contract.observation, ConstantObs):
            dead = "else" if contract.observation.value else "then"
            result.add_warning(f"Condition is constant, the {dead} branch is unreachable", f"{path}.if")
        result.merge(_validate(contract.then, f"{path}.then", scope, config))
        result.merge(_validate(contract.else_, f"{path}.else", scope, config))

    elif isinstance(contract, When):
        result.merge(_validate_when(contract, path, scope, config))

    elif isinstance(contract, Let):
        if not config.allow_let_assert:
            result.add_error("Let is not supported by this engine configuration", path)
        result.merge(validate_value(contract.value, f"{path}.be", scope))
        if contract.value_id in scope.bound_ids:
            result.add_warning(f"Let shadows the earlier binding of '{contract.value_id}'", path)
        inner = _Scope(scope.bound_ids | {contract.value_id}, scope.timeout)
        result.merge(_validate(contract.then, f"{path}.then", inner, config))

    elif isinstance(contract, Assert):
        if not config.allow_let_assert:
            result.add_error("Assert is not supported by this engine configuration", path)
        result.merge(validate_observation(contract.observation, f"{path}.assert", scope))
        if contract.observation == ConstantObs(False):
            result.add_warning("Assertion always fails", f"{path}.assert")
        result.merge(_validate(contract.then, f"{path}.then", scope, config))

    else:
        raise TypeError(f"Unknown contract: {contract!r}")

    return result


def _validate_when(when: When, path: str, scope: _Scope, config: EngineConfig) -> ValidationResult:
    result = ValidationResult()

    if scope.timeout is not None and when.deadline <= scope.timeout:
        result.add_warning(
            f"Timeout {when.deadline} does not increase over the enclosing timeout {scope.timeout}",
            f"{path}.timeout",
        )

    inner = _Scope(scope.bound_ids, when.deadline)
    seen_deposits = {}
    for i, case in enumerate(when.cases):
        case_path = f"{path}.when[{i}]"
        result.merge(validate_action(case.action, f"{case_path}.case", inner))

        action = case.action
        if isinstance(action, Deposit) and isinstance(action.value, Constant):
            key = (action.into_account, action.party, action.token, action.value.value)
            if key in seen_deposits:
                result.add_warning(
                    f"Deposit duplicates case {seen_deposits[key]} and can never be chosen",
                    f"{case_path}.case",
                )
            else:
                seen_deposits[key] = i

        result.merge(_validate_case_continuation(case, case_path, inner, config))

    result.merge(_validate(when.contingency, f"{path}.timeout_continuation", scope, config))
    return result


def _validate_case_continuation(case: Case, path: str, scope: _Scope,
                                config: EngineConfig) -> ValidationResult:
    then = case.then
    if isinstance(then, Reference):
        if then.contract is None:
            # Stored elsewhere; nothing to check locally.
            return ValidationResult()
        return _validate(then.contract, f"{path}.then", scope, config)
    return _validate(then, f"{path}.then", scope, config)


# =============================================================================
# Actions
# =============================================================================

def validate_action(action: Action, path: str, scope: _Scope = _Scope()) -> ValidationResult:
    result = ValidationResult()

    if isinstance(action, Deposit):
        result.merge(validate_value(action.value, f"{path}.deposits", scope))
        if isinstance(action.value, Constant) and action.value.value <= 0:
            result.add_warning(
                f"Deposits a non-positive amount ({action.value.value})", f"{path}.deposits"
            )

    elif isinstance(action, Choice):
        if not action.bounds:
            result.add_error("Choice has no bounds and can never be made", f"{path}.choose_between")
        for i, bound in enumerate(action.bounds):
            if bound.from_ > bound.to:
                result.add_error(
                    f"Bound [{bound.from_}, {bound.to}] is empty", f"{path}.choose_between[{i}]"
                )

    elif isinstance(action, Notify):
        result.merge(validate_observation(action.observation, f"{path}.notify_if", scope))
        if action.observation == ConstantObs(False):
            result.add_warning("Notify condition is always false", f"{path}.notify_if")

    else:
        raise TypeError(f"Unknown action: {action!r}")

    return result


# =============================================================================
# Values and observations
# =============================================================================

def validate_value(value: Value, path: str, scope: _Scope = _Scope()) -> ValidationResult:
    result = ValidationResult()

    if isinstance(value, (Constant, AvailableMoney, ChoiceValue, TimeIntervalStart, TimeIntervalEnd)):
        pass
    elif isinstance(value, NegValue):
        result.merge(validate_value(value.value, f"{path}.negate", scope))
    elif isinstance(value, AddValue):
        result.merge(validate_value(value.left, f"{path}.add", scope))
        result.merge(validate_value(value.right, f"{path}.and", scope))
    elif isinstance(value, SubValue):
        result.merge(validate_value(value.left, f"{path}.value", scope))
        result.merge(validate_value(value.right, f"{path}.minus", scope))
    elif isinstance(value, MulValue):
        result.merge(validate_value(value.left, f"{path}.multiply", scope))
        result.merge(validate_value(value.right, f"{path}.times", scope))
    elif isinstance(value, DivValue):
        result.merge(validate_value(value.dividend, f"{path}.divide", scope))
        result.merge(validate_value(value.divisor, f"{path}.by", scope))
        if value.divisor == Constant(0):
            result.add_warning("Division by zero always evaluates to 0", f"{path}.by")
    elif isinstance(value, UseValue):
        if value.value_id not in scope.bound_ids:
            result.add_warning(f"'{value.value_id}' is not bound by an enclosing Let", path)
    elif isinstance(value, Cond):
        result.merge(validate_observation(value.observation, f"{path}.if", scope))
        result.merge(validate_value(value.if_true, f"{path}.then", scope))
        result.merge(validate_value(value.if_false, f"{path}.else", scope))
    else:
        raise TypeError(f"Unknown value: {value!r}")

    return result


_COMPARISON_KEYS = {
    ValueEQ: "equal_to",
    ValueGE: "ge_than",
    ValueGT: "gt",
    ValueLT: "lt",
    ValueLE: "le_than",
}


def validate_observation(obs: Observation, path: str, scope: _Scope = _Scope()) -> ValidationResult:
    result = ValidationResult()

    if isinstance(obs, (ConstantObs, ChoseSomething)):
        pass
    elif isinstance(obs, AndObs):
        result.merge(validate_observation(obs.left, f"{path}.both", scope))
        result.merge(validate_observation(obs.right, f"{path}.and", scope))
    elif isinstance(obs, OrObs):
        result.merge(validate_observation(obs.left, f"{path}.either", scope))
        result.merge(validate_observation(obs.right, f"{path}.or", scope))
    elif isinstance(obs, NotObs):
        result.merge(validate_observation(obs.observation, f"{path}.not", scope))
    elif isinstance(obs, tuple(_COMPARISON_KEYS)):
        result.merge(validate_value(obs.left, f"{path}.value", scope))
        result.merge(validate_value(obs.right, f"{path}.{_COMPARISON_KEYS[type(obs)]}", scope))
    else:
        raise TypeError(f"Unknown observation: {obs!r}")

    return result
