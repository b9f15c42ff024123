"""
Evaluation of Value and Observation trees.

Both functions are pure and total: lookups of unknown accounts, choices or
bound values yield 0, and division by zero yields 0.
"""

from .state import Environment, State
from .types import (
    Value, Observation,
    Constant, AvailableMoney, ChoiceValue, NegValue, AddValue, SubValue,
    MulValue, DivValue, UseValue, Cond, TimeIntervalStart, TimeIntervalEnd,
    ConstantObs, AndObs, OrObs, NotObs, ValueEQ, ValueGE, ValueGT, ValueLT,
    ValueLE, ChoseSomething,
)


def quot(dividend: int, divisor: int) -> int:
    """Integer division truncating toward zero; x / 0 is 0."""
    if divisor == 0:
        return 0
    q = abs(dividend) // abs(divisor)
    return q if (dividend >= 0) == (divisor > 0) else -q


def eval_value(env: Environment, state: State, value: Value) -> int:
    if isinstance(value, Constant):
        return value.value
    elif isinstance(value, AvailableMoney):
        return state.available_money(value.account, value.token)
    elif isinstance(value, ChoiceValue):
        return state.choices.get(value.choice_id, 0)
    elif isinstance(value, NegValue):
        return -eval_value(env, state, value.value)
    elif isinstance(value, AddValue):
        return eval_value(env, state, value.left) + eval_value(env, state, value.right)
    elif isinstance(value, SubValue):
        return eval_value(env, state, value.left) - eval_value(env, state, value.right)
    elif isinstance(value, MulValue):
        return eval_value(env, state, value.left) * eval_value(env, state, value.right)
    elif isinstance(value, DivValue):
        return quot(eval_value(env, state, value.dividend), eval_value(env, state, value.divisor))
    elif isinstance(value, UseValue):
        return state.bound_values.get(value.value_id, 0)
    elif isinstance(value, Cond):
        if eval_observation(env, state, value.observation):
            return eval_value(env, state, value.if_true)
        return eval_value(env, state, value.if_false)
    elif isinstance(value, TimeIntervalStart):
        return env.time_interval.from_
    elif isinstance(value, TimeIntervalEnd):
        return env.time_interval.to
    raise TypeError(f"Unknown value: {value!r}")


def eval_observation(env: Environment, state: State, obs: Observation) -> bool:
    if isinstance(obs, ConstantObs):
        return obs.value
    elif isinstance(obs, AndObs):
        return eval_observation(env, state, obs.left) and eval_observation(env, state, obs.right)
    elif isinstance(obs, OrObs):
        return eval_observation(env, state, obs.left) or eval_observation(env, state, obs.right)
    elif isinstance(obs, NotObs):
        return not eval_observation(env, state, obs.observation)
    elif isinstance(obs, ChoseSomething):
        return obs.choice_id in state.choices
    elif isinstance(obs, ValueEQ):
        return eval_value(env, state, obs.left) == eval_value(env, state, obs.right)
    elif isinstance(obs, ValueGE):
        return eval_value(env, state, obs.left) >= eval_value(env, state, obs.right)
    elif isinstance(obs, ValueGT):
        return eval_value(env, state, obs.left) > eval_value(env, state, obs.right)
    elif isinstance(obs, ValueLT):
        return eval_value(env, state, obs.left) < eval_value(env, state, obs.right)
    elif isinstance(obs, ValueLE):
        return eval_value(env, state, obs.left) <= eval_value(env, state, obs.right)
    raise TypeError(f"Unknown observation: {obs!r}")
