"""
Applicable actions.

Given an active contract, work out which inputs an external party could
submit right now: deposits, choices and notifications accepted by the When the
contract is waiting on, plus an Advance pseudo-action when the contract can
make progress without any input at all.

The reducer is synchronous; the only suspension points are the injected
sources (contract details, chain tip, merkleized continuations).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union,
)

from .config import DEFAULT_CONFIG, EngineConfig
from .core.errors import (
    ChosenNumberOutOfBoundsError, ContinuationResolutionError, DepositCollisionError,
)
from .core.evaluate import eval_observation, eval_value
from .core.semantics import (
    ReduceResult, apply_all_inputs, in_bounds, next_timeout,
    reduce_contract_until_quiescent,
)
from .core.state import (
    Environment, State, Payment, Transaction,
    IDeposit, IChoice, INotify, MerkleizedInput, Input, InputContent,
    make_environment, to_posix_ms,
)
from .core.types import (
    Bound, Case, Choice, ChoiceId, Contract, CONTRACT_TYPES, Deposit, Notify,
    Party, Reference, Token, When,
)

logger = logging.getLogger(__name__)

Label = str
Resolver = Callable[[Label], Awaitable[Contract]]


# =============================================================================
# External sources
# =============================================================================

@dataclass(frozen=True)
class ClosedContract:
    pass


@dataclass(frozen=True)
class ActiveContract:
    state: State
    contract: Contract


ContractDetails = Union[ClosedContract, ActiveContract]


class ContractSources(ABC):
    """Where the engine gets contracts, continuations and the current time."""

    @abstractmethod
    async def get_contract_continuation(self, label: Label) -> Contract:
        """Contract stored under a merkleized continuation label."""

    @abstractmethod
    async def get_contract_details(self, contract_id: str) -> ContractDetails:
        pass

    @abstractmethod
    async def get_runtime_tip(self) -> Union[datetime, int]:
        """Current chain time, as a datetime or POSIX milliseconds."""


class ContinuationCache:
    """
    Resolves continuation labels once per session.

    Failures of the underlying resolver are raised as
    ContinuationResolutionError with the original exception as the cause.
    """

    def __init__(self, resolver: Resolver, enabled: bool = True):
        self._resolver = resolver
        self._enabled = enabled
        self._contracts: Dict[Label, Contract] = {}

    def __contains__(self, label: Label) -> bool:
        return label in self._contracts

    async def get(self, label: Label) -> Contract:
        if label in self._contracts:
            logger.debug("Continuation %s served from cache", label)
            return self._contracts[label]

        try:
            contract = await self._resolver(label)
        except ContinuationResolutionError:
            raise
        except Exception as e:
            raise ContinuationResolutionError(label, str(e)) from e
        if not isinstance(contract, CONTRACT_TYPES):
            raise ContinuationResolutionError(
                label, f"resolver returned {type(contract).__name__}, not a contract"
            )

        if self._enabled:
            self._contracts[label] = contract
        return contract


# =============================================================================
# Environment
# =============================================================================

def compute_environment(tip: Union[datetime, int], contract: Contract,
                        config: EngineConfig = DEFAULT_CONFIG) -> Environment:
    """
    Default execution window starting at the chain tip.

    The window ends 1 ms before the next timeout so it never straddles it;
    without a pending timeout it spans default_window_ms.
    """
    lower = to_posix_ms(tip)
    upper = next_timeout(contract, lower)
    if upper is None:
        upper = lower + config.default_window_ms
    return make_environment(lower, upper - 1)


# =============================================================================
# Actions
# =============================================================================

@dataclass(frozen=True)
class Anybody:
    """Applicant of actions that any party may perform."""


ANYBODY = Anybody()

Applicant = Union[Party, Anybody]


@dataclass(frozen=True)
class AppliedAction:
    """Outcome of applying an action, including the initial reduction's effects."""
    inputs: Tuple[Input, ...]
    environment: Environment
    state: State
    contract: Contract
    warnings: Tuple[object, ...]
    payments: Tuple[Payment, ...]

    def to_transaction(self) -> Transaction:
        return Transaction(self.environment.time_interval, self.inputs)


@dataclass(frozen=True)
class _Origin:
    """The quiescent point every action of one enumeration starts from."""
    environment: Environment
    reduced: ReduceResult
    config: EngineConfig

    def apply(self, inputs: Sequence[Input]) -> AppliedAction:
        result = apply_all_inputs(self.environment, self.reduced.state,
                                  self.reduced.continuation, inputs, self.config)
        return AppliedAction(
            inputs=tuple(inputs),
            environment=self.environment,
            state=result.state,
            contract=result.continuation,
            warnings=self.reduced.warnings + result.warnings,
            payments=self.reduced.payments + result.payments,
        )


@dataclass(frozen=True)
class _ResolvedCase:
    case: Case
    continuation: Contract

    def to_input(self, content: InputContent) -> Input:
        if isinstance(self.case.then, Reference):
            return MerkleizedInput(content, self.case.then.label, self.continuation)
        return content


@dataclass(frozen=True)
class CanAdvance:
    """The contract progresses without input (timeouts passed, payments due)."""
    origin: _Origin = field(repr=False, compare=False)
    kind = "Advance"

    @property
    def applicant(self) -> Applicant:
        return ANYBODY

    @property
    def environment(self) -> Environment:
        return self.origin.environment

    def apply(self) -> AppliedAction:
        reduced = self.origin.reduced
        return AppliedAction((), self.origin.environment, reduced.state,
                             reduced.continuation, reduced.warnings, reduced.payments)


@dataclass(frozen=True)
class CanDeposit:
    deposit: Deposit
    amount: int
    source: _ResolvedCase = field(repr=False, compare=False)
    origin: _Origin = field(repr=False, compare=False)
    # Later cases accepting the same deposit; they can never be selected.
    shadowed: Tuple[Case, ...] = ()
    kind = "Deposit"

    @property
    def applicant(self) -> Applicant:
        return self.deposit.party

    @property
    def environment(self) -> Environment:
        return self.origin.environment

    @property
    def key(self) -> Tuple[Party, Party, Token, int]:
        return (self.deposit.into_account, self.deposit.party, self.deposit.token, self.amount)

    def apply(self) -> AppliedAction:
        content = IDeposit(self.deposit.into_account, self.deposit.party,
                           self.deposit.token, self.amount)
        return self.origin.apply([self.source.to_input(content)])


@dataclass(frozen=True)
class CanChoose:
    """
    A choice, possibly merged from several cases with the same ChoiceId.

    ``choice.bounds`` is the merged set; applying a number dispatches to the
    first original case whose own bounds contain it.
    """
    choice: Choice
    sources: Tuple[_ResolvedCase, ...] = field(repr=False, compare=False)
    origin: _Origin = field(repr=False, compare=False)
    kind = "Choice"

    @property
    def applicant(self) -> Applicant:
        return self.choice.choice_id.owner

    @property
    def environment(self) -> Environment:
        return self.origin.environment

    def apply(self, chosen: int) -> AppliedAction:
        for source in self.sources:
            if in_bounds(chosen, source.case.action.bounds):
                content = IChoice(self.choice.choice_id, chosen)
                return self.origin.apply([source.to_input(content)])
        raise ChosenNumberOutOfBoundsError(chosen, self.choice.bounds)


@dataclass(frozen=True)
class CanNotify:
    source: _ResolvedCase = field(repr=False, compare=False)
    origin: _Origin = field(repr=False, compare=False)
    kind = "Notify"

    @property
    def applicant(self) -> Applicant:
        return ANYBODY

    @property
    def environment(self) -> Environment:
        return self.origin.environment

    def apply(self) -> AppliedAction:
        return self.origin.apply([self.source.to_input(INotify())])


ApplicableAction = Union[CanAdvance, CanDeposit, CanChoose, CanNotify]


# =============================================================================
# Merging
# =============================================================================

def merge_bounds(bounds: Iterable[Bound]) -> Tuple[Bound, ...]:
    """
    Sort bounds by lower end and coalesce overlapping ones.

    Two bounds coalesce when the next one starts at or before the end of the
    current one; adjacent but disjoint bounds ([0, 5] and [6, 8]) stay apart.
    """
    merged: List[Bound] = []
    for bound in sorted(bounds, key=lambda b: b.from_):
        if merged and bound.from_ <= merged[-1].to:
            merged[-1] = Bound(merged[-1].from_, max(merged[-1].to, bound.to))
        else:
            merged.append(bound)
    return tuple(merged)


def merge_deposits(deposits: Sequence[CanDeposit],
                   policy: str = "keep-first") -> List[CanDeposit]:
    """
    One action per (account, party, token, amount).

    The first case wins, because applying the deposit input selects the first
    matching case. With policy "error" a collision raises DepositCollisionError.
    """
    merged: Dict[tuple, CanDeposit] = {}
    for action in deposits:
        kept = merged.get(action.key)
        if kept is None:
            merged[action.key] = action
            continue
        if policy == "error":
            raise DepositCollisionError(action.key)
        logger.warning("Deposit case %r is shadowed by an earlier case with the same deposit",
                       action.source.case.action)
        merged[action.key] = CanDeposit(kept.deposit, kept.amount, kept.source, kept.origin,
                                        kept.shadowed + (action.source.case,))
    return list(merged.values())


def merge_choices(choices: Sequence[CanChoose]) -> List[CanChoose]:
    """One action per ChoiceId with the union of all bounds."""
    grouped: Dict[ChoiceId, List[CanChoose]] = {}
    for action in choices:
        grouped.setdefault(action.choice.choice_id, []).append(action)

    merged = []
    for choice_id, group in grouped.items():
        if len(group) == 1:
            merged.append(group[0])
            continue
        bounds = merge_bounds(b for action in group for b in action.choice.bounds)
        sources = tuple(s for action in group for s in action.sources)
        merged.append(CanChoose(Choice(choice_id, bounds), sources, group[0].origin))
    return merged


def merge_notifies(notifies: Sequence[CanNotify]) -> Optional[CanNotify]:
    """The first enabled notification; applying a notify input selects it."""
    return notifies[0] if notifies else None


# =============================================================================
# Enumeration
# =============================================================================

async def _resolve_cases(when: When, cache: ContinuationCache) -> List[_ResolvedCase]:
    labels = []
    for case in when.cases:
        ref = case.then
        if isinstance(ref, Reference) and ref.contract is None and ref.label not in labels:
            labels.append(ref.label)

    tasks = [asyncio.ensure_future(cache.get(label)) for label in labels]
    try:
        contracts = await asyncio.gather(*tasks)
    except BaseException:
        # gather leaves the other lookups running when one of them fails.
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    resolved = dict(zip(labels, contracts))

    cases = []
    for case in when.cases:
        ref = case.then
        if not isinstance(ref, Reference):
            cases.append(_ResolvedCase(case, ref))
        elif ref.contract is not None:
            cases.append(_ResolvedCase(case, ref.contract))
        else:
            cases.append(_ResolvedCase(case, resolved[ref.label]))
    return cases


async def applicable_actions(
    environment: Environment,
    state: State,
    contract: Contract,
    resolve: Union[Resolver, ContinuationCache],
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[ApplicableAction]:
    """
    Actions applicable to (state, contract) within the environment.

    Order: Advance (when the initial reduction did anything), then deposits,
    choices and at most one notification.
    """
    cache = resolve
    if not isinstance(cache, ContinuationCache):
        cache = ContinuationCache(resolve, config.cache_continuations)

    reduced = reduce_contract_until_quiescent(environment, state, contract, config)
    origin = _Origin(environment, reduced, config)

    actions: List[ApplicableAction] = []
    if reduced.reduced:
        actions.append(CanAdvance(origin))

    when = reduced.continuation
    if not isinstance(when, When):
        return actions

    deposits: List[CanDeposit] = []
    choices: List[CanChoose] = []
    notifies: List[CanNotify] = []
    for source in await _resolve_cases(when, cache):
        action = source.case.action
        if isinstance(action, Deposit):
            amount = eval_value(environment, reduced.state, action.value)
            deposits.append(CanDeposit(action, amount, source, origin))
        elif isinstance(action, Choice):
            choices.append(CanChoose(action, (source,), origin))
        elif isinstance(action, Notify):
            if eval_observation(environment, reduced.state, action.observation):
                notifies.append(CanNotify(source, origin))
        else:
            raise TypeError(f"Unknown action: {action!r}")

    actions.extend(merge_deposits(deposits, config.deposit_collisions))
    actions.extend(merge_choices(choices))
    notify = merge_notifies(notifies)
    if notify is not None:
        actions.append(notify)
    return actions


async def get_applicable_actions(
    sources: ContractSources,
    contract_id: str,
    environment: Optional[Environment] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[ApplicableAction]:
    """Applicable actions of a contract known to the sources; [] once closed."""
    details = await sources.get_contract_details(contract_id)
    if isinstance(details, ClosedContract):
        return []

    if environment is None:
        tip = await sources.get_runtime_tip()
        environment = compute_environment(tip, details.contract, config)
        logger.info("Computed default environment [%d, %d] for %s",
                    environment.time_interval.from_, environment.time_interval.to, contract_id)

    actions = await applicable_actions(
        environment, details.state, details.contract,
        sources.get_contract_continuation, config,
    )
    logger.info("Found %d applicable actions for %s", len(actions), contract_id)
    return actions


def filter_by_applicant(actions: Iterable[ApplicableAction],
                        parties: Iterable[Party]) -> List[ApplicableAction]:
    """Actions the given parties may perform, plus those open to anybody."""
    allowed = set(parties)
    return [a for a in actions if a.applicant == ANYBODY or a.applicant in allowed]
