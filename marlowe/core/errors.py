"""
Error taxonomy for the Marlowe engine.

Each failure kind has its own exception class carrying the data needed to
act on it, so callers discriminate with ``except`` clauses instead of
parsing messages.
"""

from typing import Any, List, Optional, Sequence


class MarloweError(Exception):
    """Base class for every error raised by the engine."""


# =============================================================================
# Reduction and input application
# =============================================================================

class AmbiguousTimeIntervalError(MarloweError):
    """The time window straddles a When timeout; narrow it and retry."""

    def __init__(self, timeout: int, interval=None,
                 warnings: Sequence = (), payments: Sequence = ()):
        self.timeout = timeout
        self.interval = interval
        # Effects of the steps that succeeded before the ambiguous When.
        self.warnings: List = list(warnings)
        self.payments: List = list(payments)
        super().__init__(
            f"Time interval {interval} is ambiguous for timeout {timeout}"
        )


class UnsupportedConstructError(MarloweError):
    """Let/Assert reduction is disabled for this engine."""

    def __init__(self, construct: str):
        self.construct = construct
        super().__init__(f"Unsupported construct: {construct}")


class ApplyNoMatchError(MarloweError):
    """No case of the current When accepts the input."""

    def __init__(self, input_, contract=None):
        self.input = input_
        self.contract = contract
        super().__init__(f"Input {input_!r} does not match any case")


class HashMismatchError(MarloweError):
    """A merkleized input does not fit the case it matched."""

    def __init__(self, expected: Optional[str], actual: Optional[str]):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Continuation hash mismatch: case expects {expected}, input carries {actual}"
        )


class ChosenNumberOutOfBoundsError(MarloweError):
    def __init__(self, chosen: int, bounds: Sequence):
        self.chosen = chosen
        self.bounds = tuple(bounds)
        ranges = ", ".join(f"[{b.from_}, {b.to}]" for b in self.bounds)
        super().__init__(f"Chosen number {chosen} is not within {ranges or 'any bound'}")


# =============================================================================
# Transactions
# =============================================================================

class InvalidIntervalError(MarloweError):
    def __init__(self, from_: int, to: int):
        self.from_ = from_
        self.to = to
        super().__init__(f"Invalid time interval: from {from_} is after to {to}")


class IntervalInPastError(MarloweError):
    def __init__(self, min_time: int, from_: int, to: int):
        self.min_time = min_time
        self.from_ = from_
        self.to = to
        super().__init__(
            f"Time interval [{from_}, {to}] ends before the contract minimum time {min_time}"
        )


class UselessTransactionError(MarloweError):
    def __init__(self):
        super().__init__("Transaction neither changes the contract nor its state")


# =============================================================================
# Applicable actions
# =============================================================================

class ContinuationResolutionError(MarloweError):
    """The continuation resolver failed; the original error is the cause."""

    def __init__(self, label: str, reason: str = ""):
        self.label = label
        message = f"Cannot resolve continuation {label}"
        super().__init__(f"{message}: {reason}" if reason else message)


class DepositCollisionError(MarloweError):
    """Two cases of a When describe the same deposit."""

    def __init__(self, key: Any):
        self.key = key
        super().__init__(f"Several cases accept the same deposit: {key!r}")


# =============================================================================
# Bundles and serialization
# =============================================================================

class BundleCorruptionError(MarloweError):
    """Same label bound to two different objects."""

    def __init__(self, label: str, left: Any, right: Any):
        self.label = label
        self.left = left
        self.right = right
        super().__init__(
            f"Cannot merge two different objects with the same label {label}: "
            f"{left!r} and {right!r}"
        )


class BundleResolutionError(MarloweError):
    def __init__(self, label: str, reason: str):
        self.label = label
        super().__init__(f"Cannot resolve bundle label {label}: {reason}")


class DecodeError(MarloweError):
    """JSON does not describe a valid Marlowe entity."""

    def __init__(self, message: str, path: str = "$"):
        self.path = path
        super().__init__(f"{path}: {message}")


class ParseError(MarloweError):
    """Textual contract source could not be parsed."""

    def __init__(self, message: str, line: int = 0, column: int = 0):
        self.line = line
        self.column = column
        super().__init__(f"Line {line}, column {column}: {message}")


class ConfigError(MarloweError):
    pass
