"""
Error types for STRATUM.

Not matching is not an error: rules and strategies report "not applicable"
with an empty result. The exceptions below are reserved for problems the
caller has to act on: broken rule definitions, bad user arguments, stale
client-held paths and invalid strategy configurations.
"""

from typing import List, NamedTuple, Optional


class StratumError(Exception):
    """Base class for all errors raised by STRATUM."""


class RuleError(StratumError, ValueError):
    """A rule, transformation or rule set could not be constructed."""


class StrategyError(StratumError):
    """A strategy expression is malformed."""


class ConfigurationError(StratumError, ValueError):
    """A strategy configuration names an unknown label or action."""


class ArgumentProblem(NamedTuple):
    """One invalid argument supplied to a parameterized rule.

    ``index`` is None when the problem concerns the argument list as a
    whole (wrong number of arguments).
    """
    index: Optional[int]
    label: Optional[str]
    value: Optional[str]
    reason: str

    def __str__(self) -> str:
        if self.index is None:
            return self.reason
        return f"argument {self.index + 1} ({self.label}): {self.reason}: {self.value!r}"


class ArgumentError(StratumError, ValueError):
    """User-supplied arguments for a parameterized rule are invalid."""

    def __init__(self, rule_name: str, problems: List[ArgumentProblem]):
        self.rule_name = rule_name
        self.problems = list(problems)
        details = "; ".join(str(p) for p in self.problems)
        super().__init__(f"invalid arguments for rule {rule_name!r}: {details}")

    @property
    def labels(self) -> List[str]:
        """Labels of the arguments that failed to parse."""
        return [p.label for p in self.problems if p.label is not None]


class ReplayError(StratumError):
    """A recorded path can no longer be followed."""

    def __init__(self, step: int, reason: str):
        self.step = step
        self.reason = reason
        super().__init__(f"replay failed at step {step}: {reason}")
