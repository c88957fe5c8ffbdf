"""
Prefixes: resumable positions inside a running strategy.

A Path records the choices made so far, one entry per step: the index of
the chosen step among the steps enumerated at that point, and the name of
its rule. Paths have a canonical text form, so a stateless caller can keep
one in a request and resume later:

    prefix = Prefix.empty(strategy, term)
    step = prefix.next_steps()[0]
    text = step.prefix.to_text()                 # '[[0,"A"]]'
    ...
    prefix = Prefix.from_text(strategy, term, text)

Replaying checks both the index and the rule name of every entry, so a
path recorded against an older strategy fails with a ReplayError instead
of silently following a different branch.
"""

import json
import logging
import operator
from typing import Any, Callable, Iterable, Iterator, List, NamedTuple, Optional, Tuple

from .automaton import DEFAULT_MAX_STEPS, Expansion, State, Step, expand, initial_state, search, unfold_state
from .derivation import DerivationTree
from .errors import ReplayError
from .strategy import Strategy, StrategyLike, to_strategy
from .transformation import Rule

logger = logging.getLogger(__name__)

NO_PREFIX = "no prefix"


# ============================================================
# Paths
# ============================================================

class Path:
    """
    Immutable sequence of (step index, rule name) entries.

    Example:
        path = Path([(0, "A"), (1, "C")])
        path.to_text()                      # => '[[0,"A"],[1,"C"]]'
        Path.from_text('[[0,"A"],[1,"C"]]') == path   # => True

    Indices count from zero; a negative index is a ValueError.
    """

    __slots__ = ('entries',)

    def __init__(self, entries: Iterable[Tuple[int, str]] = ()):
        self.entries: Tuple[Tuple[int, str], ...] = tuple(
            (int(index), str(name)) for index, name in entries)
        for index, name in self.entries:
            if index < 0:
                raise ValueError(f"negative step index {index} for rule {name!r}")

    def extend(self, index: int, name: str) -> 'Path':
        return Path(self.entries + ((index, name),))

    def is_empty(self) -> bool:
        return not self.entries

    def indices(self) -> List[int]:
        return [index for index, _ in self.entries]

    def names(self) -> List[str]:
        return [name for _, name in self.entries]

    def to_text(self) -> str:
        return json.dumps([[index, name] for index, name in self.entries],
                          separators=(',', ':'), ensure_ascii=False)

    @classmethod
    def from_text(cls, text: str) -> 'Path':
        """
        Decode the text form; blank text is the empty path.

        Raises:
            ValueError: if the text is not a list of [index, name] pairs
        """
        if not text.strip():
            return cls()
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"malformed path {text!r}: {e}") from None
        if not isinstance(data, list):
            raise ValueError(f"malformed path {text!r}: expected a list")
        entries = []
        for item in data:
            if (not isinstance(item, list) or len(item) != 2
                    or not isinstance(item[0], int) or isinstance(item[0], bool)
                    or item[0] < 0 or not isinstance(item[1], str)):
                raise ValueError(f"malformed path entry {item!r}: expected [index, name]")
            entries.append((item[0], item[1]))
        return cls(entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Tuple[int, str]]:
        return iter(self.entries)

    def __eq__(self, other):
        if isinstance(other, Path):
            return self.entries == other.entries
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.entries)

    def __str__(self) -> str:
        return self.to_text()

    def __repr__(self) -> str:
        return f"Path({list(self.entries)!r})"


# ============================================================
# Prefixes
# ============================================================

class PrefixStep(NamedTuple):
    """A possible next step: its rule, the resulting term, and the prefix after it."""
    rule: Rule
    term: Any
    prefix: 'Prefix'


class MajorStep(NamedTuple):
    """A non-minor step, reached after the minor steps in ``via``."""
    rule: Rule
    term: Any
    prefix: 'Prefix'
    via: Tuple[PrefixStep, ...]


class Prefix:
    """
    A position in the automaton of ``strategy``: the path taken, the
    automaton state it leads to, and the current term.

    An exhausted prefix stands for "outside the strategy": it has no next
    steps and is never ready.
    """

    __slots__ = ('strategy', 'term', 'path', 'state', 'is_exhausted', '_expansion')

    def __init__(self, strategy: Strategy, term: Any, path: Path, state: State,
                 is_exhausted: bool = False):
        self.strategy = strategy
        self.term = term
        self.path = path
        self.state = state
        self.is_exhausted = is_exhausted
        self._expansion: Optional[Expansion] = None

    @classmethod
    def empty(cls, strategy: StrategyLike, term: Any) -> 'Prefix':
        """The initial position: nothing chosen yet."""
        strategy = to_strategy(strategy)
        return cls(strategy, term, Path(), initial_state(strategy))

    @classmethod
    def exhausted(cls, strategy: StrategyLike, term: Any = None) -> 'Prefix':
        return cls(to_strategy(strategy), term, Path(), (), is_exhausted=True)

    def expansion(self) -> Expansion:
        if self.is_exhausted:
            return Expansion(False, [])
        if self._expansion is None:
            self._expansion = expand(self.state, self.term)
        return self._expansion

    # ------------------------------------------------------------
    # Stepping

    def _follow(self, index: int, step: Step) -> 'Prefix':
        return Prefix(self.strategy, step.term, self.path.extend(index, step.rule.name),
                      step.state)

    def next_steps(self) -> List[PrefixStep]:
        """All continuations from this position, in strategy order."""
        return [PrefixStep(step.rule, step.term, self._follow(i, step))
                for i, step in enumerate(self.expansion().steps)]

    def advance(self, index: int) -> 'Prefix':
        """
        The prefix after taking step ``index``.

        Raises:
            IndexError: if there is no such step
        """
        steps = self.expansion().steps
        if not 0 <= index < len(steps):
            raise IndexError(f"no step {index}: {len(steps)} steps available")
        return self._follow(index, steps[index])

    def is_ready(self) -> bool:
        """True if the strategy may stop here."""
        return self.expansion().accepting

    def tree(self) -> DerivationTree:
        """The derivation tree from this position."""
        if self.is_exhausted:
            return DerivationTree.single_node(self.term, False)
        return unfold_state(self.state, self.term)

    # ------------------------------------------------------------
    # Progress

    def remaining(self, max_steps: int = DEFAULT_MAX_STEPS) -> Optional[int]:
        """
        Number of non-minor steps on the leftmost way to completion.

        Returns None if the strategy cannot complete within ``max_steps``
        steps (or the prefix is exhausted).
        """
        if self.is_exhausted:
            return None
        for _, steps in search(self.state, self.term, max_steps):
            return sum(1 for step in steps if not step.rule.is_minor)
        return None

    def major_steps(self, max_steps: int = DEFAULT_MAX_STEPS) -> List[MajorStep]:
        """
        The non-minor steps reachable through minor steps only, leftmost first.

        Minor chains longer than ``max_steps`` are not followed.
        """
        found: List[MajorStep] = []
        pending: List[Tuple[PrefixStep, Tuple[PrefixStep, ...]]] = [
            (step, ()) for step in reversed(self.next_steps())]
        while pending:
            step, via = pending.pop()
            if not step.rule.is_minor:
                found.append(MajorStep(step.rule, step.term, step.prefix, via))
                continue
            if len(via) >= max_steps:
                continue
            via = via + (step,)
            pending.extend((after, via) for after in reversed(step.prefix.next_steps()))
        return found

    # ------------------------------------------------------------
    # Text form

    def to_text(self) -> str:
        """The path text, or "no prefix" for an exhausted prefix."""
        return NO_PREFIX if self.is_exhausted else self.path.to_text()

    @classmethod
    def from_text(cls, strategy: StrategyLike, term: Any, text: str) -> 'Prefix':
        """
        Rebuild a prefix from its text form by replaying it on ``term``.

        Raises:
            ValueError: if the text is not a valid path
            ReplayError: if the path cannot be followed
        """
        if ' '.join(text.split()).lower() == NO_PREFIX:
            return cls.exhausted(strategy, term)
        return replay(Path.from_text(text), strategy, term)

    # ------------------------------------------------------------

    def __eq__(self, other):
        if isinstance(other, Prefix):
            return (self.strategy is other.strategy
                    and self.is_exhausted == other.is_exhausted
                    and self.path == other.path
                    and self.term == other.term)
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        if self.is_exhausted:
            return "Prefix(no prefix)"
        return f"Prefix({self.path.to_text()})"


# ============================================================
# Operations
# ============================================================

def empty_prefix(strategy: StrategyLike, term: Any) -> Prefix:
    return Prefix.empty(strategy, term)


def next_steps(prefix: Prefix) -> List[PrefixStep]:
    return prefix.next_steps()


def remaining(prefix: Prefix, max_steps: int = DEFAULT_MAX_STEPS) -> Optional[int]:
    return prefix.remaining(max_steps)


def replay(path: Path, strategy: StrategyLike, term: Any) -> Prefix:
    """
    Follow a recorded path from the start of ``strategy`` at ``term``.

    Every entry must name a step that still exists at its index with the
    same rule name.

    Raises:
        ReplayError: carrying the index of the first entry that cannot be followed
    """
    prefix = Prefix.empty(strategy, term)
    for k, (index, name) in enumerate(path):
        steps = prefix.expansion().steps
        if not 0 <= index < len(steps):
            reason = f"no step {index} for rule {name!r} ({len(steps)} steps available)"
            logger.warning("replay of %s failed at step %d: %s", path, k, reason)
            raise ReplayError(k, reason)
        found = steps[index].rule.name
        if found != name:
            reason = f"expected rule {name!r}, found {found!r}"
            logger.warning("replay of %s failed at step %d: %s", path, k, reason)
            raise ReplayError(k, reason)
        prefix = prefix._follow(index, steps[index])
        logger.debug("replay step %d: %s", k, name)
    return prefix


def find_step(prefix: Prefix, submitted: Any,
              eq: Callable[[Any, Any], bool] = operator.eq,
              max_steps: int = DEFAULT_MAX_STEPS) -> Optional[MajorStep]:
    """
    The first major step (reached through minor steps) whose result is ``submitted``.

    ``eq`` compares a step result with the submitted term: structural
    equality by default, or a domain equivalence.
    """
    for major in prefix.major_steps(max_steps):
        if eq(major.term, submitted):
            return major
    return None
