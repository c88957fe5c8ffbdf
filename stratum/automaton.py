"""
The strategy interpreter.

A strategy is run as a nondeterministic automaton. A state is the stack of
strategy nodes that still have to run (the continuation); expanding a state
for a term gives whether the run may stop there, and the steps that can be
taken next, each with its rule, the resulting term and the state after it.

Nothing is compiled up front: states are expanded on demand, so strategies
with repetition or recursion describe infinite automata without ever being
built as one.

Steps are enumerated in the left-to-right order of the strategy's
combinators. The index of a step in that order is what a Path records.

Unguarded recursion (a fix or many node re-entered from inside its own body
without taking a step) is cut: that branch contributes nothing.
"""

import logging
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple

from .derivation import DerivationTree
from .strategy import (
    Check, Choice, Fail, Fix, Label, Many, Not, OrElse, RuleStrategy, Sequence,
    Strategy, StrategyLike, Succeed, to_strategy,
)
from .transformation import Rule, make_trans_list

logger = logging.getLogger(__name__)

State = Tuple[Strategy, ...]

DEFAULT_MAX_STEPS = 1000


class Step(NamedTuple):
    """One transition: the rule applied, the resulting term, and the state after it."""
    rule: Rule
    term: Any
    state: State


class Expansion(NamedTuple):
    accepting: bool
    steps: List[Step]


class _HiddenEnd(Strategy):
    """Stack marker closing a hidden label; steps taken below one are minor."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "<end hidden>"


HIDDEN_END = _HiddenEnd()

_NOTHING = Expansion(False, [])


def initial_state(strategy: StrategyLike) -> State:
    return (to_strategy(strategy),)


def _is_hidden(rest: State) -> bool:
    return any(node is HIDDEN_END for node in rest)


def _reentered(entered: Dict[int, Tuple[State, ...]], node: Strategy, rest: State) -> bool:
    # a re-entry from inside the node's own body leaves the earlier rest as a suffix
    for earlier in entered.get(id(node), ()):
        if len(rest) >= len(earlier) and rest[len(rest) - len(earlier):] == earlier:
            return True
    return False


def _enter(entered: Dict[int, Tuple[State, ...]], node: Strategy,
           rest: State) -> Dict[int, Tuple[State, ...]]:
    return {**entered, id(node): entered.get(id(node), ()) + (rest,)}


def _merge(first: Expansion, second: Expansion) -> Expansion:
    return Expansion(first.accepting or second.accepting, first.steps + second.steps)


def _expand(stack: State, term: Any, entered: Dict[int, Tuple[State, ...]]) -> Expansion:
    if not stack:
        return Expansion(True, [])
    node, rest = stack[0], stack[1:]

    if node is HIDDEN_END or isinstance(node, Succeed):
        return _expand(rest, term, entered)

    if isinstance(node, Fail):
        return _NOTHING

    if isinstance(node, RuleStrategy):
        rule = node.rule
        if not rule.is_minor and _is_hidden(rest):
            rule = rule.minor()
        return Expansion(False, [Step(rule, new, rest) for new in rule.apply(term)])

    if isinstance(node, Sequence):
        return _expand((node.first, node.second) + rest, term, entered)

    if isinstance(node, Choice):
        result = _NOTHING
        for option in node.options:
            result = _merge(result, _expand((option,) + rest, term, entered))
        return result

    if isinstance(node, OrElse):
        chosen = node.first if applicable(node.first, term) else node.second
        return _expand((chosen,) + rest, term, entered)

    if isinstance(node, Many):
        if _reentered(entered, node, rest):
            return _NOTHING
        inner = _enter(entered, node, rest)
        again = _expand((node.body, node) + rest, term, inner)
        return _merge(again, _expand(rest, term, entered))

    if isinstance(node, Not):
        if applicable(node.body, term):
            return _NOTHING
        return _expand(rest, term, entered)

    if isinstance(node, Check):
        if not node.predicate(term):
            return _NOTHING
        return _expand(rest, term, entered)

    if isinstance(node, Label):
        if node.removed:
            return _NOTHING
        if node.collapsed:
            rule = collapsed_rule(node)
            if node.hidden or _is_hidden(rest):
                rule = rule.minor()
            return Expansion(False, [Step(rule, new, rest) for new in rule.apply(term)])
        if node.hidden:
            return _expand((node.body, HIDDEN_END) + rest, term, entered)
        return _expand((node.body,) + rest, term, entered)

    if isinstance(node, Fix):
        if _reentered(entered, node, rest):
            return _NOTHING
        return _expand((node.body,) + rest, term, _enter(entered, node, rest))

    raise TypeError(f"unknown strategy node: {node!r}")


def expand(state: State, term: Any) -> Expansion:
    """Whether ``state`` may stop at ``term``, and the steps it can take from there."""
    return _expand(tuple(state), term, {})


def collapsed_rule(node: Label, max_steps: int = DEFAULT_MAX_STEPS) -> Rule:
    """The single rule a collapsed label behaves as: every result of running its body."""
    body = node.body

    def run_body(term: Any) -> List[Any]:
        results = run(body, term, max_steps)
        logger.debug("collapsed %s: %d results", node.label, len(results))
        return results

    return Rule(node.label, [make_trans_list(run_body)])


# ============================================================
# Running
# ============================================================

def search(state: State, term: Any,
           max_steps: int = DEFAULT_MAX_STEPS) -> Iterator[Tuple[Any, List[Step]]]:
    """
    Complete runs from ``state`` at ``term``, leftmost first.

    Depth-first and lazy; runs longer than ``max_steps`` steps are not
    explored.

    Yields:
        (final term, steps taken) pairs
    """
    accepting, steps = expand(state, term)
    if accepting:
        yield term, []
    frames = [iter(steps)]
    trail: List[Step] = []
    while frames:
        step = next(frames[-1], None)
        if step is None:
            frames.pop()
            if trail:
                trail.pop()
            continue
        if len(trail) >= max_steps:
            continue
        trail.append(step)
        accepting, steps = expand(step.state, step.term)
        if accepting:
            yield step.term, list(trail)
        frames.append(iter(steps))


def first_steps(strategy: StrategyLike, term: Any) -> List[Tuple[Rule, Any]]:
    """All (rule, result) pairs that can start a run of ``strategy`` on ``term``."""
    return [(step.rule, step.term) for step in expand(initial_state(strategy), term).steps]


def applicable(strategy: StrategyLike, term: Any, max_steps: int = DEFAULT_MAX_STEPS) -> bool:
    """True if ``strategy`` has a complete run from ``term``."""
    for _ in search(initial_state(strategy), term, max_steps):
        return True
    return False


def run(strategy: StrategyLike, term: Any, max_steps: int = DEFAULT_MAX_STEPS) -> List[Any]:
    """
    Final terms of all complete runs, leftmost first, without duplicates.

    Bounded by ``max_steps`` steps per run; for strategies that branch a
    lot, prefer first_result or a restricted derivation tree.
    """
    results: List[Any] = []
    for final, _ in search(initial_state(strategy), term, max_steps):
        if final not in results:
            results.append(final)
    return results


def first_result(strategy: StrategyLike, term: Any,
                 max_steps: int = DEFAULT_MAX_STEPS) -> Optional[Any]:
    """The final term of the leftmost complete run, or None."""
    for final, _ in search(initial_state(strategy), term, max_steps):
        return final
    return None


def unfold_state(state: State, term: Any) -> DerivationTree:
    """The derivation tree of ``state`` at ``term``; edges are annotated with rules."""
    cache: List[Expansion] = []

    def expansion() -> Expansion:
        if not cache:
            cache.append(expand(state, term))
        return cache[0]

    return DerivationTree(
        term,
        endpoint=lambda: expansion().accepting,
        branches=lambda: [(step.rule, unfold_state(step.state, step.term))
                          for step in expansion().steps])


def unfold(strategy: StrategyLike, term: Any) -> DerivationTree:
    """
    The (lazy, possibly infinite) derivation tree of ``strategy`` from ``term``.

    Restrict its height or width before enumerating it.

    Example:
        tree = unfold(rule_a >> (rule_b | rule_c), x0)
        [d.last() for d in tree.derivations()]   # => [x2, x3]
    """
    return unfold_state(initial_state(strategy), term)
