"""
Strategies: combinator expressions over rules.

A strategy describes which sequences of rule applications are legal, in
which order they are preferred, and when a run may stop. Strategies are
plain immutable data; running one is the job of the automaton module.

Combinators:
    a >> b        - run a, then b
    a | b         - run a or b (a's steps come first)
    or_else(a, b) - run a if a can complete, otherwise b
    many(s)       - run s zero or more times
    repeat(s)     - run s as often as possible
    not_(s)       - succeed without a step if s cannot complete
    check(p)      - succeed without a step if p(term) holds
    label(l, s)   - name a subtree, for locations and configure
    fix(f)        - recursion: f receives the strategy being defined

Example:
    from stratum import E, rewrite, make_rule, repeat

    add_zero = make_rule("add-zero", rewrite(E("(+ ?x 0)"), E(":x")))
    mul_one = make_rule("mul-one", rewrite(E("(* ?x 1)"), E(":x")))
    simplify = repeat(add_zero | mul_one)

Strategy nodes compare by identity: two separately built trees with the
same shape are different strategies, and prefixes only compare equal when
they come from the very same strategy object.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple, Union

from .errors import ConfigurationError, StrategyError
from .transformation import Rule

logger = logging.getLogger(__name__)


# ============================================================
# Strategy nodes
# ============================================================

class Strategy:
    """Base class of all strategy nodes."""

    __slots__ = ()

    def __rshift__(self, other: Any) -> 'Strategy':
        return sequence(self, other)

    def __rrshift__(self, other: Any) -> 'Strategy':
        return sequence(other, self)

    def __or__(self, other: Any) -> 'Strategy':
        return alternatives(self, other)

    def __ror__(self, other: Any) -> 'Strategy':
        return alternatives(other, self)

    def children(self) -> Tuple['Strategy', ...]:
        """Direct substrategies, in left-to-right order."""
        return ()


class RuleStrategy(Strategy):
    """A single rule application."""

    __slots__ = ('rule',)

    def __init__(self, rule: Rule):
        self.rule = rule

    def __repr__(self) -> str:
        return repr(self.rule)


class Succeed(Strategy):
    """Stop here without taking a step."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "succeed"


class Fail(Strategy):
    """No steps, no completion."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "fail"


class Sequence(Strategy):
    __slots__ = ('first', 'second')

    def __init__(self, first: Strategy, second: Strategy):
        self.first = first
        self.second = second

    def children(self) -> Tuple[Strategy, ...]:
        return (self.first, self.second)

    def __repr__(self) -> str:
        return f"({self.first!r} >> {self.second!r})"


class Choice(Strategy):
    __slots__ = ('options',)

    def __init__(self, options: Iterable[Strategy]):
        self.options = tuple(options)

    def children(self) -> Tuple[Strategy, ...]:
        return self.options

    def __repr__(self) -> str:
        return "(" + " | ".join(repr(s) for s in self.options) + ")"


class OrElse(Strategy):
    """Left-biased choice: ``second`` only runs when ``first`` cannot complete."""

    __slots__ = ('first', 'second')

    def __init__(self, first: Strategy, second: Strategy):
        self.first = first
        self.second = second

    def children(self) -> Tuple[Strategy, ...]:
        return (self.first, self.second)

    def __repr__(self) -> str:
        return f"or_else({self.first!r}, {self.second!r})"


class Many(Strategy):
    """Zero or more repetitions of ``body``; another repetition is preferred over stopping."""

    __slots__ = ('body',)

    def __init__(self, body: Strategy):
        self.body = body

    def children(self) -> Tuple[Strategy, ...]:
        return (self.body,)

    def __repr__(self) -> str:
        return f"many({self.body!r})"


class Not(Strategy):
    """Negation as failure: succeeds, without a step, when ``body`` cannot complete."""

    __slots__ = ('body',)

    def __init__(self, body: Strategy):
        self.body = body

    def children(self) -> Tuple[Strategy, ...]:
        return (self.body,)

    def __repr__(self) -> str:
        return f"not_({self.body!r})"


class Check(Strategy):
    """Guard: succeeds, without a step, when ``predicate(term)`` holds."""

    __slots__ = ('predicate', 'name')

    def __init__(self, predicate: Callable[[Any], bool], name: Optional[str] = None):
        self.predicate = predicate
        self.name = name or getattr(predicate, '__name__', 'check')

    def __repr__(self) -> str:
        return f"check({self.name})"


class Label(Strategy):
    """
    A named subtree.

    The flags are set by configure: a removed label never fires, a
    collapsed label runs its body to completion as a single step named
    after the label, and the steps of a hidden label are minor.
    """

    __slots__ = ('label', 'body', 'removed', 'collapsed', 'hidden')

    def __init__(self, label: str, body: Strategy, removed: bool = False,
                 collapsed: bool = False, hidden: bool = False):
        self.label = label
        self.body = body
        self.removed = removed
        self.collapsed = collapsed
        self.hidden = hidden

    def children(self) -> Tuple[Strategy, ...]:
        return (self.body,)

    def flags(self) -> Dict[str, bool]:
        return {'removed': self.removed, 'collapsed': self.collapsed, 'hidden': self.hidden}

    def __repr__(self) -> str:
        flags = [name for name, on in self.flags().items() if on]
        suffix = f"[{','.join(flags)}]" if flags else ""
        return f"label({self.label!r}{suffix}, {self.body!r})"


class Fix(Strategy):
    """
    A recursive strategy.

    ``builder`` receives this node and returns the body; the body is built
    on first use and cached, so cyclic strategies stay finite data.
    """

    __slots__ = ('_builder', '_body')

    def __init__(self, builder: Callable[['Fix'], Any]):
        self._builder = builder
        self._body: Optional[Strategy] = None

    @property
    def body(self) -> Strategy:
        if self._body is None:
            self._body = to_strategy(self._builder(self))
        return self._body

    def children(self) -> Tuple[Strategy, ...]:
        return (self.body,)

    def __repr__(self) -> str:
        return f"fix@{id(self):x}"


StrategyLike = Union[Strategy, Rule]


def to_strategy(value: StrategyLike) -> Strategy:
    """
    Convert a rule (or strategy) to a strategy.

    Raises:
        StrategyError: for anything that is neither
    """
    if isinstance(value, Strategy):
        return value
    if isinstance(value, Rule):
        return RuleStrategy(value)
    raise StrategyError(f"not a strategy or rule: {value!r}")


# ============================================================
# Combinators
# ============================================================

def succeed() -> Strategy:
    return Succeed()


def fail() -> Strategy:
    return Fail()


def sequence(*parts: StrategyLike) -> Strategy:
    """Run ``parts`` one after the other; the empty sequence succeeds."""
    if not parts:
        return Succeed()
    result = to_strategy(parts[-1])
    for part in reversed(parts[:-1]):
        result = Sequence(to_strategy(part), result)
    return result


def alternatives(*options: StrategyLike) -> Strategy:
    """Choice between ``options``; the empty choice fails."""
    flat: List[Strategy] = []
    for option in options:
        option = to_strategy(option)
        # nested choices flatten, keeping the order
        if isinstance(option, Choice):
            flat.extend(option.options)
        else:
            flat.append(option)
    if not flat:
        return Fail()
    if len(flat) == 1:
        return flat[0]
    return Choice(flat)


def or_else(*options: StrategyLike) -> Strategy:
    """Left-biased choice: the first option that can complete is used."""
    if not options:
        return Fail()
    result = to_strategy(options[-1])
    for option in reversed(options[:-1]):
        result = OrElse(to_strategy(option), result)
    return result


def many(s: StrategyLike) -> Strategy:
    return Many(to_strategy(s))


def many1(s: StrategyLike) -> Strategy:
    s = to_strategy(s)
    return Sequence(s, Many(s))


def repeat(s: StrategyLike) -> Strategy:
    """Apply ``s`` as long as it can complete, then stop."""
    s = to_strategy(s)
    return Sequence(Many(s), Not(s))


def repeat1(s: StrategyLike) -> Strategy:
    s = to_strategy(s)
    return Sequence(s, repeat(s))


def option(s: StrategyLike) -> Strategy:
    """``s`` or nothing; running ``s`` is preferred."""
    return Choice((to_strategy(s), Succeed()))


def try_(s: StrategyLike) -> Strategy:
    """``s`` if it can complete, otherwise nothing."""
    return OrElse(to_strategy(s), Succeed())


def not_(s: StrategyLike) -> Strategy:
    return Not(to_strategy(s))


def check(predicate: Callable[[Any], bool], name: Optional[str] = None) -> Strategy:
    return Check(predicate, name)


def label(name: str, s: StrategyLike) -> Strategy:
    if not name:
        raise StrategyError("a label needs a name")
    return Label(name, to_strategy(s))


def fix(builder: Callable[[Strategy], StrategyLike]) -> Strategy:
    return Fix(builder)


def exhaustive(rules: Iterable[StrategyLike]) -> Strategy:
    """Apply any of ``rules`` until none applies."""
    return repeat(alternatives(*rules))


# ============================================================
# Locations
# ============================================================

class StrategyLocation(NamedTuple):
    """A labeled subtree: its nesting depth, its label, and the labels above it."""
    depth: int
    label: str
    path: Tuple[str, ...]


def _walk(strategy: Strategy, visit: Callable[[Strategy, Tuple[str, ...]], None],
          path: Tuple[str, ...] = (), seen: Optional[set] = None) -> None:
    # pre-order, each fix node entered once
    if seen is None:
        seen = set()
    if isinstance(strategy, Fix):
        if id(strategy) in seen:
            return
        seen.add(id(strategy))
    visit(strategy, path)
    if isinstance(strategy, Label):
        path = path + (strategy.label,)
    for child in strategy.children():
        _walk(child, visit, path, seen)


def locations(strategy: StrategyLike) -> List[StrategyLocation]:
    """
    Every labeled subtree of ``strategy`` in pre-order.

    Example:
        s = label("outer", label("inner", rule_a) >> rule_b)
        locations(s)
        # => [StrategyLocation(0, 'outer', ('outer',)),
        #     StrategyLocation(1, 'inner', ('outer', 'inner'))]
    """
    found: List[StrategyLocation] = []

    def visit(node: Strategy, path: Tuple[str, ...]) -> None:
        if isinstance(node, Label):
            found.append(StrategyLocation(len(path), node.label, path + (node.label,)))

    _walk(to_strategy(strategy), visit)
    return found


def rules_of(strategy: StrategyLike) -> List[Rule]:
    """The rules used in ``strategy``, first occurrence order, without duplicates."""
    found: List[Rule] = []

    def visit(node: Strategy, path: Tuple[str, ...]) -> None:
        if isinstance(node, RuleStrategy) and node.rule not in found:
            found.append(node.rule)

    _walk(to_strategy(strategy), visit)
    return found


# ============================================================
# Configuration
# ============================================================

class ConfigAction(Enum):
    REMOVE = "remove"
    REINSERT = "reinsert"
    COLLAPSE = "collapse"
    EXPAND = "expand"
    HIDE = "hide"
    REVEAL = "reveal"


ACTION_ALIASES = {
    "disable": ConfigAction.REMOVE,
    "enable": ConfigAction.REINSERT,
}

# action -> (flag, value)
_ACTION_FLAGS = {
    ConfigAction.REMOVE: ('removed', True),
    ConfigAction.REINSERT: ('removed', False),
    ConfigAction.COLLAPSE: ('collapsed', True),
    ConfigAction.EXPAND: ('collapsed', False),
    ConfigAction.HIDE: ('hidden', True),
    ConfigAction.REVEAL: ('hidden', False),
}


def parse_action(name: Union[str, ConfigAction]) -> ConfigAction:
    """
    Parse an action name (case insensitive; aliases disable/enable).

    Raises:
        ConfigurationError: for an unknown action
    """
    if isinstance(name, ConfigAction):
        return name
    key = str(name).strip().lower()
    if key in ACTION_ALIASES:
        return ACTION_ALIASES[key]
    try:
        return ConfigAction(key)
    except ValueError:
        raise ConfigurationError(f"unknown configuration action: {name!r}") from None


class StrategyConfiguration:
    """
    An ordered list of (action, label) pairs.

    Later actions override earlier ones for the same label.

    Example:
        config = StrategyConfiguration.from_text('''
            remove: distribute
            hide: cleanup
        ''')
    """

    __slots__ = ('actions',)

    def __init__(self, actions: Iterable[Tuple[Union[str, ConfigAction], str]] = ()):
        self.actions: Tuple[Tuple[ConfigAction, str], ...] = tuple(
            (parse_action(action), label) for action, label in actions)

    @classmethod
    def from_text(cls, text: str) -> 'StrategyConfiguration':
        """
        Parse ``action: label`` lines; blank lines and ``#`` comments are skipped.

        Raises:
            ConfigurationError: for a line without ':' or with an empty label
        """
        actions = []
        for lineno, line in enumerate(text.split('\n'), 1):
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            action, sep, name = line.partition(':')
            name = name.strip()
            if not sep or not name:
                raise ConfigurationError(f"line {lineno}: expected 'action: label', got {line!r}")
            actions.append((parse_action(action), name))
        return cls(actions)

    def labels(self) -> List[str]:
        return [name for _, name in self.actions]

    def to_text(self) -> str:
        return "\n".join(f"{action.value}: {name}" for action, name in self.actions)

    def __iter__(self):
        return iter(self.actions)

    def __len__(self) -> int:
        return len(self.actions)

    def __bool__(self) -> bool:
        return bool(self.actions)

    def __eq__(self, other):
        if isinstance(other, StrategyConfiguration):
            return self.actions == other.actions
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        return f"StrategyConfiguration({list((a.value, l) for a, l in self.actions)!r})"


def _rebuild(node: Strategy, relabel: Callable[[Label, Strategy], Strategy],
             fixes: Dict[int, Strategy]) -> Strategy:
    """Copy ``node`` with every Label replaced by ``relabel(label, new_body)``."""
    if isinstance(node, Fix):
        if id(node) in fixes:
            return fixes[id(node)]
        outer = node
        return Fix(lambda self_: _rebuild(outer.body, relabel, {**fixes, id(outer): self_}))
    if isinstance(node, Label):
        return relabel(node, _rebuild(node.body, relabel, fixes))
    if isinstance(node, Sequence):
        return Sequence(_rebuild(node.first, relabel, fixes), _rebuild(node.second, relabel, fixes))
    if isinstance(node, OrElse):
        return OrElse(_rebuild(node.first, relabel, fixes), _rebuild(node.second, relabel, fixes))
    if isinstance(node, Choice):
        return Choice([_rebuild(s, relabel, fixes) for s in node.options])
    if isinstance(node, Many):
        return Many(_rebuild(node.body, relabel, fixes))
    if isinstance(node, Not):
        return Not(_rebuild(node.body, relabel, fixes))
    return node


def configure(strategy: StrategyLike,
              config: Union[StrategyConfiguration, Iterable[Tuple[Any, str]], str]) -> Strategy:
    """
    The effective strategy after applying ``config`` to its labeled subtrees.

    The base strategy is left untouched. Every subtree carrying a label
    named in the configuration is affected.

    Args:
        strategy: Strategy to configure
        config: A StrategyConfiguration, (action, label) pairs, or text

    Returns:
        A new strategy

    Raises:
        ConfigurationError: if an action is unknown or a label does not
            occur in the strategy
    """
    strategy = to_strategy(strategy)
    if isinstance(config, str):
        config = StrategyConfiguration.from_text(config)
    elif not isinstance(config, StrategyConfiguration):
        config = StrategyConfiguration(config)

    known = {loc.label for loc in locations(strategy)}
    unknown = [name for name in config.labels() if name not in known]
    if unknown:
        raise ConfigurationError(f"unknown strategy labels: {', '.join(unknown)}")

    changes: Dict[str, Dict[str, bool]] = {}
    for action, name in config:
        flag, value = _ACTION_FLAGS[action]
        changes.setdefault(name, {})[flag] = value
        logger.debug("configure: %s %s", action.value, name)

    def relabel(node: Label, body: Strategy) -> Strategy:
        flags = node.flags()
        flags.update(changes.get(node.label, {}))
        return Label(node.label, body, **flags)

    return _rebuild(strategy, relabel, {})
