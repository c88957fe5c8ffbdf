"""
Contexts: a term, an environment, and a cursor into the term.

The cursor (location) is a tuple of argument indices from the root. Rules
written for plain terms are lifted into contexts with lift_to_context and
then act on the term under the cursor; the minor navigation rules move the
cursor so that a strategy can visit subterms (see somewhere).

Leaving a context always yields the whole (root) term, wherever the cursor
is, so leaving and re-entering at the root is the identity.
"""

from typing import Any, Callable, List, Optional, Sequence, Tuple

from .environment import Environment
from .strategy import Strategy, fix, to_strategy
from .terms import format_sexpr
from .transformation import LiftPair, Rule, make_simple_rule, make_simple_rule_list

Location = Tuple[int, ...]


class SexprNavigator:
    """Children of an s-expression are its arguments: (op a0 a1 ...)."""

    def children(self, term: Any) -> List[Any]:
        if isinstance(term, list) and term:
            return term[1:]
        return []

    def with_child(self, term: Any, index: int, child: Any) -> Any:
        return term[:index + 1] + [child] + term[index + 2:]


SEXPR_NAVIGATOR = SexprNavigator()


class Context:
    """
    Immutable term-in-context.

    Args:
        term: The root term
        environment: Bookkeeping data (default: empty)
        location: Cursor position as argument indices from the root
        navigator: How to find and replace children of a term
    """

    __slots__ = ('_root', 'environment', 'location', 'navigator')

    def __init__(self, term: Any, environment: Optional[Environment] = None,
                 location: Sequence[int] = (), navigator: Any = SEXPR_NAVIGATOR):
        self._root = term
        self.environment = environment if environment is not None else Environment()
        self.location: Location = tuple(location)
        self.navigator = navigator

    def _with(self, root: Any = None, location: Optional[Sequence[int]] = None,
              environment: Optional[Environment] = None) -> 'Context':
        return Context(self._root if root is None else root,
                       self.environment if environment is None else environment,
                       self.location if location is None else location,
                       self.navigator)

    def _subterm(self, location: Location) -> Tuple[bool, Any]:
        term = self._root
        for index in location:
            kids = self.navigator.children(term)
            if not 0 <= index < len(kids):
                return False, None
            term = kids[index]
        return True, term

    # ------------------------------------------------------------
    # Focus

    def current(self) -> Any:
        """The term under the cursor (None if the cursor is invalid)."""
        return self._subterm(self.location)[1]

    def leave(self) -> Any:
        """The root term."""
        return self._root

    def replace(self, new: Any) -> 'Context':
        """A context with the term under the cursor replaced by ``new``."""
        return self._with(root=self._replace_at(self._root, self.location, new))

    def _replace_at(self, term: Any, location: Location, new: Any) -> Any:
        if not location:
            return new
        index, rest = location[0], location[1:]
        child = self.navigator.children(term)[index]
        return self.navigator.with_child(term, index, self._replace_at(child, rest, new))

    def change(self, fn: Callable[[Any], Optional[Any]]) -> Optional['Context']:
        new = fn(self.current())
        return None if new is None else self.replace(new)

    # ------------------------------------------------------------
    # Navigation

    def is_top(self) -> bool:
        return not self.location

    def up(self) -> Optional['Context']:
        if self.is_top():
            return None
        return self._with(location=self.location[:-1])

    def down(self, index: int) -> Optional['Context']:
        return self.navigate_to(self.location + (index,))

    def all_downs(self) -> List['Context']:
        count = len(self.navigator.children(self.current()))
        return [self._with(location=self.location + (i,)) for i in range(count)]

    def top(self) -> 'Context':
        return self._with(location=())

    def navigate_to(self, location: Sequence[int]) -> Optional['Context']:
        location = tuple(location)
        valid, _ = self._subterm(location)
        return self._with(location=location) if valid else None

    # ------------------------------------------------------------
    # Environment

    def with_environment(self, environment: Environment) -> 'Context':
        return self._with(environment=environment)

    def store(self, key: str, value: Any) -> 'Context':
        return self.with_environment(self.environment.store(key, value))

    # ------------------------------------------------------------

    def __eq__(self, other):
        if isinstance(other, Context):
            return self._root == other._root
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        text = format_sexpr(self._root)
        if self.location:
            text += f" @{list(self.location)}"
        if self.environment:
            text += f"  {{{self.environment}}}"
        return text


def in_context(term: Any, environment: Optional[Environment] = None) -> Context:
    """A context at the root of ``term``."""
    return Context(term, environment)


# ============================================================
# Lifting and navigation rules
# ============================================================

FOCUS = LiftPair(lambda ctx: ctx.current(), lambda new, ctx: ctx.replace(new))


def lift_to_context(rule: Rule) -> Rule:
    """Make a term rule act on the term under a context's cursor."""
    return rule.lift(FOCUS)


def rule_down() -> Rule:
    """Minor rule moving the cursor to each argument in turn (one result per argument)."""
    return make_simple_rule_list("navigation.down", lambda ctx: ctx.all_downs(), is_minor=True)


def rule_up() -> Rule:
    """Minor rule moving the cursor to the parent."""
    return make_simple_rule("navigation.up", lambda ctx: ctx.up(), is_minor=True)


def somewhere(s: Any) -> Strategy:
    """
    Apply ``s`` at the cursor or at any subterm below it.

    The strategy works on contexts; lift term rules with lift_to_context
    first. Locations are tried top-down, left to right.
    """
    s = to_strategy(s)
    down, up = rule_down(), rule_up()
    return fix(lambda again: s | (down >> again >> up))
