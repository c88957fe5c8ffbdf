"""
Transformations and rules.

A transformation takes a term and returns a list of results: the empty
list when it does not apply, usually a single result, sometimes several.
There are four kinds:

    Direct         - a Python function returning zero or more results
    Pattern        - a left-hand side / right-hand side pair, applied by
                     matching the left-hand side and instantiating the right
    Parameterized  - needs argument values (with labels, defaults, parsers
                     and printers) before it yields a concrete transformation
    Lifted         - runs another transformation on a part of a larger value,
                     through an accessor/updater pair

A rule is a named bundle of transformations plus two flags: ``is_minor``
for administrative steps that do not count as user-visible progress, and
``is_buggy`` for deliberately unsound rules that model common mistakes.

Example:
    from stratum import E, rewrite, make_rule

    add_zero = make_rule("add-zero", rewrite(E("(+ ?x 0)"), E(":x")))
    add_zero.apply(E("(+ y 0)"))   # => ["y"]
    add_zero.apply(E("(* y 0)"))   # => []
"""

from fractions import Fraction
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from .errors import ArgumentError, ArgumentProblem, RuleError
from .terms import SEXPR, ExprType, FoldFuncsType, check_condition, format_sexpr, parse_sexpr


# ============================================================
# Transformations
# ============================================================

class Transformation:
    """Base class of the four transformation kinds."""

    __slots__ = ()

    def apply(self, term: Any) -> List[Any]:
        """All results of applying this transformation to ``term``."""
        raise NotImplementedError

    def invert(self) -> Optional['Transformation']:
        """The inverse transformation, or None if there is none."""
        return None

    def descriptors(self) -> Tuple['ArgDescr', ...]:
        """Argument descriptors; empty for transformations without arguments."""
        return ()

    def expected_arguments(self, term: Any) -> Optional[List[str]]:
        return None

    def use_arguments(self, values: Sequence[str], rule_name: str) -> Optional['Transformation']:
        return None


class Direct(Transformation):
    """A transformation defined by a function ``term -> iterable of terms``."""

    __slots__ = ('_fn',)

    def __init__(self, fn: Callable[[Any], Optional[Iterable[Any]]]):
        if not callable(fn):
            raise RuleError(f"Direct transformation needs a callable, got {fn!r}")
        self._fn = fn

    def apply(self, term: Any) -> List[Any]:
        results = self._fn(term)
        return [] if results is None else list(results)

    def __repr__(self) -> str:
        return f"Direct({getattr(self._fn, '__name__', self._fn)!s})"


class Pattern(Transformation):
    """
    An equational rewrite ``lhs => rhs``.

    Every variable used by the right-hand side (and by the optional guard
    condition) must be bound by the left-hand side; this is checked here,
    so an invalid pattern never reaches the point of being applied.

    Args:
        lhs: Pattern to match
        rhs: Skeleton to instantiate
        condition: Optional guard, evaluated with the match bindings
        fold_funcs: Prelude for computed (!) skeleton elements and guards
        domain: Pattern operations for the term type (default: s-expressions)

    Raises:
        RuleError: if rhs or condition refer to variables lhs does not bind,
            or if lhs puts a rest pattern (?xs...) anywhere but last
    """

    __slots__ = ('lhs', 'rhs', 'condition', 'fold_funcs', 'domain')

    def __init__(self, lhs: Any, rhs: Any, condition: Optional[ExprType] = None,
                 fold_funcs: Optional[FoldFuncsType] = None, domain: Any = SEXPR):
        try:
            bound = domain.lhs_variables(lhs)
        except ValueError as e:
            raise RuleError(f"invalid left-hand side {format_sexpr(lhs)}: {e}") from None
        unbound = domain.rhs_variables(rhs) - bound
        if unbound:
            raise RuleError(
                f"free variables in right-hand side {format_sexpr(rhs)}: "
                f"{', '.join(sorted(unbound))}")
        if condition is not None:
            unbound = domain.rhs_variables(condition) - bound
            if unbound:
                raise RuleError(
                    f"free variables in condition {format_sexpr(condition)}: "
                    f"{', '.join(sorted(unbound))}")
        self.lhs = lhs
        self.rhs = rhs
        self.condition = condition
        self.fold_funcs = fold_funcs
        self.domain = domain

    def apply(self, term: Any) -> List[Any]:
        bindings = self.domain.match(self.lhs, term)
        if bindings is None:
            return []
        if self.condition is not None and not check_condition(
                self.condition, bindings, self.fold_funcs):
            return []
        return [self.domain.instantiate(self.rhs, bindings, self.fold_funcs)]

    def invert(self) -> Optional['Pattern']:
        # a guard only restricts the forward direction
        if self.condition is not None:
            return None
        swapped = self.domain.invert(self.lhs, self.rhs)
        if swapped is None:
            return None
        try:
            return Pattern(swapped[0], swapped[1], fold_funcs=self.fold_funcs,
                           domain=self.domain)
        except RuleError:
            # dropped variables or a spliced :xs... before the end cannot reverse
            return None

    def __repr__(self) -> str:
        text = f"{format_sexpr(self.lhs)} => {format_sexpr(self.rhs)}"
        if self.condition is not None:
            text += f" when {format_sexpr(self.condition)}"
        return f"Pattern({text})"


# ============================================================
# Arguments
# ============================================================

class ArgDescr:
    """
    Describes one argument of a parameterized transformation.

    Args:
        label: Text shown to the user when asking for the argument
        parse: ``str -> value``; returns None (or raises ValueError) on bad input
        show: ``value -> str``
        default: Value used when no value is proposed for a term, or when
            the supplied text is blank
    """

    __slots__ = ('label', 'parse', 'show', 'default')

    def __init__(self, label: str, parse: Callable[[str], Any],
                 show: Callable[[Any], str] = str, default: Any = None):
        self.label = label
        self.parse = parse
        self.show = show
        self.default = default

    def read(self, text: str) -> Any:
        """Parse ``text``; None if it is not a valid value."""
        try:
            return self.parse(text)
        except (ValueError, ZeroDivisionError):
            return None

    def __repr__(self) -> str:
        return f"ArgDescr({self.label!r})"


def _parse_int(text: str) -> int:
    return int(text.strip())


def _parse_fraction(text: str) -> Optional[Fraction]:
    numerator, slash, denominator = text.strip().partition('/')
    if not slash:
        return Fraction(int(numerator))
    if int(denominator) == 0:
        return None
    return Fraction(int(numerator), int(denominator))


def _show_fraction(value: Fraction) -> str:
    value = Fraction(value)
    if value.denominator == 1:
        return str(value.numerator)
    return f"{value.numerator}/{value.denominator}"


def int_arg(label: str, default: Optional[int] = None) -> ArgDescr:
    """Integer argument."""
    return ArgDescr(label, _parse_int, str, default)


def fraction_arg(label: str, default: Optional[Fraction] = None) -> ArgDescr:
    """Rational argument written as ``n`` or ``n/d`` (d non-zero)."""
    return ArgDescr(label, _parse_fraction, _show_fraction, default)


def term_arg(label: str, default: Optional[ExprType] = None) -> ArgDescr:
    """S-expression argument."""
    return ArgDescr(label, parse_sexpr, format_sexpr, default)


class Parameterized(Transformation):
    """
    A transformation that depends on argument values.

    ``extract(term)`` proposes the argument values for a term (a tuple, or
    None when the transformation does not apply); ``build(*values)`` turns
    values into the concrete transformation. Callers can show the proposed
    values, or supply their own as strings (see Rule.use_arguments).
    A None in the proposal, or a blank supplied string, stands for the
    descriptor's default.

    Raises:
        RuleError: if there are no descriptors or two share a label
    """

    __slots__ = ('_descriptors', '_extract', '_build')

    def __init__(self, descriptors: Sequence[ArgDescr],
                 extract: Callable[[Any], Optional[Tuple]],
                 build: Callable[..., Transformation]):
        descriptors = tuple(descriptors)
        if not descriptors:
            raise RuleError("parameterized transformation needs at least one argument")
        labels = [d.label for d in descriptors]
        duplicates = sorted({l for l in labels if labels.count(l) > 1})
        if duplicates:
            raise RuleError(f"duplicate argument labels: {', '.join(duplicates)}")
        self._descriptors = descriptors
        self._extract = extract
        self._build = build

    def _values(self, term: Any) -> Optional[Tuple]:
        values = self._extract(term)
        if values is None:
            return None
        if not isinstance(values, tuple):
            values = (values,)
        # missing or None values fall back to the descriptor defaults
        values += (None,) * (len(self._descriptors) - len(values))
        values = tuple(d.default if v is None else v
                       for d, v in zip(self._descriptors, values))
        if any(v is None for v in values):
            return None
        return values

    def apply(self, term: Any) -> List[Any]:
        values = self._values(term)
        if values is None:
            return []
        return self._build(*values).apply(term)

    def descriptors(self) -> Tuple[ArgDescr, ...]:
        return self._descriptors

    def expected_arguments(self, term: Any) -> Optional[List[str]]:
        values = self._values(term)
        if values is None:
            return None
        return [d.show(v) for d, v in zip(self._descriptors, values)]

    def use_arguments(self, values: Sequence[str], rule_name: str) -> Transformation:
        if len(values) != len(self._descriptors):
            raise ArgumentError(rule_name, [ArgumentProblem(
                None, None, None,
                f"expected {len(self._descriptors)} arguments, got {len(values)}")])
        parsed = []
        problems = []
        for i, (descr, text) in enumerate(zip(self._descriptors, values)):
            if not text.strip() and descr.default is not None:
                value = descr.default
            else:
                value = descr.read(text)
            if value is None:
                problems.append(ArgumentProblem(i, descr.label, text, "cannot parse"))
            parsed.append(value)
        if problems:
            raise ArgumentError(rule_name, problems)
        return self._build(*parsed)

    def __repr__(self) -> str:
        labels = ", ".join(d.label for d in self._descriptors)
        return f"Parameterized({labels})"


def supply(descriptors: Sequence[ArgDescr],
           extract: Callable[[Any], Optional[Tuple]],
           build: Callable[..., Transformation]) -> Parameterized:
    """Convenience constructor for Parameterized."""
    return Parameterized(descriptors, extract, build)


# ============================================================
# Lifting
# ============================================================

class LiftPair:
    """
    Accessor/updater pair from an outer value to an inner part.

    ``get(outer)`` returns the part or None; ``set(inner, outer)`` returns a
    new outer value with the part replaced. The updater is responsible for
    keeping the rest of the outer value intact.
    """

    __slots__ = ('get', 'set')

    def __init__(self, get: Callable[[Any], Any], set: Callable[[Any, Any], Any]):
        self.get = get
        self.set = set

    def change(self, fn: Callable[[Any], Any], outer: Any) -> Any:
        """Apply ``fn`` to the inner part; None if either step fails."""
        inner = self.get(outer)
        if inner is None:
            return None
        new = fn(inner)
        if new is None:
            return None
        return self.set(new, outer)


class Lifted(Transformation):
    """Runs ``inner`` on the part of a value selected by a LiftPair."""

    __slots__ = ('pair', 'inner')

    def __init__(self, pair: LiftPair, inner: Transformation):
        self.pair = pair
        self.inner = inner

    def apply(self, term: Any) -> List[Any]:
        part = self.pair.get(term)
        if part is None:
            return []
        return [self.pair.set(new, term) for new in self.inner.apply(part)]

    def invert(self) -> Optional['Lifted']:
        inverse = self.inner.invert()
        return None if inverse is None else Lifted(self.pair, inverse)

    def descriptors(self) -> Tuple[ArgDescr, ...]:
        return self.inner.descriptors()

    def expected_arguments(self, term: Any) -> Optional[List[str]]:
        part = self.pair.get(term)
        if part is None:
            return None
        return self.inner.expected_arguments(part)

    def use_arguments(self, values: Sequence[str], rule_name: str) -> Optional['Lifted']:
        concrete = self.inner.use_arguments(values, rule_name)
        return None if concrete is None else Lifted(self.pair, concrete)

    def __repr__(self) -> str:
        return f"Lifted({self.inner!r})"


# ============================================================
# Rules
# ============================================================

class Rule:
    """
    A named, flagged bundle of transformations.

    Applying a rule applies every transformation in order and concatenates
    the results. Rules are immutable; the flag and lifting methods return
    new rules. Two rules are equal when their names are equal.
    """

    __slots__ = ('name', 'transformations', 'is_buggy', 'is_minor', 'description')

    def __init__(self, name: str, transformations: Iterable[Transformation],
                 is_buggy: bool = False, is_minor: bool = False,
                 description: Optional[str] = None):
        if not name:
            raise RuleError("a rule needs a name")
        transformations = tuple(transformations)
        for t in transformations:
            if not isinstance(t, Transformation):
                raise RuleError(f"rule {name!r}: not a transformation: {t!r}")
        self.name = name
        self.transformations = transformations
        self.is_buggy = is_buggy
        self.is_minor = is_minor
        self.description = description

    def _copy(self, **changes) -> 'Rule':
        fields = dict(name=self.name, transformations=self.transformations,
                      is_buggy=self.is_buggy, is_minor=self.is_minor,
                      description=self.description)
        fields.update(changes)
        return Rule(**fields)

    # ------------------------------------------------------------
    # Application

    def apply(self, term: Any) -> List[Any]:
        """All results of all transformations, in order."""
        results: List[Any] = []
        for t in self.transformations:
            results.extend(t.apply(term))
        return results

    def apply_first(self, term: Any) -> Optional[Any]:
        """The first result, or None."""
        for t in self.transformations:
            results = t.apply(term)
            if results:
                return results[0]
        return None

    def apply_default(self, term: Any) -> Any:
        """The first result, or ``term`` itself when the rule does not apply."""
        result = self.apply_first(term)
        return term if result is None else result

    def applicable(self, term: Any) -> bool:
        return self.apply_first(term) is not None

    __call__ = apply

    # ------------------------------------------------------------
    # Flags and derived rules

    def minor(self, flag: bool = True) -> 'Rule':
        return self._copy(is_minor=flag)

    def buggy(self, flag: bool = True) -> 'Rule':
        return self._copy(is_buggy=flag)

    def renamed(self, name: str) -> 'Rule':
        return self._copy(name=name)

    def invert(self) -> Optional['Rule']:
        """
        The inverse rule, named "<name> [inverse]".

        Only Pattern and Lifted transformations invert; if any transformation
        of the rule has no inverse, the rule has none either (None).
        """
        inverses = []
        for t in self.transformations:
            inverse = t.invert()
            if inverse is None:
                return None
            inverses.append(inverse)
        return self._copy(name=f"{self.name} [inverse]", transformations=inverses)

    def lift(self, pair: LiftPair) -> 'Rule':
        """The same rule working on the part of a larger value selected by ``pair``."""
        return self._copy(transformations=[Lifted(pair, t) for t in self.transformations])

    def __or__(self, other: 'Rule') -> 'Rule':
        """Combine two rules: rule1 | rule2."""
        if not isinstance(other, Rule):
            return NotImplemented
        return combine_rules([self, other])

    # ------------------------------------------------------------
    # Arguments

    def _single(self) -> Optional[Transformation]:
        if len(self.transformations) == 1:
            return self.transformations[0]
        return None

    def descriptors(self) -> Tuple[ArgDescr, ...]:
        single = self._single()
        return () if single is None else single.descriptors()

    def has_arguments(self) -> bool:
        return bool(self.descriptors())

    def expected_arguments(self, term: Any) -> Optional[List[str]]:
        """
        Pretty-printed argument values this rule would use for ``term``.

        Returns None if the rule takes no arguments or does not apply.
        """
        single = self._single()
        return None if single is None else single.expected_arguments(term)

    def use_arguments(self, values: Sequence[str]) -> 'Rule':
        """
        Fix the arguments of a parameterized rule from their text forms.

        Raises:
            ArgumentError: wrong number of values, or values that do not
                parse (one problem per invalid argument)
            RuleError: if the rule takes no arguments
        """
        single = self._single()
        concrete = None if single is None else single.use_arguments(list(values), self.name)
        if concrete is None:
            raise RuleError(f"rule {self.name!r} takes no arguments")
        return self._copy(transformations=[concrete])

    # ------------------------------------------------------------

    def __eq__(self, other):
        if isinstance(other, Rule):
            return self.name == other.name
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        flags = [f for f, on in (("minor", self.is_minor), ("buggy", self.is_buggy)) if on]
        suffix = f"[{','.join(flags)}]" if flags else ""
        return f"@{self.name}{suffix}"

    def __str__(self) -> str:
        return self.name


def combine_rules(rules: Sequence[Rule], name: Optional[str] = None) -> Rule:
    """
    One rule whose results are those of ``rules``, in order.

    The name defaults to the rule names joined with " + "; the combined rule
    is minor/buggy only if all parts are.
    """
    rules = list(rules)
    if not rules:
        raise RuleError("cannot combine an empty list of rules")
    transformations: List[Transformation] = []
    for r in rules:
        transformations.extend(r.transformations)
    return Rule(name or " + ".join(r.name for r in rules), transformations,
                is_buggy=all(r.is_buggy for r in rules),
                is_minor=all(r.is_minor for r in rules))


# ============================================================
# Constructors
# ============================================================

def make_trans(fn: Callable[[Any], Optional[Any]]) -> Direct:
    """Transformation from a function returning one result or None."""
    def single(term):
        result = fn(term)
        return [] if result is None else [result]
    single.__name__ = getattr(fn, '__name__', 'single')
    return Direct(single)


def make_trans_list(fn: Callable[[Any], Iterable[Any]]) -> Direct:
    """Transformation from a function returning any number of results."""
    return Direct(fn)


def rewrite(lhs: Any, rhs: Any, **kwargs) -> Pattern:
    """Pattern transformation ``lhs => rhs`` (see Pattern for keyword arguments)."""
    return Pattern(lhs, rhs, **kwargs)


def make_rule(name: str, *transformations: Transformation, **flags) -> Rule:
    return Rule(name, transformations, **flags)


def make_simple_rule(name: str, fn: Callable[[Any], Optional[Any]], **flags) -> Rule:
    return Rule(name, [make_trans(fn)], **flags)


def make_simple_rule_list(name: str, fn: Callable[[Any], Iterable[Any]], **flags) -> Rule:
    return Rule(name, [make_trans_list(fn)], **flags)


def id_rule() -> Rule:
    """Minor rule that returns its input unchanged."""
    return make_simple_rule("Identity", lambda term: term, is_minor=True)


def empty_rule() -> Rule:
    """Minor rule that never applies."""
    return make_simple_rule("Empty", lambda term: None, is_minor=True)
