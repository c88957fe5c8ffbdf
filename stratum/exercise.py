"""
Exercises: a strategy packaged with everything needed to tutor with it.

An Exercise bundles the strategy with the domain's parser, pretty-printer
and term comparisons, and the rule set (including buggy rules) used to
diagnose submitted steps. All services work on prefixes, so a stateless
caller only has to keep the prefix text between requests.

Example:
    rules = RuleSet.from_dsl('''
        @add-zero: (+ ?x 0) => :x
        @mul-one: (* ?x 1) => :x
        @drop-add[buggy]: (+ ?x ?y) => :x
    ''')
    ex = Exercise("simplify", rules.exhaustive(), ruleset=rules)
    prefix = ex.start(E("(+ (* y 1) 0)"))
    ex.give_hint(prefix).rule.name            # => "add-zero"
    ex.feedback(prefix, "(* y 1)").kind       # => FeedbackKind.CORRECT
"""

import logging
import operator
from enum import Enum
from typing import Any, Callable, Iterable, List, NamedTuple, Optional

from .automaton import DEFAULT_MAX_STEPS, initial_state, search
from .derivation import Derivation
from .errors import StratumError
from .prefix import Prefix, find_step
from .ruleset import RuleSet
from .strategy import StrategyConfiguration, StrategyLike, configure, rules_of, to_strategy
from .terms import format_sexpr, parse_sexpr
from .transformation import Rule

logger = logging.getLogger(__name__)


class FeedbackKind(Enum):
    SYNTAX_ERROR = "syntax_error"
    UNCHANGED = "unchanged"
    CORRECT = "correct"
    BUGGY = "buggy"
    NOT_EQUIVALENT = "not_equivalent"
    UNKNOWN_STEP = "unknown_step"


class Feedback(NamedTuple):
    """
    Diagnosis of a submitted term.

    ``prefix`` is the position to continue from: after the recognised step
    for CORRECT, the exhausted prefix for UNKNOWN_STEP, and None when the
    submission should not be accepted.
    """
    kind: FeedbackKind
    message: str
    rule: Optional[Rule] = None
    term: Any = None
    prefix: Optional[Prefix] = None


class Hint(NamedTuple):
    """A suggested rule with the arguments it would use (None if it takes none)."""
    rule: Rule
    arguments: Optional[List[str]]
    term: Any
    prefix: Prefix


class Counterexample(NamedTuple):
    rule: Rule
    before: Any
    after: Any


class Exercise:
    """
    A strategy plus the domain services around it.

    Args:
        short_title: Identifier of the exercise
        strategy: The strategy (or a single rule)
        parser: ``str -> term``, raising ValueError on bad input
        pretty_printer: ``term -> str``
        equivalence: Optional semantic equivalence of two terms
        equality: Comparison of a submission with expected results
            (structural by default)
        is_ready: Optional "is this term solved" predicate; defaults to the
            strategy's own endpoint test
        ruleset: Rules known to the exercise, buggy ones included;
            defaults to the rules of the strategy
        configuration: Optional strategy configuration to apply
        max_steps: Step budget for searches
    """

    def __init__(self, short_title: str, strategy: StrategyLike,
                 parser: Callable[[str], Any] = parse_sexpr,
                 pretty_printer: Callable[[Any], str] = format_sexpr,
                 equivalence: Optional[Callable[[Any, Any], bool]] = None,
                 equality: Callable[[Any, Any], bool] = operator.eq,
                 is_ready: Optional[Callable[[Any], bool]] = None,
                 ruleset: Optional[RuleSet] = None,
                 configuration: Optional[StrategyConfiguration] = None,
                 max_steps: int = DEFAULT_MAX_STEPS):
        strategy = to_strategy(strategy)
        self.short_title = short_title
        self.base_strategy = strategy
        self.configuration = configuration
        self.strategy = configure(strategy, configuration) if configuration else strategy
        self.parser = parser
        self.pretty_printer = pretty_printer
        self.equivalence = equivalence
        self.equality = equality
        self._is_ready = is_ready
        self.ruleset = ruleset if ruleset is not None else RuleSet(rules_of(strategy))
        self.max_steps = max_steps

    # ------------------------------------------------------------
    # Terms and prefixes

    def parse(self, text: str) -> Any:
        return self.parser(text)

    def show(self, term: Any) -> str:
        return self.pretty_printer(term)

    def start(self, term: Any) -> Prefix:
        return Prefix.empty(self.strategy, term)

    def resume(self, term: Any, text: str) -> Prefix:
        """Rebuild a prefix from its text form (see Prefix.from_text)."""
        return Prefix.from_text(self.strategy, term, text)

    def is_finished(self, prefix: Prefix) -> bool:
        if self._is_ready is not None:
            return self._is_ready(prefix.term)
        return prefix.is_ready()

    # ------------------------------------------------------------
    # Hints and steps

    def give_hints(self, prefix: Prefix) -> List[Hint]:
        """Every major step available next, leftmost first."""
        hints = []
        for major in prefix.major_steps(self.max_steps):
            before = major.via[-1].term if major.via else prefix.term
            hints.append(Hint(major.rule, major.rule.expected_arguments(before),
                              major.term, major.prefix))
        return hints

    def give_hint(self, prefix: Prefix) -> Optional[Hint]:
        """The leftmost major step, or None when there is none."""
        hints = self.give_hints(prefix)
        return hints[0] if hints else None

    def give_step(self, prefix: Prefix) -> Optional[Prefix]:
        """The prefix after taking the hinted step."""
        hint = self.give_hint(prefix)
        return None if hint is None else hint.prefix

    def steps_remaining(self, prefix: Prefix) -> Optional[int]:
        return prefix.remaining(self.max_steps)

    def derivation(self, term: Any) -> Optional[Derivation]:
        """The leftmost complete derivation from ``term``, with every step annotated by its rule."""
        for _, steps in search(initial_state(self.strategy), term, self.max_steps):
            return Derivation(term, [(step.rule, step.term) for step in steps])
        return None

    def solve(self, term: Any) -> Optional[Any]:
        derivation = self.derivation(term)
        return None if derivation is None else derivation.last()

    # ------------------------------------------------------------
    # Diagnosis

    def feedback(self, prefix: Prefix, text: str) -> Feedback:
        """
        Diagnose a submitted term for the position ``prefix``.

        Checks, in order: the text parses; the term changed; it is the
        result of an expected step; it is the result of a buggy rule; it is
        equivalent to the current term (only when an equivalence is known).
        """
        try:
            submitted = self.parser(text)
        except ValueError as e:
            return Feedback(FeedbackKind.SYNTAX_ERROR, f"syntax error: {e}")

        current = prefix.term
        if self.equality(current, submitted):
            return Feedback(FeedbackKind.UNCHANGED, "the expression did not change",
                            term=submitted, prefix=prefix)

        expected = find_step(prefix, submitted, self.equality, self.max_steps)
        if expected is not None:
            return Feedback(FeedbackKind.CORRECT, f"correct: {expected.rule.name}",
                            rule=expected.rule, term=submitted, prefix=expected.prefix)

        for rule in self.ruleset.buggy_rules():
            if any(self.equality(result, submitted) for result in rule.apply(current)):
                return Feedback(FeedbackKind.BUGGY, f"common mistake: {rule.name}",
                                rule=rule, term=submitted)

        if self.equivalence is not None and not self.equivalence(current, submitted):
            return Feedback(FeedbackKind.NOT_EQUIVALENT, "the expression is not equivalent",
                            term=submitted)

        if self.equivalence is None:
            message = "not a recognised step (equivalence not checked)"
        else:
            message = "equivalent, but not a recognised step"
        return Feedback(FeedbackKind.UNKNOWN_STEP, message,
                        term=submitted, prefix=Prefix.exhausted(self.strategy, submitted))

    def check_soundness(self, samples: Iterable[Any]) -> List[Counterexample]:
        """
        Apply every non-buggy rule to ``samples`` and collect the results
        that are not equivalent to their input.

        Raises:
            StratumError: if the exercise has no equivalence
        """
        if self.equivalence is None:
            raise StratumError(f"exercise {self.short_title!r} has no equivalence to check rules with")
        samples = list(samples)
        found = []
        for rule in self.ruleset.sound_rules():
            for before in samples:
                for after in rule.apply(before):
                    if not self.equivalence(before, after):
                        logger.warning("rule %s is unsound: %s => %s", rule.name,
                                       self.show(before), self.show(after))
                        found.append(Counterexample(rule, before, after))
        return found

    # ------------------------------------------------------------

    def rule_names(self) -> List[str]:
        return self.ruleset.names()

    def get_rule(self, name: str) -> Optional[Rule]:
        return self.ruleset.get(name)

    def __repr__(self) -> str:
        return f"Exercise({self.short_title!r}, {len(self.ruleset)} rules)"
