"""
STRATUM - Strategies for Stepwise Rewriting

Named rewrite rules, strategies that say in which orders rules may be
applied, resumable positions (prefixes) inside a running strategy, and
lazy derivation trees over the space a strategy can reach.

Quick Start:
    from stratum import E, RuleSet, Prefix, unfold

    rules = RuleSet.from_dsl('''
        @add-zero: (+ ?x 0) => :x
        @mul-one: (* ?x 1) => :x
    ''')
    strategy = rules.exhaustive()

    tree = unfold(strategy, E("(* (+ y 0) 1)"))
    tree.restrict_height(10).first_derivation().format("rules")
    # => "mul-one -> add-zero"

    prefix = Prefix.empty(strategy, E("(* (+ y 0) 1)"))
    step = prefix.next_steps()[0]
    step.prefix.to_text()          # => '[[0,"mul-one"]]'
    step.prefix.remaining()        # => 1

Strategy Combinators:
    a >> b, sequence(...)     - one after the other
    a | b, alternatives(...)  - any of them, leftmost preferred
    or_else(a, b)             - a if it can complete, else b
    many(s), repeat(s)        - zero or more / as many as possible
    not_(s), check(p)         - guards that take no step
    label(name, s)            - named subtree (see locations, configure)
    fix(f)                    - recursion
"""

__version__ = "0.1.0"

from .errors import (
    StratumError,
    RuleError,
    StrategyError,
    ConfigurationError,
    ArgumentError,
    ArgumentProblem,
    ReplayError,
)

# Terms
from .terms import (
    ExprType,
    NumericType,
    FoldHandler,
    FoldFuncsType,
    match,
    instantiate,
    nary_fold,
    binary_only,
    special_minus,
    safe_div,
    ARITHMETIC_PRELUDE,
    PREDICATE_PRELUDE,
    FULL_PRELUDE,
    NO_PRELUDE,
    SEXPR,
    SexprDomain,
    E,
    parse_sexpr,
    format_sexpr,
)

# Transformations and rules
from .transformation import (
    Transformation,
    Direct,
    Pattern,
    Parameterized,
    Lifted,
    ArgDescr,
    LiftPair,
    Rule,
    int_arg,
    fraction_arg,
    term_arg,
    supply,
    combine_rules,
    make_trans,
    make_trans_list,
    rewrite,
    make_rule,
    make_simple_rule,
    make_simple_rule_list,
    id_rule,
    empty_rule,
)

# Environments and contexts
from .environment import Environment, Binding, Var
from .context import (
    Context,
    in_context,
    lift_to_context,
    rule_down,
    rule_up,
    somewhere,
)

# Strategies
from .strategy import (
    Strategy,
    to_strategy,
    succeed,
    fail,
    sequence,
    alternatives,
    or_else,
    many,
    many1,
    repeat,
    repeat1,
    option,
    try_,
    not_,
    check,
    label,
    fix,
    exhaustive,
    locations,
    rules_of,
    StrategyLocation,
    ConfigAction,
    StrategyConfiguration,
    configure,
)

# Running strategies
from .automaton import first_steps, applicable, run, first_result, unfold
from .derivation import Derivation, DerivationTree, LengthProbe
from .prefix import (
    Path,
    Prefix,
    PrefixStep,
    MajorStep,
    empty_prefix,
    next_steps,
    replay,
    remaining,
    find_step,
)

# Rule sets and exercises
from .ruleset import RuleSet, parse_rule_line, load_rules_from_dsl
from .exercise import Exercise, Feedback, FeedbackKind, Hint, Counterexample

__all__ = [
    "__version__",
    # Errors
    "StratumError",
    "RuleError",
    "StrategyError",
    "ConfigurationError",
    "ArgumentError",
    "ArgumentProblem",
    "ReplayError",
    # Terms
    "ExprType",
    "NumericType",
    "FoldHandler",
    "FoldFuncsType",
    "match",
    "instantiate",
    "nary_fold",
    "binary_only",
    "special_minus",
    "safe_div",
    "ARITHMETIC_PRELUDE",
    "PREDICATE_PRELUDE",
    "FULL_PRELUDE",
    "NO_PRELUDE",
    "SEXPR",
    "SexprDomain",
    "E",
    "parse_sexpr",
    "format_sexpr",
    # Transformations and rules
    "Transformation",
    "Direct",
    "Pattern",
    "Parameterized",
    "Lifted",
    "ArgDescr",
    "LiftPair",
    "Rule",
    "int_arg",
    "fraction_arg",
    "term_arg",
    "supply",
    "combine_rules",
    "make_trans",
    "make_trans_list",
    "rewrite",
    "make_rule",
    "make_simple_rule",
    "make_simple_rule_list",
    "id_rule",
    "empty_rule",
    # Environments and contexts
    "Environment",
    "Binding",
    "Var",
    "Context",
    "in_context",
    "lift_to_context",
    "rule_down",
    "rule_up",
    "somewhere",
    # Strategies
    "Strategy",
    "to_strategy",
    "succeed",
    "fail",
    "sequence",
    "alternatives",
    "or_else",
    "many",
    "many1",
    "repeat",
    "repeat1",
    "option",
    "try_",
    "not_",
    "check",
    "label",
    "fix",
    "exhaustive",
    "locations",
    "rules_of",
    "StrategyLocation",
    "ConfigAction",
    "StrategyConfiguration",
    "configure",
    # Running strategies
    "first_steps",
    "applicable",
    "run",
    "first_result",
    "unfold",
    "Derivation",
    "DerivationTree",
    "LengthProbe",
    "Path",
    "Prefix",
    "PrefixStep",
    "MajorStep",
    "empty_prefix",
    "next_steps",
    "replay",
    "remaining",
    "find_step",
    # Rule sets and exercises
    "RuleSet",
    "parse_rule_line",
    "load_rules_from_dsl",
    "Exercise",
    "Feedback",
    "FeedbackKind",
    "Hint",
    "Counterexample",
]
