"""
S-expression terms for STRATUM.

The rewriting core is generic over the term type. This module supplies the
reference term domain used by pattern rules and by the rule DSL: nested
Python lists in prefix notation, e.g. ["+", "x", ["*", 2, "y"]].

Atoms:
    int / float      - constants
    str              - variables and operator symbols

Pattern syntax (left-hand sides):
    ["?", "x"]            - match any expression, bind to x
    ["?c", "x"]           - match a constant only
    ["?v", "x"]           - match a variable only
    ["?free", "x", "v"]   - match an expression not containing v
    ["?...", "xs"]        - match the remaining arguments (last position only)

Skeleton syntax (right-hand sides):
    [":", "x"]            - substitute the value bound to x
    [":...", "xs"]        - splice the list bound to xs into the parent
    ["!", "op", args...]  - compute op(args) with a fold prelude

The textual form (see parse_sexpr) writes these as ?x, ?x:const, ?x:var,
?x:free(v), ?xs..., :x, :xs... and (! op args...).
"""

import re
from copy import deepcopy
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

# Type aliases
ExprType = Union[int, float, str, List]
NumericType = Union[int, float]
BindingsDict = Dict[str, Any]

PATTERN_HEADS = ("?", "?c", "?v", "?free", "?...")
SKELETON_HEADS = (":", ":...")


# ============================================================
# Fold prelude for computed skeletons
# ============================================================

# A fold handler receives the numeric arguments and returns a number,
# or None when it cannot fold (wrong arity, division by zero, ...).
FoldHandler = Callable[[List[NumericType]], Optional[NumericType]]
FoldFuncsType = Dict[str, FoldHandler]


def nary_fold(identity: NumericType,
              binary_op: Callable[[NumericType, NumericType], NumericType]) -> FoldHandler:
    """Fold any number of arguments, starting from ``identity``."""
    def handler(args: List[NumericType]) -> NumericType:
        result = identity
        for a in args:
            result = binary_op(result, a)
        return result
    return handler


def binary_only(f: Callable[[NumericType, NumericType], NumericType]) -> FoldHandler:
    """Fold exactly two arguments."""
    def handler(args: List[NumericType]) -> Optional[NumericType]:
        if len(args) != 2:
            return None
        return f(args[0], args[1])
    return handler


def special_minus() -> FoldHandler:
    """(- x) negates, (- x y) subtracts; other arities do not fold."""
    def handler(args: List[NumericType]) -> Optional[NumericType]:
        if len(args) == 1:
            return -args[0]
        if len(args) == 2:
            return args[0] - args[1]
        return None
    return handler


def safe_div() -> FoldHandler:
    """Binary division that refuses to divide by zero."""
    def handler(args: List[NumericType]) -> Optional[NumericType]:
        if len(args) != 2 or args[1] == 0:
            return None
        return args[0] / args[1]
    return handler


ARITHMETIC_PRELUDE: FoldFuncsType = {
    "+": nary_fold(0, lambda a, b: a + b),
    "*": nary_fold(1, lambda a, b: a * b),
    "-": special_minus(),
    "/": safe_div(),
    "^": binary_only(lambda a, b: a ** b),
}

NO_PRELUDE: FoldFuncsType = {}


def _tidy_number(value):
    # 6.0 -> 6, so folded results compare equal to integer literals
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


# ============================================================
# Term predicates
# ============================================================

def is_constant(exp: Any) -> bool:
    """Numbers are constants (booleans are not)."""
    return isinstance(exp, (int, float)) and not isinstance(exp, bool)


def is_variable(exp: Any) -> bool:
    """Strings are variables/symbols."""
    return isinstance(exp, str)


def is_compound(exp: Any) -> bool:
    return isinstance(exp, list)


def free_in(var: str, expr: ExprType) -> bool:
    """True if the symbol ``var`` occurs anywhere in ``expr``."""
    if isinstance(expr, str):
        return expr == var
    if isinstance(expr, list):
        return any(free_in(var, sub) for sub in expr)
    return False


def _head(exp: Any) -> Optional[str]:
    if isinstance(exp, list) and exp and isinstance(exp[0], str):
        return exp[0]
    return None


def is_pattern_variable(pat: Any) -> bool:
    """True for ?x, ?x:const, ?x:var, ?x:free(v) and ?xs... forms."""
    head = _head(pat)
    if head in ("?", "?c", "?v"):
        return len(pat) == 2
    if head == "?free":
        return len(pat) == 3
    if head == "?...":
        return len(pat) in (2, 3)
    return False


def is_skeleton_variable(skel: Any) -> bool:
    """True for :x and :xs... forms."""
    return _head(skel) in SKELETON_HEADS and len(skel) == 2


def is_computed(skel: Any) -> bool:
    """True for (! op args...) skeleton elements."""
    return _head(skel) == "!" and len(skel) >= 2


# ============================================================
# Variable analysis
# ============================================================

def pattern_variables(pat: ExprType) -> Set[str]:
    """Names bound by a pattern."""
    if is_pattern_variable(pat):
        return {pat[1]}
    if isinstance(pat, list):
        names: Set[str] = set()
        for sub in pat:
            names |= pattern_variables(sub)
        return names
    return set()


def misplaced_rest(pat: ExprType) -> Optional[ExprType]:
    """The first ?xs... element that is not last in its list, or None."""
    if is_pattern_variable(pat) or not isinstance(pat, list):
        return None
    for i, sub in enumerate(pat):
        if _head(sub) == "?..." and is_pattern_variable(sub) and i != len(pat) - 1:
            return sub
        found = misplaced_rest(sub)
        if found is not None:
            return found
    return None


def skeleton_variables(skel: ExprType) -> Set[str]:
    """Names a skeleton (or guard condition) refers to."""
    if is_skeleton_variable(skel):
        return {skel[1]}
    if is_computed(skel):
        names: Set[str] = set()
        for sub in skel[2:]:
            names |= skeleton_variables(sub)
        return names
    if isinstance(skel, list):
        names = set()
        for sub in skel:
            names |= skeleton_variables(sub)
        return names
    return set()


# ============================================================
# Matching
# ============================================================

def _bind(name: str, value: Any, bindings: BindingsDict) -> Optional[BindingsDict]:
    if name in bindings:
        return bindings if bindings[name] == value else None
    extended = dict(bindings)
    extended[name] = value
    return extended


def _rest_ok(items: List, constraint: Optional[str]) -> bool:
    if constraint == "const":
        return all(is_constant(i) for i in items)
    if constraint == "var":
        return all(is_variable(i) for i in items)
    return True


def match(pat: ExprType, exp: ExprType,
          bindings: Optional[BindingsDict] = None) -> Optional[BindingsDict]:
    """
    Match a pattern against an expression.

    Args:
        pat: Pattern in list form (see module docstring)
        exp: Expression to match
        bindings: Bindings from an enclosing match, if any

    Returns:
        A new bindings dictionary, or None when the pattern does not match.
        Repeated variables must bind structurally equal values.
    """
    if bindings is None:
        bindings = {}

    head = _head(pat) if is_pattern_variable(pat) else None
    if head == "?":
        return _bind(pat[1], exp, bindings)
    if head == "?c":
        return _bind(pat[1], exp, bindings) if is_constant(exp) else None
    if head == "?v":
        return _bind(pat[1], exp, bindings) if is_variable(exp) else None
    if head == "?free":
        excluded = bindings.get(pat[2], pat[2])
        if isinstance(excluded, str) and not free_in(excluded, exp):
            return _bind(pat[1], exp, bindings)
        return None
    if head == "?...":
        # only meaningful inside a compound; bind a whole list
        return _bind(pat[1], exp, bindings) if isinstance(exp, list) else None

    if isinstance(pat, list):
        if not isinstance(exp, list):
            return None
        return _match_sequence(pat, exp, bindings)

    if isinstance(exp, list):
        return None
    # atoms: 1 == 1.0 is fine, but True must not match 1
    if type(pat) is bool or type(exp) is bool:
        return bindings if pat is exp else None
    return bindings if pat == exp else None


def _match_sequence(pats: List, exps: List, bindings: BindingsDict) -> Optional[BindingsDict]:
    for i, pat in enumerate(pats):
        if _head(pat) == "?..." and is_pattern_variable(pat):
            if i != len(pats) - 1:
                raise ValueError("Rest pattern (?...) must be last in compound pattern")
            remaining = list(exps[i:])
            constraint = pat[2] if len(pat) == 3 else None
            if not _rest_ok(remaining, constraint):
                return None
            return _bind(pat[1], remaining, bindings)
        if i >= len(exps):
            return None
        bindings = match(pat, exps[i], bindings)
        if bindings is None:
            return None
    return bindings if len(pats) == len(exps) else None


# ============================================================
# Instantiation
# ============================================================

def instantiate(skel: ExprType, bindings: BindingsDict,
                fold_funcs: Optional[FoldFuncsType] = None) -> ExprType:
    """
    Build an expression from a skeleton and bindings.

    Bound values are copied, so the result never shares list structure with
    the expression that produced the bindings.

    Raises:
        KeyError: if the skeleton refers to an unbound variable
    """
    if is_skeleton_variable(skel):
        return deepcopy(bindings[skel[1]])
    if is_computed(skel):
        op = skel[1]
        args = [instantiate(a, bindings, fold_funcs) for a in skel[2:]]
        handler = (fold_funcs or {}).get(op)
        if handler is not None and all(is_constant(a) for a in args):
            try:
                result = handler(args)
            except (ArithmeticError, ValueError):
                result = None
            if result is not None:
                return _tidy_number(result)
        return [op] + args
    if isinstance(skel, list):
        built: List = []
        for sub in skel:
            if _head(sub) == ":..." and is_skeleton_variable(sub):
                spliced = bindings[sub[1]]
                if isinstance(spliced, list):
                    built.extend(deepcopy(spliced))
                else:
                    built.append(deepcopy(spliced))
            else:
                built.append(instantiate(sub, bindings, fold_funcs))
        return built
    return skel


def check_condition(condition: Optional[ExprType], bindings: BindingsDict,
                    fold_funcs: Optional[FoldFuncsType] = None) -> bool:
    """
    Evaluate a guard condition under the given bindings.

    The condition is instantiated like a skeleton; the outcome is truthy
    when it folds to True, a non-zero number, a non-empty string or list.
    """
    if condition is None:
        return True
    result = instantiate(condition, bindings, fold_funcs)
    if isinstance(result, (bool, int, float, str, list)):
        return bool(result)
    return True


PREDICATE_PRELUDE: FoldFuncsType = {
    ">": binary_only(lambda a, b: a > b),
    "<": binary_only(lambda a, b: a < b),
    ">=": binary_only(lambda a, b: a >= b),
    "<=": binary_only(lambda a, b: a <= b),
    "=": binary_only(lambda a, b: a == b),
    "!=": binary_only(lambda a, b: a != b),
}

FULL_PRELUDE: FoldFuncsType = {**ARITHMETIC_PRELUDE, **PREDICATE_PRELUDE}


# ============================================================
# Pattern <-> skeleton conversion
# ============================================================

def pattern_to_skeleton(pat: ExprType) -> ExprType:
    """?x -> :x and ?xs... -> :xs...; type constraints are dropped."""
    if is_pattern_variable(pat):
        return [":...", pat[1]] if pat[0] == "?..." else [":", pat[1]]
    if isinstance(pat, list):
        return [pattern_to_skeleton(p) for p in pat]
    return pat


def skeleton_to_pattern(skel: ExprType) -> ExprType:
    """:x -> ?x and :xs... -> ?xs...

    Raises:
        ValueError: for computed (!) elements, which have no pattern form
    """
    if is_skeleton_variable(skel):
        return ["?...", skel[1]] if skel[0] == ":..." else ["?", skel[1]]
    if is_computed(skel):
        raise ValueError("computed skeleton elements (!) cannot be turned into patterns")
    if isinstance(skel, list):
        return [skeleton_to_pattern(s) for s in skel]
    return skel


class SexprDomain:
    """
    Pattern operations on s-expressions, as used by Pattern transformations.

    Any object offering the same five methods can stand in for this one to
    give pattern rules over another term type.
    """

    def lhs_variables(self, lhs: ExprType) -> Set[str]:
        """Names bound by ``lhs``; ValueError if ``lhs`` can never match."""
        rest = misplaced_rest(lhs)
        if rest is not None:
            raise ValueError(f"rest pattern {format_sexpr(rest)} must be last in its list")
        return pattern_variables(lhs)

    def rhs_variables(self, rhs: ExprType) -> Set[str]:
        return skeleton_variables(rhs)

    def match(self, lhs: ExprType, term: ExprType) -> Optional[BindingsDict]:
        return match(lhs, term)

    def instantiate(self, rhs: ExprType, bindings: BindingsDict,
                    fold_funcs: Optional[FoldFuncsType] = None) -> ExprType:
        return instantiate(rhs, bindings, fold_funcs)

    def invert(self, lhs: ExprType, rhs: ExprType) -> Optional[Tuple[ExprType, ExprType]]:
        """Swap sides, or None when the right-hand side computes values."""
        try:
            return skeleton_to_pattern(rhs), pattern_to_skeleton(lhs)
        except ValueError:
            return None

    def __repr__(self) -> str:
        return "SexprDomain()"


SEXPR = SexprDomain()


# ============================================================
# Parsing and formatting
# ============================================================

_TOKEN_RE = re.compile(r'\?[^\s()]*:free\([^\s()]*\)(?:\.\.\.)?|\(|\)|[^\s()]+')


def _atom(token: str) -> ExprType:
    try:
        return int(token)
    except ValueError:
        pass
    try:
        return float(token)
    except ValueError:
        pass

    if token.startswith('?') and len(token) > 1:
        rest = token[1:]
        is_rest = rest.endswith('...')
        if is_rest:
            rest = rest[:-3]
        name, _, kind = rest.partition(':')
        name = name or 'x'
        if is_rest:
            return ["?...", name, kind] if kind in ("const", "var") else ["?...", name]
        if kind == "const":
            return ["?c", name]
        if kind == "var":
            return ["?v", name]
        if kind.startswith("free(") and kind.endswith(")"):
            return ["?free", name, kind[5:-1].strip()]
        return ["?", name]

    if token.startswith(':') and len(token) > 1:
        name = token[1:]
        if name.endswith('...'):
            return [":...", name[:-3]]
        return [":", name]

    return token


def parse_sexpr(s: str) -> ExprType:
    """
    Parse an s-expression string into nested lists.

    Examples:
        "(+ x 1)"        -> ["+", "x", 1]
        "(dd (^ x 2) x)" -> ["dd", ["^", "x", 2], "x"]
        "(+ ?x 0)"       -> ["+", ["?", "x"], 0]

    Raises:
        ValueError: on empty input, unbalanced parentheses or trailing text
    """
    tokens = _TOKEN_RE.findall(s)
    if not tokens:
        raise ValueError("empty expression")

    stack: List[List] = [[]]
    for token in tokens:
        if token == '(':
            stack.append([])
        elif token == ')':
            if len(stack) == 1:
                raise ValueError(f"unbalanced ')' in {s!r}")
            done = stack.pop()
            stack[-1].append(done)
        else:
            stack[-1].append(_atom(token))

    if len(stack) != 1:
        raise ValueError(f"missing ')' in {s!r}")
    if len(stack[0]) != 1:
        raise ValueError(f"expected a single expression in {s!r}")
    return stack[0][0]


def format_sexpr(expr: Any, dsl_syntax: bool = True) -> str:
    """
    Format an expression as an s-expression string.

    With dsl_syntax, pattern and skeleton variables print in their short
    forms (?x, ?n:const, :x, :xs...). Non-list, non-number values print
    with str().
    """
    if isinstance(expr, list):
        if not expr:
            return "()"
        if dsl_syntax and is_pattern_variable(expr):
            head, name = expr[0], expr[1]
            if head == "?":
                return f"?{name}"
            if head == "?c":
                return f"?{name}:const"
            if head == "?v":
                return f"?{name}:var"
            if head == "?free":
                return f"?{name}:free({expr[2]})"
            if len(expr) == 3:
                return f"?{name}:{expr[2]}..."
            return f"?{name}..."
        if dsl_syntax and is_skeleton_variable(expr):
            return f":{expr[1]}" if expr[0] == ":" else f":{expr[1]}..."
        return "(" + " ".join(format_sexpr(e, dsl_syntax) for e in expr) + ")"
    return str(expr)


class _ExprBuilder:
    """
    Expression builder.

        E("(+ x (* 2 y))")            # parse
        E.op("+", "x", E.op("*", 2, "y"))
        x, y = E.vars("x", "y")
    """

    def __call__(self, s: str) -> ExprType:
        return parse_sexpr(s)

    def op(self, name: str, *args) -> List:
        return [name] + list(args)

    def vars(self, *names: str) -> Tuple[str, ...]:
        return names

    def __repr__(self) -> str:
        return "E (expression builder)"


E = _ExprBuilder()
