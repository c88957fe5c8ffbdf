"""
Rule sets and the rule DSL.

A RuleSet is a collection of rules with unique names, optionally tagged
with groups. Rule sets are built once, at domain-definition time, and then
only read.

DSL format (one rule per line; blank lines and # comments are skipped):

    [group]                                     tag the following rules
    @name: pattern => skeleton
    @name "description": pattern => skeleton
    @name[minor]: pattern => skeleton           flags: minor, buggy
    @name: pattern => skeleton when condition   guarded rule
    @name: pattern <=> skeleton                 name-fwd and name-rev
    pattern => skeleton                         anonymous: rule[N]

Example:
    rules = RuleSet.from_dsl('''
        [algebra]
        @add-zero "Adding zero has no effect": (+ ?x 0) => :x
        @mul-one: (* ?x 1) => :x
        @commute: (+ ?x ?y) <=> (+ :y :x)

        [mistakes]
        @add-drop[buggy]: (+ ?x ?y) => :x
    ''')
    rules["add-zero"].apply(E("(+ y 0)"))   # => ["y"]
"""

import logging
import re
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .errors import RuleError
from .strategy import Strategy, alternatives, repeat
from .terms import ExprType, FoldFuncsType, format_sexpr, parse_sexpr
from .transformation import Pattern, Rule

logger = logging.getLogger(__name__)

RULE_FLAGS = ("minor", "buggy")

_HEADER_RE = re.compile(r'@([\w.\-]+)(?:\[([^\]]*)\])?(?:\s+"([^"]*)")?\s*:\s*(.+)')


# ============================================================
# DSL parsing
# ============================================================

def _split_when(text: str) -> Tuple[str, Optional[str]]:
    """Split ``skeleton when condition`` at a top-level 'when'."""
    depth = 0
    for i, ch in enumerate(text):
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth -= 1
        elif (depth == 0 and text.startswith('when', i)
              and (i == 0 or text[i - 1].isspace())
              and (i + 4 == len(text) or text[i + 4].isspace())):
            return text[:i].strip(), text[i + 4:].strip()
    return text.strip(), None


def _parse(text: str, what: str, lineno: int) -> ExprType:
    try:
        return parse_sexpr(text)
    except ValueError as e:
        raise RuleError(f"line {lineno}: bad {what}: {e}") from None


def parse_rule_line(line: str, fold_funcs: Optional[FoldFuncsType] = None,
                    lineno: int = 1, index: int = 1) -> List[Rule]:
    """
    Parse one DSL line into rules.

    Args:
        line: The line
        fold_funcs: Prelude for computed skeleton elements and guards
        lineno: Line number for error messages
        index: Number used to name an anonymous rule (rule[index])

    Returns:
        No rules for blank and comment lines, one rule for ``=>``, two
        (forward and reverse) for ``<=>``.

    Raises:
        RuleError: for a malformed line or an invalid rule
    """
    line = line.strip()
    if not line or line.startswith('#'):
        return []

    name = f"rule[{index}]"
    flags: Set[str] = set()
    description = None
    if line.startswith('@'):
        header = _HEADER_RE.match(line)
        if not header:
            raise RuleError(f"line {lineno}: malformed rule header: {line!r}")
        name, flag_text, description, line = header.groups()
        flags = {f.strip() for f in (flag_text or "").split(',') if f.strip()}
        unknown = flags - set(RULE_FLAGS)
        if unknown:
            raise RuleError(f"line {lineno}: unknown rule flags: {', '.join(sorted(unknown))}")

    bidirectional = '<=>' in line
    lhs_text, arrow, rest = line.partition('<=>' if bidirectional else '=>')
    if not arrow:
        raise RuleError(f"line {lineno}: expected '=>' or '<=>' in {line!r}")
    rhs_text, condition_text = _split_when(rest)

    lhs = _parse(lhs_text, "pattern", lineno)
    rhs = _parse(rhs_text, "skeleton", lineno)
    condition = _parse(condition_text, "condition", lineno) if condition_text else None

    try:
        pattern = Pattern(lhs, rhs, condition=condition, fold_funcs=fold_funcs)
    except RuleError as e:
        raise RuleError(f"line {lineno}: {e}") from None

    is_minor = "minor" in flags
    is_buggy = "buggy" in flags
    if not bidirectional:
        return [Rule(name, [pattern], is_buggy=is_buggy, is_minor=is_minor,
                     description=description)]

    inverse = pattern.invert()
    if inverse is None:
        raise RuleError(f"line {lineno}: rule {name!r} cannot be used in both directions")
    return [
        Rule(f"{name}-fwd", [pattern], is_buggy=is_buggy, is_minor=is_minor,
             description=f"{description} (forward)" if description else None),
        Rule(f"{name}-rev", [inverse], is_buggy=is_buggy, is_minor=is_minor,
             description=f"{description} (reverse)" if description else None),
    ]


def load_rules_from_dsl(text: str, fold_funcs: Optional[FoldFuncsType] = None,
                        first_index: int = 1) -> List[Tuple[Rule, List[str]]]:
    """
    Load rules from DSL text.

    Anonymous rules are named rule[N], numbering from ``first_index``.

    Returns:
        (rule, groups) pairs in file order
    """
    loaded: List[Tuple[Rule, List[str]]] = []
    current_group = None
    for lineno, line in enumerate(text.split('\n'), 1):
        stripped = line.strip()
        if stripped.startswith('[') and stripped.endswith(']'):
            current_group = stripped[1:-1].strip() or None
            continue
        for rule in parse_rule_line(line, fold_funcs, lineno, first_index + len(loaded)):
            loaded.append((rule, [current_group] if current_group else []))
    logger.debug("loaded %d rules from DSL", len(loaded))
    return loaded


# ============================================================
# Rule sets
# ============================================================

class RuleSet:
    """
    Rules with unique names, in insertion order, tagged with groups.

    Adding methods return self so they can be chained; once built, a rule
    set is only read.
    """

    def __init__(self, rules: Iterable[Rule] = ()):
        self._rules: List[Rule] = []
        self._by_name: Dict[str, Rule] = {}
        self._groups: Dict[str, List[str]] = {}
        for rule in rules:
            self.add(rule)

    def add(self, rule: Rule, groups: Iterable[str] = ()) -> 'RuleSet':
        """
        Add a rule.

        Raises:
            RuleError: if a rule with the same name is already present
        """
        if not isinstance(rule, Rule):
            raise RuleError(f"not a rule: {rule!r}")
        if rule.name in self._by_name:
            raise RuleError(f"duplicate rule name: {rule.name!r}")
        self._rules.append(rule)
        self._by_name[rule.name] = rule
        self._groups[rule.name] = list(groups)
        return self

    def load_dsl(self, text: str, fold_funcs: Optional[FoldFuncsType] = None) -> 'RuleSet':
        """Add the rules of a DSL text; anonymous rules are numbered after the existing ones."""
        for rule, groups in load_rules_from_dsl(text, fold_funcs, len(self._rules) + 1):
            self.add(rule, groups)
        return self

    @classmethod
    def from_dsl(cls, text: str, fold_funcs: Optional[FoldFuncsType] = None) -> 'RuleSet':
        return cls().load_dsl(text, fold_funcs)

    # ------------------------------------------------------------
    # Lookup

    def get(self, name: str) -> Optional[Rule]:
        return self._by_name.get(name)

    def names(self) -> List[str]:
        return [r.name for r in self._rules]

    def groups(self) -> Set[str]:
        """All group names used by rules."""
        found: Set[str] = set()
        for tags in self._groups.values():
            found.update(tags)
        return found

    def groups_of(self, name: str) -> List[str]:
        return list(self._groups.get(name, []))

    def in_group(self, *groups: str) -> List[Rule]:
        """Rules tagged with any of ``groups``."""
        return [r for r in self._rules if any(g in groups for g in self._groups[r.name])]

    def sound_rules(self) -> List[Rule]:
        return [r for r in self._rules if not r.is_buggy]

    def buggy_rules(self) -> List[Rule]:
        return [r for r in self._rules if r.is_buggy]

    def minor_rules(self) -> List[Rule]:
        return [r for r in self._rules if r.is_minor]

    def exhaustive(self, groups: Optional[List[str]] = None) -> Strategy:
        """
        Strategy applying the sound rules (of ``groups``, if given) until none applies.

        Rules without a group are always included, as are all rules when
        ``groups`` is None.
        """
        rules = [r for r in self.sound_rules()
                 if groups is None or not self._groups[r.name]
                 or any(g in groups for g in self._groups[r.name])]
        return repeat(alternatives(*rules))

    # ------------------------------------------------------------
    # Export

    def to_dsl(self, name: Optional[str] = None) -> str:
        """
        Export pattern rules to DSL text, organised by their first group.

        Rules that are not a single pattern transformation have no DSL form
        and are listed as comments.
        """
        lines = []
        if name:
            lines.append(f"# {name}")
            lines.append("")
        current_group = None
        for rule in self._rules:
            tags = self._groups[rule.name]
            rule_group = tags[0] if tags else None
            if rule_group != current_group:
                if rule_group:
                    if lines and lines[-1] != "":
                        lines.append("")
                    lines.append(f"[{rule_group}]")
                current_group = rule_group
            lines.append(_rule_to_dsl(rule))
        return "\n".join(lines)

    # ------------------------------------------------------------

    def __getitem__(self, name: str) -> Rule:
        if name not in self._by_name:
            raise KeyError(f"No rule named '{name}'")
        return self._by_name[name]

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __or__(self, other: 'RuleSet') -> 'RuleSet':
        """
        Union of two rule sets: rules1 | rules2.

        Raises:
            RuleError: if both contain a rule with the same name
        """
        result = RuleSet()
        for source in (self, other):
            for rule in source:
                result.add(rule, source.groups_of(rule.name))
        return result

    def __repr__(self) -> str:
        return f"RuleSet({len(self._rules)} rules)"


def _rule_to_dsl(rule: Rule) -> str:
    if len(rule.transformations) != 1 or not isinstance(rule.transformations[0], Pattern):
        return f"# @{rule.name}: (no DSL form)"
    pattern = rule.transformations[0]
    flags = [f for f, on in (("minor", rule.is_minor), ("buggy", rule.is_buggy)) if on]
    head = f"@{rule.name}"
    if flags:
        head += f"[{','.join(flags)}]"
    if rule.description:
        head += f' "{rule.description}"'
    text = f"{head}: {format_sexpr(pattern.lhs)} => {format_sexpr(pattern.rhs)}"
    if pattern.condition is not None:
        text += f" when {format_sexpr(pattern.condition)}"
    return text
