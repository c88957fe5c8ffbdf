"""Tests for the s-expression term domain."""

import pytest
from hypothesis import given, strategies as st

from stratum import (
    E, match, instantiate,
    parse_sexpr, format_sexpr, ARITHMETIC_PRELUDE,
)
from stratum.terms import (
    free_in, pattern_variables, skeleton_variables,
    pattern_to_skeleton, skeleton_to_pattern, check_condition, FULL_PRELUDE,
)


atoms = st.one_of(
    st.integers(min_value=-1000, max_value=1000),
    st.sampled_from(["x", "y", "z", "f", "g", "+", "*"]),
)
terms = st.recursive(
    atoms,
    lambda children: st.builds(lambda head, args: [head] + args,
                               st.sampled_from(["+", "*", "f", "g"]),
                               st.lists(children, max_size=3)),
    max_leaves=12,
)


class TestParsing:
    """Tests for parse_sexpr and format_sexpr."""

    def test_parse_atoms(self):
        """Numbers become numbers, everything else is a symbol."""
        assert parse_sexpr("42") == 42
        assert parse_sexpr("2.5") == 2.5
        assert parse_sexpr("x") == "x"

    def test_parse_nested(self):
        """Nested lists keep their structure."""
        assert parse_sexpr("(dd (^ x 2) x)") == ["dd", ["^", "x", 2], "x"]

    def test_parse_pattern_variables(self):
        """Short pattern forms expand to list forms."""
        assert E("?x") == ["?", "x"]
        assert E("?n:const") == ["?c", "n"]
        assert E("?v:var") == ["?v", "v"]
        assert E("?e:free(v)") == ["?free", "e", "v"]
        assert E("(f ?xs...)") == ["f", ["?...", "xs"]]

    def test_parse_skeleton_variables(self):
        """Short skeleton forms expand to list forms."""
        assert E(":x") == [":", "x"]
        assert E("(g :xs...)") == ["g", [":...", "xs"]]

    def test_parse_free_pattern_inside_compound(self):
        """The parenthesised part of ?x:free(v) is not a list."""
        assert E("(dd ?c:free(v) ?v)") == ["dd", ["?free", "c", "v"], ["?", "v"]]

    @pytest.mark.parametrize("text", ["", "   ", "(+ x", "(+ x))", "x y"])
    def test_parse_errors(self, text):
        """Malformed input raises ValueError."""
        with pytest.raises(ValueError):
            parse_sexpr(text)

    def test_format_round_trip(self):
        """Formatting a parsed pattern gives back the text."""
        text = "(+ ?x:const (* :y ?zs...))"
        assert format_sexpr(parse_sexpr(text)) == text

    def test_format_without_dsl_syntax(self):
        """Without DSL syntax, variables print as lists."""
        assert format_sexpr(E("?x"), dsl_syntax=False) == "(? x)"

    @given(terms)
    def test_format_then_parse_is_identity(self, term):
        """Printed terms parse back to themselves."""
        assert parse_sexpr(format_sexpr(term)) == term


class TestMatching:
    """Tests for pattern matching."""

    def test_match_binds_variables(self):
        """A matching pattern binds each variable."""
        assert match(E("(+ ?a ?b)"), E("(+ x 3)")) == {"a": "x", "b": 3}

    def test_repeated_variable_must_agree(self):
        """A repeated variable matches only equal subterms."""
        assert match(E("(- ?x ?x)"), E("(- y y)")) == {"x": "y"}
        assert match(E("(- ?x ?x)"), E("(- y z)")) is None

    def test_type_constraints(self):
        """?x:const and ?x:var restrict what matches."""
        assert match(E("?n:const"), 3) == {"n": 3}
        assert match(E("?n:const"), "x") is None
        assert match(E("?v:var"), "x") == {"v": "x"}
        assert match(E("?v:var"), E("(f x)")) is None

    def test_booleans_are_not_constants(self):
        """True does not match the number 1."""
        assert match(1, True) is None
        assert match(E("?n:const"), True) is None

    def test_free_constraint(self):
        """?e:free(v) refuses expressions containing the value bound to v."""
        pattern = E("(dd ?v:var ?e:free(v))")
        assert match(pattern, E("(dd x (* 2 y))")) is not None
        assert match(pattern, E("(dd x (* 2 x))")) is None

    def test_rest_pattern(self):
        """?xs... binds the remaining arguments."""
        assert match(E("(+ ?a ?rest...)"), E("(+ 1 2 3)")) == {"a": 1, "rest": [2, 3]}
        assert match(E("(+ ?a ?rest...)"), E("(+ 1)")) == {"a": 1, "rest": []}

    def test_rest_pattern_must_be_last(self):
        """A rest pattern in the middle is an error."""
        with pytest.raises(ValueError):
            match(["f", ["?...", "xs"], ["?", "y"]], ["f", 1, 2])

    def test_length_mismatch(self):
        """Compound patterns need the same number of elements."""
        assert match(E("(f ?x)"), E("(f 1 2)")) is None


class TestInstantiation:
    """Tests for skeleton instantiation."""

    def test_substitute(self):
        """:x is replaced by the bound value."""
        assert instantiate(E("(* :x :x)"), {"x": "y"}) == ["*", "y", "y"]

    def test_splice(self):
        """:xs... splices a list into the parent."""
        assert instantiate(E("(f :xs... 0)"), {"xs": [1, 2]}) == ["f", 1, 2, 0]

    def test_computed_with_prelude(self):
        """(! op args) folds constant arguments with the prelude."""
        assert instantiate(E("(! + :a :b)"), {"a": 2, "b": 3}, ARITHMETIC_PRELUDE) == 5
        assert instantiate(E("(! / :a :b)"), {"a": 6, "b": 3}, ARITHMETIC_PRELUDE) == 2

    def test_computed_without_prelude_stays_symbolic(self):
        """Without a handler the operation is left in place."""
        assert instantiate(E("(! + :a :b)"), {"a": 2, "b": 3}) == ["+", 2, 3]

    def test_division_by_zero_does_not_fold(self):
        """safe_div refuses zero divisors."""
        assert instantiate(E("(! / :a 0)"), {"a": 1}, ARITHMETIC_PRELUDE) == ["/", 1, 0]

    def test_unbound_variable(self):
        """Instantiating an unbound variable is a KeyError."""
        with pytest.raises(KeyError):
            instantiate(E(":x"), {})

    def test_result_does_not_share_structure(self):
        """Bound values are copied into the result."""
        inner = ["f", "x"]
        result = instantiate(E("(g :a)"), {"a": inner})
        result[1].append("mutated")
        assert inner == ["f", "x"]

    @given(terms)
    def test_match_then_instantiate_rebuilds(self, term):
        """Matching ?x and instantiating :x gives an equal, unshared copy."""
        bindings = match(E("?x"), term)
        rebuilt = instantiate(E(":x"), bindings)
        assert rebuilt == term
        if isinstance(term, list):
            assert rebuilt is not term


class TestConditions:
    """Tests for guard conditions."""

    def test_folded_comparison(self):
        """Comparisons fold with the predicate prelude."""
        assert check_condition(E("(! > :n 0)"), {"n": 5}, FULL_PRELUDE)
        assert not check_condition(E("(! > :n 0)"), {"n": -5}, FULL_PRELUDE)

    def test_no_condition(self):
        """A missing condition always holds."""
        assert check_condition(None, {})


class TestVariables:
    """Tests for variable analysis and pattern/skeleton conversion."""

    def test_pattern_variables(self):
        """All bound names are found."""
        assert pattern_variables(E("(+ ?a (* ?b:const ?cs...))")) == {"a", "b", "cs"}

    def test_skeleton_variables(self):
        """Names inside computed elements count, operators do not."""
        assert skeleton_variables(E("(f :a (! + :b 1))")) == {"a", "b"}

    def test_free_in(self):
        """free_in finds symbols at any depth."""
        assert free_in("x", E("(+ 1 (* 2 x))"))
        assert not free_in("x", E("(+ 1 y)"))

    def test_conversions(self):
        """Patterns and skeletons convert into each other."""
        assert pattern_to_skeleton(E("(+ ?x:const ?ys...)")) == E("(+ :x :ys...)")
        assert skeleton_to_pattern(E("(+ :y :x)")) == E("(+ ?y ?x)")

    def test_computed_skeleton_has_no_pattern(self):
        """(! ...) cannot become a pattern."""
        with pytest.raises(ValueError):
            skeleton_to_pattern(E("(! + :a 1)"))
