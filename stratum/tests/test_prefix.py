"""Tests for paths, prefixes and replay."""

import logging

import pytest
from hypothesis import given, strategies as st

from stratum import (
    E, Path, Prefix, ReplayError, make_rule, make_simple_rule, rewrite,
    sequence, alternatives, label, configure, exhaustive, many,
    empty_prefix, next_steps, replay, remaining, find_step,
)
from stratum.prefix import NO_PREFIX


def step(name, source, target):
    return make_simple_rule(name, lambda t: target if t == source else None)


A = step("A", "x0", "x1")
B = step("B", "x1", "x2")
C = step("C", "x1", "x3")
TIDY = step("tidy", "x1", "x1").minor()


def a_then_b_or_c():
    return sequence(A, alternatives(label("b", B), label("c", C)))


def simplify():
    add_zero = make_rule("add-zero", rewrite(E("(+ ?x 0)"), E(":x")))
    mul_one = make_rule("mul-one", rewrite(E("(* ?x 1)"), E(":x")))
    return exhaustive([add_zero, mul_one])


class TestPath:
    """Tests for the Path codec."""

    def test_to_text(self):
        """Paths print as compact JSON."""
        assert Path([(0, "A"), (1, "C")]).to_text() == '[[0,"A"],[1,"C"]]'
        assert Path().to_text() == "[]"

    def test_from_text(self):
        """The text form decodes to an equal path."""
        path = Path.from_text('[[0, "A"], [1, "C"]]')
        assert path == Path([(0, "A"), (1, "C")])
        assert path.indices() == [0, 1]
        assert path.names() == ["A", "C"]

    def test_negative_index_rejected(self):
        """Indices count from zero; a negative one never picks a step from the end."""
        with pytest.raises(ValueError, match="negative step index -1"):
            Path([(0, "A"), (-1, "C")])
        with pytest.raises(ValueError):
            Path().extend(-1, "C")

    def test_blank_text(self):
        """Blank text is the empty path."""
        assert Path.from_text("  ").is_empty()

    @pytest.mark.parametrize("text", [
        "not json", '{"a": 1}', '[[0]]', '[["0", "A"]]', '[[-1, "A"]]', '[[true, "A"]]',
    ])
    def test_malformed(self, text):
        """Anything but a list of [index, name] pairs is rejected."""
        with pytest.raises(ValueError):
            Path.from_text(text)

    @given(st.lists(st.tuples(st.integers(0, 50), st.text(max_size=8))))
    def test_text_round_trip(self, entries):
        """Decoding the text form gives the same path."""
        path = Path(entries)
        assert Path.from_text(path.to_text()) == path

    def test_extend(self):
        """extend returns a longer path."""
        path = Path().extend(0, "A")
        assert path.extend(1, "C") == Path([(0, "A"), (1, "C")])
        assert len(path) == 1


class TestPrefix:
    """Tests for stepping through a strategy."""

    def test_empty_prefix(self):
        """The empty prefix offers the first steps."""
        prefix = Prefix.empty(a_then_b_or_c(), "x0")
        assert prefix.path.is_empty()
        assert [(s.rule.name, s.term) for s in prefix.next_steps()] == [("A", "x1")]
        assert not prefix.is_ready()

    def test_next_steps(self):
        """Each step carries the prefix after it."""
        prefix = Prefix.empty(a_then_b_or_c(), "x0").advance(0)
        steps = next_steps(prefix)
        assert [(s.rule.name, s.term) for s in steps] == [("B", "x2"), ("C", "x3")]
        assert steps[1].prefix.to_text() == '[[0,"A"],[1,"C"]]'
        assert steps[1].prefix.is_ready()
        assert steps[1].prefix.next_steps() == []

    def test_advance_out_of_range(self):
        """advance needs an existing step."""
        with pytest.raises(IndexError):
            Prefix.empty(a_then_b_or_c(), "x0").advance(1)

    def test_exhausted(self):
        """An exhausted prefix has nowhere to go."""
        prefix = Prefix.exhausted(a_then_b_or_c(), "x9")
        assert prefix.next_steps() == []
        assert not prefix.is_ready()
        assert prefix.remaining() is None
        assert prefix.to_text() == NO_PREFIX
        assert not prefix.tree().endpoint

    def test_tree(self):
        """The tree of a prefix starts at its position."""
        prefix = Prefix.empty(a_then_b_or_c(), "x0").advance(0)
        assert prefix.tree().results() == ["x2", "x3"]

    def test_equality(self):
        """Prefixes are equal for the same strategy object, path and term."""
        strategy = a_then_b_or_c()
        assert Prefix.empty(strategy, "x0").advance(0) == Prefix.empty(strategy, "x0").advance(0)
        assert Prefix.empty(strategy, "x0") != Prefix.empty(a_then_b_or_c(), "x0")

    def test_module_functions(self):
        """The functional forms agree with the methods."""
        prefix = empty_prefix(a_then_b_or_c(), "x0")
        assert remaining(prefix) == prefix.remaining() == 2


class TestRemaining:
    """Tests for remaining."""

    def test_counts_steps_to_completion(self):
        """remaining follows the leftmost completion."""
        prefix = Prefix.empty(simplify(), E("(* (+ y 0) 1)"))
        assert prefix.remaining() == 2
        assert prefix.advance(0).remaining() == 1
        assert prefix.advance(0).advance(0).remaining() == 0

    def test_minor_steps_excluded(self):
        """Minor steps are in the path but not in the count."""
        strategy = sequence(A, TIDY, B)
        prefix = Prefix.empty(strategy, "x0")
        assert prefix.remaining() == 2
        after_a = prefix.advance(0)
        assert after_a.next_steps()[0].rule.is_minor
        assert after_a.remaining() == 1

    def test_cannot_complete(self):
        """None when no completion exists."""
        prefix = Prefix.empty(sequence(A, C, B), "x0")
        assert prefix.remaining() is None

    def test_step_budget(self):
        """Runs longer than the budget are not found."""
        prefix = Prefix.empty(sequence(many(make_simple_rule("inc", lambda n: n + 1 if n < 10 else None)),
                                       step("stop", 10, "done")), 0)
        assert prefix.remaining() == 11
        assert prefix.remaining(max_steps=5) is None


class TestReplay:
    """Tests for replay and text round trips."""

    def test_text_round_trip(self):
        """A prefix rebuilt from its text is equal to the original."""
        strategy = a_then_b_or_c()
        prefix = Prefix.empty(strategy, "x0").advance(0).advance(1)
        rebuilt = Prefix.from_text(strategy, "x0", prefix.to_text())
        assert rebuilt == prefix
        assert rebuilt.term == "x3"

    def test_replay_is_deterministic(self):
        """Replaying the same path twice gives equal prefixes."""
        strategy = simplify()
        term = E("(* (+ y 0) 1)")
        path = Path([(0, "mul-one"), (0, "add-zero")])
        first, second = replay(path, strategy, term), replay(path, strategy, term)
        assert first == second
        assert first.term == second.term == "y"
        assert first.to_text() == second.to_text()

    def test_no_prefix_text(self):
        """The text "no prefix" rebuilds the exhausted prefix."""
        prefix = Prefix.from_text(a_then_b_or_c(), "x5", " No  Prefix ")
        assert prefix.is_exhausted
        assert prefix.term == "x5"

    def test_removed_branch_fails_explicitly(self, caplog):
        """A path through a removed branch fails instead of taking another one."""
        strategy = a_then_b_or_c()
        text = Prefix.empty(strategy, "x0").advance(0).advance(0).to_text()
        assert text == '[[0,"A"],[0,"B"]]'
        changed = configure(strategy, "remove: b")
        with caplog.at_level(logging.WARNING, logger="stratum.prefix"):
            with pytest.raises(ReplayError) as info:
                Prefix.from_text(changed, "x0", text)
        assert info.value.step == 1
        assert "failed at step 1" in caplog.text

    def test_renamed_rule_fails(self):
        """The recorded rule name must match the step found at its index."""
        with pytest.raises(ReplayError) as info:
            replay(Path([(0, "A"), (0, "C")]), a_then_b_or_c(), "x0")
        assert info.value.step == 1
        assert "expected rule 'C', found 'B'" in info.value.reason

    def test_index_out_of_range_fails(self):
        """An index past the available steps fails at that entry."""
        with pytest.raises(ReplayError) as info:
            replay(Path([(0, "A"), (2, "C")]), a_then_b_or_c(), "x0")
        assert info.value.step == 1
        assert "no step 2" in info.value.reason

    def test_negative_index_never_replays(self):
        """A negative index cannot reach replay, so it cannot select the last branch."""
        with pytest.raises(ValueError):
            replay(Path([(0, "A"), (-1, "C")]), a_then_b_or_c(), "x0")
        prefix = replay(Path([(0, "A"), (1, "C")]), a_then_b_or_c(), "x0")
        assert prefix.path.indices() == [0, 1]
        assert Path.from_text(prefix.to_text()) == prefix.path

    def test_diverged_term_fails(self):
        """A path recorded from another term does not replay."""
        with pytest.raises(ReplayError) as info:
            replay(Path([(0, "A")]), a_then_b_or_c(), "x1")
        assert info.value.step == 0

    def test_malformed_text(self):
        """Malformed text is a ValueError, not a replay failure."""
        with pytest.raises(ValueError):
            Prefix.from_text(a_then_b_or_c(), "x0", "[[0,")


class TestFindStep:
    """Tests for recognising a submitted term."""

    def test_finds_major_step(self):
        """The step whose result is the submitted term is found."""
        prefix = Prefix.empty(a_then_b_or_c(), "x0").advance(0)
        found = find_step(prefix, "x3")
        assert found.rule.name == "C"
        assert found.prefix.to_text() == '[[0,"A"],[1,"C"]]'

    def test_through_minor_steps(self):
        """Minor steps are taken on the way to a major one."""
        prefix = Prefix.empty(sequence(A, TIDY, B), "x0").advance(0)
        found = find_step(prefix, "x2")
        assert found.rule.name == "B"
        assert [s.rule.name for s in found.via] == ["tidy"]
        assert found.prefix.path.names() == ["A", "tidy", "B"]

    def test_custom_equality(self):
        """Results can be compared with a domain equivalence."""
        prefix = Prefix.empty(a_then_b_or_c(), "x0")
        assert find_step(prefix, "X1") is None
        assert find_step(prefix, "X1", eq=lambda a, b: a.lower() == b.lower()).rule.name == "A"

    def test_no_match(self):
        """None when no expected step gives the term."""
        assert find_step(Prefix.empty(a_then_b_or_c(), "x0"), "x2") is None
