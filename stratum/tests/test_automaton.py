"""Tests for the strategy interpreter."""

from stratum import (
    make_simple_rule, sequence, alternatives, many, repeat, label, configure, first_result, run,
)
from stratum.automaton import (
    HIDDEN_END, collapsed_rule, expand, initial_state, search,
)


def inc():
    return make_simple_rule("inc", lambda n: n + 1)


def half():
    return make_simple_rule("half", lambda n: n // 2 if n % 2 == 0 else None)


class TestExpand:
    """Tests for expand."""

    def test_initial_state(self):
        """A fresh run starts with the whole strategy on the stack."""
        strategy = sequence(inc(), half())
        assert initial_state(strategy) == (strategy,)

    def test_steps_carry_continuation(self):
        """Each step says what is left to run."""
        strategy = sequence(inc(), half())
        accepting, steps = expand(initial_state(strategy), 1)
        assert not accepting
        [step] = steps
        assert (step.rule.name, step.term) == ("inc", 2)
        assert expand(step.state, step.term).steps[0].term == 1
        assert expand((), 5) == (True, [])

    def test_hidden_marker(self):
        """Steps inside a hidden label are minor."""
        hidden = configure(label("h", inc()), "hide: h")
        [step] = expand((hidden,), 1).steps
        assert step.rule.is_minor
        assert HIDDEN_END in step.state


class TestSearch:
    """Tests for search and the functions built on it."""

    def test_leftmost_first(self):
        """Complete runs are found in strategy order."""
        strategy = alternatives(sequence(inc(), half()), half())
        assert [final for final, _ in search(initial_state(strategy), 4)] == [2]
        assert [final for final, _ in search(initial_state(strategy), 3)] == [2]
        assert run(strategy, 5) == [3]

    def test_steps_recorded(self):
        """Each run comes with the steps taken."""
        [(final, steps)] = list(search(initial_state(sequence(inc(), inc())), 0))
        assert final == 2
        assert [s.rule.name for s in steps] == ["inc", "inc"]

    def test_max_steps(self):
        """Runs longer than the budget are not explored."""
        strategy = sequence(many(inc()), make_simple_rule("at-ten", lambda n: n if n == 10 else None))
        assert first_result(strategy, 0) == 10
        assert first_result(strategy, 0, max_steps=5) is None

    def test_first_result(self):
        """first_result gives the leftmost final term."""
        assert first_result(repeat(half()), 40) == 5
        assert first_result(half(), 3) is None


class TestCollapse:
    """Tests for collapsed labels."""

    def test_collapsed_rule(self):
        """A collapsed label runs its whole body as one rule."""
        node = label("halve-all", repeat(half()))
        rule = collapsed_rule(node)
        assert rule.name == "halve-all"
        assert rule.apply(40) == [5]
        assert rule.apply(3) == [3]
