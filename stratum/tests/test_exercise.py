"""Tests for exercises: hints, feedback and soundness checks."""

import logging

import pytest

from stratum import (
    E, Exercise, FeedbackKind, RuleSet, StratumError, StrategyConfiguration,
    alternatives, label, sequence,
)


def rules():
    return RuleSet.from_dsl('''
        @add-zero: (+ ?x 0) => :x
        @mul-one: (* ?x 1) => :x
        @drop-add[buggy]: (+ ?x ?y) => :x
    ''')


def evaluate(term, env):
    """Evaluate a small arithmetic term for equivalence checks."""
    if isinstance(term, str):
        return env[term]
    if not isinstance(term, list):
        return term
    op, *args = term
    values = [evaluate(a, env) for a in args]
    if op == "+":
        return sum(values)
    if op == "*":
        result = 1
        for v in values:
            result *= v
        return result
    raise ValueError(op)


def equivalent(a, b):
    return all(evaluate(a, {"y": y}) == evaluate(b, {"y": y}) for y in (-2, 0, 3, 7))


def exercise(**kwargs):
    ruleset = rules()
    return Exercise("simplify", ruleset.exhaustive(), ruleset=ruleset, **kwargs)


class TestBasics:
    """Tests for parsing, showing and finishing."""

    def test_parse_and_show(self):
        """The default parser and printer are s-expressions."""
        ex = exercise()
        assert ex.parse("(+ y 0)") == E("(+ y 0)")
        assert ex.show(E("(+ y 0)")) == "(+ y 0)"

    def test_finished(self):
        """A prefix is finished when the strategy may stop."""
        ex = exercise()
        assert not ex.is_finished(ex.start(E("(+ y 0)")))
        assert ex.is_finished(ex.start("y"))

    def test_custom_ready_predicate(self):
        """is_ready overrides the strategy's own test."""
        ex = exercise(is_ready=lambda term: isinstance(term, str))
        assert ex.is_finished(ex.start("y"))
        assert not ex.is_finished(ex.start(E("(* y 2)")))

    def test_rule_lookup(self):
        """Rules are available by name."""
        ex = exercise()
        assert ex.rule_names() == ["add-zero", "mul-one", "drop-add"]
        assert ex.get_rule("mul-one").name == "mul-one"
        assert ex.get_rule("nope") is None

    def test_default_ruleset(self):
        """Without a rule set, the strategy's own rules are used."""
        ex = Exercise("simplify", rules().exhaustive())
        assert ex.rule_names() == ["add-zero", "mul-one"]

    def test_resume(self):
        """A prefix survives a text round trip."""
        ex = exercise()
        term = E("(+ (* y 1) 0)")
        prefix = ex.give_step(ex.start(term))
        resumed = ex.resume(term, prefix.to_text())
        assert resumed == prefix


class TestHints:
    """Tests for hints and steps."""

    def test_give_hint(self):
        """The hint is the leftmost expected step."""
        ex = exercise()
        hint = ex.give_hint(ex.start(E("(+ (* y 1) 0)")))
        assert hint.rule.name == "add-zero"
        assert hint.term == E("(* y 1)")
        assert hint.arguments is None

    def test_give_hints(self):
        """All expected steps are listed."""
        ruleset = rules()
        ex = Exercise("either", alternatives(ruleset["add-zero"], ruleset["drop-add"]))
        hints = ex.give_hints(ex.start(E("(+ y 0)")))
        assert [(h.rule.name, h.term) for h in hints] == [("add-zero", "y"), ("drop-add", "y")]

    def test_no_hint_when_done(self):
        """No hint is left at the end."""
        ex = exercise()
        assert ex.give_hint(ex.start("y")) is None
        assert ex.give_step(ex.start("y")) is None

    def test_steps_remaining(self):
        """Remaining steps count down as steps are taken."""
        ex = exercise()
        prefix = ex.start(E("(+ (* y 1) 0)"))
        assert ex.steps_remaining(prefix) == 2
        assert ex.steps_remaining(ex.give_step(prefix)) == 1

    def test_solve(self):
        """solve follows the leftmost derivation to its end."""
        ex = exercise()
        derivation = ex.derivation(E("(+ (* y 1) 0)"))
        assert derivation.format("rules") == "add-zero -> mul-one"
        assert ex.solve(E("(+ (* y 1) 0)")) == "y"

    def test_hidden_steps_are_skipped(self):
        """Hints look past minor steps to the next major one."""
        ruleset = rules()
        strategy = sequence(label("cleanup", ruleset["add-zero"]), ruleset["mul-one"])
        ex = Exercise("cleanup-first", strategy, ruleset=ruleset,
                      configuration=StrategyConfiguration([("hide", "cleanup")]))
        hint = ex.give_hint(ex.start(E("(+ (* y 1) 0)")))
        assert hint.rule.name == "mul-one"
        assert hint.term == "y"
        assert ex.steps_remaining(ex.start(E("(+ (* y 1) 0)"))) == 1


class TestFeedback:
    """Tests for diagnosing submitted terms."""

    def start(self, ex):
        return ex.start(E("(+ (* y 1) 0)"))

    def test_syntax_error(self):
        """Unparsable text is reported as such."""
        ex = exercise()
        feedback = ex.feedback(self.start(ex), "(+ y")
        assert feedback.kind is FeedbackKind.SYNTAX_ERROR
        assert feedback.prefix is None

    def test_unchanged(self):
        """Submitting the current term changes nothing."""
        ex = exercise()
        prefix = self.start(ex)
        feedback = ex.feedback(prefix, "(+ (* y 1) 0)")
        assert feedback.kind is FeedbackKind.UNCHANGED
        assert feedback.prefix is prefix

    def test_correct(self):
        """An expected step is recognised with its rule."""
        ex = exercise()
        feedback = ex.feedback(self.start(ex), "(* y 1)")
        assert feedback.kind is FeedbackKind.CORRECT
        assert feedback.rule.name == "add-zero"
        assert feedback.prefix.term == E("(* y 1)")
        assert feedback.prefix.to_text() == '[[0,"add-zero"]]'

    def test_correct_sequence(self):
        """Feedback continues from the returned prefix."""
        ex = exercise()
        first = ex.feedback(self.start(ex), "(* y 1)")
        second = ex.feedback(first.prefix, "y")
        assert second.kind is FeedbackKind.CORRECT
        assert ex.is_finished(second.prefix)

    def test_buggy(self):
        """A known mistake is named."""
        ex = exercise()
        feedback = ex.feedback(ex.start(E("(+ y 3)")), "y")
        assert feedback.kind is FeedbackKind.BUGGY
        assert feedback.rule.name == "drop-add"
        assert feedback.prefix is None

    def test_not_equivalent(self):
        """With an equivalence, wrong answers are flagged."""
        ex = exercise(equivalence=equivalent)
        feedback = ex.feedback(self.start(ex), "(* y 2)")
        assert feedback.kind is FeedbackKind.NOT_EQUIVALENT

    def test_unknown_step(self):
        """An equivalent but unexpected term leaves the strategy."""
        ex = exercise(equivalence=equivalent)
        feedback = ex.feedback(self.start(ex), "(+ 0 y)")
        assert feedback.kind is FeedbackKind.UNKNOWN_STEP
        assert feedback.prefix.is_exhausted
        assert feedback.prefix.to_text() == "no prefix"
        assert feedback.prefix.term == E("(+ 0 y)")
        assert feedback.message == "equivalent, but not a recognised step"

    def test_unknown_step_without_equivalence(self):
        """Without an equivalence the message makes no claim about it."""
        ex = exercise()
        feedback = ex.feedback(self.start(ex), "(* y 2)")
        assert feedback.kind is FeedbackKind.UNKNOWN_STEP
        assert "equivalent," not in feedback.message
        assert "equivalence not checked" in feedback.message

    def test_custom_equality(self):
        """Submissions can be compared up to a domain equality."""
        ex = exercise(equality=lambda a, b: str(a).lower() == str(b).lower())
        prefix = ex.give_step(self.start(ex))
        assert ex.feedback(prefix, "Y").kind is FeedbackKind.CORRECT


class TestSoundness:
    """Tests for check_soundness."""

    SAMPLES = [E("(+ y 0)"), E("(* y 1)"), E("(+ y 2)")]

    def test_sound_rules_pass(self):
        """Sound rules give no counterexamples; buggy rules are not checked."""
        ex = exercise(equivalence=equivalent)
        assert ex.check_soundness(self.SAMPLES) == []

    def test_unsound_rule_found(self, caplog):
        """An unsound rule is reported with its input and output."""
        ruleset = RuleSet.from_dsl("@bad: (+ ?x ?y) => :x")
        ex = Exercise("bad", ruleset.exhaustive(), ruleset=ruleset, equivalence=equivalent)
        with caplog.at_level(logging.WARNING, logger="stratum.exercise"):
            found = ex.check_soundness(self.SAMPLES)
        assert [(c.rule.name, c.before, c.after) for c in found] == [("bad", E("(+ y 2)"), "y")]
        assert "rule bad is unsound" in caplog.text

    def test_needs_equivalence(self):
        """Soundness cannot be checked without an equivalence."""
        with pytest.raises(StratumError):
            exercise().check_soundness(self.SAMPLES)
