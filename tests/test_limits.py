"""Tests for iteration limits, the continuation rule and gap resolution."""

import uuid

import pytest

from answer_machine.core.limits import (
    GapRecovery,
    check_iteration_limits,
    decide_continuation,
    resolve_prior_gaps,
)
from answer_machine.schemas.answer_machine import EvaluationResult


class RecordingEvaluator:
    def __init__(self, gaps):
        self.gaps = gaps
        self.calls = []

    def evaluate(self, run_id, iteration_number):
        self.calls.append((run_id, iteration_number))
        return EvaluationResult(is_satisfactory=not self.gaps, gaps=list(self.gaps))


def test_check_iteration_limits():
    limits = check_iteration_limits(2, 3, 5)
    assert not limits.has_reached_min
    assert not limits.has_reached_max
    assert limits.should_continue

    limits = check_iteration_limits(5, 3, 5)
    assert limits.has_reached_min
    assert limits.has_reached_max
    assert not limits.should_continue


@pytest.mark.parametrize(
    "satisfactory,gaps,iteration,expected,reason",
    [
        (False, ["gap"], 5, False, "Max iterations reached"),
        (True, [], 5, False, "Max iterations reached"),
        (False, ["gap"], 3, True, "Answer not satisfactory, gaps identified"),
        (True, [], 1, True, "Answer satisfactory but minimum iterations not reached"),
        (True, [], 3, False, "Answer satisfactory and minimum iterations reached"),
        (False, [], 3, False, "Minimum iterations reached, no gaps to address"),
        (False, [], 1, True, "Continue to reach minimum iterations despite no gaps"),
    ],
)
def test_decide_continuation(satisfactory, gaps, iteration, expected, reason):
    limits = check_iteration_limits(iteration, 2, 5)
    decision = decide_continuation(EvaluationResult(is_satisfactory=satisfactory, gaps=gaps), limits)

    assert decision.should_continue is expected
    assert decision.reason == reason


def test_first_iteration_has_no_gaps():
    evaluator = RecordingEvaluator(["gap"])

    gaps = resolve_prior_gaps(uuid.uuid4(), 1, ["carried"], GapRecovery(evaluator))

    assert gaps.gaps == []
    assert not gaps.is_continuing_for_min
    assert evaluator.calls == []


def test_carried_gaps_are_used():
    evaluator = RecordingEvaluator(["recovered"])

    gaps = resolve_prior_gaps(uuid.uuid4(), 2, ["carried"], GapRecovery(evaluator))

    assert gaps.gaps == ["carried"]
    assert not gaps.recovered
    assert evaluator.calls == []


@pytest.mark.parametrize("carried", [None, []])
def test_missing_gaps_are_recovered_from_previous_iteration(carried):
    run_id = uuid.uuid4()
    evaluator = RecordingEvaluator(["recovered"])

    gaps = resolve_prior_gaps(run_id, 3, carried, GapRecovery(evaluator))

    assert gaps.gaps == ["recovered"]
    assert gaps.is_continuing_for_min
    assert gaps.recovered
    assert evaluator.calls == [(run_id, 2)]
