"""Tests for the heuristic satisfaction evaluator."""

import uuid

import pytest

from answer_machine.agents.evaluation import HeuristicSatisfactionEvaluator
from answer_machine.services.run_store import RunStore

RICH_ANSWER = (
    "Based on analysis of 3 key questions:\n\n"
    "1. What is the budget?\n   Around 2000 USD for two weeks including rail passes.\n\n"
    "This analysis provides insights into the topic, revealing key aspects and considerations."
)


@pytest.fixture
def run(test_db, make_thread):
    thread = make_thread()
    return RunStore(test_db).create(thread.thread_id, uuid.uuid4(), "alice", 1, 7)


def _evaluate(test_db, fake_llm, run, answer, iteration):
    runs = RunStore(test_db)
    if answer is not None:
        runs.record_iteration(run.run_id, 1, answer)
    return HeuristicSatisfactionEvaluator(fake_llm, test_db).evaluate(run.run_id, iteration)


@pytest.mark.parametrize("iteration", [1, 2])
def test_never_satisfied_before_third_iteration(test_db, fake_llm, run, iteration):
    evaluation = _evaluate(test_db, fake_llm, run, RICH_ANSWER, iteration)

    assert not evaluation.is_satisfactory
    assert evaluation.gaps == [f"Need more detailed analysis (iteration {iteration})"]
    assert evaluation.reasoning == "Quality score: 3/3. Additional iteration needed for better analysis"


def test_satisfied_from_third_iteration_with_quality(test_db, fake_llm, run):
    evaluation = _evaluate(test_db, fake_llm, run, RICH_ANSWER, 3)

    assert evaluation.is_satisfactory
    assert evaluation.gaps == []
    assert evaluation.reasoning == "Quality score: 3/3. Answer meets quality criteria"


def test_low_quality_not_satisfied(test_db, fake_llm, run):
    evaluation = _evaluate(test_db, fake_llm, run, "Short answer.", 4)

    assert not evaluation.is_satisfactory
    assert evaluation.gaps == [
        "Need more detailed analysis (iteration 4)",
        "More comprehensive content needed",
        "Additional insights and perspectives needed",
        "Broader coverage of the topic needed",
    ]
    assert evaluation.reasoning.startswith("Quality score: 0/3.")


def test_keyword_match_is_case_sensitive(test_db, fake_llm, run):
    evaluation = _evaluate(test_db, fake_llm, run, "ANALYSIS " * 20, 3)

    # Long enough, but no lowercase keyword and a single block
    assert evaluation.reasoning.startswith("Quality score: 1/3.")
    assert not evaluation.is_satisfactory


def test_always_satisfied_at_seventh_iteration(test_db, fake_llm, run):
    evaluation = _evaluate(test_db, fake_llm, run, None, 7)

    assert evaluation.is_satisfactory
    assert evaluation.gaps == []
    assert evaluation.reasoning.startswith("Quality score: 0/3.")
