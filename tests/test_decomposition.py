"""Tests for question decomposition and filtering."""

import uuid

import pytest

from answer_machine.agents.decomposition import (
    QuestionDecompositionStrategy,
    TemplateQuestionDecomposer,
    filter_questions,
    jaccard_similarity,
    pad_questions,
)
from answer_machine.schemas.answer_machine import DecompositionResult
from answer_machine.services.run_store import RunStore
from answer_machine.services.sub_question_store import SubQuestionStore


@pytest.fixture
def run(test_db, make_thread):
    thread = make_thread()
    return RunStore(test_db).create(thread.thread_id, uuid.uuid4(), "alice", 1, 3)


class FixedDecomposer(QuestionDecompositionStrategy):
    def __init__(self, llm_client, db_session, questions):
        super().__init__(llm_client, db_session)
        self.questions = questions

    def generate_candidates(self, iteration_number, prior_gaps, is_continuing_for_min, transcript):
        return DecompositionResult(questions=list(self.questions))


def test_jaccard_similarity():
    assert jaccard_similarity("a b c", "a b c") == 1.0
    assert jaccard_similarity("a b", "c d") == 0.0
    assert jaccard_similarity("", "") == 0.0
    assert jaccard_similarity("What is the budget?", "What is the budget for this?") == pytest.approx(3 / 7)


def test_filter_drops_short_generic_questions():
    questions = [
        "What do you think?",
        "What do you think about the seasonal rainfall patterns in Kyoto during spring?",
    ]

    assert filter_questions(questions) == [questions[1]]


def test_filter_drops_formatting_questions():
    questions = [
        "How should the itinerary layout be arranged?",
        "Which visual style suits the summary?",
        "What information about rail passes is still missing?",
    ]

    # "information" is not a formatting word
    assert filter_questions(questions) == ["What information about rail passes is still missing?"]


def test_filter_drops_redundant_questions():
    transcript = "User: Which hotels near Shinjuku station are cheapest?"

    kept = filter_questions(["Which hotels near Shinjuku?", "Which museums open late in Osaka?"], transcript)

    assert kept == ["Which museums open late in Osaka?"]


def test_filter_deduplicates_keeping_first():
    first = "what is the total travel budget for this trip"
    second = "what is the total travel budget for the trip"

    assert filter_questions([first, second]) == [first]


def test_filter_caps_at_five():
    questions = [
        "Which rail pass covers the Tokaido line?",
        "How much cash should travellers carry in Kyoto?",
        "When does cherry blossom season peak in Osaka?",
        "Which vaccinations are recommended before visiting?",
        "How long is the ferry ride to Miyajima?",
        "Where can luggage be forwarded between hotels?",
        "Why are ryokan prices higher on weekends?",
    ]

    assert filter_questions(questions) == questions[:5]


def test_near_duplicates_collapse():
    cities = ["Tokyo", "Kyoto", "Osaka"]
    questions = [f"Which ramen shops in {city} stay open past midnight on weekdays?" for city in cities]

    assert filter_questions(questions) == questions[:1]


def test_pad_questions():
    padded = pad_questions(["Q1?"], 2)

    assert padded == [
        "Q1?",
        "Additional question 2 for iteration 2?",
        "Additional question 3 for iteration 2?",
    ]
    assert len(pad_questions([f"Q{i}?" for i in range(7)], 1)) == 5


def test_first_iteration_templates(test_db, fake_llm, run):
    result = TemplateQuestionDecomposer(fake_llm, test_db).decompose(
        run.run_id, run.thread_id, "alice", 1, transcript="User: What should I pack?"
    )

    assert result.questions == [
        "What is the main topic of this conversation?",
        "What specific information is needed to provide a complete answer?",
        "What are the key requirements or constraints mentioned?",
        "What is the context or background information provided?",
    ]
    assert result.tokens.prompt_tokens == 100
    assert result.tokens.completion_tokens == 50
    assert not fake_llm.calls


def test_later_iteration_uses_gaps(test_db, fake_llm, run):
    result = TemplateQuestionDecomposer(fake_llm, test_db).decompose(
        run.run_id, run.thread_id, "alice", 2, prior_gaps=["visa rules", "rail passes"]
    )

    assert result.questions == [
        "Can you provide more details about: visa rules?",
        "What additional information is needed regarding: rail passes?",
        "How does this relate to the broader context of: visa rules?",
        "What are the implications or consequences of: visa rules?",
    ]


def test_later_iteration_without_gaps(test_db, fake_llm, run):
    result = TemplateQuestionDecomposer(fake_llm, test_db).decompose(run.run_id, run.thread_id, "alice", 3)

    assert result.questions[0] == "What additional analysis is needed for iteration 3?"
    assert 3 <= len(result.questions) <= 5


def test_questions_are_persisted_pending(test_db, fake_llm, run):
    result = TemplateQuestionDecomposer(fake_llm, test_db).decompose(run.run_id, run.thread_id, "alice", 1)

    stored = SubQuestionStore(test_db).list_for_run(run.run_id)
    assert sorted(sq.question for sq in stored) == sorted(result.questions)
    assert all(sq.status == "pending" for sq in stored)
    assert all(sq.parent_message_id == run.parent_message_id for sq in stored)
    assert all(sq.username == "alice" for sq in stored)


def test_filtered_candidates_are_padded(test_db, fake_llm, run):
    decomposer = FixedDecomposer(fake_llm, test_db, ["What else?", "Which rail pass covers the Tokaido line?"])

    result = decomposer.decompose(run.run_id, run.thread_id, "alice", 2)

    assert result.questions == [
        "Which rail pass covers the Tokaido line?",
        "Additional question 2 for iteration 2?",
        "Additional question 3 for iteration 2?",
    ]


def test_no_candidates_means_no_questions(test_db, fake_llm, run):
    result = FixedDecomposer(fake_llm, test_db, []).decompose(run.run_id, run.thread_id, "alice", 1)

    assert result.questions == []
    assert SubQuestionStore(test_db).list_for_run(run.run_id) == []


def test_failure_yields_no_questions(test_db, fake_llm, run):
    class BrokenDecomposer(QuestionDecompositionStrategy):
        def generate_candidates(self, iteration_number, prior_gaps, is_continuing_for_min, transcript):
            raise RuntimeError("model exploded")

    result = BrokenDecomposer(fake_llm, test_db).decompose(run.run_id, run.thread_id, "alice", 1)

    assert result.questions == []
    assert result.tokens.total_tokens == 0


def test_pad_skips_fillers_already_present():
    padded = pad_questions(["Additional question 2 for iteration 1?"], 1)

    assert padded == [
        "Additional question 2 for iteration 1?",
        "Additional question 3 for iteration 1?",
        "Additional question 4 for iteration 1?",
    ]
