"""End-to-end tests for the Answer Machine orchestrator."""

import threading
import uuid

from answer_machine.core.orchestrator import AnswerMachineOrchestrator
from answer_machine.models import ChatMessage
from answer_machine.services.run_store import RunStore
from answer_machine.services.sub_question_store import SubQuestionStore
from answer_machine.services.token_store import TokenStore


def _ai_messages(test_db, thread_id):
    return (
        test_db.query(ChatMessage)
        .filter(ChatMessage.thread_id == thread_id, ChatMessage.is_ai.is_(True))
        .all()
    )


def test_single_iteration_run(test_db, fake_llm, make_thread):
    thread = make_thread(min_iterations=1, max_iterations=1)

    result = AnswerMachineOrchestrator(test_db, fake_llm).execute(thread.thread_id, "alice")

    assert result.success
    assert result.error_reason == ""
    assert result.data is None

    test_db.refresh(thread)
    run = RunStore(test_db).get(thread.answer_machine_id)
    assert run.status == "answered"
    assert run.current_iteration == 2
    assert len(run.intermediate_answers) == 1
    assert run.final_answer == "Generated answer"
    assert thread.answer_machine_status == "answered"

    (message,) = _ai_messages(test_db, thread.thread_id)
    assert message.content == "Generated answer"

    breakdown = TokenStore(test_db).breakdown_by_type(run.run_id)
    assert breakdown["final_answer"].count == 1
    assert run.total_tokens == TokenStore(test_db).aggregate(run.run_id).total_tokens


def test_stops_once_satisfied_at_minimum(test_db, fake_llm, make_thread):
    thread = make_thread(min_iterations=3, max_iterations=7)

    result = AnswerMachineOrchestrator(test_db, fake_llm).execute(thread.thread_id, "alice")

    assert result.success
    test_db.refresh(thread)
    run = RunStore(test_db).get(thread.answer_machine_id)
    assert run.current_iteration == 3
    assert len(run.intermediate_answers) == 2
    assert run.status == "answered"


def test_iteration_count_stays_within_max(test_db, fake_llm, make_thread):
    thread = make_thread(min_iterations=1, max_iterations=2)

    AnswerMachineOrchestrator(test_db, fake_llm).execute(thread.thread_id, "alice")

    test_db.refresh(thread)
    run = RunStore(test_db).get(thread.answer_machine_id)
    assert run.current_iteration <= 3
    assert len(run.intermediate_answers) <= 2
    assert SubQuestionStore(test_db).count_by_status(run.run_id).pending == 0


def test_final_prompt_uses_thread_system_prompt(test_db, fake_llm, make_thread):
    thread = make_thread(min_iterations=1, max_iterations=1, system_prompt="You are a travel agent.")

    AnswerMachineOrchestrator(test_db, fake_llm).execute(thread.thread_id, "alice")

    final_call = fake_llm.answer_calls()[-1]
    assert final_call["temperature"] == 0.4
    assert final_call["messages"][0]["content"].startswith("You are a travel agent.")
    user_prompt = final_call["messages"][1]["content"]
    assert "ORIGINAL CONVERSATION:\nUser: What should I pack for my trip to Japan next month?" in user_prompt
    assert "RESEARCH FINDINGS:\nResearch Question 1: " in user_prompt
    assert "What is the main topic of this conversation?\nAnswer " in user_prompt


def test_unknown_thread(test_db, fake_llm):
    result = AnswerMachineOrchestrator(test_db, fake_llm).execute(uuid.uuid4(), "alice")

    assert not result.success
    assert result.error_reason == "Thread not found"


def test_thread_of_another_user(test_db, fake_llm, make_thread):
    thread = make_thread()

    result = AnswerMachineOrchestrator(test_db, fake_llm).execute(thread.thread_id, "mallory")

    assert result.error_reason == "Thread not found"
    test_db.refresh(thread)
    assert thread.answer_machine_status != "error"


def test_invalid_iteration_bounds(test_db, fake_llm, make_thread):
    thread = make_thread(min_iterations=3, max_iterations=2)

    result = AnswerMachineOrchestrator(test_db, fake_llm).execute(thread.thread_id, "alice")

    assert not result.success
    assert result.error_reason == "Invalid iteration settings: min (3) > max (2)"
    test_db.refresh(thread)
    assert thread.answer_machine_status == "error"
    assert thread.answer_machine_error_reason == result.error_reason
    assert thread.answer_machine_id is None


def test_no_user_message(test_db, fake_llm, make_thread):
    thread = make_thread(messages=(("Hi there, how can I help?", True),))

    result = AnswerMachineOrchestrator(test_db, fake_llm).execute(thread.thread_id, "alice")

    assert result.error_reason == "No user message found"
    test_db.refresh(thread)
    assert thread.answer_machine_status == "error"


def test_final_answer_failure_marks_error(test_db, llm_factory, make_thread):
    thread = make_thread(min_iterations=1, max_iterations=1)

    result = AnswerMachineOrchestrator(test_db, llm_factory(fail=True)).execute(thread.thread_id, "alice")

    assert not result.success
    assert result.error_reason == "LLM unavailable"

    test_db.refresh(thread)
    run = RunStore(test_db).get(thread.answer_machine_id)
    assert run.status == "error"
    assert run.error_reason == "LLM unavailable"
    assert thread.answer_machine_status == "error"
    assert _ai_messages(test_db, thread.thread_id) == []
    # Sub-questions were still answered with the fallback
    assert SubQuestionStore(test_db).count_by_status(run.run_id).answered == 4


def test_cancel_between_iterations_and_resume(test_db, fake_llm, make_thread):
    thread = make_thread(min_iterations=3, max_iterations=7)
    stop_event = threading.Event()
    stop_event.set()

    cancelled = AnswerMachineOrchestrator(test_db, fake_llm).execute(
        thread.thread_id, "alice", stop_event=stop_event
    )

    assert cancelled.cancelled
    assert not cancelled.success
    test_db.refresh(thread)
    run_id = thread.answer_machine_id
    run = RunStore(test_db).get(run_id)
    assert run.status == "pending"
    assert run.current_iteration == 2

    resumed = AnswerMachineOrchestrator(test_db, fake_llm).execute(thread.thread_id, "alice", continue_existing=True)

    assert resumed.success
    test_db.refresh(thread)
    assert thread.answer_machine_id == run_id
    run = RunStore(test_db).get(run_id)
    assert run.status == "answered"
    assert run.current_iteration == 3
    assert len(_ai_messages(test_db, thread.thread_id)) == 1
