"""Tests for run resolution and thread linkage."""

import pytest

from answer_machine.core.errors import NoUserMessageError
from answer_machine.core.run_manager import RunManager
from answer_machine.models import ChatMessage
from answer_machine.services.run_store import RunStore


def test_new_run_links_latest_user_message(test_db, make_thread):
    thread = make_thread(
        messages=(
            ("Plan a trip to Japan", False),
            ("Sure, when?", True),
            ("Next month, two weeks", False),
            ("Got it.", True),
        ),
    )

    resolution = RunManager(test_db).resolve_run(thread.thread_id, thread, "alice", False, 1, 3)

    assert resolution.current_iteration == 1
    assert not resolution.resumed

    run = RunStore(test_db).get(resolution.run_id)
    parent = test_db.query(ChatMessage).filter(ChatMessage.message_id == run.parent_message_id).first()
    assert parent.content == "Next month, two weeks"
    assert run.status == "pending"
    assert run.min_iterations == 1
    assert run.max_iterations == 3

    test_db.refresh(thread)
    assert thread.answer_machine_id == run.run_id
    assert thread.answer_machine_status == "pending"


def test_continue_existing_resumes_linked_run(test_db, make_thread):
    thread = make_thread()
    manager = RunManager(test_db)
    first = manager.resolve_run(thread.thread_id, thread, "alice", False)
    RunStore(test_db).record_iteration(first.run_id, 1, "partial")

    resumed = manager.resolve_run(thread.thread_id, thread, "alice", True)

    assert resumed.run_id == first.run_id
    assert resumed.current_iteration == 2
    assert resumed.resumed


def test_fresh_start_keeps_previous_run(test_db, make_thread):
    thread = make_thread()
    manager = RunManager(test_db)
    first = manager.resolve_run(thread.thread_id, thread, "alice", False)

    second = manager.resolve_run(thread.thread_id, thread, "alice", False)

    assert second.run_id != first.run_id
    assert RunStore(test_db).get(first.run_id) is not None
    test_db.refresh(thread)
    assert thread.answer_machine_id == second.run_id


def test_continue_without_linked_run_starts_fresh(test_db, make_thread):
    thread = make_thread()

    resolution = RunManager(test_db).resolve_run(thread.thread_id, thread, "alice", True)

    assert not resolution.resumed
    assert resolution.current_iteration == 1


def test_no_user_message(test_db, make_thread):
    thread = make_thread(messages=(("Hello! How can I help?", True),))

    with pytest.raises(NoUserMessageError, match="No user message found"):
        RunManager(test_db).resolve_run(thread.thread_id, thread, "alice", False)
