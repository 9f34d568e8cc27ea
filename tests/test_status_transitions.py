#!/usr/bin/env python3
"""
Unit tests for the task lifecycle decision table
"""
from dataclasses import asdict

import pytest

from taskflow.core.actor import ActorContext
from taskflow.core.exceptions import InvalidTransitionError, TransitionError, UnauthorizedTransitionError, ValidationError
from taskflow.core.managers.task_lifecycle_manager import (
    TRANSITION_RULES,
    check_transition,
    is_valid_transition,
    permitted_targets,
    request_transition,
)
from taskflow.core.models import Task
from taskflow.task_status import TaskStatus

CREATOR = "user-creator"
ASSIGNEE = "user-assignee"
OUTSIDER = "user-outsider"
ADMIN = "user-admin"


def make_task(status=TaskStatus.TODO, assigned_to=ASSIGNEE, created_by=CREATOR):
    return Task(project_id="project-1", title="Write docs", created_by=created_by, status=status, assigned_to=assigned_to)


creator = ActorContext(CREATOR)
assignee = ActorContext(ASSIGNEE)
outsider = ActorContext(OUTSIDER)
admin = ActorContext(ADMIN, is_admin=True)


def test_transition_validation():
    """Test status transition validation logic"""
    valid_transitions = [
        (TaskStatus.TODO, TaskStatus.IN_PROGRESS),
        (TaskStatus.IN_PROGRESS, TaskStatus.REVIEW),
        (TaskStatus.REVIEW, TaskStatus.DONE),
        (TaskStatus.REVIEW, TaskStatus.IN_PROGRESS),
        (TaskStatus.DONE, TaskStatus.IN_PROGRESS),
    ]

    for from_status, to_status in valid_transitions:
        assert is_valid_transition(from_status, to_status), f"Should allow transition: {from_status} → {to_status}"

    invalid_transitions = [
        (TaskStatus.TODO, TaskStatus.DONE),
        (TaskStatus.TODO, TaskStatus.REVIEW),
        (TaskStatus.IN_PROGRESS, TaskStatus.TODO),
        (TaskStatus.IN_PROGRESS, TaskStatus.DONE),
        (TaskStatus.REVIEW, TaskStatus.TODO),
        (TaskStatus.DONE, TaskStatus.TODO),
        (TaskStatus.DONE, TaskStatus.REVIEW),
    ]

    for from_status, to_status in invalid_transitions:
        assert not is_valid_transition(from_status, to_status), f"Should reject transition: {from_status} → {to_status}"

    assert len(TRANSITION_RULES) == len(valid_transitions)


def test_transition_validation_accepts_raw_values():
    assert is_valid_transition("todo", "in_progress")
    assert not is_valid_transition("todo", "done")

    with pytest.raises(ValidationError):
        is_valid_transition("todo", "archived")


@pytest.mark.parametrize(
    "status,target,actor",
    [
        (TaskStatus.TODO, TaskStatus.IN_PROGRESS, assignee),
        (TaskStatus.IN_PROGRESS, TaskStatus.REVIEW, assignee),
        (TaskStatus.REVIEW, TaskStatus.DONE, creator),
        (TaskStatus.REVIEW, TaskStatus.DONE, admin),
        (TaskStatus.REVIEW, TaskStatus.IN_PROGRESS, creator),
        (TaskStatus.REVIEW, TaskStatus.IN_PROGRESS, admin),
        (TaskStatus.DONE, TaskStatus.IN_PROGRESS, admin),
    ],
)
def test_allowed_actor_passes(status, target, actor):
    task = make_task(status=status)
    assert check_transition(task, actor, target) == target


@pytest.mark.parametrize(
    "status,target,actor",
    [
        (TaskStatus.TODO, TaskStatus.IN_PROGRESS, creator),
        (TaskStatus.TODO, TaskStatus.IN_PROGRESS, admin),
        (TaskStatus.TODO, TaskStatus.IN_PROGRESS, outsider),
        (TaskStatus.IN_PROGRESS, TaskStatus.REVIEW, creator),
        (TaskStatus.IN_PROGRESS, TaskStatus.REVIEW, admin),
        (TaskStatus.REVIEW, TaskStatus.DONE, assignee),
        (TaskStatus.REVIEW, TaskStatus.DONE, outsider),
        (TaskStatus.REVIEW, TaskStatus.IN_PROGRESS, assignee),
        (TaskStatus.DONE, TaskStatus.IN_PROGRESS, creator),
        (TaskStatus.DONE, TaskStatus.IN_PROGRESS, assignee),
    ],
)
def test_wrong_actor_is_unauthorized(status, target, actor):
    task = make_task(status=status)

    with pytest.raises(UnauthorizedTransitionError) as exc_info:
        check_transition(task, actor, target)

    assert exc_info.value.pair == (status.value, target.value)
    assert exc_info.value.error_code == "unauthorized"


def test_missing_pair_is_invalid_even_for_admin():
    """todo → done does not exist, so nobody may request it."""
    task = make_task(status=TaskStatus.TODO, assigned_to=ADMIN, created_by=ADMIN)

    with pytest.raises(InvalidTransitionError) as exc_info:
        check_transition(task, admin, TaskStatus.DONE)

    assert exc_info.value.error_code == "invalid_transition"
    assert "todo → done" in str(exc_info.value)


def test_nothing_returns_to_todo():
    for status in (TaskStatus.IN_PROGRESS, TaskStatus.REVIEW, TaskStatus.DONE):
        task = make_task(status=status, assigned_to=ADMIN, created_by=ADMIN)
        with pytest.raises(InvalidTransitionError):
            check_transition(task, admin, TaskStatus.TODO)


def test_same_status_request_is_invalid():
    for status in TaskStatus:
        task = make_task(status=status)
        with pytest.raises(InvalidTransitionError):
            check_transition(task, admin, status)


def test_table_checked_before_actor():
    """An outsider asking for a missing pair gets the invalid error, not the unauthorized one."""
    task = make_task(status=TaskStatus.TODO)

    with pytest.raises(InvalidTransitionError):
        check_transition(task, outsider, TaskStatus.DONE)


def test_unassigned_task_cannot_be_started():
    task = make_task(status=TaskStatus.TODO, assigned_to=None)

    for actor in (creator, admin, outsider):
        with pytest.raises(UnauthorizedTransitionError):
            check_transition(task, actor, TaskStatus.IN_PROGRESS)


def test_admin_assignee_can_start_work():
    task = make_task(status=TaskStatus.TODO, assigned_to=ADMIN)
    assert check_transition(task, admin, TaskStatus.IN_PROGRESS) == TaskStatus.IN_PROGRESS


def test_rejections_are_transition_errors():
    task = make_task(status=TaskStatus.REVIEW)

    with pytest.raises(TransitionError):
        check_transition(task, assignee, TaskStatus.DONE)
    with pytest.raises(TransitionError):
        check_transition(task, admin, TaskStatus.TODO)


def test_malformed_inputs_raise_validation_error():
    task = make_task(status=TaskStatus.TODO)

    with pytest.raises(ValidationError):
        check_transition(task, assignee, "archived")
    with pytest.raises(ValidationError):
        check_transition(task, None, TaskStatus.IN_PROGRESS)
    with pytest.raises(ValidationError):
        check_transition(make_task(status="blocked"), assignee, TaskStatus.IN_PROGRESS)


def test_request_transition_only_changes_status():
    task = make_task(status=TaskStatus.IN_PROGRESS)
    task.description = "details"
    task.tag = "docs,backend"
    before = asdict(task)

    moved = request_transition(task, assignee, "review")

    assert moved.status == TaskStatus.REVIEW
    after = asdict(moved)
    after.pop("status")
    before.pop("status")
    assert after == before
    # Input task is untouched
    assert task.status == TaskStatus.IN_PROGRESS


def test_request_transition_does_not_touch_task_on_rejection():
    task = make_task(status=TaskStatus.REVIEW)

    with pytest.raises(UnauthorizedTransitionError):
        request_transition(task, assignee, TaskStatus.DONE)

    assert task.status == TaskStatus.REVIEW


def test_permitted_targets():
    assert permitted_targets(make_task(TaskStatus.TODO), assignee) == [TaskStatus.IN_PROGRESS]
    assert permitted_targets(make_task(TaskStatus.TODO), admin) == []
    assert permitted_targets(make_task(TaskStatus.IN_PROGRESS), assignee) == [TaskStatus.REVIEW]
    assert permitted_targets(make_task(TaskStatus.REVIEW), creator) == [TaskStatus.DONE, TaskStatus.IN_PROGRESS]
    assert permitted_targets(make_task(TaskStatus.REVIEW), assignee) == []
    assert permitted_targets(make_task(TaskStatus.DONE), admin) == [TaskStatus.IN_PROGRESS]
    assert permitted_targets(make_task(TaskStatus.DONE), creator) == []
    assert permitted_targets(make_task(TaskStatus.DONE), outsider) == []


def test_permitted_targets_match_check_transition():
    for status in TaskStatus:
        task = make_task(status=status)
        for actor in (creator, assignee, outsider, admin):
            allowed = permitted_targets(task, actor)
            for target in TaskStatus:
                if target in allowed:
                    check_transition(task, actor, target)
                else:
                    with pytest.raises(TransitionError):
                        check_transition(task, actor, target)
