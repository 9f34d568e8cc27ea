"""
Task lifecycle: which status moves exist and who may request each one.

The decision functions are pure. ``TaskLifecycleManager`` wires them to a
store and applies an accepted move with a conditional write, so a transition
decided against a stale read is dropped instead of overwriting a newer status.
"""

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from ...clients.task_store import TaskStore
from ...task_status import TaskStatus
from ...utils.logging_config import get_logger
from ..actor import ActorContext
from ..exceptions import (
    InvalidTransitionError,
    StoreUnavailableError,
    TransitionConflictError,
    UnauthorizedTransitionError,
    ValidationError,
)
from ..models import Task, coerce_enum

logger = get_logger(__name__)


class TransitionRole(str, Enum):
    ASSIGNEE = "assignee"
    CREATOR = "creator"
    ADMIN = "admin"


# (from, to) -> roles allowed to request it. Pairs not listed do not exist.
TRANSITION_RULES: Dict[Tuple[TaskStatus, TaskStatus], FrozenSet[TransitionRole]] = {
    (TaskStatus.TODO, TaskStatus.IN_PROGRESS): frozenset({TransitionRole.ASSIGNEE}),
    (TaskStatus.IN_PROGRESS, TaskStatus.REVIEW): frozenset({TransitionRole.ASSIGNEE}),
    (TaskStatus.REVIEW, TaskStatus.DONE): frozenset({TransitionRole.CREATOR, TransitionRole.ADMIN}),
    (TaskStatus.REVIEW, TaskStatus.IN_PROGRESS): frozenset({TransitionRole.CREATOR, TransitionRole.ADMIN}),
    (TaskStatus.DONE, TaskStatus.IN_PROGRESS): frozenset({TransitionRole.ADMIN}),
}


def _status(value: Any, field_name: str = "status") -> TaskStatus:
    return coerce_enum(TaskStatus, value, field_name)


def _check_actor(actor: Any) -> ActorContext:
    if not isinstance(actor, ActorContext) or not actor.user_id:
        raise ValidationError("A resolved actor is required", field="actor", value=actor)
    return actor


def is_valid_transition(from_status: Any, to_status: Any) -> bool:
    """True when the pair exists in the transition table, whoever asks."""
    return (_status(from_status, "from_status"), _status(to_status, "to_status")) in TRANSITION_RULES


def actor_roles(task: Task, actor: ActorContext) -> FrozenSet[TransitionRole]:
    """Roles the actor holds with respect to this task."""
    roles = set()
    if actor.is_assignee_of(task):
        roles.add(TransitionRole.ASSIGNEE)
    if actor.is_creator_of(task):
        roles.add(TransitionRole.CREATOR)
    if actor.is_admin:
        roles.add(TransitionRole.ADMIN)
    return frozenset(roles)


def permitted_targets(task: Task, actor: ActorContext) -> List[TaskStatus]:
    """Statuses this actor may move the task to from where it is now."""
    actor = _check_actor(actor)
    current = _status(task.status)
    roles = actor_roles(task, actor)
    return [
        to_status for (from_status, to_status), allowed in TRANSITION_RULES.items()
        if from_status == current and roles & allowed
    ]


def check_transition(task: Task, actor: ActorContext, target: Any) -> TaskStatus:
    """
    Decide whether ``actor`` may move ``task`` to ``target``.

    The table is consulted first: a pair that does not exist is rejected as
    invalid for every actor, admins included. Only then is the actor's role
    checked.

    Returns:
        The target as a TaskStatus

    Raises:
        ValidationError: if a status value or the actor is malformed
        InvalidTransitionError: if the pair is not in the table
        UnauthorizedTransitionError: if the pair exists but the actor lacks the role
    """
    actor = _check_actor(actor)
    current = _status(task.status)
    target = _status(target, "target")

    allowed = TRANSITION_RULES.get((current, target))
    if allowed is None:
        raise InvalidTransitionError(current.value, target.value)

    if not actor_roles(task, actor) & allowed:
        raise UnauthorizedTransitionError(current.value, target.value, actor_id=actor.user_id)

    return target


def request_transition(task: Task, actor: ActorContext, target: Any) -> Task:
    """
    Return a copy of ``task`` with only its status changed.

    Nothing is written; ``updated_at`` is left for the store to refresh.
    """
    target = check_transition(task, actor, target)
    return replace(task, status=target)


class TransitionResult(str, Enum):
    SUCCESS = "success"
    INVALID = "invalid"
    UNAUTHORIZED = "unauthorized"
    CONFLICT = "conflict"
    STORE_FAILED = "store_failed"


@dataclass
class StatusTransition:
    """Outcome of one transition attempt."""
    task_id: str
    actor_id: str
    from_status: Optional[str]
    to_status: str
    timestamp: datetime
    result: Optional[TransitionResult] = None
    error: Optional[str] = None
    task: Optional[Task] = None


class TaskLifecycleManager:
    """
    Applies status transitions against a task store.

    Thread-safe: the lock only guards the in-process history, the store's
    conditional write is what serializes competing transitions.
    """

    def __init__(self, store: TaskStore, max_history: int = 1000):
        self.store = store
        self._lock = threading.RLock()
        self._transition_history: List[StatusTransition] = []
        self._max_history = max_history

        logger.info("🔄 TaskLifecycleManager initialized")

    def allowed_targets(self, task_id: str, actor: ActorContext) -> List[TaskStatus]:
        task = self.store.fetch_task(task_id)
        return permitted_targets(task, actor)

    def transition(self, task_id: str, actor: ActorContext, target: Any) -> StatusTransition:
        """
        Move a task to ``target`` on behalf of ``actor``.

        Returns:
            A successful StatusTransition carrying the updated task

        Raises:
            TaskNotFoundError: if the task does not exist
            InvalidTransitionError, UnauthorizedTransitionError: rejected before any write
            TransitionConflictError: the status changed after it was read
            StoreUnavailableError: the store failed; safe to retry the whole call
        """
        actor = _check_actor(actor)
        target_status = _status(target, "target")
        record = StatusTransition(
            task_id=task_id,
            actor_id=actor.user_id,
            from_status=None,
            to_status=target_status.value,
            timestamp=datetime.now(),
        )

        try:
            task = self.store.fetch_task(task_id)
            record.from_status = task.status.value
            logger.info(f"🔄 Transition requested: {task.status.value} → {target_status.value} "
                        f"for task {task_id[:8]} by {actor.user_id[:8]}")

            check_transition(task, actor, target_status)

            updated = self.store.update_task_status_if(task_id, task.status, target_status)
            if updated is None:
                actual = self.store.fetch_task(task_id).status.value
                raise TransitionConflictError(task_id, task.status.value, target_status.value, actual_status=actual)

        except InvalidTransitionError as e:
            self._finish(record, TransitionResult.INVALID, e)
            logger.warning(f"⚠️ {e.message}")
            raise
        except UnauthorizedTransitionError as e:
            self._finish(record, TransitionResult.UNAUTHORIZED, e)
            logger.warning(f"⚠️ {e.message}")
            raise
        except TransitionConflictError as e:
            self._finish(record, TransitionResult.CONFLICT, e)
            logger.warning(f"⚠️ Transition conflict: {e.message}")
            raise
        except StoreUnavailableError as e:
            self._finish(record, TransitionResult.STORE_FAILED, e)
            logger.error(f"❌ Store unavailable during transition of task {task_id[:8]}: {e.message}")
            raise

        record.task = updated
        self._finish(record, TransitionResult.SUCCESS)
        logger.info(f"✅ Task {task_id[:8]} moved {record.from_status} → {record.to_status}")
        return record

    def _finish(self, record: StatusTransition, result: TransitionResult, error: Optional[Exception] = None) -> None:
        record.result = result
        record.error = str(error) if error else None
        with self._lock:
            self._transition_history.append(record)
            if len(self._transition_history) > self._max_history:
                self._transition_history = self._transition_history[-self._max_history:]

    def get_transition_history(self, task_id: Optional[str] = None, limit: int = 100) -> List[StatusTransition]:
        """Recent attempts kept in memory for debugging; not persisted."""
        with self._lock:
            history = self._transition_history
            if task_id:
                history = [t for t in history if t.task_id == task_id]
            return history[-limit:] if limit else list(history)

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            history = self._transition_history
            total = len(history)
            counts = {result: 0 for result in TransitionResult}
            for t in history:
                counts[t.result] += 1

            stats = {
                "total_transitions": total,
                "successful_transitions": counts[TransitionResult.SUCCESS],
                "rejected_transitions": counts[TransitionResult.INVALID] + counts[TransitionResult.UNAUTHORIZED],
                "conflicts": counts[TransitionResult.CONFLICT],
                "store_failures": counts[TransitionResult.STORE_FAILED],
                "success_rate": (counts[TransitionResult.SUCCESS] / total * 100) if total > 0 else 0,
            }

            logger.debug(f"📊 Transition statistics: {stats}")
            return stats
