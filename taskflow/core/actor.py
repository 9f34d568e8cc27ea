"""
Explicit actor identity passed into every authorization decision.
"""
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .exceptions import RecordNotFoundError
from .models import Task

if TYPE_CHECKING:
    from ..clients.task_store import TaskStore


@dataclass(frozen=True)
class ActorContext:
    """The authenticated user attempting an operation, with the global admin flag."""

    user_id: str
    is_admin: bool = False

    def is_creator_of(self, task: Task) -> bool:
        return task.created_by == self.user_id

    def is_assignee_of(self, task: Task) -> bool:
        return task.assigned_to is not None and task.assigned_to == self.user_id


def resolve_actor(store: "TaskStore", user_id: str) -> ActorContext:
    """
    Build an ActorContext from the stored profile.

    The caller is responsible for having authenticated ``user_id``; the flags
    are read once here and then travel with the context.
    """
    profile = store.get_profile(user_id)
    if profile is None:
        raise RecordNotFoundError(f"Profile not found: {user_id}", record_type="profile", record_id=user_id)
    return ActorContext(user_id=profile.id, is_admin=bool(profile.is_admin))
