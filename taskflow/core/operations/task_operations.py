"""
Task, comment and review-queue operations with server-side role checks.
"""

from typing import Any, Dict, Iterable, List, Optional

from ...clients.object_storage import ObjectStorage
from ...clients.task_store import TaskStore
from ...task_status import TaskPriority, TaskStatus
from ...utils.logging_config import get_logger
from ..actor import ActorContext
from ..exceptions import PermissionDeniedError, RecordNotFoundError, ValidationError
from ..models import Comment, Project, Task, coerce_enum, join_tags

logger = get_logger(__name__)

EDITABLE_TASK_FIELDS = ("title", "description", "priority", "tags", "github_branch_url", "assigned_to")


def _require_text(value: Optional[str], field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field_name} must not be blank", field=field_name, value=value)
    return str(value).strip()


class TaskOperations:
    """Create, edit, delete and comment on tasks on behalf of an actor."""

    def __init__(self, store: TaskStore, storage: Optional[ObjectStorage] = None):
        self.store = store
        self.storage = storage

    def _project(self, project_id: str) -> Project:
        project = self.store.get_project(project_id)
        if project is None:
            raise RecordNotFoundError(f"Project not found: {project_id}", record_type="project", record_id=project_id)
        return project

    def _require_member_or_admin(self, actor: ActorContext, project_id: str, action: str) -> None:
        if actor.is_admin or self.store.is_member(project_id, actor.user_id):
            return
        raise PermissionDeniedError(
            f"User {actor.user_id} is not a member of project {project_id}",
            action=action,
            actor_id=actor.user_id,
        )

    def _require_creator_or_admin(self, actor: ActorContext, task: Task, action: str) -> None:
        if actor.is_admin or actor.is_creator_of(task):
            return
        raise PermissionDeniedError(
            f"Only the task creator or an admin may {action} task {task.id}",
            action=action,
            actor_id=actor.user_id,
        )

    def _check_assignee(self, project_id: str, assigned_to: Optional[str]) -> Optional[str]:
        if not assigned_to:
            return None
        if not self.store.is_member(project_id, assigned_to):
            raise ValidationError(
                f"Assignee {assigned_to} is not a member of project {project_id}",
                field="assigned_to",
                value=assigned_to,
            )
        return assigned_to

    def create_task(self,
                    actor: ActorContext,
                    project_id: str,
                    title: str,
                    description: Optional[str] = None,
                    priority: Any = TaskPriority.MEDIUM,
                    tags: Optional[Iterable[str]] = None,
                    github_branch_url: Optional[str] = None,
                    assigned_to: Optional[str] = None) -> Task:
        """
        Create a task in ``project_id``. It always starts in ``todo`` with the actor as creator.

        Raises:
            RecordNotFoundError: if the project does not exist
            PermissionDeniedError: if the actor is neither a member nor an admin
            ValidationError: on a blank title, unknown priority or non-member assignee
        """
        self._project(project_id)
        self._require_member_or_admin(actor, project_id, "create_task")

        task = Task(
            project_id=project_id,
            title=_require_text(title, "title"),
            description=description or None,
            priority=coerce_enum(TaskPriority, priority or TaskPriority.MEDIUM, "priority"),
            status=TaskStatus.TODO,
            tag=join_tags(tags),
            github_branch_url=github_branch_url or None,
            assigned_to=self._check_assignee(project_id, assigned_to),
            created_by=actor.user_id,
        )
        created = self.store.create_task(task)
        logger.info(f"✅ Task created: '{created.title}' ({created.id[:8]}) in project {project_id[:8]}")
        return created

    def get_task(self, task_id: str) -> Task:
        return self.store.fetch_task(task_id)

    def edit_task(self, actor: ActorContext, task_id: str, **fields: Any) -> Task:
        """
        Edit the descriptive fields of a task. Status has its own path through
        the lifecycle manager and cannot be changed here.
        """
        unknown = sorted(set(fields) - set(EDITABLE_TASK_FIELDS))
        if unknown:
            raise ValidationError(f"Field '{unknown[0]}' cannot be edited", field=unknown[0], value=fields[unknown[0]])

        task = self.store.fetch_task(task_id)
        self._require_creator_or_admin(actor, task, "edit")

        changes: Dict[str, Any] = {}
        for key, value in fields.items():
            if key == "title":
                changes["title"] = _require_text(value, "title")
            elif key == "priority":
                changes["priority"] = coerce_enum(TaskPriority, value, "priority")
            elif key == "tags":
                changes["tag"] = join_tags(value)
            elif key == "assigned_to":
                changes["assigned_to"] = self._check_assignee(task.project_id, value)
            else:
                changes[key] = value or None

        if not changes:
            return task

        updated = self.store.update_task_fields(task_id, changes)
        logger.info(f"✏️ Task {task_id[:8]} updated: {', '.join(sorted(changes))}")
        return updated

    def delete_task(self, actor: ActorContext, task_id: str) -> List[str]:
        """Delete a task with its comments and attachments. Returns the removed storage paths."""
        task = self.store.fetch_task(task_id)
        self._require_creator_or_admin(actor, task, "delete")

        paths = self.store.delete_task(task_id)
        if paths and self.storage is not None:
            self.storage.remove(paths)

        logger.info(f"🗑️ Task {task_id[:8]} deleted ({len(paths)} attachment(s) removed)")
        return paths

    def project_tasks(self, actor: ActorContext, project_id: str, status: Any = None) -> List[Task]:
        self._project(project_id)
        self._require_member_or_admin(actor, project_id, "list_tasks")
        status = coerce_enum(TaskStatus, status, "status") if status is not None else None
        return self.store.list_tasks(project_id=project_id, status=status)

    def assigned_tasks(self, actor: ActorContext, status: Any = None) -> List[Task]:
        """Tasks assigned to the actor, optionally narrowed to one status."""
        status = coerce_enum(TaskStatus, status, "status") if status is not None else None
        return self.store.list_tasks(status=status, assigned_to=actor.user_id)

    def review_queue(self, actor: ActorContext) -> List[Task]:
        """
        Tasks in review that wait on this actor's decision.

        Admins may close any task so they see every task in review; everyone
        else sees the ones they created.
        """
        if actor.is_admin:
            return self.store.list_tasks(status=TaskStatus.REVIEW)
        return self.store.list_tasks(status=TaskStatus.REVIEW, created_by=actor.user_id)

    # Comments

    def add_comment(self, actor: ActorContext, task_id: str, content: str) -> Comment:
        task = self.store.fetch_task(task_id)
        self._require_member_or_admin(actor, task.project_id, "comment")

        comment = self.store.add_comment(
            Comment(task_id=task_id, author_id=actor.user_id, content=_require_text(content, "content"))
        )
        logger.info(f"💬 Comment {comment.id[:8]} added to task {task_id[:8]}")
        return comment

    def list_comments(self, task_id: str) -> List[Comment]:
        self.store.fetch_task(task_id)
        return self.store.list_comments(task_id)

    def delete_comment(self, actor: ActorContext, comment_id: str) -> None:
        comment = self.store.get_comment(comment_id)
        if comment is None:
            raise RecordNotFoundError(f"Comment not found: {comment_id}", record_type="comment", record_id=comment_id)
        if not (actor.is_admin or comment.author_id == actor.user_id):
            raise PermissionDeniedError(
                "Only the comment author or an admin may delete a comment",
                action="delete_comment",
                actor_id=actor.user_id,
            )

        self.store.delete_comment(comment_id)
        logger.info(f"🗑️ Comment {comment_id[:8]} deleted")
