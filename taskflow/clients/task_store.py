"""
Task store interface and in-memory implementation.

The store is the persistence collaborator of the lifecycle manager and the
operations. Every implementation must offer a conditional status write
(``update_task_status_if``) that applies only when the stored status still
matches the caller's expectation.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Dict, List, Optional

from ..core.exceptions import RecordNotFoundError, TaskNotFoundError, ValidationError
from ..core.models import Comment, Profile, Project, Task, TaskFile, utcnow
from ..task_status import TaskStatus
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

# Fields that update_task_fields refuses; status has its own write paths
PROTECTED_TASK_FIELDS = frozenset({"id", "project_id", "created_by", "created_at", "updated_at", "status"})
PROTECTED_PROJECT_FIELDS = frozenset({"id", "created_by", "created_at"})


def check_task_fields(fields: Dict[str, Any]) -> None:
    protected = PROTECTED_TASK_FIELDS.intersection(fields)
    if protected:
        name = sorted(protected)[0]
        raise ValidationError(f"Task field '{name}' cannot be updated here", field=name, value=fields[name])


def check_project_fields(fields: Dict[str, Any]) -> None:
    protected = PROTECTED_PROJECT_FIELDS.intersection(fields)
    if protected:
        name = sorted(protected)[0]
        raise ValidationError(f"Project field '{name}' cannot be updated", field=name, value=fields[name])


class TaskStore(ABC):
    """Abstract persistence for profiles, projects, tasks, comments and file rows."""

    # Profiles

    @abstractmethod
    def get_profile(self, user_id: str) -> Optional[Profile]:
        pass

    @abstractmethod
    def save_profile(self, profile: Profile) -> Profile:
        """Insert or replace a profile."""
        pass

    @abstractmethod
    def list_profiles(self) -> List[Profile]:
        pass

    # Projects and membership

    @abstractmethod
    def create_project(self, project: Project) -> Project:
        pass

    @abstractmethod
    def get_project(self, project_id: str) -> Optional[Project]:
        pass

    @abstractmethod
    def update_project(self, project_id: str, fields: Dict[str, Any]) -> Project:
        pass

    @abstractmethod
    def delete_project(self, project_id: str) -> List[str]:
        """
        Delete a project with its tasks, comments, file rows and members.

        Returns:
            Storage paths of the file rows that were removed
        """
        pass

    @abstractmethod
    def list_projects_for_user(self, user_id: str) -> List[Project]:
        pass

    @abstractmethod
    def add_member(self, project_id: str, user_id: str) -> None:
        """Add a member; adding an existing member is a no-op."""
        pass

    @abstractmethod
    def remove_member(self, project_id: str, user_id: str) -> None:
        pass

    @abstractmethod
    def list_member_ids(self, project_id: str) -> List[str]:
        pass

    def is_member(self, project_id: str, user_id: str) -> bool:
        return user_id in self.list_member_ids(project_id)

    # Tasks

    @abstractmethod
    def create_task(self, task: Task) -> Task:
        pass

    @abstractmethod
    def fetch_task(self, task_id: str) -> Task:
        """
        Raises:
            TaskNotFoundError: if the task does not exist
        """
        pass

    @abstractmethod
    def update_task_fields(self, task_id: str, fields: Dict[str, Any]) -> Task:
        pass

    @abstractmethod
    def update_task_status(self, task_id: str, new_status: TaskStatus) -> Task:
        """Unconditional status write. Refreshes updated_at."""
        pass

    @abstractmethod
    def update_task_status_if(self, task_id: str, expected_status: TaskStatus, new_status: TaskStatus) -> Optional[Task]:
        """
        Write ``new_status`` only if the stored status equals ``expected_status``.

        Returns:
            The updated task, or None when the stored status did not match

        Raises:
            TaskNotFoundError: if the task does not exist
        """
        pass

    @abstractmethod
    def delete_task(self, task_id: str) -> List[str]:
        """
        Delete a task with its comments and file rows.

        Returns:
            Storage paths of the file rows that were removed
        """
        pass

    @abstractmethod
    def list_tasks(self,
                   project_id: Optional[str] = None,
                   status: Optional[TaskStatus] = None,
                   assigned_to: Optional[str] = None,
                   created_by: Optional[str] = None) -> List[Task]:
        """List tasks matching all given filters, newest first."""
        pass

    # Comments

    @abstractmethod
    def add_comment(self, comment: Comment) -> Comment:
        pass

    @abstractmethod
    def get_comment(self, comment_id: str) -> Optional[Comment]:
        pass

    @abstractmethod
    def list_comments(self, task_id: str) -> List[Comment]:
        """Comments of a task, oldest first."""
        pass

    @abstractmethod
    def delete_comment(self, comment_id: str) -> bool:
        pass

    # File rows

    @abstractmethod
    def add_file(self, task_file: TaskFile) -> TaskFile:
        pass

    @abstractmethod
    def list_files(self, task_id: Optional[str] = None, project_id: Optional[str] = None) -> List[TaskFile]:
        """Attachments of a task or project, newest upload first."""
        pass


class InMemoryTaskStore(TaskStore):
    """
    In-memory implementation of the task store.
    Suitable for single-process deployments or testing.
    """

    def __init__(self):
        self._profiles: Dict[str, Profile] = {}
        self._projects: Dict[str, Project] = {}
        self._members: Dict[str, List[str]] = {}
        self._tasks: Dict[str, Task] = {}
        self._comments: Dict[str, Comment] = {}
        self._files: Dict[str, TaskFile] = {}
        self._mutex = threading.RLock()

        logger.info("🗄️ InMemoryTaskStore initialized")

    def get_profile(self, user_id: str) -> Optional[Profile]:
        with self._mutex:
            profile = self._profiles.get(user_id)
            return replace(profile) if profile else None

    def save_profile(self, profile: Profile) -> Profile:
        with self._mutex:
            self._profiles[profile.id] = replace(profile)
            return replace(profile)

    def list_profiles(self) -> List[Profile]:
        with self._mutex:
            return sorted((replace(p) for p in self._profiles.values()), key=lambda p: p.created_at)

    def create_project(self, project: Project) -> Project:
        with self._mutex:
            self._projects[project.id] = replace(project)
            self._members.setdefault(project.id, [])
            return replace(project)

    def get_project(self, project_id: str) -> Optional[Project]:
        with self._mutex:
            project = self._projects.get(project_id)
            return replace(project) if project else None

    def update_project(self, project_id: str, fields: Dict[str, Any]) -> Project:
        check_project_fields(fields)
        with self._mutex:
            project = self._projects.get(project_id)
            if project is None:
                raise RecordNotFoundError(f"Project not found: {project_id}", record_type="project", record_id=project_id)
            updated = replace(project, **fields)
            self._projects[project_id] = updated
            return replace(updated)

    def delete_project(self, project_id: str) -> List[str]:
        with self._mutex:
            paths: List[str] = []
            for task in [t for t in self._tasks.values() if t.project_id == project_id]:
                paths.extend(self.delete_task(task.id))
            # Rows keyed to the project but whose task is already gone
            for f in [f for f in self._files.values() if f.project_id == project_id]:
                paths.append(f.file_path)
                del self._files[f.id]
            self._members.pop(project_id, None)
            self._projects.pop(project_id, None)
            return paths

    def list_projects_for_user(self, user_id: str) -> List[Project]:
        with self._mutex:
            projects = [replace(p) for pid, p in self._projects.items() if user_id in self._members.get(pid, [])]
            return sorted(projects, key=lambda p: p.created_at, reverse=True)

    def add_member(self, project_id: str, user_id: str) -> None:
        with self._mutex:
            if project_id not in self._projects:
                raise RecordNotFoundError(f"Project not found: {project_id}", record_type="project", record_id=project_id)
            members = self._members.setdefault(project_id, [])
            if user_id not in members:
                members.append(user_id)

    def remove_member(self, project_id: str, user_id: str) -> None:
        with self._mutex:
            members = self._members.get(project_id, [])
            if user_id in members:
                members.remove(user_id)

    def list_member_ids(self, project_id: str) -> List[str]:
        with self._mutex:
            return list(self._members.get(project_id, []))

    def create_task(self, task: Task) -> Task:
        with self._mutex:
            self._tasks[task.id] = replace(task)
            return replace(task)

    def fetch_task(self, task_id: str) -> Task:
        with self._mutex:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            return replace(task)

    def update_task_fields(self, task_id: str, fields: Dict[str, Any]) -> Task:
        check_task_fields(fields)
        with self._mutex:
            task = self.fetch_task(task_id)
            updated = replace(task, updated_at=utcnow(), **fields)
            self._tasks[task_id] = updated
            return replace(updated)

    def update_task_status(self, task_id: str, new_status: TaskStatus) -> Task:
        with self._mutex:
            task = self.fetch_task(task_id)
            updated = replace(task, status=new_status, updated_at=utcnow())
            self._tasks[task_id] = updated
            return replace(updated)

    def update_task_status_if(self, task_id: str, expected_status: TaskStatus, new_status: TaskStatus) -> Optional[Task]:
        with self._mutex:
            task = self.fetch_task(task_id)
            if task.status != expected_status:
                return None
            updated = replace(task, status=new_status, updated_at=utcnow())
            self._tasks[task_id] = updated
            return replace(updated)

    def delete_task(self, task_id: str) -> List[str]:
        with self._mutex:
            for comment_id in [c.id for c in self._comments.values() if c.task_id == task_id]:
                del self._comments[comment_id]
            paths = []
            for f in [f for f in self._files.values() if f.task_id == task_id]:
                paths.append(f.file_path)
                del self._files[f.id]
            self._tasks.pop(task_id, None)
            return paths

    def list_tasks(self,
                   project_id: Optional[str] = None,
                   status: Optional[TaskStatus] = None,
                   assigned_to: Optional[str] = None,
                   created_by: Optional[str] = None) -> List[Task]:
        with self._mutex:
            tasks = [
                replace(t) for t in self._tasks.values()
                if (project_id is None or t.project_id == project_id)
                and (status is None or t.status == status)
                and (assigned_to is None or t.assigned_to == assigned_to)
                and (created_by is None or t.created_by == created_by)
            ]
            return sorted(tasks, key=lambda t: t.created_at, reverse=True)

    def add_comment(self, comment: Comment) -> Comment:
        with self._mutex:
            if comment.task_id not in self._tasks:
                raise TaskNotFoundError(comment.task_id)
            self._comments[comment.id] = replace(comment)
            return replace(comment)

    def get_comment(self, comment_id: str) -> Optional[Comment]:
        with self._mutex:
            comment = self._comments.get(comment_id)
            return replace(comment) if comment else None

    def list_comments(self, task_id: str) -> List[Comment]:
        with self._mutex:
            comments = [replace(c) for c in self._comments.values() if c.task_id == task_id]
            return sorted(comments, key=lambda c: c.created_at)

    def delete_comment(self, comment_id: str) -> bool:
        with self._mutex:
            return self._comments.pop(comment_id, None) is not None

    def add_file(self, task_file: TaskFile) -> TaskFile:
        with self._mutex:
            if task_file.task_id not in self._tasks:
                raise TaskNotFoundError(task_file.task_id)
            self._files[task_file.id] = replace(task_file)
            return replace(task_file)

    def list_files(self, task_id: Optional[str] = None, project_id: Optional[str] = None) -> List[TaskFile]:
        with self._mutex:
            files = [
                replace(f) for f in self._files.values()
                if (task_id is None or f.task_id == task_id)
                and (project_id is None or f.project_id == project_id)
            ]
            return sorted(files, key=lambda f: f.uploaded_at, reverse=True)
