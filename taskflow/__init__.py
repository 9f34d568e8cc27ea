"""
Taskflow - project and task lifecycle management

Taskflow keeps projects, tasks, comments and attachments in a SQL database and
S3-compatible object storage, and enforces who may move a task between
todo, in progress, review and done.
"""

__version__ = "0.1.0"
__author__ = "Taskflow Development Team"
__license__ = "MIT"

# Package metadata
__title__ = "taskflow"
__description__ = "Taskflow: project and task tracking with a server-side task lifecycle"

from .core.actor import ActorContext, resolve_actor
from .core.managers.task_lifecycle_manager import (
    TaskLifecycleManager,
    check_transition,
    is_valid_transition,
    permitted_targets,
    request_transition,
)
from .task_status import TaskStatus

# Define public API
__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "ActorContext",
    "resolve_actor",
    "TaskLifecycleManager",
    "TaskStatus",
    "check_transition",
    "is_valid_transition",
    "permitted_targets",
    "request_transition",
]
