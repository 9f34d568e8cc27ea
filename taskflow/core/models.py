"""
Record types shared by the stores, the lifecycle manager and the operations.
"""
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from ..task_status import BusinessRole, ProjectStatus, TaskPriority, TaskStatus
from .exceptions import ValidationError

E = TypeVar("E", bound=Enum)


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every store column holds."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def coerce_enum(enum_cls: Type[E], value: Any, field_name: str) -> E:
    """
    Convert a raw value into a member of ``enum_cls``.

    Raises:
        ValidationError: if the value is not one of the enum's values
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"Invalid {field_name} '{value}'. Expected one of: {allowed}",
            field=field_name,
            value=value,
        )


def split_tags(tag: Optional[str]) -> List[str]:
    if not tag:
        return []
    return [t.strip() for t in tag.split(",") if t.strip()]


def join_tags(tags: Optional[Iterable[str]]) -> Optional[str]:
    """Join tags into the stored comma form; trims, drops duplicates, keeps order."""
    seen: List[str] = []
    for t in tags or []:
        t = t.strip()
        if t and t not in seen:
            seen.append(t)
    return ",".join(seen) or None


@dataclass
class Profile:
    id: str
    full_name: Optional[str] = None
    business_role: BusinessRole = BusinessRole.NONE
    is_admin: bool = False
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Project:
    name: str
    created_by: str
    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    customer: Optional[str] = None
    status: ProjectStatus = ProjectStatus.PLANNED
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class ProjectMember:
    project_id: str
    user_id: str


@dataclass
class Task:
    project_id: str
    title: str
    created_by: str
    id: str = field(default_factory=new_id)
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    tag: Optional[str] = None
    github_branch_url: Optional[str] = None
    assigned_to: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def tags(self) -> List[str]:
        return split_tags(self.tag)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "status": self.status.value,
            "tag": self.tag,
            "github_branch_url": self.github_branch_url,
            "assigned_to": self.assigned_to,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class Comment:
    task_id: str
    author_id: str
    content: str
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class TaskFile:
    task_id: str
    project_id: str
    file_path: str
    file_name: str
    uploaded_by: str
    file_type: Optional[str] = None
    id: str = field(default_factory=new_id)
    uploaded_at: datetime = field(default_factory=utcnow)
