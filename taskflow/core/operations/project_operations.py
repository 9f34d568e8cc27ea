"""
Project, membership and team administration operations.
"""

from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from ...clients.object_storage import ObjectStorage
from ...clients.task_store import TaskStore
from ...task_status import BusinessRole, ProjectStatus
from ...utils.logging_config import get_logger
from ..actor import ActorContext
from ..exceptions import PermissionDeniedError, RecordNotFoundError, ValidationError
from ..models import Profile, Project, coerce_enum

logger = get_logger(__name__)

EDITABLE_PROJECT_FIELDS = ("name", "description", "start_date", "end_date", "customer", "status")


def _require_admin(actor: ActorContext, action: str) -> None:
    if not actor.is_admin:
        raise PermissionDeniedError(f"Only an admin may {action}", action=action, actor_id=actor.user_id)


def _check_dates(start_date: Optional[date], end_date: Optional[date]) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValidationError("end_date must not be before start_date", field="end_date", value=end_date)


class ProjectOperations:
    """Projects and their members."""

    def __init__(self, store: TaskStore, storage: Optional[ObjectStorage] = None):
        self.store = store
        self.storage = storage

    def get_project(self, project_id: str) -> Project:
        project = self.store.get_project(project_id)
        if project is None:
            raise RecordNotFoundError(f"Project not found: {project_id}", record_type="project", record_id=project_id)
        return project

    def create_project(self,
                       actor: ActorContext,
                       name: str,
                       description: Optional[str] = None,
                       start_date: Optional[date] = None,
                       end_date: Optional[date] = None,
                       customer: Optional[str] = None,
                       status: Any = ProjectStatus.PLANNED,
                       member_ids: Optional[Iterable[str]] = None) -> Project:
        """Create a project; the creator is always one of its members."""
        if not name or not name.strip():
            raise ValidationError("name must not be blank", field="name", value=name)
        _check_dates(start_date, end_date)

        project = self.store.create_project(Project(
            name=name.strip(),
            description=description or None,
            start_date=start_date,
            end_date=end_date,
            customer=customer or None,
            status=coerce_enum(ProjectStatus, status or ProjectStatus.PLANNED, "status"),
            created_by=actor.user_id,
        ))

        members = [actor.user_id] + [m for m in (member_ids or []) if m and m != actor.user_id]
        for user_id in members:
            self.store.add_member(project.id, user_id)

        logger.info(f"✅ Project created: '{project.name}' ({project.id[:8]}) with {len(set(members))} member(s)")
        return project

    def update_project(self, actor: ActorContext, project_id: str, **fields: Any) -> Project:
        _require_admin(actor, "edit projects")
        unknown = sorted(set(fields) - set(EDITABLE_PROJECT_FIELDS))
        if unknown:
            raise ValidationError(f"Field '{unknown[0]}' cannot be edited", field=unknown[0], value=fields[unknown[0]])

        project = self.get_project(project_id)
        changes: Dict[str, Any] = dict(fields)
        if "name" in changes:
            if not changes["name"] or not str(changes["name"]).strip():
                raise ValidationError("name must not be blank", field="name", value=changes["name"])
            changes["name"] = str(changes["name"]).strip()
        if "status" in changes:
            changes["status"] = coerce_enum(ProjectStatus, changes["status"], "status")
        _check_dates(changes.get("start_date", project.start_date), changes.get("end_date", project.end_date))

        updated = self.store.update_project(project_id, changes)
        logger.info(f"✏️ Project {project_id[:8]} updated: {', '.join(sorted(changes)) or 'no changes'}")
        return updated

    def set_members(self, actor: ActorContext, project_id: str, member_ids: Iterable[str]) -> List[str]:
        """
        Replace the member list of a project.

        Returns:
            The resulting member ids
        """
        _require_admin(actor, "change project members")
        self.get_project(project_id)

        wanted = []
        for user_id in member_ids:
            if user_id and user_id not in wanted:
                wanted.append(user_id)
        current = self.store.list_member_ids(project_id)

        to_add = [u for u in wanted if u not in current]
        to_remove = [u for u in current if u not in wanted]
        for user_id in to_add:
            self.store.add_member(project_id, user_id)
        for user_id in to_remove:
            self._drop_member(project_id, user_id)

        logger.info(f"👥 Members of project {project_id[:8]}: +{len(to_add)} -{len(to_remove)}")
        return self.store.list_member_ids(project_id)

    def add_member(self, actor: ActorContext, project_id: str, user_id: str) -> None:
        project = self.get_project(project_id)
        if not (actor.is_admin or project.created_by == actor.user_id):
            raise PermissionDeniedError(
                "Only the project creator or an admin may add members",
                action="add_member",
                actor_id=actor.user_id,
            )
        if self.store.get_profile(user_id) is None:
            raise RecordNotFoundError(f"Profile not found: {user_id}", record_type="profile", record_id=user_id)
        self.store.add_member(project_id, user_id)
        logger.info(f"👥 User {user_id[:8]} added to project {project_id[:8]}")

    def remove_member(self, actor: ActorContext, project_id: str, user_id: str) -> List[str]:
        """Remove one member. Returns the ids of tasks that lost their assignee."""
        project = self.get_project(project_id)
        if not (actor.is_admin or project.created_by == actor.user_id):
            raise PermissionDeniedError(
                "Only the project creator or an admin may remove members",
                action="remove_member",
                actor_id=actor.user_id,
            )
        if user_id not in self.store.list_member_ids(project_id):
            raise RecordNotFoundError(
                f"User {user_id} is not a member of project {project_id}",
                record_type="project_member",
                record_id=user_id,
            )
        unassigned = self._drop_member(project_id, user_id)
        logger.info(f"👥 User {user_id[:8]} removed from project {project_id[:8]}")
        return unassigned

    def _drop_member(self, project_id: str, user_id: str) -> List[str]:
        # An assignee must stay a project member, so their tasks go back to unassigned
        unassigned = []
        for task in self.store.list_tasks(project_id=project_id, assigned_to=user_id):
            self.store.update_task_fields(task.id, {"assigned_to": None})
            unassigned.append(task.id)
        self.store.remove_member(project_id, user_id)
        if unassigned:
            logger.info(f"↩️ Unassigned {len(unassigned)} task(s) of {user_id[:8]} in project {project_id[:8]}")
        return unassigned

    def list_members(self, project_id: str) -> List[Profile]:
        self.get_project(project_id)
        profiles = []
        for user_id in self.store.list_member_ids(project_id):
            profile = self.store.get_profile(user_id)
            if profile is not None:
                profiles.append(profile)
        return profiles

    def delete_project(self, actor: ActorContext, project_id: str) -> List[str]:
        """Delete a project with everything in it. Returns the removed storage paths."""
        project = self.get_project(project_id)
        if not (actor.is_admin or project.created_by == actor.user_id):
            raise PermissionDeniedError(
                "Only the project creator or an admin may delete a project",
                action="delete_project",
                actor_id=actor.user_id,
            )

        paths = self.store.delete_project(project_id)
        if paths and self.storage is not None:
            self.storage.remove(paths)

        logger.info(f"🗑️ Project {project_id[:8]} deleted ({len(paths)} attachment(s) removed)")
        return paths

    def projects_for(self, actor: ActorContext) -> List[Project]:
        return self.store.list_projects_for_user(actor.user_id)


class TeamOperations:
    """Admin-only management of user profiles."""

    def __init__(self, store: TaskStore):
        self.store = store

    def _profile(self, user_id: str) -> Profile:
        profile = self.store.get_profile(user_id)
        if profile is None:
            raise RecordNotFoundError(f"Profile not found: {user_id}", record_type="profile", record_id=user_id)
        return profile

    def list_profiles(self, actor: ActorContext) -> List[Profile]:
        _require_admin(actor, "view the team")
        return self.store.list_profiles()

    def set_admin(self, actor: ActorContext, user_id: str, is_admin: bool) -> Profile:
        _require_admin(actor, "change admin rights")
        if not isinstance(is_admin, bool):
            raise ValidationError("is_admin must be a boolean", field="is_admin", value=is_admin)
        if user_id == actor.user_id and not is_admin:
            raise ValidationError("Admins cannot revoke their own admin rights", field="is_admin", value=is_admin)

        profile = self._profile(user_id)
        profile.is_admin = is_admin
        saved = self.store.save_profile(profile)
        logger.info(f"🔑 Admin rights {'granted to' if is_admin else 'revoked from'} {user_id[:8]}")
        return saved

    def set_business_role(self, actor: ActorContext, user_id: str, role: Any) -> Profile:
        _require_admin(actor, "change business roles")
        profile = self._profile(user_id)
        profile.business_role = coerce_enum(BusinessRole, role, "business_role")
        saved = self.store.save_profile(profile)
        logger.info(f"🏷️ Business role of {user_id[:8]} set to {saved.business_role.value}")
        return saved
