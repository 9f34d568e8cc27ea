"""
SQLAlchemy implementation of the task store.

Works against SQLite locally and the hosted Postgres in production. The
conditional status write is a single UPDATE guarded by the expected status,
so two racing transitions cannot both apply.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, String, Text, UniqueConstraint,
    create_engine, delete, select, update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.exceptions import RecordNotFoundError, StoreUnavailableError, TaskNotFoundError, ValidationError
from ..core.models import Comment, Profile, Project, Task, TaskFile, new_id, utcnow
from ..task_status import BusinessRole, ProjectStatus, TaskPriority, TaskStatus
from ..utils.logging_config import get_logger
from ..utils.retry_decorator import retry_with_backoff
from .task_store import TaskStore, check_project_fields, check_task_fields

logger = get_logger(__name__)

Base = declarative_base()


class ProfileRow(Base):
    __tablename__ = "profiles"
    id = Column(String(36), primary_key=True)
    full_name = Column(String(255), nullable=True)
    business_role = Column(String(32), nullable=False, default=BusinessRole.NONE.value)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ProjectRow(Base):
    __tablename__ = "projects"
    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    customer = Column(String(255), nullable=True)
    created_by = Column(String(36), nullable=False)
    status = Column(String(32), nullable=False, default=ProjectStatus.PLANNED.value)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ProjectMemberRow(Base):
    __tablename__ = "project_members"
    id = Column(String(36), primary_key=True)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_user"),)


class TaskRow(Base):
    __tablename__ = "tasks"
    id = Column(String(36), primary_key=True)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(String(16), nullable=False, default=TaskPriority.MEDIUM.value)
    status = Column(String(16), nullable=False, default=TaskStatus.TODO.value, index=True)
    tag = Column(Text, nullable=True)
    github_branch_url = Column(String(512), nullable=True)
    assigned_to = Column(String(36), nullable=True, index=True)
    created_by = Column(String(36), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


class CommentRow(Base):
    __tablename__ = "comments"
    id = Column(String(36), primary_key=True)
    task_id = Column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
    author_id = Column(String(36), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class TaskFileRow(Base):
    __tablename__ = "task_files"
    id = Column(String(36), primary_key=True)
    task_id = Column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
    project_id = Column(String(36), nullable=False, index=True)
    file_path = Column(String(1024), nullable=False)
    file_name = Column(String(512), nullable=False)
    file_type = Column(String(255), nullable=True)
    uploaded_by = Column(String(36), nullable=False)
    uploaded_at = Column(DateTime, nullable=False, default=utcnow)


def _to_profile(row: ProfileRow) -> Profile:
    return Profile(
        id=row.id,
        full_name=row.full_name,
        business_role=BusinessRole(row.business_role),
        is_admin=bool(row.is_admin),
        created_at=row.created_at,
    )


def _to_project(row: ProjectRow) -> Project:
    return Project(
        id=row.id,
        name=row.name,
        description=row.description,
        start_date=row.start_date,
        end_date=row.end_date,
        customer=row.customer,
        created_by=row.created_by,
        status=ProjectStatus(row.status),
        created_at=row.created_at,
    )


def _to_task(row: TaskRow) -> Task:
    return Task(
        id=row.id,
        project_id=row.project_id,
        title=row.title,
        description=row.description,
        priority=TaskPriority(row.priority),
        status=TaskStatus(row.status),
        tag=row.tag,
        github_branch_url=row.github_branch_url,
        assigned_to=row.assigned_to,
        created_by=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_comment(row: CommentRow) -> Comment:
    return Comment(id=row.id, task_id=row.task_id, author_id=row.author_id, content=row.content, created_at=row.created_at)


def _to_file(row: TaskFileRow) -> TaskFile:
    return TaskFile(
        id=row.id,
        task_id=row.task_id,
        project_id=row.project_id,
        file_path=row.file_path,
        file_name=row.file_name,
        file_type=row.file_type,
        uploaded_by=row.uploaded_by,
        uploaded_at=row.uploaded_at,
    )


def _plain(value: Any) -> Any:
    """Enum members are stored by value."""
    return getattr(value, "value", value)


def create_store_engine(database_url: str, echo: bool = False):
    kwargs: Dict[str, Any] = {"pool_pre_ping": True, "future": True, "echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # Single shared connection, otherwise each session sees an empty database
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


class SqlTaskStore(TaskStore):
    """
    Task store backed by a SQL database through SQLAlchemy.

    Driver and connection failures surface as StoreUnavailableError. Reads are
    retried with exponential backoff; writes are not, so a lost acknowledgement
    never turns into a second write.
    """

    def __init__(self, database_url: str, max_retries: int = 3, retry_base_delay: float = 0.5,
                 create_schema: bool = False, echo: bool = False):
        self.database_url = database_url
        self.engine = create_store_engine(database_url, echo=echo)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False, future=True)
        self._read_retry = retry_with_backoff(
            max_retries=max_retries,
            base_delay=retry_base_delay,
            max_delay=10.0,
            retryable_exceptions=(StoreUnavailableError,),
            non_retryable_exceptions=(RecordNotFoundError, ValidationError),
        )

        if create_schema:
            self.init_schema()

        logger.info(f"🗄️ SqlTaskStore initialized ({self.engine.url.get_backend_name()})")

    def init_schema(self) -> None:
        """Create all tables that do not exist yet."""
        with self._translate_errors("init_schema"):
            Base.metadata.create_all(self.engine)
        logger.info("✅ Database schema ready")

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError as e:
            logger.warning(f"⚠️ Integrity error during {operation}: {e.orig}")
            raise ValidationError(f"Store rejected {operation}: {e.orig}") from e
        except SQLAlchemyError as e:
            logger.error(f"❌ Store failure during {operation}: {e}")
            raise StoreUnavailableError(f"Store unavailable during {operation}: {e}", operation=operation) from e

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        with self._translate_errors(operation):
            with self.SessionLocal() as session:
                try:
                    yield session
                    session.commit()
                except Exception:
                    session.rollback()
                    raise

    def _read(self, fn, *args, **kwargs):
        return self._read_retry(fn)(*args, **kwargs)

    # Profiles

    def get_profile(self, user_id: str) -> Optional[Profile]:
        return self._read(self._get_profile, user_id)

    def _get_profile(self, user_id: str) -> Optional[Profile]:
        with self._session("get_profile") as s:
            row = s.get(ProfileRow, user_id)
            return _to_profile(row) if row else None

    def save_profile(self, profile: Profile) -> Profile:
        with self._session("save_profile") as s:
            row = s.get(ProfileRow, profile.id)
            if row is None:
                row = ProfileRow(id=profile.id, created_at=profile.created_at)
                s.add(row)
            row.full_name = profile.full_name
            row.business_role = _plain(profile.business_role)
            row.is_admin = profile.is_admin
            s.flush()
            return _to_profile(row)

    def list_profiles(self) -> List[Profile]:
        return self._read(self._list_profiles)

    def _list_profiles(self) -> List[Profile]:
        with self._session("list_profiles") as s:
            rows = s.execute(select(ProfileRow).order_by(ProfileRow.created_at)).scalars().all()
            return [_to_profile(r) for r in rows]

    # Projects and membership

    def create_project(self, project: Project) -> Project:
        with self._session("create_project") as s:
            row = ProjectRow(
                id=project.id,
                name=project.name,
                description=project.description,
                start_date=project.start_date,
                end_date=project.end_date,
                customer=project.customer,
                created_by=project.created_by,
                status=_plain(project.status),
                created_at=project.created_at,
            )
            s.add(row)
            s.flush()
            return _to_project(row)

    def get_project(self, project_id: str) -> Optional[Project]:
        return self._read(self._get_project, project_id)

    def _get_project(self, project_id: str) -> Optional[Project]:
        with self._session("get_project") as s:
            row = s.get(ProjectRow, project_id)
            return _to_project(row) if row else None

    def update_project(self, project_id: str, fields: Dict[str, Any]) -> Project:
        check_project_fields(fields)
        with self._session("update_project") as s:
            row = s.get(ProjectRow, project_id)
            if row is None:
                raise RecordNotFoundError(f"Project not found: {project_id}", record_type="project", record_id=project_id)
            for key, value in fields.items():
                setattr(row, key, _plain(value))
            s.flush()
            return _to_project(row)

    def delete_project(self, project_id: str) -> List[str]:
        with self._session("delete_project") as s:
            task_ids = select(TaskRow.id).where(TaskRow.project_id == project_id)
            paths = s.execute(
                select(TaskFileRow.file_path).where(
                    (TaskFileRow.project_id == project_id) | TaskFileRow.task_id.in_(task_ids)
                )
            ).scalars().all()
            s.execute(delete(CommentRow).where(CommentRow.task_id.in_(task_ids)).execution_options(synchronize_session=False))
            s.execute(delete(TaskFileRow).where(
                (TaskFileRow.project_id == project_id) | TaskFileRow.task_id.in_(task_ids)
            ).execution_options(synchronize_session=False))
            s.execute(delete(TaskRow).where(TaskRow.project_id == project_id).execution_options(synchronize_session=False))
            s.execute(delete(ProjectMemberRow).where(ProjectMemberRow.project_id == project_id).execution_options(synchronize_session=False))
            s.execute(delete(ProjectRow).where(ProjectRow.id == project_id).execution_options(synchronize_session=False))
            return list(paths)

    def list_projects_for_user(self, user_id: str) -> List[Project]:
        return self._read(self._list_projects_for_user, user_id)

    def _list_projects_for_user(self, user_id: str) -> List[Project]:
        with self._session("list_projects_for_user") as s:
            rows = s.execute(
                select(ProjectRow)
                .join(ProjectMemberRow, ProjectMemberRow.project_id == ProjectRow.id)
                .where(ProjectMemberRow.user_id == user_id)
                .order_by(ProjectRow.created_at.desc())
            ).scalars().all()
            return [_to_project(r) for r in rows]

    def add_member(self, project_id: str, user_id: str) -> None:
        with self._session("add_member") as s:
            if s.get(ProjectRow, project_id) is None:
                raise RecordNotFoundError(f"Project not found: {project_id}", record_type="project", record_id=project_id)
            exists = s.execute(
                select(ProjectMemberRow.id).where(
                    ProjectMemberRow.project_id == project_id, ProjectMemberRow.user_id == user_id
                )
            ).first()
            if not exists:
                s.add(ProjectMemberRow(id=new_id(), project_id=project_id, user_id=user_id))

    def remove_member(self, project_id: str, user_id: str) -> None:
        with self._session("remove_member") as s:
            s.execute(
                delete(ProjectMemberRow)
                .where(ProjectMemberRow.project_id == project_id, ProjectMemberRow.user_id == user_id)
                .execution_options(synchronize_session=False)
            )

    def list_member_ids(self, project_id: str) -> List[str]:
        return self._read(self._list_member_ids, project_id)

    def _list_member_ids(self, project_id: str) -> List[str]:
        with self._session("list_member_ids") as s:
            return list(s.execute(
                select(ProjectMemberRow.user_id).where(ProjectMemberRow.project_id == project_id)
            ).scalars().all())

    # Tasks

    def create_task(self, task: Task) -> Task:
        with self._session("create_task") as s:
            row = TaskRow(
                id=task.id,
                project_id=task.project_id,
                title=task.title,
                description=task.description,
                priority=_plain(task.priority),
                status=_plain(task.status),
                tag=task.tag,
                github_branch_url=task.github_branch_url,
                assigned_to=task.assigned_to,
                created_by=task.created_by,
                created_at=task.created_at,
                updated_at=task.updated_at,
            )
            s.add(row)
            s.flush()
            return _to_task(row)

    def fetch_task(self, task_id: str) -> Task:
        return self._read(self._fetch_task, task_id)

    def _fetch_task(self, task_id: str) -> Task:
        with self._session("fetch_task") as s:
            row = s.get(TaskRow, task_id)
            if row is None:
                raise TaskNotFoundError(task_id)
            return _to_task(row)

    def update_task_fields(self, task_id: str, fields: Dict[str, Any]) -> Task:
        check_task_fields(fields)
        with self._session("update_task_fields") as s:
            row = s.get(TaskRow, task_id)
            if row is None:
                raise TaskNotFoundError(task_id)
            for key, value in fields.items():
                setattr(row, key, _plain(value))
            row.updated_at = utcnow()
            s.flush()
            return _to_task(row)

    def update_task_status(self, task_id: str, new_status: TaskStatus) -> Task:
        with self._session("update_task_status") as s:
            result = s.execute(
                update(TaskRow)
                .where(TaskRow.id == task_id)
                .values(status=_plain(new_status), updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise TaskNotFoundError(task_id)
            return _to_task(s.get(TaskRow, task_id))

    def update_task_status_if(self, task_id: str, expected_status: TaskStatus, new_status: TaskStatus) -> Optional[Task]:
        with self._session("update_task_status_if") as s:
            result = s.execute(
                update(TaskRow)
                .where(TaskRow.id == task_id, TaskRow.status == _plain(expected_status))
                .values(status=_plain(new_status), updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            row = s.get(TaskRow, task_id)
            if row is None:
                raise TaskNotFoundError(task_id)
            if result.rowcount == 0:
                logger.debug(f"Conditional write skipped for task {task_id[:8]}: status is '{row.status}'")
                return None
            return _to_task(row)

    def delete_task(self, task_id: str) -> List[str]:
        with self._session("delete_task") as s:
            paths = s.execute(select(TaskFileRow.file_path).where(TaskFileRow.task_id == task_id)).scalars().all()
            s.execute(delete(CommentRow).where(CommentRow.task_id == task_id).execution_options(synchronize_session=False))
            s.execute(delete(TaskFileRow).where(TaskFileRow.task_id == task_id).execution_options(synchronize_session=False))
            s.execute(delete(TaskRow).where(TaskRow.id == task_id).execution_options(synchronize_session=False))
            return list(paths)

    def list_tasks(self,
                   project_id: Optional[str] = None,
                   status: Optional[TaskStatus] = None,
                   assigned_to: Optional[str] = None,
                   created_by: Optional[str] = None) -> List[Task]:
        return self._read(self._list_tasks, project_id, status, assigned_to, created_by)

    def _list_tasks(self, project_id, status, assigned_to, created_by) -> List[Task]:
        query = select(TaskRow)
        if project_id is not None:
            query = query.where(TaskRow.project_id == project_id)
        if status is not None:
            query = query.where(TaskRow.status == _plain(status))
        if assigned_to is not None:
            query = query.where(TaskRow.assigned_to == assigned_to)
        if created_by is not None:
            query = query.where(TaskRow.created_by == created_by)
        with self._session("list_tasks") as s:
            rows = s.execute(query.order_by(TaskRow.created_at.desc())).scalars().all()
            return [_to_task(r) for r in rows]

    # Comments

    def add_comment(self, comment: Comment) -> Comment:
        with self._session("add_comment") as s:
            if s.get(TaskRow, comment.task_id) is None:
                raise TaskNotFoundError(comment.task_id)
            row = CommentRow(
                id=comment.id,
                task_id=comment.task_id,
                author_id=comment.author_id,
                content=comment.content,
                created_at=comment.created_at,
            )
            s.add(row)
            s.flush()
            return _to_comment(row)

    def get_comment(self, comment_id: str) -> Optional[Comment]:
        return self._read(self._get_comment, comment_id)

    def _get_comment(self, comment_id: str) -> Optional[Comment]:
        with self._session("get_comment") as s:
            row = s.get(CommentRow, comment_id)
            return _to_comment(row) if row else None

    def list_comments(self, task_id: str) -> List[Comment]:
        return self._read(self._list_comments, task_id)

    def _list_comments(self, task_id: str) -> List[Comment]:
        with self._session("list_comments") as s:
            rows = s.execute(
                select(CommentRow).where(CommentRow.task_id == task_id).order_by(CommentRow.created_at.asc())
            ).scalars().all()
            return [_to_comment(r) for r in rows]

    def delete_comment(self, comment_id: str) -> bool:
        with self._session("delete_comment") as s:
            result = s.execute(
                delete(CommentRow).where(CommentRow.id == comment_id).execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    # File rows

    def add_file(self, task_file: TaskFile) -> TaskFile:
        with self._session("add_file") as s:
            if s.get(TaskRow, task_file.task_id) is None:
                raise TaskNotFoundError(task_file.task_id)
            row = TaskFileRow(
                id=task_file.id,
                task_id=task_file.task_id,
                project_id=task_file.project_id,
                file_path=task_file.file_path,
                file_name=task_file.file_name,
                file_type=task_file.file_type,
                uploaded_by=task_file.uploaded_by,
                uploaded_at=task_file.uploaded_at,
            )
            s.add(row)
            s.flush()
            return _to_file(row)

    def list_files(self, task_id: Optional[str] = None, project_id: Optional[str] = None) -> List[TaskFile]:
        return self._read(self._list_files, task_id, project_id)

    def _list_files(self, task_id: Optional[str], project_id: Optional[str]) -> List[TaskFile]:
        query = select(TaskFileRow)
        if task_id is not None:
            query = query.where(TaskFileRow.task_id == task_id)
        if project_id is not None:
            query = query.where(TaskFileRow.project_id == project_id)
        with self._session("list_files") as s:
            rows = s.execute(query.order_by(TaskFileRow.uploaded_at.desc())).scalars().all()
            return [_to_file(r) for r in rows]
