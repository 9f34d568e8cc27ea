"""
Task attachments: object upload plus the file row that points at it.
"""

import re
from typing import List, Optional

from ...clients.object_storage import ObjectStorage
from ...clients.task_store import TaskStore
from ...utils.logging_config import get_logger
from ..actor import ActorContext
from ..exceptions import PermissionDeniedError, StorageError, TaskflowError, ValidationError
from ..models import TaskFile

logger = get_logger(__name__)

_CYRILLIC = "абвгдеёжзийклмнопрстуфхцчшщъыьэюя"
_LATIN = "abvgdeejzijklmnoprstufhzcss_y_eua"
_TRANSLIT = {c: l for c, l in zip(_CYRILLIC, _LATIN)}
_TRANSLIT.update({c.upper(): l.upper() for c, l in zip(_CYRILLIC, _LATIN)})

_UNSAFE = re.compile(r"[^A-Za-z0-9.-]")

DEFAULT_URL_EXPIRY = 3600


def safe_file_name(file_name: str) -> str:
    """Transliterate Cyrillic and replace anything outside ``[A-Za-z0-9.-]`` with ``_``."""
    transliterated = "".join(_TRANSLIT.get(ch, ch) for ch in file_name)
    return _UNSAFE.sub("_", transliterated)


def build_storage_path(task_id: str, file_name: str) -> str:
    return f"tasks/{task_id}/{safe_file_name(file_name)}"


class AttachmentService:
    """Uploads, lists and signs task attachments."""

    def __init__(self, store: TaskStore, storage: ObjectStorage, url_expiry: int = DEFAULT_URL_EXPIRY):
        self.store = store
        self.storage = storage
        self.url_expiry = url_expiry

    def upload(self, actor: ActorContext, task_id: str, file_name: str, data: bytes,
               content_type: Optional[str] = None) -> TaskFile:
        """
        Store ``data`` under the task's prefix and record it.

        The object is written first without overwriting; if the row insert then
        fails the object is removed again so no orphan stays in the bucket.

        Raises:
            ValidationError: on an empty file name
            PermissionDeniedError: if the actor is neither a project member nor an admin
            StorageError: if the object exists or the bucket fails
        """
        if not file_name or not file_name.strip():
            raise ValidationError("file_name must not be blank", field="file_name", value=file_name)

        task = self.store.fetch_task(task_id)
        if not (actor.is_admin or self.store.is_member(task.project_id, actor.user_id)):
            raise PermissionDeniedError(
                f"User {actor.user_id} cannot attach files to task {task_id}",
                action="upload",
                actor_id=actor.user_id,
            )

        path = build_storage_path(task_id, file_name)
        self.storage.put(path, data, content_type=content_type, overwrite=False)

        try:
            row = self.store.add_file(TaskFile(
                task_id=task_id,
                project_id=task.project_id,
                file_path=path,
                file_name=file_name,
                file_type=content_type,
                uploaded_by=actor.user_id,
            ))
        except TaskflowError:
            logger.error(f"❌ Recording {path} failed, removing uploaded object")
            try:
                self.storage.remove([path])
            except StorageError as cleanup_error:
                logger.error(f"❌ Could not remove orphaned object {path}: {cleanup_error}")
            raise

        logger.info(f"📎 Attached '{file_name}' to task {task_id[:8]} as {path}")
        return row

    def list_files(self, task_id: str) -> List[TaskFile]:
        return self.store.list_files(task_id=task_id)

    def project_files(self, project_id: str) -> List[TaskFile]:
        return self.store.list_files(project_id=project_id)

    def download_url(self, task_file: TaskFile, expires_in: Optional[int] = None) -> str:
        return self.storage.signed_url(task_file.file_path, expires_in=expires_in or self.url_expiry)
