#!/usr/bin/env python3
"""
Command line entry point for Taskflow.

Subcommands:
  init-db                             create the database schema
  transition TASK_ID STATUS --actor   move a task through its lifecycle
  allowed TASK_ID --actor             list statuses the actor may move the task to
  review-queue --actor                tasks in review awaiting the actor's decision
  my-tasks --actor [--status]         tasks assigned to the actor
  delete-task TASK_ID --actor         delete a task and its attachment objects
  files TASK_ID --actor               list a task's attachments with download links
  stats [--project]                   task counts per status

The memory backend starts empty on every run, so it only serves init-db,
stats and tests that inject a store.
"""
import argparse
import sys
from typing import List, Optional

from dotenv import load_dotenv

from ..clients.object_storage import InMemoryObjectStorage, ObjectStorage, S3ObjectStorage
from ..clients.sql_task_store import SqlTaskStore
from ..clients.task_store import InMemoryTaskStore, TaskStore
from ..core.actor import resolve_actor
from ..core.exceptions import ConfigurationError, StoreUnavailableError, TaskflowError
from ..core.managers.task_lifecycle_manager import TaskLifecycleManager
from ..core.models import Task
from ..core.operations.task_operations import TaskOperations
from ..core.services.attachment_service import AttachmentService
from ..task_status import TaskStatus
from ..utils.config import ConfigurationManager
from ..utils.logging_config import get_logger, log_key_value, log_section_header, setup_logging

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_DOMAIN_ERROR = 2
EXIT_STORE_UNAVAILABLE = 3

STATUS_CHOICES = [s.value for s in TaskStatus]

# Subcommands that resolve an acting user and so need persisted profiles
ACTOR_COMMANDS = ("transition", "allowed", "review-queue", "my-tasks", "delete-task", "files")


def build_store(config: ConfigurationManager, command: Optional[str] = None) -> TaskStore:
    """
    Create the store selected by configuration.

    Raises:
        ConfigurationError: if ``command`` needs an actor and the backend is memory
    """
    if config.get_store_backend() == "memory":
        if command in ACTOR_COMMANDS:
            raise ConfigurationError(
                f"'{command}' needs persisted users; the memory backend starts empty on every run "
                f"and is only meant for tests. Set TASKFLOW_STORE=sql.",
                error_code="MEMORY_BACKEND",
            )
        return InMemoryTaskStore()
    return SqlTaskStore(config.get_database_url(), max_retries=config.get_store_max_retries())


def build_storage(config: ConfigurationManager) -> ObjectStorage:
    """Create the attachment storage that matches the configured backend."""
    if config.get_store_backend() == "memory":
        return InMemoryObjectStorage(config.get_storage_bucket())
    return S3ObjectStorage(
        config.get_storage_bucket(),
        endpoint_url=config.get_storage_endpoint_url(),
        region_name=config.get_storage_region(),
    )


def _print_tasks(tasks: List[Task]) -> None:
    if not tasks:
        print("No tasks.")
        return
    for task in tasks:
        print(f"{task.id}  [{task.status.value:<11}] {task.priority.value:<8} {task.title}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskflow",
        description="Project and task lifecycle management",
        epilog="Examples:\n"
               "  taskflow init-db\n"
               "  taskflow transition <task-id> review --actor <user-id>\n"
               "  taskflow review-queue --actor <user-id>\n"
               "  taskflow --config-status",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config-status", action="store_true", help="Show the effective configuration and exit")
    parser.add_argument("--config-create", metavar="PATH", help="Write a .env configuration template to PATH and exit")

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("init-db", help="Create the database schema")

    p = sub.add_parser("transition", help="Move a task to another status")
    p.add_argument("task_id")
    p.add_argument("status", choices=STATUS_CHOICES)
    p.add_argument("--actor", required=True, help="User id of the acting user")

    p = sub.add_parser("allowed", help="List statuses the actor may move a task to")
    p.add_argument("task_id")
    p.add_argument("--actor", required=True)

    p = sub.add_parser("review-queue", help="Tasks in review awaiting the actor's decision")
    p.add_argument("--actor", required=True)

    p = sub.add_parser("my-tasks", help="Tasks assigned to the actor")
    p.add_argument("--actor", required=True)
    p.add_argument("--status", choices=STATUS_CHOICES)

    p = sub.add_parser("delete-task", help="Delete a task with its comments and attachments")
    p.add_argument("task_id")
    p.add_argument("--actor", required=True)

    p = sub.add_parser("files", help="List a task's attachments with signed download links")
    p.add_argument("task_id")
    p.add_argument("--actor", required=True)

    p = sub.add_parser("stats", help="Task counts per status")
    p.add_argument("--project", help="Limit to one project id")

    return parser


def _show_config(config: ConfigurationManager) -> None:
    log_section_header(logger, "TASKFLOW CONFIGURATION")
    for key, value in config.get_all_config().items():
        log_key_value(logger, key, str(value))
    log_key_value(logger, "valid", str(config.validate_config()))


def run_command(args: argparse.Namespace, config: ConfigurationManager, store: Optional[TaskStore] = None,
                storage: Optional[ObjectStorage] = None) -> int:
    if store is None:
        store = build_store(config, args.command)

    if args.command == "init-db":
        if not isinstance(store, SqlTaskStore):
            print("Memory backend has no schema to create.")
            return EXIT_OK
        store.init_schema()
        print(f"Schema ready at {store.engine.url.render_as_string(hide_password=True)}")
        return EXIT_OK

    if args.command == "stats":
        tasks = store.list_tasks(project_id=args.project)
        for status in TaskStatus:
            print(f"{status.value:<12} {sum(1 for t in tasks if t.status == status)}")
        print(f"{'total':<12} {len(tasks)}")
        return EXIT_OK

    actor = resolve_actor(store, args.actor)

    if args.command == "transition":
        manager = TaskLifecycleManager(store)
        result = manager.transition(args.task_id, actor, args.status)
        print(f"{result.task_id}: {result.from_status} → {result.to_status}")
        return EXIT_OK

    if args.command == "allowed":
        manager = TaskLifecycleManager(store)
        targets = manager.allowed_targets(args.task_id, actor)
        print(", ".join(t.value for t in targets) if targets else "No transitions available.")
        return EXIT_OK

    if storage is None:
        storage = build_storage(config)

    if args.command == "files":
        attachments = AttachmentService(store, storage)
        store.fetch_task(args.task_id)
        files = attachments.list_files(args.task_id)
        if not files:
            print("No files.")
        for task_file in files:
            print(f"{task_file.file_name}  {attachments.download_url(task_file)}")
        return EXIT_OK

    operations = TaskOperations(store, storage)
    if args.command == "delete-task":
        paths = operations.delete_task(actor, args.task_id)
        print(f"Deleted task {args.task_id} ({len(paths)} attachment(s) removed)")
    elif args.command == "review-queue":
        _print_tasks(operations.review_queue(actor))
    elif args.command == "my-tasks":
        _print_tasks(operations.assigned_tasks(actor, status=args.status))
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = ConfigurationManager()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_DOMAIN_ERROR

    setup_logging(level=config.get_log_level(), use_colors=config.get_use_colors())

    if args.config_create:
        path = config.create_config_template(args.config_create)
        print(f"✅ Created configuration template: {path}")
        return EXIT_OK

    if args.config_status:
        _show_config(config)
        return EXIT_OK

    if not args.command:
        parser.print_help()
        return EXIT_OK

    try:
        return run_command(args, config)
    except StoreUnavailableError as e:
        logger.error(f"❌ {e.message}")
        print(f"Store unavailable: {e.message}", file=sys.stderr)
        return EXIT_STORE_UNAVAILABLE
    except TaskflowError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_DOMAIN_ERROR


if __name__ == "__main__":
    sys.exit(main())
