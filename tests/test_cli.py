#!/usr/bin/env python3
"""
Tests for the taskflow command line entry point
"""
import os
import subprocess
import sys
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from taskflow.clients.object_storage import InMemoryObjectStorage, S3ObjectStorage
from taskflow.clients.task_store import InMemoryTaskStore, TaskStore
from taskflow.core.exceptions import StoreUnavailableError
from taskflow.core.models import Profile, Project, Task, TaskFile
from taskflow.entry.main import EXIT_DOMAIN_ERROR, EXIT_OK, EXIT_STORE_UNAVAILABLE, build_storage, build_store, main
from taskflow.task_status import TaskStatus
from taskflow.utils.config import ConfigurationManager


@pytest.fixture
def clean_env():
    with patch.dict(os.environ, {"TASKFLOW_STORE": "memory", "LOG_COLORS": "false", "LOG_LEVEL": "ERROR"}, clear=True):
        with patch("taskflow.entry.main.load_dotenv"):
            yield


@pytest.fixture
def store():
    store = InMemoryTaskStore()
    store.save_profile(Profile(id="dev"))
    store.save_profile(Profile(id="lead"))
    store.save_profile(Profile(id="root", is_admin=True))
    project = store.create_project(Project(name="API", created_by="lead"))
    store.add_member(project.id, "dev")
    store.add_member(project.id, "lead")
    store.create_task(Task(project_id=project.id, title="Endpoints", created_by="lead", assigned_to="dev", id="task-1"))
    return store


def test_build_store_memory(clean_env):
    assert isinstance(build_store(ConfigurationManager()), InMemoryTaskStore)


def test_transition(clean_env, store, capsys):
    with patch("taskflow.entry.main.build_store", return_value=store):
        assert main(["transition", "task-1", "in_progress", "--actor", "dev"]) == EXIT_OK

    assert "todo → in_progress" in capsys.readouterr().out
    assert store.fetch_task("task-1").status == TaskStatus.IN_PROGRESS


def test_rejected_transition_exits_with_domain_error(clean_env, store, capsys):
    with patch("taskflow.entry.main.build_store", return_value=store):
        assert main(["transition", "task-1", "in_progress", "--actor", "lead"]) == EXIT_DOMAIN_ERROR
        assert main(["transition", "task-1", "done", "--actor", "root"]) == EXIT_DOMAIN_ERROR

    err = capsys.readouterr().err
    assert "not authorized" in err
    assert "todo → done" in err
    assert store.fetch_task("task-1").status == TaskStatus.TODO


def test_unknown_actor(clean_env, store):
    with patch("taskflow.entry.main.build_store", return_value=store):
        assert main(["allowed", "task-1", "--actor", "ghost"]) == EXIT_DOMAIN_ERROR


def test_store_unavailable_exit_code(clean_env):
    broken = Mock(spec=TaskStore)
    broken.get_profile.side_effect = StoreUnavailableError("connection refused", operation="get_profile")

    with patch("taskflow.entry.main.build_store", return_value=broken):
        assert main(["review-queue", "--actor", "lead"]) == EXIT_STORE_UNAVAILABLE


def test_allowed_and_queues(clean_env, store, capsys):
    with patch("taskflow.entry.main.build_store", return_value=store):
        assert main(["allowed", "task-1", "--actor", "dev"]) == EXIT_OK
        assert "in_progress" in capsys.readouterr().out

        assert main(["my-tasks", "--actor", "dev"]) == EXIT_OK
        assert "Endpoints" in capsys.readouterr().out

        store.update_task_status("task-1", TaskStatus.REVIEW)
        assert main(["review-queue", "--actor", "lead"]) == EXIT_OK
        assert "task-1" in capsys.readouterr().out

        assert main(["review-queue", "--actor", "dev"]) == EXIT_OK
        assert "No tasks." in capsys.readouterr().out


def test_stats(clean_env, store, capsys):
    with patch("taskflow.entry.main.build_store", return_value=store):
        assert main(["stats"]) == EXIT_OK

    rows = dict(line.split() for line in capsys.readouterr().out.splitlines() if len(line.split()) == 2)
    assert rows["todo"] == "1"
    assert rows["review"] == "0"
    assert rows["total"] == "1"


def test_init_db_with_sqlite(clean_env, tmp_path, capsys):
    db_path = tmp_path / "tasks.db"
    with patch.dict(os.environ, {"TASKFLOW_STORE": "sql", "DATABASE_URL": f"sqlite:///{db_path}"}):
        assert main(["init-db"]) == EXIT_OK

    assert db_path.exists()
    assert "Schema ready" in capsys.readouterr().out


def test_config_create(clean_env, tmp_path):
    target = tmp_path / "taskflow.env"

    assert main(["--config-create", str(target)]) == EXIT_OK
    assert "TASKFLOW_STORE=memory" in target.read_text(encoding="utf-8")


def test_config_status(clean_env):
    assert main(["--config-status"]) == EXIT_OK


def test_invalid_environment(clean_env, capsys):
    with patch.dict(os.environ, {"STORE_MAX_RETRIES": "-1"}):
        assert main(["stats"]) == EXIT_DOMAIN_ERROR

    assert "Configuration error" in capsys.readouterr().err


def test_build_storage_memory(clean_env):
    with patch.dict(os.environ, {"STORAGE_BUCKET": "attachments"}):
        storage = build_storage(ConfigurationManager())

    assert isinstance(storage, InMemoryObjectStorage)
    assert storage.bucket == "attachments"


def test_build_storage_s3_uses_configured_endpoint(clean_env):
    env = {
        "TASKFLOW_STORE": "sql",
        "STORAGE_BUCKET": "task-files",
        "STORAGE_ENDPOINT_URL": "https://files.example.com/s3",
        "STORAGE_REGION": "eu-central-1",
    }
    with patch.dict(os.environ, env):
        with patch("taskflow.clients.object_storage.boto3.client") as mock_client:
            storage = build_storage(ConfigurationManager())

    assert isinstance(storage, S3ObjectStorage)
    assert storage.bucket == "task-files"
    mock_client.assert_called_once_with("s3", endpoint_url="https://files.example.com/s3", region_name="eu-central-1")


def test_delete_task_removes_attachment_objects(clean_env, store, capsys):
    storage = InMemoryObjectStorage()
    storage.put("tasks/task-1/spec.pdf", b"%PDF")
    store.add_file(TaskFile(task_id="task-1", project_id=store.fetch_task("task-1").project_id,
                            file_path="tasks/task-1/spec.pdf", file_name="spec.pdf", uploaded_by="dev"))

    with patch("taskflow.entry.main.build_store", return_value=store):
        with patch("taskflow.entry.main.build_storage", return_value=storage):
            assert main(["files", "task-1", "--actor", "dev"]) == EXIT_OK
            assert "memory://memory/tasks/task-1/spec.pdf" in capsys.readouterr().out

            assert main(["delete-task", "task-1", "--actor", "dev"]) == EXIT_DOMAIN_ERROR
            assert main(["delete-task", "task-1", "--actor", "lead"]) == EXIT_OK

    assert "1 attachment(s) removed" in capsys.readouterr().out
    assert storage.keys() == []
    assert store.list_tasks() == []


def test_memory_backend_refuses_actor_commands(clean_env, capsys):
    assert main(["transition", "task-1", "in_progress", "--actor", "dev"]) == EXIT_DOMAIN_ERROR
    assert main(["review-queue", "--actor", "lead"]) == EXIT_DOMAIN_ERROR

    err = capsys.readouterr().err
    assert "only meant for tests" in err
    assert "Profile not found" not in err

    assert main(["stats"]) == EXIT_OK


def test_bad_environment_does_not_break_import(tmp_path):
    env = {k: v for k, v in os.environ.items() if k not in ("TASKFLOW_STORE", "DATABASE_URL", "STORE_MAX_RETRIES")}
    env["LOG_LEVEL"] = "bogus"
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(Path(__file__).resolve().parents[1]), env.get("PYTHONPATH")]))

    result = subprocess.run(
        [sys.executable, "-m", "taskflow.entry.main", "--config-status"],
        cwd=tmp_path, env=env, capture_output=True, text=True, timeout=60,
    )

    assert result.returncode == EXIT_DOMAIN_ERROR
    assert "Configuration error" in result.stderr
    assert "Traceback" not in result.stderr
