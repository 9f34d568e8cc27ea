#!/usr/bin/env python3
"""
Unit tests for TaskOperations
"""
import unittest

from taskflow.clients.object_storage import InMemoryObjectStorage
from taskflow.clients.task_store import InMemoryTaskStore
from taskflow.core.actor import ActorContext, resolve_actor
from taskflow.core.exceptions import PermissionDeniedError, RecordNotFoundError, TaskNotFoundError, ValidationError
from taskflow.core.models import Profile, Project, TaskFile
from taskflow.core.operations.task_operations import TaskOperations
from taskflow.task_status import TaskPriority, TaskStatus


class TestTaskOperations(unittest.TestCase):
    """Test cases for TaskOperations."""

    def setUp(self):
        self.store = InMemoryTaskStore()
        self.storage = InMemoryObjectStorage()
        self.ops = TaskOperations(self.store, self.storage)

        for user_id, is_admin in (("alice", False), ("bob", False), ("carol", False), ("root", True)):
            self.store.save_profile(Profile(id=user_id, is_admin=is_admin))

        self.alice = resolve_actor(self.store, "alice")
        self.bob = resolve_actor(self.store, "bob")
        self.carol = resolve_actor(self.store, "carol")
        self.admin = resolve_actor(self.store, "root")

        self.project = self.store.create_project(Project(name="Mobile app", created_by="alice"))
        self.store.add_member(self.project.id, "alice")
        self.store.add_member(self.project.id, "bob")

    def test_resolve_actor(self):
        self.assertEqual(self.admin, ActorContext("root", is_admin=True))
        with self.assertRaises(RecordNotFoundError):
            resolve_actor(self.store, "nobody")

    def test_create_task_defaults(self):
        task = self.ops.create_task(self.alice, self.project.id, "  Build login  ", tags=["auth", " ui", "auth"])

        self.assertEqual(task.title, "Build login")
        self.assertEqual(task.status, TaskStatus.TODO)
        self.assertEqual(task.priority, TaskPriority.MEDIUM)
        self.assertEqual(task.created_by, "alice")
        self.assertEqual(task.tag, "auth,ui")
        self.assertIsNone(task.assigned_to)

    def test_create_task_with_assignee(self):
        task = self.ops.create_task(self.alice, self.project.id, "API", priority="critical", assigned_to="bob")

        self.assertEqual(task.assigned_to, "bob")
        self.assertEqual(task.priority, TaskPriority.CRITICAL)

    def test_create_task_validation(self):
        with self.assertRaises(ValidationError):
            self.ops.create_task(self.alice, self.project.id, "   ")
        with self.assertRaises(ValidationError):
            self.ops.create_task(self.alice, self.project.id, "x", priority="urgent")
        with self.assertRaises(ValidationError) as ctx:
            self.ops.create_task(self.alice, self.project.id, "x", assigned_to="carol")
        self.assertEqual(ctx.exception.field, "assigned_to")
        with self.assertRaises(RecordNotFoundError):
            self.ops.create_task(self.alice, "missing", "x")

    def test_create_task_requires_membership(self):
        with self.assertRaises(PermissionDeniedError):
            self.ops.create_task(self.carol, self.project.id, "Sneaky")

        task = self.ops.create_task(self.admin, self.project.id, "Admin task")
        self.assertEqual(task.created_by, "root")

    def test_edit_task(self):
        task = self.ops.create_task(self.alice, self.project.id, "Draft")

        edited = self.ops.edit_task(self.alice, task.id, title="Final", priority="high", tags=["a", "b"], assigned_to="bob")

        self.assertEqual(edited.title, "Final")
        self.assertEqual(edited.priority, TaskPriority.HIGH)
        self.assertEqual(edited.tags, ["a", "b"])
        self.assertEqual(edited.assigned_to, "bob")
        self.assertEqual(edited.status, TaskStatus.TODO)

        cleared = self.ops.edit_task(self.admin, task.id, assigned_to=None, description="")
        self.assertIsNone(cleared.assigned_to)
        self.assertIsNone(cleared.description)

    def test_edit_task_permissions_and_fields(self):
        task = self.ops.create_task(self.alice, self.project.id, "Draft", assigned_to="bob")

        with self.assertRaises(PermissionDeniedError):
            self.ops.edit_task(self.bob, task.id, title="Mine now")
        for field_name in ("status", "created_by", "project_id"):
            with self.assertRaises(ValidationError):
                self.ops.edit_task(self.alice, task.id, **{field_name: "x"})
        with self.assertRaises(ValidationError):
            self.ops.edit_task(self.alice, task.id, assigned_to="carol")

    def test_delete_task_removes_objects(self):
        task = self.ops.create_task(self.alice, self.project.id, "With files")
        path = f"tasks/{task.id}/design.pdf"
        self.storage.put(path, b"%PDF")
        self.store.add_file(TaskFile(task_id=task.id, project_id=self.project.id, file_path=path,
                                     file_name="design.pdf", uploaded_by="alice"))

        with self.assertRaises(PermissionDeniedError):
            self.ops.delete_task(self.bob, task.id)

        self.assertEqual(self.ops.delete_task(self.alice, task.id), [path])
        self.assertEqual(self.storage.keys(), [])
        with self.assertRaises(TaskNotFoundError):
            self.ops.get_task(task.id)

    def test_review_queue(self):
        mine = self.ops.create_task(self.alice, self.project.id, "Alice's", assigned_to="bob")
        theirs = self.ops.create_task(self.bob, self.project.id, "Bob's", assigned_to="bob")
        idle = self.ops.create_task(self.alice, self.project.id, "Still todo")
        self.store.update_task_status(mine.id, TaskStatus.REVIEW)
        self.store.update_task_status(theirs.id, TaskStatus.REVIEW)

        self.assertEqual([t.id for t in self.ops.review_queue(self.alice)], [mine.id])
        self.assertEqual({t.id for t in self.ops.review_queue(self.admin)}, {mine.id, theirs.id})
        self.assertNotIn(idle.id, {t.id for t in self.ops.review_queue(self.admin)})

    def test_assigned_tasks(self):
        first = self.ops.create_task(self.alice, self.project.id, "One", assigned_to="bob")
        second = self.ops.create_task(self.alice, self.project.id, "Two", assigned_to="bob")
        self.ops.create_task(self.alice, self.project.id, "Three", assigned_to="alice")
        self.store.update_task_status(second.id, TaskStatus.IN_PROGRESS)

        self.assertEqual({t.id for t in self.ops.assigned_tasks(self.bob)}, {first.id, second.id})
        self.assertEqual([t.id for t in self.ops.assigned_tasks(self.bob, status="in_progress")], [second.id])

    def test_project_tasks(self):
        self.ops.create_task(self.alice, self.project.id, "One")

        self.assertEqual(len(self.ops.project_tasks(self.bob, self.project.id)), 1)
        self.assertEqual(self.ops.project_tasks(self.bob, self.project.id, status=TaskStatus.DONE), [])
        with self.assertRaises(PermissionDeniedError):
            self.ops.project_tasks(self.carol, self.project.id)

    def test_comments(self):
        task = self.ops.create_task(self.alice, self.project.id, "Discuss")

        comment = self.ops.add_comment(self.bob, task.id, "Looks good")
        self.assertEqual(comment.author_id, "bob")
        self.assertEqual([c.content for c in self.ops.list_comments(task.id)], ["Looks good"])

        with self.assertRaises(ValidationError):
            self.ops.add_comment(self.bob, task.id, "  ")
        with self.assertRaises(PermissionDeniedError):
            self.ops.add_comment(self.carol, task.id, "Drive-by")

    def test_delete_comment_permissions(self):
        task = self.ops.create_task(self.alice, self.project.id, "Discuss")
        by_bob = self.ops.add_comment(self.bob, task.id, "one")
        by_bob_too = self.ops.add_comment(self.bob, task.id, "two")

        with self.assertRaises(PermissionDeniedError):
            self.ops.delete_comment(self.alice, by_bob.id)

        self.ops.delete_comment(self.bob, by_bob.id)
        self.ops.delete_comment(self.admin, by_bob_too.id)
        self.assertEqual(self.ops.list_comments(task.id), [])

        with self.assertRaises(RecordNotFoundError):
            self.ops.delete_comment(self.admin, by_bob.id)


if __name__ == "__main__":
    unittest.main()
