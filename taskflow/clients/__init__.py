"""
Persistence clients.

- task_store: store interface and in-memory implementation
- sql_task_store: SQLAlchemy implementation
- object_storage: S3-compatible attachment storage
"""
