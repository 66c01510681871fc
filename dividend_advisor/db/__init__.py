"""
SQLite persistence: connection management, schema DDL, repositories, and the
``SqliteStore`` that fills the pipeline's collaborator roles.
"""
