import os
import sqlite3
from urllib.parse import urlparse

import psycopg2
import psycopg2.extras

SCHEMA_SQLITE = """
CREATE TABLE IF NOT EXISTS installed_packages (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    version TEXT NOT NULL,
    package_type TEXT NOT NULL,
    manifest_url TEXT,
    manifest_data TEXT,
    status TEXT NOT NULL,
    error_message TEXT,
    installed_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    frontend_config TEXT,
    has_window BOOLEAN DEFAULT 0
);

CREATE TABLE IF NOT EXISTS package_tasks (
    id TEXT PRIMARY KEY,
    package_id TEXT NOT NULL,
    task_type TEXT NOT NULL,
    status TEXT NOT NULL,
    progress INTEGER DEFAULT 0,
    total_steps INTEGER DEFAULT 0,
    current_step TEXT,
    error_message TEXT,
    started_at TEXT,
    completed_at TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS package_files (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    package_id TEXT NOT NULL,
    path TEXT NOT NULL,
    file_type TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS app_translations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    package_id TEXT NOT NULL,
    locale TEXT NOT NULL,
    translations TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(package_id, locale)
);

CREATE INDEX IF NOT EXISTS idx_package_tasks_package ON package_tasks(package_id);
CREATE INDEX IF NOT EXISTS idx_package_files_package ON package_files(package_id);
"""

SCHEMA_POSTGRES = """
CREATE TABLE IF NOT EXISTS installed_packages (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    version TEXT NOT NULL,
    package_type TEXT NOT NULL,
    manifest_url TEXT,
    manifest_data TEXT,
    status TEXT NOT NULL,
    error_message TEXT,
    installed_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    frontend_config TEXT,
    has_window BOOLEAN DEFAULT FALSE
);

CREATE TABLE IF NOT EXISTS package_tasks (
    id TEXT PRIMARY KEY,
    package_id TEXT NOT NULL,
    task_type TEXT NOT NULL,
    status TEXT NOT NULL,
    progress INTEGER DEFAULT 0,
    total_steps INTEGER DEFAULT 0,
    current_step TEXT,
    error_message TEXT,
    started_at TEXT,
    completed_at TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS package_files (
    id SERIAL PRIMARY KEY,
    package_id TEXT NOT NULL,
    path TEXT NOT NULL,
    file_type TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS app_translations (
    id SERIAL PRIMARY KEY,
    package_id TEXT NOT NULL,
    locale TEXT NOT NULL,
    translations TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(package_id, locale)
);

CREATE INDEX IF NOT EXISTS idx_package_tasks_package ON package_tasks(package_id);
CREATE INDEX IF NOT EXISTS idx_package_files_package ON package_files(package_id);
"""

DROP_SCRIPT = """
DROP TABLE IF EXISTS app_translations;
DROP TABLE IF EXISTS package_files;
DROP TABLE IF EXISTS package_tasks;
DROP TABLE IF EXISTS installed_packages;
"""

INTEGRITY_ERRORS = (sqlite3.IntegrityError, psycopg2.IntegrityError)


class DatabaseManager:
    def __init__(self, db_url: str):
        self.db_url = db_url
        self.parsed_url = urlparse(db_url)
        self.db_type = self.parsed_url.scheme

    @property
    def placeholder(self) -> str:
        return "?" if self.db_type == "sqlite" else "%s"

    def get_connection(self):
        """Get a raw database connection."""
        if self.db_type == "sqlite":
            # Remove 'sqlite:///' or 'sqlite://' prefix
            path = self.db_url.replace("sqlite:///", "").replace("sqlite://", "")
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            conn = sqlite3.connect(path, timeout=30)
            conn.row_factory = sqlite3.Row  # Access columns by name
            return conn
        elif self.db_type == "postgresql" or self.db_type == "postgres":
            return psycopg2.connect(
                self.db_url, cursor_factory=psycopg2.extras.RealDictCursor
            )
        else:
            raise ValueError(f"Unsupported database type: {self.db_type}")

    def execute_script(self, script: str):
        """Execute a raw SQL script."""
        conn = self.get_connection()
        try:
            cursor = conn.cursor()
            cursor.executescript(script) if self.db_type == "sqlite" else cursor.execute(script)
            conn.commit()
        finally:
            conn.close()

    def init_schema(self):
        """Create the package tables if they do not exist yet."""
        if self.db_type == "sqlite":
            self.execute_script(SCHEMA_SQLITE)
        else:
            self.execute_script(SCHEMA_POSTGRES)

    def reset_db(self):
        """Drop and recreate all package tables."""
        self.execute_script(DROP_SCRIPT)
        self.init_schema()
