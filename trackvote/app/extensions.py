"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy as a module-level object so it can be imported
anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` from here wherever needed.

    from trackvote.app.extensions import db

Do not pass the app object directly to SQLAlchemy() at import time — that
would prevent running tests with a separate test app instance.
"""

import sqlite3

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """
    SQLite ships with foreign key enforcement off. Turn it on per connection
    so the votes → tracks composite FK (INV-4) and ON DELETE CASCADE behave
    the same as on PostgreSQL in the SQLite-backed test suite.
    """
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
