"""
Session shim.

Routers and the auth dependency import `get_session` from here so tests can
override a single dependency. Re-exports `get_db` from database.py.
"""

from helpdesk.db.database import get_db as get_session  # noqa: F401

__all__ = ["get_session"]
