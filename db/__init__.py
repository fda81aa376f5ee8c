"""
Database module for Meural Manager.

This module provides database connectivity, models, and operations
for storing and querying EXIF metadata of uploaded photos.
"""

from db.database import get_engine, get_session, init_db, session_scope
from db.models import Photo
from db.operations import PhotoRepository

__all__ = [
    "get_engine",
    "get_session",
    "init_db",
    "session_scope",
    "Photo",
    "PhotoRepository",
]
