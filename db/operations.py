"""
Database operations for Meural Manager.

Provides PhotoRepository class with methods for:
- Replacing a photo's metadata record
- Reading records by Meural item ID
- Listing records by capture date
- Aggregate statistics (cameras, lenses, years, GPS coverage)
"""

import logging
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from db.database import session_scope
from db.models import Photo

logger = logging.getLogger(__name__)


class PhotoRepository:
    """
    Repository for Photo database operations.

    Can be used with a provided session or create its own.
    """

    def __init__(self, session: Session | None = None):
        """
        Initialize repository with optional session.

        Args:
            session: SQLAlchemy session. If None, operations will
                    create their own sessions using session_scope().
        """
        self._session = session

    @contextmanager
    def _scope(self) -> Generator[Session, None, None]:
        if self._session:
            yield self._session
        else:
            with session_scope() as session:
                yield session

    # ────────────────────────────────────────────────────────────────────────────
    # Write Operations
    # ────────────────────────────────────────────────────────────────────────────

    def replace(
        self,
        meural_id: int,
        original_filename: str | None,
        **fields: Any,
    ) -> Photo:
        """
        Write the record for a Meural item, replacing any existing one.

        The previous row is deleted first, so fields missing from this
        write end up NULL rather than carried over.

        Args:
            meural_id: Item ID assigned by Meural.
            original_filename: Filename as uploaded.
            **fields: Photo column values.

        Returns:
            The newly written Photo instance.
        """
        unknown = set(fields) - set(Photo.__table__.columns.keys())
        if unknown:
            raise ValueError(f"Unknown photo fields: {sorted(unknown)}")

        with self._scope() as session:
            session.execute(delete(Photo).where(Photo.meural_id == meural_id))
            photo = Photo(
                meural_id=meural_id,
                original_filename=original_filename,
                **fields,
            )
            session.add(photo)
            session.flush()
            session.refresh(photo)

        logger.debug(f"Replaced photo record: {photo}")
        return photo

    def delete_by_meural_id(self, meural_id: int) -> bool:
        """
        Delete the record for a Meural item.

        Returns:
            True if a row was deleted, False if none existed.
        """
        with self._scope() as session:
            result = session.execute(delete(Photo).where(Photo.meural_id == meural_id))
            return result.rowcount > 0

    # ────────────────────────────────────────────────────────────────────────────
    # Read Operations
    # ────────────────────────────────────────────────────────────────────────────

    def get_by_meural_id(self, meural_id: int) -> Photo | None:
        """
        Get the record for a Meural item.

        Returns:
            Photo instance or None if not found.
        """
        stmt = select(Photo).where(Photo.meural_id == meural_id)
        with self._scope() as session:
            return session.execute(stmt).scalar_one_or_none()

    def get_all(self) -> list[Photo]:
        """Get all records, most recently taken first."""
        stmt = select(Photo).order_by(Photo.date_taken.desc())
        with self._scope() as session:
            return list(session.execute(stmt).scalars().all())

    def count(self) -> int:
        """Count all records."""
        with self._scope() as session:
            return session.execute(select(func.count(Photo.id))).scalar() or 0

    def get_stats(self) -> dict[str, Any]:
        """
        Aggregate statistics over all stored photos.

        Returns:
            Dictionary with total, with_gps, and per-camera, per-lens and
            per-year counts.
        """
        count = func.count(Photo.id).label("count")
        year = func.substr(Photo.date_taken, 1, 4).label("year")

        cameras_stmt = (
            select(Photo.camera_model, count)
            .where(Photo.camera_model.isnot(None))
            .group_by(Photo.camera_model)
            .order_by(count.desc(), Photo.camera_model)
        )
        lenses_stmt = (
            select(Photo.lens_model, count)
            .where(Photo.lens_model.isnot(None))
            .group_by(Photo.lens_model)
            .order_by(count.desc(), Photo.lens_model)
        )
        years_stmt = (
            select(year, count)
            .where(Photo.date_taken.isnot(None))
            .group_by(year)
            .order_by(year.desc())
        )
        gps_stmt = select(func.count(Photo.id)).where(Photo.gps_latitude.isnot(None))

        with self._scope() as session:
            cameras = session.execute(cameras_stmt).all()
            lenses = session.execute(lenses_stmt).all()
            years = session.execute(years_stmt).all()
            with_gps = session.execute(gps_stmt).scalar() or 0
            total = session.execute(select(func.count(Photo.id))).scalar() or 0

        return {
            "total": total,
            "with_gps": with_gps,
            "cameras": [{"camera_model": r[0], "count": r[1]} for r in cameras],
            "lenses": [{"lens_model": r[0], "count": r[1]} for r in lenses],
            "years": [{"year": r[0], "count": r[1]} for r in years],
        }
