"""
SQLAlchemy models for Meural Manager.

Database Schema:
----------------
photos table:
    - id: Primary key, auto-increment
    - meural_id: Item ID assigned by Meural after upload (unique)
    - original_filename: Filename as uploaded by the user
    - uploaded_at: Timestamp when the record was written
    - date_taken: Capture time from EXIF, "YYYY-MM-DDTHH:MM:SS" (naive)
    - camera_make / camera_model / lens_model: Camera info from EXIF
    - focal_length / focal_length_35mm: Focal length in mm
    - aperture: F-number
    - shutter_speed: Exposure time as display string ("1/250", "2")
    - iso: ISO speed
    - exposure_compensation: Exposure bias in stops
    - gps_latitude / gps_longitude / gps_altitude: GPS position
    - location_name: Reverse geocoded place name
    - width / height / orientation: Image geometry
    - color_space / white_balance: Color info
    - exif_json: Everything else the extractor found (JSON)
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class Photo(Base):
    """
    SQLAlchemy model for the photos table.

    One row per uploaded Meural item. Rows are replaced wholesale when the
    same item is written again.
    """
    __tablename__ = "photos"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity
    meural_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    original_filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now()
    )

    # Capture attributes
    date_taken: Mapped[Optional[str]] = mapped_column(String(19), nullable=True)
    camera_make: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    camera_model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    lens_model: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    focal_length: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    focal_length_35mm: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    aperture: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    shutter_speed: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    iso: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    exposure_compensation: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # GPS
    gps_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    gps_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    gps_altitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    location_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Image details
    width: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    height: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    orientation: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    color_space: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    white_balance: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Full EXIF blob for anything else
    exif_json: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_meural_id", "meural_id"),
        Index("idx_date_taken", "date_taken"),
    )

    def __repr__(self) -> str:
        return (
            f"<Photo(id={self.id}, meural_id={self.meural_id}, "
            f"filename='{self.original_filename}')>"
        )

    def to_summary_dict(self) -> dict:
        """Columns shown in the photo list."""
        return {
            "meural_id": self.meural_id,
            "original_filename": self.original_filename,
            "date_taken": self.date_taken,
            "camera_make": self.camera_make,
            "camera_model": self.camera_model,
            "lens_model": self.lens_model,
            "focal_length": self.focal_length,
            "aperture": self.aperture,
            "shutter_speed": self.shutter_speed,
            "iso": self.iso,
            "gps_latitude": self.gps_latitude,
            "gps_longitude": self.gps_longitude,
            "location_name": self.location_name,
            "width": self.width,
            "height": self.height,
        }

    def to_dict(self) -> dict:
        """Convert model to dictionary for serialization."""
        return {
            "id": self.id,
            **self.to_summary_dict(),
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
            "focal_length_35mm": self.focal_length_35mm,
            "exposure_compensation": self.exposure_compensation,
            "gps_altitude": self.gps_altitude,
            "orientation": self.orientation,
            "color_space": self.color_space,
            "white_balance": self.white_balance,
            "exif_json": self.exif_json,
        }
