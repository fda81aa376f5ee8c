"""
Shared pytest fixtures for Meural Manager tests.

Provides:
- A temporary SQLite metadata database per test
- JPEG builders with piexif-generated EXIF
- Doubles for the Meural client, geocoder and captioner
"""

import io
from unittest.mock import MagicMock

import piexif
import pytest
from PIL import Image

from db.database import dispose_engine, init_db
from frame_integrations.meural import MeuralClient
from pipeline.captioner import Captioner
from pipeline.geocoder import Geocoder, LocationInfo


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
def database(tmp_path, monkeypatch):
    """Point the engine at a fresh SQLite file and create the tables."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.sqlite'}")
    dispose_engine()
    assert init_db()
    yield
    dispose_engine()


# =============================================================================
# IMAGE FIXTURES
# =============================================================================

def build_exif(
    date_taken: bytes | None = b"2023:07:14 18:30:00",
    gps: bool = True,
    exif_overrides: dict | None = None,
) -> bytes:
    """Build an EXIF segment resembling a camera JPEG.

    exif_overrides maps piexif.ExifIFD tags to replacement values.
    """
    exif_ifd = {
        piexif.ExifIFD.FNumber: (28, 10),
        piexif.ExifIFD.FocalLength: (50, 1),
        piexif.ExifIFD.FocalLengthIn35mmFilm: 75,
        piexif.ExifIFD.ExposureTime: (1, 250),
        piexif.ExifIFD.ISOSpeedRatings: 200,
        piexif.ExifIFD.ExposureBiasValue: (-1, 3),
        piexif.ExifIFD.LensModel: b"EF50mm f/1.8 STM",
        piexif.ExifIFD.ColorSpace: 1,
        piexif.ExifIFD.WhiteBalance: 0,
    }
    if date_taken is not None:
        exif_ifd[piexif.ExifIFD.DateTimeOriginal] = date_taken
    exif_ifd.update(exif_overrides or {})

    gps_ifd = {}
    if gps:
        gps_ifd = {
            piexif.GPSIFD.GPSVersionID: (2, 2, 0, 0),
            piexif.GPSIFD.GPSLatitudeRef: b"N",
            piexif.GPSIFD.GPSLatitude: ((48, 1), (51, 1), (2400, 100)),
            piexif.GPSIFD.GPSLongitudeRef: b"E",
            piexif.GPSIFD.GPSLongitude: ((2, 1), (21, 1), (0, 1)),
            piexif.GPSIFD.GPSAltitudeRef: 0,
            piexif.GPSIFD.GPSAltitude: (35, 1),
        }

    return piexif.dump({
        "0th": {
            piexif.ImageIFD.Make: b"Canon",
            piexif.ImageIFD.Model: b"Canon EOS R6",
            piexif.ImageIFD.Orientation: 1,
        },
        "Exif": exif_ifd,
        "GPS": gps_ifd,
    })


def make_jpeg(
    width: int = 120,
    height: int = 80,
    exif: bytes | None = None,
    color: str = "orange",
) -> bytes:
    """Encode a solid-color JPEG, optionally with an EXIF segment."""
    buffer = io.BytesIO()
    image = Image.new("RGB", (width, height), color=color)
    if exif:
        image.save(buffer, format="JPEG", exif=exif)
    else:
        image.save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def exif_factory():
    return build_exif


@pytest.fixture
def jpeg_factory():
    return make_jpeg


@pytest.fixture
def camera_jpeg() -> bytes:
    """JPEG with full camera EXIF and GPS near central Paris."""
    return make_jpeg(exif=build_exif())


@pytest.fixture
def plain_jpeg() -> bytes:
    """JPEG without any EXIF."""
    return make_jpeg()


# =============================================================================
# COLLABORATOR DOUBLES
# =============================================================================

@pytest.fixture
def mock_client():
    """Meural client double that accepts every upload."""
    client = MagicMock(spec=MeuralClient)
    ids = iter(range(101, 200))
    client.upload_item.side_effect = lambda data, filename, mime_type=None: {
        "data": {"id": next(ids), "name": filename}
    }
    client.update_item.return_value = {"data": {}}
    return client


@pytest.fixture
def stub_geocoder():
    geocoder = MagicMock(spec=Geocoder)
    geocoder.reverse.return_value = LocationInfo(
        display_name="Paris, Ile-de-France, France",
        city="Paris",
        state="Ile-de-France",
        country="France",
        country_code="fr",
    )
    return geocoder


@pytest.fixture
def stub_captioner():
    captioner = MagicMock(spec=Captioner)
    captioner.caption.return_value = "Golden light on rooftops"
    return captioner
