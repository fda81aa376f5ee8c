"""
Metadata extraction module for uploaded images.

Extracts from raw image bytes:
- Basic image info (dimensions)
- EXIF capture data (date taken, camera, lens, exposure settings)
- GPS position
- A JSON-friendly dump of every other tag found

Extraction never raises: unreadable input yields a record with every
field set to None.
"""

import io
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

import piexif
from PIL import Image

logger = logging.getLogger(__name__)

EXIF_DATE_FORMATS = ("%Y:%m:%d %H:%M:%S", "%Y-%m-%d %H:%M:%S")
DATE_TAKEN_FORMAT = "%Y-%m-%dT%H:%M:%S"

COLOR_SPACES = {1: "sRGB", 2: "Adobe RGB", 65535: "Uncalibrated"}
WHITE_BALANCE_MODES = {0: "Auto", 1: "Manual"}

# IFDs dumped into exif_json, in output order
EXIF_IFDS = ("0th", "Exif", "GPS", "Interop", "1st")

# Longest byte string kept in exif_json; longer values are maker notes etc.
MAX_BLOB_BYTES = 256


@dataclass
class PhotoMetadata:
    """Normalized metadata for one image. Absent values are None."""
    filename: str

    # Capture attributes
    date_taken: str | None = None
    camera_make: str | None = None
    camera_model: str | None = None
    lens_model: str | None = None
    focal_length: float | None = None
    focal_length_35mm: float | None = None
    aperture: float | None = None
    shutter_speed: str | None = None
    iso: int | None = None
    exposure_compensation: float | None = None

    # GPS
    gps_latitude: float | None = None
    gps_longitude: float | None = None
    gps_altitude: float | None = None
    location_name: str | None = None

    # Image details
    width: int | None = None
    height: int | None = None
    orientation: int | None = None
    color_space: str | None = None
    white_balance: str | None = None

    exif_json: dict[str, Any] | None = field(default=None)

    @property
    def has_gps(self) -> bool:
        return self.gps_latitude is not None and self.gps_longitude is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary of photo columns for database insertion."""
        data = asdict(self)
        data.pop("filename")
        return data

    @classmethod
    def empty(cls, filename: str) -> "PhotoMetadata":
        """Degraded record used when the image cannot be parsed."""
        return cls(filename=filename)


# ────────────────────────────────────────────────────────────────────────────────
# Value helpers
# ────────────────────────────────────────────────────────────────────────────────

def rational_to_float(value: Any) -> float | None:
    """
    Divide an EXIF rational (numerator, denominator) pair.

    Returns:
        The quotient, or None for missing values or a zero denominator.
    """
    try:
        numerator, denominator = value
    except (TypeError, ValueError):
        return None
    if not denominator:
        return None
    return numerator / denominator


def format_exposure_time(value: Any) -> str | None:
    """Format an exposure time rational for display ("1/250", "2")."""
    seconds = rational_to_float(value)
    if seconds is None or seconds <= 0:
        return None
    if seconds < 1:
        return f"1/{round(1 / seconds)}"
    return f"{seconds:g}"


def normalize_exif_date(value: str | None) -> str | None:
    """Convert "YYYY:MM:DD HH:MM:SS" to "YYYY-MM-DDTHH:MM:SS"."""
    if not value:
        return None
    for date_format in EXIF_DATE_FORMATS:
        try:
            return datetime.strptime(value, date_format).strftime(DATE_TAKEN_FORMAT)
        except ValueError:
            continue
    logger.debug(f"Could not parse date: {value}")
    return None


def decode_exif_string(value: bytes | str | None) -> str | None:
    """Decode an EXIF ASCII value, dropping padding. Empty strings become None."""
    if value is None:
        return None
    if isinstance(value, bytes):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            value = value.decode("latin-1")
    value = str(value).strip().rstrip("\x00").strip()
    return value or None


def _first_int(value: Any) -> int | None:
    if isinstance(value, (tuple, list)):
        value = value[0] if value else None
    if isinstance(value, int):
        return value
    return None


def _dms_to_decimal(dms: Any, ref: bytes | str | None) -> float | None:
    """Convert DMS (degrees, minutes, seconds) rationals to decimal degrees."""
    if not dms or len(dms) != 3:
        return None

    parts = [rational_to_float(part) for part in dms]
    if any(part is None for part in parts):
        return None

    degrees, minutes, seconds = parts
    decimal = degrees + minutes / 60 + seconds / 3600

    if decode_exif_string(ref) in ("S", "W"):
        decimal = -decimal

    return round(decimal, 7)


def _to_json_value(value: Any) -> Any:
    """Convert a piexif value into something json.dumps accepts, or None to skip."""
    if isinstance(value, bytes):
        if len(value) > MAX_BLOB_BYTES:
            return None
        try:
            text = value.decode("ascii").rstrip("\x00")
        except UnicodeDecodeError:
            return None
        return text if text.isprintable() else None
    if isinstance(value, (tuple, list)):
        items = [_to_json_value(item) for item in value]
        return None if any(item is None for item in items) else items
    if isinstance(value, (int, float, str)):
        return value
    return None


# ────────────────────────────────────────────────────────────────────────────────
# Extractor
# ────────────────────────────────────────────────────────────────────────────────

class MetadataExtractor:
    """
    Extracts normalized metadata from image bytes.

    Combines Pillow image info with piexif EXIF decoding.
    """

    def extract(self, data: bytes, filename: str) -> PhotoMetadata:
        """
        Extract all metadata from an image.

        Args:
            data: Raw image bytes.
            filename: Original filename (for logging).

        Returns:
            PhotoMetadata with every field that could be read. Never raises.
        """
        logger.debug(f"Extracting metadata from: {filename}")

        try:
            with Image.open(io.BytesIO(data)) as img:
                metadata = PhotoMetadata(
                    filename=filename,
                    width=img.width,
                    height=img.height,
                )
                exif_bytes = img.info.get("exif")
                file_info = {
                    "format": img.format,
                    "mode": img.mode,
                    "width": img.width,
                    "height": img.height,
                }
        except Exception as e:
            logger.warning(f"EXIF extraction failed for {filename}: {e}")
            return PhotoMetadata.empty(filename)

        metadata.exif_json = {"file": file_info}

        if not exif_bytes:
            return metadata

        try:
            exif_dict = piexif.load(exif_bytes)
            self._apply_exif(exif_dict, metadata)
            metadata.exif_json.update(self._dump_tags(exif_dict))
        except Exception as e:
            logger.debug(f"Could not decode EXIF from {filename}: {e}")

        return metadata

    def _apply_exif(self, exif_dict: dict, metadata: PhotoMetadata) -> None:
        """Fill typed fields from a piexif dictionary."""
        ifd_0 = exif_dict.get("0th") or {}
        exif_ifd = exif_dict.get("Exif") or {}
        gps_ifd = exif_dict.get("GPS") or {}

        metadata.camera_make = decode_exif_string(ifd_0.get(piexif.ImageIFD.Make))
        metadata.camera_model = decode_exif_string(ifd_0.get(piexif.ImageIFD.Model))
        metadata.orientation = _first_int(ifd_0.get(piexif.ImageIFD.Orientation))

        metadata.date_taken = normalize_exif_date(
            decode_exif_string(exif_ifd.get(piexif.ExifIFD.DateTimeOriginal))
        )
        metadata.lens_model = decode_exif_string(exif_ifd.get(piexif.ExifIFD.LensModel))
        metadata.focal_length = rational_to_float(exif_ifd.get(piexif.ExifIFD.FocalLength))

        focal_35mm = _first_int(exif_ifd.get(piexif.ExifIFD.FocalLengthIn35mmFilm))
        metadata.focal_length_35mm = float(focal_35mm) if focal_35mm is not None else None

        metadata.aperture = rational_to_float(exif_ifd.get(piexif.ExifIFD.FNumber))
        metadata.shutter_speed = format_exposure_time(exif_ifd.get(piexif.ExifIFD.ExposureTime))
        metadata.iso = _first_int(exif_ifd.get(piexif.ExifIFD.ISOSpeedRatings))
        metadata.exposure_compensation = rational_to_float(
            exif_ifd.get(piexif.ExifIFD.ExposureBiasValue)
        )

        color_space = _first_int(exif_ifd.get(piexif.ExifIFD.ColorSpace))
        if color_space is not None:
            metadata.color_space = COLOR_SPACES.get(color_space, str(color_space))

        white_balance = _first_int(exif_ifd.get(piexif.ExifIFD.WhiteBalance))
        if white_balance is not None:
            metadata.white_balance = WHITE_BALANCE_MODES.get(white_balance, str(white_balance))

        if metadata.width is None:
            metadata.width = _first_int(exif_ifd.get(piexif.ExifIFD.PixelXDimension))
        if metadata.height is None:
            metadata.height = _first_int(exif_ifd.get(piexif.ExifIFD.PixelYDimension))

        if gps_ifd:
            self._apply_gps(gps_ifd, metadata)

    def _apply_gps(self, gps_ifd: dict, metadata: PhotoMetadata) -> None:
        """Set latitude, longitude and altitude together, or not at all."""
        lat = _dms_to_decimal(
            gps_ifd.get(piexif.GPSIFD.GPSLatitude),
            gps_ifd.get(piexif.GPSIFD.GPSLatitudeRef, b"N"),
        )
        lon = _dms_to_decimal(
            gps_ifd.get(piexif.GPSIFD.GPSLongitude),
            gps_ifd.get(piexif.GPSIFD.GPSLongitudeRef, b"E"),
        )
        if lat is None or lon is None:
            return

        metadata.gps_latitude = lat
        metadata.gps_longitude = lon

        altitude = rational_to_float(gps_ifd.get(piexif.GPSIFD.GPSAltitude))
        if altitude is not None and gps_ifd.get(piexif.GPSIFD.GPSAltitudeRef) == 1:
            altitude = -altitude
        metadata.gps_altitude = altitude

    def _dump_tags(self, exif_dict: dict) -> dict[str, dict[str, Any]]:
        """Name every decodable tag, IFD by IFD, in a stable order."""
        dump: dict[str, dict[str, Any]] = {}
        for ifd_name in EXIF_IFDS:
            ifd = exif_dict.get(ifd_name) or {}
            tag_names = piexif.TAGS.get(ifd_name, {})
            section = {}
            for tag in sorted(ifd):
                value = _to_json_value(ifd[tag])
                if value is None:
                    continue
                name = tag_names.get(tag, {}).get("name", str(tag))
                section[name] = value
            if section:
                dump[ifd_name.lower()] = section
        return dump


def extract_metadata(data: bytes, filename: str) -> PhotoMetadata:
    """
    Convenience function to extract metadata from image bytes.

    Args:
        data: Raw image bytes.
        filename: Original filename.

    Returns:
        PhotoMetadata with extracted data.
    """
    return MetadataExtractor().extract(data, filename)
