"""
Smart description composition.

Builds the frame caption shown on Meural from location, season and the
vision caption, e.g. "Paris · Summer · Golden light on rooftops".
"""

from datetime import datetime
from typing import Any

from pipeline.geocoder import LocationInfo

SEPARATOR = " · "


def parse_date_taken(date_taken: str | datetime | None) -> datetime | None:
    """Parse a stored "YYYY-MM-DDTHH:MM:SS" capture time."""
    if date_taken is None:
        return None
    if isinstance(date_taken, datetime):
        return date_taken
    try:
        return datetime.fromisoformat(str(date_taken))
    except ValueError:
        return None


def get_season(date_taken: str | datetime | None) -> str | None:
    """
    Northern hemisphere season of a capture time.

    Mar-May Spring, Jun-Aug Summer, Sep-Nov Fall, Dec-Feb Winter.
    """
    taken = parse_date_taken(date_taken)
    if taken is None:
        return None

    month = taken.month - 1  # 0-11
    if 2 <= month <= 4:
        return "Spring"
    if 5 <= month <= 7:
        return "Summer"
    if 8 <= month <= 10:
        return "Fall"
    return "Winter"


def _date_taken_of(metadata: Any) -> Any:
    if metadata is None:
        return None
    if isinstance(metadata, dict):
        return metadata.get("date_taken")
    return getattr(metadata, "date_taken", None)


def compose_description(
    metadata: Any,
    location: LocationInfo | None = None,
    caption: str | None = None,
) -> str | None:
    """
    Combine city, season and caption into one display string.

    Args:
        metadata: Anything with a date_taken (PhotoMetadata, Photo, dict) or None.
        location: Reverse geocoded location.
        caption: Vision caption.

    Returns:
        The description, or None if there is nothing to say. None means
        the remote caption should be left alone.
    """
    date_taken = _date_taken_of(metadata)
    parts = []

    # Location first (most grounding context)
    if location and location.city:
        parts.append(location.city)

    season = get_season(date_taken)
    if season:
        parts.append(season)

    if caption:
        parts.append(caption)

    if not parts:
        taken = parse_date_taken(date_taken)
        if taken:
            parts.append(taken.strftime("%B %Y"))

    return SEPARATOR.join(parts) or None
