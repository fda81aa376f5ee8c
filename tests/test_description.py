"""
Tests for smart description composition.
"""

import pytest

from pipeline.description import compose_description, get_season
from pipeline.geocoder import LocationInfo
from pipeline.metadata_extractor import PhotoMetadata


@pytest.fixture
def paris():
    return LocationInfo(
        display_name="Paris, Ile-de-France, France",
        city="Paris",
        state="Ile-de-France",
        country="France",
        country_code="fr",
    )


@pytest.mark.parametrize("month, season", [
    (1, "Winter"), (2, "Winter"), (3, "Spring"), (4, "Spring"),
    (5, "Spring"), (6, "Summer"), (7, "Summer"), (8, "Summer"),
    (9, "Fall"), (10, "Fall"), (11, "Fall"), (12, "Winter"),
])
def test_season_boundaries(month, season):
    assert get_season(f"2024-{month:02d}-15T12:00:00") == season


@pytest.mark.parametrize("value", [None, "", "not a date"])
def test_season_of_unknown_date_is_none(value):
    assert get_season(value) is None


def test_full_description(paris):
    metadata = PhotoMetadata(filename="IMG_1.jpg", date_taken="2024-07-14T18:30:00")

    description = compose_description(metadata, paris, "Golden light on rooftops")

    assert description == "Paris · Summer · Golden light on rooftops"


def test_season_only():
    metadata = PhotoMetadata(filename="IMG_2.jpg", date_taken="2024-01-03T09:00:00")

    assert compose_description(metadata) == "Winter"


def test_caption_without_date_or_location():
    metadata = PhotoMetadata(filename="IMG_3.jpg")

    assert compose_description(metadata, None, "Quiet morning with coffee") == (
        "Quiet morning with coffee"
    )


def test_location_without_city_is_skipped():
    location = LocationInfo(display_name="Atlantic Ocean", country="Portugal")
    metadata = {"date_taken": "2023-10-01T10:00:00"}

    assert compose_description(metadata, location, None) == "Fall"


def test_nothing_known_gives_none():
    assert compose_description(PhotoMetadata(filename="blank.jpg")) is None
    assert compose_description(None) is None


def test_accepts_plain_dict(paris):
    description = compose_description(
        {"date_taken": "2022-04-02T08:00:00"}, paris, "Cherry blossoms by the river"
    )

    assert description == "Paris · Spring · Cherry blossoms by the river"
