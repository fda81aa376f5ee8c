"""
Smart description analysis for items already on Meural.

Downloads an item's image, captions it, geocodes any stored GPS position
and composes a description, optionally applying it to the item.
"""

import logging
import time
from typing import Any

from frame_integrations.meural import MeuralClient
from pipeline.captioner import Captioner
from pipeline.description import compose_description, get_season
from pipeline.geocoder import Geocoder, LocationInfo
from pipeline.storage_handler import StorageHandler

logger = logging.getLogger(__name__)

# Pause between items in bulk analysis to stay under the Meural rate limit
BULK_DELAY_SECONDS = 0.5


class AnalysisError(Exception):
    """Item could not be analyzed. Carries an HTTP status for the web layer."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class ItemAnalyzer:
    """
    Generates smart descriptions for existing Meural items.
    """

    def __init__(
        self,
        client: MeuralClient,
        geocoder: Geocoder | None = None,
        captioner: Captioner | None = None,
        storage: StorageHandler | None = None,
        delay: float = BULK_DELAY_SECONDS,
    ):
        self.client = client
        self.geocoder = geocoder or Geocoder()
        self.captioner = captioner or Captioner()
        self.storage = storage or StorageHandler()
        self.delay = delay

    def _fetch_image(self, item_id: int | str) -> tuple[dict[str, Any], bytes]:
        item = self.client.get_item(item_id)
        photo = (item or {}).get("data")
        if not photo:
            raise AnalysisError("Photo not found", status_code=404)

        image_url = photo.get("image") or photo.get("image_large")
        if not image_url:
            raise AnalysisError("No image URL available", status_code=400)

        return photo, self.client.download_image(image_url)

    def _describe(
        self,
        item_id: int | str,
        image: bytes,
    ) -> tuple[str | None, LocationInfo | None, str | None, str | None]:
        """Caption, location, season and description for a downloaded image."""
        record = self.storage.get_photo(int(item_id))
        caption = self.captioner.caption(image, "image/jpeg")

        location = None
        if record and record.gps_latitude is not None and record.gps_longitude is not None:
            location = self.geocoder.reverse(record.gps_latitude, record.gps_longitude)

        date_taken = record.date_taken if record else None
        description = compose_description(record, location, caption)
        return caption, location, get_season(date_taken), description

    def analyze_item(self, item_id: int | str) -> dict[str, Any]:
        """
        Suggest a description for one item without applying it.

        Raises:
            AnalysisError: If the item or its image is missing.
            MeuralError: If the Meural API fails.
        """
        photo, image = self._fetch_image(item_id)
        caption, location, season, description = self._describe(item_id, image)

        return {
            "id": item_id,
            "current_name": photo.get("name"),
            "current_description": photo.get("description"),
            "vision_caption": caption,
            "location": location.city if location else None,
            "season": season,
            "smart_description": description,
        }

    def bulk_analyze(self, item_ids: list, apply: bool = False) -> list[dict[str, Any]]:
        """
        Analyze several items, optionally applying each description.

        Args:
            item_ids: Meural item IDs.
            apply: Push generated descriptions to Meural.

        Returns:
            One result per ID, in input order.
        """
        results = []

        for i, item_id in enumerate(item_ids):
            if i and self.delay:
                time.sleep(self.delay)

            try:
                _, image = self._fetch_image(item_id)
                caption, _, _, description = self._describe(item_id, image)

                applied = False
                if apply and description:
                    self.client.update_item(
                        item_id,
                        {"name": description, "description": description},
                    )
                    applied = True

                results.append({
                    "id": item_id,
                    "success": True,
                    "vision_caption": caption,
                    "smart_description": description,
                    "applied": applied,
                })
            except AnalysisError as e:
                error = "Not found" if e.status_code == 404 else "No image URL"
                results.append({"id": item_id, "success": False, "error": error})
            except Exception as e:
                logger.error(f"Failed to analyze item {item_id}: {e}")
                results.append({"id": item_id, "success": False, "error": str(e)})

        logger.info(
            f"Bulk analysis complete: "
            f"{sum(1 for r in results if r['success'])}/{len(results)} succeeded"
        )
        return results
