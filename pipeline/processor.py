"""
Upload pipeline orchestrator.

Processes a batch of staged upload files one at a time:
1. Read bytes from the staging file
2. Metadata extraction
3. Normalization of oversized images
4. Upload to Meural
5. Enrichment: reverse geocoding, vision caption, smart description,
   description pushed back to Meural, metadata stored in the database
6. Staging file removal

A failure in one file never affects the others. Every input file gets
exactly one result, in input order.
"""

import logging
import mimetypes
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from frame_integrations.meural import MeuralClient, MeuralError, MeuralUploadError
from pipeline.captioner import Captioner
from pipeline.description import compose_description, get_season
from pipeline.geocoder import Geocoder, LocationInfo
from pipeline.image_normalizer import OUTPUT_MIME_TYPE, ImageNormalizer
from pipeline.metadata_extractor import MetadataExtractor, PhotoMetadata
from pipeline.storage_handler import StorageHandler

logger = logging.getLogger(__name__)

MAX_UPLOAD_SIZE = 100 * 1024 * 1024  # 100MB per file, before resizing
MAX_BATCH_FILES = 50


@dataclass
class StagedFile:
    """An uploaded file saved to temporary storage."""
    path: Path
    filename: str
    mime_type: str | None = None


@dataclass
class UploadResult:
    """Result of processing a single upload."""
    filename: str
    success: bool = False
    meural_id: int | None = None
    data: dict[str, Any] | None = None
    resized: dict[str, Any] | None = None
    exif: dict[str, Any] | None = None
    vision_caption: str | None = None
    smart_description: str | None = None
    error: str | None = None
    processing_time: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape returned by the upload endpoint."""
        return {
            "filename": self.filename,
            "success": self.success,
            "meural_id": self.meural_id,
            "data": self.data,
            "resized": self.resized,
            "exif": self.exif,
            "vision_caption": self.vision_caption,
            "smart_description": self.smart_description,
            "error": self.error,
        }


def summarize_exif(
    metadata: PhotoMetadata,
    location: LocationInfo | None = None,
) -> dict[str, Any]:
    """Short EXIF summary included in upload results."""
    place = None
    if location:
        place = location.city or location.display_name
    return {
        "date_taken": metadata.date_taken,
        "camera": metadata.camera_model,
        "lens": metadata.lens_model,
        "aperture": metadata.aperture,
        "shutter": metadata.shutter_speed,
        "iso": metadata.iso,
        "gps": metadata.has_gps,
        "location": place,
        "season": get_season(metadata.date_taken),
    }


class UploadProcessor:
    """
    Drives each uploaded file through extraction, upload and enrichment.
    """

    def __init__(
        self,
        client: MeuralClient,
        extractor: MetadataExtractor | None = None,
        normalizer: ImageNormalizer | None = None,
        geocoder: Geocoder | None = None,
        captioner: Captioner | None = None,
        storage: StorageHandler | None = None,
        max_file_size: int = MAX_UPLOAD_SIZE,
        progress_callback: Callable[[int, int, str], None] | None = None
    ):
        """
        Initialize the upload processor.

        Args:
            client: Meural API client used for upload and description updates.
            extractor: Metadata extractor.
            normalizer: Normalizer for oversized images.
            geocoder: Reverse geocoder for GPS positions.
            captioner: Vision captioner.
            storage: Metadata storage handler.
            max_file_size: Largest accepted file in bytes.
            progress_callback: Callback(current, total, filename) for progress.
        """
        self.client = client
        self.extractor = extractor or MetadataExtractor()
        self.normalizer = normalizer or ImageNormalizer()
        self.geocoder = geocoder or Geocoder()
        self.captioner = captioner or Captioner()
        self.storage = storage or StorageHandler()
        self.max_file_size = max_file_size
        self.progress_callback = progress_callback

    def process_batch(self, files: list[StagedFile]) -> list[UploadResult]:
        """
        Process staged files in order.

        Args:
            files: Staged upload files.

        Returns:
            One UploadResult per file, in input order.
        """
        results: list[UploadResult] = []

        for i, staged in enumerate(files, 1):
            if self.progress_callback:
                self.progress_callback(i, len(files), staged.filename)
            results.append(self.process_file(staged))

        succeeded = sum(1 for r in results if r.success)
        logger.info(
            f"Upload batch complete: {succeeded}/{len(results)} succeeded, "
            f"{len(results) - succeeded} failed"
        )
        return results

    def process_file(self, staged: StagedFile) -> UploadResult:
        """
        Process a single staged file. The staging file is always removed.

        Args:
            staged: Staged upload file.

        Returns:
            UploadResult with outcome details. Never raises.
        """
        start_time = time.time()
        result = UploadResult(filename=staged.filename)

        try:
            self._process(staged, result)
            result.success = True
        except Exception as e:
            result.success = False
            result.error = str(e)
            logger.error(f"Failed to process {staged.filename}: {e}")
        finally:
            result.processing_time = time.time() - start_time
            self._cleanup(staged.path)

        if result.success:
            logger.info(
                f"Processed: {staged.filename} (item {result.meural_id}, "
                f"{result.processing_time:.2f}s)"
            )
        return result

    def _process(self, staged: StagedFile, result: UploadResult) -> None:
        filename = staged.filename

        data = Path(staged.path).read_bytes()
        if len(data) > self.max_file_size:
            raise ValueError(
                f"File exceeds {self.max_file_size / 1024 / 1024:.0f}MB limit"
            )

        # Extract EXIF before any processing
        metadata = self.extractor.extract(data, filename)

        normalized = self.normalizer.normalize(data, filename)
        result.resized = normalized.summary()

        if normalized.resized:
            mime_type = OUTPUT_MIME_TYPE
        else:
            mime_type = staged.mime_type or mimetypes.guess_type(filename)[0]

        response = self.client.upload_item(normalized.data, filename, mime_type)
        meural_id = (response.get("data") or {}).get("id")
        if meural_id is None:
            raise MeuralUploadError(f"Upload of {filename} returned no item id: {response}")

        result.meural_id = meural_id
        result.data = response

        location = None
        if metadata.has_gps:
            location = self.geocoder.reverse(metadata.gps_latitude, metadata.gps_longitude)
            if location:
                metadata.location_name = location.display_name

        caption = self.captioner.caption(normalized.data, mime_type)
        description = compose_description(metadata, location, caption)

        result.exif = summarize_exif(metadata, location)
        result.vision_caption = caption
        result.smart_description = description

        if description:
            self._apply_description(meural_id, description)

        self.storage.store_photo(meural_id, metadata)

    def _apply_description(self, meural_id: int, description: str) -> bool:
        """Push a description to Meural as the item name and description."""
        try:
            self.client.update_item(
                meural_id,
                {"name": description, "description": description},
            )
        except MeuralError as e:
            logger.warning(f"Failed to apply description to item {meural_id}: {e}")
            return False

        logger.info(f"Applied description to item {meural_id}: {description}")
        return True

    def _cleanup(self, path: Path) -> None:
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Could not remove staging file {path}: {e}")
