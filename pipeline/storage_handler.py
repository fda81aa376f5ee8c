"""
Database storage handler for the pipeline.

Writes extracted metadata for uploaded items. Writes are serialized with
a process-wide lock: the threaded web server may run two upload batches
at once, and each write is a delete followed by an insert.
"""

import logging
import threading

from db.models import Photo
from db.operations import PhotoRepository
from pipeline.metadata_extractor import PhotoMetadata

logger = logging.getLogger(__name__)

_write_lock = threading.Lock()


class StorageHandler:
    """
    Handles storing photo metadata in the database.
    """

    def __init__(self, repository: PhotoRepository | None = None):
        """
        Initialize storage handler.

        Args:
            repository: PhotoRepository instance. If None, creates a new one.
        """
        self.repository = repository or PhotoRepository()

    def store_photo(self, meural_id: int, metadata: PhotoMetadata) -> Photo:
        """
        Store metadata for an uploaded item, replacing any previous record.

        Args:
            meural_id: Item ID assigned by Meural.
            metadata: Extracted (and enriched) metadata.

        Returns:
            The stored Photo instance.
        """
        with _write_lock:
            photo = self.repository.replace(
                meural_id,
                metadata.filename,
                **metadata.to_dict(),
            )

        logger.info(f"Stored metadata for item {meural_id}: {metadata.filename}")
        return photo

    def get_photo(self, meural_id: int) -> Photo | None:
        """Get stored metadata for an item, or None."""
        return self.repository.get_by_meural_id(meural_id)
