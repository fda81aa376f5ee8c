"""
Upload enrichment pipeline for Meural Manager.

This module provides the per-file pipeline for:
- Extracting EXIF metadata
- Shrinking images over the upload size limit
- Reverse geocoding GPS positions
- Generating AI captions and smart descriptions
- Storing metadata in the database
"""

from pipeline.metadata_extractor import MetadataExtractor, PhotoMetadata
from pipeline.image_normalizer import ImageNormalizer, NormalizeResult
from pipeline.geocoder import Geocoder, LocationInfo
from pipeline.captioner import Captioner
from pipeline.description import compose_description, get_season
from pipeline.storage_handler import StorageHandler
from pipeline.processor import StagedFile, UploadProcessor, UploadResult
from pipeline.analyzer import AnalysisError, ItemAnalyzer

__all__ = [
    "MetadataExtractor",
    "PhotoMetadata",
    "ImageNormalizer",
    "NormalizeResult",
    "Geocoder",
    "LocationInfo",
    "Captioner",
    "compose_description",
    "get_season",
    "StorageHandler",
    "StagedFile",
    "UploadProcessor",
    "UploadResult",
    "AnalysisError",
    "ItemAnalyzer",
]
