"""
Flask web app exposing the Meural Manager JSON API.

Most routes forward to the Meural API. Uploads run through the enrichment
pipeline, and the /api/exif routes serve locally stored metadata.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask, current_app, jsonify, request, send_from_directory
from werkzeug.datastructures import FileStorage
from werkzeug.exceptions import HTTPException

from db.operations import PhotoRepository
from frame_integrations.meural import MeuralClient
from pipeline.analyzer import AnalysisError, ItemAnalyzer
from pipeline.processor import (
    MAX_BATCH_FILES,
    MAX_UPLOAD_SIZE,
    StagedFile,
    UploadProcessor,
)
from pipeline.storage_handler import StorageHandler

load_dotenv()

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent.resolve()
PUBLIC_DIR = PROJECT_ROOT / "public"
DEFAULT_UPLOAD_DIR = "/tmp/meural-uploads"


@dataclass
class AppServices:
    """Collaborators shared by request handlers."""
    client: MeuralClient
    repository: PhotoRepository
    processor: UploadProcessor
    analyzer: ItemAnalyzer
    upload_dir: Path


def get_services() -> AppServices:
    return current_app.extensions["meural_manager"]


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _require_ids(body: dict) -> list:
    ids = body.get("ids")
    if not isinstance(ids, list):
        raise ValueError("Request body must include an 'ids' list")
    return ids


def _stage_uploads(files: list[FileStorage], upload_dir: Path) -> list[StagedFile]:
    """Save uploaded files to the staging directory."""
    upload_dir.mkdir(parents=True, exist_ok=True)
    staged: list[StagedFile] = []
    try:
        for storage in files:
            with tempfile.NamedTemporaryFile(
                dir=upload_dir, prefix="upload-", delete=False
            ) as tmp:
                storage.save(tmp)
            staged.append(StagedFile(
                path=Path(tmp.name),
                filename=storage.filename or Path(tmp.name).name,
                mime_type=storage.mimetype or None,
            ))
    except Exception:
        for item in staged:
            item.path.unlink(missing_ok=True)
        raise
    return staged


def create_app(
    client: MeuralClient | None = None,
    repository: PhotoRepository | None = None,
    processor: UploadProcessor | None = None,
    analyzer: ItemAnalyzer | None = None,
    upload_dir: str | Path | None = None,
) -> Flask:
    """
    Build the Flask application.

    Args:
        client: Meural API client. If None, one is built from the environment.
        repository: Photo metadata repository.
        processor: Upload pipeline.
        analyzer: Smart description analyzer.
        upload_dir: Staging directory for uploads. If None, reads UPLOAD_DIR.

    Returns:
        Configured Flask app.
    """
    app = Flask(__name__, static_folder=str(PUBLIC_DIR), static_url_path="")
    app.config["MAX_CONTENT_LENGTH"] = MAX_BATCH_FILES * MAX_UPLOAD_SIZE

    client = client or MeuralClient()
    repository = repository or PhotoRepository()
    storage = StorageHandler(repository)
    app.extensions["meural_manager"] = AppServices(
        client=client,
        repository=repository,
        processor=processor or UploadProcessor(client, storage=storage),
        analyzer=analyzer or ItemAnalyzer(client, storage=storage),
        upload_dir=Path(upload_dir or os.getenv("UPLOAD_DIR", DEFAULT_UPLOAD_DIR)),
    )

    register_error_handlers(app)
    register_routes(app)
    return app


def register_error_handlers(app: Flask) -> None:
    """Return every error as JSON."""

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(AnalysisError)
    def handle_analysis_error(e: AnalysisError):
        return jsonify({"error": str(e)}), e.status_code

    @app.errorhandler(Exception)
    def handle_error(e: Exception):
        logger.error(f"{request.method} {request.path} failed: {e}")
        return jsonify({"error": str(e)}), 500


def register_routes(app: Flask) -> None:
    """Register the JSON API routes."""

    @app.route("/")
    def index():
        """Serve the dashboard page if one is installed."""
        return send_from_directory(PUBLIC_DIR, "index.html")

    # ────────────────────────────────────────────────────────────────────────────
    # User and items
    # ────────────────────────────────────────────────────────────────────────────

    @app.get("/api/user")
    def get_user():
        return jsonify(get_services().client.get_user())

    @app.get("/api/items")
    def list_items():
        page = request.args.get("page", 1, type=int)
        count = request.args.get("count", 100, type=int)
        return jsonify(get_services().client.list_items(page=page, count=count))

    @app.post("/api/items/upload")
    def upload_items():
        """Upload photos through the enrichment pipeline."""
        services = get_services()
        files = [f for f in request.files.getlist("photos") if f.filename]
        if not files:
            raise ValueError("No files uploaded (expected multipart field 'photos')")
        if len(files) > MAX_BATCH_FILES:
            raise ValueError(f"Too many files: {len(files)} (max {MAX_BATCH_FILES})")

        # Credential problems fail the whole request, not each file
        services.client.get_token()

        staged = _stage_uploads(files, services.upload_dir)
        results = services.processor.process_batch(staged)
        return jsonify({"results": [r.to_dict() for r in results]})

    @app.delete("/api/items/<item_id>")
    def delete_item(item_id):
        data = get_services().client.delete_item(item_id)
        return jsonify({"success": True, "data": data})

    @app.post("/api/items/bulk-delete")
    def bulk_delete_items():
        client = get_services().client
        results = []
        for item_id in _require_ids(_json_body()):
            try:
                client.delete_item(item_id)
                results.append({"id": item_id, "success": True})
            except Exception as e:
                logger.warning(f"Failed to delete item {item_id}: {e}")
                results.append({"id": item_id, "success": False, "error": str(e)})
        return jsonify({"results": results})

    @app.put("/api/items/<item_id>")
    def update_item(item_id):
        return jsonify(get_services().client.update_item(item_id, _json_body()))

    @app.post("/api/items/<item_id>/analyze")
    def analyze_item(item_id):
        return jsonify(get_services().analyzer.analyze_item(item_id))

    @app.post("/api/items/bulk-analyze")
    def bulk_analyze_items():
        body = _json_body()
        ids = _require_ids(body)
        results = get_services().analyzer.bulk_analyze(ids, apply=bool(body.get("apply", False)))
        return jsonify({"results": results})

    # ────────────────────────────────────────────────────────────────────────────
    # Stored EXIF metadata
    # ────────────────────────────────────────────────────────────────────────────

    @app.get("/api/exif")
    def list_exif():
        photos = get_services().repository.get_all()
        return jsonify({
            "data": [p.to_summary_dict() for p in photos],
            "count": len(photos),
        })

    @app.get("/api/exif/stats")
    def exif_stats():
        return jsonify(get_services().repository.get_stats())

    @app.get("/api/exif/<meural_id>")
    def get_exif(meural_id):
        photo = None
        if meural_id.isdigit():
            photo = get_services().repository.get_by_meural_id(int(meural_id))
        if photo:
            return jsonify({"data": photo.to_dict()})
        return jsonify({"data": None, "message": "No EXIF data found for this photo"})

    # ────────────────────────────────────────────────────────────────────────────
    # Galleries
    # ────────────────────────────────────────────────────────────────────────────

    @app.get("/api/galleries")
    def list_galleries():
        return jsonify(get_services().client.list_galleries())

    @app.get("/api/galleries/<gallery_id>/items")
    def list_gallery_items(gallery_id):
        page = request.args.get("page", 1, type=int)
        count = request.args.get("count", 100, type=int)
        return jsonify(
            get_services().client.list_gallery_items(gallery_id, page=page, count=count)
        )

    @app.post("/api/galleries")
    def create_gallery():
        return jsonify(get_services().client.create_gallery(_json_body()))

    @app.put("/api/galleries/<gallery_id>")
    def update_gallery(gallery_id):
        return jsonify(get_services().client.update_gallery(gallery_id, _json_body()))

    @app.delete("/api/galleries/<gallery_id>")
    def delete_gallery(gallery_id):
        data = get_services().client.delete_gallery(gallery_id)
        return jsonify({"success": True, "data": data})

    @app.post("/api/galleries/<gallery_id>/items/<item_id>")
    def add_gallery_item(gallery_id, item_id):
        return jsonify(get_services().client.add_item_to_gallery(gallery_id, item_id))

    @app.delete("/api/galleries/<gallery_id>/items/<item_id>")
    def remove_gallery_item(gallery_id, item_id):
        data = get_services().client.remove_item_from_gallery(gallery_id, item_id)
        return jsonify({"success": True, "data": data})

    # ────────────────────────────────────────────────────────────────────────────
    # Devices
    # ────────────────────────────────────────────────────────────────────────────

    @app.get("/api/devices")
    def list_devices():
        return jsonify(get_services().client.list_devices())

    @app.get("/api/devices/<device_id>/galleries")
    def list_device_galleries(device_id):
        return jsonify(get_services().client.list_device_galleries(device_id))

    @app.post("/api/devices/<device_id>/galleries/<gallery_id>")
    def add_device_gallery(device_id, gallery_id):
        return jsonify(get_services().client.add_gallery_to_device(device_id, gallery_id))
