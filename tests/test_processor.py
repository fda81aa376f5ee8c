"""
Tests for the upload orchestrator.
"""

import io
from unittest.mock import MagicMock

import pytest
from PIL import Image

from db.operations import PhotoRepository
from frame_integrations.meural import MeuralError, MeuralUploadError
from pipeline.image_normalizer import ImageNormalizer
from pipeline.processor import StagedFile, UploadProcessor
from pipeline.storage_handler import StorageHandler


@pytest.fixture
def stage(tmp_path):
    """Write bytes to a staging file the way the upload route does."""
    def _stage(data: bytes, filename: str, mime_type: str = "image/jpeg") -> StagedFile:
        path = tmp_path / f"staged-{len(list(tmp_path.iterdir()))}"
        path.write_bytes(data)
        return StagedFile(path=path, filename=filename, mime_type=mime_type)
    return _stage


@pytest.fixture
def processor(database, mock_client, stub_geocoder, stub_captioner):
    return UploadProcessor(
        client=mock_client,
        geocoder=stub_geocoder,
        captioner=stub_captioner,
        storage=StorageHandler(),
    )


def test_camera_photo_is_uploaded_and_enriched(processor, mock_client, stage, camera_jpeg):
    result = processor.process_file(stage(camera_jpeg, "IMG_0001.jpg"))

    assert result.success is True
    assert result.error is None
    assert result.meural_id == 101
    assert result.data == {"data": {"id": 101, "name": "IMG_0001.jpg"}}
    assert result.resized is None
    assert result.vision_caption == "Golden light on rooftops"
    assert result.smart_description == "Paris · Summer · Golden light on rooftops"
    assert result.exif == {
        "date_taken": "2023-07-14T18:30:00",
        "camera": "Canon EOS R6",
        "lens": "EF50mm f/1.8 STM",
        "aperture": pytest.approx(2.8),
        "shutter": "1/250",
        "iso": 200,
        "gps": True,
        "location": "Paris",
        "season": "Summer",
    }

    mock_client.upload_item.assert_called_once_with(camera_jpeg, "IMG_0001.jpg", "image/jpeg")
    mock_client.update_item.assert_called_once_with(
        101,
        {
            "name": "Paris · Summer · Golden light on rooftops",
            "description": "Paris · Summer · Golden light on rooftops",
        },
    )


def test_metadata_is_stored_with_location(processor, stage, camera_jpeg):
    processor.process_file(stage(camera_jpeg, "IMG_0001.jpg"))

    photo = PhotoRepository().get_by_meural_id(101)

    assert photo.original_filename == "IMG_0001.jpg"
    assert photo.camera_model == "Canon EOS R6"
    assert photo.gps_latitude == pytest.approx(48.8566667)
    assert photo.location_name == "Paris, Ile-de-France, France"
    assert photo.exif_json["0th"]["Model"] == "Canon EOS R6"


def test_oversized_file_uploads_normalized_jpeg(database, mock_client, stub_geocoder,
                                                stub_captioner, stage):
    buffer = io.BytesIO()
    Image.new("RGB", (200, 100), color="navy").save(buffer, format="BMP")
    original = buffer.getvalue()
    processor = UploadProcessor(
        client=mock_client,
        normalizer=ImageNormalizer(max_bytes=1_000, max_dimension=50),
        geocoder=stub_geocoder,
        captioner=stub_captioner,
        storage=StorageHandler(),
    )

    result = processor.process_file(stage(original, "scan.bmp", mime_type="image/bmp"))

    assert result.success is True
    uploaded, filename, mime_type = mock_client.upload_item.call_args.args
    assert filename == "scan.bmp"
    assert mime_type == "image/jpeg"
    assert uploaded != original
    assert Image.open(io.BytesIO(uploaded)).size == (50, 25)

    assert result.resized["dimensions"] == {"width": 50, "height": 25}
    assert set(result.resized) == {"from", "to", "dimensions"}
    stub_captioner.caption.assert_called_once_with(uploaded, "image/jpeg")

    photo = PhotoRepository().get_by_meural_id(result.meural_id)
    assert (photo.width, photo.height) == (200, 100)


def test_geocoder_skipped_without_gps(processor, stub_geocoder, stage, plain_jpeg):
    result = processor.process_file(stage(plain_jpeg, "scan.jpg"))

    stub_geocoder.reverse.assert_not_called()
    assert result.success is True
    assert result.exif["gps"] is False
    assert result.exif["location"] is None
    assert result.smart_description == "Golden light on rooftops"


def test_no_description_leaves_remote_caption(processor, mock_client, stub_captioner,
                                              stage, plain_jpeg):
    stub_captioner.caption.return_value = None

    result = processor.process_file(stage(plain_jpeg, "scan.jpg"))

    assert result.success is True
    assert result.smart_description is None
    mock_client.update_item.assert_not_called()


def test_description_update_failure_is_not_fatal(processor, mock_client, stage, camera_jpeg):
    mock_client.update_item.side_effect = MeuralError("PUT /items/101 failed with HTTP 500")

    result = processor.process_file(stage(camera_jpeg, "IMG_0001.jpg"))

    assert result.success is True
    assert result.smart_description == "Paris · Summer · Golden light on rooftops"
    assert PhotoRepository().get_by_meural_id(101) is not None


def test_storage_failure_fails_the_file(mock_client, stub_geocoder, stub_captioner,
                                        stage, camera_jpeg):
    storage = MagicMock(spec=StorageHandler)
    storage.store_photo.side_effect = RuntimeError("database is locked")
    processor = UploadProcessor(
        client=mock_client,
        geocoder=stub_geocoder,
        captioner=stub_captioner,
        storage=storage,
    )

    result = processor.process_file(stage(camera_jpeg, "IMG_0001.jpg"))

    assert result.success is False
    assert result.meural_id == 101
    assert result.error == "database is locked"


def test_upload_without_id_fails(processor, mock_client, stage, plain_jpeg):
    mock_client.upload_item.side_effect = None
    mock_client.upload_item.return_value = {"data": {}}

    result = processor.process_file(stage(plain_jpeg, "orphan.jpg"))

    assert result.success is False
    assert "no item id" in result.error
    mock_client.update_item.assert_not_called()


def test_oversized_file_is_rejected_before_upload(mock_client, stub_geocoder, stub_captioner,
                                                  stage, plain_jpeg):
    processor = UploadProcessor(
        client=mock_client,
        geocoder=stub_geocoder,
        captioner=stub_captioner,
        storage=MagicMock(spec=StorageHandler),
        max_file_size=100,
    )

    result = processor.process_file(stage(plain_jpeg, "huge.jpg"))

    assert result.success is False
    assert "exceeds" in result.error
    mock_client.upload_item.assert_not_called()


def test_staging_files_are_always_removed(processor, mock_client, stage, camera_jpeg):
    mock_client.upload_item.side_effect = MeuralUploadError("Failed to upload IMG.jpg")
    staged = [stage(camera_jpeg, "a.jpg"), stage(b"not an image", "b.jpg")]

    processor.process_batch(staged)

    assert not any(item.path.exists() for item in staged)


def test_batch_keeps_input_order_and_isolates_failures(processor, mock_client, stage,
                                                       camera_jpeg, plain_jpeg):
    uploads = iter([
        {"data": {"id": 201}},
        MeuralUploadError("Failed to upload second.jpg: HTTP 500"),
        {"data": {"id": 203}},
    ])

    def upload(data, filename, mime_type=None):
        outcome = next(uploads)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    mock_client.upload_item.side_effect = upload
    progress = MagicMock()
    processor.progress_callback = progress

    results = processor.process_batch([
        stage(camera_jpeg, "first.jpg"),
        stage(plain_jpeg, "second.jpg"),
        stage(plain_jpeg, "third.png", mime_type=None),
    ])

    assert [r.filename for r in results] == ["first.jpg", "second.jpg", "third.png"]
    assert [r.success for r in results] == [True, False, True]
    assert [r.meural_id for r in results] == [201, None, 203]
    assert "second.jpg" in results[1].error
    assert progress.call_count == 3
    progress.assert_called_with(3, 3, "third.png")
    assert mock_client.upload_item.call_args.args[2] == "image/png"


def test_result_dict_shape(processor, stage, plain_jpeg):
    result = processor.process_file(stage(plain_jpeg, "scan.jpg")).to_dict()

    assert set(result) == {
        "filename", "success", "meural_id", "data", "resized", "exif",
        "vision_caption", "smart_description", "error",
    }
