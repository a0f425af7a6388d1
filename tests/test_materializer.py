"""
Tests for media storage and result materialization.
"""
import asyncio
import time

import pytest

from app.responses import InternalError, ProviderError, ValidationError
from app.worker.materializer import ResultMaterializer, parse_s3_uri
from app.worker.media_store import MediaStore


@pytest.fixture
def store(tmp_path):
    return MediaStore(str(tmp_path / "media"), max_file_size_mb=1)


def chunks(*parts, error=None):
    def open_object(bucket, key):
        for part in parts:
            yield part
        if error:
            raise error
    return open_object


class TestMediaStore:
    def test_creates_subdirectories(self, store):
        for name in ("videos", "images", "uploads"):
            assert (store.root / name).is_dir()

    def test_save_upload(self, store):
        path = store.save_upload(b"png-bytes", "photo.PNG", "image/png")
        assert path.parent == store.root / "uploads"
        assert path.suffix == ".png"
        assert path.read_bytes() == b"png-bytes"

    def test_upload_extension_from_mime(self, store):
        path = store.save_upload(b"jpg", "noext", "image/jpeg")
        assert path.suffix in (".jpg", ".jpeg")

    def test_rejects_unsupported_type(self, store):
        with pytest.raises(ValidationError) as exc:
            store.save_upload(b"%PDF", "doc.pdf", "application/pdf")
        assert exc.value.error_code == "INVALID_FILE"
        assert list((store.root / "uploads").iterdir()) == []

    def test_rejects_large_file(self, store):
        with pytest.raises(ValidationError) as exc:
            store.validate_upload("image/png", 2 * 1024 * 1024)
        assert exc.value.error_code == "INVALID_FILE"
        assert "1MB" in exc.value.message

    def test_resolve(self, store):
        target = store.path_for("video", "job.mp4")
        target.write_bytes(b"x")
        assert store.resolve("job.mp4") == target
        assert store.resolve("missing.mp4") is None

    @pytest.mark.parametrize("name", ["../secret.txt", "videos/job.mp4", "..", ".", "", "a\\b.mp4"])
    def test_resolve_rejects_paths(self, store, name):
        assert store.resolve(name) is None

    def test_delete_only_under_root(self, store, tmp_path):
        outside = tmp_path / "outside.txt"
        outside.write_text("keep")
        assert not store.delete(str(outside))
        assert outside.exists()

        inside = store.path_for("image", "a.png")
        inside.write_bytes(b"x")
        assert store.delete(str(inside))
        assert not inside.exists()

    def test_mime_types(self):
        assert MediaStore.mime_type_for("a.mp4") == "video/mp4"
        assert MediaStore.mime_type_for("a.PNG") == "image/png"
        assert MediaStore.mime_type_for("a.bin") == "application/octet-stream"


class TestParseS3Uri:
    def test_parse(self):
        assert parse_s3_uri("s3://bucket/abc/output.mp4") == ("bucket", "abc/output.mp4")

    @pytest.mark.parametrize("uri", ["", "bucket/key", "s3://bucket", "https://bucket/key"])
    def test_malformed(self, uri):
        with pytest.raises(InternalError):
            parse_s3_uri(uri)


class TestResultMaterializer:
    def test_download_streams_to_target(self, store):
        materializer = ResultMaterializer(store, chunks(b"abc", b"def"))
        path = asyncio.run(materializer.download("job-1", "s3://bucket/inv/output.mp4"))
        assert path == store.root / "videos" / "job-1.mp4"
        assert path.read_bytes() == b"abcdef"
        assert not path.with_name("job-1.mp4.part").exists()

    def test_download_error_leaves_no_file(self, store):
        materializer = ResultMaterializer(store, chunks(b"abc", error=ProviderError("unavailable")))
        with pytest.raises(ProviderError):
            asyncio.run(materializer.download("job-2", "s3://bucket/inv/output.mp4"))
        assert list((store.root / "videos").iterdir()) == []

    def test_download_error_keeps_previous_file(self, store):
        target = store.path_for("video", "job-3.mp4")
        target.write_bytes(b"previous")
        materializer = ResultMaterializer(store, chunks(b"abc", error=ProviderError("unavailable")))
        with pytest.raises(ProviderError):
            asyncio.run(materializer.download("job-3", "s3://bucket/inv/output.mp4"))
        assert target.read_bytes() == b"previous"

    def test_save_bytes(self, store):
        materializer = ResultMaterializer(store, chunks())
        path = asyncio.run(materializer.save_bytes("job-4", b"\x89PNG", "image"))
        assert path == store.root / "images" / "job-4.png"
        assert path.read_bytes() == b"\x89PNG"

    def test_cancelled_download_leaves_no_file(self, store):
        def slow_object(bucket, key):
            yield b"abc"
            time.sleep(0.3)
            yield b"def"

        materializer = ResultMaterializer(store, slow_object)

        async def scenario():
            task = asyncio.create_task(materializer.download("job-5", "s3://bucket/inv/output.mp4"))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert list((store.root / "videos").iterdir()) == []
