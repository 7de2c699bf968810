"""
Tests for asset uploads, replacement ordering and best-effort cleanup.
"""

import re

import pytest

from src.errors import BackendError, UploadError
from src.storage.assets import AssetFile, AssetUploader, path_from_public_url

OLD_URL = "https://test.supabase.co/storage/v1/object/public/cms/thumbs/42_1.jpg"


@pytest.fixture
def uploader(context):
    return AssetUploader(context)


@pytest.fixture
def photo():
    return AssetFile("Photo.PNG", b"\x89PNG", "image/png")


class TestPublicUrls:
    def test_splits_bucket_and_path(self):
        assert path_from_public_url(OLD_URL) == ("cms", "thumbs/42_1.jpg")

    def test_ignores_query_string(self):
        assert path_from_public_url(OLD_URL + "?t=123") == ("cms", "thumbs/42_1.jpg")

    @pytest.mark.parametrize(
        "url",
        ["", "https://cdn.example.com/image.jpg", "https://x.co/storage/v1/object/public/cms"],
    )
    def test_foreign_urls(self, url):
        assert path_from_public_url(url) is None


class TestObjectPath:
    def test_owner_path(self, uploader, photo):
        path = uploader.object_path("thumbs", photo, owner_id=42)

        assert re.fullmatch(r"thumbs/42_\d+\.png", path)

    def test_random_path_with_default_extension(self, uploader):
        path = uploader.object_path("brands", AssetFile("logo", b"x"))

        assert re.fullmatch(r"brands/\d+_[0-9a-f]{8}\.jpg", path)


class TestUpload:
    def test_upload_returns_public_url(self, uploader, fake, photo):
        url = uploader.upload(photo, "cms", "thumbs", owner_id=42)

        upload = fake.calls_of("upload")[0]
        assert upload[1] == "cms"
        assert upload[2]["options"] == {
            "cache-control": "3600",
            "upsert": "false",
            "content-type": "image/png",
        }
        assert url == f"https://test.supabase.co/storage/v1/object/public/cms/{upload[2]['path']}"

    def test_overwrite_sets_upsert(self, uploader, fake, photo):
        uploader.upload(photo, "brand-logos", "brands", overwrite=True)

        assert fake.calls_of("upload")[0][2]["options"]["upsert"] == "true"

    def test_failure_raises_upload_error(self, uploader, fake, photo):
        fake.fail("upload", "cms", "Payload too large")

        with pytest.raises(UploadError, match="Payload too large"):
            uploader.upload(photo, "cms", "thumbs")

    def test_existing_object_without_overwrite(self, uploader, fake, photo, monkeypatch):
        fake.objects["cms"] = {"thumbs/fixed.png": b"old"}
        monkeypatch.setattr(uploader, "object_path", lambda *a, **k: "thumbs/fixed.png")

        with pytest.raises(UploadError):
            uploader.upload(photo, "cms", "thumbs")
        assert fake.objects["cms"]["thumbs/fixed.png"] == b"old"


class TestReplace:
    def test_upload_then_persist_then_delete_old(self, uploader, fake, photo):
        order = []

        def persist(url):
            order.append(("persist", url))
            return "saved"

        result = uploader.replace(OLD_URL, photo, "cms", "thumbs", persist, owner_id=42)

        assert result == "saved"
        kinds = [c[0] for c in fake.writes]
        assert kinds == ["upload", "remove"]
        assert order[0][1].endswith(fake.calls_of("upload")[0][2]["path"])
        assert fake.calls_of("remove")[0][2]["paths"] == ["thumbs/42_1.jpg"]

    def test_failed_upload_keeps_everything(self, uploader, fake, photo):
        fake.fail("upload", "cms")
        persisted = []

        with pytest.raises(UploadError):
            uploader.replace(OLD_URL, photo, "cms", "thumbs", persisted.append)

        assert persisted == []
        assert fake.calls_of("remove") == []

    def test_failed_persist_removes_the_new_object(self, uploader, fake, photo):
        def persist(url):
            raise BackendError("update rejected")

        with pytest.raises(BackendError):
            uploader.replace(OLD_URL, photo, "cms", "thumbs", persist, owner_id=42)

        new_path = fake.calls_of("upload")[0][2]["path"]
        assert fake.calls_of("remove")[0][2]["paths"] == [new_path]
        assert new_path != "thumbs/42_1.jpg"

    def test_no_previous_asset(self, uploader, fake, photo):
        uploader.replace(None, photo, "cms", "thumbs", lambda url: url)

        assert fake.calls_of("remove") == []


class TestDelete:
    def test_cleanup_failure_is_swallowed(self, uploader, fake):
        fake.fail("remove", "cms", "not allowed")

        assert uploader.delete_by_public_url(OLD_URL) is False

    def test_foreign_url_is_skipped(self, uploader, fake):
        assert uploader.delete_by_public_url("https://cdn.example.com/a.jpg") is False
        assert fake.calls == []
