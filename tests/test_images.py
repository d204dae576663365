import io
import os

import cloudinary.exceptions
import cloudinary.uploader
import pytest
from werkzeug.datastructures import FileStorage

from storefront import create_app
from storefront.errors import StorageError, ValidationError
from storefront.images import (
    CloudinaryImageStorage,
    LocalImageStorage,
    build_image_storage,
)


def upload(filename="shirt.png", content=b"image bytes"):
    return FileStorage(stream=io.BytesIO(content), filename=filename)


class TestLocalImageStorage:
    @pytest.fixture
    def storage(self, tmp_path):
        return LocalImageStorage(str(tmp_path / "uploads"), ["png", "jpg"])

    def test_save_writes_file_and_returns_url(self, app, storage):
        with app.test_request_context("/addproduct", base_url="http://shop.test/"):
            url, key = storage.save(upload())

        assert url == f"http://shop.test/uploads/{key}"
        assert key.endswith(".png")
        with open(os.path.join(storage.folder, key), "rb") as stored:
            assert stored.read() == b"image bytes"

    def test_save_rejects_missing_file(self, app, storage):
        with app.test_request_context("/addproduct"):
            with pytest.raises(ValidationError, match="Image required"):
                storage.save(None)

    def test_save_rejects_unknown_extension(self, app, storage):
        with app.test_request_context("/addproduct"):
            with pytest.raises(ValidationError):
                storage.save(upload("notes.txt"))

    def test_delete_removes_file(self, app, storage):
        with app.test_request_context("/addproduct"):
            _, key = storage.save(upload())

        storage.delete(key)

        assert not os.path.exists(os.path.join(storage.folder, key))

    def test_delete_missing_file_is_ignored(self, storage):
        storage.delete("missing.png")
        storage.delete(None)

    def test_uploaded_files_are_served(self, config, db, tmp_path):
        config.upload_folder = str(tmp_path / "served")
        app = create_app(config, db=db)
        client = app.test_client()
        with open(os.path.join(config.upload_folder, "shirt.png"), "wb") as target:
            target.write(b"png")

        response = client.get("/uploads/shirt.png")

        assert response.status_code == 200
        assert response.data == b"png"


class TestCloudinaryImageStorage:
    @pytest.fixture
    def storage(self):
        return CloudinaryImageStorage("demo", "key", "api-secret", folder="products")

    def test_save_uploads_to_folder(self, monkeypatch, storage):
        calls = []

        def fake_upload(file, **options):
            calls.append(options)
            return {
                "secure_url": "https://res.cloudinary.com/demo/image/upload/products/abc.png",
                "public_id": "products/abc",
            }

        monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)

        url, key = storage.save(upload())

        assert url == "https://res.cloudinary.com/demo/image/upload/products/abc.png"
        assert key == "products/abc"
        assert calls[0]["folder"] == "products"
        assert calls[0]["cloud_name"] == "demo"
        assert calls[0]["api_key"] == "key"

    def test_save_wraps_provider_errors(self, monkeypatch, storage):
        def failing_upload(file, **options):
            raise cloudinary.exceptions.Error("boom")

        monkeypatch.setattr(cloudinary.uploader, "upload", failing_upload)

        with pytest.raises(StorageError):
            storage.save(upload())

    def test_delete_destroys_public_id(self, monkeypatch, storage):
        destroyed = []
        monkeypatch.setattr(
            cloudinary.uploader,
            "destroy",
            lambda public_id, **options: destroyed.append(public_id),
        )

        storage.delete("products/abc")

        assert destroyed == ["products/abc"]


class TestBuildImageStorage:
    def test_local_defaults_to_app_uploads(self, config, tmp_path):
        storage = build_image_storage(config, str(tmp_path))

        assert isinstance(storage, LocalImageStorage)
        assert storage.folder == os.path.join(str(tmp_path), "uploads")

    def test_cloudinary(self, config):
        config.image_storage = "cloudinary"
        config.cloudinary_cloud_name = "demo"

        storage = build_image_storage(config, "/unused")

        assert isinstance(storage, CloudinaryImageStorage)
        assert storage.credentials["cloud_name"] == "demo"
