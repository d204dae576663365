"""Image ingestion: turn an uploaded file into a durable URL."""

import os
from typing import Iterable, Optional, Tuple
from urllib.parse import urljoin
from uuid import uuid4

import cloudinary.exceptions
import cloudinary.uploader
from flask import request
from werkzeug.utils import secure_filename

from .errors import StorageError, ValidationError


def file_extension(filename: str) -> str:
    return os.path.splitext(filename)[1].lower().lstrip(".")


def check_upload(image_file, allowed_extensions: Iterable[str]) -> str:
    if not image_file or not getattr(image_file, "filename", ""):
        raise ValidationError("Image required")

    original_filename = secure_filename(image_file.filename)
    if not original_filename:
        raise ValidationError("Please choose a valid file name.")

    allowed = {extension.lower() for extension in allowed_extensions}
    if file_extension(original_filename) not in allowed:
        formats = ", ".join(sorted(extension.upper() for extension in allowed))
        raise ValidationError(f"Unsupported image format. Upload {formats} files.")
    return original_filename


class LocalImageStorage:
    """Keeps images on disk and serves them from ``/uploads``."""

    def __init__(self, folder: str, allowed_extensions: Iterable[str]):
        self.folder = folder
        self.allowed_extensions = list(allowed_extensions)
        os.makedirs(self.folder, exist_ok=True)

    def save(self, image_file) -> Tuple[str, str]:
        original_filename = check_upload(image_file, self.allowed_extensions)
        unique_filename = f"{uuid4().hex}.{file_extension(original_filename)}"
        destination = os.path.join(self.folder, unique_filename)

        try:
            image_file.save(destination)
        except OSError as exc:
            raise StorageError(
                "We could not store the uploaded image. Please try again."
            ) from exc

        return urljoin(request.host_url, f"uploads/{unique_filename}"), unique_filename

    def delete(self, key: Optional[str]) -> None:
        if not key:
            return
        target = os.path.join(self.folder, os.path.basename(str(key)))
        try:
            os.remove(target)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageError() from exc


class CloudinaryImageStorage:
    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        folder: str = "products",
        allowed_extensions: Iterable[str] = ("jpg", "png", "jpeg"),
    ):
        self.credentials = {
            "cloud_name": cloud_name,
            "api_key": api_key,
            "api_secret": api_secret,
        }
        self.folder = folder
        self.allowed_extensions = list(allowed_extensions)

    def save(self, image_file) -> Tuple[str, str]:
        check_upload(image_file, self.allowed_extensions)
        try:
            result = cloudinary.uploader.upload(
                image_file.stream,
                folder=self.folder,
                resource_type="image",
                allowed_formats=self.allowed_extensions,
                secure=True,
                **self.credentials,
            )
        except cloudinary.exceptions.Error as exc:
            raise StorageError(
                "We could not store the uploaded image. Please try again."
            ) from exc

        return result["secure_url"], result["public_id"]

    def delete(self, key: Optional[str]) -> None:
        if not key:
            return
        try:
            cloudinary.uploader.destroy(key, resource_type="image", **self.credentials)
        except cloudinary.exceptions.Error as exc:
            raise StorageError() from exc


def build_image_storage(config, root_path: str):
    if config.image_storage == "cloudinary":
        return CloudinaryImageStorage(
            config.cloudinary_cloud_name,
            config.cloudinary_api_key,
            config.cloudinary_api_secret,
            folder=config.cloudinary_folder,
            allowed_extensions=config.allowed_image_extensions,
        )

    folder = config.upload_folder or os.path.join(root_path, "uploads")
    return LocalImageStorage(folder, config.allowed_image_extensions)
