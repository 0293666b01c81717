import logging
import os
import random
import time

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
from fastapi import HTTPException, UploadFile

from .. import config

logger = logging.getLogger(__name__)

IMAGE_FORMATS = ["jpg", "jpeg", "png", "gif", "webp"]
VIDEO_FORMATS = ["mp4", "mov", "avi", "webm", "mkv"]
DOCUMENT_TYPES = [
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
]

if config.cloudinary_enabled():
    cloudinary.config(
        cloud_name=config.CLOUDINARY_CLOUD_NAME,
        api_key=config.CLOUDINARY_API_KEY,
        api_secret=config.CLOUDINARY_API_SECRET,
    )
    logger.info(f"Cloudinary configured for cloud {config.CLOUDINARY_CLOUD_NAME}")
else:
    logger.info("Cloudinary not configured - using local storage")


def resource_type_for(content_type):
    content_type = content_type or ""
    if content_type.startswith("image/"):
        return "image"
    if content_type.startswith("video/"):
        return "video"
    if content_type in DOCUMENT_TYPES:
        return "raw"
    return None


def _file_size(file: UploadFile):
    file.file.seek(0, 2)
    size = file.file.tell()
    file.file.seek(0)
    return size


def _unique_name(prefix):
    return f"{prefix}-{int(time.time() * 1000)}-{random.randint(0, 10**9)}"


async def save_upload(file: UploadFile, field="file", only=None):
    """Store an uploaded file and return its public URL.

    ``only`` restricts the accepted resource type ("image" or "video").
    Cloudinary is used when configured, otherwise the file is written under
    ``UPLOAD_DIR`` and served from ``/uploads``.
    """
    resource_type = resource_type_for(file.content_type)
    if resource_type is None:
        raise HTTPException(
            status_code=400,
            detail="File type not allowed. Only images, videos, PDFs, and documents are allowed",
        )
    if only and resource_type != only:
        raise HTTPException(status_code=400, detail=f"Only {only} files are allowed")

    if _file_size(file) > config.MAX_FILE_SIZE:
        max_mb = round(config.MAX_FILE_SIZE / (1024 * 1024))
        raise HTTPException(status_code=400, detail=f"File too large. Max {max_mb}MB allowed.")

    if config.cloudinary_enabled():
        return _upload_to_cloudinary(file, resource_type)
    return await _save_locally(file, field)


def _upload_to_cloudinary(file: UploadFile, resource_type):
    folder = {
        "image": f"{config.CLOUDINARY_FOLDER}/images",
        "video": f"{config.CLOUDINARY_FOLDER}/videos",
    }.get(resource_type, f"{config.CLOUDINARY_FOLDER}/documents")

    options = {
        "folder": folder,
        "resource_type": resource_type,
        "public_id": _unique_name("upload"),
    }
    if resource_type == "image":
        options["allowed_formats"] = IMAGE_FORMATS
        options["transformation"] = [{"width": 1920, "height": 1080, "crop": "limit", "quality": "auto"}]
    elif resource_type == "video":
        options["allowed_formats"] = VIDEO_FORMATS
        options["transformation"] = [{"quality": "auto", "fetch_format": "auto"}]

    try:
        result = cloudinary.uploader.upload(file.file, **options)
    except cloudinary.exceptions.Error as e:
        raise HTTPException(status_code=500, detail=f"Cloudinary upload failed: {str(e)}")

    logger.info(f"Uploaded {resource_type} to Cloudinary: {result['public_id']}")
    return result["secure_url"]


async def _save_locally(file: UploadFile, field):
    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    extension = os.path.splitext(file.filename or "")[1]
    filename = f"{_unique_name(field)}{extension}"

    content = await file.read()
    with open(os.path.join(config.UPLOAD_DIR, filename), "wb") as f:
        f.write(content)

    return f"/uploads/{filename}"


def extract_public_id(url):
    """Public id of a Cloudinary delivery URL, folders included, without extension.

    ``https://res.cloudinary.com/demo/image/upload/v17/posts/abc.jpg`` gives
    ``posts/abc``. The version segment is not part of the public id.
    """
    if not url or "cloudinary.com" not in url:
        return None

    parts = url.split("/")
    if "upload" not in parts:
        return None

    after_upload = parts[parts.index("upload") + 1:]
    if after_upload and after_upload[0].startswith("v") and after_upload[0][1:].isdigit():
        after_upload = after_upload[1:]
    if not after_upload:
        return None

    after_upload[-1] = after_upload[-1].rsplit(".", 1)[0]
    return "/".join(after_upload)


def delete_upload(url):
    """Remove a stored file. Returns True when something was deleted."""
    if not url:
        return False

    if url.startswith("/uploads/"):
        path = os.path.join(config.UPLOAD_DIR, url[len("/uploads/"):])
        if os.path.exists(path):
            os.remove(path)
            return True
        return False

    public_id = extract_public_id(url)
    if public_id is None or not config.cloudinary_enabled():
        return False

    resource_type = "image"
    if "/video/" in url:
        resource_type = "video"
    elif "/raw/" in url:
        resource_type = "raw"

    try:
        result = cloudinary.uploader.destroy(public_id, resource_type=resource_type)
    except cloudinary.exceptions.Error as e:
        logger.error(f"Failed to delete {public_id} from Cloudinary: {e}")
        return False
    return result.get("result") == "ok"


def generate_thumbnail_url(url, width=300, height=200):
    """Cloudinary thumbnail URL for ``url``; other URLs are returned unchanged."""
    if url and "res.cloudinary.com" in url:
        parts = url.split("/upload/")
        if len(parts) == 2:
            return f"{parts[0]}/upload/w_{width},h_{height},c_fill/{parts[1]}"

    return url
