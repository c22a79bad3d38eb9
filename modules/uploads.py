# modules/uploads.py
from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

import logging, os, re, secrets, time
from typing import List, Optional

import cloudinary.uploader

from modules.core import ApiError, Settings

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = re.compile(r"jpeg|jpg|png|gif|webp")


# ======================
# validation
# ======================
def is_allowed_image(filename: Optional[str], content_type: Optional[str]) -> bool:
    ext = os.path.splitext(filename or "")[1].lower()
    return bool(ALLOWED_IMAGE_TYPES.search(ext)) and bool(ALLOWED_IMAGE_TYPES.search(content_type or ""))


# ======================
# temp files
# ======================
async def save_temp_upload(upload: UploadFile, upload_dir: str, max_bytes: int) -> str:
    content = await upload.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise ApiError(413, f"File too large! Maximum size is {max_bytes // (1024 * 1024)}MB.")

    ext = os.path.splitext(upload.filename or "")[1].lower()
    name = f"upload-{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{ext}"
    path = os.path.join(upload_dir, name)

    os.makedirs(upload_dir, exist_ok=True)
    with open(path, "wb") as f:
        f.write(content)
    return path


def remove_quietly(path: str):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.warning("Could not delete temporary upload %s", path, exc_info=True)


# ======================
# Cloudinary
# ======================
def upload_to_blob_store(file_path: str, folder: str) -> str:
    if not os.path.exists(file_path):
        raise ApiError(404, f"File not found at '{file_path}'")

    public_id = secrets.token_hex(4)
    try:
        result = cloudinary.uploader.upload(
            file_path,
            folder=folder,
            public_id=public_id,
            resource_type="image",
            overwrite=False,
        )
        return result["secure_url"]
    except Exception as e:
        logger.exception("Upload of %s to Cloudinary failed", file_path)
        raise ApiError(500, f"Upload failed: {e}") from e


async def publish_uploads(uploads: List[UploadFile], settings: Settings) -> List[str]:
    for upload in uploads:
        if not is_allowed_image(upload.filename, upload.content_type):
            raise ApiError(400, "Only image files are allowed!")

    temp_paths: List[str] = []
    try:
        for upload in uploads:
            temp_paths.append(
                await save_temp_upload(upload, settings.upload_dir, settings.max_upload_bytes)
            )

        urls = []
        for path in temp_paths:
            urls.append(await run_in_threadpool(upload_to_blob_store, path, settings.cloudinary_folder))
        return urls
    finally:
        for path in temp_paths:
            remove_quietly(path)
