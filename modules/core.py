# modules/core.py
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.templating import Jinja2Templates

import logging, os, secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from dotenv import load_dotenv, find_dotenv

import cloudinary

logger = logging.getLogger(__name__)


# ======================
# time / ids
# ======================
def utcnow_iso() -> str:
    # 2026-10-19T12:00:00.123Z
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def generate_id(length: int = 8) -> str:
    return secrets.token_hex((length + 1) // 2)[:length]


def fmt_datetime(value: Any) -> str:
    if not value:
        return ""
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return ""
    return dt.strftime("%Y-%m-%d %H:%M")


def fmt_price(value: Any) -> str:
    try:
        return f"{float(value):,.2f}"
    except (TypeError, ValueError):
        return ""


# ======================
# errors
# ======================
class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse({"ok": False, "error": exc.message}, status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse({"ok": False, "error": f"Invalid request: {message}"}, status_code=422)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"ok": False, "error": "Internal server error"}, status_code=500)


# ======================
# settings
# ======================
@dataclass
class Settings:
    data_file: str
    upload_dir: str
    max_upload_bytes: int
    max_images: int
    cloudinary_folder: str
    log_level: str
    host: str
    port: int


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None


def load_settings() -> Settings:
    # .env never overrides variables already set in the environment
    load_dotenv(find_dotenv(usecwd=True))
    return Settings(
        data_file=os.environ.get("DATA_FILE") or os.path.join("data", "posts.json"),
        upload_dir=os.environ.get("UPLOAD_DIR") or "uploads",
        max_upload_bytes=_env_int("MAX_UPLOAD_MB", 5) * 1024 * 1024,
        max_images=_env_int("MAX_IMAGES", 10),
        cloudinary_folder=os.environ.get("CLOUDINARY_FOLDER") or "listings",
        log_level=(os.environ.get("LOG_LEVEL") or "INFO").upper(),
        host=os.environ.get("HOST") or "0.0.0.0",
        port=_env_int("PORT", 7860),
    )


# ======================
# logging
# ======================
def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ======================
# Cloudinary
# ======================
def init_cloudinary():
    # the SDK reads CLOUDINARY_URL at import time, before .env is loaded
    if os.environ.get("CLOUDINARY_URL"):
        cloudinary.reset_config()

    options = {
        "cloud_name": os.environ.get("CLOUDINARY_CLOUD_NAME"),
        "api_key": os.environ.get("CLOUDINARY_API_KEY"),
        "api_secret": os.environ.get("CLOUDINARY_API_SECRET"),
    }
    # only explicit values, so CLOUDINARY_URL is not clobbered with None
    cloudinary.config(secure=True, **{k: v for k, v in options.items() if v})

    if not cloudinary.config().cloud_name:
        logger.warning("Cloudinary is not configured; image uploads will fail")


# ======================
# Jinja init
# ======================
def init_jinja(templates: Jinja2Templates):
    templates.env.filters["datetime"] = fmt_datetime
    templates.env.filters["price"] = fmt_price


# ======================
# app init
# ======================
def init_app(app: FastAPI, templates: Jinja2Templates, settings: Optional[Settings] = None):
    settings = settings or load_settings()
    os.makedirs(settings.upload_dir, exist_ok=True)
    init_cloudinary()
    init_jinja(templates)
    app.state.settings = settings
    app.state.templates = templates
    return settings
