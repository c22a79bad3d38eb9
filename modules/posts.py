# modules/posts.py
from fastapi import APIRouter, Request, Form, UploadFile, File
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

import logging, math
from typing import List, Optional

from modules.core import ApiError
from modules.store import PostStore, Post
from modules.uploads import publish_uploads

logger = logging.getLogger(__name__)

router = APIRouter()


class CommentIn(BaseModel):
    text: Optional[str] = None


def get_store(request: Request) -> PostStore:
    return request.app.state.store


# ======================
# post create (shared by admin form and API)
# ======================
def parse_price(price: str) -> float:
    try:
        value = float(price)
    except (TypeError, ValueError):
        raise ApiError(400, "Price must be a number!") from None
    if not math.isfinite(value):
        raise ApiError(400, "Price must be a number!")
    return value


async def create_post(
    request: Request,
    images: Optional[List[UploadFile]],
    image: Optional[UploadFile],
    caption: str,
    price: str,
) -> Post:
    settings = request.app.state.settings

    # browsers send an empty part when no file was picked
    files = [f for f in list(images or []) + [image] if f is not None and f.filename]
    if not files:
        raise ApiError(400, "Please select an image file!")
    if len(files) > settings.max_images:
        raise ApiError(400, f"Too many images! Maximum is {settings.max_images}.")

    caption = (caption or "").strip()
    price = (price or "").strip()
    if not caption or not price:
        raise ApiError(400, "Please fill in all fields!")
    value = parse_price(price)

    urls = await publish_uploads(files, settings)
    return await run_in_threadpool(get_store(request).add_post, urls, caption, value)


# ======================
# pages
# ======================
@router.get("/", response_class=HTMLResponse)
def index(request: Request):
    posts = get_store(request).list_posts()
    return request.app.state.templates.TemplateResponse(request, "index.html", {
        "posts": posts,
    })


@router.get("/admin", response_class=HTMLResponse)
def admin(request: Request):
    return request.app.state.templates.TemplateResponse(request, "admin.html", {
        "message": None,
        "ok": None,
    })


@router.post("/admin/upload", response_class=HTMLResponse)
async def admin_upload(
    request: Request,
    images: List[UploadFile] = File(None),
    image: UploadFile = File(None),
    caption: str = Form(""),
    price: str = Form(""),
):
    templates = request.app.state.templates
    try:
        await create_post(request, images, image, caption, price)
    except ApiError as e:
        return templates.TemplateResponse(request, "admin.html", {
            "message": e.message,
            "ok": False,
        }, status_code=e.status_code)
    except Exception:
        logger.exception("Admin upload failed")
        return templates.TemplateResponse(request, "admin.html", {
            "message": "Error uploading listing. Please try again.",
            "ok": False,
        }, status_code=500)

    return templates.TemplateResponse(request, "admin.html", {
        "message": "Listing posted successfully!",
        "ok": True,
    })


# ======================
# posts API
# ======================
@router.get("/api/posts")
def api_posts(request: Request):
    return get_store(request).list_posts()


@router.post("/api/upload", status_code=201)
async def api_upload(
    request: Request,
    images: List[UploadFile] = File(None),
    image: UploadFile = File(None),
    caption: str = Form(""),
    price: str = Form(""),
):
    return await create_post(request, images, image, caption, price)


# ======================
# like API
# ======================
@router.post("/api/like/{post_id}")
def api_like(post_id: str, request: Request):
    likes = get_store(request).like_post(post_id)
    return JSONResponse({"ok": True, "id": post_id, "likes": likes})


# ======================
# comments API
# ======================
@router.get("/api/comments/{post_id}")
def api_comments(post_id: str, request: Request):
    return get_store(request).list_comments(post_id)


@router.post("/api/comments/{post_id}", status_code=201)
def api_add_comment(post_id: str, request: Request, payload: Optional[CommentIn] = None):
    text = ((payload.text if payload else None) or "").strip()
    if not text:
        raise ApiError(400, "Comment text is required!")
    return get_store(request).add_comment(post_id, text)
