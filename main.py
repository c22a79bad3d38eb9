from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

import logging
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn

from modules.core import (
    ApiError,
    api_error_handler,
    validation_error_handler,
    unhandled_error_handler,
    load_settings,
    setup_logging,
    init_app,
)
from modules.store import PostStore
from modules import posts

logger = logging.getLogger("main")

BASE_DIR = Path(__file__).resolve().parent

templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))


# ======================
# startup
# ======================
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = load_settings()
    setup_logging(settings.log_level)
    init_app(app, templates, settings)
    app.state.store = PostStore(settings.data_file)
    logger.info(
        "Listings backend ready: data=%s uploads=%s folder=%s",
        settings.data_file, settings.upload_dir, settings.cloudinary_folder,
    )
    yield


app = FastAPI(title="Listings", lifespan=lifespan)

# ======================
# static
# ======================
app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")

app.add_exception_handler(ApiError, api_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

app.include_router(posts.router)


def run():
    settings = load_settings()
    uvicorn.run("main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
