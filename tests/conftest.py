import io
import os

import pytest
from fastapi.testclient import TestClient
from PIL import Image

import cloudinary.uploader

from main import app


class FakeBlobStore:
    def __init__(self):
        self.calls = []
        self.fail = None

    def upload(self, file, **options):
        self.calls.append({
            "file": file,
            "existed": os.path.exists(file),
            "options": options,
        })
        if self.fail is not None:
            raise self.fail
        ext = os.path.splitext(file)[1]
        return {
            "secure_url": "https://res.cloudinary.com/demo/image/upload/"
                          f"{options['folder']}/{options['public_id']}{ext}",
        }


@pytest.fixture
def paths(tmp_path, monkeypatch):
    data_file = tmp_path / "data" / "posts.json"
    upload_dir = tmp_path / "uploads"
    monkeypatch.setenv("DATA_FILE", str(data_file))
    monkeypatch.setenv("UPLOAD_DIR", str(upload_dir))
    monkeypatch.setenv("MAX_UPLOAD_MB", "1")
    monkeypatch.setenv("MAX_IMAGES", "3")
    monkeypatch.setenv("CLOUDINARY_FOLDER", "test-listings")
    monkeypatch.setenv("CLOUDINARY_CLOUD_NAME", "demo")
    return {"data_file": data_file, "upload_dir": upload_dir}


@pytest.fixture
def blob_store(monkeypatch):
    fake = FakeBlobStore()
    monkeypatch.setattr(cloudinary.uploader, "upload", fake.upload)
    return fake


@pytest.fixture
def client(paths, blob_store):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def png():
    img = Image.new("RGB", (32, 32), color=(200, 30, 30))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
