import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from provider_directory.services.object_store import (
    FIREBASE_TOKEN_KEY,
    FirebaseObjectStore,
    LocalObjectStore,
    ObjectStoreError,
    build_object_store,
)


class FakeBlob:
    def __init__(self, bucket, name):
        self.bucket = bucket
        self.name = name
        self.metadata = None
        self.patched = False

    def upload_from_string(self, data, content_type=None):
        if self.bucket.fail_uploads:
            raise RuntimeError("503 Service Unavailable")
        self.bucket.saved[self.name] = self
        self.data = data
        self.content_type = content_type

    def patch(self):
        self.patched = True

    def delete(self):
        self.bucket.saved.pop(self.name, None)


class FakeBucket:
    name = "demo-app.appspot.com"

    def __init__(self, fail_uploads=False):
        self.saved = {}
        self.fail_uploads = fail_uploads

    def blob(self, name):
        return self.saved.get(name) or FakeBlob(self, name)

    def get_blob(self, name):
        return self.saved.get(name)


def test_firebase_store_returns_tokenised_download_url():
    bucket = FakeBucket()
    store = FirebaseObjectStore(bucket=bucket)
    store.put("provider_photos/prv_1_1_abc123_me.png", b"img", content_type="image/png")

    saved = bucket.saved["provider_photos/prv_1_1_abc123_me.png"]
    assert saved.content_type == "image/png"
    token = saved.metadata[FIREBASE_TOKEN_KEY]

    url = store.url_for("provider_photos/prv_1_1_abc123_me.png")
    assert url == (
        "https://firebasestorage.googleapis.com/v0/b/demo-app.appspot.com/o/"
        f"provider_photos%2Fprv_1_1_abc123_me.png?alt=media&token={token}"
    )


def test_firebase_store_adds_token_when_missing():
    bucket = FakeBucket()
    blob = FakeBlob(bucket, "legacy.png")
    bucket.saved["legacy.png"] = blob
    url = FirebaseObjectStore(bucket=bucket).url_for("legacy.png")
    assert blob.patched is True
    assert url.endswith(f"token={blob.metadata[FIREBASE_TOKEN_KEY]}")


def test_firebase_store_wraps_upload_errors():
    store = FirebaseObjectStore(bucket=FakeBucket(fail_uploads=True))
    with pytest.raises(ObjectStoreError, match="503"):
        store.put("k.png", b"img")


def test_firebase_store_missing_object():
    with pytest.raises(ObjectStoreError, match="not found"):
        FirebaseObjectStore(bucket=FakeBucket()).url_for("nope.png")


def test_firebase_store_without_bucket_name_fails_on_use():
    store = FirebaseObjectStore(bucket_name="")
    with pytest.raises(ObjectStoreError, match="FIREBASE_STORAGE_BUCKET"):
        store.put("k.png", b"img")


def test_local_store_round_trip(tmp_path):
    store = LocalObjectStore(str(tmp_path / "uploads"), base_url="https://api.example/")
    store.put("provider_photos/prv_1_1_abc_me photo.png", b"img")
    assert (tmp_path / "uploads" / "provider_photos" / "prv_1_1_abc_me photo.png").read_bytes() == b"img"
    assert store.url_for("provider_photos/prv_1_1_abc_me photo.png") == (
        "https://api.example/uploads/provider_photos/prv_1_1_abc_me%20photo.png"
    )
    store.delete("provider_photos/prv_1_1_abc_me photo.png")
    with pytest.raises(ObjectStoreError):
        store.url_for("provider_photos/prv_1_1_abc_me photo.png")


def test_local_store_rejects_escaping_keys(tmp_path):
    store = LocalObjectStore(str(tmp_path / "uploads"))
    with pytest.raises(ObjectStoreError):
        store.put("../outside.png", b"img")


def test_build_object_store_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path / "up"))
    monkeypatch.setenv("PHOTO_STORAGE_BACKEND", "local")
    assert build_object_store().backend_name == "local"

    monkeypatch.setenv("PHOTO_STORAGE_BACKEND", "firebase")
    monkeypatch.setenv("FIREBASE_STORAGE_BUCKET", "demo-app.appspot.com")
    assert build_object_store().backend_name == "firebase"

    monkeypatch.setenv("PHOTO_STORAGE_BACKEND", "s3")
    with pytest.raises(ValueError):
        build_object_store()
