import os
import re
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from provider_directory.auth import Principal
from provider_directory.services.object_store import ObjectStore, ObjectStoreError
from provider_directory.services.photo_upload import PhotoPayload, PhotoUploadPipeline, sanitize_filename
from provider_directory.services.provider_store import (
    DirectoryNotFoundError,
    DirectoryUpstreamError,
    DirectoryValidationError,
    ProviderStore,
)


class MemoryObjectStore(ObjectStore):
    backend_name = "memory"

    def __init__(self, fail_on=None):
        self.objects = {}
        self.calls = []
        self.fail_on = fail_on

    def put(self, key, data, content_type="application/octet-stream"):
        self.calls.append(("put", key))
        if self.fail_on == "put":
            raise ObjectStoreError("quota exceeded")
        self.objects[key] = (data, content_type)

    def url_for(self, key):
        self.calls.append(("url_for", key))
        if self.fail_on == "url_for":
            raise ObjectStoreError("signing failed")
        return f"https://storage.example/{key}"

    def delete(self, key):
        self.calls.append(("delete", key))
        self.objects.pop(key, None)


class UndeletableObjectStore(MemoryObjectStore):
    def delete(self, key):
        self.calls.append(("delete", key))
        raise ObjectStoreError("permission denied")


class BrokenPhotoStore(ProviderStore):
    def set_photo(self, provider_id, photo_url):
        raise DirectoryUpstreamError("database is locked")


OWNER = Principal(user_id="owner_1", name="Olive")
PAYLOAD = PhotoPayload(filename="me.png", data=b"\x89PNG-data", content_type="image/png")


@pytest.fixture
def store(tmp_path):
    return ProviderStore(db_path=str(tmp_path / "photos.sqlite3"))


def test_upload_without_profile_never_touches_storage(store):
    objects = MemoryObjectStore()
    pipeline = PhotoUploadPipeline(repository=store, object_store=objects)
    with pytest.raises(DirectoryNotFoundError):
        pipeline.upload(OWNER, PAYLOAD)
    assert objects.calls == []


def test_upload_writes_then_resolves_url_then_persists(store):
    provider = store.upsert_profile(owner_user_id=OWNER.user_id, name=OWNER.name)
    objects = MemoryObjectStore()
    pipeline = PhotoUploadPipeline(repository=store, object_store=objects, clock=lambda: 1700000000.5)

    url = pipeline.upload(OWNER, PAYLOAD)

    assert [call[0] for call in objects.calls] == ["put", "url_for"]
    key = objects.calls[0][1]
    assert re.fullmatch(rf"provider_photos/{provider.id}_1700000000500_[0-9a-f]{{6}}_me\.png", key)
    assert objects.objects[key] == (PAYLOAD.data, "image/png")
    assert url == f"https://storage.example/{key}"
    assert store.get(provider.id).photo == url


@pytest.mark.parametrize("fail_on", ["put", "url_for"])
def test_storage_failure_leaves_previous_photo(store, fail_on):
    provider = store.upsert_profile(owner_user_id=OWNER.user_id, name=OWNER.name)
    store.set_photo(provider.id, "https://storage.example/old.png")
    pipeline = PhotoUploadPipeline(repository=store, object_store=MemoryObjectStore(fail_on=fail_on))

    with pytest.raises(ObjectStoreError, match="Photo upload failed"):
        pipeline.upload(OWNER, PAYLOAD)
    assert store.get(provider.id).photo == "https://storage.example/old.png"


def test_url_failure_discards_stored_object(store):
    store.upsert_profile(owner_user_id=OWNER.user_id, name=OWNER.name)
    objects = MemoryObjectStore(fail_on="url_for")
    pipeline = PhotoUploadPipeline(repository=store, object_store=objects)

    with pytest.raises(ObjectStoreError, match="Photo upload failed: signing failed"):
        pipeline.upload(OWNER, PAYLOAD)
    assert [call[0] for call in objects.calls] == ["put", "url_for", "delete"]
    assert objects.objects == {}


def test_cleanup_failure_does_not_mask_storage_error(store):
    provider = store.upsert_profile(owner_user_id=OWNER.user_id, name=OWNER.name)
    objects = UndeletableObjectStore(fail_on="url_for")
    pipeline = PhotoUploadPipeline(repository=store, object_store=objects)

    with pytest.raises(ObjectStoreError, match="Photo upload failed: signing failed"):
        pipeline.upload(OWNER, PAYLOAD)
    assert [call[0] for call in objects.calls] == ["put", "url_for", "delete"]
    assert store.get(provider.id).photo is None


def test_persist_failure_discards_stored_object(tmp_path):
    store = BrokenPhotoStore(db_path=str(tmp_path / "broken.sqlite3"))
    store.upsert_profile(owner_user_id=OWNER.user_id, name=OWNER.name)
    objects = MemoryObjectStore()
    pipeline = PhotoUploadPipeline(repository=store, object_store=objects)

    with pytest.raises(DirectoryUpstreamError, match="database is locked"):
        pipeline.upload(OWNER, PAYLOAD)
    assert [call[0] for call in objects.calls] == ["put", "url_for", "delete"]
    assert objects.objects == {}


def test_empty_payload_is_rejected(store):
    store.upsert_profile(owner_user_id=OWNER.user_id, name=OWNER.name)
    objects = MemoryObjectStore()
    pipeline = PhotoUploadPipeline(repository=store, object_store=objects)
    with pytest.raises(DirectoryValidationError):
        pipeline.upload(OWNER, PhotoPayload(filename="empty.png", data=b""))
    assert objects.calls == []


def test_keys_differ_for_same_provider_in_same_instant(store):
    pipeline = PhotoUploadPipeline(repository=store, object_store=MemoryObjectStore(), clock=lambda: 42.0)
    assert pipeline.build_key("prv_1", "a.png") != pipeline.build_key("prv_1", "a.png")
    assert pipeline.build_key("prv_1", "a.png").startswith("provider_photos/prv_1_42000_")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("portrait.jpg", "portrait.jpg"),
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\me\\My Photo.png", "My_Photo.png"),
        ("", "photo"),
        (".hidden", "hidden"),
    ],
)
def test_sanitize_filename(raw, expected):
    assert sanitize_filename(raw) == expected
