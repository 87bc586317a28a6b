import logging
import re
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable
from uuid import uuid4

from provider_directory.auth import Principal
from provider_directory.services.object_store import DEFAULT_CONTENT_TYPE, ObjectStore, ObjectStoreError
from provider_directory.services.provider_store import (
    DirectoryNotFoundError,
    DirectoryValidationError,
    ProviderStore,
)

logger = logging.getLogger(__name__)

PHOTO_KEY_PREFIX = "provider_photos"
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass(frozen=True)
class PhotoPayload:
    filename: str
    data: bytes
    content_type: str = DEFAULT_CONTENT_TYPE


def sanitize_filename(filename: str) -> str:
    base = PurePosixPath((filename or "").replace("\\", "/")).name
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", base).lstrip(".")
    return cleaned or "photo"


class PhotoUploadPipeline:
    """Stores a provider's display photo and records its URL on the profile.

    The object write and the URL lookup run strictly in that order. The
    provider row is only touched once both have succeeded, so any storage
    failure leaves the previous photo in place.
    """

    def __init__(
        self,
        repository: ProviderStore,
        object_store: ObjectStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.repository = repository
        self.object_store = object_store
        self.clock = clock

    def build_key(self, provider_id: str, filename: str) -> str:
        timestamp_ms = int(self.clock() * 1000)
        return f"{PHOTO_KEY_PREFIX}/{provider_id}_{timestamp_ms}_{uuid4().hex[:6]}_{sanitize_filename(filename)}"

    def upload(self, principal: Principal, payload: PhotoPayload) -> str:
        provider = self.repository.get_by_owner(principal.user_id)
        if provider is None:
            logger.info("Provider not found for user %s", principal.user_id)
            raise DirectoryNotFoundError("Provider profile not found")
        if not payload.data:
            raise DirectoryValidationError("Uploaded photo is empty")

        key = self.build_key(provider.id, payload.filename)
        try:
            self.object_store.put(key, payload.data, content_type=payload.content_type or DEFAULT_CONTENT_TYPE)
        except Exception as exc:
            raise self._storage_failure(provider.id, exc) from exc
        try:
            photo_url = self.object_store.url_for(key)
        except Exception as exc:
            self._discard(key)
            raise self._storage_failure(provider.id, exc) from exc

        try:
            self.repository.set_photo(provider.id, photo_url)
        except Exception:
            self._discard(key)
            raise

        logger.info("Photo uploaded for provider %s: %s", provider.id, photo_url)
        return photo_url

    def _storage_failure(self, provider_id: str, exc: Exception) -> ObjectStoreError:
        logger.warning("Photo storage failed for provider %s: %s", provider_id, exc)
        return ObjectStoreError(f"Photo upload failed: {exc}")

    def _discard(self, key: str) -> None:
        try:
            self.object_store.delete(key)
        except Exception:
            logger.warning("Could not remove orphaned photo %s", key, exc_info=True)
