import logging
import os
from pathlib import Path
from threading import Lock
from typing import Any, Optional
from urllib.parse import quote
from uuid import uuid4

from provider_directory.services.provider_store import DirectoryUpstreamError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
FIREBASE_TOKEN_KEY = "firebaseStorageDownloadTokens"


class ObjectStoreError(DirectoryUpstreamError):
    pass


class ObjectStore:
    """Blob storage that hands back a retrievable URL for each stored key."""

    backend_name = "base"

    def put(self, key: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE) -> None:
        raise NotImplementedError

    def url_for(self, key: str) -> str:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class FirebaseObjectStore(ObjectStore):
    """Firebase Storage backend.

    The Admin SDK is initialised lazily on first use. Objects carry a
    download token in their metadata, and ``url_for`` returns the same
    tokenised ``firebasestorage.googleapis.com`` URL the client SDKs'
    ``getDownloadURL`` produces.
    """

    backend_name = "firebase"

    def __init__(self, bucket_name: str = "", credentials_path: str = "", bucket: Any = None):
        self._lock = Lock()
        self._bucket_name = bucket_name.strip()
        self._credentials_path = credentials_path.strip()
        self._bucket = bucket

    def _ensure_bucket(self) -> Any:
        if self._bucket is not None:
            return self._bucket
        with self._lock:
            if self._bucket is not None:
                return self._bucket
            if not self._bucket_name:
                raise ObjectStoreError("Firebase storage disabled: FIREBASE_STORAGE_BUCKET not set")
            try:
                import firebase_admin
                from firebase_admin import credentials, storage

                if not firebase_admin._apps:  # pylint: disable=protected-access
                    cred = (
                        credentials.Certificate(self._credentials_path)
                        if self._credentials_path
                        else credentials.ApplicationDefault()
                    )
                    firebase_admin.initialize_app(cred, {"storageBucket": self._bucket_name})
                self._bucket = storage.bucket(self._bucket_name)
            except Exception as exc:
                logger.exception("Firebase storage init failed")
                raise ObjectStoreError(f"Firebase storage unavailable: {exc}") from exc
            logger.info("Firebase storage initialized for bucket %s", self._bucket_name)
        return self._bucket

    def _bucket_label(self, bucket: Any) -> str:
        return getattr(bucket, "name", None) or self._bucket_name

    def put(self, key: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE) -> None:
        bucket = self._ensure_bucket()
        try:
            blob = bucket.blob(key)
            blob.metadata = {FIREBASE_TOKEN_KEY: uuid4().hex}
            blob.upload_from_string(data, content_type=content_type)
        except Exception as exc:
            raise ObjectStoreError(f"Failed to store {key}: {exc}") from exc

    def url_for(self, key: str) -> str:
        bucket = self._ensure_bucket()
        try:
            blob = bucket.get_blob(key)
            if blob is None:
                raise ObjectStoreError(f"Stored object {key} not found")
            token = (blob.metadata or {}).get(FIREBASE_TOKEN_KEY)
            if not token:
                token = uuid4().hex
                blob.metadata = {**(blob.metadata or {}), FIREBASE_TOKEN_KEY: token}
                blob.patch()
        except ObjectStoreError:
            raise
        except Exception as exc:
            raise ObjectStoreError(f"Failed to resolve URL for {key}: {exc}") from exc
        # Multiple comma-separated tokens are allowed; any of them works.
        token = str(token).split(",")[0]
        return (
            f"https://firebasestorage.googleapis.com/v0/b/{self._bucket_label(bucket)}/o/"
            f"{quote(key, safe='')}?alt=media&token={token}"
        )

    def delete(self, key: str) -> None:
        bucket = self._ensure_bucket()
        try:
            bucket.blob(key).delete()
        except Exception as exc:
            raise ObjectStoreError(f"Failed to delete {key}: {exc}") from exc


class LocalObjectStore(ObjectStore):
    """Writes objects under a directory that the app serves at ``url_prefix``."""

    backend_name = "local"

    def __init__(self, root_dir: str, base_url: str = "", url_prefix: str = "/uploads"):
        self.root_dir = Path(root_dir).resolve()
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/")
        self.url_prefix = "/" + url_prefix.strip("/")

    def _path_for(self, key: str) -> Path:
        path = (self.root_dir / key).resolve()
        if self.root_dir not in path.parents:
            raise ObjectStoreError(f"Invalid object key: {key}")
        return path

    def put(self, key: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE) -> None:
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise ObjectStoreError(f"Failed to store {key}: {exc}") from exc

    def url_for(self, key: str) -> str:
        if not self._path_for(key).is_file():
            raise ObjectStoreError(f"Stored object {key} not found")
        return f"{self.base_url}{self.url_prefix}/{quote(key)}"

    def delete(self, key: str) -> None:
        try:
            self._path_for(key).unlink(missing_ok=True)
        except OSError as exc:
            raise ObjectStoreError(f"Failed to delete {key}: {exc}") from exc


def default_uploads_dir() -> str:
    fallback = Path(__file__).resolve().parents[2] / "data" / "uploads"
    return os.getenv("UPLOADS_DIR", str(fallback))


def build_object_store(backend: Optional[str] = None) -> ObjectStore:
    name = (backend or os.getenv("PHOTO_STORAGE_BACKEND", "local")).strip().lower()
    if name == "firebase":
        return FirebaseObjectStore(
            bucket_name=os.getenv("FIREBASE_STORAGE_BUCKET", ""),
            credentials_path=os.getenv("FIREBASE_CREDENTIALS_PATH", ""),
        )
    if name == "local":
        return LocalObjectStore(default_uploads_dir(), base_url=os.getenv("PUBLIC_BASE_URL", ""))
    raise ValueError(f"Unknown PHOTO_STORAGE_BACKEND: {name}. Allowed: local, firebase")
