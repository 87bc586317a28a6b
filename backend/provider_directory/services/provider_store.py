import json
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Iterator, List, Optional
from uuid import uuid4

from provider_directory.models import Provider
from provider_directory.services.search import ProviderSearchFilter

REFERENCE_COLUMNS = {
    "service": "service_ids_json",
    "review": "review_ids_json",
}


class DirectoryError(Exception):
    """Base class for user-visible directory errors."""


class DirectoryValidationError(DirectoryError):
    pass


class DirectoryNotFoundError(DirectoryError):
    pass


class DirectoryUpstreamError(DirectoryError):
    """A repository or object-store call failed."""


def default_db_path() -> str:
    fallback = Path(__file__).resolve().parents[2] / "data" / "directory.sqlite3"
    return os.getenv("DIRECTORY_DB_PATH", str(fallback))


def _safe_json_list(raw: Optional[str]) -> List[str]:
    try:
        value = json.loads(raw or "[]")
    except (TypeError, ValueError):
        return []
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


@dataclass
class ProviderStore:
    db_path: str

    def __post_init__(self) -> None:
        self._lock = Lock()
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        try:
            with self._lock:
                with self._connect() as conn:
                    yield conn
        except sqlite3.Error as exc:
            raise DirectoryUpstreamError(str(exc)) from exc

    def _init_db(self) -> None:
        with self._session() as conn:
            # owner_user_id is UNIQUE so a second first-time write for the same
            # user can only ever land on the existing row.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS providers (
                    id TEXT PRIMARY KEY,
                    owner_user_id TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    service TEXT,
                    location TEXT,
                    photo TEXT,
                    service_ids_json TEXT NOT NULL DEFAULT '[]',
                    review_ids_json TEXT NOT NULL DEFAULT '[]'
                )
                """
            )
            conn.commit()

    def _row_to_provider(self, row: sqlite3.Row) -> Provider:
        return Provider(
            id=row["id"],
            owner_user_id=row["owner_user_id"],
            name=row["name"],
            service=row["service"],
            location=row["location"],
            photo=row["photo"],
            service_ids=_safe_json_list(row["service_ids_json"]),
            review_ids=_safe_json_list(row["review_ids_json"]),
        )

    def find(self, search_filter: Optional[ProviderSearchFilter] = None) -> List[Provider]:
        with self._session() as conn:
            rows = conn.execute("SELECT * FROM providers ORDER BY rowid").fetchall()
        providers = [self._row_to_provider(row) for row in rows]
        if search_filter is None or search_filter.is_empty:
            return providers
        return [provider for provider in providers if search_filter.matches(provider)]

    def get(self, provider_id: str) -> Optional[Provider]:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM providers WHERE id = ?", (provider_id,)).fetchone()
        return self._row_to_provider(row) if row else None

    def get_by_owner(self, owner_user_id: str) -> Optional[Provider]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM providers WHERE owner_user_id = ?",
                (owner_user_id,),
            ).fetchone()
        return self._row_to_provider(row) if row else None

    def upsert_profile(
        self,
        *,
        owner_user_id: str,
        name: str,
        service: Optional[str] = None,
        location: Optional[str] = None,
    ) -> Provider:
        """Create the owner's provider row, or patch the fields that are not None.

        Runs as one statement, so concurrent first writes for the same owner
        collapse onto a single row and readers never see a partial update.
        ``name`` is only used when the row is created.
        """
        provider_id = f"prv_{uuid4().hex[:12]}"
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO providers (id, owner_user_id, name, service, location)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(owner_user_id) DO UPDATE SET
                    service = COALESCE(excluded.service, providers.service),
                    location = COALESCE(excluded.location, providers.location)
                """,
                (provider_id, owner_user_id, name, service, location),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM providers WHERE owner_user_id = ?",
                (owner_user_id,),
            ).fetchone()
        return self._row_to_provider(row)

    def set_photo(self, provider_id: str, photo_url: str) -> Provider:
        with self._session() as conn:
            cursor = conn.execute(
                "UPDATE providers SET photo = ? WHERE id = ?",
                (photo_url, provider_id),
            )
            if cursor.rowcount == 0:
                raise DirectoryNotFoundError("Provider not found")
            conn.commit()
            row = conn.execute("SELECT * FROM providers WHERE id = ?", (provider_id,)).fetchone()
        return self._row_to_provider(row)

    def append_reference(self, provider_id: str, kind: str, record_id: str) -> None:
        column = REFERENCE_COLUMNS.get(kind)
        if column is None:
            raise DirectoryValidationError(f"Unknown reference kind: {kind}")
        with self._session() as conn:
            row = conn.execute(f"SELECT {column} FROM providers WHERE id = ?", (provider_id,)).fetchone()
            if not row:
                raise DirectoryNotFoundError("Provider not found")
            references = _safe_json_list(row[column])
            references.append(record_id)
            conn.execute(
                f"UPDATE providers SET {column} = ? WHERE id = ?",
                (json.dumps(references), provider_id),
            )
            conn.commit()
