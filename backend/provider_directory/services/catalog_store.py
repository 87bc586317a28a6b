"""SQLite-backed service offerings and reviews.

These collections belong to neighbouring features; the directory only reads
them by id when expanding a provider. The write helpers insert the record
first and then append its id to the provider, in two separate steps, so a
failure in between leaves an unreferenced record rather than a dangling
reference.
"""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, Iterable, Iterator, List, Optional, TypeVar
from uuid import uuid4

from pydantic import ValidationError

from provider_directory.models import Review, ServiceOffering
from provider_directory.services.provider_store import (
    DirectoryNotFoundError,
    DirectoryUpstreamError,
    ProviderStore,
)

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT")

# Stay well below SQLITE_MAX_VARIABLE_NUMBER on older builds.
LOOKUP_CHUNK_SIZE = 500


def _chunks(ids: List[str], size: int) -> Iterator[List[str]]:
    for start in range(0, len(ids), size):
        yield ids[start : start + size]


@dataclass
class CatalogStore:
    db_path: str
    provider_store: ProviderStore

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
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS services (
                    id TEXT PRIMARY KEY,
                    provider_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    price_from INTEGER
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS reviews (
                    id TEXT PRIMARY KEY,
                    provider_id TEXT NOT NULL,
                    author TEXT NOT NULL,
                    rating INTEGER NOT NULL,
                    comment TEXT NOT NULL DEFAULT ''
                )
                """
            )
            conn.commit()

    def _select_by_ids(self, table: str, ids: Iterable[str]) -> List[sqlite3.Row]:
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return []
        rows: List[sqlite3.Row] = []
        with self._session() as conn:
            for chunk in _chunks(unique_ids, LOOKUP_CHUNK_SIZE):
                placeholders = ",".join("?" * len(chunk))
                rows.extend(
                    conn.execute(f"SELECT * FROM {table} WHERE id IN ({placeholders})", chunk).fetchall()
                )
        return rows

    def _row_to_service(self, row: sqlite3.Row) -> ServiceOffering:
        return ServiceOffering(
            id=row["id"],
            provider_id=row["provider_id"],
            name=row["name"],
            description=row["description"] or "",
            price_from=row["price_from"],
        )

    def _row_to_review(self, row: sqlite3.Row) -> Review:
        return Review(
            id=row["id"],
            provider_id=row["provider_id"],
            author=row["author"],
            rating=row["rating"],
            comment=row["comment"] or "",
        )

    def _convert_rows(
        self, table: str, rows: Iterable[sqlite3.Row], convert: Callable[[sqlite3.Row], RecordT]
    ) -> Dict[str, RecordT]:
        records: Dict[str, RecordT] = {}
        for row in rows:
            try:
                records[row["id"]] = convert(row)
            except ValidationError as exc:
                # Treated like a missing reference.
                logger.warning("Skipping malformed %s row %s: %s", table, row["id"], exc)
        return records

    def get_services(self, ids: Iterable[str]) -> Dict[str, ServiceOffering]:
        return self._convert_rows("services", self._select_by_ids("services", ids), self._row_to_service)

    def get_reviews(self, ids: Iterable[str]) -> Dict[str, Review]:
        return self._convert_rows("reviews", self._select_by_ids("reviews", ids), self._row_to_review)

    def list_services(self, provider_id: str) -> List[ServiceOffering]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM services WHERE provider_id = ? ORDER BY rowid",
                (provider_id,),
            ).fetchall()
        return list(self._convert_rows("services", rows, self._row_to_service).values())

    def add_service(
        self,
        *,
        provider_id: str,
        name: str,
        description: str = "",
        price_from: Optional[int] = None,
    ) -> ServiceOffering:
        if self.provider_store.get(provider_id) is None:
            raise DirectoryNotFoundError("Provider not found")
        service = ServiceOffering(
            id=f"srv_{uuid4().hex[:12]}",
            provider_id=provider_id,
            name=name.strip(),
            description=description.strip(),
            price_from=price_from,
        )
        with self._session() as conn:
            conn.execute(
                "INSERT INTO services (id, provider_id, name, description, price_from) VALUES (?, ?, ?, ?, ?)",
                (service.id, service.provider_id, service.name, service.description, service.price_from),
            )
            conn.commit()
        self.provider_store.append_reference(provider_id, "service", service.id)
        return service

    def add_review(
        self,
        *,
        provider_id: str,
        author: str,
        rating: int,
        comment: str = "",
    ) -> Review:
        if self.provider_store.get(provider_id) is None:
            raise DirectoryNotFoundError("Provider not found")
        review = Review(
            id=f"rev_{uuid4().hex[:12]}",
            provider_id=provider_id,
            author=author,
            rating=rating,
            comment=comment.strip(),
        )
        with self._session() as conn:
            conn.execute(
                "INSERT INTO reviews (id, provider_id, author, rating, comment) VALUES (?, ?, ?, ?, ?)",
                (review.id, review.provider_id, review.author, review.rating, review.comment),
            )
            conn.commit()
        self.provider_store.append_reference(provider_id, "review", review.id)
        return review
