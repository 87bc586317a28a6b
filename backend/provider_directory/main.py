import logging
import os
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.middleware.trustedhost import TrustedHostMiddleware

from provider_directory.routers import providers, reviews, services
from provider_directory.services.catalog_store import CatalogStore
from provider_directory.services.directory import build_directory
from provider_directory.services.object_store import LocalObjectStore, ObjectStore, build_object_store
from provider_directory.services.provider_store import ProviderStore, default_db_path

logger = logging.getLogger(__name__)


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def create_app(
    repository: Optional[ProviderStore] = None,
    catalog: Optional[CatalogStore] = None,
    object_store: Optional[ObjectStore] = None,
) -> FastAPI:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    repository = repository or ProviderStore(db_path=default_db_path())
    catalog = catalog or CatalogStore(db_path=repository.db_path, provider_store=repository)
    object_store = object_store or build_object_store()

    app = FastAPI(title="Provider Directory API", version="0.1.0")
    app.state.catalog = catalog
    app.state.directory = build_directory(repository=repository, catalog=catalog, object_store=object_store)

    cors_origins = _parse_csv_env("CORS_ORIGINS", "*")
    allow_any_origin = len(cors_origins) == 1 and cors_origins[0] == "*"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        # Browsers reject wildcard CORS with credentials enabled.
        allow_credentials=not allow_any_origin,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    trusted_hosts = _parse_csv_env("TRUSTED_HOSTS", "*")
    if not (len(trusted_hosts) == 1 and trusted_hosts[0] == "*"):
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=trusted_hosts)

    app.include_router(providers.router, prefix="/api/providers")
    app.include_router(services.router, prefix="/api/services")
    app.include_router(reviews.router, prefix="/api/reviews")

    if isinstance(object_store, LocalObjectStore):
        app.mount(object_store.url_prefix, StaticFiles(directory=object_store.root_dir), name="uploads")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/ready")
    def ready():
        return {"status": "ready", "storage_backend": object_store.backend_name}

    logger.info("Provider directory ready (storage backend: %s)", object_store.backend_name)
    return app


app = create_app()
