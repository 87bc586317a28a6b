"""FastAPI dependency getters.

Components are built once in ``create_app`` and kept on ``app.state``;
handlers reach them through these getters so tests can swap in their own
stores and object-store fakes.
"""
from fastapi import Request

from provider_directory.services.catalog_store import CatalogStore
from provider_directory.services.directory import ProviderDirectory


def get_directory(request: Request) -> ProviderDirectory:
    return request.app.state.directory


def get_catalog(request: Request) -> CatalogStore:
    return request.app.state.catalog
