import logging
from typing import List, Optional

from provider_directory.auth import Principal
from provider_directory.models import ProfileUpdateRequest, Provider, ProviderView
from provider_directory.services.catalog_store import CatalogStore
from provider_directory.services.object_store import ObjectStore
from provider_directory.services.photo_upload import PhotoPayload, PhotoUploadPipeline
from provider_directory.services.provider_store import DirectoryNotFoundError, ProviderStore
from provider_directory.services.relations import RelationResolver
from provider_directory.services.search import build_search_filter

logger = logging.getLogger(__name__)


def _present(value: Optional[str]) -> Optional[str]:
    # Omitted and blank fields both leave the stored value alone.
    if value is None:
        return None
    value = value.strip()
    return value or None


class ProviderDirectory:
    def __init__(
        self,
        repository: ProviderStore,
        resolver: RelationResolver,
        photo_pipeline: PhotoUploadPipeline,
    ) -> None:
        self.repository = repository
        self.resolver = resolver
        self.photo_pipeline = photo_pipeline

    def search(self, query: Optional[str] = None, location: Optional[str] = None) -> List[ProviderView]:
        providers = self.repository.find(build_search_filter(query=query, location=location))
        logger.info("Fetched %s providers for query=%r location=%r", len(providers), query, location)
        return self.resolver.expand(providers)

    def get_provider(self, provider_id: str) -> ProviderView:
        provider = self.repository.get(provider_id)
        if provider is None:
            logger.info("Provider not found for ID %s", provider_id)
            raise DirectoryNotFoundError("Provider not found")
        return self.resolver.expand_one(provider)

    def get_own_profile(self, principal: Principal) -> ProviderView:
        provider = self.repository.get_by_owner(principal.user_id)
        if provider is None:
            logger.info("Provider not found for user %s", principal.user_id)
            raise DirectoryNotFoundError("Provider profile not found")
        return self.resolver.expand_one(provider)

    def upsert_profile(self, principal: Principal, update: ProfileUpdateRequest) -> Provider:
        provider = self.repository.upsert_profile(
            owner_user_id=principal.user_id,
            name=principal.display_name,
            service=_present(update.service),
            location=_present(update.location),
        )
        logger.info("Provider profile updated for user %s", principal.user_id)
        return provider

    def upload_photo(self, principal: Principal, payload: PhotoPayload) -> str:
        return self.photo_pipeline.upload(principal, payload)


def build_directory(
    repository: ProviderStore,
    catalog: CatalogStore,
    object_store: ObjectStore,
) -> ProviderDirectory:
    resolver = RelationResolver(service_lookup=catalog.get_services, review_lookup=catalog.get_reviews)
    return ProviderDirectory(
        repository=repository,
        resolver=resolver,
        photo_pipeline=PhotoUploadPipeline(repository=repository, object_store=object_store),
    )
