from typing import Callable, Iterable, List, Mapping, Sequence, TypeVar

from provider_directory.models import Provider, ProviderView, Review, ServiceOffering

T = TypeVar("T")

# Resolves a batch of ids to the records that exist; missing ids are simply absent.
RecordLookup = Callable[[Iterable[str]], Mapping[str, T]]


def _resolve(ids: Sequence[str], records: Mapping[str, T]) -> List[T]:
    return [records[record_id] for record_id in ids if record_id in records]


class RelationResolver:
    """Expands providers with their service offerings and reviews.

    Every reference across the batch is looked up in one call per
    collection. A reference with no record behind it is dropped from the
    view; errors raised by a lookup itself propagate unchanged.
    """

    def __init__(
        self,
        service_lookup: RecordLookup[ServiceOffering],
        review_lookup: RecordLookup[Review],
    ) -> None:
        self.service_lookup = service_lookup
        self.review_lookup = review_lookup

    def expand(self, providers: Sequence[Provider]) -> List[ProviderView]:
        if not providers:
            return []
        service_ids = [sid for provider in providers for sid in provider.service_ids]
        review_ids = [rid for provider in providers for rid in provider.review_ids]
        services = self.service_lookup(service_ids) if service_ids else {}
        reviews = self.review_lookup(review_ids) if review_ids else {}

        return [
            ProviderView(
                id=provider.id,
                owner_user_id=provider.owner_user_id,
                name=provider.name,
                service=provider.service,
                location=provider.location,
                photo=provider.photo,
                services=_resolve(provider.service_ids, services),
                reviews=_resolve(provider.review_ids, reviews),
            )
            for provider in providers
        ]

    def expand_one(self, provider: Provider) -> ProviderView:
        return self.expand([provider])[0]
