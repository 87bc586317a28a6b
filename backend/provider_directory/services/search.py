from dataclasses import dataclass
from typing import Optional

from provider_directory.models import Provider


def _normalize_term(value: Optional[str]) -> Optional[str]:
    # Blank parameters are treated as absent rather than as "contains ''".
    if value is None:
        return None
    term = value.strip()
    return term.casefold() if term else None


def _contains(field: Optional[str], term: str) -> bool:
    if not field:
        return False
    return term in field.casefold()


@dataclass(frozen=True)
class ProviderSearchFilter:
    """Request-scoped predicate over providers.

    ``location`` must be a substring of the provider's location, and ``text``
    a substring of either its name or its service. Both are compared
    case-insensitively and combine with AND. An empty filter matches every
    provider.
    """

    location: Optional[str] = None
    text: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.location is None and self.text is None

    def matches(self, provider: Provider) -> bool:
        if self.location is not None and not _contains(provider.location, self.location):
            return False
        if self.text is not None:
            if not (_contains(provider.name, self.text) or _contains(provider.service, self.text)):
                return False
        return True


def build_search_filter(query: Optional[str] = None, location: Optional[str] = None) -> ProviderSearchFilter:
    return ProviderSearchFilter(location=_normalize_term(location), text=_normalize_term(query))
