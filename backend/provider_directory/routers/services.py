from fastapi import APIRouter, Depends, Query

from provider_directory.auth import Principal, require_principal
from provider_directory.dependencies import get_catalog, get_directory
from provider_directory.models import ServiceOffering, ServiceOfferingCreateRequest
from provider_directory.routers.providers import raise_directory_http_error
from provider_directory.services.catalog_store import CatalogStore
from provider_directory.services.directory import ProviderDirectory
from provider_directory.services.provider_store import DirectoryError

router = APIRouter(tags=["services"])


@router.get("", response_model=list[ServiceOffering])
def list_services(
    provider_id: str = Query(...),
    catalog: CatalogStore = Depends(get_catalog),
):
    try:
        return catalog.list_services(provider_id)
    except DirectoryError as exc:
        raise_directory_http_error(exc)


@router.post("", response_model=ServiceOffering, status_code=201)
def create_service(
    request: ServiceOfferingCreateRequest,
    principal: Principal = Depends(require_principal),
    directory: ProviderDirectory = Depends(get_directory),
    catalog: CatalogStore = Depends(get_catalog),
):
    try:
        # Offerings always attach to the caller's own profile.
        profile = directory.get_own_profile(principal)
        return catalog.add_service(
            provider_id=profile.id,
            name=request.name,
            description=request.description,
            price_from=request.price_from,
        )
    except DirectoryError as exc:
        raise_directory_http_error(exc)
