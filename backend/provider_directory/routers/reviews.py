from fastapi import APIRouter, Depends

from provider_directory.auth import Principal, require_principal
from provider_directory.dependencies import get_catalog
from provider_directory.models import Review, ReviewCreateRequest
from provider_directory.routers.providers import raise_directory_http_error
from provider_directory.services.catalog_store import CatalogStore
from provider_directory.services.provider_store import DirectoryError

router = APIRouter(tags=["reviews"])


@router.post("", response_model=Review, status_code=201)
def create_review(
    request: ReviewCreateRequest,
    principal: Principal = Depends(require_principal),
    catalog: CatalogStore = Depends(get_catalog),
):
    try:
        return catalog.add_review(
            provider_id=request.provider_id,
            author=principal.display_name,
            rating=request.rating,
            comment=request.comment,
        )
    except DirectoryError as exc:
        raise_directory_http_error(exc)
