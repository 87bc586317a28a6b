import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from provider_directory.auth import Principal, require_principal
from provider_directory.dependencies import get_directory
from provider_directory.models import PhotoUploadResponse, ProfileUpdateRequest, Provider, ProviderView
from provider_directory.services.directory import ProviderDirectory
from provider_directory.services.object_store import DEFAULT_CONTENT_TYPE
from provider_directory.services.photo_upload import PhotoPayload
from provider_directory.services.provider_store import (
    DirectoryError,
    DirectoryNotFoundError,
    DirectoryValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["providers"])


def raise_directory_http_error(exc: DirectoryError) -> None:
    if isinstance(exc, DirectoryNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, DirectoryValidationError):
        raise HTTPException(status_code=400, detail=str(exc))
    logger.error("Directory request failed: %s", exc)
    raise HTTPException(status_code=500, detail=f"Server error: {exc}")


@router.get("", response_model=list[ProviderView])
def list_providers(
    query: Optional[str] = Query(default=None),
    location: Optional[str] = Query(default=None),
    directory: ProviderDirectory = Depends(get_directory),
):
    try:
        return directory.search(query=query, location=location)
    except DirectoryError as exc:
        raise_directory_http_error(exc)


# The owner-scoped routes are declared before /{provider_id} so "profile"
# is never read as a provider id.
@router.get("/profile", response_model=ProviderView)
def get_own_profile(
    principal: Principal = Depends(require_principal),
    directory: ProviderDirectory = Depends(get_directory),
):
    try:
        return directory.get_own_profile(principal)
    except DirectoryError as exc:
        raise_directory_http_error(exc)


@router.put("/profile", response_model=Provider)
def update_own_profile(
    request: Optional[ProfileUpdateRequest] = None,
    principal: Principal = Depends(require_principal),
    directory: ProviderDirectory = Depends(get_directory),
):
    try:
        return directory.upsert_profile(principal, request or ProfileUpdateRequest())
    except DirectoryError as exc:
        raise_directory_http_error(exc)


@router.post("/upload-photo", response_model=PhotoUploadResponse)
def upload_photo(
    photo: UploadFile = File(...),
    principal: Principal = Depends(require_principal),
    directory: ProviderDirectory = Depends(get_directory),
):
    payload = PhotoPayload(
        filename=photo.filename or "",
        data=photo.file.read(),
        content_type=photo.content_type or DEFAULT_CONTENT_TYPE,
    )
    try:
        return PhotoUploadResponse(photo=directory.upload_photo(principal, payload))
    except DirectoryError as exc:
        raise_directory_http_error(exc)


@router.get("/{provider_id}", response_model=ProviderView)
def get_provider(provider_id: str, directory: ProviderDirectory = Depends(get_directory)):
    try:
        return directory.get_provider(provider_id)
    except DirectoryError as exc:
        raise_directory_http_error(exc)
