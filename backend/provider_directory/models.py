from typing import Optional

from pydantic import BaseModel, Field


class Provider(BaseModel):
    id: str
    owner_user_id: str
    name: str
    service: Optional[str] = None
    location: Optional[str] = None
    photo: Optional[str] = None
    service_ids: list[str] = Field(default_factory=list)
    review_ids: list[str] = Field(default_factory=list)


class ServiceOffering(BaseModel):
    id: str
    provider_id: str
    name: str
    description: str = ""
    price_from: Optional[int] = None


class Review(BaseModel):
    id: str
    provider_id: str
    author: str
    rating: int = Field(ge=1, le=5)
    comment: str = ""


class ProviderView(BaseModel):
    """Provider with its service and review references replaced by records."""

    id: str
    owner_user_id: str
    name: str
    service: Optional[str] = None
    location: Optional[str] = None
    photo: Optional[str] = None
    services: list[ServiceOffering] = Field(default_factory=list)
    reviews: list[Review] = Field(default_factory=list)


class ProfileUpdateRequest(BaseModel):
    service: Optional[str] = None
    location: Optional[str] = None


class PhotoUploadResponse(BaseModel):
    photo: str


class ServiceOfferingCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    price_from: Optional[int] = Field(default=None, ge=0)


class ReviewCreateRequest(BaseModel):
    provider_id: str
    rating: int = Field(ge=1, le=5)
    comment: str = ""
