from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


Species = Literal["dog", "cat", "bird", "rabbit", "hamster", "other"]
Gender = Literal["male", "female"]
Size = Literal["small", "medium", "large"]


class ListingCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    species: Species
    breed: str = Field(min_length=1, max_length=120)
    age: int = Field(ge=0, le=30)
    gender: Gender
    size: Size
    description: str = Field(min_length=10, max_length=5000)
    location: str = Field(min_length=1, max_length=200)


class ListingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    species: str
    breed: str
    age: int
    gender: str
    size: str
    description: str
    location: str
    image_url: str
    owner_id: str
    owner_name: str
    owner_contact: str
    is_available: bool
    created_at: datetime
    updated_at: datetime


class ListingPage(BaseModel):
    # available listings before client-side filters (the "of N pets" figure)
    total: int
    items: list[ListingOut]
    degraded: bool = False
