from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


RequestStatus = Literal["pending", "approved", "rejected"]


class AdoptionRequestCreate(BaseModel):
    message: str = Field(default="", max_length=2000)


class AdoptionRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    listing_id: str
    listing_name: str
    requester_id: str
    requester_name: str
    owner_id: str
    owner_name: str
    message: str
    status: RequestStatus
    created_at: datetime
    resolved_at: datetime | None


class AdoptionDecisionOut(BaseModel):
    request: AdoptionRequestOut
    conversation_id: str | None = None
    notice: str | None = None


class ContactOut(BaseModel):
    user_id: str
    name: str
    listing_id: str | None
    listing_name: str | None
    # None until the pair has an open conversation
    conversation_id: str | None = None
