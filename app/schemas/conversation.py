from datetime import datetime

from pydantic import BaseModel, Field


class MessageIn(BaseModel):
    text: str = Field(max_length=4000)


class ConversationStart(BaseModel):
    recipient_id: str
    text: str = Field(max_length=4000)
    listing_id: str | None = None


class MessageOut(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    sender_name: str
    text: str
    sent_at: datetime


class ConversationOut(BaseModel):
    id: str
    participants: list[str]
    participant_names: dict[str, str]
    listing_id: str | None
    listing_name: str | None
    last_message: str
    last_message_at: datetime
    created_at: datetime
