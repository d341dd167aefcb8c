from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from chathive.domains.messaging.models import MessageDirection, MessageStatus, MessageType, SenderType


# ── Message ───────────────────────────────────────────────────────────────


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    conversation_id: uuid.UUID
    whatsapp_message_id: str | None
    direction: MessageDirection
    sender_type: SenderType
    message_type: MessageType
    content: str | None
    media_url: str | None
    media_mime_type: str | None
    media_filename: str | None
    reply_to_message_id: uuid.UUID | None
    status: MessageStatus
    status_updated_at: datetime | None
    error_code: str | None
    error_message: str | None
    whatsapp_timestamp: datetime | None
    created_at: datetime


class MessagePage(BaseModel):
    data: list[MessageResponse]
    has_more: bool


# ── Outbound requests ─────────────────────────────────────────────────────


class SendTextRequest(BaseModel):
    content: str = Field(min_length=1, max_length=4096)
    reply_to_message_id: uuid.UUID | None = None


class SendTemplateRequest(BaseModel):
    template_name: str
    language_code: str = "en_US"
    components: list[dict[str, Any]] | None = None


class MediaResponse(BaseModel):
    message_id: uuid.UUID
    media_url: str
    media_mime_type: str | None
