from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from chathive.domains.messaging.dependencies import get_messaging_service
from chathive.domains.messaging.schemas import (
    MediaResponse,
    MessagePage,
    MessageResponse,
    SendTemplateRequest,
    SendTextRequest,
)
from chathive.domains.messaging.services.messaging_service import MessagingService

router = APIRouter(tags=["conversations"])


@router.get("/conversations/{conversation_id}/messages", response_model=MessagePage)
async def list_messages(
    organization_id: UUID,
    conversation_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    before: datetime | None = None,
    svc: MessagingService = Depends(get_messaging_service),
):
    messages, has_more = await svc.list_messages(organization_id, conversation_id, limit, before)
    return MessagePage(
        data=[MessageResponse.model_validate(m) for m in messages],
        has_more=has_more,
    )


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    organization_id: UUID,
    conversation_id: UUID,
    body: SendTextRequest,
    svc: MessagingService = Depends(get_messaging_service),
):
    message = await svc.send_text(
        organization_id, conversation_id, body.content, reply_to_message_id=body.reply_to_message_id
    )
    return MessageResponse.model_validate(message)


@router.post(
    "/conversations/{conversation_id}/messages/template",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_template(
    organization_id: UUID,
    conversation_id: UUID,
    body: SendTemplateRequest,
    svc: MessagingService = Depends(get_messaging_service),
):
    message = await svc.send_template(
        organization_id, conversation_id, body.template_name, body.language_code, body.components
    )
    return MessageResponse.model_validate(message)


@router.get("/messages/{message_id}/media", response_model=MediaResponse)
async def get_message_media(
    organization_id: UUID,
    message_id: UUID,
    svc: MessagingService = Depends(get_messaging_service),
):
    message = await svc.resolve_media_url(organization_id, message_id)
    return MediaResponse(
        message_id=message.id,
        media_url=message.media_url,
        media_mime_type=message.media_mime_type,
    )
