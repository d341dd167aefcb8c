from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from chathive.domains.ingestion.contracts import MessageRecord
from chathive.domains.messaging.models import MessageType
from chathive.domains.messaging.repositories.message import MessageRepository
from chathive.domains.whatsapp.schemas import MediaBody, WebhookMessage, epoch_to_datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageContent:
    content: str
    media: MediaBody | None = None
    keep_filename: bool = False


def _text(msg: WebhookMessage) -> MessageContent:
    return MessageContent(msg.text.body if msg.text else "")


def _image(msg: WebhookMessage) -> MessageContent:
    return MessageContent("[Image]", msg.image)


def _document(msg: WebhookMessage) -> MessageContent:
    filename = msg.document.filename if msg.document else None
    return MessageContent(f"[Document: {filename or 'file'}]", msg.document, keep_filename=True)


def _audio(msg: WebhookMessage) -> MessageContent:
    return MessageContent("[Audio]", msg.audio)


def _video(msg: WebhookMessage) -> MessageContent:
    return MessageContent("[Video]", msg.video)


def _location(msg: WebhookMessage) -> MessageContent:
    place = None
    if msg.location:
        place = msg.location.name or msg.location.address
    return MessageContent(f"[Location: {place or 'Location shared'}]")


CONTENT_BUILDERS: dict[str, Callable[[WebhookMessage], MessageContent]] = {
    "text": _text,
    "image": _image,
    "document": _document,
    "audio": _audio,
    "video": _video,
    "location": _location,
}


def build_content(msg: WebhookMessage) -> MessageContent:
    builder = CONTENT_BUILDERS.get(msg.type)
    if builder is None:
        return MessageContent(f"[{msg.type}]")
    return builder(msg)


def message_type_for(raw_type: str) -> MessageType:
    try:
        return MessageType(raw_type)
    except ValueError:
        return MessageType.other


class MessageNormalizer:
    """Turns one WhatsApp message unit into the internal message record."""

    def __init__(self, message_repo: MessageRepository) -> None:
        self.message_repo = message_repo

    async def normalize(
        self,
        msg: WebhookMessage,
        organization_id: UUID,
        conversation_id: UUID,
        customer_id: UUID,
    ) -> MessageRecord:
        built = build_content(msg)
        media = built.media

        reply_to_message_id = None
        if msg.context and msg.context.message_id:
            reply_to_message_id = await self.message_repo.get_id_by_whatsapp_id(
                organization_id, msg.context.message_id
            )
            if reply_to_message_id is None:
                logger.debug("Reply target %s not stored, dropping reference", msg.context.message_id)

        return MessageRecord(
            organization_id=organization_id,
            conversation_id=conversation_id,
            customer_id=customer_id,
            whatsapp_message_id=msg.id or None,
            message_type=message_type_for(msg.type),
            content=built.content,
            media_id=media.id if media else None,
            media_mime_type=media.mime_type if media else None,
            media_filename=media.filename if media and built.keep_filename else None,
            media_sha256=media.sha256 if media else None,
            reply_to_message_id=reply_to_message_id,
            whatsapp_timestamp=epoch_to_datetime(msg.timestamp),
        )
