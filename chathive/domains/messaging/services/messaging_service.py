from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from fastapi import HTTPException, status

from chathive.domains.messaging.models import (
    Conversation,
    Message,
    MessageDirection,
    MessageStatus,
    MessageType,
    SenderType,
)
from chathive.domains.messaging.repositories.conversation import ConversationRepository
from chathive.domains.messaging.repositories.message import MessageRepository
from chathive.domains.organization.repositories.organization import OrganizationRepository
from chathive.domains.whatsapp.client import SendResult, WhatsAppClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str], WhatsAppClient]


class MessagingService:
    """Dashboard-side messaging: history paging, agent replies and media lookup.

    Outbound rows are stored with status `sent` and the provider message id;
    delivery receipts arriving through the webhook move them forward.
    """

    def __init__(
        self,
        organization_repo: OrganizationRepository,
        conversation_repo: ConversationRepository,
        message_repo: MessageRepository,
        client_factory: ClientFactory = WhatsAppClient,
    ) -> None:
        self.organization_repo = organization_repo
        self.conversation_repo = conversation_repo
        self.message_repo = message_repo
        self.client_factory = client_factory

    # ── History ───────────────────────────────────────────────────────────

    async def list_messages(
        self,
        organization_id: UUID,
        conversation_id: UUID,
        limit: int = 50,
        before: datetime | None = None,
    ) -> tuple[list[Message], bool]:
        """Returns (messages oldest first, has_more)."""
        await self._get_conversation(organization_id, conversation_id)
        messages = await self.message_repo.list_page(conversation_id, limit, before)
        return messages, len(messages) == limit

    # ── Outbound ──────────────────────────────────────────────────────────

    async def send_text(
        self,
        organization_id: UUID,
        conversation_id: UUID,
        content: str,
        reply_to_message_id: UUID | None = None,
        sender_user_id: UUID | None = None,
    ) -> Message:
        conv = await self._get_conversation(organization_id, conversation_id)
        now = datetime.now(timezone.utc)
        if conv.customer_service_window_expires_at is None or conv.customer_service_window_expires_at <= now:
            raise HTTPException(
                status.HTTP_409_CONFLICT,
                "Customer service window has expired; send a template message instead",
            )

        reply_wamid = None
        if reply_to_message_id is not None:
            replied = await self.message_repo.get_in_organization(reply_to_message_id, organization_id)
            if replied is None:
                raise HTTPException(status.HTTP_404_NOT_FOUND, "Reply target message not found")
            reply_wamid = replied.whatsapp_message_id

        client = await self._client_for(organization_id)
        result = await client.send_text(conv.customer.phone, content, reply_wamid)
        return await self._store_outbound(
            conv,
            result,
            message_type=MessageType.text,
            content=content,
            reply_to_message_id=reply_to_message_id,
            sender_user_id=sender_user_id,
        )

    async def send_template(
        self,
        organization_id: UUID,
        conversation_id: UUID,
        template_name: str,
        language_code: str,
        components: list[dict[str, Any]] | None = None,
        sender_user_id: UUID | None = None,
    ) -> Message:
        conv = await self._get_conversation(organization_id, conversation_id)
        client = await self._client_for(organization_id)
        result = await client.send_template(conv.customer.phone, template_name, language_code, components)
        return await self._store_outbound(
            conv,
            result,
            message_type=MessageType.template,
            content=f"[Template: {template_name}]",
            template_name=template_name,
            template_language=language_code,
            sender_user_id=sender_user_id,
        )

    # ── Media ─────────────────────────────────────────────────────────────

    async def resolve_media_url(self, organization_id: UUID, message_id: UUID) -> Message:
        """Fetch and store the download URL for an inbound media message."""
        message = await self.message_repo.get_in_organization(message_id, organization_id)
        if message is None:
            raise HTTPException(status.HTTP_404_NOT_FOUND, "Message not found")
        if not message.media_id:
            raise HTTPException(status.HTTP_404_NOT_FOUND, "Message has no media")

        client = await self._client_for(organization_id)
        result = await client.get_media_url(message.media_id)
        if not result.success:
            raise HTTPException(status.HTTP_502_BAD_GATEWAY, result.error or "Failed to get media URL")

        message.media_url = result.url
        await self.message_repo.session.flush()
        await self.message_repo.session.refresh(message)
        return message

    # ── Internal helpers ───────────────────────────────────────────────────

    async def _get_conversation(self, organization_id: UUID, conversation_id: UUID) -> Conversation:
        conv = await self.conversation_repo.get_with_customer(conversation_id, organization_id)
        if conv is None:
            raise HTTPException(status.HTTP_404_NOT_FOUND, "Conversation not found")
        return conv

    async def _client_for(self, organization_id: UUID) -> WhatsAppClient:
        organization = await self.organization_repo.get_by_id(organization_id)
        if organization is None:
            raise HTTPException(status.HTTP_404_NOT_FOUND, "Organization not found")
        if not organization.whatsapp_phone_number_id or not organization.whatsapp_access_token:
            raise HTTPException(status.HTTP_400_BAD_REQUEST, "WhatsApp is not connected for this organization")
        return self.client_factory(organization.whatsapp_phone_number_id, organization.whatsapp_access_token)

    async def _store_outbound(
        self,
        conv: Conversation,
        result: SendResult,
        *,
        message_type: MessageType,
        content: str,
        **fields: Any,
    ) -> Message:
        if not result.success:
            logger.error("Outbound send failed for conversation %s: %s", conv.id, result.error)
            raise HTTPException(status.HTTP_502_BAD_GATEWAY, result.error or "WhatsApp send failed")

        now = datetime.now(timezone.utc)
        message = await self.message_repo.create(
            organization_id=conv.organization_id,
            conversation_id=conv.id,
            customer_id=conv.customer_id,
            whatsapp_message_id=result.message_id,
            direction=MessageDirection.outbound,
            sender_type=SenderType.user,
            message_type=message_type,
            content=content,
            status=MessageStatus.sent,
            status_updated_at=now,
            **fields,
        )
        await self.conversation_repo.record_message(conv.id, MessageDirection.outbound, content, now)
        logger.info("Outbound %s %s sent for conversation %s", message_type.value, result.message_id, conv.id)
        return message
