from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, text, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import noload

from chathive.domains.messaging.models import (
    ACTIVE_CONVERSATION_STATUSES,
    Conversation,
    ConversationOrigin,
    ConversationStatus,
    MessageDirection,
)
from chathive.domains.organization.repositories.base import BaseRepository

PREVIEW_LENGTH = 100


class ConversationRepository(BaseRepository[Conversation]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Conversation)

    async def find_active(self, organization_id: UUID, customer_id: UUID) -> Conversation | None:
        stmt = (
            select(Conversation)
            .where(
                Conversation.organization_id == organization_id,
                Conversation.customer_id == customer_id,
                Conversation.status.in_(ACTIVE_CONVERSATION_STATUSES),
            )
            .options(noload(Conversation.customer))
            .order_by(Conversation.created_at.desc())
            .limit(1)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_with_customer(self, conversation_id: UUID, organization_id: UUID) -> Conversation | None:
        stmt = select(Conversation).where(
            Conversation.id == conversation_id,
            Conversation.organization_id == organization_id,
        )
        result = await self.session.execute(stmt)
        return result.unique().scalar_one_or_none()

    async def create_open(
        self,
        organization_id: UUID,
        customer_id: UUID,
        origin: ConversationOrigin,
        window_expires_at: datetime,
    ) -> UUID | None:
        """Insert an open conversation; returns None if another active one won the race."""
        stmt = (
            insert(Conversation)
            .values(
                organization_id=organization_id,
                customer_id=customer_id,
                status=ConversationStatus.open,
                conversation_origin=origin,
                customer_service_window_expires_at=window_expires_at,
            )
            .on_conflict_do_nothing(
                index_elements=[Conversation.customer_id],
                index_where=text("status IN ('open', 'waiting', 'snoozed')"),
            )
            .returning(Conversation.id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def reopen(self, conversation_id: UUID, window_expires_at: datetime) -> None:
        stmt = (
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(
                status=ConversationStatus.open,
                snoozed_until=None,
                customer_service_window_expires_at=window_expires_at,
            )
        )
        await self.session.execute(stmt)

    async def record_message(
        self,
        conversation_id: UUID,
        direction: MessageDirection,
        preview: str | None,
        at: datetime,
    ) -> None:
        """Bump counters and the last-message summary shown in the inbox list."""
        values = {
            "message_count": Conversation.message_count + 1,
            "last_message_at": at,
            "last_message_preview": (preview or "")[:PREVIEW_LENGTH],
            "last_message_direction": direction,
        }
        if direction == MessageDirection.inbound:
            values["unread_count"] = Conversation.unread_count + 1
        else:
            values["unread_count"] = 0
        stmt = update(Conversation).where(Conversation.id == conversation_id).values(**values)
        await self.session.execute(stmt)
