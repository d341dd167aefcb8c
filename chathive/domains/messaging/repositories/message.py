from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, text, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from chathive.domains.ingestion.contracts import MessageRecord
from chathive.domains.messaging.models import Message, MessageStatus
from chathive.domains.organization.repositories.base import BaseRepository


class MessageRepository(BaseRepository[Message]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Message)

    async def exists_by_whatsapp_id(self, organization_id: UUID, whatsapp_message_id: str) -> bool:
        stmt = select(func.count()).select_from(Message).where(
            Message.organization_id == organization_id,
            Message.whatsapp_message_id == whatsapp_message_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one() > 0

    async def get_id_by_whatsapp_id(self, organization_id: UUID, whatsapp_message_id: str) -> UUID | None:
        stmt = select(Message.id).where(
            Message.organization_id == organization_id,
            Message.whatsapp_message_id == whatsapp_message_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def insert_if_absent(self, record: MessageRecord) -> UUID | None:
        """Insert the message unless (organization_id, whatsapp_message_id) is already stored."""
        stmt = (
            insert(Message)
            .values(**asdict(record))
            .on_conflict_do_nothing(
                index_elements=[Message.organization_id, Message.whatsapp_message_id],
                index_where=text("whatsapp_message_id IS NOT NULL"),
            )
            .returning(Message.id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def apply_status(
        self,
        organization_id: UUID,
        whatsapp_message_id: str,
        status: MessageStatus,
        status_updated_at: datetime,
        superseded: Iterable[MessageStatus],
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> int:
        """Move a message to `status` if it currently holds one of `superseded`. Returns rows affected."""
        values: dict = {"status": status, "status_updated_at": status_updated_at}
        if error_code is not None or error_message is not None:
            values["error_code"] = error_code
            values["error_message"] = error_message
        stmt = (
            update(Message)
            .where(
                Message.organization_id == organization_id,
                Message.whatsapp_message_id == whatsapp_message_id,
                Message.status.in_(list(superseded)),
            )
            .values(**values)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def list_page(
        self,
        conversation_id: UUID,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[Message]:
        """Newest `limit` messages older than `before`, returned oldest first."""
        stmt = select(Message).where(Message.conversation_id == conversation_id)
        if before is not None:
            stmt = stmt.where(Message.created_at < before)
        stmt = stmt.order_by(Message.created_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        messages = list(result.scalars().all())
        messages.reverse()
        return messages

