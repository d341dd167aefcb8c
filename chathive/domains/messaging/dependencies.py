from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from chathive.db.base import get_session
from chathive.domains.messaging.repositories.conversation import ConversationRepository
from chathive.domains.messaging.repositories.message import MessageRepository
from chathive.domains.messaging.services.messaging_service import MessagingService
from chathive.domains.organization.repositories.organization import OrganizationRepository


# ── Repositories ─────────────────────────────────────────────────────────


async def get_organization_repo(session: AsyncSession = Depends(get_session)) -> OrganizationRepository:
    return OrganizationRepository(session)


async def get_conversation_repo(session: AsyncSession = Depends(get_session)) -> ConversationRepository:
    return ConversationRepository(session)


async def get_message_repo(session: AsyncSession = Depends(get_session)) -> MessageRepository:
    return MessageRepository(session)


# ── Services ─────────────────────────────────────────────────────────────


async def get_messaging_service(
    organization_repo: OrganizationRepository = Depends(get_organization_repo),
    conversation_repo: ConversationRepository = Depends(get_conversation_repo),
    message_repo: MessageRepository = Depends(get_message_repo),
) -> MessagingService:
    return MessagingService(organization_repo, conversation_repo, message_repo)
