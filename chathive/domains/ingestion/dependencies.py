from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chathive.config import Config
from chathive.db.base import get_session_factory
from chathive.domains.ingestion.contracts import IngestionUnit
from chathive.domains.ingestion.errors import PersistenceError
from chathive.domains.ingestion.service import UnitFactory, WebhookDispatcher
from chathive.domains.messaging.repositories.conversation import ConversationRepository
from chathive.domains.messaging.repositories.customer import CustomerRepository
from chathive.domains.messaging.repositories.message import MessageRepository
from chathive.domains.organization.repositories.organization import OrganizationRepository


def session_unit_factory(session_factory: async_sessionmaker[AsyncSession]) -> UnitFactory:
    """Each unit gets its own session and commits on success; database errors become PersistenceError."""

    @asynccontextmanager
    async def open_unit() -> AsyncIterator[IngestionUnit]:
        async with session_factory() as session:
            try:
                yield IngestionUnit(
                    organizations=OrganizationRepository(session),
                    customers=CustomerRepository(session),
                    conversations=ConversationRepository(session),
                    messages=MessageRepository(session),
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise PersistenceError(str(e)) from e

    return open_unit


def get_webhook_dispatcher() -> WebhookDispatcher:
    return WebhookDispatcher(
        session_unit_factory(get_session_factory()),
        app_secret=Config.WHATSAPP_APP_SECRET,
        unit_timeout=Config.WEBHOOK_UNIT_TIMEOUT_SECONDS,
        implicit_opt_in=Config.WHATSAPP_IMPLICIT_OPT_IN,
    )
