from __future__ import annotations

import logging

import sqlalchemy.engine.url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from chathive.config import Config
from chathive.db.base import BaseDB

logger = logging.getLogger(__name__)


class PostgresDB(BaseDB):
    def __init__(self) -> None:
        super().__init__()
        url = sqlalchemy.engine.url.URL.create(
            drivername="postgresql+asyncpg",
            username=Config.POSTGRES_USERNAME,
            password=Config.POSTGRES_PASSWORD,
            host=Config.POSTGRES_HOST,
            port=Config.POSTGRES_PORT,
            database=Config.POSTGRES_DB_NAME,
        )
        logger.info("Creating DB engine with host=%s port=%s db=%s",
                    Config.POSTGRES_HOST, Config.POSTGRES_PORT, Config.POSTGRES_DB_NAME)

        # Webhook units are bounded by WEBHOOK_UNIT_TIMEOUT_SECONDS; keep the driver
        # from outliving that bound on a stuck statement.
        statement_timeout_ms = int(Config.WEBHOOK_UNIT_TIMEOUT_SECONDS * 1000)
        self._async_engine = create_async_engine(
            url,
            echo=Config.SQL_COMMAND_ECHO,
            pool_size=10,
            max_overflow=5,
            pool_timeout=Config.WEBHOOK_UNIT_TIMEOUT_SECONDS,
            pool_recycle=1800,
            pool_pre_ping=True,
            connect_args={
                "command_timeout": Config.WEBHOOK_UNIT_TIMEOUT_SECONDS,
                "server_settings": {"statement_timeout": str(statement_timeout_ms)},
            },
        )

    def create_session_factory(self) -> async_sessionmaker[AsyncSession]:
        return async_sessionmaker(self._async_engine, class_=AsyncSession, expire_on_commit=False)

    async def dispose(self) -> None:
        await self._async_engine.dispose()
