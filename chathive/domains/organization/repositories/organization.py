from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chathive.domains.organization.models import Organization
from chathive.domains.organization.repositories.base import BaseRepository


class OrganizationRepository(BaseRepository[Organization]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Organization)

    async def get_by_phone_number_id(self, phone_number_id: str) -> Organization | None:
        stmt = select(Organization).where(Organization.whatsapp_phone_number_id == phone_number_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
