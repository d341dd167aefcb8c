from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from chathive.domains.messaging.models import Customer
from chathive.domains.organization.repositories.base import BaseRepository


class CustomerRepository(BaseRepository[Customer]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Customer)

    async def upsert_inbound(
        self,
        organization_id: UUID,
        phone: str,
        whatsapp_id: str | None,
        name: str | None,
        opted_in: bool,
        now: datetime,
    ) -> UUID | None:
        """Insert-or-touch keyed on (organization_id, phone).

        An existing row keeps its name; only the contact timestamps move, and the
        provider contact id is filled in if it was never recorded.
        """
        stmt = insert(Customer).values(
            organization_id=organization_id,
            phone=phone,
            whatsapp_id=whatsapp_id,
            name=name,
            is_opted_in=opted_in,
            opted_in_at=now if opted_in else None,
            first_contact_at=now,
            last_contact_at=now,
            last_message_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Customer.organization_id, Customer.phone],
            set_={
                "last_contact_at": now,
                "last_message_at": now,
                "whatsapp_id": func.coalesce(Customer.whatsapp_id, stmt.excluded.whatsapp_id),
                "updated_at": func.now(),
            },
        ).returning(Customer.id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
