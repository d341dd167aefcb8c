from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from chathive.domains.ingestion.errors import PersistenceError
from chathive.domains.messaging.repositories.customer import CustomerRepository

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Maps a WhatsApp contact onto the organization's customer record."""

    def __init__(self, customer_repo: CustomerRepository, *, implicit_opt_in: bool = True) -> None:
        self.customer_repo = customer_repo
        self.implicit_opt_in = implicit_opt_in

    async def resolve(
        self,
        organization_id: UUID,
        provider_contact_id: str | None,
        display_name: str | None,
        phone: str,
    ) -> UUID:
        if not phone:
            raise PersistenceError("Inbound message has no sender phone")

        customer_id = await self.customer_repo.upsert_inbound(
            organization_id=organization_id,
            phone=phone,
            whatsapp_id=provider_contact_id or None,
            name=display_name or phone,
            opted_in=self.implicit_opt_in,
            now=datetime.now(timezone.utc),
        )
        if customer_id is None:
            raise PersistenceError(f"Customer upsert returned no row for org={organization_id} phone={phone}")

        logger.info("Resolved customer %s for phone=%s org=%s", customer_id, phone, organization_id)
        return customer_id
