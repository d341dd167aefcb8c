from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from chathive.domains.ingestion.errors import PersistenceError
from chathive.domains.messaging.models import ConversationOrigin
from chathive.domains.messaging.repositories.conversation import ConversationRepository

logger = logging.getLogger(__name__)

# Free-form replies are allowed for this long after the customer's last inbound message.
CUSTOMER_SERVICE_WINDOW = timedelta(hours=24)


class ConversationRouter:
    def __init__(self, conversation_repo: ConversationRepository) -> None:
        self.conversation_repo = conversation_repo

    async def route(self, organization_id: UUID, customer_id: UUID) -> UUID:
        """Return the customer's active conversation, reopened, or a new one.

        Open, waiting and snoozed threads are reused and set back to open. Creation
        relies on the one-active-conversation-per-customer index: when a concurrent
        delivery creates the thread first, the insert yields nothing and the
        winner's row is reopened instead.
        """
        window_expires_at = datetime.now(timezone.utc) + CUSTOMER_SERVICE_WINDOW

        conversation = await self.conversation_repo.find_active(organization_id, customer_id)
        if conversation is None:
            conversation_id = await self.conversation_repo.create_open(
                organization_id=organization_id,
                customer_id=customer_id,
                origin=ConversationOrigin.user_initiated,
                window_expires_at=window_expires_at,
            )
            if conversation_id is not None:
                logger.info("Opened conversation %s for customer=%s", conversation_id, customer_id)
                return conversation_id

            logger.info("Concurrent conversation created for customer=%s, reusing it", customer_id)
            conversation = await self.conversation_repo.find_active(organization_id, customer_id)
            if conversation is None:
                raise PersistenceError(f"No active conversation for customer={customer_id} after insert conflict")

        await self.conversation_repo.reopen(conversation.id, window_expires_at)
        logger.info(
            "Reusing conversation %s (was %s) for customer=%s",
            conversation.id, conversation.status.value, customer_id,
        )
        return conversation.id
