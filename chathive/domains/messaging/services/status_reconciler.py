from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from chathive.domains.messaging.models import MessageStatus
from chathive.domains.messaging.repositories.message import MessageRepository
from chathive.domains.whatsapp.schemas import WebhookStatus, epoch_to_datetime

logger = logging.getLogger(__name__)

STATUS_MAP: dict[str, MessageStatus] = {
    "sent": MessageStatus.sent,
    "delivered": MessageStatus.delivered,
    "read": MessageStatus.read,
    "failed": MessageStatus.failed,
}

# A status only replaces statuses ranked below it, so late or repeated events never regress a message.
STATUS_RANK: dict[MessageStatus, int] = {
    MessageStatus.pending: 0,
    MessageStatus.sent: 1,
    MessageStatus.delivered: 2,
    MessageStatus.read: 3,
    MessageStatus.failed: 4,
}


def superseded_by(status: MessageStatus) -> list[MessageStatus]:
    rank = STATUS_RANK[status]
    return [s for s, r in STATUS_RANK.items() if r < rank]


class StatusReconciler:
    def __init__(self, message_repo: MessageRepository) -> None:
        self.message_repo = message_repo

    async def apply(self, organization_id: UUID, event: WebhookStatus) -> int:
        """Apply one delivery-status event; returns the number of messages updated."""
        status = STATUS_MAP.get(event.status)
        if status is None:
            logger.info("Ignoring unknown status %r for msg=%s", event.status, event.id)
            return 0
        if not event.id:
            logger.info("Ignoring %s status without a message id", status.value)
            return 0

        error_code = error_message = None
        if event.errors:
            first = event.errors[0]
            error_code = str(first.code) if first.code is not None else None
            error_message = first.title

        updated = await self.message_repo.apply_status(
            organization_id=organization_id,
            whatsapp_message_id=event.id,
            status=status,
            status_updated_at=epoch_to_datetime(event.timestamp) or datetime.now(timezone.utc),
            superseded=superseded_by(status),
            error_code=error_code,
            error_message=error_message,
        )
        if updated:
            logger.info("Status updated: msg=%s -> %s", event.id, status.value)
        else:
            logger.debug("No message to move to %s for msg=%s org=%s", status.value, event.id, organization_id)
        return updated
