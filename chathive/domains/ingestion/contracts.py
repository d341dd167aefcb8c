from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from chathive.domains.messaging.models import MessageDirection, MessageStatus, MessageType, SenderType

if TYPE_CHECKING:
    from chathive.domains.messaging.repositories.conversation import ConversationRepository
    from chathive.domains.messaging.repositories.customer import CustomerRepository
    from chathive.domains.messaging.repositories.message import MessageRepository
    from chathive.domains.organization.repositories.organization import OrganizationRepository


@dataclass(frozen=True)
class MessageRecord:
    """One normalized inbound message, ready to be inserted as a `messages` row."""

    organization_id: UUID
    conversation_id: UUID
    customer_id: UUID
    whatsapp_message_id: str | None
    message_type: MessageType
    content: str
    direction: MessageDirection = MessageDirection.inbound
    sender_type: SenderType = SenderType.customer
    status: MessageStatus = MessageStatus.delivered
    media_id: str | None = None
    media_mime_type: str | None = None
    media_filename: str | None = None
    media_sha256: str | None = None
    reply_to_message_id: UUID | None = None
    whatsapp_timestamp: datetime | None = None


@dataclass
class IngestionUnit:
    """Repositories sharing one transaction; one unit per webhook message or status."""

    organizations: OrganizationRepository
    customers: CustomerRepository
    conversations: ConversationRepository
    messages: MessageRepository


@dataclass
class DispatchReport:
    messages_stored: int = 0
    duplicates: int = 0
    statuses_applied: int = 0
    statuses_missed: int = 0
    skipped_changes: int = 0
    failures: list[str] = field(default_factory=list)
