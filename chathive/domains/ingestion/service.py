from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from typing import TypeVar
from uuid import UUID

from chathive.domains.ingestion.contracts import DispatchReport, IngestionUnit
from chathive.domains.ingestion.errors import (
    AuthenticationError,
    MalformedPayloadError,
    PersistenceError,
    UnknownOrganizationError,
)
from chathive.domains.ingestion.normalizer import MessageNormalizer
from chathive.domains.messaging.models import MessageDirection
from chathive.domains.messaging.services.conversation_router import ConversationRouter
from chathive.domains.messaging.services.identity_resolver import IdentityResolver
from chathive.domains.messaging.services.status_reconciler import StatusReconciler
from chathive.domains.whatsapp.schemas import WebhookMessage, WebhookStatus, WebhookValue, decode_payload
from chathive.domains.whatsapp.security import verify_signature

logger = logging.getLogger(__name__)

WHATSAPP_OBJECT = "whatsapp_business_account"
MESSAGES_FIELD = "messages"

UnitFactory = Callable[[], AbstractAsyncContextManager[IngestionUnit]]
T = TypeVar("T")


class WebhookDispatcher:
    """Entry point for WhatsApp Cloud API webhook deliveries.

    A delivery is a batch of entries → changes → value, where each value carries
    zero or more messages and delivery statuses. Every message or status is
    processed in its own unit of work under a timeout. A failing unit is logged
    and skipped; only a bad signature fails the request, because Meta retries the
    whole batch on any non-2xx response.
    """

    def __init__(
        self,
        unit_factory: UnitFactory,
        *,
        app_secret: str,
        unit_timeout: float,
        implicit_opt_in: bool = True,
    ) -> None:
        self.unit_factory = unit_factory
        self.app_secret = app_secret
        self.unit_timeout = unit_timeout
        self.implicit_opt_in = implicit_opt_in

    async def dispatch(self, body: bytes, signature: str | None) -> DispatchReport:
        if not verify_signature(body, signature, self.app_secret):
            raise AuthenticationError("Invalid webhook signature")

        report = DispatchReport()
        try:
            payload = decode_payload(body)
        except MalformedPayloadError as e:
            logger.warning("Malformed webhook payload, acknowledging without processing: %s", e)
            return report

        if payload.object != WHATSAPP_OBJECT:
            logger.info("Ignoring webhook for object=%s", payload.object)
            return report

        for entry in payload.entry:
            for change in entry.changes:
                if change.field != MESSAGES_FIELD:
                    logger.debug("Ignoring change field=%s", change.field)
                    continue
                await self._process_change(change.value, report)

        logger.info(
            "Webhook processed: stored=%s duplicates=%s statuses=%s missed=%s skipped_changes=%s failures=%s",
            report.messages_stored, report.duplicates, report.statuses_applied,
            report.statuses_missed, report.skipped_changes, len(report.failures),
        )
        return report

    # ── Changes ───────────────────────────────────────────────────────────

    async def _process_change(self, value: WebhookValue, report: DispatchReport) -> None:
        report.failures.extend(value.rejected)
        if not value.messages and not value.statuses:
            return

        phone_number_id = value.metadata.phone_number_id
        try:
            organization_id = await asyncio.wait_for(
                self._resolve_organization(phone_number_id), timeout=self.unit_timeout
            )
        except UnknownOrganizationError:
            logger.warning("No organization found for phone_number_id %s, skipping change", phone_number_id)
            report.skipped_changes += 1
            return
        except Exception:
            logger.exception("Organization lookup failed for phone_number_id %s, skipping change", phone_number_id)
            report.skipped_changes += 1
            return

        for msg in value.messages:
            outcome = await self._run_unit(
                self._ingest_message(organization_id, msg, value), msg.id, organization_id, report
            )
            if outcome is True:
                report.messages_stored += 1
            elif outcome is False:
                report.duplicates += 1

        for event in value.statuses:
            updated = await self._run_unit(
                self._reconcile_status(organization_id, event), event.id, organization_id, report
            )
            if updated:
                report.statuses_applied += 1
            elif updated is not None:
                report.statuses_missed += 1

    async def _resolve_organization(self, phone_number_id: str | None) -> UUID:
        if not phone_number_id:
            raise UnknownOrganizationError(phone_number_id)
        async with self.unit_factory() as unit:
            organization = await unit.organizations.get_by_phone_number_id(phone_number_id)
        if organization is None:
            raise UnknownOrganizationError(phone_number_id)
        return organization.id

    async def _run_unit(
        self,
        work: Awaitable[T],
        whatsapp_message_id: str,
        organization_id: UUID,
        report: DispatchReport,
    ) -> T | None:
        try:
            return await asyncio.wait_for(work, timeout=self.unit_timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Unit timed out after %ss: msg=%s org=%s", self.unit_timeout, whatsapp_message_id, organization_id,
            )
        except PersistenceError:
            logger.exception("Unit not persisted: msg=%s org=%s", whatsapp_message_id, organization_id)
        except Exception:
            logger.exception("Unit failed: msg=%s org=%s", whatsapp_message_id, organization_id)
        report.failures.append(whatsapp_message_id)
        return None

    # ── Units ─────────────────────────────────────────────────────────────

    async def _ingest_message(self, organization_id: UUID, msg: WebhookMessage, value: WebhookValue) -> bool:
        """Store one inbound message. Returns False when it was already stored."""
        async with self.unit_factory() as unit:
            if msg.id and await unit.messages.exists_by_whatsapp_id(organization_id, msg.id):
                logger.info("Duplicate message %s, skipping", msg.id)
                return False

            customer_id = await IdentityResolver(
                unit.customers, implicit_opt_in=self.implicit_opt_in
            ).resolve(
                organization_id,
                provider_contact_id=msg.from_,
                display_name=value.contact_name(msg.from_),
                phone=msg.from_,
            )
            conversation_id = await ConversationRouter(unit.conversations).route(organization_id, customer_id)
            record = await MessageNormalizer(unit.messages).normalize(
                msg, organization_id, conversation_id, customer_id
            )

            message_id = await unit.messages.insert_if_absent(record)
            if message_id is None:
                logger.info("Message %s stored concurrently, skipping", msg.id)
                return False

            await unit.conversations.record_message(
                conversation_id,
                MessageDirection.inbound,
                record.content,
                record.whatsapp_timestamp or datetime.now(timezone.utc),
            )
        logger.info("Message processed: %s (type=%s) org=%s", msg.id, msg.type, organization_id)
        return True

    async def _reconcile_status(self, organization_id: UUID, event: WebhookStatus) -> int:
        async with self.unit_factory() as unit:
            return await StatusReconciler(unit.messages).apply(organization_id, event)
