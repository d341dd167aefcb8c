"""End-to-end webhook processing over the in-memory database."""

import asyncio

import pytest

from chathive.domains.ingestion.errors import AuthenticationError, PersistenceError
from chathive.domains.ingestion.service import WebhookDispatcher
from chathive.domains.messaging.models import (
    ConversationStatus,
    MessageDirection,
    MessageStatus,
    MessageType,
    SenderType,
)
from chathive.domains.whatsapp.security import build_signature
from tests.fakes import (
    FakeCustomerRepository,
    FakeDatabase,
    FakeMessageRepository,
    FakeOrganizationRepository,
)
from tests.payloads import (
    APP_SECRET,
    CUSTOMER_PHONE,
    encode,
    media_message,
    signed,
    status_event,
    text_message,
    webhook_body,
)

OTHER_PHONE = "15550002222"


async def _dispatch(dispatcher: WebhookDispatcher, body: dict):
    raw, signature = signed(body)
    return await dispatcher.dispatch(raw, signature)


async def test_first_text_creates_customer_conversation_and_message(dispatcher, db: FakeDatabase, org) -> None:
    report = await _dispatch(dispatcher, webhook_body(messages=[text_message("wamid.A", "Hi, do you have a 3pm slot?")]))

    assert report.messages_stored == 1
    assert report.failures == []

    [customer] = db.customers.values()
    assert customer.organization_id == org.id
    assert customer.phone == CUSTOMER_PHONE
    assert customer.name == "Dana"

    [conv] = db.conversations.values()
    assert conv.customer_id == customer.id
    assert conv.status == ConversationStatus.open
    assert conv.message_count == 1
    assert conv.unread_count == 1
    assert conv.last_message_preview == "Hi, do you have a 3pm slot?"
    assert conv.last_message_direction == MessageDirection.inbound

    [message] = db.messages.values()
    assert message.conversation_id == conv.id
    assert message.direction == MessageDirection.inbound
    assert message.sender_type == SenderType.customer
    assert message.message_type == MessageType.text
    assert message.content == "Hi, do you have a 3pm slot?"
    assert message.status == MessageStatus.delivered


async def test_image_without_caption(dispatcher, db: FakeDatabase, org) -> None:
    await _dispatch(
        dispatcher, webhook_body(messages=[media_message("wamid.B", "image", {"id": "m1", "mime_type": "image/jpeg"})])
    )

    message = db.message_by_wamid("wamid.B")
    assert message.content == "[Image]"
    assert message.media_mime_type == "image/jpeg"
    assert message.media_url is None


async def test_document_with_filename(dispatcher, db: FakeDatabase, org) -> None:
    await _dispatch(
        dispatcher,
        webhook_body(messages=[media_message("wamid.C", "document", {"id": "m2", "filename": "quote.pdf"})]),
    )

    assert db.message_by_wamid("wamid.C").content == "[Document: quote.pdf]"


async def test_replayed_delivery_stores_one_message(dispatcher, db: FakeDatabase, org) -> None:
    body = webhook_body(messages=[text_message("wamid.A", "Hi")])

    first = await _dispatch(dispatcher, body)
    second = await _dispatch(dispatcher, body)

    assert first.messages_stored == 1
    assert second.messages_stored == 0
    assert second.duplicates == 1
    assert len(db.messages) == 1
    [conv] = db.conversations.values()
    assert conv.message_count == 1


async def test_insert_conflict_after_precheck_counts_as_duplicate(
    dispatcher, db: FakeDatabase, org, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def lost_race(self, record):
        return None

    monkeypatch.setattr(FakeMessageRepository, "insert_if_absent", lost_race)

    report = await _dispatch(dispatcher, webhook_body(messages=[text_message("wamid.A", "Hi")]))

    assert report.duplicates == 1
    assert report.messages_stored == 0
    [conv] = db.conversations.values()
    assert conv.message_count == 0


async def test_batch_from_one_phone_shares_customer_and_conversation(dispatcher, db: FakeDatabase, org) -> None:
    body = webhook_body(messages=[text_message("wamid.1", "Hi"), text_message("wamid.2", "Are you open?")])

    report = await _dispatch(dispatcher, body)

    assert report.messages_stored == 2
    assert len(db.customers) == 1
    [conv] = db.conversations.values()
    assert conv.message_count == 2
    assert conv.unread_count == 2
    assert conv.last_message_preview == "Are you open?"


async def test_new_message_reopens_snoozed_conversation(dispatcher, db: FakeDatabase, org) -> None:
    customer = db.add_customer(org.id, CUSTOMER_PHONE, "Dana")
    snoozed = db.add_conversation(org.id, customer.id, status=ConversationStatus.snoozed)

    await _dispatch(dispatcher, webhook_body(messages=[text_message("wamid.A", "Hello again")]))

    assert snoozed.status == ConversationStatus.open
    assert db.message_by_wamid("wamid.A").conversation_id == snoozed.id
    assert len(db.conversations) == 1


async def test_read_status_reconciles_outbound_message(dispatcher, db: FakeDatabase, org) -> None:
    outbound = db.add_message(
        organization_id=org.id,
        whatsapp_message_id="wamid.123",
        direction=MessageDirection.outbound,
        status=MessageStatus.sent,
    )

    report = await _dispatch(dispatcher, webhook_body(statuses=[status_event("wamid.123", "read")]))

    assert report.statuses_applied == 1
    assert outbound.status == MessageStatus.read


async def test_status_for_unknown_message_is_acknowledged(dispatcher, db: FakeDatabase, org) -> None:
    report = await _dispatch(dispatcher, webhook_body(statuses=[status_event("wamid.999", "read")]))

    assert report.statuses_missed == 1
    assert report.failures == []
    assert db.messages == {}


async def test_status_before_message_then_message_arrives(dispatcher, db: FakeDatabase, org) -> None:
    await _dispatch(dispatcher, webhook_body(statuses=[status_event("wamid.X", "read")]))
    report = await _dispatch(dispatcher, webhook_body(messages=[text_message("wamid.X", "Hi")]))

    assert report.messages_stored == 1
    assert len(db.messages) == 1


async def test_tampered_signature_rejects_without_writes(dispatcher, db: FakeDatabase, org) -> None:
    raw, signature = signed(webhook_body(messages=[text_message("wamid.A", "Hi")]))
    tampered = raw.replace(b"Hi", b"Yo")

    with pytest.raises(AuthenticationError):
        await dispatcher.dispatch(tampered, signature)

    assert db.writes == 0
    assert db.units_opened == 0
    assert db.messages == {}


async def test_missing_signature_is_rejected(dispatcher, db: FakeDatabase, org) -> None:
    with pytest.raises(AuthenticationError):
        await dispatcher.dispatch(encode(webhook_body(messages=[text_message("wamid.A", "Hi")])), None)
    assert db.units_opened == 0


async def test_no_secret_accepts_unsigned_delivery(db: FakeDatabase, org) -> None:
    dispatcher = WebhookDispatcher(db.open_unit, app_secret="", unit_timeout=1.0)

    report = await dispatcher.dispatch(encode(webhook_body(messages=[text_message("wamid.A", "Hi")])), None)

    assert report.messages_stored == 1


async def test_unknown_phone_number_id_skips_change(dispatcher, db: FakeDatabase, org) -> None:
    body = webhook_body(messages=[text_message("wamid.A", "Hi")], phone_number_id="000000")

    report = await _dispatch(dispatcher, body)

    assert report.skipped_changes == 1
    assert db.writes == 0


async def test_change_routes_to_matching_organization(dispatcher, db: FakeDatabase, org) -> None:
    other = db.add_organization(phone_number_id="PNID-2")

    await _dispatch(dispatcher, webhook_body(messages=[text_message("wamid.A", "Hi")], phone_number_id="PNID-2"))

    assert db.message_by_wamid("wamid.A").organization_id == other.id


async def test_non_message_fields_and_objects_are_ignored(dispatcher, db: FakeDatabase, org) -> None:
    await _dispatch(dispatcher, webhook_body(messages=[text_message("wamid.A", "Hi")], field="account_update"))
    await _dispatch(dispatcher, webhook_body(messages=[text_message("wamid.B", "Hi")], obj="page"))

    assert db.units_opened == 0
    assert db.messages == {}


async def test_empty_change_does_not_touch_database(dispatcher, db: FakeDatabase, org) -> None:
    report = await _dispatch(dispatcher, webhook_body())

    assert report.messages_stored == 0
    assert db.units_opened == 0


async def test_malformed_body_is_acknowledged(dispatcher, db: FakeDatabase, org) -> None:
    raw = b"{not json"
    report = await dispatcher.dispatch(raw, build_signature(APP_SECRET, raw))

    assert report.messages_stored == 0
    assert db.units_opened == 0


async def test_failing_unit_does_not_stop_the_batch(
    dispatcher, db: FakeDatabase, org, monkeypatch: pytest.MonkeyPatch
) -> None:
    original = FakeCustomerRepository.upsert_inbound

    async def flaky(self, organization_id, phone, **kwargs):
        if phone == OTHER_PHONE:
            raise PersistenceError("duplicate key value violates unique constraint")
        return await original(self, organization_id=organization_id, phone=phone, **kwargs)

    monkeypatch.setattr(FakeCustomerRepository, "upsert_inbound", flaky)
    body = webhook_body(
        messages=[text_message("wamid.bad", "Hi", sender=OTHER_PHONE), text_message("wamid.good", "Hi")],
        statuses=[status_event("wamid.good", "read")],
    )

    report = await _dispatch(dispatcher, body)

    assert report.failures == ["wamid.bad"]
    assert report.messages_stored == 1
    assert db.message_by_wamid("wamid.bad") is None
    assert db.message_by_wamid("wamid.good") is not None


async def test_badly_shaped_message_does_not_drop_its_batch(dispatcher, db: FakeDatabase, org) -> None:
    outbound = db.add_message(
        organization_id=org.id,
        whatsapp_message_id="wamid.123",
        direction=MessageDirection.outbound,
        status=MessageStatus.sent,
    )
    body = webhook_body(
        messages=[text_message("wamid.good", "Hi"), text_message("wamid.bad", "Hi", text="oops")],
        statuses=[status_event("wamid.123", "read")],
    )

    report = await _dispatch(dispatcher, body)

    assert report.failures == ["wamid.bad"]
    assert report.messages_stored == 1
    assert report.statuses_applied == 1
    assert db.message_by_wamid("wamid.good").content == "Hi"
    assert db.message_by_wamid("wamid.bad") is None
    assert outbound.status == MessageStatus.read


async def test_badly_shaped_contact_keeps_its_message(dispatcher, db: FakeDatabase, org) -> None:
    body = webhook_body(messages=[text_message("wamid.A", "Hi")], contacts=["Dana", {"profile": "Dana"}])

    report = await _dispatch(dispatcher, body)

    assert report.failures == []
    assert report.messages_stored == 1
    [customer] = db.customers.values()
    assert customer.name == CUSTOMER_PHONE


async def test_unexpected_error_is_contained(
    dispatcher, db: FakeDatabase, org, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def broken(self, *args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(FakeCustomerRepository, "upsert_inbound", broken)

    report = await _dispatch(dispatcher, webhook_body(messages=[text_message("wamid.A", "Hi")]))

    assert report.failures == ["wamid.A"]


async def test_hanging_unit_times_out(db: FakeDatabase, org, monkeypatch: pytest.MonkeyPatch) -> None:
    original = FakeCustomerRepository.upsert_inbound

    async def slow(self, organization_id, phone, **kwargs):
        if phone == OTHER_PHONE:
            await asyncio.sleep(5)
        return await original(self, organization_id=organization_id, phone=phone, **kwargs)

    monkeypatch.setattr(FakeCustomerRepository, "upsert_inbound", slow)
    dispatcher = WebhookDispatcher(db.open_unit, app_secret=APP_SECRET, unit_timeout=0.05)
    body = webhook_body(
        messages=[text_message("wamid.slow", "Hi", sender=OTHER_PHONE), text_message("wamid.fast", "Hi")]
    )

    report = await _dispatch(dispatcher, body)

    assert report.failures == ["wamid.slow"]
    assert report.messages_stored == 1


async def test_organization_lookup_failure_skips_change(
    dispatcher, db: FakeDatabase, org, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def down(self, phone_number_id):
        raise ConnectionError("database unavailable")

    monkeypatch.setattr(FakeOrganizationRepository, "get_by_phone_number_id", down)

    report = await _dispatch(dispatcher, webhook_body(messages=[text_message("wamid.A", "Hi")]))

    assert report.skipped_changes == 1
    assert db.messages == {}
