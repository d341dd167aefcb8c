from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from chathive.domains.ingestion.errors import MalformedPayloadError

logger = logging.getLogger(__name__)


class _WebhookModel(BaseModel):
    """Lenient base: unknown keys are dropped and an explicit null falls back to the field default."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _null_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None and info.field_name is not None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return value


# ── Message bodies ────────────────────────────────────────────────────────


class TextBody(_WebhookModel):
    body: str = ""


class MediaBody(_WebhookModel):
    id: str | None = None
    mime_type: str | None = None
    sha256: str | None = None
    caption: str | None = None
    filename: str | None = None


class LocationBody(_WebhookModel):
    latitude: float | None = None
    longitude: float | None = None
    name: str | None = None
    address: str | None = None


class MessageContext(_WebhookModel):
    # Cloud API sends `id`; older payloads and some test tools use `message_id`.
    message_id: str | None = Field(default=None, validation_alias=AliasChoices("id", "message_id"))


class WebhookMessage(_WebhookModel):
    id: str = ""
    from_: str = Field(default="", alias="from")
    timestamp: int | str | None = None
    type: str = "unknown"
    text: TextBody | None = None
    image: MediaBody | None = None
    document: MediaBody | None = None
    audio: MediaBody | None = None
    video: MediaBody | None = None
    sticker: MediaBody | None = None
    location: LocationBody | None = None
    context: MessageContext | None = None


# ── Statuses ──────────────────────────────────────────────────────────────


class StatusError(_WebhookModel):
    code: int | str | None = None
    title: str | None = None


class WebhookStatus(_WebhookModel):
    id: str = ""
    status: str = ""
    timestamp: int | str | None = None
    recipient_id: str | None = None
    errors: list[StatusError] = Field(default_factory=list)


# ── Envelope ──────────────────────────────────────────────────────────────


class ContactProfile(_WebhookModel):
    name: str | None = None


class WebhookContact(_WebhookModel):
    wa_id: str | None = None
    profile: ContactProfile = Field(default_factory=ContactProfile)


class WebhookMetadata(_WebhookModel):
    phone_number_id: str | None = None
    display_phone_number: str | None = None


_ITEM_MODELS: dict[str, type[_WebhookModel]] = {
    "contacts": WebhookContact,
    "messages": WebhookMessage,
    "statuses": WebhookStatus,
}


class WebhookValue(_WebhookModel):
    metadata: WebhookMetadata = Field(default_factory=WebhookMetadata)
    contacts: list[WebhookContact] = Field(default_factory=list)
    messages: list[WebhookMessage] = Field(default_factory=list)
    statuses: list[WebhookStatus] = Field(default_factory=list)
    # Provider ids of messages/statuses dropped because they could not be decoded.
    rejected: list[str] = Field(default_factory=list, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _decode_items_individually(cls, data: Any) -> Any:
        """A badly shaped item is dropped on its own instead of failing the whole delivery."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        rejected: list[str] = []
        for key, model in _ITEM_MODELS.items():
            items = data.get(key)
            if not isinstance(items, list):
                continue
            kept = []
            for index, item in enumerate(items):
                try:
                    kept.append(model.model_validate(item))
                except ValidationError as e:
                    item_id = item.get("id") if isinstance(item, dict) else None
                    logger.warning(
                        "Dropping malformed %s[%s] id=%s: %s errors", key, index, item_id, e.error_count()
                    )
                    if key != "contacts":
                        rejected.append(str(item_id or f"{key}[{index}]"))
            data[key] = kept
        data["rejected"] = rejected
        return data

    def contact_name(self, wa_id: str) -> str | None:
        for contact in self.contacts:
            if contact.wa_id == wa_id:
                return contact.profile.name
        return None


class WebhookChange(_WebhookModel):
    field: str | None = None
    value: WebhookValue = Field(default_factory=WebhookValue)


class WebhookEntry(_WebhookModel):
    id: str | None = None
    changes: list[WebhookChange] = Field(default_factory=list)


class WebhookPayload(_WebhookModel):
    object: str | None = None
    entry: list[WebhookEntry] = Field(default_factory=list)


def decode_payload(body: bytes) -> WebhookPayload:
    """Parse a raw webhook body into a fully-defaulted WebhookPayload."""
    try:
        raw = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedPayloadError(f"Webhook body is not JSON: {e}") from e
    if not isinstance(raw, dict):
        raise MalformedPayloadError(f"Webhook body is a {type(raw).__name__}, expected an object")
    try:
        return WebhookPayload.model_validate(raw)
    except ValidationError as e:
        raise MalformedPayloadError(f"Webhook body has an unexpected shape: {e.error_count()} errors") from e


def epoch_to_datetime(value: int | str | None) -> datetime | None:
    """Provider timestamps are epoch seconds, usually sent as strings."""
    if value is None or value == "":
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
