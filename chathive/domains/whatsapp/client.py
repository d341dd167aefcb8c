from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from chathive.config import Config

logger = logging.getLogger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com"


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class MediaResult:
    success: bool
    url: str | None = None
    mime_type: str | None = None
    error: str | None = None


class WhatsAppClient:
    """Thin WhatsApp Cloud API client for one organization's phone number.

    Calls never raise for HTTP or transport failures; they return a failed
    SendResult so callers decide how to surface the error.
    """

    def __init__(
        self,
        phone_number_id: str,
        access_token: str,
        *,
        api_version: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.phone_number_id = phone_number_id
        self.access_token = access_token
        self.base_url = f"{GRAPH_API_BASE}/{api_version or Config.WHATSAPP_API_VERSION}"
        self._transport = transport
        self._timeout = timeout

    # ── Outbound delivery ─────────────────────────────────────────────────

    async def send_text(self, to: str, text: str, reply_to_message_id: str | None = None) -> SendResult:
        payload: dict[str, Any] = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"body": text},
        }
        if reply_to_message_id:
            payload["context"] = {"message_id": reply_to_message_id}
        return await self._send(payload, "Failed to send message")

    async def send_template(
        self,
        to: str,
        template_name: str,
        language_code: str,
        components: list[dict[str, Any]] | None = None,
    ) -> SendResult:
        """Template messages are the only kind allowed outside the 24h customer-service window."""
        template: dict[str, Any] = {"name": template_name, "language": {"code": language_code}}
        if components:
            template["components"] = components
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "template",
            "template": template,
        }
        return await self._send(payload, "Failed to send template")

    async def send_image(self, to: str, image_url: str, caption: str | None = None) -> SendResult:
        image: dict[str, Any] = {"link": image_url}
        if caption:
            image["caption"] = caption
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "image",
            "image": image,
        }
        return await self._send(payload, "Failed to send image")

    async def send_document(
        self, to: str, document_url: str, filename: str, caption: str | None = None
    ) -> SendResult:
        document: dict[str, Any] = {"link": document_url, "filename": filename}
        if caption:
            document["caption"] = caption
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "document",
            "document": document,
        }
        return await self._send(payload, "Failed to send document")

    # ── Presence / media ──────────────────────────────────────────────────

    async def mark_as_read(self, message_id: str) -> SendResult:
        payload = {
            "messaging_product": "whatsapp",
            "status": "read",
            "message_id": message_id,
        }
        return await self._send(payload, "Failed to mark as read")

    async def get_media_url(self, media_id: str) -> MediaResult:
        """Resolve the media id of an inbound message to a short-lived download URL."""
        try:
            async with self._client() as client:
                resp = await client.get(f"{self.base_url}/{media_id}", headers=self._auth_headers())
        except httpx.HTTPError as e:
            logger.warning("WhatsApp media lookup failed for %s: %s", media_id, e)
            return MediaResult(success=False, error=str(e))

        data = _json_or_empty(resp)
        if resp.status_code != 200 or not data.get("url"):
            logger.warning("WhatsApp media lookup failed (%s): %s", resp.status_code, resp.text)
            return MediaResult(success=False, error=_error_message(data, "Failed to get media URL"))
        return MediaResult(success=True, url=data["url"], mime_type=data.get("mime_type"))

    # ── Internal helpers ───────────────────────────────────────────────────

    async def _send(self, payload: dict[str, Any], fallback_error: str) -> SendResult:
        url = f"{self.base_url}/{self.phone_number_id}/messages"
        try:
            async with self._client() as client:
                resp = await client.post(url, json=payload, headers=self._auth_headers())
        except httpx.HTTPError as e:
            logger.error("WhatsApp request to %s failed: %s", url, e)
            return SendResult(success=False, error=str(e))

        data = _json_or_empty(resp)
        if resp.status_code != 200:
            logger.error("WhatsApp send failed (%s): %s", resp.status_code, resp.text)
            return SendResult(success=False, error=_error_message(data, fallback_error))

        messages = data.get("messages") or [{}]
        return SendResult(success=True, message_id=messages[0].get("id"))

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    def _auth_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }


def _json_or_empty(resp: httpx.Response) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _error_message(data: dict, fallback: str) -> str:
    error = data.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return fallback
