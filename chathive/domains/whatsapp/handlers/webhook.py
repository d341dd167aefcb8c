from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Header, Query, Request, Response
from fastapi.responses import JSONResponse

from chathive.config import Config
from chathive.domains.ingestion.dependencies import get_webhook_dispatcher
from chathive.domains.ingestion.errors import AuthenticationError
from chathive.domains.ingestion.service import WebhookDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/whatsapp", tags=["webhook"])


@router.get("")
async def verify_webhook(
    hub_mode: str | None = Query(None, alias="hub.mode"),
    hub_verify_token: str | None = Query(None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(None, alias="hub.challenge"),
) -> Response:
    token_matches = hub_verify_token is not None and hmac.compare_digest(
        hub_verify_token.encode(), Config.WHATSAPP_VERIFY_TOKEN.encode()
    )
    if hub_mode == "subscribe" and token_matches:
        logger.info("Webhook verified successfully")
        return Response(content=hub_challenge or "", media_type="text/plain")

    logger.warning("Webhook verification failed (mode=%s)", hub_mode)
    return JSONResponse({"error": "Verification failed"}, status_code=403)


@router.post("")
async def receive_event(
    request: Request,
    x_hub_signature_256: str | None = Header(None),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
) -> Response:
    body = await request.body()
    try:
        await dispatcher.dispatch(body, x_hub_signature_256)
    except AuthenticationError:
        logger.warning("Rejected webhook with invalid signature")
        return JSONResponse({"error": "Invalid signature"}, status_code=401)
    except Exception:
        # Meta redelivers the whole batch on any non-2xx, so unexpected errors are acknowledged too.
        logger.exception("Webhook processing error")
        return JSONResponse({"status": "error"})
    return JSONResponse({"status": "received"})
