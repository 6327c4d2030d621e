"""
pullquest.api.routes.webhooks — GitHub webhook receiver
========================================================

Only ``pull_request`` events with action ``closed`` or ``reopened`` change
anything; every other delivery is acknowledged and ignored.  When
``GITHUB_WEBHOOK_SECRET`` is set, ``X-Hub-Signature-256`` must match the
HMAC-SHA256 of the raw body.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy import Engine

from pullquest.api.deps import get_engine, get_webhook_secret
from pullquest.database.engine import run_db
from pullquest.errors import ValidationError
from pullquest.services import stake_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Constant-time check of GitHub's ``sha256=<hex>`` signature header."""
    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.removeprefix("sha256="))


@router.post("/github")
async def github_webhook(
    request: Request,
    x_github_event: str | None = Header(None),
    x_hub_signature_256: str | None = Header(None),
    engine: Engine = Depends(get_engine),
):
    body = await request.body()

    secret = get_webhook_secret()
    if secret and not verify_signature(secret, body, x_hub_signature_256):
        logger.warning("Rejected webhook delivery with bad signature")
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid signature")

    # Ignored events are acknowledged without looking at the body.
    if x_github_event != "pull_request":
        logger.debug("Ignoring %s webhook event", x_github_event)
        return {"status": "processed"}

    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError as exc:
        raise ValidationError("Webhook body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")

    action = payload.get("action")
    pull_request = payload.get("pull_request") or {}
    pr_url = pull_request.get("html_url")
    if not pr_url:
        raise ValidationError(
            "pull_request.html_url is required", details={"field": "pull_request.html_url"}
        )

    await run_db(
        stake_service.settle_by_webhook,
        engine,
        pr_url,
        bool(pull_request.get("merged")),
        action,
    )
    return {"status": "processed"}
