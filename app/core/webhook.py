# app/core/webhook.py
from __future__ import annotations

import asyncio
import hmac
import hashlib
import json
import logging
import time
from typing import Dict, Any, Mapping, Tuple, Optional

import httpx

from app.core.config import settings

log = logging.getLogger("webhook")

HEADER_SIG = "X-Webhook-Signature"
HEADER_TS = "X-Webhook-Timestamp"
HEADER_EVT = "X-Webhook-Event"
DEFAULT_ALGO = "sha256"
DEFAULT_MAX_AGE_S = 300  # 5 minuti anti-replay


# ------------------------------------------------------------
# Firma HMAC di "<timestamp>.<body>"
# ------------------------------------------------------------
def sign_body(secret: str, ts: str, body_bytes: bytes, algo: str = DEFAULT_ALGO) -> str:
    algo = algo.lower()
    if not hasattr(hashlib, algo):
        raise ValueError(f"Unsupported HMAC algo: {algo}")
    message = f"{ts}.".encode("utf-8") + body_bytes
    return hmac.new(secret.encode("utf-8"), message, getattr(hashlib, algo)).hexdigest()


def build_headers(event_type: str, body_bytes: bytes, secret: Optional[str], ts: Optional[str] = None) -> Dict[str, str]:
    """
    Header della richiesta:
      - Content-Type
      - X-Webhook-Event: tipo evento
      - X-Webhook-Timestamp: anti-replay
      - X-Webhook-Signature: solo se c'è un secret
    """
    ts = ts or str(int(time.time()))
    headers: Dict[str, str] = {
        "Content-Type": "application/json",
        HEADER_EVT: event_type,
        HEADER_TS: ts,
    }
    if secret:
        headers[HEADER_SIG] = sign_body(secret, ts, body_bytes)
    return headers


def verify_hmac_signature(
    body_bytes: bytes,
    headers: Mapping[str, str],
    secret: str,
    max_age_seconds: int = DEFAULT_MAX_AGE_S,
    now: Optional[int] = None,
) -> Tuple[bool, Optional[str]]:
    """
    Verifica lato receiver (timestamp + firma). Ritorna (ok, errore).
    """
    ts = headers.get(HEADER_TS)
    if not ts:
        return False, f"missing {HEADER_TS}"
    try:
        ts_int = int(ts)
    except ValueError:
        return False, "invalid timestamp"

    now = int(time.time()) if now is None else now
    if abs(now - ts_int) > max_age_seconds:
        return False, "stale or future timestamp"

    sig_recv = headers.get(HEADER_SIG)
    if not sig_recv:
        return False, f"missing {HEADER_SIG}"

    if not hmac.compare_digest(sig_recv, sign_body(secret, ts, body_bytes)):
        return False, "signature mismatch"
    return True, None


# ------------------------------------------------------------
# Webhook POST con retry + firma HMAC e timestamp anti-replay
# ------------------------------------------------------------
async def post_webhook(
    event_type: str,
    payload: Dict[str, Any],
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Tuple[bool, Optional[str]]:
    """
    Invia un webhook amministrativo con body {"event_type": <str>, "payload": <dict>}.
    Ritorna (ok, error) dove error è None se ok=True.
    """
    admin_url = (settings.ADMIN_WEBHOOK_URL or "").strip()
    if not admin_url:
        return False, "ADMIN_WEBHOOK_URL not configured"

    body_dict = {"event_type": event_type, "payload": payload}
    body_bytes = json.dumps(body_dict, ensure_ascii=False, separators=(",", ":"), default=str).encode("utf-8")
    headers = build_headers(event_type, body_bytes, (settings.ADMIN_WEBHOOK_SECRET or "").strip() or None)

    timeout = httpx.Timeout(float(settings.ADMIN_WEBHOOK_TIMEOUT_SECONDS))
    max_retries = max(1, int(settings.ADMIN_WEBHOOK_MAX_RETRIES))
    backoff = 0.5
    err: Optional[str] = None

    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True, transport=transport) as client:
        for attempt in range(1, max_retries + 1):
            try:
                resp = await client.post(admin_url, content=body_bytes, headers=headers)
                if 200 <= resp.status_code < 300:
                    return True, None
                err = f"HTTP {resp.status_code}: {resp.text[:500]}"
            except httpx.HTTPError as e:
                err = str(e) or e.__class__.__name__

            log.warning("[WEBHOOK] %s attempt %d/%d failed: %s", event_type, attempt, max_retries, err)
            if attempt < max_retries:
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, 8.0)  # exponential backoff (cap 8s)

    return False, err
