"""Request authentication helpers for the webhook listener.

- API key check for the admin endpoints (``X-API-Key`` vs ``API_KEY``)
- HMAC ``X-Hub-Signature-256`` verification for webhooks
- client IP allow-listing against configured networks
"""
from __future__ import annotations

import hashlib
import hmac
import ipaddress
import os
from typing import Iterable, Optional

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def verify_api_key(key: Optional[str]) -> bool:
    """Return True if provided key matches configured `API_KEY` env var."""
    if not key:
        return False
    expected = os.getenv("API_KEY")
    return expected is not None and key == expected


def require_api_key(api_key: Optional[str] = Security(api_key_header)) -> bool:
    if not verify_api_key(api_key):
        raise HTTPException(status_code=403, detail="Invalid API Key")
    return True


def verify_signature(
    body: bytes, signature: Optional[str], secret: Optional[str]
) -> bool:
    """Verify a GitHub ``sha256=HEX`` signature.

    With no configured secret every request is rejected.
    """
    if not secret or not signature:
        return False
    if "=" not in signature:
        return False
    alg, sig = signature.split("=", 1)
    if alg != "sha256":
        return False

    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(digest, sig)


def is_ip_allowed(host: Optional[str], networks: Iterable[str]) -> bool:
    """An empty network list allows everyone."""
    networks = list(networks)
    if not networks:
        return True
    if not host:
        return False
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return False
    return any(addr in ipaddress.ip_network(net, strict=False) for net in networks)
