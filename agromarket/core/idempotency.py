"""
Idempotency helpers for payment verification.

Verification requests carry a key derived from the payment reference so the
backend can collapse repeated calls into one settlement.
"""
from __future__ import annotations

import hashlib
import json
from typing import Any

IDEMPOTENCY_HEADER = "Idempotency-Key"


def normalize_idempotency_key(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def build_request_hash(payload: dict[str, Any]) -> str:
    """Generate a stable hash for a request payload."""
    serialized = json.dumps(
        payload,
        ensure_ascii=False,
        separators=(",", ":"),
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def verification_key(reference: str, vendor_id: int | None = None) -> str:
    """Key shared by every verify call for the same reference and vendor."""
    return "verify:" + build_request_hash({"reference": reference, "provider_id": vendor_id})
