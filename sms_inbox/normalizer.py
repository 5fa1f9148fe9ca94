"""
Map provider webhook payloads onto NormalizedSms.

Providers do not share a schema, so each canonical field is resolved from an
ordered list of candidate keys. Payloads wrapped as {"data": {"payload": ...}}
are unwrapped one level first. Nothing here raises: a missing or unusable
field falls back to a default instead of rejecting the message.
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional, Sequence

from sms_inbox.schemas import NormalizedSms
from sms_inbox.utils import scrub_text

logger = logging.getLogger(__name__)

FROM_KEYS = ("from", "from_number", "msisdn")
TO_KEYS = ("to", "to_number", "to_msisdn")
TEXT_KEYS = ("text", "body", "message")

UNKNOWN_NUMBER = "unknown"


def unwrap_payload(raw: Any) -> Mapping:
    """Return the inner data.payload object when present, else the body itself."""
    if not isinstance(raw, Mapping):
        return {}
    data = raw.get("data")
    if isinstance(data, Mapping):
        payload = data.get("payload")
        if isinstance(payload, Mapping):
            return payload
    return raw


def _coerce(value: Any) -> Optional[str]:
    # bool is an int subclass but never a phone number or message
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return scrub_text(value) or None
    if isinstance(value, (int, float)):
        return str(value)
    return None


def first_present(payload: Mapping, keys: Sequence[str], default: str) -> str:
    """Return the first candidate key holding a usable value, else `default`."""
    for key in keys:
        value = _coerce(payload.get(key))
        if value is not None:
            return value
    return default


def normalize(raw: Any) -> NormalizedSms:
    """
    Extract (from, to, text) from an arbitrarily shaped webhook body.

    Args:
        raw: Decoded request body (any JSON value)

    Returns:
        NormalizedSms with "unknown" for missing numbers and "" for missing text
    """
    payload = unwrap_payload(raw)
    if payload is not raw and isinstance(raw, Mapping):
        logger.debug("Unwrapped nested data.payload object")

    return NormalizedSms(
        from_number=first_present(payload, FROM_KEYS, UNKNOWN_NUMBER),
        to_number=first_present(payload, TO_KEYS, UNKNOWN_NUMBER),
        text=first_present(payload, TEXT_KEYS, ""),
    )
