"""Secret extraction and Base32 canonicalization.

Accepted inputs: raw Base32 (any case, spaces or hyphens allowed),
``otpauth://`` URIs carrying a ``secret`` query parameter, and
``value|extra`` compound strings where only the first segment counts.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urlsplit

OTPAUTH_SCHEME = "otpauth://"

_STRIP = re.compile(r"[\s-]")
_BASE32 = re.compile(r"[A-Z2-7=]+")


def extract_secret(raw: str) -> str:
    """Pull the secret portion out of whatever the account record stores."""
    text = raw.strip()
    if "|" in text:
        return text.split("|", 1)[0]
    if text.startswith(OTPAUTH_SCHEME):
        try:
            query = parse_qs(urlsplit(text).query)
        except ValueError:
            return text
        values = query.get("secret")
        if values and values[0]:
            return values[0]
    return text


def normalize_base32(text: str) -> str:
    """Strip whitespace and hyphens, uppercase, pad with '=' to a multiple of 8."""
    s = _STRIP.sub("", text).upper()
    return s + "=" * ((8 - len(s) % 8) % 8)


def is_base32(text: str) -> bool:
    return bool(_BASE32.fullmatch(text))


def prepare_secret(raw: str) -> str:
    """Extract then normalize. The result is never stored back."""
    return normalize_base32(extract_secret(raw))
