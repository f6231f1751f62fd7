"""TOTP (RFC 6238) code generation: HMAC-SHA1, 30 second period, 6 digits.

Uses pyotp for the HOTP step (HMAC over the big-endian counter, dynamic
truncation, zero padding). The counter is derived here from an explicit
millisecond timestamp so results are replayable for any instant.
"""

from __future__ import annotations

import pyotp

from otpclock.clock import SyncContext
from otpclock.models import TokenResult, TokenStatus
from otpclock.secret import is_base32, prepare_secret

PERIOD = 30
DIGITS = 6

EMPTY_RESULT = TokenResult(status=TokenStatus.EMPTY, period=PERIOD)
ERROR_RESULT = TokenResult(status=TokenStatus.ERROR, period=PERIOD)


def counter_at(timestamp_ms: int, period: int = PERIOD) -> int:
    return timestamp_ms // 1000 // period


def remaining_at(timestamp_ms: int, period: int = PERIOD) -> int:
    """Seconds until rollover, always in 1..period."""
    return period - (timestamp_ms // 1000) % period


def generate_token(secret_raw: str, timestamp_ms: int) -> TokenResult:
    """Evaluate the code for a secret at an exact instant.

    Never raises for bad input: an empty secret gives the EMPTY result and
    anything that is not decodable Base32 gives the ERROR result.
    """
    if not secret_raw:
        return EMPTY_RESULT

    secret = prepare_secret(secret_raw)
    if not is_base32(secret):
        return ERROR_RESULT

    timestamp_ms = int(timestamp_ms)
    try:
        token = pyotp.TOTP(secret, digits=DIGITS, interval=PERIOD).generate_otp(counter_at(timestamp_ms))
    except ValueError:
        # bad padding, or an instant before the epoch
        return ERROR_RESULT

    return TokenResult(
        status=TokenStatus.VALID,
        token=token,
        period=PERIOD,
        remaining=remaining_at(timestamp_ms),
    )


class TotpEngine:
    """Binds code generation to a session's synchronized clock."""

    def __init__(self, context: SyncContext) -> None:
        self.context = context

    def generate(self, secret_raw: str, timestamp_ms: int | None = None) -> TokenResult:
        if timestamp_ms is None:
            timestamp_ms = self.context.synced_time()
        return generate_token(secret_raw, timestamp_ms)
