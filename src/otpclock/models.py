"""Pydantic models for values handed to the display layer."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, computed_field

EMPTY_DISPLAY = "------"
ERROR_DISPLAY = "ERROR"


class TokenStatus(StrEnum):
    EMPTY = "empty"
    ERROR = "error"
    VALID = "valid"


class TokenResult(BaseModel):
    """One code evaluated for an exact (secret, timestamp) pair."""

    model_config = ConfigDict(frozen=True)

    status: TokenStatus
    token: str | None = None
    period: int = 30
    remaining: int = 0  # seconds until rollover, 1..period when valid

    @computed_field
    @property
    def valid(self) -> bool:
        return self.status == TokenStatus.VALID

    @computed_field
    @property
    def display(self) -> str:
        if self.status == TokenStatus.VALID and self.token:
            return self.token
        if self.status == TokenStatus.EMPTY:
            return EMPTY_DISPLAY
        return ERROR_DISPLAY


class WindowCodes(BaseModel):
    """Current code plus the optional adjacent (±1 period) codes."""

    model_config = ConfigDict(frozen=True)

    current: TokenResult
    previous: TokenResult | None = None
    next: TokenResult | None = None
    timestamp_ms: int
    synchronized: bool = False


class ClockState(BaseModel):
    """Offset and synchronized flag, always replaced as one value."""

    model_config = ConfigDict(frozen=True)

    offset_ms: int = 0
    synchronized: bool = False
    source: str | None = None
    synced_at_ms: int | None = None


class SyncResult(BaseModel):
    """Aggregate outcome of one synchronization round."""

    success: bool
    offset_ms: int
    source: str | None = None
    rtt_ms: float | None = None
