"""Per-provider request quota models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class QuotaLimits(BaseModel):
    model_config = ConfigDict(frozen=True)

    per_minute: int = Field(ge=1)
    daily: int = Field(ge=1)


class QuotaState(BaseModel):
    """Counters for one provider inside the current minute and day windows.

    ``window_reset_at`` is the next wall-clock minute boundary and
    ``day_reset_at`` the next daily boundary; counters reset once the
    clock passes them.
    """

    model_config = ConfigDict(frozen=True)

    provider: str
    requests_used_today: int = Field(default=0, ge=0)
    requests_used_this_minute: int = Field(default=0, ge=0)
    daily_ceiling: int
    per_minute_ceiling: int
    window_reset_at: datetime
    day_reset_at: datetime
    exhausted: bool = False


class QuotaCheck(BaseModel):
    """Answer to "may I call this provider right now?"."""

    model_config = ConfigDict(frozen=True)

    available: bool
    reason: str | None = None
    retry_after: float = 0.0
