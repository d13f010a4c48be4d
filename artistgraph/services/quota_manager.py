"""Per-provider request budgets with minute and day windows.

Every provider call asks :meth:`QuotaManager.acquire` for a slot first.

* Daily ceiling reached: :class:`QuotaExceededError`; the provider stays
  halted until the next daily reset.
* Per-minute ceiling reached: wait for the next wall-clock minute, or in
  non-blocking mode raise :class:`QuotaDeferredError` so the caller can
  skip the item.

The minute window resets on wall-clock minute boundaries and the day window
at a fixed UTC hour.  Each provider has its own ``asyncio.Lock`` so the
check-and-increment is atomic across concurrent workers.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

from artistgraph.models.quota import QuotaCheck, QuotaLimits, QuotaState
from artistgraph.utils.errors import QuotaDeferredError, QuotaExceededError
from artistgraph.utils.logging import get_logger

_DEFAULT_LIMITS = QuotaLimits(per_minute=60, daily=10_000)
_MIN_WAIT_SECONDS = 0.05


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


def next_minute_boundary(now: datetime) -> datetime:
    return now.replace(second=0, microsecond=0) + timedelta(minutes=1)


def next_day_boundary(now: datetime, reset_hour_utc: int = 0) -> datetime:
    utc_now = now.astimezone(timezone.utc)  # noqa: UP017
    candidate = utc_now.replace(hour=reset_hour_utc, minute=0, second=0, microsecond=0)
    if candidate <= utc_now:
        candidate += timedelta(days=1)
    return candidate


def limits_from_config(config: dict) -> dict[str, QuotaLimits]:
    """Build per-provider limits from the ``quota.providers`` config section."""
    providers = (config.get("quota") or {}).get("providers") or {}
    return {
        name: QuotaLimits(
            per_minute=int(values.get("per_minute", _DEFAULT_LIMITS.per_minute)),
            daily=int(values.get("daily", _DEFAULT_LIMITS.daily)),
        )
        for name, values in providers.items()
    }


class QuotaManager:
    """Tracks and enforces request ceilings for every provider."""

    def __init__(
        self,
        limits: dict[str, QuotaLimits] | None = None,
        non_blocking: bool = False,
        day_reset_hour_utc: int = 0,
        default_limits: QuotaLimits = _DEFAULT_LIMITS,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not 0 <= day_reset_hour_utc <= 23:
            raise ValueError(f"day_reset_hour_utc must be 0-23, got {day_reset_hour_utc}")
        self._limits = dict(limits or {})
        self._default_limits = default_limits
        self._non_blocking = non_blocking
        self._reset_hour = day_reset_hour_utc
        self._clock = clock
        self._sleep = sleep
        self._states: dict[str, QuotaState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._deferred: dict[str, int] = {}
        self._logger = get_logger(__name__)

    @property
    def non_blocking(self) -> bool:
        return self._non_blocking

    # -- State helpers ---------------------------------------------------------

    def _limits_for(self, provider: str) -> QuotaLimits:
        return self._limits.get(provider, self._default_limits)

    def _lock_for(self, provider: str) -> asyncio.Lock:
        lock = self._locks.get(provider)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[provider] = lock
        return lock

    def _fresh_state(self, provider: str, now: datetime) -> QuotaState:
        limits = self._limits_for(provider)
        return QuotaState(
            provider=provider,
            daily_ceiling=limits.daily,
            per_minute_ceiling=limits.per_minute,
            window_reset_at=next_minute_boundary(now),
            day_reset_at=next_day_boundary(now, self._reset_hour),
        )

    def _current(self, provider: str, now: datetime) -> QuotaState:
        """Return *provider*'s state with any elapsed windows rolled over."""
        state = self._states.get(provider) or self._fresh_state(provider, now)
        update: dict[str, object] = {}
        if now >= state.window_reset_at:
            update["requests_used_this_minute"] = 0
            update["window_reset_at"] = next_minute_boundary(now)
        if now >= state.day_reset_at:
            update["requests_used_today"] = 0
            update["requests_used_this_minute"] = 0
            update["exhausted"] = False
            update["day_reset_at"] = next_day_boundary(now, self._reset_hour)
        return state.model_copy(update=update) if update else state

    # -- Public API ------------------------------------------------------------

    def check_available(self, provider: str) -> QuotaCheck:
        """Report whether *provider* may be called now, without consuming a slot."""
        now = self._clock()
        state = self._current(provider, now)
        if state.exhausted or state.requests_used_today >= state.daily_ceiling:
            return QuotaCheck(
                available=False,
                reason="daily quota exceeded",
                retry_after=max((state.day_reset_at - now).total_seconds(), 0.0),
            )
        if state.requests_used_this_minute >= state.per_minute_ceiling:
            return QuotaCheck(
                available=False,
                reason="per-minute quota reached",
                retry_after=max((state.window_reset_at - now).total_seconds(), 0.0),
            )
        return QuotaCheck(available=True)

    def is_exhausted(self, provider: str) -> bool:
        state = self._current(provider, self._clock())
        return state.exhausted or state.requests_used_today >= state.daily_ceiling

    async def acquire(self, provider: str, blocking: bool | None = None) -> QuotaState:
        """Consume one request slot for *provider*.

        Parameters
        ----------
        provider:
            Provider key, e.g. ``"discogs"``.
        blocking:
            Overrides the manager's non-blocking setting for this call.

        Returns
        -------
        QuotaState
            The provider's counters after the increment.

        Raises
        ------
        QuotaExceededError
            If the daily ceiling has been reached.
        QuotaDeferredError
            If the per-minute ceiling has been reached and the call is
            non-blocking.
        """
        should_block = (not self._non_blocking) if blocking is None else blocking

        while True:
            async with self._lock_for(provider):
                now = self._clock()
                state = self._current(provider, now)

                if state.exhausted or state.requests_used_today >= state.daily_ceiling:
                    if not state.exhausted:
                        self._logger.warning(
                            "quota_daily_exhausted",
                            provider=provider,
                            used=state.requests_used_today,
                            ceiling=state.daily_ceiling,
                            resets_at=state.day_reset_at.isoformat(),
                        )
                    self._states[provider] = state.model_copy(update={"exhausted": True})
                    raise QuotaExceededError(
                        message=f"Daily quota of {state.daily_ceiling} requests exhausted",
                        provider_name=provider,
                    )

                if state.requests_used_this_minute < state.per_minute_ceiling:
                    state = state.model_copy(
                        update={
                            "requests_used_today": state.requests_used_today + 1,
                            "requests_used_this_minute": state.requests_used_this_minute + 1,
                        }
                    )
                    self._states[provider] = state
                    return state

                self._states[provider] = state
                wait = max((state.window_reset_at - now).total_seconds(), _MIN_WAIT_SECONDS)
                if not should_block:
                    self._deferred[provider] = self._deferred.get(provider, 0) + 1
                    self._logger.info(
                        "quota_deferred",
                        provider=provider,
                        retry_after=round(wait, 2),
                    )
                    raise QuotaDeferredError(
                        message=f"Per-minute quota of {state.per_minute_ceiling} reached",
                        provider_name=provider,
                        retry_after=wait,
                    )

            self._logger.info("quota_minute_wait", provider=provider, wait_seconds=round(wait, 2))
            await self._sleep(wait)

    def deferred_count(self, provider: str | None = None) -> int:
        if provider is None:
            return sum(self._deferred.values())
        return self._deferred.get(provider, 0)

    def status(self) -> list[QuotaState]:
        """Current counters for every configured or used provider."""
        now = self._clock()
        providers = sorted(set(self._limits) | set(self._states))
        return [self._current(p, now) for p in providers]

    def snapshot(self) -> list[QuotaState]:
        return self.status()

    def restore(self, states: list[QuotaState]) -> None:
        """Load persisted counters, keeping the currently configured ceilings.

        Windows that have elapsed since the snapshot roll over on next use.
        """
        for saved in states:
            limits = self._limits_for(saved.provider)
            self._states[saved.provider] = saved.model_copy(
                update={
                    "daily_ceiling": limits.daily,
                    "per_minute_ceiling": limits.per_minute,
                    "exhausted": saved.exhausted and saved.requests_used_today >= limits.daily,
                }
            )
        self._logger.info("quota_state_restored", providers=[s.provider for s in states])
