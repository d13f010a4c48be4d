"""Shared request plumbing for music-metadata clients.

Every outbound call goes through :meth:`BaseMetadataProvider._request`,
which:

1. takes a slot from the shared :class:`QuotaManager`,
2. runs the call under a timeout,
3. retries timeouts and retryable failures with exponential backoff,
4. raises :class:`ProviderTransportError` once attempts are exhausted.

Each retry consumes a fresh quota slot.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from artistgraph.interfaces.music_db_provider import IMusicMetadataProvider
from artistgraph.models.provider import (
    CollaborationNetwork,
    Collaborator,
    LabelCredit,
    ProviderArtist,
)
from artistgraph.services.quota_manager import QuotaManager
from artistgraph.utils.errors import (
    ArtistGraphError,
    ProviderNotFoundError,
    ProviderTransportError,
)
from artistgraph.utils.logging import get_logger
from artistgraph.utils.text_normalizer import match_confidence

_T = TypeVar("_T")

_MIN_MATCH_CONFIDENCE = 0.6


class RetryableRequestError(Exception):
    """Internal signal: the request failed in a way worth retrying."""

    def __init__(self, message: str, retry_after: float = 0.0, status_code: int | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.status_code = status_code


class BaseMetadataProvider(IMusicMetadataProvider):
    """Quota-gated, retrying base for concrete provider clients."""

    def __init__(
        self,
        quota_manager: QuotaManager,
        collaboration_weight: float = 1.0,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        timeout_seconds: float = 20.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._quota = quota_manager
        self._weight = collaboration_weight
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff_seconds
        self._timeout = timeout_seconds
        self._sleep = sleep
        self._logger = get_logger(self.__class__.__module__)

    @property
    def collaboration_weight(self) -> float:
        return self._weight

    def _translate_error(self, exc: Exception) -> ArtistGraphError | RetryableRequestError:
        """Map a library exception to a retry signal or a final error.

        Subclasses extend this for their client library's exception types.
        """
        if isinstance(exc, (httpx.TransportError, OSError)):
            return RetryableRequestError(str(exc) or exc.__class__.__name__)
        return ProviderTransportError(
            message=f"Unexpected provider failure: {exc}",
            provider_name=self.get_provider_name(),
        )

    async def _request(self, operation: str, call: Callable[[], Awaitable[_T]]) -> _T:
        """Run *call* under quota, timeout and retry control.

        Raises
        ------
        ProviderNotFoundError, ConfigurationError
            Passed through untouched; never retried.
        ProviderTransportError
            On a non-retryable failure, or once retries are exhausted.
        QuotaExceededError, QuotaDeferredError
            From the quota manager, before any request is sent.
        """
        provider = self.get_provider_name()
        last_error = "no attempt made"

        for attempt in range(1, self._max_attempts + 1):
            await self._quota.acquire(provider)
            retry_after = 0.0
            try:
                return await asyncio.wait_for(call(), timeout=self._timeout)
            except ArtistGraphError:
                raise
            except RetryableRequestError as exc:
                last_error = str(exc)
                retry_after = exc.retry_after
            except asyncio.TimeoutError:
                last_error = f"timed out after {self._timeout}s"
            except Exception as exc:
                translated = self._translate_error(exc)
                if not isinstance(translated, RetryableRequestError):
                    raise translated from exc
                last_error = str(translated)
                retry_after = translated.retry_after

            if attempt < self._max_attempts:
                delay = max(self._backoff * (2 ** (attempt - 1)), retry_after)
                self._logger.warning(
                    f"{provider}_request_retry",
                    operation=operation,
                    attempt=attempt,
                    delay=round(delay, 2),
                    error=last_error,
                )
                await self._sleep(delay)

        self._logger.error(
            f"{provider}_request_failed",
            operation=operation,
            attempts=self._max_attempts,
            error=last_error,
        )
        raise ProviderTransportError(
            message=f"{operation} failed after {self._max_attempts} attempts: {last_error}",
            provider_name=provider,
        )

    def _best_match(self, query: str, candidates: list[ProviderArtist]) -> ProviderArtist:
        """Pick the highest-confidence candidate or raise ``ProviderNotFoundError``."""
        scored = [
            c.model_copy(update={"confidence": match_confidence(query, c.name)}) for c in candidates
        ]
        scored.sort(key=lambda c: c.confidence, reverse=True)
        if not scored or scored[0].confidence < _MIN_MATCH_CONFIDENCE:
            raise ProviderNotFoundError(
                message=f"No confident match for '{query}'",
                provider_name=self.get_provider_name(),
            )
        return scored[0]


class NetworkBuilder:
    """Accumulates collaborator and label sightings into a network.

    A collaborator seen several times on the same piece of evidence (e.g.
    credited twice on one release) is counted once for that evidence.
    """

    def __init__(self, self_id: str, self_name: str = "") -> None:
        self._self_id = str(self_id)
        self._self_name = self_name.strip().lower()
        self._collaborators: dict[str, dict] = {}
        self._labels: dict[str, dict] = {}

    def add_collaborator(
        self,
        name: str,
        artist_id: str | None,
        role: str,
        evidence: str,
    ) -> None:
        name = (name or "").strip()
        if not name:
            return
        if artist_id is not None and str(artist_id) == self._self_id:
            return
        if artist_id is None and name.lower() == self._self_name:
            return
        key = str(artist_id) if artist_id is not None else f"name:{name.lower()}"
        entry = self._collaborators.setdefault(
            key,
            {"name": name, "id": str(artist_id) if artist_id is not None else None, "roles": [], "evidence": []},
        )
        if role and role not in entry["roles"]:
            entry["roles"].append(role)
        if evidence not in entry["evidence"]:
            entry["evidence"].append(evidence)

    def add_label(self, name: str, label_id: str | None, evidence: str) -> None:
        name = (name or "").strip()
        if not name:
            return
        key = str(label_id) if label_id is not None else f"name:{name.lower()}"
        entry = self._labels.setdefault(
            key, {"name": name, "id": str(label_id) if label_id is not None else None, "evidence": []}
        )
        if evidence not in entry["evidence"]:
            entry["evidence"].append(evidence)

    def build(self) -> CollaborationNetwork:
        return CollaborationNetwork(
            collaborators={
                key: Collaborator(
                    artist_name=e["name"],
                    artist_id=e["id"],
                    collaboration_count=max(1, len(e["evidence"])),
                    roles=e["roles"],
                    evidence=e["evidence"],
                )
                for key, e in self._collaborators.items()
            },
            labels={
                key: LabelCredit(
                    label_name=e["name"],
                    label_id=e["id"],
                    release_count=max(1, len(e["evidence"])),
                    evidence=e["evidence"],
                )
                for key, e in self._labels.items()
            },
        )
