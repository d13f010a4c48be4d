"""Exception hierarchy for artistgraph.

Every exception derives from :class:`ArtistGraphError`, which carries an
optional ``provider_name`` naming the external service or store involved
("discogs", "spotify", "sqlite", ...).

    ArtistGraphError  (base)
    +-- InvalidNameError          (name rejected by the normalizer)
    +-- ProviderNotFoundError     (provider has no matching artist)
    +-- ProviderTransportError    (network / 5xx / 429 after retries)
    +-- QuotaExceededError        (daily ceiling reached for a provider)
    +-- QuotaDeferredError        (per-minute ceiling hit in non-blocking mode)
    +-- StorageConflictError      (uniqueness violation on insert)
    +-- StorageWriteError         (any other failed write)
    +-- PipelineError             (orchestration / phase transitions)
    +-- ConfigurationError        (missing credentials, unreachable store)

Only ``ConfigurationError`` is fatal to a batch run; everything else is
isolated to the item, edge, or provider that produced it.
"""


class ArtistGraphError(Exception):
    """Base exception for all artistgraph errors.

    ``__str__`` prefixes the provider name in brackets, e.g.
    ``[spotify] Provider request failed``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Name handling
# ---------------------------------------------------------------------------

class InvalidNameError(ArtistGraphError):
    """Raised when an artist name normalizes to nothing usable."""

    def __init__(
        self,
        message: str = "Invalid artist name",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------

class ProviderNotFoundError(ArtistGraphError):
    """Raised when a provider has no record for the requested artist.

    Not a failure: callers log it and skip the provider for that artist.
    """

    def __init__(
        self,
        message: str = "Artist not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderTransportError(ArtistGraphError):
    """Raised when a provider request still fails after all retry attempts."""

    def __init__(
        self,
        message: str = "Provider request failed",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code

    @property
    def status_code(self) -> int | None:
        return self._status_code


class QuotaExceededError(ArtistGraphError):
    """Raised when a provider's daily request ceiling has been reached.

    The provider stays halted for the rest of the run.
    """

    def __init__(
        self,
        message: str = "Daily request quota exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class QuotaDeferredError(ArtistGraphError):
    """Raised in non-blocking mode when the per-minute ceiling is reached."""

    def __init__(
        self,
        message: str = "Per-minute quota reached, call deferred",
        provider_name: str | None = None,
        retry_after: float = 0.0,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._retry_after = retry_after

    @property
    def retry_after(self) -> float:
        return self._retry_after


# ---------------------------------------------------------------------------
# Storage errors
# ---------------------------------------------------------------------------

class StorageConflictError(ArtistGraphError):
    """Raised on a uniqueness violation; recoverable by re-reading the row."""

    def __init__(
        self,
        message: str = "Uniqueness conflict on insert",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StorageWriteError(ArtistGraphError):
    """Raised when a store write fails for any reason other than a conflict."""

    def __init__(
        self,
        message: str = "Storage write failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class PipelineError(ArtistGraphError):
    """Raised when batch orchestration fails (invalid phase transition, etc.)."""

    def __init__(
        self,
        message: str = "Batch orchestration failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(ArtistGraphError):
    """Raised when configuration is invalid or missing. Fatal to a run."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
