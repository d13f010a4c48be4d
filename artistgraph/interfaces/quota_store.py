"""Abstract base class for persisting quota counters between runs."""

from __future__ import annotations

from abc import ABC, abstractmethod

from artistgraph.models.quota import QuotaState


class IQuotaStateStore(ABC):
    """Save and restore per-provider quota counters."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables if they do not exist."""

    @abstractmethod
    async def save_states(self, states: list[QuotaState]) -> None:
        """Replace the stored counters for each provider in *states*."""

    @abstractmethod
    async def load_states(self) -> list[QuotaState]:
        """Return every stored provider's counters."""
