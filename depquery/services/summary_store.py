"""
Summary Store - Keeps generated repository summaries.

A summary is keyed by an identifier (usually the repository's remote URL or
its path) and seeds new sessions for that repository.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class SummaryStore(ABC):
    """Where repository summaries live."""

    @abstractmethod
    async def load_summary(self, identifier: str) -> Optional[str]:
        pass

    @abstractmethod
    async def save_summary(self, identifier: str, summary: str) -> None:
        pass


class InMemorySummaryStore(SummaryStore):
    """
    Process-local summary store.

    Saves are serialized so concurrent background generations for the same
    repository don't interleave.
    """

    def __init__(self):
        self._summaries: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def load_summary(self, identifier: str) -> Optional[str]:
        return self._summaries.get(identifier)

    async def save_summary(self, identifier: str, summary: str) -> None:
        async with self._lock:
            self._summaries[identifier] = summary
        logger.info(f"Stored summary for {identifier} ({len(summary)} characters)")
