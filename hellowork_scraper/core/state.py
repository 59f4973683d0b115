"""
Shared crawl state: budget, discovered detail URLs, saved-count.

The detail URL set and the saved counter are the only state mutated by
concurrent workers. Every mutation goes through a lock so that the
"already seen?" and "quota reached?" checks are atomic with the update.
"""
import time
import asyncio
import logging
from typing import Callable, Dict, List, Optional, Set

from .urls import dedup_key

logger = logging.getLogger(__name__)

STOP_QUOTA = "quota"
STOP_DEADLINE = "deadline"


class CrawlBudget:
    """Read-only limits for one run."""

    def __init__(
        self,
        results_wanted: int,
        max_pages: int,
        time_limit_secs: float,
        clock: Callable[[], float] = time.monotonic
    ):
        self.results_wanted = results_wanted
        self.max_pages = max_pages
        self.time_limit_secs = time_limit_secs
        self._clock = clock
        self.started_at = clock()
        self.deadline = self.started_at + time_limit_secs

    def elapsed(self) -> float:
        return self._clock() - self.started_at

    def is_expired(self) -> bool:
        """Soft deadline: checked between units of work, never interrupts."""
        return self._clock() >= self.deadline

    def __repr__(self):
        return (f"CrawlBudget(results_wanted={self.results_wanted}, "
                f"max_pages={self.max_pages}, time_limit={self.time_limit_secs}s)")


class CrawlState:
    """Synchronization-protected state shared by the orchestrator and both tiers."""

    def __init__(self, budget: CrawlBudget):
        self.budget = budget
        self.saved = 0
        self._lock = asyncio.Lock()
        self._detail_keys: Set[str] = set()
        self._detail_urls: List[str] = []
        # tier name -> dedup keys already attempted in that tier
        self._attempted: Dict[str, Set[str]] = {}

    @property
    def detail_urls(self) -> List[str]:
        """Discovered detail URLs in discovery order."""
        return list(self._detail_urls)

    def discovery_full(self) -> bool:
        return len(self._detail_urls) >= self.budget.results_wanted

    def quota_reached(self) -> bool:
        return self.saved >= self.budget.results_wanted

    def stop_reason(self) -> Optional[str]:
        """Global stopping condition checked before dispatching each unit of work."""
        if self.quota_reached():
            return STOP_QUOTA
        if self.budget.is_expired():
            return STOP_DEADLINE
        return None

    async def try_add_detail_url(self, url: str) -> bool:
        """
        Add a detail URL unless it is a duplicate or the set is full.

        Returns:
            True if the URL was added
        """
        key = dedup_key(url)
        async with self._lock:
            if key in self._detail_keys:
                return False
            if len(self._detail_urls) >= self.budget.results_wanted:
                return False
            self._detail_keys.add(key)
            self._detail_urls.append(url)
            return True

    async def try_reserve_slot(self) -> bool:
        """Claim one output slot. Fails once the quota is reached, so the run never overshoots."""
        async with self._lock:
            if self.saved >= self.budget.results_wanted:
                return False
            self.saved += 1
            return True

    async def try_mark_attempted(self, tier: str, url: str) -> bool:
        """Record an attempt of url in tier. False if that tier already attempted it."""
        key = dedup_key(url)
        async with self._lock:
            attempted = self._attempted.setdefault(tier, set())
            if key in attempted:
                return False
            attempted.add(key)
            return True

    def attempted_count(self, tier: str) -> int:
        return len(self._attempted.get(tier, ()))
