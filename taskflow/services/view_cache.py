"""
Per-user cache of list views, invalidated by every mutation
"""

from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from taskflow.utils.logger import logger


class ViewCache:
    """Service for caching rendered list snapshots with TTL"""

    def __init__(self, ttl: timedelta = timedelta(minutes=5)):
        """
        Initialize view cache

        Args:
            ttl: How long an entry stays valid without invalidation
        """
        self.logger = logger
        self._entries: Dict[Tuple[str, str], Tuple[datetime, Any]] = {}
        self._cache_ttl = ttl

    async def get_or_load(self, view: str, user_id: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return a cached view or load and cache it

        Args:
            view: View name, e.g. "todos" or "issues"
            user_id: User the view belongs to
            loader: Coroutine factory producing the fresh value

        Returns:
            Cached or freshly loaded value
        """
        key = (view, user_id)
        entry = self._entries.get(key)
        if entry and datetime.now() - entry[0] <= self._cache_ttl:
            self.logger.debug(f"[ViewCache] Hit {view} for {user_id}")
            return entry[1]

        value = await loader()
        self._entries[key] = (datetime.now(), value)
        return value

    def invalidate(self, view: str, user_id: Optional[str] = None):
        """
        Drop cached entries for a view

        Args:
            view: View name
            user_id: Only this user's entry; all users when None
        """
        if user_id is not None:
            self._entries.pop((view, user_id), None)
        else:
            for key in [k for k in self._entries if k[0] == view]:
                del self._entries[key]
        self.logger.debug(f"[ViewCache] Invalidated {view} for {user_id or 'all users'}")
