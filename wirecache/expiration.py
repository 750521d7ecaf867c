from datetime import datetime, timedelta, timezone
import logging
from typing import Optional

from .model import CacheEntry
from .util import utcnow


logger = logging.getLogger(__name__)


class ExpirationPolicy:
    """
    Decides whether a stored entry is still fresh enough to be served.

    A zero time-to-live means entries never expire. Entries whose storage time
    is missing or unreadable are always considered expired so they get
    refreshed.
    """

    def __init__(self, ttl: timedelta) -> None:
        self.__ttl = ttl

    @property
    def ttl(self) -> timedelta:
        return self.__ttl

    def is_expired(self, entry: CacheEntry, now: Optional[datetime] = None) -> bool:
        if not self.__ttl:
            return False

        stored_at = entry.stored_at
        if stored_at is None:
            logger.info('Cache entry {} has no usable timestamp. Treating it as expired.'.format(entry.key))
            return True

        now = now or utcnow()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now - stored_at > self.__ttl
