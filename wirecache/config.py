from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Tuple

from requests.adapters import BaseAdapter, HTTPAdapter

from .domains import normalize_domains


@dataclass(frozen=True)
class CacheConfig:
    """
    Everything the caching adapter needs to know. Fixed once the adapter is built.
    """

    directory: Path
    """
    The root directory of the cache. It is created on demand.
    """

    transport: BaseAdapter = field(default_factory=HTTPAdapter)
    """
    The adapter that performs requests that cannot be served from the cache.
    """

    domains: Tuple[str, ...] = ()
    """
    Domain suffixes eligible for caching. Empty means every domain.
    """

    ttl: timedelta = timedelta(0)
    """
    How long a stored response stays valid. Zero means forever.
    """

    cacheable_statuses: Tuple[int, ...] = (200,)
    """
    Status codes of live responses that get stored.
    """

    raise_on_write_error: bool = True
    """
    Whether a failure to store a response fails the request. If `False`, the
    failure is logged and the live response is returned anyway.
    """

    def __post_init__(self):
        # Frozen, so normalized values are assigned through `object.__setattr__`.
        object.__setattr__(self, 'directory', Path(self.directory))
        object.__setattr__(self, 'domains', normalize_domains(self.domains))
        object.__setattr__(self, 'cacheable_statuses', tuple(self.cacheable_statuses))
        if not isinstance(self.ttl, timedelta):
            object.__setattr__(self, 'ttl', timedelta(seconds=self.ttl))
        if self.ttl < timedelta(0):
            raise ValueError('The time-to-live must not be negative: {}'.format(self.ttl))
