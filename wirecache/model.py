"""
Defines types to use in the caching interface.

These types are as simple as possible in order to most conveniently consume and
produce instances of them. Bodies are plain `bytes`: a body is buffered once and
every consumer gets its own view of the buffer.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Mapping, Optional, Sequence, Tuple

from .util import parse_timestamp


CACHE_TIME_HEADER = 'X-Cache-Time'


@dataclass(frozen=True)
class Request:
    """
    Represents an outgoing request, reduced to the parts that identify it.
    """

    method: str
    """
    The HTTP method of the request. E.g., "GET".
    """

    uri: str
    """
    The full URL of the request, including the query string.
    """

    headers: Mapping[str, Sequence[str]]
    """
    All the headers being sent with the request. A header may carry several
    values.
    """

    body: bytes = field(default=b'', repr=False)
    """
    The complete request payload.
    """


@dataclass(frozen=True)
class Response:
    """
    Represents an arbitrary response, without any bells and whistles.
    """

    status: int
    """
    The status code of the response. E.g., 200 or 400.
    """

    reason: str
    """
    The reason string, which relates to the status code.
    """

    headers: List[Tuple[str, str]]
    """
    All the headers sent with the response, in order. Repeated headers appear
    once per value.
    """

    body: bytes = field(default=b'', repr=False)
    """
    The complete response payload.
    """

    version: int = 11
    """
    The protocol version, as `urllib3` encodes it: 10 for HTTP/1.0 and 11 for
    HTTP/1.1.
    """

    def get_header(self, name: str) -> Optional[str]:
        """
        Return the first value of header `name`, compared case-insensitively.
        """
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return None

    def with_header(self, name: str, value: str) -> 'Response':
        """
        Return a copy where every `name` header is replaced by a single one.
        """
        lowered = name.lower()
        headers = [(key, val) for key, val in self.headers if key.lower() != lowered]
        headers.append((name, value))
        return replace(self, headers=headers)

    def without_headers(self, *names: str) -> 'Response':
        lowered = {name.lower() for name in names}
        return replace(self, headers=[(key, value) for key, value in self.headers if key.lower() not in lowered])


@dataclass(frozen=True)
class CacheEntry:
    """
    A response loaded from the cache, together with the key it is stored under.
    """

    key: str
    response: Response

    @property
    def stored_at(self) -> Optional[datetime]:
        """
        When the response was stored, or `None` if the entry has no usable
        timestamp.
        """
        value = self.response.get_header(CACHE_TIME_HEADER)
        if value is None:
            return None
        return parse_timestamp(value)
