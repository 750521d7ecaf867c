from datetime import timedelta
from io import BytesIO
import logging
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import urlsplit

import requests
from requests.adapters import BaseAdapter, HTTPAdapter
from requests.structures import CaseInsensitiveDict
from requests.utils import get_encoding_from_headers
from urllib3 import HTTPHeaderDict, HTTPResponse

from .cache import Cache, FileCache
from .config import CacheConfig
from .domains import DomainFilter
from .errors import InvalidKey, ParseError, StoreReadError, StoreWriteError
from .expiration import ExpirationPolicy
from .keys import capture_request, derive_key
from .model import CacheEntry, Response


logger = logging.getLogger(__name__)

# `requests` has already undone these by the time the body is buffered.
DECODED_HEADERS = ('Content-Encoding', 'Transfer-Encoding', 'Content-Length')


class CachedHTTPAdapter(BaseAdapter):
    """
    A transport adapter that serves responses from an on-disk cache.

    Requests to eligible domains are looked up by their cache key. Fresh entries are returned without touching the
    network; everything else goes through the configured transport, and successful responses are stored for next time.
    """

    def __init__(self, config: CacheConfig, cache: Optional[Cache] = None) -> None:
        super().__init__()
        self.config = config
        self.cache = cache if cache is not None else FileCache(config.directory)
        self.domain_filter = DomainFilter(config.domains)
        self.expiration = ExpirationPolicy(config.ttl)

    def send(self, request: requests.PreparedRequest, **kw) -> requests.Response:
        """
        Send a request, answering it from the cache when possible.

        Keyword arguments (`timeout`, `stream`, `verify`, ...) are passed to the underlying transport untouched.
        """
        transport = self.config.transport

        hostname = urlsplit(request.url).hostname
        if not self.domain_filter.allows(hostname):
            logger.info('Host {} is not eligible for caching. Sending the request directly.'.format(hostname))
            return transport.send(request, **kw)

        key = derive_key(capture_request(request))

        entry = self._lookup(key)
        if entry is not None:
            logger.info('Cache hit for {} {} ({}).'.format(request.method, request.url, key))
            return self._build_response(request, entry.response)

        logger.info('Cache miss for {} {} ({}). Sending the request.'.format(request.method, request.url, key))
        requests_response = transport.send(request, **kw)
        requests_response.from_cache = False

        if requests_response.status_code not in self.config.cacheable_statuses:
            logger.info('Not caching response with status {}.'.format(requests_response.status_code))
            return requests_response

        response = self._capture_response(requests_response)
        # The original raw stream was consumed while buffering the body.
        requests_response.raw = self._build_raw(request, response)

        try:
            # The stamped copy returned by `save` is not needed; the caller gets the live response.
            self.cache.save(key, response)
        except StoreWriteError:
            if self.config.raise_on_write_error:
                raise
            logger.exception('Could not store the response for {}. Returning it uncached.'.format(key))

        return requests_response

    def _lookup(self, key: str) -> Optional[CacheEntry]:
        if not self.cache.exists(key):
            return None

        try:
            entry = self.cache.load(key)
        except (ParseError, StoreReadError, InvalidKey) as e:
            logger.warning('Ignoring unusable cache entry {}: {}'.format(key, e))
            return None

        if entry.response.status not in self.config.cacheable_statuses:
            logger.warning('Ignoring cache entry {} with status {}.'.format(key, entry.response.status))
            return None
        if self.expiration.is_expired(entry):
            logger.info('Cache entry {} has expired.'.format(key))
            return None
        return entry

    def _capture_response(self, requests_response: requests.Response) -> Response:
        raw_headers = getattr(requests_response.raw, 'headers', None)
        if raw_headers is None:
            raw_headers = requests_response.headers
        version = getattr(requests_response.raw, 'version', 11)

        body = requests_response.content or b''
        response = Response(status=requests_response.status_code,
                            reason=requests_response.reason or '',
                            headers=list(raw_headers.items()),
                            body=body,
                            version=version if version in (10, 11) else 11)
        return response.without_headers(*DECODED_HEADERS).with_header('Content-Length', str(len(body)))

    def _build_raw(self, request: requests.PreparedRequest, response: Response) -> HTTPResponse:
        return HTTPResponse(body=BytesIO(response.body),
                            headers=HTTPHeaderDict(response.headers),
                            status=response.status,
                            version=response.version,
                            reason=response.reason,
                            preload_content=False,
                            decode_content=False,
                            request_method=request.method)

    def _build_response(self, request: requests.PreparedRequest, response: Response) -> requests.Response:
        raw = self._build_raw(request, response)

        result = requests.Response()
        result.status_code = response.status
        result.reason = response.reason
        result.headers = CaseInsensitiveDict(raw.headers)
        result.encoding = get_encoding_from_headers(result.headers)
        result.raw = raw
        result.url = request.url.decode('utf-8') if isinstance(request.url, bytes) else request.url
        result.request = request
        result.connection = self
        result.from_cache = True
        return result

    def close(self) -> None:
        self.config.transport.close()


def create(directory: Path,
           domains: Iterable[str] = (),
           ttl: timedelta = timedelta(0),
           transport: Optional[BaseAdapter] = None,
           **kw) -> CachedHTTPAdapter:
    """
    Build a caching adapter storing its entries under `directory`.

    Extra keyword arguments are passed on to `CacheConfig`.
    """
    if transport is None:
        transport = HTTPAdapter()
    config = CacheConfig(directory=Path(directory), transport=transport, domains=domains, ttl=ttl, **kw)
    return CachedHTTPAdapter(config)


def mount(session: requests.Session, adapter: CachedHTTPAdapter) -> requests.Session:
    session.mount('http://', adapter)
    session.mount('https://', adapter)
    return session
